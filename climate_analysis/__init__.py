from climate_analysis.aggregation import (
    month_across_years,
    monthly_aggregates,
    rollup,
    seasonal_aggregates,
    yearly_aggregates,
)
from climate_analysis.analyzer import ClimateAnalyzer
from climate_analysis.config import AnalysisConfig
from climate_analysis.correlation import correlate
from climate_analysis.insights import (
    derive_insights,
    growing_degree_days,
    growing_seasons,
    solar_potential,
)
from climate_analysis.percentile import (
    TOP_DAY_EVENTS,
    TOP_MONTH_EVENTS,
    PercentileRanker,
    TopEvent,
    distribution,
    rank_year,
    top_days,
    top_periods,
)
from climate_analysis.run_detector import (
    DEFAULT_RUN_RULES,
    RunRule,
    apply_overrides,
    detect_all_runs,
    detect_runs,
)
from climate_analysis.trend import daily_trend, fit_line, yearly_trend
