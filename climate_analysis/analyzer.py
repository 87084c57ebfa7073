"""Full analysis of one series snapshot into an AnalysisBundle."""

import logging
from typing import Callable, Dict, Tuple, TypeVar

from climate_analysis.aggregation import (
    monthly_aggregates,
    seasonal_aggregates,
    yearly_aggregates,
)
from climate_analysis.config import AnalysisConfig
from climate_analysis.correlation import correlate
from climate_analysis.insights import derive_insights
from climate_analysis.percentile import (
    TOP_DAY_EVENTS,
    TOP_MONTH_EVENTS,
    distribution,
    top_days,
    top_periods,
)
from climate_analysis.run_detector import detect_all_runs
from climate_analysis.trend import daily_trend, yearly_trend
from weather_models import (
    AnalysisBundle,
    InsufficientDataError,
    Location,
    Parameter,
    RankedEvent,
    Trend,
    WeatherSeries,
    freeze,
)

T = TypeVar("T")

TREND_PARAMETERS = (
    Parameter.RAINFALL,
    Parameter.TEMPERATURE_MEAN,
    Parameter.TEMPERATURE_MIN,
    Parameter.TEMPERATURE_MAX,
    Parameter.WIND_SPEED,
    Parameter.SOLAR_RADIATION,
    Parameter.SUNSHINE_DURATION,
)


class ClimateAnalyzer:
    """Derives every statistic of a series in one synchronous pass.

    All statistics are computed from the same immutable series. Statistics
    lacking the minimum sample size are reported as None and logged; the rest
    of the analysis proceeds.

    Example:
        analyzer = ClimateAnalyzer(AnalysisConfig())
        bundle = analyzer.analyse(series, location)
        bundle.runs[RunKind.DROUGHT]
    """

    def __init__(self, config: AnalysisConfig | None = None) -> None:
        self.config = config if config is not None else AnalysisConfig()
        self.logger = logging.getLogger(name=self.__class__.__name__)

    def analyse(self, series: WeatherSeries, location: Location | None = None) -> AnalysisBundle:
        self.logger.info(f"Analysing {series!r} for {location.postcode if location else 'unknown location'}")

        monthly = monthly_aggregates(series, self.config)
        seasonal = seasonal_aggregates(monthly)
        yearly = yearly_aggregates(monthly)

        available = [p for p in TREND_PARAMETERS if series.has(p)]
        trends: Dict[Parameter, Trend | None] = {
            p: self.__optional(f"daily trend of {p.value}", lambda p=p: daily_trend(series, p, self.config))
            for p in available
        }
        yearly_trends: Dict[Parameter, Trend | None] = {
            p: self.__optional(f"yearly trend of {p.value}", lambda p=p: yearly_trend(yearly, p, self.config))
            for p in available
        }

        rankings: Dict[str, Tuple[RankedEvent, ...] | None] = {}
        for name, event in TOP_DAY_EVENTS.items():
            if series.has(event.parameter):
                rankings[name] = self.__optional(
                    name,
                    lambda event=event: top_days(
                        series, event, self.config.top_n, self.config.percentile_min_population
                    ),
                )
        for name, event in TOP_MONTH_EVENTS.items():
            if series.has(event.parameter):
                rankings[name] = self.__optional(
                    name,
                    lambda event=event: top_periods(
                        monthly, event, self.config.top_n, self.config.percentile_min_population
                    ),
                )

        rainfall_distribution = None
        if series.has(Parameter.RAINFALL):
            rainfall_distribution = self.__optional(
                "rainfall distribution",
                lambda: distribution(
                    series,
                    Parameter.RAINFALL,
                    self.config.distribution_percentiles,
                    self.config.percentile_min_population,
                    above=0.0,
                ),
            )

        correlations = tuple(
            correlate(series, a, b, self.config.correlation_min_common_days)
            for a, b in self.config.correlation_pairs
            if series.has(a) and series.has(b)
        )

        recent = tuple(
            series.observation(position)
            for position in range(max(0, len(series) - self.config.recent_days), len(series))
        )

        return AnalysisBundle(
            location=location,
            series=series,
            monthly=monthly,
            seasonal=seasonal,
            yearly=yearly,
            runs=freeze(detect_all_runs(series, self.config.run_rules)),
            trends=freeze(trends),
            yearly_trends=freeze(yearly_trends),
            rankings=freeze(rankings),
            rainfall_distribution=freeze(rainfall_distribution) if rainfall_distribution else None,
            correlations=correlations,
            insights=derive_insights(series, seasonal, self.config),
            recent=recent,
        )

    def __optional(self, name: str, compute: Callable[[], T]) -> T | None:
        try:
            return compute()
        except InsufficientDataError as e:
            self.logger.info(f"Omitting {name}: {e}")
            return None
