from weather_models.weather_models import (
    SEASON_MONTHS,
    AggregatePeriod,
    AnalysisBundle,
    CorrelationResult,
    CurrentConditions,
    DerivedInsights,
    GrowingSeason,
    InsufficientDataError,
    Location,
    MalformedSeriesError,
    NotFoundError,
    Observation,
    Parameter,
    ParameterStats,
    ProviderError,
    RankedEvent,
    Ranking,
    Run,
    RunKind,
    Season,
    SolarPotential,
    Trend,
    WeatherInsightsError,
    WeatherSeries,
    bundle_to_dict,
    freeze,
)
