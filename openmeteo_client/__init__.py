from openmeteo_client.openmeteo_client import (
    CURRENT_DAILY_METRICS,
    CURRENT_METRICS,
    DEFAULT_DAILY_METRICS,
    OPENMETEO_DAILY_METRICS,
    OpenMeteoArchiveClient,
    OpenMeteoClient,
    OpenMeteoClientConfig,
    OpenMeteoCurrentClient,
    OpenMeteoWeatherProvider,
)
