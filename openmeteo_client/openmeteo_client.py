"""OpenMeteo API Client Library for Single-Location Weather Data

This module provides the weather provider of the weather insights pipeline. It
retrieves daily historical observations from the OpenMeteo Archive API and
instantaneous conditions from the OpenMeteo Forecast API for one location,
and converts the FlatBuffers responses into plain column data keyed by the
pipeline's Parameter names.

Core Components:

Configuration Management:
- OpenMeteoClientConfig: Configuration from JSON files and/or kwargs
- Validation of daily metrics against the supported metric mapping
- Timezone and retry settings

API Client Architecture:
- OpenMeteoClient: Abstract base class with session, rate limiting and variable extraction
- OpenMeteoArchiveClient: Historical daily data with year-based request chunking
- OpenMeteoCurrentClient: Current conditions plus today's daily summary
- OpenMeteoWeatherProvider: Async adaptor used by the analysis service

Metric Mapping:
    precipitation_sum            -> rainfall (mm)
    temperature_2m_mean          -> temperature_mean (°C)
    temperature_2m_min           -> temperature_min (°C)
    temperature_2m_max           -> temperature_max (°C)
    wind_speed_10m_mean          -> wind_speed (km/h)
    wind_gusts_10m_max           -> wind_gusts (km/h)
    wind_direction_10m_dominant  -> wind_direction (°)
    shortwave_radiation_sum      -> solar_radiation (MJ/m²)
    sunshine_duration            -> sunshine_duration (s)
    uv_index_max                 -> uv_index (forecast API only)

API Endpoints Supported:

OpenMeteo Archive API:
- Endpoint: https://archive-api.open-meteo.com/v1/archive
- Purpose: Historical weather observations (2+ day delay)
- Optimization: Year-based request chunking

OpenMeteo Forecast API:
- Endpoint: https://api.open-meteo.com/v1/forecast
- Purpose: Current conditions and the daily summary of today

Rate Limiting:
- Minutely quota of 600 API units per client instance
- Request cost grows with the number of metrics and days requested
- Blocking backoff until the current minute window has passed
- The async provider runs one request per client at a time, so worker threads
  never share a session or the quota counters concurrently

Error Handling:
- HTTP retries with exponential backoff live in the session (retry_requests)
- Every failure surfacing from the provider is raised as ProviderError
- The analysis core never retries on its own

Usage Patterns:

Historical Data Retrieval:\n
    client = OpenMeteoArchiveClient(OpenMeteoClientConfig())
    columns = client.fetch(51.5014, -0.1419, date(2015, 1, 1), date(2024, 12, 31))

Current Conditions:\n
    client = OpenMeteoCurrentClient(OpenMeteoClientConfig())
    conditions = client.fetch(51.5014, -0.1419)

Async Provider:\n
    provider = OpenMeteoWeatherProvider(OpenMeteoClientConfig(create_from_file=True))
    columns = await provider.fetch_historical(lat, lon, start, end, [Parameter.RAINFALL])

Dependencies:
- openmeteo_requests: Official OpenMeteo SDK for API communication
- openmeteo_sdk: Response parsing and data extraction utilities
- pandas: Temporal operations
- numpy: Numerical array handling
- requests / retry_requests: HTTP session with automatic retry logic
"""

import asyncio
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import InitVar, dataclass, field
from datetime import date, datetime, timedelta, timezone
from time import monotonic, sleep
from typing import Any, Dict, List, Sequence

import numpy as np
import openmeteo_requests
import pandas as pd
import requests
from openmeteo_sdk.VariablesWithTime import VariablesWithTime
from openmeteo_sdk.VariableWithValues import VariableWithValues
from openmeteo_sdk.WeatherApiResponse import WeatherApiResponse
from retry_requests import retry

from weather_models import Parameter, ProviderError

OPENMETEO_DAILY_METRICS: Dict[str, Parameter] = {
    "precipitation_sum": Parameter.RAINFALL,
    "temperature_2m_mean": Parameter.TEMPERATURE_MEAN,
    "temperature_2m_min": Parameter.TEMPERATURE_MIN,
    "temperature_2m_max": Parameter.TEMPERATURE_MAX,
    "wind_speed_10m_mean": Parameter.WIND_SPEED,
    "wind_gusts_10m_max": Parameter.WIND_GUSTS,
    "wind_direction_10m_dominant": Parameter.WIND_DIRECTION,
    "shortwave_radiation_sum": Parameter.SOLAR_RADIATION,
    "sunshine_duration": Parameter.SUNSHINE_DURATION,
    "uv_index_max": Parameter.UV_INDEX,
}

DEFAULT_DAILY_METRICS = [
    "precipitation_sum",
    "temperature_2m_mean",
    "temperature_2m_min",
    "temperature_2m_max",
    "wind_speed_10m_mean",
    "wind_direction_10m_dominant",
    "wind_gusts_10m_max",
    "shortwave_radiation_sum",
    "sunshine_duration",
]

CURRENT_METRICS = [
    "temperature_2m",
    "relative_humidity_2m",
    "precipitation",
    "wind_speed_10m",
    "wind_direction_10m",
    "wind_gusts_10m",
]

CURRENT_DAILY_METRICS = [
    "precipitation_sum",
    "temperature_2m_min",
    "temperature_2m_max",
    "wind_speed_10m_max",
    "wind_gusts_10m_max",
]

DEFAULTS: Dict[str, Any] = {
    "metrics": DEFAULT_DAILY_METRICS,
    "timezone": "Europe/London",
    "retries": 5,
    "backoff_factor": 2.0,
}


@dataclass
class OpenMeteoClientConfig:
    """Configuration class for OpenMeteo API client parameters.

    Values are taken from DEFAULTS, then from the "openmeteo" section of a JSON
    configuration file when create_from_file=True, then from kwargs.

    Attributes:
        metrics (List[str]): OpenMeteo daily metrics requested from the archive.
        timezone (str): IANA timezone the daily values are aggregated in.
        retries (int): Number of HTTP retries of the session.
        backoff_factor (float): Exponential backoff factor of the retries.

    Configuration File Schema:
        {
            "openmeteo": {
                "metrics": ["daily_metric1", "daily_metric2", ...],
                "timezone": "Europe/London",
                "retries": int,
                "backoff_factor": float
            }
        }

    Example:
        From configuration file with overrides:\n
        config = OpenMeteoClientConfig(create_from_file=True, kwargs={"retries": 3})

        From kwargs only:\n
        config = OpenMeteoClientConfig(kwargs={"metrics": ["precipitation_sum"]})
    """

    metrics: List[str] = field(init=False)
    timezone: str = field(init=False)
    retries: int = field(init=False)
    backoff_factor: float = field(init=False)
    create_from_file: InitVar[bool] = field(default=False)
    config_file: InitVar[str | None] = field(default=None)
    kwargs: InitVar[Dict[str, Any] | None] = field(default=None)

    def __post_init__(
        self,
        create_from_file: bool,
        config_file: str | None,
        kwargs: Dict[str, Any] | None,
    ):
        """Initialize OpenMeteoClientConfig from defaults, file and kwargs.

        Args:
            create_from_file (bool): Whether to load the "openmeteo" section of
                the configuration file.
            config_file (str | None): Path to JSON configuration file. If None and
                create_from_file=True, uses default path:
                {cwd}/config/{CONFIG_FILE env var or config.json}
            kwargs (Dict[str, Any] | None): Direct parameter values or overrides.

        Raises:
            ValueError: When parameter validation fails.
        """
        values = dict(DEFAULTS)

        if create_from_file:
            if not config_file:
                config_file = os.path.join(
                    os.getcwd(),
                    "config",
                    os.getenv("CONFIG_FILE", "config.json"),
                )
            values.update(self.__get_config(config_file).get("openmeteo", {}))

        if kwargs:
            values.update(kwargs)

        self.__set_metrics(values.get("metrics"))
        self.__set_timezone(values.get("timezone"))
        self.__set_retries(values.get("retries"))
        self.__set_backoff_factor(values.get("backoff_factor"))

    def __get_config(self, config_file: str) -> Dict[str, Any]:
        with open(file=config_file, mode="r") as file:
            config = json.load(fp=file)

        return config

    def __set_metrics(self, metrics: Any) -> None:
        """Validate and set the daily metrics list.

        Raises:
            ValueError: When metrics is not a list or holds unsupported metrics.
        """
        if isinstance(metrics, list):
            unknown = [m for m in metrics if m not in OPENMETEO_DAILY_METRICS]
            if unknown:
                raise ValueError(
                    f"Unsupported daily metrics {unknown}. Expected any of {list(OPENMETEO_DAILY_METRICS)}"
                )
            self.metrics = [str(metric) for metric in metrics]
        else:
            raise ValueError(
                f"Parameter metrics expected {type(OpenMeteoClientConfig.metrics)} Received {type(metrics)} instead."
            )

    def __set_timezone(self, tz: Any) -> None:
        if isinstance(tz, str) and tz:
            self.timezone = tz
        else:
            raise ValueError(f"Parameter timezone expected {str} Received {type(tz)} instead.")

    def __set_retries(self, retries: Any) -> None:
        if isinstance(retries, int) and retries >= 0:
            self.retries = retries
        else:
            raise ValueError(f"Parameter retries must be an int >=0. Got {retries}")

    def __set_backoff_factor(self, backoff_factor: Any) -> None:
        if isinstance(backoff_factor, (int, float)) and backoff_factor >= 0:
            self.backoff_factor = float(backoff_factor)
        else:
            raise ValueError(f"Parameter backoff_factor must be a number >=0. Got {backoff_factor}")

    def metrics_for(self, parameters: Sequence[Parameter] | None) -> List[str]:
        """Configured metrics restricted to the given parameters (all if None)."""
        if parameters is None:
            return list(self.metrics)
        wanted = set(parameters)
        return [m for m in self.metrics if OPENMETEO_DAILY_METRICS[m] in wanted]


class OpenMeteoClient(ABC, openmeteo_requests.Client):
    """Abstract base class for OpenMeteo API clients with rate limiting and variable extraction.

    Each instance owns an HTTP session with automatic retry logic and tracks
    the API units it spent in the current minute.

    Attributes:
        MINUTELY_RATE_LIMIT (float): API units allowed per minute (600)
        MINUTELY_BACKOFF (int): Length of the rate limit window in seconds (60)
        config: OpenMeteoClientConfig instance with API parameters
        logger: Configured logger for operation monitoring
    """

    MINUTELY_RATE_LIMIT = 600.0
    MINUTELY_BACKOFF = 60

    def __init__(
        self,
        config: OpenMeteoClientConfig | None = None,
        session: requests.Session | None = None,
    ):
        """Initialize OpenMeteoClient with configuration and HTTP session.

        Args:
            config (OpenMeteoClientConfig | None): API parameters. Defaults are used if None.
            session (requests.Session | None): HTTP session. A retrying session
                is created if None.
        """
        self.config = config if config is not None else OpenMeteoClientConfig()

        if session is None:
            session = retry(
                requests.Session(),
                retries=self.config.retries,
                backoff_factor=self.config.backoff_factor,
            )
        super().__init__(session)  # type: ignore

        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(levelname)s - %(message)s",
        )
        self.logger = logging.getLogger(name=self.__class__.__name__)

        self._window_start = monotonic()
        self._minutely_usage = 0.0
        self._ratelimit_lock = threading.Lock()

        self.logger.info(f"Setting up {self.__class__.__name__}")

    @abstractmethod
    def fetch(self, latitude: float, longitude: float, *args, **kwargs) -> Dict[str, Any]:
        """Retrieve and decode data for one location (abstract method)."""
        pass

    def request_cost(self, num_metrics: int, num_days: int) -> float:
        """Approximate API units of one request.

        OpenMeteo counts a request as one unit up to 10 variables and 14 days
        and proportionally more beyond that.
        """
        return max(1.0, num_metrics / 10) * max(1.0, num_days / 14)

    def handle_ratelimit(self, cost: float) -> None:
        """Block until the request fits into the minutely quota, then book it.

        Args:
            cost (float): API units of the next request.
        """
        with self._ratelimit_lock:
            elapsed = monotonic() - self._window_start
            if elapsed >= OpenMeteoClient.MINUTELY_BACKOFF:
                self._window_start = monotonic()
                self._minutely_usage = 0.0
            elif self._minutely_usage + cost > OpenMeteoClient.MINUTELY_RATE_LIMIT:
                backoff = OpenMeteoClient.MINUTELY_BACKOFF - elapsed
                self.logger.info(
                    f"Minutely rate limit hit. Backing off for {str(timedelta(seconds=round(backoff)))}."
                )
                sleep(backoff)
                self._window_start = monotonic()
                self._minutely_usage = 0.0

            self._minutely_usage += cost

    def extract_values(self, variable_index: int, variables: VariablesWithTime) -> np.ndarray:
        """Extract one variable as float64 array.

        The SDK returns float32 values; they are widened and rounded to three
        decimals so 0.2 mm stays 0.2.

        Raises:
            TypeError: When the variable is not a VariableWithValues instance.
        """
        variable = variables.Variables(variable_index)

        if isinstance(variable, VariableWithValues):
            values = variable.ValuesAsNumpy()
        else:
            raise TypeError(
                f"Error during variable extraction. Expected type: {VariableWithValues} Got: {type(variable)} instead."
            )

        return np.round(np.asarray(values, dtype=np.float64), 3)

    def extract_value(self, variable_index: int, variables: VariablesWithTime) -> float | None:
        variable = variables.Variables(variable_index)

        if isinstance(variable, VariableWithValues):
            value = float(variable.Value())
        else:
            raise TypeError(
                f"Error during variable extraction. Expected type: {VariableWithValues} Got: {type(variable)} instead."
            )

        return None if np.isnan(value) else round(value, 3)

    def daily_dates(self, response: WeatherApiResponse, daily: VariablesWithTime) -> List[date]:
        """Local calendar dates of a daily block.

        Timestamps are UTC instants of local midnight; the response's UTC
        offset turns them back into local dates.
        """
        offset = response.UtcOffsetSeconds()
        return [
            timestamp.date()
            for timestamp in pd.date_range(
                start=pd.to_datetime(daily.Time() + offset, unit="s", utc=True),
                end=pd.to_datetime(daily.TimeEnd() + offset, unit="s", utc=True),
                freq=pd.Timedelta(seconds=daily.Interval()),
                inclusive="left",
            )
        ]


class OpenMeteoArchiveClient(OpenMeteoClient):
    """OpenMeteo Archive API client for historical daily data of one location.

    Requests are chunked by calendar year, and the decoded columns of all
    chunks are concatenated in date order.

    Attributes:
        URL (str): OpenMeteo Archive API endpoint URL

    Example:
        client = OpenMeteoArchiveClient(OpenMeteoClientConfig())
        columns = client.fetch(51.5, -0.12, date(2020, 1, 1), date(2023, 12, 31))
        columns["date"][0]  # "2020-01-01"
    """

    URL = "https://archive-api.open-meteo.com/v1/archive"

    def fetch(
        self,
        latitude: float,
        longitude: float,
        start_date: date,
        end_date: date,
        parameters: Sequence[Parameter] | None = None,
    ) -> Dict[str, Any]:
        """Retrieve historical daily data from the OpenMeteo Archive API.

        Args:
            latitude (float): Latitude in decimal degrees.
            longitude (float): Longitude in decimal degrees.
            start_date (date): First day (inclusive).
            end_date (date): Last day (inclusive).
            parameters (Sequence[Parameter] | None): Parameters to retrieve.
                All configured metrics if None.

        Returns:
            Dict[str, Any]: {"date": [ISO dates], <parameter name>: [values]},
                NaN marking absent readings.

        Raises:
            ValueError: When the date range is inverted or no metric matches.
        """
        if end_date < start_date:
            raise ValueError(f"End date {end_date} is before start date {start_date}.")

        metrics = self.config.metrics_for(parameters)
        if not metrics:
            raise ValueError(f"None of the configured metrics provide {parameters}.")

        frames = []
        for year in range(start_date.year, end_date.year + 1):
            chunk_start = max(date(year, 1, 1), start_date)
            chunk_end = min(date(year, 12, 31), end_date)

            self.handle_ratelimit(
                self.request_cost(len(metrics), (chunk_end - chunk_start).days + 1)
            )
            self.logger.info(
                f"Retrieving historic data for Lat.: {latitude}° (N), Lon.: {longitude}° (E) from {chunk_start} to {chunk_end}"
            )

            responses = self.weather_api(
                OpenMeteoArchiveClient.URL,
                params={
                    "latitude": latitude,
                    "longitude": longitude,
                    "start_date": chunk_start.isoformat(),
                    "end_date": chunk_end.isoformat(),
                    "daily": metrics,
                    "timezone": self.config.timezone,
                },
            )
            frames.append(self.process_response(responses[0], metrics))

        data = pd.concat(frames, axis=0, ignore_index=True)
        data = data.drop_duplicates(subset="date").sort_values("date")

        self.logger.info(f"{self.__class__.__name__} retrieved {len(data)} days.")

        columns: Dict[str, Any] = {"date": [day.isoformat() for day in data["date"]]}
        for metric in metrics:
            columns[OPENMETEO_DAILY_METRICS[metric].value] = data[metric].tolist()
        return columns

    def process_response(self, response: WeatherApiResponse, metrics: List[str]) -> pd.DataFrame:
        """Convert one archive response into a DataFrame with a "date" column
        and one column per metric.

        Raises:
            TypeError: When the response holds no daily VariablesWithTime block.
        """
        daily = response.Daily()

        if isinstance(daily, VariablesWithTime):
            daily_data: Dict[str, Any] = {"date": self.daily_dates(response, daily)}
            for idx, metric in enumerate(metrics):
                daily_data[metric] = self.extract_values(idx, daily)
        else:
            raise TypeError(
                f"Error during processing response. Expected type: {VariablesWithTime} Got: {type(daily)} instead."
            )

        return pd.DataFrame(daily_data)


class OpenMeteoCurrentClient(OpenMeteoClient):
    """OpenMeteo Forecast API client for current conditions of one location.

    Attributes:
        URL (str): OpenMeteo Forecast API endpoint URL
    """

    URL = "https://api.open-meteo.com/v1/forecast"

    def fetch(self, latitude: float, longitude: float) -> Dict[str, Any]:
        """Retrieve the instantaneous readings and today's daily summary.

        Returns:
            Dict[str, Any]: {"time": ISO timestamp (UTC), "current": {metric: value},
                "daily": {metric: value}}

        Raises:
            TypeError: When the response misses its current or daily block.
        """
        self.handle_ratelimit(self.request_cost(len(CURRENT_METRICS), 1))
        self.logger.info(
            f"Retrieving current conditions for Lat.: {latitude}° (N), Lon.: {longitude}° (E)"
        )

        responses = self.weather_api(
            OpenMeteoCurrentClient.URL,
            params={
                "latitude": latitude,
                "longitude": longitude,
                "current": CURRENT_METRICS,
                "daily": CURRENT_DAILY_METRICS,
                "forecast_days": 1,
                "timezone": self.config.timezone,
            },
        )
        response = responses[0]

        current = response.Current()
        daily = response.Daily()
        if not isinstance(current, VariablesWithTime) or not isinstance(daily, VariablesWithTime):
            raise TypeError(
                f"Error during processing response. Expected type: {VariablesWithTime} Got: {type(current)}, {type(daily)} instead."
            )

        today = {}
        for idx, metric in enumerate(CURRENT_DAILY_METRICS):
            values = self.extract_values(idx, daily)
            today[metric] = None if values.size == 0 or np.isnan(values[0]) else float(values[0])

        return {
            "time": datetime.fromtimestamp(current.Time(), tz=timezone.utc).isoformat(),
            "current": {
                metric: self.extract_value(idx, current)
                for idx, metric in enumerate(CURRENT_METRICS)
            },
            "daily": today,
        }


def _serialized(lock: threading.Lock, call, *args):
    with lock:
        return call(*args)


class OpenMeteoWeatherProvider:
    """Async weather provider backed by the blocking OpenMeteo clients.

    Requests run in worker threads, one at a time per client. Any failure is
    raised as ProviderError.
    """

    def __init__(
        self,
        config: OpenMeteoClientConfig | None = None,
        archive_client: OpenMeteoArchiveClient | None = None,
        current_client: OpenMeteoCurrentClient | None = None,
    ) -> None:
        self.config = config if config is not None else OpenMeteoClientConfig()
        self.archive_client = archive_client or OpenMeteoArchiveClient(self.config)
        self.current_client = current_client or OpenMeteoCurrentClient(self.config)
        self._archive_lock = threading.Lock()
        self._current_lock = threading.Lock()
        self.logger = logging.getLogger(name=self.__class__.__name__)

    async def fetch_historical(
        self,
        latitude: float,
        longitude: float,
        start_date: date,
        end_date: date,
        parameters: Sequence[Parameter] | None = None,
    ) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(
                _serialized,
                self._archive_lock,
                self.archive_client.fetch,
                latitude,
                longitude,
                start_date,
                end_date,
                parameters,
            )
        except Exception as e:
            self.logger.error(f"Historical fetch failed: {e}")
            raise ProviderError(f"OpenMeteo archive request failed: {e}") from e

    async def fetch_current(self, latitude: float, longitude: float) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(
                _serialized, self._current_lock, self.current_client.fetch, latitude, longitude
            )
        except Exception as e:
            self.logger.error(f"Current conditions fetch failed: {e}")
            raise ProviderError(f"OpenMeteo forecast request failed: {e}") from e
