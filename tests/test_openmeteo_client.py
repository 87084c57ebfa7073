"""Tests for the OpenMeteo clients and the async weather provider."""

import asyncio
import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timezone
from unittest.mock import Mock, patch

import numpy as np
import pytest
from openmeteo_sdk.VariablesWithTime import VariablesWithTime
from openmeteo_sdk.VariableWithValues import VariableWithValues
from openmeteo_sdk.WeatherApiResponse import WeatherApiResponse

from openmeteo_client import (
    CURRENT_DAILY_METRICS,
    CURRENT_METRICS,
    DEFAULT_DAILY_METRICS,
    OpenMeteoArchiveClient,
    OpenMeteoClientConfig,
    OpenMeteoCurrentClient,
    OpenMeteoWeatherProvider,
)
from weather_models import Parameter, ProviderError, WeatherSeries

DAY = 24 * 60 * 60


def variables_block(columns, time=0, time_end=0, interval=DAY):
    block = Mock(spec=VariablesWithTime)
    block.Time.return_value = time
    block.TimeEnd.return_value = time_end
    block.Interval.return_value = interval

    variables = []
    for values in columns:
        variable = Mock(spec=VariableWithValues)
        variable.ValuesAsNumpy.return_value = np.asarray(values, dtype=np.float32)
        variable.Value.return_value = values[0] if values else float("nan")
        variables.append(variable)
    block.Variables.side_effect = lambda idx: variables[idx]
    return block


def midnight(day: date) -> int:
    return int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp())


def fake_archive_api(url, params):
    """Answer archive requests with day numbers within the requested range."""
    start = date.fromisoformat(params["start_date"])
    end = date.fromisoformat(params["end_date"])
    days = (end - start).days + 1

    response = Mock(spec=WeatherApiResponse)
    response.UtcOffsetSeconds.return_value = 0
    response.Daily.return_value = variables_block(
        [[float(day) for day in range(days)] for _ in params["daily"]],
        time=midnight(start),
        time_end=midnight(start) + days * DAY,
    )
    return [response]


@pytest.fixture
def archive_client() -> OpenMeteoArchiveClient:
    client = OpenMeteoArchiveClient(OpenMeteoClientConfig(), session=Mock())
    client.weather_api = Mock(side_effect=fake_archive_api)
    return client


class TestOpenMeteoClientConfig:
    """Test cases for client configuration."""

    def test_defaults(self):
        config = OpenMeteoClientConfig()
        assert config.metrics == DEFAULT_DAILY_METRICS
        assert config.timezone == "Europe/London"
        assert config.retries == 5
        assert config.backoff_factor == 2.0

    def test_kwargs_override(self):
        config = OpenMeteoClientConfig(kwargs={"metrics": ["precipitation_sum"], "retries": 1})
        assert config.metrics == ["precipitation_sum"]
        assert config.retries == 1

    def test_from_file(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"openmeteo": {"timezone": "UTC", "backoff_factor": 0.5}}))

        config = OpenMeteoClientConfig(create_from_file=True, config_file=str(config_file))
        assert config.timezone == "UTC"
        assert config.backoff_factor == 0.5
        assert config.metrics == DEFAULT_DAILY_METRICS

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"metrics": ["snowfall_sum"]},
            {"metrics": "precipitation_sum"},
            {"timezone": ""},
            {"retries": -1},
            {"backoff_factor": "fast"},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            OpenMeteoClientConfig(kwargs=kwargs)

    def test_metrics_for(self):
        config = OpenMeteoClientConfig()
        assert config.metrics_for([Parameter.RAINFALL, Parameter.WIND_GUSTS]) == [
            "precipitation_sum",
            "wind_gusts_10m_max",
        ]
        assert config.metrics_for(None) == DEFAULT_DAILY_METRICS
        assert config.metrics_for([Parameter.UV_INDEX]) == []


class TestOpenMeteoArchiveClient:
    """Test cases for historical daily retrieval."""

    def test_chunks_requests_by_year(self, archive_client):
        columns = archive_client.fetch(51.5, -0.14, date(2022, 12, 30), date(2023, 1, 2))

        requested = [call.kwargs["params"] for call in archive_client.weather_api.call_args_list]
        assert [(p["start_date"], p["end_date"]) for p in requested] == [
            ("2022-12-30", "2022-12-31"),
            ("2023-01-01", "2023-01-02"),
        ]
        assert requested[0]["timezone"] == "Europe/London"
        assert columns["date"] == ["2022-12-30", "2022-12-31", "2023-01-01", "2023-01-02"]
        assert columns["rainfall"] == [0.0, 1.0, 0.0, 1.0]

    def test_columns_use_parameter_names(self, archive_client):
        columns = archive_client.fetch(
            51.5, -0.14, date(2024, 1, 1), date(2024, 1, 5), [Parameter.RAINFALL, Parameter.TEMPERATURE_MAX]
        )
        assert set(columns) == {"date", "rainfall", "temperature_max"}
        params = archive_client.weather_api.call_args.kwargs["params"]
        assert params["daily"] == ["precipitation_sum", "temperature_2m_max"]

    def test_columns_build_a_series(self, archive_client):
        columns = archive_client.fetch(51.5, -0.14, date(2024, 2, 1), date(2024, 3, 31))
        series = WeatherSeries.from_columns(columns)
        assert len(series) == 60
        assert series.parameters == tuple(
            p for p in Parameter if p is not Parameter.UV_INDEX
        )

    def test_rejects_inverted_range(self, archive_client):
        with pytest.raises(ValueError):
            archive_client.fetch(51.5, -0.14, date(2024, 2, 1), date(2024, 1, 1))

    def test_rejects_parameters_without_metric(self, archive_client):
        with pytest.raises(ValueError):
            archive_client.fetch(51.5, -0.14, date(2024, 1, 1), date(2024, 1, 2), [Parameter.UV_INDEX])

    def test_process_response_requires_daily_block(self, archive_client):
        response = Mock(spec=WeatherApiResponse)
        response.Daily.return_value = None
        with pytest.raises(TypeError):
            archive_client.process_response(response, ["precipitation_sum"])


class TestRateLimit:
    """Test cases for the minutely request quota."""

    def test_request_cost(self, archive_client):
        assert archive_client.request_cost(5, 1) == 1.0
        assert archive_client.request_cost(20, 14) == 2.0
        assert archive_client.request_cost(9, 366) == pytest.approx(366 / 14)

    def test_backs_off_when_quota_is_spent(self, archive_client):
        archive_client._minutely_usage = 599.5
        with patch("openmeteo_client.openmeteo_client.sleep") as sleep:
            archive_client.handle_ratelimit(1.0)
        sleep.assert_called_once()
        assert archive_client._minutely_usage == 1.0

    def test_no_backoff_within_quota(self, archive_client):
        with patch("openmeteo_client.openmeteo_client.sleep") as sleep:
            archive_client.handle_ratelimit(10.0)
        sleep.assert_not_called()

    def test_usage_is_booked_from_many_threads(self, archive_client):
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(archive_client.handle_ratelimit, [1.0] * 200))
        assert archive_client._minutely_usage == 200.0


class TestOpenMeteoCurrentClient:
    """Test cases for current conditions."""

    def test_fetch(self):
        response = Mock(spec=WeatherApiResponse)
        current_values = {
            "temperature_2m": 18.4,
            "relative_humidity_2m": 71.0,
            "precipitation": float("nan"),
            "wind_speed_10m": 12.0,
            "wind_direction_10m": 240.0,
            "wind_gusts_10m": 25.2,
        }
        response.Current.return_value = variables_block(
            [[current_values[metric]] for metric in CURRENT_METRICS],
            time=midnight(date(2024, 6, 15)) + 12 * 60 * 60,
        )
        response.Daily.return_value = variables_block(
            [[float(idx)] for idx in range(len(CURRENT_DAILY_METRICS))]
        )

        client = OpenMeteoCurrentClient(OpenMeteoClientConfig(), session=Mock())
        client.weather_api = Mock(return_value=[response])
        result = client.fetch(51.5, -0.14)

        assert result["time"] == "2024-06-15T12:00:00+00:00"
        assert result["current"]["temperature_2m"] == pytest.approx(18.4, abs=1e-3)
        assert result["current"]["precipitation"] is None
        assert result["daily"]["precipitation_sum"] == 0.0
        assert result["daily"]["temperature_2m_max"] == 2.0
        params = client.weather_api.call_args.kwargs["params"]
        assert params["forecast_days"] == 1
        assert params["current"] == CURRENT_METRICS


class TestOpenMeteoWeatherProvider:
    """Test cases for the async provider."""

    def test_fetch_historical(self):
        archive = Mock(spec=OpenMeteoArchiveClient)
        archive.fetch.return_value = {"date": ["2024-01-01"], "rainfall": [1.0]}
        provider = OpenMeteoWeatherProvider(archive_client=archive, current_client=Mock())

        columns = asyncio.run(
            provider.fetch_historical(51.5, -0.14, date(2024, 1, 1), date(2024, 1, 1))
        )
        assert columns == {"date": ["2024-01-01"], "rainfall": [1.0]}
        archive.fetch.assert_called_once_with(51.5, -0.14, date(2024, 1, 1), date(2024, 1, 1), None)

    def test_failures_become_provider_errors(self):
        current = Mock(spec=OpenMeteoCurrentClient)
        current.fetch.side_effect = ConnectionError("connection reset")
        provider = OpenMeteoWeatherProvider(archive_client=Mock(), current_client=current)

        with pytest.raises(ProviderError, match="connection reset"):
            asyncio.run(provider.fetch_current(51.5, -0.14))

    def test_requests_run_one_at_a_time(self):
        class TrackingArchive:
            def __init__(self):
                self.active = 0
                self.peak = 0
                self.lock = threading.Lock()

            def fetch(self, latitude, longitude, start_date, end_date, parameters=None):
                with self.lock:
                    self.active += 1
                    self.peak = max(self.peak, self.active)
                time.sleep(0.01)
                with self.lock:
                    self.active -= 1
                return {"date": [start_date.isoformat()]}

        archive = TrackingArchive()
        provider = OpenMeteoWeatherProvider(archive_client=archive, current_client=Mock())

        async def scenario():
            return await asyncio.gather(
                *(
                    provider.fetch_historical(50.0 + idx, -1.0, date(2024, 1, 1), date(2024, 1, 1))
                    for idx in range(4)
                )
            )

        results = asyncio.run(scenario())
        assert len(results) == 4
        assert archive.peak == 1
