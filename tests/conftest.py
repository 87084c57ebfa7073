"""Test configuration and fixtures."""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List

import numpy as np
import pytest

from weather_models import Location, NotFoundError, Parameter, WeatherSeries

SW1A = Location(
    postcode="SW1A 1AA",
    latitude=51.501009,
    longitude=-0.141588,
    name="Westminster",
    region="London",
)


def consecutive_dates(start: date, days: int) -> List[date]:
    return [start + timedelta(days=offset) for offset in range(days)]


def make_series(start: date, **columns: List[Any]) -> WeatherSeries:
    """Series of consecutive days starting at start, one list per parameter."""
    length = max(len(values) for values in columns.values())
    return WeatherSeries.from_columns(
        {"date": consecutive_dates(start, length), **columns}
    )


def synthetic_columns(start: date, end: date, seed: int = 42) -> Dict[str, Any]:
    """Plausible UK daily weather with a seasonal cycle."""
    dates = consecutive_dates(start, (end - start).days + 1)
    rng = np.random.default_rng(seed)
    day_of_year = np.asarray([day.timetuple().tm_yday for day in dates], dtype=np.float64)
    season = np.sin(2 * np.pi * (day_of_year - 110) / 365.25)

    temperature_mean = np.round(10 + 7 * season + rng.normal(0, 2, len(dates)), 1)
    rain = rng.gamma(0.6, 4.0, len(dates))
    rain[rng.random(len(dates)) < 0.45] = 0.0
    wind_speed = np.round(np.abs(14 + rng.normal(0, 6, len(dates))), 1)
    solar = np.round(np.clip(12 + 10 * season + rng.normal(0, 3, len(dates)), 0.5, None), 2)

    return {
        "date": [day.isoformat() for day in dates],
        Parameter.RAINFALL.value: np.round(rain, 1).tolist(),
        Parameter.TEMPERATURE_MEAN.value: temperature_mean.tolist(),
        Parameter.TEMPERATURE_MIN.value: np.round(temperature_mean - 4, 1).tolist(),
        Parameter.TEMPERATURE_MAX.value: np.round(temperature_mean + 4, 1).tolist(),
        Parameter.WIND_SPEED.value: wind_speed.tolist(),
        Parameter.WIND_GUSTS.value: np.round(wind_speed * 1.7, 1).tolist(),
        Parameter.WIND_DIRECTION.value: rng.integers(0, 360, len(dates)).astype(float).tolist(),
        Parameter.SOLAR_RADIATION.value: solar.tolist(),
        Parameter.SUNSHINE_DURATION.value: np.round(solar * 1500, 0).tolist(),
    }


@pytest.fixture
def multi_year_series() -> WeatherSeries:
    """Four complete years, 2019 to 2022."""
    return WeatherSeries.from_columns(synthetic_columns(date(2019, 1, 1), date(2022, 12, 31)))


class FakeResolver:
    def __init__(self, locations: Dict[str, Location] | None = None):
        self.locations = locations if locations is not None else {"SW1A1AA": SW1A}
        self.calls = 0

    async def resolve(self, postcode: str) -> Location:
        self.calls += 1
        if postcode not in self.locations:
            raise NotFoundError(f"Postcode not found: {postcode}")
        return self.locations[postcode]


class FakeProvider:
    def __init__(self, failure: Exception | None = None):
        self.failure = failure
        self.historical_calls = []
        self.current_calls = 0

    async def fetch_historical(self, latitude, longitude, start_date, end_date, parameters=None):
        self.historical_calls.append((latitude, longitude, start_date, end_date))
        if self.failure:
            raise self.failure
        return synthetic_columns(start_date, end_date)

    async def fetch_current(self, latitude, longitude):
        self.current_calls += 1
        if self.failure:
            raise self.failure
        return {
            "time": datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc).isoformat(),
            "current": {"temperature_2m": 18.4, "wind_speed_10m": 12.0, "precipitation": None},
            "daily": {"temperature_2m_max": 21.0, "precipitation_sum": 0.4},
        }


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
