"""Weather Insights Data Models

This module defines the complete data model of the weather insights pipeline.
Every analysis component reads one validated, immutable daily series and emits
immutable result records, which are composed into a single result bundle for
presentation layers.

Core Components:

Series Store:
- WeatherSeries: Validated, gap-aware daily series for a single location
- Observation: One calendar day of readings (UK local date)
- Parameter: Enumeration of the supported daily readings

Result Records:
- AggregatePeriod / ParameterStats: Monthly, seasonal and yearly summaries
- Run / RunKind: Consecutive-day extreme events (droughts, heat waves, ...)
- Trend: Ordinary least squares fit with direction and strength labels
- Ranking / RankedEvent: Percentile annotation composed onto a base record
- CorrelationResult: Pearson correlation between two parameters
- GrowingSeason / SolarPotential / DerivedInsights: Agricultural and energy insights
- CurrentConditions: Instantaneous readings plus today's daily summary
- AnalysisBundle: Immutable container of all of the above

Error Taxonomy:
- WeatherInsightsError: Base class of all pipeline errors
- NotFoundError: Postcode or location cannot be resolved
- ProviderError: Network failure or non-success response of a data provider
- MalformedSeriesError: Duplicate or non-chronological dates, non-numeric readings
- InsufficientDataError: Sample below the minimum size of a statistic

Series Guarantees:
- Dates are unique and strictly increasing
- Missing calendar days are kept as gaps, never interpolated
- Absent readings are stored as NaN and reported as None
- Per-parameter arrays handed out are read-only float64 views

Serialization:
bundle_to_dict() converts a bundle (or any record of this module) into plain
JSON-compatible Python objects: enums become their values, dates ISO strings,
NaN becomes None.

Dependencies:
- pandas: Date handling and the tabular backing store of WeatherSeries
- numpy: Numerical arrays for downstream analytics
"""

import math
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Tuple

import numpy as np
import pandas as pd
from numpy.typing import NDArray


class WeatherInsightsError(Exception):
    """Base class of all weather insights errors."""


class NotFoundError(WeatherInsightsError):
    """Raised when a postcode or location cannot be resolved."""


class ProviderError(WeatherInsightsError):
    """Raised on network failures or non-success responses of a data provider."""


class MalformedSeriesError(WeatherInsightsError):
    """Raised when raw rows cannot form a valid series."""


class InsufficientDataError(WeatherInsightsError):
    """Raised when a statistic lacks the minimum number of samples.

    Callers recover from this error locally by omitting the affected field.
    """


class Parameter(str, Enum):
    """Daily readings understood by the pipeline and their units."""

    RAINFALL = "rainfall"  # mm
    TEMPERATURE_MEAN = "temperature_mean"  # °C
    TEMPERATURE_MIN = "temperature_min"  # °C
    TEMPERATURE_MAX = "temperature_max"  # °C
    WIND_SPEED = "wind_speed"  # km/h
    WIND_GUSTS = "wind_gusts"  # km/h
    WIND_DIRECTION = "wind_direction"  # degrees
    SOLAR_RADIATION = "solar_radiation"  # MJ/m²
    UV_INDEX = "uv_index"
    SUNSHINE_DURATION = "sunshine_duration"  # seconds


class Season(str, Enum):
    """Meteorological seasons, declared in their calendar order within a year."""

    WINTER = "winter"
    SPRING = "spring"
    SUMMER = "summer"
    AUTUMN = "autumn"

    @property
    def months(self) -> Tuple[int, int, int]:
        return SEASON_MONTHS[self]

    @classmethod
    def of_month(cls, year: int, month: int) -> Tuple[int, "Season"]:
        """Return the (season year, season) a calendar month belongs to.

        December is attributed to the winter of the following year.
        """
        if month == 12:
            return year + 1, cls.WINTER
        for season, months in SEASON_MONTHS.items():
            if month in months:
                return year, season
        raise ValueError(f"Month must be between 1 and 12. Got {month}")


SEASON_MONTHS: Dict[Season, Tuple[int, int, int]] = {
    Season.WINTER: (12, 1, 2),
    Season.SPRING: (3, 4, 5),
    Season.SUMMER: (6, 7, 8),
    Season.AUTUMN: (9, 10, 11),
}


@dataclass(frozen=True)
class Observation:
    """One calendar day of readings. Absent readings are None."""

    date: date
    rainfall: float | None = None
    temperature_mean: float | None = None
    temperature_min: float | None = None
    temperature_max: float | None = None
    wind_speed: float | None = None
    wind_gusts: float | None = None
    wind_direction: float | None = None
    solar_radiation: float | None = None
    uv_index: float | None = None
    sunshine_duration: float | None = None

    def get(self, parameter: Parameter) -> float | None:
        return getattr(self, parameter.value)


@dataclass(frozen=True)
class Location:
    """A resolved UK postcode."""

    postcode: str
    latitude: float
    longitude: float
    name: str
    region: str | None = None

    @property
    def identifier(self) -> str:
        """Coordinates rounded to four decimals, used as cache identity."""
        return f"{self.latitude:.4f},{self.longitude:.4f}"


class WeatherSeries:
    """Validated, immutable daily series of observations for one location.

    The series is backed by a pandas DataFrame indexed by date with one float64
    column per Parameter. Absent readings are NaN. Missing calendar days are
    simply not present in the index; nothing is interpolated.

    Instances are built through build() (row oriented input) or
    from_columns() (column oriented provider output). Both reject duplicate
    or non-chronological dates and non-numeric readings with a
    MalformedSeriesError. Unknown fields are ignored.

    Example:
        series = WeatherSeries.build(
            [
                {"date": "2024-01-01", "rainfall": 2.4, "temperature_max": 8.1},
                {"date": "2024-01-02", "rainfall": None},
            ]
        )
        series.values(Parameter.RAINFALL)  # array([2.4, nan])
    """

    def __init__(self, dates: List[date], columns: Dict[Parameter, List[float]]):
        """Create the series from pre-validated dates and float columns.

        Use build() or from_columns() instead of calling this directly.
        """
        index = pd.DatetimeIndex(pd.to_datetime(dates), name="date")
        self._frame = pd.DataFrame(
            {
                parameter.value: np.asarray(
                    columns.get(parameter, [math.nan] * len(dates)), dtype=np.float64
                )
                for parameter in Parameter
            },
            index=index,
        )
        self._dates: Tuple[date, ...] = tuple(dates)
        self._arrays: Dict[Parameter, NDArray[np.float64]] = {}
        for parameter in Parameter:
            values = self._frame[parameter.value].to_numpy(dtype=np.float64, copy=True)
            values.setflags(write=False)
            self._arrays[parameter] = values

        if self._dates:
            offsets = np.asarray(
                [(day - self._dates[0]).days for day in self._dates], dtype=np.int64
            )
        else:
            offsets = np.empty(0, dtype=np.int64)
        offsets.setflags(write=False)
        self._offsets = offsets

    @classmethod
    def build(cls, rows: Iterable[Mapping[str, Any]]) -> "WeatherSeries":
        """Build a series from raw provider rows.

        Args:
            rows (Iterable[Mapping[str, Any]]): Rows holding a "date" key
                (ISO string, date or datetime) and any Parameter names as keys.
                Readings may be missing, None or NaN.

        Returns:
            WeatherSeries: Validated series.

        Raises:
            MalformedSeriesError: On duplicate, non-chronological or unparsable
                dates, or non-numeric readings.
        """
        dates: List[date] = []
        columns: Dict[Parameter, List[float]] = {parameter: [] for parameter in Parameter}

        for position, row in enumerate(rows):
            if "date" not in row:
                raise MalformedSeriesError(f"Row {position} has no date: {row}")
            dates.append(_parse_date(row["date"]))
            for parameter in Parameter:
                columns[parameter].append(
                    _parse_reading(row.get(parameter.value), parameter, dates[-1])
                )

        _check_chronology(dates)

        return cls(dates, columns)

    @classmethod
    def from_columns(cls, columns: Mapping[str, Any]) -> "WeatherSeries":
        """Build a series from column oriented data.

        Args:
            columns (Mapping[str, Any]): Mapping with a "date" sequence and one
                equally long sequence per available Parameter name.

        Returns:
            WeatherSeries: Validated series.

        Raises:
            MalformedSeriesError: On ragged columns or any violation listed in build().
        """
        if "date" not in columns:
            raise MalformedSeriesError("Columns require a 'date' entry.")

        dates = [_parse_date(value) for value in columns["date"]]
        _check_chronology(dates)

        parsed: Dict[Parameter, List[float]] = {}
        for parameter in Parameter:
            if parameter.value not in columns:
                continue
            raw = list(columns[parameter.value])
            if len(raw) != len(dates):
                raise MalformedSeriesError(
                    f"Column {parameter.value} has {len(raw)} values for {len(dates)} dates."
                )
            parsed[parameter] = [
                _parse_reading(value, parameter, day) for value, day in zip(raw, dates)
            ]

        return cls(dates, parsed)

    def __len__(self) -> int:
        return len(self._dates)

    def __repr__(self) -> str:
        return f"WeatherSeries(days={len(self)}, start={self.start}, end={self.end})"

    @property
    def dates(self) -> Tuple[date, ...]:
        return self._dates

    @property
    def start(self) -> date | None:
        return self._dates[0] if self._dates else None

    @property
    def end(self) -> date | None:
        return self._dates[-1] if self._dates else None

    @property
    def parameters(self) -> Tuple[Parameter, ...]:
        """Parameters with at least one reading."""
        return tuple(p for p in Parameter if self.has(p))

    @property
    def frame(self) -> pd.DataFrame:
        """Copy of the backing DataFrame (date index, one column per parameter)."""
        return self._frame.copy()

    def has(self, parameter: Parameter) -> bool:
        return bool(np.any(~np.isnan(self._arrays[parameter])))

    def values(self, parameter: Parameter) -> NDArray[np.float64]:
        """Read-only float64 array of one parameter, NaN where absent."""
        return self._arrays[parameter]

    def day_offsets(self) -> NDArray[np.int64]:
        """Read-only array of days elapsed since the first date."""
        return self._offsets

    def observation(self, position: int) -> Observation:
        readings = {}
        for parameter in Parameter:
            value = self._arrays[parameter][position]
            readings[parameter.value] = None if np.isnan(value) else float(value)
        return Observation(date=self._dates[position], **readings)

    def observations(self) -> Iterator[Observation]:
        for position in range(len(self)):
            yield self.observation(position)

    def between(self, start: date, end: date) -> "WeatherSeries":
        """Sub-series of all days within [start, end]."""
        positions = [i for i, day in enumerate(self._dates) if start <= day <= end]
        return WeatherSeries(
            [self._dates[i] for i in positions],
            {p: [float(self._arrays[p][i]) for i in positions] for p in Parameter},
        )


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (str, pd.Timestamp, np.datetime64)):
        try:
            timestamp = pd.Timestamp(value)
        except (TypeError, ValueError) as e:
            raise MalformedSeriesError(f"Unparsable date: {value!r}") from e
        if pd.isna(timestamp):
            raise MalformedSeriesError(f"Unparsable date: {value!r}")
        return timestamp.date()
    raise MalformedSeriesError(
        f"Expected date as {str}, {date} or {datetime}. Got {type(value)} instead."
    )


def _parse_reading(value: Any, parameter: Parameter, day: date) -> float:
    if value is None:
        return math.nan
    if isinstance(value, (bool, np.bool_)) or not isinstance(
        value, (int, float, np.integer, np.floating)
    ):
        raise MalformedSeriesError(
            f"Non-numeric {parameter.value} reading on {day}: {value!r}"
        )
    return float(value)


def _check_chronology(dates: List[date]) -> None:
    for previous, current in zip(dates, dates[1:]):
        if current == previous:
            raise MalformedSeriesError(f"Duplicate date {current}")
        if current < previous:
            raise MalformedSeriesError(
                f"Non-chronological date {current} follows {previous}"
            )


@dataclass(frozen=True)
class ParameterStats:
    """Count, total, mean and extremes of one parameter within a bucket."""

    count: int
    total: float
    mean: float
    minimum: float
    maximum: float

    @classmethod
    def from_values(cls, values: NDArray[np.float64]) -> "ParameterStats | None":
        present = values[~np.isnan(values)]
        if present.size == 0:
            return None
        total = sum(float(value) for value in present)
        return cls(
            count=int(present.size),
            total=total,
            mean=total / present.size,
            minimum=float(present.min()),
            maximum=float(present.max()),
        )

    @classmethod
    def combine(cls, parts: Iterable["ParameterStats"]) -> "ParameterStats | None":
        """Roll up partial statistics. Totals are summed in the given order."""
        parts = list(parts)
        if not parts:
            return None
        count = sum(part.count for part in parts)
        total = sum(part.total for part in parts)
        return cls(
            count=count,
            total=total,
            mean=total / count,
            minimum=min(part.minimum for part in parts),
            maximum=max(part.maximum for part in parts),
        )


@dataclass(frozen=True)
class AggregatePeriod:
    """A monthly, seasonal or yearly bucket.

    Exactly one of month and season is set for monthly and seasonal buckets,
    neither for yearly ones. Seasonal year is the year the season ends in, so
    December 2023 belongs to winter 2024. Qualifying-day counts are None when
    the driving parameter has no readings in the bucket.
    """

    year: int
    month: int | None
    season: Season | None
    days: int
    stats: Mapping[Parameter, ParameterStats]
    wet_days: int | None = None
    warm_days: int | None = None
    frost_days: int | None = None

    @property
    def granularity(self) -> str:
        if self.month is not None:
            return "month"
        if self.season is not None:
            return "season"
        return "year"

    @property
    def label(self) -> str:
        if self.month is not None:
            return f"{self.year}-{self.month:02d}"
        if self.season is not None:
            return f"{self.season.value} {self.year}"
        return str(self.year)

    def total(self, parameter: Parameter) -> float | None:
        stats = self.stats.get(parameter)
        return stats.total if stats else None

    def mean(self, parameter: Parameter) -> float | None:
        stats = self.stats.get(parameter)
        return stats.mean if stats else None


class RunKind(str, Enum):
    DROUGHT = "drought"
    HEAT_WAVE = "heat_wave"
    COLD_SNAP = "cold_snap"
    STRONG_WIND = "strong_wind"
    CALM = "calm"
    SOLAR_PEAK = "solar_peak"
    LOW_SOLAR = "low_solar"


@dataclass(frozen=True)
class Run:
    """Maximal consecutive-day span in which a run rule held."""

    kind: RunKind
    start: date
    end: date
    duration_days: int
    summary_metric: float | None


@dataclass(frozen=True)
class Trend:
    """Least squares line y = slope * x + intercept.

    x is measured in days since the first date for daily trends and in years
    for yearly trends, as named by `per`. r_squared is None for a constant
    series.
    """

    parameter: Parameter
    slope: float
    intercept: float
    direction: str
    strength: str
    r_squared: float | None
    sample_size: int
    per: str = "day"

    @property
    def description(self) -> str:
        if self.direction == "stable":
            return "stable"
        return f"{self.strength} {self.direction}"


@dataclass(frozen=True)
class Ranking:
    rank: int
    percentile: float


@dataclass(frozen=True)
class RankedEvent:
    """A day or period composed with its ranking against the full history."""

    subject: Observation | AggregatePeriod
    parameter: Parameter
    value: float
    ranking: Ranking


@dataclass(frozen=True)
class CorrelationResult:
    """Pearson correlation of two parameters over their common days.

    coefficient is None when the result is "insufficient data" or "undefined".
    """

    parameter_a: Parameter
    parameter_b: Parameter
    common_days: int
    coefficient: float | None
    description: str


@dataclass(frozen=True)
class GrowingSeason:
    year: int
    start: date | None
    end: date | None

    @property
    def length_days(self) -> int | None:
        if self.start is None or self.end is None:
            return None
        return (self.end - self.start).days + 1


@dataclass(frozen=True)
class SolarPotential:
    year: int
    season: Season
    radiation_mj: float
    energy_kwh: float


@dataclass(frozen=True)
class DerivedInsights:
    """Agricultural and energy insights. Each field is None when its inputs are absent."""

    growing_degree_days: Mapping[int, float] | None = None
    growing_seasons: Tuple[GrowingSeason, ...] | None = None
    solar_potential: Tuple[SolarPotential, ...] | None = None
    solar_mean_by_season: Mapping[Season, float] | None = None


@dataclass(frozen=True)
class CurrentConditions:
    location: Location
    time: datetime
    readings: Mapping[str, float | None]
    today: Mapping[str, float | None]


@dataclass(frozen=True)
class AnalysisBundle:
    """Everything derived from one series snapshot. Pure data."""

    location: Location | None
    series: WeatherSeries
    monthly: Tuple[AggregatePeriod, ...]
    seasonal: Tuple[AggregatePeriod, ...]
    yearly: Tuple[AggregatePeriod, ...]
    runs: Mapping[RunKind, Tuple[Run, ...]]
    trends: Mapping[Parameter, Trend | None]
    yearly_trends: Mapping[Parameter, Trend | None]
    rankings: Mapping[str, Tuple[RankedEvent, ...] | None]
    rainfall_distribution: Mapping[int, float] | None
    correlations: Tuple[CorrelationResult, ...]
    insights: DerivedInsights
    recent: Tuple[Observation, ...] = ()
    generated_at: datetime = field(default_factory=datetime.now)


def freeze(mapping: Mapping) -> Mapping:
    """Read-only view of a copy of mapping."""
    return MappingProxyType(dict(mapping))


def bundle_to_dict(value: Any) -> Any:
    """Convert result records into JSON-compatible Python objects.

    Args:
        value (Any): AnalysisBundle or any record, mapping, sequence or scalar
            produced by the pipeline.

    Returns:
        Any: dicts, lists, strings, numbers, booleans and None only.
    """
    if isinstance(value, WeatherSeries):
        return [bundle_to_dict(observation) for observation in value.observations()]
    if is_dataclass(value) and not isinstance(value, type):
        converted = {f.name: bundle_to_dict(getattr(value, f.name)) for f in fields(value)}
        for name in ("description", "label", "length_days"):
            if hasattr(type(value), name) and isinstance(getattr(type(value), name), property):
                converted[name] = bundle_to_dict(getattr(value, name))
        return converted
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {_key(key): bundle_to_dict(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [bundle_to_dict(item) for item in value]
    if isinstance(value, (np.integer,)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        return None if math.isnan(value) else float(value)
    return value


def _key(key: Any) -> str:
    if isinstance(key, Enum):
        return str(key.value)
    return str(key)
