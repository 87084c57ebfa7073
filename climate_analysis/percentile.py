"""Percentile ranking against the full history.

The percentile of a value v is the share of the reference population at or
below v, times 100. The reference population is always the complete history
of the parameter, whatever subset is being ranked, so equal values share a
percentile. Top-N lists order ties by earliest date.
"""

import math
from typing import Callable, Dict, NamedTuple, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from weather_models import (
    AggregatePeriod,
    InsufficientDataError,
    Parameter,
    RankedEvent,
    Ranking,
    WeatherSeries,
)


class PercentileRanker:
    """Percentile lookup over a fixed reference population."""

    def __init__(self, population: NDArray[np.float64], min_population: int = 1):
        present = np.asarray(population, dtype=np.float64)
        present = present[~np.isnan(present)]
        if present.size < min_population:
            raise InsufficientDataError(
                f"Percentile ranking needs {min_population} values. Got {present.size}"
            )
        self._sorted = np.sort(present)

    def __len__(self) -> int:
        return int(self._sorted.size)

    def percentile(self, value: float) -> float:
        at_or_below = np.searchsorted(self._sorted, value, side="right")
        return float(at_or_below) / self._sorted.size * 100.0


class TopEvent(NamedTuple):
    parameter: Parameter
    largest: bool
    include: Callable[[float], bool] | None = None


TOP_DAY_EVENTS: Dict[str, TopEvent] = {
    "wettest_days": TopEvent(Parameter.RAINFALL, True),
    # only days with some rain, as a completely dry day is not an event
    "driest_days": TopEvent(Parameter.RAINFALL, False, lambda value: value > 0),
    "hottest_days": TopEvent(Parameter.TEMPERATURE_MAX, True),
    "coldest_days": TopEvent(Parameter.TEMPERATURE_MIN, False),
    "windiest_days": TopEvent(Parameter.WIND_GUSTS, True),
    "calmest_days": TopEvent(Parameter.WIND_SPEED, False),
    "brightest_days": TopEvent(Parameter.SOLAR_RADIATION, True),
    "dullest_days": TopEvent(Parameter.SOLAR_RADIATION, False),
}

TOP_MONTH_EVENTS: Dict[str, TopEvent] = {
    "wettest_months": TopEvent(Parameter.RAINFALL, True),
    "driest_months": TopEvent(Parameter.RAINFALL, False),
}


def top_days(
    series: WeatherSeries,
    event: TopEvent,
    n: int,
    min_population: int = 1,
) -> Tuple[RankedEvent, ...]:
    """The n most extreme days of one parameter.

    Raises:
        InsufficientDataError: When the history holds fewer than min_population readings.
    """
    values = series.values(event.parameter)
    ranker = PercentileRanker(values, min_population)

    candidates = [
        (float(value), position)
        for position, value in enumerate(values)
        if not math.isnan(value) and (event.include is None or event.include(float(value)))
    ]
    candidates.sort(key=lambda item: (-item[0] if event.largest else item[0], item[1]))

    return tuple(
        RankedEvent(
            subject=series.observation(position),
            parameter=event.parameter,
            value=value,
            ranking=Ranking(rank=rank, percentile=ranker.percentile(value)),
        )
        for rank, (value, position) in enumerate(candidates[:n], start=1)
    )


def top_periods(
    periods: Sequence[AggregatePeriod],
    event: TopEvent,
    n: int,
    min_population: int = 1,
) -> Tuple[RankedEvent, ...]:
    """The n most extreme periods by their total of one parameter."""
    candidates = [
        (period.stats[event.parameter].total, position)
        for position, period in enumerate(periods)
        if event.parameter in period.stats
    ]
    ranker = PercentileRanker(np.asarray([value for value, _ in candidates]), min_population)
    candidates.sort(key=lambda item: (-item[0] if event.largest else item[0], item[1]))

    return tuple(
        RankedEvent(
            subject=periods[position],
            parameter=event.parameter,
            value=value,
            ranking=Ranking(rank=rank, percentile=ranker.percentile(value)),
        )
        for rank, (value, position) in enumerate(candidates[:n], start=1)
    )


def rank_year(
    series: WeatherSeries,
    parameter: Parameter,
    year: int,
    min_population: int = 1,
) -> Tuple[RankedEvent, ...]:
    """All days of one year ranked against the full history, highest first."""
    values = series.values(parameter)
    ranker = PercentileRanker(values, min_population)

    candidates = [
        (float(values[position]), position)
        for position, day in enumerate(series.dates)
        if day.year == year and not math.isnan(values[position])
    ]
    candidates.sort(key=lambda item: (-item[0], item[1]))

    return tuple(
        RankedEvent(
            subject=series.observation(position),
            parameter=parameter,
            value=value,
            ranking=Ranking(rank=rank, percentile=ranker.percentile(value)),
        )
        for rank, (value, position) in enumerate(candidates, start=1)
    )


def distribution(
    series: WeatherSeries,
    parameter: Parameter,
    percentiles: Sequence[int],
    min_population: int = 1,
    above: float | None = None,
) -> Dict[int, float]:
    """Nearest-rank percentiles of the readings, optionally only those above a floor.

    Raises:
        InsufficientDataError: When fewer than min_population readings qualify.
    """
    values = series.values(parameter)
    values = values[~np.isnan(values)]
    if above is not None:
        values = values[values > above]
    if values.size < min_population or values.size == 0:
        raise InsufficientDataError(
            f"Distribution of {parameter.value} needs {min_population} values. Got {values.size}"
        )

    ordered = np.sort(values)
    return {
        p: float(ordered[max(0, math.ceil(p / 100 * ordered.size) - 1)])
        for p in percentiles
    }
