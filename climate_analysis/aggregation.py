"""Monthly, seasonal and yearly aggregation.

Monthly buckets are computed from the daily series. Seasonal and yearly
buckets are rollups of the monthly ones, so the monthly totals of a year add
up to the yearly total exactly. Buckets without observed days do not exist.
"""

from itertools import groupby
from typing import Dict, Iterable, List, Sequence, Tuple

import numpy as np

from climate_analysis.config import AnalysisConfig
from weather_models import (
    AggregatePeriod,
    Parameter,
    ParameterStats,
    Season,
    WeatherSeries,
    freeze,
)

# a mean of compass bearings is meaningless
AGGREGATED_PARAMETERS = tuple(p for p in Parameter if p is not Parameter.WIND_DIRECTION)

SEASON_ORDER = {season: position for position, season in enumerate(Season)}


def monthly_aggregates(
    series: WeatherSeries, config: AnalysisConfig
) -> Tuple[AggregatePeriod, ...]:
    """One AggregatePeriod per calendar month present in series, in date order."""
    if len(series) == 0:
        return ()

    frame = series.frame
    periods = []
    for (year, month), group in frame.groupby([frame.index.year, frame.index.month], sort=True):
        stats = {}
        for parameter in AGGREGATED_PARAMETERS:
            parameter_stats = ParameterStats.from_values(group[parameter.value].to_numpy())
            if parameter_stats is not None:
                stats[parameter] = parameter_stats

        periods.append(
            AggregatePeriod(
                year=int(year),
                month=int(month),
                season=None,
                days=len(group),
                stats=freeze(stats),
                wet_days=_count(group[Parameter.RAINFALL.value].to_numpy(), ">=", config.wet_day_threshold),
                warm_days=_count(group[Parameter.TEMPERATURE_MAX.value].to_numpy(), ">", config.warm_day_threshold),
                frost_days=_count(group[Parameter.TEMPERATURE_MIN.value].to_numpy(), "<", config.frost_day_threshold),
            )
        )

    return tuple(periods)


def _count(values: np.ndarray, comparison: str, threshold: float) -> int | None:
    present = values[~np.isnan(values)]
    if present.size == 0:
        return None
    if comparison == ">=":
        return int(np.count_nonzero(present >= threshold))
    if comparison == ">":
        return int(np.count_nonzero(present > threshold))
    return int(np.count_nonzero(present < threshold))


def rollup(
    parts: Sequence[AggregatePeriod],
    year: int,
    season: Season | None = None,
) -> AggregatePeriod:
    """Combine monthly periods into one seasonal or yearly period."""
    stats = {}
    for parameter in AGGREGATED_PARAMETERS:
        combined = ParameterStats.combine(
            part.stats[parameter] for part in parts if parameter in part.stats
        )
        if combined is not None:
            stats[parameter] = combined

    return AggregatePeriod(
        year=year,
        month=None,
        season=season,
        days=sum(part.days for part in parts),
        stats=freeze(stats),
        wet_days=_sum_present(part.wet_days for part in parts),
        warm_days=_sum_present(part.warm_days for part in parts),
        frost_days=_sum_present(part.frost_days for part in parts),
    )


def _sum_present(counts: Iterable[int | None]) -> int | None:
    present = [count for count in counts if count is not None]
    return sum(present) if present else None


def yearly_aggregates(monthly: Sequence[AggregatePeriod]) -> Tuple[AggregatePeriod, ...]:
    return tuple(
        rollup(list(months), year)
        for year, months in groupby(monthly, key=lambda period: period.year)
    )


def seasonal_aggregates(monthly: Sequence[AggregatePeriod]) -> Tuple[AggregatePeriod, ...]:
    """Seasonal rollups. December counts towards the following year's winter."""
    buckets: Dict[Tuple[int, Season], List[AggregatePeriod]] = {}
    for period in monthly:
        buckets.setdefault(Season.of_month(period.year, period.month), []).append(period)

    ordered = sorted(buckets, key=lambda key: (key[0], SEASON_ORDER[key[1]]))
    return tuple(rollup(buckets[key], key[0], key[1]) for key in ordered)


def month_across_years(
    monthly: Sequence[AggregatePeriod], month: int
) -> Tuple[AggregatePeriod, ...]:
    """The given calendar month of every year it was observed in."""
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12. Got {month}")
    return tuple(period for period in monthly if period.month == month)
