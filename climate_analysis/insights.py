"""Agricultural and solar energy insights.

Growing degree days:
    Per year, the sum over the configured months of max(0, mean temperature - base).

Growing season:
    Per year, the start is the first day of a window of growing_season_window
    consecutive days whose minimum temperature stays above frost_threshold, and
    the end is the last day of the last such window. Windows lie within one
    calendar year; a missing day or absent reading breaks a window.

Solar potential:
    Seasonal radiation total (MJ/m²) x panel efficiency x panel area, in kWh
    (1 kWh = 3.6 MJ).

Each function returns None when its input parameter has no readings, and
growing degree days also when no reading falls in the configured months.
"""

from collections import defaultdict
from typing import Dict, Sequence, Tuple

import numpy as np
import pandas as pd

from climate_analysis.config import AnalysisConfig
from weather_models import (
    AggregatePeriod,
    DerivedInsights,
    GrowingSeason,
    Parameter,
    Season,
    SolarPotential,
    WeatherSeries,
    freeze,
)

MJ_PER_KWH = 3.6


def growing_degree_days(
    series: WeatherSeries, base_temperature: float, months: Sequence[int]
) -> Dict[int, float] | None:
    if not series.has(Parameter.TEMPERATURE_MEAN):
        return None

    mean_temperature = series.frame[Parameter.TEMPERATURE_MEAN.value].dropna()
    in_season = mean_temperature[mean_temperature.index.month.isin(list(months))]
    if in_season.empty:
        return None
    contributions = (in_season - base_temperature).clip(lower=0.0)

    return {
        int(year): float(total)
        for year, total in contributions.groupby(contributions.index.year).sum().items()
    }


def growing_seasons(
    series: WeatherSeries, frost_threshold: float, window: int
) -> Tuple[GrowingSeason, ...] | None:
    if not series.has(Parameter.TEMPERATURE_MIN):
        return None

    minimum = series.frame[Parameter.TEMPERATURE_MIN.value]
    daily = minimum.reindex(pd.date_range(minimum.index[0], minimum.index[-1], freq="D"))
    above = (daily > frost_threshold).astype(np.float64)
    # indexed by the last day of each window
    complete = above.rolling(window).sum() == window
    ends = complete.index[complete.to_numpy()]
    starts = ends - pd.Timedelta(days=window - 1)

    seasons = []
    for year in sorted({day.year for day in series.dates}):
        inside = (starts.year == year) & (ends.year == year)
        if inside.any():
            seasons.append(
                GrowingSeason(year, starts[inside].min().date(), ends[inside].max().date())
            )
        else:
            seasons.append(GrowingSeason(year, None, None))

    return tuple(seasons)


def solar_potential(
    seasonal: Sequence[AggregatePeriod], efficiency: float, area: float
) -> Tuple[SolarPotential, ...] | None:
    potentials = tuple(
        SolarPotential(
            year=period.year,
            season=period.season,
            radiation_mj=period.stats[Parameter.SOLAR_RADIATION].total,
            energy_kwh=period.stats[Parameter.SOLAR_RADIATION].total
            * efficiency
            * area
            / MJ_PER_KWH,
        )
        for period in seasonal
        if Parameter.SOLAR_RADIATION in period.stats
    )
    return potentials or None


def mean_by_season(potentials: Sequence[SolarPotential]) -> Dict[Season, float]:
    by_season = defaultdict(list)
    for potential in potentials:
        by_season[potential.season].append(potential.energy_kwh)
    return {
        season: sum(by_season[season]) / len(by_season[season])
        for season in Season
        if by_season[season]
    }


def derive_insights(
    series: WeatherSeries,
    seasonal: Sequence[AggregatePeriod],
    config: AnalysisConfig,
) -> DerivedInsights:
    gdd = growing_degree_days(series, config.gdd_base_temperature, config.gdd_months)
    potentials = solar_potential(seasonal, config.panel_efficiency, config.panel_area)

    return DerivedInsights(
        growing_degree_days=freeze(gdd) if gdd is not None else None,
        growing_seasons=growing_seasons(
            series, config.frost_threshold, config.growing_season_window
        ),
        solar_potential=potentials,
        solar_mean_by_season=freeze(mean_by_season(potentials)) if potentials else None,
    )
