"""Linear trend estimation.

Lines are fitted by ordinary least squares with statsmodels. Daily trends use
x = days since the first date, so missing days keep their true spacing and are
never imputed. Yearly trends fit one point per sufficiently covered year.

Direction and strength are judged by the change of the fitted line over the
fitted span relative to a scale of the parameter:
- daily trends: the typical (mean) within-year range of the daily values, or
  the mean absolute daily value when every year holds a single value
- yearly trends: the mean absolute yearly value
A relative change below trend_dead_band is "stable", below trend_strong_band
"weak", otherwise "strong".
"""

from typing import Dict, Sequence, Tuple

import numpy as np
import statsmodels.api as sm
from numpy.typing import NDArray

from climate_analysis.config import AnalysisConfig
from weather_models import (
    AggregatePeriod,
    InsufficientDataError,
    Parameter,
    Trend,
    WeatherSeries,
)

YEARLY_TREND_STATISTICS: Dict[Parameter, str] = {
    Parameter.RAINFALL: "total",
    Parameter.SOLAR_RADIATION: "total",
    Parameter.SUNSHINE_DURATION: "total",
}


def fit_line(
    x: NDArray[np.float64], y: NDArray[np.float64]
) -> Tuple[float, float, float | None]:
    """Fit y = slope * x + intercept.

    Returns:
        Tuple[float, float, float | None]: slope, intercept and R², where R²
            is None if y is constant.
    """
    if np.ptp(y) == 0:
        return 0.0, float(y[0]), None

    model = sm.OLS(y, sm.add_constant(x, has_constant="add")).fit()
    intercept, slope = (float(value) for value in model.params)

    ss_res = float(np.sum((y - (slope * x + intercept)) ** 2))
    ss_tot = float(np.sum((y - np.mean(y)) ** 2))
    r_squared = min(1.0, max(0.0, 1.0 - ss_res / ss_tot))

    return slope, intercept, r_squared


def classify(change: float, scale: float, config: AnalysisConfig) -> Tuple[str, str]:
    """Direction and strength of a change relative to scale."""
    if change == 0 or scale <= 0:
        return "stable", "none"
    relative = abs(change) / scale
    if relative < config.trend_dead_band:
        return "stable", "none"
    direction = "increasing" if change > 0 else "decreasing"
    strength = "weak" if relative < config.trend_strong_band else "strong"
    return direction, strength


def typical_yearly_range(series: WeatherSeries, parameter: Parameter) -> float:
    frame = series.frame
    values = frame[parameter.value].dropna()
    if values.empty:
        return 0.0
    extremes = values.groupby(values.index.year).agg(["min", "max"])
    return float((extremes["max"] - extremes["min"]).mean())


def daily_scale(
    series: WeatherSeries, parameter: Parameter, y: NDArray[np.float64]
) -> float:
    scale = typical_yearly_range(series, parameter)
    if scale > 0:
        return scale
    return float(np.mean(np.abs(y)))


def daily_trend(
    series: WeatherSeries, parameter: Parameter, config: AnalysisConfig
) -> Trend:
    """Trend of the daily values of one parameter.

    Raises:
        InsufficientDataError: When fewer than trend_min_points days have readings.
    """
    values = series.values(parameter)
    present = ~np.isnan(values)
    count = int(np.count_nonzero(present))
    if count < config.trend_min_points:
        raise InsufficientDataError(
            f"Trend of {parameter.value} needs {config.trend_min_points} days. Got {count}"
        )

    x = series.day_offsets()[present].astype(np.float64)
    y = values[present]
    slope, intercept, r_squared = fit_line(x, y)
    direction, strength = classify(
        slope * (x[-1] - x[0]), daily_scale(series, parameter, y), config
    )

    return Trend(
        parameter=parameter,
        slope=slope,
        intercept=intercept,
        direction=direction,
        strength=strength,
        r_squared=r_squared,
        sample_size=count,
        per="day",
    )


def yearly_trend(
    yearly: Sequence[AggregatePeriod], parameter: Parameter, config: AnalysisConfig
) -> Trend:
    """Trend of yearly totals (rainfall, radiation, sunshine) or means (others).

    Only years with at least trend_min_year_days readings take part, which
    drops partial first and current years.

    Raises:
        InsufficientDataError: When fewer than trend_min_points years qualify.
    """
    statistic = YEARLY_TREND_STATISTICS.get(parameter, "mean")
    points = [
        (period.year, getattr(period.stats[parameter], statistic))
        for period in yearly
        if parameter in period.stats
        and period.stats[parameter].count >= config.trend_min_year_days
    ]
    if len(points) < config.trend_min_points:
        raise InsufficientDataError(
            f"Yearly trend of {parameter.value} needs {config.trend_min_points} complete years. Got {len(points)}"
        )

    x = np.asarray([point[0] for point in points], dtype=np.float64)
    y = np.asarray([point[1] for point in points], dtype=np.float64)
    slope, intercept, r_squared = fit_line(x, y)
    direction, strength = classify(
        slope * (x[-1] - x[0]), float(np.mean(np.abs(y))), config
    )

    return Trend(
        parameter=parameter,
        slope=slope,
        intercept=intercept,
        direction=direction,
        strength=strength,
        r_squared=r_squared,
        sample_size=len(points),
        per="year",
    )
