"""Pearson correlation between two parameters over their common days."""

import numpy as np

from weather_models import CorrelationResult, Parameter, WeatherSeries

INSUFFICIENT_DATA = "insufficient data"
UNDEFINED = "undefined"


def describe(coefficient: float) -> str:
    magnitude = abs(coefficient)
    if magnitude >= 0.7:
        strength = "strong"
    elif magnitude >= 0.4:
        strength = "moderate"
    elif magnitude >= 0.2:
        strength = "weak"
    else:
        return "no correlation"
    return f"{strength} {'positive' if coefficient > 0 else 'negative'}"


def correlate(
    series: WeatherSeries,
    parameter_a: Parameter,
    parameter_b: Parameter,
    min_common_days: int = 30,
) -> CorrelationResult:
    """Pearson coefficient of two parameters restricted to days where both are present.

    Below min_common_days the result is "insufficient data", and when either
    side is constant "undefined". Neither carries a coefficient.
    """
    a = series.values(parameter_a)
    b = series.values(parameter_b)
    common = ~np.isnan(a) & ~np.isnan(b)
    common_days = int(np.count_nonzero(common))

    if common_days < max(min_common_days, 2):
        return CorrelationResult(parameter_a, parameter_b, common_days, None, INSUFFICIENT_DATA)

    x, y = a[common], b[common]
    if np.ptp(x) == 0 or np.ptp(y) == 0:
        return CorrelationResult(parameter_a, parameter_b, common_days, None, UNDEFINED)

    coefficient = float(np.clip(np.corrcoef(x, y)[0, 1], -1.0, 1.0))
    return CorrelationResult(
        parameter_a, parameter_b, common_days, coefficient, describe(coefficient)
    )
