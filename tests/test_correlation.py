"""Tests for the correlation analyzer."""

from datetime import date

import pytest

from climate_analysis import correlate
from climate_analysis.correlation import describe
from conftest import make_series
from weather_models import Parameter


class TestCorrelate:
    """Test cases for Pearson correlation over common days."""

    def test_perfect_positive(self):
        series = make_series(
            date(2024, 1, 1),
            solar_radiation=[float(v) for v in range(40)],
            temperature_max=[2.0 * v + 5.0 for v in range(40)],
        )
        result = correlate(series, Parameter.SOLAR_RADIATION, Parameter.TEMPERATURE_MAX)

        assert result.common_days == 40
        assert result.coefficient == pytest.approx(1.0)
        assert result.description == "strong positive"

    def test_perfect_negative(self):
        series = make_series(
            date(2024, 1, 1),
            rainfall=[float(v) for v in range(40)],
            sunshine_duration=[100.0 - v for v in range(40)],
        )
        result = correlate(series, Parameter.RAINFALL, Parameter.SUNSHINE_DURATION)
        assert result.coefficient == pytest.approx(-1.0)
        assert result.description == "strong negative"

    def test_only_common_days_count(self):
        rainfall = [float(v) for v in range(40)]
        wind = [float(v) if v % 4 else None for v in range(40)]
        series = make_series(date(2024, 1, 1), rainfall=rainfall, wind_speed=wind)

        result = correlate(series, Parameter.WIND_SPEED, Parameter.RAINFALL)
        assert result.common_days == 30
        assert result.coefficient == pytest.approx(1.0)

    def test_insufficient_common_days(self):
        series = make_series(
            date(2024, 1, 1),
            rainfall=[float(v) for v in range(20)],
            wind_speed=[float(v) for v in range(20)],
        )
        result = correlate(series, Parameter.WIND_SPEED, Parameter.RAINFALL, min_common_days=30)
        assert result.coefficient is None
        assert result.description == "insufficient data"

    def test_constant_side_is_undefined(self):
        series = make_series(
            date(2024, 1, 1),
            rainfall=[0.0] * 40,
            wind_speed=[float(v) for v in range(40)],
        )
        result = correlate(series, Parameter.WIND_SPEED, Parameter.RAINFALL)
        assert result.coefficient is None
        assert result.description == "undefined"

    def test_coefficient_within_bounds(self, multi_year_series):
        result = correlate(multi_year_series, Parameter.SOLAR_RADIATION, Parameter.TEMPERATURE_MAX)
        assert -1.0 <= result.coefficient <= 1.0
        assert result.coefficient > 0.4


class TestDescribe:
    """Test cases for coefficient labels."""

    @pytest.mark.parametrize(
        "coefficient,expected",
        [
            (0.85, "strong positive"),
            (0.5, "moderate positive"),
            (-0.25, "weak negative"),
            (0.1, "no correlation"),
            (-0.7, "strong negative"),
        ],
    )
    def test_labels(self, coefficient, expected):
        assert describe(coefficient) == expected
