"""Tests for the series store and result records."""

import math
from datetime import date, datetime

import numpy as np
import pytest

from conftest import SW1A, make_series
from weather_models import (
    MalformedSeriesError,
    Parameter,
    ParameterStats,
    RunKind,
    Run,
    Season,
    Trend,
    WeatherSeries,
    bundle_to_dict,
)


class TestWeatherSeriesBuild:
    """Test cases for building validated series."""

    def test_dates_are_strictly_increasing(self, multi_year_series):
        dates = multi_year_series.dates
        assert all(earlier < later for earlier, later in zip(dates, dates[1:]))
        assert len(set(dates)) == len(dates)

    def test_accepts_mixed_date_types(self):
        series = WeatherSeries.build(
            [
                {"date": "2024-01-01", "rainfall": 1.0},
                {"date": date(2024, 1, 2), "rainfall": 2.0},
                {"date": datetime(2024, 1, 3, 0, 0), "rainfall": 3.0},
            ]
        )
        assert series.dates == (date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3))

    def test_rejects_duplicate_dates(self):
        with pytest.raises(MalformedSeriesError, match="Duplicate"):
            WeatherSeries.build(
                [{"date": "2024-01-01", "rainfall": 1.0}, {"date": "2024-01-01", "rainfall": 2.0}]
            )

    def test_rejects_out_of_order_dates(self):
        with pytest.raises(MalformedSeriesError, match="Non-chronological"):
            WeatherSeries.build([{"date": "2024-01-02"}, {"date": "2024-01-01"}])

    def test_rejects_non_numeric_readings(self):
        with pytest.raises(MalformedSeriesError):
            WeatherSeries.build([{"date": "2024-01-01", "rainfall": "heavy"}])

    def test_rejects_boolean_readings(self):
        with pytest.raises(MalformedSeriesError):
            WeatherSeries.build([{"date": "2024-01-01", "rainfall": True}])

    def test_rejects_rows_without_date(self):
        with pytest.raises(MalformedSeriesError):
            WeatherSeries.build([{"rainfall": 1.0}])

    def test_rejects_ragged_columns(self):
        with pytest.raises(MalformedSeriesError):
            WeatherSeries.from_columns(
                {"date": ["2024-01-01", "2024-01-02"], "rainfall": [1.0]}
            )

    def test_ignores_unknown_fields(self):
        series = WeatherSeries.build([{"date": "2024-01-01", "rainfall": 1.0, "pressure": 1013}])
        assert series.parameters == (Parameter.RAINFALL,)


class TestWeatherSeriesView:
    """Test cases for the read-only series view."""

    def test_missing_readings_are_nan_and_none(self):
        series = make_series(date(2024, 1, 1), rainfall=[1.0, None, float("nan")])
        values = series.values(Parameter.RAINFALL)
        assert values[0] == 1.0
        assert np.isnan(values[1]) and np.isnan(values[2])
        assert series.observation(1).rainfall is None

    def test_gaps_are_kept_not_interpolated(self):
        series = WeatherSeries.from_columns(
            {"date": ["2024-01-01", "2024-01-02", "2024-01-04"], "rainfall": [1.0, 2.0, 3.0]}
        )
        assert len(series) == 3
        assert series.day_offsets().tolist() == [0, 1, 3]

    def test_values_are_read_only(self):
        series = make_series(date(2024, 1, 1), rainfall=[1.0, 2.0])
        with pytest.raises(ValueError):
            series.values(Parameter.RAINFALL)[0] = 5.0

    def test_frame_is_a_copy(self):
        series = make_series(date(2024, 1, 1), rainfall=[1.0, 2.0])
        frame = series.frame
        frame.iloc[0, 0] = 99.0
        assert series.values(Parameter.RAINFALL)[0] == 1.0

    def test_date_range_and_parameters(self):
        series = make_series(date(2024, 1, 1), rainfall=[1.0, 2.0], temperature_max=[None, None])
        assert series.start == date(2024, 1, 1)
        assert series.end == date(2024, 1, 2)
        assert series.has(Parameter.RAINFALL)
        assert not series.has(Parameter.TEMPERATURE_MAX)
        assert series.parameters == (Parameter.RAINFALL,)

    def test_empty_series(self):
        series = WeatherSeries.build([])
        assert len(series) == 0
        assert series.start is None and series.end is None
        assert series.parameters == ()

    def test_between(self, multi_year_series):
        window = multi_year_series.between(date(2020, 2, 1), date(2020, 2, 29))
        assert len(window) == 29
        assert window.start == date(2020, 2, 1)


class TestRecords:
    """Test cases for result records and serialization."""

    def test_season_of_december_is_next_winter(self):
        assert Season.of_month(2023, 12) == (2024, Season.WINTER)
        assert Season.of_month(2024, 1) == (2024, Season.WINTER)
        assert Season.of_month(2024, 6) == (2024, Season.SUMMER)

    def test_location_identifier(self):
        assert SW1A.identifier == "51.5010,-0.1416"

    def test_parameter_stats_combine(self):
        first = ParameterStats.from_values(np.asarray([1.0, 3.0]))
        second = ParameterStats.from_values(np.asarray([5.0, np.nan]))
        combined = ParameterStats.combine([first, second])
        assert combined.count == 3
        assert combined.total == 9.0
        assert combined.mean == 3.0
        assert combined.minimum == 1.0
        assert combined.maximum == 5.0

    def test_parameter_stats_of_absent_values(self):
        assert ParameterStats.from_values(np.asarray([np.nan])) is None
        assert ParameterStats.combine([]) is None

    def test_trend_description(self):
        trend = Trend(Parameter.RAINFALL, 0.1, 1.0, "increasing", "weak", 0.4, 10)
        assert trend.description == "weak increasing"

    def test_bundle_to_dict_converts_values(self):
        run = Run(RunKind.DROUGHT, date(2024, 1, 1), date(2024, 1, 8), 8, math.nan)
        converted = bundle_to_dict({RunKind.DROUGHT: (run,)})
        assert converted == {
            "drought": [
                {
                    "kind": "drought",
                    "start": "2024-01-01",
                    "end": "2024-01-08",
                    "duration_days": 8,
                    "summary_metric": None,
                }
            ]
        }

    def test_bundle_to_dict_of_series(self):
        series = make_series(date(2024, 1, 1), rainfall=[1.5])
        observation = bundle_to_dict(series)[0]
        assert observation["date"] == "2024-01-01"
        assert observation["rainfall"] == 1.5
        assert observation["temperature_max"] is None
