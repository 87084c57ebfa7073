"""Consecutive-day run detection.

All run kinds share one scanner. A RunRule states the parameter, the daily
predicate, the minimum run length and how the run is summarized. A run ends
on the first day the predicate fails, on an absent reading, or on a missing
calendar day. A run still open at the end of the series is kept if it already
meets the minimum length.
"""

import operator
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Mapping, Tuple

import numpy as np
from numpy.typing import NDArray

from weather_models import Parameter, Run, RunKind, WeatherSeries

COMPARISONS: Dict[str, Callable[[Any, Any], Any]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

SUMMARIES: Dict[str, Callable[[NDArray[np.float64]], float]] = {
    "sum": lambda values: sum(float(value) for value in values),
    "mean": lambda values: float(np.mean(values)),
    "max": lambda values: float(np.max(values)),
    "min": lambda values: float(np.min(values)),
}


@dataclass(frozen=True)
class RunRule:
    """Definition of one run kind.

    Attributes:
        kind (RunKind): Kind of the detected runs.
        parameter (Parameter): Parameter the predicate reads.
        comparison (str): One of "<", "<=", ">", ">=".
        threshold (float): Right-hand side of the comparison.
        min_length (int): Minimum number of consecutive qualifying days.
        summary_parameter (Parameter): Parameter the summary metric reads.
        summary (str): One of "sum", "mean", "max", "min".
    """

    kind: RunKind
    parameter: Parameter
    comparison: str
    threshold: float
    min_length: int
    summary_parameter: Parameter
    summary: str

    def __post_init__(self):
        if self.comparison not in COMPARISONS:
            raise ValueError(
                f"Parameter comparison must be one of {list(COMPARISONS)}. Got {self.comparison}"
            )
        if self.summary not in SUMMARIES:
            raise ValueError(
                f"Parameter summary must be one of {list(SUMMARIES)}. Got {self.summary}"
            )
        if not isinstance(self.min_length, int) or self.min_length < 1:
            raise ValueError(f"Parameter min_length must be an int >0. Got {self.min_length}")

    def qualifies(self, values: NDArray[np.float64]) -> NDArray[np.bool_]:
        # comparisons against NaN are False, so absent readings never qualify
        return COMPARISONS[self.comparison](values, self.threshold)


DEFAULT_RUN_RULES: Dict[RunKind, RunRule] = {
    RunKind.DROUGHT: RunRule(
        RunKind.DROUGHT, Parameter.RAINFALL, "<", 1.0, 7, Parameter.RAINFALL, "sum"
    ),
    RunKind.HEAT_WAVE: RunRule(
        RunKind.HEAT_WAVE, Parameter.TEMPERATURE_MAX, ">=", 25.0, 3, Parameter.TEMPERATURE_MAX, "max"
    ),
    RunKind.COLD_SNAP: RunRule(
        RunKind.COLD_SNAP, Parameter.TEMPERATURE_MIN, "<=", 0.0, 3, Parameter.TEMPERATURE_MIN, "min"
    ),
    RunKind.STRONG_WIND: RunRule(
        RunKind.STRONG_WIND, Parameter.WIND_SPEED, ">", 60.0, 2, Parameter.WIND_GUSTS, "max"
    ),
    RunKind.CALM: RunRule(
        RunKind.CALM, Parameter.WIND_SPEED, "<", 5.0, 3, Parameter.WIND_SPEED, "mean"
    ),
    RunKind.SOLAR_PEAK: RunRule(
        RunKind.SOLAR_PEAK, Parameter.SOLAR_RADIATION, ">", 20.0, 3, Parameter.SOLAR_RADIATION, "mean"
    ),
    RunKind.LOW_SOLAR: RunRule(
        RunKind.LOW_SOLAR, Parameter.SOLAR_RADIATION, "<", 5.0, 3, Parameter.SOLAR_RADIATION, "mean"
    ),
}


def apply_overrides(
    rules: Mapping[RunKind, RunRule], overrides: Mapping[str, Mapping[str, Any]]
) -> Dict[RunKind, RunRule]:
    """Return a copy of rules with threshold, min_length or comparison replaced.

    Args:
        rules (Mapping[RunKind, RunRule]): Base rule table.
        overrides (Mapping[str, Mapping[str, Any]]): Run kind value to field
            overrides, e.g. {"drought": {"threshold": 0.5, "min_length": 10}}.

    Raises:
        ValueError: On unknown run kinds or fields.
    """
    updated = dict(rules)
    for kind_name, changes in overrides.items():
        try:
            kind = RunKind(kind_name)
        except ValueError as e:
            raise ValueError(
                f"Unknown run kind {kind_name}. Expected one of {[k.value for k in RunKind]}"
            ) from e
        unknown = set(changes) - {"threshold", "min_length", "comparison"}
        if unknown:
            raise ValueError(f"Unsupported run rule fields for {kind_name}: {sorted(unknown)}")
        changes = dict(changes)
        if "threshold" in changes:
            changes["threshold"] = float(changes["threshold"])
        updated[kind] = replace(updated[kind], **changes)
    return updated


def detect_runs(series: WeatherSeries, rule: RunRule) -> Tuple[Run, ...]:
    """Find all maximal runs of rule in series, ascending by start date."""
    qualifying = rule.qualifies(series.values(rule.parameter))
    offsets = series.day_offsets()
    summary_values = series.values(rule.summary_parameter)

    runs = []
    run_start: int | None = None
    for position in range(len(series)):
        contiguous = position > 0 and offsets[position] - offsets[position - 1] == 1
        if run_start is not None and not (qualifying[position] and contiguous):
            run = _close(series, rule, summary_values, run_start, position - 1)
            if run:
                runs.append(run)
            run_start = None
        if qualifying[position] and run_start is None:
            run_start = position

    if run_start is not None:
        run = _close(series, rule, summary_values, run_start, len(series) - 1)
        if run:
            runs.append(run)

    return tuple(runs)


def _close(
    series: WeatherSeries,
    rule: RunRule,
    summary_values: NDArray[np.float64],
    first: int,
    last: int,
) -> Run | None:
    duration = last - first + 1
    if duration < rule.min_length:
        return None

    window = summary_values[first : last + 1]
    present = window[~np.isnan(window)]
    summary_metric = SUMMARIES[rule.summary](present) if present.size else None

    return Run(
        kind=rule.kind,
        start=series.dates[first],
        end=series.dates[last],
        duration_days=duration,
        summary_metric=summary_metric,
    )


def detect_all_runs(
    series: WeatherSeries, rules: Mapping[RunKind, RunRule]
) -> Dict[RunKind, Tuple[Run, ...]]:
    """Runs per kind, for every rule whose parameter has readings."""
    return {
        kind: detect_runs(series, rule)
        for kind, rule in rules.items()
        if series.has(rule.parameter)
    }
