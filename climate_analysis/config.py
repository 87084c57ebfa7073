"""Configuration of the climate analysis pipeline."""

import json
import os
from dataclasses import InitVar, dataclass, field
from typing import Any, Dict, List, Tuple

from climate_analysis.run_detector import DEFAULT_RUN_RULES, RunRule, apply_overrides
from request_cache import DEFAULT_TTLS, EndpointKind
from weather_models import Parameter, RunKind

DEFAULTS: Dict[str, Any] = {
    "history_years": 10,
    "archive_delay_days": 2,
    "top_n": 5,
    "recent_days": 30,
    "wet_day_threshold": 0.2,
    "warm_day_threshold": 20.0,
    "frost_day_threshold": 0.0,
    "run_rules": {},
    "trend_dead_band": 0.01,
    "trend_strong_band": 0.05,
    "trend_min_points": 3,
    "trend_min_year_days": 360,
    "percentile_min_population": 10,
    "distribution_percentiles": [10, 25, 50, 75, 90],
    "correlation_min_common_days": 30,
    "correlation_pairs": [
        ["solar_radiation", "temperature_max"],
        ["sunshine_duration", "temperature_mean"],
        ["rainfall", "sunshine_duration"],
        ["wind_speed", "rainfall"],
        ["wind_gusts", "rainfall"],
    ],
    "gdd_base_temperature": 10.0,
    "gdd_months": [4, 5, 6, 7, 8, 9, 10],
    "frost_threshold": 0.0,
    "growing_season_window": 7,
    "panel_efficiency": 0.2,
    "panel_area": 10.0,
    "cache_capacity": 64,
    "cache_ttls": {kind.value: ttl for kind, ttl in DEFAULT_TTLS.items()},
}


@dataclass
class AnalysisConfig:
    """Thresholds and constants of every analysis step.

    Values are taken from DEFAULTS, then from a JSON configuration file when
    create_from_file=True, then from kwargs. Every field is validated; invalid
    values raise ValueError.

    Configuration File Schema (all keys optional):
        {
            "history_years": int,
            "top_n": int,
            "wet_day_threshold": float,
            "run_rules": {"drought": {"threshold": float, "min_length": int}},
            "trend_dead_band": float,
            "correlation_pairs": [["rainfall", "sunshine_duration"], ...],
            "gdd_months": [4, 5, 6, 7, 8, 9, 10],
            "cache_ttls": {"historical": 86400, "current": 600, "geocode": 86400},
            ...
        }

    Example:
        config = AnalysisConfig(kwargs={"top_n": 10, "run_rules": {"heat_wave": {"threshold": 27}}})
    """

    history_years: int = field(init=False)
    archive_delay_days: int = field(init=False)
    top_n: int = field(init=False)
    recent_days: int = field(init=False)
    wet_day_threshold: float = field(init=False)
    warm_day_threshold: float = field(init=False)
    frost_day_threshold: float = field(init=False)
    run_rules: Dict[RunKind, RunRule] = field(init=False)
    trend_dead_band: float = field(init=False)
    trend_strong_band: float = field(init=False)
    trend_min_points: int = field(init=False)
    trend_min_year_days: int = field(init=False)
    percentile_min_population: int = field(init=False)
    distribution_percentiles: Tuple[int, ...] = field(init=False)
    correlation_min_common_days: int = field(init=False)
    correlation_pairs: List[Tuple[Parameter, Parameter]] = field(init=False)
    gdd_base_temperature: float = field(init=False)
    gdd_months: Tuple[int, ...] = field(init=False)
    frost_threshold: float = field(init=False)
    growing_season_window: int = field(init=False)
    panel_efficiency: float = field(init=False)
    panel_area: float = field(init=False)
    cache_capacity: int = field(init=False)
    cache_ttls: Dict[EndpointKind, float] = field(init=False)
    create_from_file: InitVar[bool] = field(default=False)
    config_file: InitVar[str | None] = field(default=None)
    kwargs: InitVar[Dict[str, Any] | None] = field(default=None)

    def __post_init__(
        self,
        create_from_file: bool,
        config_file: str | None,
        kwargs: Dict[str, Any] | None,
    ):
        """Resolve defaults, file values and kwargs overrides.

        Args:
            create_from_file (bool): Whether to read the JSON configuration file.
            config_file (str | None): Path of the JSON file. Defaults to
                {cwd}/config/{CONFIG_FILE env var or config.json}.
            kwargs (Dict[str, Any] | None): Overrides applied last.

        Raises:
            ValueError: On unknown keys or invalid values.
        """
        values = dict(DEFAULTS)

        if create_from_file:
            if not config_file:
                config_file = os.path.join(
                    os.getcwd(),
                    "config",
                    os.getenv("CONFIG_FILE", "config.json"),
                )
            values.update(self.__get_config(config_file).get("analysis", {}))

        if kwargs:
            values.update(kwargs)

        unknown = set(values) - set(DEFAULTS)
        if unknown:
            raise ValueError(f"Unknown analysis configuration keys: {sorted(unknown)}")

        for name in (
            "history_years",
            "top_n",
            "recent_days",
            "trend_min_points",
            "trend_min_year_days",
            "percentile_min_population",
            "correlation_min_common_days",
            "growing_season_window",
            "cache_capacity",
        ):
            self.__set_positive_int(name, values[name])

        for name in (
            "wet_day_threshold",
            "warm_day_threshold",
            "frost_day_threshold",
            "gdd_base_temperature",
            "frost_threshold",
        ):
            self.__set_number(name, values[name])

        for name in ("trend_dead_band", "trend_strong_band", "panel_efficiency", "panel_area"):
            self.__set_number(name, values[name])
            if getattr(self, name) <= 0:
                raise ValueError(f"Parameter {name} must be >0. Got {getattr(self, name)}")

        if self.trend_strong_band < self.trend_dead_band:
            raise ValueError(
                f"Parameter trend_strong_band ({self.trend_strong_band}) must not be below trend_dead_band ({self.trend_dead_band})."
            )

        delay = values["archive_delay_days"]
        if isinstance(delay, int) and not isinstance(delay, bool) and delay >= 0:
            self.archive_delay_days = delay
        else:
            raise ValueError(f"Parameter archive_delay_days must be an int >=0. Got {delay}")

        self.__set_run_rules(values["run_rules"])
        self.__set_distribution_percentiles(values["distribution_percentiles"])
        self.__set_correlation_pairs(values["correlation_pairs"])
        self.__set_gdd_months(values["gdd_months"])
        self.__set_cache_ttls(values["cache_ttls"])

    def __get_config(self, config_file: str) -> Dict[str, Any]:
        with open(file=config_file, mode="r") as file:
            config = json.load(fp=file)

        return config

    def __set_positive_int(self, name: str, value: Any) -> None:
        if isinstance(value, int) and not isinstance(value, bool):
            if value > 0:
                setattr(self, name, value)
            else:
                raise ValueError(f"Parameter {name} must be >0. Got {value}")
        else:
            raise ValueError(f"Parameter {name} expected {int} Received {type(value)} instead.")

    def __set_number(self, name: str, value: Any) -> None:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            setattr(self, name, float(value))
        else:
            raise ValueError(f"Parameter {name} expected {float} Received {type(value)} instead.")

    def __set_run_rules(self, overrides: Any) -> None:
        if isinstance(overrides, dict):
            self.run_rules = apply_overrides(DEFAULT_RUN_RULES, overrides)
        else:
            raise ValueError(
                f"Parameter run_rules expected {Dict[str, Dict[str, Any]]} Received {type(overrides)} instead."
            )

    def __set_distribution_percentiles(self, percentiles: Any) -> None:
        if isinstance(percentiles, (list, tuple)) and all(
            isinstance(p, int) and 0 < p <= 100 for p in percentiles
        ):
            self.distribution_percentiles = tuple(sorted(percentiles))
        else:
            raise ValueError(
                f"Parameter distribution_percentiles must be a list of ints in (0, 100]. Got {percentiles}"
            )

    def __set_correlation_pairs(self, pairs: Any) -> None:
        if not isinstance(pairs, (list, tuple)):
            raise ValueError(
                f"Parameter correlation_pairs expected {List[Tuple[str, str]]} Received {type(pairs)} instead."
            )
        parsed = []
        for pair in pairs:
            if not isinstance(pair, (list, tuple)) or len(pair) != 2:
                raise ValueError(f"Correlation pair must hold two parameter names. Got {pair}")
            try:
                parsed.append((Parameter(pair[0]), Parameter(pair[1])))
            except ValueError as e:
                raise ValueError(
                    f"Unknown parameter in correlation pair {pair}. Expected one of {[p.value for p in Parameter]}"
                ) from e
        self.correlation_pairs = parsed

    def __set_gdd_months(self, months: Any) -> None:
        if (
            isinstance(months, (list, tuple))
            and months
            and all(isinstance(m, int) and 1 <= m <= 12 for m in months)
        ):
            self.gdd_months = tuple(sorted(set(months)))
        else:
            raise ValueError(f"Parameter gdd_months must be a non-empty list of months 1-12. Got {months}")

    def __set_cache_ttls(self, ttls: Any) -> None:
        if not isinstance(ttls, dict):
            raise ValueError(
                f"Parameter cache_ttls expected {Dict[str, float]} Received {type(ttls)} instead."
            )
        parsed = dict(DEFAULT_TTLS)
        for kind, ttl in ttls.items():
            try:
                endpoint = EndpointKind(kind)
            except ValueError as e:
                raise ValueError(
                    f"Unknown cache endpoint kind {kind}. Expected one of {[k.value for k in EndpointKind]}"
                ) from e
            if not isinstance(ttl, (int, float)) or isinstance(ttl, bool) or ttl <= 0:
                raise ValueError(f"Cache TTL for {kind} must be a number >0. Got {ttl}")
            parsed[endpoint] = float(ttl)
        self.cache_ttls = parsed
