# forecast_lab/config.py
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, TypeVar

from .constants import (
    DEFAULT_MAX_DISCARDED_DRAWS,
    DEFAULT_SAMPLE_INTERVAL,
    DEFAULT_TEST_RATIO,
    CONVERGENCE_THRESHOLD,
    MIN_VALUE,
    REQUIRED_PARAMETER_KEYS,
    REQUIRED_RANGE_KEYS,
    REQUIRED_SECTIONS,
)

_T = TypeVar("_T")

log = logging.getLogger(__name__)


class Config(dict):  # type: ignore[misc]  # dict subclass acceptable for mapping
    """Lightweight JSON-file backed configuration."""

    def __init__(self, path: str | Path = "config.json") -> None:
        super().__init__()
        self.load(path)

    def load(self, path: str | Path) -> None:
        data: dict[str, Any] = json.loads(Path(path).read_text(encoding="utf-8"))
        self.clear()
        self.update(data)


def require(cfg: Mapping[str, Any], key: str) -> _T:  # noqa: ANN401
    """Deep-lookup helper; raises KeyError if key missing."""
    cur: Any = cfg
    for part in key.split("."):
        if part not in cur:
            raise KeyError(f"Missing key: {key}")
        cur = cur[part]
    return cur  # type: ignore[return-value]


def lookup(cfg: Mapping[str, Any], key: str, default: _T) -> _T:
    """Like ``require`` but falls back to ``default`` for a missing key."""
    try:
        return require(cfg, key)
    except KeyError:
        return default


def validate_config(cfg: Dict) -> None:
    """Validate configuration completeness and consistency."""

    for section in REQUIRED_SECTIONS:
        if section not in cfg:
            raise ValueError(f"Missing required config section: {section}")

    if not isinstance(cfg["currency_pair"], str) or not cfg["currency_pair"]:
        raise ValueError("currency_pair must be a non-empty string")

    # Forecast window
    input_size = require(cfg, "forecast.input_size")
    if not isinstance(input_size, int) or input_size // 3 < MIN_VALUE:
        raise ValueError(f"forecast.input_size must be an integer >= {MIN_VALUE * 3}")
    if int(lookup(cfg, "forecast.offset_minutes", 0)) < 0:
        raise ValueError("forecast.offset_minutes must be >= 0")

    # Slots
    training_no = require(cfg, "slots.training_model_no")
    forecast_no = require(cfg, "slots.forecast_model_no")
    if training_no == forecast_no:
        raise ValueError("slots.training_model_no and slots.forecast_model_no must differ")

    # GA parameters validation
    ga_params = require(cfg, "genetic_algorithm.parameters")
    for param in REQUIRED_PARAMETER_KEYS:
        if param not in ga_params:
            raise ValueError(f"Missing GA parameter: {param}")

        # Range validation
        if param == "training_model_count" and ga_params[param] < 2:
            raise ValueError("training_model_count must be >= 2")
        if param == "generation_count" and ga_params[param] < 1:
            raise ValueError("generation_count must be >= 1")
        if param in ["mutation_rate", "crossover_rate"] and not 0 <= ga_params[param] <= 1:
            raise ValueError(f"{param} must be between 0 and 1")

    if ga_params["crossover_rate"] + ga_params["mutation_rate"] > 1:
        raise ValueError("crossover_rate + mutation_rate must be <= 1")

    # Data ranges
    for split in ("training", "test"):
        if split == "test" and "test" not in cfg["data"]:
            continue
        rng = require(cfg, f"data.{split}")
        for key in REQUIRED_RANGE_KEYS:
            if key not in rng:
                raise ValueError(f"Missing data.{split}.{key}")
        if rng["range_begin_offset_hour"] <= rng["range_end_offset_hour"]:
            raise ValueError(f"data.{split} range must begin before it ends")
        if rng["required_count"] < 1:
            raise ValueError(f"data.{split}.required_count must be >= 1")

    if "test" not in cfg["data"] and not 0 < float(lookup(cfg, "data.test_ratio", DEFAULT_TEST_RATIO)) < 1:
        raise ValueError("data.test_ratio must be between 0 and 1")
    if int(lookup(cfg, "data.sample_interval", DEFAULT_SAMPLE_INTERVAL)) < 1:
        raise ValueError("data.sample_interval must be >= 1")
    if int(lookup(cfg, "genetic_algorithm.max_discarded_draws", DEFAULT_MAX_DISCARDED_DRAWS)) < 1:
        raise ValueError("genetic_algorithm.max_discarded_draws must be >= 1")
    if float(lookup(cfg, "genetic_algorithm.convergence_threshold", CONVERGENCE_THRESHOLD)) < 0:
        raise ValueError("genetic_algorithm.convergence_threshold must be >= 0")

    log.debug("Configuration validation passed")
