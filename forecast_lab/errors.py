# forecast_lab/errors.py
from __future__ import annotations


class ForecastLabError(Exception):
    """Base class for errors raised by the training pipeline."""


class InsufficientDataError(ForecastLabError):
    """Fewer usable samples than the configured minimum."""

    def __init__(self, count: int, required: int, label: str = "input") -> None:
        super().__init__(f"{label} data is too little, count:{count}, required:{required}")
        self.count = count
        self.required = required
        self.label = label


class FeatureConversionError(ForecastLabError):
    """A rate window cannot be converted with the given feature parameters."""


class ModelDecodeError(ForecastLabError):
    """A stored model row cannot be turned back into a fitted model."""
