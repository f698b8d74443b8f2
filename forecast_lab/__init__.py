# forecast_lab/__init__.py
"""
Genetic search over the feature parameters of short-horizon rate forecast models.
"""
from __future__ import annotations

from .config import Config, validate_config
from .data_loader import DataSplits, InputDataLoader, build_windows, train_test_split
from .database import Database
from .errors import FeatureConversionError, ForecastLabError, InsufficientDataError, ModelDecodeError
from .features import FeatureConverter
from .genome import Genome
from .manager import GenerationCoordinator, breed_step, build_next_generation
from .model import (
    FeatureParams,
    GenerationResult,
    ModelCandidate,
    ModelFamily,
    ModelRecord,
    SearchResult,
)
from .trainer import ModelFactory

__all__ = [
    "Config",
    "validate_config",
    "Database",
    "DataSplits",
    "InputDataLoader",
    "build_windows",
    "train_test_split",
    "FeatureConverter",
    "FeatureParams",
    "Genome",
    "GenerationCoordinator",
    "breed_step",
    "build_next_generation",
    "GenerationResult",
    "ModelCandidate",
    "ModelFactory",
    "ModelFamily",
    "ModelRecord",
    "SearchResult",
    "ForecastLabError",
    "InsufficientDataError",
    "FeatureConversionError",
    "ModelDecodeError",
]
