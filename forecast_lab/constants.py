# forecast_lab/constants.py
from __future__ import annotations

from typing import Final

# Genome encoding
MIN_VALUE: Final[int] = 2
FEATURE_SIZE_MIN: Final[int] = 1
FEATURE_SIZE_MAX: Final[int] = 10
GENE_COUNT: Final[int] = 5

# Mean distance from the population centroid below which the search stops
CONVERGENCE_THRESHOLD: Final[float] = 1.0

# Score of a genome that produced no candidate
PERFORMANCE_MSE_DEFAULT: Final[float] = 1.0
PERFORMANCE_RMSE_DEFAULT: Final[float] = 1.0

BOLLINGER_STDDEV: Final[float] = 2.0

DEFAULT_SAMPLE_INTERVAL: Final[int] = 5
DEFAULT_TEST_RATIO: Final[float] = 0.2
DEFAULT_MAX_DISCARDED_DRAWS: Final[int] = 1000

TRAINING_DATASET_MEMO: Final[str] = "inserted by training"

REQUIRED_SECTIONS: Final[list[str]] = [
    "currency_pair",
    "forecast",
    "slots",
    "genetic_algorithm",
    "data",
]

REQUIRED_PARAMETER_KEYS: Final[list[str]] = [
    "training_model_count",
    "generation_count",
    "crossover_rate",
    "mutation_rate",
]

REQUIRED_RANGE_KEYS: Final[list[str]] = [
    "range_begin_offset_hour",
    "range_end_offset_hour",
    "required_count",
]
