"""
Pytest configuration and shared fixtures for forecast_lab tests.
"""
import copy
import random
from datetime import datetime, timedelta, timezone

import numpy as np
import pandas as pd
import pytest

from forecast_lab.data_loader import DataSplits
from forecast_lab.database import Database

PAIR = "USD/JPY"
NOW = datetime(2024, 1, 2, tzinfo=timezone.utc)

BASE_CONFIG = {
    "currency_pair": PAIR,
    "forecast": {"input_size": 12, "offset_minutes": 1},
    "slots": {"training_model_no": 1, "forecast_model_no": 2},
    "genetic_algorithm": {
        "parameters": {
            "training_model_count": 4,
            "generation_count": 3,
            "crossover_rate": 0.5,
            "mutation_rate": 0.3,
        },
        "convergence_threshold": 1.0,
        "max_discarded_draws": 5,
    },
    "data": {
        "sample_interval": 5,
        "training": {"range_begin_offset_hour": 10, "range_end_offset_hour": 5, "required_count": 10},
        "test": {"range_begin_offset_hour": 5, "range_end_offset_hour": 0, "required_count": 10},
    },
}


@pytest.fixture
def cfg():
    """A valid configuration with a 12-sample window (genes drawn from [2, 4])."""
    return copy.deepcopy(BASE_CONFIG)


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def rate_frame():
    """Ten hours of one-minute rates ending at NOW, trending with a little noise."""
    np.random.seed(42)
    minutes = 10 * 60 + 1
    ts = [int((NOW - timedelta(minutes=minutes - 1 - i)).timestamp() * 1000) for i in range(minutes)]
    rates = 140.0 + 0.01 * np.arange(minutes) + np.random.randn(minutes) * 0.05
    return pd.DataFrame({"ts": ts, "pair": PAIR, "rate": rates})


@pytest.fixture
def seeded_db(db, rate_frame):
    db.save_rates(rate_frame)
    return db


@pytest.fixture
def linear_splits():
    """Windows of consecutive integers labelled with twice their last value (y = 2x)."""
    histories = [[float(i + j) for j in range(12)] for i in range(1, 41)]
    labels = [2.0 * h[-1] for h in histories]
    return DataSplits(histories[:30], labels[:30], histories[30:], labels[30:])
