# forecast_lab/data_loader.py
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Mapping, Sequence, Tuple

from .config import lookup, require
from .constants import DEFAULT_SAMPLE_INTERVAL, DEFAULT_TEST_RATIO, TRAINING_DATASET_MEMO
from .database import Database
from .errors import InsufficientDataError
from .model import TrainingDatasetRow

Window = List[float]


def build_windows(
    rates: Sequence[float],
    input_size: int,
    offset_minutes: int,
    sample_interval: int = DEFAULT_SAMPLE_INTERVAL,
) -> Tuple[List[Window], List[float]]:
    """Slice a rate series into (window, label) pairs.

    Windows start every ``sample_interval`` samples. The label is the rate
    ``offset_minutes`` samples after the window's last one. Windows where
    more than half of the samples repeat their predecessor are dropped.
    """
    histories: List[Window] = []
    labels: List[float] = []
    for offset in range(len(rates)):
        if offset % sample_interval > 0:
            continue

        label_index = offset + input_size - 1 + offset_minutes
        if label_index >= len(rates):
            break

        window = [float(r) for r in rates[offset : offset + input_size]]
        same_count = 0
        before = 0.0
        for rate in window:
            if rate == before:
                same_count += 1
            before = rate
        if same_count > len(window) / 2:
            continue

        histories.append(window)
        labels.append(float(rates[label_index]))
    return histories, labels


def train_test_split(
    x: Sequence[Window],
    y: Sequence[float],
    test_ratio: float,
    rng: random.Random,
) -> Tuple[List[Window], List[Window], List[float], List[float]]:
    """Assign each row to the test split with probability ``test_ratio``."""
    if len(x) != len(y):
        raise ValueError(f"x and y differ in length: {len(x)} != {len(y)}")

    x_train: List[Window] = []
    x_test: List[Window] = []
    y_train: List[float] = []
    y_test: List[float] = []
    for features, label in zip(x, y):
        if rng.random() < test_ratio:
            x_test.append(list(features))
            y_test.append(label)
        else:
            x_train.append(list(features))
            y_train.append(label)
    return x_train, x_test, y_train, y_test


@dataclass(slots=True)
class DataSplits:
    train_histories: List[Window]
    train_labels: List[float]
    test_histories: List[Window]
    test_labels: List[float]

    def dataset_rows(self, pair: str) -> List[TrainingDatasetRow]:
        """Every (window, label) pair of the run, training rows first."""
        histories = self.train_histories + self.test_histories
        labels = self.train_labels + self.test_labels
        return [
            TrainingDatasetRow(pair, history, label, TRAINING_DATASET_MEMO)
            for history, label in zip(histories, labels)
        ]


class InputDataLoader:
    """Reads rate history for the configured ranges and turns it into labelled windows."""

    def __init__(self, cfg: Mapping, db: Database, logger: logging.Logger | None = None) -> None:
        self.cfg = cfg
        self.db = db
        self.log = logger or logging.getLogger(__name__)
        self.pair: str = require(cfg, "currency_pair")
        self.input_size: int = int(require(cfg, "forecast.input_size"))
        self.offset_minutes: int = int(lookup(cfg, "forecast.offset_minutes", 0))
        self.sample_interval: int = int(lookup(cfg, "data.sample_interval", DEFAULT_SAMPLE_INTERVAL))
        self.test_ratio: float = float(lookup(cfg, "data.test_ratio", DEFAULT_TEST_RATIO))

    def has_test_range(self) -> bool:
        return "test" in require(self.cfg, "data")

    def _load_range(self, split: str, now: datetime) -> Tuple[List[Window], List[float]]:
        section = require(self.cfg, f"data.{split}")
        begin = now - timedelta(hours=float(section["range_begin_offset_hour"]))
        end = now - timedelta(hours=float(section["range_end_offset_hour"]))
        required = int(section["required_count"])

        rates = self.db.select_rate_history(self.pair, begin, end)
        self.log.debug("%s rates loaded for %s: %d samples in [%s, %s]", split, self.pair, len(rates), begin, end)

        histories, labels = build_windows(
            [r.rate for r in rates], self.input_size, self.offset_minutes, self.sample_interval
        )
        if len(histories) < required:
            raise InsufficientDataError(len(histories), required, split)
        return histories, labels

    def load_training_data(self, now: datetime) -> Tuple[List[Window], List[float]]:
        return self._load_range("training", now)

    def load_test_data(self, now: datetime) -> Tuple[List[Window], List[float]]:
        return self._load_range("test", now)

    def load(self, rng: random.Random, now: datetime | None = None) -> DataSplits:
        """Training and test windows; without a test range the test split is carved from training data."""
        now = now or datetime.now(timezone.utc)
        train_x, train_y = self.load_training_data(now)
        if self.has_test_range():
            test_x, test_y = self.load_test_data(now)
        else:
            train_x, test_x, train_y, test_y = train_test_split(train_x, train_y, self.test_ratio, rng)
            if not test_x:
                raise InsufficientDataError(0, 1, "test")
            if not train_x:
                raise InsufficientDataError(0, 1, "training")

        self.log.info("Loaded %d training and %d test windows for %s", len(train_x), len(test_x), self.pair)
        return DataSplits(train_x, train_y, test_x, test_y)
