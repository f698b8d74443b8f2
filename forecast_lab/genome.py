# forecast_lab/genome.py
"""
Integer-vector encoding of the feature-extraction hyperparameters and the
genetic operators that act on it.

A genome holds five raw values ``[feature_size, fast_period, slow_delta,
signal_period, bb_period]``. Decoding wraps the feature size into
``[FEATURE_SIZE_MIN, FEATURE_SIZE_MAX)`` and rebuilds the slow period as
``fast_period + slow_delta`` so the slow average is always the longer one.
"""
from __future__ import annotations

import math
import random
from typing import List, Mapping, Sequence

from .config import require
from .constants import FEATURE_SIZE_MAX, FEATURE_SIZE_MIN, GENE_COUNT, MIN_VALUE
from .model import FeatureParams


def max_gene_value(cfg: Mapping) -> int:
    return int(require(cfg, "forecast.input_size")) // 3


def _rand_val(cfg: Mapping, rng: random.Random) -> int:
    return rng.randint(MIN_VALUE, max_gene_value(cfg))


def _round_feature_size(v: int) -> int:
    return (v % (FEATURE_SIZE_MAX - FEATURE_SIZE_MIN)) + FEATURE_SIZE_MIN


class Genome:
    __slots__ = ("values",)

    def __init__(self, values: Sequence[int]) -> None:
        if len(values) != GENE_COUNT:
            raise ValueError(f"genome needs {GENE_COUNT} values, got {len(values)}")
        self.values: List[int] = [int(v) for v in values]

    # ---------------- construction ---------------- #
    @classmethod
    def new_random(cls, cfg: Mapping, rng: random.Random) -> "Genome":
        return cls([_rand_val(cfg, rng) for _ in range(GENE_COUNT)])

    @classmethod
    def new_from_params(cls, p: FeatureParams) -> "Genome":
        """Inverse of ``to_feature_params``.

        The raw feature size is chosen so that it decodes back to ``p.feature_size``
        while staying at or above MIN_VALUE.
        """
        span = FEATURE_SIZE_MAX - FEATURE_SIZE_MIN
        raw_size = p.feature_size - FEATURE_SIZE_MIN
        while raw_size < MIN_VALUE:
            raw_size += span
        return cls([raw_size, p.fast_period, p.slow_period - p.fast_period, p.signal_period, p.bb_period])

    def clone(self) -> "Genome":
        return Genome(self.values)

    def to_feature_params(self) -> FeatureParams:
        return FeatureParams(
            feature_size=_round_feature_size(self.values[0]),
            fast_period=self.values[1],
            slow_period=self.values[1] + self.values[2],
            signal_period=self.values[3],
            bb_period=self.values[4],
        )

    # ---------------- operators ---------------- #
    def mutate(self, cfg: Mapping, rng: random.Random) -> int:
        """Redraw one component; returns the index that changed.

        The redraw excludes the current value so exactly one component differs
        afterwards, unless the valid range holds a single value.
        """
        index = self.select_gene_index_random(rng)
        hi = max_gene_value(cfg)
        current = self.values[index]
        if hi > MIN_VALUE and MIN_VALUE <= current <= hi:
            new_v = rng.randint(MIN_VALUE, hi - 1)
            if new_v >= current:
                new_v += 1
        else:
            new_v = rng.randint(MIN_VALUE, hi)
        self.values[index] = new_v
        return index

    @staticmethod
    def crossover(g1: "Genome", g2: "Genome", max_value: int, rng: random.Random) -> None:
        """Swap a random 2-bit slice of one component between both genomes in place."""
        index = g1.select_gene_index_random(rng)
        mask = 3 << rng.randint(0, 2)

        tmp1 = g1.values[index] & mask
        tmp2 = g2.values[index] & mask

        g1.values[index] = max(min((g1.values[index] & ~mask) | tmp2, max_value), MIN_VALUE)
        g2.values[index] = max(min((g2.values[index] & ~mask) | tmp1, max_value), MIN_VALUE)

    def similarity(self, other: "Genome") -> float:
        """Euclidean distance between the raw vectors (0.0 means identical)."""
        return math.sqrt(sum((float(a) - float(b)) ** 2 for a, b in zip(self.values, other.values)))

    def select_gene_index_random(self, rng: random.Random) -> int:
        return rng.randrange(len(self.values))

    # ---------------- population helpers ---------------- #
    @staticmethod
    def average(population: Sequence["Genome"]) -> "Genome":
        if not population:
            raise ValueError("population is empty")
        size = len(population)
        totals = [0] * GENE_COUNT
        for genome in population:
            for i, v in enumerate(genome.values):
                totals[i] += v
        return Genome([t // size for t in totals])

    @staticmethod
    def diversity(population: Sequence["Genome"]) -> float:
        avg = Genome.average(population)
        return sum(g.similarity(avg) for g in population) / len(population)

    @staticmethod
    def select_index_random(population: Sequence["Genome"], rng: random.Random) -> int:
        return rng.randrange(len(population))

    @staticmethod
    def select_index_roulette(weights: Sequence[float], rng: random.Random) -> int:
        """Pick an index from MSE weights.

        The normaliser is ``sum(1 - w)`` while the walk accumulates ``w / total``,
        so larger errors take larger slices of the wheel. Falls back to index 0
        when the walk never reaches the drawn threshold.
        """
        total = sum(1.0 - w for w in weights)
        if total == 0:
            return 0

        border = rng.random()
        cumulative = 0.0
        for i, w in enumerate(weights):
            cumulative += w / total
            if cumulative >= border:
                return i
        return 0

    # ---------------- dunder ---------------- #
    def __eq__(self, other: object) -> bool:
        return isinstance(other, Genome) and self.values == other.values

    def __hash__(self) -> int:
        return hash(tuple(self.values))

    def __repr__(self) -> str:
        return f"Genome({self.values})"
