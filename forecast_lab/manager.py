# forecast_lab/manager.py
from __future__ import annotations

import logging
import random
import uuid
from datetime import datetime
from typing import List, Mapping, Sequence, Set, Tuple

from tqdm import tqdm

from .config import lookup, require, validate_config
from .constants import CONVERGENCE_THRESHOLD, DEFAULT_MAX_DISCARDED_DRAWS, PERFORMANCE_MSE_DEFAULT
from .data_loader import DataSplits, InputDataLoader
from .database import Database
from .errors import FeatureConversionError
from .features import FeatureConverter
from .genome import Genome, max_gene_value
from .model import GenerationResult, ModelCandidate, ModelRecord, SearchResult
from .trainer import ModelFactory

# ---------------- breeding (Population -> Population) ---------------- #
def _mutated_copy(population: Sequence[Genome], cfg: Mapping, rng: random.Random) -> Genome:
    child = population[Genome.select_index_random(population, rng)].clone()
    child.mutate(cfg, rng)
    return child


def breed_step(
    population: Sequence[Genome],
    mses: Sequence[float],
    remaining: Set[int],
    open_slots: int,
    cfg: Mapping,
    rng: random.Random,
) -> List[Genome]:
    """One draw of the breeding loop.

    Returns the offspring produced by the draw, or an empty list when the draw
    is discarded: a crossover with fewer than two open slots, or a plain
    selection after every index has already been selected once.
    """
    p = require(cfg, "genetic_algorithm.parameters")
    crossover_rate = float(p["crossover_rate"])
    mutation_rate = float(p["mutation_rate"])

    v = rng.random()
    if v < crossover_rate:
        if open_slots < 2:
            return []
        i1 = Genome.select_index_random(population, rng)
        i2 = Genome.select_index_random(population, rng)
        while i2 == i1:
            i2 = Genome.select_index_random(population, rng)
        g1, g2 = population[i1].clone(), population[i2].clone()
        Genome.crossover(g1, g2, max_gene_value(cfg), rng)
        return [g1, g2]

    if v < crossover_rate + mutation_rate:
        return [_mutated_copy(population, cfg, rng)]

    if not remaining:
        return []
    order = sorted(remaining)
    index = order[Genome.select_index_roulette([mses[i] for i in order], rng)]
    remaining.discard(index)
    return [population[index].clone()]


def build_next_generation(
    population: Sequence[Genome],
    mses: Sequence[float],
    elite_index: int | None,
    cfg: Mapping,
    rng: random.Random,
    logger: logging.Logger | None = None,
) -> List[Genome]:
    log = logger or logging.getLogger(__name__)
    size = len(population)
    max_discarded = int(lookup(cfg, "genetic_algorithm.max_discarded_draws", DEFAULT_MAX_DISCARDED_DRAWS))

    next_population: List[Genome] = []
    if elite_index is not None:
        next_population.append(population[elite_index].clone())

    remaining: Set[int] = set(range(size))
    discarded = 0
    while len(next_population) < size:
        offspring = breed_step(population, mses, remaining, size - len(next_population), cfg, rng)
        if not offspring:
            discarded += 1
            if discarded < max_discarded:
                continue
            log.warning("Breeding stalled after %d discarded draws, filling slot by mutation", discarded)
            offspring = [_mutated_copy(population, cfg, rng)]
        discarded = 0
        next_population.extend(offspring)

    return next_population[:size]


class GenerationCoordinator:
    """Generational search over feature parameters, persisting the best model per generation."""

    def __init__(
        self,
        cfg: Mapping,
        db: Database,
        logger: logging.Logger,
        rng: random.Random | None = None,
        factory: ModelFactory | None = None,
    ) -> None:
        validate_config(cfg)

        self.cfg = cfg
        self.db = db
        self.log = logger
        self.rng = rng or random.Random()
        self.factory = factory or ModelFactory(cfg, logger)
        self.loader = InputDataLoader(cfg, db, logger)

        self.pair: str = cfg["currency_pair"]
        self.training_no: int = int(require(cfg, "slots.training_model_no"))
        self.forecast_no: int = int(require(cfg, "slots.forecast_model_no"))

        p = cfg["genetic_algorithm"]["parameters"]
        self.pop_size: int = int(p["training_model_count"])
        self.gens: int = int(p["generation_count"])
        self.threshold: float = float(
            lookup(cfg, "genetic_algorithm.convergence_threshold", CONVERGENCE_THRESHOLD)
        )
        self.save_datasets: bool = bool(lookup(cfg, "data.save_training_datasets", False))

        self.log.info(
            f"GA initialized: pair={self.pair}, pop={self.pop_size}, gens={self.gens}, "
            f"crossover={p['crossover_rate']}, mutation={p['mutation_rate']}"
        )

    # ---------------- entry point ---------------- #
    def run(self, now: datetime | None = None) -> SearchResult:
        """Load data, seed the population and run the search to promotion.

        Insufficient data raises before anything is written.
        """
        splits = self.loader.load(self.rng, now)

        if self.save_datasets:
            rows = splits.dataset_rows(self.pair)
            self.db.insert_training_dataset_rows(rows)
            self.log.info("Saved %d training dataset rows", len(rows))

        seed = self.factory.load_seed_model(
            self.db, self.pair, self.forecast_no, splits.test_histories, splits.test_labels
        )
        return self.search(splits, self.initial_population(seed))

    def initial_population(self, seed: ModelCandidate | None = None) -> List[Genome]:
        population: List[Genome] = []
        if seed is not None:
            population.append(Genome.new_from_params(seed.feature_params))
            self.log.info("Seeded population with %s (mse=%.6f)", seed.feature_params, seed.mse)
        while len(population) < self.pop_size:
            population.append(Genome.new_random(self.cfg, self.rng))
        return population

    # ---------------- evaluation ---------------- #
    def evaluate(
        self, population: Sequence[Genome], splits: DataSplits
    ) -> Tuple[List[float], int | None, ModelCandidate | None]:
        """Train every family for every genome.

        Returns the per-genome best MSE vector (genomes without a candidate
        score PERFORMANCE_MSE_DEFAULT) and the overall best (index, candidate).
        """
        mses: List[float] = []
        best_index: int | None = None
        best: ModelCandidate | None = None

        for index, genome in enumerate(population):
            params = genome.to_feature_params()
            try:
                train_x = FeatureConverter.convert_all(splits.train_histories, params)
                test_x = FeatureConverter.convert_all(splits.test_histories, params)
            except FeatureConversionError as exc:
                self.log.warning("Skipping genome %s: %s", genome, exc)
                mses.append(PERFORMANCE_MSE_DEFAULT)
                continue

            candidates = self.factory.train_all_families(
                train_x, splits.train_labels, test_x, splits.test_labels, params, self.training_no
            )
            genome_best = ModelFactory.best_of(candidates)
            if genome_best is None:
                self.log.warning("No model family could be trained for genome %s", genome)
                mses.append(PERFORMANCE_MSE_DEFAULT)
                continue

            mses.append(genome_best.mse)
            if best is None or genome_best.mse < best.mse:
                best_index, best = index, genome_best

        return mses, best_index, best

    # ---------------- evolution loop -------------------- #
    def search(
        self,
        splits: DataSplits,
        population: List[Genome] | None = None,
        run_id: str | None = None,
    ) -> SearchResult:
        population = population or self.initial_population()
        result = SearchResult(run_id=run_id or uuid.uuid4().hex[:8], pair=self.pair)

        for gen in tqdm(range(1, self.gens + 1), desc="Generations", position=0):
            mses, best_index, best = self.evaluate(population, splits)
            diversity = Genome.diversity(population)
            generation = GenerationResult(gen, mses, diversity, best_index, best)

            self.log.info(f"Gen {gen}: mses={[round(m, 6) for m in mses]}, diversity={diversity:.3f}")
            if best is not None:
                self.db.upsert_model(ModelRecord.from_candidate(best, self.training_no))
                generation.persisted = True
                self.log.info(f"Gen {gen}: best={best} from genome {population[best_index]}")

            self.db.save_generation(
                result.run_id,
                self.pair,
                gen,
                generation.best_mse,
                diversity,
                best.feature_params if best else None,
                best.memo if best else "",
            )
            result.history.append(generation)

            if gen == self.gens:
                result.stop_reason = "generation_count"
                break
            if diversity < self.threshold:
                result.stop_reason = "converged"
                self.log.info("Population converged at gen %d (diversity %.3f)", gen, diversity)
                break

            population = build_next_generation(population, mses, best_index, self.cfg, self.rng, self.log)

        result.promoted = self.promote()
        return result

    def promote(self) -> bool:
        """Copy the training slot over the forecast slot; False when there was nothing to copy."""
        copied = self.db.copy_model(self.pair, self.training_no, self.forecast_no)
        if not copied:
            self.log.warning("No %s model in slot %d to promote", self.pair, self.training_no)
            return False
        self.log.info(
            "Promoted %s model from slot %d to slot %d", self.pair, self.training_no, self.forecast_no
        )
        return True
