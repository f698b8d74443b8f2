# forecast_lab/trainer.py
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Sequence

import numpy as np
from sklearn.ensemble import RandomForestRegressor
from sklearn.linear_model import ElasticNet, Lasso, LinearRegression, Ridge
from sklearn.metrics import mean_squared_error
from sklearn.neighbors import KNeighborsRegressor
from sklearn.svm import SVR

from .config import lookup, require
from .database import Database
from .errors import FeatureConversionError, ModelDecodeError
from .features import FeatureConverter
from .model import FeatureParams, ModelCandidate, ModelFamily

# Built-in keyword defaults per family, overridable through ``models.<family>``
FAMILY_DEFAULTS: Dict[ModelFamily, Dict[str, Any]] = {
    ModelFamily.RANDOM_FOREST: {"random_state": 0},
    ModelFamily.KNN: {"metric": "euclidean"},
    ModelFamily.LINEAR: {},
    ModelFamily.RIDGE: {"alpha": 0.5},
    ModelFamily.LASSO: {"alpha": 0.5},
    ModelFamily.ELASTIC_NET: {"alpha": 0.5, "l1_ratio": 0.5},
    ModelFamily.SVR: {"kernel": "rbf", "gamma": 0.5, "C": 2000.0, "epsilon": 10.0},
}

_BUILDERS: Dict[ModelFamily, Callable[..., Any]] = {
    ModelFamily.RANDOM_FOREST: RandomForestRegressor,
    ModelFamily.KNN: KNeighborsRegressor,
    ModelFamily.LINEAR: LinearRegression,
    ModelFamily.RIDGE: Ridge,
    ModelFamily.LASSO: Lasso,
    ModelFamily.ELASTIC_NET: ElasticNet,
    ModelFamily.SVR: SVR,
}

# Logistic regression never converged on rate data, so it is not trained.
ENABLED_FAMILIES: List[ModelFamily] = [f for f in ModelFamily if f in _BUILDERS]


class ModelFactory:
    """Trains one candidate per enabled regression family and scores it on held-out data."""

    def __init__(self, cfg: Mapping, logger: logging.Logger | None = None) -> None:
        self.cfg = cfg
        self.log = logger or logging.getLogger(__name__)
        self.pair: str = require(cfg, "currency_pair")
        self.input_size: int = int(require(cfg, "forecast.input_size"))
        self.families: List[ModelFamily] = list(ENABLED_FAMILIES)

        overrides: Mapping[str, Mapping[str, Any]] = lookup(cfg, "models", {})
        self.family_kwargs: Dict[ModelFamily, Dict[str, Any]] = {}
        for family in self.families:
            kwargs = dict(FAMILY_DEFAULTS[family])
            kwargs.update(overrides.get(family.value, {}))
            self.family_kwargs[family] = kwargs

    def build(self, family: ModelFamily) -> Any:
        return _BUILDERS[family](**self.family_kwargs[family])

    # ---------------- training ---------------- #
    def train_all_families(
        self,
        train_features: Sequence[Sequence[float]],
        train_labels: Sequence[float],
        test_features: Sequence[Sequence[float]],
        test_labels: Sequence[float],
        feature_params: FeatureParams,
        slot_no: int,
    ) -> List[ModelCandidate]:
        x_train = np.asarray(train_features, dtype=float)
        y_train = np.asarray(train_labels, dtype=float)

        candidates: List[ModelCandidate] = []
        for family in self.families:
            self.log.debug("Training %s with %s", family.value, feature_params)
            try:
                model = self.build(family)
                model.fit(x_train, y_train)
                candidate = ModelCandidate(
                    family=family,
                    model=model,
                    pair=self.pair,
                    model_no=slot_no,
                    input_data_size=self.input_size,
                    feature_params=feature_params,
                    memo=family.value,
                )
                self.score(candidate, test_features, test_labels)
            except Exception as exc:  # sklearn raises ValueError, LinAlgError and friends
                self.log.warning("Failed to train %s: %s", family.value, exc)
                continue

            self.log.debug("Trained %s", candidate)
            candidates.append(candidate)
        return candidates

    @staticmethod
    def score(
        candidate: ModelCandidate,
        test_features: Sequence[Sequence[float]],
        test_labels: Sequence[float],
    ) -> float:
        predictions = candidate.predict(test_features)
        mse = mean_squared_error(np.asarray(test_labels, dtype=float), predictions)
        candidate.update_performance(mse)
        return candidate.mse

    @staticmethod
    def best_of(candidates: Sequence[ModelCandidate]) -> ModelCandidate | None:
        """Lowest-MSE candidate; the first one wins ties."""
        best: ModelCandidate | None = None
        for candidate in candidates:
            if best is None or candidate.mse < best.mse:
                best = candidate
        return best

    # ---------------- seed model ---------------- #
    def load_seed_model(
        self,
        db: Database,
        pair: str,
        slot_no: int,
        test_histories: Sequence[Sequence[float]] | None = None,
        test_labels: Sequence[float] | None = None,
    ) -> ModelCandidate | None:
        try:
            record = db.select_model(pair, slot_no)
        except ModelDecodeError as exc:
            self.log.warning("forecast model cannot be decoded, ignored: %s", exc)
            return None
        if record is None:
            self.log.info("No seed model found for %s slot %d", pair, slot_no)
            return None

        if record.input_data_size != self.input_size:
            self.log.warning(
                "forecast model input size is unmatched, ignored. model:%d, config:%d",
                record.input_data_size,
                self.input_size,
            )
            return None

        candidate = record.to_candidate()
        if test_histories is not None and test_labels is not None:
            try:
                test_features = FeatureConverter.convert_all(test_histories, candidate.feature_params)
                self.score(candidate, test_features, test_labels)
            except FeatureConversionError as exc:
                self.log.warning("Seed model could not be re-scored, ignored: %s", exc)
                return None
        self.log.info("Loaded seed model %s", candidate)
        return candidate
