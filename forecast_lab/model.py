# forecast_lab/model.py
from __future__ import annotations

import hashlib
import io
import json
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Sequence

import joblib
import numpy as np

from .constants import PERFORMANCE_MSE_DEFAULT, PERFORMANCE_RMSE_DEFAULT
from .errors import ModelDecodeError


class ModelFamily(str, Enum):
    RANDOM_FOREST = "RandomForest"
    KNN = "KNN"
    LINEAR = "Linear"
    RIDGE = "Ridge"
    LASSO = "LASSO"
    ELASTIC_NET = "ElasticNet"
    LOGISTIC = "Logistic"
    SVR = "SVR"

    @classmethod
    def parse(cls, value: str) -> "ModelFamily":
        try:
            return cls(value)
        except ValueError as exc:
            raise ModelDecodeError(f"unknown model type, value:{value}") from exc


@dataclass(frozen=True, slots=True)
class FeatureParams:
    feature_size: int
    fast_period: int
    slow_period: int
    signal_period: int
    bb_period: int

    def to_json(self) -> str:
        """Canonical string form: sorted keys, no whitespace."""
        return json.dumps(asdict(self), sort_keys=True, separators=(",", ":"))

    def to_hash(self) -> str:
        return hashlib.sha256(self.to_json().encode("utf-8")).hexdigest()

    @classmethod
    def from_json(cls, raw: str) -> "FeatureParams":
        data: Dict[str, Any] = json.loads(raw)
        return cls(**{k: int(v) for k, v in data.items()})

    @property
    def feature_count(self) -> int:
        return 4 * self.feature_size


def serialize_model(model: Any) -> bytes:
    buf = io.BytesIO()
    joblib.dump(model, buf)
    return buf.getvalue()


def deserialize_model(data: bytes) -> Any:
    try:
        return joblib.load(io.BytesIO(data))
    except Exception as exc:  # joblib/pickle raise a wide range of errors on corrupt input
        raise ModelDecodeError(f"failed to decode model data: {exc}") from exc


@dataclass(slots=True)
class ModelCandidate:
    family: ModelFamily
    model: Any
    pair: str
    model_no: int
    input_data_size: int
    feature_params: FeatureParams
    mse: float = PERFORMANCE_MSE_DEFAULT
    rmse: float = PERFORMANCE_RMSE_DEFAULT
    memo: str = ""

    def predict(self, features: Sequence[Sequence[float]]) -> np.ndarray:
        return np.asarray(self.model.predict(np.asarray(features, dtype=float)), dtype=float)

    def update_performance(self, mse: float) -> None:
        self.mse = float(mse)
        self.rmse = math.sqrt(self.mse)

    def __str__(self) -> str:
        return f"{self.memo or self.family.value}(pair={self.pair}, no={self.model_no}, mse={self.mse:.6f})"


@dataclass(slots=True)
class ModelRecord:
    """Persisted form of a candidate, keyed by (pair, model_no)."""

    pair: str
    model_no: int
    family: ModelFamily
    model: Any
    input_data_size: int
    feature_params: FeatureParams
    feature_params_hash: str
    mse: float
    rmse: float
    memo: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_candidate(cls, candidate: ModelCandidate, model_no: int | None = None) -> "ModelRecord":
        return cls(
            pair=candidate.pair,
            model_no=candidate.model_no if model_no is None else model_no,
            family=candidate.family,
            model=candidate.model,
            input_data_size=candidate.input_data_size,
            feature_params=candidate.feature_params,
            feature_params_hash=candidate.feature_params.to_hash(),
            mse=candidate.mse,
            rmse=candidate.rmse,
            memo=candidate.memo,
        )

    def to_candidate(self) -> ModelCandidate:
        return ModelCandidate(
            family=self.family,
            model=self.model,
            pair=self.pair,
            model_no=self.model_no,
            input_data_size=self.input_data_size,
            feature_params=self.feature_params,
            mse=self.mse,
            rmse=self.rmse,
            memo=self.memo,
        )

    def is_valid(self) -> bool:
        return self.feature_params.to_hash() == self.feature_params_hash


@dataclass(frozen=True, slots=True)
class RateSample:
    ts: datetime
    rate: float


@dataclass(slots=True)
class TrainingDatasetRow:
    pair: str
    input_data: List[float]
    truth: float
    memo: str = ""


@dataclass(slots=True)
class GenerationResult:
    generation: int
    best_mses: List[float]
    diversity: float
    best_index: int | None = None
    best_candidate: ModelCandidate | None = None
    persisted: bool = False

    @property
    def best_mse(self) -> float | None:
        return None if self.best_candidate is None else self.best_candidate.mse


@dataclass(slots=True)
class SearchResult:
    run_id: str
    pair: str
    history: List[GenerationResult] = field(default_factory=list)
    stop_reason: str = ""
    promoted: bool = False

    @property
    def generations(self) -> int:
        return len(self.history)

    @property
    def persisted_count(self) -> int:
        return sum(1 for g in self.history if g.persisted)
