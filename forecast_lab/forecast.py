# forecast_lab/forecast.py
from __future__ import annotations

import logging
from typing import Mapping

from .config import require
from .database import Database
from .errors import InsufficientDataError
from .features import FeatureConverter

log = logging.getLogger(__name__)


def forecast_latest(cfg: Mapping, db: Database) -> float | None:
    """Predict the next rate from the newest stored window using the forecast-slot model.

    Returns None when no trustworthy model is stored.
    """
    pair: str = require(cfg, "currency_pair")
    slot: int = int(require(cfg, "slots.forecast_model_no"))

    record = db.select_model(pair, slot)
    if record is None:
        log.warning("No forecast model stored for %s slot %d", pair, slot)
        return None

    rates = db.select_rate_history(pair, limit=record.input_data_size)
    if len(rates) < record.input_data_size:
        raise InsufficientDataError(len(rates), record.input_data_size, "forecast")

    candidate = record.to_candidate()
    features = FeatureConverter.convert([r.rate for r in rates], candidate.feature_params)
    value = float(candidate.predict([features])[0])
    log.info("Forecast for %s with %s: %.6f", pair, candidate, value)
    return value
