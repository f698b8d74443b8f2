# forecast_lab/features.py
from __future__ import annotations

from typing import List, Sequence

import numpy as np
import pandas as pd

from .constants import BOLLINGER_STDDEV
from .errors import FeatureConversionError
from .indicators import bollinger_bands, macd
from .model import FeatureParams


class FeatureConverter:
    """Turns raw rate windows into fixed-length feature vectors.

    The vector is the trailing ``feature_size`` values of the rate, the MACD
    histogram, and the upper and lower Bollinger bands, in that order.
    """

    @staticmethod
    def convert(history: Sequence[float], params: FeatureParams) -> List[float]:
        size = params.feature_size
        if len(history) < size:
            raise FeatureConversionError(
                f"window of {len(history)} samples is shorter than feature_size {size}"
            )

        close = pd.Series(np.asarray(history, dtype=float))
        _, _, hist = macd(close, params.fast_period, params.slow_period, params.signal_period)
        upper, _, lower = bollinger_bands(close, params.bb_period, BOLLINGER_STDDEV)

        columns = [close, hist, upper, lower]
        features: List[float] = []
        for col in columns:
            features.extend(col.iloc[-size:].tolist())

        if np.isnan(features).any():
            raise FeatureConversionError(
                f"window of {len(history)} samples is too short for bb_period {params.bb_period} "
                f"and feature_size {size}"
            )
        return features

    @staticmethod
    def convert_all(histories: Sequence[Sequence[float]], params: FeatureParams) -> List[List[float]]:
        return [FeatureConverter.convert(h, params) for h in histories]
