import math

import pytest

from forecast_lab.errors import FeatureConversionError
from forecast_lab.features import FeatureConverter
from forecast_lab.model import FeatureParams

PARAMS = FeatureParams(feature_size=3, fast_period=2, slow_period=5, signal_period=2, bb_period=4)


def _history(n=20):
    return [100.0 + math.sin(i / 3.0) + 0.1 * i for i in range(n)]


def test_feature_vector_has_four_blocks_of_feature_size():
    features = FeatureConverter.convert(_history(), PARAMS)
    assert len(features) == PARAMS.feature_count == 12


def test_first_block_is_trailing_rates():
    history = _history()
    features = FeatureConverter.convert(history, PARAMS)
    assert features[:3] == pytest.approx(history[-3:])


def test_bands_enclose_their_rates():
    features = FeatureConverter.convert(_history(), PARAMS)
    upper, lower = features[6:9], features[9:12]
    for u, lo in zip(upper, lower):
        assert u >= lo


def test_conversion_is_deterministic():
    history = _history()
    assert FeatureConverter.convert(history, PARAMS) == FeatureConverter.convert(list(history), PARAMS)


def test_window_shorter_than_feature_size_raises():
    with pytest.raises(FeatureConversionError):
        FeatureConverter.convert([1.0, 2.0], PARAMS)


def test_window_too_short_for_band_period_raises():
    params = FeatureParams(feature_size=3, fast_period=2, slow_period=4, signal_period=2, bb_period=8)
    with pytest.raises(FeatureConversionError):
        FeatureConverter.convert(_history(6), params)


def test_convert_all_maps_each_window():
    windows = [_history(12), _history(15)]
    assert len(FeatureConverter.convert_all(windows, PARAMS)) == 2
