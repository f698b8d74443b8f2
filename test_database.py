import logging
from datetime import timedelta

import numpy as np
import pytest
from sklearn.linear_model import Ridge

from conftest import NOW, PAIR
from forecast_lab.errors import ModelDecodeError
from forecast_lab.model import FeatureParams, ModelFamily, ModelRecord, TrainingDatasetRow, deserialize_model

PARAMS = FeatureParams(feature_size=2, fast_period=3, slow_period=6, signal_period=2, bb_period=3)


def _record(model_no=1, mse=0.25, alpha=0.5):
    x = np.arange(20, dtype=float).reshape(10, 2)
    model = Ridge(alpha=alpha).fit(x, x.sum(axis=1))
    return ModelRecord(
        pair=PAIR,
        model_no=model_no,
        family=ModelFamily.RIDGE,
        model=model,
        input_data_size=12,
        feature_params=PARAMS,
        feature_params_hash=PARAMS.to_hash(),
        mse=mse,
        rmse=mse ** 0.5,
        memo="Ridge",
    )


def test_upsert_and_select_round_trip(db):
    db.upsert_model(_record())
    record = db.select_model(PAIR, 1)

    assert record is not None
    assert record.family is ModelFamily.RIDGE
    assert record.feature_params == PARAMS
    assert record.is_valid()
    assert record.mse == pytest.approx(0.25)
    assert record.created_at is not None
    prediction = record.to_candidate().predict([[1.0, 2.0]])
    assert prediction.shape == (1,)


def test_upsert_replaces_existing_slot(db):
    db.upsert_model(_record(mse=0.9))
    db.upsert_model(_record(mse=0.1))
    records = db.select_models(PAIR)
    assert len(records) == 1
    assert records[0].mse == pytest.approx(0.1)


def test_select_model_rejects_hash_mismatch(db, caplog):
    db.upsert_model(_record())
    with db._conn:
        db._conn.execute("UPDATE forecast_models SET feature_params_hash = 'stale' WHERE model_no = 1")

    with caplog.at_level(logging.WARNING):
        assert db.select_model(PAIR, 1) is None
    assert "unmatch feature params hash" in caplog.text
    assert db.select_models(PAIR) == []


def test_select_missing_model_returns_none(db):
    assert db.select_model(PAIR, 7) is None


def test_copy_model_overwrites_target_slot(db):
    db.upsert_model(_record(model_no=1, mse=0.05))
    db.upsert_model(_record(model_no=2, mse=0.75))

    assert db.copy_model(PAIR, 1, 2) == 1

    copied = db.select_model(PAIR, 2)
    assert copied is not None
    assert copied.model_no == 2
    assert copied.mse == pytest.approx(0.05)
    assert db.select_model(PAIR, 1).mse == pytest.approx(0.05)


def test_copy_model_without_source_is_a_no_op(db):
    assert db.copy_model(PAIR, 1, 2) == 0
    assert db.select_models(PAIR) == []


def test_corrupt_model_blob_raises_decode_error(db):
    db.upsert_model(_record())
    with db._conn:
        db._conn.execute("UPDATE forecast_models SET model_data = x'00ff00'")
    with pytest.raises(ModelDecodeError):
        db.select_model(PAIR, 1)
    with pytest.raises(ModelDecodeError):
        deserialize_model(b"not a model")


def test_rate_history_is_ordered_and_range_bounded(seeded_db):
    begin = NOW - timedelta(hours=2)
    end = NOW - timedelta(hours=1)
    rates = seeded_db.select_rate_history(PAIR, begin, end)

    assert len(rates) == 61
    assert rates[0].ts == begin
    assert rates[-1].ts == end
    assert all(a.ts < b.ts for a, b in zip(rates, rates[1:]))


def test_rate_history_limit_returns_newest_in_order(seeded_db, rate_frame):
    rates = seeded_db.select_rate_history(PAIR, limit=5)
    assert [r.rate for r in rates] == pytest.approx(rate_frame["rate"].tolist()[-5:])


def test_latest_timestamp(seeded_db, rate_frame):
    assert seeded_db.get_latest_timestamp(PAIR) == int(rate_frame["ts"].max())
    assert seeded_db.get_latest_timestamp("EUR/USD") is None


def test_save_rates_requires_columns(db, rate_frame):
    with pytest.raises(ValueError):
        db.save_rates(rate_frame.drop(columns=["rate"]))


def test_training_dataset_rows_are_recorded(db):
    rows = [TrainingDatasetRow(PAIR, [1.0, 2.0, 3.0], 4.0, "inserted by training") for _ in range(3)]
    db.insert_training_dataset_rows(rows)
    assert db.count_training_dataset_rows(PAIR) == 3


def test_generation_history_round_trip(db):
    db.save_generation("run1", PAIR, 1, 0.5, 2.0, PARAMS, "KNN")
    db.save_generation("run1", PAIR, 2, None, 0.5, None)

    df = db.load_generations(PAIR)
    assert df["generation"].tolist() == [1, 2]
    assert df["best_mse"].iloc[0] == pytest.approx(0.5)
    assert FeatureParams.from_json(df["params"].iloc[0]) == PARAMS
    assert db.load_generations("EUR/USD").empty
