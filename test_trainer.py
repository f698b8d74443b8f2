import logging

import pytest
from sklearn.linear_model import LinearRegression

from forecast_lab.features import FeatureConverter
from forecast_lab.model import FeatureParams, ModelFamily, ModelRecord
from forecast_lab.trainer import ENABLED_FAMILIES, ModelFactory

PARAMS = FeatureParams(feature_size=3, fast_period=2, slow_period=4, signal_period=2, bb_period=2)


def _features(splits, params=PARAMS):
    return (
        FeatureConverter.convert_all(splits.train_histories, params),
        FeatureConverter.convert_all(splits.test_histories, params),
    )


def test_logistic_family_is_never_trained():
    assert ModelFamily.LOGISTIC not in ENABLED_FAMILIES
    assert len(ENABLED_FAMILIES) == 7


def test_train_all_families_builds_one_scored_candidate_per_family(cfg, linear_splits):
    factory = ModelFactory(cfg)
    train_x, test_x = _features(linear_splits)
    candidates = factory.train_all_families(
        train_x, linear_splits.train_labels, test_x, linear_splits.test_labels, PARAMS, 1
    )

    assert [c.family for c in candidates] == ENABLED_FAMILIES
    for c in candidates:
        assert c.memo == c.family.value
        assert c.model_no == 1
        assert c.pair == cfg["currency_pair"]
        assert c.input_data_size == 12
        assert c.feature_params == PARAMS
        assert c.mse >= 0.0
        assert c.rmse == pytest.approx(c.mse ** 0.5)

    linear = next(c for c in candidates if c.family is ModelFamily.LINEAR)
    assert linear.mse == pytest.approx(0.0, abs=1e-6)


def test_failing_family_is_skipped_and_logged(cfg, linear_splits, caplog):
    cfg["models"] = {"RandomForest": {"n_estimators": 0}}
    factory = ModelFactory(cfg, logging.getLogger("trainer-test"))
    train_x, test_x = _features(linear_splits)

    with caplog.at_level(logging.WARNING):
        candidates = factory.train_all_families(
            train_x, linear_splits.train_labels, test_x, linear_splits.test_labels, PARAMS, 1
        )

    assert ModelFamily.RANDOM_FOREST not in [c.family for c in candidates]
    assert len(candidates) == 6
    assert "RandomForest" in caplog.text


def test_model_overrides_merge_over_defaults(cfg):
    cfg["models"] = {"Ridge": {"alpha": 2.0}, "SVR": {"C": 10.0}}
    factory = ModelFactory(cfg)
    assert factory.build(ModelFamily.RIDGE).alpha == 2.0
    svr = factory.build(ModelFamily.SVR)
    assert svr.C == 10.0
    assert svr.gamma == 0.5
    assert svr.epsilon == 10.0


def test_best_of_prefers_first_on_ties(cfg, linear_splits):
    factory = ModelFactory(cfg)
    train_x, test_x = _features(linear_splits)
    candidates = factory.train_all_families(
        train_x, linear_splits.train_labels, test_x, linear_splits.test_labels, PARAMS, 1
    )
    for c in candidates:
        c.update_performance(0.5)
    assert ModelFactory.best_of(candidates) is candidates[0]
    assert ModelFactory.best_of([]) is None


def _store_linear(db, cfg, splits, model_no, input_size):
    train_x, _ = _features(splits)
    model = LinearRegression().fit(train_x, splits.train_labels)
    db.upsert_model(
        ModelRecord(
            pair=cfg["currency_pair"],
            model_no=model_no,
            family=ModelFamily.LINEAR,
            model=model,
            input_data_size=input_size,
            feature_params=PARAMS,
            feature_params_hash=PARAMS.to_hash(),
            mse=123.0,
            rmse=123.0 ** 0.5,
            memo="Linear",
        )
    )


def test_load_seed_model_absent_returns_none(cfg, db):
    assert ModelFactory(cfg).load_seed_model(db, cfg["currency_pair"], 2) is None


def test_load_seed_model_ignores_mismatched_input_size(cfg, db, linear_splits, caplog):
    _store_linear(db, cfg, linear_splits, 2, input_size=99)
    with caplog.at_level(logging.WARNING):
        seed = ModelFactory(cfg).load_seed_model(db, cfg["currency_pair"], 2)
    assert seed is None
    assert "input size is unmatched" in caplog.text


def test_load_seed_model_ignores_undecodable_blob(cfg, db, linear_splits, caplog):
    _store_linear(db, cfg, linear_splits, 2, input_size=12)
    with db._conn:
        db._conn.execute("UPDATE forecast_models SET model_data = x'00ff00' WHERE model_no = 2")
    with caplog.at_level(logging.WARNING):
        seed = ModelFactory(cfg).load_seed_model(
            db, cfg["currency_pair"], 2, linear_splits.test_histories, linear_splits.test_labels
        )
    assert seed is None
    assert "cannot be decoded" in caplog.text


def test_load_seed_model_rescores_on_test_data(cfg, db, linear_splits):
    _store_linear(db, cfg, linear_splits, 2, input_size=12)
    seed = ModelFactory(cfg).load_seed_model(
        db, cfg["currency_pair"], 2, linear_splits.test_histories, linear_splits.test_labels
    )
    assert seed is not None
    assert seed.family is ModelFamily.LINEAR
    assert seed.mse == pytest.approx(0.0, abs=1e-6)
