"""Tests for model_store.py"""
import logging

import joblib
import pytest
import numpy as np

from soc_spectra import model_store
from soc_spectra.model_store import FittedModel, ModelKey
from soc_spectra.s02_profiles import design_matrix
from soc_spectra.s04_calibration import build_estimator


def _fitted(linear_table, iteration, method="penalized-linear", scheme="grouped"):
    X, y, _ = design_matrix(linear_table)
    estimator = build_estimator(method)
    if method == "penalized-linear":
        estimator.set_params(model__alpha=0.05)
        hyper = {"lambda": 0.05}
    else:
        estimator.set_params(model__n_components=2)
        hyper = {"ncomp": 2}
    estimator.fit(X, y)
    return FittedModel(
        key=ModelKey("MIR", method, scheme, iteration),
        seed=iteration * 10,
        estimator=estimator,
        hyperparameter=hyper,
        feature_names=list(X.columns),
    )


def test_key_stem():
    assert ModelKey("MIR", "penalized-linear", "grouped", 7).stem == "lasso_MIR_LLO_model_007"
    assert ModelKey("VNIR_SWIR", "latent-component", "plain", 100).stem == \
        "pls_VNIR_SWIR_kFold_model_100"


def test_save_load_identical_predictions(tmp_path, linear_table):
    fitted = _fitted(linear_table, 1, method="latent-component")
    path = model_store.save_model(fitted, tmp_path)

    assert path == tmp_path / "pls_MIR_LLO_model_001.joblib"
    loaded = model_store.load_model(path)

    assert loaded.key == fitted.key
    assert loaded.seed == 10
    assert loaded.hyperparameter == {"ncomp": 2}
    np.testing.assert_array_equal(loaded.predict(linear_table), fitted.predict(linear_table))


def test_predict_uses_stored_column_order(linear_table):
    fitted = _fitted(linear_table, 1)
    shuffled = linear_table[linear_table.columns[::-1]]
    np.testing.assert_array_equal(fitted.predict(shuffled), fitted.predict(linear_table))


def test_predict_missing_predictor(linear_table):
    fitted = _fitted(linear_table, 1)
    with pytest.raises(KeyError, match="refl_400_nm"):
        fitted.predict(linear_table.drop(columns=["refl_400_nm"]))


def test_iter_models_in_iteration_order(tmp_path, linear_table):
    for i in (3, 1, 2):
        model_store.save_model(_fitted(linear_table, i), tmp_path)
    # another combination in the same directory
    model_store.save_model(_fitted(linear_table, 1, method="latent-component"), tmp_path)
    model_store.save_model(_fitted(linear_table, 1, scheme="plain"), tmp_path)

    models = list(model_store.iter_models("MIR", "penalized-linear", "grouped", tmp_path))

    assert [m.key.iteration for m in models] == [1, 2, 3]
    assert all(m.key.method == "penalized-linear" for m in models)


def test_iter_models_skips_mismatched_bundle(tmp_path, linear_table, caplog):
    fitted = _fitted(linear_table, 1, method="latent-component")
    model_store.save_model(fitted, tmp_path)
    # bundle key says PLS, file name says LASSO
    bundle = joblib.load(tmp_path / "pls_MIR_LLO_model_001.joblib")
    joblib.dump(bundle, tmp_path / "lasso_MIR_LLO_model_002.joblib")

    with caplog.at_level(logging.WARNING):
        models = list(model_store.iter_models("MIR", "penalized-linear", "grouped", tmp_path))

    assert models == []
    assert "does not match" in caplog.text


def test_iter_models_loads_one_bundle_at_a_time(tmp_path, linear_table, monkeypatch):
    for i in (1, 2, 3):
        model_store.save_model(_fitted(linear_table, i), tmp_path)

    loaded = []
    real_load = model_store.load_model

    def counting_load(path):
        loaded.append(path.name)
        return real_load(path)

    monkeypatch.setattr(model_store, "load_model", counting_load)
    models = model_store.iter_models("MIR", "penalized-linear", "grouped", tmp_path)

    first = next(models)
    assert first.key.iteration == 1
    assert loaded == ["lasso_MIR_LLO_model_001.joblib"]


def test_iter_models_orders_by_number_not_name(tmp_path, linear_table):
    for i in (2, 1000, 10):
        model_store.save_model(_fitted(linear_table, i), tmp_path)
    models = list(model_store.iter_models("MIR", "penalized-linear", "grouped", tmp_path))
    assert [m.key.iteration for m in models] == [2, 10, 1000]


def test_predict_encodes_text_covariates(linear_table):
    table = linear_table.copy()
    table["horizon"] = np.tile(["A", "B", "A", "B"], len(table) // 4)
    X, y, _ = design_matrix(table, covariates=("horizon",))
    estimator = build_estimator("penalized-linear").set_params(model__alpha=0.05).fit(X, y)
    fitted = FittedModel(
        key=ModelKey("MIR", "penalized-linear", "grouped", 1),
        seed=1,
        estimator=estimator,
        hyperparameter={"lambda": 0.05},
        feature_names=list(X.columns),
        covariate_levels={"horizon": ["A", "B"]},
    )
    np.testing.assert_array_equal(fitted.predict(table), np.ravel(estimator.predict(X)))


def test_iter_models_empty_directory(tmp_path, caplog):
    with caplog.at_level(logging.WARNING):
        models = list(model_store.iter_models("MIR", "latent-component", "plain", tmp_path))
    assert models == []
    assert "No stored models" in caplog.text
