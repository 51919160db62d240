"""
Holdout predictions and variable importance
===========================================
Apply every stored model of a combination to the leave-location-out holdout
profiles and collect one prediction column per model. Variable importance is
|standardized coefficient| for LASSO and VIP scores for PLS.

Output:
  data/predictions/test_{method}_{domain}_{scheme}.{csv,xlsx}
  data/predictions/metrics_{method}_{domain}_{scheme}.{csv,xlsx}
  data/predictions/vip_{method}_{domain}_{scheme}.{csv,xlsx}
"""
from __future__ import annotations

import concurrent.futures
from typing import Iterable

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score
from tqdm import tqdm

from . import config
from .file_utils import write_table
from .model_store import FittedModel, iter_models
from .s01_spectra import spectral_columns
from .s02_profiles import load_domain_tables


def predict_holdout(
    models: Iterable[FittedModel],
    holdout: pd.DataFrame,
    n_workers: int = config.N_WORKERS,
) -> pd.DataFrame:
    """
    Wide prediction table: holdout metadata plus one column per model.

    Models predict concurrently; each task only reads the shared holdout
    table and returns its own column.
    """
    spectral = set(spectral_columns(holdout))
    meta_cols = [c for c in holdout.columns if c not in spectral]

    predictions = {}
    with concurrent.futures.ThreadPoolExecutor(max_workers=n_workers) as executor:
        futures = {executor.submit(m.predict, holdout): m.key for m in models}
        for future in tqdm(concurrent.futures.as_completed(futures), total=len(futures),
                           desc="  predicting", unit="model", ncols=90, leave=False):
            predictions[futures[future]] = future.result()

    ordered = sorted(predictions, key=lambda k: k.iteration)
    wide = pd.DataFrame({k.stem: predictions[k] for k in ordered}, index=holdout.index)
    return pd.concat([holdout[meta_cols], wide], axis=1)


def compute_rpd(y_true, rmse):
    """Ratio of Performance to Deviation."""
    sd = float(np.std(y_true, ddof=1))
    return sd / rmse if rmse > 0 else float("inf")


def holdout_metrics(
    predictions: pd.DataFrame,
    model_columns: list[str],
    response_col: str = config.RESPONSE_COL,
) -> pd.DataFrame:
    """RMSE, R2, MAE and RPD of each model column against the measured response."""
    y_true = predictions[response_col].to_numpy(dtype=float)
    rows = []
    for col in model_columns:
        y_pred = predictions[col].to_numpy(dtype=float)
        rmse = float(np.sqrt(mean_squared_error(y_true, y_pred)))
        rows.append({
            "model": col,
            "RMSE": rmse,
            "R2": float(r2_score(y_true, y_pred)),
            "MAE": float(mean_absolute_error(y_true, y_pred)),
            "RPD": compute_rpd(y_true, rmse),
        })
    return pd.DataFrame(rows)


def _vip_scores(pls) -> np.ndarray:
    """Variable Importance in Projection of a fitted PLSRegression."""
    t = pls.x_scores_
    w = pls.x_weights_
    q = pls.y_loadings_
    ss = np.sum(t ** 2, axis=0) * np.ravel(q) ** 2
    if ss.sum() == 0:
        return np.zeros(w.shape[0])
    w_norm = w / np.linalg.norm(w, axis=0)
    return np.sqrt(w.shape[0] * (w_norm ** 2 @ ss) / ss.sum())


def variable_importance(fitted: FittedModel) -> pd.Series:
    """
    Importance of every input predictor of one model.

    Predictors removed by the zero-variance filter score 0.
    """
    pipeline = fitted.estimator
    kept = pipeline.named_steps["zv"].get_support()
    model = pipeline.named_steps["model"]

    if fitted.key.method == "penalized-linear":
        scores = np.abs(np.ravel(model.coef_))
    elif fitted.key.method == "latent-component":
        scores = _vip_scores(model)
    else:
        raise ValueError(f"Unknown modeling method: {fitted.key.method}")

    importance = np.zeros(len(fitted.feature_names))
    importance[kept] = scores
    return pd.Series(importance, index=fitted.feature_names, name=fitted.key.stem)


def importance_table(models: Iterable[FittedModel]) -> pd.DataFrame:
    """Rows = predictors, one importance column per model."""
    columns = [variable_importance(m) for m in sorted(models, key=lambda m: m.key.iteration)]
    if not columns:
        return pd.DataFrame(columns=["feature"])
    table = pd.concat(columns, axis=1)
    table.index.name = "feature"
    return table.reset_index()


def main() -> None:
    """Main execution: predict the holdout with every stored model and extract importance."""
    print("=" * 60)
    print("Holdout predictions and variable importance")
    print("=" * 60)

    for domain in config.DOMAINS:
        _, holdout = load_domain_tables(domain)
        print(f"\n  {domain}: {len(holdout)} holdout rows")

        for scheme in config.SCHEMES:
            for method in config.METHODS:
                models = list(iter_models(domain, method, scheme))
                if not models:
                    continue
                stem = f"{config.METHODS[method]}_{domain}_{config.SCHEMES[scheme]}"

                predictions = predict_holdout(models, holdout)
                write_table(predictions, config.PREDICTIONS_DIR, f"test_{stem}")

                metrics = holdout_metrics(predictions, [m.key.stem for m in models])
                write_table(metrics, config.PREDICTIONS_DIR, f"metrics_{stem}")

                write_table(importance_table(models), config.PREDICTIONS_DIR, f"vip_{stem}")

                print(f"    ✓ {stem}: {len(models)} models, "
                      f"holdout RMSE {metrics['RMSE'].mean():.4f} ± {metrics['RMSE'].std():.4f}")
                del models

    print(f"\n  Results -> {config.PREDICTIONS_DIR}/")


if __name__ == "__main__":
    main()
