"""
Repeated-holdout model calibration
==================================
For one (spectral domain, method, CV scheme) combination and each seed:

  1. Build the fold partition (spatial LLO folds or repeated k-fold)
  2. Tune the hyperparameter by GridSearchCV on RMSE; zero-variance filter
     and standardization live inside the pipeline, so they are fit on the
     training folds only
  3. Persist the refit model with its structured key
  4. Record per-fold RMSE / R2 / MAE at the selected hyperparameter
  5. Record the mean performance at the selected hyperparameter

Failures of a single iteration (solver errors, write errors) are logged and
collected; the remaining iterations still run.

Output:
  data/tuned_models/{method}_{domain}_{scheme}_model_{i}.joblib
  data/cross_validation/{method}_{domain}_{scheme}_cross_validation.{csv,xlsx}
  data/cross_validation/{method}_{domain}_{scheme}_best_models.{csv,xlsx}
  data/cross_validation/{method}_{domain}_{scheme}_failures.{csv,xlsx}
"""
from __future__ import annotations

import gc
import logging
import time
import warnings
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd
from sklearn.cross_decomposition import PLSRegression
from sklearn.exceptions import ConvergenceWarning
from sklearn.feature_selection import VarianceThreshold
from sklearn.linear_model import Lasso
from sklearn.model_selection import GridSearchCV
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from tqdm import tqdm

from . import config
from .file_utils import write_table
from .model_store import FittedModel, ModelKey, model_path, save_model
from .s02_profiles import (
    design_matrix,
    encode_covariates,
    load_domain_tables,
    metadata_covariates,
)
from .s03_folds import FoldConfigurationError, FoldPartition, build_folds

logger = logging.getLogger(__name__)

# method -> (record column, pipeline parameter)
HYPERPARAMETERS = {
    "penalized-linear": ("lambda", "model__alpha"),
    "latent-component": ("ncomp", "model__n_components"),
}

SCORING = {
    "RMSE": "neg_root_mean_squared_error",
    "R2": "r2",
    "MAE": "neg_mean_absolute_error",
}


class ModelFitError(RuntimeError):
    """Tuning or refitting failed for one iteration."""


@dataclass
class IterationResult:
    fitted: FittedModel
    cv_records: pd.DataFrame
    best_record: dict


@dataclass
class CalibrationResult:
    domain: str
    method: str
    scheme: str
    cv_records: pd.DataFrame
    best_records: pd.DataFrame
    failures: pd.DataFrame

    @property
    def stem(self) -> str:
        return f"{config.METHODS[self.method]}_{self.domain}_{config.SCHEMES[self.scheme]}"


def build_estimator(method: str, max_iter: int = config.LASSO_MAX_ITER) -> Pipeline:
    """Zero-variance filter -> center/scale -> model."""
    if method == "penalized-linear":
        model = Lasso(max_iter=max_iter)
    elif method == "latent-component":
        model = PLSRegression(scale=False)
    else:
        raise ValueError(f"Unknown modeling method: {method}")

    return Pipeline([
        ("zv", VarianceThreshold(threshold=0.0)),
        ("scale", StandardScaler()),
        ("model", model),
    ])


def usable_features(X, partition: FoldPartition) -> int:
    """Fewest columns left by the zero-variance filter in any training fold."""
    values = np.asarray(X, dtype=float)
    return min(
        int(np.count_nonzero(np.ptp(values[train_idx], axis=0) > 0))
        for train_idx, _ in partition.splits()
    )


def param_grid(
    method: str,
    X,
    partition: FoldPartition,
    lambdas: list[float] | None = None,
    max_components: int = config.MAX_COMPONENTS,
) -> dict:
    """
    Hyperparameter search range.

    PLS components are capped so every training fold can support them, after
    constant columns have been dropped.
    """
    if method == "penalized-linear":
        return {"model__alpha": list(config.LAMBDA_GRID if lambdas is None else lambdas)}
    if method == "latent-component":
        upper = min(max_components, usable_features(X, partition), partition.min_train_size() - 1)
        if upper < 1:
            raise FoldConfigurationError("Training folds too small for a single PLS component")
        return {"model__n_components": list(range(1, upper + 1))}
    raise ValueError(f"Unknown modeling method: {method}")


def fit_iteration(
    X: pd.DataFrame,
    y: np.ndarray,
    key: ModelKey,
    seed: int,
    partition: FoldPartition,
    lambdas: list[float] | None = None,
    max_components: int = config.MAX_COMPONENTS,
    n_jobs: int = config.GRID_N_JOBS,
    covariate_levels: dict | None = None,
) -> IterationResult:
    """Tune, refit and summarise one iteration."""
    grid = param_grid(key.method, X, partition, lambdas, max_components)
    search = GridSearchCV(
        estimator=build_estimator(key.method),
        param_grid=grid,
        scoring=SCORING,
        refit="RMSE",
        cv=list(partition.splits()),
        n_jobs=n_jobs,
        error_score="raise",
    )

    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            # Lasso(alpha=0) is an intended grid point
            warnings.filterwarnings("ignore", message=".*alpha=0.*")
            search.fit(X, y)
    except Exception as exc:
        raise ModelFitError(f"{key.stem} (seed {seed}): {exc}") from exc

    res = search.cv_results_
    best = search.best_index_
    column, param = HYPERPARAMETERS[key.method]
    value = res["params"][best][param]

    rows = []
    for i, label in enumerate(partition.labels):
        rows.append({
            "iteration": key.iteration,
            "seed": seed,
            "fold": label,
            column: value,
            "RMSE": -float(res[f"split{i}_test_RMSE"][best]),
            "R2": float(res[f"split{i}_test_R2"][best]),
            "MAE": -float(res[f"split{i}_test_MAE"][best]),
        })

    best_record = {
        "iteration": key.iteration,
        "seed": seed,
        column: value,
        "RMSE": -float(res["mean_test_RMSE"][best]),
        "R2": float(res["mean_test_R2"][best]),
        "MAE": -float(res["mean_test_MAE"][best]),
        "RMSE_SD": float(res["std_test_RMSE"][best]),
        "R2_SD": float(res["std_test_R2"][best]),
        "MAE_SD": float(res["std_test_MAE"][best]),
        "n_folds": partition.n_folds,
    }

    fitted = FittedModel(
        key=key,
        seed=seed,
        estimator=search.best_estimator_,
        hyperparameter={column: value},
        feature_names=list(X.columns),
        covariate_levels=dict(covariate_levels or {}),
    )
    return IterationResult(fitted=fitted, cv_records=pd.DataFrame(rows), best_record=best_record)


def calibrate(
    table: pd.DataFrame,
    domain: str,
    method: str,
    scheme: str,
    seeds: list[int] = config.SEEDS,
    models_dir: Path = config.MODELS_DIR,
    covariates: tuple[str, ...] = (),
    k: int = config.N_FOLDS,
    repeats: int = config.N_REPEATS,
    lambdas: list[float] | None = None,
    max_components: int = config.MAX_COMPONENTS,
    n_jobs: int = config.GRID_N_JOBS,
) -> CalibrationResult:
    """
    Run the repeated-holdout loop for one combination.

    Iterations are numbered 1..len(seeds). Schema and fold configuration
    errors are raised before any model is fit; per-iteration fit and write
    errors are logged and returned in ``failures``.
    """
    if method not in config.METHODS:
        raise ValueError(f"Unknown modeling method: {method}")
    if scheme not in config.SCHEMES:
        raise ValueError(f"Unknown cross-validation scheme: {scheme}")

    _, levels = encode_covariates(table, covariates)
    X, y, groups = design_matrix(table, covariates, levels=levels)
    # Too few profiles or rows fails for every seed; stop before fitting
    first_folds = build_folds(scheme, groups, seed=seeds[0], k=k, repeats=repeats)
    param_grid(method, X, first_folds, lambdas, max_components)
    del first_folds

    cv_frames: list[pd.DataFrame] = []
    best_rows: list[dict] = []
    failures: list[dict] = []

    label = f"{config.METHODS[method]} {domain} {config.SCHEMES[scheme]}"
    for iteration, seed in enumerate(tqdm(seeds, desc=f"  {label}", unit="model", ncols=90), start=1):
        key = ModelKey(domain, method, scheme, iteration)
        partition = build_folds(scheme, groups, seed=seed, k=k, repeats=repeats)

        try:
            result = fit_iteration(
                X, y, key, seed, partition,
                lambdas=lambdas, max_components=max_components, n_jobs=n_jobs,
                covariate_levels=levels,
            )
            save_model(result.fitted, models_dir)
        except (ModelFitError, FoldConfigurationError) as exc:
            # a seed-specific fold layout can leave no room for a single PLS component
            logger.warning("Iteration %d (seed %d) failed to fit: %s", iteration, seed, exc)
            failures.append({"iteration": iteration, "seed": seed, "error": f"{type(exc).__name__}: {exc}"})
            continue
        except OSError as exc:
            logger.warning("Iteration %d (seed %d) could not be saved: %s", iteration, seed, exc)
            failures.append({"iteration": iteration, "seed": seed, "error": f"{type(exc).__name__}: {exc}"})
            model_path(key, models_dir).unlink(missing_ok=True)
            continue

        cv_frames.append(result.cv_records)
        best_rows.append(result.best_record)

        # Nothing model-sized survives into the next iteration
        del result, partition
        gc.collect()

    if failures:
        logger.warning("%s: %d of %d iterations failed", label, len(failures), len(seeds))

    return CalibrationResult(
        domain=domain,
        method=method,
        scheme=scheme,
        cv_records=pd.concat(cv_frames, ignore_index=True) if cv_frames else pd.DataFrame(),
        best_records=pd.DataFrame(best_rows),
        failures=pd.DataFrame(failures, columns=["iteration", "seed", "error"]),
    )


def save_summaries(result: CalibrationResult, out_dir: Path = config.CV_DIR) -> list[Path]:
    """Write cross-validation, best-model and failure tables (CSV + Excel)."""
    written = []
    written += write_table(result.cv_records, out_dir, f"{result.stem}_cross_validation")
    written += write_table(result.best_records, out_dir, f"{result.stem}_best_models")
    written += write_table(result.failures, out_dir, f"{result.stem}_failures")
    return written


def main() -> None:
    """Main execution: calibrate every domain x scheme x method combination."""
    print("=" * 70)
    print("  Repeated-holdout calibration  --  LASSO / PLS x LLO-CV / k-fold CV")
    print("=" * 70)

    for domain in config.DOMAINS:
        training, _ = load_domain_tables(domain)
        print(f"\n  {domain}: {len(training)} training rows, "
              f"{training[config.PROFILE_COL].nunique()} profiles")

        lasso_covariates = metadata_covariates(training, domain)
        print(f"  LASSO covariates: {', '.join(map(str, lasso_covariates)) or 'none'}")

        for scheme in config.SCHEMES:
            for method in config.METHODS:
                covariates = lasso_covariates if method == "penalized-linear" else ()
                t0 = time.time()
                result = calibrate(training, domain, method, scheme, covariates=covariates)
                save_summaries(result)

                best = result.best_records
                rmse = best["RMSE"].mean() if len(best) else float("nan")
                tqdm.write(
                    f"  {result.stem:<24s} mean RMSE={rmse:.4f}  "
                    f"failed={len(result.failures)}  ({time.time() - t0:.0f}s)"
                )

    print(f"\n  Results -> {config.CV_DIR}/")


if __name__ == "__main__":
    main()
