"""
Persistence of tuned models.

Each model is stored as one joblib bundle that carries its own structured
key (domain, method, scheme, iteration). Listing reads the key back from the
bundle; file names are only a readable convention.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Iterator

import joblib
import numpy as np
import pandas as pd

from . import config
from .s02_profiles import encode_covariates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelKey:
    domain: str
    method: str
    scheme: str
    iteration: int

    @property
    def stem(self) -> str:
        """e.g. lasso_MIR_LLO_model_007"""
        return (
            f"{config.METHODS[self.method]}_{self.domain}_"
            f"{config.SCHEMES[self.scheme]}_model_{self.iteration:03d}"
        )


@dataclass
class FittedModel:
    """A tuned pipeline plus everything needed to use it later."""

    key: ModelKey
    seed: int
    estimator: object
    hyperparameter: dict
    feature_names: list[str]
    # levels of dummy-coded covariates, {column: levels}
    covariate_levels: dict = field(default_factory=dict)

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        if self.covariate_levels:
            dummies, _ = encode_covariates(X, tuple(self.covariate_levels), self.covariate_levels)
            X = pd.concat([X.drop(columns=list(self.covariate_levels)), dummies], axis=1)
        missing = [c for c in self.feature_names if c not in X.columns]
        if missing:
            raise KeyError(f"{self.key.stem}: predictors missing from input, e.g. {missing[:5]}")
        return np.ravel(self.estimator.predict(X[self.feature_names]))


def model_path(key: ModelKey, models_dir: Path = config.MODELS_DIR) -> Path:
    return models_dir / f"{key.stem}.joblib"


def save_model(fitted: FittedModel, models_dir: Path = config.MODELS_DIR) -> Path:
    """Write the bundle; returns its path."""
    models_dir.mkdir(parents=True, exist_ok=True)
    path = model_path(fitted.key, models_dir)
    bundle = {
        "key": asdict(fitted.key),
        "seed": fitted.seed,
        "estimator": fitted.estimator,
        "hyperparameter": fitted.hyperparameter,
        "feature_names": fitted.feature_names,
        "covariate_levels": fitted.covariate_levels,
    }
    joblib.dump(bundle, path)
    return path


def load_model(path: Path) -> FittedModel:
    bundle = joblib.load(path)
    return FittedModel(
        key=ModelKey(**bundle["key"]),
        seed=bundle["seed"],
        estimator=bundle["estimator"],
        hyperparameter=bundle["hyperparameter"],
        feature_names=bundle["feature_names"],
        covariate_levels=bundle.get("covariate_levels", {}),
    )


def iter_models(
    domain: str,
    method: str,
    scheme: str,
    models_dir: Path = config.MODELS_DIR,
) -> Iterator[FittedModel]:
    """
    Yield the stored models of one combination in iteration order.

    Files are ordered by the iteration number in their name and loaded one
    at a time; a bundle whose key disagrees with its file name is skipped.
    """
    prefix = ModelKey(domain, method, scheme, 0).stem.rsplit("_", 1)[0]
    numbered = []
    for path in models_dir.glob(f"{prefix}_*.joblib"):
        suffix = path.stem[len(prefix) + 1:]
        if not suffix.isdigit():
            logger.warning("Skipping %s: no iteration number in file name", path.name)
            continue
        numbered.append((int(suffix), path))

    n_loaded = 0
    for iteration, path in sorted(numbered):
        fitted = load_model(path)
        if fitted.key != ModelKey(domain, method, scheme, iteration):
            logger.warning("Skipping %s: bundle key %s does not match its file name", path.name, fitted.key)
            continue
        n_loaded += 1
        yield fitted

    if not n_loaded:
        logger.warning("No stored models for %s / %s / %s in %s", domain, method, scheme, models_dir)
