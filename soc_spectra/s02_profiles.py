"""
Soil profiles and the leave-location-out holdout
================================================
Map raw profile labels to dense ids, split profiles into a calibration set
and a held-out set, and cut the design matrix used by the model loop.
"""
from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd

from . import config
from .s01_spectra import SpectraSchemaError, spectral_columns


def assign_profile_ids(
    table: pd.DataFrame,
    label_col: str = config.PROFILE_LABEL_COL,
    id_col: str = config.PROFILE_COL,
) -> pd.DataFrame:
    """Add a dense 1..P profile id, numbered in order of first appearance."""
    if label_col not in table.columns:
        raise SpectraSchemaError(f"Profile label column '{label_col}' not found")
    result = table.copy()
    codes, _ = pd.factorize(result[label_col])
    if (codes < 0).any():
        raise SpectraSchemaError(f"Missing profile labels in '{label_col}'")
    result[id_col] = codes + 1
    return result


def llo_split(
    table: pd.DataFrame,
    seed: int,
    train_fraction: float = config.LLO_TRAIN_FRACTION,
    id_col: str = config.PROFILE_COL,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Leave-location-out holdout split.

    round(train_fraction * P) profiles are drawn without replacement for
    calibration; every row of the remaining profiles is held out.

    Returns:
        (training, holdout), both with a fresh RangeIndex
    """
    if not 0.0 < train_fraction < 1.0:
        raise ValueError(f"train_fraction must be in (0, 1), got {train_fraction}")

    profiles = np.unique(table[id_col].to_numpy())
    n_train = int(round(train_fraction * len(profiles)))
    rng = np.random.default_rng(seed)
    train_profiles = rng.choice(profiles, size=n_train, replace=False)

    mask = table[id_col].isin(train_profiles)
    return table[mask].reset_index(drop=True), table[~mask].reset_index(drop=True)


def metadata_covariates(table: pd.DataFrame, domain: str) -> tuple[str, ...]:
    """Names of the metadata columns added to the LASSO inputs of a domain."""
    positions = config.LASSO_COVARIATES.get(domain, ())
    bad = [p for p in positions if p >= min(config.N_METADATA_COLUMNS, table.shape[1])]
    if bad:
        raise SpectraSchemaError(f"{domain}: covariate positions {bad} fall outside the metadata block")
    return tuple(table.columns[p] for p in positions)


def encode_covariates(
    table: pd.DataFrame,
    covariates: tuple[str, ...] | list[str],
    levels: dict | None = None,
) -> tuple[pd.DataFrame, dict]:
    """
    Covariate block of the design matrix.

    Numeric covariates pass through. Text or categorical ones become 0/1
    dummy columns named ``{column}_{level}``, first level dropped. Levels are
    learned from ``table`` unless given, so new data can be encoded exactly
    like the calibration data.

    Returns:
        (encoded covariates, {column: levels} for every dummy-coded column)
    """
    missing = [c for c in covariates if c not in table.columns]
    if missing:
        raise SpectraSchemaError(f"Missing required columns: {missing}")

    levels = dict(levels or {})
    parts = []
    for col in covariates:
        values = table[col]
        if col not in levels and pd.api.types.is_numeric_dtype(values):
            parts.append(values.astype(float))
            continue

        if values.isna().any():
            raise SpectraSchemaError(f"Missing values in categorical covariate '{col}'")
        if col not in levels:
            levels[col] = sorted(values.unique().tolist(), key=str)
        coded = pd.Categorical(values, categories=levels[col])
        if pd.isna(coded).any():
            unseen = sorted(set(values) - set(levels[col]), key=str)
            raise SpectraSchemaError(f"Covariate '{col}' has levels unseen in calibration: {unseen}")
        parts.append(pd.get_dummies(
            pd.Series(coded, index=table.index), prefix=col, drop_first=True, dtype=float
        ))

    encoded = pd.concat(parts, axis=1) if parts else pd.DataFrame(index=table.index)
    return encoded, levels


def design_matrix(
    table: pd.DataFrame,
    covariates: tuple[str, ...] | list[str] = (),
    response_col: str = config.RESPONSE_COL,
    id_col: str = config.PROFILE_COL,
    levels: dict | None = None,
) -> tuple[pd.DataFrame, np.ndarray, np.ndarray]:
    """
    Predictors, response and grouping vector for model calibration.

    Args:
        table: Feature table with profile ids assigned
        covariates: Extra metadata columns placed before the spectra;
            non-numeric ones are dummy-coded
        levels: Known levels of categorical covariates (see encode_covariates)

    Returns:
        (X, y, groups)
    """
    missing = [c for c in (response_col, id_col, *covariates) if c not in table.columns]
    if missing:
        raise SpectraSchemaError(f"Missing required columns: {missing}")

    spectral = spectral_columns(table)
    if not spectral:
        raise SpectraSchemaError("No spectral predictor columns found")

    encoded, _ = encode_covariates(table, covariates, levels)
    X = pd.concat([encoded, table[spectral]], axis=1)
    y = table[response_col].to_numpy(dtype=float)
    if X.isna().any().any():
        bad = X.columns[X.isna().any()].tolist()[:5]
        raise SpectraSchemaError(f"NaN in predictor columns, e.g. {bad}")
    if np.isnan(y).any():
        raise SpectraSchemaError(f"NaN in response column '{response_col}'")

    return X, y, table[id_col].to_numpy()


def load_domain_tables(
    domain: str,
    features_dir: Path = config.FEATURES_DIR,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Load a domain's feature table and return its (training, holdout) LLO split."""
    path = features_dir / f"{domain}_features.csv"
    if not path.exists():
        raise FileNotFoundError(f"Feature table not found: {path}. Run s01_spectra first.")
    table = assign_profile_ids(pd.read_csv(path, low_memory=False))
    return llo_split(table, seed=config.DOMAINS[domain]["holdout_seed"])
