"""Pytest configuration and shared fixtures."""
import pytest
import sys
from pathlib import Path

import numpy as np
import pandas as pd

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from soc_spectra import config
from soc_spectra.s02_profiles import assign_profile_ids

# Small workbook: 3 metadata columns, 40 VNIR-SWIR bands, 30 MIR bands
SMALL_METADATA = 3
SMALL_LAYOUTS = {
    "VNIR_SWIR": {"start": 3, "n_bands": 40, "holdout_seed": 365},
    "MIR": {"start": 43, "n_bands": 30, "holdout_seed": 256},
}


@pytest.fixture
def small_layouts():
    return SMALL_LAYOUTS


@pytest.fixture
def raw_workbook():
    """Synthetic raw workbook shaped like the real one, only narrower."""
    rng = np.random.default_rng(42)
    n = 24
    vnir_wl = np.arange(400, 800, 10)
    mir_wl = np.arange(2500, 5500, 100)

    base = np.linspace(0.2, 0.6, len(vnir_wl))
    vnir = base + rng.normal(0, 0.01, (n, len(vnir_wl)))
    mir = 0.3 + 0.1 * np.sin(mir_wl / 400.0) + rng.normal(0, 0.01, (n, len(mir_wl)))

    meta = pd.DataFrame({
        config.PROFILE_LABEL_COL: [f"P{i // 4:02d}" for i in range(n)],
        "depth_cm": np.tile([10, 30, 60, 90], n // 4),
        config.RESPONSE_COL: rng.uniform(2, 30, n),
    })
    return pd.concat([
        meta,
        pd.DataFrame(vnir, columns=[str(w) for w in vnir_wl]),
        pd.DataFrame(mir, columns=[str(w) for w in mir_wl]),
    ], axis=1)


@pytest.fixture
def linear_table():
    """
    20 profiles x 4 samples; response = 2.5 * refl_400_nm + small noise.

    The other five predictors are pure noise.
    """
    rng = np.random.default_rng(7)
    n = 80
    wavelengths = [400, 410, 420, 430, 440, 450]
    X = rng.normal(0, 1, (n, len(wavelengths)))
    y = 2.5 * X[:, 0] + 10.0 + rng.normal(0, 0.05, n)

    table = pd.DataFrame({
        config.PROFILE_LABEL_COL: [f"P{i // 4:02d}" for i in range(n)],
        "depth_cm": np.tile([10, 30, 60, 90], n // 4).astype(float),
        config.RESPONSE_COL: y,
    })
    features = pd.DataFrame(X, columns=[f"refl_{w}_nm" for w in wavelengths])
    return assign_profile_ids(pd.concat([table, features], axis=1))
