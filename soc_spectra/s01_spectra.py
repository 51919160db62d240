"""
Spectral Feature Engineering
============================
Expand each reflectance spectrum into four predictor blocks:

  refl_* : reflectance after a moving-mean noise filter
  cr_*   : continuum-removed ratio (spectrum / upper convex hull)
  d1_*   : first derivative with respect to wavelength
  d2_*   : second derivative with respect to wavelength

Done separately for the VNIR-SWIR and MIR domains of the raw workbook.

Output: data/features/{domain}_features.csv
"""
from __future__ import annotations

import logging
import re
from pathlib import Path

import numpy as np
import pandas as pd
from scipy.ndimage import uniform_filter1d

from . import config
from .file_utils import should_skip_file, write_table

logger = logging.getLogger(__name__)

_FEATURE_COL = re.compile(
    r"^(?:%s)_-?\d+(?:\.\d+)?_nm$" % "|".join(config.FEATURE_BLOCKS)
)


class SpectraSchemaError(ValueError):
    """Input table does not have the expected spectral layout."""


def load_workbook(path: Path = config.RAW_WORKBOOK) -> pd.DataFrame:
    """Read the raw spectra workbook."""
    if not path.exists():
        raise FileNotFoundError(f"Spectra workbook not found: {path}")
    return pd.read_excel(path)


def split_domain(
    raw: pd.DataFrame,
    domain: str,
    layout: dict | None = None,
    n_metadata: int = config.N_METADATA_COLUMNS,
) -> tuple[pd.DataFrame, np.ndarray, np.ndarray]:
    """
    Cut one spectral domain out of the raw workbook.

    Args:
        raw: Raw workbook table
        domain: Key of config.DOMAINS
        layout: Override for {"start", "n_bands"}; defaults to config.DOMAINS[domain]
        n_metadata: Number of leading metadata columns

    Returns:
        (metadata, wavelengths, spectra) with wavelengths ascending and
        spectra shaped (n_samples, n_bands)
    """
    if layout is None:
        if domain not in config.DOMAINS:
            raise ValueError(f"Unknown spectral domain: {domain}")
        layout = config.DOMAINS[domain]

    start, n_bands = layout["start"], layout["n_bands"]
    stop = start + n_bands
    if raw.shape[1] < stop:
        raise SpectraSchemaError(
            f"{domain}: expected at least {stop} columns, got {raw.shape[1]}"
        )

    block = raw.iloc[:, start:stop]
    wavelengths = pd.to_numeric(
        pd.Series(block.columns.astype(str)), errors="coerce"
    ).to_numpy(dtype=float)
    if np.isnan(wavelengths).any():
        bad = [c for c, w in zip(block.columns, wavelengths) if np.isnan(w)][:5]
        raise SpectraSchemaError(f"{domain}: non-numeric wavelength headers {bad}")

    spectra = block.to_numpy(dtype=float)
    steps = np.diff(wavelengths)
    if np.all(steps < 0):
        # Some instruments export MIR high-to-low
        wavelengths = wavelengths[::-1]
        spectra = spectra[:, ::-1]
    elif not np.all(steps > 0):
        raise SpectraSchemaError(f"{domain}: wavelengths are not strictly monotonic")

    if not np.isfinite(spectra).all():
        raise SpectraSchemaError(f"{domain}: missing or non-finite reflectance values")

    metadata = raw.iloc[:, :n_metadata].reset_index(drop=True)
    return metadata, wavelengths, np.ascontiguousarray(spectra)


def smooth_spectra(spectra: np.ndarray, half_window: int = config.SMOOTHING_HALF_WINDOW) -> np.ndarray:
    """Moving-mean filter over 2*half_window + 1 bands, edges padded with the edge value."""
    if half_window <= 0:
        return spectra.copy()
    return uniform_filter1d(spectra, size=2 * half_window + 1, axis=1, mode="nearest")


def _upper_hull(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Indices of the upper convex hull vertices (x ascending)."""
    hull: list[int] = []
    for i in range(len(x)):
        while len(hull) >= 2:
            j, k = hull[-2], hull[-1]
            cross = (x[k] - x[j]) * (y[i] - y[j]) - (y[k] - y[j]) * (x[i] - x[j])
            if cross >= 0:
                hull.pop()
            else:
                break
        hull.append(i)
    return np.asarray(hull)


def continuum_removed(spectra: np.ndarray, wavelengths: np.ndarray) -> np.ndarray:
    """
    Continuum removal, ratio form.

    Each spectrum is divided by its upper convex hull, linearly interpolated
    between hull vertices. Hull vertices map to exactly 1.0 and absorption
    features fall below it.
    """
    result = np.empty_like(spectra, dtype=float)
    for row in range(spectra.shape[0]):
        y = spectra[row]
        hull = _upper_hull(wavelengths, y)
        continuum = np.interp(wavelengths, wavelengths[hull], y[hull])
        result[row] = y / continuum
    return result


def derivative(spectra: np.ndarray, wavelengths: np.ndarray, order: int = 1) -> np.ndarray:
    """
    Finite-difference derivative along the wavelength axis.

    Central differences inside, one-sided at the edges, so the band count is
    preserved. Order 2 differentiates the first derivative again.
    """
    if order not in (1, 2):
        raise ValueError(f"Derivative order must be 1 or 2, got {order}")
    result = np.gradient(spectra, wavelengths, axis=1)
    if order == 2:
        result = np.gradient(result, wavelengths, axis=1)
    return result


def feature_names(prefix: str, wavelengths: np.ndarray) -> list[str]:
    return [f"{prefix}_{np.format_float_positional(w, trim='-')}_nm" for w in wavelengths]


def build_feature_table(
    raw: pd.DataFrame,
    domain: str,
    layout: dict | None = None,
    n_metadata: int = config.N_METADATA_COLUMNS,
    half_window: int = config.SMOOTHING_HALF_WINDOW,
) -> pd.DataFrame:
    """
    Build the predictor table for one domain.

    Returns:
        Metadata columns followed by the refl, cr, d1 and d2 blocks
    """
    metadata, wavelengths, spectra = split_domain(raw, domain, layout, n_metadata)

    smoothed = smooth_spectra(spectra, half_window)
    blocks = {
        "refl": smoothed,
        "cr": continuum_removed(smoothed, wavelengths),
        "d1": derivative(smoothed, wavelengths, order=1),
        "d2": derivative(smoothed, wavelengths, order=2),
    }

    columns = []
    for prefix in config.FEATURE_BLOCKS:
        columns.extend(feature_names(prefix, wavelengths))
    features = pd.DataFrame(
        np.hstack([blocks[prefix] for prefix in config.FEATURE_BLOCKS]),
        columns=columns,
    )

    logger.info(
        "%s: %d samples, %d bands -> %d predictors",
        domain, len(metadata), len(wavelengths), features.shape[1],
    )
    return pd.concat([metadata, features], axis=1)


def spectral_columns(table: pd.DataFrame) -> list[str]:
    """Predictor columns of a feature table, in table order."""
    return [c for c in table.columns if isinstance(c, str) and _FEATURE_COL.match(c)]


def main() -> None:
    """Main execution: build feature tables for both spectral domains."""
    print("=" * 60)
    print("Spectral Feature Engineering")
    print("=" * 60)

    config.FEATURES_DIR.mkdir(parents=True, exist_ok=True)

    pending = [
        d for d in config.DOMAINS
        if not should_skip_file(config.FEATURES_DIR / f"{d}_features.csv")
    ]
    if not pending:
        print("\n  ✓ All feature tables already exist")
        return

    raw = load_workbook()
    print(f"\nWorkbook: {raw.shape[0]} samples, {raw.shape[1]} columns")

    for domain in pending:
        print(f"  Processing {domain}...")
        table = build_feature_table(raw, domain)
        # Too wide for an Excel sheet (16384 columns), CSV only
        write_table(table, config.FEATURES_DIR, f"{domain}_features", excel=False)
        print(f"    ✓ Saved: {domain}_features.csv ({table.shape[1]} columns)")

    print("\n" + "=" * 60)
    print("Feature engineering complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
