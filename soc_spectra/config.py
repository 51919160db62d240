"""
Configuration for the SOC spectral calibration pipeline.

Note on the workbook layout:
    The raw workbook holds one row per soil sample. The first 17 columns are
    sample metadata (profile label, depth, reference chemistry). They are
    followed by the VNIR-SWIR block (2151 bands) and then the MIR block
    (3334 bands). Spectral headers are the band wavelengths (nm for
    VNIR-SWIR, wavenumber-derived nm for MIR) and must parse as numbers.
"""
import os
from pathlib import Path

# ─── Paths ───────────────────────────────────────────────────────
ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = ROOT / "data"
RAW_WORKBOOK = DATA_DIR / "raw" / "vis_nir_swir_mir.xlsx"

# Output directories
FEATURES_DIR = DATA_DIR / "features"
MODELS_DIR = DATA_DIR / "tuned_models"
CV_DIR = DATA_DIR / "cross_validation"
PREDICTIONS_DIR = DATA_DIR / "predictions"

# ─── Workbook layout ─────────────────────────────────────────────
N_METADATA_COLUMNS = 17

# Column slices are 0-based, end-exclusive, relative to the raw workbook.
DOMAINS = {
    "VNIR_SWIR": {"start": 17, "n_bands": 2151, "holdout_seed": 365},
    "MIR": {"start": 2168, "n_bands": 3334, "holdout_seed": 256},
}

PROFILE_LABEL_COL = "Amostra"
PROFILE_COL = "profile_id"
RESPONSE_COL = "C (g kg)"

# ─── Feature engineering ─────────────────────────────────────────
# Moving-mean filter: bands averaged on each side of the centre band
SMOOTHING_HALF_WINDOW = 4

# Feature block prefixes, in output column order
FEATURE_BLOCKS = {
    "refl": "smoothed reflectance",
    "cr": "continuum-removed ratio",
    "d1": "first derivative",
    "d2": "second derivative",
}

# ─── Leave-location-out holdout ──────────────────────────────────
LLO_TRAIN_FRACTION = 0.8

# ─── Modeling ────────────────────────────────────────────────────
METHODS = {
    "penalized-linear": "lasso",
    "latent-component": "pls",
}

SCHEMES = {
    "grouped": "LLO",
    "plain": "kFold",
}

# Penalty grid at pure L1 mixing: 0.00, 0.05, ..., 2.00
LAMBDA_GRID = [round(0.05 * i, 2) for i in range(41)]
LASSO_MAX_ITER = 10000

# Metadata columns (0-based positions in the workbook) added to the LASSO
# inputs. Text columns are dummy-coded.
LASSO_COVARIATES = {
    "VNIR_SWIR": (2, 3, 9),
    "MIR": (9,),
}

MAX_COMPONENTS = 10

N_FOLDS = 10
N_REPEATS = 5

# Seeds for the 100 repeated-holdout iterations
SEEDS = [
    5975, 99313, 33793, 55501, 40294, 92680, 62083, 81352, 25090, 10696,
    96800, 20974, 940, 68193, 11611, 51541, 69547, 99820, 78468, 27883,
    33767, 1117, 89593, 58773, 99559, 6692, 21182, 52077, 264, 84118,
    15944, 1778, 93727, 11018, 2497, 95227, 66520, 18800, 98853, 23193,
    84471, 52279, 17489, 22773, 49651, 12605, 70764, 17790, 43738, 87967,
    38580, 10636, 22038, 4030, 44850, 86156, 27284, 42820, 66387, 84272,
    3044, 6157, 28415, 50002, 88919, 6142, 83139, 3412, 25630, 79118,
    12352, 70395, 81905, 32101, 96607, 16639, 65378, 64884, 31661, 55190,
    29096, 72494, 85776, 80748, 60487, 8734, 17397, 76482, 88638, 92082,
    90560, 40158, 41207, 86727, 90484, 27324, 83288, 66581, 65811, 54017,
]

# ─── Execution ───────────────────────────────────────────────────
# GridSearchCV workers per iteration
GRID_N_JOBS = -1

# Prediction worker pool
N_WORKERS = max(1, (os.cpu_count() or 1) - 2)
