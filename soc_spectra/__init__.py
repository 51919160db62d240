"""
Soil organic carbon calibration from VNIR-SWIR and MIR reflectance spectra.

Modules:
    config           – shared constants (paths, workbook layout, seeds, grids)
    s01_spectra      – noise filter, continuum removal, 1st/2nd derivatives
    s02_profiles     – profile ids, leave-location-out holdout, design matrix
    s03_folds        – spatial (LLO) and repeated k-fold partitions
    s04_calibration  – repeated-holdout LASSO / PLS tuning loop
    model_store      – keyed joblib persistence of tuned models
    s05_predictions  – holdout predictions and variable importance
    file_utils       – idempotency checks, CSV + Excel export
    run_all          – orchestrator: run every stage
"""
