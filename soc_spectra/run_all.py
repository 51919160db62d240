"""
Orchestrator: feature engineering, calibration, holdout prediction.

Usage:
    python -m soc_spectra.run_all
"""
import logging
import time

from soc_spectra import s01_spectra, s04_calibration, s05_predictions
from soc_spectra.config import DATA_DIR


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    t0 = time.time()

    print("\n--- Building spectral features ---")
    s01_spectra.main()

    print("\n--- Calibrating models ---")
    s04_calibration.main()

    print("\n--- Predicting holdout profiles ---")
    s05_predictions.main()

    print(f"\nAll stages completed in {time.time() - t0:.1f}s")
    print(f"Output directory: {DATA_DIR}")


if __name__ == "__main__":
    main()
