"""
File Utilities
==============
Helper functions for idempotent stage outputs and table exports.
"""
from __future__ import annotations

from pathlib import Path

import pandas as pd


def should_skip_file(file_path: Path, min_size_bytes: int = 1) -> bool:
    """
    Check if file exists and has content.

    Args:
        file_path: Path to check
        min_size_bytes: Minimum file size in bytes (default: 1)

    Returns:
        True if file exists and size >= min_size_bytes, False otherwise
    """
    return file_path.exists() and file_path.stat().st_size >= min_size_bytes


def write_table(df: pd.DataFrame, out_dir: Path, stem: str, excel: bool = True) -> list[Path]:
    """
    Write a table as CSV and, optionally, as an Excel export next to it.

    Returns:
        Paths written, CSV first.
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    csv_path = out_dir / f"{stem}.csv"
    df.to_csv(csv_path, index=False)
    written = [csv_path]

    if excel:
        xlsx_path = out_dir / f"{stem}.xlsx"
        df.to_excel(xlsx_path, index=False)
        written.append(xlsx_path)

    return written
