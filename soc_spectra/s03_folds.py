"""
Cross-validation fold partitions.

grouped : spatial leave-group-out, whole soil profiles per fold (LLO-CV)
plain   : repeated shuffled k-fold over rows, grouping ignored
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

import numpy as np
from sklearn.model_selection import GroupKFold, KFold

from . import config


class FoldConfigurationError(ValueError):
    """The requested folds cannot be built from the data."""


@dataclass
class FoldPartition:
    """Held-out index sets over the training rows, one per resample."""

    n_rows: int
    test_folds: list[np.ndarray]
    labels: list[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.labels:
            self.labels = [f"Fold{i + 1:02d}" for i in range(len(self.test_folds))]

    @property
    def n_folds(self) -> int:
        return len(self.test_folds)

    def splits(self) -> Iterator[tuple[np.ndarray, np.ndarray]]:
        """Yield (train_idx, test_idx) pairs, the form GridSearchCV accepts as cv."""
        all_rows = np.arange(self.n_rows)
        for test_idx in self.test_folds:
            yield np.setdiff1d(all_rows, test_idx), test_idx

    def min_train_size(self) -> int:
        return min(self.n_rows - len(t) for t in self.test_folds)


def grouped_folds(groups: np.ndarray, k: int = config.N_FOLDS, seed: int = 0) -> FoldPartition:
    """
    Spatial folds: seeded, shuffled GroupKFold over soil profiles.

    Every row of a group ends up in exactly one fold. Raises
    FoldConfigurationError when there are fewer groups than folds.
    """
    groups = np.asarray(groups)
    n_groups = len(np.unique(groups))
    if k < 2:
        raise FoldConfigurationError(f"Need at least 2 folds, got k={k}")
    if n_groups < k:
        raise FoldConfigurationError(f"{n_groups} profiles cannot fill {k} spatial folds")

    gkf = GroupKFold(n_splits=k, shuffle=True, random_state=seed)
    test_folds = [test_idx for _, test_idx in gkf.split(np.zeros(len(groups)), groups=groups)]
    return FoldPartition(n_rows=len(groups), test_folds=test_folds)


def plain_folds(
    n_rows: int,
    k: int = config.N_FOLDS,
    repeats: int = config.N_REPEATS,
    seed: int = 0,
) -> FoldPartition:
    """Repeated k-fold: each repeat is an independent shuffled partition of all rows."""
    if k < 2:
        raise FoldConfigurationError(f"Need at least 2 folds, got k={k}")
    if k > n_rows:
        raise FoldConfigurationError(f"{n_rows} rows cannot fill {k} folds")

    rng = np.random.default_rng(seed)
    test_folds, labels = [], []
    for rep in range(repeats):
        kf = KFold(n_splits=k, shuffle=True, random_state=int(rng.integers(2**31 - 1)))
        for fold, (_, test_idx) in enumerate(kf.split(np.arange(n_rows))):
            test_folds.append(test_idx)
            labels.append(f"Fold{fold + 1:02d}.Rep{rep + 1}")

    return FoldPartition(n_rows=n_rows, test_folds=test_folds, labels=labels)


def build_folds(
    scheme: str,
    groups: np.ndarray,
    seed: int,
    k: int = config.N_FOLDS,
    repeats: int = config.N_REPEATS,
) -> FoldPartition:
    """Dispatch on the cross-validation scheme tag."""
    if scheme == "grouped":
        return grouped_folds(groups, k=k, seed=seed)
    if scheme == "plain":
        return plain_folds(len(groups), k=k, repeats=repeats, seed=seed)
    raise ValueError(f"Unknown cross-validation scheme: {scheme}")
