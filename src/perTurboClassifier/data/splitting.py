"""
Resampling utilities for perTurboClassifier.

Randomness is never drawn from a global generator: each outer repeat gets its
own generator derived from (master seed, repeat index), so results do not depend
on execution order or on the number of parallel workers.
"""

import math
from typing import Any, Dict, List, Sequence, Tuple
import numpy as np
from sklearn.model_selection import StratifiedKFold

from ..core.exceptions import DataError

MAX_SEED = 2 ** 31 - 1


def generate_seed() -> int:
    """Draw a fresh master seed from OS entropy."""
    return int(np.random.SeedSequence().generate_state(1)[0] % MAX_SEED)


def repeat_rng(master_seed: int, repeat_index: int) -> np.random.Generator:
    """Independent generator for one outer repeat."""
    return np.random.default_rng(np.random.SeedSequence(entropy=master_seed, spawn_key=(repeat_index,)))


def holdout_sizes(labels: Sequence[Any], test_size: float) -> Dict[str, int]:
    """
    Per-class size of the outer test set: ceil(count * test_size).

    The product is rounded to 10 decimals before the ceiling so that, e.g.,
    15 * 0.2 gives 3 rather than 4.
    """
    labels = np.asarray(labels)
    classes, counts = np.unique(labels, return_counts=True)
    return {str(c): int(math.ceil(round(n * test_size, 10))) for c, n in zip(classes, counts)}


def stratified_holdout(
    labels: Sequence[Any],
    test_size: float,
    rng: np.random.Generator
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Stratified hold-out split, sampling without replacement within each class.

    Args:
        labels: Class label per row
        test_size: Fraction of each class going to the test set
        rng: Random generator of the current repeat

    Returns:
        Tuple of (train_positions, test_positions), both sorted
    """
    labels = np.asarray(labels)
    sizes = holdout_sizes(labels, test_size)
    test_idx = []
    for label in sorted(sizes):
        members = np.flatnonzero(labels == label)
        test_idx.append(rng.choice(members, size=sizes[label], replace=False))
    test_idx = np.sort(np.concatenate(test_idx)) if test_idx else np.array([], dtype=int)
    train_mask = np.ones(len(labels), dtype=bool)
    train_mask[test_idx] = False
    return np.flatnonzero(train_mask), test_idx


def stratified_folds(
    labels: Sequence[Any],
    n_folds: int,
    random_state: int
) -> List[Tuple[np.ndarray, np.ndarray]]:
    """
    Stratified k-fold partition of a label vector.

    Returns:
        List of (train_positions, validation_positions) per fold
    """
    labels = np.asarray(labels)
    cv = StratifiedKFold(n_splits=n_folds, shuffle=True, random_state=random_state)
    try:
        return [(train, val) for train, val in cv.split(np.zeros((len(labels), 1)), labels)]
    except ValueError as e:
        raise DataError(f"Cannot build {n_folds} stratified folds: {e}") from e
