"""
Data handling modules for perTurboClassifier.

This module contains the labelled dataset view, validation and resampling utilities.
"""

from .validator import DataValidator, UNKNOWN
from .dataset import LabeledDataset
from .splitting import (
    generate_seed,
    repeat_rng,
    holdout_sizes,
    stratified_holdout,
    stratified_folds,
)

__all__ = [
    "DataValidator",
    "UNKNOWN",
    "LabeledDataset",
    "generate_seed",
    "repeat_rng",
    "holdout_sizes",
    "stratified_holdout",
    "stratified_folds",
]
