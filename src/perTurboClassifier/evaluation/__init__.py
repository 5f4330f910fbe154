"""
Evaluation modules for perTurboClassifier.

This module contains the confusion matrix and F1 metrics used to score the grid.
"""

from .metrics import (
    MetricsCalculator,
    confusion_matrix,
    precision,
    recall,
    f1_scores,
    macro_f1,
    macro_f1_from_confusion,
)

__all__ = [
    "MetricsCalculator",
    "confusion_matrix",
    "precision",
    "recall",
    "f1_scores",
    "macro_f1",
    "macro_f1_from_confusion",
]
