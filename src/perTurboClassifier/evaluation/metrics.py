"""
Evaluation metrics for perTurboClassifier.

Precision, recall and (macro) F1 are computed from a confusion matrix. Any
undefined per-class value (0/0, i.e. a class absent from the predictions or from
the ground truth) is replaced by 0 before averaging, so that a single degenerate
class yields a reduced but defined macro F1 instead of NaN.
"""

from typing import Any, Dict, Optional, Sequence

import numpy as np

from ..core.exceptions import DataError
from ..utils.logger import get_logger


def confusion_matrix(y_true: Sequence[Any], y_pred: Sequence[Any], labels: Sequence[Any]) -> np.ndarray:
    """
    Build a confusion matrix over a fixed label ordering.

    Rows are the true classes and columns the predicted classes.

    Args:
        y_true: True labels
        y_pred: Predicted labels
        labels: Class ordering; labels outside this set raise DataError

    Returns:
        Integer matrix of shape (n_labels, n_labels)
    """
    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)
    if y_true.shape[0] != y_pred.shape[0]:
        raise DataError(f"Length mismatch: {y_true.shape[0]} true labels vs {y_pred.shape[0]} predictions")

    position = {label: i for i, label in enumerate(labels)}
    cm = np.zeros((len(labels), len(labels)), dtype=np.int64)
    for truth, pred in zip(y_true, y_pred):
        if truth not in position or pred not in position:
            missing = truth if truth not in position else pred
            raise DataError(f"Label '{missing}' is not one of the known classes {list(labels)}")
        cm[position[truth], position[pred]] += 1
    return cm


def _safe_ratio(numerator: np.ndarray, denominator: np.ndarray) -> np.ndarray:
    out = np.zeros(numerator.shape, dtype=float)
    np.divide(numerator, denominator, out=out, where=denominator != 0)
    return out


def precision(cm: np.ndarray) -> np.ndarray:
    """Per-class precision (column-wise); 0/0 is reported as 0."""
    cm = np.asarray(cm, dtype=float)
    return _safe_ratio(np.diag(cm), cm.sum(axis=0))


def recall(cm: np.ndarray) -> np.ndarray:
    """Per-class recall (row-wise); 0/0 is reported as 0."""
    cm = np.asarray(cm, dtype=float)
    return _safe_ratio(np.diag(cm), cm.sum(axis=1))


def f1_scores(p: np.ndarray, r: np.ndarray) -> np.ndarray:
    """Per-class F1, the harmonic mean of precision and recall (0 when both are 0)."""
    p = np.asarray(p, dtype=float)
    r = np.asarray(r, dtype=float)
    return _safe_ratio(2 * p * r, p + r)


def macro_f1(p: np.ndarray, r: np.ndarray) -> float:
    """Arithmetic mean of the per-class F1 scores."""
    scores = f1_scores(p, r)
    if scores.size == 0:
        return 0.0
    return float(np.mean(scores))


def macro_f1_from_confusion(cm: np.ndarray) -> float:
    """Macro F1 of a confusion matrix."""
    return macro_f1(precision(cm), recall(cm))


class MetricsCalculator:
    """Calculator for multi-class evaluation metrics."""

    def __init__(self):
        self.logger = get_logger("MetricsCalculator")

    def calculate_metrics(
        self,
        y_true: Sequence[Any],
        y_pred: Sequence[Any],
        labels: Optional[Sequence[Any]] = None
    ) -> Dict[str, Any]:
        """
        Calculate evaluation metrics for a multi-class prediction.

        Args:
            y_true: True labels
            y_pred: Predicted labels
            labels: Class ordering (default: sorted union of both label vectors)

        Returns:
            Dictionary of metrics
        """
        if labels is None:
            labels = sorted(set(np.asarray(y_true).tolist()) | set(np.asarray(y_pred).tolist()))
        labels = list(labels)

        cm = confusion_matrix(y_true, y_pred, labels)
        p = precision(cm)
        r = recall(cm)
        f1 = f1_scores(p, r)
        total = cm.sum()

        metrics = {
            'accuracy': float(np.trace(cm) / total) if total else 0.0,
            'precision': dict(zip(labels, p.tolist())),
            'recall': dict(zip(labels, r.tolist())),
            'f1': dict(zip(labels, f1.tolist())),
            'macro_f1': macro_f1(p, r),
            'confusion_matrix': cm.tolist(),
            'labels': labels,
        }

        absent_pred = [label for label, col in zip(labels, cm.sum(axis=0)) if col == 0]
        absent_true = [label for label, row in zip(labels, cm.sum(axis=1)) if row == 0]
        if absent_pred or absent_true:
            self.logger.debug(
                f"Undefined precision/recall set to 0 | absent_from_predictions={absent_pred} | "
                f"absent_from_truth={absent_true}"
            )
        return metrics
