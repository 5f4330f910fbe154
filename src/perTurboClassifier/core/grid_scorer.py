"""
Grid scoring for PerTurbo hyperparameters.

Every (sigma, pRegul) cell of the grid is trained on one training subset and
scored by macro F1 on a validation subset.
"""

from typing import Any, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .base import HyperparameterGrid, InversionMethod, RegularisationMethod, check_compatibility
from .classifier import predict_labels, predict_scores
from .kernel_model import KernelFunction, KernelModel, gaussian_kernel
from ..evaluation.metrics import confusion_matrix, macro_f1_from_confusion
from ..utils.logger import get_logger


def empty_score_matrix(grid: HyperparameterGrid) -> pd.DataFrame:
    """NaN-filled score matrix with sigma as rows and pRegul as columns."""
    return pd.DataFrame(
        np.full(grid.shape, np.nan),
        index=pd.Index(grid.sigma, name="sigma"),
        columns=pd.Index(grid.p_regul, name="pRegul"),
    )


class GridScorer:
    """
    Scores a hyperparameter grid on a train/validation split.

    Args:
        grid: Hyperparameter grid
        inv: Inversion method
        reg: Regularisation method
        kernel: Kernel function
        classes: Fixed class ordering used for models and confusion matrices
    """

    def __init__(
        self,
        grid: HyperparameterGrid,
        inv: Union[str, InversionMethod],
        reg: Union[str, RegularisationMethod],
        kernel: KernelFunction = gaussian_kernel,
        classes: Optional[Sequence[str]] = None
    ):
        self.logger = get_logger("GridScorer")
        self.grid = grid
        self.inv, self.reg = check_compatibility(inv, reg)
        self.kernel = kernel
        self.classes = tuple(classes) if classes is not None else None

    def _classes_for(self, *label_vectors: np.ndarray) -> Tuple[str, ...]:
        if self.classes is not None:
            return self.classes
        return tuple(sorted(set(np.concatenate(label_vectors).astype(str).tolist())))

    def score_cell(
        self,
        X_train: np.ndarray,
        y_train: Sequence[Any],
        X_val: np.ndarray,
        y_val: Sequence[Any],
        sigma: float,
        p_regul: float
    ) -> Tuple[float, np.ndarray]:
        """
        Train on the training subset with one (sigma, pRegul) pair and score the validation subset.

        Returns:
            Tuple of (macro F1, confusion matrix)

        Raises:
            NumericalError: If the model cannot be trained with these hyperparameters
        """
        y_train = np.asarray(y_train).astype(str)
        y_val = np.asarray(y_val).astype(str)
        classes = self._classes_for(y_train, y_val)

        model = KernelModel(sigma, inv=self.inv, reg=self.reg, p_regul=p_regul,
                            kernel=self.kernel).fit(X_train, y_train, classes=classes)
        predicted = predict_labels(model, predict_scores(model, X_val))
        cm = confusion_matrix(y_val, predicted, classes)
        return macro_f1_from_confusion(cm), cm

    def score(
        self,
        X_train: np.ndarray,
        y_train: Sequence[Any],
        X_val: np.ndarray,
        y_val: Sequence[Any]
    ) -> pd.DataFrame:
        """
        Macro F1 of every grid cell.

        Returns:
            Score matrix indexed by sigma (rows) and pRegul (columns)
        """
        matrix = empty_score_matrix(self.grid)
        for j, p_regul in enumerate(self.grid.p_regul):
            for i, sigma in enumerate(self.grid.sigma):
                f1, _ = self.score_cell(X_train, y_train, X_val, y_val, sigma, p_regul)
                matrix.iloc[i, j] = f1
        self.logger.debug(f"GridScorer | cells={matrix.size} | max_F1={matrix.to_numpy().max():.4f}")
        return matrix
