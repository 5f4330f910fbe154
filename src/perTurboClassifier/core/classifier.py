"""
PerTurbo prediction.

The score of a point x for class c is k_x' K_c^-1 k_x, where k_x holds the kernel
similarities between x and the training rows of c. It is 1 minus the perturbation
that adding x would cause to the class kernel, so higher means more confident.
Scores are clipped to [0, 1].
"""

from typing import Any, Optional, Sequence, Union

import numpy as np
import pandas as pd
from sklearn.base import ClassifierMixin, BaseEstimator

from .base import InversionMethod, RegularisationMethod
from .exceptions import DataError
from .kernel_model import KernelFunction, KernelModel, TrainedModel, gaussian_kernel
from ..data.validator import DataValidator


def predict_scores(model: TrainedModel, X: Union[np.ndarray, pd.DataFrame]) -> np.ndarray:
    """
    Score rows against every class of a trained model.

    Args:
        model: Trained PerTurbo model
        X: Feature matrix of the rows to classify

    Returns:
        Score matrix of shape (n_rows, n_classes), columns in model.classes order

    Raises:
        DataError: On a feature-width mismatch or non-finite feature values
    """
    row_index = X.index if isinstance(X, pd.DataFrame) else None
    columns = list(X.columns) if isinstance(X, pd.DataFrame) else None
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X.reshape(1, -1)
    DataValidator().validate_feature_matrix(X, row_index=row_index, columns=columns,
                                            n_features=model.n_features)

    scores = np.zeros((X.shape[0], len(model.classes)), dtype=float)
    for j, class_kernel in enumerate(model.class_kernels):
        if class_kernel is None:
            continue
        k_x = model.kernel(X, class_kernel.samples, model.sigma)
        scores[:, j] = np.einsum("ij,jk,ik->i", k_x, class_kernel.inv_kernel, k_x)
    return np.clip(scores, 0.0, 1.0)


def predict_labels(model: TrainedModel, scores: np.ndarray) -> np.ndarray:
    """
    Predicted class per row: the class with the highest score.

    Ties go to the class that comes first in the fixed (sorted) class ordering.
    """
    classes = np.asarray(model.classes)
    if scores.shape[0] == 0:
        return np.array([], dtype=classes.dtype)
    return classes[np.argmax(scores, axis=1)]


class PerTurboClassifier(ClassifierMixin, BaseEstimator):
    """
    scikit-learn compatible PerTurbo classifier.

    Args:
        sigma: Kernel scale
        p_regul: Regularisation strength
        inv: Inversion method
        reg: Regularisation method
        kernel: Kernel function
        classes: Optional fixed class ordering
    """

    def __init__(self, sigma: float = 1.0, p_regul: float = 0.1,
                 inv: Union[str, InversionMethod] = "Inversion Cholesky",
                 reg: Union[str, RegularisationMethod] = "tikhonov",
                 kernel: KernelFunction = gaussian_kernel,
                 classes: Optional[Sequence[str]] = None):
        self.sigma = sigma
        self.p_regul = p_regul
        self.inv = inv
        self.reg = reg
        self.kernel = kernel
        self.classes = classes

    def fit(self, X: Union[np.ndarray, pd.DataFrame], y: Sequence[Any]) -> 'PerTurboClassifier':
        """Train one regularised kernel inverse per class."""
        model = KernelModel(self.sigma, inv=self.inv, reg=self.reg, p_regul=self.p_regul,
                            kernel=self.kernel)
        self.model_ = model.fit(np.asarray(X, dtype=float), y, classes=self.classes)
        self.classes_ = np.asarray(self.model_.classes)
        self.n_features_in_ = self.model_.n_features
        return self

    def _check_fitted(self) -> None:
        if not hasattr(self, "model_"):
            raise ValueError("Model must be fitted before making predictions")

    def predict_scores(self, X: Union[np.ndarray, pd.DataFrame]) -> np.ndarray:
        self._check_fitted()
        return predict_scores(self.model_, X)

    def decision_function(self, X: Union[np.ndarray, pd.DataFrame]) -> np.ndarray:
        return self.predict_scores(X)

    def predict(self, X: Union[np.ndarray, pd.DataFrame]) -> np.ndarray:
        self._check_fitted()
        return predict_labels(self.model_, predict_scores(self.model_, X))
