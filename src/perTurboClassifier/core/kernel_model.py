"""
Kernel model training for the PerTurbo classifier.

PerTurbo builds one kernel matrix per class from that class's training rows,
regularises it and keeps its inverse. A new point is scored against a class by
how little it perturbs that class's kernel spectrum (see classifier.py).

Reference: N. Courty, T. Burger, J. Laurent. "PerTurbo: a new classification
algorithm based on the spectrum perturbations of the Laplace-Beltrami operator",
ECML-PKDD 2011, LNAI 6911, pp. 359-374.
"""

import math
import warnings
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Union

import numpy as np
from scipy import linalg
from scipy.spatial.distance import cdist

from .base import (
    InversionMethod,
    RegularisationMethod,
    check_compatibility,
    check_p_regul,
)
from .exceptions import ConfigurationError, DataError, NumericalError
from ..data.validator import DataValidator
from ..utils.logger import get_logger

KernelFunction = Callable[[np.ndarray, np.ndarray, float], np.ndarray]


def gaussian_kernel(A: np.ndarray, B: np.ndarray, sigma: float) -> np.ndarray:
    """Gaussian kernel exp(-||a - b||^2 / (2 sigma^2)) between the rows of A and B."""
    sq_dist = cdist(A, B, metric="sqeuclidean")
    return np.exp(-sq_dist / (2.0 * sigma ** 2))


def kernel_matrix(X: np.ndarray, sigma: float, kernel: KernelFunction = gaussian_kernel) -> np.ndarray:
    """Symmetric kernel matrix of the rows of X."""
    K = kernel(X, X, sigma)
    return (K + K.T) / 2.0


@dataclass(frozen=True)
class ClassKernel:
    """Training rows of one class and the inverse of their regularised kernel matrix."""
    label: str
    samples: np.ndarray
    inv_kernel: np.ndarray


@dataclass(frozen=True)
class TrainedModel:
    """
    A trained PerTurbo model.

    class_kernels holds one entry per class in `classes` order; a class without
    training rows has None and always scores 0.
    """
    classes: Tuple[str, ...]
    class_kernels: Tuple[Optional[ClassKernel], ...]
    X_train: np.ndarray
    y_train: np.ndarray
    sigma: float
    p_regul: float
    inv: InversionMethod
    reg: RegularisationMethod
    kernel: KernelFunction = gaussian_kernel

    @property
    def n_features(self) -> int:
        return self.X_train.shape[1]

    def get_params(self) -> Dict[str, Any]:
        return {
            "sigma": self.sigma,
            "pRegul": self.p_regul,
            "inv": self.inv.value,
            "reg": self.reg.value,
        }


class KernelModel:
    """
    Builds, regularises and inverts the per-class kernel matrices.

    Args:
        sigma: Kernel scale, > 0
        inv: Inversion method
        reg: Regularisation method
        p_regul: Regularisation strength; forced to 1 when reg is 'none'.
            For 'trunc' it is the fraction of singular values kept, in ]0, 1].
        kernel: Kernel function (A, B, sigma) -> similarity matrix

    Raises:
        ConfigurationError: On an invalid pairing or hyperparameter, before any computation
    """

    def __init__(
        self,
        sigma: float,
        inv: Union[str, InversionMethod] = InversionMethod.CHOLESKY,
        reg: Union[str, RegularisationMethod] = RegularisationMethod.TIKHONOV,
        p_regul: float = 1.0,
        kernel: KernelFunction = gaussian_kernel
    ):
        self.logger = get_logger("KernelModel")
        self.inv, self.reg = check_compatibility(inv, reg)

        try:
            sigma = float(sigma)
        except (TypeError, ValueError):
            raise ConfigurationError(f"sigma must be a number, got {sigma!r}")
        if not math.isfinite(sigma) or sigma <= 0:
            raise ConfigurationError(f"sigma must be a positive finite number, got {sigma!r}")
        self.sigma = sigma

        if self.reg == RegularisationMethod.NONE:
            if p_regul is not None and check_p_regul(p_regul, self.reg) != 1.0:
                self.logger.warning(f"Setting 'pRegul' to 1 when using 'reg' == 'none' (got {p_regul})")
            p_regul = 1.0
        self.p_regul = check_p_regul(p_regul, self.reg)
        self.kernel = kernel

    def fit(
        self,
        X: np.ndarray,
        y: Sequence[Any],
        classes: Optional[Sequence[str]] = None
    ) -> TrainedModel:
        """
        Train a PerTurbo model.

        Args:
            X: Training feature matrix (n x d)
            y: Training labels (n)
            classes: Fixed class ordering (default: sorted unique labels of y)

        Returns:
            TrainedModel

        Raises:
            DataError: On mismatched or empty inputs
            NumericalError: If a class kernel matrix cannot be inverted
        """
        X = np.asarray(X, dtype=float)
        y = np.asarray(y).astype(str)
        if X.ndim != 2:
            raise DataError(f"Training matrix must be 2-dimensional, got shape {X.shape}")
        DataValidator().validate_labels(X, y)

        classes = tuple(sorted(set(y.tolist()))) if classes is None else tuple(str(c) for c in classes)
        unexpected = sorted(set(y.tolist()) - set(classes))
        if unexpected:
            raise DataError(f"Training labels {unexpected} are not in the class ordering {list(classes)}")

        class_kernels = []
        for label in classes:
            samples = X[y == label]
            if samples.shape[0] == 0:
                self.logger.warning(f"KernelModel | class '{label}' has no training rows | scores fixed to 0")
                class_kernels.append(None)
                continue
            K = kernel_matrix(samples, self.sigma, self.kernel)
            class_kernels.append(ClassKernel(label=label, samples=samples, inv_kernel=self._invert(K, label)))

        return TrainedModel(
            classes=classes,
            class_kernels=tuple(class_kernels),
            X_train=X,
            y_train=y,
            sigma=self.sigma,
            p_regul=self.p_regul,
            inv=self.inv,
            reg=self.reg,
            kernel=self.kernel,
        )

    def _error(self, message: str, label: str) -> NumericalError:
        return NumericalError(
            message,
            method=self.inv.value,
            regularisation=self.reg.value,
            sigma=self.sigma,
            p_regul=self.p_regul,
            label=label,
        )

    def _invert(self, K: np.ndarray, label: str) -> np.ndarray:
        """Regularise and invert one kernel matrix."""
        n = K.shape[0]
        if self.reg == RegularisationMethod.TIKHONOV:
            K = K + self.p_regul * np.eye(n)

        try:
            with warnings.catch_warnings():
                warnings.simplefilter("error", linalg.LinAlgWarning)
                if self.inv == InversionMethod.CHOLESKY:
                    factor = linalg.cho_factor(K, lower=True)
                    inv_K = linalg.cho_solve(factor, np.eye(n))
                elif self.inv == InversionMethod.MOORE_PENROSE:
                    inv_K = linalg.pinv(K)
                elif self.inv == InversionMethod.SOLVE:
                    inv_K = linalg.solve(K, np.eye(n), assume_a="sym")
                else:
                    inv_K = self._svd_inverse(K, label)
        except (linalg.LinAlgError, linalg.LinAlgWarning, ValueError) as e:
            raise self._error(f"Kernel matrix inversion failed: {e}", label) from e

        if not np.all(np.isfinite(inv_K)):
            raise self._error("Kernel matrix inversion produced non-finite values", label)
        return inv_K

    def _svd_inverse(self, K: np.ndarray, label: str) -> np.ndarray:
        U, s, Vt = linalg.svd(K)
        n = K.shape[0]
        tol = s.max() * n * np.finfo(float).eps if s.size else 0.0
        if self.reg == RegularisationMethod.TRUNC:
            # keep the largest ceil(p * n) singular values, then drop those below the rank tolerance
            keep = min(n, max(1, int(math.ceil(round(self.p_regul * n, 10)))))
            rank = int(np.count_nonzero(s[:keep] > tol))
            if rank == 0:
                raise self._error("Kernel matrix has no singular value above the rank tolerance", label)
            if rank < keep:
                self.logger.warning(f"KernelModel | class '{label}' | kept {rank} of {keep} singular values "
                                    f"above tolerance {tol:.3g}")
            U, s, Vt = U[:, :rank], s[:rank], Vt[:rank]
        elif s.size == 0 or s.min() <= tol:
            raise self._error(
                f"Kernel matrix is rank deficient (smallest singular value {s.min() if s.size else 0:.3g})",
                label,
            )
        return (Vt.T / s) @ U.T
