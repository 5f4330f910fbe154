"""
Exception hierarchy for perTurboClassifier.

Configuration and data problems are raised before any numeric work starts;
numerical failures abort the repeat that hit them and carry enough context
(strategy, hyperparameters, class, repeat, fold) to locate the failing grid cell.
"""

from typing import Any, Dict, Optional


class PerTurboError(Exception):
    """Base class for all perTurboClassifier errors."""


class ConfigurationError(PerTurboError, ValueError):
    """Invalid strategy pairing, malformed grid or resampling design."""


class MissingParameterError(ConfigurationError):
    """Final classification requested without a complete parameter set."""


class DataError(PerTurboError, ValueError):
    """Problems with the feature table or label vector."""


class NumericalError(PerTurboError, ArithmeticError):
    """
    A kernel matrix could not be factorised or inverted.

    Args:
        message: Description of the failure
        method: Inversion method value
        regularisation: Regularisation method value
        sigma: Kernel scale used
        p_regul: Regularisation strength used
        label: Class whose kernel matrix failed
        repeat: Outer repeat index (0-based)
        fold: Inner fold index (0-based), None for the outer refit
    """

    _CONTEXT_KEYS = ("method", "regularisation", "sigma", "p_regul", "label", "repeat", "fold")

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        regularisation: Optional[str] = None,
        sigma: Optional[float] = None,
        p_regul: Optional[float] = None,
        label: Optional[str] = None,
        repeat: Optional[int] = None,
        fold: Optional[int] = None,
    ):
        self.message = message
        self.method = method
        self.regularisation = regularisation
        self.sigma = sigma
        self.p_regul = p_regul
        self.label = label
        self.repeat = repeat
        self.fold = fold
        super().__init__(self._format())

    @property
    def context(self) -> Dict[str, Any]:
        return {key: getattr(self, key) for key in self._CONTEXT_KEYS if getattr(self, key) is not None}

    def with_context(self, **kwargs) -> 'NumericalError':
        """Return a copy of this error with additional context filled in."""
        values = {key: getattr(self, key) for key in self._CONTEXT_KEYS}
        values.update({k: v for k, v in kwargs.items() if v is not None})
        return NumericalError(self.message, **values)

    def __reduce__(self):
        # keep context when the error crosses a joblib worker boundary
        return (self.__class__, (self.message,) + tuple(getattr(self, key) for key in self._CONTEXT_KEYS))

    def _format(self) -> str:
        context = " | ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} | {context}" if context else self.message
