"""
perTurboClassifier v1.0

PerTurbo kernel classification with nested cross-validation hyperparameter optimisation.
"""

__version__ = "1.0.0"

# Core imports
from .core.exceptions import (
    PerTurboError,
    ConfigurationError,
    MissingParameterError,
    DataError,
    NumericalError,
)
from .core.base import (
    InversionMethod,
    RegularisationMethod,
    TieBreak,
    ScoreMode,
    HyperparameterGrid,
    OptimisationConfig,
)
from .core.kernel_model import KernelModel, gaussian_kernel
from .core.classifier import PerTurboClassifier
from .core.grid_scorer import GridScorer
from .core.nested_optimizer import NestedOptimizer
from .core.result_report import ResultReport
from .core.final_classifier import FinalClassifier, get_predictions

# Data handling
from .data.dataset import LabeledDataset
from .data.validator import DataValidator

# Evaluation
from .evaluation.metrics import MetricsCalculator

# Configuration
from .utils.config import Config, ConfigManager

__all__ = [
    # Errors
    "PerTurboError",
    "ConfigurationError",
    "MissingParameterError",
    "DataError",
    "NumericalError",

    # Core
    "InversionMethod",
    "RegularisationMethod",
    "TieBreak",
    "ScoreMode",
    "HyperparameterGrid",
    "OptimisationConfig",
    "KernelModel",
    "gaussian_kernel",
    "PerTurboClassifier",
    "GridScorer",
    "NestedOptimizer",
    "ResultReport",
    "FinalClassifier",
    "get_predictions",

    # Data
    "LabeledDataset",
    "DataValidator",

    # Evaluation
    "MetricsCalculator",

    # Configuration
    "Config",
    "ConfigManager",
]
