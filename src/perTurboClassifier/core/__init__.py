"""
Core functionality for perTurboClassifier.

This module contains the PerTurbo kernel model, the grid scorer, the nested
optimiser, its result report and the final classifier.
"""

from .exceptions import (
    PerTurboError,
    ConfigurationError,
    MissingParameterError,
    DataError,
    NumericalError,
)
from .base import (
    InversionMethod,
    RegularisationMethod,
    TieBreak,
    ScoreMode,
    OptimiserState,
    COMPATIBLE_METHODS,
    check_compatibility,
    HyperparameterGrid,
    OptimisationConfig,
)
from .kernel_model import KernelModel, TrainedModel, ClassKernel, gaussian_kernel, kernel_matrix
from .classifier import PerTurboClassifier, predict_scores, predict_labels
from .grid_scorer import GridScorer
from .result_report import ResultReport
from .nested_optimizer import NestedOptimizer, RepeatResult, select_best_cell, summarise_matrices
from .final_classifier import FinalClassifier, get_predictions

__all__ = [
    "PerTurboError",
    "ConfigurationError",
    "MissingParameterError",
    "DataError",
    "NumericalError",
    "InversionMethod",
    "RegularisationMethod",
    "TieBreak",
    "ScoreMode",
    "OptimiserState",
    "COMPATIBLE_METHODS",
    "check_compatibility",
    "HyperparameterGrid",
    "OptimisationConfig",
    "KernelModel",
    "TrainedModel",
    "ClassKernel",
    "gaussian_kernel",
    "kernel_matrix",
    "PerTurboClassifier",
    "predict_scores",
    "predict_labels",
    "GridScorer",
    "ResultReport",
    "NestedOptimizer",
    "RepeatResult",
    "select_best_cell",
    "summarise_matrices",
    "FinalClassifier",
    "get_predictions",
]
