"""
Data validation utilities for perTurboClassifier.

This module handles data validation and quality checks.
"""

from typing import Any, List, Optional, Sequence
import pandas as pd
import numpy as np

from ..core.exceptions import DataError
from ..utils.logger import get_logger

UNKNOWN = "unknown"


class DataValidator:
    """Data validator for labelled feature tables."""

    def __init__(self):
        self.logger = get_logger("DataValidator")

    def validate_table(self, frame: pd.DataFrame, fcol: str, feature_columns: Sequence[Any]) -> None:
        """
        Validate a feature table before it is wrapped as a dataset.

        Args:
            frame: Feature table
            fcol: Label column
            feature_columns: Columns holding the numeric feature block

        Raises:
            DataError: If validation fails
        """
        self.logger.debug("Validating feature table...")

        if fcol not in frame.columns:
            raise DataError(f"Label column '{fcol}' not found in feature table")
        if frame.shape[0] == 0:
            raise DataError("Feature table has no rows")
        if len(feature_columns) == 0:
            raise DataError("No feature columns in feature table")
        if fcol in feature_columns:
            raise DataError(f"Label column '{fcol}' cannot also be a feature column")

        missing = [c for c in feature_columns if c not in frame.columns]
        if missing:
            raise DataError(f"Feature columns not found in feature table: {missing}")

        non_numeric = [c for c in feature_columns if not pd.api.types.is_numeric_dtype(frame[c])]
        if non_numeric:
            raise DataError(f"Feature columns must be numeric, found non-numeric: {non_numeric}")

        self.validate_feature_matrix(frame[list(feature_columns)].to_numpy(dtype=float),
                                     row_index=frame.index, columns=list(feature_columns))

        if frame[fcol].isnull().any():
            row = frame.index[frame[fcol].isnull().to_numpy()][0]
            raise DataError(f"Missing label in column '{fcol}' at row '{row}'")

        labelled = frame[fcol].astype(str) != UNKNOWN
        if not labelled.any():
            raise DataError(f"No labelled rows in column '{fcol}' (all rows are '{UNKNOWN}')")

    def validate_feature_matrix(
        self,
        X: np.ndarray,
        row_index: Optional[Sequence[Any]] = None,
        columns: Optional[List[Any]] = None,
        n_features: Optional[int] = None
    ) -> None:
        """
        Validate a numeric feature matrix.

        Args:
            X: Feature matrix
            row_index: Row names used in error messages
            columns: Column names used in error messages
            n_features: Expected number of features

        Raises:
            DataError: On wrong dimensionality or non-finite values
        """
        if X.ndim != 2:
            raise DataError(f"Feature matrix must be 2-dimensional, got shape {X.shape}")
        if n_features is not None and X.shape[1] != n_features:
            raise DataError(f"Expected {n_features} features, got {X.shape[1]}")

        bad = ~np.isfinite(X)
        if bad.any():
            i, j = np.argwhere(bad)[0]
            row = row_index[i] if row_index is not None else i
            col = columns[j] if columns is not None else j
            raise DataError(f"Non-finite feature value {X[i, j]} at row '{row}', feature '{col}'")

    def validate_labels(self, X: np.ndarray, y: Sequence[Any]) -> None:
        """Check that labels match the feature matrix row count."""
        if len(X) != len(y):
            raise DataError(f"Feature matrix length ({len(X)}) doesn't match labels length ({len(y)})")
        if len(y) == 0:
            raise DataError("No labelled rows provided")
