"""
Labelled dataset view for perTurboClassifier.

A LabeledDataset wraps a feature table with one label column. Rows labelled
"unknown" are the ones to classify; all other rows are training rows. The view is
immutable: every derived dataset is a new object with its own copy of the table.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple
import pandas as pd
import numpy as np

from .validator import DataValidator, UNKNOWN

SCORES_SUFFIX = ".scores"


class LabeledDataset:
    """
    Typed view of a feature table split into labels and a numeric feature block.

    Args:
        frame: Feature table, one row per item
        fcol: Label column; values are class names or "unknown"
        feature_columns: Feature columns (default: all numeric columns except fcol and
            the "*.scores" columns written by a previous classification)
        processing: Processing history carried over from a parent dataset
    """

    def __init__(
        self,
        frame: pd.DataFrame,
        fcol: str = "markers",
        feature_columns: Optional[Sequence[Any]] = None,
        processing: Optional[Sequence[str]] = None
    ):
        if feature_columns is None:
            feature_columns = [
                c for c in frame.columns
                if c != fcol and not str(c).endswith(SCORES_SUFFIX)
                and pd.api.types.is_numeric_dtype(frame[c])
            ]
        feature_columns = list(feature_columns)

        DataValidator().validate_table(frame, fcol, feature_columns)

        self._frame = frame.copy()
        self._fcol = fcol
        self._feature_columns = feature_columns
        if processing is None:
            processing = frame.attrs.get("processing", [])
        self._processing = tuple(processing)
        self._frame.attrs["processing"] = list(self._processing)

        self._labels = self._frame[fcol].astype(str).to_numpy()
        self._known = self._labels != UNKNOWN
        self._features = self._frame[feature_columns].to_numpy(dtype=float)
        self._classes = tuple(sorted(set(self._labels[self._known].tolist())))

    @property
    def frame(self) -> pd.DataFrame:
        """A copy of the underlying feature table."""
        return self._frame.copy()

    @property
    def fcol(self) -> str:
        return self._fcol

    @property
    def feature_columns(self) -> List[Any]:
        return list(self._feature_columns)

    @property
    def classes(self) -> Tuple[str, ...]:
        """Sorted class names; this is the fixed class ordering used for scores."""
        return self._classes

    @property
    def processing(self) -> Tuple[str, ...]:
        return self._processing

    @property
    def n_labelled(self) -> int:
        return int(self._known.sum())

    @property
    def n_unlabelled(self) -> int:
        return int((~self._known).sum())

    @property
    def n_features(self) -> int:
        return len(self._feature_columns)

    def __len__(self) -> int:
        return len(self._labels)

    def __repr__(self) -> str:
        return (f"LabeledDataset(rows={len(self)}, features={self.n_features}, "
                f"labelled={self.n_labelled}, unknown={self.n_unlabelled}, classes={len(self._classes)})")

    def _mask(self, train: Optional[bool]) -> np.ndarray:
        if train is None:
            return np.ones(len(self._labels), dtype=bool)
        return self._known if train else ~self._known

    def features(self, train: Optional[bool] = True) -> np.ndarray:
        """Feature matrix of labelled (True), unlabelled (False) or all (None) rows."""
        return self._features[self._mask(train)].copy()

    def labels(self, train: Optional[bool] = True) -> np.ndarray:
        """Label vector of labelled (True), unlabelled (False) or all (None) rows."""
        return self._labels[self._mask(train)].copy()

    def positions(self, train: Optional[bool] = True) -> np.ndarray:
        """Integer row positions of labelled, unlabelled or all rows."""
        return np.flatnonzero(self._mask(train))

    def row_index(self, train: Optional[bool] = True) -> pd.Index:
        """Original row labels of labelled, unlabelled or all rows."""
        return self._frame.index[self._mask(train)]

    def subset(self, train: Optional[bool] = True) -> pd.DataFrame:
        """Label column plus feature block for the selected rows."""
        columns = [self._fcol] + self._feature_columns
        return self._frame.loc[self._mask(train), columns].copy()

    def class_counts(self) -> Dict[str, int]:
        """Number of labelled rows per class, in class order."""
        labels = self._labels[self._known]
        return {label: int((labels == label).sum()) for label in self._classes}

    def with_columns(self, columns: Dict[Any, Any]) -> 'LabeledDataset':
        """Return a new dataset with the given columns added or replaced."""
        frame = self._frame.copy()
        for name, values in columns.items():
            frame[name] = values
        return LabeledDataset(frame, fcol=self._fcol, feature_columns=self._feature_columns,
                              processing=self._processing)

    def with_processing(self, note: str) -> 'LabeledDataset':
        """Return a new dataset with a note appended to its processing history."""
        return LabeledDataset(self._frame, fcol=self._fcol, feature_columns=self._feature_columns,
                              processing=self._processing + (note,))
