"""
Final PerTurbo classification.

Trains on every labelled row with the chosen hyperparameters and labels the
"unknown" rows of a dataset. The hyperparameters come either from a
ResultReport or from explicit values.
"""

from datetime import datetime
from typing import Any, Dict, Optional, Union

import numpy as np
import pandas as pd

from .base import InversionMethod, RegularisationMethod, ScoreMode, check_compatibility
from .classifier import predict_labels, predict_scores
from .exceptions import DataError, MissingParameterError
from .kernel_model import KernelFunction, KernelModel, TrainedModel, gaussian_kernel
from .result_report import ResultReport
from ..data.dataset import SCORES_SUFFIX, LabeledDataset
from ..data.validator import UNKNOWN
from ..utils.logger import get_logger


class FinalClassifier:
    """
    Labels the unknown rows of a dataset with a PerTurbo model.

    Args:
        report: Optimisation report to take the hyperparameters from
        sigma: Kernel scale (required without a report)
        p_regul: Regularisation strength (required without a report)
        inv: Inversion method (required without a report)
        reg: Regularisation method (required without a report)
        scores: 'none', 'prediction' or 'all'
        params_method: How to pick parameters from the report ('best' or 'majority')
        kernel: Kernel function
        column: Name of the prediction column added to the dataset

    Raises:
        MissingParameterError: If a hyperparameter cannot be determined
        ConfigurationError: On an invalid inv/reg pairing or score mode
    """

    def __init__(
        self,
        report: Optional[ResultReport] = None,
        sigma: Optional[float] = None,
        p_regul: Optional[float] = None,
        inv: Optional[Union[str, InversionMethod]] = None,
        reg: Optional[Union[str, RegularisationMethod]] = None,
        scores: Union[str, ScoreMode] = ScoreMode.PREDICTION,
        params_method: str = "best",
        kernel: KernelFunction = gaussian_kernel,
        column: str = "perTurbo"
    ):
        self.logger = get_logger("FinalClassifier")
        self.scores = ScoreMode.from_value(scores)
        self.kernel = kernel
        self.column = column

        if report is not None:
            params = report.get_params(params_method)
            others = report.get_other_params()
            sigma, p_regul = params.get("sigma"), params.get("pRegul")
            inv, reg = others.get("inv"), others.get("reg")
            self.logger.info(f"FinalClassifier | parameters from report ({params_method}) | "
                             f"sigma={sigma} | pRegul={p_regul} | inv={inv} | reg={reg}")

        missing = [name for name, value in (("sigma", sigma), ("pRegul", p_regul), ("inv", inv), ("reg", reg))
                   if value is None]
        if missing:
            raise MissingParameterError(f"Missing hyperparameters for final classification: {missing}")

        self.inv, self.reg = check_compatibility(inv, reg)
        self.sigma = float(sigma)
        self.p_regul = float(p_regul)
        self.model_: Optional[TrainedModel] = None

    def get_params(self) -> Dict[str, Any]:
        return {"sigma": self.sigma, "pRegul": self.p_regul, "inv": self.inv.value, "reg": self.reg.value}

    @property
    def score_column(self) -> str:
        return f"{self.column}{SCORES_SUFFIX}"

    def class_score_column(self, label: str) -> str:
        return f"{label}.{self.column}{SCORES_SUFFIX}"

    def classify(self, dataset: LabeledDataset) -> LabeledDataset:
        """
        Train on all labelled rows and predict the unknown rows.

        Args:
            dataset: Dataset with labelled and "unknown" rows

        Returns:
            New dataset with the prediction column (and score columns, depending on the mode)
            and a processing note
        """
        if len(dataset.classes) < 1:
            raise DataError("No labelled rows to train the final model on")

        model = KernelModel(self.sigma, inv=self.inv, reg=self.reg, p_regul=self.p_regul, kernel=self.kernel)
        self.model_ = model.fit(dataset.features(train=True), dataset.labels(train=True), classes=dataset.classes)

        unknown_pos = dataset.positions(train=False)
        score_matrix = predict_scores(self.model_, dataset.features(train=False))
        predicted = predict_labels(self.model_, score_matrix)
        self.logger.info(f"FinalClassifier | trained on {dataset.n_labelled} rows | "
                         f"classified {len(unknown_pos)} unknown rows")

        n = len(dataset)
        labels = dataset.labels(train=None).astype(object)
        labels[unknown_pos] = predicted
        columns = {self.column: labels}

        if self.scores == ScoreMode.PREDICTION:
            best = np.ones(n, dtype=float)
            if len(unknown_pos):
                best[unknown_pos] = score_matrix.max(axis=1)
            columns[self.score_column] = best
        elif self.scores == ScoreMode.ALL:
            full = np.ones((n, len(self.model_.classes)), dtype=float)
            full[unknown_pos] = score_matrix
            for j, label in enumerate(self.model_.classes):
                columns[self.class_score_column(label)] = full[:, j]

        note = (f"Performed {self.column} prediction (pRegul={self.p_regul:g} sigma={self.sigma:g}) "
                f"{datetime.now().strftime('%a %b %d %H:%M:%S %Y')}")
        return dataset.with_columns(columns).with_processing(note)


def get_predictions(
    dataset: Union[LabeledDataset, pd.DataFrame],
    fcol: str = "perTurbo",
    scol: Optional[str] = None,
    t: float = 0,
    mcol: str = "markers"
) -> pd.Series:
    """
    Prediction vector with low-confidence predictions set back to "unknown".

    Args:
        dataset: Classified dataset (or its frame)
        fcol: Prediction column
        scol: Score column (default: '<fcol>.scores', else the row max of the per-class columns)
        t: Score threshold; predictions of unknown rows scoring below t become "unknown"
        mcol: Original label column; labelled rows are never changed

    Returns:
        Series of labels indexed like the dataset
    """
    frame = dataset.frame if isinstance(dataset, LabeledDataset) else dataset
    for column in (fcol, mcol):
        if column not in frame.columns:
            raise DataError(f"Column '{column}' not found in dataset")

    predictions = frame[fcol].astype(str).copy()
    if t <= 0:
        return predictions

    if scol is None:
        scol = f"{fcol}{SCORES_SUFFIX}"
    if scol in frame.columns:
        scores = frame[scol].astype(float)
    else:
        suffix = f".{fcol}{SCORES_SUFFIX}"
        class_columns = [c for c in frame.columns if isinstance(c, str) and c.endswith(suffix)]
        if not class_columns:
            raise DataError(f"No score column '{scol}' or '*{suffix}' columns found in dataset")
        scores = frame[class_columns].astype(float).max(axis=1)

    low = (frame[mcol].astype(str) == UNKNOWN) & (scores < t)
    predictions[low] = UNKNOWN
    return predictions
