"""
Result report of a PerTurbo hyperparameter optimisation.

The report is the only handoff between the (expensive, run once) nested
optimisation and the final classification, so it is fully serialisable: to a
JSON-safe dict, to a .json file, or to any other path with joblib.
"""

import json
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .exceptions import MissingParameterError
from ..utils.helpers import load_object, save_object
from ..utils.logger import get_logger

PARAM_NAMES = ("sigma", "pRegul")


def _matrix_to_dict(matrix: pd.DataFrame) -> Dict[str, Any]:
    return {
        "sigma": [float(v) for v in matrix.index],
        "pRegul": [float(v) for v in matrix.columns],
        "values": [[float(v) for v in row] for row in matrix.to_numpy()],
    }


def _matrix_from_dict(data: Dict[str, Any]) -> pd.DataFrame:
    return pd.DataFrame(
        np.asarray(data["values"], dtype=float).reshape(len(data["sigma"]), len(data["pRegul"])),
        index=pd.Index([float(v) for v in data["sigma"]], name="sigma"),
        columns=pd.Index([float(v) for v in data["pRegul"]], name="pRegul"),
    )


def _confusion_to_dict(cm: pd.DataFrame) -> Dict[str, Any]:
    return {
        "labels": [str(v) for v in cm.index],
        "values": [[int(v) for v in row] for row in cm.to_numpy()],
    }


def _confusion_from_dict(data: Dict[str, Any]) -> pd.DataFrame:
    labels = list(data["labels"])
    return pd.DataFrame(
        np.asarray(data["values"], dtype=np.int64).reshape(len(labels), len(labels)),
        index=pd.Index(labels, name="truth"),
        columns=pd.Index(labels, name="prediction"),
    )


@dataclass(frozen=True, eq=False)
class ResultReport:
    """
    Aggregated outcome of the nested cross-validation.

    Attributes:
        seed: Master random seed
        hyperparameters: Searched grid ('sigma', 'pRegul') plus 'inv' and 'reg'
        design: Resampling design ('xval', 'test.size', 'times')
        results: One row per outer repeat with columns F1, sigma, pRegul
        f1_matrices: Summarised (across inner folds) F1 matrix per repeat
        fold_matrices: Per-repeat tuple of inner-fold F1 matrices
        cm_matrices: Outer test confusion matrix per repeat (truth x prediction)
        test_partitions: Outer test row positions (into the labelled rows) per repeat
        datasize: Row and class counts at each split
        reducer: Name of the function used to summarise inner-fold matrices
        tie_break: Name of the best-cell tie-break rule
        log: Warnings collected during the run
        algorithm: Algorithm name
    """
    seed: int
    hyperparameters: Dict[str, Any]
    design: Dict[str, Any]
    results: pd.DataFrame
    f1_matrices: Tuple[pd.DataFrame, ...]
    fold_matrices: Tuple[Tuple[pd.DataFrame, ...], ...]
    cm_matrices: Tuple[pd.DataFrame, ...]
    test_partitions: Tuple[np.ndarray, ...]
    datasize: Dict[str, Any]
    reducer: str = "mean"
    tie_break: str = "first"
    log: Dict[str, Any] = field(default_factory=dict)
    algorithm: str = "perTurbo"

    @property
    def n_repeats(self) -> int:
        return len(self.results)

    def get_f1_scores(self) -> pd.DataFrame:
        """Outer macro F1 and chosen hyperparameters per repeat."""
        return self.results.copy()

    def get_seed(self) -> int:
        return self.seed

    def get_warnings(self) -> List[str]:
        return list(self.log.get("warnings", []))

    def get_other_params(self) -> Dict[str, str]:
        """Inversion and regularisation methods used during the optimisation."""
        return {"inv": self.hyperparameters.get("inv"), "reg": self.hyperparameters.get("reg")}

    def get_params(self, method: str = "best") -> Dict[str, float]:
        """
        Hyperparameters to use for the final classification.

        Args:
            method: 'best' returns the parameters of the first repeat with the highest
                outer F1. 'majority' returns the pair chosen most often across repeats;
                ties go to the pair with the higher mean F1, then to the first seen.

        Returns:
            Dict with 'sigma' and 'pRegul'

        Raises:
            MissingParameterError: If the report holds no repeats
        """
        if self.results.empty:
            raise MissingParameterError("The result report contains no completed repeats")

        if method == "best":
            best = int(np.argmax(self.results["F1"].to_numpy()))
            row = self.results.iloc[best]
            return {"sigma": float(row["sigma"]), "pRegul": float(row["pRegul"])}

        if method == "majority":
            pairs = list(zip(self.results["sigma"].astype(float), self.results["pRegul"].astype(float)))
            counts = Counter(pairs)
            mean_f1 = self.results.groupby(["sigma", "pRegul"], sort=False)["F1"].mean()
            ranked = sorted(
                dict.fromkeys(pairs),
                key=lambda pair: (-counts[pair], -mean_f1.loc[pair]),
            )
            sigma, p_regul = ranked[0]
            return {"sigma": float(sigma), "pRegul": float(p_regul)}

        raise ValueError(f"Unknown parameter selection method '{method}'. Use 'best' or 'majority'")

    def get_best_params(self, method: str = "best") -> Dict[str, float]:
        """Alias of get_params."""
        return self.get_params(method)

    def f1_count(self, t: Optional[float] = None) -> pd.DataFrame:
        """
        How often each (sigma, pRegul) pair was selected among repeats with F1 >= t.

        Args:
            t: F1 threshold (default: the highest F1 observed)

        Returns:
            Count table with sigma as rows and pRegul as columns
        """
        if self.results.empty:
            return pd.DataFrame()
        if t is None:
            t = float(self.results["F1"].max())
        selected = self.results[self.results["F1"] >= t]
        return pd.crosstab(selected["sigma"], selected["pRegul"])

    def summary_matrix(self, fun: Callable[..., Any] = np.mean) -> pd.DataFrame:
        """Cell-wise summary of the per-repeat F1 matrices."""
        if not self.f1_matrices:
            return pd.DataFrame()
        stack = np.stack([m.to_numpy() for m in self.f1_matrices])
        template = self.f1_matrices[0]
        return pd.DataFrame(np.apply_along_axis(fun, 0, stack),
                            index=template.index.copy(), columns=template.columns.copy())

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation of the report."""
        return {
            "algorithm": self.algorithm,
            "seed": int(self.seed),
            "hyperparameters": {
                "sigma": [float(v) for v in self.hyperparameters["sigma"]],
                "pRegul": [float(v) for v in self.hyperparameters["pRegul"]],
                "inv": self.hyperparameters["inv"],
                "reg": self.hyperparameters["reg"],
            },
            "design": {
                "xval": int(self.design["xval"]),
                "test.size": float(self.design["test.size"]),
                "times": int(self.design["times"]),
            },
            "results": {col: [float(v) for v in self.results[col]] for col in ("F1",) + PARAM_NAMES},
            "f1_matrices": [_matrix_to_dict(m) for m in self.f1_matrices],
            "fold_matrices": [[_matrix_to_dict(m) for m in folds] for folds in self.fold_matrices],
            "cm_matrices": [_confusion_to_dict(cm) for cm in self.cm_matrices],
            "test_partitions": [[int(i) for i in part] for part in self.test_partitions],
            "datasize": json.loads(json.dumps(self.datasize)),
            "reducer": self.reducer,
            "tie_break": self.tie_break,
            "log": {"warnings": self.get_warnings()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResultReport':
        """Rebuild a report from its to_dict() representation."""
        results = pd.DataFrame({col: [float(v) for v in data["results"][col]] for col in ("F1",) + PARAM_NAMES})
        return cls(
            seed=int(data["seed"]),
            hyperparameters=dict(data["hyperparameters"]),
            design=dict(data["design"]),
            results=results,
            f1_matrices=tuple(_matrix_from_dict(m) for m in data["f1_matrices"]),
            fold_matrices=tuple(tuple(_matrix_from_dict(m) for m in folds) for folds in data["fold_matrices"]),
            cm_matrices=tuple(_confusion_from_dict(cm) for cm in data["cm_matrices"]),
            test_partitions=tuple(np.asarray(part, dtype=np.int64) for part in data["test_partitions"]),
            datasize=dict(data["datasize"]),
            reducer=data.get("reducer", "mean"),
            tie_break=data.get("tie_break", "first"),
            log=dict(data.get("log", {})),
            algorithm=data.get("algorithm", "perTurbo"),
        )

    def equals(self, other: 'ResultReport') -> bool:
        """True when both reports serialise to identical content."""
        return isinstance(other, ResultReport) and self.to_dict() == other.to_dict()

    def save(self, path: Union[str, Path]) -> Path:
        """
        Persist the report; '.json' paths are written as JSON, anything else with joblib.

        Returns:
            The path written
        """
        path = Path(path)
        logger = get_logger("ResultReport")
        if path.suffix.lower() == ".json":
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
        else:
            save_object(self.to_dict(), path)
        logger.info(f"ResultReport saved | path={path} | repeats={self.n_repeats}")
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'ResultReport':
        """Load a report written by save()."""
        path = Path(path)
        if path.suffix.lower() == ".json":
            if not path.exists():
                raise FileNotFoundError(f"Result report not found: {path}")
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        else:
            data = load_object(path)
        return cls.from_dict(data)

    def __str__(self) -> str:
        hp = self.hyperparameters
        lines = [
            f"Object of class \"{type(self).__name__}\"",
            f"Algorithm: {self.algorithm}",
            "Hyper-parameters:",
            f"  sigma: {' '.join(f'{v:g}' for v in hp['sigma'])}",
            f"  pRegul: {' '.join(f'{v:g}' for v in hp['pRegul'])}",
            f"  inv: {hp['inv']}  reg: {hp['reg']}",
            "Design:",
            f"  Replication: {self.design['times']} x {self.design['xval']}-fold X-validation",
            f"  Partitioning: {self.design['test.size']:g}/{1 - self.design['test.size']:g} (test/train)",
            f"  Seed: {self.seed}",
            "Results:",
        ]
        if self.results.empty:
            lines.append("  no completed repeats")
        else:
            f1 = self.results["F1"]
            lines.append(
                f"  macro F1: min={f1.min():.4f} median={f1.median():.4f} "
                f"mean={f1.mean():.4f} max={f1.max():.4f}"
            )
            best = self.get_params()
            lines.append(f"  best sigma: {best['sigma']:g}")
            lines.append(f"  best pRegul: {best['pRegul']:g}")
        for warning in self.get_warnings():
            lines.append(f"Warning: {warning}")
        return "\n".join(lines)
