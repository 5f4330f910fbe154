"""
Shared fixtures: a synthetic 3-class, 2-feature dataset with well separated
clusters, a few "unknown" rows near each cluster, and a small optimisation
configuration that runs in well under a second.
"""

import numpy as np
import pandas as pd
import pytest

from perTurboClassifier.core.base import HyperparameterGrid, OptimisationConfig
from perTurboClassifier.core.result_report import ResultReport
from perTurboClassifier.data.dataset import LabeledDataset

CLASSES = ("ER", "Golgi", "PM")
CENTRES = {"ER": (0.0, 0.0), "Golgi": (10.0, 0.0), "PM": (0.0, 10.0)}


def make_frame(n_per_class: int = 20, n_unknown_per_class: int = 2, std: float = 0.5, seed: int = 0) -> pd.DataFrame:
    """Feature table with columns PC1, PC2, markers and truth (the real class of every row)."""
    rng = np.random.default_rng(seed)
    blocks, markers, truth = [], [], []
    for label in CLASSES:
        centre = np.asarray(CENTRES[label])
        blocks.append(centre + rng.normal(scale=std, size=(n_per_class + n_unknown_per_class, 2)))
        markers += [label] * n_per_class + ["unknown"] * n_unknown_per_class
        truth += [label] * (n_per_class + n_unknown_per_class)

    X = np.vstack(blocks)
    frame = pd.DataFrame(X, columns=["PC1", "PC2"], index=[f"protein{i}" for i in range(len(X))])
    frame["markers"] = markers
    frame["truth"] = truth
    return frame


@pytest.fixture
def frame():
    return make_frame()


@pytest.fixture
def dataset(frame):
    return LabeledDataset(frame, fcol="markers")


@pytest.fixture
def small_grid():
    return HyperparameterGrid(sigma=(0.5, 1.0), p_regul=(0.1, 1.0))


@pytest.fixture
def small_config(small_grid):
    return OptimisationConfig(
        grid=small_grid,
        inv="Inversion Cholesky",
        reg="tikhonov",
        times=2,
        xval=2,
        test_size=0.2,
        seed=42,
        verbose=False,
    )


@pytest.fixture
def training_data(dataset):
    return dataset.features(train=True), dataset.labels(train=True)


def make_report(f1, sigma, p_regul, warnings=()) -> ResultReport:
    """Hand-built report over a 2 x 2 grid with one row per given repeat."""
    n = len(f1)
    grid = pd.DataFrame([[0.9, 0.8], [0.7, 0.6]], index=pd.Index([0.5, 1.0], name="sigma"),
                        columns=pd.Index([0.1, 1.0], name="pRegul"))
    cm = pd.DataFrame([[2, 0], [1, 1]], index=pd.Index(["ER", "PM"], name="truth"),
                      columns=pd.Index(["ER", "PM"], name="prediction"))
    return ResultReport(
        seed=7,
        hyperparameters={"sigma": [0.5, 1.0], "pRegul": [0.1, 1.0], "inv": "svd", "reg": "tikhonov"},
        design={"xval": 2, "test.size": 0.2, "times": n},
        results=pd.DataFrame({"F1": f1, "sigma": sigma, "pRegul": p_regul}, dtype=float),
        f1_matrices=tuple(grid + i / 100 for i in range(n)),
        fold_matrices=tuple((grid, grid) for _ in range(n)),
        cm_matrices=tuple(cm for _ in range(n)),
        test_partitions=tuple(np.array([0, 3, 5]) for _ in range(n)),
        datasize={"data": [20, 2], "data.markers": {"ER": 10, "PM": 10}},
        log={"warnings": list(warnings)},
    )
