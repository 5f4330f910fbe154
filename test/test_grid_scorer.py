import numpy as np
import pytest

from perTurboClassifier.core.base import HyperparameterGrid
from perTurboClassifier.core.exceptions import ConfigurationError, NumericalError
from perTurboClassifier.core.grid_scorer import GridScorer, empty_score_matrix


@pytest.fixture
def split(training_data):
    X, y = training_data
    order = np.random.default_rng(3).permutation(len(y))
    train, val = order[: len(y) // 2], order[len(y) // 2:]
    return X[train], y[train], X[val], y[val]


def test_empty_score_matrix_axes(small_grid):
    matrix = empty_score_matrix(small_grid)
    assert matrix.shape == (2, 2)
    assert matrix.index.name == "sigma"
    assert matrix.columns.name == "pRegul"
    assert list(matrix.index) == [0.5, 1.0]
    assert matrix.isna().all().all()


def test_score_matrix_values(small_grid, split):
    matrix = GridScorer(small_grid, "Inversion Cholesky", "tikhonov").score(*split)
    assert matrix.shape == small_grid.shape
    assert list(matrix.columns) == [0.1, 1.0]
    values = matrix.to_numpy()
    assert np.all((values >= 0.0) & (values <= 1.0))
    assert values.max() == 1.0


def test_cells_are_visited_regularisation_first(split):
    grid = HyperparameterGrid(sigma=(0.5, 1.0, 2.0), p_regul=(0.1, 0.5))
    scorer = GridScorer(grid, "svd", "tikhonov")
    visited = []

    def record(X_train, y_train, X_val, y_val, sigma, p_regul):
        visited.append((sigma, p_regul))
        return 0.5, None

    scorer.score_cell = record
    scorer.score(*split)
    assert visited == [(0.5, 0.1), (1.0, 0.1), (2.0, 0.1), (0.5, 0.5), (1.0, 0.5), (2.0, 0.5)]
    assert visited == grid.cells()


def test_score_cell_returns_confusion(split):
    f1, cm = GridScorer(HyperparameterGrid((1.0,), (0.1,)), "solve", "tikhonov",
                        classes=("ER", "Golgi", "PM")).score_cell(*split, sigma=1.0, p_regul=0.1)
    assert f1 == 1.0
    assert cm.shape == (3, 3)
    assert cm.sum() == len(split[3])
    assert np.count_nonzero(cm - np.diag(np.diag(cm))) == 0


def test_invalid_pairing_fails_before_scoring(small_grid):
    with pytest.raises(ConfigurationError):
        GridScorer(small_grid, "Moore Penrose", "trunc")


def test_numerical_error_propagates():
    X = np.array([[0.0, 0.0], [0.0, 0.0], [9.0, 9.0], [9.0, 9.0]])
    y = np.array(["ER", "ER", "PM", "PM"])
    scorer = GridScorer(HyperparameterGrid((1.0,), (1.0,)), "Inversion Cholesky", "none")
    with pytest.raises(NumericalError):
        scorer.score(X, y, X, y)
