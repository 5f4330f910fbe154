import numpy as np
import pandas as pd
import pytest
from sklearn.base import clone

from perTurboClassifier.core.classifier import PerTurboClassifier, predict_labels, predict_scores
from perTurboClassifier.core.exceptions import DataError
from perTurboClassifier.core.kernel_model import KernelModel


@pytest.fixture
def model(training_data):
    X, y = training_data
    return KernelModel(1.0, inv="Inversion Cholesky", reg="tikhonov", p_regul=0.1).fit(X, y)


def test_scores_are_bounded(model, dataset):
    scores = predict_scores(model, dataset.features(train=None))
    assert scores.shape == (len(dataset), 3)
    assert np.all(scores >= 0.0)
    assert np.all(scores <= 1.0)


def test_points_score_highest_for_their_own_cluster(model, frame):
    unknown = frame[frame["markers"] == "unknown"]
    predicted = predict_labels(model, predict_scores(model, unknown[["PC1", "PC2"]]))
    assert list(predicted) == list(unknown["truth"])


def test_far_away_point_scores_near_zero(model):
    scores = predict_scores(model, np.array([[100.0, 100.0]]))
    np.testing.assert_allclose(scores, 0.0, atol=1e-12)


def test_ties_go_to_the_first_class(model):
    scores = np.array([[0.4, 0.4, 0.1], [0.2, 0.7, 0.7], [0.0, 0.0, 0.0]])
    assert list(predict_labels(model, scores)) == ["ER", "Golgi", "ER"]


def test_empty_prediction(model):
    scores = predict_scores(model, np.empty((0, 2)))
    assert scores.shape == (0, 3)
    assert len(predict_labels(model, scores)) == 0


def test_feature_width_mismatch(model):
    with pytest.raises(DataError, match="Expected 2 features"):
        predict_scores(model, np.zeros((2, 3)))


def test_non_finite_feature_names_the_row(model):
    X = pd.DataFrame({"PC1": [0.0, np.nan], "PC2": [0.0, 1.0]}, index=["P1", "P2"])
    with pytest.raises(DataError, match="row 'P2', feature 'PC1'"):
        predict_scores(model, X)


def test_class_without_training_rows_scores_zero(training_data):
    X, y = training_data
    model = KernelModel(1.0, p_regul=0.1).fit(X, y, classes=("ER", "Golgi", "Mito", "PM"))
    scores = predict_scores(model, X)
    assert np.all(scores[:, 2] == 0.0)


def test_sklearn_estimator(training_data, frame):
    X, y = training_data
    clf = PerTurboClassifier(sigma=1.0, p_regul=0.1).fit(X, y)
    assert list(clf.classes_) == ["ER", "Golgi", "PM"]
    assert clf.n_features_in_ == 2
    assert clf.score(X, y) == 1.0
    assert clf.decision_function(X).shape == (len(y), 3)

    copy = clone(clf)
    assert copy.get_params()["sigma"] == 1.0
    with pytest.raises(ValueError, match="fitted"):
        copy.predict(X)
