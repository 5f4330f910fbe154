import json

import numpy as np
import pytest

from perTurboClassifier.core.exceptions import MissingParameterError
from perTurboClassifier.core.nested_optimizer import NestedOptimizer
from perTurboClassifier.core.result_report import ResultReport

from conftest import make_report


def test_best_params_take_the_first_highest_f1():
    report = make_report([0.8, 0.95, 0.95], [1.0, 0.5, 1.0], [0.1, 1.0, 0.1])
    assert report.get_params() == {"sigma": 0.5, "pRegul": 1.0}
    assert report.get_best_params("best") == report.get_params("best")


def test_majority_params_count_first():
    report = make_report([0.8, 0.8, 0.8, 0.95], [1.0, 1.0, 1.0, 0.5], [0.1, 0.1, 0.1, 1.0])
    assert report.get_params("best") == {"sigma": 0.5, "pRegul": 1.0}
    assert report.get_params("majority") == {"sigma": 1.0, "pRegul": 0.1}


def test_majority_ties_go_to_higher_mean_f1():
    report = make_report([0.8, 0.95, 0.9, 0.85], [1.0, 0.5, 1.0, 0.5], [0.1, 1.0, 0.1, 1.0])
    assert report.get_params("majority") == {"sigma": 0.5, "pRegul": 1.0}


def test_unknown_selection_method():
    with pytest.raises(ValueError, match="Unknown parameter selection method"):
        make_report([0.9], [1.0], [0.1]).get_params("median")


def test_empty_report_has_no_params():
    report = make_report([], [], [])
    with pytest.raises(MissingParameterError):
        report.get_params()
    assert report.f1_count().empty
    assert "no completed repeats" in str(report)


def test_accessors():
    report = make_report([0.8, 0.9], [1.0, 0.5], [0.1, 1.0], warnings=["slow"])
    assert report.get_seed() == 7
    assert report.get_other_params() == {"inv": "svd", "reg": "tikhonov"}
    assert report.get_warnings() == ["slow"]
    scores = report.get_f1_scores()
    scores.loc[0, "F1"] = 0.0
    assert report.results.loc[0, "F1"] == 0.8


def test_f1_count():
    report = make_report([0.8, 0.9, 0.9, 0.95], [1.0, 1.0, 1.0, 0.5], [0.1, 0.1, 0.1, 1.0])
    top = report.f1_count()
    assert top.to_numpy().sum() == 1
    assert top.loc[0.5, 1.0] == 1

    above = report.f1_count(0.85)
    assert above.loc[1.0, 0.1] == 2
    assert above.loc[0.5, 1.0] == 1


def test_summary_matrix_across_repeats():
    report = make_report([0.8, 0.9, 0.9], [1.0, 1.0, 1.0], [0.1, 0.1, 0.1])
    np.testing.assert_allclose(report.summary_matrix().to_numpy(), [[0.91, 0.81], [0.71, 0.61]])
    np.testing.assert_allclose(report.summary_matrix(np.max).to_numpy(), [[0.92, 0.82], [0.72, 0.62]])


def test_dict_round_trip_is_json_safe():
    report = make_report([0.8, 0.9], [1.0, 0.5], [0.1, 1.0], warnings=["slow"])
    data = json.loads(json.dumps(report.to_dict()))
    restored = ResultReport.from_dict(data)
    assert restored.equals(report)
    assert restored.cm_matrices[0].loc["PM", "ER"] == 1
    assert restored.f1_matrices[1].index.name == "sigma"
    np.testing.assert_array_equal(restored.test_partitions[0], [0, 3, 5])


@pytest.mark.parametrize("filename", ["report.json", "report.joblib"])
def test_save_and_load(tmp_path, filename):
    report = make_report([0.8, 0.9], [1.0, 0.5], [0.1, 1.0])
    path = report.save(tmp_path / "out" / filename)
    assert path.exists()
    assert ResultReport.load(path).equals(report)


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ResultReport.load(tmp_path / "missing.json")
    with pytest.raises(FileNotFoundError):
        ResultReport.load(tmp_path / "missing.joblib")


def test_report_is_immutable():
    report = make_report([0.8], [1.0], [0.1])
    with pytest.raises(AttributeError):
        report.seed = 3


def test_show(dataset, small_config):
    text = str(NestedOptimizer(small_config).optimise(dataset))
    assert "Algorithm: perTurbo" in text
    assert "Replication: 2 x 2-fold X-validation" in text
    assert "Partitioning: 0.2/0.8 (test/train)" in text
    assert "Seed: 42" in text
    assert "best sigma:" in text
