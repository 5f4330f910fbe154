import json
import logging

import numpy as np
import pytest
import yaml

from perTurboClassifier.config import DEFAULT_CONFIG
from perTurboClassifier.core.base import (
    HyperparameterGrid,
    InversionMethod,
    OptimisationConfig,
    RegularisationMethod,
    ScoreMode,
    TieBreak,
    default_p_regul,
    default_sigma,
    resolve_reducer,
)
from perTurboClassifier.core.exceptions import ConfigurationError, MissingParameterError
from perTurboClassifier.utils.config import Config, ConfigManager

from conftest import make_report


def test_default_grid():
    np.testing.assert_allclose(default_p_regul(), 10 ** np.arange(-1, 0.01, 0.2))
    np.testing.assert_allclose(default_sigma(), [0.1, 10 ** -0.5, 1.0, 10 ** 0.5, 10.0])
    grid = HyperparameterGrid()
    assert grid.shape == (5, 6)
    np.testing.assert_allclose(DEFAULT_CONFIG["grid"]["sigma"], grid.sigma)
    np.testing.assert_allclose(DEFAULT_CONFIG["grid"]["p_regul"], grid.p_regul)


def test_grid_cells_order():
    grid = HyperparameterGrid(sigma=[1, 2], p_regul=0.5)
    assert grid.p_regul == (0.5,)
    assert grid.cells() == [(1.0, 0.5), (2.0, 0.5)]


@pytest.mark.parametrize("sigma, p_regul", [
    ((), (0.1,)),
    ((1.0, -1.0), (0.1,)),
    ((1.0,), (0.1, float("inf"))),
    ((1.0, 1.0), (0.1,)),
    (("a",), (0.1,)),
])
def test_invalid_grid(sigma, p_regul):
    with pytest.raises(ConfigurationError):
        HyperparameterGrid(sigma=sigma, p_regul=p_regul)


def test_optimisation_config_normalises_names():
    config = OptimisationConfig(inv="SVD", reg="Trunc", grid=HyperparameterGrid((1.0,), (0.5, 1.0)),
                                tie_break="HIGH_REGULARISATION").validate()
    assert config.inv == InversionMethod.SVD
    assert config.reg == RegularisationMethod.TRUNC
    assert config.tie_break == TieBreak.HIGH_REGULARISATION
    assert config.tie_break_name == "high_regularisation"


@pytest.mark.parametrize("overrides", [
    {"inv": "Inversion Cholesky", "reg": "trunc"},
    {"inv": "svd", "reg": "trunc", "grid": HyperparameterGrid((1.0,), (0.5, 2.0))},
    {"times": 0},
    {"xval": 1},
    {"test_size": 1.0},
    {"test_size": 0},
    {"n_jobs": 0},
    {"seed": -1},
    {"fun": "mode"},
    {"tie_break": "random"},
    {"grid": {"sigma": [1.0]}},
])
def test_invalid_optimisation_config(overrides):
    with pytest.raises(ConfigurationError):
        OptimisationConfig(**overrides).validate()


def test_effective_grid_for_no_regularisation():
    config = OptimisationConfig(reg="none", grid=HyperparameterGrid((0.5, 1.0), (0.1, 0.2))).validate()
    assert config.effective_grid() == HyperparameterGrid((0.5, 1.0), (1.0,))


def test_reducers():
    assert resolve_reducer("MEDIAN")[1] is np.median
    assert resolve_reducer(np.median) == ("median", np.median)
    assert OptimisationConfig(fun=np.median).reducer_name == "median"


@pytest.mark.parametrize("suffix", [".yaml", ".json"])
def test_config_round_trip(tmp_path, suffix):
    manager = ConfigManager().update_config(sigma=[0.5, 1.0], p_regul=[0.1], inv="svd", times=3, seed=11)
    path = tmp_path / f"config{suffix}"
    manager.save_to_file(path)

    loaded = ConfigManager().load_from_file(path).get_config()
    assert loaded == manager.get_config()
    assert loaded.seed == 11


def test_nested_default_config_file(tmp_path):
    path = tmp_path / "default.yaml"
    with open(path, "w") as f:
        yaml.safe_dump(DEFAULT_CONFIG, f)

    config = ConfigManager().load_from_file(path).get_config()
    expected = Config()
    np.testing.assert_allclose(config.sigma, expected.sigma)
    np.testing.assert_allclose(config.p_regul, expected.p_regul)
    config.sigma, config.p_regul = expected.sigma, expected.p_regul
    assert config == expected


def test_unknown_key_is_reported(tmp_path, caplog):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"times": 4, "colour": "red"}))
    with caplog.at_level(logging.WARNING):
        config = ConfigManager().load_from_file(path).get_config()
    assert config.times == 4
    assert "Unknown configuration key: colour" in caplog.text


def test_unsupported_config_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        ConfigManager().load_from_file(tmp_path / "missing.yaml")
    path = tmp_path / "config.ini"
    path.write_text("[grid]")
    with pytest.raises(ValueError):
        ConfigManager().load_from_file(path)


def test_build_optimisation_config():
    manager = ConfigManager().update_config(sigma=[0.5, 1.0], p_regul=[0.1, 1.0], reg="none", xval=3, seed=5)
    config = manager.build_optimisation_config()
    assert config.reg == RegularisationMethod.NONE
    assert config.grid == HyperparameterGrid((0.5, 1.0), (0.1, 1.0))
    assert config.effective_grid().p_regul == (1.0,)
    assert (config.xval, config.seed) == (3, 5)

    with pytest.raises(ConfigurationError):
        ConfigManager().update_config(inv="solve", reg="trunc").build_optimisation_config()


def test_setup_logging_writes_log_file(tmp_path):
    from perTurboClassifier.utils.logger import get_logger, setup_logging

    log_file = tmp_path / "logs" / "run.log"
    root = logging.getLogger()
    before = list(root.handlers)
    try:
        setup_logging("INFO", log_file=log_file)
        get_logger("NestedOptimizer").info("NestedOptimizer | repeat=1/1 | F1=1.0000")
        for handler in root.handlers:
            handler.flush()
        assert "NestedOptimizer | repeat=1/1" in log_file.read_text()
    finally:
        for handler in root.handlers[:]:
            if handler not in before:
                root.removeHandler(handler)
                handler.close()
    with pytest.raises(ValueError):
        setup_logging("LOUD")


def test_validate_returns_a_normalised_copy():
    config = OptimisationConfig(inv="svd", reg="trunc", grid=HyperparameterGrid((1.0,), (0.5, 1.0)),
                                tie_break="first")
    validated = config.validate()
    assert validated is not config
    assert validated.inv == InversionMethod.SVD
    assert validated.tie_break == TieBreak.FIRST
    assert (config.inv, config.reg, config.tie_break) == ("svd", "trunc", "first")


def test_build_dataset_uses_label_column(frame):
    frame = frame.rename(columns={"markers": "organelle"})
    dataset = ConfigManager().update_config(fcol="organelle").build_dataset(frame)
    assert dataset.fcol == "organelle"
    assert dataset.classes == ("ER", "Golgi", "PM")
    assert dataset.feature_columns == ["PC1", "PC2"]


def test_build_final_classifier_from_report():
    manager = ConfigManager().update_config(scores="all", params_method="majority")
    report = make_report([0.8, 0.8, 0.95], [1.0, 1.0, 0.5], [0.1, 0.1, 1.0])
    classifier = manager.build_final_classifier(report)
    assert classifier.get_params() == {"sigma": 1.0, "pRegul": 0.1, "inv": "svd", "reg": "tikhonov"}
    assert classifier.scores == ScoreMode.ALL


def test_build_final_classifier_from_single_cell(dataset):
    manager = ConfigManager().update_config(sigma=[1.0], p_regul=[0.1], inv="solve", scores="none")
    classifier = manager.build_final_classifier()
    assert classifier.get_params() == {"sigma": 1.0, "pRegul": 0.1, "inv": "solve", "reg": "tikhonov"}
    out = classifier.classify(manager.build_dataset(dataset.frame)).frame
    assert "perTurbo" in out.columns
    assert "perTurbo.scores" not in out.columns

    with pytest.raises(MissingParameterError, match="single sigma and pRegul"):
        ConfigManager().build_final_classifier()


def test_output_path_creates_directory(tmp_path):
    manager = ConfigManager().update_config(output_dir=str(tmp_path / "results" / "run1"))
    path = manager.output_path("report.json")
    assert path.parent.is_dir()
    assert path == tmp_path / "results" / "run1" / "report.json"


def test_setup_logging_from_config(tmp_path):
    from perTurboClassifier.utils.logger import get_logger

    log_file = tmp_path / "run.log"
    manager = ConfigManager().update_config(log_level="WARNING", log_file=str(log_file))
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        manager.setup_logging()
        assert root.level == logging.WARNING
        get_logger("GridScorer").warning("GridScorer | cell skipped")
        for handler in root.handlers:
            handler.flush()
        assert "GridScorer | cell skipped" in log_file.read_text()
    finally:
        root.setLevel(level)
        for handler in root.handlers[:]:
            if handler not in before:
                root.removeHandler(handler)
                handler.close()
