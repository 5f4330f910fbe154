"""
Configuration management for perTurboClassifier.

This module contains configuration loading and management utilities.
"""

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union
import yaml
import pandas as pd
import json
from pathlib import Path
from dataclasses import dataclass, asdict, field

from .helpers import ensure_directory
from .logger import get_logger, setup_logging as configure_logging
from ..core.exceptions import MissingParameterError
from ..core.base import (
    HyperparameterGrid,
    OptimisationConfig,
    ScoreMode,
    default_p_regul,
    default_sigma,
)

if TYPE_CHECKING:
    from ..core.final_classifier import FinalClassifier
    from ..core.result_report import ResultReport
    from ..data.dataset import LabeledDataset


@dataclass
class Config:
    """Configuration class for perTurboClassifier."""

    # Hyperparameter grid
    sigma: List[float] = field(default_factory=lambda: list(default_sigma()))
    p_regul: List[float] = field(default_factory=lambda: list(default_p_regul()))

    # Strategy configuration
    inv: str = "Inversion Cholesky"
    reg: str = "tikhonov"

    # Resampling design
    times: int = 50
    xval: int = 5
    test_size: float = 0.2
    fun: str = "mean"
    seed: Optional[int] = None
    tie_break: str = "first"
    n_jobs: int = 1

    # Final classification
    fcol: str = "markers"
    scores: str = "prediction"
    params_method: str = "best"

    # Output / logging
    output_dir: str = "./results"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    verbose: bool = True


class ConfigManager:
    """Configuration manager for perTurboClassifier."""

    def __init__(self):
        self.logger = get_logger("ConfigManager")
        self.config = Config()

    def load_from_file(self, config_path: Union[str, Path]) -> 'ConfigManager':
        """
        Load configuration from a file.

        Args:
            config_path: Path to configuration file

        Returns:
            Self for method chaining
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        self.logger.info(f"Loading configuration from {config_path}")

        if config_path.suffix.lower() in ('.yaml', '.yml'):
            self._load_yaml(config_path)
        elif config_path.suffix.lower() == '.json':
            self._load_json(config_path)
        else:
            raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")

        return self

    def _load_yaml(self, config_path: Path) -> None:
        """Load configuration from YAML file."""
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}

        self._update_config(config_data)

    def _load_json(self, config_path: Path) -> None:
        """Load configuration from JSON file."""
        with open(config_path, 'r') as f:
            config_data = json.load(f)

        self._update_config(config_data)

    def _update_config(self, config_data: Dict[str, Any]) -> None:
        """Update configuration with loaded data."""
        # nested DEFAULT_CONFIG-style files are flattened section by section
        flat = {}
        for key, value in config_data.items():
            if isinstance(value, dict) and not hasattr(self.config, key):
                flat.update(value)
            else:
                flat[key] = value

        for key, value in flat.items():
            if hasattr(self.config, key):
                setattr(self.config, key, value)
            else:
                self.logger.warning(f"Unknown configuration key: {key}")

        self.logger.info("Configuration loaded successfully")

    def save_to_file(self, config_path: Union[str, Path]) -> None:
        """
        Save configuration to a file.

        Args:
            config_path: Path to save configuration file
        """
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        self.logger.info(f"Saving configuration to {config_path}")

        config_data = asdict(self.config)

        if config_path.suffix.lower() in ('.yaml', '.yml'):
            with open(config_path, 'w') as f:
                yaml.dump(config_data, f, default_flow_style=False, indent=2)
        elif config_path.suffix.lower() == '.json':
            with open(config_path, 'w') as f:
                json.dump(config_data, f, indent=2)
        else:
            raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")

        self.logger.info("Configuration saved successfully")

    def get_config(self) -> Config:
        """Get the current configuration."""
        return self.config

    def update_config(self, **kwargs) -> 'ConfigManager':
        """
        Update configuration with new values.

        Args:
            **kwargs: Configuration parameters to update

        Returns:
            Self for method chaining
        """
        for key, value in kwargs.items():
            if hasattr(self.config, key):
                setattr(self.config, key, value)
            else:
                self.logger.warning(f"Unknown configuration key: {key}")

        return self

    def build_optimisation_config(self) -> OptimisationConfig:
        """
        Build a validated OptimisationConfig from the current settings.

        Raises:
            ConfigurationError: If the settings are inconsistent
        """
        config = self.config
        optimisation_config = OptimisationConfig(
            grid=HyperparameterGrid(sigma=config.sigma, p_regul=config.p_regul),
            inv=config.inv,
            reg=config.reg,
            times=config.times,
            xval=config.xval,
            test_size=config.test_size,
            fun=config.fun,
            seed=config.seed,
            tie_break=config.tie_break,
            n_jobs=config.n_jobs,
            verbose=config.verbose,
        )
        return optimisation_config.validate()

    def setup_logging(self) -> 'ConfigManager':
        """Configure application logging from log_level and log_file."""
        configure_logging(self.config.log_level, log_file=self.config.log_file)
        self.logger.info(f"ConfigManager | logging configured | level={self.config.log_level} | "
                         f"file={self.config.log_file}")
        return self

    def build_dataset(self, frame: pd.DataFrame) -> 'LabeledDataset':
        """Wrap a feature table with the configured label column."""
        # imported here: data and core depend on this module through utils
        from ..data.dataset import LabeledDataset

        return LabeledDataset(frame, fcol=self.config.fcol)

    def build_final_classifier(self, report: Optional["ResultReport"] = None) -> 'FinalClassifier':
        """
        Build a FinalClassifier from the classification settings.

        With a report, hyperparameters are chosen from it with params_method.
        Without one, the configured grid must hold a single sigma and pRegul.

        Args:
            report: Optional ResultReport of a previous optimisation

        Returns:
            FinalClassifier

        Raises:
            MissingParameterError: If no report is given and the grid has several cells
            ConfigurationError: On an invalid score mode or inv/reg pairing
        """
        from ..core.final_classifier import FinalClassifier

        config = self.config
        scores = ScoreMode.from_value(config.scores)
        if report is not None:
            return FinalClassifier(report, scores=scores, params_method=config.params_method)

        grid = HyperparameterGrid(sigma=config.sigma, p_regul=config.p_regul)
        if len(grid.sigma) != 1 or len(grid.p_regul) != 1:
            raise MissingParameterError(
                f"Final classification needs a ResultReport or a single sigma and pRegul, "
                f"got a {grid.shape[0]} x {grid.shape[1]} grid"
            )
        return FinalClassifier(
            sigma=grid.sigma[0],
            p_regul=grid.p_regul[0],
            inv=config.inv,
            reg=config.reg,
            scores=scores,
        )

    def output_path(self, filename: str) -> Path:
        """Path of a file in output_dir; the directory is created if needed."""
        return ensure_directory(self.config.output_dir) / filename
