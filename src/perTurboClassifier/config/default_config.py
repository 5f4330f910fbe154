"""
Default configuration for perTurboClassifier.

This module contains the default configuration settings.
"""

from typing import Dict, Any

DEFAULT_CONFIG: Dict[str, Any] = {
    # Hyperparameter grid: pRegul = 10^seq(-1, 0, 0.2), sigma = 10^seq(-1, 1, 0.5)
    "grid": {
        "sigma": [0.1, 0.31622776601683794, 1.0, 3.1622776601683795, 10.0],
        "p_regul": [0.1, 0.15848931924611134, 0.25118864315095796,
                    0.3981071705534972, 0.6309573444801932, 1.0],
    },

    # Nested resampling configuration
    "optimisation": {
        "inv": "Inversion Cholesky",
        "reg": "tikhonov",
        "times": 50,
        "xval": 5,
        "test_size": 0.2,
        "fun": "mean",
        "seed": None,
        "tie_break": "first",
        "n_jobs": 1,
        "verbose": True
    },

    # Final classification configuration
    "classification": {
        "fcol": "markers",
        "scores": "prediction",
        "params_method": "best"
    },

    # Logging configuration
    "logging": {
        "log_level": "INFO",
        "log_file": None
    }
}
