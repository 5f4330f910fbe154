"""
Base types for perTurboClassifier.

This module defines the closed set of inversion/regularisation strategies, their
compatibility table, the hyperparameter grid and the optimisation configuration.
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple, Union

import numpy as np

from .exceptions import ConfigurationError


class _ValueEnum(Enum):
    """Enum that can be looked up by member, value or (case-insensitive) name."""

    @classmethod
    def from_value(cls, value: Any) -> '_ValueEnum':
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            for member in cls:
                if key in (member.value.lower(), member.name.lower()):
                    return member
        valid = [member.value for member in cls]
        raise ConfigurationError(f"Unknown {cls.__name__} '{value}'. Expected one of {valid}")


class InversionMethod(_ValueEnum):
    """Algorithm used to invert the per-class kernel matrix."""
    CHOLESKY = "Inversion Cholesky"
    MOORE_PENROSE = "Moore Penrose"
    SOLVE = "solve"
    SVD = "svd"


class RegularisationMethod(_ValueEnum):
    """Regularisation applied to the kernel matrix before inversion."""
    TIKHONOV = "tikhonov"
    NONE = "none"
    TRUNC = "trunc"


class TieBreak(_ValueEnum):
    """Rule used when several grid cells share the best summarised macro F1."""
    FIRST = "first"  # first-seen-wins: pRegul outer, sigma inner
    HIGH_REGULARISATION = "high_regularisation"


class ScoreMode(_ValueEnum):
    """Which scores the final classification reports."""
    NONE = "none"
    PREDICTION = "prediction"
    ALL = "all"


class OptimiserState(Enum):
    """States of the nested optimisation."""
    IDLE = "idle"
    REPEAT_LOOP = "repeat_loop"
    FOLD_LOOP = "fold_loop"
    GRID_SEARCH = "grid_search"
    BEST_SELECTION = "best_selection"
    FINAL_FOLD_FIT = "final_fold_fit"
    AGGREGATE = "aggregate"
    DONE = "done"


COMPATIBLE_METHODS: Dict[InversionMethod, FrozenSet[RegularisationMethod]] = {
    InversionMethod.CHOLESKY: frozenset({RegularisationMethod.TIKHONOV, RegularisationMethod.NONE}),
    InversionMethod.MOORE_PENROSE: frozenset({RegularisationMethod.TIKHONOV, RegularisationMethod.NONE}),
    InversionMethod.SOLVE: frozenset({RegularisationMethod.TIKHONOV, RegularisationMethod.NONE}),
    InversionMethod.SVD: frozenset({RegularisationMethod.TIKHONOV, RegularisationMethod.NONE,
                                    RegularisationMethod.TRUNC}),
}


def check_compatibility(
    inv: Union[str, InversionMethod],
    reg: Union[str, RegularisationMethod]
) -> Tuple[InversionMethod, RegularisationMethod]:
    """
    Normalise an (inversion, regularisation) pair and check it is implemented.

    Args:
        inv: Inversion method (member, value or name)
        reg: Regularisation method (member, value or name)

    Returns:
        Tuple of (InversionMethod, RegularisationMethod)

    Raises:
        ConfigurationError: If either name is unknown or the pairing is not allowed
    """
    inv = InversionMethod.from_value(inv)
    reg = RegularisationMethod.from_value(reg)
    if reg not in COMPATIBLE_METHODS[inv]:
        allowed = sorted(r.value for r in COMPATIBLE_METHODS[inv])
        raise ConfigurationError(
            f"Regularisation '{reg.value}' is not available with inversion '{inv.value}' "
            f"(allowed: {allowed})"
        )
    return inv, reg


def check_p_regul(p_regul: float, reg: RegularisationMethod) -> float:
    """Validate a single regularisation strength for the given strategy."""
    try:
        value = float(p_regul)
    except (TypeError, ValueError):
        raise ConfigurationError(f"pRegul must be a number, got {p_regul!r}")
    if not math.isfinite(value) or value <= 0:
        raise ConfigurationError(f"pRegul must be a positive finite number, got {p_regul!r}")
    if reg == RegularisationMethod.TRUNC and value > 1:
        raise ConfigurationError(f"pRegul is a fraction of eigenvalues for 'trunc' and must be in ]0, 1], got {value}")
    return value


def _as_axis(name: str, values: Any) -> Tuple[float, ...]:
    if np.isscalar(values):
        values = [values]
    try:
        axis = tuple(float(v) for v in values)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Grid axis '{name}' must contain numbers, got {values!r}")
    if not axis:
        raise ConfigurationError(f"Grid axis '{name}' is empty")
    if any(not math.isfinite(v) or v <= 0 for v in axis):
        raise ConfigurationError(f"Grid axis '{name}' must contain positive finite values, got {list(axis)}")
    if len(set(axis)) != len(axis):
        raise ConfigurationError(f"Grid axis '{name}' contains duplicate values: {list(axis)}")
    return axis


def default_p_regul() -> Tuple[float, ...]:
    """10^seq(-1, 0, by=0.2)"""
    return tuple(float(10 ** e) for e in np.round(np.arange(-1.0, 0.0 + 1e-9, 0.2), 10))


def default_sigma() -> Tuple[float, ...]:
    """10^seq(-1, 1, by=0.5)"""
    return tuple(float(10 ** e) for e in np.round(np.arange(-1.0, 1.0 + 1e-9, 0.5), 10))


@dataclass(frozen=True)
class HyperparameterGrid:
    """Two independent hyperparameter axes: kernel scale and regularisation strength."""
    sigma: Tuple[float, ...] = field(default_factory=default_sigma)
    p_regul: Tuple[float, ...] = field(default_factory=default_p_regul)

    def __post_init__(self):
        object.__setattr__(self, "sigma", _as_axis("sigma", self.sigma))
        object.__setattr__(self, "p_regul", _as_axis("pRegul", self.p_regul))

    @property
    def shape(self) -> Tuple[int, int]:
        return len(self.sigma), len(self.p_regul)

    def cells(self) -> List[Tuple[float, float]]:
        """All (sigma, pRegul) pairs in search order: pRegul outer, sigma inner."""
        return [(s, p) for p in self.p_regul for s in self.sigma]


REDUCERS: Dict[str, Callable[..., Any]] = {
    "mean": np.mean,
    "median": np.median,
    "min": np.min,
    "max": np.max,
}


def resolve_reducer(fun: Union[str, Callable[..., Any]]) -> Tuple[str, Callable[..., Any]]:
    """Return (name, callable) for a reducer given by name or as a function."""
    if callable(fun):
        return getattr(fun, "__name__", repr(fun)), fun
    if isinstance(fun, str) and fun.lower() in REDUCERS:
        return fun.lower(), REDUCERS[fun.lower()]
    raise ConfigurationError(f"Unknown reducer {fun!r}. Expected a callable or one of {sorted(REDUCERS)}")


TieBreakPolicy = Union[TieBreak, str, Callable[[List[Tuple[float, float]]], Tuple[float, float]]]


@dataclass
class OptimisationConfig:
    """Configuration for a nested PerTurbo optimisation."""
    grid: HyperparameterGrid = field(default_factory=HyperparameterGrid)
    inv: Union[str, InversionMethod] = InversionMethod.CHOLESKY
    reg: Union[str, RegularisationMethod] = RegularisationMethod.TIKHONOV
    times: int = 50
    xval: int = 5
    test_size: float = 0.2
    fun: Union[str, Callable[..., Any]] = "mean"
    seed: Optional[int] = None
    tie_break: TieBreakPolicy = TieBreak.FIRST
    n_jobs: int = 1
    verbose: bool = True

    def validate(self) -> 'OptimisationConfig':
        """
        Check the configuration and normalise strategy names to enum members.

        The instance itself is left untouched.

        Returns:
            A validated copy

        Raises:
            ConfigurationError: On any invalid setting
        """
        if not isinstance(self.grid, HyperparameterGrid):
            raise ConfigurationError(f"grid must be a HyperparameterGrid, got {type(self.grid).__name__}")
        inv, reg = check_compatibility(self.inv, self.reg)
        if reg != RegularisationMethod.NONE:
            for p in self.grid.p_regul:
                check_p_regul(p, reg)
        if not isinstance(self.times, (int, np.integer)) or self.times < 1:
            raise ConfigurationError(f"times must be an integer >= 1, got {self.times!r}")
        if not isinstance(self.xval, (int, np.integer)) or self.xval < 2:
            raise ConfigurationError(f"xval must be an integer >= 2, got {self.xval!r}")
        if not 0 < float(self.test_size) < 1:
            raise ConfigurationError(f"test_size must be in ]0, 1[, got {self.test_size!r}")
        if not isinstance(self.n_jobs, (int, np.integer)) or self.n_jobs == 0:
            raise ConfigurationError(f"n_jobs must be a non-zero integer, got {self.n_jobs!r}")
        if self.seed is not None and (not isinstance(self.seed, (int, np.integer)) or self.seed < 0):
            raise ConfigurationError(f"seed must be a non-negative integer, got {self.seed!r}")
        resolve_reducer(self.fun)
        tie_break = self.tie_break if callable(self.tie_break) else TieBreak.from_value(self.tie_break)
        return replace(self, inv=inv, reg=reg, tie_break=tie_break)

    def effective_grid(self) -> HyperparameterGrid:
        """The grid actually searched; 'none' regularisation collapses pRegul to 1."""
        if RegularisationMethod.from_value(self.reg) == RegularisationMethod.NONE:
            return HyperparameterGrid(sigma=self.grid.sigma, p_regul=(1.0,))
        return self.grid

    @property
    def reducer_name(self) -> str:
        return resolve_reducer(self.fun)[0]

    @property
    def tie_break_name(self) -> str:
        if isinstance(self.tie_break, TieBreak):
            return self.tie_break.value
        if isinstance(self.tie_break, str):
            return TieBreak.from_value(self.tie_break).value
        return getattr(self.tie_break, "__name__", "custom")
