"""
Nested cross-validation for PerTurbo hyperparameter optimisation.

Each outer repeat:
1. stratified hold-out split of the labelled rows into outer train/test
2. stratified k-fold split of the outer training rows
3. grid search (GridScorer) on every inner fold
4. cell-wise summary of the inner-fold F1 matrices
5. selection of the best (sigma, pRegul) cell
6. refit on the outer training rows and macro F1 on the outer test rows

Repeats are independent given their own seed, derived from the master seed and
the repeat index, so they can be mapped over a joblib worker pool and still give
the same report as a sequential run.
"""

import dataclasses
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed, effective_n_jobs
from tqdm import tqdm

from .base import (
    HyperparameterGrid,
    InversionMethod,
    OptimisationConfig,
    OptimiserState,
    RegularisationMethod,
    TieBreak,
    TieBreakPolicy,
    resolve_reducer,
)
from .exceptions import ConfigurationError, DataError, NumericalError
from .grid_scorer import GridScorer
from .kernel_model import KernelFunction, gaussian_kernel
from .result_report import ResultReport
from ..data.dataset import LabeledDataset
from ..data.splitting import MAX_SEED, generate_seed, holdout_sizes, repeat_rng, stratified_folds, stratified_holdout
from ..utils.helpers import format_time
from ..utils.logger import get_logger


def summarise_matrices(matrices: Sequence[pd.DataFrame], fun: Callable[..., Any] = np.mean) -> pd.DataFrame:
    """
    Combine score matrices cell-wise.

    Args:
        matrices: Score matrices sharing the same sigma/pRegul axes
        fun: Reducer applied to the vector of values of each cell

    Returns:
        Summary matrix with the axes of the first matrix
    """
    if not matrices:
        raise ValueError("No score matrices to summarise")
    stack = np.stack([m.to_numpy(dtype=float) for m in matrices])
    template = matrices[0]
    return pd.DataFrame(np.apply_along_axis(fun, 0, stack),
                        index=template.index.copy(), columns=template.columns.copy())


def select_best_cell(summary: pd.DataFrame, tie_break: TieBreakPolicy = TieBreak.FIRST) -> Tuple[float, float]:
    """
    Pick the (sigma, pRegul) cell with the highest summarised F1.

    Cells are visited with pRegul in the outer loop and sigma in the inner loop.
    With TieBreak.FIRST the first maximal cell in that order wins. With
    TieBreak.HIGH_REGULARISATION the tied cell with the largest pRegul wins (then
    the first seen). A callable receives the tied (sigma, pRegul) pairs in visiting
    order and must return one of them.

    Returns:
        Tuple of (sigma, pRegul)
    """
    values = summary.to_numpy(dtype=float)
    if values.size == 0 or np.all(np.isnan(values)):
        raise ValueError("Summary matrix has no scores")
    best = np.nanmax(values)
    candidates = [
        (float(sigma), float(p_regul))
        for j, p_regul in enumerate(summary.columns)
        for i, sigma in enumerate(summary.index)
        if values[i, j] == best
    ]

    if callable(tie_break) and not isinstance(tie_break, TieBreak):
        choice = tie_break(list(candidates))
        choice = (float(choice[0]), float(choice[1]))
        if choice not in candidates:
            raise ConfigurationError(f"Tie-break returned {choice}, which is not one of the tied cells {candidates}")
        return choice

    tie_break = TieBreak.from_value(tie_break)
    if tie_break == TieBreak.HIGH_REGULARISATION:
        top = max(p for _, p in candidates)
        return next(c for c in candidates if c[1] == top)
    return candidates[0]


@dataclass(frozen=True)
class RepeatPlan:
    """Everything one outer repeat needs, passed by value to workers."""
    grid: HyperparameterGrid
    inv: InversionMethod
    reg: RegularisationMethod
    xval: int
    test_size: float
    fun: Callable[..., Any]
    tie_break: TieBreakPolicy
    kernel: KernelFunction
    classes: Tuple[str, ...]
    seed: int


@dataclass(frozen=True)
class RepeatResult:
    """Outcome of one outer repeat."""
    repeat: int
    f1: float
    sigma: float
    p_regul: float
    summary_matrix: pd.DataFrame
    fold_matrices: Tuple[pd.DataFrame, ...]
    confusion: pd.DataFrame
    test_partition: np.ndarray
    datasize: Dict[str, Any]


def _class_counts(labels: np.ndarray, classes: Sequence[str]) -> Dict[str, int]:
    return {label: int((labels == label).sum()) for label in classes}


def run_repeat(
    plan: RepeatPlan,
    X: np.ndarray,
    y: np.ndarray,
    repeat: int,
    on_state: Optional[Callable[[OptimiserState], None]] = None,
    on_fold: Optional[Callable[[int, int], None]] = None
) -> RepeatResult:
    """
    Run one outer repeat of the nested cross-validation.

    Args:
        plan: Repeat configuration
        X: Labelled feature matrix
        y: Labels
        repeat: Repeat index, used with plan.seed to derive the repeat's generator
        on_state: Called on every state transition
        on_fold: Called with (repeat, fold) after each inner fold is scored

    Raises:
        NumericalError: Tagged with the repeat (and fold) that failed
    """
    notify = on_state or (lambda state: None)
    rng = repeat_rng(plan.seed, repeat)

    train1, test1 = stratified_holdout(y, plan.test_size, rng)
    X1, y1 = X[train1], y[train1]
    X_test, y_test = X[test1], y[test1]
    folds = stratified_folds(y1, plan.xval, int(rng.integers(0, MAX_SEED)))

    scorer = GridScorer(plan.grid, plan.inv, plan.reg, kernel=plan.kernel, classes=plan.classes)
    fold_matrices = []
    notify(OptimiserState.FOLD_LOOP)
    for fold, (train2, test2) in enumerate(folds):
        notify(OptimiserState.GRID_SEARCH)
        try:
            fold_matrices.append(scorer.score(X1[train2], y1[train2], X1[test2], y1[test2]))
        except NumericalError as e:
            raise e.with_context(repeat=repeat, fold=fold) from e
        if on_fold is not None:
            on_fold(repeat, fold)

    notify(OptimiserState.BEST_SELECTION)
    summary = summarise_matrices(fold_matrices, plan.fun)
    sigma, p_regul = select_best_cell(summary, plan.tie_break)

    notify(OptimiserState.FINAL_FOLD_FIT)
    try:
        f1, cm = scorer.score_cell(X1, y1, X_test, y_test, sigma, p_regul)
    except NumericalError as e:
        raise e.with_context(repeat=repeat) from e

    n_features = int(X.shape[1])
    last_train, last_test = folds[-1]
    datasize = {
        "data": [int(len(y)), n_features],
        "data.markers": _class_counts(y, plan.classes),
        "train1": [int(len(train1)), n_features],
        "test1": [int(len(test1)), n_features],
        "train1.markers": _class_counts(y1, plan.classes),
        "train2": [int(len(last_train)), n_features],
        "test2": [int(len(last_test)), n_features],
        "train2.markers": _class_counts(y1[last_train], plan.classes),
    }

    confusion = pd.DataFrame(cm, index=pd.Index(plan.classes, name="truth"),
                             columns=pd.Index(plan.classes, name="prediction"))
    return RepeatResult(
        repeat=repeat,
        f1=float(f1),
        sigma=sigma,
        p_regul=p_regul,
        summary_matrix=summary,
        fold_matrices=tuple(fold_matrices),
        confusion=confusion,
        test_partition=test1,
        datasize=datasize,
    )


class NestedOptimizer:
    """
    Nested cross-validation grid search for the PerTurbo hyperparameters.

    Args:
        config: Optimisation configuration; keyword arguments override its fields
        kernel: Kernel function used by every model
        callback: Called with (completed_units, total_units) after each repeat x fold unit
        **kwargs: OptimisationConfig fields

    Attributes:
        state_: Current OptimiserState
        progress_: Completed repeat x fold units (monotonic)
        results_: ResultReport of the last run
    """

    def __init__(
        self,
        config: Optional[OptimisationConfig] = None,
        kernel: KernelFunction = gaussian_kernel,
        callback: Optional[Callable[[int, int], None]] = None,
        **kwargs
    ):
        self.logger = get_logger("NestedOptimizer")
        if config is None:
            config = OptimisationConfig(**kwargs)
        elif kwargs:
            config = dataclasses.replace(config, **kwargs)
        self.config = config.validate()
        self.kernel = kernel
        self.callback = callback

        self.state_ = OptimiserState.IDLE
        self.progress_ = 0
        self.results_: Optional[ResultReport] = None
        self._cancel_event = threading.Event()
        self._bar = None

    @property
    def total_units(self) -> int:
        return int(self.config.times * self.config.xval)

    def cancel(self) -> None:
        """Stop launching new repeats; repeats already running are completed."""
        if not self._cancel_event.is_set():
            self.logger.warning("NestedOptimizer | cancellation requested | no new repeats will start")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def _set_state(self, state: OptimiserState) -> None:
        self.state_ = state

    def _advance(self, units: int) -> None:
        self.progress_ += units
        if self._bar is not None:
            self._bar.update(units)
        if self.callback is not None:
            self.callback(self.progress_, self.total_units)

    def _check_design(self, dataset: LabeledDataset, config: OptimisationConfig) -> None:
        """Fail fast on data that cannot support the resampling design."""
        counts = dataset.class_counts()
        if len(counts) < 2:
            raise DataError(f"At least 2 classes are required for optimisation, found {list(counts)}")

        sizes = holdout_sizes(dataset.labels(train=True), config.test_size)
        train_counts = {label: counts[label] - sizes[label] for label in counts}
        empty = [label for label, n in train_counts.items() if n < 1]
        if empty:
            raise DataError(
                f"Classes {empty} have no training rows left after holding out "
                f"test_size={config.test_size} (class counts: {counts})"
            )
        if sum(train_counts.values()) < config.xval or max(train_counts.values()) < config.xval:
            raise DataError(
                f"Outer training set is too small for xval={config.xval} folds "
                f"(training rows per class: {train_counts})"
            )

    def optimise(self, dataset: LabeledDataset) -> ResultReport:
        """
        Run the nested cross-validation on the labelled rows of a dataset.

        Args:
            dataset: Labelled (and possibly unlabelled) dataset

        Returns:
            ResultReport

        Raises:
            ConfigurationError: On an invalid configuration, before any repeat
            DataError: If the data cannot support the design, before any repeat
            NumericalError: If a grid cell fails; tagged with repeat and fold
        """
        config = self.config.validate()
        if config.reg == RegularisationMethod.NONE and tuple(config.grid.p_regul) != (1.0,):
            self.logger.warning("Setting 'pRegul' to 1 when using 'reg' == 'none'")
        grid = config.effective_grid()
        self._check_design(dataset, config)

        seed = int(config.seed) if config.seed is not None else generate_seed()
        _, fun = resolve_reducer(config.fun)
        plan = RepeatPlan(
            grid=grid,
            inv=config.inv,
            reg=config.reg,
            xval=int(config.xval),
            test_size=float(config.test_size),
            fun=fun,
            tie_break=config.tie_break,
            kernel=self.kernel,
            classes=dataset.classes,
            seed=seed,
        )
        X = dataset.features(train=True)
        y = dataset.labels(train=True)

        self.logger.info(
            f"NestedOptimizer | rows={len(y)} | classes={len(plan.classes)} | grid={grid.shape[0]}x{grid.shape[1]} | "
            f"inv={config.inv.value} | reg={config.reg.value} | times={config.times} | xval={config.xval} | "
            f"test_size={config.test_size} | n_jobs={config.n_jobs} | seed={seed}"
        )

        self._cancel_event.clear()
        self.progress_ = 0
        self.state_ = OptimiserState.REPEAT_LOOP
        start = time.time()
        try:
            with tqdm(total=self.total_units, disable=not config.verbose, desc="perTurbo optimisation") as bar:
                self._bar = bar
                if config.n_jobs == 1:
                    completed = self._run_sequential(plan, X, y, config.times)
                else:
                    completed = self._run_parallel(plan, X, y, config.times, config.n_jobs)
        except NumericalError as e:
            self.logger.error(f"NestedOptimizer | repeat={e.repeat} | fold={e.fold} | "
                              f"sigma={e.sigma} | pRegul={e.p_regul} | failed: {e.message}")
            raise
        finally:
            self._bar = None

        self.state_ = OptimiserState.AGGREGATE
        report = self._aggregate(completed, plan, config, grid)
        self.results_ = report
        self.state_ = OptimiserState.DONE
        self.logger.info(f"NestedOptimizer | done | repeats={report.n_repeats} | elapsed={format_time(time.time() - start)}")
        return report

    optimize = optimise

    def _run_sequential(self, plan: RepeatPlan, X: np.ndarray, y: np.ndarray, times: int) -> List[RepeatResult]:
        completed = []
        for repeat in range(times):
            if self.cancelled:
                break
            self._set_state(OptimiserState.REPEAT_LOOP)
            result = run_repeat(plan, X, y, repeat, on_state=self._set_state,
                                on_fold=lambda r, f: self._advance(1))
            completed.append(result)
            self._log_repeat(result, times)
        return completed

    def _run_parallel(
        self,
        plan: RepeatPlan,
        X: np.ndarray,
        y: np.ndarray,
        times: int,
        n_jobs: int
    ) -> List[RepeatResult]:
        batch_size = max(1, effective_n_jobs(n_jobs))
        completed = []
        with Parallel(n_jobs=n_jobs) as parallel:
            for start in range(0, times, batch_size):
                if self.cancelled:
                    break
                batch = parallel(
                    delayed(run_repeat)(plan, X, y, repeat)
                    for repeat in range(start, min(times, start + batch_size))
                )
                for result in batch:
                    completed.append(result)
                    self._advance(plan.xval)
                    self._log_repeat(result, times)
        return completed

    def _log_repeat(self, result: RepeatResult, times: int) -> None:
        self.logger.info(
            f"NestedOptimizer | repeat={result.repeat + 1}/{times} | best_sigma={result.sigma:g} | "
            f"best_pRegul={result.p_regul:g} | F1={result.f1:.4f}"
        )

    def _aggregate(
        self,
        completed: List[RepeatResult],
        plan: RepeatPlan,
        config: OptimisationConfig,
        grid: HyperparameterGrid
    ) -> ResultReport:
        warnings = []
        if len(completed) < config.times:
            message = f"Optimisation cancelled after {len(completed)}/{config.times} repeats"
            self.logger.warning(f"NestedOptimizer | {message}")
            warnings.append(message)

        results = pd.DataFrame({
            "F1": [r.f1 for r in completed],
            "sigma": [r.sigma for r in completed],
            "pRegul": [r.p_regul for r in completed],
        }, dtype=float)

        return ResultReport(
            seed=plan.seed,
            hyperparameters={
                "sigma": list(grid.sigma),
                "pRegul": list(grid.p_regul),
                "inv": plan.inv.value,
                "reg": plan.reg.value,
            },
            design={"xval": plan.xval, "test.size": plan.test_size, "times": int(config.times)},
            results=results,
            f1_matrices=tuple(r.summary_matrix for r in completed),
            fold_matrices=tuple(r.fold_matrices for r in completed),
            cm_matrices=tuple(r.confusion for r in completed),
            test_partitions=tuple(r.test_partition for r in completed),
            datasize=completed[-1].datasize if completed else {},
            reducer=config.reducer_name,
            tie_break=config.tie_break_name,
            log={"warnings": warnings},
        )
