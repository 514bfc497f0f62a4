"""
Utility Functions for Design Optimization Solvers.

This module provides helpers shared by the solvers:
- Evaluating batches of candidate vectors, optionally in parallel
- Negating objectives for minimize-only solvers
- Snapping values to discrete allowed sets
- Direction-aware comparison of objective values

Functions
---------
evaluate_candidates
    Evaluate an objective on many vectors (serial, thread or process pool)
worker_pool
    Worker pool shared by the evaluations of one solver run
resolve_num_cores
    Number of workers for a parallel evaluation
snap_to_allowed
    Replace values by the nearest allowed value
is_improvement
    Whether a new objective value beats the incumbent

Classes
-------
SolverResult
    Resulting vector and objective value of a solver run
NegatedObjective
    Picklable wrapper returning -fn(x)
"""

import os
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, List, Literal, Optional, Sequence

import numpy as np

ParallelType = Literal["processes", "threads"]


@dataclass
class SolverResult:
    """
    Result of one solver run.

    Attributes
    ----------
    par : np.ndarray
        Best vector found (same space as the solver input)
    ofv : float
        Objective value of ``par``
    """

    par: np.ndarray
    ofv: float


# ============================================================
# PARALLEL EVALUATION
# ============================================================


def resolve_num_cores(num_cores: Optional[int] = None) -> int:
    """Number of workers: ``num_cores`` if given, else all CPUs but one."""
    if num_cores is not None:
        if num_cores < 1:
            raise ValueError("num_cores must be >= 1")
        return int(num_cores)
    return max(1, (os.cpu_count() or 1) - 1)


@contextmanager
def worker_pool(
    parallel: bool = False,
    parallel_type: Optional[ParallelType] = None,
    num_cores: Optional[int] = None,
) -> Iterator[Optional[Executor]]:
    """
    Worker pool shared by all evaluations of one solver run.

    Yields None when ``parallel`` is False, so callers can pass the result
    straight to ``evaluate_candidates``.

    Parameters
    ----------
    parallel : bool, default=False
        Create a pool
    parallel_type : {'processes', 'threads'}, optional
        Pool type (default 'processes')
    num_cores : int, optional
        Number of workers (default: all CPUs but one)
    """
    if not parallel:
        yield None
        return

    parallel_type = parallel_type or "processes"
    if parallel_type == "processes":
        executor_cls = ProcessPoolExecutor
    elif parallel_type == "threads":
        executor_cls = ThreadPoolExecutor
    else:
        raise ValueError(
            f"Unknown parallel_type: '{parallel_type}'. Must be 'processes' or 'threads'."
        )

    with executor_cls(max_workers=resolve_num_cores(num_cores)) as executor:
        yield executor


def evaluate_candidates(
    fn: Callable[[np.ndarray], float],
    candidates: Sequence[np.ndarray],
    executor: Optional[Executor] = None,
) -> np.ndarray:
    """
    Evaluate ``fn`` on every candidate vector.

    Parameters
    ----------
    fn : callable
        Objective taking one vector. Must be picklable for process pools.
    candidates : sequence of np.ndarray
        Vectors to evaluate
    executor : Executor, optional
        Pool from ``worker_pool``; evaluations run serially without one

    Returns
    -------
    np.ndarray, shape (len(candidates),)
        Objective values in candidate order
    """
    if executor is None or len(candidates) < 2:
        return np.array([fn(c) for c in candidates], dtype=float)

    results: List[float] = list(executor.map(fn, candidates))
    return np.array(results, dtype=float)


@dataclass(frozen=True)
class NegatedObjective:
    """Objective returning ``-fn(x)``, for solvers that only minimize."""

    fn: Callable[[np.ndarray], float]

    def __call__(self, x: np.ndarray) -> float:
        return -self.fn(x)


# ============================================================
# DISCRETE VALUES AND COMPARISONS
# ============================================================


def snap_to_allowed(
    values: np.ndarray, allowed_values: Sequence[Optional[np.ndarray]]
) -> np.ndarray:
    """
    Replace each value that has an allowed set by the nearest allowed value.

    Ties go to the smaller allowed value. Entries without an allowed set are
    returned unchanged.
    """
    out = np.array(values, dtype=float, copy=True)
    for i, allowed in enumerate(allowed_values):
        if allowed is None or len(allowed) == 0:
            continue
        allowed = np.sort(np.asarray(allowed, dtype=float))
        out[i] = allowed[np.argmin(np.abs(allowed - out[i]))]
    return out


def is_improvement(new: float, best: float, maximize: bool) -> bool:
    """Strict improvement of ``new`` over ``best`` in the given direction."""
    if np.isnan(new):
        return False
    if np.isnan(best):
        return True
    return new > best if maximize else new < best
