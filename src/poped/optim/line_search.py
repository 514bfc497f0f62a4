"""
Coordinate Line Search for Design Optimization.

Each parameter in turn is scanned over a grid of values (its allowed values
when discrete, equally spaced points between its bounds when continuous)
while the others are held fixed. The best value of each scan is kept, and
sweeps repeat until a full sweep brings no improvement.

Functions
---------
optim_ls
    Line search over continuous and discrete parameters
line_values
    Grid of values scanned for one parameter
"""

import logging
from typing import Callable, List, Optional

import numpy as np

from src.poped.optim.utils import (
    ParallelType,
    SolverResult,
    evaluate_candidates,
    is_improvement,
    worker_pool,
)

logger = logging.getLogger(__name__)


def line_values(
    lower: float,
    upper: float,
    allowed: Optional[np.ndarray] = None,
    line_length: int = 50,
    closed_bounds: bool = True,
) -> np.ndarray:
    """
    Values scanned for one parameter.

    Parameters
    ----------
    lower, upper : float
        Bounds of the parameter
    allowed : np.ndarray, optional
        Allowed values; when given they are scanned instead of a grid
    line_length : int, default=50
        Number of grid points for continuous parameters
    closed_bounds : bool, default=True
        Include the bounds themselves in the grid

    Returns
    -------
    np.ndarray
        Values to evaluate

    Raises
    ------
    ValueError
        If a continuous parameter has an infinite bound
    """
    if allowed is not None and len(allowed) > 0:
        return np.unique(np.asarray(allowed, dtype=float))

    if not (np.isfinite(lower) and np.isfinite(upper)):
        raise ValueError("Line search needs finite bounds for continuous parameters")

    if closed_bounds:
        return np.linspace(lower, upper, line_length)
    return np.linspace(lower, upper, line_length + 2)[1:-1]


def optim_ls(
    par: np.ndarray,
    fn: Callable[[np.ndarray], float],
    lower: np.ndarray,
    upper: np.ndarray,
    allowed_values: Optional[List[Optional[np.ndarray]]] = None,
    line_length: int = 50,
    trace: bool = True,
    maximize: bool = False,
    parallel: bool = False,
    parallel_type: Optional[ParallelType] = None,
    num_cores: Optional[int] = None,
    ofv_init: Optional[float] = None,
    closed_bounds: bool = True,
    max_sweeps: Optional[int] = None,
) -> SolverResult:
    """
    Optimize ``fn`` by scanning one parameter at a time.

    Parameters
    ----------
    par : np.ndarray, shape (n,)
        Starting vector
    fn : callable
        Objective taking one vector
    lower, upper : np.ndarray
        Bounds
    allowed_values : list, optional
        Per-element allowed values; None or empty for continuous elements
    line_length : int, default=50
        Grid points per continuous parameter
    trace : bool, default=True
        Log progress at INFO (DEBUG otherwise)
    maximize : bool, default=False
        Maximize instead of minimize
    parallel : bool, default=False
        Evaluate the points of each scan in parallel
    parallel_type : {'processes', 'threads'}, optional
        Worker pool type
    num_cores : int, optional
        Number of workers
    ofv_init : float, optional
        Objective value of ``par`` if already known
    closed_bounds : bool, default=True
        Include the bounds in the grid of continuous parameters
    max_sweeps : int, optional
        Upper limit on the number of sweeps (default: until no improvement)

    Returns
    -------
    SolverResult
        Best vector and objective value
    """
    log_level = logging.INFO if trace else logging.DEBUG

    par_best = np.array(par, dtype=float, copy=True)
    lower = np.asarray(lower, dtype=float)
    upper = np.asarray(upper, dtype=float)
    n = len(par_best)
    if allowed_values is None:
        allowed_values = [None] * n

    grids = [
        line_values(lower[i], upper[i], allowed_values[i], line_length, closed_bounds)
        for i in range(n)
    ]

    ofv_best = float(fn(par_best)) if ofv_init is None else float(ofv_init)
    logger.log(log_level, "LS - initial OFV: %.6g", ofv_best)

    sweep = 0
    with worker_pool(parallel, parallel_type, num_cores) as executor:
        while max_sweeps is None or sweep < max_sweeps:
            sweep += 1
            improved = False

            for i in range(n):
                values = grids[i][grids[i] != par_best[i]]
                if len(values) == 0:
                    continue

                candidates = []
                for value in values:
                    candidate = par_best.copy()
                    candidate[i] = value
                    candidates.append(candidate)

                ofvs = evaluate_candidates(fn, candidates, executor)

                best_idx = int(np.argmax(ofvs) if maximize else np.argmin(ofvs))
                if is_improvement(ofvs[best_idx], ofv_best, maximize):
                    par_best = candidates[best_idx]
                    ofv_best = float(ofvs[best_idx])
                    improved = True
                    logger.log(
                        log_level,
                        "LS - sweep %d, parameter %d -> %.6g: OFV = %.6g",
                        sweep, i + 1, par_best[i], ofv_best,
                    )

            if not improved:
                break

    logger.log(log_level, "LS - final OFV: %.6g after %d sweep(s)", ofv_best, sweep)
    return SolverResult(par=par_best, ofv=ofv_best)
