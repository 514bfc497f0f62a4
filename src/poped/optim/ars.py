"""
Adaptive Random Search (ARS) for Design Optimization.

Random search around the best point found so far. New points are drawn
from a normal distribution centred on the incumbent, and the spread is
halved whenever the search stalls.

Functions
---------
optim_ars
    Adaptive random search over continuous and discrete parameters

References
----------
.. [1] Nyberg, J., Ueckert, S., Stroemberg, E. A., Hennig, S., Karlsson,
       M. O., & Hooker, A. C. (2012). PopED: An extended, parallelized,
       nonlinear mixed effects models optimal design tool. Computer Methods
       and Programs in Biomedicine, 108(2), 789-805.
"""

import logging
from typing import Callable, List, Optional, Sequence

import numpy as np

from src.poped.optim.utils import (
    ParallelType,
    SolverResult,
    evaluate_candidates,
    is_improvement,
    resolve_num_cores,
    snap_to_allowed,
    worker_pool,
)

logger = logging.getLogger(__name__)


def _discrete_mask(allowed_values: Optional[Sequence], n: int) -> np.ndarray:
    if allowed_values is None:
        return np.zeros(n, dtype=bool)
    return np.array([v is not None and len(v) > 0 for v in allowed_values], dtype=bool)


def optim_ars(
    par: np.ndarray,
    fn: Callable[[np.ndarray], float],
    lower: Optional[np.ndarray] = None,
    upper: Optional[np.ndarray] = None,
    allowed_values: Optional[List[Optional[np.ndarray]]] = None,
    loc_fac: float = 4,
    no_bounds_sd: Optional[np.ndarray] = None,
    iter: int = 400,
    iter_adapt: int = 50,
    max_run: int = 200,
    trace: bool = True,
    trace_iter: int = 5,
    new_par_max_it: int = 200,
    maximize: bool = False,
    parallel: bool = False,
    parallel_type: Optional[ParallelType] = None,
    num_cores: Optional[int] = None,
    seed: Optional[int] = None,
    allow_replicates: bool = True,
    replicates_index: Optional[Sequence[int]] = None,
    ofv_init: Optional[float] = None,
) -> SolverResult:
    """
    Optimize ``fn`` by adaptive random search.

    Parameters
    ----------
    par : np.ndarray, shape (n,)
        Starting vector
    fn : callable
        Objective taking one vector
    lower, upper : np.ndarray, optional
        Bounds (default unbounded)
    allowed_values : list, optional
        Per-element allowed values; None or empty for continuous elements
    loc_fac : float, default=4
        Locality factor: the search standard deviation is
        (upper - lower) / loc_fac
    no_bounds_sd : np.ndarray, optional
        Standard deviation for unbounded elements (default ``abs(par)``,
        or 1 where par is 0)
    iter : int, default=400
        Maximum number of candidate evaluations
    iter_adapt : int, default=50
        Consecutive non-improving iterations before the standard deviation
        is halved
    max_run : int, default=200
        Stop after this many consecutive non-improving iterations
    trace : bool, default=True
        Log progress at INFO (DEBUG otherwise)
    trace_iter : int, default=5
        Log every ``trace_iter`` iterations
    new_par_max_it : int, default=200
        Attempts to draw a candidate different from the incumbent
    maximize : bool, default=False
        Maximize instead of minimize
    parallel : bool, default=False
        Evaluate a batch of ``num_cores`` candidates per iteration in parallel
    parallel_type : {'processes', 'threads'}, optional
        Worker pool type
    num_cores : int, optional
        Batch size / number of workers in parallel mode
    seed : int, optional
        Random seed for reproducibility
    allow_replicates : bool, default=True
        If False, the elements in ``replicates_index`` must take distinct
        values
    replicates_index : sequence of int, optional
        Elements checked by ``allow_replicates`` (default all)
    ofv_init : float, optional
        Objective value of ``par`` if already known

    Returns
    -------
    SolverResult
        Best vector and objective value

    Notes
    -----
    Continuous elements are perturbed with N(0, sd) and clipped to the
    bounds. Discrete elements are perturbed the same way (with sd based on
    the range of their allowed values) and snapped to the nearest allowed
    value.
    """
    rng = np.random.default_rng(seed)
    log_level = logging.INFO if trace else logging.DEBUG

    par = np.array(par, dtype=float, copy=True)
    n = len(par)
    lower = np.full(n, -np.inf) if lower is None else np.asarray(lower, dtype=float)
    upper = np.full(n, np.inf) if upper is None else np.asarray(upper, dtype=float)
    discrete = _discrete_mask(allowed_values, n)

    if no_bounds_sd is None:
        no_bounds_sd = np.where(par != 0, np.abs(par), 1.0)
    no_bounds_sd = np.broadcast_to(np.asarray(no_bounds_sd, dtype=float), (n,))

    span = upper - lower
    for i in np.flatnonzero(discrete):
        span[i] = np.ptp(allowed_values[i]) if len(allowed_values[i]) > 1 else 1.0
    bounded = np.isfinite(span)
    sd = np.where(bounded, span, no_bounds_sd) / loc_fac

    if replicates_index is None:
        replicates_index = np.arange(n)
    replicates_index = np.asarray(replicates_index, dtype=int)

    def _draw(center: np.ndarray) -> np.ndarray:
        candidate = center
        for _ in range(new_par_max_it):
            candidate = np.clip(center + rng.normal(0.0, sd), lower, upper)
            if discrete.any():
                candidate = snap_to_allowed(candidate, allowed_values)
            if not allow_replicates:
                reps = candidate[replicates_index]
                if len(np.unique(reps)) < len(reps):
                    continue
            if not np.array_equal(candidate, center):
                break
        return candidate

    ofv_best = float(fn(par)) if ofv_init is None else float(ofv_init)
    par_best = par.copy()
    batch = resolve_num_cores(num_cores) if parallel else 1

    logger.log(log_level, "ARS - initial OFV: %.6g", ofv_best)

    it = 0
    runs_no_improve = 0
    adapt_count = 0
    with worker_pool(parallel, parallel_type, num_cores) as executor:
        while it < iter:
            n_new = min(batch, iter - it)
            candidates = [_draw(par_best) for _ in range(n_new)]
            ofvs = evaluate_candidates(fn, candidates, executor)
            it += n_new

            improved = False
            for candidate, ofv in zip(candidates, ofvs):
                if is_improvement(ofv, ofv_best, maximize):
                    par_best, ofv_best = candidate, float(ofv)
                    improved = True

            if improved:
                runs_no_improve = 0
                adapt_count = 0
            else:
                runs_no_improve += n_new
                adapt_count += n_new

            if adapt_count >= iter_adapt:
                sd = sd / 2
                adapt_count = 0
                logger.log(log_level, "ARS - iteration %d: search spread halved", it)

            if trace_iter and (it // max(batch, 1)) % trace_iter == 0:
                logger.log(log_level, "ARS - iteration %d: OFV = %.6g", it, ofv_best)

            if runs_no_improve >= max_run:
                logger.log(
                    log_level,
                    "ARS - no improvement in %d iterations, stopping at iteration %d",
                    runs_no_improve,
                    it,
                )
                break

    logger.log(log_level, "ARS - final OFV: %.6g", ofv_best)
    return SolverResult(par=par_best, ofv=ofv_best)
