"""
Genetic Algorithm for Continuous Design Parameters.

Thin wrapper around the pymoo single-objective GA. The starting vector is
placed in the initial population so the result is never worse than the
input.

Functions
---------
optim_ga
    Genetic algorithm over bounded continuous parameters
"""

import logging
from multiprocessing.pool import Pool, ThreadPool
from typing import Callable, Optional

import numpy as np
from pymoo.algorithms.soo.nonconvex.ga import GA
from pymoo.core.problem import ElementwiseProblem, StarmapParallelization
from pymoo.optimize import minimize as pymoo_minimize
from pymoo.termination import get_termination

from src.poped.optim.utils import ParallelType, SolverResult, resolve_num_cores

logger = logging.getLogger(__name__)


class DesignProblem(ElementwiseProblem):
    """Single-objective pymoo problem wrapping a design objective."""

    def __init__(self, fn, lower, upper, sign=1.0, **kwargs):
        super().__init__(n_var=len(lower), n_obj=1, xl=lower, xu=upper, **kwargs)
        self.fn = fn
        self.sign = sign

    def _evaluate(self, x, out, *args, **kwargs):
        out["F"] = self.sign * float(self.fn(x))


def optim_ga(
    par: np.ndarray,
    fn: Callable[[np.ndarray], float],
    lower: np.ndarray,
    upper: np.ndarray,
    maximize: bool = False,
    pop_size: int = 50,
    n_gen: int = 100,
    seed: Optional[int] = None,
    verbose: bool = False,
    parallel: bool = False,
    parallel_type: Optional[ParallelType] = None,
    num_cores: Optional[int] = None,
) -> SolverResult:
    """
    Optimize ``fn`` with a genetic algorithm.

    Parameters
    ----------
    par : np.ndarray, shape (n,)
        Starting vector, included in the initial population
    fn : callable
        Objective taking one vector
    lower, upper : np.ndarray
        Finite bounds
    maximize : bool, default=False
        Maximize instead of minimize
    pop_size : int, default=50
        Population size
    n_gen : int, default=100
        Number of generations
    seed : int, optional
        Random seed
    verbose : bool, default=False
        Print pymoo progress
    parallel : bool, default=False
        Evaluate each population in a worker pool
    parallel_type : {'processes', 'threads'}, optional
        Worker pool type
    num_cores : int, optional
        Number of workers

    Returns
    -------
    SolverResult
        Best vector and objective value

    Raises
    ------
    ValueError
        If a bound is infinite
    """
    par = np.asarray(par, dtype=float)
    lower = np.asarray(lower, dtype=float)
    upper = np.asarray(upper, dtype=float)
    if not (np.all(np.isfinite(lower)) and np.all(np.isfinite(upper))):
        raise ValueError("The genetic algorithm needs finite bounds for every parameter")

    rng = np.random.default_rng(seed)
    initial = rng.uniform(lower, upper, size=(max(pop_size - 1, 0), len(par)))
    initial = np.vstack([np.clip(par, lower, upper), initial])

    algorithm = GA(pop_size=pop_size, sampling=initial, eliminate_duplicates=True)
    sign = -1.0 if maximize else 1.0

    pool = None
    problem_kwargs = {}
    if parallel:
        n_workers = resolve_num_cores(num_cores)
        if (parallel_type or "processes") == "threads":
            pool = ThreadPool(n_workers)
        else:
            pool = Pool(n_workers)
        problem_kwargs["elementwise_runner"] = StarmapParallelization(pool.starmap)

    try:
        problem = DesignProblem(fn, lower, upper, sign=sign, **problem_kwargs)
        res = pymoo_minimize(
            problem,
            algorithm,
            get_termination("n_gen", n_gen),
            seed=seed,
            verbose=verbose,
        )
    finally:
        if pool is not None:
            pool.close()
            pool.join()

    best = np.atleast_2d(res.X)[0].astype(float)
    ofv = sign * float(np.ravel(res.F)[0])
    logger.debug("GA - best OFV %.6g after %d generations", ofv, n_gen)
    return SolverResult(par=best, ofv=ofv)
