"""
Optimization Methods and Solver Dispatch.

Every optimization method is represented by a member of ``OptimMethod`` and
a ``Solver`` subclass with one uniform ``solve`` entry point, so the driver
iterates over solver objects instead of branching on method names.

Classes
-------
OptimMethod : Enum
    Closed set of supported methods
Solver : ABC
    Common solver interface
ARSSolver : Solver
    Adaptive random search
LSSolver : Solver
    Coordinate line search
BFGSSolver : Solver
    Bounded quasi-Newton (scipy L-BFGS-B), continuous parameters only
GASolver : Solver
    Genetic algorithm (pymoo), continuous parameters only

Functions
---------
create_solver
    Factory function to create solver objects
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from importlib.util import find_spec
from typing import Any, Callable, Dict, List, Optional

import numpy as np
from scipy.optimize import Bounds, minimize

from src.poped.exceptions import MissingDependencyError
from src.poped.optim.ars import optim_ars
from src.poped.optim.line_search import optim_ls
from src.poped.optim.utils import (
    NegatedObjective,
    ParallelType,
    SolverResult,
    is_improvement,
)

logger = logging.getLogger(__name__)


class OptimMethod(Enum):
    """Supported optimization methods."""

    ARS = "ARS"
    LS = "LS"
    BFGS = "BFGS"
    GA = "GA"

    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, str):
            return None
        key = value.strip()
        aliases = {
            "stochastic-search": cls.ARS,
            "line-search": cls.LS,
            "gradient": cls.BFGS,
            "genetic": cls.GA,
        }
        if key.lower() in aliases:
            return aliases[key.lower()]
        for member in cls:
            if member.value == key.upper():
                return member
        return None


# ============================================================
# SOLVER BASE CLASS
# ============================================================


class Solver(ABC):
    """
    Base class of the optimization methods.

    Parameters
    ----------
    control : dict, optional
        Per-method settings overriding the defaults of the method
    trace : bool, default=True
        Report solver progress at INFO level
    parallel : bool, default=False
        Evaluate candidates in parallel where the method supports it
    parallel_type : {'processes', 'threads'}, optional
        Worker pool type
    num_cores : int, optional
        Number of workers
    seed : int, optional
        Random seed for stochastic methods

    Attributes
    ----------
    requires_continuous : bool
        The method only works on continuous parameters. Categorical entries
        are held at their current values, and the method is skipped when
        every free parameter is categorical.
    """

    method: OptimMethod
    requires_continuous: bool = False

    def __init__(
        self,
        control: Optional[Dict[str, Any]] = None,
        trace: bool = True,
        parallel: bool = False,
        parallel_type: Optional[ParallelType] = None,
        num_cores: Optional[int] = None,
        seed: Optional[int] = None,
    ):
        self.control = dict(control or {})
        self.trace = trace
        self.parallel = parallel
        self.parallel_type = parallel_type
        self.num_cores = num_cores
        self.seed = seed
        self._seeds: Optional[np.random.Generator] = None

    @property
    def name(self) -> str:
        return self.method.value

    def default_control(self) -> Dict[str, Any]:
        """Settings passed to the method before the user's control dict."""
        return {}

    def options(self) -> Dict[str, Any]:
        """Defaults merged with the user's control dict (user wins)."""
        opts = self.default_control()
        opts.update(self.control)
        return opts

    def call_seed(self, seed: Optional[int]) -> Optional[int]:
        """
        Seed for the next call of a stochastic method.

        Successive calls draw fresh seeds from one generator seeded with
        ``seed``. None disables seeding.
        """
        if seed is None:
            return None
        if self._seeds is None:
            self._seeds = np.random.default_rng(seed)
        return int(self._seeds.integers(2**32))

    def check_available(self) -> None:
        """Raise ``MissingDependencyError`` if the method cannot run."""

    @abstractmethod
    def solve(
        self,
        par: np.ndarray,
        fn: Callable[[np.ndarray], float],
        lower: np.ndarray,
        upper: np.ndarray,
        allowed_values: Optional[List[Optional[np.ndarray]]],
        maximize: bool,
        ofv_init: Optional[float] = None,
    ) -> SolverResult:
        """
        Optimize ``fn`` starting from ``par``.

        Parameters
        ----------
        par : np.ndarray
            Starting vector
        fn : callable
            Objective taking one vector (in the space of ``par``)
        lower, upper : np.ndarray
            Bounds of ``par``
        allowed_values : list, optional
            Allowed values per element (None for continuous elements)
        maximize : bool
            Optimization direction
        ofv_init : float, optional
            Objective value of ``par`` if already known

        Returns
        -------
        SolverResult
            Best vector and objective value
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(control={self.control!r})"


# ============================================================
# CONCRETE SOLVERS
# ============================================================


class ARSSolver(Solver):
    """Adaptive random search over all free parameters."""

    method = OptimMethod.ARS

    def default_control(self) -> Dict[str, Any]:
        return {
            "trace": self.trace,
            "parallel": self.parallel,
            "parallel_type": self.parallel_type,
            "num_cores": self.num_cores,
            "seed": self.seed,
        }

    def solve(self, par, fn, lower, upper, allowed_values, maximize, ofv_init=None):
        options = self.options()
        options["seed"] = self.call_seed(options.get("seed"))
        return optim_ars(
            par,
            fn,
            lower=lower,
            upper=upper,
            allowed_values=allowed_values,
            maximize=maximize,
            ofv_init=ofv_init,
            **options,
        )


class LSSolver(Solver):
    """Coordinate line search over all free parameters."""

    method = OptimMethod.LS

    def default_control(self) -> Dict[str, Any]:
        return {
            "trace": self.trace,
            "parallel": self.parallel,
            "parallel_type": self.parallel_type,
            "num_cores": self.num_cores,
        }

    def solve(self, par, fn, lower, upper, allowed_values, maximize, ofv_init=None):
        return optim_ls(
            par,
            fn,
            lower=lower,
            upper=upper,
            allowed_values=allowed_values,
            maximize=maximize,
            ofv_init=ofv_init,
            **self.options(),
        )


class BFGSSolver(Solver):
    """
    Bounded quasi-Newton search on the continuous parameters.

    Uses ``scipy.optimize.minimize`` with method L-BFGS-B. The objective is
    negated when maximizing and the control dict is passed as ``options``.
    If the solver ends on a worse point than it started from, the starting
    point is returned.
    """

    method = OptimMethod.BFGS
    requires_continuous = True

    def solve(self, par, fn, lower, upper, allowed_values, maximize, ofv_init=None):
        par = np.asarray(par, dtype=float)
        objective = NegatedObjective(fn) if maximize else fn

        res = minimize(
            objective,
            par,
            method="L-BFGS-B",
            bounds=Bounds(lower, upper),
            options=self.options(),
        )
        ofv = -float(res.fun) if maximize else float(res.fun)
        logger.log(
            logging.INFO if self.trace else logging.DEBUG,
            "BFGS - %s after %d iterations: OFV = %.6g",
            res.message, res.nit, ofv,
        )

        if ofv_init is None:
            ofv_init = float(fn(par))
        if ofv != ofv_init and not is_improvement(ofv, ofv_init, maximize):
            return SolverResult(par=par.copy(), ofv=float(ofv_init))
        return SolverResult(par=np.asarray(res.x, dtype=float), ofv=ofv)


class GASolver(Solver):
    """Genetic algorithm (pymoo) on the continuous parameters."""

    method = OptimMethod.GA
    requires_continuous = True

    def default_control(self) -> Dict[str, Any]:
        return {
            "parallel": self.parallel,
            "parallel_type": self.parallel_type,
            "num_cores": self.num_cores,
            "seed": self.seed,
        }

    def check_available(self) -> None:
        if find_spec("pymoo") is None:
            raise MissingDependencyError(
                "Method 'GA' requires pymoo. Install it with: pip install pymoo"
            )

    def solve(self, par, fn, lower, upper, allowed_values, maximize, ofv_init=None):
        self.check_available()
        from src.poped.optim.ga import optim_ga

        options = self.options()
        options["seed"] = self.call_seed(options.get("seed"))
        return optim_ga(par, fn, lower=lower, upper=upper, maximize=maximize, **options)


_SOLVERS = {
    OptimMethod.ARS: ARSSolver,
    OptimMethod.LS: LSSolver,
    OptimMethod.BFGS: BFGSSolver,
    OptimMethod.GA: GASolver,
}


def create_solver(
    method: Any,
    control: Optional[Dict[str, Any]] = None,
    **kwargs: Any,
) -> Solver:
    """
    Factory function to create a solver object.

    Parameters
    ----------
    method : OptimMethod or str
        Method, given as enum member, short code ('ARS', 'LS', 'BFGS', 'GA')
        or long name ('stochastic-search', 'line-search', 'gradient',
        'genetic')
    control : dict, optional
        Per-method overrides of the method defaults
    **kwargs
        trace, parallel, parallel_type, num_cores and seed, see ``Solver``

    Returns
    -------
    Solver
        Solver instance

    Raises
    ------
    ValueError
        If the method is unknown

    Examples
    --------
    >>> solver = create_solver("line-search", {"line_length": 20})
    >>> solver.name
    'LS'
    """
    try:
        method = OptimMethod(method)
    except ValueError:
        raise ValueError(
            f"Unknown method: '{method}'. Must be one of "
            "'ARS', 'LS', 'BFGS', 'GA' (or 'stochastic-search', 'line-search', "
            "'gradient', 'genetic')."
        ) from None

    return _SOLVERS[method](control=control, **kwargs)
