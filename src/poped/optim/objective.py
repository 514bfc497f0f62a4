"""
Objective Function Adapter for Design Optimization.

Solvers see a function of one flat vector. This module rebuilds a full
design from that vector and hands it to the external FIM/OFV evaluator.

Classes
-------
OFVCalcType : Enum
    Optimality criterion the evaluator reports (drives sanitizing and
    efficiency)
FIMResult
    Objective value and FIM returned by an evaluator
OFVEvaluator : Protocol
    Contract of the external FIM/OFV evaluator
ObjectiveAdapter
    Single-vector objective callable for solvers

Functions
---------
sanitize_ofv
    Replace non-finite objective values by a sentinel
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Protocol

import numpy as np

from src.poped.design import Design
from src.poped.optim.flatten import DesignLayout, unflatten_design
from src.poped.optim.parameters import ParameterMap

# Returned for non-finite objectives of criteria other than ln(det(FIM))
INVALID_OFV = 1e-15


class OFVCalcType(Enum):
    """Optimality criterion computed from the FIM."""

    CUSTOM = 0
    D = 1
    A = 2
    LN_D = 4
    DS = 6


# ============================================================
# EVALUATOR PROTOCOL
# ============================================================


@dataclass
class FIMResult:
    """
    Result of one evaluator call.

    Attributes
    ----------
    ofv : float
        Objective function value
    fim : np.ndarray, optional
        Fisher information matrix (None when not requested)
    """

    ofv: float
    fim: Optional[np.ndarray] = None


class OFVEvaluator(Protocol):
    """Protocol for the FIM/OFV evaluator."""

    def __call__(self, design: Design, evaluate_fim: bool = True, **kwargs: Any) -> FIMResult:
        """
        Evaluate a design.

        Parameters
        ----------
        design : Design
            Design to evaluate
        evaluate_fim : bool, default=True
            If False only ``ofv`` is needed and the FIM may be skipped

        Returns
        -------
        FIMResult
            Objective value and (optionally) the FIM
        """
        ...


def sanitize_ofv(ofv: float, ofv_calc_type: OFVCalcType) -> float:
    """
    Replace a non-finite objective value by a comparable sentinel.

    Returns -inf for ln(det(FIM)) criteria and ``INVALID_OFV`` otherwise.
    Finite values pass through unchanged.
    """
    ofv = float(ofv)
    if np.isfinite(ofv):
        return ofv
    if ofv_calc_type is OFVCalcType.LN_D:
        return -np.inf
    return INVALID_OFV


# ============================================================
# OBJECTIVE ADAPTER
# ============================================================


@dataclass(frozen=True, eq=False)
class ObjectiveAdapter:
    """
    Objective callable over the reduced parameter vector.

    Every call builds a new design from the vector; neither the caller's
    design nor the parameter map is modified, so one adapter may be called
    from several workers at once.

    Parameters
    ----------
    design : Design
        Design supplying everything that is not optimized
    evaluator : OFVEvaluator
        External FIM/OFV evaluator
    parameter_map : ParameterMap
        Tying/fixing/category maps of the run
    layout : DesignLayout
        Layout of the flat design vector
    ofv_calc_type : OFVCalcType
        Criterion reported by the evaluator
    base : np.ndarray, optional
        Full reduced vector whose categorical entries are used when a
        continuous-only vector is passed. Defaults to the initial vector.
    eval_kwargs : dict
        Extra keyword arguments for every evaluator call

    Examples
    --------
    >>> fn = ObjectiveAdapter(design, evaluator, pmap, layout, OFVCalcType.LN_D)
    >>> fn(pmap.par)
    12.3
    >>> fn.with_base(par)(par[pmap.continuous_mask], only_cont=True)
    12.3
    """

    design: Design
    evaluator: OFVEvaluator
    parameter_map: ParameterMap
    layout: DesignLayout
    ofv_calc_type: OFVCalcType = OFVCalcType.LN_D
    base: Optional[np.ndarray] = None
    eval_kwargs: Dict[str, Any] = field(default_factory=dict)

    def with_base(self, base: np.ndarray) -> "ObjectiveAdapter":
        """Adapter whose continuous-only calls fill categorical entries from ``base``."""
        return replace(self, base=np.array(base, dtype=float, copy=True))

    def full_vector(self, par: np.ndarray, only_cont: bool = False) -> np.ndarray:
        """Flat design vector (all elements) for a reduced or continuous vector."""
        if only_cont:
            base = self.parameter_map.par if self.base is None else self.base
            par = self.parameter_map.splice_continuous(par, base)
        return self.parameter_map.expand(par)

    def build_design(self, par: np.ndarray, only_cont: bool = False) -> Design:
        """New design carrying the values of ``par``."""
        return unflatten_design(self.full_vector(par, only_cont), self.layout, self.design)

    def __call__(self, par: np.ndarray, only_cont: bool = False) -> float:
        """
        Objective value of a reduced (or continuous-only) vector.

        Parameters
        ----------
        par : np.ndarray
            Full reduced vector, or only its continuous entries when
            ``only_cont`` is True
        only_cont : bool, default=False
            Whether ``par`` holds only the continuous entries

        Returns
        -------
        float
            Sanitized objective value
        """
        design = self.build_design(par, only_cont)
        output = self.evaluator(design, evaluate_fim=False, **self.eval_kwargs)
        return sanitize_ofv(output.ofv, self.ofv_calc_type)


@dataclass(frozen=True)
class ContinuousObjective:
    """Picklable ``fn(par_cont)`` view of an adapter for continuous-only solvers."""

    adapter: ObjectiveAdapter

    def __call__(self, par_cont: np.ndarray) -> float:
        return self.adapter(par_cont, only_cont=True)
