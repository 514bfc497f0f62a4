"""
Design Efficiency and Stopping Criteria.

Classes
-------
StopCriteria
    Thresholds of the three stopping tests
StopDecision
    Quantities and outcomes of one stopping evaluation

Functions
---------
efficiency
    Normalized efficiency of a design relative to another
describe_efficiency
    Formula used by ``efficiency`` for a criterion
compare_stop_criterion
    One polarity-aware stopping test
evaluate_stopping
    Run the efficiency, difference and relative difference tests

Notes
-----
When maximizing, a test is satisfied if ``quantity <= threshold``. When
minimizing the comparison becomes ``>=`` and the threshold is inverted
(efficiency) or negated (differences). Boundary values count as satisfied.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from src.poped.optim.objective import OFVCalcType

logger = logging.getLogger(__name__)


# ============================================================
# EFFICIENCY
# ============================================================


def efficiency(
    ofv_init: float,
    ofv_final: float,
    npar: Optional[int] = None,
    ofv_calc_type: Optional[OFVCalcType] = None,
    ds_index: Optional[Sequence[float]] = None,
) -> float:
    """
    Efficiency of a final design relative to an initial design.

    Parameters
    ----------
    ofv_init : float
        Objective value of the initial design
    ofv_final : float
        Objective value of the final design
    npar : int, optional
        Number of estimated parameters (required for D and ln(D) criteria)
    ofv_calc_type : OFVCalcType, optional
        Criterion of the objective values. None or any criterion without a
        dedicated formula gives the plain ratio.
    ds_index : sequence, optional
        Indicator of the interesting parameters (required for Ds)

    Returns
    -------
    float
        - plain: ofv_final / ofv_init
        - D: (ofv_final / ofv_init)^(1/npar)
        - ln(D): (exp(ofv_final) / exp(ofv_init))^(1/npar)
        - Ds: (ofv_final / ofv_init)^(1/sum(ds_index))

    Examples
    --------
    >>> efficiency(100, 121)
    1.21
    >>> efficiency(100, 121, npar=2, ofv_calc_type=OFVCalcType.D)
    1.1
    >>> efficiency(np.log(100), np.log(121), npar=2, ofv_calc_type=OFVCalcType.LN_D)
    1.1
    """
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        eff = np.float64(ofv_final) / np.float64(ofv_init)

        if ofv_calc_type in (OFVCalcType.D, OFVCalcType.LN_D):
            if npar is None or npar < 1:
                raise ValueError("npar must be a positive integer for D-type efficiency")
            if ofv_calc_type is OFVCalcType.D:
                eff = eff ** (1.0 / npar)
            else:
                eff = (np.exp(np.float64(ofv_final)) / np.exp(np.float64(ofv_init))) ** (1.0 / npar)

        elif ofv_calc_type is OFVCalcType.DS:
            if ds_index is None or np.sum(ds_index) <= 0:
                raise ValueError("ds_index must select at least one parameter for Ds efficiency")
            eff = eff ** (1.0 / np.sum(ds_index))

    return float(eff)


def describe_efficiency(ofv_calc_type: Optional[OFVCalcType] = None) -> str:
    """Human readable formula used by ``efficiency``."""
    if ofv_calc_type is OFVCalcType.D:
        return "(ofv_final / ofv_init)^(1/n_parameters)"
    if ofv_calc_type is OFVCalcType.LN_D:
        return "(exp(ofv_final) / exp(ofv_init))^(1/n_parameters)"
    if ofv_calc_type is OFVCalcType.DS:
        return "(ofv_final / ofv_init)^(1/sum(interesting_parameters))"
    return "ofv_final / ofv_init"


# ============================================================
# STOPPING CRITERIA
# ============================================================


@dataclass
class StopCriteria:
    """
    Thresholds for stopping the method loop.

    Attributes
    ----------
    eff : float, optional, default=1.001
        Stop if efficiency <= eff (maximizing) or >= 1/eff (minimizing)
    diff : float, optional
        Stop if OFV difference <= diff (maximizing) or >= -diff (minimizing)
    rel : float, optional
        Stop if relative OFV difference <= rel (maximizing) or >= -rel
        (minimizing)

    A threshold of None disables the test.
    """

    eff: Optional[float] = 1.001
    diff: Optional[float] = None
    rel: Optional[float] = None

    @property
    def any_defined(self) -> bool:
        return any(v is not None for v in (self.eff, self.diff, self.rel))


@dataclass
class StopDecision:
    """
    Outcome of one stopping evaluation.

    Attributes
    ----------
    efficiency, abs_diff, rel_diff : float
        Quantities compared against the thresholds
    stop_eff, stop_abs, stop_rel : bool
        Result of each test
    """

    efficiency: float
    abs_diff: float
    rel_diff: float
    stop_eff: bool
    stop_abs: bool
    stop_rel: bool

    @property
    def stop(self) -> bool:
        return self.stop_eff or self.stop_abs or self.stop_rel


def compare_stop_criterion(
    crit: float,
    crit_stop: Optional[float],
    maximize: bool,
    inv: bool = False,
    neg: bool = False,
    text: str = "",
) -> bool:
    """
    Test one stopping criterion.

    Parameters
    ----------
    crit : float
        Observed quantity
    crit_stop : float, optional
        Threshold; None means the test is not used
    maximize : bool
        Optimization direction
    inv : bool, default=False
        Compare against 1/crit_stop
    neg : bool, default=False
        Compare against -crit_stop
    text : str, optional
        Label for the progress log

    Returns
    -------
    bool
        True if the criterion is satisfied. Always False for a missing
        threshold or a NaN quantity.
    """
    if crit_stop is None:
        return False

    logger.info(text)
    if np.isnan(crit):
        logger.info("  Stopping criteria using 'NaN' as a comparator cannot be used")
        return False

    if inv:
        crit_stop = 1 / crit_stop
    if neg:
        crit_stop = -crit_stop

    if maximize:
        comparator = "<="
        result = bool(crit <= crit_stop)
    else:
        comparator = ">="
        result = bool(crit >= crit_stop)

    logger.info(
        "  Is (%0.5g %s %0.5g)? %s",
        crit,
        comparator,
        crit_stop,
        "Yes. Stopping criteria achieved." if result else "No. Stopping criteria NOT achieved.",
    )
    return result


def evaluate_stopping(
    ofv_init: float,
    ofv_final: float,
    maximize: bool,
    criteria: StopCriteria,
    npar: Optional[int] = None,
    ofv_calc_type: Optional[OFVCalcType] = None,
    ds_index: Optional[Sequence[float]] = None,
) -> StopDecision:
    """
    Compare the objective at the start and end of a pass.

    Parameters
    ----------
    ofv_init, ofv_final : float
        Objective value at the start and end of the pass
    maximize : bool
        Optimization direction
    criteria : StopCriteria
        Thresholds
    npar, ofv_calc_type, ds_index
        Passed to ``efficiency``

    Returns
    -------
    StopDecision
        Quantities and the outcome of every test
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        abs_diff = float(np.float64(ofv_final) - np.float64(ofv_init))
        rel_diff = float(np.float64(abs_diff) / np.float64(ofv_init))

    eff = efficiency(ofv_init, ofv_final, npar, ofv_calc_type, ds_index)

    logger.info("Difference in OFV:  %.3g", abs_diff)
    logger.info("Relative difference in OFV:  %.3g%%", rel_diff * 100)
    logger.info("Efficiency: \n  (%s) = %.5g", describe_efficiency(ofv_calc_type), eff)

    if not criteria.any_defined:
        logger.info("No stopping criteria defined")

    stop_eff = compare_stop_criterion(
        eff, criteria.eff, maximize, inv=not maximize,
        text="Efficiency stopping criteria:",
    )
    stop_abs = compare_stop_criterion(
        abs_diff, criteria.diff, maximize, neg=not maximize,
        text="OFV difference stopping criteria:",
    )
    stop_rel = compare_stop_criterion(
        rel_diff, criteria.rel, maximize, neg=not maximize,
        text="Relative OFV difference stopping criteria:",
    )

    decision = StopDecision(
        efficiency=eff,
        abs_diff=abs_diff,
        rel_diff=rel_diff,
        stop_eff=stop_eff,
        stop_abs=stop_abs,
        stop_rel=stop_rel,
    )

    if criteria.any_defined:
        if decision.stop:
            logger.info("Stopping criteria achieved.")
        else:
            logger.info("Stopping criteria NOT achieved.")

    return decision
