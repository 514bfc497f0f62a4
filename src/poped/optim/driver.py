"""
Multi-Method Design Optimization Driver.

Runs a sequence of optimization methods (adaptive random search, line
search, L-BFGS-B, genetic algorithm) over the flat parameter vector of a
design, optionally looping over the whole sequence until the improvement of
a pass falls below the stopping thresholds.

Classes
-------
OptimConfig
    Configuration of an optimization run
MethodRecord
    Outcome of one method call
OptimizationResult
    Result of an optimization run

Functions
---------
poped_optim
    Optimize the sampling times and/or covariates of a design

References
----------
.. [1] Nyberg, J., Ueckert, S., Stroemberg, E. A., Hennig, S., Karlsson,
       M. O., & Hooker, A. C. (2012). PopED: An extended, parallelized,
       nonlinear mixed effects models optimal design tool. Computer Methods
       and Programs in Biomedicine, 108(2), 789-805.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Sequence, Union

import numpy as np

from src.poped.design import Design, DesignSpace
from src.poped.exceptions import (
    InvalidObjectiveError,
    NoOptimizableParametersError,
    UnsupportedOptimizationError,
)
from src.poped.log_utils import log_to_file
from src.poped.optim.efficiency import (
    StopCriteria,
    describe_efficiency,
    efficiency,
    evaluate_stopping,
)
from src.poped.optim.flatten import unflatten_design
from src.poped.optim.methods import OptimMethod, Solver, create_solver
from src.poped.optim.objective import (
    ContinuousObjective,
    ObjectiveAdapter,
    OFVCalcType,
    OFVEvaluator,
    sanitize_ofv,
)
from src.poped.optim.parameters import build_parameter_record, resolve_parameters
from src.poped.optim.utils import ParallelType

logger = logging.getLogger(__name__)

BANNER = "*******************************************"

METHOD_TITLES = {
    OptimMethod.ARS: "Adaptive Random Search",
    OptimMethod.LS: "Line Search",
    OptimMethod.BFGS: "L-BFGS-B",
    OptimMethod.GA: "Genetic Algorithm (GA)",
}

StopReason = Literal["single_pass", "stop_criteria", "iter_max"]


# ============================================================
# CONFIGURATION AND RESULTS
# ============================================================


def _parse_method(method: Any) -> OptimMethod:
    try:
        return OptimMethod(method)
    except ValueError:
        raise ValueError(
            f"Unknown method: '{method}'. Must be one of 'ARS', 'LS', 'BFGS', 'GA' "
            "(or 'stochastic-search', 'line-search', 'gradient', 'genetic')."
        ) from None


@dataclass
class OptimConfig:
    """
    Configuration of an optimization run.

    Attributes
    ----------
    methods : sequence of str or OptimMethod, default=('ARS', 'BFGS', 'LS')
        Methods run in order in every pass
    control : dict, optional
        Per-method settings, keyed by method, overriding the method defaults
    loop_methods : bool, optional
        Repeat the method sequence until a stopping criterion is met.
        Defaults to True when more than one method is given.
    iter_max : int, default=10
        Maximum number of passes
    stop_crit_eff : float, optional, default=1.001
        Efficiency threshold between the start and end of a pass
    stop_crit_diff : float, optional
        Absolute OFV difference threshold
    stop_crit_rel : float, optional
        Relative OFV difference threshold
    maximize : bool, default=True
        Maximize the objective
    ofv_calc_type : OFVCalcType or int, default=OFVCalcType.LN_D
        Criterion reported by the evaluator
    npar : int, optional
        Number of estimated parameters used in D-type efficiencies.
        Defaults to the size of the initial FIM.
    ds_index : sequence, optional
        Indicator of interesting parameters (Ds-optimality)
    opt_xt, opt_a : bool
        Optimize sampling times (default True) / covariates (default False)
    opt_samps, opt_inds : bool, default=False
        Optimize the number of samples / individuals (not implemented)
    trace : bool, default=True
        Report solver progress at INFO level
    parallel : bool, default=False
        Evaluate candidates in parallel where a method supports it
    parallel_type : {'processes', 'threads'}, optional
        Worker pool type
    num_cores : int, optional
        Number of workers
    seed : int, optional
        Random seed for the stochastic methods
    out_file : str or Path, optional
        File that additionally receives the progress log
    """

    methods: Sequence[Union[str, OptimMethod]] = ("ARS", "BFGS", "LS")
    control: Dict[Any, Dict[str, Any]] = field(default_factory=dict)
    loop_methods: Optional[bool] = None
    iter_max: int = 10
    stop_crit_eff: Optional[float] = 1.001
    stop_crit_diff: Optional[float] = None
    stop_crit_rel: Optional[float] = None
    maximize: bool = True
    ofv_calc_type: Union[OFVCalcType, int] = OFVCalcType.LN_D
    npar: Optional[int] = None
    ds_index: Optional[Sequence[float]] = None
    opt_xt: bool = True
    opt_a: bool = False
    opt_samps: bool = False
    opt_inds: bool = False
    trace: bool = True
    parallel: bool = False
    parallel_type: Optional[ParallelType] = None
    num_cores: Optional[int] = None
    seed: Optional[int] = None
    out_file: Optional[Union[str, Path]] = None

    def __post_init__(self):
        """Validate configuration."""
        if isinstance(self.methods, (str, OptimMethod)):
            self.methods = [self.methods]
        self.methods = tuple(_parse_method(m) for m in self.methods)
        if len(self.methods) == 0:
            raise ValueError("At least one optimization method must be given")

        self.control = {_parse_method(k): dict(v or {}) for k, v in self.control.items()}

        if self.loop_methods is None:
            self.loop_methods = len(self.methods) > 1

        if self.iter_max < 1:
            raise ValueError("iter_max must be >= 1")
        if self.stop_crit_eff is not None and self.stop_crit_eff <= 0:
            raise ValueError("stop_crit_eff must be > 0")

        self.ofv_calc_type = OFVCalcType(self.ofv_calc_type)

        if self.npar is not None and self.npar < 1:
            raise ValueError("npar must be >= 1")
        if self.parallel_type not in (None, "processes", "threads"):
            raise ValueError(
                f"Unknown parallel_type: '{self.parallel_type}'. "
                "Must be 'processes' or 'threads'."
            )
        if self.num_cores is not None and self.num_cores < 1:
            raise ValueError("num_cores must be >= 1")

    @property
    def stop_criteria(self) -> StopCriteria:
        return StopCriteria(
            eff=self.stop_crit_eff, diff=self.stop_crit_diff, rel=self.stop_crit_rel
        )

    def create_solvers(self) -> List[Solver]:
        """One solver per configured method, in order."""
        return [
            create_solver(
                method,
                self.control.get(method),
                trace=self.trace,
                parallel=self.parallel,
                parallel_type=self.parallel_type,
                num_cores=self.num_cores,
                seed=self.seed,
            )
            for method in self.methods
        ]


@dataclass
class MethodRecord:
    """
    One method call of a run.

    Attributes
    ----------
    iteration : int
        Pass number (1-based)
    method : OptimMethod
        Method called
    ofv : float
        Objective value after the call
    skipped : bool
        The method was skipped (every free parameter categorical)
    """

    iteration: int
    method: OptimMethod
    ofv: float
    skipped: bool = False


@dataclass
class OptimizationResult:
    """
    Result of ``poped_optim``.

    Attributes
    ----------
    ofv : float
        Objective value of the optimized design
    fim : np.ndarray, optional
        FIM of the optimized design
    design : Design
        The optimized design (the caller's object, updated in place)
    ofv_init : float
        Objective value of the initial design
    fim_init : np.ndarray, optional
        FIM of the initial design
    n_iterations : int
        Number of passes over the method sequence
    stopped_by : {'single_pass', 'stop_criteria', 'iter_max'}
        Why the run ended
    history : List[MethodRecord]
        Every method call, in order
    efficiency : float
        Efficiency of the optimized design relative to the initial one
    """

    ofv: float
    fim: Optional[np.ndarray]
    design: Design
    ofv_init: float
    fim_init: Optional[np.ndarray]
    n_iterations: int
    stopped_by: StopReason
    history: List[MethodRecord] = field(default_factory=list)
    efficiency: float = np.nan


# ============================================================
# DRIVER
# ============================================================


def _check_switches(config: OptimConfig) -> None:
    if not (config.opt_xt or config.opt_a or config.opt_samps or config.opt_inds):
        raise NoOptimizableParametersError("No optimization parameter is set.")
    if config.opt_samps:
        raise UnsupportedOptimizationError(
            "Sample number optimization is not yet implemented."
        )
    if config.opt_inds:
        raise UnsupportedOptimizationError(
            "Optimization of the number of individuals in each group is not yet implemented."
        )


def _resolve_npar(config: OptimConfig, fim: Optional[np.ndarray]) -> Optional[int]:
    npar = config.npar
    if npar is None and fim is not None:
        npar = int(np.shape(fim)[0])
    if config.ofv_calc_type in (OFVCalcType.D, OFVCalcType.LN_D) and npar is None:
        raise ValueError(
            "npar must be given when the evaluator does not return a FIM "
            "for D-type criteria"
        )
    if config.ofv_calc_type is OFVCalcType.DS and config.ds_index is None:
        raise ValueError("ds_index must be given for Ds-optimality")
    return npar


def poped_optim(
    design: Design,
    design_space: DesignSpace,
    evaluator: OFVEvaluator,
    config: Optional[OptimConfig] = None,
    **eval_kwargs: Any,
) -> OptimizationResult:
    """
    Optimize a design with a sequence of optimization methods.

    Parameters
    ----------
    design : Design
        Initial design. Its optimized matrices are overwritten with the
        result once the run completes, and left untouched if it fails.
    design_space : DesignSpace
        Bounds, grouping and allowed values of the design
    evaluator : OFVEvaluator
        Computes the objective value (and FIM) of a design. Must be
        picklable when ``parallel_type='processes'``.
    config : OptimConfig, optional
        Run configuration (defaults to ``OptimConfig()``)
    **eval_kwargs
        Passed to every evaluator call

    Returns
    -------
    OptimizationResult
        Final objective value and FIM, the design, and the run history

    Raises
    ------
    NoOptimizableParametersError
        If no optimization switch is set or no free parameter remains
    UnsupportedOptimizationError
        If sample number or group size optimization is requested
    MissingDependencyError
        If a method needs a library that is not installed
    InvalidObjectiveError
        If the objective value of the initial design is NaN
    ValidationError
        If the design space does not fit the design

    Examples
    --------
    >>> space = DesignSpace.from_design(design, min_xt=0, max_xt=24)
    >>> config = OptimConfig(methods=["ARS", "LS"], seed=1)
    >>> result = poped_optim(design, space, evaluator, config)
    >>> result.ofv >= result.ofv_init
    True
    """
    config = config or OptimConfig()
    with log_to_file(logging.getLogger("src.poped"), config.out_file):
        return _run(design, design_space, evaluator, config, eval_kwargs)


def _run(
    design: Design,
    design_space: DesignSpace,
    evaluator: OFVEvaluator,
    config: OptimConfig,
    eval_kwargs: Dict[str, Any],
) -> OptimizationResult:
    _check_switches(config)
    design_space.validate(design)

    solvers = config.create_solvers()
    for solver in solvers:
        solver.check_available()

    # Initial design
    baseline = evaluator(design, evaluate_fim=True, **eval_kwargs)
    ofv_init = float(baseline.ofv)
    fim_init = baseline.fim
    if np.isnan(ofv_init):
        raise InvalidObjectiveError(
            "Objective function of the initial design is NaN"
        )
    npar = _resolve_npar(config, fim_init)

    record, layout = build_parameter_record(
        design, design_space, opt_xt=config.opt_xt, opt_a=config.opt_a
    )
    pmap = resolve_parameters(record)
    logger.debug("Flat parameter record:\n%s", record.to_frame().to_string())

    adapter = ObjectiveAdapter(
        design=design,
        evaluator=evaluator,
        parameter_map=pmap,
        layout=layout,
        ofv_calc_type=config.ofv_calc_type,
        eval_kwargs=dict(eval_kwargs),
    )

    lower, upper = pmap.lower, pmap.upper
    allowed_values = pmap.allowed_values
    cont = pmap.continuous_mask

    par = pmap.par
    ofv = sanitize_ofv(ofv_init, config.ofv_calc_type)
    history: List[MethodRecord] = []

    iteration = 0
    stop = False
    stopped_by: StopReason = "single_pass"

    while not stop and iteration < config.iter_max:
        ofv_start = ofv
        iteration += 1
        if config.loop_methods:
            logger.info(
                "************* Iteration %d for all optimization methods ***********************",
                iteration,
            )

        for solver in solvers:
            title = METHOD_TITLES[solver.method]
            logger.info(BANNER)
            logger.info("Running %s Optimization", title)
            logger.info(BANNER)

            if solver.requires_continuous:
                if pmap.all_categorical:
                    logger.info(
                        "No continuous variables to optimize, %s Optimization skipped",
                        title,
                    )
                    history.append(MethodRecord(iteration, solver.method, ofv, skipped=True))
                    continue

                fn = ContinuousObjective(adapter.with_base(par))
                output = solver.solve(
                    par[cont], fn, lower[cont], upper[cont], None,
                    config.maximize, ofv_init=ofv,
                )
                par = pmap.splice_continuous(output.par, par)
            else:
                output = solver.solve(
                    par, adapter, lower, upper, allowed_values,
                    config.maximize, ofv_init=ofv,
                )
                par = np.asarray(output.par, dtype=float)

            ofv = float(output.ofv)
            history.append(MethodRecord(iteration, solver.method, ofv))

        if not config.loop_methods:
            stop = True
        else:
            logger.info(BANNER)
            logger.info("Stopping criteria testing")
            logger.info("(Compare between start of iteration and end of iteration)")
            logger.info(BANNER)
            decision = evaluate_stopping(
                ofv_start,
                ofv,
                config.maximize,
                config.stop_criteria,
                npar=npar,
                ofv_calc_type=config.ofv_calc_type,
                ds_index=config.ds_index,
            )
            if decision.stop:
                stop = True
                stopped_by = "stop_criteria"

    if config.loop_methods and not stop:
        stopped_by = "iter_max"

    # Commit the optimized values into the caller's design
    optimized = unflatten_design(pmap.expand(par), layout, design)
    for kind in layout.kinds:
        getattr(design, kind)[...] = getattr(optimized, kind)

    final = evaluator(design, evaluate_fim=True, **eval_kwargs)
    eff = efficiency(ofv_init, ofv, npar, config.ofv_calc_type, config.ds_index)

    logger.info(BANNER)
    logger.info("Optimization finished after %d iteration(s) (%s)", iteration, stopped_by)
    logger.info("Initial OFV: %.6g", ofv_init)
    logger.info("Final OFV:   %.6g", ofv)
    logger.info("Efficiency:\n  (%s) = %.5g", describe_efficiency(config.ofv_calc_type), eff)
    logger.info("Optimized design:\n%s", design.to_frame().to_string(index=False))

    return OptimizationResult(
        ofv=ofv,
        fim=final.fim,
        design=design,
        ofv_init=ofv_init,
        fim_init=fim_init,
        n_iterations=iteration,
        stopped_by=stopped_by,
        history=history,
        efficiency=eff,
    )
