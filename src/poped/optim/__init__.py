"""
Optimization Core for Population Optimal Design.

This package optimizes the sampling times and covariates of a population
design by running a sequence of optimization methods over a flat parameter
vector.

Main Functions
--------------
poped_optim
    Optimize a design with a sequence of methods
efficiency
    Efficiency of one design relative to another

Key Classes
-----------
OptimConfig
    Configuration of an optimization run
OptimizationResult
    Final objective, FIM, design and run history

Modules
-------
flatten
    Conversion between design matrices and flat vectors
parameters
    Tying, fixing and categorical handling of design elements
objective
    Objective function adapter around the FIM/OFV evaluator
efficiency
    Design efficiency and stopping criteria
ars
    Adaptive random search
line_search
    Coordinate line search
ga
    Genetic algorithm (requires pymoo)
methods
    Solver classes and factory
driver
    Multi-method optimization driver
utils
    Shared solver helpers

Examples
--------
>>> from src.poped.design import Design, DesignSpace
>>> from src.poped.optim import OptimConfig, poped_optim
>>>
>>> design = Design(xt=[[0.5, 2, 8, 24]], groupsize=[32], a=[[70]])
>>> space = DesignSpace.from_design(design, min_xt=0, max_xt=24)
>>> result = poped_optim(
...     design, space, evaluator,
...     OptimConfig(methods=["ARS", "LS"], seed=42)
... )
"""

from src.poped.optim.driver import (
    MethodRecord,
    OptimConfig,
    OptimizationResult,
    poped_optim,
)
from src.poped.optim.efficiency import StopCriteria, efficiency, evaluate_stopping
from src.poped.optim.methods import OptimMethod, create_solver
from src.poped.optim.objective import FIMResult, OFVCalcType, ObjectiveAdapter

__all__ = [
    "poped_optim",
    "OptimConfig",
    "OptimizationResult",
    "MethodRecord",
    "OptimMethod",
    "create_solver",
    "OFVCalcType",
    "FIMResult",
    "ObjectiveAdapter",
    "StopCriteria",
    "efficiency",
    "evaluate_stopping",
]
