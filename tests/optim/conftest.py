"""
Shared fixtures for design optimization tests.

The evaluator below computes the FIM of a one-compartment IV bolus model,
y = (DOSE / V) * exp(-CL / V * t), with additive residual error. The dose is
taken from the first covariate when the design has one.
"""

import numpy as np
import pytest

from src.poped.design import Design, DesignSpace
from src.poped.optim.objective import FIMResult, OFVCalcType


class OneCompartmentEvaluator:
    """Analytic FIM/OFV evaluator for a one-compartment model."""

    def __init__(self, cl=3.75, v=72.8, dose=70.0, sigma=0.5,
                 ofv_calc_type=OFVCalcType.LN_D, negate=False):
        self.cl = cl
        self.v = v
        self.dose = dose
        self.sigma = sigma
        self.ofv_calc_type = ofv_calc_type
        self.negate = negate
        self.n_calls = 0
        self.kwargs_seen = []

    def fim(self, design: Design) -> np.ndarray:
        fim = np.zeros((2, 2))
        for i in range(design.m):
            if design.ni[i] == 0 or design.groupsize[i] == 0:
                continue
            dose = self.dose if design.a is None else design.a[i, 0]
            t = design.xt[i, : design.ni[i]]
            y = dose / self.v * np.exp(-self.cl / self.v * t)
            d_cl = -(t / self.v) * y
            d_v = y * (-1.0 / self.v + self.cl * t / self.v**2)
            jac = np.column_stack([d_cl, d_v])
            fim += design.groupsize[i] * jac.T @ jac / self.sigma**2
        return fim

    def __call__(self, design, evaluate_fim=True, **kwargs):
        self.n_calls += 1
        self.kwargs_seen.append(kwargs)
        fim = self.fim(design)
        if self.ofv_calc_type is OFVCalcType.D:
            ofv = float(np.linalg.det(fim))
        else:
            sign, logdet = np.linalg.slogdet(fim)
            ofv = logdet if sign > 0 else -np.inf
        if self.negate:
            ofv = -ofv
        return FIMResult(ofv=ofv, fim=fim if evaluate_fim else None)


class ConstantEvaluator:
    """Evaluator returning a fixed objective value."""

    def __init__(self, ofv):
        self.ofv = ofv

    def __call__(self, design, evaluate_fim=True, **kwargs):
        return FIMResult(ofv=self.ofv, fim=np.eye(2))


# ============================================================
# FIXTURES
# ============================================================


@pytest.fixture
def evaluator():
    """ln(det(FIM)) evaluator."""
    return OneCompartmentEvaluator()


@pytest.fixture
def neg_evaluator():
    """-ln(det(FIM)) evaluator, for minimization."""
    return OneCompartmentEvaluator(negate=True)


@pytest.fixture
def nan_evaluator():
    """Evaluator whose objective is NaN."""
    return ConstantEvaluator(np.nan)


@pytest.fixture
def design():
    """One group, three sampling times, dose covariate."""
    return Design(xt=[[1.0, 2.0, 8.0]], groupsize=[20], a=[[70.0]])


@pytest.fixture
def design_space(design):
    """Sampling times free in [0, 24], covariate fixed."""
    return DesignSpace.from_design(design, min_xt=0, max_xt=24)


@pytest.fixture
def two_group_design():
    """Two groups with ragged sampling schedules."""
    return Design(
        xt=[[0.5, 2.0, 6.0, 24.0], [1.0, 4.0, 12.0, 0.0]],
        groupsize=[16, 16],
        ni=[4, 3],
        a=[[70.0, 1.0], [140.0, 0.0]],
    )


@pytest.fixture
def thread_pools_created(monkeypatch):
    """Record every thread pool the solvers create."""
    from concurrent.futures import ThreadPoolExecutor

    from src.poped.optim import utils

    created = []

    class RecordingThreadPool(ThreadPoolExecutor):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created.append(self)

    monkeypatch.setattr(utils, "ThreadPoolExecutor", RecordingThreadPool)
    return created
