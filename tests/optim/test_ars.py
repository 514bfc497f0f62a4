"""
Tests for adaptive random search.

Tests cover:
- Improvement over the starting point
- Bounds and discrete allowed values
- Reproducibility with a seed
- Iteration limits and parallel batches
"""

import numpy as np
import pytest

from src.poped.optim.ars import optim_ars


class CountingQuadratic:
    """-(x - center)^2 summed, with a call counter."""

    def __init__(self, center):
        self.center = np.asarray(center, dtype=float)
        self.n_calls = 0

    def __call__(self, x):
        self.n_calls += 1
        return -float(np.sum((np.asarray(x) - self.center) ** 2))


# ============================================================
# BASIC BEHAVIOR
# ============================================================


class TestARS:
    """Test adaptive random search."""

    def test_improves_when_maximizing(self):
        fn = CountingQuadratic([3.0, 7.0])
        start = np.array([9.0, 1.0])

        res = optim_ars(start, fn, lower=[0, 0], upper=[10, 10], maximize=True,
                        iter=300, seed=1, trace=False)

        assert res.ofv >= fn(start)
        assert res.ofv == pytest.approx(fn(res.par))
        np.testing.assert_allclose(res.par, [3.0, 7.0], atol=1.5)

    def test_improves_when_minimizing(self):
        def fn(x):
            return float(np.sum((np.asarray(x) - 5.0) ** 2))

        res = optim_ars(np.array([0.0]), fn, lower=[0], upper=[10], maximize=False,
                        iter=200, seed=2, trace=False)

        assert res.ofv <= fn(np.array([0.0]))

    def test_respects_bounds(self):
        fn = CountingQuadratic([100.0, -100.0])
        res = optim_ars(np.array([5.0, 5.0]), fn, lower=[0, 0], upper=[10, 10],
                        maximize=True, iter=200, seed=3, trace=False)

        assert np.all(res.par >= 0)
        assert np.all(res.par <= 10)

    def test_discrete_values(self):
        """Elements with allowed values only take those values."""
        fn = CountingQuadratic([2.6, 7.0])
        allowed = [np.array([1.0, 2.0, 3.0, 4.0]), None]

        res = optim_ars(np.array([1.0, 1.0]), fn, lower=[1, 0], upper=[4, 10],
                        allowed_values=allowed, maximize=True, iter=300, seed=4,
                        trace=False)

        assert res.par[0] in (1.0, 2.0, 3.0, 4.0)
        assert res.ofv >= fn(np.array([1.0, 1.0]))

    def test_seed_reproducible(self):
        fn = CountingQuadratic([3.0, 7.0])
        kwargs = dict(lower=[0, 0], upper=[10, 10], maximize=True, iter=50, seed=11, trace=False)

        res1 = optim_ars(np.array([1.0, 1.0]), fn, **kwargs)
        res2 = optim_ars(np.array([1.0, 1.0]), fn, **kwargs)

        np.testing.assert_array_equal(res1.par, res2.par)
        assert res1.ofv == res2.ofv

    def test_starting_point_not_modified(self):
        start = np.array([1.0, 1.0])
        optim_ars(start, CountingQuadratic([3.0, 7.0]), lower=[0, 0], upper=[10, 10],
                  maximize=True, iter=20, seed=5, trace=False)

        np.testing.assert_array_equal(start, [1.0, 1.0])


# ============================================================
# LIMITS AND OPTIONS
# ============================================================


class TestARSOptions:
    """Test iteration limits and options."""

    def test_iteration_budget(self):
        """One evaluation per iteration plus the initial point."""
        fn = CountingQuadratic([3.0])
        optim_ars(np.array([0.0]), fn, lower=[0], upper=[10], iter=30, max_run=1000,
                  maximize=True, seed=6, trace=False)

        assert fn.n_calls == 31

    def test_known_initial_value_not_recomputed(self):
        fn = CountingQuadratic([3.0])
        optim_ars(np.array([0.0]), fn, lower=[0], upper=[10], iter=10, max_run=1000,
                  maximize=True, seed=7, trace=False, ofv_init=-9.0)

        assert fn.n_calls == 10

    def test_max_run_stops_early(self):
        """A flat objective stops after max_run non-improving iterations."""
        calls = []

        def flat(x):
            calls.append(1)
            return 1.0

        optim_ars(np.array([0.0]), flat, lower=[0], upper=[10], iter=400, max_run=25,
                  maximize=True, seed=8, trace=False, ofv_init=1.0)

        assert len(calls) == 25

    def test_no_replicates(self):
        """Elements in replicates_index take distinct values."""
        fn = CountingQuadratic([2.0, 2.0])
        allowed = [np.array([1.0, 2.0, 3.0])] * 2

        res = optim_ars(np.array([1.0, 3.0]), fn, lower=[1, 1], upper=[3, 3],
                        allowed_values=allowed, allow_replicates=False, maximize=True,
                        iter=50, seed=9, trace=False)

        assert res.par[0] != res.par[1]

    def test_unbounded(self):
        """Unbounded elements use no_bounds_sd."""
        fn = CountingQuadratic([3.0])
        res = optim_ars(np.array([0.0]), fn, no_bounds_sd=2.0, maximize=True,
                        iter=200, seed=10, trace=False)

        assert res.ofv >= fn(np.array([0.0]))

    def test_parallel_threads(self):
        """Thread-parallel batches give a valid result."""
        fn = CountingQuadratic([3.0, 7.0])
        res = optim_ars(np.array([1.0, 1.0]), fn, lower=[0, 0], upper=[10, 10],
                        maximize=True, iter=40, seed=12, trace=False, parallel=True,
                        parallel_type="threads", num_cores=4)

        assert res.ofv >= -40.0
        assert np.all((res.par >= 0) & (res.par <= 10))

    def test_parallel_single_pool(self, thread_pools_created):
        """One worker pool serves every batch of a run."""
        fn = CountingQuadratic([3.0, 7.0])
        optim_ars(np.array([1.0, 1.0]), fn, lower=[0, 0], upper=[10, 10],
                  maximize=True, iter=100, max_run=100, seed=13, trace=False,
                  parallel=True, parallel_type="threads", num_cores=2)

        assert len(thread_pools_created) == 1
