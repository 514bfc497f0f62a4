"""
Tests for coordinate line search.

Tests cover:
- Grid construction
- Convergence on separable objectives
- Discrete allowed values
- Error handling for unbounded parameters
"""

import numpy as np
import pytest

from src.poped.optim.line_search import line_values, optim_ls


def separable(x):
    return -float((x[0] - 3.0) ** 2 + (x[1] - 7.0) ** 2)


# ============================================================
# GRID
# ============================================================


class TestLineValues:
    """Test the grid scanned for one parameter."""

    def test_closed_bounds(self):
        np.testing.assert_allclose(line_values(0, 10, line_length=11), np.arange(11))

    def test_open_bounds(self):
        values = line_values(0, 10, line_length=9, closed_bounds=False)
        np.testing.assert_allclose(values, np.arange(1, 10))

    def test_allowed_values_sorted_unique(self):
        values = line_values(0, 10, allowed=np.array([5.0, 1.0, 5.0, 2.0]))
        np.testing.assert_array_equal(values, [1.0, 2.0, 5.0])

    def test_infinite_bounds_rejected(self):
        with pytest.raises(ValueError, match="finite bounds"):
            line_values(0, np.inf)


# ============================================================
# SEARCH
# ============================================================


class TestLineSearch:
    """Test the line search solver."""

    def test_finds_grid_optimum(self):
        res = optim_ls(np.array([0.0, 0.0]), separable, lower=[0, 0], upper=[10, 10],
                       line_length=11, maximize=True, trace=False)

        np.testing.assert_allclose(res.par, [3.0, 7.0])
        assert res.ofv == pytest.approx(0.0)

    def test_minimizing(self):
        def fn(x):
            return float(np.sum((np.asarray(x) - 4.0) ** 2))

        res = optim_ls(np.array([0.0]), fn, lower=[0], upper=[8], line_length=9,
                       maximize=False, trace=False)

        np.testing.assert_allclose(res.par, [4.0])
        assert res.ofv == pytest.approx(0.0)

    def test_discrete_values(self):
        """Categorical elements scan their allowed values."""
        allowed = [np.array([1.0, 2.0, 5.0]), None]
        res = optim_ls(np.array([1.0, 0.0]), separable, lower=[1, 0], upper=[5, 10],
                       allowed_values=allowed, line_length=11, maximize=True,
                       trace=False)

        np.testing.assert_allclose(res.par, [2.0, 7.0])

    def test_no_worse_than_start(self):
        """The start is kept when no grid point improves on it."""
        start = np.array([3.0, 7.0])
        res = optim_ls(start, separable, lower=[0, 0], upper=[10, 10], line_length=4,
                       maximize=True, trace=False)

        np.testing.assert_array_equal(res.par, start)
        assert res.ofv == 0.0

    def test_max_sweeps(self):
        """Sweeps are limited by max_sweeps."""
        calls = []

        def fn(x):
            calls.append(1)
            return separable(x)

        optim_ls(np.array([0.0, 0.0]), fn, lower=[0, 0], upper=[10, 10], line_length=11,
                 maximize=True, trace=False, ofv_init=separable([0.0, 0.0]), max_sweeps=1)

        # Every grid point except the current value, for both parameters
        assert len(calls) == 20

    def test_unbounded_continuous_rejected(self):
        with pytest.raises(ValueError, match="finite bounds"):
            optim_ls(np.array([0.0]), separable, lower=[-np.inf], upper=[np.inf])

    def test_parallel_threads_same_result(self):
        serial = optim_ls(np.array([0.0, 0.0]), separable, lower=[0, 0], upper=[10, 10],
                          line_length=11, maximize=True, trace=False)
        threaded = optim_ls(np.array([0.0, 0.0]), separable, lower=[0, 0], upper=[10, 10],
                            line_length=11, maximize=True, trace=False, parallel=True,
                            parallel_type="threads", num_cores=2)

        np.testing.assert_array_equal(serial.par, threaded.par)
        assert serial.ofv == threaded.ofv

    def test_parallel_single_pool(self, thread_pools_created):
        """One worker pool serves every scan of a run."""
        optim_ls(np.array([0.0, 0.0]), separable, lower=[0, 0], upper=[10, 10],
                 line_length=11, maximize=True, trace=False, parallel=True,
                 parallel_type="threads", num_cores=2)

        assert len(thread_pools_created) == 1
