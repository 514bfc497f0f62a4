"""
Tests for design flattening.

Tests cover:
- Ragged matrix flattening in row order
- Reconstruction with and without a template
- Design-level flattening of sampling times and covariates
"""

import numpy as np
import pytest

from src.poped.design import Design
from src.poped.optim.flatten import (
    active_row_lengths,
    flatten,
    flatten_design,
    unflatten,
    unflatten_design,
)


# ============================================================
# MATRIX FLATTENING
# ============================================================


class TestFlatten:
    """Test flatten/unflatten of single matrices."""

    def test_row_order(self):
        """Active elements are taken row by row."""
        matrix = np.array([[1, 2, 3], [4, 5, 6]])
        values, info = flatten(matrix, np.array([3, 3]))

        np.testing.assert_array_equal(values, [1, 2, 3, 4, 5, 6])
        assert info.shape == (2, 3)
        assert info.size == 6

    def test_ragged_rows(self):
        """Only the leading active columns of each row are kept."""
        matrix = np.array([[1, 2, 3], [4, 5, 6], [7, 8, 9]])
        values, info = flatten(matrix, np.array([2, 0, 3]))

        np.testing.assert_array_equal(values, [1, 2, 7, 8, 9])
        assert info.size == 5

    def test_inverse_on_active_entries(self):
        """unflatten(flatten(X)) restores the active entries."""
        matrix = np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
        lengths = np.array([1, 3])
        values, info = flatten(matrix, lengths)
        restored = unflatten(values, info)

        np.testing.assert_array_equal(restored[info.mask], matrix[info.mask])
        assert restored[0, 1] == 0
        assert restored[0, 2] == 0

    def test_template_keeps_inactive_entries(self):
        """Inactive entries come from the template, which is not modified."""
        matrix = np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
        values, info = flatten(matrix, np.array([2, 1]))
        restored = unflatten(values * 10, info, template=matrix)

        np.testing.assert_array_equal(restored, [[10, 20, 3], [40, 5, 6]])
        np.testing.assert_array_equal(matrix, [[1, 2, 3], [4, 5, 6]])

    def test_wrong_row_lengths(self):
        """Row lengths must fit the matrix."""
        matrix = np.zeros((2, 3))
        with pytest.raises(ValueError, match="row_lengths"):
            flatten(matrix, np.array([1, 2, 3]))
        with pytest.raises(ValueError, match="row_lengths"):
            flatten(matrix, np.array([4, 1]))

    def test_wrong_value_count(self):
        """unflatten rejects vectors of the wrong size."""
        _, info = flatten(np.zeros((2, 2)), np.array([2, 1]))
        with pytest.raises(ValueError, match="Expected 3 values"):
            unflatten(np.zeros(4), info)


# ============================================================
# DESIGN FLATTENING
# ============================================================


class TestDesignFlatten:
    """Test flattening of whole designs."""

    def test_active_row_lengths(self, two_group_design):
        """Sampling times use ni, covariates use every column."""
        np.testing.assert_array_equal(active_row_lengths(two_group_design, "xt"), [4, 3])
        np.testing.assert_array_equal(active_row_lengths(two_group_design, "a"), [2, 2])

    def test_inactive_group_skipped(self):
        """Groups without subjects contribute nothing."""
        design = Design(xt=[[1.0, 2.0], [3.0, 4.0]], groupsize=[10, 0], a=[[1.0], [2.0]])

        flat, layout = flatten_design(design, opt_xt=True, opt_a=True)

        np.testing.assert_array_equal(flat, [1.0, 2.0, 1.0])
        assert layout.kinds == ("xt", "a")

    def test_sampling_times_then_covariates(self, two_group_design):
        """Sampling times come first, then covariates."""
        flat, layout = flatten_design(two_group_design, opt_xt=True, opt_a=True)

        np.testing.assert_array_equal(
            flat, [0.5, 2.0, 6.0, 24.0, 1.0, 4.0, 12.0, 70.0, 1.0, 140.0, 0.0]
        )
        assert layout.size == 11
        assert list(layout.kind_labels()) == ["xt"] * 7 + ["a"] * 4

    def test_only_covariates(self, two_group_design):
        """Sampling times can be left out."""
        flat, layout = flatten_design(two_group_design, opt_xt=False, opt_a=True)

        np.testing.assert_array_equal(flat, [70.0, 1.0, 140.0, 0.0])
        assert layout.kinds == ("a",)

    def test_unflatten_design_is_new_object(self, two_group_design):
        """unflatten_design returns a new design and leaves the source alone."""
        original_xt = two_group_design.xt.copy()
        flat, layout = flatten_design(two_group_design)

        new_design = unflatten_design(flat + 1, layout, two_group_design)

        np.testing.assert_array_equal(two_group_design.xt, original_xt)
        np.testing.assert_array_equal(new_design.xt[0], original_xt[0] + 1)
        np.testing.assert_array_equal(new_design.xt[1, :3], original_xt[1, :3] + 1)
        # Unused sample slot keeps its value
        assert new_design.xt[1, 3] == original_xt[1, 3]
        np.testing.assert_array_equal(new_design.a, two_group_design.a)

    def test_roundtrip_design(self, two_group_design):
        """Flattening and unflattening reproduces the design."""
        flat, layout = flatten_design(two_group_design, opt_xt=True, opt_a=True)
        new_design = unflatten_design(flat, layout, two_group_design)

        np.testing.assert_array_equal(new_design.xt, two_group_design.xt)
        np.testing.assert_array_equal(new_design.a, two_group_design.a)
