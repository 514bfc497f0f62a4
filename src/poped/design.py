"""
Design and design space definitions for population optimal design.

This module holds the structured experimental design that is optimized
(per-group sampling times and covariates) and the design space that
constrains it (bounds, grouping of tied elements and discrete allowed
values).

Classes
-------
Design
    Sampling times, covariates, samples per group and group sizes
DesignSpace
    Bounds, grouping and allowed values parallel to a Design
"""

from dataclasses import dataclass
from typing import Any, Optional

import numpy as np
import pandas as pd

from src.poped.exceptions import ValidationError


def _as_matrix(values: Any, name: str, dtype=float) -> np.ndarray:
    """Coerce input to a 2-D array (a 1-D input is treated as one group)."""
    arr = np.array(values, dtype=dtype)
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    if arr.ndim != 2:
        raise ValidationError(f"{name} must be a 2-D matrix, got {arr.ndim} dimensions")
    return arr


def _as_group_vector(values: Any, m: int, name: str) -> np.ndarray:
    """Coerce per-group input to an integer vector of length m."""
    arr = np.atleast_1d(np.asarray(values))
    if arr.size == 1 and m > 1:
        arr = np.repeat(arr, m)
    if arr.shape != (m,):
        raise ValidationError(f"{name} must have one entry per group ({m}), got {arr.shape}")
    return arr.astype(int)


def _as_allowed_grid(space: Any, shape: tuple, name: str) -> Optional[np.ndarray]:
    """
    Build a per-element grid of allowed-value sets.

    ``space`` is either None or empty (every element continuous), a flat
    sequence of numbers shared by every element, or a nested (rows x cols)
    structure whose entries are None or a sequence of allowed values.
    """
    if space is None or len(space) == 0:
        return None

    grid = np.empty(shape, dtype=object)

    if isinstance(space, np.ndarray) and space.dtype != object and space.ndim == 1:
        space = space.tolist()

    if len(space) > 0 and all(np.isscalar(v) for v in space):
        shared = np.asarray(space, dtype=float)
        for idx in np.ndindex(shape):
            grid[idx] = shared
        return grid

    if len(space) != shape[0]:
        raise ValidationError(f"{name} must have {shape[0]} rows, got {len(space)}")

    for i, row in enumerate(space):
        if len(row) != shape[1]:
            raise ValidationError(
                f"{name} row {i} must have {shape[1]} entries, got {len(row)}"
            )
        for j, values in enumerate(row):
            grid[i, j] = None if values is None else np.asarray(values, dtype=float).ravel()

    return grid


# ============================================================
# DESIGN
# ============================================================


@dataclass
class Design:
    """
    Structured experimental design.

    Parameters
    ----------
    xt : array-like, shape (m, max_ni)
        Sampling times, one row per group. Only the first ``ni[i]`` entries
        of row i are used.
    groupsize : array-like, shape (m,)
        Number of subjects in each group
    ni : array-like, shape (m,), optional
        Number of samples taken in each group. Defaults to the full row
        length for every group.
    a : array-like, shape (m, n_cov), optional
        Covariates (e.g. dose), one row per group

    Notes
    -----
    Only groups with nonzero ``ni`` and nonzero ``groupsize`` take part in
    optimization; see ``active_groups``.

    Examples
    --------
    >>> design = Design(xt=[[0.5, 2, 8, 24]], groupsize=[32], a=[[70]])
    >>> design.m
    1
    """

    xt: np.ndarray
    groupsize: np.ndarray
    ni: Optional[np.ndarray] = None
    a: Optional[np.ndarray] = None

    def __post_init__(self):
        """Normalize inputs to arrays and validate shapes."""
        self.xt = _as_matrix(self.xt, "xt")
        m = self.xt.shape[0]

        self.groupsize = _as_group_vector(self.groupsize, m, "groupsize")

        if self.ni is None:
            self.ni = np.full(m, self.xt.shape[1], dtype=int)
        else:
            self.ni = _as_group_vector(self.ni, m, "ni")

        if np.any(self.ni < 0) or np.any(self.ni > self.xt.shape[1]):
            raise ValidationError(
                f"ni must lie in [0, {self.xt.shape[1]}], got {self.ni.tolist()}"
            )

        if self.a is not None:
            self.a = _as_matrix(self.a, "a")
            if self.a.shape[0] != m:
                raise ValidationError(
                    f"a must have one row per group ({m}), got {self.a.shape[0]}"
                )

    @property
    def m(self) -> int:
        """Number of groups."""
        return self.xt.shape[0]

    @property
    def active_groups(self) -> np.ndarray:
        """Boolean mask of groups with samples and subjects."""
        return (self.ni != 0) & (self.groupsize != 0)

    def copy(self) -> "Design":
        """Return a deep copy of the design."""
        return Design(
            xt=self.xt.copy(),
            groupsize=self.groupsize.copy(),
            ni=self.ni.copy(),
            a=None if self.a is None else self.a.copy(),
        )

    def to_frame(self) -> pd.DataFrame:
        """
        Long-format table of the design, one row per sample.

        Returns
        -------
        pd.DataFrame
            Columns ``Group``, ``GroupSize``, ``Sample``, ``xt`` and one
            ``a1..ak`` column per covariate.
        """
        rows = []
        for i in range(self.m):
            for j in range(self.ni[i]):
                row = {
                    "Group": i + 1,
                    "GroupSize": self.groupsize[i],
                    "Sample": j + 1,
                    "xt": self.xt[i, j],
                }
                if self.a is not None:
                    for k, value in enumerate(self.a[i]):
                        row[f"a{k + 1}"] = value
                rows.append(row)
        return pd.DataFrame(rows)


# ============================================================
# DESIGN SPACE
# ============================================================


@dataclass
class DesignSpace:
    """
    Constraints on the optimizable elements of a Design.

    All matrices are parallel in shape to ``Design.xt`` or ``Design.a``.

    Attributes
    ----------
    min_xt, max_xt : np.ndarray
        Bounds of the sampling times
    grouped_xt : np.ndarray of int
        Tying ids of sampling times. Elements sharing an id are optimized as
        one value.
    min_a, max_a : np.ndarray, optional
        Bounds of the covariates
    grouped_a : np.ndarray of int, optional
        Tying ids of covariates (local to the covariates; they are offset
        past the sampling-time ids during optimization)
    xt_space, a_space : np.ndarray of object, optional
        Allowed values per element. An entry of None or an empty set means
        the element is continuous.

    Use ``DesignSpace.from_design`` to fill in defaults.
    """

    min_xt: np.ndarray
    max_xt: np.ndarray
    grouped_xt: np.ndarray
    min_a: Optional[np.ndarray] = None
    max_a: Optional[np.ndarray] = None
    grouped_a: Optional[np.ndarray] = None
    xt_space: Optional[np.ndarray] = None
    a_space: Optional[np.ndarray] = None

    @classmethod
    def from_design(
        cls,
        design: Design,
        min_xt: Any = None,
        max_xt: Any = None,
        grouped_xt: Any = None,
        min_a: Any = None,
        max_a: Any = None,
        grouped_a: Any = None,
        xt_space: Any = None,
        a_space: Any = None,
    ) -> "DesignSpace":
        """
        Create a design space for ``design``, filling in defaults.

        Parameters
        ----------
        design : Design
            Design the space constrains
        min_xt, max_xt : scalar or array-like, optional
            Sampling time bounds. A scalar applies to every element.
            Defaults to the design values (element fixed).
        grouped_xt : array-like of int, optional
            Tying ids for sampling times. Defaults to a unique id per element.
        min_a, max_a, grouped_a : optional
            Same as above for covariates.
        xt_space, a_space : optional
            Allowed-value sets: a flat sequence shared by all elements, or a
            nested rows x cols structure with None for continuous entries.

        Returns
        -------
        DesignSpace
            Validated design space

        Raises
        ------
        ValidationError
            If shapes do not match the design or a lower bound exceeds its
            upper bound
        """
        shape_xt = design.xt.shape

        space = cls(
            min_xt=cls._fill(min_xt, design.xt, "min_xt"),
            max_xt=cls._fill(max_xt, design.xt, "max_xt"),
            grouped_xt=cls._fill_grouping(grouped_xt, shape_xt, "grouped_xt"),
            xt_space=_as_allowed_grid(xt_space, shape_xt, "xt_space"),
        )

        if design.a is not None:
            shape_a = design.a.shape
            space.min_a = cls._fill(min_a, design.a, "min_a")
            space.max_a = cls._fill(max_a, design.a, "max_a")
            space.grouped_a = cls._fill_grouping(grouped_a, shape_a, "grouped_a")
            space.a_space = _as_allowed_grid(a_space, shape_a, "a_space")

        space.validate(design)
        return space

    @staticmethod
    def _fill(values: Any, template: np.ndarray, name: str) -> np.ndarray:
        if values is None:
            return template.astype(float).copy()
        arr = np.asarray(values, dtype=float)
        if arr.ndim == 0:
            return np.full(template.shape, float(arr))
        arr = _as_matrix(arr, name)
        if arr.shape != template.shape:
            raise ValidationError(f"{name} must have shape {template.shape}, got {arr.shape}")
        return arr

    @staticmethod
    def _fill_grouping(values: Any, shape: tuple, name: str) -> np.ndarray:
        if values is None:
            return np.arange(1, int(np.prod(shape)) + 1).reshape(shape)
        arr = _as_matrix(values, name, dtype=int)
        if arr.shape != shape:
            raise ValidationError(f"{name} must have shape {shape}, got {arr.shape}")
        return arr

    def validate(self, design: Design) -> None:
        """
        Validate the design space against a design.

        Raises
        ------
        ValidationError
            If shapes do not match or any lower bound exceeds its upper bound
        """
        matrices = [("min_xt", self.min_xt), ("max_xt", self.max_xt), ("grouped_xt", self.grouped_xt)]
        for name, matrix in matrices:
            if np.shape(matrix) != design.xt.shape:
                raise ValidationError(
                    f"{name} must have shape {design.xt.shape}, got {np.shape(matrix)}"
                )

        if np.any(self.min_xt > self.max_xt):
            raise ValidationError("min_xt must be <= max_xt for every sampling time")

        if design.a is not None and self.min_a is not None:
            for name, matrix in [("min_a", self.min_a), ("max_a", self.max_a), ("grouped_a", self.grouped_a)]:
                if np.shape(matrix) != design.a.shape:
                    raise ValidationError(
                        f"{name} must have shape {design.a.shape}, got {np.shape(matrix)}"
                    )
            if np.any(self.min_a > self.max_a):
                raise ValidationError("min_a must be <= max_a for every covariate")

