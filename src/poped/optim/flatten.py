"""
Flattening Between Structured Designs and Optimization Vectors.

Generic optimizers work on one flat vector, while a design stores ragged
per-group matrices. This module converts between the two views.

Classes
-------
ShapeInfo
    Shape and per-row active lengths of one flattened matrix
DesignLayout
    Shape information for every optimized matrix of a design

Functions
---------
flatten
    Extract the active elements of a matrix, row by row
unflatten
    Place a flat vector back into matrix layout
flatten_design
    Flatten the optimized matrices of a design into one vector
unflatten_design
    Build a new design from a flat vector

Notes
-----
Rows are traversed in order and within a row only the first
``row_lengths[i]`` columns are active. Rows with a zero length contribute
nothing, so ``unflatten(flatten(X)) == X`` on the active entries.
"""

from dataclasses import dataclass
from typing import Any, List, Literal, Optional, Tuple

import numpy as np

from src.poped.design import Design

ParameterKind = Literal["xt", "a"]


# ============================================================
# MATRIX FLATTENING
# ============================================================


@dataclass(frozen=True, eq=False)
class ShapeInfo:
    """
    Layout of one flattened matrix.

    Attributes
    ----------
    shape : Tuple[int, int]
        Shape of the source matrix
    row_lengths : np.ndarray of int, shape (rows,)
        Number of leading active columns in each row (0 = inactive row)
    """

    shape: Tuple[int, int]
    row_lengths: np.ndarray

    @property
    def size(self) -> int:
        """Number of active elements."""
        return int(np.sum(self.row_lengths))

    @property
    def mask(self) -> np.ndarray:
        """Boolean matrix marking the active elements."""
        cols = np.arange(self.shape[1])
        return cols[np.newaxis, :] < self.row_lengths[:, np.newaxis]


def flatten(matrix: Any, row_lengths: np.ndarray) -> Tuple[np.ndarray, ShapeInfo]:
    """
    Extract active elements of ``matrix`` into a flat vector.

    Parameters
    ----------
    matrix : array-like, shape (rows, cols)
        Source matrix (numeric or object dtype)
    row_lengths : np.ndarray of int, shape (rows,)
        Number of active leading columns per row

    Returns
    -------
    values : np.ndarray, shape (n_active,)
        Active elements in row order
    shape_info : ShapeInfo
        Layout needed by ``unflatten``

    Raises
    ------
    ValueError
        If ``row_lengths`` does not fit the matrix
    """
    matrix = np.asarray(matrix)
    row_lengths = np.asarray(row_lengths, dtype=int)

    if matrix.ndim != 2:
        raise ValueError(f"matrix must be 2-D, got shape {matrix.shape}")
    if row_lengths.shape != (matrix.shape[0],):
        raise ValueError(
            f"row_lengths must have shape ({matrix.shape[0]},), got {row_lengths.shape}"
        )
    if np.any(row_lengths < 0) or np.any(row_lengths > matrix.shape[1]):
        raise ValueError(f"row_lengths must lie in [0, {matrix.shape[1]}]")

    shape_info = ShapeInfo(shape=matrix.shape, row_lengths=row_lengths.copy())

    # Boolean indexing walks rows in C order
    return matrix[shape_info.mask].copy(), shape_info


def unflatten(
    values: np.ndarray, shape_info: ShapeInfo, template: Optional[np.ndarray] = None
) -> np.ndarray:
    """
    Place flat values back into matrix layout.

    Parameters
    ----------
    values : np.ndarray, shape (n_active,)
        Values produced by ``flatten`` (or a modified copy)
    shape_info : ShapeInfo
        Layout returned by ``flatten``
    template : np.ndarray, optional
        Matrix providing the inactive entries. It is copied, never modified.
        Inactive entries are zero when omitted.

    Returns
    -------
    np.ndarray, shape ``shape_info.shape``
        New matrix with the active entries replaced

    Raises
    ------
    ValueError
        If the number of values does not match the layout
    """
    values = np.asarray(values)
    if values.shape != (shape_info.size,):
        raise ValueError(
            f"Expected {shape_info.size} values for this layout, got {values.shape}"
        )

    if template is None:
        out = np.zeros(shape_info.shape, dtype=values.dtype)
    else:
        out = np.array(template, copy=True)
        if out.shape != shape_info.shape:
            raise ValueError(
                f"template must have shape {shape_info.shape}, got {out.shape}"
            )

    out[shape_info.mask] = values
    return out


# ============================================================
# DESIGN FLATTENING
# ============================================================


def active_row_lengths(design: Design, kind: ParameterKind) -> np.ndarray:
    """
    Active columns per group for the sampling times or the covariates.

    Sampling times use ``ni``; covariates use every column. Groups without
    samples or subjects are inactive for both.
    """
    active = design.active_groups
    if kind == "xt":
        return np.where(active, design.ni, 0)
    if design.a is None:
        raise ValueError("Design has no covariates")
    return np.where(active, design.a.shape[1], 0)


@dataclass(frozen=True, eq=False)
class DesignLayout:
    """
    Where each part of the flat design vector comes from.

    Attributes
    ----------
    kinds : Tuple[ParameterKind, ...]
        Matrices included, in flattening order (sampling times first)
    shapes : Tuple[ShapeInfo, ...]
        Layout of each included matrix
    """

    kinds: Tuple[ParameterKind, ...]
    shapes: Tuple[ShapeInfo, ...]

    @property
    def size(self) -> int:
        return sum(s.size for s in self.shapes)

    def kind_labels(self) -> np.ndarray:
        """Source kind of every element of the flat vector."""
        labels: List[str] = []
        for kind, shape_info in zip(self.kinds, self.shapes):
            labels.extend([kind] * shape_info.size)
        return np.array(labels, dtype=object)

    def split(self, values: np.ndarray) -> dict:
        """Split a flat vector into one chunk per included matrix."""
        chunks = {}
        start = 0
        for kind, shape_info in zip(self.kinds, self.shapes):
            chunks[kind] = values[start:start + shape_info.size]
            start += shape_info.size
        return chunks

    def flatten_parallel(self, matrices: dict) -> np.ndarray:
        """
        Flatten matrices parallel to the design (bounds, grouping, ...)
        with this layout.
        """
        parts = []
        for kind, shape_info in zip(self.kinds, self.shapes):
            values, _ = flatten(matrices[kind], shape_info.row_lengths)
            parts.append(values)
        if not parts:
            return np.array([])
        return np.concatenate(parts)


def flatten_design(
    design: Design, opt_xt: bool = True, opt_a: bool = False
) -> Tuple[np.ndarray, DesignLayout]:
    """
    Flatten the optimized matrices of a design into one vector.

    Parameters
    ----------
    design : Design
        Source design (not modified)
    opt_xt : bool, default=True
        Include sampling times
    opt_a : bool, default=False
        Include covariates

    Returns
    -------
    values : np.ndarray
        Sampling times of active groups followed by their covariates
    layout : DesignLayout
        Layout for ``unflatten_design``
    """
    kinds = []
    shapes = []
    parts = []

    if opt_xt:
        values, shape_info = flatten(design.xt, active_row_lengths(design, "xt"))
        kinds.append("xt")
        shapes.append(shape_info)
        parts.append(values.astype(float))

    if opt_a and design.a is not None:
        values, shape_info = flatten(design.a, active_row_lengths(design, "a"))
        kinds.append("a")
        shapes.append(shape_info)
        parts.append(values.astype(float))

    layout = DesignLayout(kinds=tuple(kinds), shapes=tuple(shapes))
    flat = np.concatenate(parts) if parts else np.array([], dtype=float)
    return flat, layout


def unflatten_design(values: np.ndarray, layout: DesignLayout, design: Design) -> Design:
    """
    Build a new design carrying ``values`` in its optimized matrices.

    ``design`` supplies everything that is not optimized and is left
    untouched.
    """
    values = np.asarray(values, dtype=float)
    if values.shape != (layout.size,):
        raise ValueError(f"Expected {layout.size} values, got {values.shape}")

    new_design = design.copy()
    chunks = layout.split(values)
    for kind, shape_info in zip(layout.kinds, layout.shapes):
        template = getattr(design, kind)
        setattr(new_design, kind, unflatten(chunks[kind], shape_info, template).astype(template.dtype))
    return new_design
