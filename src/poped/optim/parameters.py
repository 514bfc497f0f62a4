"""
Parameter Grouping, Fixing and Categorical Handling.

This module turns the flat design vector into the reduced vector handed to
solvers, and expands solver vectors back.

Reduction steps
---------------
1. Classify each element continuous ('cont') or categorical ('cat'); an
   element is categorical when it has a non-empty allowed-value set.
2. Collapse tied elements (same grouping id) to the first member of each
   cluster, keeping the original order.
3. Drop representatives whose lower bound equals the upper bound (fixed).

Classes
-------
FlatParameterRecord
    One row per active design element (value, grouping, bounds, kind, category)
ParameterMap
    Index maps between the reduced vector and the flat record

Functions
---------
build_parameter_record
    Collect the flat parameter record from a design and its design space
resolve_parameters
    Derive tying, fixing and category partitions from a record
"""

import warnings
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from src.poped.design import Design, DesignSpace
from src.poped.exceptions import NoOptimizableParametersError, ValidationError
from src.poped.optim.flatten import DesignLayout, flatten, flatten_design


# ============================================================
# FLAT PARAMETER RECORD
# ============================================================


@dataclass(frozen=True, eq=False)
class FlatParameterRecord:
    """
    Flat view of every optimized design element.

    Attributes
    ----------
    par : np.ndarray, shape (n,)
        Current values
    grouping : np.ndarray of int, shape (n,)
        Tying ids, unique across sampling times and covariates
    lower, upper : np.ndarray, shape (n,)
        Bounds
    kind : np.ndarray of str, shape (n,)
        Source matrix of each element ('xt' or 'a')
    allowed_values : List[Optional[np.ndarray]]
        Allowed values per element (None for continuous elements)
    """

    par: np.ndarray
    grouping: np.ndarray
    lower: np.ndarray
    upper: np.ndarray
    kind: np.ndarray
    allowed_values: List[Optional[np.ndarray]]

    def __post_init__(self):
        n = len(self.par)
        for name in ("grouping", "lower", "upper", "kind", "allowed_values"):
            if len(getattr(self, name)) != n:
                raise ValueError(
                    f"{name} must have {n} entries, got {len(getattr(self, name))}"
                )

    def __len__(self) -> int:
        return len(self.par)

    @property
    def is_categorical(self) -> np.ndarray:
        """True where an element has a non-empty allowed-value set."""
        return np.array(
            [v is not None and len(v) > 0 for v in self.allowed_values], dtype=bool
        )

    @property
    def category(self) -> np.ndarray:
        """'cat' or 'cont' for every element."""
        return np.where(self.is_categorical, "cat", "cont")

    def to_frame(self) -> pd.DataFrame:
        """Tabular view of the record (one row per element)."""
        return pd.DataFrame(
            {
                "par": self.par,
                "grouping": self.grouping,
                "lower": self.lower,
                "upper": self.upper,
                "kind": self.kind,
                "category": self.category,
            }
        )


def _allowed_list(space: Optional[np.ndarray], row_lengths: np.ndarray) -> list:
    """Flatten an allowed-value grid; a missing grid means all continuous."""
    if space is None:
        return [None] * int(np.sum(row_lengths))
    values, _ = flatten(space, row_lengths)
    return [None if v is None else np.asarray(v, dtype=float) for v in values]


def build_parameter_record(
    design: Design,
    design_space: DesignSpace,
    opt_xt: bool = True,
    opt_a: bool = False,
) -> Tuple[FlatParameterRecord, DesignLayout]:
    """
    Collect the flat parameter record for a design.

    Sampling times of active groups come first, then covariates. Covariate
    grouping ids are offset by the largest sampling-time id so that the two
    never collide.

    Parameters
    ----------
    design : Design
        Design to optimize (not modified)
    design_space : DesignSpace
        Bounds, grouping and allowed values
    opt_xt, opt_a : bool
        Which matrices to include

    Returns
    -------
    record : FlatParameterRecord
        Flat view of the optimized elements
    layout : DesignLayout
        Layout to rebuild design matrices from the flat values
    """
    par, layout = flatten_design(design, opt_xt=opt_xt, opt_a=opt_a)

    lower_parts, upper_parts, grouping_parts, allowed = [], [], [], []
    group_offset = 0

    for kind, shape_info in zip(layout.kinds, layout.shapes):
        lengths = shape_info.row_lengths
        if kind == "xt":
            lo, hi = design_space.min_xt, design_space.max_xt
            grouping, space = design_space.grouped_xt, design_space.xt_space
        else:
            if design_space.min_a is None:
                raise ValidationError("Design space has no covariate bounds (min_a/max_a)")
            lo, hi = design_space.min_a, design_space.max_a
            grouping, space = design_space.grouped_a, design_space.a_space

        lower_parts.append(flatten(lo, lengths)[0].astype(float))
        upper_parts.append(flatten(hi, lengths)[0].astype(float))

        group_ids = flatten(grouping, lengths)[0].astype(int) + group_offset
        grouping_parts.append(group_ids)
        if group_ids.size > 0:
            group_offset = int(group_ids.max())

        allowed.extend(_allowed_list(space, lengths))

    def _cat(parts, dtype):
        return np.concatenate(parts).astype(dtype) if parts else np.array([], dtype=dtype)

    record = FlatParameterRecord(
        par=par,
        grouping=_cat(grouping_parts, int),
        lower=_cat(lower_parts, float),
        upper=_cat(upper_parts, float),
        kind=layout.kind_labels(),
        allowed_values=allowed,
    )
    return record, layout


# ============================================================
# PARAMETER MAP
# ============================================================


@dataclass(frozen=True, eq=False)
class ParameterMap:
    """
    Maps between the reduced solver vector and the flat parameter record.

    Built once per optimization run and only read afterwards, so it can be
    shared by concurrent objective evaluations.

    Attributes
    ----------
    record : FlatParameterRecord
        Flat record the map was built from
    representative_index : np.ndarray of int
        Index into the record of the first member of each tying cluster
    member_index : np.ndarray of int, shape (len(record),)
        For each record element, the position of its cluster representative
        in ``representative_index``
    free_index : np.ndarray of int
        Representatives that are optimized (reduced vector -> representative)
    fixed_index : np.ndarray of int
        Representatives whose lower bound equals the upper bound
    """

    record: FlatParameterRecord
    representative_index: np.ndarray
    member_index: np.ndarray
    free_index: np.ndarray
    fixed_index: np.ndarray

    # -------- reduced-space views --------

    @property
    def n_free(self) -> int:
        return len(self.free_index)

    @property
    def _free_record_index(self) -> np.ndarray:
        return self.representative_index[self.free_index]

    @property
    def par(self) -> np.ndarray:
        """Initial reduced vector."""
        return self.record.par[self._free_record_index].copy()

    @property
    def lower(self) -> np.ndarray:
        return self.record.lower[self._free_record_index].copy()

    @property
    def upper(self) -> np.ndarray:
        return self.record.upper[self._free_record_index].copy()

    @property
    def allowed_values(self) -> List[Optional[np.ndarray]]:
        return [self.record.allowed_values[i] for i in self._free_record_index]

    @property
    def is_categorical(self) -> np.ndarray:
        return self.record.is_categorical[self._free_record_index]

    @property
    def continuous_mask(self) -> np.ndarray:
        """True for continuous entries of the reduced vector."""
        return ~self.is_categorical

    @property
    def all_categorical(self) -> bool:
        return not np.any(self.continuous_mask)

    # -------- conversions --------

    def splice_continuous(self, par_cont: np.ndarray, base: np.ndarray) -> np.ndarray:
        """
        Insert continuous-only values into a copy of a full reduced vector.

        Categorical entries keep the values from ``base``.
        """
        par_cont = np.asarray(par_cont, dtype=float)
        mask = self.continuous_mask
        if par_cont.shape != (int(np.sum(mask)),):
            raise ValueError(
                f"Expected {int(np.sum(mask))} continuous values, got {par_cont.shape}"
            )
        out = np.array(base, dtype=float, copy=True)
        out[mask] = par_cont
        return out

    def expand(self, par: np.ndarray) -> np.ndarray:
        """
        Expand a reduced vector to the full flat vector.

        Fixed representatives keep their recorded value and every tied
        element takes the value of its representative.
        """
        par = np.asarray(par, dtype=float)
        if par.shape != (self.n_free,):
            raise ValueError(f"Expected {self.n_free} values, got {par.shape}")

        rep_values = self.record.par[self.representative_index].astype(float)
        rep_values[self.free_index] = par
        return rep_values[self.member_index]

    def reduce(self, full: np.ndarray) -> np.ndarray:
        """Reduced vector holding the free representatives of ``full``."""
        full = np.asarray(full, dtype=float)
        return full[self._free_record_index].copy()


def resolve_parameters(record: FlatParameterRecord) -> ParameterMap:
    """
    Derive tying, fixing and category partitions from a flat record.

    Parameters
    ----------
    record : FlatParameterRecord
        Flat parameter record

    Returns
    -------
    ParameterMap
        Index maps used for every objective evaluation and the final commit

    Raises
    ------
    ValidationError
        If elements sharing a grouping id have different bounds
    NoOptimizableParametersError
        If no free parameter remains after tying and fixing

    Examples
    --------
    >>> pmap = resolve_parameters(record)
    >>> full = pmap.expand(pmap.par)
    >>> np.allclose(full[pmap.representative_index], record.par[pmap.representative_index])
    True
    """
    _, first_index, inverse = np.unique(
        record.grouping, return_index=True, return_inverse=True
    )

    # np.unique sorts by id; reorder clusters by first occurrence
    order = np.argsort(first_index, kind="stable")
    representative_index = first_index[order]
    rank = np.empty_like(order)
    rank[order] = np.arange(len(order))
    member_index = rank[np.ravel(inverse)]

    rep_lower = record.lower[representative_index]
    rep_upper = record.upper[representative_index]

    if np.any(record.lower != rep_lower[member_index]) or np.any(
        record.upper != rep_upper[member_index]
    ):
        raise ValidationError("Design elements in the same group must share bounds")

    rep_par = record.par[representative_index]
    differs = record.par != rep_par[member_index]
    if np.any(differs & (record.lower == record.upper)):
        raise ValidationError(
            "Fixed design elements in the same group must share values"
        )
    if np.any(differs):
        warnings.warn(
            "Grouped design elements have different initial values; "
            "the first element of each group is used."
        )

    fixed = rep_lower == rep_upper
    free_index = np.flatnonzero(~fixed)
    fixed_index = np.flatnonzero(fixed)

    if len(free_index) == 0:
        raise NoOptimizableParametersError(
            "No design parameters have a design space to optimize"
        )

    return ParameterMap(
        record=record,
        representative_index=representative_index,
        member_index=member_index,
        free_index=free_index,
        fixed_index=fixed_index,
    )
