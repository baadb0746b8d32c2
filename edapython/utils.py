"""
Utility functions for edaPython.

Input validation for count matrices and covariates, the log transform shared
by all normalization methods, lane selection, and the rank helpers used by
full-quantile normalization.
"""

import numpy as np
import pandas as pd

from .classes import NormResult
from .errors import NegativeOrNaNInputError, NumericUnderflowError, ShapeMismatchError

# Constant added to counts before taking logs.
LOG_CONSTANT = 0.1


def as_count_matrix(x):
    """Validate a count matrix and return it as a float array.

    A NormResult stands for its normalized counts, so results can be passed
    straight to the next normalization.

    Returns
    -------
    tuple of (ndarray, index, columns). ``index`` and ``columns`` are the
    DataFrame labels when ``x`` is a DataFrame, otherwise None.
    """
    index = columns = None
    if isinstance(x, NormResult):
        x = x['counts']
    if isinstance(x, pd.DataFrame):
        index, columns = x.index, x.columns
        x = x.to_numpy(dtype=np.float64)
    elif isinstance(x, pd.Series):
        index, columns = x.index, pd.Index([x.name if x.name is not None else 0])
        x = x.to_numpy(dtype=np.float64)
    else:
        x = np.asarray(x, dtype=np.float64)

    if x.ndim == 1:
        x = x.reshape(-1, 1)
    if x.ndim != 2:
        raise ShapeMismatchError(f"counts must be a matrix, got {x.ndim} dimensions")
    if x.size == 0:
        raise ShapeMismatchError("'counts' must contain at least one value")
    if np.any(np.isnan(x)):
        raise NegativeOrNaNInputError("NA counts not allowed")
    if not np.all(np.isfinite(x)):
        raise NegativeOrNaNInputError("Infinite counts not allowed")
    if np.min(x) < 0:
        raise NegativeOrNaNInputError("Negative counts not allowed")
    return x, index, columns


def as_covariate(covariate, nrow, index=None):
    """Validate a per-feature covariate and return it as a float vector.

    A Series is aligned to ``index`` when both carry labels; features absent
    from the Series become NaN.
    """
    if isinstance(covariate, pd.Series) and index is not None:
        covariate = covariate.reindex(index)
    cov = np.asarray(covariate, dtype=np.float64).ravel()
    if len(cov) != nrow:
        raise ShapeMismatchError(
            f"covariate has length {len(cov)} but counts have {nrow} rows")
    cov = cov.copy()
    cov[~np.isfinite(cov)] = np.nan
    return cov


def check_log_constant(x, log_constant):
    """Raise if ``log(x + log_constant)`` is undefined anywhere."""
    if not np.isfinite(log_constant) or np.min(x) + log_constant <= 0:
        raise NumericUnderflowError(log_constant)


def log_counts(x, log_constant=LOG_CONSTANT):
    """Natural log of counts plus a small constant."""
    return np.log(np.asarray(x, dtype=np.float64) + log_constant)


def wrap_like(values, index=None, columns=None):
    """Return ``values`` as a DataFrame when the input carried labels."""
    if values is None or index is None:
        return values
    return pd.DataFrame(values, index=index, columns=columns)


def resolve_lanes(lane, ncol, columns=None):
    """Resolve a lane selector to a sorted array of column indices.

    Accepts None (all lanes), an int, a column label, a list of either, or a
    boolean mask.
    """
    if lane is None:
        return np.arange(ncol)
    idx = np.atleast_1d(np.asarray(lane))
    if idx.dtype == bool:
        if len(idx) != ncol:
            raise ShapeMismatchError("boolean lane selector must have one entry per lane")
        return np.flatnonzero(idx)
    if idx.dtype.kind in ('U', 'S', 'O'):
        if columns is None:
            raise KeyError("lanes can only be selected by name when counts have column names")
        names = list(columns)
        out = []
        for name in idx:
            if name not in names:
                raise KeyError(f"Lane '{name}' not found")
            out.append(names.index(name))
        idx = np.array(out)
    idx = idx.astype(int)
    if np.any(idx < -ncol) or np.any(idx >= ncol):
        raise IndexError(f"lane index out of range for {ncol} lanes")
    return np.unique(np.mod(idx, ncol))


def assign_by_rank(y, reference):
    """Replace each value of ``y`` by the reference value at its rank.

    ``reference`` must be sorted and have the same length as ``y``. Tied
    values in ``y`` receive the mean of the reference values spanned by the
    tie, so equal inputs stay equal.
    """
    o = np.argsort(y, kind='mergesort')
    ys = y[o]
    starts = np.flatnonzero(np.r_[True, ys[1:] != ys[:-1]])
    lengths = np.diff(np.r_[starts, len(ys)])
    block_means = np.add.reduceat(reference, starts) / lengths
    out = np.empty_like(y, dtype=np.float64)
    out[o] = np.repeat(block_means, lengths)
    return out
