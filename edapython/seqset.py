"""
SeqExpressionSet construction, validation, and accessors.
"""

import numpy as np
import pandas as pd

from .classes import SeqExpressionSet
from .errors import ShapeMismatchError
from .offsets import reconcile_normalized, reconcile_offset
from .utils import LOG_CONSTANT, as_count_matrix


def make_seq_expression_set(counts, features=None, samples=None,
                            normalized_counts=None, offset=None,
                            remove_zeros=False):
    """Construct a SeqExpressionSet from components.

    Parameters
    ----------
    counts : array-like or DataFrame
        Matrix of raw counts (features x lanes). DataFrame labels become the
        feature and sample names.
    features : DataFrame or dict, optional
        Feature-level covariates such as ``gc`` or ``length``.
    samples : DataFrame or dict, optional
        Lane-level information.
    normalized_counts : array-like, optional
        Previously normalized counts.
    offset : array-like, optional
        Previously computed offset matrix.
    remove_zeros : bool
        Whether to drop features with zero counts in every lane.

    Returns
    -------
    SeqExpressionSet
    """
    counts, index, columns = as_count_matrix(counts)
    nfeat, nlane = counts.shape

    row_names = [str(i) for i in index] if index is not None else [str(i + 1) for i in range(nfeat)]
    col_names = [str(c) for c in columns] if columns is not None else [f"Sample{j + 1}" for j in range(nlane)]

    if features is None:
        features = pd.DataFrame(index=row_names)
    else:
        features = pd.DataFrame(features)
        if len(features) != nfeat:
            raise ShapeMismatchError("Counts and features have different numbers of rows")
        features.index = row_names

    if samples is None:
        samples = pd.DataFrame(index=col_names)
    else:
        samples = pd.DataFrame(samples)
        if len(samples) != nlane:
            raise ShapeMismatchError("Number of rows in 'samples' must equal number of columns in 'counts'")
        samples.index = col_names

    x = SeqExpressionSet()
    x['counts'] = counts
    x['normalized.counts'] = None
    x['offset'] = None
    x['features'] = features
    x['samples'] = samples

    if normalized_counts is not None:
        normalized_counts, _, _ = as_count_matrix(normalized_counts)
        if normalized_counts.shape != counts.shape:
            raise ShapeMismatchError("'normalized_counts' must have the same shape as 'counts'")
        x['normalized.counts'] = normalized_counts
    if offset is not None:
        offset = np.asarray(offset, dtype=np.float64)
        if offset.ndim == 1:
            offset = offset.reshape(-1, 1)
        if offset.shape != counts.shape:
            raise ShapeMismatchError("'offset' must have the same shape as 'counts'")
        x['offset'] = offset

    if remove_zeros:
        all_zeros = np.sum(counts > 0, axis=1) == 0
        if np.any(all_zeros):
            x = x[~all_zeros, None]
            print(f"Removing {np.sum(all_zeros)} rows with all zero counts")

    return x


def valid_seq_expression_set(x):
    """Check and fill standard components of a SeqExpressionSet."""
    if x.get('counts') is None:
        raise ValueError("No count matrix")
    counts, _, _ = as_count_matrix(x['counts'])
    x['counts'] = counts
    nfeat, nlane = counts.shape
    if x.get('features') is None:
        x['features'] = pd.DataFrame(index=[str(i + 1) for i in range(nfeat)])
    if x.get('samples') is None:
        x['samples'] = pd.DataFrame(index=[f"Sample{j + 1}" for j in range(nlane)])
    x.setdefault('normalized.counts', None)
    x.setdefault('offset', None)
    for k in ('normalized.counts', 'offset'):
        if x[k] is not None and np.shape(x[k]) != counts.shape:
            raise ShapeMismatchError(f"'{k}' must have the same shape as 'counts'")
    if not isinstance(x, SeqExpressionSet):
        x = SeqExpressionSet(x)
    return x


def get_counts(x):
    """Raw count matrix."""
    return np.asarray(x['counts'])


def get_normalized_counts(x, log_constant=LOG_CONSTANT):
    """Normalized counts.

    Falls back to the counts implied by the offset, and to the raw counts
    when the object has not been normalized.
    """
    if x.get('normalized.counts') is not None:
        return np.asarray(x['normalized.counts'])
    if x.get('offset') is not None:
        return reconcile_normalized(x['counts'], x['offset'], log_constant=log_constant)
    return np.asarray(x['counts']).copy()


def get_offset(x, log_constant=LOG_CONSTANT):
    """Offset matrix; all zeros when no normalization has been recorded."""
    if x.get('offset') is not None:
        return np.asarray(x['offset'])
    if x.get('normalized.counts') is not None:
        return reconcile_offset(x['counts'], x['normalized.counts'], log_constant=log_constant)
    return np.zeros(np.shape(x['counts']))


def set_normalization(x, normalized, offset=False, log_constant=LOG_CONSTANT,
                      method=None, diagnostics=None):
    """Copy of ``x`` holding new normalized counts.

    The stored offset is recomputed against the raw counts, so it is the
    cumulative offset of every normalization applied so far. It is kept
    when ``offset`` is True or when ``x`` already carried one.

    When ``method`` is given, ``diagnostics`` becomes the ``diagnostics``
    component of the copy and is also appended to its ``normalization``
    log as a ``(method, diagnostics)`` pair, one entry per step.
    """
    out = x._copy() if isinstance(x, SeqExpressionSet) else SeqExpressionSet(dict(x))
    normalized = np.asarray(normalized, dtype=np.float64)
    if normalized.shape != np.shape(out['counts']):
        raise ShapeMismatchError("normalized counts must have the same shape as 'counts'")
    keep_offset = offset or out.get('offset') is not None
    out['normalized.counts'] = normalized
    out['offset'] = (reconcile_offset(out['counts'], normalized, log_constant=log_constant)
                     if keep_offset else None)
    if method is not None:
        out['diagnostics'] = diagnostics
        out['normalization'] = list(out.get('normalization') or []) + [(method, diagnostics)]
    return out


def get_features(x):
    """Feature annotation DataFrame."""
    return x['features']


def get_samples(x):
    """Sample annotation DataFrame."""
    return x['samples']
