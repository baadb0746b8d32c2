"""
Offsets and pseudo-counts.

A normalization is stored either as normalized counts or as an offset, the
log-ratio of normalized to raw counts,

    offset = log(normalized + c) - log(raw + c),

with c = 0.1. The two are interchangeable: ``reconcile_normalized`` inverts
``reconcile_offset`` exactly. GLM-based differential-expression tools that
expect log(raw / normalized) as their offset must use ``-offset``.
"""

import numpy as np

from .errors import ShapeMismatchError
from .utils import LOG_CONSTANT, as_count_matrix, check_log_constant, log_counts, wrap_like


def reconcile_offset(raw, normalized, log_constant=LOG_CONSTANT):
    """Offset matrix relating raw and normalized counts.

    Parameters
    ----------
    raw : array-like or DataFrame
        Raw counts (features x lanes).
    normalized : array-like or DataFrame
        Normalized counts of the same shape.
    log_constant : float
        Constant added before taking logs.

    Returns
    -------
    ndarray (DataFrame if ``raw`` is one) of ``log(normalized + c) - log(raw + c)``.
    """
    raw, index, columns = as_count_matrix(raw)
    normalized, _, _ = as_count_matrix(normalized)
    if raw.shape != normalized.shape:
        raise ShapeMismatchError(
            f"raw counts {raw.shape} and normalized counts {normalized.shape} differ in shape")
    check_log_constant(raw, log_constant)
    check_log_constant(normalized, log_constant)
    off = log_counts(normalized, log_constant) - log_counts(raw, log_constant)
    return wrap_like(off, index, columns)


def reconcile_normalized(raw, offset, log_constant=LOG_CONSTANT, round=False):
    """Normalized counts implied by raw counts and an offset matrix.

    Inverse of :func:`reconcile_offset`:
    ``normalized = exp(log(raw + c) + offset) - c``, floored at zero.
    """
    raw, index, columns = as_count_matrix(raw)
    if hasattr(offset, 'to_numpy'):
        offset = offset.to_numpy(dtype=np.float64)
    offset = np.asarray(offset, dtype=np.float64)
    if offset.ndim == 1:
        offset = offset.reshape(-1, 1)
    if offset.shape != raw.shape:
        raise ShapeMismatchError(
            f"raw counts {raw.shape} and offset {offset.shape} differ in shape")
    if not np.all(np.isfinite(offset)):
        raise ValueError("offsets must be finite")
    check_log_constant(raw, log_constant)
    normalized = back_transform(log_counts(raw, log_constant) + offset, log_constant, round)
    return wrap_like(normalized, index, columns)


def back_transform(log_values, log_constant=LOG_CONSTANT, round=True):
    """Map log-scale values back to counts, floored at zero and optionally rounded."""
    counts = np.exp(log_values) - log_constant
    np.maximum(counts, 0.0, out=counts)
    if round:
        counts = np.round(counts)
    return counts


def finalize(raw, log_normalized, changed, round=True, offset=False,
             log_constant=LOG_CONSTANT):
    """Turn normalized log-counts into the (counts, offset) pair returned to callers.

    Entries where ``changed`` is False are copied from ``raw`` unchanged.
    """
    counts = raw.copy()
    counts[changed] = back_transform(log_normalized[changed], log_constant, round)
    off = None
    if offset:
        off = log_counts(counts, log_constant) - log_counts(raw, log_constant)
    return counts, off
