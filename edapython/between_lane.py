"""
Between-lane normalization.

Removes differences in sequencing depth and count distribution between
lanes, working on ``log(count + c)`` across the full feature set:

- ``median`` / ``upper``: shift each lane so that its median (upper quartile)
  equals the median of those statistics over all lanes.
- ``full``: full-quantile normalization, giving every lane the same
  empirical distribution.
"""

import numpy as np

from .classes import NormResult, SeqExpressionSet
from .offsets import finalize
from .seqset import get_normalized_counts, set_normalization
from .utils import (LOG_CONSTANT, as_count_matrix, assign_by_rank, check_log_constant,
                    log_counts, wrap_like)

BETWEEN_LANE_METHODS = ('median', 'upper', 'full')


def between_lane_normalization(x, method='upper', round=True, offset=False,
                               log_constant=LOG_CONSTANT):
    """Normalize lanes against each other.

    Parameters
    ----------
    x : array-like, DataFrame or SeqExpressionSet
        Count matrix (features x lanes). For a SeqExpressionSet the current
        normalized counts are used, so within-lane and between-lane
        normalization can be chained.
    method : str
        One of 'median', 'upper', 'full'.
    round : bool
        Round normalized counts to integers.
    offset : bool
        Also return the offset matrix ``log(normalized + c) - log(raw + c)``.
    log_constant : float
        Constant added to counts before taking logs.

    Returns
    -------
    SeqExpressionSet (if input is one) with updated normalized counts,
    offset and 'diagnostics', otherwise a NormResult with 'counts',
    'offset', 'method' and 'diagnostics'.
    """
    if isinstance(x, SeqExpressionSet):
        res = _between_lane_default(
            get_normalized_counts(x, log_constant=log_constant), method=method,
            round=round, offset=False, log_constant=log_constant)
        return set_normalization(x, res['counts'], offset=offset, log_constant=log_constant,
                                 method=f"between_lane.{method}", diagnostics=res['diagnostics'])

    return _between_lane_default(x, method=method, round=round, offset=offset,
                                 log_constant=log_constant)


def _between_lane_default(x, method='upper', round=True, offset=False,
                          log_constant=LOG_CONSTANT):
    """Between-lane normalization of a count matrix."""
    if method not in BETWEEN_LANE_METHODS:
        raise ValueError(f"method must be one of {BETWEEN_LANE_METHODS}")

    counts, index, columns = as_count_matrix(x)
    check_log_constant(counts, log_constant)
    nfeat, nlane = counts.shape

    y = log_counts(counts, log_constant)
    changed = np.ones(counts.shape, dtype=bool)
    diagnostics = {'reference': None, 'passthrough': False}

    # Degenerate cases
    if nfeat < 2 or nlane < 2:
        y_norm = y
        changed[:] = False
        diagnostics['passthrough'] = True
    elif method == 'full':
        y_norm = _full_quantile(y)
    else:
        prob = 0.5 if method == 'median' else 0.75
        stats = np.quantile(y, prob, axis=0)
        reference = np.median(stats)
        y_norm = y + (reference - stats)[np.newaxis, :]
        diagnostics['reference'] = float(reference)

    normalized, off = finalize(counts, y_norm, changed, round=round, offset=offset,
                               log_constant=log_constant)
    return NormResult(
        counts=wrap_like(normalized, index, columns),
        offset=wrap_like(off, index, columns),
        method=method,
        diagnostics=diagnostics,
    )


def _full_quantile(y):
    """Classic full-quantile normalization of the columns of y.

    Columns are sorted independently; the across-column mean at every rank is
    then assigned back through each column's ranks.
    """
    reference = np.mean(np.sort(y, axis=0), axis=1)
    out = np.empty_like(y)
    for j in range(y.shape[1]):
        out[:, j] = assign_by_rank(y[:, j], reference)
    return out
