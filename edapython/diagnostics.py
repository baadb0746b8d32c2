"""
Gene-level exploratory summaries.

Numeric counterparts of the usual RNA-Seq EDA plots: mean-variance
relationship, covariate bias curves, per-stratum log-count levels, relative
log expression, and per-lane count distributions. Each function accepts a
count matrix, DataFrame or SeqExpressionSet (using its normalized counts
when present).
"""

import numpy as np
import pandas as pd

from .binning import DEFAULT_NUM_BINS, _stratify
from .classes import SeqExpressionSet
from .errors import ShapeMismatchError
from .seqset import get_normalized_counts
from .utils import LOG_CONSTANT, as_count_matrix, as_covariate, log_counts
from .weighted_lowess import weighted_lowess


def _counts_and_labels(x, covariate=None):
    """Counts with row/column labels; resolves covariate names for containers."""
    if isinstance(x, SeqExpressionSet):
        counts = get_normalized_counts(x)
        index = x['features'].index if x.get('features') is not None else None
        columns = x['samples'].index if x.get('samples') is not None else None
        if isinstance(covariate, str):
            covariate = x['features'][covariate].values
        counts, _, _ = as_count_matrix(counts)
        return counts, index, columns, covariate
    counts, index, columns = as_count_matrix(x)
    return counts, index, columns, covariate


def _lane_labels(columns, nlane):
    if columns is not None:
        return list(columns)
    return [f"Sample{j + 1}" for j in range(nlane)]


def mean_var(x):
    """Per-feature mean and variance across lanes.

    Returns
    -------
    DataFrame with columns 'mean', 'variance' and 'overdispersed'
    (variance above the Poisson expectation, i.e. above the mean).
    """
    counts, index, _, _ = _counts_and_labels(x)
    mean = counts.mean(axis=1)
    if counts.shape[1] > 1:
        variance = counts.var(axis=1, ddof=1)
    else:
        variance = np.full(counts.shape[0], np.nan)
    return pd.DataFrame({
        'mean': mean,
        'variance': variance,
        'overdispersed': variance > mean,
    }, index=index)


def bias_curve(x, covariate, span=0.3, iterations=4, npts=200,
               log_constant=LOG_CONSTANT):
    """Lowess fit of log-count on a covariate, lane by lane.

    Returns
    -------
    DataFrame ordered by the covariate, with a 'covariate' column and one
    column of fitted ``log(count + c)`` values per lane. Features without a
    covariate value are left out.
    """
    counts, index, columns, covariate = _counts_and_labels(x, covariate)
    cov = as_covariate(covariate, counts.shape[0], index)
    defined = np.isfinite(cov)
    if np.sum(defined) < 2:
        raise ValueError("Need at least two features with a covariate value")

    o = np.argsort(cov[defined], kind='mergesort')
    cov_d = cov[defined][o]
    y = log_counts(counts[defined][o], log_constant)
    out = {'covariate': cov_d}
    for j, name in enumerate(_lane_labels(columns, counts.shape[1])):
        out[name] = weighted_lowess(cov_d, y[:, j], span=span, iterations=iterations,
                                    npts=npts)['fitted']
    row_index = np.asarray(index)[defined][o] if index is not None else None
    return pd.DataFrame(out, index=row_index)


def stratum_summary(x, covariate=None, strata=None, num_bins=DEFAULT_NUM_BINS,
                    stat='median', log_constant=LOG_CONSTANT):
    """Per-lane summary of log-counts in each covariate stratum.

    Parameters
    ----------
    x : array-like, DataFrame or SeqExpressionSet
        Count matrix.
    covariate : array-like or str, optional
        Covariate from which strata are computed.
    strata : array-like, optional
        Precomputed stratum labels (0 = unassigned); overrides ``covariate``.
    num_bins : int
        Number of strata when computing them from ``covariate``.
    stat : str
        'median', 'upper' (75th percentile) or 'mean'.

    Returns
    -------
    DataFrame, strata x lanes.
    """
    counts, index, columns, covariate = _counts_and_labels(x, covariate)
    nfeat = counts.shape[0]
    if strata is None:
        if covariate is None:
            raise ValueError("one of 'covariate' or 'strata' must be given")
        strata = _stratify(as_covariate(covariate, nfeat, index), num_bins)[0]
    strata = np.asarray(strata).ravel()
    if len(strata) != nfeat:
        raise ShapeMismatchError(
            f"strata has length {len(strata)} but counts have {nfeat} rows")

    if stat == 'median':
        fn = lambda v: np.quantile(v, 0.5, axis=0)
    elif stat == 'upper':
        fn = lambda v: np.quantile(v, 0.75, axis=0)
    elif stat == 'mean':
        fn = lambda v: np.mean(v, axis=0)
    else:
        raise ValueError("stat must be one of ('median', 'upper', 'mean')")

    y = log_counts(counts, log_constant)
    labels = [k for k in np.unique(strata) if k != 0]
    if not labels:
        raise ValueError("no feature is assigned to a stratum")
    table = np.vstack([fn(y[strata == k]) for k in labels])
    return pd.DataFrame(table, index=pd.Index(labels, name='stratum'),
                        columns=_lane_labels(columns, counts.shape[1]))


def rle(x, log_constant=LOG_CONSTANT):
    """Relative log expression: log-counts minus each feature's median across lanes."""
    counts, index, columns, _ = _counts_and_labels(x)
    y = log_counts(counts, log_constant)
    values = y - np.median(y, axis=1, keepdims=True)
    return pd.DataFrame(values, index=index, columns=_lane_labels(columns, counts.shape[1]))


def count_summary(x, log_constant=LOG_CONSTANT):
    """Per-lane count distribution summary.

    Returns
    -------
    DataFrame indexed by lane with the total count, the proportion of zero
    counts and the quartiles of ``log(count + c)``.
    """
    counts, _, columns, _ = _counts_and_labels(x)
    y = log_counts(counts, log_constant)
    q = np.quantile(y, [0.25, 0.5, 0.75], axis=0)
    return pd.DataFrame({
        'total': counts.sum(axis=0),
        'zeros': np.mean(counts == 0, axis=0),
        'q25': q[0],
        'median': q[1],
        'q75': q[2],
    }, index=_lane_labels(columns, counts.shape[1]))
