"""
Within-lane normalization.

Removes the dependence of log-counts on a feature covariate such as
GC-content or length, separately in every lane (Risso et al., 2011,
BMC Bioinformatics 12:480). Four methods are available:

- ``loess``: subtract a robust lowess fit of log-count on the covariate and
  add back the mean fitted value.
- ``median`` / ``upper``: shift every covariate stratum so that its median
  (upper quartile) matches the lane-wide one.
- ``full``: force every stratum to the same distribution by full-quantile
  normalization across the strata of the lane.
"""

import warnings
from concurrent.futures import ThreadPoolExecutor

import numpy as np
from scipy.stats import rankdata

from .binning import DEFAULT_NUM_BINS, _stratify
from .classes import NormResult, SeqExpressionSet
from .errors import DegenerateStratificationWarning, MissingCovariateWarning
from .offsets import finalize
from .seqset import get_normalized_counts, set_normalization
from .utils import (LOG_CONSTANT, as_count_matrix, as_covariate, check_log_constant,
                    log_counts, resolve_lanes, wrap_like)
from .weighted_lowess import weighted_lowess

WITHIN_LANE_METHODS = ('loess', 'median', 'upper', 'full')


def within_lane_normalization(x, covariate, method='loess', lane=None,
                              num_bins=DEFAULT_NUM_BINS, round=True, offset=False,
                              span=0.3, iterations=4, npts=200,
                              log_constant=LOG_CONSTANT, ncore=1, verbose=False):
    """Normalize each lane for a feature-level covariate.

    Parameters
    ----------
    x : array-like, DataFrame or SeqExpressionSet
        Count matrix (features x lanes).
    covariate : array-like or str
        Covariate value for every feature; NaN marks a missing value. For a
        SeqExpressionSet, the name of a column of its feature data.
    method : str
        One of 'loess', 'median', 'upper', 'full'.
    lane : int, str or list, optional
        Lanes to normalize; the others are returned unchanged.
    num_bins : int
        Number of covariate strata for 'median', 'upper' and 'full'.
    round : bool
        Round normalized counts to integers.
    offset : bool
        Also return the offset matrix ``log(normalized + c) - log(raw + c)``.
    span, iterations, npts : lowess settings for method 'loess'.
    log_constant : float
        Constant added to counts before taking logs.
    ncore : int
        Number of lanes normalized concurrently.
    verbose : bool
        Print progress for each lane.

    Returns
    -------
    SeqExpressionSet (if input is one) with updated normalized counts,
    offset and 'diagnostics', otherwise a NormResult with 'counts',
    'offset', 'method' and 'diagnostics'.
    """
    if isinstance(x, SeqExpressionSet):
        if isinstance(covariate, str):
            features = x.get('features')
            if features is None or covariate not in features.columns:
                raise KeyError(f"covariate '{covariate}' not found in feature data")
            covariate = features[covariate].values
        res = _within_lane_default(
            get_normalized_counts(x, log_constant=log_constant), covariate,
            method=method, lane=lane, num_bins=num_bins, round=round, offset=False,
            span=span, iterations=iterations, npts=npts,
            log_constant=log_constant, ncore=ncore, verbose=verbose)
        return set_normalization(x, res['counts'], offset=offset, log_constant=log_constant,
                                 method=f"within_lane.{method}", diagnostics=res['diagnostics'])

    if isinstance(covariate, str):
        raise TypeError("covariate names can only be used with a SeqExpressionSet")

    return _within_lane_default(
        x, covariate, method=method, lane=lane, num_bins=num_bins, round=round,
        offset=offset, span=span, iterations=iterations, npts=npts,
        log_constant=log_constant, ncore=ncore, verbose=verbose)


def _within_lane_default(x, covariate, method='loess', lane=None,
                         num_bins=DEFAULT_NUM_BINS, round=True, offset=False,
                         span=0.3, iterations=4, npts=200,
                         log_constant=LOG_CONSTANT, ncore=1, verbose=False):
    """Within-lane normalization of a count matrix."""
    if method not in WITHIN_LANE_METHODS:
        raise ValueError(f"method must be one of {WITHIN_LANE_METHODS}")

    counts, index, columns = as_count_matrix(x)
    nfeat, nlane = counts.shape
    cov = as_covariate(covariate, nfeat, index)
    check_log_constant(counts, log_constant)
    lanes = resolve_lanes(lane, nlane, columns)

    defined = np.isfinite(cov)
    diagnostics = {
        'missing_covariate': ~defined,
        'lanes': lanes,
        'num_bins': None,
        'degenerate_strata': False,
        'passthrough': False,
    }
    if not np.all(defined):
        warnings.warn(
            f"{int(np.sum(~defined))} features have no covariate value and were not normalized",
            MissingCovariateWarning, stacklevel=3)

    y = log_counts(counts, log_constant)
    y_norm = y.copy()
    changed = np.zeros(counts.shape, dtype=bool)

    if np.sum(defined) < 2:
        diagnostics['passthrough'] = True
    else:
        cov_d = cov[defined]
        strata = None
        if method != 'loess':
            strata, _, degenerate = _stratify(cov_d, num_bins)
            diagnostics['num_bins'] = int(strata.max())
            diagnostics['degenerate_strata'] = degenerate
            if degenerate:
                warnings.warn(
                    f"only {int(strata.max())} strata could be formed from the covariate "
                    f"(requested {int(num_bins)})",
                    DegenerateStratificationWarning, stacklevel=3)

        def _one(j):
            if verbose:
                print(f"Lane {j + 1}/{nlane}: {method}")
            return _normalize_lane(y[defined, j], cov_d, strata, method,
                                   span=span, iterations=iterations, npts=npts)

        if ncore > 1 and len(lanes) > 1:
            with ThreadPoolExecutor(max_workers=ncore) as executor:
                results = list(executor.map(_one, lanes))
        else:
            results = [_one(j) for j in lanes]

        rows = np.flatnonzero(defined)
        for j, values in zip(lanes, results):
            y_norm[rows, j] = values
            changed[rows, j] = True

    normalized, off = finalize(counts, y_norm, changed, round=round, offset=offset,
                               log_constant=log_constant)
    return NormResult(
        counts=wrap_like(normalized, index, columns),
        offset=wrap_like(off, index, columns),
        method=method,
        diagnostics=diagnostics,
    )


def _normalize_lane(y, cov, strata, method, span=0.3, iterations=4, npts=200):
    """Normalized log-counts of one lane (features with a covariate only)."""
    if method == 'loess':
        fit = weighted_lowess(cov, y, span=span, iterations=iterations, npts=npts)['fitted']
        return y - fit + np.mean(fit)
    if method == 'median':
        return _stratum_shift(y, strata, 0.5)
    if method == 'upper':
        return _stratum_shift(y, strata, 0.75)
    return _stratum_quantile(y, strata)


def _stratum_shift(y, strata, prob):
    """Shift each stratum so its quantile ``prob`` equals the lane-wide one."""
    target = np.quantile(y, prob)
    out = y.copy()
    for k in np.unique(strata):
        in_k = strata == k
        out[in_k] += target - np.quantile(y[in_k], prob)
    return out


def _stratum_quantile(y, strata):
    """Full-quantile normalization across the strata of one lane.

    A value at within-stratum rank r of n is mapped to probability
    (r - 1) / (n - 1) and replaced by the mean over all strata of their
    quantile at that probability. With strata of equal size this is the
    classic rank-mean quantile normalization.
    """
    labels = np.unique(strata)
    sorted_strata = [np.sort(y[strata == k]) for k in labels]
    out = np.empty_like(y)
    for k in labels:
        in_k = strata == k
        n_k = int(np.sum(in_k))
        if n_k > 1:
            p = (rankdata(y[in_k], method='average') - 1) / (n_k - 1)
        else:
            p = np.array([0.5])
        out[in_k] = np.mean([np.quantile(s, p) for s in sorted_strata], axis=0)
    return out
