"""
Stratification of features by a continuous covariate.

Features are grouped into bins of roughly equal size using the empirical
quantiles of the covariate (e.g. GC-content or length). The strata drive the
``median``, ``upper`` and ``full`` within-lane normalization methods.
"""

import warnings

import numpy as np

from .errors import DegenerateStratificationWarning

DEFAULT_NUM_BINS = 10


def compute_strata(x, num_bins=DEFAULT_NUM_BINS):
    """Assign each feature to a quantile bin of its covariate.

    Parameters
    ----------
    x : array-like
        Covariate value for every feature. NaN marks a missing value.
    num_bins : int
        Requested number of bins.

    Returns
    -------
    ndarray of int, stratum 1..K for every feature with a covariate value
    and 0 for features without one. K is ``num_bins`` unless the covariate
    has too few distinct values, in which case bins are merged and a
    :class:`DegenerateStratificationWarning` is issued.
    """
    strata, _, degenerate = _stratify(x, num_bins)
    if degenerate:
        formed = len(np.unique(strata[strata > 0]))
        warnings.warn(
            f"only {formed} strata could be formed from the covariate "
            f"(requested {int(num_bins)})",
            DegenerateStratificationWarning, stacklevel=2)
    return strata


def strata_breaks(x, num_bins=DEFAULT_NUM_BINS):
    """Quantile breakpoints bounding the strata returned by :func:`compute_strata`.

    Bin k covers ``[breaks[k-1], breaks[k])``; the last bin also contains
    ``breaks[-1]``.
    """
    return _stratify(x, num_bins)[1]


def _stratify(x, num_bins):
    """Compute strata without warning. Returns (strata, breaks, degenerate)."""
    x = np.asarray(x, dtype=np.float64).ravel()
    num_bins = int(num_bins)
    if num_bins < 1:
        raise ValueError("num_bins must be at least 1")

    strata = np.zeros(len(x), dtype=int)
    defined = np.isfinite(x)
    if not np.any(defined):
        return strata, np.array([]), num_bins > 1

    xd = x[defined]

    # Too few distinct values: one stratum per value
    distinct = np.unique(xd)
    if len(distinct) <= num_bins:
        strata[defined] = np.searchsorted(distinct, xd) + 1
        return strata, np.r_[distinct, distinct[-1]], len(distinct) < num_bins

    breaks = np.unique(np.quantile(xd, np.linspace(0, 1, num_bins + 1)))

    # Lower-bound inclusive intervals; the maximum falls in the last bin
    raw = np.searchsorted(breaks[1:-1], xd, side='right')

    # Relabel the occupied bins consecutively from 1
    occupied, labels = np.unique(raw, return_inverse=True)
    strata[defined] = labels + 1
    if len(breaks) > 1:
        breaks = np.r_[breaks[:-1][occupied], breaks[-1]]

    degenerate = len(occupied) < num_bins
    return strata, breaks, degenerate
