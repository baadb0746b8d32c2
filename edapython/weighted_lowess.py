"""Robust weighted local regression (lowess).

Used by the ``loess`` within-lane method and by :func:`bias_curve` to model
the dependence of log-counts on a feature covariate.

Outline:
1. Sort the points by x.
2. Choose seed points at least ``delta`` apart (about ``npts`` of them).
3. Around each seed grow a window until it holds ``span`` of the total
   prior weight, then widen it to cover ties.
4. Fit a tricube-weighted straight line in each window and evaluate it at
   the seed; points between seeds are linearly interpolated.
5. Repeat with bisquare robustness weights computed from the residuals.
"""

import numpy as np
from numba import njit

_THRESHOLD = 1e-7


def weighted_lowess(x, y, weights=None, span=0.3, iterations=4, npts=200, delta=None):
    """Fit a robust lowess curve of y on x.

    Parameters
    ----------
    x : array-like
        Covariate values.
    y : array-like
        Response values.
    weights : array-like, optional
        Non-negative prior weights (default: all ones).
    span : float
        Fraction of the total weight used in each local regression.
    iterations : int
        Number of fitting passes; passes after the first use robustness
        weights.
    npts : int
        Approximate number of seed points at which the local regression is
        evaluated exactly.
    delta : float, optional
        Minimum x-distance between seed points. Derived from ``npts`` if None.

    Returns
    -------
    dict with keys 'fitted', 'residuals', 'weights' (robustness weights)
    and 'delta', all in the original order of x.
    """
    x = np.asarray(x, dtype=np.float64).ravel()
    y = np.asarray(y, dtype=np.float64).ravel()
    n = len(x)

    if len(y) != n:
        raise ValueError("x and y must have the same length")
    if n < 2:
        raise ValueError("Need at least two points")
    if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y))):
        raise ValueError("x and y must be finite")
    if not 0 < span <= 1:
        raise ValueError("span must be in (0, 1]")
    iterations = int(iterations)
    if iterations < 1:
        raise ValueError("iterations must be at least 1")

    if weights is None:
        weights = np.ones(n, dtype=np.float64)
    else:
        weights = np.asarray(weights, dtype=np.float64).ravel()
        if len(weights) != n:
            raise ValueError("weights must have the same length as x")
        if np.any(weights < 0) or not np.all(np.isfinite(weights)):
            raise ValueError("weights must be non-negative and finite")

    # Stable sort so ties keep their input order
    o = np.argsort(x, kind='mergesort')
    xs = np.ascontiguousarray(x[o])
    ys = np.ascontiguousarray(y[o])
    ws = np.ascontiguousarray(weights[o])

    if delta is None:
        delta = _default_delta(xs, int(npts + 0.5))
    delta = float(delta)

    seeds = _select_seeds(xs, delta)
    lo, hi, radius = _seed_windows(seeds, xs, ws, np.sum(ws) * span)

    fitted = np.zeros(n, dtype=np.float64)
    robust = np.ones(n, dtype=np.float64)
    _robust_passes(xs, ys, ws, fitted, robust, seeds, lo, hi, radius, iterations)

    fitted_out = np.empty(n, dtype=np.float64)
    fitted_out[o] = fitted
    robust_out = np.empty(n, dtype=np.float64)
    robust_out[o] = robust

    return {
        'fitted': fitted_out,
        'residuals': y - fitted_out,
        'weights': robust_out,
        'delta': delta,
    }


def _default_delta(xs, npts):
    """Smallest spacing that leaves about ``npts`` seed points."""
    n = len(xs)
    if npts >= n:
        return 0.0
    gaps = np.sort(np.diff(xs))
    cumgaps = np.cumsum(gaps)
    k = np.arange(npts)
    return float(np.min(cumgaps[len(gaps) - 1 - k] / (npts - k)))


@njit(cache=True, nogil=True)
def _select_seeds(xs, delta):
    """Indices of seed points; the first and last points are always seeds."""
    n = len(xs)
    if delta <= 0.0 or n <= 2:
        return np.arange(n)
    keep = np.zeros(n, dtype=np.bool_)
    keep[0] = True
    last = 0
    for pt in range(1, n - 1):
        if xs[pt] - xs[last] > delta:
            keep[pt] = True
            last = pt
    keep[n - 1] = True
    return np.flatnonzero(keep)


@njit(cache=True, nogil=True)
def _seed_windows(seeds, xs, ws, span_weight):
    """Window bounds and radius around each seed.

    The window grows one point at a time towards the nearer neighbour until
    its weight reaches ``span_weight``, then widens to include ties.
    """
    n = len(xs)
    nseeds = len(seeds)
    lo = np.empty(nseeds, dtype=np.int64)
    hi = np.empty(nseeds, dtype=np.int64)
    radius = np.empty(nseeds, dtype=np.float64)

    for s in range(nseeds):
        centre = seeds[s]
        left = centre
        right = centre
        total = ws[centre]
        reach = 0.0

        while total < span_weight and (left > 0 or right < n - 1):
            if left == 0:
                step_right = True
            elif right == n - 1:
                step_right = False
            else:
                step_right = xs[right + 1] - xs[centre] <= xs[centre] - xs[left - 1]

            if step_right:
                right += 1
                total += ws[right]
                dist = xs[right] - xs[centre]
            else:
                left -= 1
                total += ws[left]
                dist = xs[centre] - xs[left]
            if dist > reach:
                reach = dist

        while left > 0 and xs[left] == xs[left - 1]:
            left -= 1
        while right < n - 1 and xs[right] == xs[right + 1]:
            right += 1

        lo[s] = left
        hi[s] = right
        radius[s] = reach

    return lo, hi, radius


@njit(cache=True, nogil=True)
def _local_fit(xs, ys, ws, robust, centre, left, right, reach):
    """Tricube-weighted linear fit in [left, right], evaluated at xs[centre]."""
    if reach < _THRESHOLD:
        total = 0.0
        acc = 0.0
        for i in range(left, right + 1):
            w = ws[i] * robust[i]
            total += w
            acc += w * ys[i]
        if total == 0.0:
            return 0.0
        return acc / total

    total = 0.0
    xbar = 0.0
    ybar = 0.0
    kernel = np.empty(right - left + 1)
    for i in range(left, right + 1):
        u = abs(xs[centre] - xs[i]) / reach
        t = 1.0 - u * u * u
        w = t * t * t * ws[i] * robust[i]
        kernel[i - left] = w
        total += w
        xbar += w * xs[i]
        ybar += w * ys[i]
    if total == 0.0:
        return 0.0
    xbar /= total
    ybar /= total

    sxx = 0.0
    sxy = 0.0
    for i in range(left, right + 1):
        dx = xs[i] - xbar
        sxx += kernel[i - left] * dx * dx
        sxy += kernel[i - left] * dx * (ys[i] - ybar)
    if sxx < _THRESHOLD:
        return ybar
    return ybar + sxy / sxx * (xs[centre] - xbar)


@njit(cache=True, nogil=True)
def _robust_passes(xs, ys, ws, fitted, robust, seeds, lo, hi, radius, iterations):
    """Fit at the seeds, interpolate between them, and update robustness weights."""
    n = len(xs)
    nseeds = len(seeds)
    tiny_gap = _THRESHOLD * (xs[n - 1] - xs[0]) / n
    half_weight = np.sum(ws) / 2.0

    for _ in range(iterations):
        prev = seeds[0]
        fitted[prev] = _local_fit(xs, ys, ws, robust, prev, lo[0], hi[0], radius[0])
        for s in range(1, nseeds):
            pt = seeds[s]
            fitted[pt] = _local_fit(xs, ys, ws, robust, pt, lo[s], hi[s], radius[s])
            if pt - prev > 1:
                gap = xs[pt] - xs[prev]
                if gap > tiny_gap:
                    slope = (fitted[pt] - fitted[prev]) / gap
                    for j in range(prev + 1, pt):
                        fitted[j] = fitted[prev] + slope * (xs[j] - xs[prev])
                else:
                    mid = 0.5 * (fitted[pt] + fitted[prev])
                    for j in range(prev + 1, pt):
                        fitted[j] = mid
            prev = pt

        abs_resid = np.abs(ys - fitted)
        mean_resid = np.sum(abs_resid) / n
        order = np.argsort(abs_resid)

        # Six times the weighted median absolute residual
        cutoff = 0.0
        cum = 0.0
        for k in range(n):
            cum += ws[order[k]]
            if cum == half_weight and k < n - 1:
                cutoff = 3.0 * (abs_resid[order[k]] + abs_resid[order[k + 1]])
                break
            elif cum > half_weight:
                cutoff = 6.0 * abs_resid[order[k]]
                break

        if cutoff <= _THRESHOLD * mean_resid:
            break

        for i in range(n):
            if abs_resid[i] < cutoff:
                u = abs_resid[i] / cutoff
                robust[i] = (1.0 - u * u) * (1.0 - u * u)
            else:
                robust[i] = 0.0
