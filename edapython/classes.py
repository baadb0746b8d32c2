"""
Core data classes for edaPython.

``SeqExpressionSet`` bundles raw counts with their normalized counts, offset
and feature/sample annotation; ``NormResult`` is what the normalization
functions return for plain matrices. Both are dicts with attribute access.
"""

from copy import deepcopy

import numpy as np
import pandas as pd


class _EDABase(dict):
    """Dict whose keys can also be read and written as attributes."""

    def __getattr__(self, name):
        if name in self:
            return self[name]
        raise AttributeError(f"{type(self).__name__} has no component '{name}'")

    def __setattr__(self, name, value):
        self[name] = value

    def __delattr__(self, name):
        if name not in self:
            raise AttributeError(f"{type(self).__name__} has no component '{name}'")
        del self[name]

    @property
    def shape(self):
        counts = self.get('counts')
        return None if counts is None else np.shape(counts)

    def __repr__(self):
        header = type(self).__name__
        if self.shape is not None:
            header += " of {} features x {} lanes".format(*self.shape)
        return header + "\nComponents: " + ", ".join(self.keys())

    def _copy(self):
        """Deep copy, so arrays of the copy can be modified freely."""
        return deepcopy(self)


class NormResult(_EDABase):
    """Result of a within-lane or between-lane normalization.

    Attributes
    ----------
    counts : ndarray or DataFrame
        Normalized counts, same shape as the input.
    offset : ndarray, DataFrame or None
        ``log(counts + c) - log(raw + c)`` when requested.
    method : str
    diagnostics : dict
        Recoverable conditions met during normalization, e.g.
        ``missing_covariate`` (bool mask over features) and
        ``degenerate_strata``.
    """


def _take(x, rows=None, cols=None):
    """Rows and/or columns of a matrix or DataFrame; rows only for a vector."""
    if x is None:
        return None
    if isinstance(x, pd.DataFrame):
        rows = slice(None) if rows is None else rows
        cols = slice(None) if cols is None else cols
        return x.iloc[rows, cols]
    x = np.asarray(x)
    if rows is not None:
        x = x[rows]
    if cols is not None and x.ndim == 2:
        x = x[:, cols]
    return x


def _positions(key, names):
    """Integer positions (or a slice) selected by ``key`` among ``names``.

    ``key`` may be None (everything), a slice, a boolean mask, integer
    positions or names.
    """
    if key is None or isinstance(key, slice):
        return key
    key = np.atleast_1d(key)
    if key.dtype == bool:
        return np.flatnonzero(key)
    if key.dtype.kind in 'USO':
        found = pd.Index(names).get_indexer(key)
        if np.any(found < 0):
            missing = [str(k) for k, f in zip(key, found) if f < 0]
            raise KeyError(f"Not found: {', '.join(missing)}")
        return found
    return key.astype(int)


class SeqExpressionSet(_EDABase):
    """Counts of an RNA-Seq experiment with normalization bookkeeping.

    Subsetting with ``x[features, lanes]`` (positions, names, boolean masks,
    slices or None for all) returns a new object with every component
    subset consistently.

    Attributes
    ----------
    counts : ndarray
        Raw counts (features x lanes). Never modified by normalization.
    normalized.counts : ndarray or None
        Counts after the normalizations applied so far.
    offset : ndarray or None
        ``log(normalized + c) - log(counts + c)``, cumulative over all
        normalizations applied so far.
    features : DataFrame
        Feature annotation, e.g. ``gc`` and ``length`` columns.
    samples : DataFrame
        Sample (lane) annotation.
    diagnostics : dict, optional
        Diagnostics of the last normalization applied.
    normalization : list, optional
        (method, diagnostics) for every normalization applied so far.
    """

    # Which subscripts apply to each component: (by feature, by lane)
    _AXES = {
        'counts': (True, True),
        'normalized.counts': (True, True),
        'offset': (True, True),
        'features': (True, False),
        'samples': (False, True),
    }

    def __getitem__(self, key):
        if isinstance(key, str):
            return super().__getitem__(key)
        if not isinstance(key, tuple) or len(key) != 2:
            raise IndexError("SeqExpressionSet needs two subscripts: x[features, lanes]")
        rows = _positions(key[0], self.feature_names())
        cols = _positions(key[1], self.sample_names())

        out = self._copy()
        for name, (by_feature, by_lane) in self._AXES.items():
            if out.get(name) is None:
                continue
            if by_feature and by_lane:
                out[name] = _take(out[name], rows, cols)
            elif by_feature:
                out[name] = _take(out[name], rows)
            else:
                out[name] = _take(out[name], cols)
        return out

    @property
    def nrow(self):
        return self.shape[0] if self.shape is not None else 0

    @property
    def ncol(self):
        return self.shape[1] if self.shape is not None else 0

    def __len__(self):
        return self.nrow

    def feature_names(self):
        features = self.get('features')
        return None if features is None else list(features.index)

    def sample_names(self):
        samples = self.get('samples')
        return None if samples is None else list(samples.index)

    def to_dataframe(self, normalized=False):
        """Counts (or normalized counts) as a labelled DataFrame."""
        values = self['counts']
        if normalized and self.get('normalized.counts') is not None:
            values = self['normalized.counts']
        return pd.DataFrame(values, index=self.feature_names(),
                            columns=self.sample_names())
