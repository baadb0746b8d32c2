"""Tests for within-lane normalization: loess, median, upper, full."""

import numpy as np
import pandas as pd
import pytest
from scipy.stats import spearmanr

import edapython as ea


def _log(x):
    return np.log(np.asarray(x, dtype=float) + 0.1)


class TestLoess:
    """Lowess-based removal of the covariate trend."""

    def test_removes_gc_trend(self, gc_counts, gc):
        res = ea.within_lane_normalization(gc_counts, gc, method='loess')
        for j in range(gc_counts.shape[1]):
            before = spearmanr(gc, gc_counts[:, j]).correlation
            after = spearmanr(gc, res['counts'][:, j]).correlation
            assert before > 0.3
            assert abs(after) < 0.15

    def test_preserves_lane_scale(self, gc_counts, gc):
        res = ea.within_lane_normalization(gc_counts, gc, method='loess', round=False)
        # Mean fitted value is added back, so the mean log-count barely moves
        shift = _log(res['counts']).mean(axis=0) - _log(gc_counts).mean(axis=0)
        assert np.all(np.abs(shift) < 0.05)

    def test_parallel_lanes_match_serial(self, gc_counts, gc):
        serial = ea.within_lane_normalization(gc_counts, gc, method='loess')
        threaded = ea.within_lane_normalization(gc_counts, gc, method='loess', ncore=2)
        assert np.array_equal(serial['counts'], threaded['counts'])

    def test_deterministic(self, gc_counts, gc):
        a = ea.within_lane_normalization(gc_counts, gc, method='loess', offset=True)
        b = ea.within_lane_normalization(gc_counts, gc, method='loess', offset=True)
        assert np.array_equal(a['counts'], b['counts'])
        assert np.array_equal(a['offset'], b['offset'])


class TestStratumScaling:
    """median and upper methods."""

    def test_median_equalizes_strata(self, two_strata):
        counts, cov = two_strata
        res = ea.within_lane_normalization(counts, cov, method='median',
                                           num_bins=2, round=False)
        strata = ea.compute_strata(cov, num_bins=2)
        before = ea.stratum_summary(counts, strata=strata, stat='median')
        after = ea.stratum_summary(res['counts'], strata=strata, stat='median')
        # Stratum 1 starts systematically higher
        assert np.all(before.loc[1] > before.loc[2] + 1.0)
        assert np.allclose(after.loc[1], after.loc[2], atol=1e-8)

    def test_median_matches_lane_median(self, two_strata):
        counts, cov = two_strata
        res = ea.within_lane_normalization(counts, cov, method='median',
                                           num_bins=2, round=False)
        strata = ea.compute_strata(cov, num_bins=2)
        after = ea.stratum_summary(res['counts'], strata=strata, stat='median')
        lane_median = np.median(_log(counts), axis=0)
        assert np.allclose(after.loc[1], lane_median, atol=1e-8)

    def test_upper_equalizes_upper_quartiles(self, two_strata):
        counts, cov = two_strata
        res = ea.within_lane_normalization(counts, cov, method='upper',
                                           num_bins=2, round=False)
        strata = ea.compute_strata(cov, num_bins=2)
        after = ea.stratum_summary(res['counts'], strata=strata, stat='upper')
        assert np.allclose(after.loc[1], after.loc[2], atol=1e-8)

    def test_reduces_gc_bias(self, gc_counts, gc):
        res = ea.within_lane_normalization(gc_counts, gc, method='median', num_bins=10)
        before = ea.stratum_summary(gc_counts, covariate=gc, num_bins=10)
        after = ea.stratum_summary(res['counts'], covariate=gc, num_bins=10)
        spread_before = (before.max() - before.min()).values
        spread_after = (after.max() - after.min()).values
        assert np.all(spread_after < 0.1 * spread_before)


class TestFullQuantile:
    """full method: strata forced to one distribution per lane."""

    def test_equal_sized_strata_share_distribution(self, two_strata):
        counts, cov = two_strata
        res = ea.within_lane_normalization(counts, cov, method='full',
                                           num_bins=2, round=False)
        strata = ea.compute_strata(cov, num_bins=2)
        y = _log(res['counts'])
        for j in range(counts.shape[1]):
            s1 = np.sort(y[strata == 1, j])
            s2 = np.sort(y[strata == 2, j])
            assert np.allclose(s1, s2, atol=1e-10)

    def test_rank_mean_values(self):
        counts = np.array([[10.0], [30.0], [20.0], [100.0], [300.0], [200.0]])
        cov = np.array([0.1, 0.2, 0.3, 0.7, 0.8, 0.9])
        res = ea.within_lane_normalization(counts, cov, method='full',
                                           num_bins=2, round=False)
        y = _log(counts[:, 0])
        expected_sorted = (np.sort(y[:3]) + np.sort(y[3:])) / 2
        out = _log(res['counts'][:, 0])
        assert np.allclose(out[[0, 2, 1]], expected_sorted)
        assert np.allclose(out[[3, 5, 4]], expected_sorted)

    def test_unequal_strata_keep_order(self, gc_counts, gc):
        res = ea.within_lane_normalization(gc_counts, gc, method='full', num_bins=7)
        strata = ea.compute_strata(gc, num_bins=7)
        for k in range(1, 8):
            in_k = strata == k
            rho = spearmanr(gc_counts[in_k, 0], res['counts'][in_k, 0]).correlation
            assert rho > 0.95

    def test_single_stratum_is_identity(self, gc_counts, gc):
        res = ea.within_lane_normalization(gc_counts, gc, method='full', num_bins=1)
        assert np.array_equal(res['counts'], gc_counts)


class TestPassThrough:
    """Features, lanes and inputs that are left unchanged."""

    def test_missing_covariate_passthrough(self, gc_counts, gc):
        cov = gc.copy()
        cov[[3, 17, 200]] = np.nan
        with pytest.warns(ea.MissingCovariateWarning):
            res = ea.within_lane_normalization(gc_counts, cov, method='upper', round=False)
        mask = res['diagnostics']['missing_covariate']
        assert np.flatnonzero(mask).tolist() == [3, 17, 200]
        assert np.array_equal(res['counts'][mask], gc_counts[mask])

    def test_lane_selector(self, gc_counts, gc):
        res = ea.within_lane_normalization(gc_counts, gc, method='loess', lane=1)
        assert np.array_equal(res['counts'][:, [0, 2, 3]], gc_counts[:, [0, 2, 3]])
        assert not np.array_equal(res['counts'][:, 1], gc_counts[:, 1])
        assert res['diagnostics']['lanes'].tolist() == [1]

    def test_lane_selector_by_name(self, gc_counts, gc):
        df = pd.DataFrame(gc_counts, columns=['A', 'B', 'C', 'D'])
        res = ea.within_lane_normalization(df, gc, method='median', lane=['B', 'D'])
        assert isinstance(res['counts'], pd.DataFrame)
        assert list(res['counts'].columns) == ['A', 'B', 'C', 'D']
        assert np.array_equal(res['counts']['A'].values, gc_counts[:, 0])
        assert np.array_equal(res['counts']['C'].values, gc_counts[:, 2])

    @pytest.mark.parametrize("method", ea.WITHIN_LANE_METHODS)
    def test_single_feature_is_noop(self, method):
        counts = np.array([[5.0, 7.0, 0.0]])
        res = ea.within_lane_normalization(counts, [0.4], method=method, offset=True)
        assert np.array_equal(res['counts'], counts)
        assert np.allclose(res['offset'], 0.0)
        assert res['diagnostics']['passthrough']

    def test_degenerate_strata_warning(self, gc_counts):
        cov = np.repeat([0.4, 0.5, 0.6], [200, 200, 100])
        with pytest.warns(ea.DegenerateStratificationWarning):
            res = ea.within_lane_normalization(gc_counts, cov, method='median', num_bins=10)
        assert res['diagnostics']['num_bins'] == 3
        assert res['diagnostics']['degenerate_strata']

    def test_series_covariate_aligned_by_label(self, gc_counts, gc):
        genes = [f"g{i}" for i in range(len(gc))]
        df = pd.DataFrame(gc_counts, index=genes)
        cov = pd.Series(gc, index=genes)
        shuffled = cov.sample(frac=1.0, random_state=1)
        a = ea.within_lane_normalization(df, cov, method='upper')
        b = ea.within_lane_normalization(df, shuffled, method='upper')
        assert a['counts'].equals(b['counts'])


class TestWithinLaneErrors:
    """Fatal input errors."""

    def test_covariate_length(self, gc_counts, gc):
        with pytest.raises(ea.ShapeMismatchError):
            ea.within_lane_normalization(gc_counts, gc[:-1])

    def test_negative_counts(self, gc_counts, gc):
        bad = gc_counts.copy()
        bad[0, 0] = -1
        with pytest.raises(ea.NegativeOrNaNInputError):
            ea.within_lane_normalization(bad, gc)

    def test_nan_counts(self, gc_counts, gc):
        bad = gc_counts.copy()
        bad[5, 2] = np.nan
        with pytest.raises(ea.NegativeOrNaNInputError):
            ea.within_lane_normalization(bad, gc)

    def test_unknown_method(self, gc_counts, gc):
        with pytest.raises(ValueError):
            ea.within_lane_normalization(gc_counts, gc, method='tmm')

    def test_log_constant_underflow(self, gc_counts, gc):
        counts = gc_counts.copy()
        counts[0, 0] = 0
        with pytest.raises(ea.NumericUnderflowError):
            ea.within_lane_normalization(counts, gc, log_constant=0.0)

    def test_covariate_name_needs_container(self, gc_counts):
        with pytest.raises(TypeError):
            ea.within_lane_normalization(gc_counts, 'gc')

    def test_inputs_not_mutated(self, gc_counts, gc):
        counts = gc_counts.copy()
        cov = gc.copy()
        ea.within_lane_normalization(counts, cov, method='full', offset=True)
        assert np.array_equal(counts, gc_counts)
        assert np.array_equal(cov, gc)
