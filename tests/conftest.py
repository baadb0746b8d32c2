"""Shared fixtures for edaPython tests."""

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def rng():
    """Seeded random number generator for reproducibility."""
    return np.random.RandomState(42)


@pytest.fixture
def small_counts(rng):
    """Small count matrix: 100 genes x 6 samples, Poisson(10)."""
    counts = rng.poisson(10, (100, 6)).astype(np.float64)
    # Deeper sequencing in the last three lanes
    counts[:, 3:6] *= 2
    return counts


@pytest.fixture
def gc(rng):
    """GC-content for 500 genes."""
    return rng.uniform(0.3, 0.7, 500)


@pytest.fixture
def gc_counts(rng, gc):
    """500 genes x 4 lanes whose log-mean rises linearly with GC-content."""
    base = rng.gamma(2.0, 50.0, 500)
    trend = np.exp(4.0 * (gc - 0.5))
    depth = np.array([1.0, 1.5, 0.8, 2.0])
    mu = base[:, np.newaxis] * trend[:, np.newaxis] * depth[np.newaxis, :]
    return rng.poisson(mu).astype(np.float64)


@pytest.fixture
def two_strata(rng):
    """40 genes x 2 lanes; the 20 low-covariate genes have ~10x higher counts."""
    cov = np.r_[rng.uniform(0.0, 1.0, 20), rng.uniform(2.0, 3.0, 20)]
    high = np.column_stack([rng.choice(np.arange(500, 1500), 20, replace=False)
                            for _ in range(2)])
    low = np.column_stack([rng.choice(np.arange(50, 150), 20, replace=False)
                           for _ in range(2)])
    return np.vstack([high, low]).astype(np.float64), cov


@pytest.fixture
def seqset(gc_counts, gc):
    """SeqExpressionSet with a 'gc' feature column."""
    import edapython as ea
    counts = pd.DataFrame(gc_counts,
                          index=[f"gene{i}" for i in range(gc_counts.shape[0])],
                          columns=['A', 'B', 'C', 'D'])
    return ea.make_seq_expression_set(
        counts, features={'gc': gc},
        samples={'condition': ['ctl', 'ctl', 'trt', 'trt']})
