"""
edaPython: exploratory data analysis and normalization of RNA-Seq counts.

Within-lane normalization for feature covariates such as GC-content or
length, between-lane normalization for depth and distribution, and the
offset bookkeeping that links raw and normalized counts.
"""

__version__ = "0.1.0"

# --- Classes ---
from .classes import SeqExpressionSet, NormResult

# --- SeqExpressionSet construction & accessors ---
from .seqset import (
    make_seq_expression_set,
    valid_seq_expression_set,
    get_counts,
    get_normalized_counts,
    get_offset,
    get_features,
    get_samples,
    set_normalization,
)

# --- Stratification ---
from .binning import compute_strata, strata_breaks, DEFAULT_NUM_BINS

# --- Normalization ---
from .within_lane import within_lane_normalization, WITHIN_LANE_METHODS
from .between_lane import between_lane_normalization, BETWEEN_LANE_METHODS

# --- Offsets ---
from .offsets import reconcile_offset, reconcile_normalized
from .utils import LOG_CONSTANT

# --- Smoothing ---
from .weighted_lowess import weighted_lowess

# --- Diagnostics ---
from .diagnostics import mean_var, bias_curve, stratum_summary, rle, count_summary

# --- Errors ---
from .errors import (
    ShapeMismatchError,
    NegativeOrNaNInputError,
    NumericUnderflowError,
    DegenerateStratificationWarning,
    MissingCovariateWarning,
)
