"""
Errors and warnings raised by edaPython.

Fatal input problems are raised as exceptions before any normalization is
computed. Recoverable conditions are reported with ``warnings.warn`` and
recorded in the ``diagnostics`` entry of the returned result.
"""


class ShapeMismatchError(ValueError):
    """Covariate, strata or matrix dimensions disagree."""


class NegativeOrNaNInputError(ValueError):
    """Counts contain negative, missing or infinite values."""


class NumericUnderflowError(ArithmeticError):
    """``count + log_constant`` is not positive, so its log is undefined."""

    def __init__(self, log_constant):
        super().__init__(
            f"log_constant={log_constant!r} gives count + log_constant <= 0; "
            "log_constant must be positive"
        )
        self.log_constant = log_constant


class DegenerateStratificationWarning(UserWarning):
    """Fewer strata than requested could be formed from the covariate."""


class MissingCovariateWarning(UserWarning):
    """Some features have no covariate value and were left unnormalized."""
