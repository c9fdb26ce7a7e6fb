# Requires Python 3.12+
# Uses native type hints: list[x], tuple[x, y], X | None (PEP 585, PEP 604)
"""
Exception types raised by the valuation engine.

Invalid input and solver failures derive from ValueError so callers that
already catch ValueError (the convention for bad arguments throughout the
package) keep working. A gradient shape mismatch is a RuntimeError: it means
the sensitivity model broke its contract and is not something to retry.
"""

from __future__ import annotations

__version__ = "0.1.0"


class CreditPricingError(Exception):
    """Base class for all errors raised by credit_basket_pricing."""


class InvalidInputError(CreditPricingError, ValueError):
    """Missing curve, malformed schedule, non-monotone curve or out-of-range parameter."""


class SolverError(CreditPricingError, ValueError):
    """A root-finding wrapper failed to produce a converged parameter."""


class BracketError(SolverError):
    """The objective does not change sign across the search interval."""


class ConvergenceError(SolverError):
    """The solver exhausted its iteration budget."""


class GradientShapeError(CreditPricingError, RuntimeError):
    """A sensitivity model returned vectors of inconsistent length within one call."""
