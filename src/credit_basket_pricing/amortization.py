# Requires Python 3.12+
# Uses native type hints: list[x], tuple[x, y], X | None (PEP 585, PEP 604)
from __future__ import annotations

import warnings
import numpy as np

from .errors import InvalidInputError

__version__ = "0.1.0"


# =============================================================================
# Scheduled Amortization of Level-Payment Loans
# Reference: BMA Uniform Practices/Standard Formulas, Section B.1, SF-4
# =============================================================================

def scheduled_balance_fraction(
        coupon: float,
        original_term: float,
        elapsed: float,
        payments_per_year: int = 12,
        warn: bool = True
) -> float:
    """
    Scheduled balance (BAL) as a fraction of par for a level-payment loan.

    BMA Reference: Section B.1, SF-4

    For a fully amortizing loan with annual coupon C% paid `payments_per_year`
    times a year over an original term of T years, the balance still scheduled
    to be outstanding after `elapsed` years is:

        BAL(t) = [1 - (1 + r)^-(N - n)] / [1 - (1 + r)^-N]

    Where:
        r = C / (100 * payments_per_year)   periodic rate
        N = T * payments_per_year            number of payments
        n = t * payments_per_year            payments elapsed (may be fractional)

    Allowing fractional n gives a balance that is continuous in time, which is
    what the loss/balance trait needs: the integrator evaluates balances at
    default-timing points that fall between payment dates.

    This balance reduction is amortization, not loss. A loan basket's
    surviving balance is survival x BAL, which is why cumulative balance is
    not 1 - cumulative loss.

    Args:
        coupon: Annual coupon rate as percentage (e.g., 8.0 for 8.0%)
        original_term: Original term in years
        elapsed: Years since origination
        payments_per_year: Payment frequency (default 12)
        warn: Warn on the zero-coupon fallback; callers that evaluate the
            same loan repeatedly warn once themselves and pass False

    Returns:
        Scheduled balance factor (fraction of par), 0 at or after maturity

    Raises:
        InvalidInputError: If original_term or payments_per_year is not positive
        InvalidInputError: If coupon is negative
        Warning: If coupon is zero (straight-line amortization) and warn is set
    """
    if original_term <= 0:
        raise InvalidInputError(f"original_term must be positive, got {original_term}")
    if payments_per_year <= 0:
        raise InvalidInputError(f"payments_per_year must be positive, got {payments_per_year}")
    if coupon < 0:
        raise InvalidInputError(f"coupon must be non-negative, got {coupon}")
    if elapsed <= 0:
        return 1.0
    if elapsed >= original_term:
        return 0.0
    n_total = original_term * payments_per_year
    n_remaining = n_total - elapsed * payments_per_year
    if coupon == 0.0:
        if warn:
            warnings.warn("coupon is zero, returning straight-line amortization")
        return n_remaining / n_total
    r = coupon / (100.0 * payments_per_year)
    return (1 - (1 + r) ** (-n_remaining)) / (1 - (1 + r) ** (-n_total))


def scheduled_balance_fractions(
        coupon: float,
        original_term: float,
        times: np.ndarray,
        payments_per_year: int = 12,
        warn: bool = True
) -> np.ndarray:
    """
    Vectorized scheduled_balance_fraction over an array of elapsed times.

    Returns:
        Array of BAL(t), same shape as times
    """
    times = np.asarray(times, dtype=np.float64)
    if original_term <= 0:
        raise InvalidInputError(f"original_term must be positive, got {original_term}")
    if payments_per_year <= 0:
        raise InvalidInputError(f"payments_per_year must be positive, got {payments_per_year}")
    if coupon < 0:
        raise InvalidInputError(f"coupon must be non-negative, got {coupon}")
    n_total = original_term * payments_per_year
    n_remaining = n_total - np.clip(times, 0.0, original_term) * payments_per_year
    if coupon == 0.0:
        if warn:
            warnings.warn("coupon is zero, returning straight-line amortization")
        return n_remaining / n_total
    r = coupon / (100.0 * payments_per_year)
    return (1 - np.power(1 + r, -n_remaining)) / (1 - (1 + r) ** (-n_total))
