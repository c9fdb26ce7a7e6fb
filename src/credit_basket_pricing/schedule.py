# Requires Python 3.12+
# Uses native type hints: list[x], tuple[x, y], X | None (PEP 585, PEP 604)
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Iterator

import numpy as np

from .errors import InvalidInputError

__version__ = "0.1.0"

# Day-count basis used to turn calendar dates into times (Actual/365 Fixed).
DAYS_PER_YEAR = 365.0

# Tolerance for comparing period boundaries expressed as times.
TIME_EPSILON = 1e-12


# =============================================================================
# Time Axis
# =============================================================================
#
# The valuation core never sees calendar dates. Every date is a time: a float
# in years measured from a common valuation anchor. Callers holding calendar
# dates convert them once, here, and hand times to the integrator.
# =============================================================================

def year_fraction(anchor: np.datetime64 | object, date: np.datetime64 | object) -> float:
    """
    Actual/365 Fixed year fraction from anchor to date.

    Accepts anything numpy.datetime64 understands (datetime.date, ISO strings,
    numpy.datetime64). Negative when date precedes the anchor.

    Args:
        anchor: Valuation anchor date
        date: Target date

    Returns:
        (date - anchor) in years
    """
    try:
        days = (np.datetime64(date, "D") - np.datetime64(anchor, "D")).astype(int)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"dates must be date-like, got {anchor!r} and {date!r}: {e}") from e
    return float(days) / DAYS_PER_YEAR


# =============================================================================
# Cashflow Period Model
# =============================================================================

@dataclass(frozen=True)
class CashflowPeriod:
    """
    One accrual period of a credit-contingent leg.

    Times (start, end, pay) are year fractions from the valuation anchor.

    Amount fields:
    - riskfree_amount: paid at `pay` if no default occurs (coupon and/or principal)
    - accrued_at_pay_date: full-period accrual, used for accrued-on-default
    - default_contingent_amount: paid instead of riskfree_amount on the defaulted
      fraction; LGD-per-unit-loss for protection legs, usually 0 for fee legs
    """
    start: float
    end: float
    pay: float
    period_fraction: float
    riskfree_amount: float = 0.0
    accrued_at_pay_date: float = 0.0
    default_contingent_amount: float = 0.0

    def default_time(self, default_timing: float) -> float:
        """Time within [start, end] at which a default in this period is assumed to occur."""
        return self.start + default_timing * (self.end - self.start)


@dataclass(frozen=True)
class DefaultSettlementRecord:
    """
    Realized default whose settlement is still pending.

    All values are fractions of the original basket notional.

    Fields:
    - settlement_date: time at which the recovery/loss is exchanged
    - default_date: time at which the name defaulted
    - accrual: fee accrual owed on the defaulted notional up to settlement
    - amount: funded recovery (principal returned to the note holder)
    - loss: unfunded loss (paid by the protection seller)
    - prior_loss / prior_recovery: cumulative basket loss and recovery realized
      before this default, used to slice the record into a tranche
    """
    settlement_date: float
    default_date: float
    accrual: float = 0.0
    amount: float = 0.0
    loss: float = 0.0
    prior_loss: float = 0.0
    prior_recovery: float = 0.0

    def __post_init__(self) -> None:
        """Validate the record's dates and amounts."""
        for name in ("settlement_date", "default_date", "accrual", "amount", "loss",
                     "prior_loss", "prior_recovery"):
            if not math.isfinite(getattr(self, name)):
                raise InvalidInputError(f"{name} must be finite, got {getattr(self, name)}")
        if self.settlement_date < self.default_date:
            raise InvalidInputError(
                f"settlement_date ({self.settlement_date}) cannot precede "
                f"default_date ({self.default_date})"
            )
        if self.amount < 0 or self.loss < 0:
            raise InvalidInputError(
                f"amount and loss must be non-negative, got {self.amount} and {self.loss}"
            )


def validate_schedule(periods: tuple[CashflowPeriod, ...]) -> None:
    """
    Check the ordering invariants of a period sequence.

    Periods must be ordered by pay time, must not overlap in [start, end), and
    each must satisfy start <= end <= pay. Zero-length stubs are allowed (the
    integrator skips them).

    Raises:
        InvalidInputError: On the first violated invariant
    """
    prev: CashflowPeriod | None = None
    for i, p in enumerate(periods):
        if not isinstance(p, CashflowPeriod):
            raise InvalidInputError(f"period {i} must be a CashflowPeriod, got {type(p).__name__}")
        values = (p.start, p.end, p.pay, p.period_fraction, p.riskfree_amount,
                  p.accrued_at_pay_date, p.default_contingent_amount)
        if not all(math.isfinite(v) for v in values):
            raise InvalidInputError(f"period {i} contains non-finite values: {p}")
        if p.start > p.end + TIME_EPSILON:
            raise InvalidInputError(f"period {i}: start ({p.start}) is after end ({p.end})")
        if p.pay < p.end - TIME_EPSILON:
            raise InvalidInputError(f"period {i}: pay ({p.pay}) is before end ({p.end})")
        if p.period_fraction < 0:
            raise InvalidInputError(f"period {i}: period_fraction must be non-negative, got {p.period_fraction}")
        if prev is not None:
            if p.pay < prev.pay - TIME_EPSILON:
                raise InvalidInputError(
                    f"period {i}: pay ({p.pay}) precedes previous pay ({prev.pay})"
                )
            if p.start < prev.end - TIME_EPSILON:
                raise InvalidInputError(
                    f"period {i}: [{p.start}, {p.end}) overlaps previous period ending {prev.end}"
                )
        prev = p


class Schedule:
    """
    Immutable, validated sequence of CashflowPeriod.

    Construction validates the ordering invariants once; the integrator and
    the sensitivity propagator can then walk it without re-checking.
    """

    def __init__(self, periods: Iterable[CashflowPeriod]) -> None:
        self._periods: tuple[CashflowPeriod, ...] = tuple(periods)
        validate_schedule(self._periods)

    def __len__(self) -> int:
        return len(self._periods)

    def __iter__(self) -> Iterator[CashflowPeriod]:
        return iter(self._periods)

    def __getitem__(self, index: int) -> CashflowPeriod:
        return self._periods[index]

    def __repr__(self) -> str:
        return f"Schedule({len(self._periods)} periods, maturity={self.maturity})"

    @property
    def maturity(self) -> float:
        """Final pay time; -inf for an empty schedule."""
        return self._periods[-1].pay if self._periods else -math.inf

    def first_index(self, settle: float, include_settle: bool = False) -> int:
        """
        Index of the first period still outstanding at settle.

        A period is outstanding if its pay time is strictly after settle, or on
        settle when include_settle is True. Returns len(self) if none is.
        """
        for i, p in enumerate(self._periods):
            if p.pay > settle or (include_settle and p.pay == settle):
                return i
        return len(self._periods)


def as_schedule(periods: Schedule | Iterable[CashflowPeriod] | None) -> Schedule:
    """Return periods as a validated Schedule (no copy if it already is one)."""
    if periods is None:
        raise InvalidInputError("schedule is required")
    if isinstance(periods, Schedule):
        return periods
    return Schedule(periods)


# =============================================================================
# Schedule Helpers
# =============================================================================
#
# Product terms -> schedule generation (calendars, roll conventions, day-count
# variants) lives outside this package. These helpers build the plain regular
# schedules that product pricers and tests need.
# =============================================================================

def _regular_grid(effective: float, maturity: float, frequency: int) -> np.ndarray:
    """Accrual boundaries from effective to maturity, short stub at the front."""
    if frequency <= 0:
        raise InvalidInputError(f"frequency must be positive, got {frequency}")
    if maturity <= effective:
        raise InvalidInputError(f"maturity ({maturity}) must be after effective ({effective})")
    step = 1.0 / frequency
    n = int(math.ceil((maturity - effective) / step - 1e-9))
    grid = maturity - step * np.arange(n, -1, -1, dtype=np.float64)
    grid[0] = effective
    return grid


def regular_schedule(
    effective: float,
    maturity: float,
    frequency: int,
    coupon: float,
    principal: float = 0.0,
    default_contingent_amount: float = 0.0,
    pay_lag: float = 0.0,
) -> Schedule:
    """
    Fee-leg schedule with a fixed running coupon.

    Args:
        effective: Accrual start time (years)
        maturity: Final accrual end time (years)
        frequency: Payments per year (e.g. 4 for quarterly)
        coupon: Annual running coupon as decimal (e.g. 0.01 for 100bp)
        principal: Principal paid with the final coupon (1.0 for funded notes)
        default_contingent_amount: Amount paid per unit of defaulted notional
        pay_lag: Time from accrual end to payment (years)

    Returns:
        Schedule with riskfree_amount = coupon x fraction (+ principal on the
        last period) and accrued_at_pay_date = coupon x fraction
    """
    grid = _regular_grid(effective, maturity, frequency)
    periods = []
    for i in range(1, len(grid)):
        start, end = float(grid[i - 1]), float(grid[i])
        fraction = end - start
        amount = coupon * fraction
        if i == len(grid) - 1:
            amount += principal
        periods.append(CashflowPeriod(
            start=start,
            end=end,
            pay=end + pay_lag,
            period_fraction=fraction,
            riskfree_amount=amount,
            accrued_at_pay_date=coupon * fraction,
            default_contingent_amount=default_contingent_amount,
        ))
    return Schedule(periods)


def protection_schedule(
    effective: float,
    maturity: float,
    frequency: int,
    contingent_amount: float = 1.0,
) -> Schedule:
    """Protection-leg schedule: no riskfree amount, contingent_amount per unit of loss."""
    grid = _regular_grid(effective, maturity, frequency)
    return Schedule(
        CashflowPeriod(
            start=float(grid[i - 1]),
            end=float(grid[i]),
            pay=float(grid[i]),
            period_fraction=float(grid[i] - grid[i - 1]),
            default_contingent_amount=contingent_amount,
        )
        for i in range(1, len(grid))
    )
