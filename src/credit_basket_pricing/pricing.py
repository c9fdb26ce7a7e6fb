# Requires Python 3.12+
# Uses native type hints: list[x], tuple[x, y], X | None (PEP 585, PEP 604)
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from itertools import pairwise
from typing import Iterable

from .curves import DiscountFunction, SurvivalFunction
from .errors import InvalidInputError
from .loss_models import ExpectedLossModel
from .schedule import CashflowPeriod, Schedule, as_schedule

__version__ = "0.1.0"

# A tranche whose balance at settle is below this is exhausted and worth 0.
EXHAUSTED_BALANCE = 1e-9

# Slack allowed when checking loss/balance monotonicity along the traversal.
MONOTONE_TOLERANCE = 1e-12


# =============================================================================
# Pricing Parameters
# =============================================================================

@dataclass(frozen=True)
class PricingParams:
    """
    Run parameters of one valuation call.

    A Price call and a Greeks call must use the same PricingParams for the
    sensitivities to be the derivatives of the price.

    Fields:
    - default_timing: position in [0, 1] within a period at which an
      incremental default is assumed to occur
    - accrued_fraction_on_default: fraction in [0, 1] of the period accrual
      paid on the defaulted notional
    - include_fees / include_protection: leg selection
    - include_settle_payments: treat a payment falling exactly on settle as
      still outstanding
    - period_tolerance: periods with period_fraction below this are skipped
    - step: protection-leg integration step in years; each period is split
      into sub-intervals no longer than step, each with its own default-timing
      point (0 integrates each period in one piece)
    """
    default_timing: float = 0.5
    accrued_fraction_on_default: float = 0.0
    include_fees: bool = True
    include_protection: bool = True
    include_settle_payments: bool = False
    period_tolerance: float = 1e-10
    step: float = 0.0

    def __post_init__(self) -> None:
        """Reject out-of-range parameters (never clamp)."""
        if not (0.0 <= self.default_timing <= 1.0):
            raise InvalidInputError(f"default_timing must be in [0, 1], got {self.default_timing}")
        if not (0.0 <= self.accrued_fraction_on_default <= 1.0):
            raise InvalidInputError(
                f"accrued_fraction_on_default must be in [0, 1], got {self.accrued_fraction_on_default}"
            )
        if not (self.period_tolerance >= 0.0):
            raise InvalidInputError(f"period_tolerance must be non-negative, got {self.period_tolerance}")
        if not (0.0 <= self.step < math.inf):
            raise InvalidInputError(f"step must be finite and non-negative, got {self.step}")

    def leg(self, fees: bool) -> PricingParams:
        """Copy selecting only the fee leg (fees=True) or only the protection leg."""
        return replace(self, include_fees=fees, include_protection=not fees)


DEFAULT_PARAMS = PricingParams()


@dataclass(frozen=True)
class LegValues:
    """Fee and protection present values from a single traversal."""
    fee: float
    protection: float

    @property
    def total(self) -> float:
        return self.fee + self.protection


# =============================================================================
# Period Weights
# =============================================================================
#
# The integrator and the sensitivity propagator both reduce to
#
#   sum_i  fee_i * B(t*_i)
#        + accrual_i * [B(s_i) - B(e_i)]
#        + sum_j protection_ij * [L(u_ij+1) - L(u_ij)]
#
# with the weights computed here. u_ij is the protection grid of period i:
# just its two ends unless PricingParams.step splits it. B and L are scalars
# for a price and vectors for Greeks; the weights (discounting, default
# timing, counterparty) are the same numbers in both cases because both go
# through period_weights.
# =============================================================================

@dataclass(frozen=True)
class ProtectionStep:
    """
    One sub-interval [start, end] of a period's protection leg.

    weight = default_contingent_amount x DF(settle, default_time)
             x counterparty weight
    """
    start: float
    end: float
    default_time: float
    weight: float


@dataclass(frozen=True)
class PeriodWeights:
    """
    Coefficients of one period's contribution.

    - start: period start, clipped to settle for a period straddling it
    - end: period end
    - default_time: start + default_timing * (end - start)
    - fee: riskfree_amount x DF(settle, pay) x counterparty weight
    - accrual: accrued_fraction_on_default x accrued_at_pay_date
      x DF(settle, default_time) x counterparty weight
    - protection: the period's protection sub-intervals, in time order;
      empty when the protection leg is not selected
    """
    index: int
    start: float
    end: float
    default_time: float
    fee: float
    accrual: float
    protection: tuple[ProtectionStep, ...]


def _protection_grid(start: float, end: float, step: float, tolerance: float) -> list[float]:
    """start, start + step, ... , end; a remainder shorter than tolerance is merged into the last step."""
    if step <= 0.0:
        return [start, end]
    grid = [start]
    k = 1
    while start + k * step < end - tolerance:
        grid.append(start + k * step)
        k += 1
    grid.append(end)
    return grid


def _protection_step(
    start: float,
    end: float,
    contingent: float,
    settle: float,
    discount: DiscountFunction,
    default_timing: float,
    counterparty: SurvivalFunction | None,
    counterparty_at_settle: float,
) -> ProtectionStep:
    default_time = start + default_timing * (end - start)
    cpty = 1.0
    if counterparty is not None:
        cpty = counterparty.survival(default_time) / counterparty_at_settle
    weight = contingent * discount.discount_factor(settle, default_time) * cpty
    return ProtectionStep(start, end, default_time, weight)


def _require(value, name: str):
    if value is None:
        raise InvalidInputError(f"{name} is required")
    return value


def period_weights(
    schedule: Schedule | Iterable[CashflowPeriod],
    settle: float,
    discount: DiscountFunction,
    params: PricingParams = DEFAULT_PARAMS,
    counterparty: SurvivalFunction | None = None,
) -> list[PeriodWeights]:
    """
    Per-period coefficients for the outstanding part of a schedule.

    Returns an empty list for the degenerate cases that price to zero: empty
    schedule, settle beyond the final payment, or a counterparty already in
    default at settle.

    Args:
        schedule: Ordered cashflow periods
        settle: Valuation settle time; values are discounted to it
        discount: Discount function
        params: Pricing parameters
        counterparty: Optional counterparty survival function

    Returns:
        One PeriodWeights per outstanding, non-degenerate period
    """
    schedule = as_schedule(schedule)
    _require(discount, "discount curve")
    if params is None:
        params = DEFAULT_PARAMS
    if not math.isfinite(settle):
        raise InvalidInputError(f"settle must be finite, got {settle}")
    if len(schedule) == 0 or settle > schedule.maturity:
        return []

    counterparty_at_settle = 1.0
    if counterparty is not None:
        counterparty_at_settle = counterparty.survival(settle)
        if counterparty_at_settle <= 0.0:
            return []

    include_fees = params.include_fees
    include_protection = params.include_protection
    aod = params.accrued_fraction_on_default
    weights = []
    for i in range(schedule.first_index(settle, params.include_settle_payments), len(schedule)):
        p = schedule[i]
        if p.period_fraction < params.period_tolerance:
            continue
        start = min(max(p.start, settle), p.end)
        default_time = start + params.default_timing * (p.end - start)
        cpty = 1.0
        if counterparty is not None:
            cpty = counterparty.survival(default_time) / counterparty_at_settle
        df_default = discount.discount_factor(settle, default_time)

        fee = accrual = 0.0
        if include_fees:
            fee = p.riskfree_amount * discount.discount_factor(settle, p.pay) * cpty
            if aod > 0.0:
                accrual = aod * p.accrued_at_pay_date * df_default * cpty
        protection = ()
        if include_protection:
            grid = _protection_grid(start, p.end, params.step, params.period_tolerance)
            protection = tuple(
                _protection_step(a, b, p.default_contingent_amount, settle, discount,
                                 params.default_timing, counterparty, counterparty_at_settle)
                for a, b in pairwise(grid)
            )
        weights.append(PeriodWeights(
            index=i,
            start=start,
            end=p.end,
            default_time=default_time,
            fee=fee,
            accrual=accrual,
            protection=protection,
        ))
    return weights


# =============================================================================
# Pricing Integrator
# =============================================================================

class _MonotoneCheck:
    """Tracks successive curve values and rejects moves in the wrong direction."""

    def __init__(self, name: str, increasing: bool) -> None:
        self.name = name
        self.sign = 1.0 if increasing else -1.0
        self.last_time: float | None = None
        self.last_value: float | None = None

    def __call__(self, t0: float, v0: float, t1: float, v1: float) -> None:
        # within the period
        if self.sign * (v1 - v0) < -MONOTONE_TOLERANCE:
            self._fail(t0, v0, t1, v1)
        # against the previous period, once there is one
        if (self.last_time is not None and t0 >= self.last_time
                and self.sign * (v0 - self.last_value) < -MONOTONE_TOLERANCE):
            self._fail(self.last_time, self.last_value, t0, v0)
        self.last_time, self.last_value = t1, v1

    def _fail(self, t0: float, v0: float, t1: float, v1: float) -> None:
        direction = "non-decreasing" if self.sign > 0 else "non-increasing"
        raise InvalidInputError(
            f"{self.name} must be {direction}: value {v0} at t={t0} then {v1} at t={t1}"
        )


def price_legs(
    schedule: Schedule | Iterable[CashflowPeriod],
    settle: float,
    discount: DiscountFunction,
    model: ExpectedLossModel,
    params: PricingParams = DEFAULT_PARAMS,
    counterparty: SurvivalFunction | None = None,
) -> LegValues:
    """
    Fee and protection present values of a credit-contingent schedule.

    For each outstanding period [s, e] paid at `pay`, with default time
    t* = s + default_timing (e - s) and counterparty weight c = Sc(t*)/Sc(settle):

        fee        = riskfree x B(t*) x DF(settle, pay) x c
                   + aod x accrued x [B(s) - B(e)] x DF(settle, t*) x c
        protection = contingent x [L(e) - L(s)] x DF(settle, t*) x c

    With params.step > 0 the protection term is summed over sub-intervals
    of [s, e] no longer than step, each with its own t* and c.

    B and L are the model's cumulative balance and loss. Values are
    fractions of notional, discounted to settle. A period straddling settle
    is integrated from settle. Pending settlements of defaults that happened
    before settle are not included (see default_settlement).

    Args:
        schedule: Ordered cashflow periods
        settle: Valuation settle time
        discount: Discount function
        model: Expected loss/balance model
        params: Pricing parameters
        counterparty: Optional counterparty survival function

    Returns:
        LegValues(fee, protection); both 0 for degenerate inputs

    Raises:
        InvalidInputError: Missing curve/model, malformed schedule, or a
            loss (balance) curve found decreasing (increasing) along the way
    """
    _require(model, "loss model")
    weights = period_weights(schedule, settle, discount, params, counterparty)
    if not weights:
        return LegValues(0.0, 0.0)
    if model.cumulative_balance(settle) < EXHAUSTED_BALANCE:
        return LegValues(0.0, 0.0)

    loss_check = _MonotoneCheck("cumulative loss", increasing=True)
    balance_check = _MonotoneCheck("cumulative balance", increasing=False)
    fee_pv = 0.0
    protection_pv = 0.0
    for w in weights:
        if w.fee != 0.0:
            fee_pv += w.fee * model.cumulative_balance(w.default_time)
        if w.accrual != 0.0:
            b_start = model.cumulative_balance(w.start)
            b_end = model.cumulative_balance(w.end)
            balance_check(w.start, b_start, w.end, b_end)
            fee_pv += w.accrual * (b_start - b_end)
        for s in w.protection:
            if s.weight == 0.0:
                continue
            l_start = model.cumulative_loss(s.start)
            l_end = model.cumulative_loss(s.end)
            loss_check(s.start, l_start, s.end, l_end)
            protection_pv += s.weight * (l_end - l_start)
    return LegValues(fee_pv, protection_pv)


def price(
    schedule: Schedule | Iterable[CashflowPeriod],
    settle: float,
    discount: DiscountFunction,
    model: ExpectedLossModel,
    params: PricingParams = DEFAULT_PARAMS,
    counterparty: SurvivalFunction | None = None,
) -> float:
    """
    Signed present value (fraction of notional) of a credit-contingent schedule.

    Sum of the fee and protection legs selected by params; see price_legs for
    the per-period formulas.
    """
    return price_legs(schedule, settle, discount, model, params, counterparty).total
