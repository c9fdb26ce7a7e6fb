# Requires Python 3.12+
# Uses native type hints: list[x], tuple[x, y], X | None (PEP 585, PEP 604)
"""
Valuation of defaults that occurred before settle but have not yet settled.

A realized default is a known cashflow on a known date, not an expectation
spread over future periods, so it is valued here and added to the periodic
integral by the caller. The periodic integral only sees the loss curve from
settle onwards; a default dated on or before settle is therefore never in
both places.
"""

from __future__ import annotations

import math

from .curves import DiscountFunction
from .errors import InvalidInputError
from .loss_models import MIN_TRANCHE_WIDTH, tranche_slice
from .schedule import CashflowPeriod, DefaultSettlementRecord

__version__ = "0.1.0"


def _check_tranche(attachment: float, detachment: float) -> None:
    if not (0.0 <= attachment <= 1.0 and 0.0 <= detachment <= 1.0):
        raise InvalidInputError(
            f"attachment and detachment must be in [0, 1], got {attachment} and {detachment}"
        )


def _increment_overlap(lower: float, upper: float, prior: float, increment: float) -> float:
    """Part of (prior, prior + increment] falling inside [lower, upper]."""
    return tranche_slice(lower, upper, prior + increment) - tranche_slice(lower, upper, prior)


def _tranche_shares(
    record: DefaultSettlementRecord, attachment: float, detachment: float
) -> tuple[float, float]:
    """(loss, recovery) of the record falling into the tranche, basket-notional units."""
    loss = _increment_overlap(attachment, detachment, record.prior_loss, record.loss)
    recovery = _increment_overlap(1.0 - detachment, 1.0 - attachment,
                                  record.prior_recovery, record.amount)
    return loss, recovery


def is_pending(record: DefaultSettlementRecord | None, settle: float) -> bool:
    """True if record is a default on or before settle that settles strictly after it."""
    return (record is not None
            and record.default_date <= settle < record.settlement_date)


# =============================================================================
# Default-Settlement Valuer
# =============================================================================

def default_settlement_pv(
    record: DefaultSettlementRecord | None,
    settle: float,
    maturity: float,
    discount: DiscountFunction,
    attachment: float = 0.0,
    detachment: float = 1.0,
    include_loss: bool = True,
    include_recovery: bool = True,
    include_accrual: bool = False,
) -> float:
    """
    Present value of a pending default settlement, per unit of tranche notional.

    The realized loss eats into the capital structure from the bottom:
    the tranche takes the part of (prior_loss, prior_loss + loss] inside
    [attachment, detachment]. The recovered principal pays down the
    structure from the top: the tranche takes the part of
    (prior_recovery, prior_recovery + amount] inside
    [1 - detachment, 1 - attachment]. Losses are signed negative, recoveries
    positive (the note holder's view) and both are discounted from settle to
    the settlement date.

    With include_accrual the record's accrual is added too, scaled by the
    share of the defaulted notional that falls into the tranche.

    Returns 0 when:
    - there is no record
    - detachment <= attachment
    - the settlement date is on or before settle
    - the default happened after settle (the periodic integral covers it)
    - the default is on or after maturity and settles after maturity

    Args:
        record: Pending default settlement, or None
        settle: Valuation settle time
        maturity: Product maturity time
        discount: Discount function
        attachment: Tranche attachment (fraction of basket notional)
        detachment: Tranche detachment (fraction of basket notional)
        include_loss: Include the (negative) loss value
        include_recovery: Include the (positive) recovery value
        include_accrual: Include the fee accrual owed at settlement

    Returns:
        Present value as a fraction of the tranche notional

    Raises:
        InvalidInputError: If attachment/detachment lie outside [0, 1] or the
            discount function is missing while a value is due
    """
    _check_tranche(attachment, detachment)
    if detachment - attachment < MIN_TRANCHE_WIDTH:
        return 0.0
    if not is_pending(record, settle):
        return 0.0
    if record.settlement_date > maturity and record.default_date >= maturity:
        return 0.0
    if discount is None:
        raise InvalidInputError("discount curve is required")

    loss, recovery = _tranche_shares(record, attachment, detachment)
    value = 0.0
    if include_loss and record.loss != 0.0:
        value -= loss
    if include_recovery and record.amount != 0.0:
        value += recovery
    if include_accrual and record.accrual != 0.0:
        defaulted = record.loss + record.amount
        if defaulted > 0.0:
            value += record.accrual * (loss + recovery) / defaulted
    if value == 0.0:
        return 0.0
    width = detachment - attachment
    return value * discount.discount_factor(settle, record.settlement_date) / width


# =============================================================================
# Unsettled Default Accrual Adjustment
# =============================================================================

def unsettled_accrual_adjustment(
    record: DefaultSettlementRecord | None,
    settle: float,
    period: CashflowPeriod,
    premium: float,
    discount: DiscountFunction,
    attachment: float = 0.0,
    detachment: float = 1.0,
) -> float:
    """
    Premium owed on notional that defaulted inside the current period but
    settles at or after its end.

    The defaulted notional has left the tranche balance, so the periodic fee
    leg no longer pays on it. Its holder is still owed the full period
    coupon at the pay date, less a rebate of the accrual from the default
    date to period end paid back at settlement:

        affected x premium x [fraction x DF(settle, pay)
                              - fraction x (end - default)/(end - start) x DF(settle, settlement)]

    where affected is the share of the defaulted notional (loss plus
    recovery) that falls into the tranche, per unit of tranche notional.

    Returns:
        Adjustment as a fraction of the tranche notional, 0 when the record
        does not default inside (start, end) or settles before the period end
    """
    _check_tranche(attachment, detachment)
    if record is None or detachment - attachment < MIN_TRANCHE_WIDTH:
        return 0.0
    if period is None:
        raise InvalidInputError("period is required")
    if not (period.start < record.default_date < period.end):
        return 0.0
    if record.default_date > settle or period.pay <= settle:
        return 0.0
    if record.settlement_date < period.end:
        return 0.0
    if period.period_fraction < 1e-10:
        return 0.0
    if discount is None:
        raise InvalidInputError("discount curve is required")
    if not math.isfinite(premium):
        raise InvalidInputError(f"premium must be finite, got {premium}")

    loss, recovery = _tranche_shares(record, attachment, detachment)
    affected = (loss + recovery) / (detachment - attachment)
    if affected <= 0.0:
        return 0.0
    full = period.period_fraction * discount.discount_factor(settle, period.pay)
    rebate = (period.period_fraction * (period.end - record.default_date)
              / (period.end - period.start))
    return affected * premium * (full - rebate * discount.discount_factor(settle, record.settlement_date))
