# Requires Python 3.12+
# Uses native type hints: list[x], tuple[x, y], X | None (PEP 585, PEP 604)
from __future__ import annotations

from typing import Iterable

import numpy as np

from .curves import DiscountFunction, SurvivalFunction
from .errors import GradientShapeError, InvalidInputError
from .loss_models import ExpectedLossSensitivityModel
from .pricing import DEFAULT_PARAMS, EXHAUSTED_BALANCE, PricingParams, period_weights
from .schedule import CashflowPeriod, Schedule

__version__ = "0.1.0"


# =============================================================================
# Sensitivity Propagator
# =============================================================================

class _ShapeGuard:
    """Fixes the sensitivity vector length on first use and enforces it afterwards."""

    def __init__(self) -> None:
        self.length: int | None = None

    def __call__(self, vector, source: str, t: float) -> np.ndarray:
        vector = np.asarray(vector, dtype=np.float64)
        if vector.ndim != 1:
            raise GradientShapeError(f"{source}({t}) must be one-dimensional, got shape {vector.shape}")
        if self.length is None:
            self.length = vector.shape[0]
        elif vector.shape[0] != self.length:
            raise GradientShapeError(
                f"{source}({t}) returned {vector.shape[0]} entries, "
                f"expected {self.length} from an earlier evaluation in this call"
            )
        return vector


def greeks(
    schedule: Schedule | Iterable[CashflowPeriod],
    settle: float,
    discount: DiscountFunction,
    sensitivities: ExpectedLossSensitivityModel,
    params: PricingParams = DEFAULT_PARAMS,
    counterparty: SurvivalFunction | None = None,
) -> np.ndarray:
    """
    Sensitivities of price() with respect to the ordinates behind a loss model.

    Mirrors price() period by period: the discount factors, default-timing
    points and counterparty weights come from the same period_weights call,
    and every scalar B(t) or L(t) becomes the gradient vector dB(t) or dL(t):

        sum_i  fee_i dB(t*_i) + accrual_i [dB(s_i) - dB(e_i)]
             + sum_j protection_ij [dL(u_ij+1) - dL(u_ij)]

    If the gradient vectors carry packed Hessian terms, the same terms of the
    result are the second derivatives of the price.

    Args:
        schedule: Ordered cashflow periods
        settle: Valuation settle time
        discount: Discount function
        sensitivities: Gradient supplier; it must also provide the scalar
            cumulative_loss and cumulative_balance of the model it differentiates
        params: Pricing parameters, identical to those of the matching price call
        counterparty: Optional counterparty survival function

    Returns:
        Sensitivity vector; all zeros in the cases where price() returns 0

    Raises:
        InvalidInputError: Missing curve or gradient supplier, a supplier without
            the scalar methods, malformed schedule
        GradientShapeError: Gradient length changed within the call
    """
    if sensitivities is None:
        raise InvalidInputError("sensitivity model is required")
    if not isinstance(sensitivities, ExpectedLossSensitivityModel):
        raise InvalidInputError(
            f"sensitivity model must provide cumulative_loss, cumulative_balance, "
            f"loss_gradient and balance_gradient, got {type(sensitivities).__name__}"
        )
    guard = _ShapeGuard()
    weights = period_weights(schedule, settle, discount, params, counterparty)

    # exhausted at settle: price() returns 0, so do the Greeks
    if not weights or sensitivities.cumulative_balance(settle) < EXHAUSTED_BALANCE:
        return np.zeros_like(guard(sensitivities.loss_gradient(settle), "loss_gradient", settle))

    def loss(t: float) -> np.ndarray:
        return guard(sensitivities.loss_gradient(t), "loss_gradient", t)

    def balance(t: float) -> np.ndarray:
        return guard(sensitivities.balance_gradient(t), "balance_gradient", t)

    result: np.ndarray | None = None
    for w in weights:
        terms = []
        if w.fee != 0.0:
            terms.append(w.fee * balance(w.default_time))
        if w.accrual != 0.0:
            terms.append(w.accrual * (balance(w.start) - balance(w.end)))
        for s in w.protection:
            if s.weight != 0.0:
                terms.append(s.weight * (loss(s.end) - loss(s.start)))
        for term in terms:
            if result is None:
                result = np.zeros_like(term)
            result += term

    if result is None:
        # every weight was zero; the shape still comes from the supplier
        return np.zeros_like(loss(settle))
    return result
