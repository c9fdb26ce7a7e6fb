# Requires Python 3.12+
# Uses native type hints: list[x], tuple[x, y], X | None (PEP 585, PEP 604)
"""
Product pricers built on the shared valuation core.

Pricers hold their inputs by composition and call pricing.price,
greeks.greeks and default_settlement directly; nothing is inherited from a
common pricer base. Values returned here are in currency units
(notional x fraction-of-notional values from the core), from the protection
seller's side: premium received is positive, loss paid is negative.

Unlike the core, the pricers warn (warnings.warn) when they hit a
degenerate-but-valid situation such as settle past maturity or an exhausted
tranche, then return 0 as the core does.
"""

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass, field
from typing import Callable, Sequence

import numpy as np

from . import default_settlement as dsv
from .basket import basket_value, evaluate_names
from .curves import DiscountCurve, SurvivalCurve, SurvivalFunction
from .errors import InvalidInputError
from .greeks import greeks
from .loss_models import (
    MIN_TRANCHE_WIDTH,
    ExpectedLossModel,
    ExpectedLossSensitivityModel,
    SingleNameLossModel,
    TrancheLossModel,
)
from .pricing import EXHAUSTED_BALANCE, PricingParams, price
from .schedule import DefaultSettlementRecord, Schedule, protection_schedule, regular_schedule
from .solvers import SolverSettings, implied_basis, solve_bounded

__version__ = "0.1.0"


# =============================================================================
# Synthetic CDO Tranche
# =============================================================================

@dataclass(frozen=True)
class SyntheticTranche:
    """
    Terms of a synthetic CDO tranche.

    - attachment / detachment: fractions of the basket notional
    - premium: running premium as decimal (0.01 = 100bp)
    - effective / maturity: accrual start and end times (years)
    - frequency: premium payments per year
    - basket_notional: notional of the whole basket; the tranche notional is
      basket_notional x (detachment - attachment)
    - funded: a funded note pays the premium plus principal at maturity and
      has no protection leg; losses simply write the principal down
    """
    attachment: float
    detachment: float
    premium: float
    effective: float
    maturity: float
    frequency: int = 4
    basket_notional: float = 1.0
    funded: bool = False

    def __post_init__(self) -> None:
        if not 0.0 <= self.attachment <= self.detachment <= 1.0:
            raise InvalidInputError(
                f"need 0 <= attachment <= detachment <= 1, got "
                f"attachment={self.attachment}, detachment={self.detachment}"
            )
        if not math.isfinite(self.premium):
            raise InvalidInputError(f"premium must be finite, got {self.premium}")
        if self.maturity <= self.effective:
            raise InvalidInputError(
                f"maturity ({self.maturity}) must be after effective ({self.effective})"
            )
        if self.frequency <= 0:
            raise InvalidInputError(f"frequency must be positive, got {self.frequency}")
        if self.basket_notional < 0:
            raise InvalidInputError(f"basket_notional must be non-negative, got {self.basket_notional}")

    @property
    def width(self) -> float:
        return self.detachment - self.attachment

    @property
    def notional(self) -> float:
        """Tranche notional in currency units."""
        return self.basket_notional * self.width


class TranchePricer:
    """
    Prices a SyntheticTranche against a portfolio loss model.

    Inputs are replaced through their setters. Every replacement bumps a
    generation counter; derived objects (schedules, the tranche loss model)
    are memoized against the generation they were built at and rebuilt on
    the next access after any input changes.
    """

    def __init__(
        self,
        tranche: SyntheticTranche,
        portfolio: ExpectedLossModel,
        discount: DiscountCurve,
        settle: float,
        params: PricingParams | None = None,
        counterparty: SurvivalFunction | None = None,
        settlement_record: DefaultSettlementRecord | None = None,
        portfolio_sensitivities: ExpectedLossSensitivityModel | None = None,
    ) -> None:
        if tranche is None:
            raise InvalidInputError("tranche is required")
        if portfolio is None:
            raise InvalidInputError("portfolio model is required")
        if discount is None:
            raise InvalidInputError("discount curve is required")
        self._tranche = tranche
        self._portfolio = portfolio
        self._discount = discount
        self._settle = float(settle)
        self._params = params if params is not None else PricingParams()
        self._counterparty = counterparty
        self._settlement_record = settlement_record
        self._portfolio_sensitivities = portfolio_sensitivities
        self._generation = 0
        self._memo: dict[str, tuple[int, object]] = {}

    def __repr__(self) -> str:
        t = self._tranche
        return (f"TranchePricer({t.attachment:.2%}-{t.detachment:.2%}, "
                f"premium={t.premium}, settle={self._settle}, generation={self._generation})")

    # -------------------------------------------------------------------------
    # Inputs
    # -------------------------------------------------------------------------

    @property
    def generation(self) -> int:
        """Incremented whenever an input is replaced."""
        return self._generation

    def _replace(self, name: str, value) -> None:
        setattr(self, name, value)
        self._generation += 1

    @property
    def tranche(self) -> SyntheticTranche:
        return self._tranche

    @tranche.setter
    def tranche(self, value: SyntheticTranche) -> None:
        if value is None:
            raise InvalidInputError("tranche is required")
        self._replace("_tranche", value)

    @property
    def portfolio(self) -> ExpectedLossModel:
        return self._portfolio

    @portfolio.setter
    def portfolio(self, value: ExpectedLossModel) -> None:
        if value is None:
            raise InvalidInputError("portfolio model is required")
        self._replace("_portfolio", value)

    @property
    def portfolio_sensitivities(self) -> ExpectedLossSensitivityModel | None:
        return self._portfolio_sensitivities

    @portfolio_sensitivities.setter
    def portfolio_sensitivities(self, value: ExpectedLossSensitivityModel | None) -> None:
        self._replace("_portfolio_sensitivities", value)

    @property
    def discount(self) -> DiscountCurve:
        return self._discount

    @discount.setter
    def discount(self, value: DiscountCurve) -> None:
        if value is None:
            raise InvalidInputError("discount curve is required")
        self._replace("_discount", value)

    @property
    def settle(self) -> float:
        return self._settle

    @settle.setter
    def settle(self, value: float) -> None:
        self._replace("_settle", float(value))

    @property
    def params(self) -> PricingParams:
        return self._params

    @params.setter
    def params(self, value: PricingParams) -> None:
        self._replace("_params", value if value is not None else PricingParams())

    @property
    def counterparty(self) -> SurvivalFunction | None:
        return self._counterparty

    @counterparty.setter
    def counterparty(self, value: SurvivalFunction | None) -> None:
        self._replace("_counterparty", value)

    @property
    def settlement_record(self) -> DefaultSettlementRecord | None:
        return self._settlement_record

    @settlement_record.setter
    def settlement_record(self, value: DefaultSettlementRecord | None) -> None:
        self._replace("_settlement_record", value)

    # -------------------------------------------------------------------------
    # Memoized derived inputs
    # -------------------------------------------------------------------------

    def _memoized(self, key: str, build: Callable[[], object]):
        hit = self._memo.get(key)
        if hit is not None and hit[0] == self._generation:
            return hit[1]
        value = build()
        self._memo[key] = (self._generation, value)
        return value

    def _fee_schedule_for(self, premium: float) -> Schedule:
        t = self._tranche
        return regular_schedule(
            t.effective, t.maturity, t.frequency,
            coupon=premium,
            principal=1.0 if t.funded else 0.0,
        )

    @property
    def fee_schedule(self) -> Schedule:
        return self._memoized("fee_schedule", lambda: self._fee_schedule_for(self._tranche.premium))

    @property
    def protection_schedule(self) -> Schedule:
        t = self._tranche
        return self._memoized(
            "protection_schedule",
            lambda: protection_schedule(t.effective, t.maturity, t.frequency, contingent_amount=1.0),
        )

    @property
    def loss_model(self) -> TrancheLossModel:
        t = self._tranche
        return self._memoized(
            "loss_model",
            lambda: TrancheLossModel(self._portfolio, t.attachment, t.detachment),
        )

    def _is_degenerate(self) -> bool:
        t = self._tranche
        if self._settle > t.maturity:
            warnings.warn(f"settle ({self._settle}) is after maturity ({t.maturity}), returning 0")
            return True
        if t.width < MIN_TRANCHE_WIDTH:
            warnings.warn("tranche has zero width, returning 0")
            return True
        if self.loss_model.cumulative_balance(self._settle) < EXHAUSTED_BALANCE:
            warnings.warn("tranche is exhausted at settle, returning 0")
            return True
        return False

    # -------------------------------------------------------------------------
    # Values
    # -------------------------------------------------------------------------

    def _fee_value(self, schedule: Schedule, premium: float) -> float:
        """Fee leg per unit tranche notional, including the unsettled-default accrual."""
        value = price(schedule, self._settle, self._discount, self.loss_model,
                      self._params.leg(fees=True), self._counterparty)
        record = self._settlement_record
        if record is not None and self._params.accrued_fraction_on_default > 0.0:
            t = self._tranche
            for period in schedule:
                if period.start < record.default_date < period.end:
                    value += dsv.unsettled_accrual_adjustment(
                        record, self._settle, period, premium, self._discount,
                        t.attachment, t.detachment,
                    )
                    break
        return value

    def fee_pv(self) -> float:
        """Present value of the premium leg (and principal, if funded)."""
        if self._is_degenerate():
            return 0.0
        value = self._fee_value(self.fee_schedule, self._tranche.premium)
        if self._tranche.funded:
            value += self._settlement_value(include_loss=False, include_recovery=True)
        return self._tranche.notional * value

    def _settlement_value(self, include_loss: bool, include_recovery: bool) -> float:
        t = self._tranche
        return dsv.default_settlement_pv(
            self._settlement_record, self._settle, t.maturity, self._discount,
            t.attachment, t.detachment,
            include_loss=include_loss, include_recovery=include_recovery,
        )

    def _protection_value(self) -> float:
        """Protection leg per unit tranche notional; 0 for a funded tranche."""
        if self._tranche.funded:
            return 0.0
        value = price(self.protection_schedule, self._settle, self._discount, self.loss_model,
                      self._params.leg(fees=False), self._counterparty)
        # default_settlement_pv signs loss negative
        value -= self._settlement_value(include_loss=True, include_recovery=False)
        return value

    def protection_pv(self) -> float:
        """Present value of the loss payments, including a pending default settlement (positive)."""
        if self._is_degenerate():
            return 0.0
        return self._tranche.notional * self._protection_value()

    def pv(self) -> float:
        """Fee leg less protection leg, from the protection seller's side."""
        return self.fee_pv() - self.protection_pv()

    def break_even_premium(
        self, lower: float = 0.0, upper: float = 1.0, settings: SolverSettings | None = None
    ) -> float:
        """
        Premium that makes pv() zero (unfunded) or fee_pv() par (funded).

        Raises:
            BracketError: No premium in [lower, upper] does it
        """
        if self._is_degenerate():
            return 0.0
        t = self._tranche
        # per unit notional, so a zero basket notional still has a premium
        protection = self._protection_value()
        target = 1.0 if t.funded else 0.0
        extra = (self._settlement_value(include_loss=False, include_recovery=True)
                 if t.funded else 0.0)

        def objective(premium: float) -> float:
            fee = self._fee_value(self._fee_schedule_for(premium), premium) + extra
            return fee - protection

        return solve_bounded(objective, lower, upper, target, settings)

    # -------------------------------------------------------------------------
    # Sensitivities
    # -------------------------------------------------------------------------

    def _tranche_sensitivities(self):
        if self._portfolio_sensitivities is None:
            raise InvalidInputError("portfolio_sensitivities are required for Greeks")
        return self._memoized(
            "tranche_sensitivities",
            lambda: self.loss_model.sensitivities(self._portfolio_sensitivities),
        )

    def fee_greeks(self) -> np.ndarray:
        """d fee_pv / d portfolio ordinates (currency units)."""
        sens = self._tranche_sensitivities()
        g = greeks(self.fee_schedule, self._settle, self._discount, sens,
                   self._params.leg(fees=True), self._counterparty)
        return self._tranche.notional * g

    def protection_greeks(self) -> np.ndarray:
        """d protection_pv / d portfolio ordinates (currency units)."""
        sens = self._tranche_sensitivities()
        if self._tranche.funded:
            return np.zeros_like(np.asarray(sens.loss_gradient(self._settle), dtype=np.float64))
        g = greeks(self.protection_schedule, self._settle, self._discount, sens,
                   self._params.leg(fees=False), self._counterparty)
        return self._tranche.notional * g

    def pv_greeks(self) -> np.ndarray:
        """d pv / d portfolio ordinates (currency units)."""
        return self.fee_greeks() - self.protection_greeks()


# =============================================================================
# Credit Index
# =============================================================================

@dataclass(frozen=True)
class CreditIndexPricer:
    """
    Basket-additive credit index.

    Index value = notional x sum_i weight_i x CDS_i, where CDS_i is the value
    of a single-name CDS on name i paying the index premium, priced with the
    shared integrator. Names are independent, so they may be evaluated on a
    thread pool (see basket.basket_value); results do not depend on it.
    """
    curves: tuple[SurvivalCurve, ...]
    recoveries: tuple[float, ...]
    premium: float
    effective: float
    maturity: float
    discount: DiscountCurve
    settle: float
    weights: tuple[float, ...] | None = None
    frequency: int = 4
    notional: float = 1.0
    params: PricingParams = field(default_factory=PricingParams)
    parallel: bool = False
    max_workers: int | None = None
    _fee_schedule: Schedule = field(init=False, repr=False, compare=False)
    _protection_schedule: Schedule = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        curves = tuple(self.curves)
        recoveries = tuple(float(r) for r in self.recoveries)
        if not curves:
            raise InvalidInputError("index needs at least one name")
        if len(recoveries) != len(curves):
            raise InvalidInputError(
                f"need one recovery per name, got {len(recoveries)} for {len(curves)} names"
            )
        weights = (tuple(1.0 / len(curves) for _ in curves) if self.weights is None
                   else tuple(float(w) for w in self.weights))
        if len(weights) != len(curves):
            raise InvalidInputError(
                f"need one weight per name, got {len(weights)} for {len(curves)} names"
            )
        if self.discount is None:
            raise InvalidInputError("discount curve is required")
        object.__setattr__(self, "curves", curves)
        object.__setattr__(self, "recoveries", recoveries)
        object.__setattr__(self, "weights", weights)
        object.__setattr__(self, "_fee_schedule", regular_schedule(
            self.effective, self.maturity, self.frequency, coupon=self.premium))
        object.__setattr__(self, "_protection_schedule", protection_schedule(
            self.effective, self.maturity, self.frequency, contingent_amount=1.0))

    def _name_value(self, curve: SurvivalCurve, recovery: float, schedule: Schedule | None = None) -> float:
        model = SingleNameLossModel(curve, recovery)
        fee = price(schedule if schedule is not None else self._fee_schedule,
                    self.settle, self.discount, model, self.params.leg(fees=True))
        protection = price(self._protection_schedule, self.settle, self.discount, model,
                           self.params.leg(fees=False))
        return fee - protection

    def _value(self, curves: Sequence[SurvivalCurve], schedule: Schedule | None = None) -> float:
        if self.settle > self.maturity:
            warnings.warn(f"settle ({self.settle}) is after maturity ({self.maturity}), returning 0")
            return 0.0
        return self.notional * basket_value(
            lambda i: self._name_value(curves[i], self.recoveries[i], schedule),
            self.weights,
            parallel=self.parallel,
            max_workers=self.max_workers,
        )

    def name_values(self) -> np.ndarray:
        """Per-name CDS values (unit notional), indexed like curves."""
        return evaluate_names(
            lambda i: self._name_value(self.curves[i], self.recoveries[i]),
            len(self.curves),
            parallel=self.parallel,
            max_workers=self.max_workers,
        )

    def pv(self) -> float:
        """Index value from the protection seller's side."""
        return self._value(self.curves)

    def break_even_premium(
        self, lower: float = 0.0, upper: float = 1.0, settings: SolverSettings | None = None
    ) -> float:
        """Index premium at which pv() is zero."""

        def objective(premium: float) -> float:
            schedule = regular_schedule(self.effective, self.maturity, self.frequency, coupon=premium)
            return self._value(self.curves, schedule)

        return solve_bounded(objective, lower, upper, 0.0, settings)

    def implied_basis(
        self,
        market_value: float,
        lower: float | None = None,
        upper: float = 1.0,
        settings: SolverSettings | None = None,
    ) -> float:
        """Common hazard-rate shift that reprices the index to market_value."""
        return implied_basis(market_value, self.curves, self._value, lower, upper, settings)
