# Requires Python 3.12+
"""
Credit Basket Pricing: credit-contingent cashflow valuation and sensitivities.

Prices fee and protection legs of basket credit products (CDO tranches,
indices, loans) from a cashflow schedule, an expected loss/balance model and
a discount curve, and propagates the same traversal into Greeks.
"""

from __future__ import annotations

__version__ = "0.1.0"

# Errors
from credit_basket_pricing.errors import (
    CreditPricingError,
    InvalidInputError,
    SolverError,
    BracketError,
    ConvergenceError,
    GradientShapeError,
)

# Schedules and the time axis
from credit_basket_pricing.schedule import (
    year_fraction,
    CashflowPeriod,
    DefaultSettlementRecord,
    Schedule,
    validate_schedule,
    as_schedule,
    regular_schedule,
    protection_schedule,
)

# Curve snapshots
from credit_basket_pricing.curves import (
    DiscountFunction,
    SurvivalFunction,
    DiscountCurve,
    SurvivalCurve,
)

# Loss/balance models
from credit_basket_pricing.amortization import (
    scheduled_balance_fraction,
    scheduled_balance_fractions,
)
from credit_basket_pricing.loss_models import (
    ExpectedLossModel,
    ExpectedLossSensitivityModel,
    InterpolatedLossCurve,
    SingleNameLossModel,
    TrancheLossModel,
    AmortizingLoanModel,
    tranche_slice,
    packed_size,
    pack_hessian,
    unpack_sensitivities,
)

# Valuation core
from credit_basket_pricing.pricing import (
    PricingParams,
    PeriodWeights,
    ProtectionStep,
    LegValues,
    period_weights,
    price,
    price_legs,
)
from credit_basket_pricing.greeks import greeks
from credit_basket_pricing.default_settlement import (
    default_settlement_pv,
    unsettled_accrual_adjustment,
)
from credit_basket_pricing.solvers import (
    SolverSettings,
    solve_bounded,
    break_even_premium,
    implied_spread,
    implied_basis,
)
from credit_basket_pricing.basket import (
    basket_value,
    evaluate_names,
)

# Product pricers
from credit_basket_pricing.tranche import (
    SyntheticTranche,
    TranchePricer,
    CreditIndexPricer,
)

__all__ = [
    "__version__",
    # Errors
    "CreditPricingError",
    "InvalidInputError",
    "SolverError",
    "BracketError",
    "ConvergenceError",
    "GradientShapeError",
    # Schedules
    "year_fraction",
    "CashflowPeriod",
    "DefaultSettlementRecord",
    "Schedule",
    "validate_schedule",
    "as_schedule",
    "regular_schedule",
    "protection_schedule",
    # Curves
    "DiscountFunction",
    "SurvivalFunction",
    "DiscountCurve",
    "SurvivalCurve",
    # Loss models
    "scheduled_balance_fraction",
    "scheduled_balance_fractions",
    "ExpectedLossModel",
    "ExpectedLossSensitivityModel",
    "InterpolatedLossCurve",
    "SingleNameLossModel",
    "TrancheLossModel",
    "AmortizingLoanModel",
    "tranche_slice",
    "packed_size",
    "pack_hessian",
    "unpack_sensitivities",
    # Core
    "PricingParams",
    "PeriodWeights",
    "ProtectionStep",
    "LegValues",
    "period_weights",
    "price",
    "price_legs",
    "greeks",
    "default_settlement_pv",
    "unsettled_accrual_adjustment",
    "SolverSettings",
    "solve_bounded",
    "break_even_premium",
    "implied_spread",
    "implied_basis",
    "basket_value",
    "evaluate_names",
    # Products
    "SyntheticTranche",
    "TranchePricer",
    "CreditIndexPricer",
]
