# Requires Python 3.12+
# Uses native type hints: list[x], tuple[x, y], X | None (PEP 585, PEP 604)
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from scipy.optimize import brentq

from .curves import DiscountFunction, SurvivalCurve, SurvivalFunction
from .errors import BracketError, ConvergenceError, InvalidInputError
from .loss_models import ExpectedLossModel
from .pricing import DEFAULT_PARAMS, PricingParams, price
from .schedule import CashflowPeriod, Schedule, as_schedule

__version__ = "0.1.0"


@dataclass(frozen=True)
class SolverSettings:
    """
    Tolerances for the bounded 1-D solver.

    - x_tolerance: absolute tolerance on the solved parameter (premium units)
    - f_tolerance: an objective within this distance of the target counts as
      converged (price units)
    - max_iterations: iteration budget before ConvergenceError
    """
    x_tolerance: float = 1e-6
    f_tolerance: float = 1e-10
    max_iterations: int = 100

    def __post_init__(self) -> None:
        if not self.x_tolerance > 0:
            raise InvalidInputError(f"x_tolerance must be positive, got {self.x_tolerance}")
        if not self.f_tolerance >= 0:
            raise InvalidInputError(f"f_tolerance must be non-negative, got {self.f_tolerance}")
        if self.max_iterations <= 0:
            raise InvalidInputError(f"max_iterations must be positive, got {self.max_iterations}")


DEFAULT_SETTINGS = SolverSettings()


# =============================================================================
# Bounded Root Finding
# =============================================================================

def solve_bounded(
    objective: Callable[[float], float],
    lower: float,
    upper: float,
    target: float = 0.0,
    settings: SolverSettings | None = None,
) -> float:
    """
    Find x in [lower, upper] with objective(x) == target.

    Uses Brent's method (scipy.optimize.brentq). brentq only stops early on
    an exact zero, so the shifted objective is snapped to 0 whenever it is
    within f_tolerance of the target; together with xtol this gives the
    two-sided tolerance callers configure through SolverSettings.

    Args:
        objective: Function of one float, typically a call into price()
        lower: Lower end of the search interval
        upper: Upper end of the search interval
        target: Value objective should reach
        settings: Tolerances and iteration budget

    Returns:
        Converged parameter value

    Raises:
        InvalidInputError: If the interval is empty or not finite
        BracketError: If objective - target has the same sign at both ends
        ConvergenceError: If the iteration budget is exhausted
    """
    if settings is None:
        settings = DEFAULT_SETTINGS
    if not (math.isfinite(lower) and math.isfinite(upper)) or lower >= upper:
        raise InvalidInputError(f"need finite lower < upper, got [{lower}, {upper}]")

    def shifted(x: float) -> float:
        f = objective(x) - target
        return 0.0 if abs(f) <= settings.f_tolerance else f

    f_lower = shifted(lower)
    if f_lower == 0.0:
        return lower
    f_upper = shifted(upper)
    if f_upper == 0.0:
        return upper
    if math.isnan(f_lower) or math.isnan(f_upper) or (f_lower > 0) == (f_upper > 0):
        raise BracketError(
            f"cannot bracket root in [{lower}, {upper}]: "
            f"objective - target is {f_lower} at lower and {f_upper} at upper"
        )

    try:
        return brentq(
            shifted,
            lower, upper,
            xtol=settings.x_tolerance,
            maxiter=settings.max_iterations
        )
    except RuntimeError as e:
        # brentq raises RuntimeError when maxiter is reached without convergence
        raise ConvergenceError(
            f"no convergence in {settings.max_iterations} iterations on [{lower}, {upper}]. "
            f"Original error: {e}"
        ) from e
    except ValueError as e:
        raise BracketError(f"cannot bracket root in [{lower}, {upper}]. Original error: {e}") from e


# =============================================================================
# Premium Solvers
# =============================================================================

def implied_spread(
    target_pv: float,
    fee_schedule: Callable[[float], Schedule | Iterable[CashflowPeriod]],
    protection_schedule: Schedule | Iterable[CashflowPeriod],
    settle: float,
    discount: DiscountFunction,
    model: ExpectedLossModel,
    params: PricingParams = DEFAULT_PARAMS,
    counterparty: SurvivalFunction | None = None,
    lower: float = 0.0,
    upper: float = 1.0,
    settings: SolverSettings | None = None,
) -> float:
    """
    Running premium at which fee PV - protection PV equals target_pv.

    The protection leg does not depend on the premium and is priced once;
    the fee leg is rebuilt by fee_schedule(premium) and repriced on every
    iteration. Values are per unit notional, from the protection seller's
    side (premium received, losses paid).

    Args:
        target_pv: Target value, e.g. an upfront quote expressed as a PV
        fee_schedule: Builds the fee-leg schedule for a given premium
        protection_schedule: Protection-leg schedule
        settle: Valuation settle time
        discount: Discount function
        model: Expected loss/balance model
        params: Pricing parameters (leg flags are overridden)
        counterparty: Optional counterparty survival function
        lower: Lowest premium searched
        upper: Highest premium searched
        settings: Solver tolerances

    Returns:
        Premium as a decimal running rate

    Raises:
        BracketError: No premium in [lower, upper] reaches target_pv
        ConvergenceError: Iteration budget exhausted
    """
    if fee_schedule is None:
        raise InvalidInputError("fee_schedule builder is required")
    if params is None:
        params = DEFAULT_PARAMS
    fee_params = params.leg(fees=True)
    protection = as_schedule(protection_schedule)
    protection_pv = price(protection, settle, discount, model,
                          params.leg(fees=False), counterparty)

    def objective(premium: float) -> float:
        fee_pv = price(fee_schedule(premium), settle, discount, model, fee_params, counterparty)
        return fee_pv - protection_pv

    return solve_bounded(objective, lower, upper, target_pv, settings)


def break_even_premium(
    fee_schedule: Callable[[float], Schedule | Iterable[CashflowPeriod]],
    protection_schedule: Schedule | Iterable[CashflowPeriod],
    settle: float,
    discount: DiscountFunction,
    model: ExpectedLossModel,
    params: PricingParams = DEFAULT_PARAMS,
    counterparty: SurvivalFunction | None = None,
    lower: float = 0.0,
    upper: float = 1.0,
    settings: SolverSettings | None = None,
) -> float:
    """Premium at which the fee leg and the protection leg have equal value."""
    return implied_spread(0.0, fee_schedule, protection_schedule, settle, discount, model,
                          params, counterparty, lower, upper, settings)


# =============================================================================
# Basis Solver
# =============================================================================

def implied_basis(
    target_pv: float,
    curves: Sequence[SurvivalCurve],
    value: Callable[[list[SurvivalCurve]], float],
    lower: float | None = None,
    upper: float = 1.0,
    settings: SolverSettings | None = None,
) -> float:
    """
    Additive hazard-rate shift on a set of survival curves that reprices a target.

    Every iteration bumps all curves by the same basis (new snapshots; the
    inputs are never modified) and calls value() on the shifted set. This is
    how an index or basket is brought in line with its market quote without
    recalibrating the names.

    Args:
        target_pv: Value to match
        curves: Survival curves to shift
        value: Prices a list of shifted curves (typically through price())
        lower: Most negative basis searched; defaults to minus the smallest
            hazard rate, so no shifted hazard goes negative
        upper: Largest basis searched
        settings: Solver tolerances

    Returns:
        The basis (hazard-rate units)

    Raises:
        InvalidInputError: No curves, or lower would make a hazard negative
        BracketError: No basis in [lower, upper] reaches target_pv
    """
    curves = list(curves) if curves is not None else []
    if not curves:
        raise InvalidInputError("at least one survival curve is required")
    if value is None:
        raise InvalidInputError("value function is required")
    floor = -min(min(c.hazard_rates) for c in curves)
    if lower is None:
        lower = floor
    elif lower < floor:
        raise InvalidInputError(
            f"lower basis {lower} would make a hazard rate negative (minimum allowed {floor})"
        )

    def objective(basis: float) -> float:
        return value([c.bumped(basis) for c in curves])

    return solve_bounded(objective, lower, upper, target_pv, settings)
