# Requires Python 3.12+
# Uses native type hints: list[x], tuple[x, y], X | None (PEP 585, PEP 604)
"""
Expected loss and balance models consumed by the pricing integrator.

The integrator depends on two small capabilities rather than on any basket
model class:

- ExpectedLossModel: cumulative_loss(t) and cumulative_balance(t), both as
  fractions of the (tranche) notional.
- ExpectedLossSensitivityModel: the two scalar methods plus loss_gradient(t)
  and balance_gradient(t), vectors with one entry per curve ordinate,
  optionally followed by packed second-derivative terms (see pack_hessian).

Loss and balance are separate on purpose. Loss is what the protection leg
pays on; balance is what the fee leg accrues on. Amortization (scheduled
principal, prepayment, recoveries written off from the top of the capital
structure) lowers balance without being loss, so in general
cumulative_balance(t) != 1 - cumulative_loss(t).

Every sensitivity view in this module also exposes the scalar methods of the
model it was built from, so the propagator can apply the same degenerate-case
checks as the scalar integrator.
"""

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass, field, replace
from typing import Protocol, runtime_checkable

import numpy as np

from .amortization import scheduled_balance_fraction, scheduled_balance_fractions
from .curves import SurvivalCurve
from .errors import InvalidInputError

__version__ = "0.1.0"

# Tranches thinner than this are treated as zero width.
MIN_TRANCHE_WIDTH = 1e-12


# =============================================================================
# Protocols
# =============================================================================

@runtime_checkable
class ExpectedLossModel(Protocol):
    """Scalar loss/balance capability implemented by every basket model."""

    def cumulative_loss(self, t: float) -> float:
        """Expected cumulative loss at t, fraction of notional, non-decreasing in t."""
        ...

    def cumulative_balance(self, t: float) -> float:
        """Expected surviving balance at t, fraction of notional, non-increasing in t."""
        ...


@runtime_checkable
class ExpectedLossSensitivityModel(ExpectedLossModel, Protocol):
    """
    Vector-valued counterpart of ExpectedLossModel for the sensitivity propagator.

    It keeps the scalar methods of the model it differentiates, so the
    propagator can apply the same exhausted-balance check as the integrator.
    """

    def loss_gradient(self, t: float) -> np.ndarray:
        """d cumulative_loss(t) / d ordinate_k (plus optional packed Hessian terms)."""
        ...

    def balance_gradient(self, t: float) -> np.ndarray:
        """d cumulative_balance(t) / d ordinate_k (plus optional packed Hessian terms)."""
        ...


# =============================================================================
# Hessian Packing
# =============================================================================

def packed_size(n: int, with_hessian: bool = True) -> int:
    """Length of a sensitivity vector for n ordinates."""
    return n + n * (n + 1) // 2 if with_hessian else n


def pack_hessian(gradient: np.ndarray, hessian: np.ndarray) -> np.ndarray:
    """
    Append the upper triangle (row-major, diagonal included) of a symmetric
    Hessian to a gradient vector.
    """
    gradient = np.asarray(gradient, dtype=np.float64)
    hessian = np.asarray(hessian, dtype=np.float64)
    n = gradient.shape[0]
    if hessian.shape != (n, n):
        raise InvalidInputError(f"hessian must be {n}x{n}, got {hessian.shape}")
    return np.concatenate([gradient, hessian[np.triu_indices(n)]])


def unpack_sensitivities(vector: np.ndarray, n: int) -> tuple[np.ndarray, np.ndarray | None]:
    """
    Split a sensitivity vector into (gradient, full symmetric Hessian or None).

    Raises:
        InvalidInputError: If the length matches neither n nor the packed size
    """
    vector = np.asarray(vector, dtype=np.float64)
    if vector.shape[0] == n:
        return vector.copy(), None
    if vector.shape[0] != packed_size(n):
        raise InvalidInputError(
            f"sensitivity vector of length {vector.shape[0]} does not match "
            f"{n} ordinates (expected {n} or {packed_size(n)})"
        )
    hessian = np.zeros((n, n))
    rows, cols = np.triu_indices(n)
    hessian[rows, cols] = vector[n:]
    hessian[cols, rows] = vector[n:]
    return vector[:n].copy(), hessian


# =============================================================================
# Interpolated Loss Curve
# =============================================================================

@dataclass(frozen=True)
class InterpolatedLossCurve:
    """
    Piecewise-linear loss and amortization ordinates on a time grid.

    cumulative_loss(t) = interp(t, times, losses)
    cumulative_balance(t) = 1 - loss(t) - amortization(t)

    Flat extrapolation on both sides. This is the shape most basket models
    produce: expected tranche loss tabulated on a date grid.
    """
    times: tuple[float, ...]
    losses: tuple[float, ...]
    amortizations: tuple[float, ...] | None = None

    def __post_init__(self) -> None:
        times = tuple(float(t) for t in self.times)
        losses = tuple(float(x) for x in self.losses)
        amorts = (tuple(0.0 for _ in losses) if self.amortizations is None
                  else tuple(float(x) for x in self.amortizations))
        if not times:
            raise InvalidInputError("loss curve has no ordinates")
        if not (len(times) == len(losses) == len(amorts)):
            raise InvalidInputError("times, losses and amortizations must have the same length")
        if not all(math.isfinite(v) for v in times + losses + amorts):
            raise InvalidInputError("loss curve contains non-finite values")
        for i in range(1, len(times)):
            if times[i] <= times[i - 1]:
                raise InvalidInputError("times must be strictly increasing")
            if losses[i] < losses[i - 1]:
                raise InvalidInputError(
                    f"losses must be non-decreasing, got {losses[i]} after {losses[i - 1]} at index {i}"
                )
            if amorts[i] < amorts[i - 1]:
                raise InvalidInputError(
                    f"amortizations must be non-decreasing, got {amorts[i]} after {amorts[i - 1]} at index {i}"
                )
        for loss, amort in zip(losses, amorts):
            if loss < 0 or amort < 0 or loss + amort > 1.0 + 1e-12:
                raise InvalidInputError(
                    f"loss ({loss}) and amortization ({amort}) must be non-negative and sum to at most 1"
                )
        object.__setattr__(self, "times", times)
        object.__setattr__(self, "losses", losses)
        object.__setattr__(self, "amortizations", amorts)

    @classmethod
    def riskless(cls) -> InterpolatedLossCurve:
        """Zero loss, full balance at all times."""
        return cls(times=(0.0,), losses=(0.0,))

    @property
    def size(self) -> int:
        return len(self.times)

    def cumulative_loss(self, t: float) -> float:
        return float(np.interp(t, self.times, self.losses))

    def cumulative_amortization(self, t: float) -> float:
        return float(np.interp(t, self.times, self.amortizations))

    def cumulative_balance(self, t: float) -> float:
        return 1.0 - self.cumulative_loss(t) - self.cumulative_amortization(t)

    def bumped_at(self, index: int, bump: float) -> InterpolatedLossCurve:
        """New curve with losses[index] shifted by bump."""
        if not 0 <= index < self.size:
            raise InvalidInputError(f"index must be in [0, {self.size}), got {index}")
        losses = list(self.losses)
        losses[index] += bump
        return replace(self, losses=tuple(losses))

    def interpolation_weights(self, t: float) -> np.ndarray:
        """Weights w with loss(t) = w . losses (linear interpolation, flat ends)."""
        n = self.size
        w = np.zeros(n)
        if t <= self.times[0]:
            w[0] = 1.0
        elif t >= self.times[-1]:
            w[-1] = 1.0
        else:
            i = int(np.searchsorted(self.times, t, side="right")) - 1
            lam = (t - self.times[i]) / (self.times[i + 1] - self.times[i])
            w[i] = 1.0 - lam
            w[i + 1] = lam
        return w

    def sensitivities(self) -> InterpolatedLossSensitivity:
        """Gradient view with respect to the loss ordinates."""
        return InterpolatedLossSensitivity(self)


class InterpolatedLossSensitivity:
    """d loss / d losses[k] are the interpolation weights; balance moves opposite."""

    def __init__(self, curve: InterpolatedLossCurve) -> None:
        self.curve = curve

    def cumulative_loss(self, t: float) -> float:
        return self.curve.cumulative_loss(t)

    def cumulative_balance(self, t: float) -> float:
        return self.curve.cumulative_balance(t)

    def loss_gradient(self, t: float) -> np.ndarray:
        return self.curve.interpolation_weights(t)

    def balance_gradient(self, t: float) -> np.ndarray:
        return -self.curve.interpolation_weights(t)


# =============================================================================
# Single Name
# =============================================================================

@dataclass(frozen=True)
class SingleNameLossModel:
    """
    One reference name: loss (1 - R)(1 - S(t)), balance S(t).

    Used for single-name CDS legs and as the per-name model of a
    basket-additive index.
    """
    survival_curve: SurvivalCurve
    recovery: float = 0.4

    def __post_init__(self) -> None:
        if self.survival_curve is None:
            raise InvalidInputError("survival_curve is required")
        if not 0.0 <= self.recovery <= 1.0:
            raise InvalidInputError(f"recovery must be in [0, 1], got {self.recovery}")

    def cumulative_loss(self, t: float) -> float:
        return (1.0 - self.recovery) * (1.0 - self.survival_curve.survival(t))

    def cumulative_balance(self, t: float) -> float:
        return self.survival_curve.survival(t)

    def sensitivities(self, with_hessian: bool = False) -> SingleNameSensitivity:
        """Gradient view with respect to each hazard rate."""
        return SingleNameSensitivity(self, with_hessian)


class SingleNameSensitivity:
    """
    Hazard-rate sensitivities of a single name.

    With x = exposure(t) and S = S(t):
        dS/dh_k        = -S x_k
        d2S/dh_i dh_j  =  S x_i x_j
    Loss derivatives are -(1 - R) times the survival ones.
    """

    def __init__(self, model: SingleNameLossModel, with_hessian: bool = False) -> None:
        self.model = model
        self.with_hessian = with_hessian

    @property
    def size(self) -> int:
        return packed_size(self.model.survival_curve.size, self.with_hessian)

    def cumulative_loss(self, t: float) -> float:
        return self.model.cumulative_loss(t)

    def cumulative_balance(self, t: float) -> float:
        return self.model.cumulative_balance(t)

    def _survival_derivatives(self, t: float) -> np.ndarray:
        curve = self.model.survival_curve
        s = curve.survival(t)
        x = curve.exposure(t)
        grad = -s * x
        if not self.with_hessian:
            return grad
        return pack_hessian(grad, s * np.outer(x, x))

    def loss_gradient(self, t: float) -> np.ndarray:
        return -(1.0 - self.model.recovery) * self._survival_derivatives(t)

    def balance_gradient(self, t: float) -> np.ndarray:
        return self._survival_derivatives(t)


# =============================================================================
# Tranche Slicing
# =============================================================================

def tranche_slice(attachment: float, detachment: float, portfolio_level: float) -> float:
    """Portion of [attachment, detachment] covered by portfolio_level, unnormalized."""
    return min(max(portfolio_level - attachment, 0.0), detachment - attachment)


@dataclass(frozen=True)
class TrancheLossModel:
    """
    Tranche view of a portfolio loss/balance path.

    Losses consume the tranche from the attachment upwards; amortization
    (recoveries, prepayments) consumes it from the top, 1 - detachment down:

        tranche_loss(t)  = slice(a, d, L(t)) / (d - a)
        tranche_amort(t) = slice(1 - d, 1 - a, A(t)) / (d - a)
        tranche_balance  = 1 - tranche_loss - tranche_amort

    where A(t) = 1 - L(t) - B(t) is the portfolio amortization. Applying the
    slice to the expected path is exact for a deterministic pool; a
    stochastic basket model would supply expected tranche values directly.
    A zero-width tranche has zero loss and zero balance.
    """
    portfolio: ExpectedLossModel
    attachment: float
    detachment: float

    def __post_init__(self) -> None:
        if self.portfolio is None:
            raise InvalidInputError("portfolio model is required")
        if not 0.0 <= self.attachment <= self.detachment <= 1.0:
            raise InvalidInputError(
                f"need 0 <= attachment <= detachment <= 1, got "
                f"attachment={self.attachment}, detachment={self.detachment}"
            )

    @property
    def width(self) -> float:
        return self.detachment - self.attachment

    def _portfolio_levels(self, t: float) -> tuple[float, float]:
        loss = self.portfolio.cumulative_loss(t)
        amort = 1.0 - loss - self.portfolio.cumulative_balance(t)
        return loss, max(amort, 0.0)

    def cumulative_loss(self, t: float) -> float:
        if self.width < MIN_TRANCHE_WIDTH:
            return 0.0
        loss, _ = self._portfolio_levels(t)
        return tranche_slice(self.attachment, self.detachment, loss) / self.width

    def cumulative_balance(self, t: float) -> float:
        if self.width < MIN_TRANCHE_WIDTH:
            return 0.0
        loss, amort = self._portfolio_levels(t)
        tranche_loss = tranche_slice(self.attachment, self.detachment, loss)
        tranche_amort = tranche_slice(1.0 - self.detachment, 1.0 - self.attachment, amort)
        return max(1.0 - (tranche_loss + tranche_amort) / self.width, 0.0)

    def sensitivities(self, portfolio_sensitivities: ExpectedLossSensitivityModel) -> TrancheLossSensitivity:
        """Chain the portfolio gradients through the tranche slice."""
        return TrancheLossSensitivity(self, portfolio_sensitivities)


class TrancheLossSensitivity:
    """
    Tranche gradients from portfolio gradients.

    The slice is piecewise linear in the portfolio level, so its derivative is
    1 / width inside the tranche and 0 outside. Second-order terms carried in
    the portfolio vectors are scaled the same way (the kinks contribute
    nothing away from the attachment points).
    """

    def __init__(self, model: TrancheLossModel, portfolio: ExpectedLossSensitivityModel) -> None:
        self.model = model
        self.portfolio = portfolio

    def cumulative_loss(self, t: float) -> float:
        return self.model.cumulative_loss(t)

    def cumulative_balance(self, t: float) -> float:
        return self.model.cumulative_balance(t)

    def _slopes(self, t: float) -> tuple[float, float]:
        m = self.model
        if m.width < MIN_TRANCHE_WIDTH:
            return 0.0, 0.0
        loss, amort = m._portfolio_levels(t)
        loss_slope = 1.0 / m.width if m.attachment < loss < m.detachment else 0.0
        amort_slope = 1.0 / m.width if 1.0 - m.detachment < amort < 1.0 - m.attachment else 0.0
        return loss_slope, amort_slope

    def loss_gradient(self, t: float) -> np.ndarray:
        loss_slope, _ = self._slopes(t)
        return loss_slope * np.asarray(self.portfolio.loss_gradient(t), dtype=np.float64)

    def balance_gradient(self, t: float) -> np.ndarray:
        loss_slope, amort_slope = self._slopes(t)
        d_loss = np.asarray(self.portfolio.loss_gradient(t), dtype=np.float64)
        d_balance = np.asarray(self.portfolio.balance_gradient(t), dtype=np.float64)
        d_amort = -d_loss - d_balance
        return -(loss_slope * d_loss + amort_slope * d_amort)


# =============================================================================
# Amortizing Loan
# =============================================================================

@dataclass(frozen=True)
class AmortizingLoanModel:
    """
    Level-payment loan subject to default.

    balance(t) = S(t) BAL(t)
    loss(t)    = (1 - R) sum_j BAL(u_j*) [S(u_j) - S(u_{j+1})]   over u_{j+1} <= t

    BAL is the scheduled balance (see amortization.scheduled_balance_fraction)
    and u is the payment grid; a default in (u_j, u_{j+1}] loses the balance
    outstanding at the grid midpoint u_j*. Loss is linear between grid
    points. Scheduled amortization lowers balance without adding loss, so
    balance + loss < 1 for any t > 0 with a positive coupon.
    """
    survival_curve: SurvivalCurve
    recovery: float
    coupon: float
    original_term: float
    payments_per_year: int = 12
    _grid: np.ndarray = field(init=False, repr=False, compare=False)
    _losses: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.survival_curve is None:
            raise InvalidInputError("survival_curve is required")
        if not 0.0 <= self.recovery <= 1.0:
            raise InvalidInputError(f"recovery must be in [0, 1], got {self.recovery}")
        if self.original_term <= 0:
            raise InvalidInputError(f"original_term must be positive, got {self.original_term}")
        if self.payments_per_year <= 0:
            raise InvalidInputError(f"payments_per_year must be positive, got {self.payments_per_year}")
        n = int(math.ceil(self.original_term * self.payments_per_year - 1e-9))
        grid = np.minimum(np.arange(n + 1, dtype=np.float64) / self.payments_per_year,
                          self.original_term)
        survival = np.array([self.survival_curve.survival(u) for u in grid])
        if self.coupon == 0.0:
            warnings.warn("coupon is zero, returning straight-line amortization")
        mids = 0.5 * (grid[:-1] + grid[1:])
        bal = scheduled_balance_fractions(self.coupon, self.original_term, mids,
                                          self.payments_per_year, warn=False)
        increments = (1.0 - self.recovery) * bal * (survival[:-1] - survival[1:])
        losses = np.concatenate(([0.0], np.cumsum(increments)))
        object.__setattr__(self, "_grid", grid)
        object.__setattr__(self, "_losses", losses)

    def cumulative_loss(self, t: float) -> float:
        return float(np.interp(t, self._grid, self._losses))

    def cumulative_balance(self, t: float) -> float:
        bal = scheduled_balance_fraction(
            self.coupon, self.original_term, t, self.payments_per_year, warn=False
        )
        return self.survival_curve.survival(t) * bal
