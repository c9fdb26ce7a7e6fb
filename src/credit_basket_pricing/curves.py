# Requires Python 3.12+
# Uses native type hints: list[x], tuple[x, y], X | None (PEP 585, PEP 604)
"""
Discount and survival curve snapshots.

Curves are immutable: every "mutation" (a bump for sensitivities, a shift for
an implied-basis solve) returns a new snapshot with `version` incremented, so
pricers can share a curve without cloning it and can tell when an input they
memoized against has been replaced.

Conventions:
- Times are year fractions from the valuation anchor.
- DiscountCurve holds continuously compounded zero rates, linearly
  interpolated in rate with flat extrapolation.
- SurvivalCurve holds piecewise-constant hazard rates; hazard_rates[k]
  applies on (pillars[k-1], pillars[k]] (from 0 for k = 0) and the last hazard
  extends beyond the final pillar.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Protocol, runtime_checkable

import numpy as np

from .errors import InvalidInputError

__version__ = "0.1.0"


# =============================================================================
# Protocols
# =============================================================================

@runtime_checkable
class DiscountFunction(Protocol):
    """Anything that can discount between two times."""

    def discount_factor(self, t1: float, t2: float) -> float:
        """Discount factor from t1 to t2; 1.0 when t1 == t2."""
        ...


@runtime_checkable
class SurvivalFunction(Protocol):
    """Anything that gives a non-increasing survival probability from the anchor."""

    def survival(self, t: float) -> float:
        """Survival probability to t, in [0, 1]."""
        ...


def _as_tuple(name: str, values) -> tuple[float, ...]:
    try:
        out = tuple(float(v) for v in values)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"{name} must be a sequence of numbers: {e}") from e
    if not all(math.isfinite(v) for v in out):
        raise InvalidInputError(f"{name} contains non-finite values")
    return out


def _check_pillars(pillars: tuple[float, ...], values: tuple[float, ...], values_name: str) -> None:
    if not pillars:
        raise InvalidInputError("curve has no pillars")
    if len(pillars) != len(values):
        raise InvalidInputError(f"pillars and {values_name} must have the same length")
    for i in range(1, len(pillars)):
        if pillars[i] <= pillars[i - 1]:
            raise InvalidInputError("pillars must be strictly increasing")


# =============================================================================
# Discount Curve
# =============================================================================

@dataclass(frozen=True)
class DiscountCurve:
    """Continuously compounded zero-rate curve (linear in rates, flat extrapolation)."""
    name: str
    pillars: tuple[float, ...]
    zero_rates: tuple[float, ...]
    version: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "pillars", _as_tuple("pillars", self.pillars))
        object.__setattr__(self, "zero_rates", _as_tuple("zero_rates", self.zero_rates))
        _check_pillars(self.pillars, self.zero_rates, "zero_rates")

    @classmethod
    def flat(cls, rate: float, name: str = "FLAT") -> DiscountCurve:
        """Single-pillar curve with a constant CC zero rate."""
        return cls(name=name, pillars=(1.0,), zero_rates=(rate,))

    def zero_rate(self, t: float) -> float:
        """CC zero rate at time t."""
        return float(np.interp(t, self.pillars, self.zero_rates))

    def df(self, t: float) -> float:
        """Discount factor from the anchor to t: exp(-r(t) t)."""
        return math.exp(-self.zero_rate(t) * t)

    def discount_factor(self, t1: float, t2: float) -> float:
        """Forward discount factor from t1 to t2 (1.0 when t1 == t2)."""
        if t1 == t2:
            return 1.0
        return self.df(t2) / self.df(t1)

    def bumped(self, bump: float) -> DiscountCurve:
        """New snapshot with a parallel additive shift to all zero rates."""
        return replace(
            self,
            zero_rates=tuple(r + bump for r in self.zero_rates),
            version=self.version + 1,
        )


# =============================================================================
# Survival Curve
# =============================================================================

@dataclass(frozen=True)
class SurvivalCurve:
    """
    Piecewise-constant hazard curve.

    S(t) = exp(-sum_k h_k x_k(t)) where x_k(t) is the time spent in hazard
    segment k up to t (see exposure). A set default_time marks a defaulted
    name: S(t) = 1 before it and 0 from it on, regardless of hazards.
    """
    name: str
    pillars: tuple[float, ...]
    hazard_rates: tuple[float, ...]
    default_time: float | None = None
    version: int = 0
    _bounds: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "pillars", _as_tuple("pillars", self.pillars))
        object.__setattr__(self, "hazard_rates", _as_tuple("hazard_rates", self.hazard_rates))
        _check_pillars(self.pillars, self.hazard_rates, "hazard_rates")
        if any(h < 0 for h in self.hazard_rates):
            raise InvalidInputError("hazard_rates must be non-negative")
        if self.default_time is not None and not math.isfinite(self.default_time):
            raise InvalidInputError(f"default_time must be finite, got {self.default_time}")
        # Segment k spans [bounds[k], bounds[k+1]]; the last one is open-ended.
        bounds = np.concatenate(([0.0], self.pillars[:-1], [np.inf]))
        object.__setattr__(self, "_bounds", bounds)

    @classmethod
    def flat(cls, hazard_rate: float, name: str = "FLAT") -> SurvivalCurve:
        """Single-segment curve with a constant hazard rate."""
        return cls(name=name, pillars=(1.0,), hazard_rates=(hazard_rate,))

    @property
    def size(self) -> int:
        """Number of hazard ordinates."""
        return len(self.hazard_rates)

    @property
    def is_defaulted(self) -> bool:
        return self.default_time is not None

    def exposure(self, t: float) -> np.ndarray:
        """
        Time spent in each hazard segment over [0, t].

        This is also -d log S(t) / d h_k, the weight used for hazard-rate
        sensitivities.
        """
        if t <= 0:
            return np.zeros(self.size)
        lo = self._bounds[:-1]
        hi = np.minimum(self._bounds[1:], t)
        return np.maximum(hi - lo, 0.0)

    def survival(self, t: float) -> float:
        """Survival probability from the anchor to t."""
        if self.default_time is not None and t >= self.default_time:
            return 0.0
        if t <= 0:
            return 1.0
        return math.exp(-float(np.dot(self.hazard_rates, self.exposure(t))))

    def survival_between(self, t1: float, t2: float) -> float:
        """Survival to t2 conditional on survival to t1 (0 if already defaulted at t1)."""
        s1 = self.survival(t1)
        if s1 <= 0.0:
            return 0.0
        return self.survival(t2) / s1

    def bumped(self, bump: float) -> SurvivalCurve:
        """New snapshot with a parallel additive shift to all hazard rates."""
        return replace(
            self,
            hazard_rates=tuple(h + bump for h in self.hazard_rates),
            version=self.version + 1,
        )

    def bumped_at(self, index: int, bump: float) -> SurvivalCurve:
        """New snapshot with hazard_rates[index] shifted by bump."""
        if not 0 <= index < self.size:
            raise InvalidInputError(f"index must be in [0, {self.size}), got {index}")
        rates = list(self.hazard_rates)
        rates[index] += bump
        return replace(self, hazard_rates=tuple(rates), version=self.version + 1)

    def defaulted_at(self, default_time: float) -> SurvivalCurve:
        """New snapshot marking the name as defaulted at default_time."""
        return replace(self, default_time=default_time, version=self.version + 1)
