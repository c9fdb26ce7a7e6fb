"""
Unit tests for the bounded root finder and the premium/basis solvers.

Version: 0.1.0
Last Updated: 2026-10-19
Status: Active

FUNCTIONS UNDER TEST:
--------------------
- SolverSettings validation
- solve_bounded(objective, lower, upper, target, settings)
- break_even_premium(fee_schedule, protection_schedule, settle, discount, model, ...)
- implied_spread(target_pv, fee_schedule, protection_schedule, ...)
- implied_basis(target_pv, curves, value, lower, upper, settings)
"""

import math
import unittest

from credit_basket_pricing.curves import SurvivalCurve
from credit_basket_pricing.errors import (
    BracketError,
    ConvergenceError,
    InvalidInputError,
    SolverError,
)
from credit_basket_pricing.loss_models import SingleNameLossModel
from credit_basket_pricing.pricing import PricingParams, price
from credit_basket_pricing.schedule import protection_schedule, regular_schedule
from credit_basket_pricing.solvers import (
    SolverSettings,
    break_even_premium,
    implied_basis,
    implied_spread,
    solve_bounded,
)

from tests.utilities import flat_discount


def _fee_schedule(premium):
    return regular_schedule(0.0, 5.0, 4, coupon=premium)


PROTECTION = protection_schedule(0.0, 5.0, 4, 1.0)
PARAMS = PricingParams(accrued_fraction_on_default=1.0)


def _legs(premium, model):
    fee = price(_fee_schedule(premium), 0.0, flat_discount(), model,
                PricingParams(include_protection=False, accrued_fraction_on_default=1.0))
    protection = price(PROTECTION, 0.0, flat_discount(), model, PricingParams(include_fees=False))
    return fee, protection


class TestSolverSettings(unittest.TestCase):

    def test_defaults(self):
        s = SolverSettings()
        self.assertEqual(s.x_tolerance, 1e-6)
        self.assertEqual(s.f_tolerance, 1e-10)

    def test_invalid(self):
        for kwargs in [dict(x_tolerance=0.0), dict(f_tolerance=-1.0), dict(max_iterations=0)]:
            with self.subTest(**kwargs):
                with self.assertRaises(InvalidInputError):
                    SolverSettings(**kwargs)


class TestSolveBounded(unittest.TestCase):

    def test_root(self):
        root = solve_bounded(lambda x: x * x - 2.0, 0.0, 2.0)
        self.assertAlmostEqual(root, math.sqrt(2.0), delta=1e-6)

    def test_target(self):
        root = solve_bounded(lambda x: x ** 3, -1.0, 3.0, target=8.0)
        self.assertAlmostEqual(root, 2.0, delta=1e-6)

    def test_root_on_boundary(self):
        self.assertEqual(solve_bounded(lambda x: x - 1.0, 1.0, 2.0), 1.0)

    def test_cannot_bracket(self):
        with self.assertRaises(BracketError) as ctx:
            solve_bounded(lambda x: x * x + 1.0, -1.0, 1.0)
        self.assertIn("cannot bracket root", str(ctx.exception))
        self.assertIsInstance(ctx.exception, SolverError)
        self.assertIsInstance(ctx.exception, ValueError)

    def test_iteration_budget(self):
        settings = SolverSettings(x_tolerance=1e-15, f_tolerance=0.0, max_iterations=1)
        with self.assertRaises(ConvergenceError):
            solve_bounded(lambda x: math.cos(x) - x, 0.0, 1.0, settings=settings)

    def test_bad_interval(self):
        for lower, upper in [(1.0, 1.0), (2.0, 1.0), (0.0, math.inf)]:
            with self.subTest(lower=lower, upper=upper):
                with self.assertRaises(InvalidInputError):
                    solve_bounded(lambda x: x, lower, upper)


class TestPremiumSolvers(unittest.TestCase):

    def setUp(self):
        self.model = SingleNameLossModel(SurvivalCurve.flat(0.02), recovery=0.4)

    def test_break_even_reprices_to_zero(self):
        premium = break_even_premium(_fee_schedule, PROTECTION, 0.0, flat_discount(), self.model, PARAMS)
        fee, protection = _legs(premium, self.model)
        self.assertAlmostEqual(fee - protection, 0.0, delta=1e-8)
        # credit triangle: premium ~ hazard x (1 - R)
        self.assertAlmostEqual(premium, 0.012, delta=2e-4)

    def test_implied_spread(self):
        target = -0.01
        premium = implied_spread(target, _fee_schedule, PROTECTION, 0.0, flat_discount(),
                                 self.model, PARAMS)
        fee, protection = _legs(premium, self.model)
        self.assertAlmostEqual(fee - protection, target, delta=1e-8)

    def test_no_bracket(self):
        with self.assertRaises(BracketError):
            break_even_premium(_fee_schedule, PROTECTION, 0.0, flat_discount(), self.model, PARAMS,
                               lower=0.5, upper=1.0)


class TestImpliedBasis(unittest.TestCase):

    def setUp(self):
        self.curves = [SurvivalCurve.flat(0.01, "A"), SurvivalCurve.flat(0.03, "B")]

    def _value(self, curves):
        total = 0.0
        for curve in curves:
            fee, protection = _legs(0.01, SingleNameLossModel(curve, 0.4))
            total += 0.5 * (fee - protection)
        return total

    def test_recovers_shift(self):
        target = self._value([c.bumped(0.004) for c in self.curves])
        basis = implied_basis(target, self.curves, self._value, lower=-0.005, upper=0.05)
        self.assertAlmostEqual(basis, 0.004, delta=1e-5)
        # inputs untouched
        self.assertEqual(self.curves[0].hazard_rates, (0.01,))

    def test_default_floor(self):
        target = self._value([c.bumped(-0.005) for c in self.curves])
        basis = implied_basis(target, self.curves, self._value)
        self.assertAlmostEqual(basis, -0.005, delta=1e-5)

    def test_lower_below_floor(self):
        with self.assertRaises(InvalidInputError):
            implied_basis(0.0, self.curves, self._value, lower=-0.02)

    def test_no_curves(self):
        with self.assertRaises(InvalidInputError):
            implied_basis(0.0, [], self._value)


if __name__ == '__main__':
    unittest.main()
