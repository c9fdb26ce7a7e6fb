"""
Unit tests for the expected loss/balance models and scheduled amortization.

Version: 0.1.0
Last Updated: 2026-10-19
Status: Active

================================================================================
LOSS VERSUS BALANCE
================================================================================

    Loss feeds the protection leg, balance feeds the fee leg. They are only
    complements when nothing amortizes:

        balance(t) = 1 - loss(t) - amortization(t)

    The loan model makes the gap explicit: scheduled principal leaves the
    balance without ever being booked as loss.

FUNCTIONS UNDER TEST:
--------------------
- scheduled_balance_fraction / scheduled_balance_fractions
- InterpolatedLossCurve (+ sensitivities)
- SingleNameLossModel (+ sensitivities, packed Hessian)
- tranche_slice / TrancheLossModel (+ sensitivities)
- AmortizingLoanModel
- packed_size / pack_hessian / unpack_sensitivities
"""

import math
import unittest
import warnings

import numpy as np

from credit_basket_pricing.amortization import (
    scheduled_balance_fraction,
    scheduled_balance_fractions,
)
from credit_basket_pricing.curves import SurvivalCurve
from credit_basket_pricing.errors import InvalidInputError
from credit_basket_pricing.loss_models import (
    AmortizingLoanModel,
    ExpectedLossModel,
    ExpectedLossSensitivityModel,
    InterpolatedLossCurve,
    SingleNameLossModel,
    TrancheLossModel,
    pack_hessian,
    packed_size,
    tranche_slice,
    unpack_sensitivities,
)
from credit_basket_pricing.pricing import PricingParams, price
from credit_basket_pricing.schedule import regular_schedule

from tests.utilities import (
    amortizing_portfolio_curve,
    flat_discount,
    portfolio_loss_curve,
    term_survival_curve,
)


class TestScheduledBalance(unittest.TestCase):
    """Level-payment scheduled balance (BAL) in continuous time."""

    def test_boundaries(self):
        self.assertEqual(scheduled_balance_fraction(8.0, 30, 0.0), 1.0)
        self.assertEqual(scheduled_balance_fraction(8.0, 30, 30.0), 0.0)
        self.assertEqual(scheduled_balance_fraction(8.0, 30, 31.0), 0.0)

    def test_formula(self):
        r = 8.0 / 1200.0
        expected = (1 - (1 + r) ** -348) / (1 - (1 + r) ** -360)
        self.assertAlmostEqual(scheduled_balance_fraction(8.0, 30, 1.0), expected, places=14)

    def test_vector_matches_scalar(self):
        times = np.array([0.0, 0.5, 1.0, 7.25, 29.9, 30.0])
        vec = scheduled_balance_fractions(6.5, 30, times)
        for t, v in zip(times, vec):
            with self.subTest(t=t):
                self.assertAlmostEqual(v, scheduled_balance_fraction(6.5, 30, t), places=14)

    def test_zero_coupon_warns(self):
        with self.assertWarns(UserWarning):
            bal = scheduled_balance_fraction(0.0, 10, 2.5)
        self.assertAlmostEqual(bal, 0.75, places=15)

    def test_zero_coupon_silent_when_asked(self):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            bal = scheduled_balance_fraction(0.0, 10, 2.5, warn=False)
            vec = scheduled_balance_fractions(0.0, 10, np.array([2.5, 5.0]), warn=False)
        self.assertEqual(caught, [])
        self.assertAlmostEqual(bal, 0.75, places=15)
        np.testing.assert_allclose(vec, [0.75, 0.5], rtol=0, atol=1e-15)

    def test_invalid(self):
        for args in [(8.0, 0, 1.0), (-1.0, 30, 1.0)]:
            with self.subTest(args=args):
                with self.assertRaises(InvalidInputError):
                    scheduled_balance_fraction(*args)


class TestInterpolatedLossCurve(unittest.TestCase):

    def test_values(self):
        curve = amortizing_portfolio_curve()
        self.assertAlmostEqual(curve.cumulative_loss(1.5), 0.025, places=15)
        self.assertAlmostEqual(curve.cumulative_amortization(1.5), 0.0175, places=15)
        self.assertAlmostEqual(curve.cumulative_balance(1.5), 1.0 - 0.025 - 0.0175, places=15)
        # flat beyond the grid
        self.assertAlmostEqual(curve.cumulative_loss(9.0), 0.085, places=15)

    def test_riskless(self):
        curve = InterpolatedLossCurve.riskless()
        for t in (0.0, 1.0, 10.0):
            with self.subTest(t=t):
                self.assertEqual(curve.cumulative_loss(t), 0.0)
                self.assertEqual(curve.cumulative_balance(t), 1.0)

    def test_invalid(self):
        cases = [
            ("empty", dict(times=(), losses=())),
            ("length mismatch", dict(times=(0.0, 1.0), losses=(0.0,))),
            ("decreasing loss", dict(times=(0.0, 1.0), losses=(0.1, 0.05))),
            ("times not increasing", dict(times=(1.0, 1.0), losses=(0.0, 0.1))),
            ("loss above one", dict(times=(0.0, 1.0), losses=(0.0, 0.7), amortizations=(0.0, 0.4))),
            ("negative loss", dict(times=(0.0,), losses=(-0.1,))),
        ]
        for name, kwargs in cases:
            with self.subTest(case=name):
                with self.assertRaises(InvalidInputError):
                    InterpolatedLossCurve(**kwargs)

    def test_gradient_is_interpolation_weights(self):
        curve = portfolio_loss_curve()
        sens = curve.sensitivities()
        self.assertIsInstance(sens, ExpectedLossSensitivityModel)
        self.assertIsInstance(sens, ExpectedLossModel)
        w = sens.loss_gradient(2.25)
        np.testing.assert_allclose(w, [0, 0, 0.75, 0.25, 0, 0], atol=1e-15)
        np.testing.assert_allclose(sens.balance_gradient(2.25), -w, atol=1e-15)
        self.assertAlmostEqual(float(np.dot(w, curve.losses)), curve.cumulative_loss(2.25), places=15)


class TestSingleNameLossModel(unittest.TestCase):

    def setUp(self):
        self.model = SingleNameLossModel(term_survival_curve(), recovery=0.4)

    def test_loss_and_balance(self):
        s = self.model.survival_curve.survival(2.0)
        self.assertAlmostEqual(self.model.cumulative_balance(2.0), s, places=15)
        self.assertAlmostEqual(self.model.cumulative_loss(2.0), 0.6 * (1.0 - s), places=15)

    def test_invalid(self):
        with self.assertRaises(InvalidInputError):
            SingleNameLossModel(term_survival_curve(), recovery=1.5)
        with self.assertRaises(InvalidInputError):
            SingleNameLossModel(None)

    def test_gradient_matches_bumps(self):
        sens = self.model.sensitivities()
        t, eps = 4.0, 1e-6
        grad = sens.balance_gradient(t)
        self.assertEqual(grad.shape, (3,))
        for k in range(3):
            with self.subTest(k=k):
                up = SingleNameLossModel(self.model.survival_curve.bumped_at(k, eps), 0.4)
                down = SingleNameLossModel(self.model.survival_curve.bumped_at(k, -eps), 0.4)
                fd = (up.cumulative_balance(t) - down.cumulative_balance(t)) / (2 * eps)
                self.assertAlmostEqual(grad[k], fd, places=8)
                fd_loss = (up.cumulative_loss(t) - down.cumulative_loss(t)) / (2 * eps)
                self.assertAlmostEqual(sens.loss_gradient(t)[k], fd_loss, places=8)

    def test_packed_hessian(self):
        sens = self.model.sensitivities(with_hessian=True)
        self.assertEqual(sens.size, packed_size(3))
        vector = sens.balance_gradient(4.0)
        self.assertEqual(vector.shape, (9,))
        grad, hess = unpack_sensitivities(vector, 3)
        s = self.model.survival_curve.survival(4.0)
        x = self.model.survival_curve.exposure(4.0)
        np.testing.assert_allclose(grad, -s * x, atol=1e-15)
        np.testing.assert_allclose(hess, s * np.outer(x, x), atol=1e-15)


class TestHessianPacking(unittest.TestCase):

    def test_round_trip(self):
        grad = np.array([1.0, 2.0])
        hess = np.array([[3.0, 4.0], [4.0, 5.0]])
        packed = pack_hessian(grad, hess)
        np.testing.assert_array_equal(packed, [1.0, 2.0, 3.0, 4.0, 5.0])
        g, h = unpack_sensitivities(packed, 2)
        np.testing.assert_array_equal(g, grad)
        np.testing.assert_array_equal(h, hess)

    def test_gradient_only(self):
        g, h = unpack_sensitivities(np.array([1.0, 2.0]), 2)
        self.assertIsNone(h)

    def test_bad_shapes(self):
        with self.assertRaises(InvalidInputError):
            pack_hessian(np.zeros(2), np.zeros((3, 3)))
        with self.assertRaises(InvalidInputError):
            unpack_sensitivities(np.zeros(4), 2)


class TestTrancheLossModel(unittest.TestCase):

    def test_tranche_slice(self):
        cases = [(0.01, 0.0), (0.04, 0.01), (0.10, 0.04)]
        for level, expected in cases:
            with self.subTest(level=level):
                self.assertAlmostEqual(tranche_slice(0.03, 0.07, level), expected, places=15)

    def test_losses_from_bottom(self):
        tranche = TrancheLossModel(portfolio_loss_curve(), 0.03, 0.07)
        cases = [(1.0, 0.0, 1.0), (2.5, 0.5, 0.5), (4.0, 1.0, 0.0)]
        for t, loss, balance in cases:
            with self.subTest(t=t):
                self.assertAlmostEqual(tranche.cumulative_loss(t), loss, places=12)
                self.assertAlmostEqual(tranche.cumulative_balance(t), balance, places=12)

    def test_amortization_from_top(self):
        portfolio = InterpolatedLossCurve(times=(0.0, 1.0), losses=(0.0, 0.0), amortizations=(0.0, 0.2))
        senior = TrancheLossModel(portfolio, 0.7, 1.0)
        equity = TrancheLossModel(portfolio, 0.0, 0.1)
        self.assertAlmostEqual(senior.cumulative_balance(1.0), 1.0 - 0.2 / 0.3, places=12)
        self.assertEqual(senior.cumulative_loss(1.0), 0.0)
        self.assertAlmostEqual(equity.cumulative_balance(1.0), 1.0, places=12)

    def test_zero_width(self):
        tranche = TrancheLossModel(portfolio_loss_curve(), 0.05, 0.05)
        self.assertEqual(tranche.cumulative_loss(3.0), 0.0)
        self.assertEqual(tranche.cumulative_balance(0.0), 0.0)

    def test_invalid(self):
        with self.assertRaises(InvalidInputError):
            TrancheLossModel(portfolio_loss_curve(), 0.07, 0.03)
        with self.assertRaises(InvalidInputError):
            TrancheLossModel(None, 0.0, 0.03)

    def test_gradient_chain(self):
        portfolio = amortizing_portfolio_curve()
        tranche = TrancheLossModel(portfolio, 0.031, 0.071)
        sens = tranche.sensitivities(portfolio.sensitivities())
        t, eps = 2.5, 1e-7
        # losses[0] is 0 and cannot be bumped down
        self.assertEqual(sens.loss_gradient(t)[0], 0.0)
        for k in range(1, portfolio.size):
            with self.subTest(k=k):
                up = TrancheLossModel(portfolio.bumped_at(k, eps), 0.031, 0.071)
                down = TrancheLossModel(portfolio.bumped_at(k, -eps), 0.031, 0.071)
                fd_loss = (up.cumulative_loss(t) - down.cumulative_loss(t)) / (2 * eps)
                fd_balance = (up.cumulative_balance(t) - down.cumulative_balance(t)) / (2 * eps)
                self.assertAlmostEqual(sens.loss_gradient(t)[k], fd_loss, places=6)
                self.assertAlmostEqual(sens.balance_gradient(t)[k], fd_balance, places=6)


class TestAmortizingLoanModel(unittest.TestCase):

    def setUp(self):
        self.curve = SurvivalCurve.flat(0.03)
        self.model = AmortizingLoanModel(self.curve, recovery=0.3, coupon=6.0,
                                         original_term=5, payments_per_year=12)

    def test_balance_is_survival_times_scheduled(self):
        t = 2.0
        expected = self.curve.survival(t) * scheduled_balance_fraction(6.0, 5, t)
        self.assertAlmostEqual(self.model.cumulative_balance(t), expected, places=15)

    def test_balance_plus_loss_below_one(self):
        for t in (0.5, 1.0, 2.5, 4.9):
            with self.subTest(t=t):
                total = self.model.cumulative_loss(t) + self.model.cumulative_balance(t)
                self.assertLess(total, 1.0)

    def test_loss_monotone(self):
        grid = np.linspace(0.0, 6.0, 61)
        losses = [self.model.cumulative_loss(t) for t in grid]
        self.assertTrue(all(b >= a for a, b in zip(losses, losses[1:])))
        self.assertEqual(losses[0], 0.0)
        self.assertEqual(self.model.cumulative_balance(5.0), 0.0)

    def test_zero_coupon_warns_once(self):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            model = AmortizingLoanModel(self.curve, recovery=0.3, coupon=0.0, original_term=1)
        self.assertEqual(len(caught), 1)
        self.assertIn("straight-line", str(caught[0].message))
        # straight line at half term
        self.assertAlmostEqual(model.cumulative_balance(0.5), self.curve.survival(0.5) * 0.5,
                               places=15)

        schedule = regular_schedule(0.0, 1.0, 12, coupon=0.05, default_contingent_amount=1.0)
        params = PricingParams(accrued_fraction_on_default=1.0)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            pv = price(schedule, 0.0, flat_discount(), model, params)
            for t in np.linspace(0.0, 1.0, 25):
                model.cumulative_balance(t)
        self.assertEqual(caught, [])
        self.assertTrue(math.isfinite(pv))

    def test_invalid(self):
        with self.assertRaises(InvalidInputError):
            AmortizingLoanModel(self.curve, recovery=0.3, coupon=6.0, original_term=0)


if __name__ == '__main__':
    unittest.main()
