"""Tests for gla_evo.models — hazard and fertility strategies."""

import numpy as np
import pytest

from gla_evo.config import ParametersSection
from gla_evo.models import (
    FERTILITY_MODELS,
    HAZARD_MODELS,
    BrassPolynomialFertility,
    GLAHazard,
    GompertzMakehamHazard,
    NormalizedFertility,
    aging_gompertz_makeham,
    find_maximum_fertility,
    growth_exponential,
    learning_logistic,
)

AGING = np.array([1.15106610e-02, 2.71975789e-02, 4.26805906e-02])
LEARNING = np.array([2.93238557e-02, 3.94526937e+01, 9.41817943e-02])
GROWTH = np.array([1.00399978e-01, 9.23916941e-02])
BRASS = [2.445e-5, 14.8, 32.836]


# ── Component curves ──────────────────────────────────────────────────

class TestComponentCurves:
    def test_gompertz_makeham_at_zero(self):
        assert aging_gompertz_makeham(0.0, AGING) == pytest.approx(AGING[0] + AGING[2])

    def test_gompertz_makeham_known_value(self):
        x = 30.0
        expected = AGING[0] * np.exp(AGING[1] * x) + AGING[2]
        assert aging_gompertz_makeham(x, AGING) == pytest.approx(expected)

    def test_learning_half_at_midpoint(self):
        assert learning_logistic(LEARNING[1], LEARNING) == pytest.approx(LEARNING[0] / 2)

    def test_learning_zero_lmax(self):
        params = LEARNING.copy()
        params[0] = 0.0
        np.testing.assert_array_equal(learning_logistic(np.arange(50.0), params), 0.0)

    def test_growth_decays(self):
        vals = growth_exponential(np.array([0.0, 10.0, 50.0]), GROWTH)
        assert vals[0] == pytest.approx(GROWTH[0])
        assert np.all(np.diff(vals) < 0)


# ── Hazard models ─────────────────────────────────────────────────────

class TestGLAHazard:
    def test_sum_of_components(self):
        hazard = GLAHazard(minimum_mortality=0.0)
        x = np.linspace(0, 80, 9)
        expected = (aging_gompertz_makeham(x, AGING) + growth_exponential(x, GROWTH)
                    - learning_logistic(x, LEARNING))
        np.testing.assert_allclose(hazard(x, AGING, LEARNING, GROWTH), expected)

    def test_floored_at_minimum_mortality(self):
        hazard = GLAHazard(minimum_mortality=1e-5)
        aging = np.zeros(3)
        learning = np.array([10.0, 0.0, 1.0])
        growth = np.zeros(2)
        h = hazard(np.linspace(0, 50, 11), aging, learning, growth)
        np.testing.assert_array_equal(h, 1e-5)

    def test_negative_minimum_rejected(self):
        with pytest.raises(ValueError):
            GLAHazard(minimum_mortality=-1.0)

    def test_vectorized_matches_per_agent(self):
        """(n, 1, k) parameter columns broadcast against (n, 5) ages."""
        hazard = GLAHazard()
        rng = np.random.default_rng(0)
        n = 6
        aging = np.tile(AGING, (n, 1))
        aging[:, 1] = rng.uniform(0.01, 0.1, n)
        learning = np.tile(LEARNING, (n, 1))
        learning[:, 0] = rng.uniform(0.0, 0.05, n)
        growth = np.tile(GROWTH, (n, 1))
        ages = rng.uniform(0, 60, (n, 5))

        batch = hazard(ages, aging[:, None, :], learning[:, None, :], growth[:, None, :])
        assert batch.shape == (n, 5)
        for i in range(n):
            np.testing.assert_allclose(
                batch[i], hazard(ages[i], aging[i], learning[i], growth[i])
            )

    def test_from_config(self):
        params = ParametersSection(minimum_mortality=2e-4)
        hazard = HAZARD_MODELS['gla'].from_config(params)
        assert isinstance(hazard, GLAHazard)
        assert hazard.minimum_mortality == 2e-4


class TestGompertzMakehamHazard:
    def test_ignores_learning_and_growth(self):
        hazard = GompertzMakehamHazard()
        x = np.array([0.0, 20.0, 40.0])
        np.testing.assert_allclose(
            hazard(x, AGING, np.array([]), np.array([])),
            aging_gompertz_makeham(x, AGING),
        )

    def test_registry(self):
        assert set(HAZARD_MODELS) == {'gla', 'gompertz_makeham'}
        assert isinstance(HAZARD_MODELS['gompertz_makeham'].from_config(
            ParametersSection()), GompertzMakehamHazard)


# ── Fertility ─────────────────────────────────────────────────────────

class TestBrassPolynomial:
    def test_zero_outside_window(self):
        model = BrassPolynomialFertility()
        c, d, w = BRASS
        vals = model(np.array([0.0, d, d + w, d + w + 5.0]), BRASS)
        np.testing.assert_array_equal(vals, 0.0)

    def test_known_value(self):
        model = BrassPolynomialFertility()
        c, d, w = BRASS
        x = 20.0
        assert float(model(x, BRASS)) == pytest.approx(c * (x - d) * (d + w - x) ** 2)

    def test_registry(self):
        assert FERTILITY_MODELS['brass_polynomial'] is BrassPolynomialFertility


class TestFindMaximumFertility:
    def test_interior_peak(self):
        """Brass polynomial peaks at d + w/3."""
        c, d, w = BRASS
        age = find_maximum_fertility(BrassPolynomialFertility(), BRASS, 100.0)
        assert age == pytest.approx(d + w / 3, abs=1e-4)

    def test_peak_beyond_bound_returns_bound(self):
        age = find_maximum_fertility(BrassPolynomialFertility(), BRASS, 20.0)
        assert age == pytest.approx(20.0, abs=1e-3)

    def test_non_positive_bound(self):
        with pytest.raises(ValueError):
            find_maximum_fertility(BrassPolynomialFertility(), BRASS, 0.0)


class TestNormalizedFertility:
    def test_one_at_peak(self):
        fert = NormalizedFertility(BrassPolynomialFertility(), BRASS, 100.0)
        assert float(fert(fert.age_at_max)) == pytest.approx(1.0)

    def test_within_unit_interval(self):
        fert = NormalizedFertility(BrassPolynomialFertility(), BRASS, 20.0)
        vals = fert(np.linspace(0, 100, 1001))
        assert np.all(vals >= 0.0)
        assert np.all(vals <= 1.0)

    def test_clipped_past_search_bound(self):
        """Ages between the bound and the true peak are fully fertile."""
        fert = NormalizedFertility(BrassPolynomialFertility(), BRASS, 20.0)
        assert fert(25.0) == 1.0

    def test_zero_outside_window(self):
        fert = NormalizedFertility(BrassPolynomialFertility(), BRASS, 20.0)
        assert fert(10.0) == 0.0
        assert fert(60.0) == 0.0

    def test_all_zero_curve_rejected(self):
        with pytest.raises(ValueError, match="cannot normalize"):
            NormalizedFertility(BrassPolynomialFertility(), BRASS, 10.0)
