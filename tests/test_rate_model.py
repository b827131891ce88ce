"""
Tests for the Poisson score-probability tables
Run with: pytest tests/test_rate_model.py -v
"""

import math

import numpy as np
import pytest

from scoreline.core.rate_model import (
    build_score_table,
    low_score_factors,
    poisson_pmf,
    zero_inflate,
    zero_inflation_from_draw,
)


class TestPoissonPmf:
    def test_zero_goals(self):
        assert poisson_pmf(1.3, 0) == pytest.approx(math.exp(-1.3))

    def test_matches_closed_form(self):
        assert poisson_pmf(2.0, 3) == pytest.approx(8 * math.exp(-2.0) / 6)

    def test_truncated_beyond_factorial_table(self):
        assert poisson_pmf(1.0, 60) > 0.0
        assert poisson_pmf(1.0, 61) == 0.0

    def test_negative_inputs_give_zero(self):
        assert poisson_pmf(-1.0, 2) == 0.0
        assert poisson_pmf(1.0, -1) == 0.0

    def test_zero_rate_is_point_mass(self):
        assert poisson_pmf(0.0, 0) == 1.0
        assert poisson_pmf(0.0, 1) == 0.0


class TestScoreTable:
    """Table invariants: non-negative, mass → 1, immutable"""

    def test_shape(self):
        table = build_score_table(1.3, 1.1, 12)
        assert table.cells.shape == (13, 13)
        assert table.max_goals == 12

    def test_cells_non_negative(self):
        table = build_score_table(2.4, 0.3, 12, rho=-0.13)
        assert (table.cells >= 0).all()

    def test_mass_approaches_one_as_ceiling_grows(self):
        totals = [build_score_table(1.6, 1.4, n).total for n in (3, 6, 12)]
        assert totals[0] < totals[1] < totals[2]
        assert totals[2] == pytest.approx(1.0, abs=1e-6)

    def test_cells_are_read_only(self):
        table = build_score_table(1.3, 1.3, 12)
        with pytest.raises(ValueError):
            table.cells[0, 0] = 0.5

    def test_independent_product(self):
        table = build_score_table(1.3, 0.9, 12)
        assert table.cells[2, 1] == pytest.approx(poisson_pmf(1.3, 2) * poisson_pmf(0.9, 1))

    def test_marginals(self):
        table = build_score_table(1.3, 0.9, 12)
        assert table.marginal("home")[0] == pytest.approx(math.exp(-1.3), abs=1e-9)
        assert table.marginal("away")[1] == pytest.approx(0.9 * math.exp(-0.9), abs=1e-9)
        with pytest.raises(ValueError):
            table.marginal("neutral")

    def test_total_goals_distribution(self):
        table = build_score_table(1.0, 1.0, 12)
        totals = table.total_goals_distribution()
        assert len(totals) == 25
        assert totals.sum() == pytest.approx(table.total)
        # home + away ~ Poisson(2)
        assert totals[2] == pytest.approx(2 * math.exp(-2.0), abs=1e-9)

    def test_equal_rates_are_symmetric(self):
        home, draw, away = build_score_table(1.2, 1.2, 12).result_probabilities()
        assert home == pytest.approx(away)
        assert home + draw + away == pytest.approx(1.0, abs=1e-6)

    @pytest.mark.parametrize("bad", [-0.1, math.nan, math.inf])
    def test_invalid_rate_rejected(self, bad):
        with pytest.raises(ValueError):
            build_score_table(bad, 1.0, 12)


class TestLowScoreCorrelation:
    def test_only_low_cells_change(self):
        plain = build_score_table(1.3, 1.1, 12)
        corr = build_score_table(1.3, 1.1, 12, rho=-0.13)
        expected = low_score_factors(1.3, 1.1, -0.13)
        np.testing.assert_allclose(corr.cells[:2, :2], plain.cells[:2, :2] * expected)
        np.testing.assert_allclose(corr.cells[2:, :], plain.cells[2:, :])
        np.testing.assert_allclose(corr.cells[:, 2:], plain.cells[:, 2:])

    def test_negative_rho_lifts_draws(self):
        plain = build_score_table(1.3, 1.1, 12)
        corr = build_score_table(1.3, 1.1, 12, rho=-0.13)
        assert corr.cells[0, 0] > plain.cells[0, 0]
        assert corr.cells[1, 1] > plain.cells[1, 1]
        assert corr.cells[1, 0] < plain.cells[1, 0]

    def test_extreme_rho_floored_at_zero(self):
        table = build_score_table(1.0, 1.0, 12, rho=5.0)
        assert table.cells[1, 1] == 0.0
        assert (table.cells >= 0).all()


class TestZeroInflation:
    def test_point_mass_at_zero(self):
        table = build_score_table(1.3, 1.1, 12, zero_inflation=0.05)
        expected = 0.05 + 0.95 * math.exp(-1.3)
        assert table.marginal("home")[0] == pytest.approx(expected, abs=1e-9)

    def test_zero_inflate_keeps_mass(self):
        marginal = np.array([0.5, 0.3, 0.2])
        assert zero_inflate(marginal, 0.1).sum() == pytest.approx(1.0)

    def test_weight_out_of_range(self):
        with pytest.raises(ValueError):
            zero_inflate(np.array([1.0]), 1.0)

    @pytest.mark.parametrize(
        "draw, omega",
        [(0.20, 0.0), (0.26, 0.0), (0.30, 0.04), (0.34, 0.08), (0.40, 0.08)],
    )
    def test_weight_from_draw_probability(self, draw, omega):
        anchors = ((0.26, 0.0), (0.34, 0.08))
        assert zero_inflation_from_draw(draw, anchors) == pytest.approx(omega)
