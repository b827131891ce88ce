"""
Tests for market calibration
Run with: pytest tests/test_calibrator.py -v
"""

import logging
import math
from dataclasses import replace
from unittest.mock import patch

import pytest
from scipy.stats import poisson

from scoreline.core.model_config import ModelConfig
from scoreline.core.odds_math import InvalidOddsError, remove_vig_proportional
from scoreline.core.rate_model import zero_inflation_from_draw
from scoreline.services.calibrator import (
    CalibrationError,
    CalibrationMethod,
    InvalidInputError,
    calibrate_by_golden_section,
    calibrate_from_prices,
    calibrate_from_rates,
    calibrate_from_supremacy,
    outcome_shares,
    probability_total_over,
    result_probabilities,
    solve_total_goals,
)
from scoreline.services.markets import match_result, total_goals


class TestDirectCalibration:
    """Supremacy / expectancy → rates without a search"""

    def test_even_match(self):
        model = calibrate_from_supremacy(0.0, 2.6)
        assert model.full_time.home == pytest.approx(1.3)
        assert model.full_time.away == pytest.approx(1.3)
        assert model.first_half.home == pytest.approx(0.585)
        assert model.second_half.home == pytest.approx(0.715)
        assert model.method is CalibrationMethod.DIRECT

    def test_negative_supremacy_favours_home(self):
        model = calibrate_from_supremacy(-0.4, 2.6)
        assert model.full_time.home == pytest.approx(1.5)
        assert model.full_time.away == pytest.approx(1.1)
        assert model.supremacy == pytest.approx(-0.4)
        assert model.expectancy == pytest.approx(2.6)

    def test_period_rates_sum_to_full_match(self):
        model = calibrate_from_supremacy(0.3, 3.1)
        assert model.first_half.home + model.second_half.home == pytest.approx(model.full_time.home)
        assert model.first_half.away + model.second_half.away == pytest.approx(model.full_time.away)

    def test_tables_built_from_period_rates(self):
        model = calibrate_from_supremacy(-0.4, 2.6)
        assert model.first_half_table.home_rate == pytest.approx(model.first_half.home)
        assert model.second_half_table.away_rate == pytest.approx(model.second_half.away)
        assert model.first_half_table.cells.shape == (13, 13)
        assert not model.second_half_table.cells.flags.writeable

    def test_supremacy_equal_to_expectancy_allowed(self):
        model = calibrate_from_supremacy(-2.0, 2.0)
        assert model.full_time.away == 0.0
        assert model.full_time.home == pytest.approx(2.0)

    def test_custom_split(self):
        cfg = replace(ModelConfig.football(), first_period_ratio=0.5)
        model = calibrate_from_supremacy(0.0, 2.0, config=cfg)
        assert model.first_half.home == pytest.approx(0.5)
        assert model.second_half.home == pytest.approx(0.5)

    @pytest.mark.parametrize(
        "supremacy, expectancy",
        [(0.0, 0.0), (0.0, -1.0), (3.0, 2.5), (-3.0, 2.5), (math.nan, 2.5), (0.0, math.inf)],
    )
    def test_invalid_inputs(self, supremacy, expectancy):
        with pytest.raises(InvalidInputError):
            calibrate_from_supremacy(supremacy, expectancy)

    def test_rates_dict(self):
        rates = calibrate_from_supremacy(0.0, 2.0).rates()
        assert set(rates) == {
            "home_full_time", "away_full_time",
            "home_first_half", "away_first_half",
            "home_second_half", "away_second_half",
        }

    def test_negative_rate_rejected(self):
        with pytest.raises(InvalidInputError):
            calibrate_from_rates(-0.1, 1.0)


class TestOutcomeShares:
    def test_even_rates(self):
        home_share, under_share = outcome_shares(1.3, 1.3, 2.5)
        assert home_share == pytest.approx(0.5)
        assert under_share == pytest.approx(poisson.cdf(2, 2.6), abs=1e-9)

    def test_integer_line_excludes_push(self):
        _, under_share = outcome_shares(1.0, 1.0, 2.0)
        under, push = poisson.cdf(1, 2.0), poisson.pmf(2, 2.0)
        assert under_share == pytest.approx(under / (1 - push), abs=1e-9)


class TestMarketCalibration:
    """1X2 + Over/Under → rates by nested line search"""

    PRICES = (1.80, 3.60, 4.50, 2.5, 1.95, 1.95)

    def test_home_favourite_recovered(self):
        model = calibrate_from_prices(*self.PRICES)
        assert model.full_time.home > model.full_time.away
        assert model.method is CalibrationMethod.LINE_SEARCH
        assert model.iterations > 0

    def test_total_reproduced(self):
        model = calibrate_from_prices(*self.PRICES)
        over = total_goals(model, 2.5)["over"].probability
        assert over == pytest.approx(0.50, abs=0.02)

    def test_result_reproduced(self):
        model = calibrate_from_prices(*self.PRICES)
        home_target, _, away_target = remove_vig_proportional(self.PRICES[:3])
        result = match_result(model)
        share = result["1"].probability / (result["1"].probability + result["2"].probability)
        assert share == pytest.approx(home_target / (home_target + away_target), abs=0.02)

    def test_away_favourite(self):
        model = calibrate_from_prices(4.50, 3.60, 1.80, 2.5, 1.95, 1.95)
        assert model.full_time.away > model.full_time.home

    def test_supremacy_within_total(self):
        model = calibrate_from_prices(1.25, 6.50, 12.0, 2.5, 1.70, 2.15)
        assert abs(model.supremacy) <= model.expectancy
        assert model.full_time.home > 0 and model.full_time.away > 0

    def test_invalid_price_stops_before_search(self):
        with patch("scoreline.services.calibrator._line_search") as search:
            with pytest.raises(InvalidOddsError):
                calibrate_from_prices(1.00, 3.60, 4.50, 2.5, 1.95, 1.95)
        search.assert_not_called()

    def test_negative_line_rejected(self):
        with pytest.raises(InvalidInputError):
            calibrate_from_prices(1.80, 3.60, 4.50, -0.5, 1.95, 1.95)

    def test_iteration_bound_is_a_failure(self, caplog):
        cfg = replace(ModelConfig.football(), max_search_iterations=1)
        with caplog.at_level(logging.WARNING, logger="scoreline.services.calibrator"):
            with pytest.raises(CalibrationError, match="No consistent model"):
                calibrate_from_prices(*self.PRICES, config=cfg)
        assert "Calibration failed" in caplog.text

    def test_overwhelming_favourite_fails_cleanly(self):
        # the supremacy pass would step past -T before the error stops falling
        with pytest.raises(CalibrationError, match="No consistent model"):
            calibrate_from_prices(1.005, 30.0, 200.0, 0.5, 4.0, 1.2)

    def test_supremacy_pass_never_builds_a_negative_rate(self):
        seen = []
        real = outcome_shares

        def recording(home_rate, away_rate, line, config):
            seen.append((home_rate, away_rate))
            return real(home_rate, away_rate, line, config)

        with patch("scoreline.services.calibrator.outcome_shares", side_effect=recording):
            with pytest.raises(CalibrationError):
                calibrate_from_prices(1.005, 30.0, 200.0, 0.5, 4.0, 1.2)
        assert seen
        assert all(h > 0 and a > 0 for h, a in seen)

    def test_success_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="scoreline.services.calibrator"):
            calibrate_from_prices(*self.PRICES)
        assert "Market model" in caplog.text

    def test_calibration_error_is_runtime_error(self):
        assert issubclass(CalibrationError, RuntimeError)


class TestTotalGoalsInversion:
    def test_half_line_matches_poisson(self):
        assert probability_total_over(2.6, 2.5) == pytest.approx(poisson.sf(2, 2.6))

    def test_whole_line_excludes_push(self):
        win = poisson.sf(2, 2.6)
        push = poisson.pmf(2, 2.6)
        assert probability_total_over(2.6, 2.0) == pytest.approx(win / (1 - push))

    def test_quarter_line_between_neighbours(self):
        low = probability_total_over(2.6, 2.0)
        high = probability_total_over(2.6, 2.5)
        quarter = probability_total_over(2.6, 2.25)
        assert min(low, high) < quarter < max(low, high)

    def test_negative_line_always_over(self):
        assert probability_total_over(1.0, -0.5) == 1.0

    def test_even_over_at_two_and_a_half(self):
        total = solve_total_goals(2.5, 0.5)
        assert total == pytest.approx(2.674, abs=0.01)
        assert probability_total_over(total, 2.5) == pytest.approx(0.5, abs=0.001)

    def test_bracket_expands_for_high_totals(self):
        total = solve_total_goals(5.5, 0.999)
        assert total > 10.0
        assert probability_total_over(total, 5.5) == pytest.approx(0.999, abs=0.001)

    @pytest.mark.parametrize("target", [0.0, 1.0, -0.2, 1.5])
    def test_invalid_target(self, target):
        with pytest.raises(CalibrationError):
            solve_total_goals(2.5, target)


class TestGoldenSection:
    """1X2 + total → rates by golden-section search"""

    PRICES = (2.10, 3.30, 3.60)

    def test_known_total(self):
        model = calibrate_by_golden_section(*self.PRICES, total_goals=2.2)
        assert model.full_time.home > model.full_time.away
        assert model.expectancy == pytest.approx(2.2)
        assert model.method is CalibrationMethod.GOLDEN_SECTION

    def test_zero_inflation_from_target_draw(self):
        model = calibrate_by_golden_section(*self.PRICES, total_goals=2.2)
        draw = remove_vig_proportional(self.PRICES)[1]
        expected = zero_inflation_from_draw(draw, ModelConfig.football().zero_inflation_anchors)
        assert model.zero_inflation == pytest.approx(expected)
        assert model.zero_inflation > 0.0
        assert model.second_half_table.zero_inflation == pytest.approx(expected)

    def test_fit_reproduces_targets(self):
        model = calibrate_by_golden_section(*self.PRICES, total_goals=2.2)
        fitted = result_probabilities(
            model.full_time.home, model.full_time.away, zero_inflation=model.zero_inflation
        )
        targets = remove_vig_proportional(self.PRICES)
        error = sum((f - t) ** 2 for f, t in zip(fitted, targets))
        assert error <= ModelConfig.football().golden_tolerance

    def test_total_from_over_under(self):
        model = calibrate_by_golden_section(
            *self.PRICES, line=2.5, over_odds=2.30, under_odds=1.62
        )
        over, _ = remove_vig_proportional((2.30, 1.62))
        assert model.expectancy == pytest.approx(solve_total_goals(2.5, over))

    def test_missing_total_source(self):
        with pytest.raises(InvalidInputError):
            calibrate_by_golden_section(*self.PRICES, line=2.5)

    def test_unreachable_draw_fails(self):
        with pytest.raises(CalibrationError, match="exceeds tolerance"):
            calibrate_by_golden_section(6.0, 1.5, 6.0, total_goals=2.6)

    def test_tiny_total_splits_evenly(self):
        with patch("scoreline.services.calibrator.result_probabilities") as fit:
            model = calibrate_by_golden_section(*self.PRICES, total_goals=1e-6)
        fit.assert_not_called()
        assert model.full_time.home == pytest.approx(5e-7)
        assert model.full_time.away == pytest.approx(5e-7)

    def test_invalid_total(self):
        with pytest.raises(InvalidInputError):
            calibrate_by_golden_section(*self.PRICES, total_goals=0.0)
