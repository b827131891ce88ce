"""
Tests for the model configuration registry
Run with: pytest tests/test_model_config.py -v
"""

from dataclasses import replace

import pytest

from scoreline.core.model_config import (
    ASIAN_HANDICAP_LINES,
    DEFAULT_CONFIG,
    STANDARD_LOW_SCORE_RHO,
    ModelConfig,
)


class TestDefaults:
    def test_football_defaults(self):
        cfg = ModelConfig.football()
        assert cfg.max_goals == 12
        assert cfg.first_period_ratio == pytest.approx(0.45)
        assert cfg.second_period_ratio == pytest.approx(0.55)
        assert cfg.search_step == pytest.approx(0.05)
        assert cfg.max_search_iterations == 1000
        assert cfg.push_epsilon == pytest.approx(0.01)
        assert cfg.low_score_rho == 0.0

    def test_default_config_is_football(self):
        assert DEFAULT_CONFIG == ModelConfig.football()

    def test_low_score_variant(self):
        cfg = ModelConfig.football_low_score()
        assert cfg.low_score_rho == STANDARD_LOW_SCORE_RHO
        assert cfg.uncorrelated().low_score_rho == 0.0

    def test_frozen(self):
        with pytest.raises(AttributeError):
            DEFAULT_CONFIG.max_goals = 5

    def test_handicap_catalogue_is_symmetric(self):
        assert sorted(-line for line in ASIAN_HANDICAP_LINES) == sorted(ASIAN_HANDICAP_LINES)


class TestValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"max_goals": 0},
            {"first_period_ratio": 0.0},
            {"first_period_ratio": 1.0},
            {"search_step": 0.0},
            {"max_search_iterations": 0},
            {"solver_max_goals": 5},
            {"zero_inflation_anchors": ((0.34, 0.08), (0.26, 0.0))},
        ],
    )
    def test_out_of_range_rejected(self, overrides):
        with pytest.raises(ValueError):
            replace(ModelConfig.football(), **overrides)


class TestFromEnv:
    def test_no_overrides(self, monkeypatch):
        for name in (
            "MAX_GOALS", "SOLVER_MAX_GOALS", "FIRST_PERIOD_RATIO",
            "SEARCH_STEP", "MAX_SEARCH_ITERATIONS", "LOW_SCORE_RHO",
        ):
            monkeypatch.delenv(f"SCORELINE_{name}", raising=False)
        assert ModelConfig.from_env() == ModelConfig.football()

    def test_overrides_applied(self, monkeypatch):
        monkeypatch.setenv("SCORELINE_MAX_GOALS", "10")
        monkeypatch.setenv("SCORELINE_FIRST_PERIOD_RATIO", "0.44")
        monkeypatch.setenv("SCORELINE_LOW_SCORE_RHO", "-0.1")
        cfg = ModelConfig.from_env()
        assert cfg.max_goals == 10
        assert cfg.first_period_ratio == pytest.approx(0.44)
        assert cfg.low_score_rho == pytest.approx(-0.1)

    def test_unparseable_value(self, monkeypatch):
        monkeypatch.setenv("SCORELINE_MAX_GOALS", "twelve")
        with pytest.raises(ValueError, match="SCORELINE_MAX_GOALS"):
            ModelConfig.from_env()
