"""
Tests for market condition records
Run with: pytest tests/test_conditions.py -v
"""

import pytest

from scoreline.core.conditions import (
    ANY_SCORE,
    MarketCondition,
    Outcome,
    Period,
    PeriodCondition,
    ResultClass,
    TotalCondition,
    first_half,
    for_period,
    full_time,
    second_half,
)


class TestResultClass:
    def test_every_class_maps_to_outcomes(self):
        for rc in ResultClass:
            assert rc.outcomes
            assert ResultClass.from_outcomes(rc.outcomes) is rc

    def test_double_chance_admits_two_outcomes(self):
        assert ResultClass.HOME_OR_DRAW.outcomes == {Outcome.HOME, Outcome.DRAW}
        assert ResultClass.HOME_OR_AWAY.outcomes == {Outcome.HOME, Outcome.AWAY}
        assert ResultClass.DRAW_OR_AWAY.outcomes == {Outcome.DRAW, Outcome.AWAY}

    @pytest.mark.parametrize(
        "rc, score, expected",
        [
            (ResultClass.HOME, (2, 1), True),
            (ResultClass.HOME, (1, 1), False),
            (ResultClass.DRAW, (0, 0), True),
            (ResultClass.AWAY, (0, 3), True),
            (ResultClass.HOME_OR_DRAW, (1, 1), True),
            (ResultClass.HOME_OR_AWAY, (1, 1), False),
            (ResultClass.DRAW_OR_AWAY, (2, 0), False),
        ],
    )
    def test_matches(self, rc, score, expected):
        assert rc.matches(*score) is expected

    def test_codes(self):
        assert [rc.value for rc in ResultClass] == ["1", "X", "2", "1X", "12", "X2"]


class TestPeriodCondition:
    def test_unconstrained_never_rejects(self):
        cond = PeriodCondition()
        assert cond.is_unconstrained
        assert all(cond.matches(h, a) for h in range(5) for a in range(5))

    def test_total_comparisons(self):
        assert TotalCondition.over(2.5).matches(3)
        assert not TotalCondition.over(2.5).matches(2)
        assert TotalCondition.under(2.5).matches(2)
        assert TotalCondition.exactly(2).matches(2)
        # integer line: a total on the line is neither over nor under
        assert not TotalCondition.over(2).matches(2)
        assert not TotalCondition.under(2).matches(2)

    def test_btts(self):
        assert PeriodCondition(btts=True).matches(1, 1)
        assert not PeriodCondition(btts=True).matches(1, 0)
        assert PeriodCondition(btts=False).matches(0, 2)

    def test_correct_score(self):
        cond = PeriodCondition(correct_score=(2, 1))
        assert cond.matches(2, 1)
        assert not cond.matches(1, 2)

    def test_all_fields_must_hold(self):
        cond = PeriodCondition(result=ResultClass.HOME, total=TotalCondition.over(2.5), btts=True)
        assert cond.matches(2, 1)
        assert not cond.matches(2, 0)
        assert not cond.matches(1, 0)


class TestComposition:
    def test_scopes_combine(self):
        htft = first_half(result=ResultClass.DRAW) & full_time(result=ResultClass.HOME)
        assert htft.first_half.result is ResultClass.DRAW
        assert htft.full_time.result is ResultClass.HOME
        assert htft.second_half.is_unconstrained

    def test_fields_combine_within_a_scope(self):
        cond = full_time(result=ResultClass.HOME) & full_time(btts=True)
        assert cond.full_time == PeriodCondition(result=ResultClass.HOME, btts=True)

    def test_result_classes_intersect(self):
        cond = full_time(result=ResultClass.HOME_OR_DRAW) & full_time(result=ResultClass.DRAW_OR_AWAY)
        assert cond.full_time.result is ResultClass.DRAW

    def test_disjoint_results_match_nothing(self):
        cond = full_time(result=ResultClass.HOME) & full_time(result=ResultClass.AWAY)
        assert cond.full_time.contradictory
        assert not any(cond.matches(h1, a1, h2, a2)
                       for h1 in range(3) for a1 in range(3)
                       for h2 in range(3) for a2 in range(3))

    def test_contradictory_fields_match_nothing(self):
        btts = first_half(btts=True) & first_half(btts=False)
        scores = full_time(correct_score=(1, 0)) & full_time(correct_score=(2, 0))
        assert btts.first_half.contradictory
        assert scores.full_time.contradictory
        assert not btts.matches(1, 1, 0, 0)
        assert not scores.matches(1, 0, 0, 0)
        assert not scores.full_time.is_unconstrained

    def test_totals_accumulate_into_a_band(self):
        band = full_time(total=TotalCondition.over(1.5)) & full_time(total=TotalCondition.under(3.5))
        assert band.full_time.total == (TotalCondition.over(1.5), TotalCondition.under(3.5))
        assert [t for t in range(7) if band.full_time.matches(t, 0)] == [2, 3]

    def test_empty_band(self):
        cond = full_time(total=TotalCondition.over(3.5)) & full_time(total=TotalCondition.under(2.5))
        assert not any(cond.full_time.matches(t, 0) for t in range(10))

    def test_identical_fields_are_fine(self):
        cond = full_time(btts=True) & full_time(btts=True)
        assert cond.full_time.btts is True
        assert not cond.full_time.contradictory
        repeated = full_time(total=TotalCondition.over(2.5)) & full_time(total=TotalCondition.over(2.5))
        assert repeated.full_time.total == (TotalCondition.over(2.5),)

    def test_single_total_is_wrapped(self):
        assert PeriodCondition(total=TotalCondition.over(2.5)).total == (TotalCondition.over(2.5),)
        assert PeriodCondition().total == ()

    def test_any_score_is_identity(self):
        cond = second_half(total=TotalCondition.over(0.5))
        assert (cond & ANY_SCORE) == cond


class TestMarketCondition:
    def test_matches_all_three_scopes(self):
        htft = first_half(result=ResultClass.DRAW) & full_time(result=ResultClass.HOME)
        assert htft.matches(0, 0, 1, 0)
        assert not htft.matches(1, 0, 1, 0)
        assert not htft.matches(1, 1, 0, 1)

    def test_full_time_uses_summed_score(self):
        cond = full_time(correct_score=(2, 2))
        assert cond.matches(1, 2, 1, 0)
        assert not cond.matches(2, 2, 1, 0)

    def test_for_period(self):
        assert for_period(Period.SECOND_HALF, btts=True) == second_half(btts=True)
        assert for_period("first_half", btts=True) == first_half(btts=True)

    def test_default_is_any_score(self):
        assert MarketCondition() == ANY_SCORE
