"""
Derivative market library.

Every market here is a thin layer over the evaluator: either a
:class:`~scoreline.core.conditions.MarketCondition` priced with
:func:`~scoreline.services.evaluator.price`, a vectorised predicate over the
joint score grid, or a slice of a per-period score table.

Handicap convention
-------------------
The line is applied to the home side::

    margin = (home_goals + line) − away_goals

``margin > ε`` settles for the home side, ``margin < −ε`` for the away side,
anything in between is a push (``ε`` is ``ModelConfig.push_epsilon``).
Two-way handicap prices exclude the push.  A line whose push mass exceeds
0.99999 is void and carries no price.

Quarter lines (``±0.25``, ``±0.75`` …) are priced by averaging, per side, the
*odds* of the two adjacent half/whole lines and converting the average back
to a probability.  A component side with push-excluded probability at or
below the probability floor contributes the unpriced sentinel (1e9) to the
average; an averaged price at or above the sentinel maps back to
probability 0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Optional, Union

import numpy as np

from scoreline.core.conditions import (
    Outcome,
    Period,
    ResultClass,
    TotalCondition,
    first_half,
    for_period,
    full_time,
)
from scoreline.core.model_config import (
    ASIAN_HANDICAP_LINES,
    EXACT_GOALS_MAX,
    FULL_TIME_TOTAL_LINES,
    GOAL_SPREAD_BANDS,
    HALF_HANDICAP_LINES,
    HALF_TOTAL_LINES,
    TEAM_TOTAL_LINES,
)
from scoreline.core.odds_math import (
    PROBABILITY_FLOOR,
    odds_or_unpriced,
    prob_or_zero,
)
from scoreline.services.calibrator import CalibrationResult, ScoringRates
from scoreline.services.evaluator import (
    MarketPrice,
    period_table,
    price,
    probability,
    probability_vectorised,
)

logger = logging.getLogger(__name__)

Side = Literal["home", "away"]

# Push mass above which a handicap line is void.
VOID_PUSH_THRESHOLD = 0.99999

_RESULT_LABELS = (ResultClass.HOME, ResultClass.DRAW, ResultClass.AWAY)
_DOUBLE_CHANCE_LABELS = (
    ResultClass.HOME_OR_DRAW,
    ResultClass.HOME_OR_AWAY,
    ResultClass.DRAW_OR_AWAY,
)


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HandicapOutcome:
    """Settlement split of one handicap line: home covers, push, away covers."""

    line: float
    home: float
    push: float
    away: float

    def validate(self, tol: float = 1e-6) -> None:
        """Check the triple is a probability split.

        Raises:
            ValueError: If any part is outside ``[0, 1]`` or
                ``|home + push + away − 1| > tol``.
        """
        for name, val in (("home", self.home), ("push", self.push), ("away", self.away)):
            if not (0.0 <= val <= 1.0):
                raise ValueError(f"HandicapOutcome.{name} must be in [0, 1], got {val!r}.")
        total = self.home + self.push + self.away
        if abs(total - 1.0) > tol:
            raise ValueError(
                f"HandicapOutcome must sum to 1.0 (got {total:.8f}, line={self.line!r})."
            )

    @property
    def is_void(self) -> bool:
        return self.push > VOID_PUSH_THRESHOLD

    @property
    def home_share(self) -> float:
        """Push-excluded home probability (0 on a void line)."""
        if self.is_void:
            return 0.0
        return self.home / (1.0 - self.push)

    @property
    def away_share(self) -> float:
        if self.is_void:
            return 0.0
        return self.away / (1.0 - self.push)

    def home_price(self, floor: float = PROBABILITY_FLOOR) -> Optional[MarketPrice]:
        return None if self.is_void else MarketPrice.from_probability(self.home_share, floor)

    def away_price(self, floor: float = PROBABILITY_FLOOR) -> Optional[MarketPrice]:
        return None if self.is_void else MarketPrice.from_probability(self.away_share, floor)

    def as_dict(self) -> dict:
        home_price, away_price = self.home_price(), self.away_price()
        return {
            "line": self.line,
            "home": self.home,
            "push": self.push,
            "away": self.away,
            "void": self.is_void,
            "home_price": home_price.as_dict() if home_price else None,
            "away_price": away_price.as_dict() if away_price else None,
        }


@dataclass(frozen=True)
class QuarterLinePrice:
    """Averaged-odds prices of a quarter line and the two lines it splits into."""

    line: float
    home: MarketPrice
    away: MarketPrice
    lower: HandicapOutcome
    upper: HandicapOutcome

    def as_dict(self) -> dict:
        return {
            "line": self.line,
            "home_price": self.home.as_dict(),
            "away_price": self.away.as_dict(),
            "lower": self.lower.as_dict(),
            "upper": self.upper.as_dict(),
        }


Selection = Union[MarketPrice, HandicapOutcome, QuarterLinePrice]


@dataclass(frozen=True)
class PeriodAggregates:
    """Goal distributions of one scope, indexed by goal count."""

    home_goals: np.ndarray
    away_goals: np.ndarray
    total_goals: np.ndarray

    @classmethod
    def from_table(cls, cells: np.ndarray) -> PeriodAggregates:
        h, a = np.indices(cells.shape)
        totals = np.zeros(h.max() + a.max() + 1)
        np.add.at(totals, h + a, cells)
        return cls(
            home_goals=cells.sum(axis=1),
            away_goals=cells.sum(axis=0),
            total_goals=totals,
        )

    def side(self, side: Side) -> np.ndarray:
        if side == "home":
            return self.home_goals
        if side == "away":
            return self.away_goals
        raise ValueError(f"side must be 'home' or 'away', got {side!r}.")


@dataclass(frozen=True)
class GoalAggregates:
    """Everything the goal-count markets slice, computed once per model."""

    first_half: PeriodAggregates
    second_half: PeriodAggregates
    full_time: PeriodAggregates
    first_half_higher: float
    second_half_higher: float
    halves_equal: float
    home_scored_both_halves: float
    away_scored_both_halves: float
    both_halves_over_1_5: float
    both_halves_under_1_5: float

    def period(self, period: Period) -> PeriodAggregates:
        return getattr(self, Period(period).value)


# ---------------------------------------------------------------------------
# Result, totals and score markets
# ---------------------------------------------------------------------------

def period_result(model: CalibrationResult, period: Period) -> dict[str, MarketPrice]:
    """1X2 prices settled on ``period``."""
    return {rc.value: price(model, for_period(period, result=rc)) for rc in _RESULT_LABELS}


def match_result(model: CalibrationResult) -> dict[str, MarketPrice]:
    return period_result(model, Period.FULL_TIME)


def double_chance(
    model: CalibrationResult, period: Period = Period.FULL_TIME
) -> dict[str, MarketPrice]:
    return {
        rc.value: price(model, for_period(period, result=rc)) for rc in _DOUBLE_CHANCE_LABELS
    }


def draw_no_bet(model: CalibrationResult) -> HandicapOutcome:
    """Home and away with the draw refunded.

    The draw mass is taken as the complement of the two decisive results and
    reported as the push, so the prices are ``P(home) / (1 − P(draw))``.
    """
    home = probability(model, full_time(result=ResultClass.HOME))
    away = probability(model, full_time(result=ResultClass.AWAY))
    draw = max(0.0, 1.0 - home - away)
    return HandicapOutcome(line=0.0, home=home, push=draw, away=away)


def period_btts(model: CalibrationResult, period: Period) -> dict[str, MarketPrice]:
    return {
        "yes": price(model, for_period(period, btts=True)),
        "no": price(model, for_period(period, btts=False)),
    }


def both_teams_to_score(model: CalibrationResult) -> dict[str, MarketPrice]:
    return period_btts(model, Period.FULL_TIME)


def period_total(
    model: CalibrationResult, line: float, period: Period
) -> dict[str, MarketPrice]:
    """Over/Under ``line`` on one scope.  An integer line leaves the push out of both."""
    return {
        "over": price(model, for_period(period, total=TotalCondition.over(line))),
        "under": price(model, for_period(period, total=TotalCondition.under(line))),
    }


def total_goals(model: CalibrationResult, line: float) -> dict[str, MarketPrice]:
    return period_total(model, line, Period.FULL_TIME)


def correct_score(
    model: CalibrationResult,
    home: int,
    away: int,
    period: Period = Period.FULL_TIME,
) -> MarketPrice:
    return price(model, for_period(period, correct_score=(home, away)))


def half_time_full_time(model: CalibrationResult) -> dict[str, MarketPrice]:
    """The nine ``half-time / full-time`` result pairs, e.g. ``"X/1"``."""
    board = {}
    for at_half in _RESULT_LABELS:
        for at_end in _RESULT_LABELS:
            condition = first_half(result=at_half) & full_time(result=at_end)
            board[f"{at_half.value}/{at_end.value}"] = price(model, condition)
    return board


# ---------------------------------------------------------------------------
# Handicaps
# ---------------------------------------------------------------------------

def is_quarter_line(line: float) -> bool:
    """True for ``.25`` / ``.75`` lines.

    Raises:
        ValueError: If ``line`` is not a multiple of 0.25.
    """
    quarters = line * 4.0
    if abs(quarters - round(quarters)) > 1e-9:
        raise ValueError(f"Handicap line {line!r} is not a multiple of 0.25.")
    return int(round(quarters)) % 2 != 0


def _settle_handicap(cells: np.ndarray, line: float, epsilon: float) -> HandicapOutcome:
    h, a = np.indices(cells.shape)
    margin = h + line - a
    home = float(cells[margin > epsilon].sum())
    away = float(cells[margin < -epsilon].sum())
    push = float(cells[np.abs(margin) <= epsilon].sum())
    total = home + push + away
    if total <= 0.0:
        raise ValueError("Score table carries no probability mass.")
    return HandicapOutcome(line=line, home=home / total, push=push / total, away=away / total)


def period_handicap(
    model: CalibrationResult,
    line: float,
    period: Period,
) -> HandicapOutcome:
    """Whole or half handicap line settled on ``period``.

    Raises:
        ValueError: For a quarter line (use :func:`quarter_line_handicap`) or
            a line that is not a multiple of 0.25.
    """
    if is_quarter_line(line):
        raise ValueError(
            f"Line {line!r} is a quarter line; price it with quarter_line_handicap()."
        )
    return _settle_handicap(period_table(model, period), line, model.config.push_epsilon)


def asian_handicap(model: CalibrationResult, line: float) -> HandicapOutcome:
    """Full-match handicap on a whole or half line."""
    return period_handicap(model, line, Period.FULL_TIME)


def quarter_line_handicap(
    model: CalibrationResult,
    line: float,
    period: Period = Period.FULL_TIME,
) -> QuarterLinePrice:
    """Price a quarter line from its two adjacent lines by averaging odds.

    Raises:
        ValueError: If ``line`` is not a quarter line.
    """
    if not is_quarter_line(line):
        raise ValueError(f"Line {line!r} is not a quarter line.")

    cfg = model.config
    lower = period_handicap(model, line - 0.25, period)
    upper = period_handicap(model, line + 0.25, period)

    def averaged(low_share: float, high_share: float) -> MarketPrice:
        odds = (
            odds_or_unpriced(low_share, cfg.probability_floor, cfg.unpriced_odds)
            + odds_or_unpriced(high_share, cfg.probability_floor, cfg.unpriced_odds)
        ) / 2.0
        return MarketPrice(probability=prob_or_zero(odds, cfg.unpriced_odds), odds=odds)

    return QuarterLinePrice(
        line=line,
        home=averaged(lower.home_share, upper.home_share),
        away=averaged(lower.away_share, upper.away_share),
        lower=lower,
        upper=upper,
    )


def handicap_price(
    model: CalibrationResult,
    line: float,
    period: Period = Period.FULL_TIME,
) -> Union[HandicapOutcome, QuarterLinePrice]:
    """Dispatch to the whole/half or quarter-line pricing rule."""
    if is_quarter_line(line):
        return quarter_line_handicap(model, line, period)
    return period_handicap(model, line, period)


# ---------------------------------------------------------------------------
# Goal aggregates
# ---------------------------------------------------------------------------

def period_aggregates(model: CalibrationResult, period: Period) -> PeriodAggregates:
    return PeriodAggregates.from_table(period_table(model, period))


def sum_range(dist: np.ndarray, low: int, high: Optional[int] = None) -> float:
    """Mass of ``dist`` on ``low ≤ k ≤ high``; ``high=None`` means no upper bound."""
    low = max(low, 0)
    stop = len(dist) if high is None else min(high + 1, len(dist))
    if stop <= low:
        return 0.0
    return float(dist[low:stop].sum())


def goal_aggregates(model: CalibrationResult) -> GoalAggregates:
    """Build every goal-count distribution the aggregate markets need.

    The two halves are independent, so the half-comparison and
    both-halves figures come from outer products of the per-half
    distributions.
    """
    first = period_aggregates(model, Period.FIRST_HALF)
    second = period_aggregates(model, Period.SECOND_HALF)
    whole = period_aggregates(model, Period.FULL_TIME)

    weights = np.outer(first.total_goals, second.total_goals)
    diff = np.subtract.outer(
        np.arange(len(first.total_goals)), np.arange(len(second.total_goals))
    )

    return GoalAggregates(
        first_half=first,
        second_half=second,
        full_time=whole,
        first_half_higher=float(weights[diff > 0].sum()),
        second_half_higher=float(weights[diff < 0].sum()),
        halves_equal=float(weights[diff == 0].sum()),
        home_scored_both_halves=sum_range(first.home_goals, 1) * sum_range(second.home_goals, 1),
        away_scored_both_halves=sum_range(first.away_goals, 1) * sum_range(second.away_goals, 1),
        both_halves_over_1_5=sum_range(first.total_goals, 2) * sum_range(second.total_goals, 2),
        both_halves_under_1_5=(
            sum_range(first.total_goals, 0, 1) * sum_range(second.total_goals, 0, 1)
        ),
    )


def exact_goals(
    dist: np.ndarray, max_bucket: int = EXACT_GOALS_MAX
) -> dict[str, MarketPrice]:
    """Exact goal counts ``0 .. max_bucket`` plus a ``"{max_bucket + 1}+"`` tail."""
    board = {str(k): MarketPrice.from_probability(sum_range(dist, k, k)) for k in range(max_bucket + 1)}
    board[f"{max_bucket + 1}+"] = MarketPrice.from_probability(sum_range(dist, max_bucket + 1))
    return board


def goal_spread(dist: np.ndarray, low: int, high: int) -> MarketPrice:
    """Price of the goal count landing in ``[low, high]`` inclusive."""
    if high < low:
        raise ValueError(f"Empty goal band {low}-{high}.")
    return MarketPrice.from_probability(sum_range(dist, low, high))


def team_total(
    aggregates: GoalAggregates,
    side: Side,
    line: float,
    period: Period = Period.FULL_TIME,
) -> dict[str, MarketPrice]:
    dist = aggregates.period(period).side(side)
    goals = np.arange(len(dist))
    return {
        "over": MarketPrice.from_probability(float(dist[goals > line].sum())),
        "under": MarketPrice.from_probability(float(dist[goals < line].sum())),
    }


def highest_scoring_half(aggregates: GoalAggregates) -> dict[str, MarketPrice]:
    return {
        "first_half": MarketPrice.from_probability(aggregates.first_half_higher),
        "equal": MarketPrice.from_probability(aggregates.halves_equal),
        "second_half": MarketPrice.from_probability(aggregates.second_half_higher),
    }


def scored_in_both_halves(aggregates: GoalAggregates, side: Side) -> dict[str, MarketPrice]:
    if side == "home":
        yes = aggregates.home_scored_both_halves
    elif side == "away":
        yes = aggregates.away_scored_both_halves
    else:
        raise ValueError(f"side must be 'home' or 'away', got {side!r}.")
    return {
        "yes": MarketPrice.from_probability(yes),
        "no": MarketPrice.from_probability(1.0 - yes),
    }


def both_halves_goals(aggregates: GoalAggregates) -> dict[str, MarketPrice]:
    return {
        "over 1.5": MarketPrice.from_probability(aggregates.both_halves_over_1_5),
        "under 1.5": MarketPrice.from_probability(aggregates.both_halves_under_1_5),
    }


# ---------------------------------------------------------------------------
# Combination markets
# ---------------------------------------------------------------------------

# Every check below is a vectorised predicate over the four index grids and
# must be written with ``&``, ``|`` and ``~``.

def _between(goals, low, high=None):
    """``low <= goals <= high``; ``high=None`` leaves the band open above."""
    mask = goals >= low
    return mask if high is None else mask & (goals <= high)


def _both_score(home, away):
    return (home >= 1) & (away >= 1)


def _wins(s1, o1, s2, o2):
    return (s1 + s2) > (o1 + o2)


_OUTCOME_CHECKS = {
    Outcome.HOME: lambda home, away: home > away,
    Outcome.DRAW: lambda home, away: home == away,
    Outcome.AWAY: lambda home, away: home < away,
}


def _result_holds(rc: ResultClass, home, away):
    mask = None
    for outcome in rc.outcomes:
        hit = _OUTCOME_CHECKS[outcome](home, away)
        mask = hit if mask is None else mask | hit
    return mask


# Full-time goal bands used by the joint result-and-goals families.
_TOTAL_BANDS = {
    "0-1": (0, 1),
    "0-2": (0, 2),
    "0-3": (0, 3),
    "0-4": (0, 4),
    "1-2": (1, 2),
    "1-3": (1, 3),
    "2-3": (2, 3),
    "2-4": (2, 4),
    "2-5": (2, 5),
    "3-4": (3, 4),
    "3-5": (3, 5),
    "3-6": (3, 6),
    "4-6": (4, 6),
    "2+": (2, None),
    "3+": (3, None),
    "4+": (4, None),
    "5+": (5, None),
}

# Conditions on the two halves' match goals (h1, a1, h2, a2).
_HALF_SPLITS = {
    "1-2 first half & 1-2 second half": lambda h1, a1, h2, a2: (
        _between(h1 + a1, 1, 2) & _between(h2 + a2, 1, 2)
    ),
    "1-3 first half & 1-3 second half": lambda h1, a1, h2, a2: (
        _between(h1 + a1, 1, 3) & _between(h2 + a2, 1, 3)
    ),
    "2+ first half & 4+": lambda h1, a1, h2, a2: (
        _between(h1 + a1, 2) & _between(h1 + a1 + h2 + a2, 4)
    ),
}


def _price_checks(model: CalibrationResult, checks: dict) -> dict[str, MarketPrice]:
    return {
        label: MarketPrice.from_probability(
            probability_vectorised(model, check), model.config.probability_floor
        )
        for label, check in checks.items()
    }


def _for_side(check, side: Side):
    """Re-express a ``(own_1, opp_1, own_2, opp_2)`` check over home/away grids."""
    if side == "home":
        return check
    if side == "away":
        return lambda h1, a1, h2, a2: check(a1, h1, a2, h2)
    raise ValueError(f"side must be 'home' or 'away', got {side!r}.")


# Each check takes (own_1, opp_1, own_2, opp_2): the chosen side's and the
# opponent's goals in the first and second half, as arrays.
_COMBO_CHECKS = {
    "win & 1+ first half": lambda s1, o1, s2, o2: _wins(s1, o1, s2, o2) & (s1 + o1 >= 1),
    "win & 2+ first half": lambda s1, o1, s2, o2: _wins(s1, o1, s2, o2) & (s1 + o1 >= 2),
    "win & 2-3 first half": lambda s1, o1, s2, o2: (
        _wins(s1, o1, s2, o2) & _between(s1 + o1, 2, 3)
    ),
    "win & 1+ second half": lambda s1, o1, s2, o2: _wins(s1, o1, s2, o2) & (s2 + o2 >= 1),
    "win & 2+ second half": lambda s1, o1, s2, o2: _wins(s1, o1, s2, o2) & (s2 + o2 >= 2),
    "win & goals in both halves": lambda s1, o1, s2, o2: (
        _wins(s1, o1, s2, o2) & (s1 + o1 >= 1) & (s2 + o2 >= 1)
    ),
    "win & 1+ first half & 2+": lambda s1, o1, s2, o2: (
        _wins(s1, o1, s2, o2) & (s1 + o1 >= 1) & (s1 + o1 + s2 + o2 >= 2)
    ),
    "win & 1+ first half & 3+": lambda s1, o1, s2, o2: (
        _wins(s1, o1, s2, o2) & (s1 + o1 >= 1) & (s1 + o1 + s2 + o2 >= 3)
    ),
    "win & both teams score": lambda s1, o1, s2, o2: (
        _wins(s1, o1, s2, o2) & (o1 + o2 >= 1)
    ),
    "win & both teams score first half": lambda s1, o1, s2, o2: (
        _wins(s1, o1, s2, o2) & _both_score(s1, o1)
    ),
    "win & both teams score second half": lambda s1, o1, s2, o2: (
        _wins(s1, o1, s2, o2) & _both_score(s2, o2)
    ),
    "win to nil": lambda s1, o1, s2, o2: _wins(s1, o1, s2, o2) & (o1 + o2 == 0),
    "win both halves": lambda s1, o1, s2, o2: (s1 > o1) & (s2 > o2),
    "win both halves to nil": lambda s1, o1, s2, o2: (s1 > o1) & (s2 > o2) & (o1 + o2 == 0),
    "win both halves & 4+": lambda s1, o1, s2, o2: (
        (s1 > o1) & (s2 > o2) & (s1 + o1 + s2 + o2 >= 4)
    ),
    "lead at half-time & not win": lambda s1, o1, s2, o2: (
        (s1 > o1) & ~_wins(s1, o1, s2, o2)
    ),
}
for _label, _split in _HALF_SPLITS.items():
    _COMBO_CHECKS[f"win & {_label}"] = (
        lambda s1, o1, s2, o2, split=_split: _wins(s1, o1, s2, o2) & split(s1, o1, s2, o2)
    )


def result_combos(model: CalibrationResult, side: Side) -> dict[str, MarketPrice]:
    """Win-and-goals combinations for ``side`` priced on the joint grid."""
    return _price_checks(
        model, {label: _for_side(check, side) for label, check in _COMBO_CHECKS.items()}
    )


# The chosen side's goals (own_1, own_2) against the match goals of each half.
_TEAM_GOAL_CHECKS = {
    "1+ in each half": lambda s1, o1, s2, o2: (s1 >= 1) & (s2 >= 1),
    "not 1+ in each half": lambda s1, o1, s2, o2: (s1 == 0) | (s2 == 0),
    "1+ first half & 2+ second half": lambda s1, o1, s2, o2: (s1 >= 1) & (s2 >= 2),
    "2+ first half & 1+ second half": lambda s1, o1, s2, o2: (s1 >= 2) & (s2 >= 1),
    "2+ first half & 2+ second half": lambda s1, o1, s2, o2: (s1 >= 2) & (s2 >= 2),
    "0-1 first half & 0-1 second half": lambda s1, o1, s2, o2: (s1 <= 1) & (s2 <= 1),
    "0-1 first half & 0-2 second half": lambda s1, o1, s2, o2: (s1 <= 1) & (s2 <= 2),
    "0-2 first half & 0-1 second half": lambda s1, o1, s2, o2: (s1 <= 2) & (s2 <= 1),
    "0-2 first half & 0-2 second half": lambda s1, o1, s2, o2: (s1 <= 2) & (s2 <= 2),
    "1-2 first half & 1-2 second half": lambda s1, o1, s2, o2: (
        _between(s1, 1, 2) & _between(s2, 1, 2)
    ),
    "2+ & both teams score": lambda s1, o1, s2, o2: (
        (s1 + s2 >= 2) & _both_score(s1 + s2, o1 + o2)
    ),
    "3+ & both teams score": lambda s1, o1, s2, o2: (
        (s1 + s2 >= 3) & _both_score(s1 + s2, o1 + o2)
    ),
    "1+ first half & 2+": lambda s1, o1, s2, o2: (s1 >= 1) & (s1 + s2 >= 2),
    "1+ first half & 3+": lambda s1, o1, s2, o2: (s1 >= 1) & (s1 + s2 >= 3),
}


def team_goal_combos(model: CalibrationResult, side: Side) -> dict[str, MarketPrice]:
    """Goals-by-half combinations for one side's own scoring."""
    return _price_checks(
        model, {label: _for_side(check, side) for label, check in _TEAM_GOAL_CHECKS.items()}
    )


_BTTS_CHECKS = {
    "btts & 3+": lambda h1, a1, h2, a2: (
        _both_score(h1 + h2, a1 + a2) & (h1 + a1 + h2 + a2 >= 3)
    ),
    "btts & 4+": lambda h1, a1, h2, a2: (
        _both_score(h1 + h2, a1 + a2) & (h1 + a1 + h2 + a2 >= 4)
    ),
    "btts & 2-3": lambda h1, a1, h2, a2: (
        _both_score(h1 + h2, a1 + a2) & _between(h1 + a1 + h2 + a2, 2, 3)
    ),
    "btts & 1+ first half": lambda h1, a1, h2, a2: (
        _both_score(h1 + h2, a1 + a2) & (h1 + a1 >= 1)
    ),
    "btts & 2+ first half": lambda h1, a1, h2, a2: (
        _both_score(h1 + h2, a1 + a2) & (h1 + a1 >= 2)
    ),
    "btts & 1+ second half": lambda h1, a1, h2, a2: (
        _both_score(h1 + h2, a1 + a2) & (h2 + a2 >= 1)
    ),
    "btts & 2+ second half": lambda h1, a1, h2, a2: (
        _both_score(h1 + h2, a1 + a2) & (h2 + a2 >= 2)
    ),
    "btts & goals in both halves": lambda h1, a1, h2, a2: (
        _both_score(h1 + h2, a1 + a2) & (h1 + a1 >= 1) & (h2 + a2 >= 1)
    ),
    "btts first half & 3+": lambda h1, a1, h2, a2: (
        _both_score(h1, a1) & (h1 + a1 + h2 + a2 >= 3)
    ),
    "btts first half & 4+": lambda h1, a1, h2, a2: (
        _both_score(h1, a1) & (h1 + a1 + h2 + a2 >= 4)
    ),
    "btts in both halves": lambda h1, a1, h2, a2: _both_score(h1, a1) & _both_score(h2, a2),
    "btts in either half": lambda h1, a1, h2, a2: _both_score(h1, a1) | _both_score(h2, a2),
    "btts first half only": lambda h1, a1, h2, a2: (
        _both_score(h1, a1) & ~_both_score(h2, a2)
    ),
    "btts second half only": lambda h1, a1, h2, a2: (
        ~_both_score(h1, a1) & _both_score(h2, a2)
    ),
    "no btts in either half": lambda h1, a1, h2, a2: (
        ~_both_score(h1, a1) & ~_both_score(h2, a2)
    ),
}


def btts_combos(model: CalibrationResult) -> dict[str, MarketPrice]:
    """Both-teams-to-score crossed with goal counts and with each half."""
    return _price_checks(model, _BTTS_CHECKS)


_DRAW_CHECKS = {
    "0-2": lambda h1, a1, h2, a2: _between(h1 + a1 + h2 + a2, 0, 2),
    "2+": lambda h1, a1, h2, a2: _between(h1 + a1 + h2 + a2, 2),
    "3+": lambda h1, a1, h2, a2: _between(h1 + a1 + h2 + a2, 3),
    "4+": lambda h1, a1, h2, a2: _between(h1 + a1 + h2 + a2, 4),
    "btts": lambda h1, a1, h2, a2: _both_score(h1 + h2, a1 + a2),
    "btts first half": lambda h1, a1, h2, a2: _both_score(h1, a1),
    "no btts first half": lambda h1, a1, h2, a2: ~_both_score(h1, a1),
    "btts second half": lambda h1, a1, h2, a2: _both_score(h2, a2),
    "no btts second half": lambda h1, a1, h2, a2: ~_both_score(h2, a2),
    "2+ first half": lambda h1, a1, h2, a2: _between(h1 + a1, 2),
    "0-2 first half & 0-2 second half": lambda h1, a1, h2, a2: (
        _between(h1 + a1, 0, 2) & _between(h2 + a2, 0, 2)
    ),
    "0-2 first half & 1-3 second half": lambda h1, a1, h2, a2: (
        _between(h1 + a1, 0, 2) & _between(h2 + a2, 1, 3)
    ),
    **_HALF_SPLITS,
}


def draw_combos(model: CalibrationResult) -> dict[str, MarketPrice]:
    """Full-time draw crossed with goal and both-teams-to-score conditions."""
    checks = {
        f"X & {label}": (
            lambda h1, a1, h2, a2, check=check: (h1 + h2 == a1 + a2) & check(h1, a1, h2, a2)
        )
        for label, check in _DRAW_CHECKS.items()
    }
    return _price_checks(model, checks)


def _result_and_band(rc: ResultClass, low: int, high: Optional[int]):
    return lambda h1, a1, h2, a2: (
        _result_holds(rc, h1 + h2, a1 + a2) & _between(h1 + a1 + h2 + a2, low, high)
    )


def _result_and_split(rc: ResultClass, split):
    return lambda h1, a1, h2, a2: (
        _result_holds(rc, h1 + h2, a1 + a2) & split(h1, a1, h2, a2)
    )


def double_chance_combos(model: CalibrationResult) -> dict[str, MarketPrice]:
    """Each double chance crossed with every full-time goal band."""
    checks = {}
    for rc in _DOUBLE_CHANCE_LABELS:
        for label, (low, high) in _TOTAL_BANDS.items():
            checks[f"{rc.value} & {label}"] = _result_and_band(rc, low, high)
        for label, split in _HALF_SPLITS.items():
            checks[f"{rc.value} & {label}"] = _result_and_split(rc, split)
    return _price_checks(model, checks)


_HTFT_FAVOURITE_BANDS = ("2+", "0-2", "3+", "0-3", "4+", "0-4")
_HTFT_COMEBACK_BANDS = ("0-1", "2+", "0-2", "3+", "0-3", "4+")
_HTFT_BANDS = {
    (ResultClass.HOME, ResultClass.HOME): _HTFT_FAVOURITE_BANDS,
    (ResultClass.DRAW, ResultClass.HOME): _HTFT_COMEBACK_BANDS,
    (ResultClass.AWAY, ResultClass.AWAY): _HTFT_FAVOURITE_BANDS,
    (ResultClass.DRAW, ResultClass.AWAY): _HTFT_COMEBACK_BANDS,
    (ResultClass.DRAW, ResultClass.DRAW): ("2+", "3+", "0-2"),
}


def half_time_full_time_combos(model: CalibrationResult) -> dict[str, MarketPrice]:
    """Selected half-time/full-time pairs crossed with full-time goal bands.

    Wire-to-wire wins (``1/1``, ``2/2``) are also crossed with the per-half
    goal splits.
    """
    checks = {}
    for (at_half, at_end), bands in _HTFT_BANDS.items():
        prefix = f"{at_half.value}/{at_end.value}"

        def at_break(h1, a1, h2, a2, rc=at_half):
            return _result_holds(rc, h1, a1)

        for label in bands:
            low, high = _TOTAL_BANDS[label]
            band = _result_and_band(at_end, low, high)
            checks[f"{prefix} & {label}"] = (
                lambda h1, a1, h2, a2, band=band, at_break=at_break: (
                    at_break(h1, a1, h2, a2) & band(h1, a1, h2, a2)
                )
            )
        if at_half is at_end and at_half is not ResultClass.DRAW:
            for label, split in _HALF_SPLITS.items():
                joint = _result_and_split(at_end, split)
                checks[f"{prefix} & {label}"] = (
                    lambda h1, a1, h2, a2, joint=joint, at_break=at_break: (
                        at_break(h1, a1, h2, a2) & joint(h1, a1, h2, a2)
                    )
                )
    return _price_checks(model, checks)


def _period_rates(model: CalibrationResult, period: Period) -> ScoringRates:
    period = Period(period)
    if period is Period.FIRST_HALF:
        return model.first_half
    if period is Period.SECOND_HALF:
        return model.second_half
    return model.full_time


def _scoring_shares(rates: ScoringRates) -> tuple[float, float]:
    if rates.total <= 0.0:
        return 0.0, 0.0
    return rates.home / rates.total, rates.away / rates.total


def first_team_to_score(
    model: CalibrationResult, period: Period = Period.FULL_TIME
) -> dict[str, MarketPrice]:
    """First goal of ``period`` split by scoring-rate share.

    ``P(no goal)`` is the 0-0 cell; the rest is shared in proportion to the
    two rates, which is exact for independent Poisson processes.
    """
    cells = period_table(model, period)
    no_goal = float(cells[0, 0])
    home_share, away_share = _scoring_shares(_period_rates(model, period))
    return {
        "home": MarketPrice.from_probability((1.0 - no_goal) * home_share),
        "none": MarketPrice.from_probability(no_goal),
        "away": MarketPrice.from_probability((1.0 - no_goal) * away_share),
    }


def first_to_score_combos(model: CalibrationResult) -> dict[str, MarketPrice]:
    """Full-time result or goal count crossed with the first scorer.

    The first-scorer split is applied by full-match rate share to each
    event's mass, which treats who scores first as independent of the final
    score.  It is a market approximation, not an exact joint price.
    """
    cells = period_table(model, Period.FULL_TIME)
    h, a = np.indices(cells.shape)
    home_share, away_share = _scoring_shares(model.full_time)
    events = {
        "1": float(cells[h > a].sum()),
        "2": float(cells[h < a].sum()),
        # the 0-0 draw has no first scorer
        "X": float(cells[(h == a) & (h > 0)].sum()),
    }
    board = {}
    for code, mass in events.items():
        board[f"{code} & home first"] = MarketPrice.from_probability(mass * home_share)
        board[f"{code} & away first"] = MarketPrice.from_probability(mass * away_share)
    for goals in (2, 3):
        mass = float(cells[h + a >= goals].sum())
        board[f"home first & {goals}+"] = MarketPrice.from_probability(mass * home_share)
        board[f"away first & {goals}+"] = MarketPrice.from_probability(mass * away_share)
    return board


# ---------------------------------------------------------------------------
# Full board
# ---------------------------------------------------------------------------

def _line_label(line: float) -> str:
    return f"{line:+g}" if line else "0"


def market_board(model: CalibrationResult) -> dict[str, dict[str, Selection]]:
    """Price the whole market catalogue for one calibrated match."""
    aggregates = goal_aggregates(model)
    board: dict[str, dict[str, Selection]] = {
        "match_result": match_result(model),
        "double_chance": double_chance(model),
        "draw_no_bet": {"0": draw_no_bet(model)},
        "both_teams_to_score": both_teams_to_score(model),
        "half_time_full_time": half_time_full_time(model),
    }

    totals: dict[str, Selection] = {}
    for line in FULL_TIME_TOTAL_LINES:
        for side, sel in total_goals(model, line).items():
            totals[f"{side} {line:g}"] = sel
    board["total_goals"] = totals

    board["correct_score"] = {
        f"{h}-{a}": correct_score(model, h, a) for h in range(5) for a in range(5)
    }
    board["asian_handicap"] = {
        _line_label(line): handicap_price(model, line) for line in ASIAN_HANDICAP_LINES
    }

    for period in (Period.FIRST_HALF, Period.SECOND_HALF):
        key = period.value
        board[f"{key}_result"] = period_result(model, period)
        board[f"{key}_double_chance"] = double_chance(model, period)
        board[f"{key}_btts"] = period_btts(model, period)
        half_totals: dict[str, Selection] = {}
        for line in HALF_TOTAL_LINES:
            for side, sel in period_total(model, line, period).items():
                half_totals[f"{side} {line:g}"] = sel
        board[f"{key}_total_goals"] = half_totals
        board[f"{key}_handicap"] = {
            _line_label(line): period_handicap(model, line, period)
            for line in HALF_HANDICAP_LINES
        }

    board["exact_goals"] = exact_goals(aggregates.full_time.total_goals)
    board["goal_spread"] = {
        f"{low}-{high}": goal_spread(aggregates.full_time.total_goals, low, high)
        for low, high in GOAL_SPREAD_BANDS
    }
    for side in ("home", "away"):
        team: dict[str, Selection] = {}
        for line in TEAM_TOTAL_LINES:
            for key, sel in team_total(aggregates, side, line).items():
                team[f"{key} {line:g}"] = sel
        board[f"{side}_total_goals"] = team
        board[f"{side}_scores_both_halves"] = scored_in_both_halves(aggregates, side)
        board[f"{side}_combos"] = result_combos(model, side)
        board[f"{side}_goal_combos"] = team_goal_combos(model, side)

    board["highest_scoring_half"] = highest_scoring_half(aggregates)
    board["both_halves_goals"] = both_halves_goals(aggregates)
    for period in Period:
        key = "" if period is Period.FULL_TIME else f"{period.value}_"
        board[f"{key}first_team_to_score"] = first_team_to_score(model, period)
    board["first_to_score_combos"] = first_to_score_combos(model)
    board["btts_combos"] = btts_combos(model)
    board["draw_combos"] = draw_combos(model)
    board["double_chance_combos"] = double_chance_combos(model)
    board["half_time_full_time_combos"] = half_time_full_time_combos(model)

    logger.debug(
        "Priced %d markets across %d groups",
        sum(len(group) for group in board.values()), len(board),
    )
    return board


def serialise_board(board: dict[str, dict[str, Selection]]) -> dict[str, dict[str, dict]]:
    """Plain-dict rendering of :func:`market_board` for JSON output."""
    return {
        group: {label: selection.as_dict() for label, selection in selections.items()}
        for group, selections in board.items()
    }
