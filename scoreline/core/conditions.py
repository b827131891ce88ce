"""Market conditions — structured predicates over a hypothetical final score.

A :class:`MarketCondition` describes which ``(h1, a1, h2, a2)`` score
combinations settle a bet as a winner.  It has three scopes — first half,
second half and full time — each a :class:`PeriodCondition` with four
optional predicate families:

* ``result``        — one of the six :class:`ResultClass` codes
* ``total``         — over / under / exact comparisons against a line
* ``btts``          — both teams scored (``True``) or not (``False``)
* ``correct_score`` — an exact ``(home, away)`` score

``None`` (or no total comparisons) means unconstrained: it never rejects a
score.  Conditions are pure values; they are combined with ``&``, which ANDs
every populated field.  Legs that cannot all hold produce a condition with
probability 0, not an error.

Typical usage::

    from scoreline.core.conditions import (
        ResultClass, TotalCondition, first_half, full_time,
    )

    htft = first_half(result=ResultClass.DRAW) & full_time(result=ResultClass.HOME)
    over = full_time(total=TotalCondition.over(2.5))
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Tuple


class Period(str, enum.Enum):
    """Scope a single-period market is settled on."""

    FIRST_HALF = "first_half"
    SECOND_HALF = "second_half"
    FULL_TIME = "full_time"


class Outcome(enum.Enum):
    """Basic outcome of a period from the home side's perspective."""

    HOME = "home"
    DRAW = "draw"
    AWAY = "away"

    @classmethod
    def of(cls, home: int, away: int) -> Outcome:
        if home > away:
            return cls.HOME
        if home == away:
            return cls.DRAW
        return cls.AWAY


class ResultClass(enum.Enum):
    """The six 1X2 / double-chance result codes."""

    HOME = "1"
    DRAW = "X"
    AWAY = "2"
    HOME_OR_DRAW = "1X"
    HOME_OR_AWAY = "12"
    DRAW_OR_AWAY = "X2"

    @property
    def outcomes(self) -> frozenset[Outcome]:
        """Basic outcomes this result class admits."""
        return _RESULT_OUTCOMES[self]

    def matches(self, home: int, away: int) -> bool:
        return Outcome.of(home, away) in self.outcomes

    @classmethod
    def from_outcomes(cls, outcomes: frozenset[Outcome]) -> ResultClass:
        for rc, admitted in _RESULT_OUTCOMES.items():
            if admitted == outcomes:
                return rc
        raise ValueError(f"No result class admits exactly {sorted(o.value for o in outcomes)}.")


_RESULT_OUTCOMES: dict[ResultClass, frozenset[Outcome]] = {
    ResultClass.HOME: frozenset({Outcome.HOME}),
    ResultClass.DRAW: frozenset({Outcome.DRAW}),
    ResultClass.AWAY: frozenset({Outcome.AWAY}),
    ResultClass.HOME_OR_DRAW: frozenset({Outcome.HOME, Outcome.DRAW}),
    ResultClass.HOME_OR_AWAY: frozenset({Outcome.HOME, Outcome.AWAY}),
    ResultClass.DRAW_OR_AWAY: frozenset({Outcome.DRAW, Outcome.AWAY}),
}


class Comparison(enum.Enum):
    OVER = "o"
    UNDER = "u"
    EXACT = "="


@dataclass(frozen=True)
class TotalCondition:
    """Total-goals comparison: ``total > line``, ``total < line`` or ``total == line``."""

    comparison: Comparison
    line: float

    @classmethod
    def over(cls, line: float) -> TotalCondition:
        return cls(Comparison.OVER, float(line))

    @classmethod
    def under(cls, line: float) -> TotalCondition:
        return cls(Comparison.UNDER, float(line))

    @classmethod
    def exactly(cls, goals: int) -> TotalCondition:
        return cls(Comparison.EXACT, float(goals))

    def matches(self, total: int) -> bool:
        if self.comparison is Comparison.OVER:
            return total > self.line
        if self.comparison is Comparison.UNDER:
            return total < self.line
        return total == self.line


@dataclass(frozen=True)
class PeriodCondition:
    """Predicate over a single scope's ``(home, away)`` score.

    ``total`` holds any number of comparisons, all of which must hold, so a
    goal band such as 2-3 is ``(over(1.5), under(3.5))``.  A single
    :class:`TotalCondition` is accepted and wrapped.  ``contradictory`` marks
    a composite whose legs cannot all hold; it matches no score.
    """

    result: Optional[ResultClass] = None
    total: Tuple[TotalCondition, ...] = ()
    btts: Optional[bool] = None
    correct_score: Optional[Tuple[int, int]] = None
    contradictory: bool = False

    def __post_init__(self) -> None:
        if self.total is None:
            object.__setattr__(self, "total", ())
        elif isinstance(self.total, TotalCondition):
            object.__setattr__(self, "total", (self.total,))
        else:
            object.__setattr__(self, "total", tuple(self.total))
        if self.correct_score is not None:
            home, away = self.correct_score
            object.__setattr__(self, "correct_score", (int(home), int(away)))

    @property
    def is_unconstrained(self) -> bool:
        return (
            self.result is None
            and not self.total
            and self.btts is None
            and self.correct_score is None
            and not self.contradictory
        )

    def matches(self, home: int, away: int) -> bool:
        """Check every populated field, stopping at the first failure."""
        if self.contradictory:
            return False
        if self.result is not None and not self.result.matches(home, away):
            return False
        if not all(t.matches(home + away) for t in self.total):
            return False
        if self.btts is not None and self.btts != (home > 0 and away > 0):
            return False
        if self.correct_score is not None and self.correct_score != (home, away):
            return False
        return True

    def __and__(self, other: PeriodCondition) -> PeriodCondition:
        """AND two conditions field by field.

        Result classes intersect and total comparisons accumulate.  Disjoint
        results, opposite ``btts`` flags or two different correct scores
        give a contradictory condition rather than an error.
        """
        if not isinstance(other, PeriodCondition):
            return NotImplemented
        contradictory = self.contradictory or other.contradictory

        result = self.result if other.result is None else other.result
        if self.result is not None and other.result is not None:
            common = self.result.outcomes & other.result.outcomes
            if common:
                result = ResultClass.from_outcomes(common)
            else:
                result, contradictory = self.result, True

        merged = {}
        for name in ("btts", "correct_score"):
            mine, theirs = getattr(self, name), getattr(other, name)
            if mine is not None and theirs is not None and mine != theirs:
                contradictory = True
            merged[name] = mine if mine is not None else theirs

        return PeriodCondition(
            result=result,
            total=self.total + tuple(t for t in other.total if t not in self.total),
            contradictory=contradictory,
            **merged,
        )


@dataclass(frozen=True)
class MarketCondition:
    """Compound predicate over first-half, second-half and full-time scores."""

    first_half: PeriodCondition = PeriodCondition()
    second_half: PeriodCondition = PeriodCondition()
    full_time: PeriodCondition = PeriodCondition()

    def matches(self, h1: int, a1: int, h2: int, a2: int) -> bool:
        """Evaluate first-half, then second-half, then full-time fields."""
        return (
            self.first_half.matches(h1, a1)
            and self.second_half.matches(h2, a2)
            and self.full_time.matches(h1 + h2, a1 + a2)
        )

    def __and__(self, other: MarketCondition) -> MarketCondition:
        if not isinstance(other, MarketCondition):
            return NotImplemented
        return MarketCondition(
            first_half=self.first_half & other.first_half,
            second_half=self.second_half & other.second_half,
            full_time=self.full_time & other.full_time,
        )


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def first_half(**constraints) -> MarketCondition:
    """Condition constraining only the first half, e.g. ``first_half(btts=True)``."""
    return MarketCondition(first_half=PeriodCondition(**constraints))


def second_half(**constraints) -> MarketCondition:
    """Condition constraining only the second half."""
    return MarketCondition(second_half=PeriodCondition(**constraints))


def full_time(**constraints) -> MarketCondition:
    """Condition constraining only the full-time score."""
    return MarketCondition(full_time=PeriodCondition(**constraints))


def for_period(period: Period, **constraints) -> MarketCondition:
    """Condition constraining only the scope named by ``period``."""
    return MarketCondition(**{Period(period).value: PeriodCondition(**constraints)})


#: The condition every score satisfies.
ANY_SCORE = MarketCondition()
