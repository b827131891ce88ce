"""
Joint score evaluator.

Prices a :class:`~scoreline.core.conditions.MarketCondition` against a
calibrated model by exact enumeration: the two period tables are independent,
so the joint mass of a ``(h1, a1, h2, a2)`` combination is
``first[h1, a1] * second[h2, a2]``.  The sum runs over the full 4-D cross
product (``(max_goals + 1) ** 4`` cells, ~28.5k at the default ceiling) and is
vectorised with numpy boolean masks, so the result does not depend on any
iteration order.

Arbitrary Python predicates are supported through
:func:`probability_where`, which walks :func:`iter_joint_scores` cell by
cell.  It is slower than the mask path and is used for combination markets
that do not fit the condition record.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Iterator

import numpy as np
from scipy.signal import convolve2d

from scoreline.core.conditions import (
    Comparison,
    MarketCondition,
    Outcome,
    Period,
    PeriodCondition,
)
from scoreline.core.odds_math import PROBABILITY_FLOOR, clamp_probability, prob_to_odds
from scoreline.services.calibrator import CalibrationResult

ScorePredicate = Callable[[int, int, int, int], bool]


@dataclass(frozen=True)
class MarketPrice:
    """Probability of one market selection and its fair decimal odds."""

    probability: float
    odds: float

    @classmethod
    def from_probability(cls, prob: float, floor: float = PROBABILITY_FLOOR) -> MarketPrice:
        clamped = clamp_probability(prob)
        return cls(probability=clamped, odds=prob_to_odds(clamped, floor))

    def as_dict(self) -> dict:
        return {"probability": self.probability, "odds": self.odds}


def joint_distribution(model: CalibrationResult) -> np.ndarray:
    """4-D array of joint mass indexed ``[h1, a1, h2, a2]``."""
    return np.multiply.outer(model.first_half_table.cells, model.second_half_table.cells)


@lru_cache(maxsize=8)
def _index_grid(first_size: int, second_size: int) -> tuple[np.ndarray, ...]:
    grids = np.indices((first_size, first_size, second_size, second_size))
    h1, a1, h2, a2 = grids
    ft_home = h1 + h2
    ft_away = a1 + a2
    out = (h1, a1, h2, a2, ft_home, ft_away)
    for arr in out:
        arr.setflags(write=False)
    return out


def _result_mask(condition: PeriodCondition, home: np.ndarray, away: np.ndarray) -> np.ndarray:
    by_outcome = {
        Outcome.HOME: home > away,
        Outcome.DRAW: home == away,
        Outcome.AWAY: home < away,
    }
    mask = np.zeros(home.shape, dtype=bool)
    for outcome in condition.result.outcomes:
        mask |= by_outcome[outcome]
    return mask


def _period_mask(condition: PeriodCondition, home: np.ndarray, away: np.ndarray) -> np.ndarray:
    mask = np.ones(home.shape, dtype=bool)
    if condition.is_unconstrained:
        return mask
    if condition.contradictory:
        return ~mask
    if condition.result is not None:
        mask &= _result_mask(condition, home, away)
    total = home + away
    for comparison in condition.total:
        if comparison.comparison is Comparison.OVER:
            mask &= total > comparison.line
        elif comparison.comparison is Comparison.UNDER:
            mask &= total < comparison.line
        else:
            mask &= total == comparison.line
    if condition.btts is not None:
        both_scored = (home > 0) & (away > 0)
        mask &= both_scored if condition.btts else ~both_scored
    if condition.correct_score is not None:
        want_home, want_away = condition.correct_score
        mask &= (home == want_home) & (away == want_away)
    return mask


def condition_mask(model: CalibrationResult, condition: MarketCondition) -> np.ndarray:
    """Boolean 4-D mask of the score combinations ``condition`` accepts."""
    first_size = model.first_half_table.cells.shape[0]
    second_size = model.second_half_table.cells.shape[0]
    h1, a1, h2, a2, ft_home, ft_away = _index_grid(first_size, second_size)
    return (
        _period_mask(condition.first_half, h1, a1)
        & _period_mask(condition.second_half, h2, a2)
        & _period_mask(condition.full_time, ft_home, ft_away)
    )


def probability(model: CalibrationResult, condition: MarketCondition) -> float:
    """Exact probability that the final score satisfies ``condition``.

    Mass beyond the goal ceiling is truncated, so the unconstrained
    condition returns slightly less than 1.
    """
    joint = joint_distribution(model)
    return float(joint[condition_mask(model, condition)].sum())


def price(model: CalibrationResult, condition: MarketCondition) -> MarketPrice:
    return MarketPrice.from_probability(
        probability(model, condition), model.config.probability_floor
    )


def iter_joint_scores(model: CalibrationResult) -> Iterator[tuple[int, int, int, int, float]]:
    """Yield ``(h1, a1, h2, a2, p)`` for every joint cell with ``p > 0``."""
    first = model.first_half_table.cells
    second = model.second_half_table.cells
    for (h1, a1), p1 in np.ndenumerate(first):
        if p1 <= 0.0:
            continue
        for (h2, a2), p2 in np.ndenumerate(second):
            p = p1 * p2
            if p > 0.0:
                yield int(h1), int(a1), int(h2), int(a2), float(p)


def probability_where(model: CalibrationResult, predicate: ScorePredicate) -> float:
    """Joint mass of the scores for which ``predicate(h1, a1, h2, a2)`` holds."""
    return float(
        sum(p for h1, a1, h2, a2, p in iter_joint_scores(model) if predicate(h1, a1, h2, a2))
    )


def probability_vectorised(model: CalibrationResult, predicate: ScorePredicate) -> float:
    """Like :func:`probability_where`, but ``predicate`` is called once.

    It receives the four index grids ``(h1, a1, h2, a2)`` as arrays and must
    return a boolean array, so it has to be written with ``&``, ``|`` and
    ``~`` rather than ``and``/``or``/``not``.
    """
    first_size = model.first_half_table.cells.shape[0]
    second_size = model.second_half_table.cells.shape[0]
    h1, a1, h2, a2, _, _ = _index_grid(first_size, second_size)
    mask = np.asarray(predicate(h1, a1, h2, a2), dtype=bool)
    return float(joint_distribution(model)[mask].sum())


def full_time_table(model: CalibrationResult) -> np.ndarray:
    """Full-match score grid: the 2-D convolution of the two period tables."""
    return convolve2d(model.first_half_table.cells, model.second_half_table.cells)


def period_table(model: CalibrationResult, period: Period) -> np.ndarray:
    """Score grid indexed ``[home, away]`` for one settlement scope."""
    period = Period(period)
    if period is Period.FIRST_HALF:
        return model.first_half_table.cells
    if period is Period.SECOND_HALF:
        return model.second_half_table.cells
    return full_time_table(model)
