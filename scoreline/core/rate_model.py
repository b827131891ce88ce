"""Poisson rate model — score-probability tables for one period.

Given two scoring rates (expected goals for the home and away side over a
period) this module builds the bounded two-dimensional table of score
probabilities the evaluator enumerates.

Model
-----
Goals for each side are independent Poisson counts::

    P(h, a) = Pois(h; λ_home) · Pois(a; λ_away)

Two optional refinements are supported:

* **Low-score correlation** — only the four cells with ``h, a ∈ {0, 1}`` are
  rescaled by ``τ(h, a)``::

      τ(0, 0) = 1 − λ_home·λ_away·ρ      τ(0, 1) = 1 + λ_home·ρ
      τ(1, 0) = 1 + λ_away·ρ             τ(1, 1) = 1 − ρ

  Factors are floored at zero so cells stay non-negative for extreme ρ.

* **Zero inflation** — each marginal is a mixture with a point mass at 0::

      P(0) = ω + (1 − ω)·Pois(0; λ)      P(k) = (1 − ω)·Pois(k; λ),  k > 0

  ω is interpolated linearly from the fitted draw probability between two
  anchor points (see :func:`zero_inflation_from_draw`).

Poisson mass comes from a precomputed factorial table.  Any ``k`` beyond the
cached range returns 0: truncation is explicit, not an error.  Tables are
returned with a read-only numpy buffer.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Final, Literal

import numpy as np

#: Default size of the cached factorial table (0! .. 60!).
DEFAULT_MAX_FACTORIAL: Final[int] = 60

Side = Literal["home", "away"]


@lru_cache(maxsize=8)
def _factorials(n: int) -> tuple[float, ...]:
    cache = [1.0]
    for i in range(1, n + 1):
        cache.append(cache[-1] * i)
    return tuple(cache)


def poisson_pmf(rate: float, k: int, max_factorial: int = DEFAULT_MAX_FACTORIAL) -> float:
    """P(X = k) for X ~ Poisson(rate), using the cached factorial table.

    Returns 0.0 for a negative rate, a negative ``k`` or ``k`` beyond the
    cached table.
    """
    factorials = _factorials(max_factorial)
    if rate < 0.0 or k < 0 or k >= len(factorials):
        return 0.0
    return (rate ** k) * math.exp(-rate) / factorials[k]


def poisson_vector(
    rate: float,
    max_goals: int,
    max_factorial: int = DEFAULT_MAX_FACTORIAL,
) -> np.ndarray:
    """Array of ``Pois(k; rate)`` for ``k = 0 .. max_goals``."""
    return np.array(
        [poisson_pmf(rate, k, max_factorial) for k in range(max_goals + 1)],
        dtype=float,
    )


def zero_inflate(marginal: np.ndarray, omega: float) -> np.ndarray:
    """Mix ``marginal`` with a point mass at zero goals of weight ``omega``."""
    if not (0.0 <= omega < 1.0):
        raise ValueError(f"zero-inflation weight must be in [0, 1), got {omega!r}.")
    inflated = (1.0 - omega) * marginal
    inflated[0] += omega
    return inflated


def zero_inflation_from_draw(
    draw_prob: float,
    anchors: tuple[tuple[float, float], tuple[float, float]],
) -> float:
    """Interpolate the zero-inflation weight ω from a draw probability.

    ``anchors`` holds two ``(draw_prob, omega)`` points.  Below the first
    anchor ω takes the first anchor's value, above the second the second's;
    in between it is linear.
    """
    (d_lo, w_lo), (d_hi, w_hi) = anchors
    if draw_prob <= d_lo:
        return w_lo
    if draw_prob >= d_hi:
        return w_hi
    frac = (draw_prob - d_lo) / (d_hi - d_lo)
    return w_lo + frac * (w_hi - w_lo)


def low_score_factors(home_rate: float, away_rate: float, rho: float) -> np.ndarray:
    """2x2 multiplier block for the ``{0, 1} x {0, 1}`` cells."""
    factors = np.array(
        [
            [1.0 - home_rate * away_rate * rho, 1.0 + home_rate * rho],
            [1.0 + away_rate * rho, 1.0 - rho],
        ],
        dtype=float,
    )
    return np.maximum(factors, 0.0)


@dataclass(frozen=True)
class ScoreTable:
    """Immutable score-probability grid for one period.

    ``cells[h, a]`` is the probability that the home side scores ``h`` and the
    away side ``a`` in the period.  The buffer is read-only.

    Attributes:
        home_rate: Poisson rate the home marginal was built from.
        away_rate: Poisson rate the away marginal was built from.
        cells: ``(max_goals + 1) x (max_goals + 1)`` read-only array.
        rho: Low-score correlation applied (0.0 = none).
        zero_inflation: Zero-inflation weight applied (0.0 = none).
    """

    home_rate: float
    away_rate: float
    cells: np.ndarray = field(repr=False)
    rho: float = 0.0
    zero_inflation: float = 0.0

    @property
    def max_goals(self) -> int:
        return self.cells.shape[0] - 1

    @property
    def total(self) -> float:
        """Total mass held by the table (≤ 1 because of truncation)."""
        return float(self.cells.sum())

    def marginal(self, side: Side) -> np.ndarray:
        """Goal distribution for one side in this period."""
        if side == "home":
            return self.cells.sum(axis=1)
        if side == "away":
            return self.cells.sum(axis=0)
        raise ValueError(f"side must be 'home' or 'away', got {side!r}.")

    def total_goals_distribution(self) -> np.ndarray:
        """Distribution of ``h + a`` for ``0 .. 2 * max_goals``."""
        n = self.max_goals
        totals = np.zeros(2 * n + 1)
        h, a = np.indices(self.cells.shape)
        np.add.at(totals, h + a, self.cells)
        return totals

    def result_probabilities(self) -> tuple[float, float, float]:
        """(home win, draw, away win) within this period."""
        home = float(np.tril(self.cells, k=-1).sum())
        draw = float(np.trace(self.cells))
        away = float(np.triu(self.cells, k=1).sum())
        return home, draw, away

    def __repr__(self) -> str:
        return (
            f"ScoreTable(home_rate={self.home_rate:.3f}, away_rate={self.away_rate:.3f}, "
            f"max_goals={self.max_goals}, mass={self.total:.6f})"
        )


def build_score_table(
    home_rate: float,
    away_rate: float,
    max_goals: int,
    *,
    rho: float = 0.0,
    zero_inflation: float = 0.0,
    max_factorial: int = DEFAULT_MAX_FACTORIAL,
) -> ScoreTable:
    """Build the score-probability table for one period.

    Args:
        home_rate: Expected home goals in the period, ``≥ 0``.
        away_rate: Expected away goals in the period, ``≥ 0``.
        max_goals: Goal ceiling per side.
        rho: Low-score correlation.  ``0.0`` leaves the table independent.
        zero_inflation: Zero-inflation weight ω in ``[0, 1)``.
        max_factorial: Size of the factorial table.

    Raises:
        ValueError: If a rate is negative or non-finite, or ``max_goals < 0``.
    """
    for name, rate in (("home_rate", home_rate), ("away_rate", away_rate)):
        if not math.isfinite(rate) or rate < 0.0:
            raise ValueError(f"{name} must be a finite non-negative rate, got {rate!r}.")
    if max_goals < 0:
        raise ValueError(f"max_goals must be ≥ 0, got {max_goals!r}.")

    home = poisson_vector(home_rate, max_goals, max_factorial)
    away = poisson_vector(away_rate, max_goals, max_factorial)
    if zero_inflation:
        home = zero_inflate(home, zero_inflation)
        away = zero_inflate(away, zero_inflation)

    cells = np.outer(home, away)
    if rho and max_goals >= 1:
        cells[:2, :2] *= low_score_factors(home_rate, away_rate, rho)

    cells.setflags(write=False)
    return ScoreTable(
        home_rate=home_rate,
        away_rate=away_rate,
        cells=cells,
        rho=rho,
        zero_inflation=zero_inflation,
    )
