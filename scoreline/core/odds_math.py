"""Fundamental odds mathematics — the single source of truth.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never reimplement locally in services.

The three pillars exposed are:

1. **Odds conversion** — decimal odds ↔ implied probability, with the
   floor-epsilon clamp that keeps fair odds finite.
2. **Vig removal** — proportional normalisation (the engine default), the
   power method and Shin (1993) for n mutually exclusive outcomes.
3. **Validation** — the input checks every price passes before any model
   computation runs.

Design decisions
----------------
* All functions take **decimal** odds because every price the engine sees
  (result market, totals, handicaps) is quoted in decimal form.
* Proportional normalisation is the calibration default: it is what the
  market-implied calibrator inverts, and it keeps the de-vigged vector an
  exact affine image of the quoted one.  The power and Shin methods are
  exposed for callers who want to correct favourite-longshot bias before
  calibrating.
* Invalid prices raise :class:`InvalidOddsError` (a ``ValueError``) instead
  of returning a sentinel, so a bad price can never flow silently into the
  calibrator.

Run tests with::

    pytest tests/test_odds_math.py -v
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Final

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: Probabilities at or below this are clamped before taking a reciprocal.
PROBABILITY_FLOOR: Final[float] = 1e-9

#: Sentinel decimal odds for a side priced at zero probability.  Used by the
#: quarter-line averaging rule, which averages odds rather than probabilities.
UNPRICED_ODDS: Final[float] = 1e9

#: Arities accepted by the de-vig functions (two-way and three-way markets).
_SUPPORTED_ARITIES: Final[frozenset[int]] = frozenset({2, 3})

#: Bisection bounds, tolerance and iteration cap for the power method.
_POWER_LO: Final[float] = 1e-6
_POWER_HI: Final[float] = 10.0
_POWER_TOL: Final[float] = 1e-12
_POWER_MAX_ITER: Final[int] = 200

#: Iteration cap and convergence tolerance for the Shin ``z`` iteration.
_SHIN_MAX_ITER: Final[int] = 200
_SHIN_TOL: Final[float] = 1e-10


class InvalidOddsError(ValueError):
    """A quoted price is non-numeric, non-finite or not above 1.0."""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_decimal_odds(odds: float, name: str = "odds") -> float:
    """Return ``odds`` as a float after checking it is a usable decimal price.

    Raises:
        InvalidOddsError: If ``odds`` is not a real number, is non-finite, or
            is ``≤ 1.0`` (a price of 1.00 implies certainty and returns no
            profit, so it cannot come from a two-sided market).
    """
    try:
        value = float(odds)
    except (TypeError, ValueError) as exc:
        raise InvalidOddsError(f"{name}={odds!r} is not a number.") from exc
    if not math.isfinite(value):
        raise InvalidOddsError(f"{name}={odds!r} must be finite.")
    if value <= 1.0:
        raise InvalidOddsError(
            f"{name}={odds!r} must be greater than 1.00 in decimal format."
        )
    return value


def _validated_book(odds: Sequence[float]) -> list[float]:
    if len(odds) not in _SUPPORTED_ARITIES:
        raise InvalidOddsError(
            f"Expected a 2-way or 3-way market, got {len(odds)} prices."
        )
    return [validate_decimal_odds(o, f"odds[{i}]") for i, o in enumerate(odds)]


# ---------------------------------------------------------------------------
# Odds conversion
# ---------------------------------------------------------------------------


def implied_prob(decimal_odds: float) -> float:
    """Raw implied probability of a decimal price (vig-inclusive)."""
    return 1.0 / validate_decimal_odds(decimal_odds)


def clamp_probability(prob: float) -> float:
    """Clip ``prob`` to ``[0, 1]``; non-finite values become 0."""
    if not math.isfinite(prob):
        return 0.0
    return min(1.0, max(0.0, prob))


def prob_to_odds(prob: float, floor: float = PROBABILITY_FLOOR) -> float:
    """Fair decimal odds for ``prob``, clamping at ``floor`` first.

    Examples::

        prob_to_odds(0.5)   → 2.0
        prob_to_odds(0.0)   → 1e9   (1 / floor)
    """
    return 1.0 / max(clamp_probability(prob), floor)


def odds_or_unpriced(
    prob: float,
    floor: float = PROBABILITY_FLOOR,
    unpriced: float = UNPRICED_ODDS,
) -> float:
    """Odds for ``prob``, or the ``unpriced`` sentinel when ``prob ≤ floor``."""
    if prob <= floor:
        return unpriced
    return 1.0 / prob


def prob_or_zero(odds: float, unpriced: float = UNPRICED_ODDS) -> float:
    """Inverse of :func:`odds_or_unpriced`: sentinel odds map back to 0."""
    if odds >= unpriced:
        return 0.0
    return 1.0 / odds


def overround(odds: Sequence[float]) -> float:
    """Sum of implied probabilities (1.0 = fair book, 1.05 = 5% margin)."""
    return sum(1.0 / o for o in _validated_book(odds))


# ---------------------------------------------------------------------------
# Vig removal: proportional
# ---------------------------------------------------------------------------


def remove_vig_proportional(odds: Sequence[float]) -> tuple[float, ...]:
    """Fair probabilities by proportional overround removal.

    Each implied probability is divided by the book's overround.  The last
    probability is taken as the complement of the others so the output sums
    to exactly 1.0.

    Args:
        odds: Two or three mutually exclusive decimal prices, each > 1.

    Returns:
        Tuple of fair probabilities in the order given.

    Raises:
        InvalidOddsError: If the arity is not 2 or 3, any price is invalid,
            or the reciprocal sum is not positive.

    Examples::

        remove_vig_proportional((1.95, 1.95))       → (0.5, 0.5)
        remove_vig_proportional((1.80, 3.60, 4.50)) → (0.5263, 0.2632, 0.2105)
    """
    prices = _validated_book(odds)
    implied = [1.0 / o for o in prices]
    total = sum(implied)
    if not (total > 0.0 and math.isfinite(total)):
        raise InvalidOddsError(
            f"Unable to derive probabilities from prices {tuple(odds)!r}."
        )
    head = [p / total for p in implied[:-1]]
    return (*head, 1.0 - sum(head))


# ---------------------------------------------------------------------------
# Vig removal: power method
# ---------------------------------------------------------------------------


def remove_vig_power(odds: Sequence[float]) -> tuple[float, ...]:
    """Fair probabilities by the power method.

    Solves ``Σ (1/o_i) ** k = 1`` for ``k`` by bisection and returns
    ``(1/o_i) ** k``.  Because ``k > 1`` for any book with a margin, longer
    prices are shrunk proportionally more than short ones, partially removing
    the favourite-longshot bias that proportional normalisation leaves in.

    Raises:
        InvalidOddsError: Same contract as :func:`remove_vig_proportional`.
    """
    prices = _validated_book(odds)
    implied = [1.0 / o for o in prices]

    def excess(k: float) -> float:
        return sum(p ** k for p in implied) - 1.0

    lo, hi = _POWER_LO, _POWER_HI
    # Σ p^k is strictly decreasing in k for p in (0, 1).
    if excess(lo) < 0.0 or excess(hi) > 0.0:
        return remove_vig_proportional(prices)

    for _ in range(_POWER_MAX_ITER):
        mid = (lo + hi) * 0.5
        if excess(mid) > 0.0:
            lo = mid
        else:
            hi = mid
        if hi - lo < _POWER_TOL:
            break

    k = (lo + hi) * 0.5
    fair = [p ** k for p in implied]
    total = sum(fair)
    head = [p / total for p in fair[:-1]]
    return (*head, 1.0 - sum(head))


# ---------------------------------------------------------------------------
# Vig removal: Shin (1993)
# ---------------------------------------------------------------------------


def remove_vig_shin(odds: Sequence[float]) -> tuple[float, ...]:
    """Fair probabilities by the Shin (1993) insider-trading model.

    Shin attributes the overround to a fraction ``z`` of informed volume.
    For a given ``z`` the fair probability of outcome *i* is::

        p_i(z) = (sqrt(z² + 4·(1 − z)·q_i² / K) − z) / (2·(1 − z))

    where ``q_i`` is the raw implied probability and ``K = Σ q_i``.  ``Σ p_i``
    is decreasing in ``z``, so the ``z`` that makes the vector sum to one is
    found by bisection on ``[0, 1)``.

    Books with no margin (``K ≤ 1``) short-circuit to proportional
    normalisation because equation above has no admissible ``z``.

    Raises:
        InvalidOddsError: Same contract as :func:`remove_vig_proportional`.

    References:
        Shin, H. S. (1993). Measuring the Incidence of Insider Trading in
        a Market for State-Contingent Claims. *Economic Journal*, 103(420),
        1141–1153.
    """
    prices = _validated_book(odds)
    implied = [1.0 / o for o in prices]
    book = sum(implied)
    if book <= 1.0:
        return remove_vig_proportional(prices)

    def shin_probs(z: float) -> list[float]:
        return [
            (math.sqrt(z * z + 4.0 * (1.0 - z) * q * q / book) - z) / (2.0 * (1.0 - z))
            for q in implied
        ]

    lo, hi = 0.0, 0.999
    for _ in range(_SHIN_MAX_ITER):
        mid = (lo + hi) * 0.5
        if sum(shin_probs(mid)) > 1.0:
            lo = mid
        else:
            hi = mid
        if hi - lo < _SHIN_TOL:
            break

    fair = shin_probs((lo + hi) * 0.5)
    total = sum(fair)
    head = [p / total for p in fair[:-1]]
    return (*head, 1.0 - sum(head))
