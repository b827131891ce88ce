"""
Market calibration — inverting prices into scoring rates.

The calibrator turns the caller's evidence for a single match into the two
full-match Poisson rates the rest of the engine runs on, splits them into
first- and second-period rates with the configured ratio and builds both
period score tables immediately.

Three input shapes are supported:

    1. Direct:         (supremacy, expectancy) given analytically:
                       λ_home = (E − S) / 2,  λ_away = (E + S) / 2
                       (negative supremacy favours the home side).

    2. Line search:    1X2 prices plus an Over/Under price at a goal line.
                       Two nested one-dimensional searches, one per market
                       dimension: first the total T (supremacy held at 0)
                       against the de-vigged Under share, then the supremacy
                       S (T held fixed) against the home share of decisive
                       results.  Each pass steps by a fixed increment while
                       the error strictly decreases, then backs off one step.

    3. Golden section: 1X2 prices plus a known total rate, or an Over/Under
                       price that is first inverted into a total rate by
                       bisection.  λ_home is found by golden-section
                       minimisation of the summed squared 1X2 error with
                       λ_away = T − λ_home, using a zero-inflated model whose
                       weight is read off the target draw probability.

Every failure is explicit: invalid inputs raise :class:`InvalidInputError`
(or :class:`~scoreline.core.odds_math.InvalidOddsError` for prices) before
any search runs, and a search that cannot reproduce its targets raises
:class:`CalibrationError`.  Nothing is retried and no best guess is returned
as if it were exact.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np
from scipy.stats import poisson

from scoreline.core.model_config import DEFAULT_CONFIG, ModelConfig
from scoreline.core.odds_math import remove_vig_proportional
from scoreline.core.rate_model import (
    ScoreTable,
    build_score_table,
    zero_inflation_from_draw,
)

logger = logging.getLogger(__name__)

# Smallest total rate the line search may step down to.
_MIN_TOTAL_RATE = 0.01
# Model/target gap below which a search pass is considered already solved.
_SOLVED_GAP = 1e-6
# Rate floor inside the golden-section bracket.
_GOLDEN_RATE_FLOOR = 1e-9
# Totals at or below this are split evenly without a search.
_GOLDEN_TINY_TOTAL = 2e-6
_GOLDEN_RATIO = (math.sqrt(5.0) - 1.0) / 2.0
# Initial bracket and expansion limits of the total-goals bisection.
_BISECT_LOW = 0.01
_BISECT_HIGH = 10.0
_BISECT_HIGH_CAP = 25.0
_BISECT_LOW_CAP = 1e-6
_BISECT_EXPANSIONS = 20


class InvalidInputError(ValueError):
    """A supremacy, expectancy, goal line or rate is out of domain."""


class CalibrationError(RuntimeError):
    """No consistent model reproduces the supplied prices."""


class CalibrationMethod(enum.Enum):
    DIRECT = "direct"
    LINE_SEARCH = "line_search"
    GOLDEN_SECTION = "golden_section"


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoringRates:
    """Expected goals for each side over one period."""

    home: float
    away: float

    @property
    def total(self) -> float:
        return self.home + self.away

    @property
    def supremacy(self) -> float:
        """``away − home``: negative when the home side is stronger."""
        return self.away - self.home

    def scaled(self, ratio: float) -> ScoringRates:
        return ScoringRates(self.home * ratio, self.away * ratio)


@dataclass(frozen=True)
class CalibrationResult:
    """Immutable output of a calibration: rates plus both period tables.

    Passed explicitly into every evaluator and market function; nothing in
    the engine holds a calibrated model globally.
    """

    full_time: ScoringRates
    first_half: ScoringRates
    second_half: ScoringRates
    first_half_table: ScoreTable = field(repr=False)
    second_half_table: ScoreTable = field(repr=False)
    method: CalibrationMethod
    config: ModelConfig = field(repr=False)
    iterations: int = 0

    @property
    def expectancy(self) -> float:
        return self.full_time.total

    @property
    def supremacy(self) -> float:
        return self.full_time.supremacy

    @property
    def max_goals(self) -> int:
        return self.first_half_table.max_goals

    @property
    def zero_inflation(self) -> float:
        return self.first_half_table.zero_inflation

    @property
    def rho(self) -> float:
        return self.first_half_table.rho

    def rates(self) -> dict[str, float]:
        """The six scoring rates keyed the way the API reports them."""
        return {
            "home_full_time": self.full_time.home,
            "away_full_time": self.full_time.away,
            "home_first_half": self.first_half.home,
            "away_first_half": self.first_half.away,
            "home_second_half": self.second_half.home,
            "away_second_half": self.second_half.away,
        }


# ---------------------------------------------------------------------------
# Building the result
# ---------------------------------------------------------------------------

def calibrate_from_rates(
    home_rate: float,
    away_rate: float,
    *,
    config: ModelConfig = DEFAULT_CONFIG,
    method: CalibrationMethod = CalibrationMethod.DIRECT,
    iterations: int = 0,
    zero_inflation: float = 0.0,
) -> CalibrationResult:
    """Split full-match rates into periods and build both score tables.

    Raises:
        InvalidInputError: If either rate is negative or non-finite.
    """
    for name, rate in (("home_rate", home_rate), ("away_rate", away_rate)):
        if not math.isfinite(rate) or rate < 0.0:
            raise InvalidInputError(f"{name} must be a finite rate ≥ 0, got {rate!r}.")

    full_time = ScoringRates(float(home_rate), float(away_rate))
    first_half = full_time.scaled(config.first_period_ratio)
    second_half = full_time.scaled(config.second_period_ratio)

    def table(rates: ScoringRates) -> ScoreTable:
        return build_score_table(
            rates.home,
            rates.away,
            config.max_goals,
            rho=config.low_score_rho,
            zero_inflation=zero_inflation,
            max_factorial=config.max_factorial,
        )

    return CalibrationResult(
        full_time=full_time,
        first_half=first_half,
        second_half=second_half,
        first_half_table=table(first_half),
        second_half_table=table(second_half),
        method=method,
        config=config,
        iterations=iterations,
    )


def _fail(message: str) -> CalibrationError:
    logger.warning("Calibration failed: %s", message)
    return CalibrationError(f"No consistent model: {message}")


# ---------------------------------------------------------------------------
# 1. Direct
# ---------------------------------------------------------------------------

def calibrate_from_supremacy(
    supremacy: float,
    expectancy: float,
    *,
    config: ModelConfig = DEFAULT_CONFIG,
) -> CalibrationResult:
    """Build the model from supremacy and expectancy, no search needed.

    Args:
        supremacy: ``λ_away − λ_home`` over the match.  Negative when the
            home side is favoured.
        expectancy: ``λ_home + λ_away``, the expected total goals.

    Raises:
        InvalidInputError: If either value is non-finite, expectancy is not
            positive, or ``|supremacy| > expectancy``.
    """
    if not (math.isfinite(supremacy) and math.isfinite(expectancy)):
        raise InvalidInputError("Supremacy and expectancy must be finite numbers.")
    if expectancy <= 0.0:
        raise InvalidInputError(f"Expectancy must be positive, got {expectancy!r}.")
    if abs(supremacy) > expectancy:
        raise InvalidInputError(
            f"|supremacy| ({abs(supremacy)!r}) cannot exceed expectancy ({expectancy!r})."
        )
    result = calibrate_from_rates(
        (expectancy - supremacy) / 2.0,
        (expectancy + supremacy) / 2.0,
        config=config,
    )
    logger.info(
        "Direct model: home=%.3f away=%.3f (S=%.2f, E=%.2f)",
        result.full_time.home, result.full_time.away, supremacy, expectancy,
    )
    return result


# ---------------------------------------------------------------------------
# 2. Nested line search
# ---------------------------------------------------------------------------

def _solver_table(home_rate: float, away_rate: float, config: ModelConfig) -> np.ndarray:
    return build_score_table(
        home_rate,
        away_rate,
        config.solver_max_goals,
        max_factorial=config.max_factorial,
    ).cells


def outcome_shares(
    home_rate: float,
    away_rate: float,
    line: float,
    config: ModelConfig = DEFAULT_CONFIG,
) -> tuple[float, float]:
    """Model home share and Under share on the solver grid.

    Returns:
        ``(home / (home + away), under / (under + over))``.  Draws are left
        out of the first share and totals landing exactly on an integer
        line (a push) out of the second.  A share with no mass behind it is
        reported as 0.
    """
    cells = _solver_table(home_rate, away_rate, config)
    h, a = np.indices(cells.shape)
    home = float(cells[h > a].sum())
    away = float(cells[h < a].sum())
    totals = h + a
    under = float(cells[totals < line].sum())
    over = float(cells[totals > line].sum())
    two_way = home + away
    both = under + over
    return (
        home / two_way if two_way > 0.0 else 0.0,
        under / both if both > 0.0 else 0.0,
    )


def _line_search(
    model_value: Callable[[float], float],
    start: float,
    target: float,
    *,
    config: ModelConfig,
    label: str,
    floor: Optional[float] = None,
    bound: Optional[float] = None,
) -> tuple[float, int]:
    """Step ``x`` toward ``target`` until the error stops decreasing.

    ``model_value`` must be decreasing in ``x``.  The pass keeps stepping
    while the absolute error is strictly smaller than at the previous step,
    then backs off the final (overshooting) step.  With ``bound`` set, a
    step reaching ``|x| ≥ bound`` ends the search before ``model_value`` is
    called there.

    Returns:
        ``(x, iterations)``.

    Raises:
        CalibrationError: If the iteration bound is hit first, or a step
            reaches ``bound``.
    """

    def clamp(x: float) -> float:
        return x if floor is None else max(floor, x)

    x = start
    value = model_value(x)
    if abs(value - target) < _SOLVED_GAP:
        return x, 0

    increment = config.search_step if value > target else -config.search_step
    error = abs(value - target)
    previous = math.inf
    iterations = 0
    while error < previous:
        if iterations >= config.max_search_iterations:
            raise _fail(
                f"{label} search did not settle within "
                f"{config.max_search_iterations} steps."
            )
        x = clamp(x + increment)
        if bound is not None and abs(x) >= bound:
            raise _fail(f"{label} reached {x:.3f}, outside (-{bound:.3f}, {bound:.3f}).")
        previous, error = error, abs(model_value(x) - target)
        iterations += 1

    x = clamp(x - increment)
    logger.debug("%s search settled at %.4f after %d steps", label, x, iterations)
    return x, iterations


def calibrate_from_prices(
    home_odds: float,
    draw_odds: float,
    away_odds: float,
    line: float,
    over_odds: float,
    under_odds: float,
    *,
    config: ModelConfig = DEFAULT_CONFIG,
) -> CalibrationResult:
    """Recover the scoring rates implied by 1X2 and Over/Under prices.

    Raises:
        InvalidOddsError: If any price is invalid (raised by the de-vig step
            before any search runs).
        InvalidInputError: If the goal line is non-finite or negative.
        CalibrationError: If the searches cannot reproduce the prices.
    """
    home_p, _draw_p, away_p = remove_vig_proportional((home_odds, draw_odds, away_odds))
    _over_p, under_p = remove_vig_proportional((over_odds, under_odds))
    if not math.isfinite(line) or line < 0.0:
        raise InvalidInputError(f"Total goals line must be finite and ≥ 0, got {line!r}.")

    home_target = home_p / (home_p + away_p)
    under_target = under_p

    # Pass 1: total goals with supremacy held at zero.
    total, total_steps = _line_search(
        lambda t: outcome_shares(t / 2.0, t / 2.0, line, config)[1],
        max(_MIN_TOTAL_RATE, line),
        under_target,
        config=config,
        label="total",
        floor=_MIN_TOTAL_RATE,
    )

    # Pass 2: supremacy with the total held fixed.
    supremacy, supremacy_steps = _line_search(
        lambda s: outcome_shares((total - s) / 2.0, (total + s) / 2.0, line, config)[0],
        0.0,
        home_target,
        config=config,
        label="supremacy",
        bound=total,
    )

    if abs(supremacy) > total:
        raise _fail(f"supremacy {supremacy:.3f} exceeds total {total:.3f}.")
    home_rate = (total - supremacy) / 2.0
    away_rate = (total + supremacy) / 2.0
    if home_rate <= 0.0 or away_rate <= 0.0:
        raise _fail(f"derived rates ({home_rate:.3f}, {away_rate:.3f}) are not positive.")

    result = calibrate_from_rates(
        home_rate,
        away_rate,
        config=config,
        method=CalibrationMethod.LINE_SEARCH,
        iterations=total_steps + supremacy_steps,
    )
    logger.info(
        "Market model: home=%.3f away=%.3f (T=%.2f, S=%.2f, %d steps)",
        home_rate, away_rate, total, supremacy, result.iterations,
    )
    return result


# ---------------------------------------------------------------------------
# 3. Golden section with bisection-implied total
# ---------------------------------------------------------------------------

def _settle_total_line(total_rate: float, line: float) -> tuple[float, float, float]:
    """(win, loss, push) of an Over bet on a half or whole total line."""
    floor_value = math.floor(line + 1e-9)
    win = float(poisson.sf(floor_value, total_rate))
    if abs(line - floor_value) < 1e-6:
        push = float(poisson.pmf(floor_value, total_rate))
    else:
        push = 0.0
    loss = max(0.0, 1.0 - win - push)
    return win, loss, push


def probability_total_over(total_rate: float, line: float) -> float:
    """Push-excluded Over probability when total goals ~ Poisson(total_rate).

    Quarter lines are settled as two equal stakes on the adjacent half and
    whole lines: wins and losses of both halves are pooled before the ratio
    is taken.
    """
    if line < 0.0:
        return 1.0

    quarter = round(line * 4.0) / 4.0
    remainder = int(round(quarter * 4.0)) % 4
    if abs(quarter - line) <= 1e-6 and remainder in (1, 3):
        low = _settle_total_line(total_rate, quarter - 0.25)
        high = _settle_total_line(total_rate, quarter + 0.25)
        win = low[0] + high[0]
        loss = low[1] + high[1]
    else:
        win, loss, _ = _settle_total_line(total_rate, line)
    decided = win + loss
    return win / decided if decided > 0.0 else 0.0


def solve_total_goals(
    line: float,
    target_over: float,
    *,
    config: ModelConfig = DEFAULT_CONFIG,
) -> float:
    """Invert an Over probability at ``line`` into a total goals rate.

    The bracket ``[0.01, 10]`` is widened (up to 25 above, down to 1e-6
    below) until it contains the target, then bisected.

    Raises:
        CalibrationError: If the target is not in ``(0, 1)`` or cannot be
            bracketed.
    """
    tol = config.bisection_tolerance
    if not (0.0 < target_over < 1.0):
        raise _fail(f"Over probability {target_over!r} is not in (0, 1).")

    low, high = _BISECT_LOW, _BISECT_HIGH
    low_prob = probability_total_over(low, line)
    high_prob = probability_total_over(high, line)

    expansions = 0
    while high_prob < target_over - tol and high < _BISECT_HIGH_CAP and expansions < _BISECT_EXPANSIONS:
        high *= 1.5
        high_prob = probability_total_over(high, line)
        expansions += 1

    expansions = 0
    while low_prob > target_over + tol and low > _BISECT_LOW_CAP and expansions < _BISECT_EXPANSIONS:
        low *= 0.5
        low_prob = probability_total_over(low, line)
        expansions += 1

    if low_prob > target_over or high_prob < target_over:
        raise _fail(
            f"Over probability {target_over:.4f} at line {line} is not reachable "
            f"for total rates in [{low:.4g}, {high:.4g}]."
        )

    for _ in range(config.bisection_iterations):
        mid = (low + high) / 2.0
        mid_prob = probability_total_over(mid, line)
        if abs(mid_prob - target_over) < tol:
            return mid
        if mid_prob < target_over:
            low = mid
        else:
            high = mid
    return (low + high) / 2.0


def result_probabilities(
    home_rate: float,
    away_rate: float,
    *,
    zero_inflation: float = 0.0,
    config: ModelConfig = DEFAULT_CONFIG,
) -> tuple[float, float, float]:
    """Normalised (home, draw, away) on a grid deep enough for the total."""
    limit = max(config.solver_max_goals, math.ceil(home_rate + away_rate + 8))
    limit = min(limit, config.max_factorial - 1)
    table = build_score_table(
        home_rate,
        away_rate,
        limit,
        rho=config.low_score_rho,
        zero_inflation=zero_inflation,
        max_factorial=config.max_factorial,
    )
    home, draw, away = table.result_probabilities()
    total = home + draw + away
    if total <= 0.0:
        return 0.0, 0.0, 0.0
    return home / total, draw / total, away / total


def _golden_fit(
    total: float,
    targets: tuple[float, float, float],
    zero_inflation: float,
    config: ModelConfig,
) -> tuple[float, float, float]:
    """Golden-section search for λ_home; returns (λ_home, λ_away, error)."""

    def evaluate(home_rate: float) -> tuple[float, float, float]:
        away_rate = max(_GOLDEN_RATE_FLOOR, total - home_rate)
        probs = result_probabilities(
            home_rate, away_rate, zero_inflation=zero_inflation, config=config
        )
        error = sum((p - t) ** 2 for p, t in zip(probs, targets))
        return home_rate, away_rate, error

    if total <= _GOLDEN_TINY_TOTAL:
        even = max(total / 2.0, _GOLDEN_RATE_FLOOR)
        return even, even, 0.0

    low = _GOLDEN_RATE_FLOOR
    high = max(total - _GOLDEN_RATE_FLOOR, _GOLDEN_RATE_FLOOR)
    if high <= low:
        high = max(total, 1e-6)
        low = min(low, high * 0.001)
    x1 = high - _GOLDEN_RATIO * (high - low)
    x2 = low + _GOLDEN_RATIO * (high - low)
    f1, f2 = evaluate(x1), evaluate(x2)
    best = min(f1, f2, key=lambda f: f[2])

    for _ in range(config.golden_iterations):
        if f1[2] > f2[2]:
            low, x1, f1 = x1, x2, f2
            x2 = low + _GOLDEN_RATIO * (high - low)
            f2 = evaluate(x2)
        else:
            high, x2, f2 = x2, x1, f1
            x1 = high - _GOLDEN_RATIO * (high - low)
            f1 = evaluate(x1)
        best = min(best, f1, f2, key=lambda f: f[2])

    return min(best, evaluate(low), evaluate(high), key=lambda f: f[2])


def calibrate_by_golden_section(
    home_odds: float,
    draw_odds: float,
    away_odds: float,
    *,
    total_goals: Optional[float] = None,
    line: Optional[float] = None,
    over_odds: Optional[float] = None,
    under_odds: Optional[float] = None,
    config: ModelConfig = DEFAULT_CONFIG,
) -> CalibrationResult:
    """Fit λ_home by golden section against the de-vigged 1X2 vector.

    Either ``total_goals`` or all of ``line``, ``over_odds`` and
    ``under_odds`` must be given.  In the second case the total rate is
    first inverted from the de-vigged Over probability with
    :func:`solve_total_goals`.

    Raises:
        InvalidOddsError: If any price is invalid.
        InvalidInputError: If neither total source is complete, or the
            total or line is out of domain.
        CalibrationError: If the total cannot be bracketed or the best fit
            misses the 1X2 targets by more than ``config.golden_tolerance``.
    """
    targets = remove_vig_proportional((home_odds, draw_odds, away_odds))

    if total_goals is None:
        if line is None or over_odds is None or under_odds is None:
            raise InvalidInputError(
                "Provide total_goals, or line with over and under odds."
            )
        over_p, _under_p = remove_vig_proportional((over_odds, under_odds))
        if not math.isfinite(line) or line < 0.0:
            raise InvalidInputError(f"Total goals line must be finite and ≥ 0, got {line!r}.")
        total_goals = solve_total_goals(line, over_p, config=config)
    elif not math.isfinite(total_goals) or total_goals <= 0.0:
        raise InvalidInputError(f"total_goals must be positive, got {total_goals!r}.")

    omega = zero_inflation_from_draw(targets[1], config.zero_inflation_anchors)
    home_rate, away_rate, error = _golden_fit(total_goals, targets, omega, config)
    if error > config.golden_tolerance:
        raise _fail(
            f"best 1X2 fit error {error:.5f} exceeds tolerance {config.golden_tolerance}."
        )

    result = calibrate_from_rates(
        home_rate,
        away_rate,
        config=config,
        method=CalibrationMethod.GOLDEN_SECTION,
        iterations=config.golden_iterations,
        zero_inflation=omega,
    )
    logger.info(
        "Golden-section model: home=%.3f away=%.3f (T=%.2f, omega=%.3f, err=%.2e)",
        home_rate, away_rate, total_goals, omega, error,
    )
    return result
