"""Model-level configuration — every pricing constant in one place.

This module is the **registry** for the numeric constants the engine depends
on.  Nowhere else in the codebase should goal ceilings, period ratios, search
step sizes or clamping epsilons be hard-coded.

Architecture
------------
:class:`ModelConfig` is a frozen dataclass.  The named constructor
:meth:`ModelConfig.football` returns the standard two-period football set-up,
:meth:`ModelConfig.football_low_score` adds the low-score correlation term,
and :meth:`ModelConfig.from_env` layers ``SCORELINE_*`` environment
overrides on top of the standard set.

Typical usage::

    from scoreline.core.model_config import ModelConfig

    cfg = ModelConfig.football()

    # Override a single constant:
    from dataclasses import replace
    deeper = replace(cfg, max_goals=15)

The first/second period split is a modelling simplification: the same
0.45 / 0.55 ratio is applied to every match regardless of team style.  It is
kept configurable rather than derived from match-specific data.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, replace
from typing import Final

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Market line catalogues used by the full market board
# ---------------------------------------------------------------------------

FULL_TIME_TOTAL_LINES: Final[tuple[float, ...]] = (0.5, 1.5, 2.5, 3.5, 4.5, 5.5, 6.5)
TEAM_TOTAL_LINES: Final[tuple[float, ...]] = (0.5, 1.5, 2.5)
HALF_TOTAL_LINES: Final[tuple[float, ...]] = (0.5, 1.5, 2.5)
HALF_HANDICAP_LINES: Final[tuple[float, ...]] = (-1.0, -0.5, 0.0, 0.5, 1.0)
ASIAN_HANDICAP_LINES: Final[tuple[float, ...]] = (
    -2.0, -1.75, -1.5, -1.25, -1.0, -0.75, -0.5, -0.25,
    0.0, 0.25, 0.5, 0.75, 1.0, 1.25, 1.5, 1.75, 2.0,
)
#: Inclusive (low, high) bands for goal-spread markets.
GOAL_SPREAD_BANDS: Final[tuple[tuple[int, int], ...]] = (
    (1, 2), (1, 3), (1, 4), (1, 5), (2, 3), (2, 4),
    (2, 5), (3, 4), (3, 5), (4, 5), (4, 6),
)
#: Highest exact-goals bucket shown before the "N+" tail bucket.
EXACT_GOALS_MAX: Final[int] = 6

#: Standard low-score correlation used by the correlated named constructor.
#: Negative values lift 0-0 and 1-1 and trim 1-0 / 0-1.
STANDARD_LOW_SCORE_RHO: Final[float] = -0.13

_ENV_PREFIX: Final[str] = "SCORELINE_"


@dataclass(frozen=True)
class ModelConfig:
    """Immutable configuration bundle for the scoring model.

    Attributes:
        max_goals: Per-period goal ceiling for the score tables.  Each
            table is ``(max_goals + 1) x (max_goals + 1)``; mass beyond the
            ceiling is truncated.
        solver_max_goals: Ceiling for the full-match grid used inside the
            calibration searches.  Deeper than ``max_goals`` because the
            solver works on full-match rates.
        first_period_ratio: Share of each side's full-match rate assigned
            to the first period.  The second period receives the rest.
        search_step: Increment of the nested line searches, in goals.
        max_search_iterations: Iteration bound of each line search pass.
            Exceeding it is a calibration failure.
        push_epsilon: Margin band treated as a push when settling
            handicaps (guards float error at integer margins).
        probability_floor: Probabilities at or below this are clamped
            before taking a reciprocal.
        unpriced_odds: Sentinel odds for a side priced at zero probability
            in the quarter-line averaging rule.
        low_score_rho: Low-score correlation adjustment applied to the
            period tables.  ``0.0`` disables it.
        zero_inflation_anchors: Two ``(draw_prob, omega)`` points between
            which the zero-inflation weight is linearly interpolated.
        golden_iterations: Iterations of the golden-section search.
        golden_tolerance: Largest acceptable squared error of the
            golden-section fit.
        bisection_tolerance: Convergence tolerance of the total-goals
            bisection on the Over probability.
        bisection_iterations: Iteration bound of that bisection.
        max_factorial: Size of the cached factorial table; Poisson mass at
            ``k`` beyond it is 0.
    """

    max_goals: int = 12
    solver_max_goals: int = 20
    first_period_ratio: float = 0.45

    search_step: float = 0.05
    max_search_iterations: int = 1000

    push_epsilon: float = 0.01
    probability_floor: float = 1e-9
    unpriced_odds: float = 1e9

    low_score_rho: float = 0.0
    zero_inflation_anchors: tuple[tuple[float, float], tuple[float, float]] = (
        (0.26, 0.0),
        (0.34, 0.08),
    )

    golden_iterations: int = 80
    golden_tolerance: float = 0.0015
    bisection_tolerance: float = 0.0005
    bisection_iterations: int = 60

    max_factorial: int = 60

    def __post_init__(self) -> None:
        if self.max_goals < 1:
            raise ValueError(f"max_goals must be ≥ 1, got {self.max_goals!r}.")
        if self.solver_max_goals < self.max_goals:
            raise ValueError(
                f"solver_max_goals ({self.solver_max_goals}) must be ≥ "
                f"max_goals ({self.max_goals})."
            )
        if 2 * self.max_goals > self.max_factorial:
            raise ValueError(
                f"max_factorial ({self.max_factorial}) must cover a full-match "
                f"total of {2 * self.max_goals} goals."
            )
        if not (0.0 < self.first_period_ratio < 1.0):
            raise ValueError(
                f"first_period_ratio must be in (0, 1), got {self.first_period_ratio!r}."
            )
        if self.search_step <= 0.0 or not math.isfinite(self.search_step):
            raise ValueError(f"search_step must be positive, got {self.search_step!r}.")
        if self.max_search_iterations < 1:
            raise ValueError("max_search_iterations must be ≥ 1.")
        (draw_lo, _), (draw_hi, _) = self.zero_inflation_anchors
        if draw_hi <= draw_lo:
            raise ValueError(
                "zero_inflation_anchors must be ordered by increasing draw probability."
            )

    # ------------------------------------------------------------------ #
    #  Named constructors                                                  #
    # ------------------------------------------------------------------ #

    @classmethod
    def football(cls) -> ModelConfig:
        """Return the standard independent-Poisson football configuration."""
        return cls()

    @classmethod
    def football_low_score(cls) -> ModelConfig:
        """Return the football configuration with low-score correlation on."""
        return cls(low_score_rho=STANDARD_LOW_SCORE_RHO)

    @classmethod
    def from_env(cls) -> ModelConfig:
        """Return :meth:`football` with ``SCORELINE_*`` overrides applied.

        Recognised variables: ``SCORELINE_MAX_GOALS``,
        ``SCORELINE_SOLVER_MAX_GOALS``, ``SCORELINE_FIRST_PERIOD_RATIO``,
        ``SCORELINE_SEARCH_STEP``, ``SCORELINE_MAX_SEARCH_ITERATIONS`` and
        ``SCORELINE_LOW_SCORE_RHO``.  A ``.env`` file in the working
        directory is loaded first.

        Raises:
            ValueError: If a variable does not parse or the resulting
                configuration is out of range.
        """
        load_dotenv()
        overrides: dict[str, float | int] = {}
        for name, cast in (
            ("max_goals", int),
            ("solver_max_goals", int),
            ("first_period_ratio", float),
            ("search_step", float),
            ("max_search_iterations", int),
            ("low_score_rho", float),
        ):
            raw = os.getenv(f"{_ENV_PREFIX}{name.upper()}")
            if raw is None or raw.strip() == "":
                continue
            try:
                overrides[name] = cast(raw)
            except ValueError as exc:
                raise ValueError(
                    f"{_ENV_PREFIX}{name.upper()}={raw!r} is not a valid {cast.__name__}."
                ) from exc
        return replace(cls.football(), **overrides)

    # ------------------------------------------------------------------ #
    #  Convenience accessors                                               #
    # ------------------------------------------------------------------ #

    @property
    def second_period_ratio(self) -> float:
        """Share of each full-match rate assigned to the second period."""
        return 1.0 - self.first_period_ratio

    def uncorrelated(self) -> ModelConfig:
        """Return a copy with the low-score correlation switched off."""
        return replace(self, low_score_rho=0.0)

    def __repr__(self) -> str:
        return (
            f"ModelConfig(max_goals={self.max_goals}, "
            f"split={self.first_period_ratio:.2f}/{self.second_period_ratio:.2f}, "
            f"step={self.search_step}, rho={self.low_score_rho})"
        )


#: Module-level default used when callers pass no configuration.
DEFAULT_CONFIG: Final[ModelConfig] = ModelConfig.football()
