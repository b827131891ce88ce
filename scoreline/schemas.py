"""
Pydantic request/response schemas for the Scoreline pricing API.

Requests carry the raw market evidence; the engine performs the odds and
range validation itself so that API callers and library callers get the
same error messages.
"""

from __future__ import annotations

from typing import Any, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, model_validator

from scoreline.core.conditions import (
    Comparison,
    MarketCondition,
    Period,
    PeriodCondition,
    ResultClass,
    TotalCondition,
)

CalibrationMethodName = Literal["direct", "line_search", "golden_section"]
ResultCode = Literal["1", "X", "2", "1X", "12", "X2"]
PeriodName = Literal["first_half", "second_half", "full_time"]


# ---------------------------------------------------------------------------
# Calibration
# ---------------------------------------------------------------------------

class CalibrateRequest(BaseModel):
    """
    Payload describing one match.

    ``direct`` needs supremacy and expectancy.  ``line_search`` needs the
    1X2 prices plus a goal line with Over/Under prices.  ``golden_section``
    needs the 1X2 prices plus either ``total_goals`` or the line and
    Over/Under prices.  When ``method`` is omitted it is inferred from the
    fields supplied.
    """

    method: Optional[CalibrationMethodName] = None

    supremacy: Optional[float] = Field(
        None, description="λ_away − λ_home over the match (negative = home favoured)"
    )
    expectancy: Optional[float] = Field(None, description="Expected total goals")

    home_odds: Optional[float] = Field(None, description="Decimal price, home win")
    draw_odds: Optional[float] = Field(None, description="Decimal price, draw")
    away_odds: Optional[float] = Field(None, description="Decimal price, away win")

    line: Optional[float] = Field(None, description="Total goals line, e.g. 2.5")
    over_odds: Optional[float] = None
    under_odds: Optional[float] = None
    total_goals: Optional[float] = Field(
        None, description="Known total goals rate (golden_section only)"
    )

    @model_validator(mode="after")
    def resolve_method(self) -> CalibrateRequest:
        if self.method is None:
            self.method = "direct" if self.expectancy is not None else "line_search"

        def require(*names: str) -> None:
            missing = [n for n in names if getattr(self, n) is None]
            if missing:
                raise ValueError(
                    f"method={self.method!r} requires: {', '.join(missing)}"
                )

        if self.method == "direct":
            require("supremacy", "expectancy")
        elif self.method == "line_search":
            require("home_odds", "draw_odds", "away_odds", "line", "over_odds", "under_odds")
        else:
            require("home_odds", "draw_odds", "away_odds")
            if self.total_goals is None:
                require("line", "over_odds", "under_odds")
        return self

    model_config = {
        "json_schema_extra": {
            "example": {
                "home_odds": 1.80,
                "draw_odds": 3.60,
                "away_odds": 4.50,
                "line": 2.5,
                "over_odds": 1.95,
                "under_odds": 1.95,
            }
        }
    }


class CalibrationResponse(BaseModel):
    """Fitted rates of one match."""
    method: CalibrationMethodName
    supremacy: float
    expectancy: float
    rates: dict[str, float]
    rho: float
    zero_inflation: float
    iterations: int


# ---------------------------------------------------------------------------
# Market conditions
# ---------------------------------------------------------------------------

class TotalConditionSchema(BaseModel):
    comparison: Literal["o", "u", "="]
    line: float

    def to_condition(self) -> TotalCondition:
        return TotalCondition(Comparison(self.comparison), self.line)


class PeriodConditionSchema(BaseModel):
    result: Optional[ResultCode] = None
    total: Union[TotalConditionSchema, List[TotalConditionSchema], None] = Field(
        None, description="One comparison or a list that must all hold"
    )
    btts: Optional[bool] = None
    correct_score: Optional[Tuple[int, int]] = None

    def to_condition(self) -> PeriodCondition:
        if self.total is None:
            totals = ()
        elif isinstance(self.total, list):
            totals = tuple(t.to_condition() for t in self.total)
        else:
            totals = (self.total.to_condition(),)
        return PeriodCondition(
            result=ResultClass(self.result) if self.result is not None else None,
            total=totals,
            btts=self.btts,
            correct_score=self.correct_score,
        )


class MarketConditionSchema(BaseModel):
    """Bet settlement rule: every populated field must hold."""

    first_half: PeriodConditionSchema = Field(default_factory=PeriodConditionSchema)
    second_half: PeriodConditionSchema = Field(default_factory=PeriodConditionSchema)
    full_time: PeriodConditionSchema = Field(default_factory=PeriodConditionSchema)

    def to_condition(self) -> MarketCondition:
        return MarketCondition(
            first_half=self.first_half.to_condition(),
            second_half=self.second_half.to_condition(),
            full_time=self.full_time.to_condition(),
        )


# ---------------------------------------------------------------------------
# Market queries
# ---------------------------------------------------------------------------

class MarketQueryRequest(BaseModel):
    """Payload for POST /api/markets/query."""

    match: CalibrateRequest
    condition: MarketConditionSchema

    model_config = {
        "json_schema_extra": {
            "example": {
                "match": {"supremacy": -0.4, "expectancy": 2.6},
                "condition": {
                    "first_half": {"result": "X"},
                    "full_time": {"result": "1", "total": {"comparison": "o", "line": 2.5}},
                },
            }
        }
    }


class PriceResponse(BaseModel):
    probability: float = Field(..., ge=0.0, le=1.0)
    odds: float


class HandicapRequest(BaseModel):
    """Payload for POST /api/markets/handicap."""

    match: CalibrateRequest
    line: float = Field(..., description="Handicap applied to the home side")
    period: PeriodName = "full_time"

    def period_enum(self) -> Period:
        return Period(self.period)


class BoardRequest(BaseModel):
    """Payload for POST /api/markets/board."""

    match: CalibrateRequest


class BoardResponse(BaseModel):
    calibration: CalibrationResponse
    markets: dict[str, dict[str, dict[str, Any]]]
