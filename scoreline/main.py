"""
FastAPI application for the Scoreline pricing engine.

Every request calibrates its own model from the evidence it carries; nothing
is cached between requests.  Route handlers are plain ``def`` so the
enumeration work runs in the server's thread pool.
"""

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
import logging

from scoreline import __version__
from scoreline.core.model_config import ModelConfig
from scoreline.core.odds_math import InvalidOddsError
from scoreline.services.calibrator import (
    CalibrationError,
    CalibrationResult,
    InvalidInputError,
    calibrate_by_golden_section,
    calibrate_from_prices,
    calibrate_from_supremacy,
)
from scoreline.services.evaluator import price
from scoreline.services.markets import handicap_price, market_board, serialise_board
from scoreline.schemas import (
    BoardRequest,
    BoardResponse,
    CalibrateRequest,
    CalibrationResponse,
    HandicapRequest,
    MarketQueryRequest,
    PriceResponse,
)

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

CONFIG = ModelConfig.from_env()

app = FastAPI(
    title="Scoreline Pricing Engine",
    description="Fair prices for football markets from a calibrated two-period Poisson model",
    version=__version__,
)


def calibrate(request: CalibrateRequest, config: ModelConfig = CONFIG) -> CalibrationResult:
    """Run the calibration ``request`` asks for, mapping engine errors to 422."""
    try:
        if request.method == "direct":
            return calibrate_from_supremacy(
                request.supremacy, request.expectancy, config=config
            )
        if request.method == "line_search":
            return calibrate_from_prices(
                request.home_odds,
                request.draw_odds,
                request.away_odds,
                request.line,
                request.over_odds,
                request.under_odds,
                config=config,
            )
        return calibrate_by_golden_section(
            request.home_odds,
            request.draw_odds,
            request.away_odds,
            total_goals=request.total_goals,
            line=request.line,
            over_odds=request.over_odds,
            under_odds=request.under_odds,
            config=config,
        )
    except (InvalidOddsError, InvalidInputError) as exc:
        logger.info("Rejected calibration input: %s", exc)
        raise HTTPException(status_code=422, detail=str(exc))
    except CalibrationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


def _calibration_response(model: CalibrationResult) -> CalibrationResponse:
    return CalibrationResponse(
        method=model.method.value,
        supremacy=model.supremacy,
        expectancy=model.expectancy,
        rates=model.rates(),
        rho=model.rho,
        zero_inflation=model.zero_inflation,
        iterations=model.iterations,
    )


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
def root():
    return {
        "app": "Scoreline Pricing Engine",
        "version": __version__,
        "status": "operational",
    }


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "config": repr(CONFIG)}


@app.post("/api/calibrate", response_model=CalibrationResponse)
def calibrate_match(request: CalibrateRequest):
    """Fit the scoring rates for one match."""
    return _calibration_response(calibrate(request))


@app.post("/api/markets/query", response_model=PriceResponse)
def query_market(request: MarketQueryRequest):
    """Price an arbitrary first-half / second-half / full-time condition."""
    model = calibrate(request.match)
    try:
        condition = request.condition.to_condition()
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    result = price(model, condition)
    return PriceResponse(probability=result.probability, odds=result.odds)


@app.post("/api/markets/handicap")
def query_handicap(request: HandicapRequest):
    """Price one handicap line; quarter lines come back with both components."""
    model = calibrate(request.match)
    try:
        outcome = handicap_price(model, request.line, request.period_enum())
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return outcome.as_dict()


@app.post("/api/markets/board", response_model=BoardResponse)
def full_board(request: BoardRequest):
    """Price the whole market catalogue for one match."""
    model = calibrate(request.match)
    board = market_board(model)
    logger.info(
        "Board priced: %d groups (home=%.3f, away=%.3f)",
        len(board), model.full_time.home, model.full_time.away,
    )
    return BoardResponse(
        calibration=_calibration_response(model),
        markets=serialise_board(board),
    )


# ============================================================================
# ERROR HANDLING
# ============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
