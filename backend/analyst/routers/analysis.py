from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request

from analyst.errors import TransportError, TurnBudgetExceeded
from analyst.schemas import AnalysisRequest, AnalysisResponse
from analyst.services.activity_log import log_analysis_activity
from analyst.services.analysis import analyze_stock
from analyst.services.market_data import normalize_ticker
from analyst.services.prompts import TRUNCATION_NOTICE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analysis", tags=["analysis"])

_FAILURE_DETAIL = "Analysis failed. Please try again later."


@router.post("", response_model=AnalysisResponse)
async def create_analysis(payload: AnalysisRequest, request: Request):
    settings = request.app.state.settings
    try:
        ticker = normalize_ticker(payload.ticker)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    try:
        result = await analyze_stock(
            settings,
            ticker,
            budget=payload.budget,
            portfolio=[position.model_dump() for position in payload.portfolio],
        )
    except TransportError as exc:
        logger.error("Analysis for %s failed at the model endpoint: %s", ticker, exc)
        await log_analysis_activity(ticker, "error", {"kind": "transport", "status_code": exc.status_code})
        raise HTTPException(status_code=502, detail=_FAILURE_DETAIL) from exc
    except TurnBudgetExceeded as exc:
        logger.error("Analysis for %s exhausted its turn budget (%s)", ticker, exc.max_turns)
        await log_analysis_activity(ticker, "error", {"kind": "turn_budget", "max_turns": exc.max_turns})
        raise HTTPException(status_code=502, detail=_FAILURE_DETAIL) from exc

    await log_analysis_activity(
        ticker,
        "truncated" if result.truncated else "success",
        {"turns": result.turns, "model": result.model, "usage": result.usage or {}},
    )
    text = result.text + TRUNCATION_NOTICE if result.truncated else result.text
    return AnalysisResponse(
        ticker=ticker,
        response=text,
        truncated=result.truncated,
        turns=result.turns,
        model=result.model,
        generated_at=datetime.now(timezone.utc).isoformat(),
    )
