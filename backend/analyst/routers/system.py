from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from analyst.services.tools import TOOL_CATALOG

router = APIRouter(tags=["system"])


@router.get("/health")
async def health(request: Request):
    settings = request.app.state.settings
    return {
        "ok": True,
        "status": "ok",
        "app": settings.app_name,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/integrations")
async def integrations(request: Request):
    settings = request.app.state.settings
    return {
        "anthropic": bool(settings.anthropic_api_key),
        "market_data_provider": settings.market_data_provider,
        "fmp": bool(settings.fmp_api_key),
        "polygon": bool(settings.polygon_api_key),
        "supabase": bool(settings.supabase_url and (settings.supabase_service_key or settings.supabase_key)),
        "tools": [tool.name for tool in TOOL_CATALOG],
        "model": settings.anthropic_model,
    }
