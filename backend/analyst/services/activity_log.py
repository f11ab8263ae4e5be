from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from analyst.services.database import get_supabase

logger = logging.getLogger(__name__)

_TABLE = "analysis_activity"


def _insert(payload: dict[str, Any]) -> None:
    client = get_supabase()
    if client is None:
        return
    client.table(_TABLE).insert(payload).execute()


async def log_analysis_activity(
    ticker: str,
    status: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Record the outcome of one analysis. Never stores conversation contents."""
    payload = {
        "ticker": ticker,
        "status": status,
        "details": details or {},
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        await asyncio.to_thread(_insert, payload)
    except Exception as exc:
        logger.warning("Failed to record analysis activity for %s: %s", ticker, exc)
    return payload
