from __future__ import annotations

import logging
from functools import lru_cache

from supabase import Client, create_client

from analyst.config import get_settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_supabase() -> Client | None:
    settings = get_settings()
    if not settings.supabase_url:
        return None

    key = settings.supabase_service_key or settings.supabase_key
    if not key:
        return None

    try:
        return create_client(settings.supabase_url, key)
    except Exception as exc:
        logger.warning("Supabase client unavailable: %s", exc)
        return None
