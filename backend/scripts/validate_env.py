from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from analyst.config import get_settings


def main() -> int:
    settings = get_settings()

    provider_key = "POLYGON_API_KEY" if settings.market_data_provider == "polygon" else "FMP_API_KEY"
    provider_value = settings.polygon_api_key if settings.market_data_provider == "polygon" else settings.fmp_api_key
    required = {
        "ANTHROPIC_API_KEY": settings.anthropic_api_key,
        provider_key: provider_value,
    }
    optional = {
        "SUPABASE_URL": settings.supabase_url,
        "SUPABASE_SERVICE_KEY": settings.supabase_service_key,
    }

    missing_required = [name for name, value in required.items() if not str(value or "").strip()]

    print("Environment check")
    print("=================")
    print(f"Market data provider: {settings.market_data_provider}")
    print(f"Model: {settings.anthropic_model} (max_tokens={settings.anthropic_max_tokens}, turns={settings.analysis_max_turns})")
    for name, value in required.items():
        print(f"[{'ok' if value else 'missing'}] {name} (required)")
    for name, value in optional.items():
        print(f"[{'ok' if value else 'missing'}] {name} (optional)")

    if missing_required:
        print("\nMissing required environment variables:")
        for item in missing_required:
            print(f"- {item}")
        return 1

    print("\nAll required environment variables are present.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
