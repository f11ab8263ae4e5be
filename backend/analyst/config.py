from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List
from urllib.parse import urlparse

_MARKET_DATA_PROVIDERS = {"fmp", "polygon"}


def _load_dotenv(path: str = ".env") -> None:
    candidates = [Path(path)]
    resolved = Path(__file__).resolve()
    for parent in resolved.parents:
        candidates.append(parent / ".env")
    seen: set[Path] = set()
    for env_path in candidates:
        if env_path in seen or not env_path.exists():
            continue
        seen.add(env_path)
        for raw in env_path.read_text(encoding="utf-8").splitlines():
            line = raw.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            os.environ.setdefault(key, value)


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        parsed = json.loads(raw)
        if isinstance(parsed, list):
            return [str(item) for item in parsed]
    except json.JSONDecodeError:
        pass
    return [token.strip() for token in raw.split(",") if token.strip()] or default


@dataclass
class Settings:
    app_name: str = "Stock Analyst API"
    environment: str = "development"
    log_level: str = "INFO"

    frontend_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"])

    anthropic_api_key: str = ""
    anthropic_api_url: str = "https://api.anthropic.com"
    anthropic_version: str = "2023-06-01"
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    anthropic_max_tokens: int = 64000
    anthropic_timeout_seconds: int = 300
    analysis_max_turns: int = 3

    market_data_provider: str = "fmp"
    fmp_api_key: str = ""
    fmp_api_url: str = "https://financialmodelingprep.com/stable"
    polygon_api_key: str = ""
    polygon_api_url: str = "https://api.polygon.io"
    market_data_timeout_seconds: int = 12
    history_days: int = 30
    tool_result_max_chars: int = 20000
    default_budget: float = 1000.0

    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_key: str = ""


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value.strip())
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def _validate_settings(settings: Settings) -> None:
    if settings.environment.lower() == "production":
        required = {
            "ANTHROPIC_API_KEY": settings.anthropic_api_key,
        }
        missing = [key for key, value in required.items() if not str(value or "").strip()]
        if missing:
            raise RuntimeError(f"Missing required production environment variables: {', '.join(sorted(missing))}")

    invalid_origins = [origin for origin in settings.frontend_origins if not _is_http_url(origin)]
    if invalid_origins:
        raise RuntimeError(f"Invalid FRONTEND_ORIGINS entries: {', '.join(invalid_origins)}")

    urls = {
        "ANTHROPIC_API_URL": settings.anthropic_api_url,
        "FMP_API_URL": settings.fmp_api_url,
        "POLYGON_API_URL": settings.polygon_api_url,
    }
    invalid_urls = [key for key, value in urls.items() if not _is_http_url(value)]
    if invalid_urls:
        raise RuntimeError(f"Invalid URL settings: {', '.join(sorted(invalid_urls))}")

    if settings.market_data_provider not in _MARKET_DATA_PROVIDERS:
        raise RuntimeError(
            f"Invalid MARKET_DATA_PROVIDER {settings.market_data_provider!r}; "
            f"expected one of: {', '.join(sorted(_MARKET_DATA_PROVIDERS))}"
        )
    if settings.analysis_max_turns < 1:
        raise RuntimeError("ANALYSIS_MAX_TURNS must be at least 1")


def load_settings() -> Settings:
    settings = Settings(
        app_name=_env("APP_NAME", "Stock Analyst API"),
        environment=_env("ENVIRONMENT", "development"),
        log_level=_env("LOG_LEVEL", "INFO"),
        frontend_origins=_env_list("FRONTEND_ORIGINS", ["http://localhost:5173", "http://localhost:3000"]),
        anthropic_api_key=_env("ANTHROPIC_API_KEY"),
        anthropic_api_url=_env("ANTHROPIC_API_URL", "https://api.anthropic.com"),
        anthropic_version=_env("ANTHROPIC_VERSION", "2023-06-01"),
        anthropic_model=_env("ANTHROPIC_MODEL", "claude-sonnet-4-5-20250929"),
        anthropic_max_tokens=_env_int("ANTHROPIC_MAX_TOKENS", 64000),
        anthropic_timeout_seconds=_env_int("ANTHROPIC_TIMEOUT_SECONDS", 300),
        analysis_max_turns=_env_int("ANALYSIS_MAX_TURNS", 3),
        market_data_provider=_env("MARKET_DATA_PROVIDER", "fmp").strip().lower(),
        fmp_api_key=_env("FMP_API_KEY"),
        fmp_api_url=_env("FMP_API_URL", "https://financialmodelingprep.com/stable"),
        polygon_api_key=_env("POLYGON_API_KEY"),
        polygon_api_url=_env("POLYGON_API_URL", "https://api.polygon.io"),
        market_data_timeout_seconds=_env_int("MARKET_DATA_TIMEOUT_SECONDS", 12),
        history_days=_env_int("HISTORY_DAYS", 30),
        tool_result_max_chars=_env_int("TOOL_RESULT_MAX_CHARS", 20000),
        default_budget=_env_float("DEFAULT_BUDGET", 1000.0),
        supabase_url=_env("SUPABASE_URL"),
        supabase_key=_env("SUPABASE_KEY"),
        supabase_service_key=_env("SUPABASE_SERVICE_KEY"),
    )
    _validate_settings(settings)
    return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    _load_dotenv()
    return load_settings()
