from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

import httpx

from analyst.config import Settings
from analyst.errors import TransportError
from analyst.schemas import AssistantMessage
from analyst.services.accumulator import accumulate_message
from analyst.services.sse import iter_sse_data

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelConfig:
    api_key: str
    model: str
    max_tokens: int
    system: str | None = None
    api_url: str = "https://api.anthropic.com"
    api_version: str = "2023-06-01"
    timeout_seconds: float = 300.0

    @classmethod
    def from_settings(cls, settings: Settings, system: str | None = None) -> "ModelConfig":
        return cls(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            max_tokens=settings.anthropic_max_tokens,
            system=system,
            api_url=settings.anthropic_api_url,
            api_version=settings.anthropic_version,
            timeout_seconds=float(settings.anthropic_timeout_seconds),
        )

    @property
    def messages_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/v1/messages"


def build_request_body(
    config: ModelConfig,
    messages: List[Dict[str, Any]],
    tools: List[Dict[str, Any]],
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "model": config.model,
        "max_tokens": config.max_tokens,
        "messages": messages,
        "tools": tools,
    }
    if config.system:
        body["system"] = config.system
    # Forced on for every turn.
    body["stream"] = True
    return body


async def stream_message(
    client: httpx.AsyncClient,
    config: ModelConfig,
    *,
    messages: List[Dict[str, Any]],
    tools: List[Dict[str, Any]],
) -> AssistantMessage:
    """POST one turn to the messages endpoint and fold its event stream into a message.

    Raises TransportError on a non-2xx status (with the full response body) or on
    any network failure. Never retried here.
    """
    headers = {
        "x-api-key": config.api_key,
        "anthropic-version": config.api_version,
        "content-type": "application/json",
    }
    body = build_request_body(config, messages, tools)
    try:
        async with client.stream("POST", config.messages_url, json=body, headers=headers) as resp:
            if not resp.is_success:
                raw = await resp.aread()
                text = raw.decode("utf-8", errors="replace")
                logger.warning("Model endpoint returned %s: %s", resp.status_code, text[:200])
                raise TransportError(resp.status_code, text)
            return await accumulate_message(iter_sse_data(resp.aiter_bytes()))
    except httpx.HTTPError as exc:
        logger.warning("Model endpoint request failed: %s: %s", type(exc).__name__, exc)
        raise TransportError(None, f"{type(exc).__name__}: {exc}") from exc
