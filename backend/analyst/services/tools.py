from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Sequence, Tuple

from analyst.schemas import ToolDefinition, ToolResult, ToolUseBlock
from analyst.services.market_data import MarketDataProvider, normalize_ticker

logger = logging.getLogger(__name__)

_DESCRIPTION_MAX_CHARS = 300
_SNAPSHOT_FIELDS = ("price", "changesPercentage", "change", "dayLow", "dayHigh", "marketCap", "volume", "pe", "eps")
_HISTORY_FIELDS = ("date", "open", "high", "low", "close", "volume")
_DETAILS_FIELDS = ("companyName", "sector", "industry", "description", "exchange", "website", "ceo")


class ToolName(str, Enum):
    GET_REALTIME_SNAPSHOT = "get_realtime_snapshot"
    GET_HISTORICAL_PRICES = "get_historical_prices"
    GET_TICKER_DETAILS = "get_ticker_details"

    @classmethod
    def resolve(cls, name: str) -> "ToolName | None":
        try:
            return cls(name)
        except ValueError:
            return None


def _ticker_schema() -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {"ticker": {"type": "string", "description": "Stock ticker symbol"}},
        "required": ["ticker"],
    }


TOOL_CATALOG: Tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name=ToolName.GET_REALTIME_SNAPSHOT.value,
        description="Get real-time snapshot with current price, day's change, volume, and trading stats",
        input_schema=_ticker_schema(),
    ),
    ToolDefinition(
        name=ToolName.GET_HISTORICAL_PRICES.value,
        description="Get historical OHLC price data for trend and performance analysis (last 30 days)",
        input_schema=_ticker_schema(),
    ),
    ToolDefinition(
        name=ToolName.GET_TICKER_DETAILS.value,
        description="Get company information including name, market cap, sector, and exchange",
        input_schema=_ticker_schema(),
    ),
)


def catalog_to_wire(catalog: Sequence[ToolDefinition] = TOOL_CATALOG) -> List[Dict[str, Any]]:
    return [tool.model_dump() for tool in catalog]


@dataclass(frozen=True)
class ToolContext:
    market: MarketDataProvider
    history_days: int = 30
    max_result_chars: int = 20000


def project_snapshot(raw: Dict[str, Any] | None) -> Dict[str, Any]:
    if not raw:
        return {"error": "No data"}
    return {key: raw.get(key) for key in _SNAPSHOT_FIELDS}


def project_history(rows: List[Dict[str, Any]] | None, days: int) -> List[Dict[str, Any]]:
    return [{key: row.get(key) for key in _HISTORY_FIELDS} for row in (rows or [])[: max(0, days)]]


def project_details(raw: Dict[str, Any] | None) -> Dict[str, Any]:
    if not raw:
        return {"error": "No details"}
    out = {key: raw.get(key) for key in _DETAILS_FIELDS}
    description = str(out.get("description") or "")
    out["description"] = description[:_DESCRIPTION_MAX_CHARS] + "..." if description else ""
    return out


def _truncated_envelope(text: str, keep: int) -> str:
    return json.dumps({"truncated": True, "data": text[:keep]}, ensure_ascii=False)


def serialize_outcome(outcome: Any, max_chars: int) -> str:
    """Serialize a tool outcome, never exceeding ``max_chars`` once wrapped.

    Oversized outcomes become ``{"truncated": true, "data": <prefix>}``; the prefix
    is the longest one whose escaped form still fits the limit.
    """
    text = json.dumps(outcome, ensure_ascii=False, default=str)
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    low, high = 0, max_chars
    while low < high:
        mid = (low + high + 1) // 2
        if len(_truncated_envelope(text, mid)) <= max_chars:
            low = mid
        else:
            high = mid - 1
    return _truncated_envelope(text, low)


def _ticker_arg(arguments: Any) -> str:
    if not isinstance(arguments, dict):
        raise ValueError("Tool input must be a JSON object")
    return normalize_ticker(arguments.get("ticker"))


async def _realtime_snapshot(ctx: ToolContext, arguments: Any) -> Any:
    raw = await ctx.market.get_realtime_snapshot(_ticker_arg(arguments))
    return project_snapshot(raw)


async def _historical_prices(ctx: ToolContext, arguments: Any) -> Any:
    rows = await ctx.market.get_historical_prices(_ticker_arg(arguments), ctx.history_days)
    return project_history(rows, ctx.history_days)


async def _ticker_details(ctx: ToolContext, arguments: Any) -> Any:
    raw = await ctx.market.get_ticker_details(_ticker_arg(arguments))
    return project_details(raw)


_DISPATCH: Dict[ToolName, Callable[[ToolContext, Any], Awaitable[Any]]] = {
    ToolName.GET_REALTIME_SNAPSHOT: _realtime_snapshot,
    ToolName.GET_HISTORICAL_PRICES: _historical_prices,
    ToolName.GET_TICKER_DETAILS: _ticker_details,
}


def _error_result(block: ToolUseBlock, message: str, max_chars: int) -> ToolResult:
    return ToolResult(tool_use_id=block.id, content=serialize_outcome({"error": message}, max_chars), is_error=True)


async def run_tool_call(block: ToolUseBlock, ctx: ToolContext) -> ToolResult:
    if block.input_error:
        return _error_result(block, block.input_error, ctx.max_result_chars)

    tool = ToolName.resolve(block.name)
    if tool is None:
        logger.warning("Model requested unknown tool %r (%s)", block.name, block.id)
        return _error_result(block, "Tool not found", ctx.max_result_chars)

    logger.info("Calling tool %s with %s", tool.value, block.input)
    try:
        outcome = await _DISPATCH[tool](ctx, block.input)
    except Exception as exc:
        logger.warning("Tool %s (%s) failed: %s: %s", tool.value, block.id, type(exc).__name__, exc)
        return _error_result(block, str(exc) or type(exc).__name__, ctx.max_result_chars)
    logger.info("Tool %s completed.", tool.value)
    return ToolResult(tool_use_id=block.id, content=serialize_outcome(outcome, ctx.max_result_chars))


async def execute_tool_calls(blocks: Sequence[ToolUseBlock], ctx: ToolContext) -> List[ToolResult]:
    """Run every invocation concurrently; results keep the order of ``blocks``."""
    return list(await asyncio.gather(*(run_tool_call(block, ctx) for block in blocks)))
