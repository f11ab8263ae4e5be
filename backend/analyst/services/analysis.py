from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Sequence

import httpx

from analyst.config import Settings
from analyst.errors import TransportError, TurnBudgetExceeded
from analyst.schemas import AnalysisResult, Conversation, StopReason, ToolDefinition
from analyst.services.llm import ModelConfig, stream_message
from analyst.services.market_data import MarketDataProvider, build_market_data_client
from analyst.services.prompts import build_system_prompt, seed_message
from analyst.services.tools import TOOL_CATALOG, ToolContext, catalog_to_wire, execute_tool_calls

logger = logging.getLogger(__name__)


async def run_analysis(
    ticker: str,
    *,
    client: httpx.AsyncClient,
    config: ModelConfig,
    tool_context: ToolContext,
    max_turns: int = 3,
    catalog: Sequence[ToolDefinition] = TOOL_CATALOG,
) -> AnalysisResult:
    """Drive the tool-calling conversation for one ticker until a terminal answer.

    Each turn sends the whole conversation, appends the assistant message, then:
    ``max_tokens`` returns the partial text flagged as truncated, ``tool_use`` runs
    the requested tools and loops, anything else returns the first text block.
    Raises TurnBudgetExceeded after ``max_turns`` turns without a terminal answer,
    and lets TransportError from the endpoint call propagate.
    """
    conversation = Conversation()
    conversation.append_user_text(seed_message(ticker))
    tools = catalog_to_wire(catalog)

    for turn in range(1, max_turns + 1):
        logger.info("Turn %s/%s for %s: calling model %s (stream mode)", turn, max_turns, ticker, config.model)
        message = await stream_message(client, config, messages=conversation.to_wire(), tools=tools)
        logger.info("Turn %s for %s completed. Stop reason: %s", turn, ticker, message.stop_reason.value)
        conversation.append_assistant(message)

        if message.stream_error is not None:
            raise TransportError(None, json.dumps(message.stream_error, ensure_ascii=True))

        if message.stop_reason is StopReason.MAX_TOKENS:
            logger.warning("Output for %s truncated by the max_tokens limit.", ticker)
            text = "\n\n".join(block.text for block in message.text_blocks() if block.text)
            return AnalysisResult(
                ticker=ticker,
                text=text,
                truncated=True,
                turns=turn,
                model=config.model,
                usage=message.usage,
            )

        tool_calls = message.tool_calls()
        if message.stop_reason is StopReason.TOOL_USE and tool_calls:
            results = await execute_tool_calls(tool_calls, tool_context)
            conversation.append_tool_results(results)
            continue
        if message.stop_reason is StopReason.TOOL_USE:
            logger.warning("Model stopped for tool use on %s without any tool call; treating as final.", ticker)

        return AnalysisResult(
            ticker=ticker,
            text=message.first_text(),
            turns=turn,
            model=config.model,
            usage=message.usage,
        )

    raise TurnBudgetExceeded(max_turns)


async def analyze_stock(
    settings: Settings,
    ticker: str,
    *,
    budget: float | None = None,
    portfolio: List[Dict[str, Any]] | None = None,
    client: httpx.AsyncClient | None = None,
    market: MarketDataProvider | None = None,
) -> AnalysisResult:
    system = build_system_prompt(
        ticker,
        budget if budget is not None else settings.default_budget,
        portfolio or [],
    )
    config = ModelConfig.from_settings(settings, system=system)

    if client is None:
        timeout = httpx.Timeout(config.timeout_seconds, connect=10.0)
        async with httpx.AsyncClient(timeout=timeout) as owned:
            return await analyze_stock(
                settings,
                ticker,
                budget=budget,
                portfolio=portfolio,
                client=owned,
                market=market,
            )

    tool_context = ToolContext(
        market=market or build_market_data_client(settings),
        history_days=settings.history_days,
        max_result_chars=settings.tool_result_max_chars,
    )
    return await run_analysis(
        ticker,
        client=client,
        config=config,
        tool_context=tool_context,
        max_turns=settings.analysis_max_turns,
    )
