from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterable, Dict, Optional

from pydantic import ValidationError

from analyst.schemas import (
    STREAM_EVENT_ADAPTER,
    STREAM_EVENT_TYPES,
    AssistantMessage,
    BlockDeltaEvent,
    BlockStartEvent,
    ContentBlock,
    InputJsonDelta,
    MessageDeltaEvent,
    StopReason,
    StreamErrorEvent,
    TextBlock,
    TextDelta,
    ToolUseBlock,
)

logger = logging.getLogger(__name__)

# Delta kinds the endpoint may send for features this client does not request.
_IGNORED_DELTA_TYPES = {"thinking_delta", "signature_delta", "citations_delta"}


def parse_event(payload: str) -> Any:
    """Decode one stream payload into a typed event, or None when it is not usable."""
    try:
        raw = json.loads(payload)
    except json.JSONDecodeError as exc:
        logger.warning("Skipping malformed stream payload: %s (%s)", payload[:200], exc)
        return None
    if not isinstance(raw, dict):
        logger.warning("Skipping non-object stream payload: %s", payload[:200])
        return None
    if raw.get("type") not in STREAM_EVENT_TYPES:
        return None
    delta = raw.get("delta")
    if raw.get("type") == "content_block_delta" and isinstance(delta, dict) and delta.get("type") in _IGNORED_DELTA_TYPES:
        logger.debug("Ignoring %s at index %s", delta.get("type"), raw.get("index"))
        return None
    try:
        return STREAM_EVENT_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        logger.warning("Skipping invalid %s event: %s", raw.get("type"), exc.errors()[:3])
        return None


class ResponseAccumulator:
    """Folds stream events into a single assistant message.

    Blocks are keyed by their stream index; indexes that never see a block-start
    event end up as explicit ``None`` entries in the finalized content list.
    """

    def __init__(self) -> None:
        self._blocks: Dict[int, ContentBlock] = {}
        self._stop_reason: Optional[str] = None
        self._usage: Optional[Dict[str, Any]] = None
        self._stream_error: Optional[Dict[str, Any]] = None
        self._finalized = False

    def feed(self, payload: str) -> None:
        if self._finalized:
            raise RuntimeError("accumulator already finalized")
        event = parse_event(payload)
        if isinstance(event, BlockStartEvent):
            self._on_block_start(event)
        elif isinstance(event, BlockDeltaEvent):
            self._on_block_delta(event)
        elif isinstance(event, MessageDeltaEvent):
            if event.delta.stop_reason:
                self._stop_reason = event.delta.stop_reason
            if event.usage is not None:
                self._usage = event.usage
        elif isinstance(event, StreamErrorEvent):
            logger.error("Model stream reported an error: %s", event.error)
            self._stream_error = event.error

    def _on_block_start(self, event: BlockStartEvent) -> None:
        raw = event.content_block
        kind = raw.get("type")
        if kind == "text":
            self._blocks[event.index] = TextBlock(text=str(raw.get("text") or ""))
        elif kind == "tool_use":
            self._blocks[event.index] = ToolUseBlock(
                id=str(raw.get("id") or ""),
                name=str(raw.get("name") or ""),
                input="",
            )
        else:
            logger.warning("Skipping unsupported content block type %r at index %s", kind, event.index)

    def _on_block_delta(self, event: BlockDeltaEvent) -> None:
        block = self._blocks.get(event.index)
        delta = event.delta
        if isinstance(delta, TextDelta):
            if block is None:
                block = TextBlock()
                self._blocks[event.index] = block
            if not isinstance(block, TextBlock):
                logger.warning("Ignoring text delta addressed to %s block at index %s", block.type, event.index)
                return
            block.text += delta.text
        elif isinstance(delta, InputJsonDelta):
            if block is None:
                logger.warning("Tool input fragment without block start at index %s", event.index)
                block = ToolUseBlock()
                self._blocks[event.index] = block
            if not isinstance(block, ToolUseBlock):
                logger.warning("Ignoring tool input delta addressed to %s block at index %s", block.type, event.index)
                return
            if not isinstance(block.input, str):
                block.input = ""
            block.input += delta.partial_json

    def finalize(self) -> AssistantMessage:
        if self._finalized:
            raise RuntimeError("accumulator already finalized")
        self._finalized = True

        size = max(self._blocks) + 1 if self._blocks else 0
        content = []
        for index in range(size):
            block = self._blocks.get(index)
            if isinstance(block, ToolUseBlock):
                _finalize_tool_input(block)
            content.append(block)
        return AssistantMessage(
            content=content,
            stop_reason=StopReason.from_wire(self._stop_reason),
            usage=self._usage,
            stream_error=self._stream_error,
        )


def _finalize_tool_input(block: ToolUseBlock) -> None:
    raw = block.input
    if not isinstance(raw, str):
        return
    if not raw.strip():
        block.input = {}
        return
    try:
        block.input = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning("Failed to parse input for tool %s (%s): %s", block.name, block.id, exc)
        block.input_error = f"Invalid tool input JSON: {exc}"


async def accumulate_message(payloads: AsyncIterable[str]) -> AssistantMessage:
    accumulator = ResponseAccumulator()
    async for payload in payloads:
        accumulator.feed(payload)
    return accumulator.finalize()
