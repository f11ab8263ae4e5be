from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class StopReason(str, Enum):
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    END_TURN = "end_turn"
    UNKNOWN = "unknown"

    @classmethod
    def from_wire(cls, raw: str | None) -> "StopReason":
        if raw == "stop_sequence":
            return cls.END_TURN
        try:
            return cls(str(raw))
        except ValueError:
            return cls.UNKNOWN


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str = ""


class ToolUseBlock(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str = ""
    name: str = ""
    # Raw JSON text while streaming; structured value once finalized.
    input: Any = ""
    input_error: Optional[str] = None


ContentBlock = Union[TextBlock, ToolUseBlock]


class AssistantMessage(BaseModel):
    # None marks an index that never received a block-start event.
    content: List[Optional[ContentBlock]] = Field(default_factory=list)
    stop_reason: StopReason = StopReason.UNKNOWN
    usage: Optional[Dict[str, Any]] = None
    stream_error: Optional[Dict[str, Any]] = None

    def tool_calls(self) -> List[ToolUseBlock]:
        return [block for block in self.content if isinstance(block, ToolUseBlock)]

    def text_blocks(self) -> List[TextBlock]:
        return [block for block in self.content if isinstance(block, TextBlock)]

    def first_text(self) -> str:
        blocks = self.text_blocks()
        return blocks[0].text if blocks else ""

    def to_wire(self) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for block in self.content:
            if isinstance(block, TextBlock):
                if block.text:
                    out.append({"type": "text", "text": block.text})
            elif isinstance(block, ToolUseBlock):
                out.append(
                    {
                        "type": "tool_use",
                        "id": block.id,
                        "name": block.name,
                        "input": block.input if isinstance(block.input, dict) else {},
                    }
                )
        return out


# Stream events, as delivered in the `data:` payloads of the endpoint's event stream.

MAX_BLOCK_INDEX = 1024


class TextDelta(BaseModel):
    type: Literal["text_delta"]
    text: str = ""


class InputJsonDelta(BaseModel):
    type: Literal["input_json_delta"]
    partial_json: str = ""


class BlockStartEvent(BaseModel):
    type: Literal["content_block_start"]
    index: int = Field(ge=0, lt=MAX_BLOCK_INDEX)
    content_block: Dict[str, Any]


class BlockDeltaEvent(BaseModel):
    type: Literal["content_block_delta"]
    index: int = Field(ge=0, lt=MAX_BLOCK_INDEX)
    delta: Annotated[Union[TextDelta, InputJsonDelta], Field(discriminator="type")]


class MessageDelta(BaseModel):
    stop_reason: Optional[str] = None
    stop_sequence: Optional[str] = None


class MessageDeltaEvent(BaseModel):
    type: Literal["message_delta"]
    delta: MessageDelta = Field(default_factory=MessageDelta)
    usage: Optional[Dict[str, Any]] = None


class StreamErrorEvent(BaseModel):
    type: Literal["error"]
    error: Dict[str, Any] = Field(default_factory=dict)


StreamEvent = Annotated[
    Union[BlockStartEvent, BlockDeltaEvent, MessageDeltaEvent, StreamErrorEvent],
    Field(discriminator="type"),
]
STREAM_EVENT_ADAPTER: TypeAdapter[Any] = TypeAdapter(StreamEvent)
STREAM_EVENT_TYPES = {"content_block_start", "content_block_delta", "message_delta", "error"}


class ToolDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    input_schema: Dict[str, Any]


class ToolResult(BaseModel):
    tool_use_id: str
    content: str
    is_error: bool = False

    def to_wire(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": "tool_result", "tool_use_id": self.tool_use_id, "content": self.content}
        if self.is_error:
            out["is_error"] = True
        return out


class UserTextTurn(BaseModel):
    kind: Literal["user_text"] = "user_text"
    text: str


class AssistantTurn(BaseModel):
    kind: Literal["assistant"] = "assistant"
    message: AssistantMessage


class ToolResultsTurn(BaseModel):
    kind: Literal["tool_results"] = "tool_results"
    results: List[ToolResult]


Turn = Union[UserTextTurn, AssistantTurn, ToolResultsTurn]


class Conversation(BaseModel):
    """Ordered, append-only history of one analysis request."""

    turns: List[Turn] = Field(default_factory=list)

    def append_user_text(self, text: str) -> None:
        self.turns.append(UserTextTurn(text=text))

    def append_assistant(self, message: AssistantMessage) -> None:
        self.turns.append(AssistantTurn(message=message))

    def append_tool_results(self, results: List[ToolResult]) -> None:
        self.turns.append(ToolResultsTurn(results=list(results)))

    def to_wire(self) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        for turn in self.turns:
            if isinstance(turn, UserTextTurn):
                messages.append({"role": "user", "content": turn.text})
            elif isinstance(turn, AssistantTurn):
                messages.append({"role": "assistant", "content": turn.message.to_wire()})
            else:
                messages.append({"role": "user", "content": [result.to_wire() for result in turn.results]})
        return messages


class AnalysisResult(BaseModel):
    ticker: str
    text: str
    truncated: bool = False
    turns: int
    model: str
    usage: Optional[Dict[str, Any]] = None


class Position(BaseModel):
    ticker: str
    quantity: float
    avg_price: Optional[float] = None
    total_cost: Optional[float] = None


class AnalysisRequest(BaseModel):
    ticker: str = Field(..., min_length=1, max_length=12)
    budget: Optional[float] = Field(None, gt=0)
    portfolio: List[Position] = Field(default_factory=list)


class AnalysisResponse(BaseModel):
    ticker: str
    response: str
    truncated: bool
    turns: int
    model: str
    generated_at: str
