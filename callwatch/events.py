"""
Callwatch — Model Boundary Types

Messages going into a model adapter, the content parts of a complete
generation, and the typed parts of a streamed response. Every part has a
`type` discriminator string so consumers can dispatch on it.

Tool arguments reach the boundary under either `args` or `input` depending
on the adapter. They are normalised into `arguments` here, once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Mapping, Union

from callwatch.logging import get_logger

logger = get_logger("events")


@dataclass
class Usage:
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "Usage | None":
        """Accept LangChain `usage_metadata` or camelCase provider dicts."""
        if not data:
            return None
        return cls(
            input_tokens=data.get("input_tokens", data.get("inputTokens")),
            output_tokens=data.get("output_tokens", data.get("outputTokens")),
            total_tokens=data.get("total_tokens", data.get("totalTokens")),
        )

    def __add__(self, other: "Usage") -> "Usage":
        def _sum(a, b):
            if a is None and b is None:
                return None
            return (a or 0) + (b or 0)

        return Usage(
            input_tokens=_sum(self.input_tokens, other.input_tokens),
            output_tokens=_sum(self.output_tokens, other.output_tokens),
            total_tokens=_sum(self.total_tokens, other.total_tokens),
        )


# ═══════════════════════════════════════════════════════════════════
# Tool argument normalisation
# ═══════════════════════════════════════════════════════════════════

_MISSING = object()


def normalize_tool_arguments(payload: Mapping[str, Any]) -> Any:
    """
    Return the tool arguments of a raw payload, whichever field holds them.

    `args` takes precedence over `input` when both are present.
    """
    args = payload.get("args", _MISSING)
    inp = payload.get("input", _MISSING)
    if args is not _MISSING and inp is not _MISSING:
        logger.debug("Tool payload carries both 'args' and 'input'; using 'args'")
    if args is not _MISSING:
        return args
    if inp is not _MISSING:
        return inp
    return payload.get("arguments")


# ═══════════════════════════════════════════════════════════════════
# Content parts (prompt messages and complete generations)
# ═══════════════════════════════════════════════════════════════════

@dataclass
class TextPart:
    text: str
    type: str = field(default="text", init=False)


@dataclass
class ToolCallPart:
    tool_call_id: str | None
    tool_name: str
    arguments: Any = None
    type: str = field(default="tool-call", init=False)


@dataclass
class ToolResultPart:
    tool_call_id: str | None
    tool_name: str | None = None
    result: Any = None
    type: str = field(default="tool-result", init=False)


ContentPart = Union[TextPart, ToolCallPart, ToolResultPart]


@dataclass
class Message:
    """
    A role-tagged prompt message.

    System messages carry plain text; other roles carry a list of parts.
    """
    role: str
    content: str | list[ContentPart]


def system(text: str) -> Message:
    return Message(role="system", content=text)


def user(text: str) -> Message:
    return Message(role="user", content=[TextPart(text)])


def assistant(*parts: ContentPart | str) -> Message:
    return Message(
        role="assistant",
        content=[TextPart(p) if isinstance(p, str) else p for p in parts],
    )


# ═══════════════════════════════════════════════════════════════════
# Stream parts
# ═══════════════════════════════════════════════════════════════════

@dataclass
class TextDelta:
    delta: str
    id: str | None = None
    type: str = field(default="text-delta", init=False)


@dataclass
class ReasoningStart:
    id: str | None = None
    type: str = field(default="reasoning-start", init=False)


@dataclass
class ReasoningDelta:
    delta: str
    id: str | None = None
    type: str = field(default="reasoning-delta", init=False)


@dataclass
class ReasoningEnd:
    id: str | None = None
    type: str = field(default="reasoning-end", init=False)


@dataclass
class ToolCall:
    """A complete tool invocation delivered in one part."""
    tool_call_id: str | None
    tool_name: str
    arguments: Any = None
    type: str = field(default="tool-call", init=False)


@dataclass
class ToolInputStart:
    id: str
    tool_name: str
    type: str = field(default="tool-input-start", init=False)


@dataclass
class ToolInputDelta:
    id: str
    delta: str
    type: str = field(default="tool-input-delta", init=False)


@dataclass
class ToolInputEnd:
    id: str
    type: str = field(default="tool-input-end", init=False)


@dataclass
class ToolResult:
    tool_call_id: str | None
    tool_name: str | None = None
    result: Any = None
    type: str = field(default="tool-result", init=False)


@dataclass
class StreamError:
    error: Any
    type: str = field(default="error", init=False)


@dataclass
class Finish:
    usage: Usage | None = None
    finish_reason: str | None = None
    type: str = field(default="finish", init=False)


StreamPart = Union[
    TextDelta, ReasoningStart, ReasoningDelta, ReasoningEnd,
    ToolCall, ToolInputStart, ToolInputDelta, ToolInputEnd,
    ToolResult, StreamError, Finish,
]


def parse_part(data: Mapping[str, Any]) -> StreamPart:
    """
    Build a stream part from a raw dict (camelCase or snake_case keys).

    Raises ValueError for an unknown `type`.
    """
    kind = data.get("type")
    call_id = data.get("toolCallId", data.get("tool_call_id"))
    tool_name = data.get("toolName", data.get("tool_name"))

    if kind == "text-delta":
        return TextDelta(delta=data.get("delta", data.get("text", "")), id=data.get("id"))
    if kind == "reasoning-start":
        return ReasoningStart(id=data.get("id"))
    if kind == "reasoning-delta":
        return ReasoningDelta(delta=data.get("delta", ""), id=data.get("id"))
    if kind == "reasoning-end":
        return ReasoningEnd(id=data.get("id"))
    if kind == "tool-call":
        return ToolCall(
            tool_call_id=call_id,
            tool_name=tool_name or "unknown",
            arguments=normalize_tool_arguments(data),
        )
    if kind == "tool-input-start":
        return ToolInputStart(id=data["id"], tool_name=tool_name or "unknown")
    if kind == "tool-input-delta":
        return ToolInputDelta(id=data["id"], delta=data.get("delta", ""))
    if kind == "tool-input-end":
        return ToolInputEnd(id=data["id"])
    if kind == "tool-result":
        return ToolResult(tool_call_id=call_id, tool_name=tool_name, result=data.get("result"))
    if kind == "error":
        return StreamError(error=data.get("error", "unknown error"))
    if kind == "finish":
        return Finish(
            usage=Usage.from_mapping(data.get("usage")),
            finish_reason=data.get("finishReason", data.get("finish_reason")),
        )
    raise ValueError(f"Unknown stream part type: {kind!r}")


# ═══════════════════════════════════════════════════════════════════
# Call options and results
# ═══════════════════════════════════════════════════════════════════

@dataclass
class CallOptions:
    prompt: list[Message]
    tools: list[Any] | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerateResult:
    content: list[ContentPart]
    usage: Usage | None = None
    finish_reason: str | None = None
    raw: Any = None

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.content if isinstance(p, TextPart))


@dataclass
class StreamResult:
    stream: AsyncIterator[StreamPart]
    metadata: dict[str, Any] = field(default_factory=dict)
