"""
Callwatch — Model Adapters

ModelAdapter is the boundary the progress indicator wraps: an object with
a model name, an async `generate` returning a complete result, and an async
`stream` returning a sequence of typed parts.

LangChainAdapter puts any LangChain chat model behind that boundary.
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Protocol, runtime_checkable

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    AIMessageChunk,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from callwatch.events import (
    CallOptions,
    Finish,
    GenerateResult,
    Message,
    ReasoningDelta,
    ReasoningEnd,
    ReasoningStart,
    StreamPart,
    StreamResult,
    TextDelta,
    TextPart,
    ToolCall,
    ToolCallPart,
    ToolInputDelta,
    ToolInputEnd,
    ToolInputStart,
    ToolResultPart,
    Usage,
)


@runtime_checkable
class ModelAdapter(Protocol):
    model_name: str

    async def generate(self, options: CallOptions) -> GenerateResult: ...
    async def stream(self, options: CallOptions) -> StreamResult: ...


# ═══════════════════════════════════════════════════════════════════
# Message conversion
# ═══════════════════════════════════════════════════════════════════

def _parts_text(parts: list) -> str:
    return "".join(p.text for p in parts if isinstance(p, TextPart))


def _as_dict(arguments: Any) -> dict:
    if isinstance(arguments, dict):
        return arguments
    if isinstance(arguments, str) and arguments.strip():
        try:
            parsed = json.loads(arguments)
        except json.JSONDecodeError:
            return {"input": arguments}
        return parsed if isinstance(parsed, dict) else {"input": parsed}
    return {}


def to_langchain_messages(prompt: list[Message]) -> list[BaseMessage]:
    """Convert callwatch prompt messages into LangChain messages."""
    converted: list[BaseMessage] = []
    for message in prompt:
        content = message.content
        if message.role == "system":
            text = content if isinstance(content, str) else _parts_text(content)
            converted.append(SystemMessage(content=text))
            continue

        parts = [TextPart(content)] if isinstance(content, str) else list(content)

        if message.role == "user":
            converted.append(HumanMessage(content=_parts_text(parts)))
        elif message.role == "assistant":
            tool_calls = [
                {"name": p.tool_name, "args": _as_dict(p.arguments), "id": p.tool_call_id}
                for p in parts if isinstance(p, ToolCallPart)
            ]
            converted.append(AIMessage(content=_parts_text(parts), tool_calls=tool_calls))
        elif message.role == "tool":
            for p in parts:
                if not isinstance(p, ToolResultPart):
                    continue
                body = p.result if isinstance(p.result, str) else json.dumps(p.result, default=str)
                converted.append(ToolMessage(content=body, tool_call_id=p.tool_call_id or ""))
        else:
            raise ValueError(f"Unsupported message role: {message.role!r}")
    return converted


def _message_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    texts = []
    for block in content or []:
        if isinstance(block, str):
            texts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            texts.append(block.get("text", ""))
    return "".join(texts)


def _finish_reason(metadata: dict | None) -> str | None:
    if not metadata:
        return None
    return metadata.get("finish_reason") or metadata.get("stop_reason")


# ═══════════════════════════════════════════════════════════════════
# LangChain adapter
# ═══════════════════════════════════════════════════════════════════

class LangChainAdapter:
    """Adapts a LangChain BaseChatModel to the ModelAdapter protocol."""

    def __init__(self, chat_model: BaseChatModel, model_name: str | None = None):
        self._chat_model = chat_model
        self.model_name = (
            model_name
            or getattr(chat_model, "model_name", None)
            or getattr(chat_model, "model", None)
            or type(chat_model).__name__
        )

    @property
    def chat_model(self) -> BaseChatModel:
        return self._chat_model

    def _runnable(self, options: CallOptions):
        runnable = self._chat_model
        if options.tools:
            runnable = runnable.bind_tools(options.tools)
        kwargs: dict[str, Any] = dict(options.extra)
        if options.temperature is not None:
            kwargs.setdefault("temperature", options.temperature)
        if options.max_tokens is not None:
            kwargs.setdefault("max_tokens", options.max_tokens)
        return runnable, kwargs

    async def generate(self, options: CallOptions) -> GenerateResult:
        runnable, kwargs = self._runnable(options)
        message = await runnable.ainvoke(to_langchain_messages(options.prompt), **kwargs)

        content: list = []
        text = _message_text(message.content)
        if text:
            content.append(TextPart(text))
        for call in getattr(message, "tool_calls", None) or []:
            content.append(ToolCallPart(
                tool_call_id=call.get("id"),
                tool_name=call["name"],
                arguments=call.get("args"),
            ))

        return GenerateResult(
            content=content,
            usage=Usage.from_mapping(getattr(message, "usage_metadata", None)),
            finish_reason=_finish_reason(getattr(message, "response_metadata", None)),
            raw=message,
        )

    async def stream(self, options: CallOptions) -> StreamResult:
        runnable, kwargs = self._runnable(options)
        messages = to_langchain_messages(options.prompt)
        return StreamResult(
            stream=self._parts(runnable.astream(messages, **kwargs)),
            metadata={"model": self.model_name},
        )

    async def _parts(self, chunks: AsyncIterator[AIMessageChunk]) -> AsyncIterator[StreamPart]:
        """Translate LangChain message chunks into callwatch stream parts."""
        usage: Usage | None = None
        finish_reason: str | None = None
        reasoning_open = False
        open_inputs: dict[int, str] = {}    # chunk index → latest tool call id
        opened: dict[str, None] = {}        # every tool call id, in order
        input_names: dict[str, str] = {}
        input_args: dict[str, str] = {}

        async for chunk in chunks:
            content = chunk.content
            if isinstance(content, str):
                blocks = [{"type": "text", "text": content}] if content else []
            else:
                blocks = [{"type": "text", "text": b} if isinstance(b, str) else b for b in content]

            for block in blocks:
                kind = block.get("type")
                if kind == "thinking":
                    if not reasoning_open:
                        reasoning_open = True
                        yield ReasoningStart()
                    if block.get("thinking"):
                        yield ReasoningDelta(delta=block["thinking"])
                elif kind == "text" and block.get("text"):
                    if reasoning_open:
                        reasoning_open = False
                        yield ReasoningEnd()
                    yield TextDelta(delta=block["text"])

            for tc in getattr(chunk, "tool_call_chunks", None) or []:
                index = tc.get("index") or 0
                call_id = open_inputs.get(index)
                if call_id is None or (tc.get("id") and tc.get("id") != call_id):
                    call_id = tc.get("id") or f"call_{index}"
                    open_inputs[index] = call_id
                    opened[call_id] = None
                    input_names[call_id] = tc.get("name") or "unknown"
                    input_args[call_id] = ""
                    yield ToolInputStart(id=call_id, tool_name=input_names[call_id])
                if tc.get("args"):
                    input_args[call_id] += tc["args"]
                    yield ToolInputDelta(id=call_id, delta=tc["args"])

            chunk_usage = Usage.from_mapping(getattr(chunk, "usage_metadata", None))
            if chunk_usage is not None:
                usage = chunk_usage if usage is None else usage + chunk_usage
            finish_reason = _finish_reason(getattr(chunk, "response_metadata", None)) or finish_reason

        if reasoning_open:
            yield ReasoningEnd()
        for call_id in opened:
            yield ToolInputEnd(id=call_id)
            yield ToolCall(
                tool_call_id=call_id,
                tool_name=input_names[call_id],
                arguments=input_args[call_id],
            )

        if finish_reason is None:
            finish_reason = "tool-calls" if opened else "stop"
        yield Finish(usage=usage, finish_reason=finish_reason)
