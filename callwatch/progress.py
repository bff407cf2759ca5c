"""
Callwatch — Progress Indicator

Wraps a model adapter and writes one line per notable event of every call:

    [gpt-4.1-nano #1] 🚩 Start streaming | prompt: "You are a helpful..." | active: 1
    [gpt-4.1-nano #1] 🔧 get_weather({"city": "Paris"})
    [gpt-4.1-nano #1] 📥 get_weather → {"temp": 21}
    [gpt-4.1-nano #1] ✅ Complete streaming: 52→9 tokens in 1.32s | active: 0 | reason: stop | result: "It is 21 degrees, tool:get_weather"

The wrapper only observes. Results and stream parts reach the caller
unchanged, and exceptions from the wrapped adapter are re-raised as is.

Usage:
    from callwatch.progress import with_progress_indicator

    model = with_progress_indicator(adapter, "gpt-4.1-nano")
    result = await model.generate(options)
    streamed = await model.stream(options)
    async for part in streamed.stream:
        ...
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

from callwatch.adapter import ModelAdapter
from callwatch.config import ProgressSettings, progress_settings
from callwatch.events import (
    CallOptions,
    GenerateResult,
    StreamPart,
    StreamResult,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    Usage,
)
from callwatch.logging import emit, ensure_logging, get_logger
from callwatch.preview import (
    format_prompt_suffix,
    format_tool_arguments,
    format_tool_result,
    get_prompt_preview,
    preview_text,
    quote,
    safe_str,
)
from callwatch.tracker import CallHandle, CallTracker

logger = get_logger("progress")

GENERATING = "generating"
STREAMING = "streaming"


# ═══════════════════════════════════════════════════════════════════
# Per-stream state
# ═══════════════════════════════════════════════════════════════════

class StreamAccumulator:
    """Text, reasoning and tool bookkeeping for one streaming call."""

    def __init__(self):
        self.text = ""
        self.reasoning = ""
        self.tool_inputs: dict[str, str] = {}       # input id → argument text so far
        self.tool_names: dict[str, str] = {}        # call/input id → tool name
        self.logged_calls: dict[tuple[str, str], str] = {}  # (name, id) → name
        self.finished = False

    def mark_logged(self, tool_name: str, call_id: str | None) -> bool:
        """Record a tool call. False if this (name, id) was already logged."""
        key = (tool_name, call_id or "default")
        if key in self.logged_calls:
            return False
        self.logged_calls[key] = tool_name
        return True

    def used_tools(self) -> list[str]:
        return list(dict.fromkeys(self.logged_calls.values()))

    def summary(self) -> str:
        tools = ", ".join(f"tool:{name}" for name in self.used_tools())
        if self.text and tools:
            return f"{self.text}, {tools}"
        return tools or self.text

    def clear(self) -> None:
        self.text = ""
        self.reasoning = ""
        self.tool_inputs.clear()
        self.tool_names.clear()
        self.logged_calls.clear()


# ═══════════════════════════════════════════════════════════════════
# Wrapper
# ═══════════════════════════════════════════════════════════════════

class ProgressModel:
    """Model adapter that logs the progress of every call to `model`."""

    def __init__(
        self,
        model: ModelAdapter,
        model_name: str | None = None,
        verbose: bool | None = None,
        settings: ProgressSettings | None = None,
    ):
        self._model = model
        self._settings = settings or ProgressSettings()
        self._verbose = self._settings.verbose if verbose is None else verbose
        self._tracker = CallTracker()
        self.model_name = model_name or getattr(model, "model_name", None) or type(model).__name__

    @property
    def wrapped(self) -> ModelAdapter:
        return self._model

    @property
    def active_calls(self) -> int:
        return self._tracker.active

    # ── Adapter API ─────────────────────────────────────────────

    async def generate(self, options: CallOptions) -> GenerateResult:
        handle, active = self._tracker.begin_call(GENERATING)
        self._log_start(handle, options, active)

        try:
            result = await self._model.generate(options)
        except BaseException as exc:
            active = self._tracker.end_call(handle)
            self._log_failure(handle, exc, active)
            raise

        active = self._tracker.end_call(handle)
        try:
            text = self._summarize_content(handle, result.content)
            self._log_completion(handle, result.usage, active, text, result.finish_reason)
        except Exception:
            logger.warning("[%s #%d] ⚠️  Could not log completion", self.model_name, handle.id, exc_info=True)
        return result

    async def stream(self, options: CallOptions) -> StreamResult:
        handle, active = self._tracker.begin_call(STREAMING)
        self._log_start(handle, options, active)

        try:
            result = await self._model.stream(options)
        except BaseException as exc:
            active = self._tracker.end_call(handle)
            self._log_failure(handle, exc, active)
            raise

        return StreamResult(
            stream=self._observe(result.stream, handle),
            metadata=result.metadata,
        )

    # ── Stream observation ──────────────────────────────────────

    async def _observe(
        self,
        source: AsyncIterator[StreamPart],
        handle: CallHandle,
    ) -> AsyncIterator[StreamPart]:
        """Yield every part of `source` unchanged, logging along the way."""
        acc = StreamAccumulator()
        try:
            async for part in source:
                try:
                    self._interpret(part, acc, handle)
                except Exception as exc:
                    self._line(
                        handle, logging.WARNING,
                        f"⚠️  Error processing chunk ({getattr(part, 'type', '?')}): {safe_str(exc)}",
                        event="chunk_error",
                    )
                yield part
        finally:
            if not handle.released:
                active = self._tracker.end_call(handle)
                self._line(
                    handle, logging.WARNING,
                    f"⚠️  Stream ended without finish chunk | active: {active}",
                    event="stream_abandoned", active=active,
                )
            acc.clear()
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()

    def _interpret(self, part: StreamPart, acc: StreamAccumulator, handle: CallHandle) -> None:
        kind = part.type

        if kind == "text-delta":
            acc.text += part.delta
        elif kind == "reasoning-start":
            self._detail(handle, "🧠 Reasoning...", event="reasoning_start")
        elif kind == "reasoning-delta":
            acc.reasoning += part.delta
        elif kind == "reasoning-end":
            summary = quote(preview_text(acc.reasoning, self._settings.preview_limit))
            self._detail(handle, f'🧠 Reasoning complete: "{summary}"', event="reasoning_end")
        elif kind == "tool-call":
            if part.tool_call_id:
                acc.tool_names[part.tool_call_id] = part.tool_name
            if acc.mark_logged(part.tool_name, part.tool_call_id):
                self._log_tool_call(handle, part.tool_name, format_tool_arguments(part.arguments))
        elif kind == "tool-input-start":
            acc.tool_names[part.id] = part.tool_name
            acc.tool_inputs[part.id] = ""
        elif kind == "tool-input-delta":
            acc.tool_inputs[part.id] = acc.tool_inputs.get(part.id, "") + part.delta
        elif kind == "tool-input-end":
            name = acc.tool_names.get(part.id)
            if name:
                if acc.mark_logged(name, part.id):
                    self._log_tool_call(handle, name, acc.tool_inputs.get(part.id, ""))
                # name mapping stays for tool-result lookup
                acc.tool_inputs.pop(part.id, None)
        elif kind == "tool-result":
            name = acc.tool_names.get(part.tool_call_id or "") or part.tool_name or "unknown"
            self._log_tool_result(handle, name, part.result)
        elif kind == "error":
            self._detail(handle, f"❌ Model error: {safe_str(part.error)}", level=logging.WARNING, event="model_error")
        elif kind == "finish":
            if acc.finished:
                return
            acc.finished = True
            active = self._tracker.end_call(handle)
            self._log_completion(handle, part.usage, active, acc.summary(), part.finish_reason)
            acc.clear()

    # ── Generate-mode content ───────────────────────────────────

    def _summarize_content(self, handle: CallHandle, content: list) -> str:
        pieces: list[str] = []
        names: dict[str, str] = {}
        for part in content:
            if isinstance(part, TextPart):
                pieces.append(part.text)
            elif isinstance(part, ToolCallPart):
                pieces.append(f"tool:{part.tool_name}")
                if part.tool_call_id:
                    names[part.tool_call_id] = part.tool_name
                self._log_tool_call(handle, part.tool_name, format_tool_arguments(part.arguments))
            elif isinstance(part, ToolResultPart):
                name = names.get(part.tool_call_id or "") or part.tool_name or "unknown"
                self._log_tool_result(handle, name, part.result)
        return ", ".join(pieces)

    # ── Lines ───────────────────────────────────────────────────

    def _line(self, handle: CallHandle, level: int, body: str, **fields) -> None:
        emit(
            logger, level, f"[{self.model_name} #{handle.id}] {body}",
            model=self.model_name, call_id=handle.id, mode=handle.mode, **fields,
        )

    def _detail(self, handle: CallHandle, body: str, level: int = logging.INFO, **fields) -> None:
        """Per-event line, only written in verbose mode."""
        if self._verbose:
            self._line(handle, level, body, **fields)

    def _log_start(self, handle: CallHandle, options: CallOptions, active: int) -> None:
        suffix = format_prompt_suffix(
            get_prompt_preview(getattr(options, "prompt", None), self._settings.preview_limit)
        )
        self._line(
            handle, logging.INFO,
            f"🚩 Start {handle.mode}{suffix} | active: {active}",
            event="start", active=active,
        )

    def _log_failure(self, handle: CallHandle, exc: BaseException, active: int) -> None:
        self._line(
            handle, logging.WARNING,
            f"❌ Failed {handle.mode} after {handle.elapsed():.2f}s: "
            f"{type(exc).__name__}: {safe_str(exc)} | active: {active}",
            event="failed", active=active,
        )

    def _log_tool_call(self, handle: CallHandle, name: str, arguments: str) -> None:
        self._detail(handle, f"🔧 {name}({arguments})", event="tool_call", tool=name)

    def _log_tool_result(self, handle: CallHandle, name: str, result: Any) -> None:
        rendered = format_tool_result(result, self._settings.tool_result_limit)
        self._detail(handle, f"📥 {name} → {rendered}", event="tool_result", tool=name)

    def _log_completion(
        self,
        handle: CallHandle,
        usage: Usage | None,
        active: int,
        text: str | None,
        finish_reason: str | None = None,
    ) -> None:
        input_tokens = (usage.input_tokens if usage else None) or 0
        output_tokens = (usage.output_tokens if usage else None) or 0
        try:
            duration = f"{handle.elapsed():.2f}"
            if input_tokens > 0:
                token_info = f"{input_tokens}→{output_tokens} tokens"
            else:
                token_info = f"{output_tokens} tokens"
            reason = f" | reason: {finish_reason}" if finish_reason else ""
            result = ""
            if text:
                result = f' | result: "{quote(preview_text(text, self._settings.preview_limit))}"'
            body = f"✅ Complete {handle.mode}: {token_info} in {duration}s | active: {active}{reason}{result}"
        except Exception:
            body = f"✅ Complete {handle.mode} | active: {active} | [stringify error]"
        self._line(
            handle, logging.INFO, body,
            event="complete", active=active,
            input_tokens=input_tokens, output_tokens=output_tokens,
            finish_reason=finish_reason,
        )


def with_progress_indicator(
    model: ModelAdapter,
    model_name: str | None = None,
    show_progress: bool | None = None,
    verbose: bool | None = None,
    settings: ProgressSettings | None = None,
) -> ModelAdapter:
    """
    Wrap `model` with progress logging.

    Unset arguments fall back to the `progress` config section. With
    show_progress false the model is returned unchanged. If nothing has
    configured the callwatch logger yet, the `logging` config section is
    applied so progress lines reach stdout.
    """
    settings = settings or progress_settings()
    enabled = settings.show_progress if show_progress is None else show_progress
    if not enabled:
        return model
    ensure_logging()
    return ProgressModel(model, model_name=model_name, verbose=verbose, settings=settings)
