"""
Callwatch — Previews

Short, single-line excerpts of prompts, results and tool payloads for
progress lines. Nothing here raises on odd input: values that cannot be
serialised become STRINGIFY_ERROR.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Iterable

from callwatch.events import Message

PREVIEW_LIMIT = 40
TOOL_RESULT_PREVIEW_LIMIT = 100
ELLIPSIS = "..."
STRINGIFY_ERROR = "[stringify error]"

_WS = re.compile(r"\s+")


@dataclass(frozen=True)
class PromptPreview:
    text: str
    truncated: bool


def normalize_whitespace(text: str) -> str:
    return _WS.sub(" ", text).strip()


def quote(text: str) -> str:
    """Escape double quotes for embedding in a quoted log field."""
    return text.replace('"', '\\"')


def preview_text(text: str, limit: int = PREVIEW_LIMIT) -> str:
    """Whitespace-normalised text, cut at `limit` chars with an ellipsis."""
    flat = normalize_whitespace(text)
    if len(flat) > limit:
        return flat[:limit] + ELLIPSIS
    return flat


def get_prompt_preview(
    messages: Iterable[Message] | None,
    limit: int = PREVIEW_LIMIT,
) -> PromptPreview | None:
    """
    Preview the text of a prompt.

    System messages contribute their text; other messages contribute their
    text parts. Tool calls and results are skipped. Returns None when the
    prompt holds no text at all.
    """
    if messages is None:
        return None

    preview = ""
    truncated = False

    def append(text: str) -> None:
        nonlocal preview, truncated
        if len(preview) >= limit:
            truncated = True
            return
        sanitized = normalize_whitespace(text)
        if not sanitized:
            return
        segment = f" {sanitized}" if preview else sanitized
        remaining = limit - len(preview)
        if len(segment) > remaining:
            truncated = True
        preview += segment[:remaining]

    for message in messages:
        if len(preview) >= limit:
            truncated = True
            break

        if message.role == "system":
            if isinstance(message.content, str):
                append(message.content)
            continue

        if not isinstance(message.content, list):
            continue

        for part in message.content:
            if len(preview) >= limit:
                truncated = True
                break
            if getattr(part, "type", None) == "text":
                append(part.text)

    if not preview:
        return None
    return PromptPreview(text=preview, truncated=truncated)


def format_prompt_suffix(preview: PromptPreview | None) -> str:
    if preview is None:
        return ""
    display = quote(preview.text)
    if preview.truncated:
        display += ELLIPSIS
    return f' | prompt: "{display}"'


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def format_tool_arguments(arguments: Any) -> str:
    """Arguments as text: strings unchanged, anything else as JSON."""
    if arguments is None or arguments == "":
        return ""
    try:
        return _to_text(arguments)
    except (TypeError, ValueError):
        return STRINGIFY_ERROR


def format_tool_result(result: Any, limit: int = TOOL_RESULT_PREVIEW_LIMIT) -> str:
    try:
        text = _to_text(result)
    except (TypeError, ValueError):
        return STRINGIFY_ERROR
    if len(text) > limit:
        return text[:limit] + ELLIPSIS
    return text


def safe_str(value: Any) -> str:
    try:
        return str(value)
    except Exception:
        return STRINGIFY_ERROR
