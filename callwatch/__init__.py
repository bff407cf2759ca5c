"""
Callwatch - progress logging for language-model calls

Light imports (no provider SDKs needed):
  - callwatch.events: Message, CallOptions, stream parts, Usage
  - callwatch.progress: ProgressModel, with_progress_indicator
  - callwatch.adapter: ModelAdapter, LangChainAdapter

Provider SDKs are imported lazily by callwatch.llm factories.
"""

from callwatch.adapter import LangChainAdapter, ModelAdapter
from callwatch.errors import CallwatchError, ConfigError, UnknownProviderError
from callwatch.events import (
    CallOptions, GenerateResult, Message, StreamResult, Usage,
    assistant, system, user,
)
from callwatch.logging import configure_logging, get_logger
from callwatch.progress import ProgressModel, with_progress_indicator
from callwatch.tracker import CallHandle, CallTracker

__all__ = [
    "CallHandle", "CallOptions", "CallTracker", "CallwatchError", "ConfigError",
    "GenerateResult", "LangChainAdapter", "Message", "ModelAdapter", "ProgressModel",
    "StreamResult", "UnknownProviderError", "Usage",
    "assistant", "configure_logging", "get_logger", "system", "user",
    "with_progress_indicator",
]
