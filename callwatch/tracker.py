"""
Callwatch — Call Tracker

Per-wrapper call ids and in-flight call count. Each ProgressModel owns its
own tracker, so two wrapped models never share counters.

The counter is lock-guarded: asyncio callers never contend, but the same
wrapper may be driven from several threads.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator


@dataclass
class CallHandle:
    """One in-flight call. Released at most once."""
    id: int
    mode: str                       # "generating" | "streaming"
    start_time: float = field(default_factory=time.monotonic)
    released: bool = False

    def elapsed(self) -> float:
        return time.monotonic() - self.start_time


class CallTracker:
    """Assigns call ids and counts active calls."""

    def __init__(self):
        self._lock = threading.Lock()
        self._issued = 0
        self._active = 0

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    @property
    def issued(self) -> int:
        with self._lock:
            return self._issued

    def begin_call(self, mode: str) -> tuple[CallHandle, int]:
        """Start a call. Returns the handle and the active count including it."""
        with self._lock:
            self._issued += 1
            self._active += 1
            return CallHandle(id=self._issued, mode=mode), self._active

    def end_call(self, handle: CallHandle) -> int:
        """
        Release a call and return the active count after the release.

        A handle that was already released leaves the counter untouched.
        """
        with self._lock:
            if not handle.released:
                handle.released = True
                self._active -= 1
            return self._active

    @contextmanager
    def track(self, mode: str) -> Iterator[CallHandle]:
        """Begin a call and guarantee its release when the block exits."""
        handle, _ = self.begin_call(mode)
        try:
            yield handle
        finally:
            self.end_call(handle)
