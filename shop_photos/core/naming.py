from __future__ import annotations

import re
import threading
import time


_EXT_RE = re.compile(r"\.[^/.]+$")
_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_]")


def sanitize_stem(name: str) -> str:
    """Drop the extension and replace anything outside [A-Za-z0-9_] with '_'."""
    stem = _EXT_RE.sub("", name or "")
    stem = _UNSAFE_RE.sub("_", stem)
    return stem or "photo"


def output_name(name: str, ext: str, stamp: int) -> str:
    return f"{sanitize_stem(name)}_{int(stamp)}{ext}"


class MonotonicStamp:
    """Millisecond timestamps that strictly increase within one instance.

    Photos picked together usually land in the same millisecond; bumping the
    stamp keeps their derived names apart. Safe to share between threads.
    """

    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            now = int(self._clock() * 1000)
            if now <= self._last:
                now = self._last + 1
            self._last = now
            return now


# Used when callers do not bring their own stamp source.
default_stamps = MonotonicStamp()
