"""
Vigil — Frame Source Module
===========================
Explicit frame-source abstraction that replaces a display-refresh
callback loop. The core never schedules anything itself: a source
hands frames over one at a time and the engine processes them
synchronously, which keeps unit tests deterministic.

Sources:
  - IterableFrameSource: pull from any iterable (lists, generators)
  - PushFrameSource:     producer pushes, consumer reads; bounded,
                         oldest frame dropped when full
  - RecordedFrameSource: replay a recorded session (.json / .npy)

Features:
  - Frame validation (shape, finite coordinates)
  - Absence frames (None / empty) pass through as "no face"
  - Health counters (delivered, absent, dropped, drop rate)
"""

from __future__ import annotations

import json
import logging
import os
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Iterable, Optional

import numpy as np

from vigil_utils_core import to_points

_log = logging.getLogger("FrameSource")

_EXHAUSTED = object()
_EMPTY = object()


class FrameSource(ABC):
    """Base class: validation, counters and the ``read_frame`` contract."""

    def __init__(self, validate: bool = True) -> None:
        """
        Args:
            validate: Check landmark frames before delivery. Disable for
                      non-landmark payloads such as overlay surfaces.
        """
        self.validate = validate
        self._frames_total: int = 0
        self._frames_absent: int = 0
        self._frames_dropped: int = 0
        self._exhausted: bool = False

    # ── Public API ────────────────────────────────────────────

    def read_frame(self) -> tuple[bool, Optional[Any], float]:
        """Read one frame.

        Returns:
            (ok, frame_or_None, monotonic_timestamp)
            ok=False when nothing is available right now; check
            ``exhausted`` to tell "finished" from "not yet".
            frame=None with ok=True is an absence signal.
        """
        raw = self._next_raw()
        if raw is _EXHAUSTED:
            self._exhausted = True
            return False, None, 0.0
        if raw is _EMPTY:
            return False, None, 0.0

        self._frames_total += 1
        timestamp = time.monotonic()

        if self._is_absent(raw):
            self._frames_absent += 1
            return True, None, timestamp

        if self.validate and not self._validate_frame(raw):
            self._frames_dropped += 1
            return True, None, timestamp

        return True, raw, timestamp

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def get_health_status(self) -> dict:
        """Return a snapshot of delivery counters."""
        return {
            "frames_total": self._frames_total,
            "frames_delivered": self._frames_total - self._frames_absent - self._frames_dropped,
            "frames_absent": self._frames_absent,
            "frames_dropped": self._frames_dropped,
            "drop_rate_pct": (
                (self._frames_dropped / self._frames_total * 100.0)
                if self._frames_total > 0
                else 0.0
            ),
            "exhausted": self._exhausted,
        }

    def release(self) -> None:
        """Release resources and log final statistics."""
        health = self.get_health_status()
        _log.info(
            "%s releasing: total=%d absent=%d dropped=%d (%.1f%%)",
            type(self).__name__,
            health["frames_total"],
            health["frames_absent"],
            health["frames_dropped"],
            health["drop_rate_pct"],
        )

    def __iter__(self):
        """Yield frames until nothing more is available right now."""
        while True:
            ok, frame, _ = self.read_frame()
            if not ok:
                return
            yield frame

    # ── Context manager support ───────────────────────────────

    def __enter__(self) -> "FrameSource":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    # ── Subclass hooks ────────────────────────────────────────

    @abstractmethod
    def _next_raw(self) -> Any:
        """Next raw payload, ``_EMPTY`` if none is ready, ``_EXHAUSTED`` when done."""

    # ── Private helpers ───────────────────────────────────────

    @staticmethod
    def _is_absent(raw) -> bool:
        if raw is None:
            return True
        if isinstance(raw, np.ndarray):
            return raw.size == 0
        try:
            return len(raw) == 0
        except TypeError:
            return False

    @staticmethod
    def _validate_frame(raw) -> bool:
        """Landmark frame must convert to finite (N, 2+) coordinates."""
        if isinstance(raw, np.ndarray) and (raw.ndim != 2 or raw.shape[1] not in (2, 3)):
            _log.debug("Validation FAIL: landmark array shape %s", raw.shape)
            return False
        if to_points(raw) is None:
            _log.debug("Validation FAIL: malformed landmark frame")
            return False
        return True


class IterableFrameSource(FrameSource):
    """Pull frames from any iterable. ``None`` entries are absence signals."""

    def __init__(self, frames: Iterable, validate: bool = True) -> None:
        super().__init__(validate=validate)
        self._it = iter(frames)

    def _next_raw(self) -> Any:
        return next(self._it, _EXHAUSTED)


class PushFrameSource(FrameSource):
    """Bounded push queue. The oldest frame is dropped when full."""

    def __init__(self, maxsize: int = 2, validate: bool = True) -> None:
        super().__init__(validate=validate)
        self._queue: deque = deque(maxlen=maxsize)
        self._closed = False
        self._frames_overflowed = 0

    def push(self, frame) -> None:
        if self._closed:
            _log.warning("push() after close() ignored")
            return
        if len(self._queue) == self._queue.maxlen:
            self._frames_overflowed += 1
        self._queue.append(frame)

    def close(self) -> None:
        """No more frames; the source is exhausted once drained."""
        self._closed = True

    def _next_raw(self) -> Any:
        if self._queue:
            return self._queue.popleft()
        return _EXHAUSTED if self._closed else _EMPTY

    def get_health_status(self) -> dict:
        status = super().get_health_status()
        status["frames_overflowed"] = self._frames_overflowed
        status["queued"] = len(self._queue)
        return status


class RecordedFrameSource(IterableFrameSource):
    """Replay a recorded landmark session.

    Formats:
      .npy   array (T, N, 2|3)
      .json  list of frames; each frame a list of [x, y(, z)] or
              {"x":..,"y":..} points; null or [] means "no face"
    """

    def __init__(self, path: str, validate: bool = True) -> None:
        self.path = path
        frames = load_recording(path)
        _log.info("Loaded recording %s (%d frames)", path, len(frames))
        super().__init__(frames, validate=validate)


def load_recording(path: str) -> list:
    """Load a recorded session as a list of frames."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Recording not found: {path}")

    ext = os.path.splitext(path)[1].lower()
    if ext == ".npy":
        arr = np.load(path, allow_pickle=False)
        if arr.ndim != 3:
            raise ValueError(f"Expected (T, N, C) array in {path}, got shape {arr.shape}")
        return [frame for frame in arr]
    if ext == ".json":
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("frames", [])
        if not isinstance(data, list):
            raise ValueError(f"Expected a list of frames in {path}")
        return data
    raise ValueError(f"Unsupported recording format: {ext!r} (use .json or .npy)")


def save_recording(path: str, frames: Iterable) -> None:
    """Write frames as a JSON recording (None -> null)."""
    out = []
    for frame in frames:
        if frame is None:
            out.append(None)
        else:
            out.append(np.asarray(frame, dtype=np.float64).tolist())
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump({"frames": out}, f)
