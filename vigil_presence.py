"""
Vigil — Face Presence Tracker
=============================
Debounced face-presence flag plus a smoothed face box.

Raw per-frame detectors flicker (occlusion, motion blur, lighting).
The tracker applies ASYMMETRIC HYSTERESIS in frame counts:
  - acquire after ``detection_threshold`` consecutive positives
  - lose after ``non_detection_threshold`` consecutive negatives
A positive frame always zeroes the negative run and vice versa.

While detected, every derivable box goes into a fixed-capacity ring
buffer and the published box is the coordinate-wise mean of the
buffer. The box is None whenever the face is not detected.

Counts are frames, not seconds, so behaviour is identical under
steady and irregular frame delivery.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Optional

from vigil_types import ConfigurationError, PresenceSnapshot, Rect
from vigil_utils_core import is_well_positioned, mean_rect
from vigil_utils.presence_signal import PresenceSignal, LandmarkCountSignal, build_signal

_log = logging.getLogger("FacePresence")


class FacePresenceTracker:
    """Hysteresis state machine over per-frame presence observations."""

    def __init__(
        self,
        detection_threshold: int = 2,
        non_detection_threshold: int = 3,
        window_size: int = 3,
        signal: Optional[PresenceSignal] = None,
        center_tolerance: float = 0.15,
        min_face_area: float = 0.10,
        max_face_area: float = 0.60,
    ):
        """
        Args:
            detection_threshold: Consecutive positives to raise ``detected``.
            non_detection_threshold: Consecutive negatives to lower it.
            window_size: Moving-average capacity for the face box.
            signal: Converts raw frames to observations. Defaults to
                    the landmark-count signal.
            center_tolerance: Max centre offset per axis, as a fraction
                              of the frame, for ``is_well_positioned``.
            min_face_area: Exclusive lower bound on box area / frame area.
            max_face_area: Exclusive upper bound on box area / frame area.
        """
        if detection_threshold < 1 or non_detection_threshold < 1:
            raise ConfigurationError("presence thresholds must be >= 1")
        if window_size < 1:
            raise ConfigurationError("window_size must be >= 1")
        if not 0.0 <= min_face_area < max_face_area:
            raise ConfigurationError("face area bounds must satisfy 0 <= min < max")

        self.detection_threshold = detection_threshold
        self.non_detection_threshold = non_detection_threshold
        self.window_size = window_size
        self.signal = signal or LandmarkCountSignal()
        self.center_tolerance = center_tolerance
        self.min_face_area = min_face_area
        self.max_face_area = max_face_area

        self.detected: bool = False
        self.smoothed_box: Optional[Rect] = None
        self.consecutive_positive: int = 0
        self.consecutive_negative: int = 0
        self._window: deque = deque(maxlen=window_size)
        self.running: bool = True

    @classmethod
    def from_config(cls, cfg: dict) -> "FacePresenceTracker":
        """Build from the ``presence`` config section."""
        return cls(
            detection_threshold=cfg.get("detection_threshold", 2),
            non_detection_threshold=cfg.get("non_detection_threshold", 3),
            window_size=cfg.get("window_size", 3),
            signal=build_signal(cfg.get("signal", "landmarks"), cfg),
            center_tolerance=cfg.get("center_tolerance", 0.15),
            min_face_area=cfg.get("min_face_area", 0.10),
            max_face_area=cfg.get("max_face_area", 0.60),
        )

    # ── Public API ────────────────────────────────────────────

    def observe(self, frame) -> PresenceSnapshot:
        """Feed one frame (or pre-derived observation). Returns the new state.

        A no-op while stopped.
        """
        if not self.running:
            return self.get_state()

        obs = self.signal.observe(frame)

        if obs.present:
            self.consecutive_positive += 1
            self.consecutive_negative = 0

            if not self.detected and self.consecutive_positive >= self.detection_threshold:
                self.detected = True
                _log.info("Face acquired after %d frames", self.consecutive_positive)

            if self.detected and obs.box is not None:
                self._window.append(obs.box)
                self.smoothed_box = mean_rect(self._window)
        else:
            self.consecutive_negative += 1
            self.consecutive_positive = 0

            if self.detected and self.consecutive_negative >= self.non_detection_threshold:
                self.detected = False
                self.smoothed_box = None
                self._window.clear()
                _log.info("Face lost after %d frames", self.consecutive_negative)

        return self.get_state()

    def get_state(self) -> PresenceSnapshot:
        return PresenceSnapshot(detected=self.detected, box=self.smoothed_box)

    def is_well_positioned(self, frame_width: float, frame_height: float) -> bool:
        """Detected face centred and sized within the configured bounds."""
        if not self.detected:
            return False
        return is_well_positioned(
            self.smoothed_box, frame_width, frame_height,
            center_tolerance=self.center_tolerance,
            min_area=self.min_face_area,
            max_area=self.max_face_area,
        )

    @property
    def window(self) -> tuple:
        """Boxes currently in the moving-average window (oldest first)."""
        return tuple(self._window)

    def reset(self) -> None:
        """Clear counters, flag, box and window, and resume observing."""
        self.running = True
        self.detected = False
        self.smoothed_box = None
        self.consecutive_positive = 0
        self.consecutive_negative = 0
        self._window.clear()

    def start(self) -> None:
        """Resume observation from a clean state."""
        self.reset()

    def stop(self) -> None:
        """Stop observing and tear down state. Idempotent."""
        self.reset()
        self.running = False
