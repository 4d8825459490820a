"""
Vigil — Shared Types
====================
Plain-data types exchanged between the presence tracker, the challenge
engine and the outer UI layer. Snapshots are immutable and expose
``to_dict()`` so they can be polled, pushed to listeners or written to
the audit log as-is.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional, Tuple


class VigilError(Exception):
    """Base class for all Vigil errors."""


class ConfigurationError(VigilError):
    """Raised on programmer misuse (bad configuration, unknown ids)."""


class Challenge(str, Enum):
    """Closed set of gesture challenges. Values are the wire ids."""
    BLINK = "blink"
    SMILE = "smile"
    TURN_LEFT = "turnLeft"
    TURN_RIGHT = "turnRight"
    NOD = "nod"

    @classmethod
    def parse(cls, value) -> "Challenge":
        """Accept an enum member or its string id."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ConfigurationError(f"Unknown challenge: {value!r}") from None

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in source-frame pixel space."""
    x: float
    y: float
    width: float
    height: float

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class FaceObservation:
    """Per-frame raw presence observation."""
    present: bool
    box: Optional[Rect] = None


@dataclass(frozen=True)
class PresenceSnapshot:
    """Debounced presence state as seen by the UI layer."""
    detected: bool
    box: Optional[Rect] = None

    def to_dict(self) -> dict:
        return {
            "detected": self.detected,
            "box": self.box.to_dict() if self.box else None,
        }


@dataclass(frozen=True)
class ChallengeSnapshot:
    """Challenge engine state as seen by the UI layer."""
    active: Optional[Challenge]
    completed: Tuple[Challenge, ...]
    all_completed: bool
    progress: int
    evidence: float = 0.0

    def to_dict(self) -> dict:
        return {
            "active": self.active.value if self.active else None,
            "completed": [c.value for c in self.completed],
            "all_completed": self.all_completed,
            "progress": self.progress,
            "evidence": self.evidence,
        }
