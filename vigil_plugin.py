"""
Vigil — Gesture Predicate Interface
===================================
Defines the ``GesturePredicate`` base class for per-challenge
predicates. The challenge engine owns the evidence counter; a
predicate only answers "does THIS frame show the requested gesture?".

Strategies (see plugins/):
  - 'geometry': landmark geometry (eye opening, mouth shape,
    face-oval half areas). Default.
  - 'motion': simplified frame-to-frame displacement heuristics.

Frame-to-frame predicates keep their previous reference points in a
``ReferenceMemory`` owned by the engine and cleared on every challenge
start, completion and reset, so nothing leaks across challenges.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import numpy as np

from vigil_types import Challenge


@dataclass
class ReferenceMemory:
    """Previous-frame reference points for frame-to-frame predicates."""
    eye_points: Optional[np.ndarray] = None
    mouth_point: Optional[np.ndarray] = None
    nod_points: Optional[np.ndarray] = None

    def clear(self) -> None:
        self.eye_points = None
        self.mouth_point = None
        self.nod_points = None

    @property
    def is_empty(self) -> bool:
        return self.eye_points is None and self.mouth_point is None and self.nod_points is None


class GesturePredicate(ABC):
    """
    Abstract base for gesture predicate strategies.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Strategy identifier ('geometry', 'motion', ...)."""
        pass

    @property
    @abstractmethod
    def min_points(self) -> int:
        """Smallest landmark count every predicate of this strategy can read."""
        pass

    @abstractmethod
    def matches(self, challenge: Challenge, points: np.ndarray, memory: ReferenceMemory) -> bool:
        """
        Evaluate one frame for one challenge.

        Args:
            challenge: The active challenge.
            points: (N, 2) float array of landmark pixel coordinates,
                    N >= ``min_points``.
            memory: Previous-frame cache; may be read and updated.

        Returns:
            True if the frame shows the gesture.
        """
        pass

    def describe(self) -> dict:
        """Tunables for logging."""
        return {"name": self.name, "min_points": self.min_points}
