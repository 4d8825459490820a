"""
Vigil — Challenge Engine
========================
Tracks an ordered list of gesture challenges and decides, frame by
frame, whether the active one has been performed.

Evidence counter:
  - predicate match:  evidence = min(required, evidence + increment)
  - predicate miss:   evidence = max(0, evidence - decay)
  - progress:         floor(min(100, evidence / required * 100))
  - evidence >= required completes the active challenge

Decay is smaller than the increment, so a few noisy frames keep partial
credit while a sustained absence of the gesture drains it.

The engine does NOT advance to the next challenge by itself; the
session (vigil_engine.VigilEngine) or the UI decides when to call
``start_challenge`` again.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, List, Optional

from plugins import GeometryPredicates, build_predicate
from vigil_plugin import GesturePredicate, ReferenceMemory
from vigil_types import Challenge, ChallengeSnapshot, ConfigurationError
from vigil_utils_core import to_points

_log = logging.getLogger("ChallengeEngine")


class ChallengeEngine:
    """Evidence/progress state machine over a predicate strategy."""

    def __init__(
        self,
        predicate: Optional[GesturePredicate] = None,
        required_detections: float = 5,
        increment: float = 1.0,
        decay: float = 0.2,
        presence=None,
        challenges: Optional[Iterable] = None,
    ):
        """
        Args:
            predicate: Gesture predicate strategy. Defaults to geometry.
            required_detections: Evidence needed to complete a challenge.
            increment: Evidence gained per matching frame.
            decay: Evidence lost per non-matching frame.
            presence: Optional presence tracker; when given, ``evaluate``
                      is skipped while it reports no face.
            challenges: Optional ordered list passed to ``configure``.
        """
        if required_detections <= 0:
            raise ConfigurationError("required_detections must be > 0")
        if increment <= 0 or decay < 0:
            raise ConfigurationError("increment must be > 0 and decay >= 0")

        if predicate is None:
            predicate = GeometryPredicates()

        self.predicate = predicate
        self.required_detections = required_detections
        self.increment = increment
        self.decay = decay
        self.presence = presence

        self._challenges: Optional[List[Challenge]] = None
        self._active: Optional[Challenge] = None
        self._completed: List[Challenge] = []
        self._evidence: float = 0.0
        self._progress: int = 0
        self._all_completed: bool = False
        self._last_evaluated: bool = False
        self.memory = ReferenceMemory()

        if challenges is not None:
            self.configure(challenges)

    @classmethod
    def from_config(
        cls,
        cfg: dict,
        predicate: Optional[GesturePredicate] = None,
        presence=None,
        strategy_options: Optional[dict] = None,
    ) -> "ChallengeEngine":
        """Build from the ``challenge`` config section."""
        if predicate is None:
            predicate = build_predicate(cfg.get("strategy", "geometry"), strategy_options)
        return cls(
            predicate=predicate,
            required_detections=cfg.get("required_detections", 5),
            increment=cfg.get("increment", 1.0),
            decay=cfg.get("decay", 0.2),
            presence=presence,
            challenges=cfg.get("sequence"),
        )

    # ── Configuration ─────────────────────────────────────────

    def configure(self, challenges: Iterable) -> None:
        """Set the ordered challenge list. Duplicates keep first position."""
        ordered: List[Challenge] = []
        for item in challenges:
            c = Challenge.parse(item)
            if c not in ordered:
                ordered.append(c)
        if not ordered:
            raise ConfigurationError("challenge list must not be empty")

        self._challenges = ordered
        self.reset()
        _log.debug("Configured challenges: %s", [c.value for c in ordered])

    def _require_configured(self) -> List[Challenge]:
        if self._challenges is None:
            raise ConfigurationError("ChallengeEngine used before configure()")
        return self._challenges

    def _require_known(self, challenge) -> Challenge:
        c = Challenge.parse(challenge)
        if c not in self._require_configured():
            raise ConfigurationError(f"Challenge {c.value!r} is not in the configured list")
        return c

    # ── Public API ────────────────────────────────────────────

    def start_challenge(self, challenge) -> bool:
        """Activate a challenge. Returns False (silently) if already completed."""
        c = self._require_known(challenge)
        if c in self._completed:
            return False

        self._active = c
        self._evidence = 0.0
        self._progress = 0
        self.memory.clear()
        _log.info("Challenge started: %s", c.value)
        return True

    def evaluate(self, frame) -> bool:
        """Run the active challenge's predicate on one frame.

        Returns whether the predicate matched. Skipped (False, no state
        change) without an active challenge, without a detected face, or
        for malformed / undersized frames; ``last_evaluated`` tells a skip
        from a miss.
        """
        self._require_configured()
        self._last_evaluated = False
        if self._active is None:
            return False
        if self.presence is not None and not self.presence.detected:
            return False

        points = to_points(frame)
        if points is None or len(points) < self.predicate.min_points:
            return False

        active = self._active
        matched = bool(self.predicate.matches(active, points, self.memory))
        self._last_evaluated = True

        if matched:
            self._evidence = min(float(self.required_detections), self._evidence + self.increment)
        else:
            # round() keeps repeated fractional decay from drifting below exact values
            self._evidence = max(0.0, round(self._evidence - self.decay, 9))
        self._progress = self._compute_progress(self._evidence)

        _log.debug(
            "%s matched=%s evidence=%.2f/%s progress=%d",
            active.value, matched, self._evidence, self.required_detections, self._progress,
        )

        if self._evidence >= self.required_detections:
            self.complete_challenge(active)
        return matched

    def complete_challenge(self, challenge) -> None:
        """Mark a challenge completed. Idempotent."""
        c = self._require_known(challenge)
        if c in self._completed:
            return

        self._completed.append(c)
        self._progress = 100
        self._active = None
        self._evidence = float(self.required_detections)
        self.memory.clear()
        _log.info("Challenge completed: %s (%d/%d)", c.value, len(self._completed), len(self._challenges))

        if len(self._completed) == len(self._challenges):
            self._all_completed = True
            _log.info("All challenges completed")

    def reset(self) -> None:
        """Clear progress, completions and cached reference points."""
        self._active = None
        self._completed = []
        self._evidence = 0.0
        self._progress = 0
        self._all_completed = False
        self._last_evaluated = False
        self.memory.clear()

    def next_pending(self) -> Optional[Challenge]:
        """First configured challenge not yet completed."""
        for c in self._require_configured():
            if c not in self._completed:
                return c
        return None

    def snapshot(self) -> ChallengeSnapshot:
        return ChallengeSnapshot(
            active=self._active,
            completed=tuple(self._completed),
            all_completed=self._all_completed,
            progress=self._progress,
            evidence=self._evidence,
        )

    # ── Read-only state ───────────────────────────────────────

    @property
    def challenges(self) -> tuple:
        return tuple(self._challenges or ())

    @property
    def active(self) -> Optional[Challenge]:
        return self._active

    @property
    def completed(self) -> tuple:
        return tuple(self._completed)

    @property
    def all_completed(self) -> bool:
        return self._all_completed

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def evidence(self) -> float:
        return self._evidence

    @property
    def last_evaluated(self) -> bool:
        """Whether the most recent ``evaluate`` call ran the predicate."""
        return self._last_evaluated

    @property
    def is_configured(self) -> bool:
        return self._challenges is not None

    def _compute_progress(self, evidence: float) -> int:
        return int(math.floor(min(100.0, evidence / self.required_detections * 100.0)))
