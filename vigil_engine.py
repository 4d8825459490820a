"""
Vigil — VigilEngine (Session Orchestrator)
==========================================
Wires the face presence tracker and the challenge engine into one
per-frame pipeline and adds the session-level behaviour a liveness
step needs.

Per frame (strictly in this order):
  1. Presence tracker observes the frame (every delivered frame)
  2. If a face is detected, a challenge is active and the frame falls
     on the throttle grid (frame index a multiple of
     ``process_every_n``), the challenge engine evaluates the
     landmark frame
  3. If no challenge is active, auto-advance to the next pending one
     after ``advance_delay_frames`` frames
  4. When every challenge is done: notify ``on_complete`` callbacks
     once and (optionally) stop

Everything is synchronous and single-threaded. ``stop()`` flips the
``running`` flag; a frame handed over afterwards is a no-op. Delays
and thresholds are frame counts so replayed sessions are deterministic.
"""

import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from vigil_frame_source import FrameSource
from vigil_liveness import ChallengeEngine
from vigil_logger import VigilLogger
from vigil_plugin import GesturePredicate
from vigil_presence import FacePresenceTracker
from vigil_types import ChallengeSnapshot, ConfigurationError, PresenceSnapshot
from vigil_utils.presence_signal import PresenceSignal
from vigil_utils_core import CONFIG, merge_config

_log = logging.getLogger("VigilEngine")

# Constants
DEFAULT_CONFIG = CONFIG


@dataclass
class FrameResult:
    """Outcome of one processed frame."""
    frame_index: int
    evaluated: bool
    matched: bool
    presence: PresenceSnapshot
    challenge: ChallengeSnapshot

    def to_dict(self) -> dict:
        return {
            "frame_index": self.frame_index,
            "evaluated": self.evaluated,
            "matched": self.matched,
            "presence": self.presence.to_dict(),
            "challenge": self.challenge.to_dict(),
        }


class VigilEngine:
    """
    Liveness session: presence + challenges + auto-advance + audit.
    """

    def __init__(
        self,
        config: Optional[dict] = None,
        challenges: Optional[list] = None,
        predicate: Optional[GesturePredicate] = None,
        signal: Optional[PresenceSignal] = None,
        logger: Optional[VigilLogger] = None,
    ):
        """
        Args:
            config: Nested overrides merged over config.yaml.
            challenges: Ordered challenge ids; overrides ``challenge.sequence``.
            predicate: Predicate strategy; overrides ``challenge.strategy``.
            signal: Presence signal; overrides ``presence.signal``.
            logger: Audit logger; otherwise one is opened when
                    ``session.log_path`` is set.
        """
        self.config = merge_config(DEFAULT_CONFIG, config)
        presence_cfg = self.config["presence"]
        challenge_cfg = self.config["challenge"]
        session_cfg = self.config["session"]

        self.presence = FacePresenceTracker.from_config(presence_cfg)
        if signal is not None:
            self.presence.signal = signal

        strategy = challenge_cfg.get("strategy", "geometry")
        self.challenge_engine = ChallengeEngine.from_config(
            challenge_cfg,
            predicate=predicate,
            presence=self.presence,
            strategy_options=self.config.get(strategy),
        )
        if challenges is not None:
            self.challenge_engine.configure(challenges)

        self.process_every_n = int(session_cfg.get("process_every_n", 1))
        if self.process_every_n < 1:
            raise ConfigurationError("process_every_n must be >= 1")
        self.auto_advance = bool(session_cfg.get("auto_advance", True))
        self.advance_delay_frames = int(session_cfg.get("advance_delay_frames", 45))
        self.stop_on_complete = bool(session_cfg.get("stop_on_complete", True))

        self._owns_logger = False
        if logger is None and session_cfg.get("log_path"):
            log_path = session_cfg["log_path"]
            logger = VigilLogger(os.path.dirname(log_path) or ".", os.path.basename(log_path))
            self._owns_logger = True
        self.logger = logger

        self.running = False
        self.frame_index = 0
        self._frames_since_completion: Optional[int] = None
        self._completion_notified = False
        self._listeners: List[Callable[[FrameResult], None]] = []
        self._complete_callbacks: List[Callable[[ChallengeSnapshot], None]] = []
        self._last_result: Optional[FrameResult] = None

        self._audit(
            "engine_init",
            challenges=[c.value for c in self.challenge_engine.challenges],
            predicate=self.challenge_engine.predicate.describe(),
            signal=self.presence.signal.name,
            process_every_n=self.process_every_n,
        )

    # ── Subscriptions ─────────────────────────────────────────

    def add_listener(self, callback: Callable[[FrameResult], None]) -> None:
        """Called with every FrameResult."""
        self._listeners.append(callback)

    def on_complete(self, callback: Callable[[ChallengeSnapshot], None]) -> None:
        """Called once when every configured challenge is completed."""
        self._complete_callbacks.append(callback)

    # ── Lifecycle ─────────────────────────────────────────────

    def start(self) -> None:
        """Start a fresh session and activate the first challenge."""
        if self.running:
            return
        self.presence.start()
        self.challenge_engine.reset()
        self.frame_index = 0
        self._frames_since_completion = None
        self._completion_notified = False
        self._last_result = None
        self.running = True
        self._audit("engine_start")
        self._start_next()

    def stop(self) -> None:
        """Stop processing. Idempotent; safe if never started."""
        was_running = self.running
        self.running = False
        self.presence.stop()
        if was_running:
            self._audit("engine_stop", frames=self.frame_index)

    def reset(self) -> None:
        """Clear presence and challenge state; restart the sequence if running."""
        self.presence.reset()
        self.challenge_engine.reset()
        self.frame_index = 0
        self._frames_since_completion = None
        self._completion_notified = False
        self._last_result = None
        self._audit("engine_reset")
        if self.running:
            self._start_next()

    def close(self) -> None:
        """Stop and release the audit logger if this engine opened it."""
        self.stop()
        if self._owns_logger and self.logger is not None:
            self.logger.close()

    # ── Manual control (UI-driven flows) ──────────────────────

    def start_challenge(self, challenge) -> bool:
        started = self.challenge_engine.start_challenge(challenge)
        if started:
            self._frames_since_completion = None
            self._audit("challenge_started", challenge=self.challenge_engine.active)
        return started

    def complete_challenge(self, challenge) -> None:
        before = len(self.challenge_engine.completed)
        self.challenge_engine.complete_challenge(challenge)
        if len(self.challenge_engine.completed) > before:
            self._on_challenge_completed()

    # ── Frame processing ──────────────────────────────────────

    def process_frame(self, frame, landmarks=None) -> FrameResult:
        """Process one frame.

        Args:
            frame: Input for the presence signal (landmark frame, overlay
                   surface, bool or None).
            landmarks: Landmark frame for the challenge predicates when
                       ``frame`` is not one (pixel-density mode).
        """
        if not self.running:
            return self._last_result or self._make_result(False, False)

        self.frame_index += 1
        engine = self.challenge_engine

        was_detected = self.presence.detected
        presence = self.presence.observe(frame)
        if presence.detected != was_detected:
            self._audit(
                "presence_acquired" if presence.detected else "presence_lost",
                frame_index=self.frame_index,
                box=presence.box,
            )

        evaluated = matched = False
        on_grid = self.frame_index % self.process_every_n == 0
        if engine.active is not None and presence.detected and on_grid:
            before = len(engine.completed)
            matched = engine.evaluate(landmarks if landmarks is not None else frame)
            evaluated = engine.last_evaluated
            if len(engine.completed) > before:
                self._on_challenge_completed()

        if engine.active is None and not engine.all_completed and self.auto_advance:
            if (self._frames_since_completion is None
                    or self._frames_since_completion >= self.advance_delay_frames):
                self._start_next()
            else:
                self._frames_since_completion += 1

        result = self._make_result(evaluated, matched)
        self._last_result = result
        for callback in list(self._listeners):
            callback(result)

        if engine.all_completed and not self._completion_notified:
            self._completion_notified = True
            snapshot = engine.snapshot()
            self._audit("session_complete", frame_index=self.frame_index, completed=snapshot.completed)
            for callback in list(self._complete_callbacks):
                callback(snapshot)
            if self.stop_on_complete:
                self.stop()

        return result

    def run(self, source: FrameSource, max_frames: Optional[int] = None,
            poll_interval: float = 0.005) -> Optional[FrameResult]:
        """Pull frames from ``source`` until it is exhausted or the engine stops."""
        if not self.running:
            self.start()

        processed = 0
        while self.running:
            if max_frames is not None and processed >= max_frames:
                break
            ok, frame, _ = source.read_frame()
            if not ok:
                if source.exhausted:
                    break
                time.sleep(poll_interval)
                continue
            self.process_frame(frame)
            processed += 1

        _log.info("Run finished after %d frames (source health: %s)",
                  processed, source.get_health_status())
        return self._last_result

    def get_state(self) -> dict:
        """Plain-data snapshot for polling UIs."""
        return {
            "running": self.running,
            "frame_index": self.frame_index,
            "presence": self.presence.get_state().to_dict(),
            "challenge": self.challenge_engine.snapshot().to_dict(),
        }

    # ── Private helpers ───────────────────────────────────────

    def _start_next(self) -> None:
        nxt = self.challenge_engine.next_pending()
        if nxt is not None:
            self.start_challenge(nxt)

    def _on_challenge_completed(self) -> None:
        self._frames_since_completion = 0
        done = self.challenge_engine.completed
        self._audit(
            "challenge_completed",
            challenge=done[-1],
            frame_index=self.frame_index,
            completed=len(done),
            total=len(self.challenge_engine.challenges),
        )

    def _make_result(self, evaluated: bool, matched: bool) -> FrameResult:
        return FrameResult(
            frame_index=self.frame_index,
            evaluated=evaluated,
            matched=matched,
            presence=self.presence.get_state(),
            challenge=self.challenge_engine.snapshot(),
        )

    def _audit(self, event: str, **fields) -> None:
        if self.logger is not None:
            self.logger.log_event(event, **fields)
