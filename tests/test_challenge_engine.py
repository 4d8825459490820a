"""
Vigil — Challenge Engine Tests
==============================
Evidence counter, progress clamping, completion semantics, error
handling and reference-memory lifecycle.
"""

from __future__ import annotations

import math
import sys
from pathlib import Path

import pytest

# Project root
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)
_tests_dir = str(Path(__file__).resolve().parent)
if _tests_dir not in sys.path:
    sys.path.insert(0, _tests_dir)

from face_factory import make_face
from plugins import GeometryPredicates, MotionPredicates
from vigil_liveness import ChallengeEngine
from vigil_presence import FacePresenceTracker
from vigil_types import Challenge, ChallengeSnapshot, ConfigurationError


NEUTRAL = make_face()
BLINK = make_face(blink=True)
SMILE = make_face(smile=True)


def _engine(challenges=("blink", "smile"), **kwargs) -> ChallengeEngine:
    return ChallengeEngine(challenges=list(challenges), **kwargs)


# ═══════════════════════════════════════════════════════════════
# Scenario
# ═══════════════════════════════════════════════════════════════

def test_blink_then_smile_scenario():
    engine = _engine(required_detections=3, decay=0.5)
    assert engine.start_challenge("blink")

    engine.evaluate(BLINK)
    engine.evaluate(BLINK)
    assert engine.progress == 66
    engine.evaluate(NEUTRAL)
    assert engine.evidence == pytest.approx(1.5)
    assert engine.progress == 50
    engine.evaluate(BLINK)
    assert engine.progress == 83

    assert engine.evaluate(BLINK) is True
    assert engine.completed == (Challenge.BLINK,)
    assert engine.active is None
    assert engine.progress == 100
    assert engine.evidence == 3.0
    assert not engine.all_completed

    assert engine.start_challenge(Challenge.SMILE)
    for _ in range(3):
        engine.evaluate(SMILE)
    assert engine.completed == (Challenge.BLINK, Challenge.SMILE)
    assert engine.all_completed


def test_evaluate_returns_predicate_result():
    engine = _engine()
    engine.start_challenge("blink")
    assert engine.evaluate(BLINK) is True
    assert engine.evaluate(NEUTRAL) is False
    assert engine.last_evaluated is True


# ═══════════════════════════════════════════════════════════════
# Evidence / progress bounds
# ═══════════════════════════════════════════════════════════════

def test_progress_clamped_and_evidence_capped():
    engine = _engine(required_detections=3, increment=2.0)
    engine.start_challenge("blink")
    engine.evaluate(BLINK)
    assert engine.progress == 66
    engine.evaluate(BLINK)
    # min(3, 4) completes, progress pinned at 100
    assert engine.progress == 100
    assert Challenge.BLINK in engine.completed


def test_decay_never_goes_negative():
    engine = _engine()
    engine.start_challenge("blink")
    for _ in range(10):
        engine.evaluate(NEUTRAL)
    assert engine.evidence == 0.0
    assert engine.progress == 0


def test_decay_drains_exactly():
    engine = _engine(required_detections=5, decay=0.2)
    engine.start_challenge("blink")
    engine.evaluate(BLINK)
    for _ in range(5):
        engine.evaluate(NEUTRAL)
    assert engine.evidence == 0.0


def test_progress_stays_within_bounds_under_mixed_input():
    engine = _engine(required_detections=4, decay=0.3)
    engine.start_challenge("smile")
    for face in [SMILE, NEUTRAL, SMILE, NEUTRAL, NEUTRAL, SMILE, SMILE, SMILE, SMILE]:
        engine.evaluate(face)
        assert 0 <= engine.progress <= 100


# ═══════════════════════════════════════════════════════════════
# Completion semantics
# ═══════════════════════════════════════════════════════════════

def test_complete_challenge_idempotent():
    engine = _engine()
    engine.complete_challenge("blink")
    engine.complete_challenge("blink")
    assert engine.completed == (Challenge.BLINK,)


def test_completed_monotonic_and_all_completed_sticky():
    engine = _engine()
    engine.complete_challenge("blink")
    engine.complete_challenge("smile")
    assert engine.all_completed

    assert engine.start_challenge("blink") is False
    engine.evaluate(BLINK)
    engine.complete_challenge("smile")
    assert engine.completed == (Challenge.BLINK, Challenge.SMILE)
    assert engine.all_completed

    engine.reset()
    assert engine.completed == ()
    assert not engine.all_completed
    assert engine.challenges == (Challenge.BLINK, Challenge.SMILE)


def test_start_completed_challenge_rejected_silently():
    engine = _engine()
    engine.complete_challenge("blink")
    assert engine.start_challenge("blink") is False
    assert engine.active is None


def test_complete_clears_active_and_memory():
    engine = _engine(challenges=["nod", "blink"], predicate=MotionPredicates())
    engine.start_challenge("nod")
    engine.evaluate(NEUTRAL)
    assert engine.memory.nod_points is not None

    engine.complete_challenge("nod")
    assert engine.active is None
    assert engine.memory.is_empty


def test_progress_matches_evidence_after_completion():
    engine = _engine(required_detections=4)
    engine.start_challenge("blink")
    engine.evaluate(BLINK)
    engine.complete_challenge("blink")
    assert engine.evidence == 4.0
    assert engine.progress == 100
    assert engine.progress == math.floor(min(100, engine.evidence / engine.required_detections * 100))

    engine.complete_challenge("smile")
    assert engine.snapshot().evidence == 4.0
    assert engine.snapshot().progress == 100


def test_start_challenge_clears_memory_and_counters():
    engine = _engine(challenges=["nod", "blink"], predicate=MotionPredicates())
    engine.start_challenge("nod")
    engine.evaluate(NEUTRAL)
    engine.evaluate(make_face(nod_dy=5.0))
    assert engine.evidence == 1.0

    engine.start_challenge("nod")
    assert engine.evidence == 0.0
    assert engine.progress == 0
    assert engine.memory.is_empty


def test_next_pending():
    engine = _engine(challenges=["blink", "smile", "turnLeft"])
    assert engine.next_pending() == Challenge.BLINK
    engine.complete_challenge("smile")
    assert engine.next_pending() == Challenge.BLINK
    engine.complete_challenge("blink")
    assert engine.next_pending() == Challenge.TURN_LEFT
    engine.complete_challenge("turnLeft")
    assert engine.next_pending() is None


def test_snapshot_to_dict():
    engine = _engine()
    engine.start_challenge("blink")
    engine.evaluate(BLINK)
    snap = engine.snapshot()
    assert isinstance(snap, ChallengeSnapshot)
    assert snap.to_dict() == {
        "active": "blink",
        "completed": [],
        "all_completed": False,
        "progress": 20,
        "evidence": 1.0,
    }


# ═══════════════════════════════════════════════════════════════
# Skipped frames
# ═══════════════════════════════════════════════════════════════

def test_evaluate_without_active_is_noop():
    engine = _engine()
    assert engine.evaluate(BLINK) is False
    assert engine.last_evaluated is False
    assert engine.evidence == 0.0


def test_undersized_and_malformed_frames_skipped():
    engine = _engine()
    engine.start_challenge("blink")
    engine.evaluate(BLINK)
    before = engine.evidence

    assert engine.evaluate(BLINK[:100]) is False
    assert engine.evaluate("garbage") is False
    assert engine.evaluate(None) is False
    assert engine.last_evaluated is False
    assert engine.evidence == before


def test_presence_gates_evaluation():
    presence = FacePresenceTracker(detection_threshold=2)
    engine = _engine(presence=presence)
    engine.start_challenge("blink")

    presence.observe(BLINK)
    assert engine.evaluate(BLINK) is False
    assert engine.last_evaluated is False
    assert engine.evidence == 0.0

    presence.observe(BLINK)
    assert engine.evaluate(BLINK) is True
    assert engine.last_evaluated is True
    assert engine.evidence == 1.0


# ═══════════════════════════════════════════════════════════════
# Configuration errors
# ═══════════════════════════════════════════════════════════════

def test_evaluate_before_configure_raises():
    engine = ChallengeEngine()
    assert not engine.is_configured
    with pytest.raises(ConfigurationError):
        engine.evaluate(BLINK)
    with pytest.raises(ConfigurationError):
        engine.start_challenge("blink")


def test_unknown_or_unconfigured_challenge_raises():
    engine = _engine()
    with pytest.raises(ConfigurationError):
        engine.start_challenge("wave")
    with pytest.raises(ConfigurationError):
        engine.start_challenge("nod")
    with pytest.raises(ConfigurationError):
        engine.complete_challenge("turnRight")


def test_configure_rejects_empty_and_dedups():
    engine = ChallengeEngine()
    with pytest.raises(ConfigurationError):
        engine.configure([])
    engine.configure(["blink", "smile", "blink"])
    assert engine.challenges == (Challenge.BLINK, Challenge.SMILE)


def test_reconfigure_resets_state():
    engine = _engine()
    engine.complete_challenge("blink")
    engine.configure(["smile", "nod"])
    assert engine.completed == ()
    assert engine.next_pending() == Challenge.SMILE


def test_invalid_counter_parameters():
    with pytest.raises(ConfigurationError):
        ChallengeEngine(required_detections=0)
    with pytest.raises(ConfigurationError):
        ChallengeEngine(increment=0)
    with pytest.raises(ConfigurationError):
        ChallengeEngine(decay=-1)


def test_from_config_builds_strategy():
    engine = ChallengeEngine.from_config(
        {"sequence": ["nod"], "strategy": "motion", "required_detections": 2},
        strategy_options={"movement_threshold": 0.5},
    )
    assert isinstance(engine.predicate, MotionPredicates)
    assert engine.predicate.movement_threshold == 0.5
    assert engine.required_detections == 2
    assert engine.challenges == (Challenge.NOD,)


def test_default_strategy_is_geometry():
    assert isinstance(ChallengeEngine().predicate, GeometryPredicates)


def test_challenge_parse():
    assert Challenge.parse("turnLeft") is Challenge.TURN_LEFT
    assert Challenge.parse(Challenge.NOD) is Challenge.NOD
    assert str(Challenge.SMILE) == "smile"
    with pytest.raises(ConfigurationError):
        Challenge.parse("wink")
