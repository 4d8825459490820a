"""
Vigil — Gesture Predicate Tests
===============================
Both predicate strategies on synthetic face meshes.
"""

from __future__ import annotations

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
from plugins import GeometryPredicates, MotionPredicates, PREDICATES, build_predicate
from vigil_plugin import GesturePredicate, ReferenceMemory
from vigil_types import Challenge, ConfigurationError


NEUTRAL = make_face()


# ═══════════════════════════════════════════════════════════════
# Geometry strategy
# ═══════════════════════════════════════════════════════════════

class TestGeometryPredicates:

    def setup_method(self):
        self.pred = GeometryPredicates()
        self.memory = ReferenceMemory()

    def _check(self, challenge, points):
        return self.pred.matches(challenge, points, self.memory)

    def test_blink(self):
        assert self._check(Challenge.BLINK, make_face(blink=True))
        assert not self._check(Challenge.BLINK, NEUTRAL)

    def test_smile(self):
        assert self._check(Challenge.SMILE, make_face(smile=True))
        assert not self._check(Challenge.SMILE, NEUTRAL)

    def test_smile_needs_minimum_area(self):
        pred = GeometryPredicates(smile_min_area=1e6)
        assert not pred.matches(Challenge.SMILE, make_face(smile=True), self.memory)

    def test_turns(self):
        left = make_face(turn="left")
        right = make_face(turn="right")
        assert self._check(Challenge.TURN_LEFT, left)
        assert not self._check(Challenge.TURN_RIGHT, left)
        assert self._check(Challenge.TURN_RIGHT, right)
        assert not self._check(Challenge.TURN_LEFT, right)

    def test_frontal_face_is_not_a_turn(self):
        assert not self._check(Challenge.TURN_LEFT, NEUTRAL)
        assert not self._check(Challenge.TURN_RIGHT, NEUTRAL)

    def test_mirrored_swaps_turns(self):
        pred = GeometryPredicates(mirrored=True)
        assert pred.matches(Challenge.TURN_RIGHT, make_face(turn="left"), self.memory)
        assert pred.matches(Challenge.TURN_LEFT, make_face(turn="right"), self.memory)

    def test_nod_first_frame_primes_memory(self):
        assert not self._check(Challenge.NOD, NEUTRAL)
        assert self.memory.nod_points is not None
        assert self._check(Challenge.NOD, make_face(nod_dy=8.0))

    def test_small_head_motion_is_not_a_nod(self):
        self._check(Challenge.NOD, NEUTRAL)
        assert not self._check(Challenge.NOD, make_face(nod_dy=1.0))

    def test_describe(self):
        info = self.pred.describe()
        assert info["name"] == "geometry"
        assert info["min_points"] == 455
        assert info["turn_area_ratio"] == 1.4


# ═══════════════════════════════════════════════════════════════
# Motion strategy
# ═══════════════════════════════════════════════════════════════

class TestMotionPredicates:

    def setup_method(self):
        self.pred = MotionPredicates()
        self.memory = ReferenceMemory()

    def _check(self, challenge, points):
        return self.pred.matches(challenge, points, self.memory)

    @pytest.mark.parametrize("challenge,moved", [
        (Challenge.BLINK, make_face(blink=True)),
        (Challenge.SMILE, make_face(smile=True)),
        (Challenge.NOD, make_face(nod_dy=2.0)),
    ])
    def test_frame_to_frame_gestures(self, challenge, moved):
        assert not self._check(challenge, NEUTRAL)  # primes memory
        assert self._check(challenge, moved)

    @pytest.mark.parametrize("challenge", [Challenge.BLINK, Challenge.SMILE, Challenge.NOD])
    def test_still_face_never_matches(self, challenge):
        for _ in range(3):
            assert not self._check(challenge, NEUTRAL)

    def test_smile_needs_upward_corner(self):
        self._check(Challenge.SMILE, make_face(smile=True))
        # corner drops back down and inwards
        assert not self._check(Challenge.SMILE, NEUTRAL)

    def test_turns(self):
        assert self._check(Challenge.TURN_LEFT, make_face(turn="left"))
        assert self._check(Challenge.TURN_RIGHT, make_face(turn="right"))
        assert not self._check(Challenge.TURN_LEFT, NEUTRAL)
        assert not self._check(Challenge.TURN_RIGHT, NEUTRAL)

    def test_min_points_covers_indices(self):
        assert self.pred.min_points == 387


# ═══════════════════════════════════════════════════════════════
# Registry
# ═══════════════════════════════════════════════════════════════

def test_registry_contents():
    assert set(PREDICATES) == {"geometry", "motion"}
    for cls in PREDICATES.values():
        assert issubclass(cls, GesturePredicate)


def test_build_predicate_with_options():
    pred = build_predicate("geometry", {"eye_closed_ratio": 0.1})
    assert isinstance(pred, GeometryPredicates)
    assert pred.eye_closed_ratio == 0.1


def test_build_predicate_errors():
    with pytest.raises(ConfigurationError):
        build_predicate("depth")
    with pytest.raises(ConfigurationError):
        build_predicate("motion", {"bogus": 1})


def test_reference_memory_clear():
    memory = ReferenceMemory()
    assert memory.is_empty
    memory.eye_points = NEUTRAL[:2]
    assert not memory.is_empty
    memory.clear()
    assert memory.is_empty
