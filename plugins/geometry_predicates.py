"""
Vigil — Landmark Geometry Predicates
====================================
Default predicate strategy. Reads the MediaPipe face mesh directly:

  - blink:      mean lid gap / eye width below ``eye_closed_ratio``
  - smile:      mouth width / height above ``smile_ratio`` AND outer-lip
                polygon area above ``smile_min_area``
  - turnLeft:   image-left face-oval half area / image-right half area
                above ``turn_area_ratio`` (subject turns to their left,
                nose moves toward image right, the far cheek grows)
  - turnRight:  the mirror ratio
  - nod:        mean vertical displacement of nose tip and chin since the
                previous frame above ``nod_movement_threshold`` pixels

``mirrored=True`` swaps the turn directions for selfie-mirrored input.
Thresholds are empirical defaults from config.yaml, not derived values.
"""

import logging

import numpy as np

from vigil_plugin import GesturePredicate, ReferenceMemory
from vigil_types import Challenge
from vigil_utils_core import (
    CHIN,
    MESH_MIN_POINTS,
    NOSE_TIP,
    average_eye_opening,
    face_half_areas,
    mouth_metrics,
)

_log = logging.getLogger("GeometryPredicates")


class GeometryPredicates(GesturePredicate):
    name = "geometry"
    min_points = MESH_MIN_POINTS

    def __init__(
        self,
        eye_closed_ratio: float = 0.04,
        smile_ratio: float = 2.0,
        smile_min_area: float = 100.0,
        turn_area_ratio: float = 1.4,
        nod_movement_threshold: float = 3.0,
        mirrored: bool = False,
    ):
        self.eye_closed_ratio = eye_closed_ratio
        self.smile_ratio = smile_ratio
        self.smile_min_area = smile_min_area
        self.turn_area_ratio = turn_area_ratio
        self.nod_movement_threshold = nod_movement_threshold
        self.mirrored = mirrored

        self._verifiers = {
            Challenge.BLINK: self._verify_blink,
            Challenge.SMILE: self._verify_smile,
            Challenge.TURN_LEFT: self._verify_turn_left,
            Challenge.TURN_RIGHT: self._verify_turn_right,
            Challenge.NOD: self._verify_nod,
        }

    def matches(self, challenge: Challenge, points: np.ndarray, memory: ReferenceMemory) -> bool:
        return self._verifiers[challenge](points, memory)

    def describe(self) -> dict:
        info = super().describe()
        info.update(
            eye_closed_ratio=self.eye_closed_ratio,
            smile_ratio=self.smile_ratio,
            smile_min_area=self.smile_min_area,
            turn_area_ratio=self.turn_area_ratio,
            nod_movement_threshold=self.nod_movement_threshold,
            mirrored=self.mirrored,
        )
        return info

    def _verify_blink(self, points, memory) -> bool:
        return average_eye_opening(points) < self.eye_closed_ratio

    def _verify_smile(self, points, memory) -> bool:
        width, height, area = mouth_metrics(points)
        if height < 1e-6:
            return False
        return (width / height) > self.smile_ratio and area > self.smile_min_area

    def _turn_ratios(self, points) -> tuple[float, float]:
        """(left_over_right, right_over_left) half-area ratios; 0 when degenerate."""
        left, right = face_half_areas(points)
        if self.mirrored:
            left, right = right, left
        if left < 1e-6 or right < 1e-6:
            return 0.0, 0.0
        return left / right, right / left

    def _verify_turn_left(self, points, memory) -> bool:
        return self._turn_ratios(points)[0] > self.turn_area_ratio

    def _verify_turn_right(self, points, memory) -> bool:
        return self._turn_ratios(points)[1] > self.turn_area_ratio

    def _verify_nod(self, points, memory) -> bool:
        current = points[[NOSE_TIP, CHIN]].copy()
        previous = memory.nod_points
        memory.nod_points = current
        if previous is None:
            return False
        movement = float(np.mean(np.abs(current[:, 1] - previous[:, 1])))
        return movement > self.nod_movement_threshold
