"""
Vigil — Motion Predicates (simplified strategy)
===============================================
Frame-to-frame displacement heuristics for coarse landmark sources.

  - blink:      both upper-lid points moved vertically more than
                ``movement_threshold`` since the previous frame
  - smile:      image-left mouth corner moved up AND sideways by more
                than the threshold
  - turnLeft:   nose-to-image-right-eye horizontal distance is below
                ``turn_distance_ratio`` x nose-to-image-left-eye distance
  - turnRight:  the mirror comparison
  - nod:        nose tip moved vertically more than the threshold

The first frame after a (re)start only primes the reference memory and
never matches.
"""

import numpy as np

from vigil_plugin import GesturePredicate, ReferenceMemory
from vigil_types import Challenge
from vigil_utils_core import LEFT_EYE, MOUTH_LEFT, NOSE_TIP, RIGHT_EYE

_EYE_LIDS = [RIGHT_EYE["upper"], LEFT_EYE["upper"]]


class MotionPredicates(GesturePredicate):
    name = "motion"
    min_points = 1 + max(_EYE_LIDS + [RIGHT_EYE["outer"], LEFT_EYE["outer"], MOUTH_LEFT, NOSE_TIP])

    def __init__(self, movement_threshold: float = 0.1, turn_distance_ratio: float = 0.7):
        self.movement_threshold = movement_threshold
        self.turn_distance_ratio = turn_distance_ratio

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
            movement_threshold=self.movement_threshold,
            turn_distance_ratio=self.turn_distance_ratio,
        )
        return info

    def _verify_blink(self, points, memory) -> bool:
        current = points[_EYE_LIDS].copy()
        previous = memory.eye_points
        memory.eye_points = current
        if previous is None:
            return False
        changes = np.abs(current[:, 1] - previous[:, 1])
        return bool(np.all(changes > self.movement_threshold))

    def _verify_smile(self, points, memory) -> bool:
        current = points[MOUTH_LEFT].copy()
        previous = memory.mouth_point
        memory.mouth_point = current
        if previous is None:
            return False
        vertical = current[1] - previous[1]
        horizontal = abs(current[0] - previous[0])
        # Image y grows downward: corners rising means negative dy
        return vertical < -self.movement_threshold and horizontal > self.movement_threshold

    def _eye_distances(self, points) -> tuple[float, float]:
        nose_x = points[NOSE_TIP][0]
        to_left = abs(nose_x - points[RIGHT_EYE["outer"]][0])
        to_right = abs(nose_x - points[LEFT_EYE["outer"]][0])
        return to_left, to_right

    def _verify_turn_left(self, points, memory) -> bool:
        to_left, to_right = self._eye_distances(points)
        return to_right < to_left * self.turn_distance_ratio

    def _verify_turn_right(self, points, memory) -> bool:
        to_left, to_right = self._eye_distances(points)
        return to_left < to_right * self.turn_distance_ratio

    def _verify_nod(self, points, memory) -> bool:
        current = points[[NOSE_TIP]].copy()
        previous = memory.nod_points
        memory.nod_points = current
        if previous is None:
            return False
        return abs(float(current[0, 1] - previous[0, 1])) > self.movement_threshold
