"""
Vigil -- vigil_utils package
=============================
Re-exports the shared utilities from vigil_utils_core.py so callers
can write ``from vigil_utils import X``.

Also exposes submodules:
  - vigil_utils.presence_signal
"""

from __future__ import annotations

from vigil_utils_core import (
    # Config
    load_config,
    merge_config,
    CONFIG,
    PRESENCE_CONFIG,
    CHALLENGE_CONFIG,
    GEOMETRY_CONFIG,
    MOTION_CONFIG,
    SESSION_CONFIG,
    # Logging
    setup_logger,
    # Mesh indices
    RIGHT_EYE,
    LEFT_EYE,
    LIPS_OUTLINE,
    FACE_OVAL,
    NOSE_TIP,
    CHIN,
    MESH_MIN_POINTS,
    # Geometry
    to_points,
    distance,
    polygon_area,
    eye_opening_ratio,
    average_eye_opening,
    mouth_metrics,
    face_half_areas,
    landmark_bbox,
    mean_rect,
    is_well_positioned,
    compare_landmarks,
)

from .presence_signal import (
    PresenceSignal,
    LandmarkCountSignal,
    PixelDensitySignal,
    build_signal,
)

__all__ = [
    "load_config", "merge_config", "CONFIG",
    "PRESENCE_CONFIG", "CHALLENGE_CONFIG", "GEOMETRY_CONFIG",
    "MOTION_CONFIG", "SESSION_CONFIG",
    "setup_logger",
    "RIGHT_EYE", "LEFT_EYE", "LIPS_OUTLINE", "FACE_OVAL",
    "NOSE_TIP", "CHIN", "MESH_MIN_POINTS",
    "to_points", "distance", "polygon_area",
    "eye_opening_ratio", "average_eye_opening", "mouth_metrics",
    "face_half_areas", "landmark_bbox", "mean_rect", "is_well_positioned",
    "compare_landmarks",
    "PresenceSignal", "LandmarkCountSignal", "PixelDensitySignal",
    "build_signal",
]
