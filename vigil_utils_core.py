"""
Vigil — Shared Utility Module
==============================
Centralized configuration, logging and landmark geometry for all
Vigil components.

Contains:
  A) Configuration loading (config.yaml deep-merged over defaults)
  B) Logger setup
  C) MediaPipe face-mesh index tables
  D) Landmark normalization (arrays, tuples, .x/.y objects, dicts)
  E) Geometry: eye opening, mouth metrics, face-oval half areas,
     landmark bounding boxes, box averaging
  F) Rough landmark similarity (NOT biometric matching)

All geometry works in source-frame pixel coordinates.
"""

from __future__ import annotations

import copy
import logging
import math
import os
from typing import Optional, Sequence

import cv2
import numpy as np
import yaml

from vigil_types import Rect


# ===================================================================
# Configuration
# ===================================================================

_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
_config_path = os.path.join(_SCRIPT_DIR, 'config.yaml')

_DEFAULTS: dict = {
    "presence": {
        "signal": "landmarks",
        "detection_threshold": 2,
        "non_detection_threshold": 3,
        "window_size": 3,
        "expected_landmarks": [468, 478],
        "pixel_threshold": 800,
        "alpha_threshold": 5,
        "sample_stride": 4,
        "scan_stride": 2,
        "center_tolerance": 0.15,
        "min_face_area": 0.10,
        "max_face_area": 0.60,
    },
    "challenge": {
        "sequence": ["blink", "smile", "turnLeft", "turnRight"],
        "strategy": "geometry",
        "required_detections": 5,
        "increment": 1.0,
        "decay": 0.2,
    },
    "geometry": {
        "eye_closed_ratio": 0.04,
        "smile_ratio": 2.0,
        "smile_min_area": 100.0,
        "turn_area_ratio": 1.4,
        "nod_movement_threshold": 3.0,
        "mirrored": False,
    },
    "motion": {
        "movement_threshold": 0.1,
        "turn_distance_ratio": 0.7,
    },
    "session": {
        "process_every_n": 1,
        "auto_advance": True,
        "advance_delay_frames": 45,
        "stop_on_complete": True,
        "log_path": None,
    },
    "logging": {
        "level": "INFO",
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Optional[str] = None) -> dict:
    """Load configuration from config.yaml, falling back to defaults per key."""
    target = path or _config_path
    if not os.path.exists(target):
        if path is not None:
            raise FileNotFoundError(f"Config file not found: {target}")
        return copy.deepcopy(_DEFAULTS)
    with open(target, 'r', encoding='utf-8') as f:
        loaded = yaml.safe_load(f) or {}
    return _deep_merge(_DEFAULTS, loaded)


def merge_config(base: dict, override: Optional[dict]) -> dict:
    """Deep-merge ``override`` into a copy of ``base``."""
    return _deep_merge(base, override or {})


CONFIG = load_config()

PRESENCE_CONFIG = CONFIG['presence']
CHALLENGE_CONFIG = CONFIG['challenge']
GEOMETRY_CONFIG = CONFIG['geometry']
MOTION_CONFIG = CONFIG['motion']
SESSION_CONFIG = CONFIG['session']


# ===================================================================
# Logging Setup
# ===================================================================

def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Create a configured logger for Vigil modules."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '[%(asctime)s] %(name)-12s %(levelname)-7s %(message)s',
            datefmt='%H:%M:%S'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


# ===================================================================
# MediaPipe Face-Mesh Index Tables (468 / 478 with iris refinement)
# ===================================================================

# Image-left eye (subject's right) and image-right eye (subject's left)
RIGHT_EYE = {"outer": 33, "inner": 133, "upper": 159, "lower": 145}
LEFT_EYE = {"outer": 263, "inner": 362, "upper": 386, "lower": 374}

MOUTH_LEFT = 61
MOUTH_RIGHT = 291
LIP_TOP = 0
LIP_BOTTOM = 17

# Outer lip contour, lower lip first (61 -> 17 -> 291), then upper (291 -> 0 -> 61)
LIPS_OUTLINE = [
    61, 146, 91, 181, 84, 17, 314, 405, 321, 375,
    291, 409, 270, 269, 267, 0, 37, 39, 40, 185,
]

# Face oval from forehead (10) down one side to the chin (152) and back up
FACE_OVAL = [
    10, 338, 297, 332, 284, 251, 389, 356, 454, 323, 361, 288,
    397, 365, 379, 378, 400, 377, 152, 148, 176, 149, 150, 136,
    172, 58, 132, 93, 234, 127, 162, 21, 54, 103, 67, 109,
]

NOSE_TIP = 1
CHIN = 152
FOREHEAD = 10

COMPARE_KEY_INDICES = [1, 33, 263, 61, 291, 199, 6, 4, 101, 10, 152, 234]

MESH_MIN_POINTS = 1 + max(
    max(RIGHT_EYE.values()),
    max(LEFT_EYE.values()),
    max(LIPS_OUTLINE),
    max(FACE_OVAL),
    NOSE_TIP,
    CHIN,
)


# ===================================================================
# Landmark Normalization
# ===================================================================

def to_points(frame) -> Optional[np.ndarray]:
    """Convert a landmark frame to an (N, 2) float64 array of (x, y).

    Supports numpy arrays (N, 2|3), sequences of tuples, objects with
    ``.x``/``.y`` and dicts with ``"x"``/``"y"``. Returns None for
    malformed input instead of raising.
    """
    if frame is None:
        return None
    try:
        if isinstance(frame, np.ndarray):
            arr = frame.astype(np.float64, copy=False)
        else:
            rows = []
            for lm in frame:
                if isinstance(lm, dict):
                    rows.append((float(lm["x"]), float(lm["y"])))
                elif hasattr(lm, 'x') and hasattr(lm, 'y'):
                    rows.append((float(lm.x), float(lm.y)))
                else:
                    rows.append((float(lm[0]), float(lm[1])))
            arr = np.asarray(rows, dtype=np.float64).reshape(-1, 2)
    except (KeyError, IndexError, TypeError, ValueError):
        return None

    if arr.ndim != 2 or arr.shape[1] < 2:
        return None
    arr = arr[:, :2]
    if not np.all(np.isfinite(arr)):
        return None
    return arr


# ===================================================================
# Geometry
# ===================================================================

def distance(p, q) -> float:
    """Euclidean distance between two (x, y) points."""
    return math.hypot(float(p[0]) - float(q[0]), float(p[1]) - float(q[1]))


def polygon_area(points: np.ndarray) -> float:
    """Unsigned area of a closed polygon (shoelace via cv2.contourArea)."""
    if points is None or len(points) < 3:
        return 0.0
    return float(cv2.contourArea(np.asarray(points, dtype=np.float32)))


def eye_opening_ratio(points: np.ndarray, eye: dict) -> float:
    """Lid gap normalized by eye width. Near zero when the eye is closed."""
    width = distance(points[eye["outer"]], points[eye["inner"]])
    if width < 1e-6:
        return 0.0
    return distance(points[eye["upper"]], points[eye["lower"]]) / width


def average_eye_opening(points: np.ndarray) -> float:
    """Mean opening ratio across both eyes."""
    return (eye_opening_ratio(points, RIGHT_EYE) + eye_opening_ratio(points, LEFT_EYE)) / 2.0


def mouth_metrics(points: np.ndarray) -> tuple[float, float, float]:
    """Return (width, height, lip_polygon_area) for the outer lip contour."""
    width = distance(points[MOUTH_LEFT], points[MOUTH_RIGHT])
    height = distance(points[LIP_TOP], points[LIP_BOTTOM])
    area = polygon_area(points[LIPS_OUTLINE])
    return width, height, area


def face_half_areas(points: np.ndarray) -> tuple[float, float]:
    """Split the face oval at forehead and chin; return (image_left, image_right) areas.

    Each half is closed along the forehead-chin chord. The half whose
    mean x is smaller is the image-left half, independent of the
    oval's winding direction.
    """
    chin_pos = FACE_OVAL.index(CHIN)
    half_a = points[FACE_OVAL[:chin_pos + 1]]
    half_b = points[FACE_OVAL[chin_pos:] + [FOREHEAD]]
    area_a = polygon_area(half_a)
    area_b = polygon_area(half_b)
    if half_a[:, 0].mean() <= half_b[:, 0].mean():
        return area_a, area_b
    return area_b, area_a


def landmark_bbox(points: np.ndarray) -> Optional[Rect]:
    """Minimal axis-aligned rectangle enclosing all landmark points."""
    if points is None or len(points) == 0:
        return None
    x_min, y_min = points.min(axis=0)
    x_max, y_max = points.max(axis=0)
    return Rect(float(x_min), float(y_min), float(x_max - x_min), float(y_max - y_min))


def mean_rect(rects: Sequence[Rect]) -> Optional[Rect]:
    """Coordinate-wise arithmetic mean of rectangles."""
    valid = [r for r in rects if r is not None]
    if not valid:
        return None
    arr = np.array([r.as_tuple() for r in valid], dtype=np.float64)
    x, y, w, h = arr.mean(axis=0)
    return Rect(float(x), float(y), float(w), float(h))


def is_well_positioned(
    box: Optional[Rect],
    frame_width: float,
    frame_height: float,
    center_tolerance: float = 0.15,
    min_area: float = 0.10,
    max_area: float = 0.60,
) -> bool:
    """Whether a face box is centred and sized for a capture.

    The box centre must sit within ``center_tolerance`` of the frame
    centre on each axis (as a fraction of that axis), and the box area
    must lie strictly between ``min_area`` and ``max_area`` of the frame.
    """
    if box is None or frame_width <= 0 or frame_height <= 0:
        return False
    cx, cy = box.center
    dx = abs(cx - frame_width / 2.0) / frame_width
    dy = abs(cy - frame_height / 2.0) / frame_height
    ratio = (box.width * box.height) / (frame_width * frame_height)
    return dx < center_tolerance and dy < center_tolerance and min_area < ratio < max_area


# ===================================================================
# Rough Landmark Similarity
# ===================================================================

def compare_landmarks(frame_a, frame_b, scale: float = 100.0) -> float:
    """Rough similarity between two landmark frames in [0, 1].

    Mean distance over a fixed set of key points present in both frames,
    mapped through ``max(0, 1 - mean / scale)``. This is a coarse
    heuristic for "same framing" checks, not face verification.
    """
    a = to_points(frame_a)
    b = to_points(frame_b)
    if a is None or b is None:
        return 0.0

    dists = [
        distance(a[i], b[i])
        for i in COMPARE_KEY_INDICES
        if i < len(a) and i < len(b)
    ]
    if not dists:
        return 0.0
    return max(0.0, 1.0 - float(np.mean(dists)) / scale)
