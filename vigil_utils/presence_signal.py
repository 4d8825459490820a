"""
Vigil — Presence Signals
=========================
Turns whatever the frame source delivers into a per-frame
``FaceObservation`` (present flag + raw face box).

Two interchangeable signals:
  - LandmarkCountSignal: presence = landmark array of the oracle's mesh
    cardinality (468, or 478 with iris refinement). Box = landmark extent.
  - PixelDensitySignal: coarse fallback when no geometry is available.
    Samples the alpha plane of a rendered overlay; presence = enough
    non-transparent samples. Box = strided scan of the alpha plane.

The pixel-density box is APPROXIMATE: the scan stride quantizes the
edges and anything drawn on the overlay counts as "face". Do not treat
it as ground truth.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import cv2
import numpy as np

from vigil_types import ConfigurationError, FaceObservation, Rect
from vigil_utils_core import landmark_bbox, to_points

_log = logging.getLogger("PresenceSignal")


class PresenceSignal:
    """Base signal. Subclasses implement ``_observe_frame``.

    Pre-derived inputs pass straight through:
      FaceObservation -> unchanged, bool -> present flag without box,
      None -> absent.
    """

    name = "base"

    def observe(self, frame) -> FaceObservation:
        if isinstance(frame, FaceObservation):
            return frame
        if frame is None:
            return FaceObservation(present=False)
        if isinstance(frame, (bool, np.bool_)):
            return FaceObservation(present=bool(frame))
        return self._observe_frame(frame)

    def _observe_frame(self, frame) -> FaceObservation:
        raise NotImplementedError


class LandmarkCountSignal(PresenceSignal):
    """Presence from landmark-array cardinality."""

    name = "landmarks"

    def __init__(self, expected_counts: Sequence[int] = (468, 478)):
        if not expected_counts:
            raise ConfigurationError("expected_counts must not be empty")
        self.expected_counts = tuple(int(c) for c in expected_counts)

    def _observe_frame(self, frame) -> FaceObservation:
        points = to_points(frame)
        if points is None or len(points) not in self.expected_counts:
            return FaceObservation(present=False)
        return FaceObservation(present=True, box=landmark_bbox(points))


class PixelDensitySignal(PresenceSignal):
    """Presence from the alpha channel of a rendered overlay surface."""

    name = "pixels"

    def __init__(
        self,
        pixel_threshold: int = 800,
        alpha_threshold: int = 5,
        sample_stride: int = 4,
        scan_stride: int = 2,
    ):
        if sample_stride < 1 or scan_stride < 1:
            raise ConfigurationError("strides must be >= 1")
        self.pixel_threshold = pixel_threshold
        self.alpha_threshold = alpha_threshold
        self.sample_stride = sample_stride
        self.scan_stride = scan_stride

    def _observe_frame(self, frame) -> FaceObservation:
        alpha = self._alpha_plane(frame)
        if alpha is None:
            return FaceObservation(present=False)

        # Every sample_stride-th pixel, row-major
        samples = alpha.reshape(-1)[::self.sample_stride]
        count = int(np.count_nonzero(samples > self.alpha_threshold))
        if count <= self.pixel_threshold:
            return FaceObservation(present=False)
        return FaceObservation(present=True, box=self.extract_bounds(alpha))

    def extract_bounds(self, alpha: np.ndarray) -> Optional[Rect]:
        """Minimal rectangle around drawn pixels, scanned on a strided grid."""
        s = self.scan_stride
        mask = (alpha[::s, ::s] > self.alpha_threshold).astype(np.uint8)
        pts = cv2.findNonZero(mask)
        if pts is None:
            return None
        bx, by, bw, bh = cv2.boundingRect(pts)
        return Rect(float(bx * s), float(by * s), float((bw - 1) * s), float((bh - 1) * s))

    @staticmethod
    def _alpha_plane(frame) -> Optional[np.ndarray]:
        arr = np.asarray(frame)
        if arr.ndim == 3 and arr.shape[2] == 4:
            return arr[:, :, 3]
        if arr.ndim == 2:
            return arr
        _log.debug("Unsupported overlay surface shape %s", arr.shape)
        return None


def build_signal(name: str = "landmarks", options: Optional[dict] = None) -> PresenceSignal:
    """Build a presence signal from a name and the ``presence`` config section."""
    opts = options or {}
    if name == "landmarks":
        return LandmarkCountSignal(opts.get("expected_landmarks", (468, 478)))
    if name == "pixels":
        return PixelDensitySignal(
            pixel_threshold=opts.get("pixel_threshold", 800),
            alpha_threshold=opts.get("alpha_threshold", 5),
            sample_stride=opts.get("sample_stride", 4),
            scan_stride=opts.get("scan_stride", 2),
        )
    raise ConfigurationError(f"Unknown presence signal: {name!r}")
