"""OpenCV-backed image-processing capabilities used by calibration and scanning."""

from __future__ import annotations

import logging
import threading
from typing import Any, List, Optional, Sequence

import numpy as np

from .errors import CollaboratorUnavailable, FrameEvaluationError
from .types import BoundingBox, ColorRange

try:
    import cv2
    OPENCV_AVAILABLE = True
except ImportError:
    cv2 = None
    OPENCV_AVAILABLE = False

logger = logging.getLogger(__name__)

# Errors raised by the backend that only invalidate the current frame/candidate.
BACKEND_ERRORS: tuple = (cv2.error,) if OPENCV_AVAILABLE else ()

Contour = Any


def require_opencv() -> None:
    if not OPENCV_AVAILABLE:
        raise CollaboratorUnavailable(
            "opencv-python is not installed. Install it with: pip install opencv-python"
        )


class BufferScope:
    """Releases every tracked buffer when the ``with`` block exits.

    Buffers are released exactly once, in reverse acquisition order, on
    success, early return and exceptions alike.
    """

    def __init__(self, backend: "OpenCVBackend") -> None:
        self._backend = backend
        self._buffers: List[np.ndarray] = []

    def __enter__(self) -> "BufferScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.release()
        return False

    def track(self, buffer: np.ndarray) -> np.ndarray:
        self._buffers.append(buffer)
        self._backend._on_acquire()
        return buffer

    def release(self) -> None:
        while self._buffers:
            self._buffers.pop()
            self._backend._on_release()


class OpenCVBackend:
    """Thin wrapper exposing the color/contour primitives the core relies on."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._live_buffers = 0

    # ------------------------------------------------------------------
    # Availability and bookkeeping
    # ------------------------------------------------------------------

    def is_available(self) -> bool:
        return OPENCV_AVAILABLE

    def require(self) -> None:
        if not self.is_available():
            raise CollaboratorUnavailable("Image-processing backend (OpenCV) is not available")

    @property
    def live_buffers(self) -> int:
        """Number of tracked buffers that have not been released yet."""

        with self._lock:
            return self._live_buffers

    def scope(self) -> BufferScope:
        return BufferScope(self)

    def _on_acquire(self) -> None:
        with self._lock:
            self._live_buffers += 1

    def _on_release(self) -> None:
        with self._lock:
            self._live_buffers -= 1

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def to_hsv(self, image: np.ndarray) -> np.ndarray:
        """Convert a BGR (or gray/BGRA) uint8 image to HSV."""

        if not isinstance(image, np.ndarray) or image.size == 0:
            raise FrameEvaluationError("Frame is empty or not an ndarray")
        if image.dtype != np.uint8:
            raise FrameEvaluationError(f"Unsupported frame dtype: {image.dtype}")
        if image.ndim == 2:
            image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
        elif image.ndim == 3 and image.shape[2] == 4:
            image = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
        elif image.ndim != 3 or image.shape[2] != 3:
            raise FrameEvaluationError(f"Unsupported frame shape: {image.shape}")
        return cv2.cvtColor(image, cv2.COLOR_BGR2HSV)

    def in_range(self, hsv: np.ndarray, color_range: ColorRange) -> np.ndarray:
        """Binary mask of the pixels inside ``color_range``."""

        with self.scope() as bounds:
            lower = bounds.track(np.array(color_range.lower, dtype=np.uint8))
            upper = bounds.track(np.array(color_range.upper, dtype=np.uint8))
            return cv2.inRange(hsv, lower, upper)

    def find_external_contours(self, mask: np.ndarray) -> Sequence[Contour]:
        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        return contours

    def bounding_box(self, contour: Contour) -> BoundingBox:
        x, y, w, h = cv2.boundingRect(contour)
        return BoundingBox(int(x), int(y), int(w), int(h))

    def contour_area(self, contour: Contour) -> float:
        return float(cv2.contourArea(contour))

    def count_matching(self, hsv: np.ndarray, color_range: ColorRange) -> int:
        """Count the pixels of ``hsv`` that fall inside ``color_range``."""

        with self.scope() as scope:
            mask = scope.track(self.in_range(hsv, color_range))
            return int(cv2.countNonZero(mask))

    def crop(self, image: np.ndarray, box: BoundingBox) -> np.ndarray:
        """Return ``box`` clipped to the image bounds."""

        h_img, w_img = image.shape[:2]
        x1 = max(0, box.x)
        y1 = max(0, box.y)
        x2 = min(w_img, box.x + box.w)
        y2 = min(h_img, box.y + box.h)
        if x1 >= x2 or y1 >= y2:
            raise FrameEvaluationError(f"Region {box.as_tuple()} lies outside the frame")
        return image[y1:y2, x1:x2]

    def mean_hue(self, hsv: np.ndarray, min_saturation: int) -> Optional[float]:
        """Mean hue of pixels whose saturation exceeds ``min_saturation``."""

        with self.scope() as scope:
            hue = scope.track(np.ascontiguousarray(hsv[:, :, 0]))
            saturation = scope.track(np.ascontiguousarray(hsv[:, :, 1]))
            _, sat_mask = cv2.threshold(saturation, min_saturation, 255, cv2.THRESH_BINARY)
            scope.track(sat_mask)
            if cv2.countNonZero(sat_mask) == 0:
                return None
            return float(cv2.mean(hue, mask=sat_mask)[0])

    def resize_to_width(self, image: np.ndarray, width: int) -> np.ndarray:
        """Downscale ``image`` to ``width`` pixels, keeping its aspect ratio.

        Images already narrower than ``width`` are returned unchanged.
        """

        h_img, w_img = image.shape[:2]
        if w_img <= width:
            return image
        height = max(1, int(round(h_img * width / w_img)))
        return cv2.resize(image, (width, height), interpolation=cv2.INTER_AREA)
