"""Common types used throughout the calibration and scanning pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np

HSV = Tuple[int, int, int]

HUE_MAX = 180
CHANNEL_MAX = 255


class ScanStatus(str, Enum):
    """Lifecycle of a scan session."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    CALIBRATING = "calibrating"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanStatus.COMPLETED, ScanStatus.ERROR)


@dataclass(frozen=True)
class ColorRange:
    """Inclusive lower/upper HSV bounds (OpenCV 8-bit convention)."""

    role: str
    lower: HSV
    upper: HSV

    def __post_init__(self) -> None:
        if len(self.lower) != 3 or len(self.upper) != 3:
            raise ValueError("Color bounds must have exactly three channels")
        limits = (HUE_MAX, CHANNEL_MAX, CHANNEL_MAX)
        for low, high, limit in zip(self.lower, self.upper, limits):
            if not 0 <= low <= high <= limit:
                raise ValueError(
                    f"Invalid bounds for role {self.role!r}: {self.lower} -> {self.upper}"
                )
        object.__setattr__(self, "lower", tuple(int(v) for v in self.lower))
        object.__setattr__(self, "upper", tuple(int(v) for v in self.upper))

    def contains(self, hsv: HSV) -> bool:
        return all(low <= value <= high for low, value, high in zip(self.lower, hsv, self.upper))


@dataclass(frozen=True)
class BoundingBox:
    """Pixel-space rectangle (x, y, w, h)."""

    x: int
    y: int
    w: int
    h: int

    @property
    def area(self) -> int:
        return self.w * self.h

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.w, self.h)


@dataclass(frozen=True)
class SpatialTemplate:
    """Normalized bounding box of the calibrated overlay."""

    x: float
    y: float
    width: float
    height: float
    aspect_ratio: float

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError("Template width and height must be positive")
        if self.x < 0 or self.y < 0:
            raise ValueError("Template origin must be non-negative")
        # float rounding slack on the far edges
        if self.x + self.width > 1.0 + 1e-9 or self.y + self.height > 1.0 + 1e-9:
            raise ValueError("Template must lie inside the unit square")
        if self.aspect_ratio <= 0:
            raise ValueError("Aspect ratio must be positive")

    @classmethod
    def from_box(cls, box: BoundingBox, image_width: int, image_height: int) -> "SpatialTemplate":
        return cls(
            x=box.x / image_width,
            y=box.y / image_height,
            width=box.w / image_width,
            height=box.h / image_height,
            aspect_ratio=box.w / box.h,
        )

    def project(self, frame_width: int, frame_height: int) -> BoundingBox:
        """Return the template expressed in the pixel space of a frame."""

        return BoundingBox(
            x=int(round(self.x * frame_width)),
            y=int(round(self.y * frame_height)),
            w=max(1, int(round(self.width * frame_width))),
            h=max(1, int(round(self.height * frame_height))),
        )


@dataclass(frozen=True)
class DetectionProfile:
    """Immutable output of calibration."""

    background: ColorRange
    verification: Tuple[ColorRange, ...]
    template: SpatialTemplate
    coverage_ratio: float
    reference_size: Tuple[int, int]  # width, height

    @property
    def aspect_ratio(self) -> float:
        return self.template.aspect_ratio

    def role(self, name: str) -> Optional[ColorRange]:
        if name == self.background.role:
            return self.background
        for color_range in self.verification:
            if color_range.role == name:
                return color_range
        return None


@dataclass(frozen=True)
class FrameVerdict:
    """Represents the outcome of scanning a single frame."""

    matched: bool
    confidence: float
    region: Optional[BoundingBox] = None


NO_MATCH = FrameVerdict(matched=False, confidence=0.0)


@dataclass(frozen=True)
class DetectionEvent:
    """A timestamped positive match recorded during a scan."""

    timestamp: float
    confidence: float
    thumbnail: Optional[np.ndarray] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.timestamp < 0:
            raise ValueError("Detection timestamp must be non-negative")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("Detection confidence must be within [0, 1]")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": round(self.timestamp, 3),
            "time": format_timestamp(self.timestamp),
            "confidence": round(self.confidence, 4),
        }


@dataclass(frozen=True)
class ScanState:
    """Snapshot of a scan session published to observers."""

    status: ScanStatus = ScanStatus.IDLE
    progress: int = 0
    detections: Tuple[DetectionEvent, ...] = ()
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "progress": self.progress,
            "detections": [event.to_dict() for event in self.detections],
            "error": self.error,
        }


def format_timestamp(seconds: float) -> str:
    """Format seconds as ``m:ss.cc`` for result listings."""

    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    hundredths = min(99, int((seconds % 1) * 100 + 1e-6))
    return f"{minutes}:{secs:02d}.{hundredths:02d}"
