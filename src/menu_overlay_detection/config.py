"""Tunable settings for calibration, frame detection and scanning."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .color import parse_hex_color


class CalibrationStrategy(str, Enum):
    """How the background color of the overlay is learned."""

    DOMINANT_HUE = "dominant_hue"
    FIXED_COLOR = "fixed_color"


class SpatialPolicy(str, Enum):
    """Geometric filter applied to candidate regions."""

    OVERLAP = "overlap"
    DEVIATION = "deviation"
    SHAPE = "shape"


class ConfidenceMode(str, Enum):
    FIXED = "fixed"
    MIN_DENSITY = "min_density"


@dataclass(frozen=True)
class CalibrationConfig:
    strategy: CalibrationStrategy = CalibrationStrategy.DOMINANT_HUE
    roi_fraction: float = 0.5
    min_saturation: int = 50
    min_value: int = 50
    hue_tolerance: int = 10
    min_area: float = 100.0
    target_rgb: Tuple[int, int, int] = (128, 43, 170)
    target_tolerance: Tuple[int, int, int] = (10, 60, 60)
    accent_rgb: Optional[Tuple[int, int, int]] = None
    accent_tolerance: Tuple[int, int, int] = (10, 60, 60)
    include_text_range: bool = True
    text_max_saturation: int = 60
    text_min_value: int = 180

    def __post_init__(self) -> None:
        if not 0.0 < self.roi_fraction <= 1.0:
            raise ValueError("roi_fraction must be in (0, 1]")
        if self.min_area <= 0:
            raise ValueError("min_area must be positive")


@dataclass(frozen=True)
class DetectionConfig:
    spatial_policy: SpatialPolicy = SpatialPolicy.OVERLAP
    min_iou: float = 0.3
    max_deviation: float = 0.15
    min_coverage_fraction: float = 0.5
    max_aspect_deviation: float = 0.3
    density_floor: float = 0.01
    confidence_mode: ConfidenceMode = ConfidenceMode.FIXED

    def __post_init__(self) -> None:
        if not 0.0 <= self.density_floor < 1.0:
            raise ValueError("density_floor must be in [0, 1)")
        if not 0.0 < self.min_iou <= 1.0:
            raise ValueError("min_iou must be in (0, 1]")
        if self.max_deviation < 0:
            raise ValueError("max_deviation must be non-negative")


@dataclass(frozen=True)
class ScanConfig:
    step_seconds: float = 0.5
    processing_width: int = 640
    seek_tolerance: Optional[float] = None
    capture_thumbnails: bool = False
    thumbnail_width: int = 160

    def __post_init__(self) -> None:
        if self.step_seconds <= 0:
            raise ValueError("step_seconds must be positive")
        if self.processing_width <= 0:
            raise ValueError("processing_width must be positive")
        if self.thumbnail_width <= 0:
            raise ValueError("thumbnail_width must be positive")
        if self.seek_tolerance is not None and self.seek_tolerance <= 0:
            raise ValueError("seek_tolerance must be positive when set")

    def effective_seek_tolerance(self, frame_interval: float) -> float:
        """Largest accepted gap between a requested and a landed seek position.

        Defaults to half a native frame, so only the frame nearest the
        request is accepted.
        """

        nearest = frame_interval / 2.0 + 1e-6
        if self.seek_tolerance is None:
            return nearest
        return max(self.seek_tolerance, nearest)


@dataclass(frozen=True)
class Settings:
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)


_ENUM_FIELDS = {
    "strategy": CalibrationStrategy,
    "spatial_policy": SpatialPolicy,
    "confidence_mode": ConfidenceMode,
}
_COLOR_FIELDS = {"target_rgb", "accent_rgb"}
_TRIPLE_FIELDS = {"target_tolerance", "accent_tolerance"}
_BOOL_FIELDS = {"include_text_range", "capture_thumbnails"}
_FLOAT_FIELDS = {
    "roi_fraction",
    "min_area",
    "min_iou",
    "max_deviation",
    "min_coverage_fraction",
    "max_aspect_deviation",
    "density_floor",
    "step_seconds",
    "seek_tolerance",
}
_INT_FIELDS = {
    "min_saturation",
    "min_value",
    "hue_tolerance",
    "text_max_saturation",
    "text_min_value",
    "processing_width",
    "thumbnail_width",
}


def load_config(data: Mapping[str, Any]) -> Settings:
    """Build :class:`Settings` from a plain mapping such as parsed JSON.

    The mapping may contain ``calibration``, ``detection`` and ``scan``
    sections; unknown sections or keys raise ``ValueError``.
    """

    sections = {
        "calibration": CalibrationConfig,
        "detection": DetectionConfig,
        "scan": ScanConfig,
    }
    unknown = set(data) - set(sections)
    if unknown:
        raise ValueError(f"Unknown config sections: {sorted(unknown)}")

    built: Dict[str, Any] = {}
    for name, cls in sections.items():
        section = data.get(name) or {}
        allowed = {f.name for f in fields(cls)}
        bad = set(section) - allowed
        if bad:
            raise ValueError(f"Unknown {name} settings: {sorted(bad)}")
        try:
            built[name] = replace(cls(), **{key: _coerce(key, value) for key, value in section.items()})
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid {name} settings: {exc}") from exc
    return Settings(**built)


def _coerce(key: str, value: Any) -> Any:
    if value is None:
        return None
    if key in _ENUM_FIELDS:
        return _ENUM_FIELDS[key](value)
    if key in _COLOR_FIELDS:
        if isinstance(value, str):
            return parse_hex_color(value)
        return tuple(int(v) for v in value)
    if key in _TRIPLE_FIELDS:
        return tuple(int(v) for v in value)
    if key in _BOOL_FIELDS:
        if not isinstance(value, bool):
            raise ValueError(f"{key} must be true or false, got {value!r}")
        return value
    if key in _FLOAT_FIELDS:
        return float(value)
    if key in _INT_FIELDS:
        number = float(value)
        if not number.is_integer():
            raise ValueError(f"{key} must be a whole number, got {value!r}")
        return int(number)
    return value
