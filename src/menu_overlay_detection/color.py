"""Derive tolerant HSV color ranges from reference RGB samples."""

from __future__ import annotations

from typing import Sequence, Tuple

from .types import CHANNEL_MAX, HSV, HUE_MAX, ColorRange

RGB = Tuple[int, int, int]


def rgb_to_hsv(rgb: Sequence[int]) -> HSV:
    """Convert an 8-bit RGB triple to OpenCV-style HSV.

    Hue is returned in ``[0, 180]`` and saturation/value in ``[0, 255]``.
    Gray samples (r == g == b) yield hue 0 and saturation 0.
    """

    if len(rgb) != 3:
        raise ValueError(f"Expected an RGB triple, got {rgb!r}")
    for channel in rgb:
        if not 0 <= channel <= CHANNEL_MAX:
            raise ValueError(f"RGB channel out of range: {rgb!r}")

    r, g, b = (channel / CHANNEL_MAX for channel in rgb)
    high = max(r, g, b)
    low = min(r, g, b)
    delta = high - low

    if delta == 0:
        hue = 0.0
    elif high == r:
        hue = 60.0 * (((g - b) / delta) % 6)
    elif high == g:
        hue = 60.0 * ((b - r) / delta + 2)
    else:
        hue = 60.0 * ((r - g) / delta + 4)
    if hue < 0:
        hue += 360.0

    saturation = 0.0 if high == 0 else delta / high
    return (
        _clamp(int(round(hue / 2.0)), 0, HUE_MAX),
        _clamp(int(round(saturation * CHANNEL_MAX)), 0, CHANNEL_MAX),
        _clamp(int(round(high * CHANNEL_MAX)), 0, CHANNEL_MAX),
    )


def derive_range(role: str, sample_rgb: Sequence[int], tolerance: Sequence[int]) -> ColorRange:
    """Expand an RGB sample into a clamped HSV range.

    The tolerance is applied symmetrically per channel. Hue does not wrap
    around 0/180; callers targeting reds near the boundary should widen the
    tolerance instead.
    """

    if len(tolerance) != 3 or any(t < 0 for t in tolerance):
        raise ValueError(f"Tolerance must be three non-negative values, got {tolerance!r}")
    return range_around(role, rgb_to_hsv(sample_rgb), tolerance)


def range_around(role: str, center: Sequence[float], tolerance: Sequence[float]) -> ColorRange:
    limits = (HUE_MAX, CHANNEL_MAX, CHANNEL_MAX)
    lower = tuple(_clamp(int(round(c - t)), 0, limit) for c, t, limit in zip(center, tolerance, limits))
    upper = tuple(_clamp(int(round(c + t)), 0, limit) for c, t, limit in zip(center, tolerance, limits))
    return ColorRange(role=role, lower=lower, upper=upper)


def white_range(role: str = "text", max_saturation: int = 60, min_value: int = 180) -> ColorRange:
    """Low-saturation, high-value range matching white at any hue."""

    return ColorRange(
        role=role,
        lower=(0, 0, min_value),
        upper=(HUE_MAX, max_saturation, CHANNEL_MAX),
    )


def parse_hex_color(value: str) -> RGB:
    """Parse ``#RRGGBB`` into an RGB triple."""

    raw = value.strip().lstrip("#")
    if len(raw) != 6:
        raise ValueError(f"Expected a #RRGGBB color, got {value!r}")
    return tuple(int(raw[i : i + 2], 16) for i in (0, 2, 4))  # type: ignore[return-value]


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))
