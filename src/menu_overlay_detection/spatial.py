"""Spatial lock: geometric filters comparing candidates to the profile template."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Tuple

from .config import DetectionConfig, SpatialPolicy
from .types import BoundingBox, DetectionProfile, SpatialTemplate

# Boundary comparisons are inclusive; this absorbs float noise at the threshold.
EPSILON = 1e-9


@dataclass(frozen=True)
class CandidateRegion:
    """A contour's bounding box and area within one frame."""

    box: BoundingBox
    area: float


def intersection_over_union(a: BoundingBox, b: BoundingBox) -> float:
    x1 = max(a.x, b.x)
    y1 = max(a.y, b.y)
    x2 = min(a.x + a.w, b.x + b.w)
    y2 = min(a.y + a.h, b.y + b.h)
    intersection = max(0, x2 - x1) * max(0, y2 - y1)
    union = a.area + b.area - intersection
    if union <= 0:
        return 0.0
    return intersection / union


def max_axis_deviation(
    box: BoundingBox, frame_size: Tuple[int, int], template: SpatialTemplate
) -> float:
    """Largest absolute difference between the normalized box and the template."""

    frame_w, frame_h = frame_size
    normalized = (box.x / frame_w, box.y / frame_h, box.w / frame_w, box.h / frame_h)
    expected = (template.x, template.y, template.width, template.height)
    return max(abs(value - target) for value, target in zip(normalized, expected))


class SpatialFilter(ABC):
    """Decides whether a candidate sits where the calibrated overlay should."""

    @abstractmethod
    def accepts(
        self,
        candidate: CandidateRegion,
        frame_size: Tuple[int, int],
        profile: DetectionProfile,
    ) -> bool:
        """Return ``True`` when the candidate passes the geometric check."""


class OverlapFilter(SpatialFilter):
    """Projects the template onto the frame and requires IoU >= ``min_iou``."""

    def __init__(self, min_iou: float = 0.3) -> None:
        self.min_iou = min_iou

    def accepts(self, candidate, frame_size, profile) -> bool:
        expected = profile.template.project(*frame_size)
        return intersection_over_union(candidate.box, expected) + EPSILON >= self.min_iou


class DeviationFilter(SpatialFilter):
    """Requires x, y, width and height to each be within ``max_deviation``."""

    def __init__(self, max_deviation: float = 0.15) -> None:
        self.max_deviation = max_deviation

    def accepts(self, candidate, frame_size, profile) -> bool:
        deviation = max_axis_deviation(candidate.box, frame_size, profile.template)
        return deviation <= self.max_deviation + EPSILON


class ShapeFilter(SpatialFilter):
    """Position-free check on relative area and aspect ratio."""

    def __init__(self, min_coverage_fraction: float = 0.5, max_aspect_deviation: float = 0.3) -> None:
        self.min_coverage_fraction = min_coverage_fraction
        self.max_aspect_deviation = max_aspect_deviation

    def accepts(self, candidate, frame_size, profile) -> bool:
        frame_w, frame_h = frame_size
        expected_area = frame_w * frame_h * profile.coverage_ratio
        if candidate.area + EPSILON < expected_area * self.min_coverage_fraction:
            return False
        if candidate.box.h == 0:
            return False
        aspect = candidate.box.w / candidate.box.h
        deviation = abs(aspect - profile.aspect_ratio) / profile.aspect_ratio
        return deviation <= self.max_aspect_deviation + EPSILON


def build_spatial_filter(config: DetectionConfig) -> SpatialFilter:
    if config.spatial_policy is SpatialPolicy.DEVIATION:
        return DeviationFilter(config.max_deviation)
    if config.spatial_policy is SpatialPolicy.SHAPE:
        return ShapeFilter(config.min_coverage_fraction, config.max_aspect_deviation)
    return OverlapFilter(config.min_iou)
