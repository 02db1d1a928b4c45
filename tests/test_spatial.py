"""Boundary behavior of the spatial lock policies."""

from __future__ import annotations

import pytest

from menu_overlay_detection.config import DetectionConfig, SpatialPolicy
from menu_overlay_detection.spatial import (
    CandidateRegion,
    DeviationFilter,
    OverlapFilter,
    ShapeFilter,
    build_spatial_filter,
    intersection_over_union,
    max_axis_deviation,
)
from menu_overlay_detection.types import (
    BoundingBox,
    ColorRange,
    DetectionProfile,
    SpatialTemplate,
)

FRAME = (100, 100)


def _profile(template: SpatialTemplate, coverage: float = 0.01) -> DetectionProfile:
    return DetectionProfile(
        background=ColorRange("background", (130, 50, 50), (150, 255, 255)),
        verification=(),
        template=template,
        coverage_ratio=coverage,
        reference_size=FRAME,
    )


def _candidate(x: int, y: int, w: int, h: int) -> CandidateRegion:
    return CandidateRegion(BoundingBox(x, y, w, h), area=float(w * h))


def test_iou_of_identical_and_disjoint_boxes():
    box = BoundingBox(10, 10, 20, 20)
    assert intersection_over_union(box, box) == pytest.approx(1.0)
    assert intersection_over_union(box, BoundingBox(50, 50, 5, 5)) == 0.0


def test_overlap_filter_accepts_exactly_at_threshold():
    profile = _profile(SpatialTemplate(0.0, 0.0, 0.1, 0.1, 1.0))
    overlap = OverlapFilter(min_iou=0.3)
    # 10x3 inside the projected 10x10 template: IoU = 30 / 100
    assert overlap.accepts(_candidate(0, 0, 10, 3), FRAME, profile)
    assert not overlap.accepts(_candidate(0, 0, 10, 2), FRAME, profile)


def test_deviation_filter_accepts_exactly_at_threshold():
    profile = _profile(SpatialTemplate(0.1, 0.1, 0.3, 0.2, 1.5))
    deviation = DeviationFilter(max_deviation=0.15)
    at_limit = _candidate(25, 10, 30, 20)
    assert max_axis_deviation(at_limit.box, FRAME, profile.template) == pytest.approx(0.15)
    assert deviation.accepts(at_limit, FRAME, profile)
    assert not deviation.accepts(_candidate(26, 10, 30, 20), FRAME, profile)


def test_deviation_checks_every_axis():
    profile = _profile(SpatialTemplate(0.1, 0.1, 0.3, 0.2, 1.5))
    deviation = DeviationFilter(max_deviation=0.15)
    assert not deviation.accepts(_candidate(10, 10, 50, 20), FRAME, profile)
    assert not deviation.accepts(_candidate(10, 30, 30, 20), FRAME, profile)


def test_shape_filter_ignores_position_but_checks_size_and_aspect():
    template = SpatialTemplate(0.1, 0.1, 0.2, 0.1, 2.0)
    profile = _profile(template, coverage=0.02)
    shape = ShapeFilter(min_coverage_fraction=0.5, max_aspect_deviation=0.3)
    assert shape.accepts(_candidate(60, 70, 20, 10), FRAME, profile)
    # Too small: 50 px² < 0.5 * 200 px²
    assert not shape.accepts(_candidate(60, 70, 10, 5), FRAME, profile)
    # Square instead of 2:1
    assert not shape.accepts(_candidate(60, 70, 20, 20), FRAME, profile)


@pytest.mark.parametrize(
    ("policy", "expected"),
    [
        (SpatialPolicy.OVERLAP, OverlapFilter),
        (SpatialPolicy.DEVIATION, DeviationFilter),
        (SpatialPolicy.SHAPE, ShapeFilter),
    ],
)
def test_build_spatial_filter(policy, expected):
    assert isinstance(build_spatial_filter(DetectionConfig(spatial_policy=policy)), expected)


def test_template_projection_rounds_to_pixels():
    template = SpatialTemplate(0.1, 0.1, 0.3, 0.2, 2.0)
    assert template.project(640, 360) == BoundingBox(64, 36, 192, 72)


def test_template_rejects_out_of_bounds_geometry():
    with pytest.raises(ValueError):
        SpatialTemplate(0.8, 0.1, 0.3, 0.2, 1.5)
    with pytest.raises(ValueError):
        SpatialTemplate(0.1, 0.1, 0.0, 0.2, 1.5)
