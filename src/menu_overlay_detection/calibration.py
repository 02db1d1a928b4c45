"""Build a detection profile from a single reference screenshot."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import numpy as np

from .backend import BufferScope, OpenCVBackend
from .color import derive_range, range_around, white_range
from .config import CalibrationConfig, CalibrationStrategy
from .errors import CalibrationError
from .image_utils import ImageInput, load_image
from .types import CHANNEL_MAX, BoundingBox, ColorRange, DetectionProfile, SpatialTemplate

logger = logging.getLogger(__name__)


class ProfileBuilder:
    """Learns the overlay's colors and geometry from a reference image.

    Two strategies produce the background range:

    * ``DOMINANT_HUE`` samples the mean hue of the saturated pixels in the
      central region of the screenshot (the user is expected to center the
      overlay) and keeps a tight hue window around it.
    * ``FIXED_COLOR`` expands a known target color by a per-channel
      tolerance.

    The selected range segments the whole reference; the largest external
    contour becomes the spatial template.
    """

    def __init__(
        self,
        config: Optional[CalibrationConfig] = None,
        backend: Optional[OpenCVBackend] = None,
    ) -> None:
        self.config = config or CalibrationConfig()
        self.backend = backend or OpenCVBackend()

    def calibrate(self, reference_image: ImageInput) -> DetectionProfile:
        """Return an immutable profile or raise :class:`CalibrationError`."""

        self.backend.require()
        image = load_image(reference_image)
        img_h, img_w = image.shape[:2]

        with self.backend.scope() as scope:
            hsv = scope.track(self.backend.to_hsv(image))
            background = self._background_range(hsv, scope)
            mask = scope.track(self.backend.in_range(hsv, background))
            box, area = self._largest_region(mask)

        template = SpatialTemplate.from_box(box, img_w, img_h)
        profile = DetectionProfile(
            background=background,
            verification=tuple(self._verification_ranges()),
            template=template,
            coverage_ratio=area / float(img_w * img_h),
            reference_size=(img_w, img_h),
        )
        logger.info(
            "Calibrated profile: box=%s aspect=%.3f coverage=%.4f background=%s->%s",
            box.as_tuple(),
            template.aspect_ratio,
            profile.coverage_ratio,
            background.lower,
            background.upper,
        )
        return profile

    # ------------------------------------------------------------------
    # Color ranges
    # ------------------------------------------------------------------

    def _background_range(self, hsv: np.ndarray, scope: BufferScope) -> ColorRange:
        if self.config.strategy is CalibrationStrategy.FIXED_COLOR:
            return derive_range("background", self.config.target_rgb, self.config.target_tolerance)

        roi = scope.track(self._central_roi(hsv))
        dominant_hue = self.backend.mean_hue(roi, self.config.min_saturation)
        if dominant_hue is None:
            logger.debug("No saturated pixels in central ROI, sampling the full reference")
            dominant_hue = self.backend.mean_hue(hsv, self.config.min_saturation)
        if dominant_hue is None:
            raise CalibrationError("Reference image contains no saturated color to calibrate on")

        logger.debug("Dominant hue %.2f", dominant_hue)
        # Saturation/value stay loose for lighting and transparency.
        sat_low = self.config.min_saturation
        val_low = self.config.min_value
        center: Tuple[float, float, float] = (
            dominant_hue,
            (sat_low + CHANNEL_MAX) / 2.0,
            (val_low + CHANNEL_MAX) / 2.0,
        )
        tolerance = (
            self.config.hue_tolerance,
            (CHANNEL_MAX - sat_low) / 2.0,
            (CHANNEL_MAX - val_low) / 2.0,
        )
        return range_around("background", center, tolerance)

    def _central_roi(self, hsv: np.ndarray) -> np.ndarray:
        img_h, img_w = hsv.shape[:2]
        margin = (1.0 - self.config.roi_fraction) / 2.0
        x = int(img_w * margin)
        y = int(img_h * margin)
        w = max(1, int(img_w * self.config.roi_fraction))
        h = max(1, int(img_h * self.config.roi_fraction))
        return self.backend.crop(hsv, BoundingBox(x, y, w, h))

    def _verification_ranges(self) -> List[ColorRange]:
        ranges: List[ColorRange] = []
        if self.config.accent_rgb is not None:
            ranges.append(
                derive_range("accent", self.config.accent_rgb, self.config.accent_tolerance)
            )
        if self.config.include_text_range:
            ranges.append(
                white_range(
                    "text",
                    max_saturation=self.config.text_max_saturation,
                    min_value=self.config.text_min_value,
                )
            )
        return ranges

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def _largest_region(self, mask: np.ndarray) -> Tuple[BoundingBox, float]:
        best_contour = None
        best_area = 0.0
        for contour in self.backend.find_external_contours(mask):
            area = self.backend.contour_area(contour)
            if area > best_area:
                best_area = area
                best_contour = contour

        if best_contour is None or best_area <= self.config.min_area:
            raise CalibrationError(
                f"Could not isolate the overlay in the reference image "
                f"(largest region {best_area:.0f}px² <= {self.config.min_area:.0f}px²)"
            )
        return self.backend.bounding_box(best_contour), best_area
