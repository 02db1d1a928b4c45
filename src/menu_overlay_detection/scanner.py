"""Evaluate a single video frame against a detection profile."""

from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np

from .backend import BACKEND_ERRORS, OpenCVBackend
from .config import ConfidenceMode, DetectionConfig
from .errors import FrameEvaluationError
from .spatial import CandidateRegion, SpatialFilter, build_spatial_filter
from .types import NO_MATCH, DetectionProfile, FrameVerdict

logger = logging.getLogger(__name__)

_RECOVERABLE = (FrameEvaluationError, ValueError) + BACKEND_ERRORS


class FrameScanner:
    """Segmentation, spatial lock and content check for one frame.

    Candidates are visited in the order the contour extraction yields them;
    the first one that passes both the spatial filter and the content check
    wins. A malformed frame is logged and reported as no match. Only a
    missing backend propagates, as :class:`CollaboratorUnavailable`.
    """

    def __init__(
        self,
        config: Optional[DetectionConfig] = None,
        backend: Optional[OpenCVBackend] = None,
        spatial_filter: Optional[SpatialFilter] = None,
    ) -> None:
        self.config = config or DetectionConfig()
        self.backend = backend or OpenCVBackend()
        self.spatial_filter = spatial_filter or build_spatial_filter(self.config)

    def scan(self, frame: np.ndarray, profile: DetectionProfile) -> FrameVerdict:
        self.backend.require()
        try:
            return self._scan(frame, profile)
        except _RECOVERABLE as exc:
            logger.warning("Frame skipped: %s", exc)
            return NO_MATCH

    def _scan(self, frame: np.ndarray, profile: DetectionProfile) -> FrameVerdict:
        with self.backend.scope() as scope:
            hsv = scope.track(self.backend.to_hsv(frame))
            frame_size = (hsv.shape[1], hsv.shape[0])
            mask = scope.track(self.backend.in_range(hsv, profile.background))

            for contour in self.backend.find_external_contours(mask):
                candidate = CandidateRegion(
                    box=self.backend.bounding_box(contour),
                    area=self.backend.contour_area(contour),
                )
                if not self.spatial_filter.accepts(candidate, frame_size, profile):
                    continue
                try:
                    densities = self._content_densities(hsv, candidate, profile)
                except _RECOVERABLE as exc:
                    logger.debug("Candidate %s skipped: %s", candidate.box.as_tuple(), exc)
                    continue
                if densities is None:
                    continue
                return FrameVerdict(
                    matched=True,
                    confidence=self._confidence(densities),
                    region=candidate.box,
                )
        return NO_MATCH

    def _content_densities(
        self, hsv: np.ndarray, candidate: CandidateRegion, profile: DetectionProfile
    ) -> Optional[List[float]]:
        """Density of every verification color inside the candidate.

        Returns ``None`` as soon as one density does not exceed the floor.
        """

        densities: List[float] = []
        with self.backend.scope() as scope:
            region = scope.track(self.backend.crop(hsv, candidate.box))
            pixel_count = region.shape[0] * region.shape[1]
            for color_range in profile.verification:
                density = self.backend.count_matching(region, color_range) / float(pixel_count)
                if density <= self.config.density_floor:
                    logger.debug(
                        "Candidate %s rejected: %s density %.4f",
                        candidate.box.as_tuple(),
                        color_range.role,
                        density,
                    )
                    return None
                densities.append(density)
        return densities

    def _confidence(self, densities: List[float]) -> float:
        if self.config.confidence_mode is ConfidenceMode.MIN_DENSITY and densities:
            return float(min(1.0, min(densities)))
        return 1.0
