"""Exception hierarchy for calibration and scanning."""

from __future__ import annotations


class MenuDetectionError(Exception):
    """Base class for every error raised by this package."""


class CollaboratorUnavailable(MenuDetectionError):
    """The image-processing backend cannot be used."""


class CalibrationError(MenuDetectionError):
    """No usable overlay region was found in the reference image."""


class FrameEvaluationError(MenuDetectionError):
    """A single frame or candidate region could not be evaluated."""
