"""Public exports for the menu overlay detection package."""

from .calibration import ProfileBuilder
from .config import (
    CalibrationConfig,
    CalibrationStrategy,
    ConfidenceMode,
    DetectionConfig,
    ScanConfig,
    Settings,
    SpatialPolicy,
    load_config,
)
from .errors import (
    CalibrationError,
    CollaboratorUnavailable,
    FrameEvaluationError,
    MenuDetectionError,
)
from .orchestrator import CancellationToken, ScanOrchestrator, ScanSession
from .scanner import FrameScanner
from .types import (
    ColorRange,
    DetectionEvent,
    DetectionProfile,
    FrameVerdict,
    ScanState,
    ScanStatus,
    SpatialTemplate,
)
from .video import FrameSequenceSource, OpenCVVideoSource, VideoSource
from .worker import InlineEvaluator, WorkerEvaluator

__all__ = [
    "ProfileBuilder",
    "FrameScanner",
    "ScanOrchestrator",
    "ScanSession",
    "CancellationToken",
    "InlineEvaluator",
    "WorkerEvaluator",
    "VideoSource",
    "FrameSequenceSource",
    "OpenCVVideoSource",
    "CalibrationConfig",
    "CalibrationStrategy",
    "ConfidenceMode",
    "DetectionConfig",
    "ScanConfig",
    "Settings",
    "SpatialPolicy",
    "load_config",
    "ColorRange",
    "DetectionEvent",
    "DetectionProfile",
    "FrameVerdict",
    "ScanState",
    "ScanStatus",
    "SpatialTemplate",
    "MenuDetectionError",
    "CollaboratorUnavailable",
    "CalibrationError",
    "FrameEvaluationError",
]
