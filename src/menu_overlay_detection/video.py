"""Seekable video sources feeding the scan loop."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .backend import cv2, require_opencv
from .errors import FrameEvaluationError

logger = logging.getLogger(__name__)


class VideoSource(ABC):
    """Decodes frames at arbitrary timestamps.

    ``seek`` blocks until the decoder is positioned and returns the
    timestamp of the frame that is now current; ``read_frame`` then hands
    that frame to the caller, who owns it from then on.
    """

    def open(self) -> None:
        """Prepare the source; called once before any other method."""

    def close(self) -> None:
        """Release decoder resources."""

    def __enter__(self) -> "VideoSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    @property
    @abstractmethod
    def duration(self) -> float:
        """Total length in seconds."""

    @property
    @abstractmethod
    def frame_size(self) -> Tuple[int, int]:
        """Native ``(width, height)``."""

    @property
    @abstractmethod
    def frame_interval(self) -> float:
        """Seconds between two consecutive native frames."""

    @abstractmethod
    def seek(self, timestamp: float) -> float:
        """Position the decoder on ``timestamp``; return the landed position."""

    @abstractmethod
    def read_frame(self) -> np.ndarray:
        """Return the BGR frame at the current position."""


class FrameSequenceSource(VideoSource):
    """In-memory video made of decoded frames at a fixed frame rate."""

    def __init__(self, frames: Sequence[np.ndarray], fps: float = 2.0) -> None:
        if not frames:
            raise ValueError("A frame sequence needs at least one frame")
        if fps <= 0:
            raise ValueError("fps must be positive")
        self._frames = list(frames)
        self._fps = float(fps)
        self._index: Optional[int] = None

    @property
    def duration(self) -> float:
        return len(self._frames) / self._fps

    @property
    def frame_size(self) -> Tuple[int, int]:
        h, w = self._frames[0].shape[:2]
        return (w, h)

    @property
    def frame_interval(self) -> float:
        return 1.0 / self._fps

    def seek(self, timestamp: float) -> float:
        index = int(round(timestamp * self._fps))
        self._index = max(0, min(len(self._frames) - 1, index))
        return self._index / self._fps

    def read_frame(self) -> np.ndarray:
        if self._index is None:
            raise FrameEvaluationError("read_frame called before seek")
        return self._frames[self._index].copy()


class OpenCVVideoSource(VideoSource):
    """Video file decoded with ``cv2.VideoCapture``."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._cap = None
        self._fps = 0.0
        self._frame_count = 0
        self._size = (0, 0)
        self._pending: Optional[np.ndarray] = None

    def open(self) -> None:
        require_opencv()
        if not self.path.exists():
            raise FileNotFoundError(f"Video path not found: {self.path}")
        cap = cv2.VideoCapture(str(self.path))
        if not cap.isOpened():
            raise RuntimeError(f"Cannot open video: {self.path}")
        self._cap = cap
        self._fps = cap.get(cv2.CAP_PROP_FPS) or 30.0
        self._frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        self._size = (
            int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )
        logger.info(
            "Opened %s: %d frames at %.2f fps (%dx%d)",
            self.path.name,
            self._frame_count,
            self._fps,
            *self._size,
        )

    def close(self) -> None:
        self._pending = None
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    @property
    def duration(self) -> float:
        return self._frame_count / self._fps if self._fps else 0.0

    @property
    def frame_size(self) -> Tuple[int, int]:
        return self._size

    @property
    def frame_interval(self) -> float:
        return 1.0 / self._fps if self._fps else 0.0

    def seek(self, timestamp: float) -> float:
        if self._cap is None:
            raise RuntimeError("Video source is not open")
        index = max(0, min(self._frame_count - 1, int(round(timestamp * self._fps))))
        self._cap.set(cv2.CAP_PROP_POS_FRAMES, index)
        ok, frame = self._cap.read()
        if not ok:
            self._pending = None
            raise FrameEvaluationError(f"Failed to decode frame at {timestamp:.3f}s")
        self._pending = frame
        landed = self._cap.get(cv2.CAP_PROP_POS_FRAMES) - 1
        return max(0.0, landed) / self._fps

    def read_frame(self) -> np.ndarray:
        if self._pending is None:
            raise FrameEvaluationError("No decoded frame available; seek first")
        frame, self._pending = self._pending, None
        return frame
