"""Drive calibration and the timeline scan, publishing session state updates."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterator, List, Optional

import numpy as np

from .backend import OpenCVBackend
from .calibration import ProfileBuilder
from .config import ScanConfig, Settings
from .errors import FrameEvaluationError
from .image_utils import ImageInput, load_image
from .scanner import FrameScanner
from .types import DetectionEvent, DetectionProfile, ScanState, ScanStatus
from .video import VideoSource
from .worker import FrameEvaluator, InlineEvaluator

logger = logging.getLogger(__name__)

StateCallback = Callable[[ScanState], None]


class CancellationToken:
    """Cooperative cancellation flag shared between a session and its owner."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ScanSession:
    """One scan request: an iterator of :class:`ScanState` snapshots.

    Every ``next()`` performs at most one timeline step and hands control
    back to the caller. Cancellation is honored before each seek and after
    each frame; a cancelled session stops yielding and keeps its last
    non-terminal status along with the detections collected so far.
    """

    def __init__(
        self,
        video_source: VideoSource,
        reference_image: ImageInput,
        evaluator: FrameEvaluator,
        backend: OpenCVBackend,
        config: ScanConfig,
        token: CancellationToken,
    ) -> None:
        self.video_source = video_source
        self.reference_image = reference_image
        self.evaluator = evaluator
        self.backend = backend
        self.config = config
        self._token = token
        self._state = ScanState()
        self._detections: List[DetectionEvent] = []
        self._profile: Optional[DetectionProfile] = None
        self._steps = self._run()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def profile(self) -> Optional[DetectionProfile]:
        return self._profile

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    def cancel(self) -> None:
        self._token.cancel()

    def __iter__(self) -> Iterator[ScanState]:
        return self

    def __next__(self) -> ScanState:
        return next(self._steps)

    def run(self, on_update: Optional[StateCallback] = None) -> ScanState:
        """Consume every update on the current thread and return the final state."""

        for state in self:
            if on_update is not None:
                on_update(state)
        return self._state

    def run_in_background(self, on_update: Optional[StateCallback] = None) -> threading.Thread:
        if self._thread is not None:
            raise RuntimeError("Session is already running in the background")
        self._thread = threading.Thread(
            target=self.run, args=(on_update,), daemon=True, name="menu-scan-session"
        )
        self._thread.start()
        return self._thread

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    # ------------------------------------------------------------------
    # Scan loop
    # ------------------------------------------------------------------

    def _run(self) -> Iterator[ScanState]:
        try:
            yield self._publish(ScanStatus.INITIALIZING, progress=0)
            if self.cancelled:
                return
            self.backend.require()

            yield self._publish(ScanStatus.CALIBRATING)
            if self.cancelled:
                return
            reference = load_image(self.reference_image)
            self._profile = self.evaluator.calibrate(reference)
            del reference
            if self.cancelled:
                return

            with self.video_source as source:
                yield self._publish(ScanStatus.PROCESSING)
                if self.cancelled:
                    return
                duration = source.duration
                if duration <= 0:
                    raise ValueError("Video reports no playable duration")

                step = self.config.step_seconds
                index = 0
                while index * step < duration:
                    current = index * step
                    if self.cancelled:
                        return
                    self._process_step(source, current)
                    if self.cancelled:
                        return
                    yield self._publish(ScanStatus.PROCESSING, progress=_percent(current, duration))
                    if self.cancelled:
                        return
                    index += 1

            logger.info("Scan completed with %d detection(s)", len(self._detections))
            yield self._publish(ScanStatus.COMPLETED, progress=100)
        except Exception as exc:  # any failure ends the session in the error state
            if self.cancelled:
                logger.debug("Cancelled session raised %r; dropping it", exc)
                return
            logger.exception("Scan failed during %s", self._state.status.value)
            yield self._publish(ScanStatus.ERROR, error=str(exc))

    def _process_step(self, source: VideoSource, current: float) -> None:
        try:
            position = source.seek(current)
            tolerance = self.config.effective_seek_tolerance(source.frame_interval)
            if abs(position - current) > tolerance:
                raise FrameEvaluationError(
                    f"stale frame: decoder at {position:.3f}s, requested {current:.3f}s"
                )
            frame = self.backend.resize_to_width(source.read_frame(), self.config.processing_width)
        except FrameEvaluationError as exc:
            logger.warning("Skipping %.2fs: %s", current, exc)
            return

        thumbnail = self._thumbnail(frame) if self.config.capture_thumbnails else None
        verdict = self.evaluator.evaluate(frame, self._profile)
        del frame
        if verdict.matched:
            logger.info("Overlay detected at %.2fs (confidence %.3f)", current, verdict.confidence)
            self._detections.append(
                DetectionEvent(timestamp=current, confidence=verdict.confidence, thumbnail=thumbnail)
            )

    def _thumbnail(self, frame: np.ndarray) -> np.ndarray:
        return self.backend.resize_to_width(frame, self.config.thumbnail_width).copy()

    def _publish(
        self,
        status: ScanStatus,
        progress: Optional[int] = None,
        error: Optional[str] = None,
    ) -> ScanState:
        self._state = ScanState(
            status=status,
            progress=self._state.progress if progress is None else progress,
            detections=tuple(self._detections),
            error=error,
        )
        return self._state


class ScanOrchestrator:
    """Owns the evaluator and the single cancellation token for all scans.

    Only one session is active at a time: :meth:`start_scan` cancels the
    previous session's token, waits for a background session to reach its
    next checkpoint, then hands out a fresh token.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        evaluator: Optional[FrameEvaluator] = None,
        backend: Optional[OpenCVBackend] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.backend = backend or OpenCVBackend()
        self.evaluator = evaluator or InlineEvaluator(
            ProfileBuilder(self.settings.calibration, self.backend),
            FrameScanner(self.settings.detection, self.backend),
        )
        self._token = CancellationToken()
        self._active: Optional[ScanSession] = None

    @property
    def active_session(self) -> Optional[ScanSession]:
        return self._active

    def start_scan(self, video_source: VideoSource, reference_image: ImageInput) -> ScanSession:
        """Supersede any running scan and return the new session's update stream."""

        previous = self._active
        self._token.cancel()
        if previous is not None:
            previous.join()
        self._token = CancellationToken()
        self._active = ScanSession(
            video_source=video_source,
            reference_image=reference_image,
            evaluator=self.evaluator,
            backend=self.backend,
            config=self.settings.scan,
            token=self._token,
        )
        return self._active

    def start_in_background(
        self,
        video_source: VideoSource,
        reference_image: ImageInput,
        on_update: Optional[StateCallback] = None,
    ) -> ScanSession:
        session = self.start_scan(video_source, reference_image)
        session.run_in_background(on_update)
        return session

    def cancel(self) -> None:
        self._token.cancel()

    def close(self) -> None:
        self.cancel()
        if self._active is not None:
            self._active.join()
        self.evaluator.close()


def _percent(current: float, duration: float) -> int:
    return min(100, int(100.0 * current / duration + 0.5))
