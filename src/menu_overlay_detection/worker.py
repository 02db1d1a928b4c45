"""Frame evaluators: on the calling thread or on a dedicated worker thread."""

from __future__ import annotations

import itertools
import logging
import queue
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import numpy as np

from .calibration import ProfileBuilder
from .scanner import FrameScanner
from .types import DetectionProfile, FrameVerdict

logger = logging.getLogger(__name__)


class FrameEvaluator(ABC):
    """Runs calibration and per-frame scanning on behalf of the orchestrator."""

    @abstractmethod
    def calibrate(self, reference_image: np.ndarray) -> DetectionProfile:
        """Build the detection profile for a session."""

    @abstractmethod
    def evaluate(self, frame: np.ndarray, profile: DetectionProfile) -> FrameVerdict:
        """Scan one frame; the evaluator takes ownership of ``frame``."""

    def close(self) -> None:
        """Release any thread or resource held by the evaluator."""


class InlineEvaluator(FrameEvaluator):
    """Evaluates on the caller's thread."""

    def __init__(
        self,
        builder: Optional[ProfileBuilder] = None,
        scanner: Optional[FrameScanner] = None,
    ) -> None:
        self.builder = builder or ProfileBuilder()
        self.scanner = scanner or FrameScanner(backend=self.builder.backend)

    def calibrate(self, reference_image: np.ndarray) -> DetectionProfile:
        return self.builder.calibrate(reference_image)

    def evaluate(self, frame: np.ndarray, profile: DetectionProfile) -> FrameVerdict:
        return self.scanner.scan(frame, profile)


class MessageType(str, Enum):
    CALIBRATE = "calibrate"
    CALIBRATED = "calibrated"
    PROCESS_FRAME = "process_frame"
    FRAME_RESULT = "frame_result"
    FAILED = "failed"
    STOP = "stop"


@dataclass
class WorkerMessage:
    kind: MessageType
    payload: Any = None
    # Replies echo the id of the request they answer.
    request_id: int = 0


class ScanWorker(threading.Thread):
    """Background thread answering calibration and frame requests in order."""

    def __init__(self, builder: ProfileBuilder, scanner: FrameScanner) -> None:
        super().__init__(daemon=True, name="menu-scan-worker")
        self.builder = builder
        self.scanner = scanner
        self.inbox: "queue.Queue[WorkerMessage]" = queue.Queue()
        self.outbox: "queue.Queue[WorkerMessage]" = queue.Queue()

    def run(self) -> None:
        while True:
            message = self.inbox.get()
            if message.kind is MessageType.STOP:
                break
            try:
                reply = self._handle(message)
            except Exception as exc:  # re-raised on the requesting thread
                reply = WorkerMessage(MessageType.FAILED, exc)
            reply.request_id = message.request_id
            self.outbox.put(reply)
        logger.debug("Scan worker stopped")

    def _handle(self, message: WorkerMessage) -> WorkerMessage:
        if message.kind is MessageType.CALIBRATE:
            profile = self.builder.calibrate(message.payload)
            return WorkerMessage(MessageType.CALIBRATED, profile)
        if message.kind is MessageType.PROCESS_FRAME:
            frame, profile = message.payload
            message.payload = None
            verdict = self.scanner.scan(frame, profile)
            return WorkerMessage(MessageType.FRAME_RESULT, verdict)
        raise ValueError(f"Unexpected worker message: {message.kind}")


class WorkerEvaluator(FrameEvaluator):
    """Offloads calibration and scanning to a :class:`ScanWorker` thread.

    Buffers travel through the worker's queue; once posted, the sender no
    longer holds a reference to them.
    """

    def __init__(
        self,
        builder: Optional[ProfileBuilder] = None,
        scanner: Optional[FrameScanner] = None,
        response_timeout: float = 30.0,
    ) -> None:
        self.builder = builder or ProfileBuilder()
        self.scanner = scanner or FrameScanner(backend=self.builder.backend)
        self.response_timeout = response_timeout
        self._worker: Optional[ScanWorker] = None
        self._request_ids = itertools.count(1)

    def calibrate(self, reference_image: np.ndarray) -> DetectionProfile:
        return self._request(WorkerMessage(MessageType.CALIBRATE, reference_image))

    def evaluate(self, frame: np.ndarray, profile: DetectionProfile) -> FrameVerdict:
        return self._request(WorkerMessage(MessageType.PROCESS_FRAME, (frame, profile)))

    def close(self) -> None:
        if self._worker is None:
            return
        self._worker.inbox.put(WorkerMessage(MessageType.STOP))
        self._worker.join(timeout=self.response_timeout)
        self._worker = None

    def _request(self, message: WorkerMessage) -> Any:
        worker = self._ensure_worker()
        request_id = next(self._request_ids)
        message.request_id = request_id
        worker.inbox.put(message)
        del message
        deadline = time.monotonic() + self.response_timeout
        while True:
            try:
                reply = worker.outbox.get(timeout=max(0.0, deadline - time.monotonic()))
            except queue.Empty:
                raise RuntimeError(
                    f"Scan worker did not answer within {self.response_timeout:.1f}s"
                ) from None
            if reply.request_id == request_id:
                break
            logger.debug("Dropping late worker reply for request %d", reply.request_id)
        if reply.kind is MessageType.FAILED:
            raise reply.payload
        return reply.payload

    def _ensure_worker(self) -> ScanWorker:
        if self._worker is None or not self._worker.is_alive():
            self._worker = ScanWorker(self.builder, self.scanner)
            self._worker.start()
        return self._worker
