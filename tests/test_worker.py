"""Tests for the offloaded evaluation path."""

from __future__ import annotations

import threading

import pytest

from menu_overlay_detection import CalibrationError, InlineEvaluator, WorkerEvaluator
from menu_overlay_detection.calibration import ProfileBuilder
from menu_overlay_detection.scanner import FrameScanner
from menu_overlay_detection.worker import MessageType, ScanWorker, WorkerMessage

from . import image_factory as factory


class GatedScanner(FrameScanner):
    """Holds its first scan until the test opens the gate."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = threading.Event()
        self.calls = 0

    def scan(self, frame, profile):
        self.calls += 1
        if self.calls == 1:
            self.gate.wait(timeout=10)
        return super().scan(frame, profile)


@pytest.fixture()
def evaluator():
    worker_evaluator = WorkerEvaluator(response_timeout=10.0)
    yield worker_evaluator
    worker_evaluator.close()


def test_worker_results_match_inline(evaluator):
    reference = factory.create_reference_image()
    inline = InlineEvaluator()
    profile = inline.calibrate(reference)
    assert evaluator.calibrate(reference) == profile

    for frame in (factory.create_menu_frame(), factory.create_blank_image()):
        assert evaluator.evaluate(frame.copy(), profile) == inline.evaluate(frame, profile)


def test_worker_failure_is_raised_on_caller(evaluator):
    with pytest.raises(CalibrationError):
        evaluator.calibrate(factory.create_blank_image())
    # The worker survives a failed request.
    assert evaluator.calibrate(factory.create_reference_image()) is not None


def test_close_stops_thread_and_restarts_lazily(evaluator):
    evaluator.calibrate(factory.create_reference_image())
    worker = evaluator._worker
    assert worker is not None and worker.is_alive()

    evaluator.close()
    assert not worker.is_alive()
    assert evaluator._worker is None

    evaluator.calibrate(factory.create_reference_image())
    assert evaluator._worker is not worker


def test_scan_worker_message_protocol():
    worker = ScanWorker(ProfileBuilder(), FrameScanner())
    worker.start()
    try:
        worker.inbox.put(WorkerMessage(MessageType.CALIBRATE, factory.create_reference_image()))
        calibrated = worker.outbox.get(timeout=10)
        assert calibrated.kind is MessageType.CALIBRATED

        request = WorkerMessage(MessageType.PROCESS_FRAME, (factory.create_menu_frame(), calibrated.payload))
        worker.inbox.put(request)
        result = worker.outbox.get(timeout=10)
        assert result.kind is MessageType.FRAME_RESULT
        assert result.payload.matched

        worker.inbox.put(WorkerMessage(MessageType.FRAME_RESULT))
        failed = worker.outbox.get(timeout=10)
        assert failed.kind is MessageType.FAILED
        assert isinstance(failed.payload, ValueError)
    finally:
        worker.inbox.put(WorkerMessage(MessageType.STOP))
        worker.join(timeout=10)
    assert not worker.is_alive()


def test_late_reply_is_not_taken_for_the_next_answer():
    scanner = GatedScanner()
    evaluator = WorkerEvaluator(scanner=scanner, response_timeout=0.3)
    try:
        profile = evaluator.calibrate(factory.create_reference_image())
        with pytest.raises(RuntimeError):
            evaluator.evaluate(factory.create_menu_frame(), profile)

        scanner.gate.set()
        evaluator.response_timeout = 10.0
        verdict = evaluator.evaluate(factory.create_blank_image(), profile)
        assert not verdict.matched

        assert evaluator.calibrate(factory.create_reference_image()) == profile
    finally:
        evaluator.close()
