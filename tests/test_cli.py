"""End to end runs against encoded video files."""

from __future__ import annotations

import json
import logging

import cv2
import pytest

from menu_overlay_detection import OpenCVVideoSource, ScanOrchestrator, ScanStatus
from menu_overlay_detection.cli import build_parser, main, settings_from_args
from menu_overlay_detection.config import SpatialPolicy
from menu_overlay_detection.logging_config import ConsoleHandler, setup_logging

from . import image_factory as factory


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture()
def video_path(tmp_path):
    frames = factory.create_timeline([False, False, True, False])
    path = factory.write_video(str(tmp_path / "timeline.avi"), frames, fps=2.0)
    if path is None:
        pytest.skip("MJPG encoder not available")
    return path


@pytest.fixture()
def reference_path(tmp_path):
    path = tmp_path / "reference.png"
    cv2.imwrite(str(path), factory.create_reference_image())
    return str(path)


def test_video_source_reports_timeline(video_path):
    with OpenCVVideoSource(video_path) as source:
        assert source.duration == pytest.approx(2.0)
        assert source.frame_size == (640, 360)
        assert source.seek(1.0) == pytest.approx(1.0)
        frame = source.read_frame()
        assert frame.shape == (360, 640, 3)


def test_missing_video_ends_in_error(tmp_path):
    source = OpenCVVideoSource(tmp_path / "missing.avi")
    final = ScanOrchestrator().start_scan(source, factory.create_reference_image()).run()
    assert final.status is ScanStatus.ERROR
    assert "not found" in final.error


def test_main_writes_json_results(video_path, reference_path, tmp_path):
    output = tmp_path / "result.json"
    code = main(["--video", video_path, "--reference", reference_path, "--output", str(output)])
    assert code == 0

    result = json.loads(output.read_text(encoding="utf-8"))
    assert result["status"] == "completed"
    assert result["progress"] == 100
    assert [d["timestamp"] for d in result["detections"]] == [1.0]
    assert result["detections"][0]["time"] == "0:01.00"


def test_main_with_worker_prints_to_stdout(video_path, reference_path, capsys):
    code = main(["--video", video_path, "--reference", reference_path, "--worker"])
    assert code == 0
    result = json.loads(capsys.readouterr().out)
    assert len(result["detections"]) == 1


def test_main_reports_failure_code(video_path, tmp_path):
    blank = tmp_path / "blank.png"
    cv2.imwrite(str(blank), factory.create_blank_image())
    assert main(["--video", video_path, "--reference", str(blank), "--output", str(tmp_path / "r.json")]) == 1


def test_arguments_override_config_file(tmp_path):
    config = tmp_path / "settings.json"
    config.write_text(json.dumps({"scan": {"step_seconds": 2.0}, "detection": {"min_iou": 0.5}}))
    args = build_parser().parse_args(
        ["--video", "v.avi", "--reference", "r.png", "--config", str(config), "--step", "1.0", "--policy", "shape"]
    )
    settings = settings_from_args(args)
    assert settings.scan.step_seconds == 1.0
    assert settings.detection.min_iou == 0.5
    assert settings.detection.spatial_policy is SpatialPolicy.SHAPE


def test_setup_logging_reads_environment(monkeypatch):
    monkeypatch.setenv("MENU_SCAN_LOG_LEVEL", "warning")
    root = logging.getLogger()
    setup_logging()
    assert root.level == logging.WARNING
    setup_logging("debug")
    assert root.level == logging.DEBUG
    assert sum(1 for h in root.handlers if isinstance(h, ConsoleHandler)) == 1
