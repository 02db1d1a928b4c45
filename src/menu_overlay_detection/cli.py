"""Command line entry point: scan a video file for a calibrated overlay."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from .calibration import ProfileBuilder
from .config import CalibrationStrategy, Settings, SpatialPolicy, load_config
from .logging_config import setup_logging
from .orchestrator import ScanOrchestrator
from .scanner import FrameScanner
from .types import ScanState, ScanStatus
from .video import OpenCVVideoSource
from .worker import InlineEvaluator, WorkerEvaluator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="menu-scan",
        description="Find the timestamps where a reference UI overlay appears in a video.",
    )
    parser.add_argument("--video", required=True, help="Video file to scan")
    parser.add_argument("--reference", required=True, help="Screenshot showing the overlay")
    parser.add_argument("--config", default=None, help="JSON settings file")
    parser.add_argument("--step", type=float, default=None, help="Seconds between sampled frames")
    parser.add_argument("--width", type=int, default=None, help="Processing width in pixels")
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in CalibrationStrategy],
        default=None,
        help="How the overlay background color is calibrated",
    )
    parser.add_argument(
        "--policy",
        choices=[p.value for p in SpatialPolicy],
        default=None,
        help="Spatial filter applied to candidate regions",
    )
    parser.add_argument("--worker", action="store_true", help="Scan frames on a worker thread")
    parser.add_argument("--output", default=None, help="Write the final state as JSON to this file")
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    if args.config:
        with open(args.config, "r", encoding="utf-8") as f:
            settings = load_config(json.load(f))
    else:
        settings = Settings()

    scan = settings.scan
    if args.step is not None:
        scan = replace(scan, step_seconds=args.step)
    if args.width is not None:
        scan = replace(scan, processing_width=args.width)
    calibration = settings.calibration
    if args.strategy is not None:
        calibration = replace(calibration, strategy=CalibrationStrategy(args.strategy))
    detection = settings.detection
    if args.policy is not None:
        detection = replace(detection, spatial_policy=SpatialPolicy(args.policy))
    return Settings(calibration=calibration, detection=detection, scan=scan)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    settings = settings_from_args(args)

    builder = ProfileBuilder(settings.calibration)
    scanner = FrameScanner(settings.detection, builder.backend)
    if args.worker:
        evaluator = WorkerEvaluator(builder, scanner)
    else:
        evaluator = InlineEvaluator(builder, scanner)
    orchestrator = ScanOrchestrator(settings, evaluator=evaluator, backend=builder.backend)

    last_reported = -10

    def report(state: ScanState) -> None:
        nonlocal last_reported
        if state.status is ScanStatus.PROCESSING and state.progress >= last_reported + 10:
            last_reported = state.progress
            logger.info("Progress %d%% (%d detection(s))", state.progress, len(state.detections))
        elif state.status is not ScanStatus.PROCESSING:
            logger.info("Status: %s", state.status.value)

    try:
        session = orchestrator.start_scan(OpenCVVideoSource(args.video), Path(args.reference))
        final = session.run(on_update=report)
    finally:
        orchestrator.close()

    payload = json.dumps(final.to_dict(), ensure_ascii=False, indent=2)
    if args.output:
        Path(args.output).write_text(payload + "\n", encoding="utf-8")
        logger.info("Results written to %s", args.output)
    else:
        print(payload)

    return 0 if final.status is ScanStatus.COMPLETED else 1


if __name__ == "__main__":
    raise SystemExit(main())
