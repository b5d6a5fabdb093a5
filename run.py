#!/usr/bin/env python3
"""
Push-up counting: offline (video) or live (webcam).
Usage:
  Offline: python run.py --video path/to/video.mp4 [--mode side]
  Live:    python run.py --live [--camera 0] [--mode front] [--calibrate-frames 30]
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from pushsense.reps import RepPhase
from pushsense.settings import env_str
from pushsense.tracker import STATUS_SEARCHING, RepTracker, TrackerConfig

logger = logging.getLogger("pushsense.run")


def run_offline(video_path: str, config: Optional[TrackerConfig] = None, stride: int = 1) -> dict[str, Any]:
    """Process a video file: pose -> rep tracking. Returns a summary dict."""
    from pushsense.io_stream import video_frames
    from pushsense.pose import PoseDetector

    events: list[dict[str, Any]] = []

    def _on_change(reps: int, phase: RepPhase) -> None:
        events.append({"reps": reps, "phase": phase.value})

    tracker = RepTracker(config or TrackerConfig(), on_change=_on_change)
    frames = 0
    searching = 0
    with PoseDetector() as detect:
        for frame_bgr, timestamp_ms in video_frames(video_path, stride=stride):
            h, w = frame_bgr.shape[:2]
            result = tracker.process_detection(detect, frame_bgr, timestamp_ms, frame_size=(w, h))
            frames += 1
            if result.status == STATUS_SEARCHING:
                searching += 1
    reps = tracker.stop()
    logger.info("offline done: %s reps over %s frames (%s without usable pose)", reps, frames, searching)
    return {
        "video": os.path.basename(video_path),
        "mode": tracker.mode.value,
        "reps": reps,
        "frames": frames,
        "frames_without_pose": searching,
        "phase_changes": len(events),
    }


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Push-up counter: offline video or live webcam")
    ap.add_argument("--video", type=str, default=None, help="Path to video file (offline mode)")
    ap.add_argument("--live", action="store_true", help="Use live webcam")
    ap.add_argument("--camera", type=int, default=0, help="Camera device id (default 0)")
    ap.add_argument("--mode", choices=["front", "side"], default=None, help="Camera view (default: env or front)")
    ap.add_argument("--calibrate-frames", type=int, default=None, help="Warm-up frames to personalize A_UP (0 = off)")
    ap.add_argument("--no-depth-gate", action="store_true", help="Count on elbow angle alone")
    ap.add_argument("--stride", type=int, default=1, help="Process every Nth video frame (offline only)")
    ap.add_argument("--log-level", type=str, default=None, help="Logging level (default: env or INFO)")
    return ap


def main(argv: Optional[list[str]] = None) -> None:
    # Load .env from cwd and project root
    load_dotenv()
    load_dotenv(Path(__file__).resolve().parent / ".env")

    args = build_parser().parse_args(argv)
    level = (args.log_level or env_str("PUSHSENSE_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.live and args.video:
        print("Error: provide exactly one of --video or --live", file=sys.stderr)
        sys.exit(1)
    if not args.live and not args.video:
        print("Error: provide --video PATH or --live", file=sys.stderr)
        sys.exit(1)

    try:
        config = TrackerConfig.from_env(
            mode=args.mode,
            calibration_frames=args.calibrate_frames,
            depth_gate=False if args.no_depth_gate else None,
        )
    except ValueError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    if args.live:
        from pushsense.live import run_live_pipeline

        reps = run_live_pipeline(config, camera_id=args.camera)
        print(f"Live session done. Push-ups: {reps}")
    else:
        if not os.path.isfile(args.video):
            print(f"Error: video file not found: {args.video}", file=sys.stderr)
            sys.exit(1)
        summary = run_offline(args.video, config, stride=args.stride)
        print(f"Offline done. Push-ups: {summary['reps']} ({summary['frames']} frames, mode={summary['mode']})")


if __name__ == "__main__":
    main()
