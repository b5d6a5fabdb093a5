"""
Live webcam pipeline: capture, pose, per-frame rep tracking, overlay window.
Keys: q=quit, r=reset, m=switch front/side view.
"""
from __future__ import annotations

import logging
import time
from typing import Optional

import cv2

from .io_stream import webcam_frames
from .landmarks import Point
from .overlay import draw_realtime_overlay
from .pose import PoseDetector
from .reps import RepPhase
from .settings import ViewMode
from .tracker import STATUS_CALIBRATING, STATUS_TRACKING, RepTracker, TrackerConfig

logger = logging.getLogger(__name__)

# Target resize width for faster inference
LIVE_RESIZE_WIDTH = 960
# No-pose warning after this many seconds
NO_POSE_WARN_SEC = 2.0


def run_live_pipeline(
    config: Optional[TrackerConfig] = None,
    camera_id: int = 0,
    target_fps: float = 30,
) -> int:
    """
    Run live capture loop until q is pressed or the camera stops.
    Returns the final rep count of the session.
    """
    detector = PoseDetector()

    def _on_change(reps: int, phase: RepPhase) -> None:
        logger.info("live: reps=%s phase=%s", reps, phase.value)

    tracker = RepTracker(config or TrackerConfig(), on_change=_on_change)
    last_landmarks: Optional[list[Point]] = None
    last_pose_time = time.perf_counter()
    win_name = "Push-up Counter (q=quit, r=reset, m=mode)"

    def _detect(small) -> Optional[list[Point]]:
        nonlocal last_landmarks
        last_landmarks = detector(small)
        return last_landmarks

    cv2.namedWindow(win_name, cv2.WINDOW_NORMAL)
    try:
        for frame_bgr, timestamp_ms in webcam_frames(camera_id, target_fps=target_fps):
            frame_bgr = cv2.flip(frame_bgr, 1)
            h, w = frame_bgr.shape[:2]
            scale = LIVE_RESIZE_WIDTH / w if w > LIVE_RESIZE_WIDTH else 1.0
            small = cv2.resize(frame_bgr, (LIVE_RESIZE_WIDTH, int(round(h * scale)))) if scale != 1.0 else frame_bgr

            # Normalized landmarks do not change with resize; depth is measured in full-frame px.
            result = tracker.process_detection(_detect, small, timestamp_ms, frame_size=(w, h))
            if result.status in (STATUS_TRACKING, STATUS_CALIBRATING):
                last_pose_time = time.perf_counter()

            message = None
            if time.perf_counter() - last_pose_time > NO_POSE_WARN_SEC:
                message = "Move into frame"

            out_frame = frame_bgr.copy()
            draw_realtime_overlay(out_frame, last_landmarks, result, message)

            cv2.imshow(win_name, out_frame)
            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                break
            if key == ord("r"):
                tracker.reset()
            if key == ord("m"):
                tracker.set_mode(ViewMode.SIDE if tracker.mode is ViewMode.FRONT else ViewMode.FRONT)
    finally:
        cv2.destroyAllWindows()
        detector.close()

    return tracker.stop()
