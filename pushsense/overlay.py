"""
Draw skeleton and push-up status on frames (live window).
"""
from __future__ import annotations

from typing import Optional

import cv2
import numpy as np

from .landmarks import NUM_LANDMARKS, Point
from .reps import RepPhase
from .tracker import STATUS_CALIBRATING, STATUS_SEARCHING, FrameResult

# Pose skeleton connections (33 landmarks); compatible with any MediaPipe version
_POSE_CONNECTIONS = frozenset([
    (0, 1), (1, 2), (2, 3), (3, 7), (0, 4), (4, 5), (5, 6), (6, 8), (9, 10),
    (11, 12), (11, 13), (13, 15), (15, 17), (15, 19), (15, 21), (17, 19),
    (12, 14), (14, 16), (16, 18), (16, 20), (16, 22), (18, 20),
    (11, 23), (12, 24), (23, 24), (23, 25), (24, 26), (25, 27), (26, 28),
    (27, 29), (28, 30), (29, 31), (30, 32), (27, 31), (28, 32),
])

_GOOD = (132, 215, 166)
_WARN = (48, 59, 255)
_NEUTRAL = (200, 200, 200)


def _pt(p: Point, w: int, h: int) -> tuple[int, int]:
    return (int(round(p.x * w)), int(round(p.y * h)))


def draw_skeleton(
    frame: np.ndarray,
    landmarks: list[Point],
    color: tuple[int, int, int] = (255, 255, 255),
    thickness: int = 1,
) -> None:
    """Draw pose skeleton on frame (in-place). landmarks: 33 normalized Points."""
    if not landmarks or len(landmarks) < NUM_LANDMARKS:
        return
    h, w = frame.shape[:2]
    for (i, j) in _POSE_CONNECTIONS:
        cv2.line(frame, _pt(landmarks[i], w, h), _pt(landmarks[j], w, h), color, thickness)
    for p in landmarks:
        cv2.circle(frame, _pt(p, w, h), 3, color, -1)


def draw_realtime_overlay(
    frame: np.ndarray,
    landmarks: Optional[list[Point]],
    result: FrameResult,
    message: Optional[str] = None,
) -> None:
    """
    Draw realtime overlay on frame (in-place):
    - Faint skeleton if landmarks present
    - Reps, phase, elbow angle, depth / symmetry or form checks, status
    - Optional message (e.g. "Move into frame")
    """
    h, w = frame.shape[:2]
    if landmarks:
        draw_skeleton(frame, landmarks)

    overlay = frame.copy()
    cv2.rectangle(overlay, (0, 0), (w, 150), (40, 40, 40), -1)
    cv2.addWeighted(overlay, 0.6, frame, 0.4, 0, frame)

    font = cv2.FONT_HERSHEY_SIMPLEX
    y0, dy = 28, 28

    def put(line: str, y: int, color: tuple[int, int, int] = (255, 255, 255)) -> None:
        cv2.putText(frame, line, (12, y), font, 0.6, color, 2, cv2.LINE_AA)

    def fmt(val: Optional[float]) -> str:
        return f"{val:.0f}" if val is not None else "--"

    put(f"Push-ups: {result.reps}   Phase: {result.phase.value}   Mode: {result.mode.value}", y0)
    put(f"Elbow: {fmt(result.elbow_angle)} deg   Progress: {fmt((result.progress or 0) * 100)}%", y0 + dy)

    in_descent = result.phase is not RepPhase.UP
    if result.depth_ok is None or not in_descent:
        put("Depth: --", y0 + 2 * dy, _NEUTRAL)
    else:
        put("Depth: OK" if result.depth_ok else "Depth: too shallow", y0 + 2 * dy, _GOOD if result.depth_ok else _WARN)

    if result.symmetric is not None:
        if result.symmetric:
            put("Symmetry: OK", y0 + 3 * dy, _GOOD)
        else:
            diff = abs((result.left_elbow_angle or 0) - (result.right_elbow_angle or 0))
            put(f"Symmetry: uneven ({diff:.0f} deg)", y0 + 3 * dy, _WARN)
    elif result.body_line_error_pct is not None:
        color = _WARN if result.body_line_error_pct > 15 else _GOOD
        put(
            f"Core error: {fmt(result.body_line_error_pct)}%   Knee error: {fmt(result.knee_error_pct)}%",
            y0 + 3 * dy, color,
        )

    status = result.status
    if status == STATUS_CALIBRATING:
        status = f"calibrating ({result.calibration_remaining} left)"
    put(f"Status: {status}", y0 + 4 * dy)

    if message is None and result.status == STATUS_SEARCHING:
        message = "Keep shoulders & elbows in frame" if result.mode.value == "front" else "Position yourself side-on"
    if message:
        cv2.putText(
            frame, message, (w // 2 - 180, h // 2),
            font, 0.8, (0, 200, 255), 2, cv2.LINE_AA
        )
