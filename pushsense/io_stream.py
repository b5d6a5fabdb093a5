"""
Frame sources for the offline and live pipelines.
Both yield (frame_bgr, timestamp_ms) with strictly increasing timestamps, which is
what RepTracker requires; the capture is always released, even on early exit.
"""
from __future__ import annotations

import logging
import time
from typing import Generator, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)

Frames = Generator[tuple[np.ndarray, float], None, None]

# Container fps is sometimes missing or bogus (0, NaN, 1000+)
_FALLBACK_FPS = 30.0
_MAX_FPS = 240.0


def _open(source: Union[str, int]) -> cv2.VideoCapture:
    cap = cv2.VideoCapture(source)
    if not cap.isOpened():
        if isinstance(source, int):
            raise RuntimeError(f"Cannot open camera {source}. Check permissions and that no other app is using it.")
        raise FileNotFoundError(f"Cannot open video: {source}")
    return cap


def video_frames(video_path: str, stride: int = 1) -> Frames:
    """
    Yield every stride-th frame of a video file.
    Timestamps come from the frame index and the container fps, so replay is deterministic.
    """
    if stride < 1:
        raise ValueError(f"stride must be >= 1, got {stride}")
    cap = _open(video_path)
    try:
        fps = cap.get(cv2.CAP_PROP_FPS)
        if not fps or fps != fps or fps > _MAX_FPS:
            logger.warning("unusable fps %r in %s, assuming %.0f", fps, video_path, _FALLBACK_FPS)
            fps = _FALLBACK_FPS
        logger.info(
            "video %s: %dx%d @ %.1f fps, %d frames",
            video_path,
            int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            fps,
            int(cap.get(cv2.CAP_PROP_FRAME_COUNT)),
        )
        idx = 0
        while True:
            ok, frame = cap.read()
            if not ok:
                break
            if idx % stride == 0:
                yield frame, idx * 1000.0 / fps
            idx += 1
    finally:
        cap.release()


def webcam_frames(
    camera_id: int = 0,
    target_fps: float = 30,
    width: int = 1280,
    height: int = 720,
) -> Frames:
    """Yield webcam frames stamped with monotonic-clock milliseconds until the camera stops."""
    cap = _open(camera_id)
    try:
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        cap.set(cv2.CAP_PROP_FPS, target_fps)
        last_ts = float("-inf")
        while True:
            ok, frame = cap.read()
            if not ok:
                logger.info("camera %s stopped delivering frames", camera_id)
                break
            ts = time.perf_counter() * 1000.0
            if ts <= last_ts:
                continue
            last_ts = ts
            yield frame, ts
    finally:
        cap.release()
