"""
MediaPipe Pose adapter. A PoseDetector is a callable frame_bgr -> 33 normalized Points
(or None when nobody is in view), which is the shape RepTracker.process_detection expects.
Uses the Pose Landmarker task (MediaPipe 0.10+), CPU-only, with the legacy solution as fallback.
"""
from __future__ import annotations

import logging
import os
import urllib.request
from typing import Any, Iterable, Optional

import cv2
import numpy as np

from .landmarks import NUM_LANDMARKS, Point

logger = logging.getLogger(__name__)

# lite = faster, CPU-friendly
_POSE_MODEL_URL = "https://storage.googleapis.com/mediapipe-models/pose_landmarker/pose_landmarker_lite/float16/1/pose_landmarker_lite.task"
_POSE_MODEL_FILENAME = "pose_landmarker_lite.task"


def model_path(cache_dir: Optional[str] = None) -> str:
    """Local path of the landmarker model; downloaded on first use into PUSHSENSE_MODEL_DIR or ./models."""
    if cache_dir is None:
        cache_dir = os.getenv("PUSHSENSE_MODEL_DIR") or os.path.join(os.path.dirname(__file__), "..", "models")
    os.makedirs(cache_dir, exist_ok=True)
    path = os.path.join(cache_dir, _POSE_MODEL_FILENAME)
    if not os.path.isfile(path):
        logger.info("downloading pose model to %s", path)
        urllib.request.urlretrieve(_POSE_MODEL_URL, path)
    return path


def to_points(landmarks: Iterable[Any]) -> Optional[list[Point]]:
    """MediaPipe NormalizedLandmark list -> Points. Incomplete skeletons are treated as no pose."""
    points = [
        Point(float(lm.x), float(lm.y), float(lm.visibility) if getattr(lm, "visibility", None) is not None else None)
        for lm in landmarks
    ]
    if len(points) < NUM_LANDMARKS:
        logger.debug("discarding partial skeleton (%s landmarks)", len(points))
        return None
    return points


class PoseDetector:
    """
    Single-person pose estimator.

        with PoseDetector() as detect:
            tracker.process_detection(detect, frame_bgr, timestamp_ms)
    """

    def __init__(
        self,
        min_confidence: float = 0.5,
        model_complexity: int = 1,
        cache_dir: Optional[str] = None,
    ):
        self.min_confidence = min_confidence
        self._legacy = False
        try:
            self._impl = self._create_landmarker(cache_dir)
        except Exception:
            # model_complexity only applies here
            logger.warning("PoseLandmarker unavailable, falling back to legacy mp.solutions.pose", exc_info=True)
            import mediapipe as mp

            self._impl = mp.solutions.pose.Pose(
                static_image_mode=False,
                model_complexity=min(model_complexity, 2),
                min_detection_confidence=min_confidence,
                min_tracking_confidence=min_confidence,
            )
            self._legacy = True

    def _create_landmarker(self, cache_dir: Optional[str]):
        from mediapipe.tasks.python.core import base_options
        from mediapipe.tasks.python.vision import PoseLandmarker, PoseLandmarkerOptions
        from mediapipe.tasks.python.vision.core import vision_task_running_mode

        options = PoseLandmarkerOptions(
            base_options=base_options.BaseOptions(model_asset_path=model_path(cache_dir)),
            running_mode=vision_task_running_mode.VisionTaskRunningMode.IMAGE,
            num_poses=1,
            min_pose_detection_confidence=self.min_confidence,
            min_pose_presence_confidence=self.min_confidence,
            min_tracking_confidence=self.min_confidence,
        )
        return PoseLandmarker.create_from_options(options)

    def __call__(self, frame_bgr: np.ndarray) -> Optional[list[Point]]:
        rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        if self._legacy:
            results = self._impl.process(rgb)
            if not results.pose_landmarks:
                return None
            return to_points(results.pose_landmarks.landmark)

        from mediapipe.tasks.python.vision.core import image as mp_image

        result = self._impl.detect(mp_image.Image(image_format=mp_image.ImageFormat.SRGB, data=rgb))
        if not result.pose_landmarks:
            return None
        return to_points(result.pose_landmarks[0])

    def close(self) -> None:
        self._impl.close()

    def __enter__(self) -> "PoseDetector":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
