"""
Landmark types shared by the detector adapter and the counting core.
Positions are normalized to [0, 1] screen space; visibility is the detector's confidence.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional


# MediaPipe Pose landmark indices (same as PoseLandmark)
class LandmarkIdx:
    NOSE = 0
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


NUM_LANDMARKS = 33


@dataclass(frozen=True)
class Point:
    x: float
    y: float
    visibility: Optional[float] = None

    @property
    def confidence(self) -> float:
        """Visibility with a missing score treated as 0."""
        return self.visibility if self.visibility is not None else 0.0


def get_point(landmarks: Optional[list[Point]], idx: int) -> Optional[Point]:
    if not landmarks or idx >= len(landmarks):
        return None
    return landmarks[idx]


def _to_point(item: Any) -> Point:
    if isinstance(item, Point):
        return item
    if isinstance(item, dict):
        vis = item.get("visibility")
        return Point(
            float(item["x"]),
            float(item["y"]),
            float(vis) if vis is not None else None,
        )
    # [x, y] or [x, y, visibility]
    seq = list(item)
    if len(seq) < 2:
        raise ValueError(f"Landmark needs at least x and y, got {item!r}")
    vis = float(seq[2]) if len(seq) > 2 and seq[2] is not None else None
    return Point(float(seq[0]), float(seq[1]), vis)


def parse_landmarks(items: Optional[Iterable[Any]]) -> Optional[list[Point]]:
    """
    Convert a landmark payload (Points, {"x","y","visibility"} dicts or [x, y, vis]
    sequences) into a list of Points. Returns None for an empty payload.
    Raises ValueError/KeyError/TypeError for malformed entries.
    """
    if items is None:
        return None
    points = [_to_point(item) for item in items]
    return points or None
