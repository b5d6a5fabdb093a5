"""Synthetic landmark builders: no pose model, no camera."""
from __future__ import annotations

import math
from typing import Optional

import pytest

from pushsense.landmarks import NUM_LANDMARKS, LandmarkIdx, Point
from pushsense.settings import ViewMode
from pushsense.tracker import TrackerConfig

ARM = 0.1


def _arm(shoulder: tuple[float, float], angle_deg: float, outward: float) -> tuple[Point, Point]:
    """Elbow straight below the shoulder, wrist rotated so the elbow angle is angle_deg."""
    ex, ey = shoulder[0], shoulder[1] + ARM
    theta = math.radians(angle_deg)
    wx = ex + ARM * math.sin(theta) * outward
    wy = ey - ARM * math.cos(theta)
    return Point(ex, ey, 0.9), Point(wx, wy, 0.9)


def blank_landmarks(visibility: float = 0.9) -> list[Point]:
    return [Point(0.5, 0.5, visibility) for _ in range(NUM_LANDMARKS)]


def front_pose(
    angle: float,
    shoulder_y: float = 0.4,
    right_angle: Optional[float] = None,
    half_width: float = 0.1,
    visibility: float = 0.9,
) -> list[Point]:
    lm = blank_landmarks(visibility)
    ls = (0.5 - half_width, shoulder_y)
    rs = (0.5 + half_width, shoulder_y)
    lm[LandmarkIdx.LEFT_SHOULDER] = Point(*ls, visibility)
    lm[LandmarkIdx.RIGHT_SHOULDER] = Point(*rs, visibility)
    le, lw = _arm(ls, angle, -1.0)
    re, rw = _arm(rs, angle if right_angle is None else right_angle, 1.0)
    lm[LandmarkIdx.LEFT_ELBOW], lm[LandmarkIdx.LEFT_WRIST] = le, lw
    lm[LandmarkIdx.RIGHT_ELBOW], lm[LandmarkIdx.RIGHT_WRIST] = re, rw
    lm[LandmarkIdx.NOSE] = Point(0.5, shoulder_y - 0.1, visibility)
    return lm


def side_pose(angle: float, shoulder_y: float = 0.4, side: str = "left", hidden_vis: float = 0.2) -> list[Point]:
    """Profile view: one side fully visible, the other side poorly visible."""
    lm = blank_landmarks(hidden_vis)
    if side == "left":
        s, e, w, h, k, a = (
            LandmarkIdx.LEFT_SHOULDER, LandmarkIdx.LEFT_ELBOW, LandmarkIdx.LEFT_WRIST,
            LandmarkIdx.LEFT_HIP, LandmarkIdx.LEFT_KNEE, LandmarkIdx.LEFT_ANKLE,
        )
    else:
        s, e, w, h, k, a = (
            LandmarkIdx.RIGHT_SHOULDER, LandmarkIdx.RIGHT_ELBOW, LandmarkIdx.RIGHT_WRIST,
            LandmarkIdx.RIGHT_HIP, LandmarkIdx.RIGHT_KNEE, LandmarkIdx.RIGHT_ANKLE,
        )
    shoulder = (0.3, shoulder_y)
    lm[s] = Point(*shoulder, 0.9)
    lm[e], lm[w] = _arm(shoulder, angle, -1.0)
    lm[h] = Point(0.6, 0.45, 0.9)
    lm[k] = Point(0.75, 0.475, 0.9)
    lm[a] = Point(0.9, 0.5, 0.9)
    return lm


# One clean push-up: (elbow angle, shoulder y). Timestamps are index * 100 ms.
FULL_REP = [
    (170, 0.40), (170, 0.40), (170, 0.40),
    (120, 0.45),
    (80, 0.50), (80, 0.50), (80, 0.50), (80, 0.50),
    (130, 0.45),
    (170, 0.40), (170, 0.40), (170, 0.40), (170, 0.40),
]


@pytest.fixture
def exact_config() -> TrackerConfig:
    """No smoothing lag so synthetic angles reach the engine unchanged."""
    return TrackerConfig(mode=ViewMode.FRONT, position_alpha=1.0, angle_alpha=1.0)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "PUSHSENSE_MODE", "PUSHSENSE_A_UP", "PUSHSENSE_A_DOWN", "PUSHSENSE_DEBOUNCE_FRAMES",
        "PUSHSENSE_COOLDOWN_MS", "PUSHSENSE_MIN_REP_MS", "PUSHSENSE_DEPTH_GATE",
        "PUSHSENSE_CALIBRATION_FRAMES",
    ):
        monkeypatch.delenv(name, raising=False)
