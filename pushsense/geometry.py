"""
Pure 2-D geometry helpers on Points (no state).
"""
from __future__ import annotations

import math

from .landmarks import Point
from .settings import FORM_ERROR_FULL_SCALE_DEG

# Limbs shorter than this (normalized units) are treated as degenerate.
_MIN_LIMB = 1e-9


def calculate_angle(a: Point, b: Point, c: Point) -> float:
    """
    Angle at vertex b formed by rays b->a and b->c, in degrees [0, 180].
    Uses the difference of atan2 bearings; reflex angles fold to 360 - angle.
    A zero-length limb (a == b or c == b) returns 180.0.
    """
    if math.hypot(a.x - b.x, a.y - b.y) < _MIN_LIMB or math.hypot(c.x - b.x, c.y - b.y) < _MIN_LIMB:
        return 180.0
    radians = math.atan2(c.y - b.y, c.x - b.x) - math.atan2(a.y - b.y, a.x - b.x)
    angle = abs(math.degrees(radians))
    if angle > 180.0:
        angle = 360.0 - angle
    return angle


def distance(a: Point, b: Point) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def avg_point(a: Point, b: Point) -> Point:
    """Midpoint; visibility is the lower of the two (missing counts as 0)."""
    return Point(
        (a.x + b.x) / 2.0,
        (a.y + b.y) / 2.0,
        min(a.confidence, b.confidence),
    )


def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def error_pct(target: float, current: float) -> float:
    """Deviation from target as a percentage; 45 deg off = 100 %."""
    diff = abs(target - current)
    return clamp(diff / FORM_ERROR_FULL_SCALE_DEG * 100.0, 0.0, 100.0)
