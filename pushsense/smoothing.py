"""
Exponential moving average filters for scalar and 2-D landmark streams.
"""
from __future__ import annotations

from typing import Optional

from .landmarks import Point
from .settings import ANGLE_ALPHA, POSITION_ALPHA


class EMA:
    """
    smoothed = alpha * raw + (1 - alpha) * previous; the first sample passes through.
    alpha in (0, 1]: higher = less lag, more jitter.
    """

    def __init__(self, alpha: float = ANGLE_ALPHA):
        if not 0.0 < alpha <= 1.0:
            raise ValueError(f"EMA alpha must be in (0, 1], got {alpha}")
        self.alpha = alpha
        self.value: Optional[float] = None

    def add(self, raw: float) -> float:
        if self.value is None:
            self.value = float(raw)
        else:
            self.value = self.alpha * raw + (1.0 - self.alpha) * self.value
        return self.value

    @property
    def initialized(self) -> bool:
        return self.value is not None

    def reset(self) -> None:
        self.value = None


class PositionSmoother:
    """Independent EMAs on x and y for one joint. Visibility passes through unsmoothed."""

    def __init__(self, alpha: float = POSITION_ALPHA):
        self.sx = EMA(alpha)
        self.sy = EMA(alpha)

    def add(self, p: Point) -> Point:
        return Point(self.sx.add(p.x), self.sy.add(p.y), p.visibility)

    def reset(self) -> None:
        self.sx.reset()
        self.sy.reset()
