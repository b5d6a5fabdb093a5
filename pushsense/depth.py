"""
Body-depth anti-cheat: a rep only counts if a body reference point (shoulders)
actually dropped, not just the elbows bending. The required drop scales with
the subject's on-screen size so distance from the camera does not matter.
Coordinates are in pixels, y grows downwards.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

from .settings import (
    BASELINE_ALPHA,
    DEPTH_FACTOR_FRONT,
    DEPTH_FACTOR_SIDE,
    DEPTH_MIN_PX_FRONT,
    DEPTH_MIN_PX_SIDE,
    ViewMode,
    parse_view_mode,
)
from .smoothing import EMA

logger = logging.getLogger(__name__)


@dataclass
class DepthConfig:
    factor_front: float = DEPTH_FACTOR_FRONT
    min_px_front: float = DEPTH_MIN_PX_FRONT
    factor_side: float = DEPTH_FACTOR_SIDE
    min_px_side: float = DEPTH_MIN_PX_SIDE
    baseline_alpha: float = BASELINE_ALPHA

    def __post_init__(self) -> None:
        for name in ("factor_front", "min_px_front", "factor_side", "min_px_side"):
            if getattr(self, name) < 0:
                raise ValueError(f"DepthConfig.{name} must be >= 0")
        if not 0.0 < self.baseline_alpha <= 1.0:
            raise ValueError(f"baseline_alpha must be in (0, 1], got {self.baseline_alpha}")

    def scale_for(self, mode: ViewMode) -> tuple[float, float]:
        if mode is ViewMode.FRONT:
            return self.factor_front, self.min_px_front
        return self.factor_side, self.min_px_side


class BodyDepthTracker:
    def __init__(self, config: Optional[DepthConfig] = None):
        self.config = config or DepthConfig()
        self._baseline = EMA(self.config.baseline_alpha)
        self.max_down_y: Optional[float] = None
        self.required_drop_px = 0.0

    def set_required_drop(self, reference_width_px: Optional[float], mode: ViewMode | str) -> float:
        """
        required = max(reference_width_px * factor, min_px) for the view mode.
        An unavailable scale (None, non-finite or <= 0) resets the tracker.
        """
        mode = parse_view_mode(mode)
        if reference_width_px is None or not math.isfinite(reference_width_px) or reference_width_px <= 0:
            logger.debug("body scale unavailable; resetting depth tracker")
            self.reset()
            return self.required_drop_px
        factor, min_px = self.config.scale_for(mode)
        self.required_drop_px = max(reference_width_px * factor, min_px)
        return self.required_drop_px

    def update_baseline(self, y: float) -> None:
        """Feed the resting ("top") height while the subject is in UP."""
        self._baseline.add(y)

    def track_depth(self, y: float) -> None:
        """Record the lowest on-screen position (largest y) of the current candidate rep."""
        if self.max_down_y is None or y > self.max_down_y:
            self.max_down_y = y

    def check_validity(self) -> bool:
        if self._baseline.value is None or self.max_down_y is None:
            return False
        return (self.max_down_y - self._baseline.value) >= self.required_drop_px

    def reset_rep(self) -> None:
        self.max_down_y = None

    def reset(self) -> None:
        self._baseline.reset()
        self.max_down_y = None
        self.required_drop_px = 0.0

    @property
    def baseline_y(self) -> Optional[float]:
        return self._baseline.value

    @property
    def depth_signal(self) -> float:
        """Current drop below baseline in px (0 when unknown)."""
        if self._baseline.value is None or self.max_down_y is None:
            return 0.0
        return self.max_down_y - self._baseline.value
