"""
Rep detection from a smoothed elbow angle: debounced UP/GOING_DOWN/DOWN/GOING_UP
state machine with cooldown and minimum-duration checks, plus an optional
warm-up calibrator that personalizes the lockout threshold.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import numpy as np

from .settings import (
    A_DOWN,
    A_UP,
    CALIBRATION_MARGIN_DEG,
    CALIBRATION_MAX_A_UP,
    CALIBRATION_MIN_GAP_DEG,
    CALIBRATION_PERCENTILE,
    COOLDOWN_MS,
    DEBOUNCE_FRAMES,
    DOWN_MARGIN_DEG,
    MIN_REP_DURATION_MS,
    UP_MARGIN_DEG,
)

logger = logging.getLogger(__name__)


class RepPhase(str, Enum):
    UP = "UP"
    GOING_DOWN = "GOING_DOWN"
    DOWN = "DOWN"
    GOING_UP = "GOING_UP"


def _check_thresholds(a_up: float, a_down: float) -> None:
    if not (math.isfinite(a_up) and math.isfinite(a_down)):
        raise ValueError(f"Thresholds must be finite (a_up={a_up}, a_down={a_down})")
    if not 0.0 <= a_down < a_up <= 180.0:
        raise ValueError(f"Need 0 <= a_down < a_up <= 180, got a_down={a_down} a_up={a_up}")


@dataclass
class RepConfig:
    a_up: float = A_UP
    a_down: float = A_DOWN
    up_margin: float = UP_MARGIN_DEG
    down_margin: float = DOWN_MARGIN_DEG
    debounce_frames: int = DEBOUNCE_FRAMES
    cooldown_ms: float = COOLDOWN_MS
    min_rep_duration_ms: Optional[float] = MIN_REP_DURATION_MS  # None disables the check

    def __post_init__(self) -> None:
        _check_thresholds(self.a_up, self.a_down)
        if self.up_margin < 0 or self.down_margin < 0:
            raise ValueError("Hysteresis margins must be >= 0")
        if self.debounce_frames < 1:
            raise ValueError(f"debounce_frames must be >= 1, got {self.debounce_frames}")
        if self.cooldown_ms < 0:
            raise ValueError(f"cooldown_ms must be >= 0, got {self.cooldown_ms}")
        if self.min_rep_duration_ms is not None and self.min_rep_duration_ms < 0:
            raise ValueError(f"min_rep_duration_ms must be >= 0, got {self.min_rep_duration_ms}")


class RepEngine:
    """
    Push-up phase state machine driven by (elbow_angle, now_ms) ticks.

    A rep is counted on GOING_UP -> UP once the lockout has held for
    debounce_frames ticks, more than cooldown_ms after the last counted rep
    and at least min_rep_duration_ms after the bottom was confirmed.

    An optional depth gate is consulted when GOING_DOWN -> DOWN would be
    confirmed; while it returns False the engine stays in GOING_DOWN with the
    debounce still satisfied, so DOWN is confirmed on the first frame the gate passes.
    """

    def __init__(self, config: Optional[RepConfig] = None):
        self.config = config or RepConfig()
        self.a_up = self.config.a_up
        self.a_down = self.config.a_down
        self.phase = RepPhase.UP
        self.reps = 0
        self.hold_frames = 0
        self.last_rep_time: Optional[float] = None
        self.rep_start_time: Optional[float] = None
        self.gate_blocked = False

    def set_thresholds(self, a_up: float, a_down: Optional[float] = None) -> None:
        """Install new thresholds (e.g. from calibration). Raises ValueError if invalid."""
        a_down = self.a_down if a_down is None else a_down
        _check_thresholds(a_up, a_down)
        self.a_up = a_up
        self.a_down = a_down

    def _rep_allowed(self, now: float) -> bool:
        cfg = self.config
        if self.last_rep_time is not None and now - self.last_rep_time <= cfg.cooldown_ms:
            logger.debug("rep rejected: cooldown (%.0f ms since last)", now - self.last_rep_time)
            return False
        if cfg.min_rep_duration_ms is not None and self.rep_start_time is not None:
            duration = now - self.rep_start_time
            if duration < cfg.min_rep_duration_ms:
                logger.debug("rep rejected: too fast (%.0f ms)", duration)
                return False
        return True

    def tick(
        self,
        angle: float,
        now: float,
        depth_gate: Optional[Callable[[], bool]] = None,
    ) -> RepPhase:
        """Advance one frame. Malformed angles (NaN, inf, outside [0, 180]) are a no-op."""
        if angle is None or not math.isfinite(angle) or not 0.0 <= angle <= 180.0:
            logger.debug("tick ignored: implausible angle %r", angle)
            return self.phase

        cfg = self.config
        a_up, a_down = self.a_up, self.a_down
        self.gate_blocked = False

        if self.phase is RepPhase.UP:
            if angle < a_up - cfg.up_margin:
                self.phase = RepPhase.GOING_DOWN
                self.hold_frames = 0

        elif self.phase is RepPhase.GOING_DOWN:
            if angle <= a_down:
                self.hold_frames = min(self.hold_frames + 1, cfg.debounce_frames)
                if self.hold_frames >= cfg.debounce_frames:
                    if depth_gate is None or depth_gate():
                        self.phase = RepPhase.DOWN
                        self.hold_frames = 0
                        self.rep_start_time = now
                    else:
                        self.gate_blocked = True
                        logger.debug("bottom held but depth not reached; staying in GOING_DOWN")
            elif angle >= a_up:
                self.phase = RepPhase.UP
                self.hold_frames = 0
            else:
                self.hold_frames = 0

        elif self.phase is RepPhase.DOWN:
            if angle > a_down + cfg.down_margin:
                self.phase = RepPhase.GOING_UP
                self.hold_frames = 0

        elif self.phase is RepPhase.GOING_UP:
            if angle >= a_up:
                self.hold_frames += 1
                if self.hold_frames >= cfg.debounce_frames:
                    if self._rep_allowed(now):
                        self.reps += 1
                        self.last_rep_time = now
                        logger.info("rep %s counted at t=%.0f ms", self.reps, now)
                    self.phase = RepPhase.UP
                    self.hold_frames = 0
            elif angle <= a_down:
                self.phase = RepPhase.DOWN
                self.hold_frames = 0
            else:
                self.hold_frames = 0

        return self.phase

    def progress(self, angle: float) -> float:
        """0 at the bottom threshold, 1 at lockout."""
        raw = (angle - self.a_down) / (self.a_up - self.a_down)
        return max(0.0, min(1.0, raw))


class ThresholdCalibrator:
    """
    Warm-up that samples the elbow angle while the subject holds the top position
    and derives a personalized A_UP:
        clip(percentile(samples) - margin, a_down + min_gap, max_a_up)
    """

    def __init__(
        self,
        frames: int,
        a_down: float = A_DOWN,
        margin: float = CALIBRATION_MARGIN_DEG,
        percentile: float = CALIBRATION_PERCENTILE,
        max_a_up: float = CALIBRATION_MAX_A_UP,
        min_gap: float = CALIBRATION_MIN_GAP_DEG,
    ):
        if frames < 0:
            raise ValueError(f"Calibration frames must be >= 0, got {frames}")
        self.frames = frames
        self.a_down = a_down
        self.margin = margin
        self.percentile = percentile
        self.max_a_up = max_a_up
        self.min_gap = min_gap
        self.samples: list[float] = []
        self.a_up: Optional[float] = None

    @property
    def done(self) -> bool:
        return self.frames == 0 or self.a_up is not None

    def add(self, angle: float) -> Optional[float]:
        """Record one sample. Returns the derived A_UP on the sample that completes calibration."""
        if self.done or angle is None or not math.isfinite(angle):
            return None
        self.samples.append(float(angle))
        if len(self.samples) < self.frames:
            return None
        peak = float(np.percentile(np.asarray(self.samples, dtype=float), self.percentile))
        # thresholds live in [0, 180]
        hi = min(180.0, max(self.a_down + self.min_gap, self.max_a_up))
        lo = min(self.a_down + self.min_gap, hi)
        self.a_up = float(np.clip(peak - self.margin, lo, hi))
        logger.info(
            "calibrated: peak elbow=%.1f deg over %s frames -> A_UP=%.1f",
            peak, len(self.samples), self.a_up,
        )
        return self.a_up
