"""
Default tuning constants for push-up counting, in one place.
Dataclass configs in reps/depth/tracker take their defaults from here.
"""
from __future__ import annotations

import os
from enum import Enum
from typing import Optional


class ViewMode(str, Enum):
    FRONT = "front"
    SIDE = "side"


# Elbow angle (deg) for "arm locked out" / "at the bottom".
A_UP = 155.0
A_DOWN = 90.0
# Hysteresis bands around the thresholds when leaving UP / DOWN.
UP_MARGIN_DEG = 5.0
DOWN_MARGIN_DEG = 5.0

# Counter robustness
DEBOUNCE_FRAMES = 3           # consecutive ticks before confirming DOWN / a rep
COOLDOWN_MS = 350.0           # minimum time between two counted reps
MIN_REP_DURATION_MS = 350.0   # bottom -> lockout faster than this is rejected

# Smoothing (higher alpha = less lag, more jitter)
POSITION_ALPHA = 0.45
ANGLE_ALPHA = 0.35
BASELINE_ALPHA = 0.10

# Landmark confidence gates
VIS_SIDE = 0.50
VIS_FRONT = 0.55

# Front view: max left/right elbow difference still treated as symmetric.
SYMMETRY_TOLERANCE_DEG = 25.0

# Anti-cheat: required body drop = max(reference_px * factor, min_px)
DEPTH_FACTOR_FRONT = 0.10
DEPTH_MIN_PX_FRONT = 18.0
DEPTH_FACTOR_SIDE = 0.06
DEPTH_MIN_PX_SIDE = 12.0

# Optional warm-up that personalizes A_UP (0 = disabled).
CALIBRATION_FRAMES = 0
CALIBRATION_MARGIN_DEG = 10.0
CALIBRATION_PERCENTILE = 95.0
CALIBRATION_MAX_A_UP = 175.0
CALIBRATION_MIN_GAP_DEG = 20.0

# Frame size used to convert normalized coords to px when the caller gives none.
DEFAULT_FRAME_WIDTH = 1280
DEFAULT_FRAME_HEIGHT = 720

# 45 deg off target = 100 % form error
FORM_ERROR_FULL_SCALE_DEG = 45.0


def parse_view_mode(value: str | ViewMode) -> ViewMode:
    """Accept 'front' / 'side' (any case) or a ViewMode; raise ValueError otherwise."""
    if isinstance(value, ViewMode):
        return value
    try:
        return ViewMode(str(value).strip().lower())
    except ValueError:
        raise ValueError(f"Unknown view mode: {value!r} (expected 'front' or 'side')") from None


def env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()
