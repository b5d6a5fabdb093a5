"""
Per-frame driver: landmarks -> visibility gate -> smoothing -> elbow angle / body depth
-> rep state machine (depth-gated) -> (reps, phase) change events.

One RepTracker owns every smoother, the RepEngine and the BodyDepthTracker for one
session. Frames must arrive with strictly increasing millisecond timestamps; anything
else is dropped. Switching view mode or resetting rebuilds all of that state.
"""
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Callable, Optional, Sequence

from .depth import BodyDepthTracker, DepthConfig
from .geometry import avg_point, calculate_angle, error_pct
from .landmarks import LandmarkIdx, Point, get_point
from .reps import RepConfig, RepEngine, RepPhase, ThresholdCalibrator
from .settings import (
    ANGLE_ALPHA,
    CALIBRATION_FRAMES,
    CALIBRATION_MIN_GAP_DEG,
    DEFAULT_FRAME_HEIGHT,
    DEFAULT_FRAME_WIDTH,
    POSITION_ALPHA,
    SYMMETRY_TOLERANCE_DEG,
    VIS_FRONT,
    VIS_SIDE,
    ViewMode,
    env_bool,
    env_float,
    env_int,
    env_str,
    parse_view_mode,
)
from .smoothing import EMA, PositionSmoother

logger = logging.getLogger(__name__)

STATUS_TRACKING = "tracking"
STATUS_SEARCHING = "searching"
STATUS_CALIBRATING = "calibrating"
STATUS_DETECTOR_ERROR = "detector_error"
STATUS_DROPPED = "dropped"
STATUS_STOPPED = "stopped"

_FRONT_JOINTS = (
    LandmarkIdx.LEFT_SHOULDER,
    LandmarkIdx.RIGHT_SHOULDER,
    LandmarkIdx.LEFT_ELBOW,
    LandmarkIdx.RIGHT_ELBOW,
    LandmarkIdx.LEFT_WRIST,
    LandmarkIdx.RIGHT_WRIST,
)
_HEAD_JOINTS = (LandmarkIdx.NOSE, LandmarkIdx.MOUTH_LEFT, LandmarkIdx.MOUTH_RIGHT)
# shoulder, elbow, wrist, hip, knee, ankle
_SIDE_JOINTS = {
    "left": (
        LandmarkIdx.LEFT_SHOULDER,
        LandmarkIdx.LEFT_ELBOW,
        LandmarkIdx.LEFT_WRIST,
        LandmarkIdx.LEFT_HIP,
        LandmarkIdx.LEFT_KNEE,
        LandmarkIdx.LEFT_ANKLE,
    ),
    "right": (
        LandmarkIdx.RIGHT_SHOULDER,
        LandmarkIdx.RIGHT_ELBOW,
        LandmarkIdx.RIGHT_WRIST,
        LandmarkIdx.RIGHT_HIP,
        LandmarkIdx.RIGHT_KNEE,
        LandmarkIdx.RIGHT_ANKLE,
    ),
}

ChangeListener = Callable[[int, RepPhase], None]


@dataclass
class TrackerConfig:
    mode: ViewMode = ViewMode.FRONT
    rep: RepConfig = field(default_factory=RepConfig)
    depth: DepthConfig = field(default_factory=DepthConfig)
    depth_gate: bool = True
    vis_front: float = VIS_FRONT
    vis_side: float = VIS_SIDE
    symmetry_tolerance: float = SYMMETRY_TOLERANCE_DEG
    position_alpha: float = POSITION_ALPHA
    angle_alpha: float = ANGLE_ALPHA
    calibration_frames: int = CALIBRATION_FRAMES
    frame_width: int = DEFAULT_FRAME_WIDTH
    frame_height: int = DEFAULT_FRAME_HEIGHT

    def __post_init__(self) -> None:
        self.mode = parse_view_mode(self.mode)
        for name in ("vis_front", "vis_side"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {getattr(self, name)}")
        for name in ("position_alpha", "angle_alpha"):
            if not 0.0 < getattr(self, name) <= 1.0:
                raise ValueError(f"{name} must be in (0, 1], got {getattr(self, name)}")
        if self.symmetry_tolerance < 0:
            raise ValueError("symmetry_tolerance must be >= 0")
        if self.calibration_frames < 0:
            raise ValueError("calibration_frames must be >= 0")
        if self.calibration_frames > 0 and self.rep.a_down + CALIBRATION_MIN_GAP_DEG > 180.0:
            raise ValueError(
                f"a_down={self.rep.a_down} leaves no room for a calibrated A_UP "
                f"(needs a_down + {CALIBRATION_MIN_GAP_DEG} <= 180)"
            )
        if self.frame_width <= 0 or self.frame_height <= 0:
            raise ValueError(f"Invalid frame size {self.frame_width}x{self.frame_height}")

    @classmethod
    def from_env(cls, **overrides: Any) -> "TrackerConfig":
        """Defaults overlaid with PUSHSENSE_* environment variables, then keyword overrides."""
        defaults = RepConfig()
        rep = RepConfig(
            a_up=env_float("PUSHSENSE_A_UP", defaults.a_up),
            a_down=env_float("PUSHSENSE_A_DOWN", defaults.a_down),
            debounce_frames=env_int("PUSHSENSE_DEBOUNCE_FRAMES", defaults.debounce_frames),
            cooldown_ms=env_float("PUSHSENSE_COOLDOWN_MS", defaults.cooldown_ms),
            min_rep_duration_ms=env_float("PUSHSENSE_MIN_REP_MS", defaults.min_rep_duration_ms),
        )
        values: dict[str, Any] = {
            "mode": env_str("PUSHSENSE_MODE", ViewMode.FRONT.value),
            "rep": rep,
            "depth_gate": env_bool("PUSHSENSE_DEPTH_GATE", True),
            "calibration_frames": env_int("PUSHSENSE_CALIBRATION_FRAMES", CALIBRATION_FRAMES),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class FrameResult:
    reps: int
    phase: RepPhase
    status: str
    mode: ViewMode
    timestamp_ms: Optional[float] = None
    elbow_angle: Optional[float] = None
    left_elbow_angle: Optional[float] = None
    right_elbow_angle: Optional[float] = None
    symmetric: Optional[bool] = None
    progress: Optional[float] = None
    depth_ok: Optional[bool] = None
    depth_px: Optional[float] = None
    required_drop_px: Optional[float] = None
    body_line_error_pct: Optional[float] = None
    knee_error_pct: Optional[float] = None
    tracked_side: Optional[str] = None
    a_up: Optional[float] = None
    a_down: Optional[float] = None
    calibration_remaining: int = 0
    consecutive_misses: int = 0

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["phase"] = self.phase.value
        data["mode"] = self.mode.value
        return data


@dataclass
class _Measurement:
    elbow_angle: float
    body_y: float
    reference_px: float
    left_elbow_angle: Optional[float] = None
    right_elbow_angle: Optional[float] = None
    symmetric: Optional[bool] = None
    body_line_error_pct: Optional[float] = None
    knee_error_pct: Optional[float] = None
    side: Optional[str] = None


def _vis(landmarks: list[Point], idx: int) -> float:
    p = get_point(landmarks, idx)
    if p is None or not math.isfinite(p.confidence):
        return 0.0
    return p.confidence


def _finite(landmarks: list[Point], joints: Sequence[int]) -> bool:
    """Coordinates of every joint are finite; a NaN fed to a smoother would stick forever."""
    return all(math.isfinite(landmarks[i].x) and math.isfinite(landmarks[i].y) for i in joints)


def _px_distance(a: Point, b: Point, width: float, height: float) -> float:
    return math.hypot((a.x - b.x) * width, (a.y - b.y) * height)


class RepTracker:
    """
    Session-scoped push-up counter. Call process() once per detected frame;
    listeners get (reps, phase) whenever either changes.
    """

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        on_change: Optional[ChangeListener] = None,
    ):
        self.config = config or TrackerConfig()
        self._listeners: list[ChangeListener] = []
        if on_change is not None:
            self._listeners.append(on_change)
        self.running = True
        self._last_timestamp: Optional[float] = None
        self._last_emitted: tuple[int, RepPhase] = (0, RepPhase.UP)
        self._build(self.config.mode)
        logger.info(
            "session started: mode=%s A_UP=%.1f A_DOWN=%.1f depth_gate=%s calibration_frames=%s",
            self.mode.value, self.engine.a_up, self.engine.a_down,
            self.config.depth_gate, self.config.calibration_frames,
        )

    # Lifecycle

    def _build(self, mode: ViewMode) -> None:
        cfg = self.config
        self.mode = mode
        self.engine = RepEngine(cfg.rep)
        self.depth = BodyDepthTracker(cfg.depth)
        self.calibrator = ThresholdCalibrator(cfg.calibration_frames, a_down=cfg.rep.a_down)
        self._position_smoothers: dict[int, PositionSmoother] = {}
        self._angle_smoothers: dict[str, EMA] = {}
        self.consecutive_misses = 0
        self.last_result = self._result(STATUS_SEARCHING, None)

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_mode(self, mode: ViewMode | str) -> None:
        """Switch view mode; all smoothing, phase and depth state is rebuilt."""
        mode = parse_view_mode(mode)
        logger.info("mode change %s -> %s (reps so far: %s)", self.mode.value, mode.value, self.engine.reps)
        self._build(mode)
        self._emit_if_changed()

    def reset(self) -> None:
        logger.info("session reset (reps so far: %s)", self.engine.reps)
        self._build(self.mode)
        self._emit_if_changed()

    def stop(self) -> int:
        """Halt the session. Further frames are ignored. Returns the final rep count."""
        if self.running:
            self.running = False
            logger.info("session stopped: reps=%s", self.engine.reps)
        return self.engine.reps

    @property
    def reps(self) -> int:
        return self.engine.reps

    @property
    def phase(self) -> RepPhase:
        return self.engine.phase

    # Per-frame entry points

    def process(
        self,
        landmarks: Optional[Sequence[Point]],
        timestamp_ms: float,
        frame_size: Optional[tuple[int, int]] = None,
    ) -> FrameResult:
        """
        Feed one frame of landmarks (normalized coords + visibility).
        frame_size is (width, height) in px, used for the depth gate; defaults to config.
        """
        if not self.running:
            return replace(self.last_result, status=STATUS_STOPPED)
        if not self._accept_timestamp(timestamp_ms):
            return replace(self.last_result, status=STATUS_DROPPED)
        return self._process_accepted(landmarks, timestamp_ms, frame_size)

    def process_detection(
        self,
        detect: Callable[[Any], Optional[Sequence[Point]]],
        image: Any,
        timestamp_ms: float,
        frame_size: Optional[tuple[int, int]] = None,
    ) -> FrameResult:
        """
        Run the external detector on image, then process its landmarks.
        A detector exception skips this frame without touching accumulated state.
        """
        if not self.running:
            return replace(self.last_result, status=STATUS_STOPPED)
        if not self._accept_timestamp(timestamp_ms):
            return replace(self.last_result, status=STATUS_DROPPED)
        try:
            landmarks = detect(image)
        except Exception:
            self.consecutive_misses += 1
            logger.warning("pose detection failed (consecutive misses: %s)", self.consecutive_misses, exc_info=True)
            result = replace(
                self.last_result,
                status=STATUS_DETECTOR_ERROR,
                timestamp_ms=timestamp_ms,
                consecutive_misses=self.consecutive_misses,
            )
            self.last_result = result
            return result
        return self._process_accepted(landmarks, timestamp_ms, frame_size)

    def _accept_timestamp(self, timestamp_ms: float) -> bool:
        if timestamp_ms is None or not math.isfinite(timestamp_ms):
            logger.debug("frame dropped: invalid timestamp %r", timestamp_ms)
            return False
        if self._last_timestamp is not None and timestamp_ms <= self._last_timestamp:
            logger.debug("frame dropped: timestamp %s <= last %s", timestamp_ms, self._last_timestamp)
            return False
        self._last_timestamp = timestamp_ms
        return True

    def _process_accepted(
        self,
        landmarks: Optional[Sequence[Point]],
        timestamp_ms: float,
        frame_size: Optional[tuple[int, int]],
    ) -> FrameResult:
        if not landmarks:
            self.consecutive_misses += 1
            return self._finish(self._result(STATUS_SEARCHING, timestamp_ms))
        self.consecutive_misses = 0

        width, height = frame_size or (self.config.frame_width, self.config.frame_height)
        landmarks = list(landmarks)
        if self.mode is ViewMode.FRONT:
            m = self._measure_front(landmarks, width, height)
        else:
            m = self._measure_side(landmarks, width, height)
        if m is None:
            return self._finish(self._result(STATUS_SEARCHING, timestamp_ms))

        if not self.calibrator.done:
            # Subject holds the top position during warm-up.
            self.depth.set_required_drop(m.reference_px, self.mode)
            self.depth.update_baseline(m.body_y)
            a_up = self.calibrator.add(m.elbow_angle)
            if a_up is not None:
                self.engine.set_thresholds(a_up)
                return self._finish(self._result(STATUS_TRACKING, timestamp_ms, m))
            return self._finish(self._result(STATUS_CALIBRATING, timestamp_ms, m))

        self._advance(m, timestamp_ms)
        return self._finish(self._result(STATUS_TRACKING, timestamp_ms, m))

    def _advance(self, m: _Measurement, now: float) -> None:
        depth = self.depth
        depth.set_required_drop(m.reference_px, self.mode)
        prev = self.engine.phase
        if prev is RepPhase.UP:
            depth.update_baseline(m.body_y)
        else:
            depth.track_depth(m.body_y)

        gate = depth.check_validity if self.config.depth_gate else None
        phase = self.engine.tick(m.elbow_angle, now, gate)

        if prev is RepPhase.UP and phase is not RepPhase.UP:
            # new candidate rep
            depth.reset_rep()
            depth.track_depth(m.body_y)
        elif phase is RepPhase.UP and prev is not RepPhase.UP:
            depth.reset_rep()

    # Measurement

    def _smooth(self, idx: int, p: Point) -> Point:
        smoother = self._position_smoothers.get(idx)
        if smoother is None:
            smoother = self._position_smoothers[idx] = PositionSmoother(self.config.position_alpha)
        return smoother.add(p)

    def _smooth_angle(self, key: str, angle: float) -> float:
        ema = self._angle_smoothers.get(key)
        if ema is None:
            ema = self._angle_smoothers[key] = EMA(self.config.angle_alpha)
        return ema.add(angle)

    def _measure_front(self, lm: list[Point], width: int, height: int) -> Optional[_Measurement]:
        thr = self.config.vis_front
        if any(_vis(lm, i) < thr for i in _FRONT_JOINTS):
            return None
        if not any(_vis(lm, i) >= thr for i in _HEAD_JOINTS):
            return None
        if not _finite(lm, _FRONT_JOINTS):
            logger.debug("non-finite arm landmark; frame skipped")
            return None

        ls = self._smooth(LandmarkIdx.LEFT_SHOULDER, lm[LandmarkIdx.LEFT_SHOULDER])
        rs = self._smooth(LandmarkIdx.RIGHT_SHOULDER, lm[LandmarkIdx.RIGHT_SHOULDER])
        le = self._smooth(LandmarkIdx.LEFT_ELBOW, lm[LandmarkIdx.LEFT_ELBOW])
        re = self._smooth(LandmarkIdx.RIGHT_ELBOW, lm[LandmarkIdx.RIGHT_ELBOW])
        lw = self._smooth(LandmarkIdx.LEFT_WRIST, lm[LandmarkIdx.LEFT_WRIST])
        rw = self._smooth(LandmarkIdx.RIGHT_WRIST, lm[LandmarkIdx.RIGHT_WRIST])

        left = self._smooth_angle("left_elbow", calculate_angle(ls, le, lw))
        right = self._smooth_angle("right_elbow", calculate_angle(rs, re, rw))
        symmetric = abs(left - right) <= self.config.symmetry_tolerance
        # One locked arm must not complete a rep on its own.
        elbow = (left + right) / 2.0 if symmetric else min(left, right)

        mid = avg_point(ls, rs)
        return _Measurement(
            elbow_angle=elbow,
            body_y=mid.y * height,
            reference_px=_px_distance(ls, rs, width, height),
            left_elbow_angle=left,
            right_elbow_angle=right,
            symmetric=symmetric,
        )

    def _measure_side(self, lm: list[Point], width: int, height: int) -> Optional[_Measurement]:
        thr = self.config.vis_side
        side = max(("left", "right"), key=lambda s: (sum(_vis(lm, i) for i in _SIDE_JOINTS[s]), s == "left"))
        joints = _SIDE_JOINTS[side]
        if any(_vis(lm, i) < thr for i in joints):
            return None
        if not _finite(lm, joints):
            logger.debug("non-finite %s-side landmark; frame skipped", side)
            return None

        shoulder, elbow, wrist, hip, knee, ankle = (self._smooth(i, lm[i]) for i in joints)
        elbow_angle = self._smooth_angle(f"{side}_elbow", calculate_angle(shoulder, elbow, wrist))
        body_angle = self._smooth_angle(f"{side}_body", calculate_angle(shoulder, hip, ankle))
        knee_angle = self._smooth_angle(f"{side}_knee", calculate_angle(hip, knee, ankle))

        return _Measurement(
            elbow_angle=elbow_angle,
            body_y=shoulder.y * height,
            reference_px=_px_distance(shoulder, hip, width, height),
            body_line_error_pct=error_pct(180.0, body_angle),
            knee_error_pct=error_pct(180.0, knee_angle),
            side=side,
        )

    # Output

    def _result(self, status: str, timestamp_ms: Optional[float], m: Optional[_Measurement] = None) -> FrameResult:
        engine = self.engine
        result = FrameResult(
            reps=engine.reps,
            phase=engine.phase,
            status=status,
            mode=self.mode,
            timestamp_ms=timestamp_ms,
            a_up=engine.a_up,
            a_down=engine.a_down,
            calibration_remaining=max(0, self.calibrator.frames - len(self.calibrator.samples))
            if not self.calibrator.done else 0,
            consecutive_misses=self.consecutive_misses,
        )
        if m is None:
            return result
        result.elbow_angle = m.elbow_angle
        result.left_elbow_angle = m.left_elbow_angle
        result.right_elbow_angle = m.right_elbow_angle
        result.symmetric = m.symmetric
        result.progress = engine.progress(m.elbow_angle)
        result.body_line_error_pct = m.body_line_error_pct
        result.knee_error_pct = m.knee_error_pct
        result.tracked_side = m.side
        result.required_drop_px = self.depth.required_drop_px
        result.depth_px = self.depth.depth_signal
        if engine.phase is not RepPhase.UP:
            result.depth_ok = self.depth.check_validity()
        return result

    def _finish(self, result: FrameResult) -> FrameResult:
        self.last_result = result
        self._emit_if_changed()
        return result

    def _emit_if_changed(self) -> None:
        current = (self.engine.reps, self.engine.phase)
        if current == self._last_emitted:
            return
        self._last_emitted = current
        for listener in list(self._listeners):
            listener(*current)
