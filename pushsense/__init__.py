"""
pushsense: push-up repetition counting from per-frame pose landmarks.

geometry:   joint angles, distances, midpoints
smoothing:  EMA / PositionSmoother
reps:       debounced phase state machine + threshold calibration
depth:      body-depth anti-cheat tracker
tracker:    per-frame orchestrator (RepTracker)
"""
from pushsense.depth import BodyDepthTracker, DepthConfig
from pushsense.geometry import avg_point, calculate_angle, distance
from pushsense.landmarks import LandmarkIdx, Point, parse_landmarks
from pushsense.reps import RepConfig, RepEngine, RepPhase, ThresholdCalibrator
from pushsense.settings import ViewMode
from pushsense.smoothing import EMA, PositionSmoother
from pushsense.tracker import FrameResult, RepTracker, TrackerConfig

__all__ = [
    'BodyDepthTracker',
    'DepthConfig',
    'avg_point',
    'calculate_angle',
    'distance',
    'LandmarkIdx',
    'Point',
    'parse_landmarks',
    'RepConfig',
    'RepEngine',
    'RepPhase',
    'ThresholdCalibrator',
    'ViewMode',
    'EMA',
    'PositionSmoother',
    'FrameResult',
    'RepTracker',
    'TrackerConfig',
]
