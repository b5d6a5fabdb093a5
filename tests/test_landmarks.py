import pytest

from pushsense.landmarks import Point, get_point, parse_landmarks
from pushsense.settings import ViewMode, parse_view_mode


def test_parse_mixed_payload():
    points = parse_landmarks([
        {"x": 0.1, "y": 0.2, "visibility": 0.9},
        {"x": 0.3, "y": 0.4},
        [0.5, 0.6, 0.7],
        (0.8, 0.9),
        Point(0.0, 1.0, 0.5),
    ])
    assert points[0] == Point(0.1, 0.2, 0.9)
    assert points[1].visibility is None
    assert points[1].confidence == 0.0
    assert points[2] == Point(0.5, 0.6, 0.7)
    assert points[3] == Point(0.8, 0.9, None)
    assert points[4] == Point(0.0, 1.0, 0.5)


def test_empty_payload_is_none():
    assert parse_landmarks(None) is None
    assert parse_landmarks([]) is None


@pytest.mark.parametrize("bad", [[{"x": 0.1}], [[0.1]], [{"x": "a", "y": 0.2}]])
def test_malformed_landmarks_raise(bad):
    with pytest.raises((KeyError, ValueError)):
        parse_landmarks(bad)


def test_get_point_out_of_range():
    assert get_point([Point(0, 0)], 5) is None
    assert get_point(None, 0) is None


def test_view_mode_parsing():
    assert parse_view_mode("Front") is ViewMode.FRONT
    assert parse_view_mode(ViewMode.SIDE) is ViewMode.SIDE
    with pytest.raises(ValueError):
        parse_view_mode("top")


def test_mediapipe_landmarks_to_points():
    from types import SimpleNamespace

    from pushsense.pose import to_points

    raw = [SimpleNamespace(x=0.1 * (i % 10), y=0.5, visibility=0.8) for i in range(33)]
    points = to_points(raw)
    assert len(points) == 33
    assert points[1] == Point(0.1, 0.5, 0.8)
    assert to_points(raw[:20]) is None
