import json

import pytest
from fastapi.testclient import TestClient

from conftest import front_pose
from web_app import app


@pytest.fixture
def client():
    return TestClient(app)


def _frame(angle, shoulder_y, timestamp, **extra):
    lm = front_pose(angle, shoulder_y)
    msg = {
        "type": "frame",
        "timestamp": timestamp,
        "landmarks": [[p.x, p.y, p.visibility] for p in lm],
    }
    msg.update(extra)
    return json.dumps(msg)


def _until_state(ws):
    """Collect change events up to and including the next state message."""
    changes = []
    while True:
        msg = ws.receive_json()
        if msg["type"] == "state":
            return changes, msg
        changes.append(msg)


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_analyze_rejects_non_video(client):
    resp = client.post("/analyze", files={"video": ("notes.txt", b"hello", "text/plain")})
    assert resp.status_code == 400


def test_unknown_job_is_404(client):
    assert client.get("/analyze/result/does-not-exist").status_code == 404


# Long holds so the default smoothing settles at the top and the bottom.
LIVE_REP = [(170, 0.4)] * 5 + [(80, 0.5)] * 12 + [(170, 0.4)] * 12


def test_live_socket_counts_a_rep(client):
    with client.websocket_connect("/ws/live") as ws:
        changes = []
        for i, (angle, shoulder_y) in enumerate(LIVE_REP):
            ws.send_text(_frame(angle, shoulder_y, i * 100))
            got, state = _until_state(ws)
            changes.extend(got)
            assert state["status"] == "tracking"
        assert state["reps"] == 1
        assert changes[-1] == {"type": "change", "reps": 1, "phase": "UP"}
        assert [c["phase"] for c in changes] == ["GOING_DOWN", "DOWN", "GOING_UP", "UP"]

        ws.send_text(json.dumps({"type": "stop"}))
        assert ws.receive_json() == {"type": "final", "reps": 1}


def test_live_socket_drops_stale_frames_and_ignores_junk(client):
    with client.websocket_connect("/ws/live") as ws:
        ws.send_text(_frame(170, 0.4, 100))
        _, state = _until_state(ws)
        assert state["phase"] == "UP"

        ws.send_text(_frame(170, 0.4, 100))
        _, state = _until_state(ws)
        assert state["status"] == "dropped"

        ws.send_text("{not json")
        ws.send_text(_frame(170, 0.4, 200, width=640, height=480))
        _, state = _until_state(ws)
        assert state["status"] == "tracking"
        assert state["timestamp_ms"] == 200

        ws.send_text(json.dumps({"type": "stop"}))
        assert ws.receive_json()["type"] == "final"


def test_live_socket_reports_bad_input(client):
    with client.websocket_connect("/ws/live") as ws:
        ws.send_text(json.dumps({"type": "config", "mode": "overhead"}))
        assert ws.receive_json()["type"] == "error"

        ws.send_text(json.dumps({"type": "frame", "landmarks": [[0.1, 0.2, 0.9]]}))
        assert ws.receive_json()["type"] == "error"

        ws.send_text(_frame(170, 0.4, 0, width=float("inf")))
        assert ws.receive_json()["type"] == "error"

        ws.send_text(_frame(170, 0.4, 0, height=-720))
        assert ws.receive_json()["type"] == "error"

        ws.send_text(json.dumps({"type": "frame", "timestamp": 0, "landmarks": None}))
        _, state = _until_state(ws)
        assert state["status"] == "searching"

        ws.send_text(json.dumps({"type": "config", "mode": "side"}))
        ws.send_text(json.dumps({"type": "frame", "timestamp": 100, "landmarks": []}))
        _, state = _until_state(ws)
        assert state["mode"] == "side"

        ws.send_text(json.dumps({"type": "stop"}))
        assert ws.receive_json() == {"type": "final", "reps": 0}


def test_live_socket_survives_nan_landmarks(client):
    with client.websocket_connect("/ws/live") as ws:
        bad = json.loads(_frame(170, 0.4, 0))
        bad["landmarks"][13][0] = float("nan")
        ws.send_text(json.dumps(bad))
        _, state = _until_state(ws)
        assert state["status"] == "searching"

        ws.send_text(_frame(170, 0.4, 100))
        _, state = _until_state(ws)
        assert state["status"] == "tracking"
        assert state["elbow_angle"] == pytest.approx(170, abs=1e-6)

        ws.send_text(json.dumps({"type": "stop"}))
        assert ws.receive_json()["type"] == "final"
