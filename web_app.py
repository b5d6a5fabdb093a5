from __future__ import annotations

import json
import logging
import shutil
import tempfile
import threading
import time
import uuid
from pathlib import Path
from typing import Any

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi import WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from run import run_offline
from pushsense.landmarks import parse_landmarks
from pushsense.reps import RepPhase
from pushsense.tracker import RepTracker, TrackerConfig

# Make session and rep logging visible when running under uvicorn
logging.getLogger("pushsense").setLevel(logging.INFO)
logger = logging.getLogger("pushsense.web")

app = FastAPI(title="PushSense")

# Background analysis jobs (job_id -> {status, result, created})
_JOB_STORE: dict[str, dict] = {}
_JOB_LOCK = threading.Lock()
_MAX_JOBS = 100
_VIDEO_SUFFIXES = {".mp4", ".mov", ".mkv", ".avi", ".webm"}


def _run_analysis_background(job_id: str, upload_path: str, job_dir: str) -> None:
    try:
        summary = run_offline(upload_path, TrackerConfig.from_env())
        with _JOB_LOCK:
            _JOB_STORE[job_id]["status"] = "done"
            _JOB_STORE[job_id]["result"] = summary
    except Exception as e:
        logger.exception("analysis job %s failed", job_id)
        with _JOB_LOCK:
            _JOB_STORE[job_id]["status"] = "error"
            _JOB_STORE[job_id]["result"] = str(e)
    finally:
        shutil.rmtree(job_dir, ignore_errors=True)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/analyze")
def analyze(video: UploadFile = File(...)) -> JSONResponse:
    if not video.filename:
        raise HTTPException(status_code=400, detail="Missing file name.")
    suffix = Path(video.filename).suffix.lower()
    if suffix not in _VIDEO_SUFFIXES:
        raise HTTPException(status_code=400, detail="Unsupported file type.")

    job_id = str(uuid.uuid4())
    job_dir = Path(tempfile.gettempdir()) / "pushsense_jobs" / job_id
    job_dir.mkdir(parents=True, exist_ok=True)
    upload_path = job_dir / f"upload{suffix}"
    with upload_path.open("wb") as f:
        shutil.copyfileobj(video.file, f)

    with _JOB_LOCK:
        while len(_JOB_STORE) >= _MAX_JOBS:
            oldest = min(_JOB_STORE.items(), key=lambda x: x[1].get("created", 0))
            del _JOB_STORE[oldest[0]]
        _JOB_STORE[job_id] = {"status": "pending", "result": None, "created": time.time()}

    thread = threading.Thread(
        target=_run_analysis_background,
        args=(job_id, str(upload_path), str(job_dir)),
        daemon=True,
    )
    thread.start()
    logger.info("analysis job %s queued (%s)", job_id, video.filename)
    return JSONResponse({"job_id": job_id, "status": "pending"}, status_code=202)


@app.get("/analyze/result/{job_id}")
def analyze_result(job_id: str) -> JSONResponse:
    with _JOB_LOCK:
        job = _JOB_STORE.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found or expired.")
    status = job.get("status", "pending")
    code = 202 if status == "pending" else 200
    return JSONResponse({"job_id": job_id, "status": status, "result": job.get("result")}, status_code=code)


@app.websocket("/ws/live")
async def live_socket(websocket: WebSocket) -> None:
    """
    Landmark stream from a client-side pose detector.
    In:  {"type": "config", "mode": ...} | {"type": "frame", "timestamp", "landmarks", "width", "height"} | {"type": "stop"}
    Out: {"type": "state", ...} per frame, {"type": "change", "reps", "phase"} on change, {"type": "final", "reps"} on stop.
    """
    await websocket.accept()
    changes: list[dict[str, Any]] = []

    def _on_change(reps: int, phase: RepPhase) -> None:
        changes.append({"type": "change", "reps": reps, "phase": phase.value})

    tracker = RepTracker(TrackerConfig.from_env(), on_change=_on_change)
    frames = 0
    try:
        while True:
            msg = await websocket.receive_text()
            try:
                payload = json.loads(msg)
            except json.JSONDecodeError:
                continue
            if not isinstance(payload, dict):
                continue
            kind = payload.get("type", "frame")

            if kind == "stop":
                reps = tracker.stop()
                await websocket.send_text(json.dumps({"type": "final", "reps": reps}))
                await websocket.close()
                return

            if kind == "config":
                try:
                    tracker.set_mode(payload.get("mode", tracker.mode.value))
                except ValueError as e:
                    await websocket.send_text(json.dumps({"type": "error", "detail": str(e)}))
                    continue

            elif kind == "frame":
                try:
                    landmarks = parse_landmarks(payload.get("landmarks"))
                    timestamp = float(payload["timestamp"])
                    width = int(payload.get("width") or tracker.config.frame_width)
                    height = int(payload.get("height") or tracker.config.frame_height)
                    if width <= 0 or height <= 0:
                        raise ValueError(f"frame size must be positive, got {width}x{height}")
                except (KeyError, TypeError, ValueError, OverflowError) as e:
                    await websocket.send_text(json.dumps({"type": "error", "detail": f"bad frame: {e}"}))
                    continue
                result = tracker.process(landmarks, timestamp, frame_size=(width, height))
                frames += 1
                for event in changes:
                    await websocket.send_text(json.dumps(event))
                changes.clear()
                await websocket.send_text(json.dumps({"type": "state", **result.as_dict()}))
                continue

            for event in changes:
                await websocket.send_text(json.dumps(event))
            changes.clear()
    except WebSocketDisconnect:
        logger.info("live: client disconnected (frames=%s, reps=%s)", frames, tracker.stop())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("web_app:app", host="0.0.0.0", port=8000, reload=True)
