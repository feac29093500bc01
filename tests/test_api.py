import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from proctor.api import build_router
from proctor.engine import ProctorEngine
from proctor.frame_source import FrameSource, PushFrameSource
from proctor.session_manager import SessionManager


@pytest.fixture
def stack():
    engine = ProctorEngine()
    source = PushFrameSource(stale_seconds=60.0)
    session = SessionManager(engine, source, object_tick_seconds=5.0, focus_tick_seconds=5.0)
    app = FastAPI()
    app.include_router(build_router(engine, session, source, None))
    yield TestClient(app), engine, source, session
    session.stop()


def test_health(stack):
    client, _, _, _ = stack
    payload = client.get("/health").json()
    assert payload["engine"]["mode"] == "ai"
    assert payload["engine"]["tracked_types"] == ["mobile", "book"]
    assert payload["source"]["source"] == "push"
    assert payload["yolo"] == {"enabled": False, "ready": False, "model_path": None}


def test_push_frames_then_tick(stack):
    client, _, _, session = stack
    response = client.post(
        "/frames",
        json={"objects": [{"class": "cell phone", "score": 0.9, "bbox": [0, 0, 50, 100]}], "faces": []},
    )
    assert response.status_code == 200
    assert response.json() == {"accepted": {"objects": 1, "faces": 0}}

    for t in range(3):
        session.run_object_tick(now=float(t))

    violations = client.get("/violations").json()["violations"]
    assert [v["type"] for v in violations] == ["object_detected_stateful", "mobile_phone_detected"]
    assert client.get("/violations", params={"limit": 1}).json()["violations"][0]["pathway"] == (
        "direct_mobile_detection"
    )

    stats = client.get("/statistics").json()
    assert stats["total_violations"] == 2
    tracking = client.get("/tracking").json()
    assert tracking["tracking"]["mobile"]["consecutive_detections"] == 1
    assert tracking["pathways"]["direct_mobile_detection"] == 0


def test_push_rejected_for_other_sources():
    engine = ProctorEngine()
    source = FrameSource()
    session = SessionManager(engine, source)
    app = FastAPI()
    app.include_router(build_router(engine, session, source, None))
    response = TestClient(app).post("/frames", json={"objects": []})
    assert response.status_code == 409


def test_register_type(stack):
    client, engine, _, _ = stack
    response = client.post(
        "/tracking/types",
        json={"name": "remote", "grace_period": 1, "violation_threshold": 2},
    )
    assert response.json() == {"name": "remote", "created": True}
    assert client.post("/tracking/types", json={"name": "remote"}).json()["created"] is False
    assert "remote" in engine.status()["tracked_types"]


def test_register_type_validation(stack):
    client, _, _, _ = stack
    assert client.post("/tracking/types", json={"name": ""}).status_code == 422
    assert client.post("/tracking/types", json={"name": "pen", "violation_threshold": 0}).status_code == 422
    response = client.post(
        "/tracking/types",
        json={"name": "pen", "tiers": {"high": 0.2, "medium": 0.5, "low": 0.1}},
    )
    assert response.status_code == 400


def test_focus_snapshot(stack):
    client, _, source, session = stack
    source.push(faces=[])
    session.run_focus_tick(now=0.0)
    payload = client.get("/focus").json()
    assert payload["phase"] == "no_face"
    assert payload["is_no_face"] is True


def test_session_start_stop(stack):
    client, _, _, _ = stack
    assert client.post("/session/start").json()["started"] is True
    stopped = client.post("/session/stop").json()
    assert stopped["stopped"] is True
    assert stopped["session"]["running"] is False
