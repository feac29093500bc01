import threading
import time

from proctor.engine import ProctorEngine
from proctor.frame_source import FrameSource, PushFrameSource
from proctor.session_manager import SessionManager


class FailingSource(FrameSource):
    name = "failing"

    def detect_objects(self):
        raise RuntimeError("camera unplugged")

    def detect_faces(self):
        raise RuntimeError("camera unplugged")


class BlockingSource(FrameSource):
    name = "blocking"

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()

    def detect_objects(self):
        self.entered.set()
        self.release.wait(timeout=5.0)
        return []


def _phone():
    return {"class": "cell phone", "score": 0.9, "bbox": [0, 0, 50, 100]}


def test_ticks_apply_pushed_detections():
    engine = ProctorEngine()
    source = PushFrameSource(stale_seconds=60.0)
    session = SessionManager(engine, source)
    source.push(objects=[_phone()], faces=[])

    batches = [session.run_object_tick(now=float(t)) for t in range(3)]
    session.run_focus_tick(now=0.0)

    assert [v.type for v in batches[2]] == ["object_detected_stateful", "mobile_phone_detected"]
    health = session.health()
    assert health["object_ticks"] == 3
    assert health["focus_ticks"] == 1
    assert engine.statistics()["focus_ticks"] == 1


def test_source_failure_is_treated_as_empty_frame():
    engine = ProctorEngine()
    session = SessionManager(engine, FailingSource())

    assert session.run_object_tick(now=0.0) == []
    assert session.run_focus_tick(now=0.0) == []
    assert session.run_focus_tick(now=10.0)[0].type == "no_face"

    health = session.health()
    assert health["source_failures"] == 3
    assert health["object_ticks"] == 1
    assert health["focus_ticks"] == 2


def test_results_after_stop_are_discarded():
    engine = ProctorEngine()
    source = PushFrameSource(stale_seconds=60.0)
    source.push(faces=[])
    session = SessionManager(engine, source)
    session.stop()

    assert session.run_focus_tick(now=0.0) == []
    assert session.health()["discarded"] == 1
    assert engine.statistics()["focus_ticks"] == 0


def test_busy_tick_is_skipped():
    engine = ProctorEngine()
    source = BlockingSource()
    session = SessionManager(engine, source)
    worker = threading.Thread(target=session.run_object_tick, kwargs={"now": 0.0})
    worker.start()
    try:
        assert source.entered.wait(timeout=5.0)
        assert session.run_object_tick(now=1.0) == []
        assert session.health()["object_skipped"] == 1
    finally:
        source.release.set()
        worker.join(timeout=5.0)
    assert session.health()["object_ticks"] == 1


def test_start_and_stop_threads():
    engine = ProctorEngine()
    source = PushFrameSource()
    session = SessionManager(engine, source, object_tick_seconds=0.05, focus_tick_seconds=0.05, frame_skip=1)

    assert session.start() is True
    assert session.start() is False
    assert session.running() is True
    deadline = time.time() + 5.0
    while session.health()["object_ticks"] == 0 and time.time() < deadline:
        time.sleep(0.01)
    assert session.stop() is True
    assert session.running() is False
    assert session.health()["object_ticks"] >= 1
    assert engine.mode() == "ai"


def test_start_reports_model_status():
    engine = ProctorEngine()
    session = SessionManager(engine, FrameSource(), object_tick_seconds=5.0, focus_tick_seconds=5.0)
    session.start()
    try:
        assert engine.mode() == "fallback"
    finally:
        session.stop()
