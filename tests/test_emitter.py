import pytest

from proctor.emitter import Severity, ViolationEmitter, ViolationType


def test_emit_stamps_and_forwards(sink):
    emitter = ViolationEmitter(sink=sink)
    violation = emitter.emit(
        ViolationType.MOBILE_PHONE,
        "Direct mobile phone detected",
        Severity.HIGH,
        pathway="direct_mobile_detection",
        now=12.5,
    )

    assert violation.type == "mobile_phone_detected"
    assert violation.severity == "high"
    assert violation.timestamp == 12.5
    assert violation.confidence == pytest.approx(0.9)
    assert violation.pathway == "direct_mobile_detection"
    assert sink.items == [violation]


def test_fallback_confidence():
    emitter = ViolationEmitter()
    assert emitter.emit("unknown_object_detected", "x", "medium", fallback=True).confidence == 0.6
    emitter.model_backed = False
    assert emitter.emit("no_face", "x", "high").confidence == 0.6
    assert emitter.emit("no_face", "x", "high", confidence=0.75).confidence == 0.75


def test_sink_order_and_counts(sink):
    emitter = ViolationEmitter(sink=sink)
    emitter.emit("no_face", "a", "high", now=1.0)
    emitter.emit("multiple_faces", "b", "high", now=2.0)
    emitter.emit("no_face", "c", "high", now=3.0)

    assert [v.message for v in sink.items] == ["a", "b", "c"]
    assert emitter.counts() == {"no_face": 2, "multiple_faces": 1}
    assert emitter.total == 3
    assert emitter.last_emitted() == {"no_face": 3.0, "multiple_faces": 2.0}


def test_failing_sink_does_not_break_emission():
    def broken(_violation):
        raise RuntimeError("sink down")

    emitter = ViolationEmitter(sink=broken)
    assert emitter.emit("no_face", "a", "high") is not None
    assert emitter.total == 1


def test_drain_returns_each_violation_once():
    emitter = ViolationEmitter()
    emitter.emit("no_face", "a", "high")
    emitter.emit("no_face", "b", "high")
    assert [v.message for v in emitter.drain()] == ["a", "b"]
    assert emitter.drain() == []


def test_history_limit_and_since():
    emitter = ViolationEmitter(history_size=3)
    for t in range(5):
        emitter.emit("no_face", f"m{t}", "high", now=float(t))

    assert [v["message"] for v in emitter.get_violations()] == ["m2", "m3", "m4"]
    assert [v["message"] for v in emitter.get_violations(limit=1)] == ["m4"]
    assert [v["message"] for v in emitter.get_violations(since=2.0)] == ["m3", "m4"]
    assert emitter.get_violations(limit=0)[0]["message"] == "m4"


def test_closed_emitter_drops_violations(sink):
    emitter = ViolationEmitter(sink=sink)
    emitter.close()
    assert emitter.closed is True
    assert emitter.emit("no_face", "late", "high") is None
    assert sink.items == []
    assert emitter.total == 0


def test_to_dict():
    emitter = ViolationEmitter()
    payload = emitter.emit("object_detected_stateful", "x", "medium", object_type="book", now=1.0).to_dict()
    assert payload == {
        "type": "object_detected_stateful",
        "message": "x",
        "severity": "medium",
        "timestamp": 1.0,
        "confidence": 0.9,
        "pathway": None,
        "object_type": "book",
    }
