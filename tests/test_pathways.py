from proctor.detections import BoundingBox, ObjectDetection
from proctor.pathways import HeldObjectTimer, Pathway, PathwayArbiter, PathwayConfig


def _det(label, score=0.5):
    return ObjectDetection(label=label, score=score, bbox=BoundingBox(0, 0, 40, 80))


def _run(arbiter, ticks):
    fired = []
    for scored in ticks:
        fired.append([f.pathway for f in arbiter.evaluate(scored)])
    return fired


class TestPathwayArbiter:
    def test_direct_detection_fires_after_three_frames(self):
        arbiter = PathwayArbiter()
        phone = _det("cell phone", 0.9)
        fired = _run(arbiter, [[(phone, 175)]] * 3)

        assert fired == [[], [], [Pathway.DIRECT]]
        assert all(count == 0 for count in arbiter.counts().values())

    def test_direct_message_and_severity(self):
        arbiter = PathwayArbiter(PathwayConfig(direct_count=1))
        firing = arbiter.evaluate([(_det("cell phone", 0.9), 175)])[0]
        assert firing.severity == "high"
        assert firing.message == "Direct mobile phone detected: cell phone (90.0% confidence)"

    def test_misclassified_object_fires_after_two_frames(self):
        arbiter = PathwayArbiter()
        fired = _run(arbiter, [[(_det("remote", 0.4), 110)]] * 2)
        assert fired == [[], [Pathway.MISCLASSIFIED]]

    def test_person_with_object(self):
        arbiter = PathwayArbiter()
        fired = _run(arbiter, [[(_det("person", 0.9), 80)]] * 4)
        assert fired == [[], [], [], [Pathway.PERSON_WITH_OBJECT]]

    def test_high_suspicion_reachable_when_misclassified_bar_is_higher(self):
        arbiter = PathwayArbiter(PathwayConfig(misclassified_score=200))
        firings = arbiter.evaluate([(_det("laptop"), 160)])
        assert [f.pathway for f in firings] == [Pathway.HIGH_SUSPICION]
        assert firings[0].message == "Highly suspicious object detected: laptop with 160 points"

    def test_high_suspicion_shadowed_by_default_misclassified_route(self):
        arbiter = PathwayArbiter()
        assert arbiter.evaluate([(_det("laptop"), 160)]) == []
        assert arbiter.counts()[Pathway.MISCLASSIFIED.value] == 1

    def test_sustained_suspicion(self):
        arbiter = PathwayArbiter()
        fired = _run(arbiter, [[(_det("bottle"), 60)]] * 5)
        assert fired[-1] == [Pathway.SUSTAINED]
        assert fired[-1] and not any(fired[:-1])

    def test_sustained_counter_resets_on_gap(self):
        arbiter = PathwayArbiter()
        _run(arbiter, [[(_det("bottle"), 60)]] * 4)
        arbiter.evaluate([])
        assert arbiter.counts()[Pathway.SUSTAINED.value] == 0

    def test_sustained_counter_resets_on_weak_detection(self):
        arbiter = PathwayArbiter()
        _run(arbiter, [[(_det("bottle"), 60)]] * 4)
        arbiter.evaluate([(_det("chair"), 20)])
        assert arbiter.counts()[Pathway.SUSTAINED.value] == 0

    def test_zero_score_detections_are_not_routed(self):
        arbiter = PathwayArbiter()
        _run(arbiter, [[(_det("bottle"), 60)]] * 2)
        arbiter.evaluate([(_det("chair"), 0)])
        assert arbiter.counts()[Pathway.SUSTAINED.value] == 0

    def test_firing_clears_every_counter(self):
        arbiter = PathwayArbiter()
        arbiter.evaluate([(_det("person", 0.9), 80), (_det("bottle"), 60)])
        arbiter.evaluate([(_det("remote"), 110)])
        arbiter.evaluate([(_det("remote"), 110)])
        assert all(count == 0 for count in arbiter.counts().values())

    def test_one_detection_moves_one_counter(self):
        arbiter = PathwayArbiter()
        arbiter.evaluate([(_det("cell phone", 0.9), 175)])
        counts = arbiter.counts()
        assert counts[Pathway.DIRECT.value] == 1
        assert sum(counts.values()) == 1


class TestHeldObjectTimer:
    def test_fires_after_limit(self):
        timer = HeldObjectTimer(3.0)
        assert timer.update(True, now=0.0) is None
        assert timer.update(True, now=2.9) is None
        assert timer.update(True, now=3.0) == 3.0
        assert timer.started_at == 3.0

    def test_resets_without_candidate(self):
        timer = HeldObjectTimer(3.0)
        timer.update(True, now=0.0)
        timer.update(False, now=2.0)
        assert timer.started_at is None
        assert timer.update(True, now=2.5) is None
        assert timer.update(True, now=5.0) is None
        assert timer.update(True, now=5.5) == 3.0

    def test_suppressed_tick_restarts(self):
        timer = HeldObjectTimer(3.0)
        timer.update(True, now=0.0)
        assert timer.update(True, now=3.0, suppressed=True) is None
        assert timer.started_at == 3.0
