import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from proctor.detections import (
    DetectionFrame,
    ObjectDetection,
    coerce_faces,
    coerce_hands,
    coerce_objects,
)
from proctor.emitter import Severity, Violation, ViolationEmitter, ViolationSink, ViolationType
from proctor.focus import FocusStateMachine
from proctor.lexicon import is_person, is_phone
from proctor.misclassified import MisclassifiedConfig, MisclassifiedObjectHeuristic
from proctor.object_tracker import ConfidenceTiers, ConfigurationError, ObjectTracker
from proctor.pathways import HeldObjectTimer, PathwayArbiter, PathwayConfig
from proctor.scorer import FrameContext, ScoringWeights, SuspicionScorer, score_all

logger = logging.getLogger(__name__)

TiersInput = Union[ConfidenceTiers, Mapping[str, Any], None]


@dataclass
class EngineStatistics:
    object_ticks: int = 0
    focus_ticks: int = 0
    object_detections: int = 0
    reliable_detections: int = 0
    face_detections: int = 0
    gaze_detections: int = 0
    focus_violations: int = 0
    multiple_faces: int = 0
    no_face: int = 0
    looking_away: int = 0


class ProctorEngine:
    def __init__(
        self,
        scorer: Optional[SuspicionScorer] = None,
        tracker: Optional[ObjectTracker] = None,
        arbiter: Optional[PathwayArbiter] = None,
        held_timer: Optional[HeldObjectTimer] = None,
        misclassified: Optional[MisclassifiedObjectHeuristic] = None,
        focus: Optional[FocusStateMachine] = None,
        emitter: Optional[ViolationEmitter] = None,
        mobile_tiers: Optional[ConfidenceTiers] = None,
        candidate_score: int = 120,
        person_context_score: float = 0.5,
    ) -> None:
        self.scorer = scorer or SuspicionScorer()
        self.tracker = tracker or ObjectTracker()
        self.arbiter = arbiter or PathwayArbiter()
        self.held_timer = held_timer or HeldObjectTimer()
        self.misclassified = misclassified or MisclassifiedObjectHeuristic()
        self.focus = focus or FocusStateMachine()
        self.emitter = emitter or ViolationEmitter()
        self.mobile_tiers = mobile_tiers or ConfidenceTiers(high=0.60, medium=0.45, low=0.30)
        self.mobile_tiers.validate()
        self.candidate_score = candidate_score
        self.person_context_score = person_context_score
        self.stats = EngineStatistics()
        self._models: Dict[str, bool] = {"object": True, "face": True, "hands": True}
        self._last_person: Optional[ObjectDetection] = None
        self._closed = False
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls, settings) -> "ProctorEngine":
        tracker = ObjectTracker(
            tiers=ConfidenceTiers(
                high=settings.tracker_tier_high,
                medium=settings.tracker_tier_medium,
                low=settings.tracker_tier_low,
            ),
            default_grace_period=settings.tracker_default_grace,
            default_violation_threshold=settings.tracker_default_threshold,
            retention_fraction=settings.tracker_retention_fraction,
        )
        engine = cls(
            scorer=SuspicionScorer(
                ScoringWeights(
                    phone_class=settings.score_phone_class,
                    misclassified_class=settings.score_misclassified_class,
                    shape_primary=settings.score_shape_primary,
                    shape_secondary=settings.score_shape_secondary,
                    size_primary=settings.score_size_primary,
                    size_secondary=settings.score_size_secondary,
                    hand_base=settings.score_hand_base,
                    hand_confidence_bonus=settings.score_hand_bonus,
                    low_confidence_cutoff=settings.score_low_confidence_cutoff,
                    low_confidence_multiplier=settings.score_low_confidence_multiplier,
                )
            ),
            tracker=tracker,
            arbiter=PathwayArbiter(
                PathwayConfig(
                    direct_count=settings.pathway_direct_count,
                    misclassified_score=settings.pathway_misclassified_score,
                    misclassified_count=settings.pathway_misclassified_count,
                    person_score=settings.pathway_person_score,
                    person_count=settings.pathway_person_count,
                    high_score=settings.pathway_high_score,
                    high_count=settings.pathway_high_count,
                    sustained_score=settings.pathway_sustained_score,
                    sustained_count=settings.pathway_sustained_count,
                )
            ),
            held_timer=HeldObjectTimer(settings.held_object_seconds),
            misclassified=MisclassifiedObjectHeuristic(
                MisclassifiedConfig(
                    person_only_frames=settings.misclassified_person_frames,
                    person_min_score=settings.misclassified_person_min_score,
                    cooldown_seconds=settings.misclassified_cooldown_seconds,
                    unknown_object_frames=settings.unknown_object_frames,
                    unknown_max_score=settings.unknown_object_max_score,
                )
            ),
            focus=FocusStateMachine(settings.focus_config()),
            emitter=ViolationEmitter(
                model_confidence=settings.model_confidence,
                fallback_confidence=settings.fallback_confidence,
                history_size=settings.violation_history,
            ),
            mobile_tiers=ConfidenceTiers(
                high=settings.mobile_tier_high,
                medium=settings.mobile_tier_medium,
                low=settings.mobile_tier_low,
            ),
            candidate_score=settings.suspicion_candidate_score,
        )
        for name, options in settings.tracked_types.items():
            try:
                engine.register_object_type(name, **options)
            except ConfigurationError as exc:
                logger.warning("engine.type_config_rejected object_type=%s reason=%s", name, exc)
        return engine

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def closed(self) -> bool:
        return self._closed

    def set_sink(self, sink: Optional[ViolationSink]) -> None:
        self.emitter.set_sink(sink)

    def set_model_status(self, **ready: bool) -> None:
        with self._lock:
            for name, value in ready.items():
                self._models[name] = bool(value)
            self.emitter.model_backed = self.mode() == "ai"
        logger.info("engine.mode mode=%s models=%s", self.mode(), self._models)

    def mode(self) -> str:
        return "ai" if any(self._models.values()) else "fallback"

    def process_frame(self, frame: DetectionFrame) -> List[Violation]:
        violations = self.process_objects(frame.objects, frame.hands, now=frame.timestamp)
        violations.extend(self.process_faces(frame.faces, now=frame.timestamp))
        return violations

    def process_objects(
        self,
        objects: Optional[Iterable[Any]],
        hands: Optional[Iterable[Any]] = None,
        now: Optional[float] = None,
    ) -> List[Violation]:
        now = time.time() if now is None else now
        with self._lock:
            if self._closed:
                return []
            detections = coerce_objects(objects)
            hand_list = coerce_hands(hands)
            self.stats.object_ticks += 1
            self._update_person_context(detections)
            context = FrameContext(hands=hand_list, person=self._last_person)

            scored = []
            try:
                scored = score_all(self.scorer, detections, context)
            except Exception:
                logger.exception("engine.stage_failed stage=scorer")

            tracker_fired = self._run_tracker(detections, now)
            pathway_fired = self._run_pathways(scored, now)
            self._run_held_timer(scored, tracker_fired or pathway_fired, now)
            self._run_misclassified(detections, now)
            return self.emitter.drain()

    def process_faces(self, faces: Optional[Iterable[Any]], now: Optional[float] = None) -> List[Violation]:
        now = time.time() if now is None else now
        with self._lock:
            if self._closed:
                return []
            face_list = coerce_faces(faces)
            self.stats.focus_ticks += 1
            self.stats.face_detections += 1
            try:
                firings = self.focus.update(face_list, now)
            except Exception:
                logger.exception("engine.stage_failed stage=focus")
                firings = []
            if len(face_list) == 1 and self.focus.config.gaze_tracker_enabled:
                self.stats.gaze_detections += 1
            for firing in firings:
                self.emitter.emit(firing.type, firing.message, firing.severity, now=now)
                self._count_focus(firing.type)
            return self.emitter.drain()

    def register_object_type(
        self,
        name: str,
        grace_period: Optional[int] = None,
        violation_threshold: Optional[int] = None,
        terms: Optional[Sequence[str]] = None,
        tiers: TiersInput = None,
    ) -> bool:
        resolved = _resolve_tiers(tiers)
        with self._lock:
            return self.tracker.register(
                name,
                grace_period=grace_period,
                violation_threshold=violation_threshold,
                terms=terms,
                tiers=resolved,
            )

    def get_tracking_status(self) -> Dict[str, Dict[str, object]]:
        with self._lock:
            return self.tracker.status()

    def focus_snapshot(self) -> Dict[str, object]:
        with self._lock:
            return self.focus.snapshot()

    def pathway_counts(self) -> Dict[str, object]:
        with self._lock:
            counts: Dict[str, object] = dict(self.arbiter.counts())
            counts["held_timer_started_at"] = self.held_timer.started_at
            return counts

    def statistics(self) -> Dict[str, object]:
        with self._lock:
            payload: Dict[str, object] = dict(self.stats.__dict__)
            payload["total_violations"] = self.emitter.total
            payload["violations_by_type"] = self.emitter.counts()
            payload["last_emitted"] = self.emitter.last_emitted()
            payload["misclassified"] = {
                "person_only_frames": self.misclassified.person_only_frames,
                "unknown_object_frames": self.misclassified.unknown_object_frames,
            }
            return payload

    def status(self) -> Dict[str, object]:
        with self._lock:
            return {
                "mode": self.mode(),
                "models": dict(self._models),
                "detecting": not self._closed,
                "tracked_types": self.tracker.types(),
                "total_violations": self.emitter.total,
            }

    def reset(self) -> None:
        with self._lock:
            self.tracker.reset()
            self.arbiter.reset()
            self.held_timer.reset()
            self.misclassified.reset()
            self.focus.reset()
            self._last_person = None
            self.stats = EngineStatistics()
        logger.info("engine.reset")

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self.emitter.close()
        logger.info("engine.closed")

    def _update_person_context(self, detections: Sequence[ObjectDetection]) -> None:
        for detection in detections:
            if is_person(detection.label) and detection.score > self.person_context_score:
                self._last_person = detection
                return

    def _run_tracker(self, detections: Sequence[ObjectDetection], now: float) -> bool:
        try:
            firings = self.tracker.update(detections, now)
        except Exception:
            logger.exception("engine.stage_failed stage=tracker")
            return False
        for firing in firings:
            self.emitter.emit(
                ViolationType.OBJECT_STATEFUL,
                (
                    f"{firing.object_type} consistently detected over {firing.count} frames "
                    f"with {firing.confidence * 100:.1f}% confidence"
                ),
                firing.severity,
                object_type=firing.object_type,
                now=now,
            )
            self.stats.object_detections += 1
        return bool(firings)

    def _run_pathways(self, scored, now: float) -> bool:
        try:
            # Phone-class detections below the mobile low tier never reach a pathway.
            routable = [
                (d, s) for d, s in scored if not is_phone(d.label) or d.score >= self.mobile_tiers.low
            ]
            firings = self.arbiter.evaluate(routable)
        except Exception:
            logger.exception("engine.stage_failed stage=pathways")
            return False
        for firing in firings:
            self.emitter.emit(
                ViolationType.MOBILE_PHONE,
                firing.message,
                firing.severity,
                pathway=firing.pathway.value,
                now=now,
            )
            self.stats.object_detections += 1
            self.stats.reliable_detections += 1
        return bool(firings)

    def _run_held_timer(self, scored, fired: bool, now: float) -> None:
        try:
            has_candidate = any(self._is_candidate(d, s) for d, s in scored)
            elapsed = self.held_timer.update(has_candidate, now, suppressed=fired)
        except Exception:
            logger.exception("engine.stage_failed stage=held_timer")
            return
        if elapsed is None:
            return
        self.emitter.emit(
            ViolationType.MOBILE_PHONE,
            f"Suspicious object held in hand for {elapsed:.1f} seconds",
            Severity.MEDIUM,
            pathway="held_object_timer",
            now=now,
        )
        self.stats.object_detections += 1

    def _run_misclassified(self, detections: Sequence[ObjectDetection], now: float) -> None:
        try:
            firings = self.misclassified.update(detections, now)
        except Exception:
            logger.exception("engine.stage_failed stage=misclassified")
            return
        for firing in firings:
            violation_type = (
                ViolationType.MISCLASSIFIED_OBJECT
                if firing.kind == "person_only"
                else ViolationType.UNKNOWN_OBJECT
            )
            self.emitter.emit(violation_type, firing.message, Severity.MEDIUM, fallback=True, now=now)

    def _is_candidate(self, detection: ObjectDetection, suspicion: int) -> bool:
        if is_phone(detection.label) and detection.score >= self.mobile_tiers.low:
            return True
        return suspicion >= self.candidate_score

    def _count_focus(self, violation_type: str) -> None:
        stats = self.stats
        if violation_type == "multiple_faces":
            stats.multiple_faces += 1
            return
        stats.focus_violations += 1
        if violation_type == "no_face":
            stats.no_face += 1
        else:
            stats.looking_away += 1


def _resolve_tiers(tiers: TiersInput) -> Optional[ConfidenceTiers]:
    if tiers is None or isinstance(tiers, ConfidenceTiers):
        return tiers
    if not isinstance(tiers, Mapping):
        raise ConfigurationError("tiers must be a mapping with high, medium and low")
    try:
        return ConfidenceTiers(
            high=tiers.get("high", 0.8),
            medium=tiers.get("medium", 0.5),
            low=tiers.get("low", 0.2),
        )
    except TypeError as exc:
        raise ConfigurationError(str(exc)) from exc
