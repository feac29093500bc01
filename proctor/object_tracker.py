import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from proctor.detections import ObjectDetection
from proctor.lexicon import label_matches, normalize_label, terms_for_type

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    pass


@dataclass(frozen=True)
class ConfidenceTiers:
    high: float = 0.8
    medium: float = 0.5
    low: float = 0.2

    def validate(self) -> None:
        for name in ("high", "medium", "low"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
                raise ConfigurationError(f"tier {name} must be a number")
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"tier {name} must be within [0, 1]")
        if not self.high >= self.medium >= self.low:
            raise ConfigurationError("tiers must satisfy high >= medium >= low")

    def classify(self, score: float) -> Optional[str]:
        if score >= self.high:
            return "high"
        if score >= self.medium:
            return "medium"
        if score >= self.low:
            return "low"
        return None


@dataclass
class ObjectTrackState:
    consecutive_detections: int = 0
    missed_frames: int = 0
    last_detection_time: Optional[float] = None
    confidence: float = 0.0


@dataclass
class TrackedType:
    name: str
    terms: Tuple[str, ...]
    grace_period: int
    violation_threshold: int
    tiers: Optional[ConfidenceTiers] = None
    state: ObjectTrackState = field(default_factory=ObjectTrackState)


@dataclass(frozen=True)
class TrackerFiring:
    object_type: str
    count: int
    confidence: float
    severity: str


# Per-type hysteresis defaults: (grace_period, violation_threshold)
DEFAULT_TYPE_OVERRIDES: Dict[str, Tuple[int, int]] = {
    "mobile": (3, 3),
    "book": (4, 4),
}


class ObjectTracker:
    """Per-type hysteresis over noisy per-frame object detections.

    Each registered type keeps a consecutive-detection count that only grows
    on medium or high confidence matches, and a miss counter that tolerates
    up to ``grace_period`` empty frames before the count is dropped. When the
    count reaches the type's threshold a firing is returned and the count is
    cut back to ``floor(threshold * retention_fraction)`` so the next firing
    needs fresh evidence without starting from zero.
    """

    def __init__(
        self,
        tiers: Optional[ConfidenceTiers] = None,
        default_grace_period: int = 2,
        default_violation_threshold: int = 3,
        retention_fraction: float = 0.5,
        type_overrides: Optional[Dict[str, Tuple[int, int]]] = None,
        initial_types: Iterable[str] = ("mobile", "book"),
    ) -> None:
        self.tiers = tiers or ConfidenceTiers()
        self.tiers.validate()
        _check_positive_int("default_grace_period", default_grace_period, allow_zero=True)
        _check_positive_int("default_violation_threshold", default_violation_threshold)
        if not 0.0 <= retention_fraction < 1.0:
            raise ConfigurationError("retention_fraction must be within [0, 1)")
        self.default_grace_period = default_grace_period
        self.default_violation_threshold = default_violation_threshold
        self.retention_fraction = retention_fraction
        self._overrides = dict(DEFAULT_TYPE_OVERRIDES)
        if type_overrides:
            self._overrides.update(type_overrides)
        self._types: Dict[str, TrackedType] = {}
        self._updates = 0
        for name in initial_types:
            self.register(name)

    def register(
        self,
        name: str,
        grace_period: Optional[int] = None,
        violation_threshold: Optional[int] = None,
        terms: Optional[Sequence[str]] = None,
        tiers: Optional[ConfidenceTiers] = None,
    ) -> bool:
        if not isinstance(name, str) or not normalize_label(name):
            raise ConfigurationError("object type name must be a non-empty string")
        key = normalize_label(name)
        if grace_period is not None:
            _check_positive_int("grace_period", grace_period, allow_zero=True)
        if violation_threshold is not None:
            _check_positive_int("violation_threshold", violation_threshold)
        if tiers is not None:
            tiers.validate()
        search_terms: Tuple[str, ...]
        if terms is not None:
            search_terms = tuple(normalize_label(t) for t in terms if isinstance(t, str) and t.strip())
            if not search_terms:
                raise ConfigurationError("terms must contain at least one non-empty string")
        else:
            search_terms = terms_for_type(key)

        if key in self._types:
            return False
        override_grace, override_threshold = self._overrides.get(
            key, (self.default_grace_period, self.default_violation_threshold)
        )
        tracked = TrackedType(
            name=key,
            terms=search_terms,
            grace_period=override_grace if grace_period is None else grace_period,
            violation_threshold=override_threshold if violation_threshold is None else violation_threshold,
            tiers=tiers,
        )
        self._types[key] = tracked
        logger.info(
            "tracker.type_registered object_type=%s grace_period=%d violation_threshold=%d terms=%s",
            key,
            tracked.grace_period,
            tracked.violation_threshold,
            ",".join(tracked.terms),
        )
        return True

    def types(self) -> List[str]:
        return list(self._types.keys())

    def get(self, name: str) -> Optional[TrackedType]:
        return self._types.get(normalize_label(name))

    def update(
        self, detections: Sequence[ObjectDetection], now: Optional[float] = None
    ) -> List[TrackerFiring]:
        now = time.time() if now is None else now
        self._updates += 1
        firings: List[TrackerFiring] = []
        for tracked in self._types.values():
            match = self._best_match(tracked, detections)
            if match is not None:
                self._on_detected(tracked, match, now)
            else:
                self._on_missed(tracked)
            firing = self._check_violation(tracked)
            if firing is not None:
                firings.append(firing)
        if self._updates % 30 == 0 and logger.isEnabledFor(logging.DEBUG):
            for name, info in self.status().items():
                logger.debug(
                    "tracker.status object_type=%s status=%s confidence=%.2f last_seen=%s",
                    name,
                    info["status"],
                    info["confidence"],
                    info["last_seen"],
                )
        return firings

    def status(self) -> Dict[str, Dict[str, object]]:
        result: Dict[str, Dict[str, object]] = {}
        for name, tracked in self._types.items():
            state = tracked.state
            result[name] = {
                "is_active": state.consecutive_detections > 0,
                "consecutive_detections": state.consecutive_detections,
                "missed_frames": state.missed_frames,
                "last_seen": _format_last_seen(state.last_detection_time),
                "confidence": state.confidence,
                "grace_period": tracked.grace_period,
                "violation_threshold": tracked.violation_threshold,
                "status": _human_status(tracked),
            }
        return result

    def reset(self) -> None:
        for tracked in self._types.values():
            tracked.state = ObjectTrackState()
        self._updates = 0

    def _tiers_for(self, tracked: TrackedType) -> ConfidenceTiers:
        return tracked.tiers or self.tiers

    def _best_match(
        self, tracked: TrackedType, detections: Sequence[ObjectDetection]
    ) -> Optional[ObjectDetection]:
        best: Optional[ObjectDetection] = None
        for detection in detections:
            if not label_matches(detection.label, tracked.terms):
                continue
            if best is None or detection.score > best.score:
                best = detection
        return best

    def _on_detected(self, tracked: TrackedType, detection: ObjectDetection, now: float) -> None:
        state = tracked.state
        tier = self._tiers_for(tracked).classify(detection.score)
        if tier is None:
            logger.debug(
                "tracker.ignored object_type=%s score=%.2f", tracked.name, detection.score
            )
            return
        if tier in ("high", "medium"):
            state.consecutive_detections += 1
        state.missed_frames = 0
        state.confidence = detection.score
        state.last_detection_time = now
        logger.debug(
            "tracker.detected object_type=%s tier=%s score=%.2f consecutive=%d",
            tracked.name,
            tier,
            detection.score,
            state.consecutive_detections,
        )

    def _on_missed(self, tracked: TrackedType) -> None:
        state = tracked.state
        state.missed_frames += 1
        if state.missed_frames > tracked.grace_period:
            if state.consecutive_detections > 0:
                logger.info(
                    "tracker.lost object_type=%s missed_frames=%d grace_period=%d",
                    tracked.name,
                    state.missed_frames,
                    tracked.grace_period,
                )
            state.consecutive_detections = 0
            state.confidence = 0.0
        else:
            logger.debug(
                "tracker.grace object_type=%s missed_frames=%d grace_period=%d",
                tracked.name,
                state.missed_frames,
                tracked.grace_period,
            )

    def _check_violation(self, tracked: TrackedType) -> Optional[TrackerFiring]:
        state = tracked.state
        tiers = self._tiers_for(tracked)
        threshold = tracked.violation_threshold
        if state.consecutive_detections < threshold or state.confidence < tiers.medium:
            return None
        severity = "medium"
        if state.confidence >= tiers.high or state.consecutive_detections >= threshold + 2:
            severity = "high"
        firing = TrackerFiring(
            object_type=tracked.name,
            count=state.consecutive_detections,
            confidence=state.confidence,
            severity=severity,
        )
        state.consecutive_detections = int(math.floor(threshold * self.retention_fraction))
        logger.info(
            "tracker.violation object_type=%s count=%d confidence=%.2f severity=%s retained=%d",
            tracked.name,
            firing.count,
            firing.confidence,
            severity,
            state.consecutive_detections,
        )
        return firing


def _check_positive_int(name: str, value: object, allow_zero: bool = False) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer")
    minimum = 0 if allow_zero else 1
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}")


def _format_last_seen(timestamp: Optional[float]) -> str:
    if timestamp is None:
        return "never"
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _human_status(tracked: TrackedType) -> str:
    state = tracked.state
    threshold = tracked.violation_threshold
    if state.consecutive_detections >= threshold:
        return f"VIOLATION READY ({state.consecutive_detections}/{threshold})"
    if state.consecutive_detections > 0:
        return f"TRACKING ({state.consecutive_detections}/{threshold})"
    if 0 < state.missed_frames <= tracked.grace_period:
        return f"GRACE PERIOD ({state.missed_frames}/{tracked.grace_period})"
    return "INACTIVE"
