import logging
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


class ViolationType(str, Enum):
    MOBILE_PHONE = "mobile_phone_detected"
    OBJECT_STATEFUL = "object_detected_stateful"
    MISCLASSIFIED_OBJECT = "misclassified_object_detected"
    UNKNOWN_OBJECT = "unknown_object_detected"
    MULTIPLE_FACES = "multiple_faces"
    NO_FACE = "no_face"
    LOOKING_AWAY = "looking_away"
    FOCUS_LOST = "focus_lost"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class Violation:
    type: str
    message: str
    severity: str
    timestamp: float
    confidence: float
    pathway: Optional[str] = None
    object_type: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


ViolationSink = Callable[[Violation], None]


class ViolationEmitter:
    def __init__(
        self,
        sink: Optional[ViolationSink] = None,
        model_confidence: float = 0.9,
        fallback_confidence: float = 0.6,
        history_size: int = 500,
    ) -> None:
        self._sink = sink
        self.model_confidence = model_confidence
        self.fallback_confidence = fallback_confidence
        self.model_backed = True
        self._history: Deque[Violation] = deque(maxlen=max(1, history_size))
        self._batch: List[Violation] = []
        self._last_emitted: Dict[str, float] = {}
        self._counts: Dict[str, int] = {}
        self._total = 0
        self._closed = False
        self._lock = threading.Lock()

    def set_sink(self, sink: Optional[ViolationSink]) -> None:
        self._sink = sink

    def emit(
        self,
        violation_type: str,
        message: str,
        severity: str,
        *,
        pathway: Optional[str] = None,
        object_type: Optional[str] = None,
        fallback: bool = False,
        confidence: Optional[float] = None,
        now: Optional[float] = None,
    ) -> Optional[Violation]:
        if self._closed:
            return None
        now = time.time() if now is None else now
        if confidence is None:
            confidence = self.default_confidence(fallback)
        violation = Violation(
            type=_value(violation_type),
            message=message,
            severity=_value(severity),
            timestamp=now,
            confidence=confidence,
            pathway=pathway,
            object_type=object_type,
        )
        with self._lock:
            self._last_emitted[violation.type] = now
            self._history.append(violation)
            self._batch.append(violation)
            self._counts[violation.type] = self._counts.get(violation.type, 0) + 1
            self._total += 1
        logger.info(
            "violation.emitted type=%s severity=%s confidence=%.2f pathway=%s object_type=%s",
            violation.type,
            violation.severity,
            violation.confidence,
            pathway,
            object_type,
        )
        sink = self._sink
        if sink is not None:
            try:
                sink(violation)
            except Exception:
                logger.exception("violation.sink_failed type=%s", violation.type)
        return violation

    def default_confidence(self, fallback: bool = False) -> float:
        if fallback or not self.model_backed:
            return self.fallback_confidence
        return self.model_confidence

    def last_emitted(self) -> Dict[str, float]:
        with self._lock:
            return dict(self._last_emitted)

    def drain(self) -> List[Violation]:
        with self._lock:
            batch = self._batch
            self._batch = []
        return batch

    def get_violations(self, limit: int = 200, since: Optional[float] = None) -> List[Dict[str, object]]:
        limit = max(1, min(1000, limit))
        with self._lock:
            history = list(self._history)
        results: List[Dict[str, object]] = []
        for violation in reversed(history):
            if since is not None and violation.timestamp <= since:
                continue
            results.append(violation.to_dict())
            if len(results) >= limit:
                break
        results.reverse()
        return results

    def counts(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)

    @property
    def total(self) -> int:
        return self._total

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True
        with self._lock:
            self._batch = []


def _value(item: object) -> str:
    if isinstance(item, Enum):
        return str(item.value)
    return str(item)
