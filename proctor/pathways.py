import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from proctor.detections import ObjectDetection
from proctor.lexicon import is_person, is_phone

logger = logging.getLogger(__name__)


class Pathway(str, Enum):
    DIRECT = "direct_mobile_detection"
    MISCLASSIFIED = "misclassified_mobile_object"
    PERSON_WITH_OBJECT = "person_with_suspicious_object"
    HIGH_SUSPICION = "highly_suspicious_object"
    SUSTAINED = "consecutive_suspicious_behavior"


@dataclass(frozen=True)
class PathwayConfig:
    direct_count: int = 3
    misclassified_score: int = 100
    misclassified_count: int = 2
    person_score: int = 75
    person_count: int = 4
    high_score: int = 150
    high_count: int = 1
    sustained_score: int = 50
    sustained_count: int = 5


@dataclass(frozen=True)
class PathwayFiring:
    pathway: Pathway
    severity: str
    label: str
    detection_score: float
    suspicion: int
    message: str


class PathwayArbiter:
    def __init__(self, config: Optional[PathwayConfig] = None) -> None:
        self.config = config or PathwayConfig()
        self._counts: Dict[Pathway, int] = {pathway: 0 for pathway in Pathway}

    def counts(self) -> Dict[str, int]:
        return {pathway.value: count for pathway, count in self._counts.items()}

    def reset(self) -> None:
        for pathway in self._counts:
            self._counts[pathway] = 0

    def evaluate(self, scored: Sequence[Tuple[ObjectDetection, int]]) -> List[PathwayFiring]:
        firings: List[PathwayFiring] = []
        routed = False
        for detection, suspicion in scored:
            if suspicion <= 0:
                continue
            routed = True
            firing = self._route(detection, suspicion)
            if firing is not None:
                firings.append(firing)
        if not routed and self._counts[Pathway.SUSTAINED]:
            logger.debug("pathways.sustained_reset reason=no_candidates")
            self._counts[Pathway.SUSTAINED] = 0
        return firings

    def _route(self, detection: ObjectDetection, suspicion: int) -> Optional[PathwayFiring]:
        config = self.config
        if is_phone(detection.label):
            return self._advance(Pathway.DIRECT, config.direct_count, "high", detection, suspicion)
        if suspicion >= config.misclassified_score:
            return self._advance(
                Pathway.MISCLASSIFIED, config.misclassified_count, "high", detection, suspicion
            )
        if is_person(detection.label) and suspicion >= config.person_score:
            return self._advance(
                Pathway.PERSON_WITH_OBJECT, config.person_count, "medium", detection, suspicion
            )
        if suspicion >= config.high_score:
            return self._advance(Pathway.HIGH_SUSPICION, config.high_count, "high", detection, suspicion)
        if suspicion >= config.sustained_score:
            return self._advance(
                Pathway.SUSTAINED, config.sustained_count, "medium", detection, suspicion
            )
        self._counts[Pathway.SUSTAINED] = 0
        return None

    def _advance(
        self,
        pathway: Pathway,
        threshold: int,
        severity: str,
        detection: ObjectDetection,
        suspicion: int,
    ) -> Optional[PathwayFiring]:
        self._counts[pathway] += 1
        count = self._counts[pathway]
        logger.debug(
            "pathways.advance pathway=%s count=%d threshold=%d label=%s suspicion=%d",
            pathway.value,
            count,
            threshold,
            detection.label,
            suspicion,
        )
        if count < threshold:
            return None
        self.reset()
        logger.info(
            "pathways.fired pathway=%s label=%s suspicion=%d severity=%s",
            pathway.value,
            detection.label,
            suspicion,
            severity,
        )
        return PathwayFiring(
            pathway=pathway,
            severity=severity,
            label=detection.label,
            detection_score=detection.score,
            suspicion=suspicion,
            message=_message(pathway, detection, suspicion, threshold),
        )


class HeldObjectTimer:
    def __init__(self, limit_seconds: float = 3.0) -> None:
        self.limit_seconds = limit_seconds
        self._started_at: Optional[float] = None

    @property
    def started_at(self) -> Optional[float]:
        return self._started_at

    def update(
        self, has_candidate: bool, now: Optional[float] = None, suppressed: bool = False
    ) -> Optional[float]:
        now = time.time() if now is None else now
        if not has_candidate:
            if self._started_at is not None:
                logger.debug("held_timer.reset")
            self._started_at = None
            return None
        if self._started_at is None or suppressed:
            self._started_at = now
            return None
        elapsed = now - self._started_at
        if elapsed < self.limit_seconds:
            return None
        self._started_at = now
        logger.info("held_timer.fired elapsed=%.1f", elapsed)
        return elapsed

    def reset(self) -> None:
        self._started_at = None


def _message(pathway: Pathway, detection: ObjectDetection, suspicion: int, threshold: int) -> str:
    if pathway is Pathway.DIRECT:
        return f"Direct mobile phone detected: {detection.label} ({detection.score * 100:.1f}% confidence)"
    if pathway is Pathway.MISCLASSIFIED:
        return f"Misclassified mobile phone detected: {detection.label} with {suspicion} suspiciousness points"
    if pathway is Pathway.PERSON_WITH_OBJECT:
        return f"Person detected holding suspicious object: {suspicion} suspiciousness points"
    if pathway is Pathway.HIGH_SUSPICION:
        return f"Highly suspicious object detected: {detection.label} with {suspicion} points"
    return f"Consecutive suspicious behavior: {detection.label} detected in {threshold} frames"
