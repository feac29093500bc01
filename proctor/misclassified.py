import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from proctor.detections import ObjectDetection
from proctor.lexicon import is_known, is_person

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MisclassifiedConfig:
    person_only_frames: int = 8
    person_min_score: float = 0.7
    cooldown_seconds: float = 10.0
    unknown_object_frames: int = 5
    unknown_max_score: float = 0.6


@dataclass(frozen=True)
class HeuristicFiring:
    kind: str
    label: str
    score: float
    frames: int
    message: str


class MisclassifiedObjectHeuristic:
    def __init__(self, config: Optional[MisclassifiedConfig] = None) -> None:
        self.config = config or MisclassifiedConfig()
        self.person_only_frames = 0
        self.unknown_object_frames = 0
        self.last_violation_time: Optional[float] = None

    def update(
        self, detections: Sequence[ObjectDetection], now: Optional[float] = None
    ) -> List[HeuristicFiring]:
        now = time.time() if now is None else now
        firings: List[HeuristicFiring] = []
        persons = [d for d in detections if is_person(d.label)]
        others = [d for d in detections if not is_person(d.label)]

        firing = self._check_person_only(persons, others, now)
        if firing is not None:
            firings.append(firing)
        firing = self._check_unknown(others)
        if firing is not None:
            firings.append(firing)
        return firings

    def cooldown_remaining(self, now: float) -> float:
        if self.last_violation_time is None:
            return 0.0
        return max(0.0, self.config.cooldown_seconds - (now - self.last_violation_time))

    def reset(self) -> None:
        self.person_only_frames = 0
        self.unknown_object_frames = 0
        self.last_violation_time = None

    def _check_person_only(
        self,
        persons: Sequence[ObjectDetection],
        others: Sequence[ObjectDetection],
        now: float,
    ) -> Optional[HeuristicFiring]:
        config = self.config
        if not persons or others:
            self.person_only_frames = 0
            return None
        confident = next((p for p in persons if p.score >= config.person_min_score), None)
        if confident is None:
            self.person_only_frames = max(0, self.person_only_frames - 1)
            return None
        self.person_only_frames += 1
        logger.debug(
            "misclassified.person_only frames=%d threshold=%d score=%.2f",
            self.person_only_frames,
            config.person_only_frames,
            confident.score,
        )
        if self.person_only_frames < config.person_only_frames:
            return None
        remaining = self.cooldown_remaining(now)
        if remaining > 0:
            logger.debug("misclassified.cooldown remaining=%.1f", remaining)
            return None
        frames = self.person_only_frames
        self.person_only_frames = 0
        self.last_violation_time = now
        logger.info("misclassified.person_only_fired frames=%d score=%.2f", frames, confident.score)
        return HeuristicFiring(
            kind="person_only",
            label=confident.label,
            score=confident.score,
            frames=frames,
            message=(
                f"Person detected holding unidentified object for {frames} consecutive frames "
                f"({confident.score * 100:.1f}% confidence)"
            ),
        )

    def _check_unknown(self, others: Sequence[ObjectDetection]) -> Optional[HeuristicFiring]:
        config = self.config
        unknown = [
            d for d in others if not is_known(d.label) and d.score < config.unknown_max_score
        ]
        if not unknown:
            self.unknown_object_frames = 0
            return None
        self.unknown_object_frames += 1
        logger.debug(
            "misclassified.unknown frames=%d threshold=%d label=%s",
            self.unknown_object_frames,
            config.unknown_object_frames,
            unknown[0].label,
        )
        if self.unknown_object_frames < config.unknown_object_frames:
            return None
        frames = self.unknown_object_frames
        self.unknown_object_frames = 0
        first = unknown[0]
        logger.info("misclassified.unknown_fired label=%s frames=%d", first.label, frames)
        return HeuristicFiring(
            kind="unknown_object",
            label=first.label,
            score=first.score,
            frames=frames,
            message=f'Unknown object "{first.label}" detected with {first.score * 100:.1f}% confidence',
        )
