import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from proctor.detections import BoundingBox, HandDetection, ObjectDetection
from proctor.lexicon import is_misclassifiable, is_phone

logger = logging.getLogger(__name__)

Range = Tuple[float, float]


@dataclass(frozen=True)
class ScoringWeights:
    phone_class: int = 100
    misclassified_class: int = 25
    shape_primary: int = 50
    shape_secondary: int = 25
    portrait_range: Range = (0.4, 0.6)
    landscape_range: Range = (1.6, 2.5)
    secondary_shape_ranges: Tuple[Range, ...] = ((0.3, 0.7), (1.4, 3.0))
    size_primary: int = 25
    size_secondary: int = 10
    size_range: Range = (30.0, 200.0)
    # Exclusive on both ends.
    size_secondary_range: Range = (140.0, 300.0)
    hand_base: int = 50
    hand_confidence_bonus: int = 20
    low_confidence_cutoff: float = 0.6
    low_confidence_multiplier: int = 50
    hand_region_lower_ratio: float = 0.6
    hand_region_side_margin: float = 0.3


@dataclass
class FrameContext:
    hands: Sequence[HandDetection] = field(default_factory=list)
    person: Optional[ObjectDetection] = None


@dataclass
class ScoreBreakdown:
    classification: int = 0
    shape: int = 0
    size: int = 0
    context: int = 0
    low_confidence_boost: int = 0
    in_person_hand_region: bool = False

    @property
    def total(self) -> int:
        return self.classification + self.shape + self.size + self.context + self.low_confidence_boost


class SuspicionScorer:
    def __init__(self, weights: Optional[ScoringWeights] = None) -> None:
        self.weights = weights or ScoringWeights()

    def score(self, detection: ObjectDetection, context: Optional[FrameContext] = None) -> int:
        return self.breakdown(detection, context).total

    def breakdown(
        self, detection: ObjectDetection, context: Optional[FrameContext] = None
    ) -> ScoreBreakdown:
        context = context or FrameContext()
        weights = self.weights
        result = ScoreBreakdown()
        result.classification = self._classification_term(detection.label)

        bbox = detection.bbox
        if bbox.has_area():
            result.shape = self._shape_term(bbox)
            result.size = self._size_term(bbox)
            result.context = self._context_term(bbox, context.hands)
            if context.person is not None:
                result.in_person_hand_region = _in_hand_region(
                    bbox,
                    context.person.bbox,
                    weights.hand_region_lower_ratio,
                    weights.hand_region_side_margin,
                )

        if detection.score < weights.low_confidence_cutoff and result.total > 0:
            result.low_confidence_boost = _round_half_up(
                (weights.low_confidence_cutoff - detection.score) * weights.low_confidence_multiplier
            )

        if result.total > 0:
            logger.debug(
                "scorer.breakdown label=%s score=%.2f class=%d shape=%d size=%d context=%d "
                "boost=%d total=%d in_person_hand_region=%s",
                detection.label,
                detection.score,
                result.classification,
                result.shape,
                result.size,
                result.context,
                result.low_confidence_boost,
                result.total,
                result.in_person_hand_region,
            )
        return result

    def _classification_term(self, label: str) -> int:
        if is_phone(label):
            return self.weights.phone_class
        if is_misclassifiable(label):
            return self.weights.misclassified_class
        return 0

    def _shape_term(self, bbox: BoundingBox) -> int:
        ratio = bbox.aspect_ratio
        if ratio is None:
            return 0
        weights = self.weights
        if _within(ratio, weights.portrait_range) or _within(ratio, weights.landscape_range):
            return weights.shape_primary
        if any(_within(ratio, bounds) for bounds in weights.secondary_shape_ranges):
            return weights.shape_secondary
        return 0

    def _size_term(self, bbox: BoundingBox) -> int:
        side = bbox.longest_side
        weights = self.weights
        if _within(side, weights.size_range):
            return weights.size_primary
        low, high = weights.size_secondary_range
        if low < side < high:
            return weights.size_secondary
        return 0

    def _context_term(self, bbox: BoundingBox, hands: Sequence[HandDetection]) -> int:
        if not hands:
            return 0
        ox, oy = bbox.center
        nearest: Optional[HandDetection] = None
        nearest_distance = math.inf
        for hand in hands:
            hx, hy = hand.bbox.center
            distance = math.hypot(ox - hx, oy - hy)
            reach = hand.bbox.longest_side / 2.0 + bbox.longest_side / 2.0
            if distance < reach and distance < nearest_distance:
                nearest = hand
                nearest_distance = distance
        if nearest is None:
            return 0
        weights = self.weights
        return weights.hand_base + _round_half_up(nearest.confidence * weights.hand_confidence_bonus)


def score_all(
    scorer: SuspicionScorer,
    detections: Sequence[ObjectDetection],
    context: FrameContext,
) -> List[Tuple[ObjectDetection, int]]:
    return [(detection, scorer.score(detection, context)) for detection in detections]


def _within(value: float, bounds: Range) -> bool:
    low, high = bounds
    return low <= value <= high


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _in_hand_region(
    bbox: BoundingBox, person: BoundingBox, lower_ratio: float, side_margin: float
) -> bool:
    cx, cy = bbox.center
    top = person.y + person.h * (1.0 - lower_ratio)
    left = person.x - person.w * side_margin
    right = person.x + person.w * (1.0 + side_margin)
    return left <= cx <= right and top <= cy <= person.y + person.h
