import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundingBox:
    x: float
    y: float
    w: float
    h: float

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.w / 2.0, self.y + self.h / 2.0)

    @property
    def longest_side(self) -> float:
        return max(self.w, self.h)

    @property
    def aspect_ratio(self) -> Optional[float]:
        if self.h <= 0:
            return None
        return self.w / self.h

    def has_area(self) -> bool:
        return self.w > 0 and self.h > 0


@dataclass(frozen=True)
class ObjectDetection:
    label: str
    score: float
    bbox: BoundingBox


@dataclass(frozen=True)
class HandDetection:
    bbox: BoundingBox
    label: str
    confidence: float


@dataclass
class Face:
    bounding_box: Optional[BoundingBox] = None
    landmarks: Optional[np.ndarray] = None


@dataclass
class DetectionFrame:
    objects: List[ObjectDetection] = field(default_factory=list)
    faces: List[Face] = field(default_factory=list)
    hands: List[HandDetection] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)


def coerce_objects(records: Optional[Iterable[Any]]) -> List[ObjectDetection]:
    detections: List[ObjectDetection] = []
    for index, record in enumerate(records or ()):
        if isinstance(record, ObjectDetection):
            detections.append(record)
            continue
        try:
            detections.append(_object_from_mapping(record))
        except (TypeError, ValueError, KeyError) as exc:
            logger.warning("detections.object_skipped index=%d reason=%s", index, exc)
    return detections


def coerce_hands(records: Optional[Iterable[Any]]) -> List[HandDetection]:
    hands: List[HandDetection] = []
    for index, record in enumerate(records or ()):
        if isinstance(record, HandDetection):
            hands.append(record)
            continue
        try:
            hands.append(_hand_from_mapping(record))
        except (TypeError, ValueError, KeyError) as exc:
            logger.warning("detections.hand_skipped index=%d reason=%s", index, exc)
    return hands


def coerce_faces(records: Optional[Iterable[Any]]) -> List[Face]:
    faces: List[Face] = []
    for index, record in enumerate(records or ()):
        if isinstance(record, Face):
            faces.append(record)
            continue
        try:
            faces.append(_face_from_mapping(record))
        except (TypeError, ValueError, KeyError) as exc:
            logger.warning("detections.face_skipped index=%d reason=%s", index, exc)
    return faces


def parse_bbox(raw: Any) -> BoundingBox:
    if isinstance(raw, BoundingBox):
        return raw
    if isinstance(raw, Mapping):
        if "w" in raw or "width" in raw:
            values = (
                raw["x"],
                raw["y"],
                raw.get("w", raw.get("width")),
                raw.get("h", raw.get("height")),
            )
        else:
            # MediaPipe style boundingBox
            values = (raw["xMin"], raw["yMin"], raw["width"], raw["height"])
    elif isinstance(raw, (list, tuple)) and len(raw) >= 4:
        values = tuple(raw[:4])
    else:
        raise ValueError("bbox_invalid")
    x, y, w, h = (_to_number(v) for v in values)
    if w < 0 or h < 0:
        raise ValueError("bbox_negative")
    return BoundingBox(x, y, w, h)


def _object_from_mapping(record: Any) -> ObjectDetection:
    if not isinstance(record, Mapping):
        raise TypeError("record_not_mapping")
    label = record.get("class", record.get("label"))
    if not isinstance(label, str) or not label.strip():
        raise ValueError("class_missing")
    if "score" not in record:
        raise ValueError("score_missing")
    score = _clamp01(_to_number(record["score"]))
    raw_bbox = record.get("bbox", record.get("boundingBox"))
    if raw_bbox is None:
        raise ValueError("bbox_missing")
    return ObjectDetection(label=label.strip(), score=score, bbox=parse_bbox(raw_bbox))


def _hand_from_mapping(record: Any) -> HandDetection:
    if not isinstance(record, Mapping):
        raise TypeError("record_not_mapping")
    raw_bbox = record.get("bbox")
    if raw_bbox is None and "x" in record:
        raw_bbox = record
    if raw_bbox is None:
        raise ValueError("bbox_missing")
    label = str(record.get("label", "unknown")).strip().lower() or "unknown"
    confidence = _clamp01(_to_number(record.get("confidence", record.get("score", 0.0))))
    return HandDetection(bbox=parse_bbox(raw_bbox), label=label, confidence=confidence)


def _face_from_mapping(record: Any) -> Face:
    if not isinstance(record, Mapping):
        raise TypeError("record_not_mapping")
    bbox = None
    raw_bbox = record.get("bounding_box", record.get("boundingBox", record.get("bbox")))
    if raw_bbox is not None:
        bbox = parse_bbox(raw_bbox)
    landmarks = None
    raw_landmarks = record.get("landmarks")
    if raw_landmarks is not None:
        landmarks = _landmarks_array(raw_landmarks)
    if bbox is None and landmarks is None:
        raise ValueError("face_empty")
    return Face(bounding_box=bbox, landmarks=landmarks)


def _landmarks_array(raw: Any) -> np.ndarray:
    points = []
    for point in raw:
        if isinstance(point, Mapping):
            points.append((_to_number(point["x"]), _to_number(point["y"])))
        else:
            points.append((_to_number(point[0]), _to_number(point[1])))
    if not points:
        raise ValueError("landmarks_empty")
    return np.asarray(points, dtype=np.float64)


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError("not_a_number")
    if isinstance(value, (int, float, np.floating, np.integer)):
        number = float(value)
    elif isinstance(value, str):
        number = float(value)
    else:
        raise TypeError("not_a_number")
    if not np.isfinite(number):
        raise ValueError("not_finite")
    return number


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))
