import logging
from typing import List, Optional, Tuple

import cv2
import numpy as np

from proctor.detections import BoundingBox, Face, HandDetection

logger = logging.getLogger(__name__)


class FaceMeshDetector:
    def __init__(self, max_faces: int = 3, min_confidence: float = 0.5) -> None:
        self.max_faces = max(1, max_faces)
        self.min_confidence = min_confidence
        self._mp_face = None
        self._init_mp()

    def ready(self) -> bool:
        return self._mp_face is not None

    def detect(self, frame: np.ndarray) -> List[Face]:
        if self._mp_face is None:
            return []
        h, w = frame.shape[:2]
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        results = self._mp_face.process(rgb)
        if not results.multi_face_landmarks:
            return []
        faces: List[Face] = []
        for face in results.multi_face_landmarks:
            landmarks = _landmarks_to_pixels(face.landmark, w, h)
            if landmarks.shape[0] == 0:
                continue
            faces.append(Face(bounding_box=_landmark_bbox(landmarks, w, h, 0), landmarks=landmarks))
        return faces

    def close(self) -> None:
        if self._mp_face is not None:
            self._mp_face.close()
            self._mp_face = None

    def _init_mp(self) -> None:
        try:
            import mediapipe as mp  # type: ignore
        except Exception:
            logger.warning("face_mesh.unavailable reason=mediapipe_missing")
            return
        try:
            self._mp_face = mp.solutions.face_mesh.FaceMesh(
                static_image_mode=False,
                max_num_faces=self.max_faces,
                refine_landmarks=False,
                min_detection_confidence=self.min_confidence,
                min_tracking_confidence=self.min_confidence,
            )
            logger.info("face_mesh.ready max_faces=%d", self.max_faces)
        except Exception:
            self._mp_face = None
            logger.warning("face_mesh.unavailable reason=init_failed")


class HandLandmarkDetector:
    def __init__(self, max_hands: int = 2, min_confidence: float = 0.5, padding: int = 20) -> None:
        self.max_hands = max(1, max_hands)
        self.min_confidence = min_confidence
        self.padding = padding
        self._mp_hands = None
        self._init_mp()

    def ready(self) -> bool:
        return self._mp_hands is not None

    def detect(self, frame: np.ndarray) -> List[HandDetection]:
        if self._mp_hands is None:
            return []
        h, w = frame.shape[:2]
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        results = self._mp_hands.process(rgb)
        if not results.multi_hand_landmarks:
            return []
        handedness = results.multi_handedness or []
        hands: List[HandDetection] = []
        for index, hand in enumerate(results.multi_hand_landmarks):
            landmarks = _landmarks_to_pixels(hand.landmark, w, h)
            if landmarks.shape[0] == 0:
                continue
            label, confidence = _handedness(handedness, index)
            hands.append(
                HandDetection(
                    bbox=_landmark_bbox(landmarks, w, h, self.padding),
                    label=label,
                    confidence=confidence,
                )
            )
        return hands

    def close(self) -> None:
        if self._mp_hands is not None:
            self._mp_hands.close()
            self._mp_hands = None

    def _init_mp(self) -> None:
        try:
            import mediapipe as mp  # type: ignore
        except Exception:
            logger.warning("hand_landmarks.unavailable reason=mediapipe_missing")
            return
        try:
            self._mp_hands = mp.solutions.hands.Hands(
                static_image_mode=False,
                max_num_hands=self.max_hands,
                model_complexity=1,
                min_detection_confidence=self.min_confidence,
                min_tracking_confidence=self.min_confidence,
            )
            logger.info("hand_landmarks.ready max_hands=%d", self.max_hands)
        except Exception:
            self._mp_hands = None
            logger.warning("hand_landmarks.unavailable reason=init_failed")


def _landmarks_to_pixels(points, w: int, h: int) -> np.ndarray:
    coords = [(lm.x * w, lm.y * h, lm.z * w) for lm in points]
    if not coords:
        return np.zeros((0, 3), dtype=np.float64)
    return np.asarray(coords, dtype=np.float64)


def _landmark_bbox(landmarks: np.ndarray, w: int, h: int, padding: int) -> BoundingBox:
    x1 = max(0.0, float(landmarks[:, 0].min()) - padding)
    y1 = max(0.0, float(landmarks[:, 1].min()) - padding)
    x2 = min(float(w), float(landmarks[:, 0].max()) + padding)
    y2 = min(float(h), float(landmarks[:, 1].max()) + padding)
    return BoundingBox(x1, y1, max(0.0, x2 - x1), max(0.0, y2 - y1))


def _handedness(handedness, index: int) -> Tuple[str, float]:
    if index >= len(handedness):
        return "unknown", 0.0
    classification: Optional[object] = None
    entries = getattr(handedness[index], "classification", None)
    if entries:
        classification = entries[0]
    if classification is None:
        return "unknown", 0.0
    label = str(getattr(classification, "label", "unknown")).lower()
    score = float(getattr(classification, "score", 0.0))
    return label, score
