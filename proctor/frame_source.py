import logging
import threading
import time
from typing import Any, Dict, Iterable, List, Optional, Union

import cv2
import numpy as np

from proctor.detections import (
    Face,
    HandDetection,
    ObjectDetection,
    coerce_faces,
    coerce_hands,
    coerce_objects,
)
from proctor.landmark_detector import FaceMeshDetector, HandLandmarkDetector
from proctor.yolo_detector import YoloDetector

logger = logging.getLogger(__name__)


class FrameSource:
    name = "none"

    def detect_objects(self) -> List[ObjectDetection]:
        return []

    def detect_faces(self) -> List[Face]:
        return []

    def detect_hands(self) -> List[HandDetection]:
        return []

    def advance(self) -> None:
        return None

    def models(self) -> Dict[str, bool]:
        return {"object": False, "face": False, "hands": False}

    def health(self) -> Dict[str, object]:
        return {"source": self.name, "models": self.models()}

    def close(self) -> None:
        return None


class PushFrameSource(FrameSource):
    name = "push"

    def __init__(self, stale_seconds: float = 3.0) -> None:
        self.stale_seconds = stale_seconds
        self._lock = threading.Lock()
        self._objects: List[ObjectDetection] = []
        self._faces: List[Face] = []
        self._hands: List[HandDetection] = []
        self._objects_at: Optional[float] = None
        self._faces_at: Optional[float] = None
        self._hands_at: Optional[float] = None
        self._pushes = 0

    def push(
        self,
        objects: Optional[Iterable[Any]] = None,
        faces: Optional[Iterable[Any]] = None,
        hands: Optional[Iterable[Any]] = None,
        timestamp: Optional[float] = None,
    ) -> Dict[str, int]:
        timestamp = time.time() if timestamp is None else timestamp
        accepted: Dict[str, int] = {}
        with self._lock:
            if objects is not None:
                self._objects = coerce_objects(objects)
                self._objects_at = timestamp
                accepted["objects"] = len(self._objects)
            if faces is not None:
                self._faces = coerce_faces(faces)
                self._faces_at = timestamp
                accepted["faces"] = len(self._faces)
            if hands is not None:
                self._hands = coerce_hands(hands)
                self._hands_at = timestamp
                accepted["hands"] = len(self._hands)
            self._pushes += 1
        logger.debug("push_source.accepted counts=%s", accepted)
        return accepted

    def detect_objects(self) -> List[ObjectDetection]:
        with self._lock:
            return list(self._objects) if self._fresh(self._objects_at) else []

    def detect_faces(self) -> List[Face]:
        with self._lock:
            return list(self._faces) if self._fresh(self._faces_at) else []

    def detect_hands(self) -> List[HandDetection]:
        with self._lock:
            return list(self._hands) if self._fresh(self._hands_at) else []

    def models(self) -> Dict[str, bool]:
        return {"object": True, "face": True, "hands": True}

    def health(self) -> Dict[str, object]:
        payload = super().health()
        with self._lock:
            payload.update(
                {
                    "pushes": self._pushes,
                    "objects_at": self._objects_at,
                    "faces_at": self._faces_at,
                    "hands_at": self._hands_at,
                }
            )
        return payload

    def _fresh(self, pushed_at: Optional[float]) -> bool:
        return pushed_at is not None and time.time() - pushed_at <= self.stale_seconds


class CameraFrameSource(FrameSource):
    name = "camera"

    def __init__(
        self,
        url: Union[str, int],
        yolo_detector: Optional[YoloDetector],
        face_detector: Optional[FaceMeshDetector],
        hand_detector: Optional[HandLandmarkDetector],
        frame_max_age_seconds: float = 0.2,
    ) -> None:
        self.url = _capture_target(url)
        self.yolo_detector = yolo_detector
        self.face_detector = face_detector
        self.hand_detector = hand_detector
        self.frame_max_age_seconds = frame_max_age_seconds
        self._cap: Optional[cv2.VideoCapture] = None
        self._frame: Optional[np.ndarray] = None
        self._frame_at = 0.0
        self._read_failures = 0
        self._lock = threading.Lock()

    def detect_objects(self) -> List[ObjectDetection]:
        if self.yolo_detector is None or not self.yolo_detector.ready():
            return []
        frame = self._current_frame()
        if frame is None:
            return []
        return self.yolo_detector.detect(frame)

    def detect_faces(self) -> List[Face]:
        if self.face_detector is None or not self.face_detector.ready():
            return []
        frame = self._current_frame()
        if frame is None:
            return []
        return self.face_detector.detect(frame)

    def detect_hands(self) -> List[HandDetection]:
        if self.hand_detector is None or not self.hand_detector.ready():
            return []
        frame = self._current_frame()
        if frame is None:
            return []
        return self.hand_detector.detect(frame)

    def advance(self) -> None:
        # Drain the capture buffer on skipped frames.
        with self._lock:
            if self._cap is not None:
                self._cap.grab()

    def models(self) -> Dict[str, bool]:
        return {
            "object": self.yolo_detector is not None and self.yolo_detector.ready(),
            "face": self.face_detector is not None and self.face_detector.ready(),
            "hands": self.hand_detector is not None and self.hand_detector.ready(),
        }

    def health(self) -> Dict[str, object]:
        payload = super().health()
        with self._lock:
            payload.update(
                {
                    "url": str(self.url),
                    "opened": self._cap is not None,
                    "frame_at": self._frame_at or None,
                    "read_failures": self._read_failures,
                }
            )
        return payload

    def close(self) -> None:
        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None
            self._frame = None
        for detector in (self.face_detector, self.hand_detector):
            if detector is not None:
                detector.close()

    def _current_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            now = time.time()
            if self._frame is not None and now - self._frame_at <= self.frame_max_age_seconds:
                return self._frame
            if self._cap is None:
                self._cap = self._open_capture()
                if self._cap is None:
                    return None
            ok, frame = self._cap.read()
            if not ok or frame is None:
                self._read_failures += 1
                logger.warning(
                    "camera_source.read_failed url=%s failures=%d", self.url, self._read_failures
                )
                self._cap.release()
                self._cap = None
                return None
            self._frame = frame
            self._frame_at = now
            return frame

    def _open_capture(self) -> Optional[cv2.VideoCapture]:
        cap = cv2.VideoCapture(self.url)
        if not cap.isOpened():
            cap.release()
            logger.warning("camera_source.open_failed url=%s", self.url)
            return None
        # Reduce latency & buffering
        cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        logger.info("camera_source.opened url=%s", self.url)
        return cap


def _capture_target(url: Union[str, int]) -> Union[str, int]:
    if isinstance(url, str) and url.strip().isdigit():
        return int(url.strip())
    return url
