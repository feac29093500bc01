from types import SimpleNamespace
from unittest.mock import MagicMock

import numpy as np
import pytest

from proctor.detections import BoundingBox
from proctor.landmark_detector import (
    FaceMeshDetector,
    HandLandmarkDetector,
    _handedness,
    _landmark_bbox,
    _landmarks_to_pixels,
)
from proctor.yolo_detector import YoloDetector


def _point(x, y, z=0.0):
    return SimpleNamespace(x=x, y=y, z=z)


class TestYoloDetector:
    @pytest.fixture
    def detector(self, monkeypatch):
        monkeypatch.setattr(YoloDetector, "_load", lambda self: None)
        detector = YoloDetector("yolov8n.pt", conf_threshold=0.2, iou_threshold=0.45, device="cpu")
        box = SimpleNamespace(
            cls=np.array([1.0]),
            conf=np.array([0.8]),
            xyxy=np.array([[10.0, 20.0, 60.0, 120.0]]),
        )
        stray = SimpleNamespace(
            cls=np.array([7.0]),
            conf=np.array([0.3]),
            xyxy=np.array([[0.0, 0.0, 5.0, 5.0]]),
        )
        detector._model = MagicMock()
        detector._model.predict.return_value = [SimpleNamespace(boxes=[box, stray])]
        detector._names = ["person", "cell phone"]
        detector._ready = True
        return detector

    def test_detect_converts_boxes(self, detector):
        detections = detector.detect(np.zeros((10, 10, 3), dtype=np.uint8))

        assert [d.label for d in detections] == ["cell phone", "7"]
        assert detections[0].score == pytest.approx(0.8)
        assert detections[0].bbox == BoundingBox(10.0, 20.0, 50.0, 100.0)
        kwargs = detector._model.predict.call_args.kwargs
        assert kwargs["device"] == "cpu"
        assert kwargs["conf"] == 0.2

    def test_not_ready_returns_nothing(self, monkeypatch):
        monkeypatch.setattr(YoloDetector, "_load", lambda self: None)
        detector = YoloDetector("missing.pt", conf_threshold=0.2, iou_threshold=0.45)
        assert detector.ready() is False
        assert detector.detect(np.zeros((10, 10, 3), dtype=np.uint8)) == []


class TestLandmarkHelpers:
    def test_landmarks_to_pixels(self):
        points = _landmarks_to_pixels([_point(0.5, 0.25, 0.1)], 200, 100)
        np.testing.assert_allclose(points, [[100.0, 25.0, 20.0]])
        assert _landmarks_to_pixels([], 200, 100).shape == (0, 3)

    def test_bbox_is_padded_and_clipped(self):
        landmarks = np.array([[5.0, 10.0, 0.0], [95.0, 50.0, 0.0]])
        assert _landmark_bbox(landmarks, 100, 60, 20) == BoundingBox(0.0, 0.0, 100.0, 60.0)
        assert _landmark_bbox(landmarks, 100, 60, 0) == BoundingBox(5.0, 10.0, 90.0, 40.0)

    def test_handedness(self):
        entry = SimpleNamespace(classification=[SimpleNamespace(label="Left", score=0.93)])
        assert _handedness([entry], 0) == ("left", 0.93)
        assert _handedness([entry], 1) == ("unknown", 0.0)
        assert _handedness([SimpleNamespace(classification=[])], 0) == ("unknown", 0.0)


class TestMediapipeDetectors:
    def test_face_mesh_detect(self, monkeypatch):
        monkeypatch.setattr(FaceMeshDetector, "_init_mp", lambda self: None)
        detector = FaceMeshDetector()
        assert detector.ready() is False

        mesh = MagicMock()
        face = SimpleNamespace(landmark=[_point(0.25, 0.5), _point(0.75, 0.5), _point(0.5, 1.0)])
        mesh.process.return_value = SimpleNamespace(multi_face_landmarks=[face])
        detector._mp_face = mesh

        faces = detector.detect(np.zeros((100, 200, 3), dtype=np.uint8))
        assert len(faces) == 1
        assert faces[0].landmarks.shape == (3, 3)
        assert faces[0].bounding_box == BoundingBox(50.0, 50.0, 100.0, 50.0)

        detector.close()
        mesh.close.assert_called_once()
        assert detector.ready() is False

    def test_hand_detect(self, monkeypatch):
        monkeypatch.setattr(HandLandmarkDetector, "_init_mp", lambda self: None)
        detector = HandLandmarkDetector(padding=0)
        hands = MagicMock()
        hand = SimpleNamespace(landmark=[_point(0.1, 0.1), _point(0.2, 0.3)])
        handedness = SimpleNamespace(classification=[SimpleNamespace(label="Right", score=0.8)])
        hands.process.return_value = SimpleNamespace(
            multi_hand_landmarks=[hand], multi_handedness=[handedness]
        )
        detector._mp_hands = hands

        result = detector.detect(np.zeros((100, 100, 3), dtype=np.uint8))
        assert len(result) == 1
        assert result[0].label == "right"
        assert result[0].confidence == pytest.approx(0.8)
        assert result[0].bbox == BoundingBox(10.0, 10.0, 10.0, 20.0)

    def test_no_results(self, monkeypatch):
        monkeypatch.setattr(FaceMeshDetector, "_init_mp", lambda self: None)
        detector = FaceMeshDetector()
        detector._mp_face = MagicMock()
        detector._mp_face.process.return_value = SimpleNamespace(multi_face_landmarks=None)
        assert detector.detect(np.zeros((10, 10, 3), dtype=np.uint8)) == []
