import logging
from typing import List

import numpy as np

from proctor.detections import BoundingBox, ObjectDetection

logger = logging.getLogger(__name__)


class YoloDetector:
    def __init__(
        self,
        model_path: str,
        conf_threshold: float,
        iou_threshold: float,
        device: str = "auto",
    ) -> None:
        self.model_path = model_path
        self.conf_threshold = conf_threshold
        self.iou_threshold = iou_threshold
        self.device = device
        self._model = None
        self._names: List[str] = []
        self._ready = False
        self._load()

    def ready(self) -> bool:
        return self._ready

    def detect(self, frame: np.ndarray) -> List[ObjectDetection]:
        if not self._ready or self._model is None:
            return []
        kwargs = {}
        if self.device and self.device != "auto":
            kwargs["device"] = self.device
        results = self._model.predict(
            source=frame,
            conf=self.conf_threshold,
            iou=self.iou_threshold,
            verbose=False,
            **kwargs,
        )
        detections: List[ObjectDetection] = []
        for result in results:
            for box in result.boxes:
                cls_id = int(box.cls[0])
                label = self._label(cls_id)
                conf = float(box.conf[0])
                x1, y1, x2, y2 = (float(v) for v in box.xyxy[0].tolist())
                detections.append(
                    ObjectDetection(
                        label=label,
                        score=conf,
                        bbox=BoundingBox(x1, y1, max(0.0, x2 - x1), max(0.0, y2 - y1)),
                    )
                )
        return detections

    def _label(self, cls_id: int) -> str:
        if 0 <= cls_id < len(self._names):
            return self._names[cls_id]
        return str(cls_id)

    def _load(self) -> None:
        try:
            import torch
            from ultralytics import YOLO
        except Exception:
            logger.warning("yolo_detector.unavailable reason=import_failed")
            self._ready = False
            return
        try:
            model = None
            safe_globals = getattr(torch.serialization, "safe_globals", None)
            if safe_globals is not None:
                try:
                    from ultralytics.nn.tasks import DetectionModel
                except Exception:
                    DetectionModel = None  # type: ignore[assignment]
                if DetectionModel is not None:
                    with safe_globals([DetectionModel]):
                        model = YOLO(self.model_path)
            if model is None:
                model = YOLO(self.model_path)
            self._model = model
            names = model.names
            self._names = list(names.values()) if isinstance(names, dict) else list(names)
            self._ready = True
            logger.info("yolo_detector.ready model_path=%s labels=%d", self.model_path, len(self._names))
        except Exception:
            logger.warning("yolo_detector.unavailable reason=load_failed model_path=%s", self.model_path)
            self._ready = False
