import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

# MediaPipe FaceMesh indices
NOSE_TIP = 1
LEFT_EYE = 33
RIGHT_EYE = 263
LEFT_EYE_OUTER = 130
RIGHT_EYE_OUTER = 359
FULL_MESH_POINTS = 468


@dataclass(frozen=True)
class GazeThresholds:
    yaw: float = 0.15
    pitch: float = 0.12
    dead_zone_x: float = 0.08
    dead_zone_y: float = 0.06


@dataclass(frozen=True)
class GazeReading:
    looking_at_screen: bool
    offset_x: float = 0.0
    offset_y: float = 0.0
    within_dead_zone: bool = True
    face_width: float = 0.0


def head_angle(landmarks: Optional[np.ndarray]) -> float:
    if landmarks is None or landmarks.shape[0] < FULL_MESH_POINTS:
        return 0.0
    left_x = float(landmarks[LEFT_EYE, 0])
    right_x = float(landmarks[RIGHT_EYE, 0])
    face_width = abs(right_x - left_x)
    if face_width <= 0:
        return 0.0
    eye_center_x = (left_x + right_x) / 2.0
    nose_offset = float(landmarks[NOSE_TIP, 0]) - eye_center_x
    return nose_offset / face_width * 90.0


def analyze_gaze(
    landmarks: Optional[np.ndarray], thresholds: Optional[GazeThresholds] = None
) -> GazeReading:
    thresholds = thresholds or GazeThresholds()
    if landmarks is None or landmarks.shape[0] <= RIGHT_EYE_OUTER:
        return GazeReading(looking_at_screen=True)
    face_width = abs(float(landmarks[LEFT_EYE_OUTER, 0]) - float(landmarks[RIGHT_EYE_OUTER, 0]))
    if face_width <= 0:
        return GazeReading(looking_at_screen=True)
    eye_center = (landmarks[LEFT_EYE, :2] + landmarks[RIGHT_EYE, :2]) / 2.0
    nose = landmarks[NOSE_TIP, :2]
    offset_x = abs(float(eye_center[0] - nose[0])) / face_width
    offset_y = abs(float(eye_center[1] - nose[1])) / face_width

    within_dead_zone = offset_x < thresholds.dead_zone_x and offset_y < thresholds.dead_zone_y
    within_threshold = offset_x < thresholds.yaw and offset_y < thresholds.pitch
    reading = GazeReading(
        looking_at_screen=within_dead_zone or within_threshold,
        offset_x=offset_x,
        offset_y=offset_y,
        within_dead_zone=within_dead_zone,
        face_width=face_width,
    )
    logger.debug(
        "gaze.reading offset_x=%.3f offset_y=%.3f on_screen=%s",
        offset_x,
        offset_y,
        reading.looking_at_screen,
    )
    return reading
