import logging
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

from proctor.detections import Face
from proctor.gaze import GazeThresholds, analyze_gaze, head_angle

logger = logging.getLogger(__name__)


class FocusPhase(str, Enum):
    MULTIPLE_FACES = "multiple_faces"
    NO_FACE = "no_face"
    ON_SCREEN = "single_face_on_screen"
    LOOKING_AWAY = "single_face_looking_away"


@dataclass(frozen=True)
class FocusConfig:
    no_face_seconds: float = 10.0
    looking_away_seconds: float = 5.0
    head_angle_degrees: float = 25.0
    head_angle_enabled: bool = True
    gaze_tracker_enabled: bool = True
    gaze_away_seconds: float = 7.0
    gaze_cooldown_seconds: float = 15.0
    gaze: GazeThresholds = GazeThresholds()


@dataclass
class FocusState:
    face_count: int = 0
    phase: Optional[FocusPhase] = None
    is_looking_away: bool = False
    looking_away_start: Optional[float] = None
    is_no_face: bool = False
    no_face_start: Optional[float] = None
    gaze_away_start: Optional[float] = None
    last_gaze_violation: Optional[float] = None
    last_head_angle: float = 0.0
    warning_active: bool = False
    warning_kind: Optional[str] = None


@dataclass(frozen=True)
class FocusFiring:
    type: str
    message: str
    severity: str


class FocusStateMachine:
    def __init__(self, config: Optional[FocusConfig] = None) -> None:
        self.config = config or FocusConfig()
        self.state = FocusState()

    def update(self, faces: Sequence[Face], now: Optional[float] = None) -> List[FocusFiring]:
        now = time.time() if now is None else now
        self.state.face_count = len(faces)
        if len(faces) > 1:
            return self._multiple_faces(len(faces))
        if not faces:
            return self._no_face(now)
        return self._single_face(faces[0], now)

    def snapshot(self) -> Dict[str, object]:
        payload = asdict(self.state)
        payload["phase"] = self.state.phase.value if self.state.phase is not None else None
        return payload

    def reset(self) -> None:
        self.state = FocusState()

    def _multiple_faces(self, count: int) -> List[FocusFiring]:
        state = self.state
        state.phase = FocusPhase.MULTIPLE_FACES
        self._reset_no_face()
        self._reset_looking_away()
        state.gaze_away_start = None
        self._hide_warning()
        logger.info("focus.multiple_faces count=%d", count)
        return [
            FocusFiring(
                type="multiple_faces",
                message=f"Multiple faces detected: {count} faces in frame",
                severity="high",
            )
        ]

    def _no_face(self, now: float) -> List[FocusFiring]:
        state = self.state
        state.phase = FocusPhase.NO_FACE
        self._reset_looking_away()
        state.gaze_away_start = None
        if not state.is_no_face or state.no_face_start is None:
            state.is_no_face = True
            state.no_face_start = now
            logger.info("focus.no_face_started")
            return []
        elapsed = now - state.no_face_start
        if elapsed < self.config.no_face_seconds:
            return []
        state.no_face_start = now
        self._show_warning("no_face")
        logger.info("focus.no_face_violation elapsed=%.1f", elapsed)
        return [
            FocusFiring(
                type="no_face",
                message=f"No face detected for {elapsed:.1f} seconds",
                severity="high",
            )
        ]

    def _single_face(self, face: Face, now: float) -> List[FocusFiring]:
        state = self.state
        config = self.config
        self._reset_no_face()
        firings: List[FocusFiring] = []

        head_away = False
        if config.head_angle_enabled:
            angle = head_angle(face.landmarks)
            state.last_head_angle = angle
            head_away = abs(angle) > config.head_angle_degrees
            if head_away:
                firing = self._looking_away(angle, now)
                if firing is not None:
                    firings.append(firing)
            else:
                self._reset_looking_away()

        gaze_away = False
        if config.gaze_tracker_enabled:
            reading = analyze_gaze(face.landmarks, config.gaze)
            gaze_away = not reading.looking_at_screen
            if gaze_away:
                firing = self._gaze_away(now)
                if firing is not None:
                    firings.append(firing)
            elif state.gaze_away_start is not None:
                logger.info("focus.gaze_restored away_seconds=%.1f", now - state.gaze_away_start)
                state.gaze_away_start = None

        if head_away or gaze_away:
            state.phase = FocusPhase.LOOKING_AWAY
        else:
            state.phase = FocusPhase.ON_SCREEN
            self._hide_warning()
        return firings

    def _looking_away(self, angle: float, now: float) -> Optional[FocusFiring]:
        state = self.state
        if not state.is_looking_away or state.looking_away_start is None:
            state.is_looking_away = True
            state.looking_away_start = now
            logger.info("focus.looking_away_started head_angle=%.1f", angle)
            return None
        elapsed = now - state.looking_away_start
        if elapsed < self.config.looking_away_seconds:
            return None
        state.looking_away_start = now
        self._show_warning("looking_away")
        logger.info("focus.looking_away_violation elapsed=%.1f head_angle=%.1f", elapsed, angle)
        return FocusFiring(
            type="looking_away",
            message=(
                f"Looking away from screen for {elapsed:.1f} seconds (head angle: {angle:.1f}°)"
            ),
            severity="medium",
        )

    def _gaze_away(self, now: float) -> Optional[FocusFiring]:
        state = self.state
        config = self.config
        if state.gaze_away_start is None:
            state.gaze_away_start = now
            return None
        elapsed = now - state.gaze_away_start
        if elapsed < config.gaze_away_seconds:
            return None
        last = state.last_gaze_violation
        if last is not None and now - last < config.gaze_cooldown_seconds:
            logger.debug(
                "focus.gaze_cooldown remaining=%.1f", config.gaze_cooldown_seconds - (now - last)
            )
            return None
        state.last_gaze_violation = now
        state.gaze_away_start = now
        self._show_warning("focus_lost")
        logger.info("focus.gaze_violation elapsed=%.1f", elapsed)
        return FocusFiring(
            type="focus_lost",
            message=f"Candidate looking away from screen for {int(elapsed)} seconds",
            severity="medium",
        )

    def _reset_no_face(self) -> None:
        state = self.state
        if state.is_no_face:
            logger.info("focus.face_restored")
            if state.warning_kind == "no_face":
                self._hide_warning()
        state.is_no_face = False
        state.no_face_start = None

    def _reset_looking_away(self) -> None:
        state = self.state
        if state.is_looking_away and state.warning_kind == "looking_away":
            self._hide_warning()
        state.is_looking_away = False
        state.looking_away_start = None

    def _show_warning(self, kind: str) -> None:
        self.state.warning_active = True
        self.state.warning_kind = kind

    def _hide_warning(self) -> None:
        if self.state.warning_active:
            logger.debug("focus.warning_cleared kind=%s", self.state.warning_kind)
        self.state.warning_active = False
        self.state.warning_kind = None
