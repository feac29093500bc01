import os
from typing import Dict

from proctor.focus import FocusConfig
from proctor.gaze import GazeThresholds

try:
    from dotenv import load_dotenv
except Exception:  # pragma: no cover - optional dependency
    load_dotenv = None

if load_dotenv is not None:
    load_dotenv(".env", override=False)


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _get_mode(name: str, default: str) -> str:
    raw = os.getenv(name, default).strip().lower()
    if raw in ("force", "on", "1", "true", "yes"):
        return "force"
    if raw in ("disable", "off", "0", "false", "no"):
        return "disable"
    return "auto"


def _get_choice(name: str, default: str, choices: tuple) -> str:
    raw = os.getenv(name, default).strip().lower()
    return raw if raw in choices else default


def _load_tracker_config(path: str) -> Dict[str, dict]:
    if not path:
        return {}
    try:
        import json

        with open(path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except Exception:
        return {}

    if not isinstance(payload, dict):
        return {}
    types_raw = payload.get("types", {})
    if not isinstance(types_raw, dict):
        return {}

    cleaned: Dict[str, dict] = {}
    for name, value in types_raw.items():
        if not isinstance(name, str) or not name.strip() or not isinstance(value, dict):
            continue
        options: dict = {}
        for key in ("grace_period", "violation_threshold"):
            item = value.get(key)
            if isinstance(item, int) and not isinstance(item, bool):
                options[key] = item
        terms = value.get("terms")
        if isinstance(terms, list):
            items = [t.strip() for t in terms if isinstance(t, str) and t.strip()]
            if items:
                options["terms"] = items
        tiers = value.get("tiers")
        if isinstance(tiers, dict):
            options["tiers"] = {
                key: float(tiers[key])
                for key in ("high", "medium", "low")
                if isinstance(tiers.get(key), (int, float)) and not isinstance(tiers.get(key), bool)
            }
        cleaned[name.strip()] = options
    return cleaned


class Settings:
    object_tick_seconds: float
    focus_tick_seconds: float
    frame_skip: int
    frame_source: str
    camera_url: str
    push_stale_seconds: float
    tracker_tier_high: float
    tracker_tier_medium: float
    tracker_tier_low: float
    mobile_tier_high: float
    mobile_tier_medium: float
    mobile_tier_low: float
    tracker_default_grace: int
    tracker_default_threshold: int
    tracker_retention_fraction: float
    tracker_config_path: str
    tracked_types: Dict[str, dict]
    pathway_direct_count: int
    pathway_misclassified_score: int
    pathway_misclassified_count: int
    pathway_person_score: int
    pathway_person_count: int
    pathway_high_score: int
    pathway_high_count: int
    pathway_sustained_score: int
    pathway_sustained_count: int
    held_object_seconds: float
    suspicion_candidate_score: int
    misclassified_person_frames: int
    misclassified_person_min_score: float
    misclassified_cooldown_seconds: float
    unknown_object_frames: int
    unknown_object_max_score: float
    focus_no_face_seconds: float
    focus_looking_away_seconds: float
    focus_head_angle_degrees: float
    focus_head_angle_enabled: bool
    focus_gaze_tracker_enabled: bool
    gaze_yaw_threshold: float
    gaze_pitch_threshold: float
    gaze_dead_zone_x: float
    gaze_dead_zone_y: float
    gaze_away_seconds: float
    gaze_cooldown_seconds: float
    score_phone_class: int
    score_misclassified_class: int
    score_shape_primary: int
    score_shape_secondary: int
    score_size_primary: int
    score_size_secondary: int
    score_hand_base: int
    score_hand_bonus: int
    score_low_confidence_cutoff: float
    score_low_confidence_multiplier: int
    model_confidence: float
    fallback_confidence: float
    violation_history: int
    yolo_mode: str
    yolo_model_path: str
    yolo_conf_threshold: float
    yolo_iou_threshold: float
    yolo_device: str
    face_max_faces: int
    hand_max_hands: int
    log_level: str
    host: str
    port: int

    def __init__(self) -> None:
        self.object_tick_seconds = _get_float("OBJECT_TICK_SECONDS", 1.0)
        self.focus_tick_seconds = _get_float("FOCUS_TICK_SECONDS", 2.0)
        self.frame_skip = _get_int("FRAME_SKIP", 3)
        self.frame_source = _get_choice("FRAME_SOURCE", "push", ("push", "camera"))
        self.camera_url = os.getenv("CAMERA_URL", "0")
        self.push_stale_seconds = _get_float("PUSH_STALE_SECONDS", 3.0)

        self.tracker_tier_high = _get_float("TRACKER_TIER_HIGH", 0.8)
        self.tracker_tier_medium = _get_float("TRACKER_TIER_MEDIUM", 0.5)
        self.tracker_tier_low = _get_float("TRACKER_TIER_LOW", 0.2)
        self.mobile_tier_high = _get_float("MOBILE_TIER_HIGH", 0.60)
        self.mobile_tier_medium = _get_float("MOBILE_TIER_MEDIUM", 0.45)
        self.mobile_tier_low = _get_float("MOBILE_TIER_LOW", 0.30)
        self.tracker_default_grace = _get_int("TRACKER_DEFAULT_GRACE", 2)
        self.tracker_default_threshold = _get_int("TRACKER_DEFAULT_THRESHOLD", 3)
        self.tracker_retention_fraction = _get_float("TRACKER_RETENTION_FRACTION", 0.5)
        self.tracker_config_path = os.getenv("TRACKER_CONFIG_PATH", "data/tracker.json")
        self.tracked_types = _load_tracker_config(self.tracker_config_path)

        self.pathway_direct_count = _get_int("PATHWAY_DIRECT_COUNT", 3)
        self.pathway_misclassified_score = _get_int("PATHWAY_MISCLASSIFIED_SCORE", 100)
        self.pathway_misclassified_count = _get_int("PATHWAY_MISCLASSIFIED_COUNT", 2)
        self.pathway_person_score = _get_int("PATHWAY_PERSON_SCORE", 75)
        self.pathway_person_count = _get_int("PATHWAY_PERSON_COUNT", 4)
        self.pathway_high_score = _get_int("PATHWAY_HIGH_SCORE", 150)
        self.pathway_high_count = _get_int("PATHWAY_HIGH_COUNT", 1)
        self.pathway_sustained_score = _get_int("PATHWAY_SUSTAINED_SCORE", 50)
        self.pathway_sustained_count = _get_int("PATHWAY_SUSTAINED_COUNT", 5)
        self.held_object_seconds = _get_float("HELD_OBJECT_SECONDS", 3.0)
        self.suspicion_candidate_score = _get_int("SUSPICION_CANDIDATE_SCORE", 120)

        self.misclassified_person_frames = _get_int("MISCLASSIFIED_PERSON_FRAMES", 8)
        self.misclassified_person_min_score = _get_float("MISCLASSIFIED_PERSON_MIN_SCORE", 0.7)
        self.misclassified_cooldown_seconds = _get_float("MISCLASSIFIED_COOLDOWN_SECONDS", 10.0)
        self.unknown_object_frames = _get_int("UNKNOWN_OBJECT_FRAMES", 5)
        self.unknown_object_max_score = _get_float("UNKNOWN_OBJECT_MAX_SCORE", 0.6)

        self.focus_no_face_seconds = _get_float("FOCUS_NO_FACE_SECONDS", 10.0)
        self.focus_looking_away_seconds = _get_float("FOCUS_LOOKING_AWAY_SECONDS", 5.0)
        self.focus_head_angle_degrees = _get_float("FOCUS_HEAD_ANGLE_DEGREES", 25.0)
        self.focus_head_angle_enabled = _get_bool("FOCUS_HEAD_ANGLE_ENABLED", True)
        self.focus_gaze_tracker_enabled = _get_bool("FOCUS_GAZE_TRACKER_ENABLED", True)
        self.gaze_yaw_threshold = _get_float("GAZE_YAW_THRESHOLD", 0.15)
        self.gaze_pitch_threshold = _get_float("GAZE_PITCH_THRESHOLD", 0.12)
        self.gaze_dead_zone_x = _get_float("GAZE_DEAD_ZONE_X", 0.08)
        self.gaze_dead_zone_y = _get_float("GAZE_DEAD_ZONE_Y", 0.06)
        self.gaze_away_seconds = _get_float("GAZE_AWAY_SECONDS", 7.0)
        self.gaze_cooldown_seconds = _get_float("GAZE_COOLDOWN_SECONDS", 15.0)

        self.score_phone_class = _get_int("SCORE_PHONE_CLASS", 100)
        self.score_misclassified_class = _get_int("SCORE_MISCLASSIFIED_CLASS", 25)
        self.score_shape_primary = _get_int("SCORE_SHAPE_PRIMARY", 50)
        self.score_shape_secondary = _get_int("SCORE_SHAPE_SECONDARY", 25)
        self.score_size_primary = _get_int("SCORE_SIZE_PRIMARY", 25)
        self.score_size_secondary = _get_int("SCORE_SIZE_SECONDARY", 10)
        self.score_hand_base = _get_int("SCORE_HAND_BASE", 50)
        self.score_hand_bonus = _get_int("SCORE_HAND_BONUS", 20)
        self.score_low_confidence_cutoff = _get_float("SCORE_LOW_CONFIDENCE_CUTOFF", 0.6)
        self.score_low_confidence_multiplier = _get_int("SCORE_LOW_CONFIDENCE_MULTIPLIER", 50)

        self.model_confidence = _get_float("MODEL_CONFIDENCE", 0.9)
        self.fallback_confidence = _get_float("FALLBACK_CONFIDENCE", 0.6)
        self.violation_history = _get_int("VIOLATION_HISTORY", 500)

        self.yolo_mode = _get_mode("YOLO_MODE", "auto")
        self.yolo_model_path = os.getenv("YOLO_MODEL_PATH", "yolov8n.pt")
        self.yolo_conf_threshold = _get_float("YOLO_CONF_THRESHOLD", 0.2)
        self.yolo_iou_threshold = _get_float("YOLO_IOU_THRESHOLD", 0.45)
        self.yolo_device = os.getenv("YOLO_DEVICE", "auto").strip().lower()
        self.face_max_faces = _get_int("FACE_MAX_FACES", 3)
        self.hand_max_hands = _get_int("HAND_MAX_HANDS", 2)

        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = _get_int("PORT", 8000)

    def focus_config(self) -> FocusConfig:
        return FocusConfig(
            no_face_seconds=self.focus_no_face_seconds,
            looking_away_seconds=self.focus_looking_away_seconds,
            head_angle_degrees=self.focus_head_angle_degrees,
            head_angle_enabled=self.focus_head_angle_enabled,
            gaze_tracker_enabled=self.focus_gaze_tracker_enabled,
            gaze_away_seconds=self.gaze_away_seconds,
            gaze_cooldown_seconds=self.gaze_cooldown_seconds,
            gaze=GazeThresholds(
                yaw=self.gaze_yaw_threshold,
                pitch=self.gaze_pitch_threshold,
                dead_zone_x=self.gaze_dead_zone_x,
                dead_zone_y=self.gaze_dead_zone_y,
            ),
        )


settings = Settings()
