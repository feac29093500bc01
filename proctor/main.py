import logging

from fastapi import FastAPI

from proctor.api import build_router
from proctor.config import settings
from proctor.engine import ProctorEngine
from proctor.frame_source import CameraFrameSource, FrameSource, PushFrameSource
from proctor.landmark_detector import FaceMeshDetector, HandLandmarkDetector
from proctor.session_manager import SessionManager
from proctor.yolo_detector import YoloDetector


def create_app() -> FastAPI:
    log_level = settings.log_level
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger = logging.getLogger(__name__)
    app = FastAPI(title="Proctoring Violation Engine")
    engine = ProctorEngine.from_settings(settings)

    yolo_detector = None
    source: FrameSource
    if settings.frame_source == "camera":
        if settings.yolo_mode != "disable":
            yolo_candidate = YoloDetector(
                model_path=settings.yolo_model_path,
                conf_threshold=settings.yolo_conf_threshold,
                iou_threshold=settings.yolo_iou_threshold,
                device=settings.yolo_device,
            )
            if yolo_candidate.ready() or settings.yolo_mode == "force":
                yolo_detector = yolo_candidate
        if yolo_detector is None:
            logger.info("yolo_detector.disabled mode=%s", settings.yolo_mode)
        else:
            logger.info(
                "yolo_detector.enabled mode=%s model_path=%s",
                settings.yolo_mode,
                settings.yolo_model_path,
            )
        source = CameraFrameSource(
            url=settings.camera_url,
            yolo_detector=yolo_detector,
            face_detector=FaceMeshDetector(max_faces=settings.face_max_faces),
            hand_detector=HandLandmarkDetector(max_hands=settings.hand_max_hands),
        )
    else:
        source = PushFrameSource(stale_seconds=settings.push_stale_seconds)
    logger.info("frame_source.selected source=%s", source.name)

    session = SessionManager(
        engine=engine,
        source=source,
        object_tick_seconds=settings.object_tick_seconds,
        focus_tick_seconds=settings.focus_tick_seconds,
        frame_skip=settings.frame_skip,
    )

    @app.on_event("startup")
    def _startup() -> None:
        session.start()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        session.stop()
        engine.close()
        source.close()

    app.include_router(build_router(engine, session, source, yolo_detector))
    return app


app = create_app()
