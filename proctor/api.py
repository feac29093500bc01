from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from proctor.engine import ProctorEngine
from proctor.frame_source import FrameSource, PushFrameSource
from proctor.object_tracker import ConfigurationError
from proctor.session_manager import SessionManager
from proctor.yolo_detector import YoloDetector


def build_router(
    engine: ProctorEngine,
    session: SessionManager,
    source: FrameSource,
    yolo_detector: Optional[YoloDetector],
) -> APIRouter:
    router = APIRouter()

    class TierSettings(BaseModel):
        high: float = Field(0.8, ge=0.0, le=1.0)
        medium: float = Field(0.5, ge=0.0, le=1.0)
        low: float = Field(0.2, ge=0.0, le=1.0)

    class ObjectTypeCreate(BaseModel):
        name: str = Field(..., min_length=1)
        grace_period: Optional[int] = Field(None, ge=0)
        violation_threshold: Optional[int] = Field(None, ge=1)
        terms: Optional[List[str]] = None
        tiers: Optional[TierSettings] = None

    class FramePush(BaseModel):
        objects: Optional[List[Dict[str, Any]]] = None
        faces: Optional[List[Dict[str, Any]]] = None
        hands: Optional[List[Dict[str, Any]]] = None
        timestamp: Optional[float] = None

    @router.get("/health")
    def health() -> dict:
        return {
            "engine": engine.status(),
            "session": session.health(),
            "source": source.health(),
            "yolo": {
                "enabled": yolo_detector is not None,
                "ready": yolo_detector.ready() if yolo_detector is not None else False,
                "model_path": yolo_detector.model_path if yolo_detector is not None else None,
            },
        }

    @router.get("/tracking")
    def tracking() -> dict:
        return {
            "tracking": engine.get_tracking_status(),
            "pathways": engine.pathway_counts(),
        }

    @router.post("/tracking/types")
    def register_type(payload: ObjectTypeCreate) -> dict:
        tiers = payload.tiers.model_dump() if payload.tiers is not None else None
        try:
            created = engine.register_object_type(
                payload.name,
                grace_period=payload.grace_period,
                violation_threshold=payload.violation_threshold,
                terms=payload.terms,
                tiers=tiers,
            )
        except ConfigurationError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return {"name": payload.name, "created": created}

    @router.get("/violations")
    def violations(limit: int = 200, since: Optional[float] = None) -> dict:
        return {"violations": engine.emitter.get_violations(limit=limit, since=since)}

    @router.get("/statistics")
    def statistics() -> dict:
        return engine.statistics()

    @router.get("/focus")
    def focus() -> dict:
        return engine.focus_snapshot()

    @router.post("/frames")
    def push_frame(payload: FramePush) -> dict:
        if not isinstance(source, PushFrameSource):
            raise HTTPException(status_code=409, detail="Frame source does not accept pushes")
        accepted = source.push(
            objects=payload.objects,
            faces=payload.faces,
            hands=payload.hands,
            timestamp=payload.timestamp,
        )
        return {"accepted": accepted}

    @router.post("/session/start")
    def session_start() -> dict:
        return {"started": session.start(), "session": session.health()}

    @router.post("/session/stop")
    def session_stop() -> dict:
        return {"stopped": session.stop(), "session": session.health()}

    return router
