import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from proctor.emitter import Violation
from proctor.engine import ProctorEngine
from proctor.frame_source import FrameSource

logger = logging.getLogger(__name__)


class SessionManager:
    """Schedules the object tick and the focus tick on their own threads.

    A tick never overlaps itself: if the previous run is still busy the new
    one is skipped and counted. Inference runs outside the engine lock; the
    results are applied under it, and once ``stop()`` returns any result
    still in flight is discarded instead of applied.
    """

    def __init__(
        self,
        engine: ProctorEngine,
        source: FrameSource,
        object_tick_seconds: float = 1.0,
        focus_tick_seconds: float = 2.0,
        frame_skip: int = 3,
    ) -> None:
        self.engine = engine
        self.source = source
        self.object_tick_seconds = max(0.05, object_tick_seconds)
        self.focus_tick_seconds = max(0.05, focus_tick_seconds)
        self.frame_skip = max(1, frame_skip)
        self._stop_event = threading.Event()
        self._object_thread: Optional[threading.Thread] = None
        self._focus_thread: Optional[threading.Thread] = None
        self._object_busy = threading.Lock()
        self._focus_busy = threading.Lock()
        self._lock = threading.Lock()
        self._frames = 0
        self._counters: Dict[str, int] = {
            "object_ticks": 0,
            "focus_ticks": 0,
            "object_skipped": 0,
            "focus_skipped": 0,
            "discarded": 0,
            "source_failures": 0,
        }
        self._last_object_tick: Optional[float] = None
        self._last_focus_tick: Optional[float] = None
        self._started_at: Optional[float] = None

    def running(self) -> bool:
        return any(t is not None and t.is_alive() for t in (self._object_thread, self._focus_thread))

    def start(self) -> bool:
        if self.running():
            return False
        self._stop_event.clear()
        self.engine.set_model_status(**self.source.models())
        self._started_at = time.time()
        self._object_thread = threading.Thread(target=self._run_objects, daemon=True)
        self._focus_thread = threading.Thread(target=self._run_focus, daemon=True)
        self._object_thread.start()
        self._focus_thread.start()
        logger.info(
            "session.started source=%s object_tick=%.2f focus_tick=%.2f frame_skip=%d",
            self.source.name,
            self.object_tick_seconds,
            self.focus_tick_seconds,
            self.frame_skip,
        )
        return True

    def stop(self) -> bool:
        was_running = self.running()
        # Taken under the engine lock so no tick is mid-mutation once this returns.
        with self.engine.lock:
            self._stop_event.set()
        for thread in (self._object_thread, self._focus_thread):
            if thread and thread.is_alive():
                thread.join(timeout=2.0)
        if was_running:
            logger.info("session.stopped")
        return was_running

    def run_object_tick(self, now: Optional[float] = None) -> List[Violation]:
        if not self._object_busy.acquire(blocking=False):
            self._bump("object_skipped")
            logger.debug("session.object_tick_skipped reason=busy")
            return []
        try:
            objects = self._safe_detect("objects", self.source.detect_objects)
            hands = self._safe_detect("hands", self.source.detect_hands)
            with self.engine.lock:
                if self._stop_event.is_set():
                    self._bump("discarded")
                    return []
                violations = self.engine.process_objects(objects, hands, now=now)
            self._bump("object_ticks")
            self._last_object_tick = time.time()
            return violations
        except Exception:
            logger.exception("session.object_tick_failed")
            return []
        finally:
            self._object_busy.release()

    def run_focus_tick(self, now: Optional[float] = None) -> List[Violation]:
        if not self._focus_busy.acquire(blocking=False):
            self._bump("focus_skipped")
            logger.debug("session.focus_tick_skipped reason=busy")
            return []
        try:
            faces = self._safe_detect("faces", self.source.detect_faces)
            with self.engine.lock:
                if self._stop_event.is_set():
                    self._bump("discarded")
                    return []
                violations = self.engine.process_faces(faces, now=now)
            self._bump("focus_ticks")
            self._last_focus_tick = time.time()
            return violations
        except Exception:
            logger.exception("session.focus_tick_failed")
            return []
        finally:
            self._focus_busy.release()

    def health(self) -> Dict[str, object]:
        with self._lock:
            counters = dict(self._counters)
        payload: Dict[str, object] = {
            "running": self.running(),
            "started_at": self._started_at,
            "last_object_tick": self._last_object_tick,
            "last_focus_tick": self._last_focus_tick,
            "frame_skip": self.frame_skip,
        }
        payload.update(counters)
        return payload

    def _run_objects(self) -> None:
        period = self.object_tick_seconds / self.frame_skip
        while not self._stop_event.wait(period):
            self._frames += 1
            if self._frames % self.frame_skip != 0:
                self._safe_detect("advance", self.source.advance)
                continue
            self.run_object_tick()

    def _run_focus(self) -> None:
        while not self._stop_event.wait(self.focus_tick_seconds):
            self.run_focus_tick()

    def _safe_detect(self, kind: str, call: Callable[[], Optional[list]]) -> list:
        try:
            return call() or []
        except Exception as exc:
            self._bump("source_failures")
            logger.warning("session.source_failed kind=%s reason=%s", kind, exc)
            return []

    def _bump(self, key: str) -> None:
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + 1
