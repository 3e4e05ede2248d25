"""Upload -> analyze -> result/error state for one user's evaluation.

Each analysis takes a generation token. Uploading, clearing, resetting or
starting another analysis advances the generation, and an outcome is only
applied while its token is still current, so a slow superseded call can never
overwrite a newer result.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict
from enum import Enum

from denteval.ai.openai_vision import EvaluationClient
from denteval.errors import EvaluationError
from denteval.pipeline.images import VIEWS, EvaluationImage, require_both_views
from denteval.schemas import EvaluationReport, EvaluationResult, SessionRead

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    EMPTY = "empty"
    READY = "ready"
    ANALYZING = "analyzing"
    DONE = "done"
    FAILED = "failed"


class EvaluationSession:
    def __init__(self, session_id: str | None = None) -> None:
        self.id = session_id or uuid.uuid4().hex
        self._lock = threading.Lock()
        self._generation = 0
        self._images: dict[str, EvaluationImage] = {}
        self._analyzing = False
        self._result: EvaluationResult | None = None
        self._error: EvaluationError | None = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def result(self) -> EvaluationResult | None:
        return self._result

    @property
    def error(self) -> EvaluationError | None:
        return self._error

    @property
    def phase(self) -> SessionPhase:
        if self._analyzing:
            return SessionPhase.ANALYZING
        if self._error is not None:
            return SessionPhase.FAILED
        if self._result is not None:
            return SessionPhase.DONE
        if all(view in self._images for view in VIEWS):
            return SessionPhase.READY
        return SessionPhase.EMPTY

    def _supersede(self) -> None:
        # Caller holds the lock.
        self._generation += 1
        self._analyzing = False
        self._result = None
        self._error = None

    def set_image(self, view: str, image: EvaluationImage) -> None:
        if view not in VIEWS:
            raise ValueError(f"Unknown view '{view}'. Use one of: {', '.join(VIEWS)}")
        with self._lock:
            self._images[view] = image
            self._supersede()

    def clear_image(self, view: str) -> None:
        if view not in VIEWS:
            raise ValueError(f"Unknown view '{view}'. Use one of: {', '.join(VIEWS)}")
        with self._lock:
            self._images.pop(view, None)
            self._supersede()

    def reset(self) -> None:
        with self._lock:
            self._images.clear()
            self._supersede()

    def begin(self) -> tuple[int, EvaluationImage, EvaluationImage]:
        with self._lock:
            occlusal = self._images.get("occlusal")
            proximal = self._images.get("proximal")
            require_both_views(occlusal, proximal)
            self._supersede()
            self._analyzing = True
            return self._generation, occlusal, proximal

    def finish(
        self,
        token: int,
        result: EvaluationResult | None = None,
        error: EvaluationError | None = None,
    ) -> bool:
        """Apply an outcome if ``token`` is still current; return whether it was applied."""

        with self._lock:
            if token != self._generation:
                logger.info(
                    "session discarded stale outcome",
                    extra={"session_id": self.id, "stage": "finish", "token": token, "generation": self._generation},
                )
                return False
            self._analyzing = False
            self._result = result
            self._error = error
            return True

    def analyze(self, client: EvaluationClient) -> bool:
        token, occlusal, proximal = self.begin()
        try:
            result = client.evaluate(occlusal, proximal, request_id=f"{self.id}-{token}")
        except EvaluationError as exc:
            return self.finish(token, error=exc)
        except Exception:
            # Leave the session analyzable again, then propagate.
            with self._lock:
                if token == self._generation:
                    self._analyzing = False
            raise
        return self.finish(token, result=result)

    def snapshot(self) -> SessionRead:
        with self._lock:
            result = self._result
            error = self._error
            return SessionRead(
                id=self.id,
                phase=self.phase.value,
                generation=self._generation,
                has_occlusal="occlusal" in self._images,
                has_proximal="proximal" in self._images,
                report=EvaluationReport.from_result(result) if result is not None else None,
                error=error.user_message if error is not None else None,
            )


class SessionRegistry:
    """In-memory, bounded collection of sessions; oldest are evicted first."""

    def __init__(self, max_sessions: int = 256) -> None:
        if max_sessions <= 0:
            raise ValueError("max_sessions must be positive")
        self._max_sessions = max_sessions
        self._sessions: OrderedDict[str, EvaluationSession] = OrderedDict()
        self._lock = threading.Lock()

    def create(self) -> EvaluationSession:
        session = EvaluationSession()
        with self._lock:
            self._sessions[session.id] = session
            while len(self._sessions) > self._max_sessions:
                evicted_id, _ = self._sessions.popitem(last=False)
                logger.info("session evicted", extra={"session_id": evicted_id, "stage": "evict"})
        return session

    def get(self, session_id: str) -> EvaluationSession:
        with self._lock:
            session = self._sessions[session_id]
            self._sessions.move_to_end(session_id)
            return session

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)
