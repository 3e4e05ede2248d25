"""Evaluation session endpoints backing the upload/analyze screen."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status

from denteval.ai.openai_vision import EvaluationClient
from denteval.controller import EvaluationSession, SessionRegistry
from denteval.deps import get_client, get_registry, read_inline_image, read_upload_image
from denteval.errors import IncompleteInputError
from denteval.pipeline.images import VIEWS
from denteval.schemas import InlineImage, SessionRead

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _get_session(session_id: str, registry: SessionRegistry) -> EvaluationSession:
    try:
        return registry.get(session_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Session not found") from exc


def _check_view(view: str) -> None:
    if view not in VIEWS:
        raise HTTPException(status_code=404, detail=f"Unknown view '{view}'. Use one of: {', '.join(VIEWS)}")


@router.post("", response_model=SessionRead, status_code=status.HTTP_201_CREATED)
def create_session(registry: SessionRegistry = Depends(get_registry)) -> SessionRead:
    return registry.create().snapshot()


@router.get("/{session_id}", response_model=SessionRead)
def read_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> SessionRead:
    return _get_session(session_id, registry).snapshot()


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> Response:
    _get_session(session_id, registry)
    registry.delete(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{session_id}/images/{view}", response_model=SessionRead)
def upload_image(
    session_id: str,
    view: str,
    file: UploadFile = File(...),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionRead:
    _check_view(view)
    session = _get_session(session_id, registry)
    image = read_upload_image(file, view)
    if image is None:
        raise IncompleteInputError(missing_views=[view])
    session.set_image(view, image)
    return session.snapshot()


@router.put("/{session_id}/images/{view}/inline", response_model=SessionRead)
def upload_inline_image(
    session_id: str,
    view: str,
    payload: InlineImage,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionRead:
    _check_view(view)
    session = _get_session(session_id, registry)
    image = read_inline_image(payload.data, view, mime_type=payload.mime_type)
    if image is None:
        raise IncompleteInputError(missing_views=[view])
    session.set_image(view, image)
    return session.snapshot()


@router.delete("/{session_id}/images/{view}", response_model=SessionRead)
def clear_image(session_id: str, view: str, registry: SessionRegistry = Depends(get_registry)) -> SessionRead:
    _check_view(view)
    session = _get_session(session_id, registry)
    session.clear_image(view)
    return session.snapshot()


@router.post("/{session_id}/analyze", response_model=SessionRead)
def analyze_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
    client: EvaluationClient = Depends(get_client),
) -> SessionRead:
    session = _get_session(session_id, registry)
    session.analyze(client)
    return session.snapshot()


@router.post("/{session_id}/reset", response_model=SessionRead)
def reset_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> SessionRead:
    session = _get_session(session_id, registry)
    session.reset()
    return session.snapshot()
