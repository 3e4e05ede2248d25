"""FastAPI dependencies and upload helpers."""

from __future__ import annotations

from fastapi import HTTPException, UploadFile, status

from denteval.ai.openai_vision import EvaluationClient, get_evaluation_client
from denteval.controller import SessionRegistry
from denteval.pipeline.images import EvaluationImage, decode_image_payload
from denteval.settings import settings

_ALLOWED_TYPES = {"image/png", "image/jpeg", "image/jpg", "image/webp"}

registry = SessionRegistry(max_sessions=settings.max_sessions)


def get_client() -> EvaluationClient:
    try:
        return get_evaluation_client(settings)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


def get_registry() -> SessionRegistry:
    return registry


def _check_content_type(content_type: str, view: str) -> None:
    if content_type and content_type not in _ALLOWED_TYPES:
        raise HTTPException(status_code=400, detail=f"Unsupported content type for {view}: {content_type}")


def _check_size(data: bytes, view: str) -> None:
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail=f"{view} image exceeds {settings.max_upload_mb} MB")


def read_upload_image(upload: UploadFile | None, view: str) -> EvaluationImage | None:
    """Read one uploaded photograph; an absent or empty upload yields None."""

    if upload is None:
        return None
    content_type = (upload.content_type or "").lower().strip()
    _check_content_type(content_type, view)

    data = upload.file.read(settings.max_upload_bytes + 1)
    _check_size(data, view)
    if not data:
        return None
    return EvaluationImage(data=data, mime_type=content_type or "image/jpeg")


def read_inline_image(value: str | None, view: str, mime_type: str | None = None) -> EvaluationImage | None:
    """Decode a base64 or ``data:`` URL photograph; an absent or empty value yields None."""

    image = decode_image_payload(value, mime_type=(mime_type or "").lower().strip() or None)
    if image is None:
        return None
    _check_content_type(image.mime_type.lower(), view)
    _check_size(image.data, view)
    return image
