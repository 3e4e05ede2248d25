"""Evaluation error taxonomy."""

from __future__ import annotations

from dataclasses import dataclass, field

# Shown to end users instead of the internal cause of a malformed response.
PROCESSING_FAILED_MESSAGE = "Değerlendirme sonuçları işlenirken bir hata oluştu."

VIEW_LABELS = {
    "occlusal": "Oklüzal görüntü",
    "proximal": "Proksimal görüntü",
}


class EvaluationError(Exception):
    """Base class for errors that end one evaluation attempt."""

    http_status = 500

    @property
    def user_message(self) -> str:
        return str(self)


@dataclass
class IncompleteInputError(EvaluationError):
    missing_views: list[str] = field(default_factory=list)
    message: str = ""

    http_status = 400

    def __post_init__(self) -> None:
        if not self.message:
            labels = ", ".join(VIEW_LABELS.get(view, view) for view in self.missing_views)
            self.message = f"Eksik görüntü: {labels}" if labels else "Eksik görüntü"

    def __str__(self) -> str:
        return self.message


@dataclass
class TransportError(EvaluationError):
    status_code: int | None
    body: str
    message: str

    http_status = 502

    def __str__(self) -> str:
        return self.message


@dataclass
class MalformedResponseError(EvaluationError):
    reason: str

    http_status = 502

    def __str__(self) -> str:
        return f"Malformed evaluation response: {self.reason}"

    @property
    def user_message(self) -> str:
        return PROCESSING_FAILED_MESSAGE


@dataclass
class SchemaBuildError(Exception):
    message: str

    def __str__(self) -> str:
        return self.message
