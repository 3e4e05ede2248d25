from __future__ import annotations

import sys
from io import BytesIO
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class FakeResponses:
    """Stands in for ``OpenAI().responses`` and records every request."""

    def __init__(self, output_text: str | None = None, exc: Exception | None = None) -> None:
        self.output_text = output_text
        self.exc = exc
        self.calls: list[dict[str, Any]] = []

    def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        if self.exc is not None:
            raise self.exc
        return SimpleNamespace(output_text=self.output_text)


class FakeOpenAI:
    def __init__(self, output_text: str | None = None, exc: Exception | None = None) -> None:
        self.responses = FakeResponses(output_text=output_text, exc=exc)

    @property
    def calls(self) -> list[dict[str, Any]]:
        return self.responses.calls


def make_image_bytes(size: tuple[int, int] = (320, 240), fmt: str = "PNG", color: str = "white") -> bytes:
    from PIL import Image

    image = Image.new("RGB", size, color=color)
    buffer = BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


# Scores sum to 87: criteria 1-7 full marks, 8 partial, 9 zero, no critical error.
DEFAULT_SCORES = {1: 12, 2: 12, 3: 12, 4: 12, 5: 12, 6: 10, 7: 10, 8: 7, 9: 0, 10: 0}


def build_payload(
    scores: dict[int, int] | None = None,
    total_score: int | None = None,
    is_invalid: bool = False,
    critical_error: str | None = None,
    drop_ids: tuple[int, ...] = (),
) -> dict[str, Any]:
    from denteval.rubric import get_criteria

    merged = {**DEFAULT_SCORES, **(scores or {})}
    criteria = [
        {
            "id": criterion.id,
            "name": criterion.name,
            "score": merged[criterion.id],
            "maxScore": criterion.max_points,
            "feedback": f"{criterion.name} için geri bildirim",
        }
        for criterion in get_criteria()
        if criterion.id not in drop_ids
    ]
    if total_score is None:
        total_score = min(max(sum(item["score"] for item in criteria), 0), 100)
    return {
        "criteria": criteria,
        "totalScore": total_score,
        "criticalError": critical_error,
        "isInvalid": is_invalid,
    }


@pytest.fixture
def image_bytes() -> bytes:
    return make_image_bytes()


@pytest.fixture
def payload_factory() -> Callable[..., dict[str, Any]]:
    return build_payload


@pytest.fixture(autouse=True)
def _reset_app_state() -> None:
    from denteval.deps import registry
    from denteval.main import app

    registry.clear()
    app.dependency_overrides.clear()
    yield
    registry.clear()
    app.dependency_overrides.clear()
