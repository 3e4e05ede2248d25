"""OpenAI Vision cavity preparation evaluation client."""

from __future__ import annotations

import copy
import json
import logging
import time
import uuid
from typing import Any, Protocol

import httpx
import openai

from denteval.errors import MalformedResponseError, SchemaBuildError, TransportError
from denteval.pipeline.images import EvaluationImage, NormalizedImage, prepare_evaluation_images, require_both_views
from denteval.pipeline.validate import parse_evaluation_response
from denteval.rubric import (
    PENALTY_INVALID_SUBMISSION,
    PENALTY_NO_STEP_PREPARATION,
    PENALTY_NONE,
    Criterion,
    critical_criterion,
    get_criteria,
    max_total,
    render_rubric_instructions,
)
from denteval.schemas import EvaluationResult
from denteval.settings import Settings, settings

logger = logging.getLogger(__name__)

TASK_PROMPT = (
    "Lütfen bu Sınıf II kavite preparasyonunu oklüzal ve proksimal görüntüler üzerinden kriterlere göre değerlendir."
)
FEEDBACK_LANGUAGE = "Turkish"


class EvaluationClient(Protocol):
    def evaluate(
        self,
        occlusal: EvaluationImage | None,
        proximal: EvaluationImage | None,
        request_id: str | None = None,
    ) -> EvaluationResult:
        """Score one pair of photographs against the rubric."""


def _base_evaluation_schema() -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "criteria": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "integer"},
                        "name": {"type": "string"},
                        "score": {"type": "number"},
                        "maxScore": {"type": "number"},
                        "feedback": {"type": "string"},
                    },
                },
            },
            "totalScore": {"type": "number"},
            "criticalError": {"type": ["string", "null"]},
            "isInvalid": {"type": "boolean"},
        },
    }


def _ensure_strict_schema_node(node: object) -> None:
    if isinstance(node, list):
        for item in node:
            _ensure_strict_schema_node(item)
        return

    if not isinstance(node, dict):
        return

    if node.get("type") == "object":
        properties = node.get("properties")
        if not isinstance(properties, dict):
            properties = {}
            node["properties"] = properties
        node["additionalProperties"] = False
        # Strict mode needs every property listed; optional ones are nullable.
        node["required"] = list(properties.keys())

    properties = node.get("properties")
    if isinstance(properties, dict):
        for value in properties.values():
            _ensure_strict_schema_node(value)

    items = node.get("items")
    if items is not None:
        _ensure_strict_schema_node(items)

    for key in ("anyOf", "oneOf", "allOf"):
        variants = node.get(key)
        if isinstance(variants, list):
            for variant in variants:
                _ensure_strict_schema_node(variant)


def build_evaluation_response_schema() -> dict[str, Any]:
    schema = copy.deepcopy(_base_evaluation_schema())
    _ensure_strict_schema_node(schema)
    validate_schema_strictness(schema)
    return schema


def validate_schema_strictness(schema: dict[str, Any]) -> None:
    def _walk(node: object, path: str) -> None:
        if isinstance(node, list):
            for idx, item in enumerate(node):
                _walk(item, f"{path}[{idx}]")
            return

        if not isinstance(node, dict):
            return

        if node.get("type") == "object":
            if node.get("additionalProperties") is not False:
                raise SchemaBuildError(f"Object at {path} missing additionalProperties=false")
            required = node.get("required")
            if not isinstance(required, list):
                raise SchemaBuildError(f"Object at {path} missing required list")
            missing = set(node.get("properties", {})) - set(required)
            if missing:
                raise SchemaBuildError(f"Object at {path} does not require {sorted(missing)}")

        if node.get("type") == "array" and isinstance(node.get("items"), dict):
            items = node["items"]
            if items.get("type") == "object" and not isinstance(items.get("required"), list):
                raise SchemaBuildError(f"Array items object at {path}.items missing required list")

        for key, value in node.items():
            _walk(value, f"{path}.{key}")

    _walk(schema, "schema")


def build_system_instruction(criteria: tuple[Criterion, ...] | None = None) -> str:
    criteria = criteria or get_criteria()
    critical = critical_criterion(criteria)
    occlusal_ids = ", ".join(str(c.id) for c in criteria if c.view == "occlusal")
    proximal_ids = ", ".join(str(c.id) for c in criteria if c.view == "proximal")
    return (
        "You are an expert dental educator specializing in Pedodontics and Operative Dentistry.\n"
        "Your task is to evaluate a Class II cavity preparation on a primary first molar tooth based on two photos: "
        "the first image is the occlusal view and the second image is the proximal view.\n"
        f"You must provide a score for each of the following {len(criteria)} criteria, "
        "using only the listed anchor values:\n\n"
        f"{render_rubric_instructions(criteria)}\n\n"
        f"Critical error rules (criterion {critical.id}):\n"
        f"- {critical.scoring_options[PENALTY_INVALID_SUBMISSION]}: score {PENALTY_INVALID_SUBMISSION}, "
        "set isInvalid to true, set totalScore to 0 and describe the finding in criticalError.\n"
        f"- {critical.scoring_options[PENALTY_NO_STEP_PREPARATION]}: score {PENALTY_NO_STEP_PREPARATION} "
        f"and deduct {-PENALTY_NO_STEP_PREPARATION} points from the total.\n"
        f"- Otherwise score {PENALTY_NONE} and set criticalError to null.\n"
        f"totalScore is the sum of all criterion scores, clamped between 0 and {max_total(criteria)}.\n\n"
        "Use both images to make the most accurate assessment. "
        f"The occlusal view is best for criteria {occlusal_ids}. "
        f"The proximal view is best for criteria {proximal_ids}.\n"
        "For every criterion copy id, name and maxScore exactly as listed above (maxScore is the Max value, "
        f"0 for criterion {critical.id}).\n"
        f"The 'feedback' field for each criterion must be written in {FEEDBACK_LANGUAGE} "
        "as the target users are Turkish dental students.\n"
        "Return ONLY JSON matching the provided schema."
    )


def build_evaluation_request(
    model: str,
    instructions: str,
    prompt: str,
    images: list[NormalizedImage],
    schema: dict[str, object],
) -> dict[str, object]:
    content: list[dict[str, str]] = [{"type": "input_text", "text": prompt}]
    for image in images:
        content.append(
            {
                "type": "input_image",
                "image_url": image.data_url,
            }
        )

    return {
        "model": model,
        "instructions": instructions,
        "input": [{"role": "user", "content": content}],
        "text": {
            "format": {
                "type": "json_schema",
                "name": "cavity_evaluation",
                "strict": True,
                "schema": schema,
            }
        },
    }


class OpenAIEvaluationClient:
    """Single-shot evaluation against the OpenAI Responses API.

    The client keeps no state between calls and never retries; transport
    failures surface as ``TransportError``.
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4.1-mini",
        timeout_seconds: float = 90.0,
        criteria: tuple[Criterion, ...] | None = None,
        max_image_width: int = 1600,
        jpeg_quality: int = 85,
        client: Any = None,
    ) -> None:
        if client is None:
            if not api_key.strip():
                raise RuntimeError("OPENAI_API_KEY is not set")

            client = openai.OpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=0)

        self._client = client
        self._model = model
        self._criteria = criteria or get_criteria()
        self._max_image_width = max_image_width
        self._jpeg_quality = jpeg_quality
        self._schema = build_evaluation_response_schema()
        self._instructions = build_system_instruction(self._criteria)

    @property
    def model(self) -> str:
        return self._model

    def _call_openai(self, request_payload: dict[str, object], request_id: str) -> str:
        try:
            response = self._client.responses.create(**request_payload)
        except (openai.APIError, httpx.HTTPError, TimeoutError, ConnectionError) as exc:
            status_code = getattr(exc, "status_code", None)
            if isinstance(exc, (openai.APITimeoutError, httpx.TimeoutException, TimeoutError)):
                status_code = 504
            response_obj = getattr(exc, "response", None)
            body_text = ""
            if response_obj is not None:
                body_text = getattr(response_obj, "text", "") or ""
            if not body_text:
                body_text = str(exc)
            logger.error(
                "evaluate openai request failed",
                extra={"request_id": request_id, "stage": "call_openai", "model": self._model, "status_code": status_code},
            )
            raise TransportError(status_code=status_code, body=body_text, message=f"OpenAI request failed: {exc}") from exc
        return getattr(response, "output_text", "") or ""

    def evaluate(
        self,
        occlusal: EvaluationImage | None,
        proximal: EvaluationImage | None,
        request_id: str | None = None,
    ) -> EvaluationResult:
        request_id = request_id or uuid.uuid4().hex
        images = prepare_evaluation_images(
            occlusal,
            proximal,
            max_width=self._max_image_width,
            jpeg_quality=self._jpeg_quality,
        )
        for view, norm in zip(("occlusal", "proximal"), images):
            logger.info(
                "evaluate normalized image",
                extra={
                    "request_id": request_id,
                    "stage": "prepare_openai_request",
                    "view": view,
                    "original_size_bytes": norm.original_size_bytes,
                    "final_size_bytes": norm.final_size_bytes,
                    "width": norm.width,
                    "height": norm.height,
                },
            )

        request_payload = build_evaluation_request(
            model=self._model,
            instructions=self._instructions,
            prompt=TASK_PROMPT,
            images=images,
            schema=self._schema,
        )
        started = time.perf_counter()
        output_text = self._call_openai(request_payload, request_id=request_id)
        logger.info(
            "evaluate openai timing",
            extra={
                "request_id": request_id,
                "stage": "call_openai",
                "model": self._model,
                "payload_size_bytes": sum(item.final_size_bytes for item in images),
                "openai_ms": int((time.perf_counter() - started) * 1000),
            },
        )

        try:
            parsed = parse_evaluation_response(output_text, self._criteria)
        except MalformedResponseError as exc:
            logger.warning(
                "evaluate malformed response",
                extra={"request_id": request_id, "stage": "validate_response", "model": self._model, "reason": str(exc)},
            )
            raise
        for warning in parsed.warnings:
            logger.warning(
                "evaluate response normalized",
                extra={"request_id": request_id, "stage": "validate_response", "model": self._model, "detail": warning},
            )
        return parsed.result


class MockEvaluationClient:
    """Canned evaluation for local development without an API key."""

    def __init__(self, criteria: tuple[Criterion, ...] | None = None) -> None:
        self._criteria = criteria or get_criteria()

    def evaluate(
        self,
        occlusal: EvaluationImage | None,
        proximal: EvaluationImage | None,
        request_id: str | None = None,
    ) -> EvaluationResult:
        _ = request_id
        require_both_views(occlusal, proximal)
        items = []
        for criterion in self._criteria:
            if criterion.is_critical:
                score = PENALTY_NONE
                feedback = "Kritik hata saptanmadı."
            else:
                score = max(criterion.anchor_points)
                feedback = f"{criterion.name}: {criterion.scoring_options[score]}."
            items.append(
                {
                    "id": criterion.id,
                    "name": criterion.name,
                    "score": score,
                    "maxScore": criterion.max_points,
                    "feedback": feedback,
                }
            )
        payload = {
            "criteria": items,
            "totalScore": max_total(self._criteria),
            "criticalError": None,
            "isInvalid": False,
        }
        return parse_evaluation_response(json.dumps(payload), self._criteria).result


def get_evaluation_client(config: Settings | None = None) -> EvaluationClient:
    config = config or settings
    if config.openai_mock:
        return MockEvaluationClient()
    return OpenAIEvaluationClient(
        api_key=config.openai_api_key,
        model=config.openai_model,
        timeout_seconds=config.openai_timeout_seconds,
        max_image_width=config.max_image_width,
        jpeg_quality=config.jpeg_quality,
    )
