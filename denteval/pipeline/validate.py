"""Strict parsing of the model's evaluation payload against the rubric."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from pydantic import ValidationError

from denteval.errors import MalformedResponseError
from denteval.rubric import PENALTY_INVALID_SUBMISSION, Criterion, get_criteria
from denteval.schemas import CriterionResult, EvaluationPayload, EvaluationResult


@dataclass
class ParsedEvaluation:
    result: EvaluationResult
    warnings: list[str] = field(default_factory=list)


def _load_payload(text: str | None) -> EvaluationPayload:
    if text is None or not text.strip():
        raise MalformedResponseError("empty response body")
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"response is not JSON: {exc.msg}") from exc
    if not isinstance(raw, dict):
        raise MalformedResponseError("response is not a JSON object")
    try:
        return EvaluationPayload.model_validate(raw)
    except ValidationError as exc:
        errors = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        )
        raise MalformedResponseError(f"response does not match schema: {errors}") from exc


_DOTTED_I = str.maketrans({"İ": "i", "I": "i", "ı": "i"})


def _name_key(name: str) -> str:
    # Dotted and dotless i compare equal in either case.
    return " ".join(name.translate(_DOTTED_I).casefold().split())


def _check_criterion(item: CriterionResult, criterion: Criterion) -> None:
    if _name_key(item.name) != _name_key(criterion.name):
        raise MalformedResponseError(f"criterion {criterion.id} name {item.name!r} does not match {criterion.name!r}")
    if item.max_score != criterion.max_points:
        raise MalformedResponseError(
            f"criterion {criterion.id} maxScore {item.max_score} does not match {criterion.max_points}"
        )
    if criterion.is_critical:
        if item.score not in criterion.scoring_options:
            raise MalformedResponseError(f"criterion {criterion.id} score {item.score} is not a known penalty code")
        return
    if not 0 <= item.score <= criterion.max_points:
        raise MalformedResponseError(
            f"criterion {criterion.id} score {item.score} outside [0, {criterion.max_points}]"
        )


def _ordered_criteria(payload: EvaluationPayload, criteria: tuple[Criterion, ...]) -> list[CriterionResult]:
    by_id: dict[int, CriterionResult] = {}
    for item in payload.criteria:
        if item.id in by_id:
            raise MalformedResponseError(f"duplicate criterion id {item.id}")
        by_id[item.id] = item

    expected_ids = [criterion.id for criterion in criteria]
    missing = [criterion_id for criterion_id in expected_ids if criterion_id not in by_id]
    if missing:
        raise MalformedResponseError(f"missing criteria ids {missing}")
    unknown = sorted(set(by_id) - set(expected_ids))
    if unknown:
        raise MalformedResponseError(f"unknown criteria ids {unknown}")

    ordered: list[CriterionResult] = []
    for criterion in criteria:
        item = by_id[criterion.id]
        _check_criterion(item, criterion)
        ordered.append(item)
    return ordered


def derived_total(items: list[CriterionResult]) -> int:
    """Sum of criterion scores, deductions included, clamped to [0, 100]."""

    return min(max(sum(item.score for item in items), 0), 100)


def parse_evaluation_response(text: str | None, criteria: tuple[Criterion, ...] | None = None) -> ParsedEvaluation:
    """Parse and validate the raw model output.

    The only repair applied is forcing ``totalScore`` to 0 for an invalid
    submission; every other mismatch raises ``MalformedResponseError``.
    """

    criteria = criteria or get_criteria()
    payload = _load_payload(text)
    ordered = _ordered_criteria(payload, criteria)
    warnings: list[str] = []

    invalidated = any(
        criterion.is_critical and item.score == PENALTY_INVALID_SUBMISSION
        for criterion, item in zip(criteria, ordered)
    )
    if invalidated and not payload.is_invalid:
        raise MalformedResponseError("invalidation penalty reported without isInvalid")

    total_score = payload.total_score
    if payload.is_invalid:
        if total_score != 0:
            warnings.append(f"isInvalid is true but totalScore was {total_score}; reported as 0")
        total_score = 0
    elif not 0 <= total_score <= 100:
        raise MalformedResponseError(f"totalScore {total_score} outside [0, 100]")
    else:
        derived = derived_total(ordered)
        if derived != total_score:
            warnings.append(f"totalScore {total_score} differs from criterion sum {derived}")

    critical_error = payload.critical_error.strip() if payload.critical_error else None

    result = EvaluationResult(
        criteria=ordered,
        total_score=total_score,
        critical_error=critical_error or None,
        is_invalid=payload.is_invalid,
    )
    return ParsedEvaluation(result=result, warnings=warnings)
