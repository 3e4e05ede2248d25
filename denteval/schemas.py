"""Evaluation result models and response schemas."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, StrictBool, StrictStr, model_validator
from pydantic.alias_generators import to_camel

from denteval.rubric import Criterion, max_total


def _whole_number(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("must be a number")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError("must be a whole number")
    return int(value)


WholeNumber = Annotated[int, BeforeValidator(_whole_number)]


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid", frozen=True)


class CriterionResult(_WireModel):
    id: WholeNumber
    name: StrictStr
    score: WholeNumber
    max_score: WholeNumber
    feedback: StrictStr


class EvaluationPayload(_WireModel):
    """Evaluation exactly as returned by the model, before catalog checks."""

    criteria: list[CriterionResult]
    total_score: WholeNumber
    critical_error: StrictStr | None = None
    is_invalid: StrictBool


class EvaluationResult(EvaluationPayload):
    """A validated evaluation of one submission."""

    @model_validator(mode="after")
    def _check_total(self) -> "EvaluationResult":
        if not 0 <= self.total_score <= 100:
            raise ValueError("totalScore must be within [0, 100]")
        if self.is_invalid and self.total_score != 0:
            raise ValueError("invalid submissions must have totalScore 0")
        return self


class Band(str, Enum):
    EXCELLENT = "Excellent"
    SUCCESSFUL = "Successful"
    NEEDS_IMPROVEMENT = "NeedsImprovement"
    INSUFFICIENT = "Insufficient"

    @property
    def display_label(self) -> str:
        return _BAND_DISPLAY_LABELS[self]


_BAND_DISPLAY_LABELS = {
    Band.EXCELLENT: "Mükemmel",
    Band.SUCCESSFUL: "Başarılı",
    Band.NEEDS_IMPROVEMENT: "Geliştirilmeli",
    Band.INSUFFICIENT: "Yetersiz",
}

# Lower bounds, highest first. A boundary value belongs to the higher band.
_BAND_THRESHOLDS = (
    (85, Band.EXCELLENT),
    (70, Band.SUCCESSFUL),
    (50, Band.NEEDS_IMPROVEMENT),
)


def band_label(total_score: int) -> Band:
    for threshold, band in _BAND_THRESHOLDS:
        if total_score >= threshold:
            return band
    return Band.INSUFFICIENT


class CriterionStatus(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    ZERO = "zero"


def criterion_status(result: CriterionResult) -> CriterionStatus:
    if result.score == result.max_score:
        return CriterionStatus.FULL
    if result.score == 0:
        return CriterionStatus.ZERO
    return CriterionStatus.PARTIAL


def score_ratio(result: CriterionResult) -> float:
    if result.max_score <= 0:
        return 0.0
    return min(max(result.score / result.max_score, 0.0), 1.0)


class CriterionReport(CriterionResult):
    status: CriterionStatus
    ratio: float


class EvaluationReport(_WireModel):
    """Display-level view of an evaluation."""

    criteria: list[CriterionReport]
    total_score: int
    max_total: int
    critical_error: str | None = None
    is_invalid: bool
    band: Band
    band_label: str

    @classmethod
    def from_result(cls, result: EvaluationResult) -> "EvaluationReport":
        band = band_label(result.total_score)
        return cls(
            criteria=[
                CriterionReport(
                    **item.model_dump(),
                    status=criterion_status(item),
                    ratio=score_ratio(item),
                )
                for item in result.criteria
            ],
            total_score=result.total_score,
            max_total=max_total(),
            critical_error=result.critical_error,
            is_invalid=result.is_invalid,
            band=band,
            band_label=band.display_label,
        )


class CriterionRead(_WireModel):
    id: int
    name: str
    description: str
    max_points: int
    scoring_options: dict[int, str]

    @classmethod
    def from_criterion(cls, criterion: Criterion) -> "CriterionRead":
        return cls(
            id=criterion.id,
            name=criterion.name,
            description=criterion.description,
            max_points=criterion.max_points,
            scoring_options=dict(criterion.scoring_options),
        )


class RubricRead(_WireModel):
    criteria: list[CriterionRead]
    max_total: int


class InlineImage(_WireModel):
    """One photograph as bare base64 or a ``data:`` URL."""

    data: StrictStr
    mime_type: StrictStr | None = None


class InlineEvaluationRequest(_WireModel):
    occlusal: StrictStr | None = None
    proximal: StrictStr | None = None


class SessionRead(_WireModel):
    id: str
    phase: str
    generation: int
    has_occlusal: bool
    has_proximal: bool
    report: EvaluationReport | None = None
    error: str | None = None
