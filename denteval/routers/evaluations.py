"""Rubric and one-shot evaluation endpoints."""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from denteval.ai.openai_vision import EvaluationClient
from denteval.deps import get_client, read_inline_image, read_upload_image
from denteval.pipeline.images import EvaluationImage
from denteval.rubric import get_criteria, get_criterion, max_total
from denteval.schemas import CriterionRead, EvaluationReport, InlineEvaluationRequest, RubricRead

router = APIRouter(tags=["evaluations"])
logger = logging.getLogger(__name__)


@router.get("/rubric", response_model=RubricRead)
def read_rubric() -> RubricRead:
    return RubricRead(
        criteria=[CriterionRead.from_criterion(criterion) for criterion in get_criteria()],
        max_total=max_total(),
    )


@router.get("/rubric/{criterion_id}", response_model=CriterionRead)
def read_criterion(criterion_id: int) -> CriterionRead:
    try:
        return CriterionRead.from_criterion(get_criterion(criterion_id))
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Criterion not found") from exc


def _evaluate(
    client: EvaluationClient,
    occlusal: EvaluationImage | None,
    proximal: EvaluationImage | None,
) -> EvaluationReport:
    request_id = uuid.uuid4().hex
    result = client.evaluate(occlusal, proximal, request_id=request_id)
    report = EvaluationReport.from_result(result)
    logger.info(
        "evaluation completed",
        extra={"request_id": request_id, "stage": "respond", "total_score": report.total_score, "band": report.band.value},
    )
    return report


@router.post("/evaluations", response_model=EvaluationReport)
def create_evaluation(
    occlusal: UploadFile | None = File(default=None),
    proximal: UploadFile | None = File(default=None),
    client: EvaluationClient = Depends(get_client),
) -> EvaluationReport:
    return _evaluate(
        client,
        read_upload_image(occlusal, "occlusal"),
        read_upload_image(proximal, "proximal"),
    )


@router.post("/evaluations/inline", response_model=EvaluationReport)
def create_inline_evaluation(
    payload: InlineEvaluationRequest,
    client: EvaluationClient = Depends(get_client),
) -> EvaluationReport:
    return _evaluate(
        client,
        read_inline_image(payload.occlusal, "occlusal"),
        read_inline_image(payload.proximal, "proximal"),
    )
