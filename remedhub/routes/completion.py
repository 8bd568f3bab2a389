import uuid
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import User
from ..reports.pdf_completion import render_summary_pdf
from ..schemas.completion import (
    CompletionApprove,
    CompletionCreate,
    CompletionReject,
    CompletionResponse,
    CompletionSubmit,
    CompletionSummaryResponse,
    CompletionUpdate,
    EstimatesUpdate,
)
from ..services import workflow
from ..services.jobs import get_job_for_user
from ..services.summary import summarize

router = APIRouter(prefix="/jobs/{job_id}/complete", tags=["completion"])


@router.get("", response_model=Union[CompletionSummaryResponse, CompletionResponse, None])
def get_completion(
    job_id: uuid.UUID,
    summary: bool = Query(False, description="Return the full completion summary"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if summary:
        return summarize(db, job_id, user)
    get_job_for_user(db, job_id, user.organization_id)
    completion = workflow.get_completion(db, job_id, user)
    return CompletionResponse.model_validate(completion) if completion else None


@router.post("", response_model=CompletionResponse)
def create_completion(
    job_id: uuid.UUID,
    payload: Optional[CompletionCreate] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    data = payload.model_dump() if payload else {}
    return workflow.create_completion(db, job_id, user, **data)


@router.patch("", response_model=CompletionResponse)
def update_completion(
    job_id: uuid.UUID,
    payload: CompletionUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return workflow.update_completion(db, job_id, user, **payload.model_dump(exclude_unset=True))


@router.patch("/estimates", response_model=CompletionResponse)
def update_estimates(
    job_id: uuid.UUID,
    payload: EstimatesUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return workflow.update_estimates(db, job_id, user, **payload.model_dump())


@router.post("/submit", response_model=CompletionResponse)
def submit_completion(
    job_id: uuid.UUID,
    payload: Optional[CompletionSubmit] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    data = payload.model_dump() if payload else {}
    return workflow.submit_completion(db, job_id, user, **data)


@router.post("/approve", response_model=CompletionResponse)
def approve_completion(
    job_id: uuid.UUID,
    payload: Optional[CompletionApprove] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return workflow.approve_completion(db, job_id, user, review_notes=payload.review_notes if payload else None)


@router.post("/reject", response_model=CompletionResponse)
def reject_completion(
    job_id: uuid.UUID,
    payload: CompletionReject,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return workflow.reject_completion(
        db, job_id, user,
        rejection_reason=payload.rejection_reason,
        review_notes=payload.review_notes,
    )


@router.get("/report.pdf")
def completion_report(
    job_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    job = get_job_for_user(db, job_id, user.organization_id)
    pdf = render_summary_pdf(summarize(db, job_id, user), job)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="completion-{job.job_number}.pdf"'},
    )
