"""
Job completion workflow.

One JobCompletion per job, created lazily and never deleted. Status moves
through an explicit transition table:

    draft -> submitted -> approved
                       -> rejected -> submitted -> ...

Transitions are written as a compare-and-set on the status read at the start
of the call, so two reviewers racing approve/reject cannot both win.
Approval is the only transition that reaches outside the completion: it asks
the JobProvider to mark the job completed.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional

import structlog
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import unit_of_work
from ..errors import InvalidTransition, NotFoundError, ValidationError, require_actor
from ..models.models import JobCompletion, User
from ..schemas.completion import CompletionStatus
from .audit import record_activity
from .jobs import JobProvider, SqlJobProvider, local_today
from .variance import recompute_variance

log = structlog.get_logger(__name__)


TRANSITIONS: Dict[CompletionStatus, FrozenSet[CompletionStatus]] = {
    CompletionStatus.draft: frozenset({CompletionStatus.submitted}),
    CompletionStatus.submitted: frozenset({CompletionStatus.approved, CompletionStatus.rejected}),
    CompletionStatus.rejected: frozenset({CompletionStatus.submitted}),
    CompletionStatus.approved: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

TRANSITION_ACTIONS = {
    CompletionStatus.submitted: "SUBMIT",
    CompletionStatus.approved: "APPROVE",
    CompletionStatus.rejected: "REJECT",
}

NARRATIVE_FIELDS = ("field_notes", "issues_encountered", "recommendations")
SIGNATURE_FIELDS = ("customer_signed", "customer_signature_name", "customer_signature_data")
ESTIMATE_FIELDS = ("estimated_hours", "estimated_material_cost", "estimated_total")


def can_transition(current: CompletionStatus, target: CompletionStatus) -> bool:
    return target in TRANSITIONS[current]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _find(db: Session, job_id: uuid.UUID, organization_id: uuid.UUID) -> Optional[JobCompletion]:
    return (
        db.query(JobCompletion)
        .filter(JobCompletion.job_id == job_id, JobCompletion.organization_id == organization_id)
        .first()
    )


def get_completion(db: Session, job_id: uuid.UUID, actor: User) -> Optional[JobCompletion]:
    require_actor(actor, job_id=job_id)
    return _find(db, job_id, actor.organization_id)


def require_completion(db: Session, job_id: uuid.UUID, actor: User) -> JobCompletion:
    completion = get_completion(db, job_id, actor)
    if completion is None:
        raise NotFoundError("job_completion", job_id, job_id=job_id)
    return completion


def ensure_job_open(db: Session, job_id: uuid.UUID) -> None:
    """Field records of a job are frozen once its completion is approved."""
    completion = db.query(JobCompletion.status).filter(JobCompletion.job_id == job_id).first()
    if completion is not None and CompletionStatus(completion.status) in TERMINAL_STATUSES:
        raise InvalidTransition(
            "Job completion is approved; field records can no longer change",
            job_id=job_id,
            current_status=completion.status,
            attempted="modify",
        )


def create_completion(
    db: Session,
    job_id: uuid.UUID,
    actor: User,
    jobs: Optional[JobProvider] = None,
    estimated_hours: Optional[float] = None,
    estimated_material_cost: Optional[float] = None,
    estimated_total: Optional[float] = None,
    field_notes: Optional[str] = None,
    issues_encountered: Optional[str] = None,
    recommendations: Optional[str] = None,
) -> JobCompletion:
    """Create the job's completion, or return the existing one unchanged."""
    require_actor(actor, job_id=job_id)
    existing = _find(db, job_id, actor.organization_id)
    if existing is not None:
        return existing

    jobs = jobs or SqlJobProvider(db)
    job = jobs.get_job(job_id)
    if job.organization_id != actor.organization_id:
        raise NotFoundError("job", job_id)

    try:
        with unit_of_work(db):
            completion = JobCompletion(
                job_id=job_id,
                organization_id=job.organization_id,
                status=CompletionStatus.draft.value,
                estimated_hours=estimated_hours if estimated_hours is not None else job.estimated_duration_hours,
                estimated_material_cost=estimated_material_cost,
                estimated_total=estimated_total if estimated_total is not None else job.contract_amount,
                field_notes=field_notes,
                issues_encountered=issues_encountered,
                recommendations=recommendations,
            )
            db.add(completion)
            db.flush()
            jobs.link_completion(job_id, completion.id)
            recompute_variance(db, job_id)
            record_activity(
                db, "job_completion", completion.id, "CREATE",
                actor_id=actor.id, organization_id=completion.organization_id,
                context={"job_id": job_id, "job_number": job.job_number},
            )
    except IntegrityError:
        # Lost a concurrent create to the one-completion-per-job constraint
        existing = _find(db, job_id, actor.organization_id)
        if existing is None:
            raise
        log.info("completion_create_raced", job_id=str(job_id), completion_id=str(existing.id))
        return existing
    log.info("completion_created", job_id=str(job_id), completion_id=str(completion.id))
    return completion


def update_completion(db: Session, job_id: uuid.UUID, actor: User, **fields: Any) -> JobCompletion:
    """Narrative and customer sign-off fields, at any status."""
    require_actor(actor, job_id=job_id)
    allowed = set(NARRATIVE_FIELDS) | set(SIGNATURE_FIELDS)
    for name in fields:
        if name in ESTIMATE_FIELDS:
            raise ValidationError(f"{name} is changed through the estimates endpoint", field=name, job_id=job_id)
        if name not in allowed:
            raise ValidationError(f"{name} cannot be set on a job completion", field=name, job_id=job_id)

    completion = require_completion(db, job_id, actor)
    if fields.get("customer_signed") is False and completion.customer_signed:
        raise ValidationError("A recorded customer signature cannot be withdrawn", field="customer_signed", job_id=job_id)

    with unit_of_work(db):
        before = {k: getattr(completion, k) for k in fields}
        for name, value in fields.items():
            if value is None:
                continue
            if name == "customer_signed":
                if value and not completion.customer_signed:
                    completion.customer_signed = True
                    completion.customer_signed_at = _now()
                continue
            setattr(completion, name, value)
        after = {k: getattr(completion, k) for k in fields}
        record_activity(
            db, "job_completion", completion.id, "UPDATE",
            actor_id=actor.id, organization_id=completion.organization_id,
            changes_json={"before": before, "after": after}, context={"job_id": job_id},
        )
    return completion


def update_estimates(
    db: Session,
    job_id: uuid.UUID,
    actor: User,
    estimated_hours: Optional[float] = None,
    estimated_material_cost: Optional[float] = None,
    estimated_total: Optional[float] = None,
) -> JobCompletion:
    """Explicitly revise the estimates; only while the completion is still a draft."""
    require_actor(actor, job_id=job_id)
    values = {
        "estimated_hours": estimated_hours,
        "estimated_material_cost": estimated_material_cost,
        "estimated_total": estimated_total,
    }
    values = {k: v for k, v in values.items() if v is not None}
    if not values:
        raise ValidationError("No estimate values supplied", job_id=job_id)
    for name, value in values.items():
        if value < 0:
            raise ValidationError(f"{name} must not be negative", field=name, job_id=job_id)

    completion = require_completion(db, job_id, actor)
    if completion.status != CompletionStatus.draft.value:
        raise InvalidTransition(
            "Estimates can only be changed while the completion is a draft",
            job_id=job_id, current_status=completion.status, attempted="update_estimates",
        )

    with unit_of_work(db):
        before = {k: getattr(completion, k) for k in values}
        for name, value in values.items():
            setattr(completion, name, value)
        recompute_variance(db, job_id)
        record_activity(
            db, "job_completion", completion.id, "UPDATE",
            actor_id=actor.id, organization_id=completion.organization_id,
            changes_json={"before": before, "after": values}, context={"job_id": job_id},
        )
    return completion


def _transition(
    db: Session,
    completion: JobCompletion,
    target: CompletionStatus,
    actor: User,
    values: Dict[str, Any],
) -> None:
    current = CompletionStatus(completion.status)
    db.flush()
    result = db.execute(
        update(JobCompletion)
        .where(JobCompletion.id == completion.id, JobCompletion.status == current.value)
        .values(status=target.value, updated_at=_now(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidTransition(
            "Job completion changed status concurrently; reload and retry",
            job_id=completion.job_id, current_status=current.value, attempted=target.value,
        )
    db.refresh(completion)
    record_activity(
        db, "job_completion", completion.id, TRANSITION_ACTIONS[target],
        actor_id=actor.id, organization_id=completion.organization_id,
        context={"job_id": completion.job_id, "from_status": current.value, "to_status": target.value},
    )


def _check_transition(completion: JobCompletion, target: CompletionStatus) -> None:
    current = CompletionStatus(completion.status)
    if not can_transition(current, target):
        raise InvalidTransition(
            f"Cannot move a {current.value} completion to {target.value}",
            job_id=completion.job_id, current_status=current.value, attempted=target.value,
        )


def submit_completion(
    db: Session,
    job_id: uuid.UUID,
    actor: User,
    field_notes: Optional[str] = None,
    issues_encountered: Optional[str] = None,
    recommendations: Optional[str] = None,
) -> JobCompletion:
    """Submit for review. Variance is recomputed first so the submitted snapshot is current."""
    require_actor(actor, job_id=job_id)
    completion = require_completion(db, job_id, actor)
    _check_transition(completion, CompletionStatus.submitted)

    values: Dict[str, Any] = {"submitted_at": _now(), "submitted_by": actor.id}
    for name, value in (("field_notes", field_notes), ("issues_encountered", issues_encountered), ("recommendations", recommendations)):
        if value:
            values[name] = value

    with unit_of_work(db):
        recompute_variance(db, job_id)
        _transition(db, completion, CompletionStatus.submitted, actor, values)
    log.info("completion_submitted", job_id=str(job_id), actual_hours=completion.actual_hours, cost_variance_percent=completion.cost_variance_percent)
    return completion


def approve_completion(
    db: Session,
    job_id: uuid.UUID,
    actor: User,
    review_notes: Optional[str] = None,
    jobs: Optional[JobProvider] = None,
) -> JobCompletion:
    """Approve a submitted completion and close the job."""
    require_actor(actor, job_id=job_id)
    completion = require_completion(db, job_id, actor)
    _check_transition(completion, CompletionStatus.approved)
    jobs = jobs or SqlJobProvider(db)

    with unit_of_work(db):
        _transition(
            db, completion, CompletionStatus.approved, actor,
            {"reviewed_at": _now(), "reviewed_by": actor.id, "review_notes": review_notes},
        )
        jobs.mark_completed(job_id, local_today())
    log.info("completion_approved", job_id=str(job_id), reviewed_by=str(actor.id))
    return completion


def reject_completion(
    db: Session,
    job_id: uuid.UUID,
    actor: User,
    rejection_reason: Optional[str],
    review_notes: Optional[str] = None,
) -> JobCompletion:
    """Send a submitted completion back to the crew. The job itself is untouched."""
    require_actor(actor, job_id=job_id)
    reason = (rejection_reason or "").strip()
    if not reason:
        raise ValidationError("A rejection reason is required", field="rejection_reason", job_id=job_id)
    completion = require_completion(db, job_id, actor)
    _check_transition(completion, CompletionStatus.rejected)

    with unit_of_work(db):
        _transition(
            db, completion, CompletionStatus.rejected, actor,
            {
                "reviewed_at": _now(),
                "reviewed_by": actor.id,
                "review_notes": review_notes,
                "rejection_reason": reason,
            },
        )
    log.info("completion_rejected", job_id=str(job_id), reviewed_by=str(actor.id))
    return completion
