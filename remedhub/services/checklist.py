"""
Per-job completion checklist, seeded from the organization's template.
"""
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..db import unit_of_work
from ..errors import NotFoundError, ValidationError, require_actor
from ..models.models import JobCompletionChecklist, JobCompletionPhoto, User
from ..schemas.completion import ChecklistCategory
from .audit import record_activity
from .jobs import get_job_for_user
from .templates import ChecklistTemplateProvider, SqlChecklistTemplateProvider
from .workflow import ensure_job_open

log = structlog.get_logger(__name__)

CATEGORY_KEYS = tuple(c.value for c in ChecklistCategory)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def list_checklist(db: Session, job_id: uuid.UUID, actor: User) -> List[JobCompletionChecklist]:
    require_actor(actor, job_id=job_id)
    return (
        db.query(JobCompletionChecklist)
        .filter(
            JobCompletionChecklist.job_id == job_id,
            JobCompletionChecklist.organization_id == actor.organization_id,
        )
        .order_by(JobCompletionChecklist.category, JobCompletionChecklist.sort_order)
        .all()
    )


def initialize_checklist(
    db: Session,
    job_id: uuid.UUID,
    actor: User,
    templates: Optional[ChecklistTemplateProvider] = None,
) -> List[JobCompletionChecklist]:
    """Copy the organization template onto the job. A job that already has items keeps them."""
    require_actor(actor, job_id=job_id)
    job = get_job_for_user(db, job_id, actor.organization_id)
    existing = list_checklist(db, job_id, actor)
    if existing:
        return existing
    ensure_job_open(db, job_id)

    templates = templates or SqlChecklistTemplateProvider(db)
    with unit_of_work(db):
        for tmpl in templates.default_items(job.organization_id):
            db.add(
                JobCompletionChecklist(
                    job_id=job_id,
                    organization_id=job.organization_id,
                    category=tmpl.category,
                    item_name=tmpl.item_name,
                    item_description=tmpl.item_description,
                    sort_order=tmpl.sort_order,
                    is_required=tmpl.is_required,
                    is_completed=False,
                    evidence_photo_ids=[],
                )
            )
        db.flush()
        record_activity(
            db, "checklist", job_id, "INITIALIZE",
            actor_id=actor.id, organization_id=job.organization_id,
            context={"job_id": job_id},
        )
    items = list_checklist(db, job_id, actor)
    log.info("checklist_initialized", job_id=str(job_id), items=len(items))
    return items


def group_checklist(items: Iterable[JobCompletionChecklist]) -> Dict[str, List[JobCompletionChecklist]]:
    """Bucket items by category. Items outside the known categories are left out of the view."""
    grouped: Dict[str, List[JobCompletionChecklist]] = {key: [] for key in CATEGORY_KEYS}
    for item in items:
        bucket = grouped.get(item.category)
        if bucket is None:
            log.warning("checklist_category_dropped", job_id=str(item.job_id), item_id=str(item.id), category=item.category)
            continue
        bucket.append(item)
    return grouped


def checklist_progress(items: Iterable[JobCompletionChecklist]) -> Dict[str, int]:
    items = list(items)
    required = [i for i in items if i.is_required]
    return {
        "completed_count": sum(1 for i in items if i.is_completed),
        "required_completed_count": sum(1 for i in required if i.is_completed),
        "required_total": len(required),
        "total": len(items),
    }


def _get_item(db: Session, item_id: uuid.UUID, actor: User, job_id: Optional[uuid.UUID] = None) -> JobCompletionChecklist:
    query = db.query(JobCompletionChecklist).filter(
        JobCompletionChecklist.id == item_id,
        JobCompletionChecklist.organization_id == actor.organization_id,
    )
    if job_id is not None:
        query = query.filter(JobCompletionChecklist.job_id == job_id)
    item = query.first()
    if item is None:
        raise NotFoundError("checklist_item", item_id)
    return item


def _check_evidence(db: Session, job_id: uuid.UUID, photo_ids: List[uuid.UUID]) -> List[str]:
    wanted = []
    for pid in photo_ids:
        try:
            key = uuid.UUID(str(pid))
        except ValueError:
            raise ValidationError(f"{pid} is not a photo id", field="evidence_photo_ids", job_id=job_id)
        if key not in wanted:
            wanted.append(key)
    if not wanted:
        return []
    found = {
        row.id
        for row in db.query(JobCompletionPhoto.id).filter(
            JobCompletionPhoto.job_id == job_id, JobCompletionPhoto.id.in_(wanted)
        )
    }
    missing = [str(pid) for pid in wanted if pid not in found]
    if missing:
        raise ValidationError(
            "Evidence photos must belong to the same job",
            field="evidence_photo_ids", job_id=job_id, photo_ids=missing,
        )
    return [str(pid) for pid in wanted]


def _set_completed(item: JobCompletionChecklist, completed: bool, actor: User) -> None:
    if completed:
        item.is_completed = True
        item.completed_at = _now()
        item.completed_by = actor.id
    else:
        item.is_completed = False
        item.completed_at = None
        item.completed_by = None


def add_checklist_item(
    db: Session,
    job_id: uuid.UUID,
    actor: User,
    category: str,
    item_name: str,
    item_description: Optional[str] = None,
    is_required: bool = False,
    sort_order: Optional[int] = None,
) -> JobCompletionChecklist:
    require_actor(actor, job_id=job_id)
    if category not in CATEGORY_KEYS:
        raise ValidationError(f"Unknown checklist category {category!r}", field="category", job_id=job_id)
    if not (item_name or "").strip():
        raise ValidationError("item_name is required", field="item_name", job_id=job_id)
    job = get_job_for_user(db, job_id, actor.organization_id)
    ensure_job_open(db, job_id)

    if sort_order is None:
        current_max = (
            db.query(func.max(JobCompletionChecklist.sort_order))
            .filter(JobCompletionChecklist.job_id == job_id, JobCompletionChecklist.category == category)
            .scalar()
        )
        sort_order = (current_max or 0) + 1

    with unit_of_work(db):
        item = JobCompletionChecklist(
            job_id=job_id,
            organization_id=job.organization_id,
            category=category,
            item_name=item_name.strip(),
            item_description=item_description,
            sort_order=sort_order,
            is_required=is_required,
            is_completed=False,
            evidence_photo_ids=[],
        )
        db.add(item)
        db.flush()
        record_activity(
            db, "checklist", item.id, "CREATE",
            actor_id=actor.id, organization_id=item.organization_id,
            changes_json={"category": category, "item_name": item.item_name, "is_required": is_required},
            context={"job_id": job_id},
        )
    return item


def toggle_checklist_item(
    db: Session,
    item_id: uuid.UUID,
    actor: User,
    completed: bool,
    notes: Optional[str] = None,
    job_id: Optional[uuid.UUID] = None,
) -> JobCompletionChecklist:
    return update_checklist_item(db, item_id, actor, is_completed=completed, completion_notes=notes, job_id=job_id)


def update_checklist_item(
    db: Session,
    item_id: uuid.UUID,
    actor: User,
    is_completed: Optional[bool] = None,
    completion_notes: Optional[str] = None,
    evidence_photo_ids: Optional[List[uuid.UUID]] = None,
    job_id: Optional[uuid.UUID] = None,
) -> JobCompletionChecklist:
    require_actor(actor, item_id=item_id)
    item = _get_item(db, item_id, actor, job_id)
    ensure_job_open(db, item.job_id)
    evidence = _check_evidence(db, item.job_id, evidence_photo_ids) if evidence_photo_ids is not None else None

    with unit_of_work(db):
        before = {
            "is_completed": item.is_completed,
            "completion_notes": item.completion_notes,
            "evidence_photo_ids": list(item.evidence_photo_ids or []),
        }
        if is_completed is not None:
            _set_completed(item, is_completed, actor)
        if completion_notes is not None:
            item.completion_notes = completion_notes
        if evidence is not None:
            item.evidence_photo_ids = evidence
        record_activity(
            db, "checklist", item.id, "UPDATE",
            actor_id=actor.id, organization_id=item.organization_id,
            changes_json={
                "before": before,
                "after": {
                    "is_completed": item.is_completed,
                    "completion_notes": item.completion_notes,
                    "evidence_photo_ids": list(item.evidence_photo_ids or []),
                },
            },
            context={"job_id": item.job_id},
        )
    return item
