"""
Field ledger: time entries and material usage for a job.

Every insert, update and delete recomputes the variance of the job's
completion inside the same transaction.
"""
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..db import unit_of_work
from ..errors import NotFoundError, ValidationError, require_actor
from ..models.models import JobMaterialUsage, JobTimeEntry, User
from ..schemas.completion import WorkType
from .audit import compute_diff, record_activity
from .jobs import get_job_for_user
from .variance import material_variance, recompute_variance
from .workflow import ensure_job_open

log = structlog.get_logger(__name__)

TIME_ENTRY_FIELDS = ("work_date", "hours", "work_type", "hourly_rate", "billable", "description", "notes")
MATERIAL_FIELDS = ("material_name", "material_type", "quantity_estimated", "quantity_used", "unit", "unit_cost", "notes")
TIME_ENTRY_REQUIRED = ("work_date", "hours", "work_type", "billable")
MATERIAL_REQUIRED = ("material_name", "quantity_used")


def _reject_nulls(fields: dict, required: tuple) -> None:
    for name in required:
        if name in fields and fields[name] is None:
            raise ValidationError(f"{name} cannot be cleared", field=name)


def _validate_hours(hours: Any) -> float:
    if hours is None or float(hours) <= 0:
        raise ValidationError("hours must be greater than zero", field="hours")
    return float(hours)


def _validate_non_negative(name: str, value: Optional[float]) -> Optional[float]:
    if value is not None and float(value) < 0:
        raise ValidationError(f"{name} must not be negative", field=name)
    return value


def _work_type(value: Any) -> str:
    try:
        return WorkType(value).value
    except ValueError:
        raise ValidationError(f"Unknown work type {value!r}", field="work_type")


def _snapshot(row: Any, fields) -> Dict[str, Any]:
    return {name: getattr(row, name) for name in fields}


# ---- Time entries ----

def list_time_entries(db: Session, job_id: uuid.UUID, actor: User) -> List[JobTimeEntry]:
    require_actor(actor, job_id=job_id)
    return (
        db.query(JobTimeEntry)
        .filter(JobTimeEntry.job_id == job_id, JobTimeEntry.organization_id == actor.organization_id)
        .order_by(JobTimeEntry.work_date.desc(), JobTimeEntry.created_at.desc())
        .all()
    )


def _get_time_entry(db: Session, entry_id: uuid.UUID, actor: User, job_id: Optional[uuid.UUID] = None) -> JobTimeEntry:
    query = db.query(JobTimeEntry).filter(JobTimeEntry.id == entry_id, JobTimeEntry.organization_id == actor.organization_id)
    if job_id is not None:
        query = query.filter(JobTimeEntry.job_id == job_id)
    row = query.first()
    if row is None:
        raise NotFoundError("time_entry", entry_id)
    return row


def record_time_entry(
    db: Session,
    actor: User,
    job_id: uuid.UUID,
    work_date: date,
    hours: float,
    work_type: str = WorkType.regular.value,
    hourly_rate: Optional[float] = None,
    billable: bool = True,
    description: Optional[str] = None,
    notes: Optional[str] = None,
    profile_id: Optional[uuid.UUID] = None,
) -> JobTimeEntry:
    require_actor(actor, job_id=job_id)
    hours = _validate_hours(hours)
    _validate_non_negative("hourly_rate", hourly_rate)
    work_type = _work_type(work_type)
    job = get_job_for_user(db, job_id, actor.organization_id)
    ensure_job_open(db, job_id)

    with unit_of_work(db):
        row = JobTimeEntry(
            job_id=job_id,
            organization_id=job.organization_id,
            profile_id=profile_id or actor.id,
            work_date=work_date,
            hours=hours,
            work_type=work_type,
            hourly_rate=hourly_rate,
            billable=billable,
            description=description,
            notes=notes,
            created_by=actor.id,
        )
        db.add(row)
        db.flush()
        recompute_variance(db, job_id)
        record_activity(
            db, "time_entry", row.id, "CREATE",
            actor_id=actor.id, organization_id=row.organization_id,
            changes_json=_snapshot(row, TIME_ENTRY_FIELDS), context={"job_id": job_id},
        )
    log.info("time_entry_recorded", job_id=str(job_id), entry_id=str(row.id), hours=hours)
    return row


def update_time_entry(db: Session, actor: User, entry_id: uuid.UUID, job_id: Optional[uuid.UUID] = None, **fields: Any) -> JobTimeEntry:
    require_actor(actor, entry_id=entry_id)
    for name in fields:
        if name not in TIME_ENTRY_FIELDS:
            raise ValidationError(f"{name} cannot be changed on a time entry", field=name)
    _reject_nulls(fields, TIME_ENTRY_REQUIRED)
    if "hours" in fields and fields["hours"] is not None:
        fields["hours"] = _validate_hours(fields["hours"])
    _validate_non_negative("hourly_rate", fields.get("hourly_rate"))
    if fields.get("work_type") is not None:
        fields["work_type"] = _work_type(fields["work_type"])

    row = _get_time_entry(db, entry_id, actor, job_id)
    ensure_job_open(db, row.job_id)

    with unit_of_work(db):
        before = _snapshot(row, TIME_ENTRY_FIELDS)
        for name, value in fields.items():
            setattr(row, name, value)
        db.flush()
        recompute_variance(db, row.job_id)
        record_activity(
            db, "time_entry", row.id, "UPDATE",
            actor_id=actor.id, organization_id=row.organization_id,
            changes_json=compute_diff(before, _snapshot(row, TIME_ENTRY_FIELDS)), context={"job_id": row.job_id},
        )
    return row


def delete_time_entry(db: Session, actor: User, entry_id: uuid.UUID, job_id: Optional[uuid.UUID] = None) -> uuid.UUID:
    """Delete an entry and recompute for the job it belonged to. Returns that job id."""
    require_actor(actor, entry_id=entry_id)
    row = _get_time_entry(db, entry_id, actor, job_id)
    job_id = row.job_id
    ensure_job_open(db, job_id)

    with unit_of_work(db):
        snapshot = _snapshot(row, TIME_ENTRY_FIELDS)
        organization_id = row.organization_id
        db.delete(row)
        db.flush()
        recompute_variance(db, job_id)
        record_activity(
            db, "time_entry", entry_id, "DELETE",
            actor_id=actor.id, organization_id=organization_id,
            changes_json=snapshot, context={"job_id": job_id},
        )
    log.info("time_entry_deleted", job_id=str(job_id), entry_id=str(entry_id))
    return job_id


# ---- Material usage ----

def _apply_material_derivations(row: JobMaterialUsage) -> None:
    derived = material_variance(row.quantity_estimated, row.quantity_used, row.unit_cost)
    row.total_cost = derived.total_cost
    row.variance_quantity = derived.variance_quantity
    row.variance_percent = derived.variance_percent


def list_material_usage(db: Session, job_id: uuid.UUID, actor: User) -> List[JobMaterialUsage]:
    require_actor(actor, job_id=job_id)
    return (
        db.query(JobMaterialUsage)
        .filter(JobMaterialUsage.job_id == job_id, JobMaterialUsage.organization_id == actor.organization_id)
        .order_by(JobMaterialUsage.created_at.desc())
        .all()
    )


def _get_material_usage(db: Session, usage_id: uuid.UUID, actor: User, job_id: Optional[uuid.UUID] = None) -> JobMaterialUsage:
    query = db.query(JobMaterialUsage).filter(JobMaterialUsage.id == usage_id, JobMaterialUsage.organization_id == actor.organization_id)
    if job_id is not None:
        query = query.filter(JobMaterialUsage.job_id == job_id)
    row = query.first()
    if row is None:
        raise NotFoundError("material_usage", usage_id)
    return row


def record_material_usage(
    db: Session,
    actor: User,
    job_id: uuid.UUID,
    material_name: str,
    quantity_used: float,
    quantity_estimated: Optional[float] = None,
    unit: Optional[str] = None,
    unit_cost: Optional[float] = None,
    material_type: Optional[str] = None,
    job_material_id: Optional[uuid.UUID] = None,
    notes: Optional[str] = None,
) -> JobMaterialUsage:
    require_actor(actor, job_id=job_id)
    if not (material_name or "").strip():
        raise ValidationError("material_name is required", field="material_name", job_id=job_id)
    if quantity_used is None:
        raise ValidationError("quantity_used is required", field="quantity_used", job_id=job_id)
    for name, value in (("quantity_used", quantity_used), ("quantity_estimated", quantity_estimated), ("unit_cost", unit_cost)):
        _validate_non_negative(name, value)
    job = get_job_for_user(db, job_id, actor.organization_id)
    ensure_job_open(db, job_id)

    with unit_of_work(db):
        row = JobMaterialUsage(
            job_id=job_id,
            organization_id=job.organization_id,
            job_material_id=job_material_id,
            material_name=material_name.strip(),
            material_type=material_type,
            quantity_estimated=quantity_estimated,
            quantity_used=quantity_used,
            unit=unit,
            unit_cost=unit_cost,
            notes=notes,
            created_by=actor.id,
        )
        _apply_material_derivations(row)
        db.add(row)
        db.flush()
        recompute_variance(db, job_id)
        record_activity(
            db, "material_usage", row.id, "CREATE",
            actor_id=actor.id, organization_id=row.organization_id,
            changes_json=_snapshot(row, MATERIAL_FIELDS), context={"job_id": job_id},
        )
    log.info("material_usage_recorded", job_id=str(job_id), usage_id=str(row.id), material=row.material_name)
    return row


def update_material_usage(db: Session, actor: User, usage_id: uuid.UUID, job_id: Optional[uuid.UUID] = None, **fields: Any) -> JobMaterialUsage:
    require_actor(actor, usage_id=usage_id)
    for name in fields:
        if name not in MATERIAL_FIELDS:
            raise ValidationError(f"{name} cannot be changed on a material usage entry", field=name)
    _reject_nulls(fields, MATERIAL_REQUIRED)
    for name in ("quantity_used", "quantity_estimated", "unit_cost"):
        _validate_non_negative(name, fields.get(name))
    if "material_name" in fields and fields["material_name"] is not None and not fields["material_name"].strip():
        raise ValidationError("material_name is required", field="material_name")

    row = _get_material_usage(db, usage_id, actor, job_id)
    ensure_job_open(db, row.job_id)

    with unit_of_work(db):
        before = _snapshot(row, MATERIAL_FIELDS)
        for name, value in fields.items():
            setattr(row, name, value)
        _apply_material_derivations(row)
        db.flush()
        recompute_variance(db, row.job_id)
        record_activity(
            db, "material_usage", row.id, "UPDATE",
            actor_id=actor.id, organization_id=row.organization_id,
            changes_json=compute_diff(before, _snapshot(row, MATERIAL_FIELDS)), context={"job_id": row.job_id},
        )
    return row


def delete_material_usage(db: Session, actor: User, usage_id: uuid.UUID, job_id: Optional[uuid.UUID] = None) -> uuid.UUID:
    require_actor(actor, usage_id=usage_id)
    row = _get_material_usage(db, usage_id, actor, job_id)
    job_id = row.job_id
    ensure_job_open(db, job_id)

    with unit_of_work(db):
        snapshot = _snapshot(row, MATERIAL_FIELDS)
        organization_id = row.organization_id
        db.delete(row)
        db.flush()
        recompute_variance(db, job_id)
        record_activity(
            db, "material_usage", usage_id, "DELETE",
            actor_id=actor.id, organization_id=organization_id,
            changes_json=snapshot, context={"job_id": job_id},
        )
    log.info("material_usage_deleted", job_id=str(job_id), usage_id=str(usage_id))
    return job_id
