"""
Photo manifest for a job completion.

Photo rows only hold metadata and the storage locator; the bytes live in the
configured StorageProvider. Removal deletes the row first and releases the
stored object afterwards, so a storage outage never resurrects a photo.
"""
import uuid
from dataclasses import dataclass, field
from typing import Any, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..db import unit_of_work
from ..errors import NotFoundError, StorageReleaseWarning, ValidationError, require_actor
from ..models.models import JobCompletionChecklist, JobCompletionPhoto, User
from ..schemas.completion import PhotoType
from ..storage.provider import StorageProvider
from .audit import record_activity
from .jobs import get_job_for_user
from .workflow import ensure_job_open

log = structlog.get_logger(__name__)

METADATA_FIELDS = (
    "photo_url", "thumbnail_url", "caption", "taken_at",
    "location_lat", "location_lng", "camera_make", "camera_model",
    "image_width", "image_height", "file_name", "file_size", "mime_type",
)


@dataclass
class PhotoRemoval:
    photo_id: uuid.UUID
    warnings: List[StorageReleaseWarning] = field(default_factory=list)


def _photo_type(value: Any) -> str:
    try:
        return PhotoType(value).value
    except ValueError:
        raise ValidationError(f"Unknown photo type {value!r}", field="photo_type")


def storage_prefix(organization_id: uuid.UUID, job_id: uuid.UUID) -> str:
    return f"{organization_id}/{job_id}/"


def _check_storage_path(storage_path: str, organization_id: uuid.UUID, job_id: uuid.UUID) -> str:
    """Photo objects live under <organization_id>/<job_id>/ and may not climb out of it."""
    prefix = storage_prefix(organization_id, job_id)
    if not storage_path.startswith(prefix) or "\\" in storage_path:
        raise ValidationError(
            f"storage_path must be under {prefix}", field="storage_path", job_id=job_id,
        )
    segments = storage_path[len(prefix):].split("/")
    if any(segment in ("", ".", "..") for segment in segments):
        raise ValidationError("storage_path is not a valid object key", field="storage_path", job_id=job_id)
    return storage_path


def _get_photo(db: Session, photo_id: uuid.UUID, actor: User, job_id: Optional[uuid.UUID] = None) -> JobCompletionPhoto:
    query = db.query(JobCompletionPhoto).filter(
        JobCompletionPhoto.id == photo_id, JobCompletionPhoto.organization_id == actor.organization_id
    )
    if job_id is not None:
        query = query.filter(JobCompletionPhoto.job_id == job_id)
    photo = query.first()
    if photo is None:
        raise NotFoundError("completion_photo", photo_id)
    return photo


def list_photos(
    db: Session,
    job_id: uuid.UUID,
    actor: User,
    photo_type: Optional[str] = None,
) -> List[JobCompletionPhoto]:
    require_actor(actor, job_id=job_id)
    query = db.query(JobCompletionPhoto).filter(
        JobCompletionPhoto.job_id == job_id,
        JobCompletionPhoto.organization_id == actor.organization_id,
    )
    if photo_type:
        query = query.filter(JobCompletionPhoto.photo_type == _photo_type(photo_type))
    return query.order_by(JobCompletionPhoto.created_at.desc()).all()


def add_photo(
    db: Session,
    actor: User,
    job_id: uuid.UUID,
    storage_path: str,
    photo_type: str = PhotoType.during.value,
    **metadata: Any,
) -> JobCompletionPhoto:
    require_actor(actor, job_id=job_id)
    if not (storage_path or "").strip():
        raise ValidationError("storage_path is required", field="storage_path", job_id=job_id)
    for name in metadata:
        if name not in METADATA_FIELDS:
            raise ValidationError(f"{name} is not a photo attribute", field=name, job_id=job_id)
    photo_type = _photo_type(photo_type)
    job = get_job_for_user(db, job_id, actor.organization_id)
    storage_path = _check_storage_path(storage_path, job.organization_id, job_id)
    ensure_job_open(db, job_id)

    with unit_of_work(db):
        photo = JobCompletionPhoto(
            job_id=job_id,
            organization_id=job.organization_id,
            storage_path=storage_path,
            photo_type=photo_type,
            uploaded_by=actor.id,
            **metadata,
        )
        db.add(photo)
        db.flush()
        record_activity(
            db, "completion_photo", photo.id, "CREATE",
            actor_id=actor.id, organization_id=photo.organization_id,
            changes_json={"storage_path": storage_path, "photo_type": photo_type},
            context={"job_id": job_id},
        )
    return photo


def update_photo(
    db: Session,
    actor: User,
    photo_id: uuid.UUID,
    photo_type: Optional[str] = None,
    caption: Optional[str] = None,
    job_id: Optional[uuid.UUID] = None,
) -> JobCompletionPhoto:
    require_actor(actor, photo_id=photo_id)
    if photo_type is not None:
        photo_type = _photo_type(photo_type)
    photo = _get_photo(db, photo_id, actor, job_id)
    ensure_job_open(db, photo.job_id)

    with unit_of_work(db):
        before = {"photo_type": photo.photo_type, "caption": photo.caption}
        if photo_type is not None:
            photo.photo_type = photo_type
        if caption is not None:
            photo.caption = caption
        record_activity(
            db, "completion_photo", photo.id, "UPDATE",
            actor_id=actor.id, organization_id=photo.organization_id,
            changes_json={"before": before, "after": {"photo_type": photo.photo_type, "caption": photo.caption}},
            context={"job_id": photo.job_id},
        )
    return photo


def _strip_evidence(db: Session, job_id: uuid.UUID, photo_id: uuid.UUID) -> int:
    """Drop the photo from every checklist item of the job that cites it."""
    photo_key = str(photo_id)
    touched = 0
    items = db.query(JobCompletionChecklist).filter(JobCompletionChecklist.job_id == job_id).all()
    for item in items:
        evidence = item.evidence_photo_ids or []
        if photo_key in evidence:
            # New list so the JSON column is flagged dirty
            item.evidence_photo_ids = [pid for pid in evidence if pid != photo_key]
            touched += 1
    return touched


def remove_photo(
    db: Session,
    actor: User,
    photo_id: uuid.UUID,
    storage: StorageProvider,
    job_id: Optional[uuid.UUID] = None,
) -> PhotoRemoval:
    """
    Delete a photo record, then release its stored object.

    The row deletion is committed before storage is touched. A storage failure
    is returned as a StorageReleaseWarning instead of being raised, and the
    orphaned object is left for an out-of-band sweep.
    """
    require_actor(actor, photo_id=photo_id)
    photo = _get_photo(db, photo_id, actor, job_id)
    job_id = photo.job_id
    storage_path = photo.storage_path
    ensure_job_open(db, job_id)

    with unit_of_work(db):
        organization_id = photo.organization_id
        db.delete(photo)
        touched = _strip_evidence(db, job_id, photo_id)
        record_activity(
            db, "completion_photo", photo_id, "DELETE",
            actor_id=actor.id, organization_id=organization_id,
            changes_json={"storage_path": storage_path},
            context={"job_id": job_id, "checklist_items_updated": touched},
        )

    result = PhotoRemoval(photo_id=photo_id)
    try:
        storage.delete(storage_path)
    except Exception as exc:
        warning = StorageReleaseWarning(storage_path, str(exc) or exc.__class__.__name__)
        result.warnings.append(warning)
        log.warning(
            "photo_storage_release_failed",
            job_id=str(job_id),
            photo_id=str(photo_id),
            storage_path=storage_path,
            provider=getattr(storage, "name", None),
            error=str(exc),
        )
    return result


def photo_download_url(
    db: Session,
    actor: User,
    photo_id: uuid.UUID,
    storage: StorageProvider,
    job_id: Optional[uuid.UUID] = None,
    expires_s: int = 300,
) -> str:
    require_actor(actor, photo_id=photo_id)
    photo = _get_photo(db, photo_id, actor, job_id)
    url = storage.get_download_url(photo.storage_path, expires_s=expires_s)
    if not url:
        raise NotFoundError("photo_object", photo.storage_path, photo_id=photo_id)
    return url
