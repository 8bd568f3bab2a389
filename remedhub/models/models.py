import uuid
from datetime import datetime, date, timezone
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    JSON,
    UniqueConstraint,
    Text,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = uuid_pk()
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Job(Base):
    """Mirror of the scheduling system's job; only what completion needs"""
    __tablename__ = "jobs"

    id: Mapped[uuid.UUID] = uuid_pk()
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    job_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    customer_name: Mapped[Optional[str]] = mapped_column(String(255))
    hazard_types: Mapped[Optional[list]] = mapped_column(JSON)  # ["asbestos", "mold", "lead", ...]
    status: Mapped[str] = mapped_column(String(50), default="scheduled", index=True)  # scheduled|in_progress|completed|cancelled
    estimated_duration_hours: Mapped[Optional[float]] = mapped_column(Float)
    contract_amount: Mapped[Optional[float]] = mapped_column(Float)
    actual_end_date: Mapped[Optional[date]] = mapped_column(Date)
    completion_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=utcnow)


class JobCompletion(Base):
    """Completion record for a job. Derived columns are written by variance recomputation only."""
    __tablename__ = "job_completions"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", index=True)  # draft|submitted|approved|rejected

    # Estimates, copied from the job at creation
    estimated_hours: Mapped[Optional[float]] = mapped_column(Float)
    estimated_material_cost: Mapped[Optional[float]] = mapped_column(Float)
    estimated_total: Mapped[Optional[float]] = mapped_column(Float)

    # Derived
    actual_hours: Mapped[Optional[float]] = mapped_column(Float)
    actual_material_cost: Mapped[Optional[float]] = mapped_column(Float)
    actual_labor_cost: Mapped[Optional[float]] = mapped_column(Float)
    actual_total: Mapped[Optional[float]] = mapped_column(Float)
    hours_variance: Mapped[Optional[float]] = mapped_column(Float)
    hours_variance_percent: Mapped[Optional[float]] = mapped_column(Float)
    cost_variance: Mapped[Optional[float]] = mapped_column(Float)
    cost_variance_percent: Mapped[Optional[float]] = mapped_column(Float)

    # Narrative
    field_notes: Mapped[Optional[str]] = mapped_column(Text)
    issues_encountered: Mapped[Optional[str]] = mapped_column(Text)
    recommendations: Mapped[Optional[str]] = mapped_column(Text)

    # Review
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    submitted_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    review_notes: Mapped[Optional[str]] = mapped_column(Text)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)

    # Customer sign-off
    customer_signed: Mapped[bool] = mapped_column(Boolean, default=False)
    customer_signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    customer_signature_name: Mapped[Optional[str]] = mapped_column(String(255))
    customer_signature_data: Mapped[Optional[str]] = mapped_column(Text)  # data URL of the drawn signature

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("job_id", name="uq_job_completion_job"),
    )

    def apply_variance(self, result) -> None:
        self.actual_hours = result.actual_hours
        self.actual_material_cost = result.actual_material_cost
        self.actual_labor_cost = result.actual_labor_cost
        self.actual_total = result.actual_total
        self.hours_variance = result.hours_variance
        self.hours_variance_percent = result.hours_variance_percent
        self.cost_variance = result.cost_variance
        self.cost_variance_percent = result.cost_variance_percent


class JobTimeEntry(Base):
    __tablename__ = "job_time_entries"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    profile_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    hours: Mapped[float] = mapped_column(Float, nullable=False)
    work_type: Mapped[str] = mapped_column(String(30), nullable=False, default="regular")  # regular|overtime|travel|setup|cleanup|supervision|other
    hourly_rate: Mapped[Optional[float]] = mapped_column(Float)
    billable: Mapped[bool] = mapped_column(Boolean, default=True)
    description: Mapped[Optional[str]] = mapped_column(String(1000))
    notes: Mapped[Optional[str]] = mapped_column(String(2000))
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=utcnow)

    __table_args__ = (
        Index("idx_time_entry_job_date", "job_id", "work_date"),
    )


class JobMaterialUsage(Base):
    __tablename__ = "job_material_usage"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    job_material_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))  # estimate material line, if any
    material_name: Mapped[str] = mapped_column(String(255), nullable=False)
    material_type: Mapped[Optional[str]] = mapped_column(String(100))
    quantity_estimated: Mapped[Optional[float]] = mapped_column(Float)
    quantity_used: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    unit: Mapped[Optional[str]] = mapped_column(String(30))
    unit_cost: Mapped[Optional[float]] = mapped_column(Float)
    # Derived
    total_cost: Mapped[Optional[float]] = mapped_column(Float)
    variance_quantity: Mapped[Optional[float]] = mapped_column(Float)
    variance_percent: Mapped[Optional[float]] = mapped_column(Float)
    notes: Mapped[Optional[str]] = mapped_column(String(2000))
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=utcnow)


class JobCompletionPhoto(Base):
    __tablename__ = "job_completion_photos"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    storage_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    photo_url: Mapped[Optional[str]] = mapped_column(String(2048))
    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(2048))
    photo_type: Mapped[str] = mapped_column(String(30), nullable=False, default="during")  # before|during|after|issue|documentation
    caption: Mapped[Optional[str]] = mapped_column(String(1000))
    taken_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    location_lat: Mapped[Optional[float]] = mapped_column(Float)
    location_lng: Mapped[Optional[float]] = mapped_column(Float)
    camera_make: Mapped[Optional[str]] = mapped_column(String(100))
    camera_model: Mapped[Optional[str]] = mapped_column(String(100))
    image_width: Mapped[Optional[int]] = mapped_column(Integer)
    image_height: Mapped[Optional[int]] = mapped_column(Integer)
    file_name: Mapped[Optional[str]] = mapped_column(String(255))
    file_size: Mapped[Optional[int]] = mapped_column(Integer)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100))
    uploaded_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class JobCompletionChecklist(Base):
    __tablename__ = "job_completion_checklists"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False)  # safety|quality|cleanup|documentation|custom
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    item_description: Mapped[Optional[str]] = mapped_column(String(1000))
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    completion_notes: Mapped[Optional[str]] = mapped_column(String(2000))
    evidence_photo_ids: Mapped[Optional[list]] = mapped_column(JSON, default=list)  # list of JobCompletionPhoto ids
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=utcnow)

    __table_args__ = (
        Index("idx_checklist_job_category", "job_id", "category", "sort_order"),
    )


class ChecklistTemplateItem(Base):
    """Organization-level default checklist, copied per job on first use"""
    __tablename__ = "checklist_template_items"

    id: Mapped[uuid.UUID] = uuid_pk()
    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    item_description: Mapped[Optional[str]] = mapped_column(String(1000))
    is_required: Mapped[bool] = mapped_column(Boolean, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("organization_id", "category", "item_name", name="uq_template_org_item"),
    )


class AuditLog(Base):
    """Append-only activity log for completion actions"""
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    organization_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), index=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # job_completion|time_entry|material_usage|completion_photo|checklist
    entity_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # CREATE|UPDATE|DELETE|SUBMIT|APPROVE|REJECT|INITIALIZE
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), index=True)
    source: Mapped[Optional[str]] = mapped_column(String(50))  # app|api|system
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON)  # Before/after diff
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    context: Mapped[Optional[dict]] = mapped_column(JSON)  # {job_id, from_status, to_status, ...}
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))  # SHA256 hash for integrity verification

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_actor", "actor_id", "timestamp_utc"),
    )
