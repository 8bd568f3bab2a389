import uuid
from datetime import date, datetime
from typing import List, Optional, Dict
from enum import Enum

from pydantic import BaseModel, Field, field_validator


# Enums
class CompletionStatus(str, Enum):
    draft = "draft"
    submitted = "submitted"
    approved = "approved"
    rejected = "rejected"


class WorkType(str, Enum):
    regular = "regular"
    overtime = "overtime"
    travel = "travel"
    setup = "setup"
    cleanup = "cleanup"
    supervision = "supervision"
    other = "other"


class PhotoType(str, Enum):
    before = "before"
    during = "during"
    after = "after"
    issue = "issue"
    documentation = "documentation"


class ChecklistCategory(str, Enum):
    safety = "safety"
    quality = "quality"
    cleanup = "cleanup"
    documentation = "documentation"
    custom = "custom"


class VarianceClassification(str, Enum):
    over_budget = "over_budget"
    under_budget = "under_budget"
    on_target = "on_target"


# Time Entry Schemas
class TimeEntryCreate(BaseModel):
    class Config:
        extra = "forbid"

    profile_id: Optional[uuid.UUID] = None
    work_date: date
    hours: float = Field(gt=0)
    work_type: WorkType = WorkType.regular
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    billable: bool = True
    description: Optional[str] = None
    notes: Optional[str] = None


class TimeEntryUpdate(BaseModel):
    class Config:
        extra = "forbid"

    work_date: Optional[date] = None
    hours: Optional[float] = Field(default=None, gt=0)
    work_type: Optional[WorkType] = None
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    billable: Optional[bool] = None
    description: Optional[str] = None
    notes: Optional[str] = None


class TimeEntryResponse(BaseModel):
    id: uuid.UUID
    job_id: uuid.UUID
    profile_id: Optional[uuid.UUID] = None
    work_date: date
    hours: float
    work_type: str
    hourly_rate: Optional[float] = None
    billable: bool
    description: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Material Usage Schemas
class MaterialUsageCreate(BaseModel):
    class Config:
        extra = "forbid"

    job_material_id: Optional[uuid.UUID] = None
    material_name: str = Field(min_length=1)
    material_type: Optional[str] = None
    quantity_estimated: Optional[float] = Field(default=None, ge=0)
    quantity_used: float = Field(ge=0)
    unit: Optional[str] = None
    unit_cost: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None


class MaterialUsageUpdate(BaseModel):
    class Config:
        extra = "forbid"

    material_name: Optional[str] = Field(default=None, min_length=1)
    material_type: Optional[str] = None
    quantity_estimated: Optional[float] = Field(default=None, ge=0)
    quantity_used: Optional[float] = Field(default=None, ge=0)
    unit: Optional[str] = None
    unit_cost: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None


class MaterialUsageResponse(BaseModel):
    id: uuid.UUID
    job_id: uuid.UUID
    job_material_id: Optional[uuid.UUID] = None
    material_name: str
    material_type: Optional[str] = None
    quantity_estimated: Optional[float] = None
    quantity_used: float
    unit: Optional[str] = None
    unit_cost: Optional[float] = None
    total_cost: Optional[float] = None
    variance_quantity: Optional[float] = None
    variance_percent: Optional[float] = None
    notes: Optional[str] = None
    created_by: Optional[uuid.UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


# Photo Schemas
class PhotoCreate(BaseModel):
    class Config:
        extra = "forbid"

    storage_path: str = Field(min_length=1)
    photo_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    photo_type: PhotoType = PhotoType.during
    caption: Optional[str] = None
    taken_at: Optional[datetime] = None
    location_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    location_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None


class PhotoUpdate(BaseModel):
    class Config:
        extra = "forbid"

    photo_type: Optional[PhotoType] = None
    caption: Optional[str] = None


class PhotoResponse(BaseModel):
    id: uuid.UUID
    job_id: uuid.UUID
    storage_path: str
    photo_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    photo_type: str
    caption: Optional[str] = None
    taken_at: Optional[datetime] = None
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    uploaded_by: Optional[uuid.UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PhotoRemovalResponse(BaseModel):
    id: uuid.UUID
    deleted: bool = True
    warnings: List[Dict[str, str]] = []


class PhotoDownloadResponse(BaseModel):
    url: str
    expires_in: int


# Checklist Schemas
class ChecklistItemCreate(BaseModel):
    class Config:
        extra = "forbid"

    category: ChecklistCategory = ChecklistCategory.custom
    item_name: str = Field(min_length=1)
    item_description: Optional[str] = None
    sort_order: Optional[int] = None
    is_required: bool = False


class ChecklistItemUpdate(BaseModel):
    class Config:
        extra = "forbid"

    is_completed: Optional[bool] = None
    completion_notes: Optional[str] = None
    evidence_photo_ids: Optional[List[uuid.UUID]] = None


class ChecklistToggle(BaseModel):
    completed: bool
    notes: Optional[str] = None


class ChecklistItemResponse(BaseModel):
    id: uuid.UUID
    job_id: uuid.UUID
    category: str
    item_name: str
    item_description: Optional[str] = None
    sort_order: int
    is_required: bool
    is_completed: bool
    completed_at: Optional[datetime] = None
    completed_by: Optional[uuid.UUID] = None
    completion_notes: Optional[str] = None
    evidence_photo_ids: List[str] = []
    created_at: datetime

    class Config:
        from_attributes = True

    @field_validator("evidence_photo_ids", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return v or []


class ChecklistProgress(BaseModel):
    completed_count: int
    required_completed_count: int
    required_total: int
    total: int


# Completion Schemas
class CompletionCreate(BaseModel):
    class Config:
        extra = "forbid"

    estimated_hours: Optional[float] = Field(default=None, ge=0)
    estimated_material_cost: Optional[float] = Field(default=None, ge=0)
    estimated_total: Optional[float] = Field(default=None, ge=0)
    field_notes: Optional[str] = None
    issues_encountered: Optional[str] = None
    recommendations: Optional[str] = None


class CompletionUpdate(BaseModel):
    """Narrative and sign-off fields; estimates, actuals and variances are not accepted here"""
    class Config:
        extra = "forbid"

    field_notes: Optional[str] = None
    issues_encountered: Optional[str] = None
    recommendations: Optional[str] = None
    customer_signed: Optional[bool] = None
    customer_signature_name: Optional[str] = None
    customer_signature_data: Optional[str] = None


class EstimatesUpdate(BaseModel):
    class Config:
        extra = "forbid"

    estimated_hours: Optional[float] = Field(default=None, ge=0)
    estimated_material_cost: Optional[float] = Field(default=None, ge=0)
    estimated_total: Optional[float] = Field(default=None, ge=0)


class CompletionSubmit(BaseModel):
    class Config:
        extra = "forbid"

    field_notes: Optional[str] = None
    issues_encountered: Optional[str] = None
    recommendations: Optional[str] = None


class CompletionApprove(BaseModel):
    class Config:
        extra = "forbid"

    review_notes: Optional[str] = None


class CompletionReject(BaseModel):
    class Config:
        extra = "forbid"

    # Emptiness is checked by the workflow so the error carries job context
    rejection_reason: str = ""
    review_notes: Optional[str] = None


class CompletionDerived(BaseModel):
    actual_hours: Optional[float] = None
    actual_material_cost: Optional[float] = None
    actual_labor_cost: Optional[float] = None
    actual_total: Optional[float] = None
    hours_variance: Optional[float] = None
    hours_variance_percent: Optional[float] = None
    cost_variance: Optional[float] = None
    cost_variance_percent: Optional[float] = None

    class Config:
        from_attributes = True


class CompletionResponse(CompletionDerived):
    id: uuid.UUID
    job_id: uuid.UUID
    status: CompletionStatus
    estimated_hours: Optional[float] = None
    estimated_material_cost: Optional[float] = None
    estimated_total: Optional[float] = None
    field_notes: Optional[str] = None
    issues_encountered: Optional[str] = None
    recommendations: Optional[str] = None
    submitted_at: Optional[datetime] = None
    submitted_by: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[uuid.UUID] = None
    review_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    customer_signed: bool = False
    customer_signed_at: Optional[datetime] = None
    customer_signature_name: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NoteworthyMaterial(BaseModel):
    id: uuid.UUID
    material_name: str
    variance_percent: float


class CompletionSummaryResponse(BaseModel):
    time_entries: List[TimeEntryResponse]
    material_usage: List[MaterialUsageResponse]
    photos: List[PhotoResponse]
    checklist: Dict[ChecklistCategory, List[ChecklistItemResponse]]
    completion: Optional[CompletionResponse] = None
    checklist_progress: ChecklistProgress
    variance_classification: Optional[VarianceClassification] = None
    noteworthy_materials: List[NoteworthyMaterial] = []
    ready_to_submit: bool


# Variance Analytics Schemas
class MaterialVarianceLine(BaseModel):
    material_name: str
    estimated_qty: Optional[float] = None
    actual_qty: float
    variance_qty: Optional[float] = None
    variance_percent: Optional[float] = None
    unit: Optional[str] = None


class VarianceAnalysisResponse(BaseModel):
    job_id: uuid.UUID
    job_number: str
    job_name: Optional[str] = None
    customer_name: str
    completion_date: Optional[datetime] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    hours_variance: Optional[float] = None
    hours_variance_percent: Optional[float] = None
    estimated_cost: Optional[float] = None
    actual_cost: Optional[float] = None
    cost_variance: Optional[float] = None
    cost_variance_percent: Optional[float] = None
    classification: VarianceClassification
    materials_summary: List[MaterialVarianceLine] = []


class VarianceSummaryResponse(BaseModel):
    total_jobs: int
    over_budget_count: int
    under_budget_count: int
    on_target_count: int
    avg_hours_variance: float
    avg_cost_variance: float
    total_hours_variance: float
    total_cost_variance: float
