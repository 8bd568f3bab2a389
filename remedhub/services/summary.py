"""
Read-only completion summary for the completion screen and report.

All collections are read sequentially on the caller's session, so the view is
one consistent snapshot of the job.
"""
import uuid

import structlog
from sqlalchemy.orm import Session

from ..errors import require_actor
from ..models.models import User
from ..schemas.completion import (
    ChecklistItemResponse,
    ChecklistProgress,
    CompletionResponse,
    CompletionSummaryResponse,
    MaterialUsageResponse,
    NoteworthyMaterial,
    PhotoResponse,
    TimeEntryResponse,
)
from .checklist import checklist_progress, group_checklist, list_checklist
from .jobs import get_job_for_user
from .ledger import list_material_usage, list_time_entries
from .photos import list_photos
from .variance import classify_cost_variance, is_material_noteworthy
from .workflow import get_completion

log = structlog.get_logger(__name__)


def summarize(db: Session, job_id: uuid.UUID, actor: User) -> CompletionSummaryResponse:
    require_actor(actor, job_id=job_id)
    get_job_for_user(db, job_id, actor.organization_id)

    time_entries = list_time_entries(db, job_id, actor)
    materials = list_material_usage(db, job_id, actor)
    photos = list_photos(db, job_id, actor)
    items = list_checklist(db, job_id, actor)
    completion = get_completion(db, job_id, actor)

    progress = checklist_progress(items)
    grouped = group_checklist(items)
    noteworthy = [
        NoteworthyMaterial(id=m.id, material_name=m.material_name, variance_percent=m.variance_percent)
        for m in materials
        if is_material_noteworthy(m.variance_percent)
    ]

    return CompletionSummaryResponse(
        time_entries=[TimeEntryResponse.model_validate(t) for t in time_entries],
        material_usage=[MaterialUsageResponse.model_validate(m) for m in materials],
        photos=[PhotoResponse.model_validate(p) for p in photos],
        checklist={
            category: [ChecklistItemResponse.model_validate(i) for i in bucket]
            for category, bucket in grouped.items()
        },
        completion=CompletionResponse.model_validate(completion) if completion else None,
        checklist_progress=ChecklistProgress(**progress),
        variance_classification=classify_cost_variance(completion.cost_variance_percent) if completion else None,
        noteworthy_materials=noteworthy,
        ready_to_submit=progress["required_completed_count"] == progress["required_total"],
    )
