import uuid
from typing import Dict, List, Union

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import User
from ..schemas.completion import (
    ChecklistItemCreate,
    ChecklistItemResponse,
    ChecklistItemUpdate,
    ChecklistToggle,
)
from ..services import checklist
from ..services.jobs import get_job_for_user

router = APIRouter(prefix="/jobs/{job_id}/checklist", tags=["checklist"])


@router.get("", response_model=Union[Dict[str, List[ChecklistItemResponse]], List[ChecklistItemResponse]])
def get_checklist(
    job_id: uuid.UUID,
    grouped: bool = Query(False),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    get_job_for_user(db, job_id, user.organization_id)
    items = checklist.list_checklist(db, job_id, user)
    if grouped:
        return {
            category: [ChecklistItemResponse.model_validate(i) for i in bucket]
            for category, bucket in checklist.group_checklist(items).items()
        }
    return [ChecklistItemResponse.model_validate(i) for i in items]


@router.post("", response_model=List[ChecklistItemResponse])
def initialize_checklist(job_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return checklist.initialize_checklist(db, job_id, user)


@router.post("/items", response_model=ChecklistItemResponse, status_code=201)
def add_checklist_item(
    job_id: uuid.UUID,
    payload: ChecklistItemCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return checklist.add_checklist_item(
        db, job_id, user,
        category=payload.category.value,
        item_name=payload.item_name,
        item_description=payload.item_description,
        is_required=payload.is_required,
        sort_order=payload.sort_order,
    )


@router.patch("/{item_id}", response_model=ChecklistItemResponse)
def update_checklist_item(
    job_id: uuid.UUID,
    item_id: uuid.UUID,
    payload: ChecklistItemUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return checklist.update_checklist_item(db, item_id, user, job_id=job_id, **payload.model_dump(exclude_unset=True))


@router.post("/{item_id}/toggle", response_model=ChecklistItemResponse)
def toggle_checklist_item(
    job_id: uuid.UUID,
    item_id: uuid.UUID,
    payload: ChecklistToggle,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return checklist.toggle_checklist_item(db, item_id, user, payload.completed, notes=payload.notes, job_id=job_id)
