import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import User
from ..schemas.completion import (
    MaterialUsageCreate,
    MaterialUsageResponse,
    MaterialUsageUpdate,
    TimeEntryCreate,
    TimeEntryResponse,
    TimeEntryUpdate,
)
from ..services import ledger
from ..services.jobs import get_job_for_user

router = APIRouter(prefix="/jobs/{job_id}", tags=["ledger"])


# ---- Time entries ----

@router.get("/time-entries", response_model=List[TimeEntryResponse])
def list_time_entries(job_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    get_job_for_user(db, job_id, user.organization_id)
    return ledger.list_time_entries(db, job_id, user)


@router.post("/time-entries", response_model=TimeEntryResponse, status_code=201)
def create_time_entry(
    job_id: uuid.UUID,
    payload: TimeEntryCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    data = payload.model_dump()
    data["work_type"] = payload.work_type.value
    return ledger.record_time_entry(db, user, job_id, **data)


@router.patch("/time-entries/{entry_id}", response_model=TimeEntryResponse)
def update_time_entry(
    job_id: uuid.UUID,
    entry_id: uuid.UUID,
    payload: TimeEntryUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    data = payload.model_dump(exclude_unset=True)
    if payload.work_type is not None:
        data["work_type"] = payload.work_type.value
    return ledger.update_time_entry(db, user, entry_id, job_id=job_id, **data)


@router.delete("/time-entries/{entry_id}")
def delete_time_entry(
    job_id: uuid.UUID,
    entry_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    ledger.delete_time_entry(db, user, entry_id, job_id=job_id)
    return {"id": str(entry_id), "deleted": True}


# ---- Materials ----

@router.get("/materials", response_model=List[MaterialUsageResponse])
def list_materials(job_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    get_job_for_user(db, job_id, user.organization_id)
    return ledger.list_material_usage(db, job_id, user)


@router.post("/materials", response_model=MaterialUsageResponse, status_code=201)
def create_material_usage(
    job_id: uuid.UUID,
    payload: MaterialUsageCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return ledger.record_material_usage(db, user, job_id, **payload.model_dump())


@router.patch("/materials/{usage_id}", response_model=MaterialUsageResponse)
def update_material_usage(
    job_id: uuid.UUID,
    usage_id: uuid.UUID,
    payload: MaterialUsageUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return ledger.update_material_usage(db, user, usage_id, job_id=job_id, **payload.model_dump(exclude_unset=True))


@router.delete("/materials/{usage_id}")
def delete_material_usage(
    job_id: uuid.UUID,
    usage_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    ledger.delete_material_usage(db, user, usage_id, job_id=job_id)
    return {"id": str(usage_id), "deleted": True}
