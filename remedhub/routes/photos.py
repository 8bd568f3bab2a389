import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import User
from ..schemas.completion import (
    PhotoCreate,
    PhotoDownloadResponse,
    PhotoRemovalResponse,
    PhotoResponse,
    PhotoType,
    PhotoUpdate,
)
from ..services import photos
from ..services.jobs import get_job_for_user
from ..storage.factory import get_storage
from ..storage.provider import StorageProvider

router = APIRouter(prefix="/jobs/{job_id}/photos", tags=["photos"])


@router.get("", response_model=List[PhotoResponse])
def list_photos(
    job_id: uuid.UUID,
    photo_type: Optional[PhotoType] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    get_job_for_user(db, job_id, user.organization_id)
    return photos.list_photos(db, job_id, user, photo_type=photo_type.value if photo_type else None)


@router.post("", response_model=PhotoResponse, status_code=201)
def add_photo(
    job_id: uuid.UUID,
    payload: PhotoCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    data = payload.model_dump(exclude_unset=True)
    data["photo_type"] = payload.photo_type.value
    return photos.add_photo(db, user, job_id, **data)


@router.patch("/{photo_id}", response_model=PhotoResponse)
def update_photo(
    job_id: uuid.UUID,
    photo_id: uuid.UUID,
    payload: PhotoUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return photos.update_photo(
        db, user, photo_id,
        photo_type=payload.photo_type.value if payload.photo_type else None,
        caption=payload.caption,
        job_id=job_id,
    )


@router.delete("/{photo_id}", response_model=PhotoRemovalResponse)
def remove_photo(
    job_id: uuid.UUID,
    photo_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: StorageProvider = Depends(get_storage),
):
    result = photos.remove_photo(db, user, photo_id, storage, job_id=job_id)
    return PhotoRemovalResponse(
        id=result.photo_id,
        deleted=True,
        warnings=[w.to_dict() for w in result.warnings],
    )


@router.get("/{photo_id}/url", response_model=PhotoDownloadResponse)
def photo_download_url(
    job_id: uuid.UUID,
    photo_id: uuid.UUID,
    expires_in: int = Query(300, ge=30, le=3600),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: StorageProvider = Depends(get_storage),
):
    url = photos.photo_download_url(db, user, photo_id, storage, job_id=job_id, expires_s=expires_in)
    return PhotoDownloadResponse(url=url, expires_in=expires_in)
