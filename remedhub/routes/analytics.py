from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import User
from ..schemas.completion import VarianceAnalysisResponse, VarianceSummaryResponse
from ..services.reporting import variance_analysis, variance_summary

router = APIRouter(prefix="/analytics", tags=["analytics"])


def _filters(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    customer_name: Optional[str] = Query(None),
    hazard_types: Optional[List[str]] = Query(None),
    variance_threshold: Optional[float] = Query(None, ge=0),
) -> dict:
    return {
        "start_date": start_date,
        "end_date": end_date,
        "customer_name": customer_name,
        "hazard_types": hazard_types,
        "variance_threshold": variance_threshold,
    }


@router.get("/variance", response_model=List[VarianceAnalysisResponse])
def get_variance_analysis(
    filters: dict = Depends(_filters),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return variance_analysis(db, user.organization_id, **filters)


@router.get("/variance/summary", response_model=VarianceSummaryResponse)
def get_variance_summary(
    filters: dict = Depends(_filters),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return variance_summary(db, user.organization_id, **filters)
