"""
Estimate-vs-actual reporting across approved completions of an organization.
"""
import uuid
from datetime import date, datetime, time, timezone
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from ..models.models import Job, JobCompletion, JobMaterialUsage
from ..schemas.completion import (
    CompletionStatus,
    MaterialVarianceLine,
    VarianceAnalysisResponse,
    VarianceClassification,
    VarianceSummaryResponse,
)
from .variance import classify_cost_variance


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def _day_end(d: date) -> datetime:
    return datetime.combine(d, time.max, tzinfo=timezone.utc)


def variance_analysis(
    db: Session,
    organization_id: uuid.UUID,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    customer_name: Optional[str] = None,
    hazard_types: Optional[Sequence[str]] = None,
    variance_threshold: Optional[float] = None,
) -> List[VarianceAnalysisResponse]:
    """
    One line per approved completion, newest review first.

    Args:
        start_date / end_date: inclusive window on the review date
        customer_name: case-insensitive exact match on the job's customer
        hazard_types: keep jobs sharing at least one hazard type
        variance_threshold: keep jobs with |cost_variance_percent| >= threshold
    """
    query = (
        db.query(JobCompletion, Job)
        .join(Job, Job.id == JobCompletion.job_id)
        .filter(
            JobCompletion.organization_id == organization_id,
            JobCompletion.status == CompletionStatus.approved.value,
        )
    )
    if start_date:
        query = query.filter(JobCompletion.reviewed_at >= _day_start(start_date))
    if end_date:
        query = query.filter(JobCompletion.reviewed_at <= _day_end(end_date))
    rows = query.order_by(JobCompletion.reviewed_at.desc()).all()

    wanted_hazards = set(hazard_types or [])
    analyses: List[VarianceAnalysisResponse] = []
    for completion, job in rows:
        if customer_name and (job.customer_name or "").lower() != customer_name.lower():
            continue
        if wanted_hazards and not wanted_hazards.intersection(job.hazard_types or []):
            continue
        if variance_threshold is not None and abs(completion.cost_variance_percent or 0) < variance_threshold:
            continue

        materials = (
            db.query(JobMaterialUsage)
            .filter(JobMaterialUsage.job_id == job.id)
            .order_by(JobMaterialUsage.material_name)
            .all()
        )
        analyses.append(
            VarianceAnalysisResponse(
                job_id=job.id,
                job_number=job.job_number,
                job_name=job.name,
                customer_name=job.customer_name or "Unknown",
                completion_date=completion.reviewed_at,
                estimated_hours=completion.estimated_hours,
                actual_hours=completion.actual_hours,
                hours_variance=completion.hours_variance,
                hours_variance_percent=completion.hours_variance_percent,
                estimated_cost=completion.estimated_total,
                actual_cost=completion.actual_total,
                cost_variance=completion.cost_variance,
                cost_variance_percent=completion.cost_variance_percent,
                classification=classify_cost_variance(completion.cost_variance_percent),
                materials_summary=[
                    MaterialVarianceLine(
                        material_name=m.material_name,
                        estimated_qty=m.quantity_estimated,
                        actual_qty=m.quantity_used,
                        variance_qty=m.variance_quantity,
                        variance_percent=m.variance_percent,
                        unit=m.unit,
                    )
                    for m in materials
                ],
            )
        )
    return analyses


def variance_summary(db: Session, organization_id: uuid.UUID, **filters) -> VarianceSummaryResponse:
    analyses = variance_analysis(db, organization_id, **filters)
    counts = {c: 0 for c in VarianceClassification}
    hours_total = 0.0
    cost_total = 0.0
    for a in analyses:
        counts[a.classification] += 1
        hours_total += a.hours_variance or 0
        cost_total += a.cost_variance or 0

    n = len(analyses)
    return VarianceSummaryResponse(
        total_jobs=n,
        over_budget_count=counts[VarianceClassification.over_budget],
        under_budget_count=counts[VarianceClassification.under_budget],
        on_target_count=counts[VarianceClassification.on_target],
        avg_hours_variance=round(hours_total / n, 2) if n else 0.0,
        avg_cost_variance=round(cost_total / n, 2) if n else 0.0,
        total_hours_variance=round(hours_total, 2),
        total_cost_variance=round(cost_total, 2),
    )
