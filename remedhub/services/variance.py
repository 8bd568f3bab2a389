"""
Cost/time variance computation.

The pure functions here take numbers and return numbers. ``recompute_variance``
is the only place that writes the derived columns of a JobCompletion: it
re-aggregates the whole ledger of the job every time, so repeated or
interleaved calls always converge on the same values.
"""
import uuid
from dataclasses import dataclass, asdict
from typing import Optional

import structlog
from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import JobCompletion, JobMaterialUsage, JobTimeEntry
from ..schemas.completion import VarianceClassification

log = structlog.get_logger(__name__)

PRECISION = 2


@dataclass(frozen=True)
class LedgerAggregates:
    actual_hours: float = 0.0
    actual_material_cost: float = 0.0
    actual_labor_cost: float = 0.0


@dataclass(frozen=True)
class VarianceResult:
    actual_hours: float
    actual_material_cost: float
    actual_labor_cost: float
    actual_total: float
    hours_variance: Optional[float]
    hours_variance_percent: Optional[float]
    cost_variance: Optional[float]
    cost_variance_percent: Optional[float]

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class MaterialVariance:
    total_cost: Optional[float]
    variance_quantity: Optional[float]
    variance_percent: Optional[float]


def _round(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return round(float(value), PRECISION)


def percent_of(delta: Optional[float], base: Optional[float]) -> Optional[float]:
    """delta as a percentage of base; None when base is missing or zero."""
    if delta is None or base is None or base == 0:
        return None
    return _round(delta / base * 100)


def compute_variance(
    estimated_hours: Optional[float],
    estimated_total: Optional[float],
    aggregates: LedgerAggregates,
) -> VarianceResult:
    actual_hours = _round(aggregates.actual_hours)
    actual_material_cost = _round(aggregates.actual_material_cost)
    actual_labor_cost = _round(aggregates.actual_labor_cost)
    actual_total = _round(aggregates.actual_material_cost + aggregates.actual_labor_cost)

    hours_variance = _round(actual_hours - estimated_hours) if estimated_hours is not None else None
    cost_variance = _round(actual_total - estimated_total) if estimated_total is not None else None

    return VarianceResult(
        actual_hours=actual_hours,
        actual_material_cost=actual_material_cost,
        actual_labor_cost=actual_labor_cost,
        actual_total=actual_total,
        hours_variance=hours_variance,
        hours_variance_percent=percent_of(hours_variance, estimated_hours),
        cost_variance=cost_variance,
        cost_variance_percent=percent_of(cost_variance, estimated_total),
    )


def material_variance(
    quantity_estimated: Optional[float],
    quantity_used: Optional[float],
    unit_cost: Optional[float],
) -> MaterialVariance:
    total_cost = None
    if quantity_used is not None and unit_cost is not None:
        total_cost = _round(quantity_used * unit_cost)
    variance_quantity = None
    if quantity_estimated is not None and quantity_used is not None:
        variance_quantity = _round(quantity_used - quantity_estimated)
    return MaterialVariance(
        total_cost=total_cost,
        variance_quantity=variance_quantity,
        variance_percent=percent_of(variance_quantity, quantity_estimated),
    )


def classify_cost_variance(cost_variance_percent: Optional[float]) -> VarianceClassification:
    threshold = settings.cost_variance_threshold_pct
    pct = cost_variance_percent or 0
    if pct > threshold:
        return VarianceClassification.over_budget
    if pct < -threshold:
        return VarianceClassification.under_budget
    return VarianceClassification.on_target


def is_material_noteworthy(variance_percent: Optional[float]) -> bool:
    if variance_percent is None:
        return False
    return abs(variance_percent) > settings.material_variance_threshold_pct


def aggregate_ledger(db: Session, job_id: uuid.UUID) -> LedgerAggregates:
    """Sum the full ledger of a job. Entries without a rate add hours but no labor cost."""
    hours_sum, labor_sum = db.execute(
        select(
            func.coalesce(func.sum(JobTimeEntry.hours), 0.0),
            func.coalesce(
                func.sum(
                    case(
                        (JobTimeEntry.hourly_rate.is_not(None), JobTimeEntry.hours * JobTimeEntry.hourly_rate),
                        else_=0.0,
                    )
                ),
                0.0,
            ),
        ).where(JobTimeEntry.job_id == job_id)
    ).one()
    material_sum = db.execute(
        select(func.coalesce(func.sum(JobMaterialUsage.total_cost), 0.0)).where(JobMaterialUsage.job_id == job_id)
    ).scalar_one()
    return LedgerAggregates(
        actual_hours=float(hours_sum),
        actual_material_cost=float(material_sum),
        actual_labor_cost=float(labor_sum),
    )


def recompute_variance(db: Session, job_id: uuid.UUID) -> Optional[VarianceResult]:
    """Rebuild the derived columns of the job's completion from the ledger. No-op without a completion."""
    db.flush()
    completion = db.query(JobCompletion).filter(JobCompletion.job_id == job_id).first()
    if completion is None:
        return None
    result = compute_variance(
        completion.estimated_hours,
        completion.estimated_total,
        aggregate_ledger(db, job_id),
    )
    completion.apply_variance(result)
    log.debug("variance_recomputed", job_id=str(job_id), **result.as_dict())
    return result
