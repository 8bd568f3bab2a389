"""
Variance engine: pure computations plus full-ledger recomputation.
"""
import pytest

from remedhub.models.models import JobCompletion
from remedhub.schemas.completion import VarianceClassification
from remedhub.services import ledger, workflow
from remedhub.services.variance import (
    LedgerAggregates,
    aggregate_ledger,
    classify_cost_variance,
    compute_variance,
    is_material_noteworthy,
    material_variance,
    percent_of,
    recompute_variance,
)


# =========================================================================
# Pure functions
# =========================================================================


class TestPercentOf:
    def test_rounds_to_two_decimals(self):
        assert percent_of(1, 3) == 33.33

    @pytest.mark.parametrize("base", [None, 0, 0.0])
    def test_missing_or_zero_base_gives_none(self, base):
        assert percent_of(5, base) is None

    def test_missing_delta_gives_none(self):
        assert percent_of(None, 10) is None


class TestComputeVariance:
    def test_hours_over_estimate(self):
        result = compute_variance(24, None, LedgerAggregates(actual_hours=30))
        assert result.actual_hours == 30
        assert result.hours_variance == 6
        assert result.hours_variance_percent == 25.0

    def test_percent_matches_formula(self):
        estimated, actual = 37.5, 41.25
        result = compute_variance(estimated, None, LedgerAggregates(actual_hours=actual))
        assert result.hours_variance_percent == round((actual - estimated) / estimated * 100, 2)

    def test_zero_estimate_has_variance_but_no_percent(self):
        result = compute_variance(0, 0, LedgerAggregates(actual_hours=5, actual_material_cost=20))
        assert result.hours_variance == 5
        assert result.hours_variance_percent is None
        assert result.cost_variance == 20
        assert result.cost_variance_percent is None

    def test_absent_estimate_leaves_variance_null(self):
        result = compute_variance(None, None, LedgerAggregates(actual_hours=5))
        assert result.hours_variance is None
        assert result.hours_variance_percent is None
        assert result.cost_variance is None

    def test_total_is_labor_plus_material(self):
        result = compute_variance(
            None, 1000,
            LedgerAggregates(actual_hours=10, actual_material_cost=350.5, actual_labor_cost=600),
        )
        assert result.actual_total == 950.5
        assert result.cost_variance == -49.5
        assert result.cost_variance_percent == -4.95


class TestMaterialVariance:
    def test_overuse(self):
        mv = material_variance(10, 12, 5)
        assert mv.total_cost == 60
        assert mv.variance_quantity == 2
        assert mv.variance_percent == 20.0

    def test_no_unit_cost_means_no_total(self):
        mv = material_variance(10, 8, None)
        assert mv.total_cost is None
        assert mv.variance_quantity == -2
        assert mv.variance_percent == -20.0

    def test_no_estimate_means_no_variance(self):
        mv = material_variance(None, 4, 2.5)
        assert mv.total_cost == 10
        assert mv.variance_quantity is None
        assert mv.variance_percent is None


class TestClassification:
    @pytest.mark.parametrize(
        "pct, expected",
        [
            (5.01, VarianceClassification.over_budget),
            (-5.01, VarianceClassification.under_budget),
            (5, VarianceClassification.on_target),
            (-5, VarianceClassification.on_target),
            (0, VarianceClassification.on_target),
            (None, VarianceClassification.on_target),
        ],
    )
    def test_thresholds(self, pct, expected):
        assert classify_cost_variance(pct) == expected

    def test_material_noteworthy_above_ten_percent(self):
        assert is_material_noteworthy(10.5)
        assert is_material_noteworthy(-12)
        assert not is_material_noteworthy(10)
        assert not is_material_noteworthy(None)


# =========================================================================
# Recomputation against the ledger
# =========================================================================


class TestRecompute:
    def test_no_completion_is_a_noop(self, db, job):
        assert recompute_variance(db, job.id) is None

    def test_rate_less_entries_add_hours_but_no_labor(self, db, crew, job, work_day):
        ledger.record_time_entry(db, crew, job.id, work_day, 8, hourly_rate=50)
        ledger.record_time_entry(db, crew, job.id, work_day, 4)

        aggregates = aggregate_ledger(db, job.id)
        assert aggregates.actual_hours == 12
        assert aggregates.actual_labor_cost == 400

    def test_null_material_totals_count_as_zero(self, db, crew, job):
        ledger.record_material_usage(db, crew, job.id, "Poly sheeting", 3, unit_cost=None)
        ledger.record_material_usage(db, crew, job.id, "Disposal bags", 20, unit_cost=1.5)

        assert aggregate_ledger(db, job.id).actual_material_cost == 30

    def test_recompute_twice_is_stable(self, db, crew, job, work_day):
        workflow.create_completion(db, job.id, crew)
        ledger.record_time_entry(db, crew, job.id, work_day, 30, hourly_rate=40)
        ledger.record_material_usage(db, crew, job.id, "HEPA filters", 4, quantity_estimated=3, unit_cost=25)

        first = recompute_variance(db, job.id)
        db.commit()
        second = recompute_variance(db, job.id)
        db.commit()

        assert first == second
        completion = db.query(JobCompletion).filter_by(job_id=job.id).one()
        assert completion.actual_hours == 30
        assert completion.actual_labor_cost == 1200
        assert completion.actual_material_cost == 100
        assert completion.actual_total == 1300
        assert completion.cost_variance == 300
        assert completion.cost_variance_percent == 30.0
