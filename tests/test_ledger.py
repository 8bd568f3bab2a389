"""
Field ledger: every mutation keeps the completion's derived values current.
"""
from datetime import date
from uuid import uuid4

import pytest

from remedhub.errors import InvalidTransition, NotFoundError, ValidationError
from remedhub.models.models import AuditLog, JobMaterialUsage, JobTimeEntry
from remedhub.services import ledger, workflow


def _completion(db, crew, job):
    return workflow.get_completion(db, job.id, crew)


class TestTimeEntries:
    def test_entries_drive_hours_variance(self, db, crew, job, work_day):
        workflow.create_completion(db, job.id, crew)
        ledger.record_time_entry(db, crew, job.id, work_day, 10)
        ledger.record_time_entry(db, crew, job.id, work_day, 12)
        ledger.record_time_entry(db, crew, job.id, work_day, 8, work_type="cleanup")

        completion = _completion(db, crew, job)
        assert completion.actual_hours == 30
        assert completion.hours_variance == 6
        assert completion.hours_variance_percent == 25.0

    def test_profile_defaults_to_actor(self, db, crew, job, work_day):
        entry = ledger.record_time_entry(db, crew, job.id, work_day, 4)
        assert entry.id is not None
        assert entry.profile_id == crew.id
        assert entry.created_by == crew.id

    @pytest.mark.parametrize("hours", [0, -1.5])
    def test_hours_must_be_positive(self, db, crew, job, work_day, hours):
        with pytest.raises(ValidationError) as exc:
            ledger.record_time_entry(db, crew, job.id, work_day, hours)
        assert exc.value.field == "hours"
        assert db.query(JobTimeEntry).count() == 0

    def test_unknown_work_type(self, db, crew, job, work_day):
        with pytest.raises(ValidationError):
            ledger.record_time_entry(db, crew, job.id, work_day, 2, work_type="lunch")

    def test_update_recomputes(self, db, crew, job, work_day):
        workflow.create_completion(db, job.id, crew)
        entry = ledger.record_time_entry(db, crew, job.id, work_day, 8, hourly_rate=50)

        ledger.update_time_entry(db, crew, entry.id, hours=10, hourly_rate=60)

        completion = _completion(db, crew, job)
        assert completion.actual_hours == 10
        assert completion.actual_labor_cost == 600
        assert completion.actual_total == 600

    def test_clearing_rate_drops_labor_cost(self, db, crew, job, work_day):
        workflow.create_completion(db, job.id, crew)
        entry = ledger.record_time_entry(db, crew, job.id, work_day, 8, hourly_rate=50)

        entry = ledger.update_time_entry(db, crew, entry.id, hourly_rate=None, description=None)

        assert entry.hourly_rate is None
        completion = _completion(db, crew, job)
        assert completion.actual_hours == 8
        assert completion.actual_labor_cost == 0

    @pytest.mark.parametrize("field", ["hours", "work_date", "work_type", "billable"])
    def test_required_fields_cannot_be_cleared(self, db, crew, job, work_day, field):
        entry = ledger.record_time_entry(db, crew, job.id, work_day, 8)
        with pytest.raises(ValidationError) as exc:
            ledger.update_time_entry(db, crew, entry.id, **{field: None})
        assert exc.value.field == field
        db.refresh(entry)
        assert entry.hours == 8

    def test_update_rejects_unknown_fields(self, db, crew, job, work_day):
        entry = ledger.record_time_entry(db, crew, job.id, work_day, 8)
        with pytest.raises(ValidationError):
            ledger.update_time_entry(db, crew, entry.id, job_id_override=uuid4())

    def test_delete_recomputes_for_the_entry_job(self, db, crew, job, work_day):
        workflow.create_completion(db, job.id, crew)
        keep = ledger.record_time_entry(db, crew, job.id, work_day, 20)
        drop = ledger.record_time_entry(db, crew, job.id, work_day, 10)

        assert ledger.delete_time_entry(db, crew, drop.id) == job.id

        completion = _completion(db, crew, job)
        assert completion.actual_hours == 20
        assert completion.hours_variance == -4
        assert [e.id for e in ledger.list_time_entries(db, job.id, crew)] == [keep.id]

    def test_unknown_entry(self, db, crew):
        with pytest.raises(NotFoundError):
            ledger.update_time_entry(db, crew, uuid4(), hours=2)
        with pytest.raises(NotFoundError):
            ledger.delete_time_entry(db, crew, uuid4())

    def test_entry_scoped_to_job_path(self, db, crew, make_job, work_day):
        first, second = make_job(), make_job()
        entry = ledger.record_time_entry(db, crew, first.id, work_day, 3)
        with pytest.raises(NotFoundError):
            ledger.delete_time_entry(db, crew, entry.id, job_id=second.id)

    def test_list_orders_by_work_date_desc(self, db, crew, job):
        ledger.record_time_entry(db, crew, job.id, date(2024, 3, 1), 1)
        ledger.record_time_entry(db, crew, job.id, date(2024, 3, 3), 1)
        ledger.record_time_entry(db, crew, job.id, date(2024, 3, 2), 1)
        dates = [e.work_date for e in ledger.list_time_entries(db, job.id, crew)]
        assert dates == [date(2024, 3, 3), date(2024, 3, 2), date(2024, 3, 1)]

    def test_other_organization_cannot_record(self, db, outsider, job, work_day):
        with pytest.raises(NotFoundError):
            ledger.record_time_entry(db, outsider, job.id, work_day, 2)

    def test_mutations_are_audited(self, db, crew, job, work_day):
        entry_id = ledger.record_time_entry(db, crew, job.id, work_day, 2).id
        ledger.update_time_entry(db, crew, entry_id, hours=3)
        ledger.delete_time_entry(db, crew, entry_id)
        actions = {a.action for a in db.query(AuditLog).filter_by(entity_type="time_entry", entity_id=entry_id)}
        assert actions == {"CREATE", "UPDATE", "DELETE"}


class TestMaterialUsage:
    def test_derived_line_values(self, db, crew, job):
        usage = ledger.record_material_usage(
            db, crew, job.id, "6 mil poly", quantity_used=12, quantity_estimated=10, unit="roll", unit_cost=5,
        )
        assert usage.total_cost == 60
        assert usage.variance_quantity == 2
        assert usage.variance_percent == 20.0

    def test_update_rederives_line_and_completion(self, db, crew, job):
        workflow.create_completion(db, job.id, crew)
        usage = ledger.record_material_usage(db, crew, job.id, "Tyvek suits", 10, quantity_estimated=10, unit_cost=8)

        ledger.update_material_usage(db, crew, usage.id, quantity_used=15)

        db.refresh(usage)
        assert usage.total_cost == 120
        assert usage.variance_percent == 50.0
        assert _completion(db, crew, job).actual_material_cost == 120

    def test_deleting_only_material_resets_cost(self, db, crew, job):
        workflow.create_completion(db, job.id, crew, estimated_total=200)
        usage = ledger.record_material_usage(db, crew, job.id, "Encapsulant", 5, unit_cost=50)
        assert _completion(db, crew, job).cost_variance == 50

        ledger.delete_material_usage(db, crew, usage.id)

        completion = _completion(db, crew, job)
        assert completion.actual_material_cost == 0
        assert completion.actual_total == 0
        assert completion.cost_variance == -200
        assert completion.cost_variance_percent == -100.0
        assert db.query(JobMaterialUsage).count() == 0

    def test_clearing_unit_cost_and_estimate(self, db, crew, job):
        workflow.create_completion(db, job.id, crew)
        usage = ledger.record_material_usage(db, crew, job.id, "Poly sheeting", 12, quantity_estimated=10, unit_cost=5)

        usage = ledger.update_material_usage(db, crew, usage.id, unit_cost=None, quantity_estimated=None)

        assert usage.total_cost is None
        assert usage.variance_quantity is None
        assert usage.variance_percent is None
        assert _completion(db, crew, job).actual_material_cost == 0

    def test_quantity_used_cannot_be_cleared(self, db, crew, job):
        usage = ledger.record_material_usage(db, crew, job.id, "Tape", 3, unit_cost=2)
        with pytest.raises(ValidationError) as exc:
            ledger.update_material_usage(db, crew, usage.id, quantity_used=None)
        assert exc.value.field == "quantity_used"

    def test_name_is_required(self, db, crew, job):
        with pytest.raises(ValidationError):
            ledger.record_material_usage(db, crew, job.id, "  ", 1)

    def test_negative_quantity(self, db, crew, job):
        with pytest.raises(ValidationError):
            ledger.record_material_usage(db, crew, job.id, "Glovebags", -1)


class TestApprovedJobIsFrozen:
    @pytest.fixture
    def approved(self, db, crew, reviewer, job, work_day):
        workflow.create_completion(db, job.id, crew)
        entry = ledger.record_time_entry(db, crew, job.id, work_day, 8)
        usage = ledger.record_material_usage(db, crew, job.id, "Bags", 4, unit_cost=2)
        workflow.submit_completion(db, job.id, crew)
        workflow.approve_completion(db, job.id, reviewer)
        return entry, usage

    def test_time_entries_locked(self, db, crew, job, work_day, approved):
        entry, _ = approved
        with pytest.raises(InvalidTransition):
            ledger.record_time_entry(db, crew, job.id, work_day, 1)
        with pytest.raises(InvalidTransition):
            ledger.update_time_entry(db, crew, entry.id, hours=2)
        with pytest.raises(InvalidTransition):
            ledger.delete_time_entry(db, crew, entry.id)

    def test_materials_locked(self, db, crew, job, approved):
        _, usage = approved
        with pytest.raises(InvalidTransition):
            ledger.record_material_usage(db, crew, job.id, "More bags", 1)
        with pytest.raises(InvalidTransition):
            ledger.delete_material_usage(db, crew, usage.id)
        assert _completion(db, crew, job).actual_material_cost == 8

    def test_rejected_completion_stays_editable(self, db, crew, reviewer, job, work_day):
        workflow.create_completion(db, job.id, crew)
        workflow.submit_completion(db, job.id, crew)
        workflow.reject_completion(db, job.id, reviewer, "Hours missing")

        ledger.record_time_entry(db, crew, job.id, work_day, 30)
        assert _completion(db, crew, job).actual_hours == 30
