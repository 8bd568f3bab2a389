"""
Completion summary view and the PDF report built from it.
"""
from remedhub.reports.pdf_completion import render_summary_pdf
from remedhub.schemas.completion import ChecklistCategory, VarianceClassification
from remedhub.services import checklist, ledger, photos, workflow
from remedhub.services.summary import summarize


def test_summary_without_completion(db, crew, job):
    summary = summarize(db, job.id, crew)
    assert summary.completion is None
    assert summary.variance_classification is None
    assert summary.time_entries == []
    assert set(summary.checklist) == set(ChecklistCategory)
    assert summary.checklist_progress.total == 0


def test_summary_collects_everything(db, crew, job, work_day):
    workflow.create_completion(db, job.id, crew)
    ledger.record_time_entry(db, crew, job.id, work_day, 30, hourly_rate=40)
    ledger.record_material_usage(db, crew, job.id, "Poly sheeting", 12, quantity_estimated=10, unit_cost=5)
    ledger.record_material_usage(db, crew, job.id, "Tape", 10, quantity_estimated=10, unit_cost=2)
    photos.add_photo(db, crew, job.id, f"{job.organization_id}/{job.id}/after.jpg", photo_type="after")
    checklist.initialize_checklist(db, job.id, crew)

    summary = summarize(db, job.id, crew)

    assert len(summary.time_entries) == 1
    assert len(summary.material_usage) == 2
    assert len(summary.photos) == 1
    assert len(summary.checklist[ChecklistCategory.safety]) == 4
    assert summary.completion.actual_total == 1200 + 60 + 20
    # 1280 against a 1000 contract
    assert summary.completion.cost_variance_percent == 28.0
    assert summary.variance_classification == VarianceClassification.over_budget
    assert [m.material_name for m in summary.noteworthy_materials] == ["Poly sheeting"]
    assert summary.ready_to_submit is False


def test_ready_to_submit_once_required_items_done(db, crew, job):
    items = checklist.initialize_checklist(db, job.id, crew)
    for item in items:
        if item.is_required:
            checklist.toggle_checklist_item(db, item.id, crew, True)

    summary = summarize(db, job.id, crew)

    assert summary.ready_to_submit is True
    assert summary.checklist_progress.required_completed_count == summary.checklist_progress.required_total


def test_summary_is_read_only(db, crew, job):
    workflow.create_completion(db, job.id, crew)
    summarize(db, job.id, crew)
    assert not db.dirty
    assert not db.new


def test_pdf_report(db, crew, job, work_day):
    workflow.create_completion(db, job.id, crew, field_notes="Containment held for the full duration.")
    ledger.record_time_entry(db, crew, job.id, work_day, 8, hourly_rate=45, description="Demo and bagging")
    ledger.record_material_usage(db, crew, job.id, "Poly sheeting", 12, quantity_estimated=10, unit_cost=5, unit="roll")
    checklist.initialize_checklist(db, job.id, crew)
    workflow.update_completion(db, job.id, crew, customer_signed=True, customer_signature_name="Dana Ruiz")

    pdf = render_summary_pdf(summarize(db, job.id, crew), job)

    assert pdf.startswith(b"%PDF")
    assert len(pdf) > 1000


def test_pdf_report_without_completion(db, crew, job):
    pdf = render_summary_pdf(summarize(db, job.id, crew), job)
    assert pdf.startswith(b"%PDF")
