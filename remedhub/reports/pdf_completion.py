from io import BytesIO
from typing import List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..models.models import Job
from ..schemas.completion import CompletionSummaryResponse

BRAND = colors.HexColor("#7f1010")
TEXT = colors.HexColor("#333333")
MUTED = colors.HexColor("#666666")
GRID = colors.HexColor("#d0d0d0")


def _fmt(value: Optional[float], suffix: str = "", money: bool = False) -> str:
    if value is None:
        return "-"
    if money:
        return f"${value:,.2f}"
    return f"{value:,.2f}{suffix}"


def _table(rows: List[list], col_widths: List[float]) -> Table:
    table = Table(rows, colWidths=col_widths, repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), BRAND),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("GRID", (0, 0), (-1, -1), 0.5, GRID),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f6f6f6")]),
    ]))
    return table


def render_summary_pdf(summary: CompletionSummaryResponse, job: Job) -> bytes:
    """
    Build the job completion report.

    Args:
        summary: Completion summary view of the job
        job: The job the summary belongs to

    Returns:
        PDF bytes
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        rightMargin=54,
        leftMargin=54,
        topMargin=54,
        bottomMargin=54,
        title=f"Job Completion Report {job.job_number}",
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "ReportTitle",
        parent=styles["Heading1"],
        fontSize=22,
        textColor=BRAND,
        spaceAfter=6,
        fontName="Helvetica-Bold",
    )
    heading_style = ParagraphStyle(
        "ReportHeading",
        parent=styles["Heading2"],
        fontSize=13,
        textColor=BRAND,
        spaceBefore=14,
        spaceAfter=6,
        fontName="Helvetica-Bold",
    )
    body_style = ParagraphStyle(
        "ReportBody",
        parent=styles["Normal"],
        fontSize=10,
        textColor=TEXT,
        spaceAfter=4,
    )
    muted_style = ParagraphStyle("ReportMuted", parent=body_style, textColor=MUTED, fontSize=9)

    story = []
    story.append(Paragraph("JOB COMPLETION REPORT", title_style))
    story.append(Paragraph(escape(f"Job {job.job_number}" + (f" - {job.name}" if job.name else "")), body_style))
    if job.customer_name:
        story.append(Paragraph(f"Customer: {escape(job.customer_name)}", body_style))

    completion = summary.completion
    if completion is None:
        story.append(Spacer(1, 0.2 * inch))
        story.append(Paragraph("No completion has been started for this job.", muted_style))
    else:
        story.append(Paragraph(f"Status: <b>{completion.status.value.upper()}</b>", body_style))
        if summary.variance_classification:
            story.append(Paragraph(
                f"Budget: {summary.variance_classification.value.replace('_', ' ')}", body_style
            ))

        story.append(Paragraph("Estimate vs Actual", heading_style))
        story.append(_table(
            [
                ["", "Estimated", "Actual", "Variance", "Variance %"],
                [
                    "Hours",
                    _fmt(completion.estimated_hours),
                    _fmt(completion.actual_hours),
                    _fmt(completion.hours_variance),
                    _fmt(completion.hours_variance_percent, "%"),
                ],
                [
                    "Total cost",
                    _fmt(completion.estimated_total, money=True),
                    _fmt(completion.actual_total, money=True),
                    _fmt(completion.cost_variance, money=True),
                    _fmt(completion.cost_variance_percent, "%"),
                ],
            ],
            [1.4 * inch, 1.25 * inch, 1.25 * inch, 1.25 * inch, 1.25 * inch],
        ))
        story.append(Paragraph(
            f"Labor {_fmt(completion.actual_labor_cost, money=True)}, "
            f"materials {_fmt(completion.actual_material_cost, money=True)}",
            muted_style,
        ))

        for label, text in (
            ("Field Notes", completion.field_notes),
            ("Issues Encountered", completion.issues_encountered),
            ("Recommendations", completion.recommendations),
        ):
            if text:
                story.append(Paragraph(label, heading_style))
                story.append(Paragraph(escape(text).replace("\n", "<br/>"), body_style))

    if summary.time_entries:
        story.append(Paragraph("Time Entries", heading_style))
        rows = [["Date", "Type", "Hours", "Rate", "Description"]]
        for t in summary.time_entries:
            rows.append([
                t.work_date.isoformat(),
                t.work_type,
                _fmt(t.hours),
                _fmt(t.hourly_rate, money=True),
                Paragraph(escape(t.description or ""), muted_style),
            ])
        story.append(_table(rows, [0.95 * inch, 0.95 * inch, 0.7 * inch, 0.8 * inch, 3 * inch]))

    if summary.material_usage:
        noteworthy = {m.id for m in summary.noteworthy_materials}
        story.append(Paragraph("Materials", heading_style))
        rows = [["Material", "Estimated", "Used", "Unit", "Total", "Variance %"]]
        for m in summary.material_usage:
            rows.append([
                Paragraph(escape(m.material_name), muted_style),
                _fmt(m.quantity_estimated),
                _fmt(m.quantity_used),
                m.unit or "",
                _fmt(m.total_cost, money=True),
                _fmt(m.variance_percent, "%"),
            ])
        table = _table(rows, [2 * inch, 0.9 * inch, 0.8 * inch, 0.6 * inch, 0.95 * inch, 0.95 * inch])
        for row_index, m in enumerate(summary.material_usage, start=1):
            if m.id in noteworthy:
                table.setStyle(TableStyle([("TEXTCOLOR", (5, row_index), (5, row_index), BRAND)]))
        story.append(table)

    progress = summary.checklist_progress
    story.append(Paragraph("Checklist", heading_style))
    story.append(Paragraph(
        f"{progress.completed_count} of {progress.total} items complete "
        f"({progress.required_completed_count} of {progress.required_total} required)",
        body_style,
    ))
    for category, items in summary.checklist.items():
        if not items:
            continue
        rows = [[category.value.title(), "Required", "Done"]]
        for item in items:
            rows.append([
                Paragraph(escape(item.item_name), muted_style),
                "Yes" if item.is_required else "",
                "X" if item.is_completed else "",
            ])
        story.append(_table(rows, [4.6 * inch, 0.9 * inch, 0.9 * inch]))
        story.append(Spacer(1, 0.1 * inch))

    if summary.photos:
        story.append(Paragraph(f"Photos on file: {len(summary.photos)}", muted_style))

    # Signature area
    story.append(Spacer(1, 0.4 * inch))
    signed_name = ""
    signed_on = ""
    if completion is not None and completion.customer_signed:
        signed_name = completion.customer_signature_name or ""
        if completion.customer_signed_at:
            signed_on = completion.customer_signed_at.strftime("%B %d, %Y")
    signature_table = Table(
        [
            [signed_name, signed_on],
            ["_________________________", "_________________________"],
            ["Customer signature", "Date"],
        ],
        colWidths=[3 * inch, 3 * inch],
    )
    signature_table.setStyle(TableStyle([
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("TEXTCOLOR", (0, 2), (-1, 2), MUTED),
    ]))
    story.append(signature_table)

    doc.build(story)
    return buffer.getvalue()
