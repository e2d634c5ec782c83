import io
import logging
from datetime import datetime, timezone

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from sqlalchemy import func, select

from pmo.models import db
from pmo.models.contract import Contract
from pmo.models.document import Document
from pmo.models.project import Deliverable, Phase, Project

logger = logging.getLogger(__name__)

HEALTH_FILLS = {
    "green": PatternFill(start_color="27AE60", end_color="27AE60", fill_type="solid"),
    "amber": PatternFill(start_color="F39C12", end_color="F39C12", fill_type="solid"),
    "red": PatternFill(start_color="E74C3C", end_color="E74C3C", fill_type="solid"),
}
WHITE_FONT = Font(color="FFFFFF", bold=True)
HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

# header, width
PROJECT_COLUMNS = (
    ("ID", 8),
    ("Code", 15),
    ("Project", 32),
    ("Lead", 22),
    ("Direction", 16),
    ("Status", 15),
    ("Budget", 15),
    ("Consumed", 15),
    ("Completion (%)", 15),
    ("Priority", 12),
    ("Health", 10),
    ("Start date", 12),
    ("Target end date", 15),
    ("Phases", 10),
    ("Deliverables", 12),
    ("Contracts", 12),
    ("Documents", 12),
)


def _apply_header_style(ws, row: int, col_count: int) -> None:
    """Apply dark-header styling to an Excel row (1-indexed)."""
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _child_counts(model) -> dict[int, int]:
    return dict(db.session.execute(
        select(model.project_id, func.count(model.id)).group_by(model.project_id)
    ).all())


def export_projects_xlsx() -> io.BytesIO:
    """
    Generate the portfolio workbook: one row per project with child counts.
    Returns a BytesIO buffer ready for Flask send_file.
    """
    counts = {
        "phases": _child_counts(Phase),
        "deliverables": _child_counts(Deliverable),
        "contracts": _child_counts(Contract),
        "documents": _child_counts(Document),
    }
    projects = db.session.scalars(
        select(Project).order_by(Project.created_at.desc(), Project.id.desc())
    ).all()

    wb = Workbook()
    ws = wb.active
    ws.title = "Projects"

    for col, (header, width) in enumerate(PROJECT_COLUMNS, 1):
        ws.cell(row=1, column=col, value=header)
        ws.column_dimensions[get_column_letter(col)].width = width
    _apply_header_style(ws, 1, len(PROJECT_COLUMNS))
    ws.freeze_panes = "A2"

    health_col = 11
    for row, p in enumerate(projects, 2):
        values = (
            p.id,
            p.code,
            p.name,
            p.lead.full_name if p.lead else "",
            p.direction.name if p.direction else "",
            p.status.name if p.status else "",
            p.budget or 0,
            p.budget_consumed or 0,
            p.completion_pct or 0,
            p.priority,
            p.health,
            p.start_date,
            p.target_end_date,
            counts["phases"].get(p.id, 0),
            counts["deliverables"].get(p.id, 0),
            counts["contracts"].get(p.id, 0),
            counts["documents"].get(p.id, 0),
        )
        for col, value in enumerate(values, 1):
            cell = ws.cell(row=row, column=col, value=value)
            cell.border = THIN_BORDER
            if col in (7, 8):
                cell.number_format = "#,##0.00"
            elif col in (12, 13):
                cell.number_format = "yyyy-mm-dd"
        fill = HEALTH_FILLS.get(p.health)
        if fill is not None:
            ws.cell(row=row, column=health_col).fill = fill
            ws.cell(row=row, column=health_col).font = WHITE_FONT

    ws.cell(row=len(projects) + 3, column=1,
            value=f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}").font = Font(
        size=9, italic=True, color="666666",
    )

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    logger.info("Projects workbook generated with %d rows", len(projects))
    return buf
