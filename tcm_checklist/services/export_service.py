import io
import logging
from datetime import datetime, timezone

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from tcm_checklist.sync.answers import calculate_progress, group_by_section

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
SECTION_FILL = PatternFill(start_color="D9E1F2", end_color="D9E1F2", fill_type="solid")
DONE_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

QUESTION_HEADERS = ["Key", "Question", "Type", "Answer", "Completed", "Updated By", "Updated At"]
DELTA_HEADERS = ["Parent", "Item", "Runbook", "Migrated", "Owner", "Date", "Notes", "Complete"]
NOTE_HEADERS = ["Date", "Note", "Author"]

# Leading characters that make a spreadsheet treat text as a formula
FORMULA_PREFIXES = ("=", "+", "-", "@")


def _cell_value(value):
    """Make user text safe for a cell: control characters dropped, formulas neutralised."""
    if not isinstance(value, str):
        return value
    value = ILLEGAL_CHARACTERS_RE.sub("", value)
    if value.startswith(FORMULA_PREFIXES):
        return "'" + value
    return value


def _answer_text(answer) -> str:
    if answer is None:
        return ""
    if isinstance(answer, bool):
        return "Yes" if answer else "No"
    if isinstance(answer, (list, tuple)):
        return ", ".join(str(a) for a in answer)
    return str(answer)


def _write_header(ws, row: int, headers: list[str]) -> None:
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=row, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER


def export_migration_xlsx(document: dict) -> io.BytesIO:
    """
    Build a workbook from a migration wire document: a summary sheet,
    a checklist sheet grouped by section and, when any exist, delta and
    weekly-note sheets.
    Returns a BytesIO buffer ready for Flask send_file.
    """
    wb = Workbook()
    client_info = document.get("clientInfo") or {}
    questions = document.get("questions") or []
    progress = calculate_progress(questions)

    # ── Sheet 1: Summary ──────────────────────────────────────────────
    ws = wb.active
    ws.title = "Summary"
    ws.merge_cells("A1:D1")
    ws["A1"] = _cell_value(
        f"Tableau Cloud Migration: {client_info.get('clientName') or 'Unnamed client'}"
    )
    ws["A1"].font = Font(size=16, bold=True)
    ws["A2"] = f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}"
    ws["A2"].font = Font(size=10, italic=True, color="666666")

    row = 4
    _write_header(ws, row, ["Field", "Value"])
    for field, value in client_info.items():
        row += 1
        ws.cell(row=row, column=1, value=_cell_value(field)).border = THIN_BORDER
        ws.cell(row=row, column=2, value=_cell_value(_answer_text(value))).border = THIN_BORDER

    row += 2
    ws.cell(row=row, column=1, value="Progress").font = Font(size=12, bold=True)
    ws.cell(row=row, column=2,
            value=f"{progress['completed']}/{progress['total']} ({progress['percentage']}%)")
    if document.get("additionalNotes"):
        row += 1
        ws.cell(row=row, column=1, value="Notes").font = Font(bold=True)
        ws.cell(row=row, column=2, value=_cell_value(document["additionalNotes"])).alignment = Alignment(wrap_text=True)
    ws.column_dimensions["A"].width = 24
    ws.column_dimensions["B"].width = 60

    # ── Sheet 2: Checklist ────────────────────────────────────────────
    ws = wb.create_sheet("Checklist")
    _write_header(ws, 1, QUESTION_HEADERS)
    row = 1
    for section, section_questions in group_by_section(questions).items():
        row += 1
        ws.merge_cells(start_row=row, start_column=1, end_row=row, end_column=len(QUESTION_HEADERS))
        cell = ws.cell(row=row, column=1, value=_cell_value(section))
        cell.fill = SECTION_FILL
        cell.font = Font(bold=True)
        for q in section_questions:
            row += 1
            values = [
                q.get("questionKey") or q.get("id"),
                q.get("questionText"),
                q.get("questionType"),
                _answer_text(q.get("answer")),
                "Yes" if q.get("completed") else "No",
                q.get("updatedBy") or "",
                q.get("updatedAt") or "",
            ]
            for col, value in enumerate(values, 1):
                cell = ws.cell(row=row, column=col, value=_cell_value(value))
                cell.border = THIN_BORDER
                if q.get("completed"):
                    cell.fill = DONE_FILL
            ws.cell(row=row, column=2).alignment = Alignment(wrap_text=True)

    for col, width in enumerate([28, 60, 14, 36, 11, 28, 28], 1):
        ws.column_dimensions[get_column_letter(col)].width = width
    ws.freeze_panes = "A2"

    # ── Sheet 3: Delta items ──────────────────────────────────────────
    delta_rows = [
        (q, d) for q in questions if q.get("questionType") == "deltaParent"
        for d in q.get("deltas") or []
    ]
    if delta_rows:
        ws = wb.create_sheet("Deltas")
        _write_header(ws, 1, DELTA_HEADERS)
        for row, (parent, delta) in enumerate(delta_rows, 2):
            fields = delta.get("fields") or {}
            values = [
                parent.get("questionKey") or parent.get("id"),
                delta.get("name"),
                fields.get("runbook") or "",
                _answer_text(fields.get("migrated")),
                fields.get("owner") or "",
                fields.get("date") or "",
                fields.get("notes") or "",
                "Yes" if fields.get("complete") else "No",
            ]
            for col, value in enumerate(values, 1):
                ws.cell(row=row, column=col, value=_cell_value(value)).border = THIN_BORDER

    # ── Sheet 4: Weekly notes ─────────────────────────────────────────
    notes = document.get("weeklyNotes") or []
    if notes:
        ws = wb.create_sheet("Weekly Notes")
        _write_header(ws, 1, NOTE_HEADERS)
        for row, note in enumerate(sorted(notes, key=lambda n: n.get("date") or ""), 2):
            values = [note.get("date") or "", note.get("content") or "", note.get("createdBy") or ""]
            for col, value in enumerate(values, 1):
                ws.cell(row=row, column=col, value=_cell_value(value)).border = THIN_BORDER
            ws.cell(row=row, column=2).alignment = Alignment(wrap_text=True)
        ws.column_dimensions["A"].width = 28
        ws.column_dimensions["B"].width = 80
        ws.column_dimensions["C"].width = 28

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    logger.debug("Exported migration=%s questions=%d deltas=%d",
                 document.get("id"), len(questions), len(delta_rows))
    return buf
