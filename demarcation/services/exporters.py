# demarcation/services/exporters.py
"""
Report exporters. Each one is a pure function of (title, rows) -> bytes,
where rows is a list of flat dicts sharing the same keys.
"""

import csv
import io
from datetime import datetime
from typing import Any, Callable, Dict, List, NamedTuple

import pandas as pd
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

HEADER_GREY = "D3D3D3"
MAX_COLUMN_WIDTH = 60

Rows = List[Dict[str, Any]]


def _frame(rows: Rows) -> pd.DataFrame:
    return pd.DataFrame.from_records(rows, columns=list(rows[0].keys()) if rows else None)


def to_csv(title: str, rows: Rows) -> bytes:
    """Every field double-quoted, CRLF line endings, header row first."""
    text = _frame(rows).to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\r\n")
    return text.encode("utf-8")


def _sheet_name(title: str) -> str:
    cleaned = "".join(ch for ch in title if ch not in "[]:*?/\\")
    return (cleaned or "Report")[:31]


def to_excel(title: str, rows: Rows) -> bytes:
    df = _frame(rows)
    sheet = _sheet_name(title)
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name=sheet)
        ws = writer.sheets[sheet]

        header_font = Font(bold=True)
        header_fill = PatternFill(fill_type="solid", start_color=HEADER_GREY, end_color=HEADER_GREY)
        for cell in ws[1]:
            cell.font = header_font
            cell.fill = header_fill

        for idx, column in enumerate(df.columns, start=1):
            lengths = [len(str(column))] + [len(str(v)) for v in df[column] if v is not None]
            ws.column_dimensions[get_column_letter(idx)].width = min(max(lengths) + 2, MAX_COLUMN_WIDTH)
    return buffer.getvalue()


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def to_pdf(title: str, rows: Rows) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        rightMargin=15 * mm,
        leftMargin=15 * mm,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
        title=title,
    )
    styles = getSampleStyleSheet()

    headers = list(rows[0].keys()) if rows else []
    data = [headers] + [[_cell(row.get(h)) for h in headers] for row in rows]

    table = Table(data, repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(f"#{HEADER_GREY}")),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTNAME", (0, 1), (-1, -1), "Helvetica"),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#F5F5F5")]),
            ]
        )
    )

    story = [
        Paragraph(title, styles["Title"]),
        Paragraph(f"Generated on {datetime.now().strftime('%d-%m-%Y %H:%M')}", styles["Normal"]),
        Spacer(1, 6 * mm),
        table,
    ]
    doc.build(story)
    return buffer.getvalue()


class Exporter(NamedTuple):
    render: Callable[[str, Rows], bytes]
    media_type: str
    extension: str


EXPORTERS: Dict[str, Exporter] = {
    "csv": Exporter(to_csv, "text/csv", "csv"),
    "excel": Exporter(
        to_excel,
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "xlsx",
    ),
    "pdf": Exporter(to_pdf, "application/pdf", "pdf"),
}
EXPORTERS["xlsx"] = EXPORTERS["excel"]
