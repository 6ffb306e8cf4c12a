"""
Shipment exports: CSV (all values quoted) and a formatted XLSX.
Both carry the same headline columns in the same order.
"""

import csv
import io
from typing import Iterable

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from app.schemas.shipments import EXPORT_COLUMNS, ShipmentSummary


def _cell_value(summary: ShipmentSummary, column: str):
    value = getattr(summary, column)
    if column == "created_at":
        return value.isoformat()
    if column == "id":
        return str(value)
    return value


def build_csv(shipments: Iterable[ShipmentSummary]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    for s in shipments:
        writer.writerow(["" if (v := _cell_value(s, c)) is None else v for c in EXPORT_COLUMNS])
    return output.getvalue()


COLUMN_WIDTHS = {
    "created_at": 26,
    "id": 38,
    "shipment_no": 16,
    "order_no": 16,
    "customer_no": 16,
    "po_no": 18,
    "total_net_kg": 16,
    "total_gross_kg": 16,
    "total_pkgs": 12,
}


def build_xlsx(shipments: Iterable[ShipmentSummary]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Shipments"

    header_font = Font(name="Arial", bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill("solid", fgColor="1F4E79")
    header_align = Alignment(horizontal="center", vertical="center", wrap_text=True)
    thin_border = Border(bottom=Side(style="thin", color="D9E2F3"))
    text_font = Font(name="Arial", size=10)

    for col_idx, header in enumerate(EXPORT_COLUMNS, 1):
        cell = ws.cell(row=1, column=col_idx, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_align
    ws.freeze_panes = "A2"

    for row_idx, s in enumerate(shipments, 2):
        for col_idx, column in enumerate(EXPORT_COLUMNS, 1):
            c = ws.cell(row=row_idx, column=col_idx, value=_cell_value(s, column))
            c.font = text_font
            c.border = thin_border
            if column in ("total_net_kg", "total_gross_kg"):
                c.number_format = '#,##0.00'

    for col_idx, header in enumerate(EXPORT_COLUMNS, 1):
        ws.column_dimensions[ws.cell(row=1, column=col_idx).column_letter].width = COLUMN_WIDTHS.get(header, 15)
    ws.auto_filter.ref = ws.dimensions

    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()
