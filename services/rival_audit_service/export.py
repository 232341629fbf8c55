import csv
import io

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from services.rival_audit_service.schemas.audit import SECTION_ORDER, AuditRecord, ItemStatus, Section

SECTION_TITLES = {
    Section.ON_PAGE: "On-Page",
    Section.STRUCTURE_NAVIGATION: "Structure & Navigation",
    Section.CONTACT_PAGE: "Contact Page",
    Section.SERVICE_PAGES: "Service Pages",
    Section.LOCATION_PAGES: "Location Pages",
    Section.SERVICE_AREA_PAGES: "Service Area Pages",
}

ITEM_COLUMNS = [
    "Section", "Question", "Item", "Description", "Page URL", "Page Type",
    "Importance", "Status", "Source", "Notes",
]

CONTENT_TYPES = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

_HEADER_FILL = PatternFill("solid", fgColor="1E3A5F")
_HEADER_FONT = Font(color="FFFFFF", bold=True)
_STATUS_FILLS = {
    ItemStatus.PRIORITY_OFI: PatternFill("solid", fgColor="FECACA"),
    ItemStatus.OFI: PatternFill("solid", fgColor="FEF08A"),
    ItemStatus.OK: PatternFill("solid", fgColor="BBF7D0"),
}


def item_rows(record: AuditRecord) -> list[list[str]]:
    """Flatten the six result sections into one row per item, in report order."""
    rows = []
    for section in SECTION_ORDER:
        for item in (record.results or {}).get(section, []):
            rows.append([
                SECTION_TITLES[section],
                item.question_id,
                item.name,
                item.description,
                item.page_url or "",
                item.page_type.value if item.page_type else "",
                item.importance.value,
                item.status.value,
                item.source.value,
                item.notes,
            ])
    return rows


def _summary_rows(record: AuditRecord) -> list[list]:
    summary = record.summary
    return [
        ["Priority OFI", summary.priority_ofi_count],
        ["OFI", summary.ofi_count],
        ["OK", summary.ok_count],
        ["N/A", summary.na_count],
        ["Total", summary.total],
        ["Pages Analyzed", record.pages_analyzed],
        ["Reached Page Limit", "Yes" if record.reached_max_pages else "No"],
    ]


def export_csv(record: AuditRecord) -> bytes:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(ITEM_COLUMNS)
    writer.writerows(item_rows(record))
    writer.writerow([])
    writer.writerow(["Summary"])
    writer.writerows(_summary_rows(record))
    return buf.getvalue().encode("utf-8")


def export_xlsx(record: AuditRecord) -> bytes:
    wb = openpyxl.Workbook()

    ws = wb.active
    ws.title = "Summary"
    ws.append(["Rival Audit", record.url])
    ws.append(["Completed", record.completed_at.strftime("%Y-%m-%d %H:%M") if record.completed_at else ""])
    ws.append([])
    ws.append(["Metric", "Value"])
    for row in _summary_rows(record):
        ws.append(row)
    for cell in ws[4]:
        cell.fill = _HEADER_FILL
        cell.font = _HEADER_FONT
    ws.column_dimensions["A"].width = 24
    ws.column_dimensions["B"].width = 48

    items = wb.create_sheet("Items")
    items.append(ITEM_COLUMNS)
    for cell in items[1]:
        cell.fill = _HEADER_FILL
        cell.font = _HEADER_FONT
        cell.alignment = Alignment(horizontal="center")
    status_col = ITEM_COLUMNS.index("Status") + 1
    for row in item_rows(record):
        items.append(row)
        fill = _STATUS_FILLS.get(ItemStatus(row[status_col - 1]))
        if fill is not None:
            items.cell(row=items.max_row, column=status_col).fill = fill
    for i, width in enumerate([24, 22, 32, 50, 50, 14, 12, 14, 12, 60], 1):
        items.column_dimensions[get_column_letter(i)].width = width

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


EXPORTERS = {"csv": export_csv, "xlsx": export_xlsx}
