"""
XLSX export of distribution listings and per-distribution reports.

Layout:
  - ``export_distributions``: one sheet "Distributions", header row then one
    row per distribution view.
  - ``export_report``: sheet "Summary" (label/value pairs for the timeline and
    document summaries) and sheet "History" (one row per history entry, in
    seq order).

Datetimes are written timezone-naive in UTC; openpyxl rejects aware values.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Font

from distribution_kernel.domain.dtos import DistributionReport, DistributionView
from distribution_kernel.logging_config import get_logger

logger = get_logger("services.export")

DISTRIBUTION_COLUMNS = (
    "Number",
    "Type",
    "Status",
    "Origin",
    "Destination",
    "Documents",
    "Discrepancies",
    "Created",
    "Completed",
    "Notes",
)

HISTORY_COLUMNS = ("Seq", "Action", "Actor", "Occurred", "Hash")


def _cell(value: Any) -> Any:
    """Coerce a DTO value into something openpyxl can store."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (int, float, str)):
        return value
    return str(value)


def _write_header(sheet: Any, columns: Iterable[str]) -> None:
    sheet.append(list(columns))
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    sheet.freeze_panes = "A2"


def _distribution_row(view: DistributionView) -> list[Any]:
    return [
        _cell(view.distribution_number),
        _cell(f"{view.type.code} {view.type.name}"),
        _cell(view.status.value),
        _cell(view.origin_department_id),
        _cell(view.destination_department_id),
        _cell(len(view.documents)),
        _cell(view.has_discrepancies),
        _cell(view.created_at),
        _cell(view.completed_at),
        _cell(view.notes),
    ]


def export_distributions(views: Iterable[DistributionView], path: Path | str) -> Path:
    """Write one row per distribution to ``path`` and return it."""
    path = Path(path)
    wb = Workbook()
    sheet = wb.active
    sheet.title = "Distributions"
    _write_header(sheet, DISTRIBUTION_COLUMNS)
    count = 0
    for view in views:
        sheet.append(_distribution_row(view))
        count += 1
    wb.save(path)
    logger.info("distributions_exported", extra={"row_count": count, "path": str(path)})
    return path


def export_report(report: DistributionReport, path: Path | str) -> Path:
    """Write the summary and history sheets for one distribution."""
    path = Path(path)
    view = report.distribution
    timeline = report.timeline_summary
    docs = report.document_summary

    wb = Workbook()
    summary = wb.active
    summary.title = "Summary"
    _write_header(summary, ("Field", "Value"))
    for label, value in (
        ("Distribution number", view.distribution_number),
        ("Type", f"{view.type.code} {view.type.name}"),
        ("Status", timeline.current_status.value),
        ("Created", timeline.created_at),
        ("Last action", timeline.last_action_at),
        ("Total actions", timeline.total_actions),
        ("Complete", timeline.is_complete),
        ("Discrepancies", timeline.has_discrepancies),
        ("Invoices", docs.total_invoices),
        ("Additional documents", docs.total_additional_documents),
        ("Total documents", docs.total_documents),
    ):
        summary.append([label, _cell(value)])

    history = wb.create_sheet("History")
    _write_header(history, HISTORY_COLUMNS)
    for record in report.history:
        history.append([
            record.seq,
            record.action,
            _cell(record.actor_id),
            _cell(record.occurred_at),
            record.hash,
        ])

    wb.save(path)
    logger.info(
        "report_exported",
        extra={
            "distribution_id": str(view.id),
            "history_count": len(report.history),
            "path": str(path),
        },
    )
    return path
