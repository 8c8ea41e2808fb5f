"""
Report Service — aggregated reports over a hand-picked set of results.

Totals are computed from the effective status (manual override first) at
generation time and stored with the report.  The XLSX export re-reads the
results so notes and overrides added later show up, keeping the order the
tester chose when the report was generated.
"""

from __future__ import annotations

import io
import logging
from datetime import datetime, timezone

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from ewc_tester.core.exceptions import NotFoundError, ValidationError
from ewc_tester.models import db
from ewc_tester.models.base import as_utc
from ewc_tester.models.testing import Test, TestReport, TestResult
from ewc_tester.services.access import get_owned_report, owned_environment_ids
from ewc_tester.utils.helpers import check_optional_text, dump_json, load_json

logger = logging.getLogger(__name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

STATUS_FILLS = {
    "passed": PatternFill(start_color="27AE60", end_color="27AE60", fill_type="solid"),
    "failed": PatternFill(start_color="E74C3C", end_color="E74C3C", fill_type="solid"),
    "error": PatternFill(start_color="F39C12", end_color="F39C12", fill_type="solid"),
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


def _owned_results_in_order(user_id: str, result_ids: list) -> list[TestResult]:
    """The caller's results among ``result_ids``, in the given order, unknown ids skipped."""
    wanted = [i for i in result_ids if isinstance(i, str)]
    if not wanted:
        return []
    rows = (
        TestResult.query.join(Test, TestResult.test_id == Test.id)
        .filter(Test.environment_id.in_(owned_environment_ids(user_id)))
        .filter(TestResult.id.in_(wanted))
        .all()
    )
    by_id = {r.id: r for r in rows}
    ordered, seen = [], set()
    for result_id in wanted:
        if result_id in by_id and result_id not in seen:
            ordered.append(by_id[result_id])
            seen.add(result_id)
    return ordered


def summarize(results: list[TestResult]) -> dict:
    """Counts by effective status plus the rounded mean response time."""
    total = len(results)
    counts = {"passed": 0, "failed": 0, "error": 0}
    for r in results:
        if r.effective_status in counts:
            counts[r.effective_status] += 1
    avg = round(sum(r.response_time or 0 for r in results) / total) if total else 0
    return {
        "total_tests": total,
        "passed_tests": counts["passed"],
        "failed_tests": counts["failed"],
        "error_tests": counts["error"],
        "avg_response_time": avg,
    }


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


def list_reports(user_id: str) -> list[dict]:
    reports = TestReport.query_for_user(user_id).order_by(TestReport.generated_at.desc()).all()
    return [r.to_dict() for r in reports]


def get_report(report_id: str, user_id: str) -> dict:
    return get_owned_report(report_id, user_id).to_dict()


def generate_report(user_id: str, data: dict) -> dict:
    """Create a report from ``{title, description?, resultIds, groupingType?, groupingValue?}``.

    Raises:
        ValidationError: title or resultIds missing, or a text field is not a string.
        NotFoundError: none of the ids belong to the caller.
    """
    title = data.get("title")
    result_ids = data.get("resultIds")
    if not isinstance(title, str) or not title.strip() or not isinstance(result_ids, list) or not result_ids:
        raise ValidationError("Invalid request. Title and resultIds are required.")
    errors = check_optional_text(data, ("description", "groupingType", "groupingValue"), {})
    if errors:
        raise ValidationError("Validation failed", details=errors)

    results = _owned_results_in_order(user_id, result_ids)
    if not results:
        raise NotFoundError("Test results")

    report = TestReport(
        user_id=user_id,
        title=title.strip(),
        description=data.get("description") or None,
        grouping_type=data.get("groupingType") or "manual",
        grouping_value=data.get("groupingValue") or None,
        result_ids=dump_json([r.id for r in results]),
        **summarize(results),
    )
    db.session.add(report)
    db.session.commit()
    logger.info("Report generated report_id=%s results=%d", report.id, report.total_tests)
    return report.to_dict()


def delete_report(report_id: str, user_id: str) -> None:
    report = get_owned_report(report_id, user_id)
    db.session.delete(report)
    db.session.commit()
    logger.info("Report deleted report_id=%s", report_id)


# ═════════════════════════════════════════════════════════════════════════════
# XLSX export
# ═════════════════════════════════════════════════════════════════════════════


def _fmt_dt(value) -> str:
    value = as_utc(value)
    return value.strftime("%Y-%m-%d %H:%M:%S UTC") if value else ""


def _header_row(ws, row: int, headers: list[str]) -> None:
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=row, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER


def export_report_xlsx(report_id: str, user_id: str) -> tuple[io.BytesIO, str]:
    """Render a report as a styled workbook.

    Returns:
        (buffer, download filename)
    """
    report = get_owned_report(report_id, user_id)
    results = _owned_results_in_order(user_id, load_json(report.result_ids, []))

    wb = Workbook()

    # ── Sheet 1: Summary ──────────────────────────────────────────────
    ws = wb.active
    ws.title = "Summary"
    ws.merge_cells("A1:D1")
    ws["A1"] = f"Test Report: {report.title}"
    ws["A1"].font = Font(size=16, bold=True)
    ws["A2"] = f"Generated: {_fmt_dt(report.generated_at)}"
    ws["A2"].font = Font(size=10, italic=True, color="666666")
    if report.description:
        ws["A3"] = report.description
    if results:
        env = results[0].test.environment
        ws["A4"] = f"Environment: {env.name} ({env.instance_url})"

    summary_rows = [
        ("Grouping", report.grouping_type + (f": {report.grouping_value}" if report.grouping_value else "")),
        ("Total tests", report.total_tests),
        ("Passed", report.passed_tests),
        ("Failed", report.failed_tests),
        ("Errors", report.error_tests),
        ("Pass rate", f"{round(report.passed_tests / report.total_tests * 100)}%" if report.total_tests else "0%"),
        ("Avg response time (ms)", report.avg_response_time),
    ]
    _header_row(ws, 6, ["Metric", "Value"])
    for i, (label, value) in enumerate(summary_rows, 7):
        ws.cell(row=i, column=1, value=label).border = THIN_BORDER
        ws.cell(row=i, column=2, value=value).border = THIN_BORDER
    ws.column_dimensions["A"].width = 26
    ws.column_dimensions["B"].width = 30

    # ── Sheet 2: Results ──────────────────────────────────────────────
    ws2 = wb.create_sheet("Results")
    headers = ["#", "Test", "Method", "Endpoint", "Credential", "Status",
               "Status Code", "Expected", "Response (ms)", "Executed At", "Error", "Notes"]
    _header_row(ws2, 1, headers)
    for i, r in enumerate(results, 2):
        test = r.test
        values = [
            i - 1,
            test.name,
            test.method,
            test.endpoint,
            r.credential.org_name if r.credential else "",
            r.effective_status.upper(),
            r.status_code,
            test.expected_status,
            r.response_time,
            _fmt_dt(r.executed_at),
            r.error or "",
            r.notes or "",
        ]
        for col, value in enumerate(values, 1):
            cell = ws2.cell(row=i, column=col, value=value)
            cell.border = THIN_BORDER
        status_cell = ws2.cell(row=i, column=6)
        status_cell.fill = STATUS_FILLS.get(r.effective_status, PatternFill())
        status_cell.font = WHITE_FONT
        status_cell.alignment = Alignment(horizontal="center")

    widths = [5, 30, 9, 50, 24, 10, 12, 10, 14, 22, 40, 40]
    for col, width in enumerate(widths, 1):
        ws2.column_dimensions[get_column_letter(col)].width = width

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    filename = f"test_report_{report.id[:8]}_{datetime.now(timezone.utc).strftime('%Y%m%d')}.xlsx"
    logger.info("Report exported report_id=%s rows=%d", report.id, len(results))
    return buf, filename
