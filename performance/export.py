"""
Spreadsheet exports of report data (openpyxl write-only workbooks).

Both workbooks open with a Metadata sheet describing what was exported,
followed by the data sheet.  Formatting is deliberately plain.
"""

from __future__ import annotations

import io
import sqlite3
from datetime import datetime, timezone
from typing import Any

import openpyxl

from performance.access import CurrentUser, restrict_report_request
from performance.months import month_sort_key, resolve_months
from performance.reports import Report, ReportRequest, report_where

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SOURCE_NAME = "Performance Statistics"


def _metadata_sheet(wb, title: str, rows: list[tuple[str, Any]]) -> None:
    ws = wb.create_sheet("Metadata")
    ws.append(["Source", SOURCE_NAME])
    ws.append(["Report", title])
    ws.append(["Export Date", datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")])
    for key, value in rows:
        ws.append([key, value])


def _save(wb) -> bytes:
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def report_workbook(report: Report) -> bytes:
    """One row per month, one column per series, plus a Total column and row."""
    wb = openpyxl.Workbook(write_only=True)
    _metadata_sheet(wb, report.title, [
        ("Scope", report.scope),
        ("Grouped By", report.group_by),
        ("Months", ", ".join(report.labels)),
        ("Questions", "; ".join(q["question"] for q in report.questions) or "All"),
    ])

    ws = wb.create_sheet("Report")
    ws.append(["Month"] + [ds.label for ds in report.datasets] + ["Total"])
    totals = report.totals()
    for i, label in enumerate(report.labels):
        ws.append([label] + [ds.data[i] for ds in report.datasets] + [totals[i]])
    ws.append(["Total"] + [sum(ds.data) for ds in report.datasets] + [sum(totals)])
    return _save(wb)


def district_rows(conn: sqlite3.Connection, request: ReportRequest,
                  user: CurrentUser) -> list[dict[str, Any]]:
    """Totals per district × question × month for *request*."""
    request = restrict_report_request(conn, user, request)
    months = resolve_months(request.start_month, request.end_month, request.months)
    where, params = report_where(request.filters(months), table_alias="ps")
    rows = conn.execute(
        f"""
        SELECT ps.district_id, d.district_name, ps.question_id, q.question,
               ps.month_year,
               COALESCE(SUM(CASE WHEN ps.value_kind = 'numeric' THEN ps.value_num END), 0)
                   AS total_value
        FROM performance_statistics ps
        LEFT JOIN districts d ON d.id = ps.district_id
        LEFT JOIN questions q ON q.id = ps.question_id
        {where}
        GROUP BY ps.district_id, ps.question_id, ps.month_year
        """,
        params,
    ).fetchall()
    out = [{
        "districtId": r["district_id"],
        "districtName": r["district_name"] or "Unassigned",
        "questionId": r["question_id"],
        "question": r["question"],
        "monthYear": r["month_year"],
        "totalValue": r["total_value"],
    } for r in rows]
    out.sort(key=lambda d: (d["districtName"], d["questionId"],
                            month_sort_key(d["monthYear"])))
    return out


def district_workbook(conn: sqlite3.Connection, request: ReportRequest,
                      user: CurrentUser) -> bytes:
    rows = district_rows(conn, request, user)
    wb = openpyxl.Workbook(write_only=True)
    _metadata_sheet(wb, "District Report", [("Total Records", len(rows))])
    ws = wb.create_sheet("Districts")
    ws.append(["District", "Question ID", "Question", "Month", "Total"])
    for r in rows:
        ws.append([r["districtName"], r["questionId"], r["question"],
                   r["monthYear"], r["totalValue"]])
    return _save(wb)
