"""
Report endpoints.

POST /api/reports/generate        → chart matrix (labels × datasets)
POST /api/reports/excel           → the same matrix as .xlsx
POST /api/reports/district-excel  → district × question × month totals as .xlsx
"""

import sqlite3

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from api.auth import get_current_user
from api.database import get_db
from api.models import ReportRequestIn, envelope
from performance import export, reports
from performance.access import CurrentUser

router = APIRouter(prefix="/reports", tags=["reports"])


def _xlsx_response(content: bytes, filename: str) -> StreamingResponse:
    return StreamingResponse(
        iter([content]),
        media_type=export.XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f"attachment; filename={filename}",
            "Content-Length": str(len(content)),
        },
    )


@router.post("/generate", summary="Generate a report")
def generate(
    body: ReportRequestIn,
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Sum finalized values per series and month for the requested scope."""
    report = reports.build_report(conn, body.to_request(), user)
    return envelope("Report generated", report.to_dict())


@router.post("/excel", summary="Download a report as Excel")
def excel(
    body: ReportRequestIn,
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> StreamingResponse:
    report = reports.build_report(conn, body.to_request(), user)
    return _xlsx_response(export.report_workbook(report), "performance_report.xlsx")


@router.post("/district-excel", summary="Download district totals as Excel")
def district_excel(
    body: ReportRequestIn,
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> StreamingResponse:
    content = export.district_workbook(conn, body.to_request(), user)
    return _xlsx_response(content, "district_report.xlsx")
