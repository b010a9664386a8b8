"""
Performance statistics endpoints.

GET    /api/performance-statistics                         → paginated ledger
GET    /api/performance-statistics/performance             → assembled form
POST   /api/performance-statistics/save-statistics         → upsert a batch
POST   /api/performance-statistics/sent-otp                → issue finalize OTP
POST   /api/performance-statistics/verify-otp              → finalize the month
GET    /api/performance-statistics/summary                 → status counts
GET    /api/performance-statistics/labels                  → months with data
POST   /api/performance-statistics/labels/filter           → months for filters
POST   /api/performance-statistics/report-values           → per-month totals
GET    /api/performance-statistics/counts                  → caller's month counts
GET    /api/performance-statistics/user/{userId}/month/{monthYear}
DELETE /api/performance-statistics/{id}                    → soft delete
"""

import sqlite3

from fastapi import APIRouter, Depends, Query

from api.auth import get_config, get_current_user, get_reporting_period
from api.database import get_db
from api.models import (
    ReportRequestIn,
    ReportValuesIn,
    SaveStatisticsIn,
    VerifyOtpIn,
    envelope,
)
from performance import ledger, reports
from performance.access import CurrentUser, check_entity_access, scope_filters
from performance.form import assemble_form
from performance.months import ReportingPeriod, normalize_month_label
from utils.config import AppConfig

router = APIRouter(prefix="/performance-statistics", tags=["performance-statistics"])


def _ids(value: int | None) -> tuple[int, ...]:
    return (value,) if value is not None else ()


def _ledger_filters(
    conn: sqlite3.Connection,
    user: CurrentUser,
    status: str | None,
    user_id: int | None,
    question_id: int | None,
    module_id: int | None,
    topic_id: int | None,
    sub_topic_id: int | None,
    state_id: int | None,
    range_id: int | None,
    district_id: int | None,
    month_year: str | None,
) -> dict:
    """Query parameters → ``build_where_clause`` kwargs, confined to the caller."""
    scope = scope_filters(
        conn, user,
        state_ids=_ids(state_id),
        range_ids=_ids(range_id),
        district_ids=_ids(district_id),
        user_ids=_ids(user_id),
    )
    return {
        "status": status,
        "question_ids": _ids(question_id),
        "module_ids": _ids(module_id),
        "topic_ids": _ids(topic_id),
        "sub_topic_ids": _ids(sub_topic_id),
        "months": (normalize_month_label(month_year),) if month_year else (),
        **scope,
    }


@router.get("", summary="List performance statistics")
def list_statistics(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=500),
    status: str | None = Query(None, pattern="^(INPROGRESS|SUCCESS)$"),
    user_id: int | None = Query(None, alias="userId"),
    question_id: int | None = Query(None, alias="questionId"),
    module_id: int | None = Query(None, alias="moduleId"),
    topic_id: int | None = Query(None, alias="topicId"),
    sub_topic_id: int | None = Query(None, alias="subTopicId"),
    state_id: int | None = Query(None, alias="stateId"),
    range_id: int | None = Query(None, alias="rangeId"),
    district_id: int | None = Query(None, alias="districtId"),
    month_year: str | None = Query(None, alias="monthYear", examples=["MAR 2025"]),
    sort_by: str = Query("id", alias="sortBy"),
    sort_dir: str = Query("desc", alias="sortDir", pattern="^(asc|desc)$"),
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Return one page of ledger facts visible to the caller, newest first."""
    filters = _ledger_filters(conn, user, status, user_id, question_id, module_id,
                              topic_id, sub_topic_id, state_id, range_id,
                              district_id, month_year)
    items, meta = ledger.list_statistics(conn, filters, page, limit, sort_by, sort_dir)
    return envelope("Performance statistics retrieved", items, meta)


@router.get("/performance", summary="Assemble the monthly performance form")
def performance_form(
    module_path_id: int = Query(..., alias="modulePathId", description="0-based module index"),
    topic_path_id: int = Query(..., alias="topicPathId", description="1-based topic index"),
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    period: ReportingPeriod = Depends(get_reporting_period),
    config: AppConfig = Depends(get_config),
) -> dict:
    """Questions of the selected topic, pre-filled for the current reporting month."""
    form = assemble_form(conn, user, module_path_id, topic_path_id, period,
                         config.financial_year_start)
    return envelope("Performance form retrieved", form.to_dict())


@router.post("/save-statistics", summary="Save answers for the current month")
def save_statistics(
    body: SaveStatisticsIn,
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    period: ReportingPeriod = Depends(get_reporting_period),
) -> dict:
    """Upsert the batch atomically; returns one outcome per entry."""
    outcomes = ledger.save_statistics(
        conn, user, [s.to_entry() for s in body.performance_statistics], period
    )
    return envelope("Performance statistics saved", {
        "monthYear": period.label,
        "results": [o.to_dict() for o in outcomes],
    })


@router.post("/sent-otp", summary="Send the finalize OTP")
def send_otp(
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    config: AppConfig = Depends(get_config),
) -> dict:
    issued = ledger.issue_otp(conn, user, config.otp_ttl_minutes)
    return envelope("OTP sent", issued.to_dict())


@router.post("/verify-otp", summary="Verify the OTP and finalize the month")
def verify_otp(
    body: VerifyOtpIn,
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    period: ReportingPeriod = Depends(get_reporting_period),
    config: AppConfig = Depends(get_config),
) -> dict:
    """Move the caller's INPROGRESS facts for the month to SUCCESS."""
    finalized = ledger.verify_and_finalize(conn, user, body.otp, period,
                                           strict=config.is_production)
    return envelope("OTP verified", {"monthYear": period.label, "finalized": finalized})


@router.get("/summary", summary="Counts and numeric total of matching facts")
def summary(
    status: str | None = Query(None, pattern="^(INPROGRESS|SUCCESS)$"),
    user_id: int | None = Query(None, alias="userId"),
    question_id: int | None = Query(None, alias="questionId"),
    module_id: int | None = Query(None, alias="moduleId"),
    topic_id: int | None = Query(None, alias="topicId"),
    sub_topic_id: int | None = Query(None, alias="subTopicId"),
    state_id: int | None = Query(None, alias="stateId"),
    range_id: int | None = Query(None, alias="rangeId"),
    district_id: int | None = Query(None, alias="districtId"),
    month_year: str | None = Query(None, alias="monthYear"),
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    filters = _ledger_filters(conn, user, status, user_id, question_id, module_id,
                              topic_id, sub_topic_id, state_id, range_id,
                              district_id, month_year)
    return envelope("Summary retrieved", ledger.summarize(conn, filters))


@router.get("/labels", summary="All months with data")
def labels(
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    return envelope("Labels retrieved", reports.all_labels(conn))


@router.post("/labels/filter", summary="Months with finalized data for a report")
def labels_by_filter(
    body: ReportRequestIn,
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    return envelope("Labels retrieved",
                    reports.labels_for_filters(conn, body.to_request(), user))


@router.post("/report-values", summary="Per-month totals for one question")
def report_values(
    body: ReportValuesIn,
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    months = [normalize_month_label(m) for m in body.months]
    data = reports.values_for_report(conn, user, body.type, body.ids(),
                                     body.question_id, body.sub_topic_id, months)
    return envelope("Report values retrieved", data)


@router.get("/counts", summary="Caller's counts for a month")
def counts(
    month_year: str | None = Query(None, alias="monthYear",
                                   description="Defaults to the current reporting month"),
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    period: ReportingPeriod = Depends(get_reporting_period),
) -> dict:
    label = normalize_month_label(month_year) if month_year else period.label
    return envelope("Counts retrieved", ledger.month_counts(conn, user.id, label))


@router.get("/user/{user_id}/month/{month_year}", summary="A user's facts for one month")
def user_month(
    user_id: int,
    month_year: str,
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    check_entity_access(conn, user, "user", user_id)
    label = normalize_month_label(month_year)
    return envelope("Performance statistics retrieved",
                    ledger.get_user_month(conn, user_id, label))


@router.delete("/{stat_id}", summary="Soft-delete a performance statistic")
def delete_statistic(
    stat_id: int,
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    ledger.deactivate_statistic(conn, stat_id, user)
    return envelope("Performance statistic deleted")
