"""
Statistic ledger: one fact per (user, question, subtopic, reporting month).

Writes
    save_statistics      validate a whole batch, then upsert it in one
                         immediate transaction; finalized rows are left alone
    issue_otp            store a one-time code for the finalize step
    verify_and_finalize  check the code and flip INPROGRESS → SUCCESS
    deactivate_statistic soft delete

Reads
    list_statistics, get_user_month, month_counts, summarize

Every fact is stamped with the submitting user's state/range/district when it
is first written, so moving a user later does not rewrite history.
"""

from __future__ import annotations

import hmac
import logging
import secrets
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

from performance import catalog
from performance.access import CurrentUser
from performance.errors import (
    AccessDeniedError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from performance.months import ReportingPeriod
from performance.values import KIND_NUMERIC, classify_value
from utils.config import STATISTIC_STATUSES, STATUS_INPROGRESS, STATUS_SUCCESS
from utils.patterns import OTP_CODE
from utils.query import build_order_clause, build_where_clause, normalize_page, pagination_meta

logger = logging.getLogger(__name__)

_SORTABLE = {"id", "month_year", "status", "created_at", "updated_at",
             "question_id", "user_id"}

_UPSERT_SQL = """
INSERT INTO performance_statistics (
    user_id, question_id, module_id, topic_id, sub_topic_id,
    state_id, range_id, district_id,
    value, value_kind, value_num, month_year, status
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (user_id, question_id, sub_topic_id, month_year) WHERE active = 1
DO UPDATE SET
    module_id  = excluded.module_id,
    topic_id   = excluded.topic_id,
    value      = excluded.value,
    value_kind = excluded.value_kind,
    value_num  = excluded.value_num,
    status     = excluded.status,
    updated_at = datetime('now')
WHERE performance_statistics.status != 'SUCCESS'
"""


@dataclass(frozen=True)
class StatisticEntry:
    """One answered cell as submitted by the form."""

    question_id: int
    value: Any = ""
    module_id: int | None = None
    topic_id: int | None = None
    sub_topic_id: int | None = None
    status: str | None = None


@dataclass(frozen=True)
class SaveOutcome:
    question_id: int
    sub_topic_id: int | None
    month_year: str
    outcome: str  # created | updated | locked
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "questionId": self.question_id,
            "subTopicId": self.sub_topic_id,
            "monthYear": self.month_year,
            "outcome": self.outcome,
        }


def _now() -> datetime:
    return datetime.now(timezone.utc)


def statistic_to_dict(row: sqlite3.Row) -> dict[str, Any]:
    """Wire form of a performance_statistics row (plus any joined names)."""
    keys = row.keys()
    d = {
        "id": row["id"],
        "userId": row["user_id"],
        "questionId": row["question_id"],
        "moduleId": row["module_id"],
        "topicId": row["topic_id"],
        "subTopicId": row["sub_topic_id"] or None,
        "stateId": row["state_id"],
        "rangeId": row["range_id"],
        "districtId": row["district_id"],
        "value": row["value"],
        "valueKind": row["value_kind"],
        "valueNum": row["value_num"],
        "monthYear": row["month_year"],
        "status": row["status"],
        "active": bool(row["active"]),
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
    }
    for column, key in (("question", "question"), ("user_name", "userName"),
                        ("district_name", "districtName")):
        if column in keys:
            d[key] = row[column]
    return d


# ── Writes ────────────────────────────────────────────────────────────────────


def _validate_batch(conn: sqlite3.Connection,
                    entries: Sequence[StatisticEntry]) -> dict[int, catalog.Question]:
    """Check every entry; raise one ValidationError listing all problems."""
    if not entries:
        raise ValidationError("performanceStatistics must contain at least one entry")

    questions = catalog.get_questions(conn, [e.question_id for e in entries])
    topic_ids = {q.topic_id for q in questions.values()}
    topic_modules: dict[int, int] = {}
    sub_topics: dict[int, int] = {}
    if topic_ids:
        ph = ",".join("?" * len(topic_ids))
        for r in conn.execute(
            f"SELECT id, module_id FROM topics WHERE id IN ({ph})", sorted(topic_ids)
        ):
            topic_modules[r["id"]] = r["module_id"]
        for r in conn.execute(
            f"SELECT id, topic_id FROM sub_topics WHERE active = 1 AND topic_id IN ({ph})",
            sorted(topic_ids),
        ):
            sub_topics[r["id"]] = r["topic_id"]

    errors: list[dict[str, Any]] = []
    for index, entry in enumerate(entries):
        def fail(message: str) -> None:
            errors.append({"index": index, "questionId": entry.question_id,
                           "message": message})

        question = questions.get(entry.question_id)
        if question is None:
            fail("Question not found or inactive")
            continue
        if entry.topic_id is not None and entry.topic_id != question.topic_id:
            fail(f"Question does not belong to topic {entry.topic_id}")
        if (entry.module_id is not None
                and entry.module_id != topic_modules.get(question.topic_id)):
            fail(f"Question does not belong to module {entry.module_id}")
        if entry.sub_topic_id and sub_topics.get(entry.sub_topic_id) != question.topic_id:
            fail(f"SubTopic {entry.sub_topic_id} does not belong to the question's topic")
        if entry.status is not None and entry.status not in STATISTIC_STATUSES:
            fail(f"Invalid status: {entry.status}")
        elif entry.status == STATUS_SUCCESS:
            fail("SUCCESS is only set by OTP verification")
        if isinstance(entry.value, (dict, list)):
            fail("Value must be a string or number")

    if errors:
        raise ValidationError("Invalid performance statistics", details=errors)
    return questions


def save_statistics(
    conn: sqlite3.Connection,
    user: CurrentUser,
    entries: Sequence[StatisticEntry],
    period: ReportingPeriod,
) -> list[SaveOutcome]:
    """Upsert *entries* for *user* in *period*.

    The batch is validated as a whole before anything is written and then
    applied in a single ``BEGIN IMMEDIATE`` transaction: either every entry
    lands or none does.  Facts already finalized (SUCCESS) are reported as
    ``locked`` and not touched.
    """
    questions = _validate_batch(conn, entries)
    month = period.label
    outcomes: list[SaveOutcome] = []

    if conn.in_transaction:
        conn.commit()
    conn.execute("BEGIN IMMEDIATE")
    try:
        for entry in entries:
            question = questions[entry.question_id]
            sub_key = entry.sub_topic_id or 0
            typed = classify_value(entry.value, question.question_type)
            existing = conn.execute(
                "SELECT id, status FROM performance_statistics "
                "WHERE user_id = ? AND question_id = ? AND sub_topic_id = ? "
                "AND month_year = ? AND active = 1",
                (user.id, question.id, sub_key, month),
            ).fetchone()
            if existing is not None and existing["status"] == STATUS_SUCCESS:
                outcomes.append(SaveOutcome(question.id, entry.sub_topic_id, month,
                                            "locked", existing["id"]))
                continue
            module_id = entry.module_id
            if module_id is None:
                module_id = conn.execute(
                    "SELECT module_id FROM topics WHERE id = ?", (question.topic_id,)
                ).fetchone()[0]
            cur = conn.execute(_UPSERT_SQL, (
                user.id, question.id, module_id, question.topic_id, sub_key,
                user.state_id, user.range_id, user.district_id,
                typed.text, typed.kind,
                typed.number if typed.kind == KIND_NUMERIC else None,
                month, STATUS_INPROGRESS,
            ))
            if existing is None:
                outcomes.append(SaveOutcome(question.id, entry.sub_topic_id, month,
                                            "created", cur.lastrowid))
            else:
                outcomes.append(SaveOutcome(question.id, entry.sub_topic_id, month,
                                            "updated", existing["id"]))
        conn.commit()
    except Exception:
        conn.rollback()
        raise

    counts = {k: sum(1 for o in outcomes if o.outcome == k)
              for k in ("created", "updated", "locked")}
    logger.info(
        "save_statistics user=%d month=%s created=%d updated=%d locked=%d",
        user.id, month, counts["created"], counts["updated"], counts["locked"],
    )
    return outcomes


@dataclass(frozen=True)
class OtpIssue:
    expires_at: datetime
    mobile_no: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "expiresAt": self.expires_at.isoformat(timespec="seconds"),
            "sentTo": _mask(self.mobile_no),
        }


def _mask(mobile_no: str | None) -> str | None:
    if not mobile_no:
        return None
    return "*" * max(len(mobile_no) - 4, 0) + mobile_no[-4:]


def issue_otp(conn: sqlite3.Connection, user: CurrentUser,
              ttl_minutes: int = 10, now: datetime | None = None) -> OtpIssue:
    """Generate and store a six-digit code for *user*.

    Delivery is an external SMS hand-off; here it is only logged.
    """
    now = now or _now()
    code = f"{secrets.randbelow(1_000_000):06d}"
    expires_at = now + timedelta(minutes=ttl_minutes)
    conn.execute(
        "UPDATE users SET otp = ?, otp_validity = ? WHERE id = ?",
        (code, expires_at.isoformat(), user.id),
    )
    conn.commit()
    logger.info("otp issued user=%d to=%s expires=%s", user.id,
                _mask(user.mobile_no), expires_at.isoformat(timespec="seconds"))
    return OtpIssue(expires_at, user.mobile_no)


def verify_and_finalize(
    conn: sqlite3.Connection,
    user: CurrentUser,
    otp: str,
    period: ReportingPeriod,
    strict: bool = False,
    now: datetime | None = None,
) -> int:
    """Finalize *user*'s INPROGRESS facts for *period* behind an OTP.

    Outside production (``strict=False``) any six-digit code is accepted.
    In strict mode the code must match the stored one and be unexpired.

    Returns:
        Number of facts moved to SUCCESS.

    Raises:
        ValidationError: malformed, wrong or expired code.
    """
    otp = (otp or "").strip()
    if not OTP_CODE.match(otp):
        raise ValidationError("OTP must be exactly 6 digits")

    if strict:
        row = conn.execute(
            "SELECT otp, otp_validity FROM users WHERE id = ?", (user.id,)
        ).fetchone()
        if row is None or not row["otp"] or not hmac.compare_digest(row["otp"], otp):
            logger.warning("otp rejected user=%d", user.id)
            raise ValidationError("Invalid OTP")
        validity = row["otp_validity"]
        if not validity or (now or _now()) > datetime.fromisoformat(validity):
            raise ValidationError("OTP has expired")

    if conn.in_transaction:
        conn.commit()
    conn.execute("BEGIN IMMEDIATE")
    try:
        cur = conn.execute(
            "UPDATE performance_statistics "
            "SET status = ?, updated_at = datetime('now') "
            "WHERE user_id = ? AND month_year = ? AND status = ? AND active = 1",
            (STATUS_SUCCESS, user.id, period.label, STATUS_INPROGRESS),
        )
        finalized = cur.rowcount
        conn.execute(
            "UPDATE users SET otp = NULL, otp_validity = NULL WHERE id = ?",
            (user.id,),
        )
        conn.commit()
    except Exception:
        conn.rollback()
        raise

    logger.info("finalized user=%d month=%s rows=%d", user.id, period.label, finalized)
    return finalized


def deactivate_statistic(conn: sqlite3.Connection, stat_id: int,
                         user: CurrentUser) -> None:
    """Soft-delete one fact.

    Admins may remove any fact; other users only their own unfinalized ones.
    """
    row = conn.execute(
        "SELECT id, user_id, status FROM performance_statistics "
        "WHERE id = ? AND active = 1",
        (stat_id,),
    ).fetchone()
    if row is None:
        raise NotFoundError("Performance statistic not found", details={"id": stat_id})
    if not user.is_admin:
        if row["user_id"] != user.id:
            raise AccessDeniedError("Cannot delete another user's statistic")
        if row["status"] == STATUS_SUCCESS:
            raise ConflictError("Finalized statistics cannot be deleted")
    conn.execute(
        "UPDATE performance_statistics SET active = 0, updated_at = datetime('now') "
        "WHERE id = ?",
        (stat_id,),
    )
    conn.commit()
    logger.info("statistic deactivated id=%d by user=%d", stat_id, user.id)


# ── Reads ─────────────────────────────────────────────────────────────────────


def list_statistics(
    conn: sqlite3.Connection,
    filters: dict[str, Any] | None = None,
    page: int | None = 1,
    limit: int | None = 10,
    sort_by: str = "id",
    sort_dir: str = "desc",
) -> tuple[list[dict[str, Any]], dict[str, Any]]:
    """One page of facts matching *filters* (``build_where_clause`` kwargs)."""
    page, limit, offset = normalize_page(page, limit)
    where, params = build_where_clause(**(filters or {}), table_alias="ps")
    order = build_order_clause(sort_by, sort_dir, _SORTABLE, default_sort="id")
    order = order.replace("ORDER BY ", "ORDER BY ps.", 1)

    total = conn.execute(
        f"SELECT COUNT(*) FROM performance_statistics ps {where}", params
    ).fetchone()[0]
    rows = conn.execute(
        f"""
        SELECT ps.*, q.question,
               TRIM(u.first_name || ' ' || COALESCE(u.last_name, '')) AS user_name,
               d.district_name
        FROM performance_statistics ps
        LEFT JOIN questions q ON q.id = ps.question_id
        LEFT JOIN users u ON u.id = ps.user_id
        LEFT JOIN districts d ON d.id = ps.district_id
        {where}
        {order}
        LIMIT ? OFFSET ?
        """,
        params + [limit, offset],
    ).fetchall()
    return [statistic_to_dict(r) for r in rows], pagination_meta(total, page, limit)


def get_user_month(conn: sqlite3.Connection, user_id: int,
                   month_label: str) -> list[dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT ps.*, q.question
        FROM performance_statistics ps
        LEFT JOIN questions q ON q.id = ps.question_id
        WHERE ps.user_id = ? AND ps.month_year = ? AND ps.active = 1
        ORDER BY ps.question_id, ps.sub_topic_id
        """,
        (user_id, month_label),
    ).fetchall()
    return [statistic_to_dict(r) for r in rows]


def month_counts(conn: sqlite3.Connection, user_id: int,
                 month_label: str) -> dict[str, Any]:
    row = conn.execute(
        """
        SELECT COUNT(*) AS total,
               COALESCE(SUM(status = 'SUCCESS'), 0) AS success,
               COALESCE(SUM(status = 'INPROGRESS'), 0) AS in_progress
        FROM performance_statistics
        WHERE user_id = ? AND month_year = ? AND active = 1
        """,
        (user_id, month_label),
    ).fetchone()
    return {
        "monthYear": month_label,
        "totalCount": row["total"],
        "successCount": row["success"],
        "inProgressCount": row["in_progress"],
    }


def summarize(conn: sqlite3.Connection,
              filters: dict[str, Any] | None = None) -> dict[str, Any]:
    """Counts by status plus the numeric total of matching facts."""
    where, params = build_where_clause(**(filters or {}))
    row = conn.execute(
        f"""
        SELECT COUNT(*) AS total,
               COALESCE(SUM(status = 'SUCCESS'), 0) AS success,
               COALESCE(SUM(status = 'INPROGRESS'), 0) AS in_progress,
               COALESCE(SUM(CASE WHEN value_kind = 'numeric' THEN value_num END), 0)
                   AS total_value
        FROM performance_statistics {where}
        """,
        params,
    ).fetchone()
    total = row["total"]
    return {
        "totalCount": total,
        "successCount": row["success"],
        "inProgressCount": row["in_progress"],
        "totalValue": row["total_value"],
        "successRate": round(row["success"] / total * 100, 2) if total else 0.0,
    }
