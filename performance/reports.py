"""
Report aggregator: finalized ledger facts → label × dataset matrices.

A :class:`ReportRequest` names some scope ids, a question set and a month
selection.  The most specific non-empty scope decides what each series is:

    scope      filter column   one series per
    national   (none)          state
    state      state_id        range
    range      range_id        district
    district   district_id     district
    user       user_id         user
    module     module_id       topic
    topic      topic_id        subtopic
    subtopic   sub_topic_id    subtopic

Every supplied filter is applied, whichever scope wins.  Only ``SUCCESS``
facts are read and only ``numeric`` values are summed; months without data
are zero-filled so every dataset lines up with ``labels``.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any

from performance import geography
from performance.access import CurrentUser, check_entity_access, restrict_report_request, scope_filters
from performance.errors import ValidationError
from performance.months import month_sort_key, resolve_months, sort_month_labels
from utils.config import STATUS_SUCCESS
from utils.query import build_where_clause

logger = logging.getLogger(__name__)

CHART_COLORS = (
    "#FF6384", "#36A2EB", "#FFCE56", "#4BC0C0", "#9966FF",
    "#FF9F40", "#FF6384", "#C9CBCF", "#4BC0C0", "#FF6384",
)

# scope -> (column the series is grouped on, entity kind for labels)
_SERIES = {
    "national": ("state_id", "state"),
    "state": ("range_id", "range"),
    "range": ("district_id", "district"),
    "district": ("district_id", "district"),
    "user": ("user_id", "user"),
    "module": ("topic_id", "topic"),
    "topic": ("sub_topic_id", "subtopic"),
    "subtopic": ("sub_topic_id", "subtopic"),
}

# most specific first
_SCOPE_ORDER = (
    ("subtopic", "sub_topic_ids"),
    ("topic", "topic_ids"),
    ("module", "module_ids"),
    ("user", "user_ids"),
    ("district", "district_ids"),
    ("range", "range_ids"),
    ("state", "state_ids"),
)

NO_SUBTOPIC_LABEL = "General"
VALUE_REPORT_TYPES = ("state", "range", "district", "user", "multiUser")


def chart_color(entity_id: int) -> str:
    return CHART_COLORS[entity_id % len(CHART_COLORS)]


@dataclass(frozen=True)
class ReportRequest:
    state_ids: tuple[int, ...] = ()
    range_ids: tuple[int, ...] = ()
    district_ids: tuple[int, ...] = ()
    module_ids: tuple[int, ...] = ()
    topic_ids: tuple[int, ...] = ()
    sub_topic_ids: tuple[int, ...] = ()
    user_ids: tuple[int, ...] = ()
    question_ids: tuple[int, ...] = ()
    months: tuple[str, ...] = ()
    start_month: str | None = None
    end_month: str | None = None

    @property
    def scope(self) -> str:
        for scope, attr in _SCOPE_ORDER:
            if getattr(self, attr):
                return scope
        return "national"

    def filters(self, months: list[str] | None = None) -> dict[str, Any]:
        """``build_where_clause`` kwargs for SUCCESS facts in this request."""
        return {
            "status": STATUS_SUCCESS,
            "question_ids": self.question_ids,
            "state_ids": self.state_ids,
            "range_ids": self.range_ids,
            "district_ids": self.district_ids,
            "module_ids": self.module_ids,
            "topic_ids": self.topic_ids,
            "sub_topic_ids": self.sub_topic_ids,
            "user_ids": self.user_ids,
            "months": months or (),
        }


@dataclass
class Dataset:
    entity_id: int
    label: str
    data: list[float]

    def to_dict(self) -> dict[str, Any]:
        color = chart_color(self.entity_id)
        return {
            "id": self.entity_id,
            "label": self.label,
            "data": self.data,
            "backgroundColor": color,
            "borderColor": color,
            "borderWidth": 1,
        }


@dataclass
class Report:
    title: str
    scope: str
    group_by: str
    labels: list[str]
    datasets: list[Dataset]
    available_labels: list[str]
    questions: list[dict[str, Any]] = field(default_factory=list)

    def totals(self) -> list[float]:
        """Per-label sum across all datasets."""
        return [sum(ds.data[i] for ds in self.datasets) for i in range(len(self.labels))]

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "scope": self.scope,
            "groupBy": self.group_by,
            "labels": self.labels,
            "datasets": [ds.to_dict() for ds in self.datasets],
            "availableLabels": self.available_labels,
            "questions": self.questions,
        }


def report_where(filters: dict[str, Any],
                 table_alias: str | None = None) -> tuple[str, list[Any]]:
    """WHERE clause; an empty question list means every active question."""
    where, params = build_where_clause(**filters, table_alias=table_alias)
    prefix = f"{table_alias}." if table_alias else ""
    if not filters.get("question_ids"):
        where += (f" AND {prefix}question_id IN "
                  "(SELECT id FROM questions WHERE active = 1)")
    return where, params


def aggregate(conn: sqlite3.Connection, request: ReportRequest,
              months: list[str] | None = None) -> list[tuple[int, str, float]]:
    """Rows of ``(group_id, month_year, total)`` for *request*'s scope."""
    column, _ = _SERIES[request.scope]
    where, params = report_where(request.filters(months))
    rows = conn.execute(
        f"""
        SELECT {column} AS group_id, month_year,
               COALESCE(SUM(CASE WHEN value_kind = 'numeric' THEN value_num END), 0)
                   AS total
        FROM performance_statistics
        {where}
        GROUP BY {column}, month_year
        """,
        params,
    ).fetchall()
    return [(r["group_id"], r["month_year"], r["total"]) for r in rows]


def available_labels(conn: sqlite3.Connection, request: ReportRequest) -> list[str]:
    """Months that have at least one matching SUCCESS fact, oldest first."""
    where, params = report_where(request.filters())
    rows = conn.execute(
        f"SELECT DISTINCT month_year FROM performance_statistics {where}", params
    ).fetchall()
    return sort_month_labels(r[0] for r in rows)


def all_labels(conn: sqlite3.Connection) -> list[str]:
    """Every month with any active fact, oldest first."""
    rows = conn.execute(
        "SELECT DISTINCT month_year FROM performance_statistics WHERE active = 1"
    ).fetchall()
    return sort_month_labels(r[0] for r in rows)


def _series_names(conn: sqlite3.Connection, kind: str, ids: set[int]) -> dict[int, str]:
    names = geography.entity_names(conn, kind, ids)
    if kind == "subtopic" and 0 in ids:
        names[0] = NO_SUBTOPIC_LABEL
    return names


def _title(conn: sqlite3.Connection, request: ReportRequest) -> str:
    scope = request.scope
    if scope == "national":
        return "National Report"
    ids = getattr(request, dict(_SCOPE_ORDER)[scope])
    names = geography.entity_names(conn, scope, ids)
    label = ", ".join(names.get(i, str(i)) for i in ids)
    return f"{scope.title()} Report: {label}"


def _question_list(conn: sqlite3.Connection, ids: tuple[int, ...]) -> list[dict[str, Any]]:
    if not ids:
        return []
    ph = ",".join("?" * len(ids))
    rows = conn.execute(
        f"SELECT id, question FROM questions WHERE id IN ({ph}) ORDER BY id", list(ids)
    ).fetchall()
    return [{"id": r["id"], "question": r["question"]} for r in rows]


def build_report(conn: sqlite3.Connection, request: ReportRequest,
                 user: CurrentUser) -> Report:
    """Assemble the chart matrix for *request* as seen by *user*.

    Raises:
        AccessDeniedError: the request reaches outside *user*'s unit.
        ValidationError: malformed month input.
    """
    request = restrict_report_request(conn, user, request)
    months = resolve_months(request.start_month, request.end_month, request.months)
    scope = request.scope
    _, kind = _SERIES[scope]

    rows = aggregate(conn, request, months)
    available = available_labels(conn, request)
    labels = months or available

    totals: dict[int, dict[str, float]] = {}
    for group_id, month, total in rows:
        if group_id is None:
            continue
        totals.setdefault(group_id, {})[month] = total
    names = _series_names(conn, kind, set(totals))
    datasets = [
        Dataset(gid, names.get(gid, str(gid)),
                [totals[gid].get(label, 0) for label in labels])
        for gid in sorted(totals, key=lambda g: (names.get(g, ""), g))
    ]

    logger.info("report scope=%s user=%d labels=%d datasets=%d",
                scope, user.id, len(labels), len(datasets))
    return Report(
        title=_title(conn, request),
        scope=scope,
        group_by=kind,
        labels=labels,
        datasets=datasets,
        available_labels=available,
        questions=_question_list(conn, request.question_ids),
    )


def labels_for_filters(conn: sqlite3.Connection, request: ReportRequest,
                       user: CurrentUser) -> list[str]:
    """Available months for *request* after access narrowing."""
    return available_labels(conn, restrict_report_request(conn, user, request))


def values_for_report(
    conn: sqlite3.Connection,
    user: CurrentUser,
    report_type: str,
    ids: list[int],
    question_id: int,
    sub_topic_id: int | None = None,
    months: list[str] | None = None,
) -> list[dict[str, Any]]:
    """Per-month totals of one question for one unit, or per user.

    ``state|range|district|user`` take a single id and return
    ``[{monthYear, totalValue}]``; ``multiUser`` takes several user ids and
    returns one row per user and month with the user's and district's names.
    """
    if report_type not in VALUE_REPORT_TYPES:
        raise ValidationError(
            f"Invalid type: {report_type}",
            details={"allowed": list(VALUE_REPORT_TYPES)},
        )
    if not ids:
        raise ValidationError("id is required")

    if report_type == "multiUser":
        scope_filters(conn, user, user_ids=[i for i in ids if i != user.id])
        column = "user_id"
    else:
        if len(ids) != 1:
            raise ValidationError(f"type {report_type} takes a single id")
        check_entity_access(conn, user, report_type, ids[0])
        column = f"{report_type}_id"

    conditions = ["ps.status = ?", "ps.active = 1", "ps.question_id = ?"]
    params: list[Any] = [STATUS_SUCCESS, question_id]
    ph = ",".join("?" * len(ids))
    conditions.append(f"ps.{column} IN ({ph})")
    params.extend(ids)
    if sub_topic_id:
        conditions.append("ps.sub_topic_id = ?")
        params.append(sub_topic_id)
    if months:
        mph = ",".join("?" * len(months))
        conditions.append(f"ps.month_year IN ({mph})")
        params.extend(months)
    where = " AND ".join(conditions)
    total_expr = ("COALESCE(SUM(CASE WHEN ps.value_kind = 'numeric' "
                  "THEN ps.value_num END), 0)")

    if report_type == "multiUser":
        rows = conn.execute(
            f"""
            SELECT ps.user_id, ps.month_year, {total_expr} AS total_value,
                   TRIM(u.first_name || ' ' || COALESCE(u.last_name, '')) AS user_name,
                   d.district_name
            FROM performance_statistics ps
            LEFT JOIN users u ON u.id = ps.user_id
            LEFT JOIN districts d ON d.id = u.district_id
            WHERE {where}
            GROUP BY ps.user_id, ps.month_year
            """,
            params,
        ).fetchall()
        out = [{
            "userId": r["user_id"],
            "userName": r["user_name"],
            "districtName": r["district_name"],
            "monthYear": r["month_year"],
            "totalValue": r["total_value"],
        } for r in rows]
        return sorted(out, key=lambda d: (d["userId"], month_sort_key(d["monthYear"])))

    rows = conn.execute(
        f"""
        SELECT ps.month_year, {total_expr} AS total_value
        FROM performance_statistics ps
        WHERE {where}
        GROUP BY ps.month_year
        """,
        params,
    ).fetchall()
    out = [{"monthYear": r["month_year"], "totalValue": r["total_value"]} for r in rows]
    return sorted(out, key=lambda d: month_sort_key(d["monthYear"]))
