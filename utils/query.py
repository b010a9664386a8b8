"""Shared SQL query builder utilities for the performance statistics API.

Provides the WHERE, ORDER BY and pagination pieces used by the ledger,
report and catalog services.
"""

import math
from typing import Any, Sequence


_ALLOWED_SORTS_DEFAULT = {
    "id", "month_year", "status", "created_at", "updated_at",
    "question_id", "user_id",
}

DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 500


def _in_condition(column: str, values: Sequence[Any],
                  conditions: list[str], params: list[Any]) -> None:
    placeholders = ",".join("?" * len(values))
    conditions.append(f"{column} IN ({placeholders})")
    params.extend(values)


def build_where_clause(
    status: str | None = None,
    question_ids: Sequence[int] | None = None,
    state_ids: Sequence[int] | None = None,
    range_ids: Sequence[int] | None = None,
    district_ids: Sequence[int] | None = None,
    module_ids: Sequence[int] | None = None,
    topic_ids: Sequence[int] | None = None,
    sub_topic_ids: Sequence[int] | None = None,
    user_ids: Sequence[int] | None = None,
    months: Sequence[str] | None = None,
    active_only: bool = True,
    table_alias: str | None = None,
) -> tuple[str, list[Any]]:
    """Build a SQL WHERE clause over performance_statistics columns.

    Args:
        status: Restrict to one lifecycle status (INPROGRESS / SUCCESS).
        question_ids: Filter by question id(s).
        state_ids: Filter by the state stamped on the fact.
        range_ids: Filter by the range stamped on the fact.
        district_ids: Filter by the district stamped on the fact.
        module_ids: Filter by module id(s).
        topic_ids: Filter by topic id(s).
        sub_topic_ids: Filter by subtopic id(s).
        user_ids: Filter by the submitting user(s).
        months: Filter by "MMM YYYY" month labels.
        active_only: Skip soft-deleted rows (default True).
        table_alias: Prefix every column with ``alias.`` when joining.

    Returns:
        Tuple of (where_clause_string, params_list). The where_clause_string
        starts with "WHERE " if any conditions exist, or is "" if none.
    """
    prefix = f"{table_alias}." if table_alias else ""
    conditions: list[str] = []
    params: list[Any] = []

    if active_only:
        conditions.append(f"{prefix}active = 1")

    if status:
        conditions.append(f"{prefix}status = ?")
        params.append(status)

    for column, values in (
        ("question_id", question_ids),
        ("state_id", state_ids),
        ("range_id", range_ids),
        ("district_id", district_ids),
        ("module_id", module_ids),
        ("topic_id", topic_ids),
        ("sub_topic_id", sub_topic_ids),
        ("user_id", user_ids),
        ("month_year", months),
    ):
        if values:
            _in_condition(f"{prefix}{column}", list(values), conditions, params)

    where = "WHERE " + " AND ".join(conditions) if conditions else ""
    return where, params


def build_order_clause(
    sort_by: str,
    sort_dir: str,
    allowed_sorts: set[str] | None = None,
    default_sort: str = "id",
) -> str:
    """Build a safe SQL ORDER BY clause.

    Args:
        sort_by: Column name to sort by.
        sort_dir: Direction: 'asc' or 'desc' (case-insensitive).
        allowed_sorts: Set of valid sort column names. Defaults to
            _ALLOWED_SORTS_DEFAULT if not provided.
        default_sort: Column to use if sort_by is not in allowed_sorts.

    Returns:
        ORDER BY clause string, e.g. "ORDER BY id ASC".
    """
    if allowed_sorts is None:
        allowed_sorts = _ALLOWED_SORTS_DEFAULT
    col = sort_by if sort_by in allowed_sorts else default_sort
    direction = "DESC" if sort_dir.lower() == "desc" else "ASC"
    return f"ORDER BY {col} {direction}"


def normalize_page(page: int | None, limit: int | None) -> tuple[int, int, int]:
    """Clamp page/limit and return (page, limit, offset)."""
    page = page if page and page > 0 else 1
    limit = limit if limit and limit > 0 else DEFAULT_PAGE_LIMIT
    limit = min(limit, MAX_PAGE_LIMIT)
    return page, limit, (page - 1) * limit


def pagination_meta(total_items: int, page: int, limit: int) -> dict[str, Any]:
    """Return the pagination block carried by list envelopes."""
    total_pages = math.ceil(total_items / limit) if limit else 0
    return {
        "currentPage": page,
        "totalPages": total_pages,
        "totalItems": total_items,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }
