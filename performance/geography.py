"""
Organizational geography: State → Range → District.

Read-only here; the tables are maintained outside this service.
"""

from __future__ import annotations

import sqlite3
from typing import Iterable

# kind -> (table, display-name column, parent column)
_LEVELS = {
    "state": ("states", "state_name", None),
    "range": ("ranges", "range_name", "state_id"),
    "district": ("districts", "district_name", "range_id"),
}


def list_states(conn: sqlite3.Connection) -> list[dict]:
    rows = conn.execute(
        "SELECT id, state_name FROM states WHERE active = 1 ORDER BY state_name"
    ).fetchall()
    return [{"id": r["id"], "stateName": r["state_name"]} for r in rows]


def list_ranges(conn: sqlite3.Connection, state_id: int | None = None) -> list[dict]:
    sql = "SELECT id, state_id, range_name FROM ranges WHERE active = 1"
    params: list = []
    if state_id is not None:
        sql += " AND state_id = ?"
        params.append(state_id)
    rows = conn.execute(sql + " ORDER BY range_name", params).fetchall()
    return [{"id": r["id"], "stateId": r["state_id"], "rangeName": r["range_name"]}
            for r in rows]


def list_districts(conn: sqlite3.Connection, range_id: int | None = None) -> list[dict]:
    sql = "SELECT id, range_id, district_name FROM districts WHERE active = 1"
    params: list = []
    if range_id is not None:
        sql += " AND range_id = ?"
        params.append(range_id)
    rows = conn.execute(sql + " ORDER BY district_name", params).fetchall()
    return [{"id": r["id"], "rangeId": r["range_id"],
             "districtName": r["district_name"]} for r in rows]


def entity_names(conn: sqlite3.Connection, kind: str,
                 ids: Iterable[int]) -> dict[int, str]:
    """Display names for *ids* of one level.

    *kind* is a geography level (``state``, ``range``, ``district``) or one
    of ``user``, ``topic``, ``subtopic``, ``module`` so report series can be
    labelled the same way whatever they group by.
    """
    ids = sorted({int(i) for i in ids if i is not None})
    if not ids:
        return {}
    match kind:
        case "state" | "range" | "district":
            table, column, _ = _LEVELS[kind]
            expr = column
        case "user":
            table = "users"
            expr = "TRIM(first_name || ' ' || COALESCE(last_name, ''))"
        case "module":
            table, expr = "modules", "name"
        case "topic":
            table, expr = "topics", "name"
        case "subtopic":
            table, expr = "sub_topics", "name"
        case _:
            raise ValueError(f"Unknown entity kind: {kind}")
    placeholders = ",".join("?" * len(ids))
    rows = conn.execute(
        f"SELECT id, {expr} AS label FROM {table} WHERE id IN ({placeholders})",
        ids,
    ).fetchall()
    return {r["id"]: r["label"] for r in rows}


def district_range(conn: sqlite3.Connection, district_ids: Iterable[int]) -> dict[int, int]:
    """Map each district id to its range id."""
    ids = sorted({int(i) for i in district_ids})
    if not ids:
        return {}
    placeholders = ",".join("?" * len(ids))
    rows = conn.execute(
        f"SELECT id, range_id FROM districts WHERE id IN ({placeholders})", ids
    ).fetchall()
    return {r["id"]: r["range_id"] for r in rows}


def range_state(conn: sqlite3.Connection, range_ids: Iterable[int]) -> dict[int, int]:
    """Map each range id to its state id."""
    ids = sorted({int(i) for i in range_ids})
    if not ids:
        return {}
    placeholders = ",".join("?" * len(ids))
    rows = conn.execute(
        f"SELECT id, state_id FROM ranges WHERE id IN ({placeholders})", ids
    ).fetchall()
    return {r["id"]: r["state_id"] for r in rows}
