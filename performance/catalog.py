"""
Lookup store: the Module → Topic → SubTopic → Question catalog.

Two halves:

- Typed read helpers used by the form assembler and the ledger
  (``get_module_by_priority``, ``list_topics``, ``list_topic_questions``...).
- Admin CRUD over the four catalog tables (``list_entities``,
  ``create_entity``, ``update_entity``, ``deactivate_entity``), driven by the
  ``ENTITIES`` table below so each kind declares its columns once.

Write helpers take snake_case column names; everything returned to the API
is camelCase.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from performance.errors import ConflictError, NotFoundError, ValidationError
from utils.query import normalize_page, pagination_meta
from utils.strings import normalize_whitespace

logger = logging.getLogger(__name__)


class FormType(str, Enum):
    NORMAL = "NORMAL"
    SUBTOPIC_BY_QUESTION = "ST/Q"
    QUESTION_BY_SUBTOPIC = "Q/ST"


class DefaultValue(str, Enum):
    NONE = "NONE"
    PREVIOUS = "PREVIOUS"
    QUESTION = "QUESTION"
    PS = "PS"
    SUB = "SUB"
    CIRCLE = "CIRCLE"
    PSOP = "PSOP"


# ── Typed rows ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Module:
    id: int
    name: str
    priority: int


@dataclass(frozen=True)
class Topic:
    id: int
    module_id: int
    name: str
    priority: int
    form_type: FormType
    start_month: int | None
    end_month: int | None
    is_show_previous: bool
    is_show_cummulative: bool


@dataclass(frozen=True)
class SubTopic:
    id: int
    topic_id: int
    name: str
    priority: int


@dataclass(frozen=True)
class Question:
    id: int
    topic_id: int
    sub_topic_id: int | None
    question: str
    question_type: str
    default_val: DefaultValue
    default_que: int | None
    formula: str | None
    priority: int
    sub_topic_name: str | None = None

    @property
    def is_derived(self) -> bool:
        """True when the answer comes from another question or a formula."""
        return bool(self.formula) or self.default_que is not None


def _module(row: sqlite3.Row) -> Module:
    return Module(id=row["id"], name=row["name"], priority=row["priority"])


def _topic(row: sqlite3.Row) -> Topic:
    return Topic(
        id=row["id"],
        module_id=row["module_id"],
        name=row["name"],
        priority=row["priority"],
        form_type=FormType(row["form_type"]),
        start_month=row["start_month"],
        end_month=row["end_month"],
        is_show_previous=bool(row["is_show_previous"]),
        is_show_cummulative=bool(row["is_show_cummulative"]),
    )


def _question(row: sqlite3.Row) -> Question:
    keys = row.keys()
    return Question(
        id=row["id"],
        topic_id=row["topic_id"],
        sub_topic_id=row["sub_topic_id"],
        question=row["question"],
        question_type=row["question_type"],
        default_val=DefaultValue(row["default_val"]),
        default_que=row["default_que"],
        formula=row["formula"],
        priority=row["priority"],
        sub_topic_name=row["sub_topic_name"] if "sub_topic_name" in keys else None,
    )


# ── Read side ─────────────────────────────────────────────────────────────────


def get_module_by_priority(conn: sqlite3.Connection, priority: int) -> Module | None:
    row = conn.execute(
        "SELECT id, name, priority FROM modules "
        "WHERE priority = ? AND active = 1 ORDER BY id LIMIT 1",
        (priority,),
    ).fetchone()
    return _module(row) if row else None


def list_topics(conn: sqlite3.Connection, module_id: int) -> list[Topic]:
    """Active topics of *module_id*, in the order the form navigates them."""
    rows = conn.execute(
        "SELECT * FROM topics WHERE module_id = ? AND active = 1 "
        "ORDER BY priority, id",
        (module_id,),
    ).fetchall()
    return [_topic(r) for r in rows]


def list_sub_topics(conn: sqlite3.Connection, topic_id: int) -> list[SubTopic]:
    rows = conn.execute(
        "SELECT id, topic_id, name, priority FROM sub_topics "
        "WHERE topic_id = ? AND active = 1 ORDER BY priority, id",
        (topic_id,),
    ).fetchall()
    return [SubTopic(id=r["id"], topic_id=r["topic_id"], name=r["name"],
                     priority=r["priority"]) for r in rows]


def list_topic_questions(conn: sqlite3.Connection, topic_id: int) -> list[Question]:
    """Active questions of *topic_id*.

    Questions without a subtopic come first; the rest follow their
    subtopic's priority, then their own.
    """
    rows = conn.execute(
        """
        SELECT q.*, st.name AS sub_topic_name
        FROM questions q
        LEFT JOIN sub_topics st ON st.id = q.sub_topic_id
        WHERE q.topic_id = ? AND q.active = 1
        ORDER BY q.sub_topic_id IS NOT NULL, st.priority, st.id, q.priority, q.id
        """,
        (topic_id,),
    ).fetchall()
    return [_question(r) for r in rows]


def get_question(conn: sqlite3.Connection, question_id: int,
                 active_only: bool = True) -> Question | None:
    sql = "SELECT * FROM questions WHERE id = ?"
    if active_only:
        sql += " AND active = 1"
    row = conn.execute(sql, (question_id,)).fetchone()
    return _question(row) if row else None


def get_questions(conn: sqlite3.Connection, question_ids) -> dict[int, Question]:
    """Active questions keyed by id; unknown ids are simply absent."""
    ids = sorted({int(i) for i in question_ids})
    if not ids:
        return {}
    placeholders = ",".join("?" * len(ids))
    rows = conn.execute(
        f"SELECT * FROM questions WHERE active = 1 AND id IN ({placeholders})",
        ids,
    ).fetchall()
    return {r["id"]: _question(r) for r in rows}


# ── Admin CRUD ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class EntityDef:
    """How one catalog kind maps onto its table."""

    table: str
    label: str
    name_column: str
    # column -> camelCase key on the wire
    columns: dict[str, str]
    parent_column: str | None = None
    parent_table: str | None = None
    required: tuple[str, ...] = ()
    booleans: frozenset[str] = field(default_factory=frozenset)
    # columns that may be cleared with an explicit null
    nullable: frozenset[str] = field(default_factory=frozenset)
    # filterable columns for list endpoints
    filters: tuple[str, ...] = ()


ENTITIES: dict[str, EntityDef] = {
    "modules": EntityDef(
        table="modules",
        label="Module",
        name_column="name",
        columns={"id": "id", "name": "name", "priority": "priority",
                 "active": "active"},
        required=("name",),
    ),
    "topics": EntityDef(
        table="topics",
        label="Topic",
        name_column="name",
        columns={
            "id": "id", "module_id": "moduleId", "name": "name",
            "priority": "priority", "form_type": "formType",
            "start_month": "startMonth", "end_month": "endMonth",
            "is_show_previous": "isShowPrevious",
            "is_show_cummulative": "isShowCummulative", "active": "active",
        },
        parent_column="module_id",
        parent_table="modules",
        required=("name", "module_id"),
        booleans=frozenset({"is_show_previous", "is_show_cummulative"}),
        nullable=frozenset({"start_month", "end_month"}),
        filters=("module_id",),
    ),
    "sub-topics": EntityDef(
        table="sub_topics",
        label="SubTopic",
        name_column="name",
        columns={"id": "id", "topic_id": "topicId", "name": "name",
                 "priority": "priority", "active": "active"},
        parent_column="topic_id",
        parent_table="topics",
        required=("name", "topic_id"),
        filters=("topic_id",),
    ),
    "questions": EntityDef(
        table="questions",
        label="Question",
        name_column="question",
        columns={
            "id": "id", "topic_id": "topicId", "sub_topic_id": "subTopicId",
            "question": "question", "question_type": "questionType",
            "default_val": "defaultVal", "default_que": "defaultQue",
            "formula": "formula", "priority": "priority", "active": "active",
        },
        parent_column="topic_id",
        parent_table="topics",
        required=("question", "topic_id"),
        nullable=frozenset({"sub_topic_id", "default_que", "formula"}),
        filters=("topic_id", "sub_topic_id"),
    ),
}


def _entity_def(kind: str) -> EntityDef:
    try:
        return ENTITIES[kind]
    except KeyError:
        raise NotFoundError(f"Unknown catalog kind: {kind}") from None


def _to_wire(edef: EntityDef, row: sqlite3.Row) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for column, key in edef.columns.items():
        value = row[column]
        if column in edef.booleans or column == "active":
            value = bool(value)
        out[key] = value
    return out


def _fetch(conn: sqlite3.Connection, edef: EntityDef, entity_id: int) -> sqlite3.Row | None:
    return conn.execute(
        f"SELECT * FROM {edef.table} WHERE id = ?", (entity_id,)
    ).fetchone()


def list_entities(
    conn: sqlite3.Connection,
    kind: str,
    filters: dict[str, Any] | None = None,
    page: int | None = 1,
    limit: int | None = 10,
    search: str | None = None,
    include_inactive: bool = False,
) -> tuple[list[dict[str, Any]], dict[str, Any]]:
    """Return one page of *kind* plus its pagination meta."""
    edef = _entity_def(kind)
    page, limit, offset = normalize_page(page, limit)

    conditions: list[str] = []
    params: list[Any] = []
    if not include_inactive:
        conditions.append("active = 1")
    for column in edef.filters:
        value = (filters or {}).get(column)
        if value is not None:
            conditions.append(f"{column} = ?")
            params.append(value)
    if search:
        conditions.append(f"{edef.name_column} LIKE ?")
        params.append(f"%{search.strip()}%")
    where = "WHERE " + " AND ".join(conditions) if conditions else ""

    total = conn.execute(
        f"SELECT COUNT(*) FROM {edef.table} {where}", params
    ).fetchone()[0]
    rows = conn.execute(
        f"SELECT * FROM {edef.table} {where} ORDER BY priority, id "
        f"LIMIT ? OFFSET ?",
        params + [limit, offset],
    ).fetchall()
    return [_to_wire(edef, r) for r in rows], pagination_meta(total, page, limit)


def get_entity(conn: sqlite3.Connection, kind: str, entity_id: int) -> dict[str, Any]:
    edef = _entity_def(kind)
    row = _fetch(conn, edef, entity_id)
    if row is None or not row["active"]:
        raise NotFoundError(f"{edef.label} not found", details={"id": entity_id})
    return _to_wire(edef, row)


def _validate(conn: sqlite3.Connection, edef: EntityDef, values: dict[str, Any],
              entity_id: int | None = None) -> None:
    """Check references and enum fields of a merged (existing + patch) row."""
    if edef.parent_column:
        parent_id = values.get(edef.parent_column)
        parent = conn.execute(
            f"SELECT id FROM {edef.parent_table} WHERE id = ? AND active = 1",
            (parent_id,),
        ).fetchone()
        if parent is None:
            raise ValidationError(
                f"Unknown {edef.parent_column}: {parent_id}",
                details={edef.columns[edef.parent_column]: parent_id},
            )

    if edef.table == "topics":
        try:
            FormType(values.get("form_type") or FormType.NORMAL.value)
        except ValueError:
            raise ValidationError(
                f"Invalid formType: {values.get('form_type')!r}",
                details={"allowed": [f.value for f in FormType]},
            ) from None
        for column in ("start_month", "end_month"):
            month = values.get(column)
            if month is not None and not 1 <= int(month) <= 12:
                raise ValidationError(
                    f"{edef.columns[column]} must be between 1 and 12"
                )

    if edef.table == "questions":
        try:
            default_val = DefaultValue(values.get("default_val") or DefaultValue.NONE.value)
        except ValueError:
            raise ValidationError(
                f"Invalid defaultVal: {values.get('default_val')!r}",
                details={"allowed": [d.value for d in DefaultValue]},
            ) from None
        sub_topic_id = values.get("sub_topic_id")
        if sub_topic_id is not None:
            row = conn.execute(
                "SELECT id FROM sub_topics WHERE id = ? AND topic_id = ? AND active = 1",
                (sub_topic_id, values.get("topic_id")),
            ).fetchone()
            if row is None:
                raise ValidationError(
                    f"SubTopic {sub_topic_id} does not belong to topic {values.get('topic_id')}"
                )
        default_que = values.get("default_que")
        if default_val is DefaultValue.QUESTION and default_que is None:
            raise ValidationError("defaultQue is required when defaultVal is QUESTION")
        if default_que is not None:
            if entity_id is not None and int(default_que) == entity_id:
                raise ValidationError("A question cannot default to itself")
            if get_question(conn, int(default_que)) is None:
                raise ValidationError(f"Unknown defaultQue: {default_que}")

    name = values.get(edef.name_column)
    if name is None or not str(name).strip():
        raise ValidationError(f"{edef.columns[edef.name_column]} is required")

    sql = (f"SELECT id FROM {edef.table} WHERE active = 1 "
           f"AND LOWER(TRIM({edef.name_column})) = LOWER(TRIM(?))")
    params: list[Any] = [name]
    if edef.parent_column:
        sql += f" AND {edef.parent_column} = ?"
        params.append(values.get(edef.parent_column))
    if entity_id is not None:
        sql += " AND id != ?"
        params.append(entity_id)
    if conn.execute(sql, params).fetchone() is not None:
        raise ConflictError(
            f"{edef.label} with this name already exists",
            details={edef.columns[edef.name_column]: name},
        )


def _next_priority(conn: sqlite3.Connection, edef: EntityDef,
                   values: dict[str, Any]) -> int:
    sql = f"SELECT COALESCE(MAX(priority), 0) + 1 FROM {edef.table} WHERE active = 1"
    params: list[Any] = []
    if edef.parent_column:
        sql += f" AND {edef.parent_column} = ?"
        params.append(values.get(edef.parent_column))
    return conn.execute(sql, params).fetchone()[0]


def _writable(edef: EntityDef, data: dict[str, Any],
              partial: bool = False) -> dict[str, Any]:
    unknown = set(data) - set(edef.columns) - {"id", "active"}
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
    values = {k: v for k, v in data.items() if k not in ("id", "active")}
    nulls = [c for c, v in values.items() if v is None and c not in edef.nullable]
    if partial and nulls:
        raise ValidationError(
            "Fields cannot be null",
            details={"fields": [edef.columns[c] for c in nulls]},
        )
    for column in nulls:
        del values[column]
    if isinstance(values.get(edef.name_column), str):
        values[edef.name_column] = normalize_whitespace(values[edef.name_column])
    for column in edef.booleans:
        if column in values:
            values[column] = int(bool(values[column]))
    return values


def create_entity(conn: sqlite3.Connection, kind: str,
                  data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new catalog row and return it."""
    edef = _entity_def(kind)
    values = _writable(edef, data)
    missing = [c for c in edef.required if values.get(c) in (None, "")]
    if missing:
        raise ValidationError(
            "Missing required fields",
            details={"fields": [edef.columns[c] for c in missing]},
        )
    _validate(conn, edef, values)
    if values.get("priority") is None:
        values["priority"] = _next_priority(conn, edef, values)
    values = {k: v for k, v in values.items() if v is not None}

    columns = ", ".join(values)
    placeholders = ", ".join("?" * len(values))
    cur = conn.execute(
        f"INSERT INTO {edef.table} ({columns}) VALUES ({placeholders})",
        list(values.values()),
    )
    conn.commit()
    logger.info("catalog create kind=%s id=%d", kind, cur.lastrowid)
    return get_entity(conn, kind, cur.lastrowid)


def update_entity(conn: sqlite3.Connection, kind: str, entity_id: int,
                  data: dict[str, Any]) -> dict[str, Any]:
    """Apply a partial update; fields absent from *data* are left alone."""
    edef = _entity_def(kind)
    row = _fetch(conn, edef, entity_id)
    if row is None or not row["active"]:
        raise NotFoundError(f"{edef.label} not found", details={"id": entity_id})
    patch = _writable(edef, data, partial=True)
    if not patch:
        return _to_wire(edef, row)

    merged = {c: row[c] for c in edef.columns if c not in ("id", "active")}
    merged.update(patch)
    _validate(conn, edef, merged, entity_id=entity_id)

    assignments = ", ".join(f"{c} = ?" for c in patch)
    conn.execute(
        f"UPDATE {edef.table} SET {assignments} WHERE id = ?",
        list(patch.values()) + [entity_id],
    )
    conn.commit()
    logger.info("catalog update kind=%s id=%d fields=%s", kind, entity_id,
                ",".join(sorted(patch)))
    return get_entity(conn, kind, entity_id)


def deactivate_entity(conn: sqlite3.Connection, kind: str, entity_id: int) -> None:
    """Soft-delete a catalog row.  Ledger facts that reference it are kept."""
    edef = _entity_def(kind)
    cur = conn.execute(
        f"UPDATE {edef.table} SET active = 0 WHERE id = ? AND active = 1",
        (entity_id,),
    )
    if cur.rowcount == 0:
        raise NotFoundError(f"{edef.label} not found", details={"id": entity_id})
    conn.commit()
    logger.info("catalog deactivate kind=%s id=%d", kind, entity_id)
