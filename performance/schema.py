"""
Database schema and migration framework.

Migrations are ordered ``(version, description, sql)`` entries applied once
each and recorded in the ``schema_version`` table.  ``migrate()`` is
idempotent: running it against an up-to-date database does nothing.

Layout:
    001_geography_users   states → ranges → districts, users
    002_catalog           modules → topics → sub_topics, questions
    003_ledger            performance_statistics + indexes

``performance_statistics.sub_topic_id`` holds 0 (never NULL) for facts
without a subtopic, so the partial UNIQUE index on
``(user_id, question_id, sub_topic_id, month_year) WHERE active = 1`` can
enforce one active fact per key.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from utils.database import init_pragmas

_DDL_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    description TEXT,
    applied_at  TEXT    DEFAULT (datetime('now'))
);
"""

_DDL_001_GEOGRAPHY = """
CREATE TABLE IF NOT EXISTS states (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    state_name  TEXT    NOT NULL,
    active      INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS ranges (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    state_id    INTEGER NOT NULL REFERENCES states(id),
    range_name  TEXT    NOT NULL,
    active      INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS districts (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    range_id       INTEGER NOT NULL REFERENCES ranges(id),
    district_name  TEXT    NOT NULL,
    active         INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS users (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    first_name          TEXT    NOT NULL,
    last_name           TEXT,
    email               TEXT    UNIQUE,
    mobile_no           TEXT,
    role                TEXT    NOT NULL DEFAULT 'DISTRICT_USER'
                        CHECK (role IN ('ADMIN', 'STATE_ADMIN', 'RANGE_ADMIN', 'DISTRICT_USER')),
    state_id            INTEGER REFERENCES states(id),
    range_id            INTEGER REFERENCES ranges(id),
    district_id         INTEGER REFERENCES districts(id),
    number_subdivision  INTEGER,
    number_circle       INTEGER,
    number_ps           INTEGER,
    number_op           INTEGER,
    token               TEXT    UNIQUE,
    otp                 TEXT,
    otp_validity        TEXT,
    active              INTEGER NOT NULL DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_ranges_state ON ranges(state_id);
CREATE INDEX IF NOT EXISTS idx_districts_range ON districts(range_id);
"""

_DDL_002_CATALOG = """
CREATE TABLE IF NOT EXISTS modules (
    id        INTEGER PRIMARY KEY AUTOINCREMENT,
    name      TEXT    NOT NULL,
    priority  INTEGER NOT NULL,
    active    INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS topics (
    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
    module_id            INTEGER NOT NULL REFERENCES modules(id),
    name                 TEXT    NOT NULL,
    priority             INTEGER NOT NULL DEFAULT 1,
    form_type            TEXT    NOT NULL DEFAULT 'NORMAL'
                         CHECK (form_type IN ('NORMAL', 'ST/Q', 'Q/ST')),
    start_month          INTEGER CHECK (start_month BETWEEN 1 AND 12),
    end_month            INTEGER CHECK (end_month BETWEEN 1 AND 12),
    is_show_previous     INTEGER NOT NULL DEFAULT 0,
    is_show_cummulative  INTEGER NOT NULL DEFAULT 0,
    active               INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS sub_topics (
    id        INTEGER PRIMARY KEY AUTOINCREMENT,
    topic_id  INTEGER NOT NULL REFERENCES topics(id),
    name      TEXT    NOT NULL,
    priority  INTEGER NOT NULL DEFAULT 1,
    active    INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS questions (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    topic_id       INTEGER NOT NULL REFERENCES topics(id),
    sub_topic_id   INTEGER REFERENCES sub_topics(id),
    question       TEXT    NOT NULL,
    question_type  TEXT    NOT NULL DEFAULT 'Numeric',
    default_val    TEXT    NOT NULL DEFAULT 'NONE'
                   CHECK (default_val IN ('NONE', 'PREVIOUS', 'QUESTION', 'PS', 'SUB', 'CIRCLE', 'PSOP')),
    default_que    INTEGER REFERENCES questions(id),
    formula        TEXT,
    priority       INTEGER NOT NULL DEFAULT 1,
    active         INTEGER NOT NULL DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_modules_priority ON modules(priority);
CREATE INDEX IF NOT EXISTS idx_topics_module ON topics(module_id, priority);
CREATE INDEX IF NOT EXISTS idx_sub_topics_topic ON sub_topics(topic_id, priority);
CREATE INDEX IF NOT EXISTS idx_questions_topic ON questions(topic_id, priority);
"""

_DDL_003_LEDGER = """
CREATE TABLE IF NOT EXISTS performance_statistics (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id       INTEGER NOT NULL REFERENCES users(id),
    question_id   INTEGER NOT NULL REFERENCES questions(id),
    module_id     INTEGER REFERENCES modules(id),
    topic_id      INTEGER REFERENCES topics(id),
    sub_topic_id  INTEGER NOT NULL DEFAULT 0,
    state_id      INTEGER,
    range_id      INTEGER,
    district_id   INTEGER,
    value         TEXT    NOT NULL DEFAULT '',
    value_kind    TEXT    NOT NULL DEFAULT 'text'
                  CHECK (value_kind IN ('numeric', 'text', 'boolean', 'date')),
    value_num     REAL,
    month_year    TEXT    NOT NULL,
    status        TEXT    NOT NULL DEFAULT 'INPROGRESS'
                  CHECK (status IN ('INPROGRESS', 'SUCCESS')),
    active        INTEGER NOT NULL DEFAULT 1,
    created_at    TEXT    NOT NULL DEFAULT (datetime('now')),
    updated_at    TEXT    NOT NULL DEFAULT (datetime('now'))
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_stats_active_key
    ON performance_statistics(user_id, question_id, sub_topic_id, month_year)
    WHERE active = 1;
CREATE INDEX IF NOT EXISTS idx_stats_user_month
    ON performance_statistics(user_id, month_year, status);
CREATE INDEX IF NOT EXISTS idx_stats_report
    ON performance_statistics(status, question_id, month_year);
CREATE INDEX IF NOT EXISTS idx_stats_district
    ON performance_statistics(district_id, month_year);
"""

# Migration SQL ordered by version number.
# Each entry: (version, description, sql)
_MIGRATIONS = [
    (1, "001_geography_users: states, ranges, districts, users", _DDL_001_GEOGRAPHY),
    (2, "002_catalog: modules, topics, sub_topics, questions", _DDL_002_CATALOG),
    (3, "003_ledger: performance_statistics with one-active-fact index", _DDL_003_LEDGER),
]

SCHEMA_VERSION = _MIGRATIONS[-1][0]


def _current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied migration version (0 if none applied)."""
    try:
        row = conn.execute(
            "SELECT MAX(version) FROM schema_version"
        ).fetchone()
        return row[0] or 0
    except sqlite3.OperationalError:
        # schema_version table doesn't exist yet
        return 0


def migrate(conn: sqlite3.Connection) -> int:
    """Apply all pending migrations in order.

    Args:
        conn: An open SQLite connection.

    Returns:
        Number of migrations applied in this call (0 if already up to date).
    """
    conn.execute(_DDL_SCHEMA_VERSION)
    conn.commit()

    current = _current_version(conn)
    applied = 0

    for version, description, sql in _MIGRATIONS:
        if version <= current:
            continue
        conn.executescript(sql)
        conn.execute(
            "INSERT INTO schema_version (version, description) VALUES (?, ?)",
            (version, description),
        )
        conn.commit()
        applied += 1

    return applied


def create_database(db_path: Path) -> sqlite3.Connection:
    """Open (or create) the database at *db_path* and run all migrations.

    Returns:
        An open connection with ``sqlite3.Row`` rows and pragmas applied.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    init_pragmas(conn)
    migrate(conn)
    return conn
