"""
Pytest fixtures for the performance statistics tests.

Every test gets its own migrated SQLite database in ``tmp_path`` seeded with a
small, fixed world:

    States     1 Alpha State            2 Beta State
    Ranges     1 North (state 1)        2 South (state 1)     3 East (state 2)
    Districts  1 Ashford (range 1)      2 Brookfield (range 1)
               3 Cedar (range 2)        4 Dunmore (range 3)

    Users      1 ADMIN            admin-token
               2 STATE_ADMIN      state-token   state 1
               3 RANGE_ADMIN      range-token   range 1
               4 DISTRICT_USER    d1-token      district 1 (PS=7, SUB=2, CIRCLE=3, PSOP=1)
               5 DISTRICT_USER    d2-token      district 2
               6 DISTRICT_USER    d4-token      district 4

    Module 1 "Crime" (priority 1)
        Topic 1 "Cases"    NORMAL, shows previous + cumulative
            Q1 Cases registered      NONE
            Q2 Cases pending         PREVIOUS
            Q3 Police stations       PS
            Q4 Special drive held    NONE (YesNo)
            Q5 Cases carried over    QUESTION -> Q1
        Topic 2 "Arrests"  ST/Q with subtopics 1 Adults, 2 Juveniles
            Q6 Persons arrested      NONE
        Topic 3 "Checks"   Q/ST with subtopics 3 Day, 4 Night
            Q7 Checks conducted      NONE
    Module 2 "Traffic" (priority 2)
        Topic 4 "Accidents" NORMAL, open OCT..DEC only
            Q8 Accidents reported    NONE

The reporting month is pinned to MAR 2025 (previous month FEB 2025).
"""

import sqlite3
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from performance.access import load_user  # noqa: E402
from performance.months import ReportingPeriod  # noqa: E402
from performance.schema import create_database  # noqa: E402
from performance.values import classify_value  # noqa: E402
from utils.database import init_pragmas  # noqa: E402

CURRENT = ReportingPeriod(2025, 3)

ADMIN_ID, STATE_ADMIN_ID, RANGE_ADMIN_ID = 1, 2, 3
D1_USER_ID, D2_USER_ID, D4_USER_ID = 4, 5, 6

TOKENS = {
    "admin": "admin-token",
    "state": "state-token",
    "range": "range-token",
    "d1": "d1-token",
    "d2": "d2-token",
    "d4": "d4-token",
}


def _seed(conn: sqlite3.Connection) -> None:
    conn.executemany(
        "INSERT INTO states (id, state_name) VALUES (?, ?)",
        [(1, "Alpha State"), (2, "Beta State")],
    )
    conn.executemany(
        "INSERT INTO ranges (id, state_id, range_name) VALUES (?, ?, ?)",
        [(1, 1, "North Range"), (2, 1, "South Range"), (3, 2, "East Range")],
    )
    conn.executemany(
        "INSERT INTO districts (id, range_id, district_name) VALUES (?, ?, ?)",
        [(1, 1, "Ashford"), (2, 1, "Brookfield"), (3, 2, "Cedar"), (4, 3, "Dunmore")],
    )
    conn.executemany(
        "INSERT INTO users (id, first_name, last_name, email, mobile_no, role,"
        " state_id, range_id, district_id, number_subdivision, number_circle,"
        " number_ps, number_op, token) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?)",
        [
            (1, "Ada", "Admin", "admin@example.org", "9000000001", "ADMIN",
             None, None, None, None, None, None, None, TOKENS["admin"]),
            (2, "Sam", "State", "state@example.org", "9000000002", "STATE_ADMIN",
             1, None, None, None, None, None, None, TOKENS["state"]),
            (3, "Rae", "Range", "range@example.org", "9000000003", "RANGE_ADMIN",
             1, 1, None, None, None, None, None, TOKENS["range"]),
            (4, "Dev", "Ashford", "d1@example.org", "9876543210", "DISTRICT_USER",
             1, 1, 1, 2, 3, 7, 1, TOKENS["d1"]),
            (5, "Bea", "Brookfield", "d2@example.org", "9000000005", "DISTRICT_USER",
             1, 1, 2, 1, 1, 4, 0, TOKENS["d2"]),
            (6, "Don", "Dunmore", "d4@example.org", "9000000006", "DISTRICT_USER",
             2, 3, 4, 1, 2, 5, 2, TOKENS["d4"]),
        ],
    )
    conn.executemany(
        "INSERT INTO modules (id, name, priority) VALUES (?, ?, ?)",
        [(1, "Crime", 1), (2, "Traffic", 2)],
    )
    conn.executemany(
        "INSERT INTO topics (id, module_id, name, priority, form_type, start_month,"
        " end_month, is_show_previous, is_show_cummulative)"
        " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
        [
            (1, 1, "Cases", 1, "NORMAL", None, None, 1, 1),
            (2, 1, "Arrests", 2, "ST/Q", None, None, 0, 0),
            (3, 1, "Checks", 3, "Q/ST", None, None, 0, 0),
            (4, 2, "Accidents", 1, "NORMAL", 10, 12, 0, 0),
        ],
    )
    conn.executemany(
        "INSERT INTO sub_topics (id, topic_id, name, priority) VALUES (?, ?, ?, ?)",
        [(1, 2, "Adults", 1), (2, 2, "Juveniles", 2), (3, 3, "Day", 1), (4, 3, "Night", 2)],
    )
    conn.executemany(
        "INSERT INTO questions (id, topic_id, sub_topic_id, question, question_type,"
        " default_val, default_que, priority) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        [
            (1, 1, None, "Cases registered", "Numeric", "NONE", None, 1),
            (2, 1, None, "Cases pending", "Numeric", "PREVIOUS", None, 2),
            (3, 1, None, "Police stations", "Numeric", "PS", None, 3),
            (4, 1, None, "Special drive held", "YesNo", "NONE", None, 4),
            (5, 1, None, "Cases carried over", "Numeric", "QUESTION", 1, 5),
            (6, 2, None, "Persons arrested", "Numeric", "NONE", None, 1),
            (7, 3, None, "Checks conducted", "Numeric", "NONE", None, 1),
            (8, 4, None, "Accidents reported", "Numeric", "NONE", None, 1),
        ],
    )
    conn.commit()


def _open(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    init_pragmas(conn)
    return conn


# ── Database fixtures ─────────────────────────────────────────────────────────

@pytest.fixture()
def db_path(tmp_path):
    """Path to a migrated and seeded database."""
    path = tmp_path / "performance.sqlite"
    conn = create_database(path)
    _seed(conn)
    conn.close()
    return path


@pytest.fixture()
def conn(db_path):
    c = _open(db_path)
    yield c
    c.close()


@pytest.fixture()
def period():
    return CURRENT


@pytest.fixture()
def users(conn):
    """CurrentUser objects keyed by the TOKENS names."""
    ids = {"admin": ADMIN_ID, "state": STATE_ADMIN_ID, "range": RANGE_ADMIN_ID,
           "d1": D1_USER_ID, "d2": D2_USER_ID, "d4": D4_USER_ID}
    return {name: load_user(conn, uid) for name, uid in ids.items()}


@pytest.fixture()
def add_fact(conn):
    """Insert a ledger fact directly, stamped with the user's geography.

    Usage::

        add_fact(4, question_id=1, month="FEB 2025", value="42")
    """
    def _add(user_id, question_id, month, value, status="SUCCESS", sub_topic_id=0):
        user = conn.execute(
            "SELECT state_id, range_id, district_id FROM users WHERE id = ?", (user_id,)
        ).fetchone()
        q = conn.execute(
            "SELECT q.topic_id, t.module_id FROM questions q "
            "JOIN topics t ON t.id = q.topic_id WHERE q.id = ?", (question_id,)
        ).fetchone()
        typed = classify_value(value)
        cur = conn.execute(
            "INSERT INTO performance_statistics (user_id, question_id, module_id,"
            " topic_id, sub_topic_id, state_id, range_id, district_id, value,"
            " value_kind, value_num, month_year, status)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (user_id, question_id, q["module_id"], q["topic_id"], sub_topic_id,
             user["state_id"], user["range_id"], user["district_id"],
             typed.text, typed.kind, typed.number, month, status),
        )
        conn.commit()
        return cur.lastrowid
    return _add


# ── HTTP fixtures ─────────────────────────────────────────────────────────────

@pytest.fixture()
def app(db_path):
    pytest.importorskip("fastapi")
    from api.app import create_app
    from api.auth import get_reporting_period
    from utils.config import AppConfig

    application = create_app(db_path=db_path, config=AppConfig())
    application.dependency_overrides[get_reporting_period] = lambda: CURRENT
    return application


@pytest.fixture()
def client(app):
    """TestClient wired to the seeded database with MAR 2025 as the current month."""
    pytest.importorskip("httpx")
    from fastapi.testclient import TestClient

    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture()
def auth():
    """``auth("d1")`` → Authorization header for that seeded user."""
    def _headers(name):
        return {"Authorization": f"Bearer {TOKENS[name]}"}
    return _headers
