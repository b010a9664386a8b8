"""
Create (or upgrade) the performance statistics database.

Runs every pending schema migration and, on request, loads a small demo data
set: one state with two districts, a user per role and a two-topic catalog.

Usage:
    python -m scripts.init_db                         # migrate APP_DB_PATH
    python -m scripts.init_db --db /data/perf.sqlite
    python -m scripts.init_db --seed-demo             # add demo rows too
"""

import argparse
import logging
import os
import sqlite3
import sys
from pathlib import Path

from performance.schema import SCHEMA_VERSION, create_database
from utils.database import get_table_count

_logger = logging.getLogger("init_db")
logging.basicConfig(
    format="%(asctime)s %(levelname)s %(message)s",
    level=logging.INFO,
)

_DEFAULT_DB = Path(os.environ.get("APP_DB_PATH", "performance.sqlite"))

# (first_name, role, state, range, district, token)
_DEMO_USERS = [
    ("Admin", "ADMIN", None, None, None, "demo-admin-token"),
    ("State", "STATE_ADMIN", 1, None, None, "demo-state-token"),
    ("Range", "RANGE_ADMIN", 1, 1, None, "demo-range-token"),
    ("North", "DISTRICT_USER", 1, 1, 1, "demo-north-token"),
    ("South", "DISTRICT_USER", 1, 1, 2, "demo-south-token"),
]


def seed_demo(conn: sqlite3.Connection) -> None:
    """Insert the demo geography, users and catalog into an empty database.

    Raises:
        RuntimeError: If the database already holds users.
    """
    if get_table_count(conn, "users"):
        raise RuntimeError("Database already has users; refusing to seed demo data")

    conn.execute("INSERT INTO states (id, state_name) VALUES (1, 'Demo State')")
    conn.execute("INSERT INTO ranges (id, state_id, range_name) VALUES (1, 1, 'Central Range')")
    conn.executemany(
        "INSERT INTO districts (id, range_id, district_name) VALUES (?, 1, ?)",
        [(1, "North District"), (2, "South District")],
    )
    conn.executemany(
        "INSERT INTO users (first_name, last_name, email, mobile_no, role, state_id,"
        " range_id, district_id, number_subdivision, number_circle, number_ps,"
        " number_op, token) VALUES (?, 'User', ?, '9000000000', ?, ?, ?, ?, 2, 3, 5, 1, ?)",
        [(name, f"{name.lower()}@example.org", role, state, rng, district, token)
         for name, role, state, rng, district, token in _DEMO_USERS],
    )

    conn.execute("INSERT INTO modules (id, name, priority) VALUES (1, 'Crime Statistics', 1)")
    conn.execute(
        "INSERT INTO topics (id, module_id, name, priority, form_type, is_show_previous,"
        " is_show_cummulative) VALUES (1, 1, 'Cases Registered', 1, 'NORMAL', 1, 1)"
    )
    conn.execute(
        "INSERT INTO topics (id, module_id, name, priority, form_type)"
        " VALUES (2, 1, 'Arrests by Category', 2, 'ST/Q')"
    )
    conn.executemany(
        "INSERT INTO sub_topics (id, topic_id, name, priority) VALUES (?, 2, ?, ?)",
        [(1, "Adults", 1), (2, "Juveniles", 2)],
    )
    conn.executemany(
        "INSERT INTO questions (id, topic_id, sub_topic_id, question, question_type,"
        " default_val, default_que, priority) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        [
            (1, 1, None, "Police stations in district", "Numeric", "PS", None, 1),
            (2, 1, None, "Cases registered", "Numeric", "NONE", None, 2),
            (3, 1, None, "Cases pending from last month", "Numeric", "PREVIOUS", None, 3),
            (4, 1, None, "Special drive held", "YesNo", "NONE", None, 4),
            (5, 2, None, "Persons arrested", "Numeric", "NONE", None, 1),
            (6, 2, None, "Persons released on bail", "Numeric", "NONE", None, 2),
        ],
    )
    conn.commit()
    _logger.info("Seeded demo data: %d users, %d questions",
                 get_table_count(conn, "users"), get_table_count(conn, "questions"))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--db", type=Path, default=_DEFAULT_DB,
                        help=f"SQLite database path (default: {_DEFAULT_DB})")
    parser.add_argument("--seed-demo", action="store_true",
                        help="Load demo geography, users and catalog")
    args = parser.parse_args(argv)

    conn = create_database(args.db)
    try:
        _logger.info("Database %s is at schema version %d", args.db, SCHEMA_VERSION)
        if args.seed_demo:
            try:
                seed_demo(conn)
            except RuntimeError as exc:
                _logger.error("%s", exc)
                return 1
    finally:
        conn.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
