"""
Who may see what.

``CurrentUser`` is the authenticated caller as the services see it; the HTTP
layer builds one from the bearer token.  The checks below confine report and
ledger reads to the caller's organizational unit:

    ADMIN          everything
    STATE_ADMIN    own state
    RANGE_ADMIN    own range
    DISTRICT_USER  own district
"""

from __future__ import annotations

import dataclasses
import sqlite3
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from performance import geography
from performance.errors import AccessDeniedError, AuthenticationError
from utils.config import (
    ROLE_ADMIN,
    ROLE_DISTRICT_USER,
    ROLE_RANGE_ADMIN,
    ROLE_STATE_ADMIN,
)

if TYPE_CHECKING:
    from performance.reports import ReportRequest


@dataclass(frozen=True)
class CurrentUser:
    id: int
    role: str
    first_name: str = ""
    last_name: str | None = None
    mobile_no: str | None = None
    state_id: int | None = None
    range_id: int | None = None
    district_id: int | None = None
    number_subdivision: int | None = None
    number_circle: int | None = None
    number_ps: int | None = None
    number_op: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "CurrentUser":
        fields = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: row[k] for k in row.keys() if k in fields})


def load_user(conn: sqlite3.Connection, user_id: int) -> CurrentUser | None:
    row = conn.execute(
        "SELECT * FROM users WHERE id = ? AND active = 1", (user_id,)
    ).fetchone()
    return CurrentUser.from_row(row) if row else None


def user_for_token(conn: sqlite3.Connection, token: str | None) -> CurrentUser:
    """Resolve a bearer token to its active user.

    Raises:
        AuthenticationError: missing or unknown token.
    """
    if not token:
        raise AuthenticationError("Authentication required")
    row = conn.execute(
        "SELECT * FROM users WHERE token = ? AND active = 1", (token,)
    ).fetchone()
    if row is None:
        raise AuthenticationError("Invalid or expired token")
    return CurrentUser.from_row(row)


def require_role(user: CurrentUser, *roles: str) -> None:
    if user.role not in roles:
        raise AccessDeniedError(
            "You do not have permission to perform this action",
            details={"role": user.role, "required": list(roles)},
        )


def _home(user: CurrentUser) -> tuple[str, int]:
    """The (level, id) a limited role is confined to."""
    if user.role == ROLE_STATE_ADMIN:
        level, unit = "state", user.state_id
    elif user.role == ROLE_RANGE_ADMIN:
        level, unit = "range", user.range_id
    elif user.role == ROLE_DISTRICT_USER:
        level, unit = "district", user.district_id
    else:
        raise AccessDeniedError(f"Unknown role: {user.role}")
    if unit is None:
        raise AccessDeniedError(
            f"User {user.id} is not assigned to a {level}"
        )
    return level, unit


def _deny(kind: str, ids: Iterable[int]) -> AccessDeniedError:
    return AccessDeniedError(
        f"Access denied: cannot access data outside your {kind}",
        details={"ids": sorted(ids)},
    )


def _user_units(conn: sqlite3.Connection, user_ids: Iterable[int]) -> list[sqlite3.Row]:
    ids = sorted({int(i) for i in user_ids})
    placeholders = ",".join("?" * len(ids))
    return conn.execute(
        f"SELECT id, state_id, range_id, district_id FROM users WHERE id IN ({placeholders})",
        ids,
    ).fetchall()


def check_units(
    conn: sqlite3.Connection,
    user: CurrentUser,
    state_ids: Iterable[int] = (),
    range_ids: Iterable[int] = (),
    district_ids: Iterable[int] = (),
    user_ids: Iterable[int] = (),
) -> None:
    """Raise AccessDeniedError if any id lies outside *user*'s unit."""
    if user.is_admin:
        return
    level, unit = _home(user)
    state_ids, range_ids = set(state_ids), set(range_ids)
    district_ids, user_ids = set(district_ids), set(user_ids)

    if level == "state":
        if state_ids - {unit}:
            raise _deny("state", state_ids - {unit})
        parents = geography.range_state(conn, range_ids)
        outside = {r for r in range_ids if parents.get(r) != unit}
        if outside:
            raise _deny("state", outside)
        d_parents = geography.district_range(conn, district_ids)
        r_parents = geography.range_state(conn, d_parents.values())
        outside = {d for d in district_ids
                   if r_parents.get(d_parents.get(d)) != unit}
        if outside:
            raise _deny("state", outside)
    elif level == "range":
        if state_ids:
            raise _deny("range", state_ids)
        if range_ids - {unit}:
            raise _deny("range", range_ids - {unit})
        parents = geography.district_range(conn, district_ids)
        outside = {d for d in district_ids if parents.get(d) != unit}
        if outside:
            raise _deny("range", outside)
    else:
        if state_ids or range_ids:
            raise _deny("district", state_ids | range_ids)
        if district_ids - {unit}:
            raise _deny("district", district_ids - {unit})

    if user_ids:
        column = f"{level}_id"
        rows = _user_units(conn, user_ids)
        found = {r["id"] for r in rows if r[column] == unit}
        outside = user_ids - found
        if outside:
            raise _deny(level, outside)


def scope_filters(
    conn: sqlite3.Connection,
    user: CurrentUser,
    state_ids: Iterable[int] = (),
    range_ids: Iterable[int] = (),
    district_ids: Iterable[int] = (),
    user_ids: Iterable[int] = (),
) -> dict[str, tuple[int, ...]]:
    """Check the requested units and narrow an unscoped request.

    Returns the four id filters to apply.  A limited role that asked for no
    unit at all gets its own unit filled in.
    """
    scope = {
        "state_ids": tuple(state_ids),
        "range_ids": tuple(range_ids),
        "district_ids": tuple(district_ids),
        "user_ids": tuple(user_ids),
    }
    if user.is_admin:
        return scope
    check_units(conn, user, **scope)
    if any(scope.values()):
        return scope
    level, unit = _home(user)
    scope[f"{level}_ids"] = (unit,)
    return scope


def restrict_report_request(
    conn: sqlite3.Connection, user: CurrentUser, request: "ReportRequest"
) -> "ReportRequest":
    """Validate *request* against *user*'s scope and narrow it if unscoped."""
    scope = scope_filters(
        conn, user,
        state_ids=request.state_ids,
        range_ids=request.range_ids,
        district_ids=request.district_ids,
        user_ids=request.user_ids,
    )
    return dataclasses.replace(request, **scope)


def check_entity_access(conn: sqlite3.Connection, user: CurrentUser,
                        kind: str, entity_id: int) -> None:
    """Access check for a single ``state|range|district|user`` id."""
    match kind:
        case "state":
            check_units(conn, user, state_ids=[entity_id])
        case "range":
            check_units(conn, user, range_ids=[entity_id])
        case "district":
            check_units(conn, user, district_ids=[entity_id])
        case "user":
            if entity_id != user.id:
                check_units(conn, user, user_ids=[entity_id])
        case _:
            raise ValueError(f"Unknown scope type: {kind}")

