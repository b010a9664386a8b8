"""
Reference data endpoints.

GET /api/reference/states                  → active states
GET /api/reference/ranges?stateId=         → active ranges, optionally of one state
GET /api/reference/districts?rangeId=      → active districts, optionally of one range
"""

import sqlite3

from fastapi import APIRouter, Depends, Query

from api.auth import get_current_user
from api.database import get_db
from api.models import envelope
from performance import geography
from performance.access import CurrentUser

router = APIRouter(prefix="/reference", tags=["reference"])


@router.get("/states", summary="List states")
def list_states(
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    return envelope("States retrieved", geography.list_states(conn))


@router.get("/ranges", summary="List ranges")
def list_ranges(
    state_id: int | None = Query(None, alias="stateId"),
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    return envelope("Ranges retrieved", geography.list_ranges(conn, state_id))


@router.get("/districts", summary="List districts")
def list_districts(
    range_id: int | None = Query(None, alias="rangeId"),
    conn: sqlite3.Connection = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    return envelope("Districts retrieved", geography.list_districts(conn, range_id))
