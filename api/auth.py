"""
Request-scoped dependencies: the authenticated caller, the app config and
the reporting period.

Token issuance lives elsewhere; here a bearer token is only looked up in
``users.token``.
"""

import sqlite3
from datetime import date

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.database import get_db
from performance.access import CurrentUser, require_role, user_for_token
from performance.months import ReportingPeriod
from utils.config import ROLE_ADMIN, AppConfig

_bearer = HTTPBearer(auto_error=False)


def get_config(request: Request) -> AppConfig:
    """The AppConfig the running app was created with."""
    return request.app.state.config


def get_reporting_period(config: AppConfig = Depends(get_config)) -> ReportingPeriod:
    """Current reporting month from the server clock and configured offset.

    Tests pin the month by overriding this dependency.
    """
    return ReportingPeriod.for_date(date.today(), config.reporting_month_offset)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    conn: sqlite3.Connection = Depends(get_db),
) -> CurrentUser:
    """Resolve ``Authorization: Bearer <token>`` to the calling user (401 otherwise)."""
    token = credentials.credentials if credentials else None
    return user_for_token(conn, token)


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    require_role(user, ROLE_ADMIN)
    return user
