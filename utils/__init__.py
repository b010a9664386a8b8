"""Shared utilities for the performance statistics API."""

# Pattern definitions
from utils.patterns import (
    MONTH_LABEL,
    MONTH_INPUT,
    ISO_DATE,
    YES_NO,
    OTP_CODE,
)

# String utilities
from utils.strings import parse_number, format_number, normalize_whitespace

# Database utilities
from utils.database import (
    init_pragmas,
    get_table_count,
    table_exists,
)

# Query builders
from utils.query import (
    build_where_clause,
    build_order_clause,
    normalize_page,
    pagination_meta,
)

# Configuration
from utils.config import Config, AppConfig

__all__ = [
    # Patterns
    "MONTH_LABEL",
    "MONTH_INPUT",
    "ISO_DATE",
    "YES_NO",
    "OTP_CODE",
    # Strings
    "parse_number",
    "format_number",
    "normalize_whitespace",
    # Database
    "init_pragmas",
    "get_table_count",
    "table_exists",
    # Query
    "build_where_clause",
    "build_order_clause",
    "normalize_page",
    "pagination_meta",
    # Config
    "Config",
    "AppConfig",
]
