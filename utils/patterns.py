"""Pre-compiled regex patterns for the performance statistics tools.

All patterns are compiled once at module import so the value classifier and
month parsers, which run for every ledger row, don't recompile them.

Usage:
    from utils.patterns import MONTH_LABEL, MONTH_INPUT

    if MONTH_LABEL.match(text):
        ...
"""

import re

# Reporting month labels as stored in the ledger: "MAR 2025"
MONTH_LABEL = re.compile(r'^\s*([A-Za-z]{3})\s+(\d{4})\s*$')

# Month picker values sent by report forms: "03:2025" or "3:2025"
MONTH_INPUT = re.compile(r'^\s*(\d{1,2})\s*:\s*(\d{4})\s*$')

# ISO calendar dates: "2025-03-31"
ISO_DATE = re.compile(r'^\s*\d{4}-\d{2}-\d{2}\s*$')

# Yes/No answers to boolean questions
YES_NO = re.compile(r'^\s*(yes|no)\s*$', re.IGNORECASE)

# One-time passwords: exactly six digits
OTP_CODE = re.compile(r'^\d{6}$')

# Whitespace normalization: multiple spaces/tabs/newlines
WHITESPACE = re.compile(r'\s+')

# Currency symbols for stripping during numeric conversion
CURRENCY_SYMBOLS = re.compile(r'[\$€£¥₹₽]')
