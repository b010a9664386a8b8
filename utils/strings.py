"""String processing utilities for the performance statistics tools.

``parse_number`` reports "not a number" as ``None``, which is what the
ledger's value classifier needs.
"""

from utils.patterns import CURRENCY_SYMBOLS, WHITESPACE


def parse_number(val) -> float | None:
    """Parse *val* as a float, or return None when it is not numeric.

    Handles:
    - ints and floats (bools are rejected)
    - strings with surrounding whitespace, thousands separators and
      currency symbols ("1,250", " ₹300 ")

    Args:
        val: Value to convert (any type)

    Returns:
        float, or None for empty / non-numeric input
    """
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        return float(val)
    s = CURRENCY_SYMBOLS.sub('', str(val)).replace(',', '').strip()
    if not s:
        return None
    try:
        number = float(s)
    except ValueError:
        return None
    # float() accepts "nan" and "inf"; those are answers, not counts
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def format_number(value: float) -> str:
    """Render a summed count without a trailing ".0" for whole numbers.

    Example:
        42.0 -> "42", 2.5 -> "2.5"
    """
    if float(value).is_integer():
        return str(int(value))
    return repr(round(float(value), 6))


def normalize_whitespace(s: str) -> str:
    """Normalize multiple whitespace characters to single spaces.

    Example:
        "Crime   against\\n women" -> "Crime against women"
    """
    return WHITESPACE.sub(' ', s).strip()
