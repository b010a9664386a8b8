"""
Typed ledger values.

Answers arrive as strings.  Each one is classified once, when it is saved,
into one of four kinds; the kind and the parsed number are stored next to the
original text so reports can sum ``value_num`` without re-sniffing strings.
"""

from __future__ import annotations

from dataclasses import dataclass

from utils.patterns import ISO_DATE, YES_NO
from utils.strings import parse_number

KIND_NUMERIC = "numeric"
KIND_TEXT = "text"
KIND_BOOLEAN = "boolean"
KIND_DATE = "date"


@dataclass(frozen=True)
class TypedValue:
    kind: str
    text: str
    number: float | None = None

    @property
    def is_numeric(self) -> bool:
        return self.kind == KIND_NUMERIC


def classify_value(raw, question_type: str | None = None) -> TypedValue:
    """Classify a submitted answer.

    Order matters: Yes/No first, then anything date-like (a ``Date``
    question, a ``/`` anywhere, or an ISO date), then numbers.  Whatever is
    left, including the empty string, is text.
    """
    text = "" if raw is None else str(raw).strip()
    if YES_NO.match(text):
        return TypedValue(KIND_BOOLEAN, text)
    if text and (
        (question_type or "").strip().lower() == "date"
        or "/" in text
        or ISO_DATE.match(text)
    ):
        return TypedValue(KIND_DATE, text)
    number = parse_number(text)
    if number is not None:
        return TypedValue(KIND_NUMERIC, text, number)
    return TypedValue(KIND_TEXT, text)


def numeric_total(values) -> float:
    """Sum the numeric members of an iterable of raw answers."""
    total = 0.0
    for raw in values:
        typed = classify_value(raw)
        if typed.is_numeric:
            total += typed.number
    return total
