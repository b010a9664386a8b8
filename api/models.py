"""
Pydantic request models and the response envelope for the API.

Request bodies are camelCase on the wire and snake_case in Python
(``alias_generator=to_camel`` with ``populate_by_name``).  Every response is
wrapped by :func:`envelope`:

    {"status": "SUCCESS", "message": ..., "data": ..., "pagination": ...}
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from performance.ledger import StatisticEntry
from performance.reports import ReportRequest


def envelope(message: str, data: Any = None,
             pagination: dict[str, Any] | None = None) -> dict[str, Any]:
    """Wrap a successful result in the standard response envelope."""
    body: dict[str, Any] = {"status": "SUCCESS", "message": message}
    if data is not None:
        body["data"] = data
    if pagination is not None:
        body["pagination"] = pagination
    return body


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Performance statistics ────────────────────────────────────────────────────

class StatisticIn(CamelModel):
    """One answered cell of the performance form."""
    question_id: int = Field(..., description="Question being answered", examples=[12])
    module_id: int | None = Field(None, description="Module of the question's topic")
    topic_id: int | None = Field(None, description="Topic the question belongs to")
    sub_topic_id: int | None = Field(None, description="Subtopic column for ST/Q and Q/ST forms")
    value: str | int | float | None = Field(
        "", description="Answer as entered: a count, Yes/No, a date, or text", examples=["42"]
    )
    status: Literal["INPROGRESS", "SUCCESS"] | None = Field(
        None, description="Always stored as INPROGRESS; SUCCESS is rejected until OTP verification"
    )

    def to_entry(self) -> StatisticEntry:
        return StatisticEntry(
            question_id=self.question_id,
            value="" if self.value is None else self.value,
            module_id=self.module_id,
            topic_id=self.topic_id,
            sub_topic_id=self.sub_topic_id,
            status=self.status,
        )


class SaveStatisticsIn(CamelModel):
    performance_statistics: list[StatisticIn] = Field(..., min_length=1)


class VerifyOtpIn(CamelModel):
    otp: str = Field(..., description="Six-digit code sent by SMS", examples=["123456"])


class ReportRequestIn(CamelModel):
    """Scope, question set and months of a report.

    Months are either an explicit ``months`` list of "MMM YYYY" labels or a
    ``startMonth``/``endMonth`` pair of "MM:YYYY" values.
    """
    state_ids: list[int] = Field(default_factory=list)
    range_ids: list[int] = Field(default_factory=list)
    district_ids: list[int] = Field(default_factory=list)
    module_ids: list[int] = Field(default_factory=list)
    topic_ids: list[int] = Field(default_factory=list)
    sub_topic_ids: list[int] = Field(default_factory=list)
    user_ids: list[int] = Field(default_factory=list)
    question_ids: list[int] = Field(default_factory=list)
    months: list[str] = Field(default_factory=list, examples=[["JAN 2025", "FEB 2025"]])
    start_month: str | None = Field(None, examples=["01:2025"])
    end_month: str | None = Field(None, examples=["03:2025"])

    def to_request(self) -> ReportRequest:
        return ReportRequest(
            state_ids=tuple(self.state_ids),
            range_ids=tuple(self.range_ids),
            district_ids=tuple(self.district_ids),
            module_ids=tuple(self.module_ids),
            topic_ids=tuple(self.topic_ids),
            sub_topic_ids=tuple(self.sub_topic_ids),
            user_ids=tuple(self.user_ids),
            question_ids=tuple(self.question_ids),
            months=tuple(self.months),
            start_month=self.start_month,
            end_month=self.end_month,
        )


class ReportValuesIn(CamelModel):
    """Per-month totals for one unit, or per-user totals for ``multiUser``.

    ``multiUser`` takes its users from either ``id`` or ``userIds``; sending
    both is rejected.
    """
    type: Literal["state", "range", "district", "user", "multiUser"]
    id: int | list[int] | None = None
    user_ids: list[int] | None = Field(None, description="multiUser only, instead of id")
    question_id: int
    sub_topic_id: int | None = None
    months: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_user_ids(self):
        if self.user_ids and self.type != "multiUser":
            raise ValueError("userIds is only accepted for type multiUser")
        if self.user_ids and self.id is not None:
            raise ValueError("Send either id or userIds, not both")
        return self

    def ids(self) -> list[int]:
        if self.type == "multiUser" and self.user_ids:
            return list(self.user_ids)
        if self.id is None:
            return []
        return list(self.id) if isinstance(self.id, list) else [self.id]


# ── Catalog ───────────────────────────────────────────────────────────────────

class ModuleIn(CamelModel):
    name: str = Field(..., min_length=1, examples=["Crime Statistics"])
    priority: int | None = Field(None, ge=1, description="1-based order; appended when omitted")


class ModuleUpdate(CamelModel):
    name: str | None = Field(None, min_length=1)
    priority: int | None = Field(None, ge=1)


class TopicIn(CamelModel):
    module_id: int
    name: str = Field(..., min_length=1)
    priority: int | None = Field(None, ge=1)
    form_type: str = Field("NORMAL", description="NORMAL, ST/Q or Q/ST")
    start_month: int | None = Field(None, description="First month (1-12) the topic is open")
    end_month: int | None = Field(None, description="Last month (1-12) the topic is open")
    is_show_previous: bool = False
    is_show_cummulative: bool = False


class TopicUpdate(CamelModel):
    module_id: int | None = None
    name: str | None = Field(None, min_length=1)
    priority: int | None = Field(None, ge=1)
    form_type: str | None = None
    start_month: int | None = None
    end_month: int | None = None
    is_show_previous: bool | None = None
    is_show_cummulative: bool | None = None


class SubTopicIn(CamelModel):
    topic_id: int
    name: str = Field(..., min_length=1)
    priority: int | None = Field(None, ge=1)


class SubTopicUpdate(CamelModel):
    topic_id: int | None = None
    name: str | None = Field(None, min_length=1)
    priority: int | None = Field(None, ge=1)


class QuestionIn(CamelModel):
    topic_id: int
    sub_topic_id: int | None = None
    question: str = Field(..., min_length=1)
    question_type: str = Field("Numeric", examples=["Numeric", "Text", "Date", "YesNo"])
    default_val: str = Field("NONE", description="NONE, PREVIOUS, QUESTION, PS, SUB, CIRCLE or PSOP")
    default_que: int | None = Field(None, description="Source question when defaultVal is QUESTION")
    formula: str | None = None
    priority: int | None = Field(None, ge=1)


class QuestionUpdate(CamelModel):
    topic_id: int | None = None
    sub_topic_id: int | None = None
    question: str | None = Field(None, min_length=1)
    question_type: str | None = None
    default_val: str | None = None
    default_que: int | None = None
    formula: str | None = None
    priority: int | None = Field(None, ge=1)
