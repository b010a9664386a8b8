"""
Form assembler: builds the monthly performance form for one module/topic page.

Given ``modulePathId`` (0-based, matched against ``module.priority - 1``) and
``topicPathId`` (1-based index into the module's active topics), resolve the
topic, load the caller's ledger facts for the months the form needs, and
pre-fill every cell according to the question's ``defaultVal``.

The assembler only reads.  Saving answers is :mod:`performance.ledger`.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Iterable

from performance import catalog
from performance.access import CurrentUser
from performance.catalog import DefaultValue, FormType, Module, Question, SubTopic, Topic
from performance.errors import NotFoundError
from performance.months import ReportingPeriod, financial_year_labels, month_in_window
from performance.values import KIND_NUMERIC
from utils.config import STATUS_SUCCESS
from utils.strings import format_number

logger = logging.getLogger(__name__)

# DefaultValue -> CurrentUser attribute holding the organizational count
_PROFILE_COUNTS = {
    DefaultValue.PS: "number_ps",
    DefaultValue.SUB: "number_subdivision",
    DefaultValue.CIRCLE: "number_circle",
    DefaultValue.PSOP: "number_op",
}


# ── Output ────────────────────────────────────────────────────────────────────


@dataclass
class FormCell:
    sub_topic_id: int | None
    sub_topic_name: str | None
    current_count: str
    status: str | None
    is_disabled: bool
    previous_count: str | None = None
    cumulative_count: str | None = None
    is_first_entry: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "subTopicId": self.sub_topic_id,
            "subTopicName": self.sub_topic_name,
            "currentCount": self.current_count,
            "status": self.status,
            "isDisabled": self.is_disabled,
        }
        if self.previous_count is not None:
            d["previousCount"] = self.previous_count
        if self.cumulative_count is not None:
            d["cumulativeCount"] = self.cumulative_count
        if self.is_first_entry is not None:
            d["isFirstEntry"] = self.is_first_entry
        return d


@dataclass
class FormQuestion:
    question: Question
    serial: int
    cells: list[FormCell] = field(default_factory=list)

    def to_dict(self, lift_single_cell: bool = False) -> dict[str, Any]:
        q = self.question
        d: dict[str, Any] = {
            "questionId": q.id,
            "serial": self.serial,
            "question": q.question,
            "questionType": q.question_type,
            "defaultVal": q.default_val.value,
            "defaultQue": q.default_que,
            "formula": q.formula,
            "subTopicId": q.sub_topic_id,
            "subTopicName": q.sub_topic_name,
            "cells": [c.to_dict() for c in self.cells],
        }
        if lift_single_cell and self.cells:
            d["currentCount"] = self.cells[0].current_count
            d["isDisabled"] = self.cells[0].is_disabled
        return d


@dataclass
class Navigation:
    module_path_id: int
    topic_path_id: int
    total_topics: int
    has_next_module: bool
    has_previous_module: bool
    has_next_topic: bool
    has_previous_topic: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "modulePathId": self.module_path_id,
            "topicPathId": self.topic_path_id,
            "totalTopics": self.total_topics,
            "hasNextModule": self.has_next_module,
            "hasPreviousModule": self.has_previous_module,
            "hasNextTopic": self.has_next_topic,
            "hasPreviousTopic": self.has_previous_topic,
        }


@dataclass
class PerformanceForm:
    module: Module
    topic: Topic
    period: ReportingPeriod
    available: bool
    questions: list[FormQuestion]
    sub_topics: list[SubTopic]
    navigation: Navigation

    def to_dict(self) -> dict[str, Any]:
        normal = self.topic.form_type is FormType.NORMAL
        return {
            "module": {"id": self.module.id, "name": self.module.name},
            "topic": {
                "id": self.topic.id,
                "name": self.topic.name,
                "formType": self.topic.form_type.value,
                "startMonth": self.topic.start_month,
                "endMonth": self.topic.end_month,
                "isShowPrevious": self.topic.is_show_previous,
                "isShowCummulative": self.topic.is_show_cummulative,
            },
            "monthYear": self.period.label,
            "previousMonthYear": self.period.previous_label,
            "available": self.available,
            "subTopics": [{"id": s.id, "name": s.name} for s in self.sub_topics],
            "questions": [q.to_dict(lift_single_cell=normal) for q in self.questions],
            "navigation": self.navigation.to_dict(),
        }


# ── Ledger snapshot ───────────────────────────────────────────────────────────


class _UserFacts:
    """The caller's active facts for a set of questions and months."""

    def __init__(self, conn: sqlite3.Connection, user_id: int,
                 question_ids: Iterable[int], months: Iterable[str]) -> None:
        self._facts: dict[tuple[int, int, str], sqlite3.Row] = {}
        qids = sorted(set(question_ids))
        labels = sorted(set(months))
        if not qids or not labels:
            return
        q_ph = ",".join("?" * len(qids))
        m_ph = ",".join("?" * len(labels))
        rows = conn.execute(
            f"""
            SELECT question_id, sub_topic_id, month_year, value, value_kind,
                   value_num, status
            FROM performance_statistics
            WHERE user_id = ? AND active = 1
              AND question_id IN ({q_ph}) AND month_year IN ({m_ph})
            """,
            [user_id, *qids, *labels],
        ).fetchall()
        for r in rows:
            self._facts[(r["question_id"], r["sub_topic_id"], r["month_year"])] = r

    def get(self, question_id: int, sub_topic_id: int, month: str) -> sqlite3.Row | None:
        return self._facts.get((question_id, sub_topic_id, month))

    def value(self, question_id: int, sub_topic_id: int, month: str) -> str | None:
        row = self.get(question_id, sub_topic_id, month)
        return None if row is None else row["value"]

    def numeric_total(self, question_id: int, sub_topic_id: int,
                      months: Iterable[str]) -> float:
        total = 0.0
        for month in months:
            row = self.get(question_id, sub_topic_id, month)
            if row is not None and row["value_kind"] == KIND_NUMERIC:
                total += row["value_num"]
        return total


def _keys_seen_outside(conn: sqlite3.Connection, user_id: int,
                       question_ids: list[int], month: str) -> set[tuple[int, int]]:
    """(question, subtopic) pairs with an active fact in any month but *month*."""
    if not question_ids:
        return set()
    ph = ",".join("?" * len(question_ids))
    rows = conn.execute(
        f"""
        SELECT DISTINCT question_id, sub_topic_id FROM performance_statistics
        WHERE user_id = ? AND active = 1 AND month_year != ?
          AND question_id IN ({ph})
        """,
        [user_id, month, *question_ids],
    ).fetchall()
    return {(r["question_id"], r["sub_topic_id"]) for r in rows}


# ── Assembly ──────────────────────────────────────────────────────────────────


def _prefill(question: Question, sub_key: int, ref_sub_key: int,
             facts: _UserFacts, user: CurrentUser, period: ReportingPeriod) -> str:
    current, previous = period.label, period.previous_label
    match question.default_val:
        case DefaultValue.PREVIOUS:
            for month in (previous, current):
                value = facts.value(question.id, sub_key, month)
                if value is not None:
                    return value
            return ""
        case DefaultValue.QUESTION:
            if question.default_que is None:
                return facts.value(question.id, sub_key, current) or ""
            for month in (current, previous):
                value = facts.value(question.default_que, ref_sub_key, month)
                if value is not None:
                    return value
            return ""
        case DefaultValue.PS | DefaultValue.SUB | DefaultValue.CIRCLE | DefaultValue.PSOP:
            count = getattr(user, _PROFILE_COUNTS[question.default_val])
            return str(count or 0)
        case DefaultValue.NONE:
            value = facts.value(question.id, sub_key, current)
            return "" if value is None else value


def _cell(question: Question, sub_topic: SubTopic | None, ref_sub_key: int,
          topic: Topic, facts: _UserFacts, user: CurrentUser,
          period: ReportingPeriod, fy_labels: list[str],
          first_entry_keys: set[tuple[int, int]] | None) -> FormCell:
    sub_key = sub_topic.id if sub_topic else 0
    current = facts.get(question.id, sub_key, period.label)
    status = current["status"] if current is not None else None
    cell = FormCell(
        sub_topic_id=sub_topic.id if sub_topic else None,
        sub_topic_name=sub_topic.name if sub_topic else None,
        current_count=_prefill(question, sub_key, ref_sub_key, facts, user, period),
        status=status,
        is_disabled=(
            status == STATUS_SUCCESS
            or question.default_val is not DefaultValue.NONE
            or question.is_derived
        ),
    )
    if topic.is_show_previous:
        cell.previous_count = facts.value(question.id, sub_key, period.previous_label) or ""
    if topic.is_show_cummulative:
        cell.cumulative_count = format_number(
            facts.numeric_total(question.id, sub_key, fy_labels)
        )
    if first_entry_keys is not None:
        cell.is_first_entry = (question.id, sub_key) not in first_entry_keys
    return cell


def _normal_form(questions, refs, topic, facts, user, period, fy_labels):
    out = []
    for serial, q in enumerate(questions, start=1):
        sub = (SubTopic(q.sub_topic_id, topic.id, q.sub_topic_name or "", 0)
               if q.sub_topic_id else None)
        ref = refs.get(q.default_que) if q.default_que else None
        ref_sub = (ref.sub_topic_id or 0) if ref else 0
        out.append(FormQuestion(q, serial, [
            _cell(q, sub, ref_sub, topic, facts, user, period, fy_labels, None)
        ]))
    return out


def _matrix_form(questions, sub_topics, topic, facts, user, period, fy_labels,
                 first_entry_keys):
    out = []
    columns: list[SubTopic | None] = list(sub_topics) or [None]
    for serial, q in enumerate(questions, start=1):
        cells = [
            _cell(q, sub, sub.id if sub else 0, topic, facts, user, period,
                  fy_labels, first_entry_keys)
            for sub in columns
        ]
        out.append(FormQuestion(q, serial, cells))
    return out


def assemble_form(
    conn: sqlite3.Connection,
    user: CurrentUser,
    module_path_id: int,
    topic_path_id: int,
    period: ReportingPeriod,
    fy_start: int = 4,
) -> PerformanceForm:
    """Assemble the form for one module/topic page.

    Raises:
        NotFoundError: no active module with priority ``module_path_id + 1``,
            or ``topic_path_id`` outside the module's active topics.
    """
    module = catalog.get_module_by_priority(conn, module_path_id + 1)
    if module is None:
        raise NotFoundError("Module not found", details={"modulePathId": module_path_id})

    topics = catalog.list_topics(conn, module.id)
    if not 1 <= topic_path_id <= len(topics):
        raise NotFoundError("Topic not found", details={"topicPathId": topic_path_id})
    topic = topics[topic_path_id - 1]

    navigation = Navigation(
        module_path_id=module_path_id,
        topic_path_id=topic_path_id,
        total_topics=len(topics),
        has_next_module=catalog.get_module_by_priority(conn, module.priority + 1) is not None,
        has_previous_module=(
            module.priority > 1
            and catalog.get_module_by_priority(conn, module.priority - 1) is not None
        ),
        has_next_topic=topic_path_id < len(topics),
        has_previous_topic=topic_path_id > 1,
    )

    sub_topics = catalog.list_sub_topics(conn, topic.id)
    if not month_in_window(period.month, topic.start_month, topic.end_month):
        logger.debug("topic %d closed for %s", topic.id, period.label)
        return PerformanceForm(module, topic, period, False, [], sub_topics, navigation)

    questions = catalog.list_topic_questions(conn, topic.id)
    ref_ids = {q.default_que for q in questions if q.default_que is not None}
    refs = catalog.get_questions(conn, ref_ids)
    fy_labels = financial_year_labels(period, fy_start)
    months = {period.label, period.previous_label}
    if topic.is_show_cummulative:
        months.update(fy_labels)
    facts = _UserFacts(conn, user.id, [q.id for q in questions] + list(ref_ids), months)

    match topic.form_type:
        case FormType.NORMAL:
            form_questions = _normal_form(questions, refs, topic, facts,
                                          user, period, fy_labels)
        case FormType.SUBTOPIC_BY_QUESTION:
            form_questions = _matrix_form(questions, sub_topics, topic, facts,
                                          user, period, fy_labels, None)
        case FormType.QUESTION_BY_SUBTOPIC:
            seen = _keys_seen_outside(conn, user.id, [q.id for q in questions],
                                      period.label)
            form_questions = _matrix_form(questions, sub_topics, topic, facts,
                                          user, period, fy_labels, seen)

    return PerformanceForm(module, topic, period, True, form_questions,
                           sub_topics, navigation)
