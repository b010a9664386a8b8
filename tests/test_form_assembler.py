"""
Tests for performance/form.py — assembling the monthly form.

The reporting month is MAR 2025 throughout (see conftest).
"""
import pytest

from performance.errors import NotFoundError
from performance.form import assemble_form
from performance.months import ReportingPeriod


def _by_id(form_dict):
    return {q["questionId"]: q for q in form_dict["questions"]}


class TestResolution:
    def test_module_path_is_zero_based(self, conn, users, period):
        form = assemble_form(conn, users["d1"], 0, 1, period)
        assert form.module.name == "Crime"
        assert form.topic.name == "Cases"

    def test_topic_path_is_one_based(self, conn, users, period):
        form = assemble_form(conn, users["d1"], 0, 2, period)
        assert form.topic.name == "Arrests"

    def test_unknown_module(self, conn, users, period):
        with pytest.raises(NotFoundError, match="Module not found"):
            assemble_form(conn, users["d1"], 5, 1, period)

    @pytest.mark.parametrize("topic_path_id", [0, 4])
    def test_unknown_topic(self, conn, users, period, topic_path_id):
        with pytest.raises(NotFoundError, match="Topic not found"):
            assemble_form(conn, users["d1"], 0, topic_path_id, period)

    def test_inactive_module_is_skipped(self, conn, users, period):
        conn.execute("UPDATE modules SET active = 0 WHERE id = 1")
        conn.commit()
        with pytest.raises(NotFoundError):
            assemble_form(conn, users["d1"], 0, 1, period)

    def test_navigation(self, conn, users, period):
        nav = assemble_form(conn, users["d1"], 0, 2, period).navigation
        assert nav.total_topics == 3
        assert nav.has_next_topic and nav.has_previous_topic
        assert nav.has_next_module
        assert not nav.has_previous_module


class TestNormalForm:
    def test_previous_default_scenario(self, conn, users, period, add_fact):
        """Q2 defaults to last month's "42"; Q1 has no default and stays empty."""
        add_fact(4, 2, "FEB 2025", "42")
        data = assemble_form(conn, users["d1"], 0, 1, period).to_dict()
        questions = _by_id(data)

        assert data["monthYear"] == "MAR 2025"
        assert data["available"] is True
        assert questions[2]["currentCount"] == "42"
        assert questions[2]["isDisabled"] is True
        assert questions[1]["currentCount"] == ""
        assert questions[1]["isDisabled"] is False

    def test_previous_falls_back_to_current_month(self, conn, users, period, add_fact):
        add_fact(4, 2, "MAR 2025", "9", status="INPROGRESS")
        questions = _by_id(assemble_form(conn, users["d1"], 0, 1, period).to_dict())
        assert questions[2]["currentCount"] == "9"

    def test_none_default_shows_saved_answer(self, conn, users, period, add_fact):
        add_fact(4, 1, "MAR 2025", "15", status="INPROGRESS")
        questions = _by_id(assemble_form(conn, users["d1"], 0, 1, period).to_dict())
        assert questions[1]["currentCount"] == "15"
        assert questions[1]["isDisabled"] is False
        assert questions[1]["cells"][0]["status"] == "INPROGRESS"

    def test_finalized_answer_is_disabled(self, conn, users, period, add_fact):
        add_fact(4, 1, "MAR 2025", "15", status="SUCCESS")
        questions = _by_id(assemble_form(conn, users["d1"], 0, 1, period).to_dict())
        assert questions[1]["isDisabled"] is True

    def test_profile_defaults(self, conn, users, period):
        questions = _by_id(assemble_form(conn, users["d1"], 0, 1, period).to_dict())
        assert questions[3]["currentCount"] == "7"
        assert questions[3]["isDisabled"] is True

    def test_question_default_reads_source_question(self, conn, users, period, add_fact):
        add_fact(4, 1, "FEB 2025", "11")
        questions = _by_id(assemble_form(conn, users["d1"], 0, 1, period).to_dict())
        assert questions[5]["currentCount"] == "11"
        assert questions[5]["isDisabled"] is True

    def test_question_default_prefers_current_month(self, conn, users, period, add_fact):
        add_fact(4, 1, "FEB 2025", "11")
        add_fact(4, 1, "MAR 2025", "13", status="INPROGRESS")
        questions = _by_id(assemble_form(conn, users["d1"], 0, 1, period).to_dict())
        assert questions[5]["currentCount"] == "13"

    def test_other_users_facts_are_ignored(self, conn, users, period, add_fact):
        add_fact(5, 2, "FEB 2025", "99")
        questions = _by_id(assemble_form(conn, users["d1"], 0, 1, period).to_dict())
        assert questions[2]["currentCount"] == ""

    def test_previous_and_cumulative_counts(self, conn, users, period, add_fact):
        add_fact(4, 1, "JAN 2025", "5")
        add_fact(4, 1, "FEB 2025", "7")
        add_fact(4, 1, "MAR 2024", "100")  # previous financial year
        questions = _by_id(assemble_form(conn, users["d1"], 0, 1, period).to_dict())
        cell = questions[1]["cells"][0]
        assert cell["previousCount"] == "7"
        assert cell["cumulativeCount"] == "12"

    def test_cumulative_ignores_non_numeric(self, conn, users, period, add_fact):
        add_fact(4, 4, "JAN 2025", "Yes")
        questions = _by_id(assemble_form(conn, users["d1"], 0, 1, period).to_dict())
        assert questions[4]["cells"][0]["cumulativeCount"] == "0"

    def test_serials_follow_priority(self, conn, users, period):
        data = assemble_form(conn, users["d1"], 0, 1, period).to_dict()
        assert [q["questionId"] for q in data["questions"]] == [1, 2, 3, 4, 5]
        assert [q["serial"] for q in data["questions"]] == [1, 2, 3, 4, 5]


class TestMatrixForms:
    def test_subtopic_by_question_has_a_cell_per_subtopic(self, conn, users, period, add_fact):
        add_fact(4, 6, "MAR 2025", "3", status="INPROGRESS", sub_topic_id=2)
        data = assemble_form(conn, users["d1"], 0, 2, period).to_dict()
        assert [s["name"] for s in data["subTopics"]] == ["Adults", "Juveniles"]
        cells = data["questions"][0]["cells"]
        assert [c["subTopicId"] for c in cells] == [1, 2]
        assert cells[0]["currentCount"] == ""
        assert cells[1]["currentCount"] == "3"
        assert "currentCount" not in data["questions"][0]

    def test_question_by_subtopic_marks_first_entry(self, conn, users, period, add_fact):
        add_fact(4, 7, "JAN 2025", "4", sub_topic_id=3)
        data = assemble_form(conn, users["d1"], 0, 3, period).to_dict()
        cells = data["questions"][0]["cells"]
        assert cells[0]["isFirstEntry"] is False
        assert cells[1]["isFirstEntry"] is True

    def test_matrix_without_subtopics_has_one_cell(self, conn, users, period):
        conn.execute("UPDATE sub_topics SET active = 0 WHERE topic_id = 2")
        conn.commit()
        data = assemble_form(conn, users["d1"], 0, 2, period).to_dict()
        cells = data["questions"][0]["cells"]
        assert len(cells) == 1
        assert cells[0]["subTopicId"] is None


class TestAvailability:
    def test_closed_topic_returns_no_questions(self, conn, users, period):
        data = assemble_form(conn, users["d1"], 1, 1, period).to_dict()
        assert data["available"] is False
        assert data["questions"] == []
        assert data["topic"]["startMonth"] == 10

    def test_open_inside_window(self, conn, users):
        data = assemble_form(conn, users["d1"], 1, 1, ReportingPeriod(2024, 11)).to_dict()
        assert data["available"] is True
        assert data["questions"][0]["questionId"] == 8
