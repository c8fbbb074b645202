"""
Tests for submission and disqualification
"""
import pytest

from exam_app import db
from exam_app.errors import ExamEnded
from exam_app.gate import find_session, now_ms
from exam_app.grading import set_examiner_grades
from exam_app.models import ExamPeriod, QuestionGrade
from exam_app.randomizer import randomize_payload, to_shown_index
from exam_app.submission import submit_answers, is_disqualifying_reason
from exam_app.test_content import get_full_payload, payload_for_client


class TestSubmitAnswers:
    """Canonical storage and idempotency"""

    def test_stores_canonical_answers(self, token, correct_answers):
        out = submit_answers(token, correct_answers, {"reason": "manual"})
        assert out == {"status": "submitted", "disqualified": False}

        grade = QuestionGrade.query.one()
        assert grade.answers == {
            "l1": "b", "l2": "true", "r1": "c", "r2": "london",
            "d1_g1": "a", "d1_g2": "b", "w1": "I went to the seaside.",
        }
        assert grade.writing_text == "I went to the seaside."

    def test_info_and_drag_config_items_skipped(self, token, correct_answers):
        submit_answers(token, correct_answers)
        stored = QuestionGrade.query.one().answers
        assert "info1" not in stored
        assert "d1" not in stored

    def test_unanswered_and_out_of_range(self, token):
        submit_answers(token, {"l1": 7, "l2": False})
        stored = QuestionGrade.query.one().answers
        assert stored["l1"] == ""
        assert stored["l2"] == "false"
        assert stored["r2"] == ""

    def test_second_submit_is_noop(self, token, correct_answers):
        first = submit_answers(token, correct_answers)
        second = submit_answers(token, {"l1": 0, "w1": "changed"}, {"reason": "tab_violations_max"})
        assert second == first

        grade = QuestionGrade.query.one()
        assert grade.answers["l1"] == "b"
        assert grade.writing_text == "I went to the seaside."
        assert find_session(token).disqualified is False

    def test_manual_reason_recorded(self, token):
        submit_answers(token, {})
        assert find_session(token).submit_reason == "manual"

    def test_shown_indices_translated(self, token):
        _shuffled, maps = randomize_payload(payload_for_client(get_full_payload(1)), token)
        shown = {
            "l1": to_shown_index(maps, "l1", 1),
            "r1": to_shown_index(maps, "r1", 2),
        }
        submit_answers(token, shown, index_space="shown")
        stored = QuestionGrade.query.one().answers
        assert stored["l1"] == "b"
        assert stored["r1"] == "c"

    def test_gate_rechecked(self, token):
        period = db.session.get(ExamPeriod, 1)
        period.open_at_utc_ms = now_ms() - 2 * 60 * 60 * 1000
        db.session.commit()
        with pytest.raises(ExamEnded):
            submit_answers(token, {})
        assert find_session(token).submitted is False


class TestDisqualification:
    """Proctoring reasons lock the grades"""

    @pytest.mark.parametrize("reason,expected", [
        ("face_missing_10s", True),
        ("tab_violations_max", True),
        ("disqual_fullscreen_10s", True),
        ("TAB_VIOLATION", True),
        ("time_up", False),
        ("manual", False),
        ("", False),
    ])
    def test_reason_matching(self, reason, expected):
        assert is_disqualifying_reason(reason) is expected

    def test_disqualified_submission_locks_grades(self, token, correct_answers):
        out = submit_answers(token, correct_answers, {"reason": "face_missing_10s"})
        assert out == {"status": "submitted", "disqualified": True}

        grade = QuestionGrade.query.one()
        assert grade.answers["l1"] == "b"
        assert (grade.speaking_grade, grade.writing_grade, grade.total_grade) == (0, 0, 0)

    def test_examiner_cannot_override(self, token, correct_answers):
        submit_answers(token, correct_answers, {"reason": "disqual_fullscreen_10s"})
        session = find_session(token)
        out = set_examiner_grades(session.id, 100, 100)
        assert out["locked"] is True
        assert out["totalGrade"] == 0
        assert QuestionGrade.query.one().total_grade == 0
