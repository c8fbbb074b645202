"""
Tests for the exam window gate
"""
import pytest

from exam_app.errors import ExamNotOpen, ExamEnded, TokenNotFound
from exam_app.exam_sessions import create_exam_period, create_session, session_view
from exam_app.gate import GateWindow, get_gate_for_token, require_open_gate, COUNTDOWN, RUNNING, ENDED

OPEN_AT = 1770051600000
HOUR_MS = 60 * 60 * 1000


def _window(now):
    return GateWindow(token="T", session_id=1, exam_period_id=1, now=now,
                      open_at_utc=OPEN_AT, duration_minutes=60)


class TestGateWindow:
    """Status boundaries of a 60-minute window"""

    def test_before_open_is_countdown(self):
        assert _window(OPEN_AT - 1).status == COUNTDOWN

    def test_open_instant_is_running(self):
        assert _window(OPEN_AT).status == RUNNING

    def test_end_instant_is_still_running(self):
        assert _window(OPEN_AT + HOUR_MS).status == RUNNING

    def test_after_end_is_ended(self):
        assert _window(OPEN_AT + HOUR_MS + 1).status == ENDED

    def test_to_dict(self):
        data = _window(OPEN_AT).to_dict()
        assert data == {
            "status": "running",
            "serverNow": OPEN_AT,
            "openAtUtc": OPEN_AT,
            "endAtUtc": OPEN_AT + HOUR_MS,
            "durationMinutes": 60,
        }


class TestRequireOpenGate:
    """Strict gate used by mutating endpoints"""

    @pytest.fixture
    def fixed_token(self, app):
        create_exam_period(OPEN_AT, 60, exam_period_id=2)
        return create_session("Grace Hopper", exam_period_id=2, token="FIXED00001").token

    def test_unknown_token(self, app):
        with pytest.raises(TokenNotFound) as exc:
            require_open_gate("NOPE")
        assert exc.value.status_code == 404

    def test_not_open_yet(self, fixed_token):
        with pytest.raises(ExamNotOpen) as exc:
            require_open_gate(fixed_token, now=OPEN_AT - 1)
        assert exc.value.status_code == 423
        assert exc.value.to_dict()["openAtUtc"] == OPEN_AT

    def test_running(self, fixed_token):
        gate = require_open_gate(fixed_token, now=OPEN_AT)
        assert gate.status == RUNNING
        assert gate.exam_period_id == 2

    def test_ended(self, fixed_token):
        with pytest.raises(ExamEnded) as exc:
            require_open_gate(fixed_token, now=OPEN_AT + HOUR_MS + 1)
        assert exc.value.status_code == 410
        assert exc.value.to_dict()["error"] == "expired"

    def test_period_without_window_uses_defaults(self, app):
        # exam period 1 is created by the test loader without a window
        token = create_session("Alan Turing", exam_period_id=1, token="DEFAULT001").token
        gate = get_gate_for_token(token, now=0)
        assert gate.open_at_utc == app.config['DEFAULT_OPEN_AT_UTC_MS']
        assert gate.duration_minutes == app.config['DEFAULT_DURATION_MINUTES']


class TestSessionView:
    """Read view never raises for a known token"""

    def test_countdown_has_no_test(self, app):
        create_exam_period(OPEN_AT, 60, exam_period_id=2)
        token = create_session("Grace Hopper", exam_period_id=2).token
        view = session_view(token, now=OPEN_AT - 5000)
        assert view["status"] == "countdown"
        assert "test" not in view
        assert "session" not in view

    def test_running_includes_client_payload(self, token):
        view = session_view(token)
        assert view["status"] == "running"
        assert view["session"]["token"] == token
        assert view["session"]["submitted"] is False
        items = [it for sec in view["test"]["payload"]["sections"] for it in sec["items"]]
        assert all("correctIndex" not in it and "correct" not in it and "correctText" not in it for it in items)
        listening = [it for it in items if it["type"] == "listening-mcq"]
        assert listening and all("audioUrl" not in it for it in listening)

    def test_tokens_unique_per_period(self, token):
        from sqlalchemy.exc import IntegrityError
        from exam_app import db
        with pytest.raises(IntegrityError):
            create_session("Someone Else", exam_period_id=1, token=token)
        db.session.rollback()
