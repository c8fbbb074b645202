"""
Tests for the listening ticket issuer
"""
import pytest

from exam_app import db
from exam_app.errors import TicketDenied, TokenNotFound
from exam_app.gate import find_session
from exam_app.listening import (
    issue_ticket, verify_ticket, normalize_ttl, normalize_max_plays,
    DEFAULT_TTL_MS, MAX_TTL_MS,
)
from exam_app.models import ListeningAccess

NOW = 1_800_000_000_000
TTL = 60_000


class TestIssueTicket:
    """Issuance, idempotent re-fetch and play limits"""

    def test_first_issue(self, token):
        out = issue_ticket(token, max_plays=1, ttl_ms=TTL, now=NOW)
        assert out["ticket"]
        assert out["playCount"] == 1
        assert out["maxPlays"] == 1
        assert out["expiresAtUtcMs"] == NOW + TTL
        assert out["examPeriodId"] == 1

    def test_live_ticket_is_reissued_unchanged(self, token):
        first = issue_ticket(token, max_plays=1, ttl_ms=TTL, now=NOW)
        second = issue_ticket(token, max_plays=1, ttl_ms=TTL, now=NOW + 1000)
        assert second == first
        access = ListeningAccess.query.one()
        assert access.play_count == 1

    def test_max_plays_after_expiry(self, token):
        issue_ticket(token, max_plays=1, ttl_ms=TTL, now=NOW)
        with pytest.raises(TicketDenied) as exc:
            issue_ticket(token, max_plays=1, ttl_ms=TTL, now=NOW + TTL)
        assert exc.value.reason == "max_plays"
        assert exc.value.status_code == 403
        assert exc.value.to_dict() == {"error": "listening_denied", "reason": "max_plays",
                                       "playCount": 1, "maxPlays": 1}

    def test_second_play_when_allowed(self, token):
        first = issue_ticket(token, max_plays=2, ttl_ms=TTL, now=NOW)
        second = issue_ticket(token, max_plays=2, ttl_ms=TTL, now=NOW + TTL + 1)
        assert second["ticket"] != first["ticket"]
        assert second["playCount"] == 2
        with pytest.raises(TicketDenied):
            issue_ticket(token, max_plays=2, ttl_ms=TTL, now=NOW + 3 * TTL)

    def test_play_count_never_exceeds_max(self, token):
        for step in range(6):
            try:
                issue_ticket(token, max_plays=3, ttl_ms=TTL, now=NOW + step * (TTL + 1))
            except TicketDenied:
                pass
        assert ListeningAccess.query.one().play_count == 3

    def test_submitted_session_denied(self, token):
        find_session(token).submitted = True
        db.session.commit()
        with pytest.raises(TicketDenied) as exc:
            issue_ticket(token, now=NOW)
        assert exc.value.reason == "submitted"

    def test_unknown_token(self, app):
        with pytest.raises(TokenNotFound):
            issue_ticket("NOPE", now=NOW)


class TestVerifyTicket:
    """Ticket checks before streaming"""

    def test_valid_ticket(self, token):
        out = issue_ticket(token, ttl_ms=TTL, now=NOW)
        verified = verify_ticket(token, out["ticket"], now=NOW + 10)
        assert verified["examPeriodId"] == 1
        assert verified["expiresAtUtcMs"] == NOW + TTL

    def test_wrong_ticket(self, token):
        issue_ticket(token, ttl_ms=TTL, now=NOW)
        with pytest.raises(TicketDenied) as exc:
            verify_ticket(token, "not-the-ticket", now=NOW)
        assert exc.value.reason == "bad_ticket"

    def test_no_ticket_issued(self, token):
        with pytest.raises(TicketDenied) as exc:
            verify_ticket(token, "anything", now=NOW)
        assert exc.value.reason == "bad_ticket"

    def test_expired_ticket(self, token):
        out = issue_ticket(token, ttl_ms=TTL, now=NOW)
        with pytest.raises(TicketDenied) as exc:
            verify_ticket(token, out["ticket"], now=NOW + TTL)
        assert exc.value.reason == "expired"

    def test_submitted_session(self, token):
        out = issue_ticket(token, ttl_ms=TTL, now=NOW)
        find_session(token).submitted = True
        db.session.commit()
        with pytest.raises(TicketDenied) as exc:
            verify_ticket(token, out["ticket"], now=NOW)
        assert exc.value.reason == "submitted"


class TestNormalization:

    def test_ttl(self):
        assert normalize_ttl(None) == DEFAULT_TTL_MS
        assert normalize_ttl(5000) == DEFAULT_TTL_MS
        assert normalize_ttl(5001) == 5001
        assert normalize_ttl(10 * MAX_TTL_MS) == MAX_TTL_MS

    def test_max_plays(self):
        assert normalize_max_plays("x") == 1
        assert normalize_max_plays(0) == 1
        assert normalize_max_plays(2) == 2
        assert normalize_max_plays(10) == 3
