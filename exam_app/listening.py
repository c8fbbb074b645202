"""
Server-side "play once" enforcement for the listening audio.

A candidate never receives the audio file URL. Instead they ask for a ticket,
which is bound to their session, counted against ``max_plays`` and valid for a
short window. The audio endpoint streams only for a matching, unexpired ticket.
"""
import logging
import secrets
from sqlalchemy.exc import IntegrityError
from . import db
from .errors import TokenNotFound, TicketDenied
from .gate import find_session, now_ms
from .models import ListeningAccess

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 20 * 60 * 1000
MIN_TTL_MS = 5000
MAX_TTL_MS = 60 * 60 * 1000
MAX_PLAYS_CAP = 3

def make_ticket():
    """Random opaque URL-safe ticket."""
    return secrets.token_urlsafe(24)

def normalize_ttl(ttl_ms):
    try:
        ttl = int(ttl_ms)
    except (TypeError, ValueError):
        return DEFAULT_TTL_MS
    if ttl <= MIN_TTL_MS:
        return DEFAULT_TTL_MS
    return min(MAX_TTL_MS, ttl)

def normalize_max_plays(max_plays):
    try:
        value = int(max_plays)
    except (TypeError, ValueError):
        return 1
    if value <= 0:
        return 1
    return min(MAX_PLAYS_CAP, value)

def issue_ticket(token, max_plays=1, ttl_ms=DEFAULT_TTL_MS, now=None):
    """
    Loads or creates the session's ticket row in one transaction.

    A still-valid ticket is returned unchanged (page reload before playback).
    Otherwise a new ticket is minted and play_count incremented, unless
    play_count already reached max_plays.

    Returns:
        dict with ticket, expiresAtUtcMs, playCount, maxPlays, examPeriodId.

    Raises:
        TokenNotFound, TicketDenied("submitted" | "max_plays").
    """
    max_plays = normalize_max_plays(max_plays)
    ttl = normalize_ttl(ttl_ms)
    try:
        return _issue(token, max_plays, ttl, now)
    except IntegrityError:
        # A concurrent request created the row first; its ticket is now visible
        db.session.rollback()
        return _issue(token, max_plays, ttl, now)

def _issue(token, max_plays, ttl, now):
    session = find_session(token)
    if session is None:
        raise TokenNotFound()
    if session.submitted:
        raise TicketDenied("submitted")

    now = now_ms() if now is None else int(now)
    access = (ListeningAccess.query
              .filter_by(session_id=session.id)
              .with_for_update()
              .first())

    if access is not None and access.ticket and (access.ticket_expires_utc_ms or 0) > now:
        result = _ticket_dict(access, max_plays, session.exam_period_id)
        db.session.commit()
        return result

    play_count = access.play_count if access is not None else 0
    if play_count >= max_plays:
        db.session.rollback()
        logger.info("listening_ticket_denied token=%s reason=max_plays play_count=%s", session.token, play_count)
        raise TicketDenied("max_plays", playCount=play_count, maxPlays=max_plays)

    if access is None:
        access = ListeningAccess(session_id=session.id, play_count=0, updated_at_utc_ms=now)
        db.session.add(access)
    access.play_count = play_count + 1
    access.ticket = make_ticket()
    access.ticket_expires_utc_ms = now + ttl
    access.updated_at_utc_ms = now
    result = _ticket_dict(access, max_plays, session.exam_period_id)
    db.session.commit()

    logger.info("listening_ticket_issued token=%s play_count=%s", session.token, access.play_count)
    return result

def verify_ticket(token, ticket, now=None):
    """
    Checks that `ticket` authorizes streaming for `token`.

    Returns:
        dict with sessionId, examPeriodId, expiresAtUtcMs.

    Raises:
        TokenNotFound, TicketDenied("submitted" | "bad_ticket" | "expired").
    """
    session = find_session(token)
    if session is None:
        raise TokenNotFound()
    if session.submitted:
        raise TicketDenied("submitted")

    ticket = (ticket or "").strip()
    access = session.listening_access
    if not ticket or access is None or not access.ticket or not secrets.compare_digest(access.ticket, ticket):
        raise TicketDenied("bad_ticket")

    now = now_ms() if now is None else int(now)
    expires = access.ticket_expires_utc_ms or 0
    if expires <= now:
        raise TicketDenied("expired")

    return {"sessionId": session.id, "examPeriodId": session.exam_period_id, "expiresAtUtcMs": expires}

def _ticket_dict(access, max_plays, exam_period_id):
    return {
        "ticket": access.ticket,
        "expiresAtUtcMs": access.ticket_expires_utc_ms,
        "playCount": access.play_count,
        "maxPlays": max_plays,
        "examPeriodId": exam_period_id,
    }
