import time
from dataclasses import dataclass
from flask import current_app
from .models import ExamSession
from .errors import TokenNotFound, ExamNotOpen, ExamEnded

COUNTDOWN = "countdown"
RUNNING = "running"
ENDED = "ended"

def now_ms():
    """Current server time in UTC epoch milliseconds."""
    return int(time.time() * 1000)

@dataclass(frozen=True)
class GateWindow:
    token: str
    session_id: int
    exam_period_id: int
    now: int
    open_at_utc: int
    duration_minutes: int

    @property
    def end_at_utc(self):
        return self.open_at_utc + self.duration_minutes * 60000

    @property
    def status(self):
        if self.now < self.open_at_utc:
            return COUNTDOWN
        if self.now > self.end_at_utc:
            return ENDED
        return RUNNING

    def to_dict(self):
        return {
            "status": self.status,
            "serverNow": self.now,
            "openAtUtc": self.open_at_utc,
            "endAtUtc": self.end_at_utc,
            "durationMinutes": self.duration_minutes,
        }

def find_session(token):
    """Returns the newest session for a token, or None."""
    token = (token or "").strip()
    if not token:
        return None
    return ExamSession.query.filter_by(token=token).order_by(ExamSession.id.desc()).first()

def get_gate_for_token(token, now=None):
    """
    Resolves the exam window of the session owning `token`.

    The window always comes from the exam period row; missing values fall back
    to DEFAULT_OPEN_AT_UTC_MS / DEFAULT_DURATION_MINUTES. Returns None for an
    unknown token.
    """
    session = find_session(token)
    if session is None:
        return None

    period = session.exam_period
    open_at = period.open_at_utc_ms if period and period.open_at_utc_ms is not None else None
    duration = period.duration_minutes if period and period.duration_minutes else None
    if open_at is None:
        open_at = int(current_app.config['DEFAULT_OPEN_AT_UTC_MS'])
    if not duration or duration <= 0:
        duration = int(current_app.config['DEFAULT_DURATION_MINUTES'])

    return GateWindow(
        token=session.token,
        session_id=session.id,
        exam_period_id=session.exam_period_id,
        now=now_ms() if now is None else int(now),
        open_at_utc=int(open_at),
        duration_minutes=int(duration),
    )

def require_open_gate(token, now=None):
    """Strict gate used by every mutating endpoint. Raises a GateError unless open."""
    gate = get_gate_for_token(token, now=now)
    if gate is None:
        raise TokenNotFound()
    if gate.status == COUNTDOWN:
        raise ExamNotOpen(serverNow=gate.now, openAtUtc=gate.open_at_utc)
    if gate.status == ENDED:
        raise ExamEnded(serverNow=gate.now, endAtUtc=gate.end_at_utc)
    return gate
