import logging
import secrets
import string
from flask import current_app
from . import db
from .errors import TokenNotFound, PreconditionFailed
from .gate import find_session, get_gate_for_token, RUNNING
from .models import ExamPeriod, ExamSession, ProctoringAck
from .test_content import get_test, payload_for_client

logger = logging.getLogger(__name__)

TOKEN_ALPHABET = string.ascii_uppercase + string.digits
TOKEN_LENGTH = 10

def make_token():
    return ''.join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))

def create_exam_period(open_at_utc_ms, duration_minutes, name=None, exam_period_id=None):
    period = ExamPeriod(id=exam_period_id, open_at_utc_ms=open_at_utc_ms,
                        duration_minutes=duration_minutes, name=name)
    db.session.add(period)
    db.session.commit()
    return period

def create_session(candidate_name, exam_period_id=1, token=None):
    """Creates a candidate session; the token is unique within its exam period."""
    name = (candidate_name or '').strip() or "Candidate"
    if token is None:
        token = make_token()
        while ExamSession.query.filter_by(exam_period_id=exam_period_id, token=token).first():
            token = make_token()
    session = ExamSession(token=token, exam_period_id=exam_period_id, candidate_name=name)
    db.session.add(session)
    db.session.commit()
    return session

def session_view(token, now=None):
    """
    Read endpoint payload. Never blocked by the strict gate: before the window
    it reports ``countdown``, after it ``ended``, and only while running does it
    include the candidate, the window and the client-safe test payload.
    """
    gate = get_gate_for_token(token, now=now)
    if gate is None:
        raise TokenNotFound()

    out = gate.to_dict()
    if gate.status != RUNNING:
        return out

    session = find_session(token)
    test = get_test(session.exam_period_id)
    grade = session.grade
    out.update({
        "session": {
            "id": session.id,
            "token": session.token,
            "candidateName": session.candidate_name,
            "submitted": session.submitted,
            "disqualified": session.disqualified,
            "proctoringAcked": session.proctoring_ack is not None,
            "grade": grade.total_grade if grade else None,
            "examPeriodId": session.exam_period_id,
        },
        "test": {
            "title": test.title if test else "English Test",
            "payload": payload_for_client(test.payload if test else {"sections": []}),
        },
    })
    return out

def ack_required():
    return bool(current_app.config.get('PROCTORING_ACK_REQUIRED', True))

def has_proctoring_ack(token):
    token = (token or '').strip()
    if not token:
        return False
    return ProctoringAck.query.filter_by(token=token).first() is not None

def require_proctoring_ack(token):
    if ack_required() and not has_proctoring_ack(token):
        raise PreconditionFailed()

def record_proctoring_ack(token, notice_version=None):
    session = find_session(token)
    if session is None:
        raise TokenNotFound()
    version = (notice_version or '').strip() or current_app.config.get('PROCTORING_NOTICE_VERSION', 'v1')

    ack = db.session.get(ProctoringAck, session.id)
    if ack is None:
        db.session.add(ProctoringAck(session_id=session.id, token=session.token, notice_version=version))
    else:
        ack.notice_version = version
    db.session.commit()
    return {"ok": True}

def start_session(token):
    session = find_session(token)
    if session is None:
        raise TokenNotFound()
    require_proctoring_ack(token)
    if session.submitted:
        return {"status": "submitted", "disqualified": session.disqualified}
    logger.info("session_started token=%s", session.token)
    return {"status": "started"}

def presence_ping(token, status):
    """Best-effort telemetry; only logged."""
    logger.info("presence token=%s status=%s", token, str(status or "unknown")[:64])
    return {"ok": True}
