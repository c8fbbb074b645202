import json
import logging
import re
from . import db
from .errors import TokenNotFound
from .gate import require_open_gate
from .grading import build_stored_answers, extract_writing_text
from .models import ExamSession, QuestionGrade
from .randomizer import randomize_payload, translate_answers_to_original
from .test_content import get_full_payload, payload_for_client

logger = logging.getLogger(__name__)

DISQUALIFYING_REASON = re.compile(r"face_missing|tab_violation|disqual", re.IGNORECASE)

def is_disqualifying_reason(reason):
    return bool(DISQUALIFYING_REASON.search(reason or ""))

def submit_answers(token, answers, client_meta=None, index_space="original", now=None):
    """
    Records a candidate's submission exactly once.

    The gate is re-checked first. A session already marked submitted returns
    its terminal state without touching stored answers. Otherwise the
    submitted flag is set, answers are stored in canonical form and, when the
    client reports a proctoring disqualification reason, all grades are locked
    at 0.

    Args:
        answers (dict): item id -> raw answer value.
        client_meta (dict): free-form client info; ``reason`` drives disqualification.
        index_space (str): "original" when choice indices are already authored
            indices, "shown" when they refer to the token-randomized order.
    """
    gate = require_open_gate(token, now=now)

    # Row lock makes the submitted check-and-set atomic across concurrent requests
    session = (ExamSession.query
               .filter_by(id=gate.session_id)
               .with_for_update()
               .first())
    if session is None:
        raise TokenNotFound()
    if session.submitted:
        result = {"status": "submitted", "disqualified": session.disqualified}
        db.session.rollback()
        return result

    client_meta = client_meta if isinstance(client_meta, dict) else {}
    answers = answers if isinstance(answers, dict) else {}
    reason = str(client_meta.get("reason") or "").strip()
    disqualified = is_disqualifying_reason(reason)

    payload = get_full_payload(session.exam_period_id)
    if index_space == "shown":
        _shuffled, choice_maps = randomize_payload(payload_for_client(payload), session.token)
        answers = translate_answers_to_original(answers, choice_maps)

    session.submitted = True
    if disqualified:
        session.disqualified = True
    session.submit_reason = reason or ("auto" if client_meta.get("auto") else "manual")

    stored = build_stored_answers(payload, answers)
    grade = session.grade
    if grade is None:
        grade = QuestionGrade(session_id=session.id, token=session.token)
        db.session.add(grade)
    grade.answers_json = json.dumps(stored)
    grade.writing_text = extract_writing_text(payload, answers)

    if session.disqualified:
        grade.speaking_grade = 0
        grade.writing_grade = 0
        grade.total_grade = 0

    db.session.commit()
    logger.info("submitted token=%s reason=%s disqualified=%s", session.token, session.submit_reason, session.disqualified)
    return {"status": "submitted", "disqualified": session.disqualified}
