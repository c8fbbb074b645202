"""
Objective auto-grading and the final weighted blend.

Stored answers are canonical text: choice items as letters (``a``, ``b``...),
true/false as ``"true"``/``"false"``, everything else as trimmed text. Grading
compares them case-insensitively against the same canonical form of the
correct-answer fields.
"""
import json
import logging
import math
from . import db
from .errors import ExamError, NotFound
from .models import ExamSession, QuestionGrade
from .test_content import get_full_payload, iter_items

logger = logging.getLogger(__name__)

CHOICE_TYPES = ("mcq", "listening-mcq")
UNANSWERABLE_TYPES = ("info", "drag-words")
OBJECTIVE_SECTIONS = ("listening", "reading", "writing")

OBJECTIVE_WEIGHT = 0.6
WRITING_WEIGHT = 0.2
SPEAKING_WEIGHT = 0.2

TRUE_VALUES = (True, "true", "True", 1, "1")


def answer_to_text(item, raw):
    """Canonical comparable text for one raw answer; empty string when unanswered."""
    if not item:
        return ""
    item_type = item.get("type")

    if item_type in CHOICE_TYPES:
        if raw is None or raw == "" or isinstance(raw, bool):
            return ""
        try:
            idx = int(raw)
        except (TypeError, ValueError):
            return ""
        choices = item.get("choices")
        if idx < 0 or (isinstance(choices, list) and idx >= len(choices)):
            return ""
        return chr(ord("a") + idx)

    if item_type == "tf":
        if raw is None or raw == "":
            return ""
        return "true" if raw in TRUE_VALUES else "false"

    if raw is None:
        return ""
    return str(raw).strip()


def expected_answer(item):
    item_type = item.get("type")
    if item_type in CHOICE_TYPES:
        return answer_to_text(item, item.get("correctIndex"))
    if item_type == "tf":
        return answer_to_text(item, item.get("correct"))
    if item_type == "short":
        return answer_to_text(item, item.get("correctText"))
    return ""


def build_stored_answers(payload, answers):
    """Canonical answer set for every answerable item of the payload."""
    answers = answers if isinstance(answers, dict) else {}
    out = {}
    for _sec, item in iter_items(payload):
        if item.get("type") in UNANSWERABLE_TYPES:
            continue
        out[item["id"]] = answer_to_text(item, answers.get(item["id"]))
    return out


def extract_writing_text(payload, answers):
    """The free-text writing response (first ``writing`` item), trimmed."""
    answers = answers if isinstance(answers, dict) else {}
    for _sec, item in iter_items(payload):
        if item.get("type") == "writing":
            return answer_to_text(item, answers.get(item["id"]))
    return ""


def build_review(payload, stored_answers):
    """
    Per-item review rows plus the objective totals.

    Listening and reading count in full; in the writing section only items
    before the first free-text ``writing`` item (task 1, the gap exercise)
    count toward the objective score.
    """
    rows = []
    objective_earned = 0
    objective_max = 0

    for sec in (payload or {}).get("sections") or []:
        section_id = str(sec.get("id") or "").strip().lower()
        in_objective_section = section_id in OBJECTIVE_SECTIONS
        writing_task1_active = True

        for item in sec.get("items") or []:
            if not isinstance(item, dict) or not item.get("id") or item.get("type") in UNANSWERABLE_TYPES:
                continue

            counts = False
            if in_objective_section:
                if section_id != "writing":
                    counts = True
                else:
                    if item.get("type") == "writing":
                        writing_task1_active = False
                    counts = writing_task1_active

            points = _points(item)
            expected = expected_answer(item)
            got = str(stored_answers.get(item["id"]) or "").strip()
            scorable = points > 0 and bool(expected)
            is_correct = (got.lower() == expected.lower()) if scorable else None
            earned = (points if is_correct else 0) if scorable else None
            if scorable and counts:
                objective_earned += earned
                objective_max += points

            rows.append({
                "id": item["id"],
                "section": str(sec.get("title") or sec.get("id") or "Section"),
                "prompt": str(item.get("prompt") or ""),
                "candidateAnswer": got,
                "correctAnswer": expected,
                "points": points,
                "earned": earned,
                "isCorrect": is_correct,
                "countsInObjective": counts,
            })

    return {"items": rows, "objectiveEarned": objective_earned, "objectiveMax": objective_max}


def objective_percent(earned, maximum):
    return (earned / maximum) * 100 if maximum > 0 else 0.0


def blend_total(objective_pct, writing_grade, speaking_grade):
    """Objective 60% + Writing 20% + Speaking 20%, missing scores count as 0, half rounds up."""
    writing = writing_grade or 0
    speaking = speaking_grade or 0
    total = objective_pct * OBJECTIVE_WEIGHT + writing * WRITING_WEIGHT + speaking * SPEAKING_WEIGHT
    return int(math.floor(total + 0.5))


def clamp_grade(value):
    """Examiner score to an int in 0..100; None/'' means not graded."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ExamError("invalid_grade")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ExamError("invalid_grade")
    if math.isnan(number) or math.isinf(number):
        raise ExamError("invalid_grade")
    return max(0, min(100, int(math.floor(number + 0.5))))


def _points(item):
    try:
        return max(0, float(item.get("points") or 0))
    except (TypeError, ValueError):
        return 0


def grade_summary(session_id):
    """Review rows and totals for a submitted session."""
    session = db.session.get(ExamSession, session_id)
    if session is None:
        raise NotFound("session_not_found")
    grade = session.grade
    stored = grade.answers if grade else {}
    review = build_review(get_full_payload(session.exam_period_id), stored)
    review.update({
        "sessionId": session.id,
        "submitted": session.submitted,
        "disqualified": session.disqualified,
        "objectivePercent": round(objective_percent(review["objectiveEarned"], review["objectiveMax"]), 1),
        "writingText": grade.writing_text if grade else "",
        "speakingGrade": grade.speaking_grade if grade else None,
        "writingGrade": grade.writing_grade if grade else None,
        "totalGrade": grade.total_grade if grade else None,
    })
    return review


def set_examiner_grades(session_id, speaking_grade=None, writing_grade=None):
    """
    Stores examiner scores and recomputes the blended total from stored answers.

    Disqualified sessions stay locked at 0 regardless of the scores supplied.
    """
    speaking = clamp_grade(speaking_grade)
    writing = clamp_grade(writing_grade)

    session = db.session.get(ExamSession, session_id)
    if session is None:
        raise NotFound("session_not_found")

    grade = session.grade
    if grade is None:
        grade = QuestionGrade(session_id=session.id, token=session.token, answers_json=json.dumps({}))
        db.session.add(grade)

    if session.disqualified:
        grade.speaking_grade = 0
        grade.writing_grade = 0
        grade.total_grade = 0
        db.session.commit()
        logger.info("grades_locked session=%s (disqualified)", session.id)
        return {"sessionId": session.id, "locked": True, "disqualified": True, "totalGrade": 0}

    grade.speaking_grade = speaking
    grade.writing_grade = writing

    review = build_review(get_full_payload(session.exam_period_id), grade.answers)
    pct = objective_percent(review["objectiveEarned"], review["objectiveMax"])
    grade.total_grade = blend_total(pct, writing, speaking)
    db.session.commit()

    logger.info("grades_recomputed session=%s objective=%s/%s total=%s",
                session.id, review["objectiveEarned"], review["objectiveMax"], grade.total_grade)
    return {
        "sessionId": session.id,
        "objectiveEarned": review["objectiveEarned"],
        "objectiveMax": review["objectiveMax"],
        "objectivePercent": round(pct, 1),
        "speakingGrade": speaking,
        "writingGrade": writing,
        "totalGrade": grade.total_grade,
    }
