from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from sqlalchemy import desc
from . import db
from .grading import grade_summary, set_examiner_grades
from .errors import ExamError
from .models import ExamSession, QuestionGrade

examiner_bp = Blueprint('examiner', __name__, url_prefix='/api/examiner')

@examiner_bp.route('/grades', methods=['POST'])
@jwt_required()
def grades():
    """Stores speaking/writing scores and returns the recomputed total."""
    body = request.get_json(silent=True) or {}
    try:
        session_id = int(body.get('sessionId'))
    except (TypeError, ValueError):
        raise ExamError("invalid_session_id")
    return jsonify(set_examiner_grades(session_id, body.get('speakingGrade'), body.get('writingGrade')))

@examiner_bp.route('/sessions/<int:session_id>/review')
@jwt_required()
def review(session_id):
    """Per-item answers and the objective score of one session."""
    return jsonify(grade_summary(session_id))

@examiner_bp.route('/results')
@jwt_required()
def results():
    """Lists submitted sessions with their totals, newest first."""
    exam_period_id = request.args.get('examPeriodId', type=int)

    query = db.session.query(ExamSession, QuestionGrade)\
        .outerjoin(QuestionGrade, QuestionGrade.session_id == ExamSession.id)\
        .filter(ExamSession.submitted.is_(True))
    if exam_period_id:
        query = query.filter(ExamSession.exam_period_id == exam_period_id)

    rows = []
    for session_obj, grade in query.order_by(desc(ExamSession.id)).limit(5000).all():
        rows.append({
            'sessionId': session_obj.id,
            'examPeriodId': session_obj.exam_period_id,
            'candidateName': session_obj.candidate_name,
            'token': session_obj.token,
            'disqualified': session_obj.disqualified,
            'submitReason': session_obj.submit_reason,
            'speakingGrade': grade.speaking_grade if grade else None,
            'writingGrade': grade.writing_grade if grade else None,
            'totalGrade': grade.total_grade if grade else None,
        })
    return jsonify({'results': rows})
