from flask import Blueprint, request, jsonify, current_app, send_file, url_for
from .errors import NotFound
from .exam_sessions import (
    session_view, record_proctoring_ack, require_proctoring_ack, start_session, presence_ping,
)
from .gate import require_open_gate
from .listening import issue_ticket, verify_ticket
from .snapshots import add_snapshot
from .storage import stat_file, listening_audio_path
from .submission import submit_answers

session_bp = Blueprint('session', __name__, url_prefix='/api/session')

def _json_body():
    return request.get_json(silent=True) or {}

@session_bp.route('/<token>', methods=['GET'])
def get_session(token):
    """Gate status for the candidate page; includes the test only while running."""
    return jsonify(session_view(token))

@session_bp.route('/<token>/proctoring-ack', methods=['POST'])
def proctoring_ack(token):
    require_open_gate(token)
    return jsonify(record_proctoring_ack(token, _json_body().get('noticeVersion')))

@session_bp.route('/<token>/start', methods=['POST'])
def start(token):
    require_open_gate(token)
    return jsonify(start_session(token))

@session_bp.route('/<token>/presence', methods=['POST'])
def presence(token):
    require_open_gate(token)
    return jsonify(presence_ping(token, _json_body().get('status')))

@session_bp.route('/<token>/submit', methods=['POST'])
def submit(token):
    """Idempotent submission; a second call returns the stored terminal state."""
    body = _json_body()
    index_space = 'shown' if body.get('indexSpace') == 'shown' else 'original'
    out = submit_answers(token, body.get('answers') or {}, body.get('clientMeta'), index_space=index_space)
    return jsonify(out)

@session_bp.route('/<token>/listening-ticket', methods=['POST'])
def listening_ticket(token):
    require_open_gate(token)
    require_proctoring_ack(token)

    out = issue_ticket(
        token,
        max_plays=current_app.config.get('LISTENING_MAX_PLAYS', 1),
        ttl_ms=current_app.config.get('LISTENING_TICKET_TTL_MS'),
    )
    response = jsonify({
        "ok": True,
        "url": url_for('session.listening_audio', token=token, ticket=out['ticket']),
        "expiresAt": out['expiresAtUtcMs'],
        "playCount": out['playCount'],
        "maxPlays": out['maxPlays'],
    })
    response.headers['Cache-Control'] = 'no-store'
    return response

@session_bp.route('/<token>/listening-audio', methods=['GET'])
def listening_audio(token):
    """Streams the exam period's listening audio for a valid ticket (supports Range requests)."""
    require_open_gate(token)
    verified = verify_ticket(token, request.args.get('ticket', ''))

    absolute_path = stat_file(listening_audio_path(verified['examPeriodId']))
    if absolute_path is None:
        raise NotFound("missing_listening_audio")

    response = send_file(absolute_path, mimetype='audio/mpeg', conditional=True,
                         download_name='listening.mp3', max_age=0)
    response.headers['Cache-Control'] = 'no-store'
    return response

@session_bp.route('/<token>/snapshot', methods=['POST'])
def snapshot(token):
    require_open_gate(token)
    image_file = request.files.get('image')
    image = image_file.read() if image_file else b''

    out = add_snapshot(
        token,
        image,
        reason=request.form.get('reason', 'unknown'),
        title_prefix=request.form.get('titlePrefix', ''),
        stamp=request.form.get('stamp', ''),
        max_count=current_app.config.get('SNAPSHOT_MAX_PER_SESSION'),
    )
    return jsonify(out)
