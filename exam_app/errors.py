"""
Error taxonomy for the exam API.

Every error carries an HTTP status and a reason code so the client can render a
specific message. Gate and ticket errors are never retried by the client.
"""
from flask import jsonify


class ExamError(Exception):
    status_code = 400
    code = "bad_request"

    def __init__(self, code=None, **extra):
        super().__init__(code or self.code)
        if code:
            self.code = code
        self.extra = extra

    def to_dict(self):
        body = {"error": self.code}
        body.update(self.extra)
        return body


class GateError(ExamError):
    status_code = 403


class TokenNotFound(GateError):
    status_code = 404
    code = "invalid_token"


class ExamNotOpen(GateError):
    status_code = 423
    code = "not_open_yet"


class ExamEnded(GateError):
    status_code = 410
    code = "expired"


class TicketDenied(ExamError):
    status_code = 403
    code = "listening_denied"

    def __init__(self, reason, **extra):
        super().__init__(reason=reason, **extra)
        self.reason = reason


class SnapshotLimitReached(ExamError):
    status_code = 429
    code = "snapshot_limit_reached"


class PreconditionFailed(ExamError):
    status_code = 412
    code = "proctoring_ack_required"


class NotFound(ExamError):
    status_code = 404
    code = "not_found"


def register_error_handlers(app):
    @app.errorhandler(ExamError)
    def handle_exam_error(error):
        if error.status_code >= 500:
            app.logger.error("exam_error %s %s", error.code, error.extra)
        return jsonify(error.to_dict()), error.status_code
