from . import db
import datetime
import json

class ExamPeriod(db.Model):
    """An exam window: [open_at_utc_ms, open_at_utc_ms + duration_minutes]."""
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String, nullable=True)
    open_at_utc_ms = db.Column(db.BigInteger, nullable=True)
    duration_minutes = db.Column(db.Integer, nullable=True)
    sessions = db.relationship('ExamSession', backref='exam_period', lazy=True)

    def __repr__(self):
        return f"<ExamPeriod id={self.id} open_at={self.open_at_utc_ms} duration={self.duration_minutes}>"

class ExamTest(db.Model):
    """The full test payload (with correct answers) for one exam period."""
    id = db.Column(db.Integer, primary_key=True)
    exam_period_id = db.Column(db.Integer, db.ForeignKey('exam_period.id'), unique=True, nullable=False)
    title = db.Column(db.String, nullable=False, default="English Test")
    payload_json = db.Column(db.Text, nullable=False)
    digest = db.Column(db.String, nullable=False)  # SHA-256 digest of payload_json

    @property
    def payload(self):
        return json.loads(self.payload_json or '{}')

    def __repr__(self):
        return f"<ExamTest exam_period_id={self.exam_period_id} title='{self.title}'>"

class ExamSession(db.Model):
    """One candidate attempt, addressed by its opaque token."""
    __table_args__ = (db.UniqueConstraint('exam_period_id', 'token', name='uq_session_period_token'),)

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String, nullable=False, index=True)
    exam_period_id = db.Column(db.Integer, db.ForeignKey('exam_period.id'), nullable=False)
    candidate_name = db.Column(db.String, nullable=False)
    # Write-once flags: never reset once true
    submitted = db.Column(db.Boolean, nullable=False, default=False)
    disqualified = db.Column(db.Boolean, nullable=False, default=False)
    submit_reason = db.Column(db.String, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)

    grade = db.relationship('QuestionGrade', backref='session', uselist=False, lazy=True, cascade="all, delete-orphan")
    snapshots = db.relationship('SessionSnapshot', backref='session', lazy=True, cascade="all, delete-orphan")
    listening_access = db.relationship('ListeningAccess', backref='session', uselist=False, lazy=True, cascade="all, delete-orphan")
    proctoring_ack = db.relationship('ProctoringAck', backref='session', uselist=False, lazy=True, cascade="all, delete-orphan")

    def __repr__(self):
        return f"<ExamSession id={self.id} token={self.token} submitted={self.submitted}>"

class ProctoringAck(db.Model):
    """Candidate acknowledgement of the proctoring notice."""
    session_id = db.Column(db.Integer, db.ForeignKey('exam_session.id'), primary_key=True)
    token = db.Column(db.String, nullable=False, index=True)
    notice_version = db.Column(db.String, nullable=False)
    acked_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)

class SessionSnapshot(db.Model):
    """Integrity evidence image metadata (the image itself lives in blob storage)."""
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('exam_session.id'), nullable=False, index=True)
    token = db.Column(db.String, nullable=False)
    reason = db.Column(db.String, nullable=False)
    remote_path = db.Column(db.String, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)

    def __repr__(self):
        return f"<SessionSnapshot id={self.id} session_id={self.session_id} reason='{self.reason}'>"

class ListeningAccess(db.Model):
    """Per-session listening ticket row; play_count never exceeds max plays."""
    session_id = db.Column(db.Integer, db.ForeignKey('exam_session.id'), primary_key=True)
    play_count = db.Column(db.Integer, nullable=False, default=0)
    ticket = db.Column(db.String, nullable=True, index=True)
    ticket_expires_utc_ms = db.Column(db.BigInteger, nullable=True)
    updated_at_utc_ms = db.Column(db.BigInteger, nullable=False)

    def __repr__(self):
        return f"<ListeningAccess session_id={self.session_id} play_count={self.play_count}>"

class QuestionGrade(db.Model):
    """Canonical stored answers plus examiner scores and the blended total."""
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('exam_session.id'), unique=True, nullable=False)
    token = db.Column(db.String, nullable=False)
    answers_json = db.Column(db.Text, nullable=False, default='{}')
    writing_text = db.Column(db.Text, nullable=False, default='')
    speaking_grade = db.Column(db.Integer, nullable=True)
    writing_grade = db.Column(db.Integer, nullable=True)
    total_grade = db.Column(db.Integer, nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    @property
    def answers(self):
        try:
            data = json.loads(self.answers_json or '{}')
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def __repr__(self):
        return f"<QuestionGrade session_id={self.session_id} total={self.total_grade}>"
