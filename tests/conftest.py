"""
Pytest configuration for the exam service tests
"""
import json
import pytest

from exam_app import create_app, db
from exam_app.exam_sessions import create_session, record_proctoring_ack
from exam_app.gate import now_ms
from exam_app.models import ExamPeriod

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32

SAMPLE_PAYLOAD = {
    "version": 1,
    "randomize": True,
    "sections": [
        {"id": "listening", "title": "Listening", "items": [
            {"id": "l1", "type": "listening-mcq", "prompt": "Where does the speaker work?",
             "audioUrl": "listening/ep_1/listening.mp3",
             "choices": ["In a bank", "In a hospital", "In a school"], "correctIndex": 1, "points": 1},
            {"id": "l2", "type": "tf", "prompt": "Work starts at 8.", "correct": True, "points": 1},
        ]},
        {"id": "reading", "title": "Reading", "items": [
            {"id": "info1", "type": "info", "prompt": "Read the text."},
            {"id": "r1", "type": "mcq", "prompt": "Main topic?",
             "choices": ["Transport", "Food", "Museums", "Weather"], "correctIndex": 2, "points": 1},
            {"id": "r2", "type": "short", "prompt": "Which city?", "correctText": "London", "points": 1},
        ]},
        {"id": "writing", "title": "Writing", "items": [
            {"id": "d1", "type": "drag-words", "text": "The **cat** sat on the **mat**.",
             "extraWords": "*dog*", "pointsPerGap": 1},
            {"id": "w1", "type": "writing", "prompt": "Write about your last holiday."},
        ]},
    ],
}

# Authored-index answers that get every objective item right
CORRECT_ANSWERS = {
    "l1": 1, "l2": True, "r1": 2, "r2": "london", "d1_g1": 0, "d1_g2": 1,
    "w1": "  I went to the seaside.  ",
}


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing"""
    tests_dir = tmp_path / "tests"
    tests_dir.mkdir()
    (tests_dir / "ep_1.json").write_text(json.dumps({"title": "English Test", "payload": SAMPLE_PAYLOAD}))

    test_config = {
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SECRET_KEY': 'test-secret-key',
        'JWT_SECRET_KEY': 'test-jwt-secret-key-32-chars-min',
        'EXAMINER_PASSWORD': 'examiner-pass',
        'TESTS_DIR': str(tests_dir),
        'FILE_STORAGE_DIR': str(tmp_path / "storage"),
        'PROCTORING_ACK_REQUIRED': True,
        'LISTENING_MAX_PLAYS': 1,
        'SNAPSHOT_MAX_PER_SESSION': 3,
    }

    app = create_app(test_config)

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def open_period(app):
    """Exam period 1, opened a minute ago and running for 60 minutes"""
    period = db.session.get(ExamPeriod, 1)
    period.open_at_utc_ms = now_ms() - 60000
    period.duration_minutes = 60
    db.session.commit()
    return period


@pytest.fixture(scope='function')
def token(open_period):
    """A candidate session in the running exam period"""
    return create_session("Ada Lovelace", exam_period_id=1, token="TOKEN00001").token


@pytest.fixture(scope='function')
def acked_token(token):
    """A session whose candidate acknowledged the proctoring notice"""
    record_proctoring_ack(token, "v1")
    return token


@pytest.fixture(scope='function')
def examiner_client(client):
    """Test client logged in as examiner (JWT cookie)"""
    response = client.post('/auth/login', json={'password': 'examiner-pass'})
    assert response.status_code == 200
    return client


@pytest.fixture
def sample_payload():
    return json.loads(json.dumps(SAMPLE_PAYLOAD))


@pytest.fixture
def correct_answers():
    return dict(CORRECT_ANSWERS)


@pytest.fixture
def png_bytes():
    return PNG_BYTES
