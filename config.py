import os
from dotenv import load_dotenv

# Load environment variables from a .env file
load_dotenv()

# Define base directory for the project
BASE_DIR = os.path.abspath(os.path.dirname(__file__))
DB_DIR = os.path.join(BASE_DIR, 'database')

# Ensure the database directory exists before the app uses it
if not os.path.exists(DB_DIR):
    os.makedirs(DB_DIR)

def _read_bool(name, default):
    """Reads an environment flag; only 0/false/no/n/off turn it off."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    return raw.strip().lower() not in ('0', 'false', 'no', 'n', 'off')

class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY', 'a_default_secret_key_for_development')

    # Database configuration using an absolute path
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', f'sqlite:///{os.path.join(DB_DIR, "exam.db")}')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Examiner login (grade entry)
    EXAMINER_PASSWORD = os.environ.get('EXAMINER_PASSWORD', 'examiner')
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', SECRET_KEY)

    # Directory holding one JSON test payload per exam period (ep_<id>.json)
    TESTS_DIR = os.environ.get("TESTS_DIR", os.path.join(BASE_DIR, 'data', 'tests'))

    # Blob storage root for listening audio and integrity snapshots
    FILE_STORAGE_DIR = os.environ.get("FILE_STORAGE_DIR", os.path.join(BASE_DIR, 'storage'))

    # Fallback exam window when an exam period row lacks values
    DEFAULT_OPEN_AT_UTC_MS = int(os.environ.get("DEFAULT_OPEN_AT_UTC_MS", 1770051600000))  # 2026-02-02 17:00 UTC
    DEFAULT_DURATION_MINUTES = int(os.environ.get("DEFAULT_DURATION_MINUTES", 60))

    # Proctoring
    PROCTORING_ACK_REQUIRED = _read_bool("PROCTORING_ACK_REQUIRED", True)
    PROCTORING_NOTICE_VERSION = os.environ.get("PROCTORING_NOTICE_VERSION", "v1")
    SNAPSHOT_MAX_PER_SESSION = int(os.environ.get("SNAPSHOT_MAX_PER_SESSION", 10))

    # Listening audio "play once" enforcement
    LISTENING_MAX_PLAYS = int(os.environ.get("LISTENING_MAX_PLAYS", 1))
    LISTENING_TICKET_TTL_MS = int(os.environ.get("LISTENING_TICKET_TTL_MS", 25 * 60 * 1000))
