import datetime
import logging
import re
from . import db
from . import storage
from .errors import ExamError, TokenNotFound, SnapshotLimitReached
from .models import ExamSession, SessionSnapshot

logger = logging.getLogger(__name__)

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
STAMP_PATTERN = re.compile(r"^\d{6}_\d{4}_\d{4}$")
DEFAULT_SNAPSHOT_MAX = 10
SNAPSHOT_MAX_CAP = 50

def is_png(data):
    return bool(data) and data[:8] == PNG_MAGIC

def safe_title_prefix(raw, max_len=32):
    cleaned = re.sub(r"[^A-Z0-9_]+", "_", str(raw or "").strip().upper()).strip("_")
    return (cleaned or "SNAPSHOT")[:max(1, max_len)]

def build_stamp(moment=None):
    """HHMMSS_DDMM_YYYY stamp used in snapshot file names."""
    moment = moment or datetime.datetime.now(datetime.timezone.utc)
    return moment.strftime("%H%M%S_%d%m_%Y")

def normalize_snapshot_max(value):
    try:
        n = int(value)
    except (TypeError, ValueError):
        return DEFAULT_SNAPSHOT_MAX
    if n <= 0:
        return DEFAULT_SNAPSHOT_MAX
    return min(SNAPSHOT_MAX_CAP, n)

def add_snapshot(token, image, reason="unknown", title_prefix="", stamp="", max_count=DEFAULT_SNAPSHOT_MAX):
    """
    Stores one integrity snapshot under the per-session cap.

    The count check and the row insert share one transaction with the session
    row locked, so two concurrent uploads cannot both pass the cap. If writing
    the image to storage fails the row is removed again and the error re-raised.
    """
    if not image:
        raise ExamError("missing_image")
    if not is_png(image):
        raise ExamError("only_png_supported")

    limit = normalize_snapshot_max(max_count)
    prefix = safe_title_prefix(title_prefix)
    stamp = (stamp or "").strip()
    if not STAMP_PATTERN.match(stamp):
        stamp = build_stamp()
    reason = (reason or "").strip() or "unknown"

    session = (ExamSession.query
               .filter_by(token=(token or "").strip())
               .order_by(ExamSession.id.desc())
               .with_for_update()
               .first())
    if session is None:
        raise TokenNotFound()

    count = SessionSnapshot.query.filter_by(session_id=session.id).count()
    if count >= limit:
        db.session.rollback()
        logger.info("snapshot_limit_reached token=%s count=%s", session.token, count)
        raise SnapshotLimitReached(count=count, remaining=0)

    remote_path = f"snapshots/ep_{session.exam_period_id}/{session.token}/{prefix}_{stamp}.png"
    snapshot = SessionSnapshot(session_id=session.id, token=session.token,
                               reason=f"{prefix}:{reason}", remote_path=remote_path)
    db.session.add(snapshot)
    db.session.commit()

    try:
        storage.write_file(remote_path, image)
    except Exception:
        db.session.delete(snapshot)
        db.session.commit()
        raise

    count += 1
    logger.info("snapshot_stored token=%s reason=%s path=%s count=%s", session.token, reason, remote_path, count)
    return {
        "ok": True,
        "remotePath": remote_path,
        "snapshotId": snapshot.id,
        "count": count,
        "remaining": max(0, limit - count),
    }
