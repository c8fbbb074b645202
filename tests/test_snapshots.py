"""
Tests for integrity snapshot uploads
"""
import os
import pytest
from unittest.mock import patch

from exam_app.errors import ExamError, SnapshotLimitReached
from exam_app.models import SessionSnapshot
from exam_app.snapshots import add_snapshot, safe_title_prefix, build_stamp, normalize_snapshot_max
from exam_app.storage import resolve_path, StorageError


class TestHelpers:

    def test_safe_title_prefix(self):
        assert safe_title_prefix("") == "SNAPSHOT"
        assert safe_title_prefix("face check") == "FACE_CHECK"
        assert safe_title_prefix("a-b/../c") == "A_B_C"

    def test_build_stamp_format(self):
        import datetime
        moment = datetime.datetime(2026, 2, 2, 17, 5, 9)
        assert build_stamp(moment) == "170509_0202_2026"

    def test_normalize_max(self):
        assert normalize_snapshot_max(None) == 10
        assert normalize_snapshot_max(0) == 10
        assert normalize_snapshot_max(500) == 50

    def test_storage_path_cannot_escape_root(self, app):
        with pytest.raises(StorageError):
            resolve_path("../outside.png")


class TestAddSnapshot:
    """PNG-only uploads under a per-session cap"""

    def test_stores_png(self, app, token, png_bytes):
        out = add_snapshot(token, png_bytes, reason="face_missing", title_prefix="face check",
                           stamp="120000_0102_2026", max_count=3)
        assert out["ok"] is True
        assert out["remotePath"] == f"snapshots/ep_1/{token}/FACE_CHECK_120000_0102_2026.png"
        assert out["count"] == 1
        assert out["remaining"] == 2

        with open(resolve_path(out["remotePath"]), 'rb') as f:
            assert f.read() == png_bytes
        row = SessionSnapshot.query.one()
        assert row.reason == "FACE_CHECK:face_missing"

    def test_invalid_stamp_replaced(self, token, png_bytes):
        out = add_snapshot(token, png_bytes, stamp="yesterday")
        assert out["remotePath"].startswith(f"snapshots/ep_1/{token}/SNAPSHOT_")
        assert "yesterday" not in out["remotePath"]

    def test_rejects_non_png(self, token):
        with pytest.raises(ExamError) as exc:
            add_snapshot(token, b"GIF89a....")
        assert exc.value.code == "only_png_supported"

    def test_rejects_missing_image(self, token):
        with pytest.raises(ExamError) as exc:
            add_snapshot(token, b"")
        assert exc.value.code == "missing_image"

    def test_cap_enforced(self, token, png_bytes):
        for n in range(2):
            add_snapshot(token, png_bytes, stamp=f"12000{n}_0102_2026", max_count=2)
        with pytest.raises(SnapshotLimitReached) as exc:
            add_snapshot(token, png_bytes, max_count=2)
        assert exc.value.status_code == 429
        assert exc.value.to_dict() == {"error": "snapshot_limit_reached", "count": 2, "remaining": 0}
        assert SessionSnapshot.query.count() == 2

    def test_storage_failure_removes_row(self, app, token, png_bytes):
        with patch('exam_app.snapshots.storage.write_file', side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                add_snapshot(token, png_bytes)
        assert SessionSnapshot.query.count() == 0
        assert not os.path.exists(os.path.join(app.config['FILE_STORAGE_DIR'], 'snapshots'))
