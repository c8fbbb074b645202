"""
The candidate exam page: boots from the session API, then drives the
proctoring monitor, the exam timer and the presence ping from one loop.

Every schedule runs off the same millisecond clock, so tests can drive the
page by calling ``tick(now)`` with fake timestamps.
"""
import logging
import time

from .answer_cache import AnswerCache
from .client import ExamApiError, make_submit_sender
from .proctoring import (
    ExamSubmitter, MonitorState, ProctoringMonitor, SubmitReason, TabViolationStore, monotonic_ms,
)
from .randomizer import randomize_payload
from .timer import ExamTimer, TICK_INTERVAL_MS

logger = logging.getLogger(__name__)

PRESENCE_INTERVAL_MS = 15000
SNAPSHOT_LIMIT_STATUS = 429


class ExamPage:
    def __init__(self, client, capabilities, store, policy=None, clock=monotonic_ms, capture_snapshot=None):
        self.client = client
        self.capabilities = capabilities
        self.store = store
        self.policy = policy
        self.clock = clock
        self.capture_snapshot = capture_snapshot

        self.status = None
        self.test = None
        self.cache = None
        self.monitor = None
        self.timer = None
        self.snapshots_stopped = False
        self._next_due = {}

    @property
    def token(self):
        return self.client.token

    @property
    def finished(self):
        return self.monitor is not None and self.monitor.state == MonitorState.SUBMITTED

    def boot(self):
        """
        Loads the session view. Returns the gate status; the monitor, timer and
        answer cache exist only when the exam is running.
        """
        view = self.client.get_session()
        self.status = view.get("status")
        if self.status != "running":
            return self.status

        self.test, choice_maps = randomize_payload((view.get("test") or {}).get("payload"), self.token)
        self.cache = AnswerCache(self.store, self.token, choice_maps)
        self.monitor = ProctoringMonitor(
            submitter=ExamSubmitter(make_submit_sender(self.client, self.cache)),
            tab_violations=TabViolationStore(self.store, self.token),
            capabilities=self.capabilities,
            policy=self.policy,
            on_violation=self._on_violation,
        )
        self.timer = ExamTimer(view["endAtUtc"], view["serverNow"], monitor=self.monitor,
                               local_now_ms=self.clock(), clock=self.clock)

        session = view.get("session") or {}
        if session.get("submitted"):
            self.monitor.mark_submitted()
        return self.status

    def start(self, now=None):
        """Candidate pressed start: the server confirms, then monitoring begins."""
        now = self.clock() if now is None else now
        if self.monitor is None or self.finished:
            return False
        result = self.client.start()
        if result.get("status") == "submitted":
            self.monitor.mark_submitted()
            return False
        self.monitor.start(now)
        self._next_due = {"monitor": now, "timer": now, "presence": now}
        return True

    def on_answer(self, widget_state):
        if self.cache is not None and not self.finished:
            self.cache.save(widget_state)

    def submit(self):
        return self.monitor.request_submit(SubmitReason.MANUAL)

    def _due(self, name, now, interval):
        if now < self._next_due.get(name, now):
            return False
        self._next_due[name] = now + interval
        return True

    def tick(self, now=None):
        """One pass of the page loop; returns False once the attempt is over."""
        now = self.clock() if now is None else now
        if self.monitor is None or not self.monitor.active:
            return False

        if self._due("monitor", now, self.monitor.policy.poll_interval_ms):
            self.monitor.tick(now)
        if self.monitor.active and self._due("timer", now, TICK_INTERVAL_MS):
            try:
                self.timer.tick(now)
            except (ExamApiError, OSError) as e:
                logger.error("time_up submission failed: %s", e)
        if self.monitor.active and self._due("presence", now, PRESENCE_INTERVAL_MS):
            self.client.presence("camera_blocked" if self.monitor.camera_blocked else "active")

        if not self.monitor.active:
            self.teardown()
            return False
        return True

    def run(self, sleep=time.sleep, should_continue=None):
        if self.monitor is None:
            return
        interval = min(self.monitor.policy.poll_interval_ms, TICK_INTERVAL_MS) / 1000.0
        while self.tick(self.clock()):
            if should_continue is not None and not should_continue():
                break
            sleep(interval)

    def teardown(self):
        self._next_due = {}
        logger.info("exam page closed token=%s reason=%s", self.token,
                    self.monitor.submit_reason.value if self.monitor.submit_reason else None)

    def upload_snapshot(self, png_bytes, reason):
        """Uploads stop for the rest of the page once the server reports the cap."""
        if self.snapshots_stopped:
            return None
        try:
            return self.client.upload_snapshot(png_bytes, reason)
        except ExamApiError as e:
            if e.status_code != SNAPSHOT_LIMIT_STATUS:
                raise
            self.snapshots_stopped = True
            logger.info("snapshot limit reached token=%s", self.token)
            return None

    def _on_violation(self, source, count):
        if self.capture_snapshot is None or self.snapshots_stopped:
            return
        try:
            self.upload_snapshot(self.capture_snapshot(), source)
        except (ExamApiError, OSError) as e:
            logger.warning("snapshot upload failed: %s", e)
