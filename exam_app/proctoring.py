"""
Proctoring monitor for a running exam attempt.

The monitor is driven by two kinds of input: discrete browser events
(visibility, focus, back navigation, pointer enter/leave) and a polling tick
(~180 ms) that samples fullscreen state, face presence and camera liveness.
Every path that ends the attempt goes through ``request_submit`` with a
``SubmitReason``; the state transition table below is the single place that
decides whether such a request is honoured.

All timestamps are milliseconds from the same monotonic clock.
"""
import enum
import logging
import time
from dataclasses import dataclass

from .client_store import scoped_key

logger = logging.getLogger(__name__)


class SubmitReason(enum.Enum):
    MANUAL = "manual"
    TIME_UP = "time_up"
    TAB_VIOLATIONS_MAX = "tab_violations_max"
    FULLSCREEN_LOST = "disqual_fullscreen_10s"
    FACE_MISSING = "face_missing_10s"

    @property
    def disqualifying(self):
        return self in DISQUALIFYING_REASONS


DISQUALIFYING_REASONS = frozenset({
    SubmitReason.TAB_VIOLATIONS_MAX,
    SubmitReason.FULLSCREEN_LOST,
    SubmitReason.FACE_MISSING,
})


class MonitorState(enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"


# (state, event) -> next state. Pairs not listed are ignored.
TRANSITIONS = {
    (MonitorState.IDLE, "start"): MonitorState.ACTIVE,
    (MonitorState.ACTIVE, "submit"): MonitorState.SUBMITTING,
    (MonitorState.SUBMITTING, "submit_ok"): MonitorState.SUBMITTED,
    (MonitorState.SUBMITTING, "submit_failed"): MonitorState.ACTIVE,
    (MonitorState.IDLE, "already_submitted"): MonitorState.SUBMITTED,
    (MonitorState.ACTIVE, "already_submitted"): MonitorState.SUBMITTED,
}


@dataclass
class ProctoringPolicy:
    poll_interval_ms: int = 180
    tab_debounce_ms: int = 600
    max_tab_violations: int = 3
    pointer_leave_ms: int = 900
    pointer_rearm_ms: int = 1500
    fullscreen_grace_ms: int = 10000
    face_missing_ms: int = 10000
    face_strike_ms: int = 4000


class ExamSubmitter:
    """
    Wraps the network submit call so it runs at most once.

    ``send(reason)`` must return the server's terminal state. A second call
    while one is in flight, or after one succeeded, returns None.
    """

    def __init__(self, send):
        self._send = send
        self.in_flight = False
        self.result = None
        self.reason = None

    @property
    def done(self):
        return self.result is not None

    def submit(self, reason):
        if self.in_flight or self.done:
            return None
        self.in_flight = True
        try:
            self.result = self._send(reason)
            self.reason = reason
        finally:
            self.in_flight = False
        return self.result


class TabViolationStore:
    """Tab violation count, persisted per token so a reload does not reset it."""

    def __init__(self, store, token):
        self.store = store
        self.key = scoped_key(token, "tabViolations")

    @property
    def count(self):
        try:
            return int(self.store.get(self.key, 0) or 0)
        except (TypeError, ValueError):
            return 0

    def increment(self):
        value = self.count + 1
        self.store.set(self.key, value)
        return value


class FaceViolationCounter:
    """Diagnostic face-missing strikes. Lives only for the current page load."""

    def __init__(self):
        self.count = 0

    def increment(self):
        self.count += 1
        return self.count


class FaceGate:
    """
    Pre-start check: one face must be seen continuously for ``stable_ms`` with a
    bounding box covering at least ``min_ratio`` of the frame.
    """

    def __init__(self, detector, stable_ms=2000, min_ratio=0.04):
        self.detector = detector
        self.stable_ms = stable_ms
        self.min_ratio = min_ratio
        self._ok_since = None

    def check(self, now):
        try:
            result = self.detector.detect()
        except Exception as e:
            logger.debug("face gate detection failed: %s", e)
            result = None

        if result is None or not result.ok or result.ratio < self.min_ratio:
            self._ok_since = None
            return False
        if self._ok_since is None:
            self._ok_since = now
        return now - self._ok_since >= self.stable_ms


class ProctoringMonitor:
    def __init__(self, submitter, tab_violations, capabilities, policy=None,
                 face_violations=None, on_violation=None):
        self.submitter = submitter
        self.tab_violations = tab_violations
        self.capabilities = capabilities
        self.policy = policy or ProctoringPolicy()
        self.face_violations = face_violations or FaceViolationCounter()
        self.on_violation = on_violation

        self.state = MonitorState.IDLE
        self.submit_reason = None
        self.camera_blocked = False

        self._hidden = False
        self._blurred = False
        self._last_tab_violation_at = None
        self._pointer_left_at = None
        self._pointer_armed_at = 0
        self._fullscreen_lost_at = None
        self._face_missing_since = None
        self._face_strikes = 0

    @property
    def active(self):
        return self.state == MonitorState.ACTIVE

    def _transition(self, event):
        next_state = TRANSITIONS.get((self.state, event))
        if next_state is None:
            return False
        logger.debug("monitor %s --%s--> %s", self.state.value, event, next_state.value)
        self.state = next_state
        return True

    def start(self, now):
        if not self._transition("start"):
            return False
        if self.tab_violations.count >= self.policy.max_tab_violations:
            self.request_submit(SubmitReason.TAB_VIOLATIONS_MAX, now)
        return True

    def mark_submitted(self):
        """The server already reports this attempt as submitted."""
        if self._transition("already_submitted"):
            self._teardown()

    def request_submit(self, reason, now=None):
        """
        Single exit path for manual, timed and forced submissions. Returns the
        server result, or None when the request was ignored.
        """
        if not self._transition("submit"):
            return None
        if reason.disqualifying:
            logger.warning("forced submission reason=%s", reason.value)
        try:
            result = self.submitter.submit(reason)
        except Exception:
            self._transition("submit_failed")
            raise
        if result is None:
            self._transition("submit_failed")
            return None
        self.submit_reason = reason
        self._transition("submit_ok")
        self._teardown()
        return result

    def _teardown(self):
        for resource in (self.capabilities.face_detector, self.capabilities.camera):
            try:
                resource.stop()
            except Exception as e:
                logger.debug("teardown failed: %s", e)

    def _count_violation(self, source, now):
        count = self.tab_violations.increment()
        logger.info("violation source=%s count=%s", source, count)
        if self.on_violation:
            self.on_violation(source, count)
        if count >= self.policy.max_tab_violations:
            self._force(SubmitReason.TAB_VIOLATIONS_MAX, now)

    def _force(self, reason, now):
        try:
            self.request_submit(reason, now)
        except Exception as e:
            # the next tick retries while the condition holds
            logger.error("forced submission failed reason=%s: %s", reason.value, e)

    def _tab_violation(self, source, now):
        last = self._last_tab_violation_at
        if last is not None and now - last < self.policy.tab_debounce_ms:
            return
        self._last_tab_violation_at = now
        self._count_violation(source, now)

    # browser events

    def on_visibility_change(self, hidden, now):
        if not self.active:
            return
        if hidden:
            self._hidden = True
        elif self._hidden:
            self._hidden = False
            self._tab_violation("visibility", now)

    def on_blur(self, now):
        if self.active:
            self._blurred = True

    def on_focus(self, now):
        if self.active and self._blurred:
            self._blurred = False
            self._tab_violation("focus", now)

    def on_back_navigation(self, now):
        """Returns True when the navigation must be undone (history pushed back)."""
        if not self.active:
            return False
        self._tab_violation("back_navigation", now)
        return True

    def on_pointer_leave(self, now):
        if self.active and self._pointer_left_at is None:
            self._pointer_left_at = now

    def on_pointer_enter(self, now):
        self._pointer_left_at = None

    # polling

    def tick(self, now):
        if not self.active:
            return
        self._check_pointer(now)
        if self.active:
            self._check_fullscreen(now)
        if self.active:
            self._check_face(now)
        if self.active:
            self._check_camera()

    def _check_pointer(self, now):
        left_at = self._pointer_left_at
        if left_at is None or now - left_at < self.policy.pointer_leave_ms:
            return
        if now < self._pointer_armed_at:
            return
        self._pointer_armed_at = now + self.policy.pointer_rearm_ms
        self._count_violation("pointer_leave", now)

    def _check_fullscreen(self, now):
        if self.capabilities.fullscreen.is_fullscreen():
            self._fullscreen_lost_at = None
            return
        if self._fullscreen_lost_at is None:
            self._fullscreen_lost_at = now
            logger.info("fullscreen lost")
        if now - self._fullscreen_lost_at >= self.policy.fullscreen_grace_ms:
            self._force(SubmitReason.FULLSCREEN_LOST, now)

    def fullscreen_countdown_ms(self, now):
        """Remaining grace shown on the overlay, None when fullscreen is held."""
        if self._fullscreen_lost_at is None:
            return None
        return max(0, self.policy.fullscreen_grace_ms - (now - self._fullscreen_lost_at))

    def _check_face(self, now):
        try:
            result = self.capabilities.face_detector.detect()
            present = bool(result and result.ok)
        except Exception as e:
            logger.debug("face detection failed: %s", e)
            present = False

        if present:
            self._face_missing_since = None
            self._face_strikes = 0
            return

        if self._face_missing_since is None:
            self._face_missing_since = now
        missing_for = now - self._face_missing_since

        strikes = missing_for // self.policy.face_strike_ms
        while self._face_strikes < strikes:
            self._face_strikes += 1
            self.face_violations.increment()

        if missing_for >= self.policy.face_missing_ms:
            self._force(SubmitReason.FACE_MISSING, now)

    def _check_camera(self):
        self.camera_blocked = not self.capabilities.camera.is_live()


def monotonic_ms():
    return int(time.monotonic() * 1000)


def run_polling_loop(monitor, clock=monotonic_ms, sleep=time.sleep, should_continue=None):
    """Drives ``monitor.tick`` from start until the attempt is submitted."""
    interval = monitor.policy.poll_interval_ms / 1000.0
    while monitor.active:
        if should_continue is not None and not should_continue():
            break
        monitor.tick(clock())
        sleep(interval)
