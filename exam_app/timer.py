import logging
import time

from .proctoring import SubmitReason

logger = logging.getLogger(__name__)

TICK_INTERVAL_MS = 250


def wall_clock_ms():
    return int(time.time() * 1000)


class ExamTimer:
    """
    Countdown anchored to the server's absolute end time.

    The offset between server and local clocks is captured once at boot, so the
    remaining time never depends on when the candidate pressed start.
    """

    def __init__(self, end_at_utc_ms, server_now_ms, monitor=None, local_now_ms=None, clock=wall_clock_ms):
        self.end_at_utc_ms = int(end_at_utc_ms)
        self.clock = clock
        local_now = clock() if local_now_ms is None else local_now_ms
        self.offset_ms = int(server_now_ms) - int(local_now)
        self.monitor = monitor
        self.ended = False

    def server_now(self, local_now=None):
        local_now = self.clock() if local_now is None else local_now
        return local_now + self.offset_ms

    def remaining_ms(self, local_now=None):
        return max(0, self.end_at_utc_ms - self.server_now(local_now))

    def display(self, local_now=None):
        seconds = self.remaining_ms(local_now) // 1000
        return "%02d:%02d" % (seconds // 60, seconds % 60)

    def tick(self, local_now=None):
        """
        Returns True once time is up. Before the exam starts this only reports
        the end; afterwards it submits with reason ``time_up``.
        """
        if self.remaining_ms(local_now) > 0:
            return False
        if not self.ended:
            self.ended = True
            logger.info("exam time is up")
        if self.monitor is not None and self.monitor.active:
            self.monitor.request_submit(SubmitReason.TIME_UP)
        return True
