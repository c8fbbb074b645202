import logging
import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15


class ExamApiError(Exception):
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self.payload = payload or {}
        super().__init__(f"{status_code}: {self.payload.get('error', 'request_failed')}")


class ExamClient:
    """
    Candidate-side HTTP client for the session API.

    Used by ``ExamPage``: its ``submit`` is what the single submitter calls,
    and ``presence`` is fire-and-forget.
    """

    def __init__(self, base_url, token, http=None, timeout=DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.http = http or requests.Session()
        self.timeout = timeout

    def _url(self, suffix=''):
        return f"{self.base_url}/api/session/{self.token}{suffix}"

    def _handle(self, response):
        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.status_code >= 400:
            raise ExamApiError(response.status_code, data)
        return data

    def get_session(self):
        return self._handle(self.http.get(self._url(), timeout=self.timeout))

    def acknowledge(self, notice_version):
        return self._handle(self.http.post(self._url('/proctoring-ack'),
                                           json={"noticeVersion": notice_version}, timeout=self.timeout))

    def start(self):
        return self._handle(self.http.post(self._url('/start'), json={}, timeout=self.timeout))

    def presence(self, status):
        """Best effort: network failures are logged and ignored."""
        try:
            response = self.http.post(self._url('/presence'), json={"status": status}, timeout=self.timeout)
            return response.status_code < 400
        except requests.exceptions.RequestException as e:
            logger.debug("presence ping failed: %s", e)
            return False

    def submit(self, answers, reason, index_space="original"):
        body = {
            "answers": answers,
            "clientMeta": {"reason": reason},
            "indexSpace": index_space,
        }
        return self._handle(self.http.post(self._url('/submit'), json=body, timeout=self.timeout))

    def listening_ticket(self):
        return self._handle(self.http.post(self._url('/listening-ticket'), json={}, timeout=self.timeout))

    def upload_snapshot(self, png_bytes, reason, title_prefix=None, stamp=None):
        data = {"reason": reason}
        if title_prefix:
            data["titlePrefix"] = title_prefix
        if stamp:
            data["stamp"] = stamp
        files = {"image": ("snapshot.png", png_bytes, "image/png")}
        return self._handle(self.http.post(self._url('/snapshot'), data=data, files=files, timeout=self.timeout))


def make_submit_sender(client, answer_cache):
    """
    Builds the ``send(reason)`` callable for ExamSubmitter: reads the cached
    widget state and posts it in shown-index form for server-side translation.
    """
    def send(reason):
        result = client.submit(answer_cache.restore_widget_state(), reason.value, index_space="shown")
        answer_cache.mark_submitted()
        return result
    return send
