import logging

import requests

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """The live chat API was unreachable or answered with `success: false`."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class LiveChatAPI:
    """Thin HTTP client for the /api/livechat routes."""

    def __init__(self, base_url, timeout=10, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    def create_ticket(self, session_id, email, initial_message):
        return self._post("/livechat/create", {
            "sessionId": session_id,
            "email": email,
            "initialMessage": initial_message,
        })

    def send_message(self, session_id, email, message):
        return self._post("/livechat/send", {"sessionId": session_id, "email": email, "message": message})

    def fetch_messages(self, session_id):
        data = self._get("/livechat/messages", {"sessionId": session_id})
        return data.get("messages") or [], bool(data.get("closed"))

    def fetch_history(self, session_id):
        return self._get("/livechat/history", {"sessionId": session_id}).get("messages") or []

    def _post(self, path, payload):
        url = self.base_url + path
        logger.debug("[Network] POST %s", url)
        try:
            resp = self.http.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise ApiError(f"Network error: {e}") from e
        return self._decode(resp)

    def _get(self, path, params):
        url = self.base_url + path
        try:
            resp = self.http.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise ApiError(f"Network error: {e}") from e
        return self._decode(resp)

    @staticmethod
    def _decode(resp):
        try:
            data = resp.json()
        except ValueError:
            raise ApiError(f"Server error (HTTP {resp.status_code})", resp.status_code)
        if not isinstance(data, dict) or not data.get("success"):
            message = data.get("message") if isinstance(data, dict) else None
            raise ApiError(message or f"Server error (HTTP {resp.status_code})", resp.status_code)
        return data
