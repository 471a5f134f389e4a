"""
Widget controller for the live chat client.

One ChatController owns one SessionState and drives a ChatView. The visitor
moves through four states:

    ANONYMOUS       nothing sent yet
    AWAITING_EMAIL  first message cached locally, email prompt showing
    ACTIVE          ticket exists; sends go out, agent replies are polled
    CLOSED          support closed the ticket; only "start new ticket" remains

Closure is only ever learned from the poll cycle.
"""

import enum
import logging
import secrets
import string
import threading
import time
from dataclasses import dataclass
from typing import Optional

from ..utils import is_valid_email, parse_timestamp
from .api import ApiError
from .poller import PeriodicTask
from .storage import MemoryStorage

logger = logging.getLogger(__name__)

SESSION_KEY = "chatSessionId"
EMAIL_KEY = "chatUserEmail"
FIRST_MESSAGE_KEY = "firstMessage"

WELCOME_MESSAGE = "👋 Hello! How can we help you today?"
TICKET_CREATED_MESSAGE = "Thanks! Your support ticket has been created. Our team will respond shortly."
SEND_FAILED_MESSAGE = "Failed to send message. Please try again."
PLACEHOLDER_FIRST_MESSAGE = "User opened live chat"

_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_session_id():
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"chat_{int(time.time() * 1000)}_{suffix}"


class ChatState(enum.Enum):
    ANONYMOUS = "anonymous"
    AWAITING_EMAIL = "awaiting_email"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass
class SessionState:
    session_id: Optional[str] = None
    user_email: Optional[str] = None
    has_submitted_first_message: bool = False
    last_message_timestamp: Optional[str] = None
    ticket_closed: bool = False
    is_open: bool = False
    state: ChatState = ChatState.ANONYMOUS
    poll_task: Optional[PeriodicTask] = None


class ChatView:
    """Rendering hooks. The default implementation renders nothing."""

    def add_message(self, text, is_user=False, timestamp=None):
        pass

    def clear_messages(self):
        pass

    def show_input(self):
        pass

    def show_email_prompt(self, prefill=None):
        pass

    def set_email_submit_enabled(self, enabled, label):
        pass

    def alert(self, text):
        pass

    def set_panel_open(self, is_open):
        pass

    def show_badge(self):
        pass

    def hide_badge(self):
        pass

    def show_ticket_closed(self):
        pass


class ChatController:
    def __init__(self, api, storage, view=None, session_cache=None, poll_interval=3.0,
                 id_factory=new_session_id, task_factory=PeriodicTask):
        self.api = api
        self.storage = storage
        self.session_cache = session_cache if session_cache is not None else MemoryStorage()
        self.view = view or ChatView()
        self.poll_interval = poll_interval
        self.id_factory = id_factory
        self.task_factory = task_factory
        self.state = SessionState()
        self.email_hint: Optional[str] = None
        self._creating = False
        self._lock = threading.RLock()
        # spans poll task instances: a cancelled task's thread may still be mid-fetch
        self._poll_in_flight = threading.Lock()
        self._unseen = []

    # ---------- lifecycle ----------

    def init_session(self):
        with self._lock:
            session_id = self.storage.get(SESSION_KEY)
            if not session_id:
                session_id = self.id_factory()
                self.storage.set(SESSION_KEY, session_id)
            self.state.session_id = session_id

            stored_email = self.storage.get(EMAIL_KEY)
            if stored_email:
                self.state.user_email = stored_email
                self.state.has_submitted_first_message = True
                self.state.state = ChatState.ACTIVE

        self.load_history()
        if self.state.state is ChatState.ACTIVE:
            self.start_polling()

    def load_history(self):
        """Rebuild the transcript of the current session once, at start-up."""
        session_id = self.state.session_id
        if not session_id:
            return
        try:
            messages = self.api.fetch_history(session_id)
        except ApiError as e:
            logger.error("Error loading chat history: %s", e.message)
            return
        if not messages:
            return

        with self._lock:
            self.view.clear_messages()
            for msg in messages:
                self.view.add_message(msg.get("text"), msg.get("from") == "user", msg.get("timestamp"))
            # everything already rendered must not come back through the poll window
            support = [m["timestamp"] for m in messages if m.get("from") == "support" and m.get("timestamp")]
            if support:
                self.state.last_message_timestamp = max(support, key=parse_timestamp)

    def open_panel(self):
        with self._lock:
            self.state.is_open = True
            unseen, self._unseen = self._unseen, []
        self.view.set_panel_open(True)
        self.view.hide_badge()
        for msg in unseen:
            self.view.add_message(msg.get("text"), False, msg.get("timestamp"))
        if self.state.state is ChatState.ACTIVE and not self.state.ticket_closed:
            self.start_polling()

    def close_panel(self):
        with self._lock:
            self.state.is_open = False
        self.view.set_panel_open(False)
        self.stop_polling()

    # ---------- visitor actions ----------

    def submit_message(self, text):
        message = (text or "").strip()
        if not message:
            return False

        with self._lock:
            if self.state.ticket_closed:
                return False

            if self.state.state is ChatState.ANONYMOUS:
                self.view.add_message(message, True)
                self.session_cache.set(FIRST_MESSAGE_KEY, message)
                self.state.has_submitted_first_message = True
                self.state.state = ChatState.AWAITING_EMAIL
                self.view.show_email_prompt(self.email_hint)
                return True

            if self.state.state is not ChatState.ACTIVE:
                return False

            self.view.add_message(message, True)
            session_id, email = self.state.session_id, self.state.user_email

        try:
            self.api.send_message(session_id, email, message)
        except ApiError as e:
            logger.error("[Network] Error sending message: %s", e.message)
            self.view.add_message(SEND_FAILED_MESSAGE, False)
            return False
        return True

    def submit_email(self, email):
        email = (email or "").strip()
        if not is_valid_email(email):
            self.view.alert("Please enter a valid email address")
            return False

        with self._lock:
            if self.state.state is not ChatState.AWAITING_EMAIL or self._creating:
                return False
            self._creating = True
            session_id = self.state.session_id

        self.view.set_email_submit_enabled(False, "Creating ticket...")
        first_message = self.session_cache.get(FIRST_MESSAGE_KEY) or PLACEHOLDER_FIRST_MESSAGE
        try:
            self.api.create_ticket(session_id, email, first_message)
        except ApiError as e:
            logger.error("[Network] Error creating ticket: %s", e.message)
            if e.status_code is None:
                self.view.alert("Failed to create ticket. Network error. Please try again.")
            else:
                self.view.alert(e.message or "Failed to create ticket. Please try again.")
            self.view.set_email_submit_enabled(True, "Continue")
            with self._lock:
                self._creating = False
            return False

        with self._lock:
            self._creating = False
            self.state.user_email = email
            self.storage.set(EMAIL_KEY, email)
            # a fresh ticket has no agent replies yet, so no cursor is needed
            self.state.last_message_timestamp = None
            self.state.state = ChatState.ACTIVE
            self.session_cache.remove(FIRST_MESSAGE_KEY)

        self.view.show_input()
        self.view.add_message(TICKET_CREATED_MESSAGE, False)
        self.start_polling()
        return True

    def start_new_ticket(self):
        """Only offered once the current ticket is closed."""
        with self._lock:
            if self.state.state is not ChatState.CLOSED:
                return False
        self.stop_polling()
        with self._lock:
            self.email_hint = self.state.user_email or self.email_hint
            session_id = self.id_factory()
            self.storage.set(SESSION_KEY, session_id)
            self.storage.remove(EMAIL_KEY)
            self.session_cache.remove(FIRST_MESSAGE_KEY)
            self.state = SessionState(session_id=session_id, is_open=self.state.is_open)
            self._unseen = []

        self.view.clear_messages()
        self.view.add_message(WELCOME_MESSAGE, False)
        self.view.show_input()
        return True

    # ---------- polling ----------

    def start_polling(self):
        with self._lock:
            task = self.state.poll_task
            if task is not None and task.is_running():
                return
            task = self.task_factory("livechat-poll", self.poll_messages, self.poll_interval)
            self.state.poll_task = task
        task.start()

    def stop_polling(self):
        with self._lock:
            task, self.state.poll_task = self.state.poll_task, None
        if task is not None:
            task.cancel()

    def poll_messages(self):
        if not self._poll_in_flight.acquire(blocking=False):
            logger.debug("Previous poll still running, skipping this tick")
            return
        try:
            self._poll_once()
        finally:
            self._poll_in_flight.release()

    def _poll_once(self):
        with self._lock:
            if self.state.state is not ChatState.ACTIVE or not self.state.user_email:
                return
            session_id = self.state.session_id

        try:
            messages, closed = self.api.fetch_messages(session_id)
        except ApiError as e:
            logger.warning("Error polling messages: %s", e.message)
            return

        with self._lock:
            if session_id != self.state.session_id or self.state.state is not ChatState.ACTIVE:
                return

            if closed and not self.state.ticket_closed:
                self.state.ticket_closed = True
                self.state.state = ChatState.CLOSED
                self.stop_polling()
                self.view.show_ticket_closed()
                return

            for msg in messages:
                if msg.get("from") != "support" or not msg.get("timestamp"):
                    continue
                if not self._is_new(msg["timestamp"]):
                    continue
                self.state.last_message_timestamp = msg["timestamp"]
                if self.state.is_open:
                    self.view.add_message(msg.get("text"), False, msg["timestamp"])
                else:
                    # held back until the panel opens
                    self._unseen.append(msg)
                    self.view.show_badge()

    def _is_new(self, timestamp):
        cursor = self.state.last_message_timestamp
        return cursor is None or parse_timestamp(timestamp) > parse_timestamp(cursor)
