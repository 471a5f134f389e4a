import logging
from datetime import timedelta

from .errors import ValidationError
from .notifier import ChatMessage, TicketCreated
from .store import SUPPORT, USER
from .utils import is_blank, isoformat, utcnow

logger = logging.getLogger(__name__)

DEFAULT_RECENT_WINDOW = timedelta(seconds=60)


def _require(**fields):
    missing = [name for name, value in fields.items() if is_blank(value)]
    if missing:
        raise ValidationError("Missing required fields: " + ", ".join(missing))


class TicketGateway:
    """Server-side live chat operations over the ticket store."""

    def __init__(self, store, relay, recent_window=DEFAULT_RECENT_WINDOW, clock=utcnow):
        self.store = store
        self.relay = relay
        self.recent_window = recent_window
        self.clock = clock

    def create(self, session_id, email, initial_message):
        _require(sessionId=session_id, email=email, initialMessage=initial_message)

        message, created = self.store.create_ticket(session_id, email, initial_message)
        if not created:
            # a retried create; agents were already told about this ticket
            logger.info("[LiveChat] Ticket %s already exists, nothing to do", session_id)
            return message

        logger.info("[LiveChat] Ticket created for session %s", session_id)
        self.relay.dispatch(TicketCreated(
            session_id=session_id,
            email=email,
            initial_message=initial_message,
            timestamp=isoformat(message.timestamp),
        ))
        return message

    def send_message(self, session_id, email, message):
        _require(sessionId=session_id, email=email, message=message)

        stored = self.store.append_message(session_id, USER, message)
        self.relay.dispatch(ChatMessage(
            session_id=session_id,
            email=email,
            message=message,
            sender=USER,
            timestamp=isoformat(stored.timestamp),
        ))
        return stored

    def receive_agent_reply(self, session_id, message):
        _require(sessionId=session_id, message=message)
        return self.store.append_message(session_id, SUPPORT, message)

    def mark_closed(self, session_id):
        _require(sessionId=session_id)
        logger.info("[LiveChat] Ticket closed notification received for session: %s", session_id)
        return self.store.mark_closed(session_id)

    def fetch_recent_agent_messages(self, session_id, recent_window=None, now=None):
        """
        Support messages newer than `now - recent_window`, plus the closed flag.

        This is a trailing wall-clock window, not a cursor: consecutive polls
        overlap and the caller is expected to deduplicate.
        """
        _require(sessionId=session_id)
        ticket = self.store.get_ticket(session_id)
        if ticket is None:
            return [], False

        window = self.recent_window if recent_window is None else recent_window
        cutoff = (now or self.clock()) - window
        messages = self.store.find_messages(session_id, sender=SUPPORT, after=cutoff)
        return [m.to_wire() for m in messages], bool(ticket.closed)

    def fetch_full_history(self, session_id):
        _require(sessionId=session_id)
        return [m.to_wire() for m in self.store.find_messages(session_id)]
