"""
Ticket store
============

Durable session-id -> ticket mapping on top of Flask-SQLAlchemy.

Every mutation is a per-key transaction taken under a per-session lock:
writers to the same session are strictly ordered and get strictly increasing
message timestamps, while writers to different sessions touch disjoint rows
and can never overwrite each other's updates.

`load()` / `save()` expose the whole mapping in the serialized-document shape
for bulk import and export.
"""

import logging
import threading
from contextlib import ExitStack

from sqlalchemy.exc import SQLAlchemyError

from .database import db
from .errors import NotFound, PersistenceError
from .models import Message, Ticket
from .utils import next_tick, parse_timestamp, utcnow

logger = logging.getLogger(__name__)

USER = "user"
SUPPORT = "support"
SENDERS = (USER, SUPPORT)


class TicketStore:
    def __init__(self, clock=utcnow):
        self.clock = clock
        self._locks = {}
        self._locks_guard = threading.Lock()
        # held while the set of stored session ids may change: creates and bulk writes
        self._keyset_lock = threading.Lock()

    def lock_for(self, session_id):
        with self._locks_guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = threading.Lock()
            return lock

    # ---------- whole-mapping access ----------

    def load(self):
        """Full mapping in document shape. Empty on failure, never raises."""
        try:
            tickets = Ticket.query.order_by(Ticket.created_at.asc()).all()
            return {t.session_id: t.to_document() for t in tickets}
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Error loading chats")
            return {}

    def save(self, chats):
        """
        Replace the stored mapping with `chats` in one transaction.
        Returns False instead of raising on any failure.

        This is a blind overwrite: anything appended after the caller's
        `load()` is lost. Use `import_tickets` to merge documents into a
        live store.
        """
        with self._keyset_lock, ExitStack() as stack:
            try:
                existing = {sid for (sid,) in db.session.query(Ticket.session_id).all()}
                # no ticket can be created while _keyset_lock is held, so this
                # covers every row the rewrite touches
                for sid in sorted(existing | set(chats)):
                    stack.enter_context(self.lock_for(sid))
                Message.query.delete()
                Ticket.query.delete()
                for sid, doc in chats.items():
                    db.session.add(self._ticket_from_document(sid, doc))
                db.session.commit()
                return True
            except (SQLAlchemyError, ValueError, TypeError, AttributeError, KeyError):
                db.session.rollback()
                logger.exception("Error saving chats")
                return False

    def import_tickets(self, chats):
        """
        Merge documents into the store in one transaction.

        Each imported session replaces the stored ticket of the same id;
        tickets not named in `chats` are left untouched. Returns False
        instead of raising on any failure.
        """
        with self._keyset_lock, ExitStack() as stack:
            for sid in sorted(chats):
                stack.enter_context(self.lock_for(sid))
            try:
                for sid, doc in chats.items():
                    stale = db.session.get(Ticket, sid)
                    if stale is not None:
                        db.session.delete(stale)
                        db.session.flush()
                    db.session.add(self._ticket_from_document(sid, doc))
                db.session.commit()
                return True
            except (SQLAlchemyError, ValueError, TypeError, AttributeError, KeyError):
                db.session.rollback()
                logger.exception("Error importing chats")
                return False

    def _ticket_from_document(self, session_id, doc):
        created_at = parse_timestamp(doc.get("createdAt")) or self.clock()
        ticket = Ticket(
            session_id=session_id,
            email=doc.get("email") or "",
            created_at=created_at,
            closed=bool(doc.get("closed")),
            closed_at=parse_timestamp(doc.get("closedAt")),
        )
        for msg in doc.get("messages") or []:
            sender = msg.get("from")
            if sender not in SENDERS:
                raise ValueError(f"unknown message author {sender!r} in session {session_id}")
            ticket.messages.append(
                Message(sender=sender, text=msg.get("text") or "", timestamp=parse_timestamp(msg["timestamp"]))
            )
        return ticket

    # ---------- per-key reads ----------

    def get_ticket(self, session_id):
        try:
            return db.session.get(Ticket, session_id)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("Error reading chat %s", session_id)
            raise PersistenceError("Failed to read chat") from e

    def find_messages(self, session_id, sender=None, after=None):
        """Messages of one session in append order, optionally filtered."""
        try:
            query = Message.query.filter_by(session_id=session_id)
            if sender is not None:
                query = query.filter(Message.sender == sender)
            if after is not None:
                query = query.filter(Message.timestamp > after)
            return query.order_by(Message.id.asc()).all()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception("Error reading messages for %s", session_id)
            raise PersistenceError("Failed to read messages") from e

    # ---------- per-key transactional writes ----------

    def create_ticket(self, session_id, email, text):
        """
        Create the ticket with its first user message.
        Repeating the call for an existing ticket changes nothing and returns
        that ticket's first message. Returns (message, created).
        """
        with self._keyset_lock, self.lock_for(session_id):
            try:
                if db.session.get(Ticket, session_id) is not None:
                    first = Message.query.filter_by(session_id=session_id).order_by(Message.id.asc()).first()
                    return first, False
                now = self.clock()
                db.session.add(Ticket(session_id=session_id, email=email, created_at=now))
                message = Message(session_id=session_id, sender=USER, text=text, timestamp=now)
                db.session.add(message)
                db.session.commit()
                return message, True
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.exception("Error saving chat %s", session_id)
                raise PersistenceError("Failed to save chat") from e

    def append_message(self, session_id, sender, text):
        if sender not in SENDERS:
            raise ValueError(f"unknown message author {sender!r}")
        with self.lock_for(session_id):
            if self.get_ticket(session_id) is None:
                raise NotFound()
            try:
                last = self._last_timestamp(session_id)
                message = Message(
                    session_id=session_id, sender=sender, text=text, timestamp=next_tick(last, self.clock())
                )
                db.session.add(message)
                db.session.commit()
                return message
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.exception("Error saving message for %s", session_id)
                raise PersistenceError("Failed to save message") from e

    def mark_closed(self, session_id):
        """Returns True only when this call closed the ticket."""
        with self.lock_for(session_id):
            ticket = self.get_ticket(session_id)
            if ticket is None or ticket.closed:
                return False
            try:
                ticket.closed = True
                ticket.closed_at = self.clock()
                db.session.commit()
                return True
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.exception("Error closing chat %s", session_id)
                raise PersistenceError("Failed to record closure") from e

    def _last_timestamp(self, session_id):
        return (
            db.session.query(db.func.max(Message.timestamp))
            .filter(Message.session_id == session_id)
            .scalar()
        )
