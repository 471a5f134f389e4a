from .database import db
from .utils import isoformat, utcnow


class Ticket(db.Model):
    __tablename__ = "ticket"
    session_id = db.Column(db.String(128), primary_key=True)
    email = db.Column(db.String(320), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    closed = db.Column(db.Boolean, default=False, nullable=False)
    closed_at = db.Column(db.DateTime, nullable=True)

    messages = db.relationship(
        "Message",
        backref="ticket",
        lazy="dynamic",
        order_by="Message.id",
        cascade="all, delete-orphan",
    )

    def to_document(self):
        """The ticket in its serialized-document shape."""
        return {
            "email": self.email,
            "createdAt": isoformat(self.created_at),
            "messages": [m.to_wire() for m in self.messages],
            "closed": bool(self.closed),
            "closedAt": isoformat(self.closed_at),
        }


class Message(db.Model):
    __tablename__ = "message"
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(128), db.ForeignKey("ticket.session_id"), index=True, nullable=False)
    sender = db.Column(db.String(20), nullable=False)  # "user" or "support"
    text = db.Column(db.Text, nullable=False)
    timestamp = db.Column(db.DateTime, nullable=False, index=True)

    def to_wire(self):
        return {"from": self.sender, "text": self.text, "timestamp": isoformat(self.timestamp)}
