from flask import Blueprint, current_app, jsonify, request, send_file
from werkzeug.exceptions import HTTPException

from .errors import LiveChatError
from .models import Message, Ticket
from .utils import isoformat

import csv
import io
import logging

logger = logging.getLogger(__name__)

main = Blueprint("main", __name__)


def _gateway():
    return current_app.extensions["livechat_gateway"]


def _fail(message, status):
    return jsonify({"success": False, "message": message}), status


@main.errorhandler(LiveChatError)
def handle_livechat_error(err):
    return _fail(err.message, err.status_code)


@main.errorhandler(Exception)
def handle_unexpected_error(err):
    if isinstance(err, HTTPException):
        return err
    logger.exception("Unexpected live chat error")
    return _fail("An error occurred", 500)


@main.route("/api/health")
def health():
    return jsonify({"status": "ok"})


@main.route("/api/livechat/create", methods=["POST"])
def create_ticket():
    data = request.get_json(silent=True) or {}
    _gateway().create(data.get("sessionId"), data.get("email"), data.get("initialMessage"))
    return jsonify({"success": True, "message": "Chat ticket created successfully"})


@main.route("/api/livechat/send", methods=["POST"])
def send_message():
    data = request.get_json(silent=True) or {}
    _gateway().send_message(data.get("sessionId"), data.get("email"), data.get("message"))
    return jsonify({"success": True, "message": "Message sent successfully"})


@main.route("/api/livechat/messages", methods=["GET"])
def recent_messages():
    session_id = request.args.get("sessionId")
    if not session_id:
        return _fail("Session ID required", 400)

    messages, closed = _gateway().fetch_recent_agent_messages(session_id)
    return jsonify({"success": True, "messages": messages, "closed": closed})


@main.route("/api/livechat/history", methods=["GET"])
def history():
    session_id = request.args.get("sessionId")
    if not session_id:
        return _fail("Session ID required", 400)

    return jsonify({"success": True, "messages": _gateway().fetch_full_history(session_id)})


@main.route("/api/livechat/discord-reply", methods=["POST"])
@main.route("/api/livechat/agent-reply", methods=["POST"])
def agent_reply():
    data = request.get_json(silent=True) or {}
    _gateway().receive_agent_reply(data.get("sessionId"), data.get("message"))
    return jsonify({"success": True, "message": "Reply sent successfully"})


@main.route("/api/livechat/ticket-closed", methods=["POST"])
def ticket_closed():
    data = request.get_json(silent=True) or {}
    if not data.get("sessionId"):
        return _fail("Missing sessionId", 400)

    _gateway().mark_closed(data["sessionId"])
    return jsonify({"success": True, "message": "Ticket closure recorded"})


@main.route("/api/livechat/admin/export.csv", methods=["GET"])
def export_transcripts_csv():
    """
    Export all tickets and messages as CSV (admin endpoint).
    """
    proxy = io.StringIO()
    writer = csv.writer(proxy)
    writer.writerow(["session_id", "email", "created_at", "closed_at", "message_id", "from", "text", "timestamp"])

    tickets = Ticket.query.order_by(Ticket.created_at.asc()).all()
    for t in tickets:
        head = [t.session_id, t.email, isoformat(t.created_at), isoformat(t.closed_at) or ""]
        messages = Message.query.filter_by(session_id=t.session_id).order_by(Message.id.asc()).all()
        if not messages:
            writer.writerow(head + ["", "", "", ""])
        else:
            for m in messages:
                writer.writerow(head + [m.id, m.sender, m.text.replace("\n", " "), isoformat(m.timestamp)])

    mem = io.BytesIO()
    mem.write(proxy.getvalue().encode("utf-8"))
    mem.seek(0)
    proxy.close()
    return send_file(mem, mimetype="text/csv", as_attachment=True, download_name="livechat_transcripts.csv")
