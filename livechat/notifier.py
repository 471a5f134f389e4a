"""
Agent notification relay.

New tickets and visitor messages are forwarded to the support team through an
ordered list of channels: the bot API first, a webhook as fallback. The first
channel that confirms delivery wins; failures are logged and never reach the
caller of the originating gateway operation.
"""

import enum
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import requests

from .errors import RelayError

logger = logging.getLogger(__name__)

EMBED_COLOR = 0x5865F2


class DeliveryOutcome(enum.Enum):
    DELIVERED = "delivered"
    FALLBACK_DELIVERED = "fallback_delivered"
    FAILED = "failed"


@dataclass(frozen=True)
class TicketCreated:
    session_id: str
    email: str
    initial_message: str
    timestamp: str


@dataclass(frozen=True)
class ChatMessage:
    session_id: str
    email: str
    message: str
    sender: str
    timestamp: str


class NotificationChannel:
    """A single way of reaching the support team."""

    name = "channel"

    def enabled(self):
        return True

    def deliver(self, event):
        """Deliver `event` or raise RelayError."""
        raise NotImplementedError


class BotApiChannel(NotificationChannel):
    """Support bot HTTP API; it opens a ticket channel per chat session."""

    name = "bot-api"

    def __init__(self, base_url, timeout=10, session=None):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    def enabled(self):
        return bool(self.base_url)

    def deliver(self, event):
        if isinstance(event, TicketCreated):
            url = f"{self.base_url}/create-livechat-ticket"
            payload = {
                "sessionId": event.session_id,
                "email": event.email,
                "initialMessage": event.initial_message,
            }
        else:
            url = f"{self.base_url}/send-livechat-message"
            payload = {"sessionId": event.session_id, "message": event.message, "from": event.sender}

        logger.info("[LiveChat] POST %s", url)
        try:
            resp = self.http.post(url, json=payload, timeout=self.timeout)
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise RelayError(f"bot API unreachable: {e}") from e

        if not isinstance(data, dict) or not data.get("success"):
            raise RelayError(f"bot API did not confirm delivery (HTTP {resp.status_code})")
        logger.info("[LiveChat] Bot API accepted %s (channel=%s)", type(event).__name__, data.get("channelId"))


class WebhookChannel(NotificationChannel):
    """Discord-style webhook taking an `embeds` payload."""

    name = "webhook"

    def __init__(self, url, timeout=10, session=None):
        self.url = url or ""
        self.timeout = timeout
        self.http = session or requests.Session()

    def enabled(self):
        return bool(self.url)

    def deliver(self, event):
        try:
            resp = self.http.post(self.url, json=self.build_payload(event), timeout=self.timeout)
        except requests.RequestException as e:
            raise RelayError(f"webhook unreachable: {e}") from e
        if not resp.ok:
            raise RelayError(f"webhook failed with HTTP {resp.status_code}")

    @staticmethod
    def build_payload(event):
        if isinstance(event, TicketCreated):
            title, label, text = "💬 New Live Chat Ticket", "Initial Message", event.initial_message
        else:
            title, label, text = "💬 Live Chat Message", "Message", event.message
        embed = {
            "title": title,
            "color": EMBED_COLOR,
            "fields": [
                {"name": "Email", "value": event.email, "inline": True},
                {"name": "Session ID", "value": event.session_id, "inline": True},
                # embed field values are capped at 1024 chars
                {"name": label, "value": text[:1024], "inline": False},
            ],
            "timestamp": event.timestamp,
        }
        if isinstance(event, TicketCreated):
            embed["footer"] = {"text": f"Created at {event.timestamp}"}
        return {"embeds": [embed]}


class RelayPipeline:
    """
    Tries each channel in order until one delivers.
    With an executor, `dispatch` returns immediately and delivery runs in the background.
    """

    def __init__(self, channels, executor=None):
        self.channels = list(channels)
        self.executor = executor

    def deliver(self, event):
        for position, channel in enumerate(self.channels):
            if not channel.enabled():
                continue
            try:
                channel.deliver(event)
            except RelayError as e:
                logger.warning("[LiveChat] %s failed for session %s: %s", channel.name, event.session_id, e.message)
                continue
            except Exception:
                logger.exception("[LiveChat] %s crashed for session %s", channel.name, event.session_id)
                continue
            outcome = DeliveryOutcome.DELIVERED if position == 0 else DeliveryOutcome.FALLBACK_DELIVERED
            logger.info("[LiveChat] %s for session %s: %s via %s",
                        type(event).__name__, event.session_id, outcome.value, channel.name)
            return outcome

        logger.error("[LiveChat] No channel delivered %s for session %s", type(event).__name__, event.session_id)
        return DeliveryOutcome.FAILED

    def dispatch(self, event):
        if self.executor is None:
            return self.deliver(event)
        return self.executor.submit(self.deliver, event)

    def shutdown(self):
        if self.executor is not None:
            self.executor.shutdown(wait=True)


def build_pipeline(config):
    timeout = config.get("RELAY_TIMEOUT_SECONDS", 10)
    channels = [
        BotApiChannel(config.get("BOT_API_URL"), timeout=timeout),
        WebhookChannel(config.get("DISCORD_WEBHOOK_URL"), timeout=timeout),
    ]
    executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="livechat-relay") if config.get("RELAY_ASYNC") else None
    return RelayPipeline(channels, executor=executor)
