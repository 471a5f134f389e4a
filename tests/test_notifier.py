import atexit
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
import requests

from livechat import create_app
from livechat.database import db
from livechat.errors import RelayError
from livechat.notifier import (
    BotApiChannel,
    ChatMessage,
    DeliveryOutcome,
    RelayPipeline,
    TicketCreated,
    WebhookChannel,
    build_pipeline,
)

from conftest import RecordingChannel

CREATED = TicketCreated(session_id="s1", email="a@b.com", initial_message="hi", timestamp="2024-01-01T00:00:00.000000Z")
MESSAGE = ChatMessage(session_id="s1", email="a@b.com", message="there", sender="user", timestamp="2024-01-01T00:00:01.000000Z")


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no JSON")
        return self._body


class FakeHttp:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json))
        if self.error:
            raise self.error
        return self.response


def test_bot_api_posts_ticket_payload():
    http = FakeHttp(FakeResponse(body={"success": True, "channelId": "123"}))
    BotApiChannel("http://bot:5000/", session=http).deliver(CREATED)

    assert http.calls == [(
        "http://bot:5000/create-livechat-ticket",
        {"sessionId": "s1", "email": "a@b.com", "initialMessage": "hi"},
    )]


def test_bot_api_posts_message_payload():
    http = FakeHttp(FakeResponse(body={"success": True}))
    BotApiChannel("http://bot:5000", session=http).deliver(MESSAGE)

    assert http.calls == [(
        "http://bot:5000/send-livechat-message",
        {"sessionId": "s1", "message": "there", "from": "user"},
    )]


@pytest.mark.parametrize("http", [
    FakeHttp(FakeResponse(body={"success": False})),
    FakeHttp(FakeResponse(status_code=502)),
    FakeHttp(error=requests.ConnectionError("refused")),
])
def test_bot_api_failures_raise_relay_error(http):
    with pytest.raises(RelayError):
        BotApiChannel("http://bot:5000", session=http).deliver(CREATED)


def test_webhook_ticket_embed():
    payload = WebhookChannel.build_payload(CREATED)
    embed = payload["embeds"][0]

    assert embed["title"].endswith("New Live Chat Ticket")
    assert [f["name"] for f in embed["fields"]] == ["Email", "Session ID", "Initial Message"]
    assert embed["fields"][2]["value"] == "hi"
    assert embed["footer"]["text"] == "Created at 2024-01-01T00:00:00.000000Z"


def test_webhook_message_embed():
    embed = WebhookChannel.build_payload(MESSAGE)["embeds"][0]
    assert embed["title"].endswith("Live Chat Message")
    assert [f["name"] for f in embed["fields"]] == ["Email", "Session ID", "Message"]
    assert "footer" not in embed


def test_webhook_non_2xx_is_failure():
    http = FakeHttp(FakeResponse(status_code=404))
    with pytest.raises(RelayError):
        WebhookChannel("http://hook", session=http).deliver(MESSAGE)


def test_pipeline_outcomes():
    ok, down = RecordingChannel("a"), RecordingChannel("b", succeed=False)

    assert RelayPipeline([ok, down]).deliver(CREATED) is DeliveryOutcome.DELIVERED
    assert RelayPipeline([down, ok]).deliver(CREATED) is DeliveryOutcome.FALLBACK_DELIVERED
    assert RelayPipeline([down, RecordingChannel("c", succeed=False)]).deliver(CREATED) is DeliveryOutcome.FAILED


def test_pipeline_skips_disabled_channels():
    hook = WebhookChannel("", session=FakeHttp(error=AssertionError("must not be called")))
    fallback = RecordingChannel("fallback")

    outcome = RelayPipeline([hook, fallback]).deliver(MESSAGE)

    assert outcome is DeliveryOutcome.FALLBACK_DELIVERED
    assert fallback.events == [MESSAGE]


def test_pipeline_survives_unexpected_channel_errors():
    class Exploding(RecordingChannel):
        def deliver(self, event):
            raise KeyError("boom")

    fallback = RecordingChannel("fallback")
    assert RelayPipeline([Exploding("x"), fallback]).deliver(CREATED) is DeliveryOutcome.FALLBACK_DELIVERED


def test_dispatch_runs_in_background_with_executor():
    channel = RecordingChannel("a")
    with ThreadPoolExecutor(max_workers=1) as executor:
        future = RelayPipeline([channel], executor=executor).dispatch(CREATED)
        assert future.result(timeout=5) is DeliveryOutcome.DELIVERED
    assert channel.events == [CREATED]


def test_build_pipeline_orders_bot_before_webhook():
    pipeline = build_pipeline({"BOT_API_URL": "http://bot", "DISCORD_WEBHOOK_URL": "http://hook", "RELAY_ASYNC": False})
    assert [c.name for c in pipeline.channels] == ["bot-api", "webhook"]
    assert pipeline.executor is None


def test_shutdown_waits_for_queued_deliveries():
    release = threading.Event()

    class Slow(RecordingChannel):
        def deliver(self, event):
            release.wait(timeout=5)
            super().deliver(event)

    channel = Slow("slow")
    pipeline = RelayPipeline([channel], executor=ThreadPoolExecutor(max_workers=1))
    pipeline.dispatch(CREATED)
    pipeline.dispatch(CREATED)

    release.set()
    pipeline.shutdown()
    assert channel.events == [CREATED, CREATED]


def test_create_app_drains_relay_at_exit(tmp_path, monkeypatch):
    registered = []
    monkeypatch.setattr(atexit, "register", registered.append)

    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'livechat.db'}",
        "RELAY_ASYNC": True,
    })
    relay = app.extensions["livechat_gateway"].relay
    try:
        assert relay.shutdown in registered
    finally:
        relay.shutdown()
        with app.app_context():
            db.engine.dispose()
