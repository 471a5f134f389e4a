import pytest

from livechat import create_app
from livechat.database import db
from livechat.errors import RelayError
from livechat.notifier import NotificationChannel, RelayPipeline


class RecordingChannel(NotificationChannel):
    def __init__(self, name, succeed=True):
        self.name = name
        self.succeed = succeed
        self.events = []

    def deliver(self, event):
        self.events.append(event)
        if not self.succeed:
            raise RelayError(f"{self.name} is down")


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'livechat.db'}",
        "RELAY_ASYNC": False,
        "BOT_API_URL": "",
        "DISCORD_WEBHOOK_URL": "",
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield


@pytest.fixture
def primary():
    return RecordingChannel("bot-api")


@pytest.fixture
def secondary():
    return RecordingChannel("webhook")


@pytest.fixture
def gateway(app, primary, secondary):
    gw = app.extensions["livechat_gateway"]
    gw.relay = RelayPipeline([primary, secondary])
    return gw


@pytest.fixture
def store(gateway):
    return gateway.store


@pytest.fixture
def client(app, gateway):
    return app.test_client()
