import atexit
import logging
from datetime import timedelta

from flask import Flask

from config import Config
from .commands import livechat_cli
from .database import db
from .gateway import TicketGateway
from .notifier import build_pipeline
from .routes import main
from .store import TicketStore

logger = logging.getLogger(__name__)


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db.init_app(app)

    with app.app_context():
        db.create_all()

    store = TicketStore()
    relay = build_pipeline(app.config)
    # let queued notifications go out before the process exits
    atexit.register(relay.shutdown)
    app.extensions["livechat_gateway"] = TicketGateway(
        store,
        relay,
        recent_window=timedelta(seconds=app.config["RECENT_WINDOW_SECONDS"]),
    )

    if not app.config.get("DISCORD_WEBHOOK_URL"):
        logger.warning("DISCORD_WEBHOOK_URL not set, webhook fallback disabled")

    app.register_blueprint(main)
    app.cli.add_command(livechat_cli)
    return app
