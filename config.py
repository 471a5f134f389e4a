import os
from dotenv import load_dotenv
load_dotenv()


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    # SQLite DB file for live chat tickets
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///livechat.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Agent notification channels
    BOT_API_URL = os.getenv("BOT_API_URL", "http://localhost:5000")
    DISCORD_WEBHOOK_URL = os.getenv("DISCORD_WEBHOOK_URL", "")
    RELAY_TIMEOUT_SECONDS = float(os.getenv("RELAY_TIMEOUT_SECONDS", "10"))
    RELAY_ASYNC = _env_bool("RELAY_ASYNC", True)

    # Sync protocol
    RECENT_WINDOW_SECONDS = int(os.getenv("RECENT_WINDOW_SECONDS", "60"))
    POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "3"))

    # Widget client
    LIVECHAT_API_URL = os.getenv("LIVECHAT_API_URL", "http://localhost:3000/api")
    LIVECHAT_STATE_FILE = os.getenv(
        "LIVECHAT_STATE_FILE", os.path.join(os.path.expanduser("~"), ".livechat_state.json")
    )

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    PORT = int(os.getenv("PORT", "3000"))
