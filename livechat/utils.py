import json
import logging
import re
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def utcnow():
    """Naive UTC datetime, matching what the database columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    """
    Render a naive UTC datetime as a fixed-width ISO-8601 string.
    Fixed width keeps string order identical to chronological order.
    """
    if value is None:
        return None
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value):
    """
    Parse an ISO-8601 timestamp into a naive UTC datetime.
    Accepts the trailing 'Z' form and millisecond precision as well.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def next_tick(last, now):
    """Strictly increasing clock: never hand out a time at or before `last`."""
    if last is not None and now <= last:
        return last + timedelta(microseconds=1)
    return now


def is_blank(value):
    return value is None or not str(value).strip()


def is_valid_email(email):
    return bool(email) and bool(EMAIL_RE.match(email))


def load_json_document(path):
    """
    Read a JSON document from disk.
    Missing or unreadable files yield an empty dict.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError):
        logger.exception("Error loading JSON document %s", path)
        return {}
    return data if isinstance(data, dict) else {}


def write_json_document(path, data):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
