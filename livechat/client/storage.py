import logging
import os
import threading

from ..utils import load_json_document, write_json_document

logger = logging.getLogger(__name__)


class LocalStorage:
    """Small key/value store that survives restarts, kept as a JSON file."""

    def __init__(self, path):
        self.path = path
        self._lock = threading.Lock()
        self._data = load_json_document(path)

    def get(self, key, default=None):
        with self._lock:
            return self._data.get(key, default)

    def set(self, key, value):
        with self._lock:
            self._data[key] = value
            self._flush()

    def remove(self, key):
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()

    def _flush(self):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        try:
            write_json_document(self.path, self._data)
        except OSError:
            logger.exception("Could not persist chat state to %s", self.path)


class MemoryStorage(LocalStorage):
    """Process-lifetime storage with the same interface."""

    def __init__(self):
        self.path = None
        self._lock = threading.Lock()
        self._data = {}

    def _flush(self):
        pass
