import json
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from loguru import logger


APPLICATIONS_KEY = "applications"
USERS_KEY = "users"
WITHDRAWALS_KEY = "withdrawals"
WITHDRAWAL_HISTORY_KEY = "withdrawal_history"
SETTINGS_KEY = "settings"
ADMIN_CREDENTIALS_KEY = "admin_credentials"
SESSION_KEY = "current_session"


class Transaction:
    """Buffered view of a store used for one read-modify-write cycle.

    Reads see the transaction's own pending writes. Nothing reaches the
    underlying store until the owning ``transaction()`` block exits cleanly.

    The commit is atomic per key only. ``JsonFileStorage`` replaces one file
    per key, so an OSError partway through ``commit`` can leave some keys
    written and others not. Writers in separate processes are
    last-writer-wins.
    """

    def __init__(self, store: "KeyValueStore"):
        self._store = store
        self._pending: dict[str, str] = {}

    def read(self, key: str, default: Any = None) -> Any:
        if key in self._pending:
            return json.loads(self._pending[key])
        return self._store.read(key, default)

    def write(self, key: str, value: Any) -> None:
        self._pending[key] = json.dumps(value)

    def commit(self) -> None:
        for key, encoded in self._pending.items():
            self._store._write_raw(key, encoded)
        self._pending.clear()


class KeyValueStore:
    def __init__(self):
        self._lock = threading.RLock()

    def read(self, key: str, default: Any = None) -> Any:
        raw = self._read_raw(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding unreadable value stored under {!r}", key)
            return default

    def write(self, key: str, value: Any) -> None:
        encoded = json.dumps(value)
        with self._lock:
            self._write_raw(key, encoded)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        with self._lock:
            tx = Transaction(self)
            yield tx
            tx.commit()

    def _read_raw(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def _write_raw(self, key: str, encoded: str) -> None:
        raise NotImplementedError


class InMemoryStorage(KeyValueStore):
    def __init__(self, initial: Optional[dict[str, Any]] = None):
        super().__init__()
        self._data: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self._data[key] = json.dumps(value)

    def _read_raw(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def _write_raw(self, key: str, encoded: str) -> None:
        self._data[key] = encoded


class JsonFileStorage(KeyValueStore):
    """One ``<key>.json`` file per key inside ``directory``."""

    def __init__(self, directory: str | os.PathLike):
        super().__init__()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _read_raw(self, key: str) -> Optional[str]:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Could not read {}: {}", self._path(key), e)
            return None

    def _write_raw(self, key: str, encoded: str) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(encoded)
            os.replace(tmp_name, self._path(key))
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
