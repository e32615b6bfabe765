"""Key-value persistence for lofireads.

Each key is stored as one JSON document in the data directory. Reads and
writes never raise: a missing, unreadable or malformed document yields the
caller's default, and a failed write is reported as ``False``. This means
data loss is possible and silent apart from the error log.

Read-modify-write sequences go through :meth:`KeyValueStore.transaction`,
which holds an exclusive lock on the key for the whole sequence so that
two writers (threads, processes or tabs sharing a data directory) cannot
interleave.
"""

import fcntl
import json
import logging
import os
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, TypeVar

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", name, raw)
        return default


# Can be overridden via LOFIREADS_DATA_DIR environment variable
_default_data_dir = Path(__file__).parent.parent.parent / "data"
DATA_DIR = Path(os.environ.get("LOFIREADS_DATA_DIR", _default_data_dir))

# Multiplier applied to simulated API delays; 0 disables them
LATENCY_SCALE = _env_float("LOFIREADS_LATENCY_SCALE", 0.0)

CART_KEY = "lofi-reads-cart"
WISHLIST_KEY = "lofi-reads-wishlist"
USER_KEY = "lofi-reads-user"
USERS_KEY = "lofi-reads-users"
ORDERS_KEY = "lofi-reads-orders"
REVIEWS_KEY = "lofi-reads-reviews"
PREFERENCES_KEY = "lofi-reads-preferences"

STORAGE_KEYS = (
    CART_KEY,
    WISHLIST_KEY,
    USER_KEY,
    USERS_KEY,
    ORDERS_KEY,
    REVIEWS_KEY,
    PREFERENCES_KEY,
)


T = TypeVar("T")


def parse_records(key: str, raw: Iterable[Any], parse: Callable[[Any], T]) -> list[T]:
    """
    Parse stored records one by one.

    A record that cannot be parsed is logged and skipped; the rest of the
    document is still usable.
    """
    records = []
    for item in raw:
        try:
            records.append(parse(item))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.error("Skipping malformed record in %s: %r (%s)", key, item, exc)
    return records


class Transaction:
    """Value holder for a locked read-modify-write.

    Mutate ``value`` in place or assign a new one; it is written back when
    the ``with`` block exits without an exception.
    """

    def __init__(self, key: str, value: Any):
        self.key = key
        self.value = value


class KeyValueStore:
    """JSON documents keyed by name, stored under a data directory."""

    def __init__(self, data_dir: Path | None = None, latency_scale: float | None = None):
        """
        Initialize KeyValueStore.

        Args:
            data_dir: Override data directory (for testing).
            latency_scale: Override LOFIREADS_LATENCY_SCALE.
        """
        self.data_dir = Path(data_dir) if data_dir is not None else DATA_DIR
        self.latency_scale = LATENCY_SCALE if latency_scale is None else latency_scale

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def _ensure_dir(self) -> None:
        """Ensure data directory exists."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _lock(self, key: str) -> Iterator[None]:
        """Acquire exclusive lock on a key for read-modify-write operations."""
        lock_file = None
        try:
            self._ensure_dir()
            lock_file = open(self.data_dir / f".{key}.lock", "w")
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
        except OSError as exc:
            logger.error("Failed to lock %s, continuing unlocked: %s", key, exc)
            if lock_file is not None:
                lock_file.close()
                lock_file = None
        try:
            yield
        finally:
            if lock_file is not None:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
                lock_file.close()

    def delay(self, ms: int = 300) -> None:
        """Simulate API latency of `ms` milliseconds, scaled by latency_scale."""
        if self.latency_scale > 0:
            time.sleep(ms / 1000 * self.latency_scale)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Read the value stored under key.

        Returns `default` when the key is missing, unreadable, not valid
        JSON, or holds a value of a different type than a non-None default.
        """
        path = self._path(key)
        if not path.exists():
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                value = json.load(f)
        except (OSError, ValueError) as exc:
            logger.error("Failed to get %s from storage: %s", key, exc)
            return default

        if default is not None and value is not None and not isinstance(value, type(default)):
            logger.error(
                "Failed to get %s from storage: expected %s, found %s",
                key,
                type(default).__name__,
                type(value).__name__,
            )
            return default
        if value is None:
            return default
        return value

    def set(self, key: str, value: Any) -> bool:
        """Store value under key atomically. Returns False if it could not be written."""
        try:
            payload = json.dumps(value, indent=2)
        except (TypeError, ValueError) as exc:
            logger.error("Failed to set %s in storage: %s", key, exc)
            return False

        temp_path = None
        try:
            self._ensure_dir()
            fd, temp_path = tempfile.mkstemp(
                dir=self.data_dir, prefix=f".{key}_", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.write("\n")
            os.replace(temp_path, self._path(key))
            return True
        except OSError as exc:
            logger.error("Failed to set %s in storage: %s", key, exc)
            if temp_path is not None:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
            return False

    def remove(self, key: str) -> bool:
        """Delete key. Removing a missing key succeeds."""
        try:
            self._path(key).unlink(missing_ok=True)
            return True
        except OSError as exc:
            logger.error("Failed to remove %s from storage: %s", key, exc)
            return False

    def clear_all(self) -> None:
        """Remove every lofireads key."""
        for key in STORAGE_KEYS:
            self.remove(key)

    @contextmanager
    def transaction(self, key: str, default: Any) -> Iterator[Transaction]:
        """
        Locked read-modify-write of one key.

        Usage:
            with store.transaction(ORDERS_KEY, []) as txn:
                txn.value.append(order.to_dict())
        """
        with self._lock(key):
            txn = Transaction(key, self.get(key, default))
            yield txn
            self.set(key, txn.value)
