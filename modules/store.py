"""Key-value persistence for the medication and caregiver lists.

Values are opaque serialized strings. ``JsonFileStore`` keeps one
``<key>.json`` file per key under a data directory; ``MemoryStore`` keeps
them in a dict. ``BackgroundWriter`` moves writes off the caller's thread.
"""

from pathlib import Path
from queue import Queue, Empty
from typing import Dict, Optional
import logging
import threading

logger = logging.getLogger("medsync.store")


class Store:
    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> bool:
        raise NotImplementedError


class JsonFileStore(Store):
    def __init__(self, data_dir: str = None):
        base = Path(data_dir) if data_dir else Path(__file__).resolve().parents[1] / "data"
        self.data_dir = base
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except OSError as e:
            logger.warning(f"Could not read {path}: {e}")
            return None

    def set(self, key: str, value: str) -> bool:
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(value)
            tmp.replace(path)
            return True
        except OSError as e:
            logger.error(f"Could not write {path}: {e}")
            return False


class MemoryStore(Store):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> bool:
        with self._lock:
            self._data[key] = value
        return True


class BackgroundWriter:
    """Fire-and-forget writes to a store from a single worker thread."""

    def __init__(self, store: Store):
        self.store = store
        self._queue: Queue = Queue()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._worker, name="medsync-writer", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self.flush()
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=2.0)

    def submit(self, key: str, value: str) -> None:
        if not (self._thread and self._thread.is_alive()):
            self.start()
        self._queue.put((key, value))

    def flush(self) -> None:
        """Block until every submitted write has been attempted."""
        if self._thread and self._thread.is_alive():
            self._queue.join()

    def _worker(self) -> None:
        while not self._stop_event.is_set():
            try:
                key, value = self._queue.get(timeout=0.5)
            except Empty:
                continue
            try:
                if not self.store.set(key, value):
                    logger.warning(f"Store rejected write for {key!r}")
            except Exception as e:
                # Memory stays authoritative; the next write carries the latest state
                logger.error(f"Failed to persist {key!r}: {e}")
            finally:
                self._queue.task_done()
