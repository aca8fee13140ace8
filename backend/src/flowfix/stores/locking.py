import fcntl
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional


class StoreLock:
    """Thread lock plus an ``fcntl`` file lock beside the persisted data."""

    def __init__(self, data_path: Optional[Path] = None):
        self._data_path = data_path
        self._thread_lock = threading.RLock()

    @contextmanager
    def hold(self) -> Iterator[None]:
        with self._thread_lock:
            if self._data_path is None:
                yield
                return

            self._data_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._data_path.with_suffix(".lock"), "w") as lock_file:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
