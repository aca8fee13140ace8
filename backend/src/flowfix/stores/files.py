"""
Crash-safe file replacement for persisted stores and the document catalog.
"""

import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator


@contextmanager
def staged_path(path: Path) -> Iterator[Path]:
    """Yield a temporary path beside ``path`` and move it into place on success.

    The temporary file lives in the same directory so ``os.replace`` is an
    atomic rename. If the body raises, the temporary file is removed and
    ``path`` is left exactly as it was.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    os.close(fd)
    replaced = False
    try:
        yield Path(tmp_name)
        os.replace(tmp_name, path)
        replaced = True
    finally:
        if not replaced and os.path.exists(tmp_name):
            os.unlink(tmp_name)


def write_json_atomic(path: Path, data: Any, **dump_kwargs: Any) -> None:
    with staged_path(path) as tmp_path:
        with open(tmp_path, "w") as f:
            json.dump(data, f, **dump_kwargs)
            f.flush()
            os.fsync(f.fileno())
