import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from ..config import get_storage_dir
from ..errors import StoreUnavailable
from ..models import Document
from ..stores.files import write_json_atomic
from ..stores.locking import StoreLock

logger = logging.getLogger(__name__)


class DocumentCatalog:
    """Document records keyed by id, optionally persisted to a JSON file."""

    def __init__(self, path: Optional[Path] = None):
        self._path = path
        self._lock = StoreLock(path)
        self._documents: dict[str, Document] = self._load()

    @classmethod
    def from_config(cls, config: dict[str, Any], config_path: Path) -> "DocumentCatalog":
        return cls(get_storage_dir(config, config_path) / "documents.json")

    def _load(self) -> dict[str, Document]:
        if not self._path or not self._path.exists():
            return {}
        try:
            with open(self._path, "r") as f:
                records = json.load(f)
            documents = [Document.model_validate(record) for record in records]
        except (OSError, ValueError, ValidationError) as e:
            raise StoreUnavailable(f"Could not load catalog {self._path}: {e}") from e
        return {document.id: document for document in documents}

    def _commit(self, documents: dict[str, Document]) -> None:
        """Persist ``documents`` and adopt them only once the file is written."""
        if self._path:
            try:
                write_json_atomic(
                    self._path,
                    [d.model_dump(mode="json") for d in documents.values()],
                    indent=2,
                )
            except OSError as e:
                raise StoreUnavailable(
                    f"Could not save catalog {self._path}: {e}"
                ) from e
        self._documents = documents

    def add(self, document: Document) -> Document:
        with self._lock.hold():
            self._commit({**self._documents, document.id: document})
        return document

    def get(self, document_id: str) -> Optional[Document]:
        return self._documents.get(document_id)

    def update(self, document_id: str, **changes: Any) -> Document:
        with self._lock.hold():
            document = self._documents[document_id].model_copy(update=changes)
            self._commit({**self._documents, document_id: document})
        return document

    def remove(self, document_id: str) -> bool:
        with self._lock.hold():
            if document_id not in self._documents:
                return False
            self._commit(
                {k: v for k, v in self._documents.items() if k != document_id}
            )
        return True

    def list_all(self) -> list[Document]:
        """All documents, most recently uploaded first."""
        return sorted(
            self._documents.values(), key=lambda d: d.upload_date, reverse=True
        )
