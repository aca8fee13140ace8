import logging
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from ..config import SearchSettings, get_config_value
from ..errors import Cancelled
from ..loaders import BaseDocumentLoader, DocumentLoader, get_loader_for_file
from ..models import Document, DocumentStatus
from ..search import SimilaritySearchEngine
from ..splitters import BaseTextSplitter, TextSplitter
from .catalog import DocumentCatalog

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Load documents, split them and hand the segments to the engine.

    Each file becomes one catalog document whose id is the file name; that id
    is stamped on every chunk as ``metadata.source``.
    """

    def __init__(
        self,
        engine: SimilaritySearchEngine,
        splitter: BaseTextSplitter,
        catalog: DocumentCatalog,
        loader_factory: Callable[[Path], BaseDocumentLoader] = get_loader_for_file,
    ):
        self.engine = engine
        self.splitter = splitter
        self.catalog = catalog
        self.loader_factory = loader_factory

    @classmethod
    def from_config(
        cls, config: dict[str, Any], config_path: Path
    ) -> "IngestionPipeline":
        """Create pipeline from configuration dictionary."""
        settings = SearchSettings.from_config(config)
        splitter = TextSplitter(
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
            lookback=get_config_value(config, "ingestion.lookback"),
        )
        return cls(
            engine=SimilaritySearchEngine.from_config(config, config_path),
            splitter=splitter,
            catalog=DocumentCatalog.from_config(config, config_path),
        )

    def ingest_file(
        self,
        file_path: Path | str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Document:
        """Ingest one file, replacing any chunks from an earlier upload.

        The catalog record moves from ``processing`` to ``ready``, or to
        ``error`` before the failure is re-raised. A failed or cancelled
        re-upload leaves the previous chunks in place, and the record keeps
        their count.
        """
        file_path = Path(file_path)
        previous = self.catalog.get(file_path.name)
        document = self.catalog.add(
            Document(
                id=file_path.name,
                name=file_path.name,
                chunk_count=previous.chunk_count if previous else 0,
            )
        )

        try:
            pages = self.loader_factory(file_path).load_file(file_path)
            segments = self.splitter.split_documents(pages)
            logger.info(
                f"Split {file_path.name} into {len(segments)} segments "
                f"from {len(pages)} pages"
            )

            stored = self.engine.ingest_texts(
                document.id,
                [(segment.content, segment.page) for segment in segments],
                timeout=timeout,
                cancel_event=cancel_event,
                replace=True,
            )
        except Exception as e:
            self.catalog.update(document.id, status=DocumentStatus.ERROR, error=str(e))
            raise

        return self.catalog.update(
            document.id, status=DocumentStatus.READY, chunk_count=stored, error=None
        )

    def ingest_directory(
        self,
        directory: Path | str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> list[Document]:
        """Ingest every supported file in a directory.

        A file that fails is left in the catalog with status ``error`` and
        the remaining files are still processed, including after a file runs
        past ``timeout``. Setting ``cancel_event`` stops the whole directory.
        """
        documents = []
        for file_path in DocumentLoader(directory).discover():
            try:
                documents.append(
                    self.ingest_file(
                        file_path, timeout=timeout, cancel_event=cancel_event
                    )
                )
            except Exception as e:
                if isinstance(e, Cancelled) and cancel_event and cancel_event.is_set():
                    raise
                logger.warning(f"Failed to ingest {file_path}: {e}")
                failed = self.catalog.get(file_path.name)
                if failed is not None:
                    documents.append(failed)
        return documents

    def delete_document(self, document_id: str) -> int:
        """Remove a document and all of its chunks. Returns chunks removed."""
        removed = self.engine.delete_document(document_id)
        self.catalog.remove(document_id)
        return removed

    def list_documents(self) -> list[Document]:
        return self.catalog.list_all()
