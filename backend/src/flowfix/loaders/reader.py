from pathlib import Path
from typing import Iterable, Optional

from llama_index.core import SimpleDirectoryReader
from llama_index.core.schema import Document as LlamaDocument

from .base import BaseDocumentLoader

SUPPORTED_EXTENSIONS = (".pdf", ".txt", ".md")


class DocumentLoader(BaseDocumentLoader):
    """Loader for PDF and plain text files using llama-index.

    PDFs are read page by page; each page document carries ``file_name`` and
    ``page_label`` metadata.
    """

    def __init__(
        self,
        directory: Path | str,
        extensions: Optional[Iterable[str]] = None,
    ):
        self.directory = Path(directory)
        self.extensions = list(extensions or SUPPORTED_EXTENSIONS)

    def discover(self) -> list[Path]:
        """Supported files in the directory, sorted by name."""
        if not self.directory.exists():
            raise FileNotFoundError(f"Directory not found: {self.directory}")
        return sorted(
            path
            for path in self.directory.iterdir()
            if path.is_file() and path.suffix.lower() in self.extensions
        )

    def load(self) -> list[LlamaDocument]:
        if not self.directory.exists():
            raise FileNotFoundError(f"Directory not found: {self.directory}")

        reader = SimpleDirectoryReader(
            str(self.directory), required_exts=self.extensions
        )
        return reader.load_data()

    def load_file(self, file_path: Path | str) -> list[LlamaDocument]:
        reader = SimpleDirectoryReader(input_files=[str(file_path)])
        return reader.load_data()
