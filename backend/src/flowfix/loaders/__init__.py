from pathlib import Path

from .base import BaseDocumentLoader
from .reader import SUPPORTED_EXTENSIONS, DocumentLoader


def get_loader_for_file(file_path: Path | str) -> BaseDocumentLoader:
    """Get the appropriate loader for a file based on extension.

    Args:
        file_path: Path to the file

    Returns:
        BaseDocumentLoader instance appropriate for the file type

    Raises:
        ValueError: If the file type is not supported
    """
    file_path = Path(file_path)
    suffix = file_path.suffix.lower()

    if suffix in SUPPORTED_EXTENSIONS:
        return DocumentLoader(file_path.parent, extensions=[suffix])

    raise ValueError(f"No loader available for file type: {suffix}")


__all__ = [
    "BaseDocumentLoader",
    "DocumentLoader",
    "SUPPORTED_EXTENSIONS",
    "get_loader_for_file",
]
