from abc import ABC, abstractmethod
from dataclasses import dataclass

from llama_index.core.schema import Document as LlamaDocument


@dataclass(frozen=True)
class TextSpan:
    """A chunk of text with its offsets in the trimmed input."""

    text: str
    position: int
    start_char: int
    end_char: int


@dataclass(frozen=True)
class PageSegment:
    """A chunk of a loaded page, ready to be embedded."""

    content: str
    source: str
    page: int


class BaseTextSplitter(ABC):
    """Abstract base class for text splitters."""

    @abstractmethod
    def split_documents(self, documents: list[LlamaDocument]) -> list[PageSegment]:
        """Split loaded pages into segments carrying source and page."""
        pass

    @abstractmethod
    def split_text(self, text: str) -> list[str]:
        """Split raw text into chunks without metadata."""
        pass
