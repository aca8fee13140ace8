from typing import Iterator, Optional, Sequence

from llama_index.core.schema import Document as LlamaDocument

from ..errors import InvalidParameter
from .base import BaseTextSplitter, PageSegment, TextSpan

DEFAULT_SEPARATORS = ("\n\n", "\n", ". ", "! ", "? ", " ")


class RecursiveTextSplitter(BaseTextSplitter):
    """Character-based splitter with overlap that prefers natural boundaries.

    Each chunk is at most ``chunk_size`` characters. Its end is moved back to
    the last paragraph, line, sentence or word boundary found within
    ``lookback`` characters, trying separators in that order, and hard-cut at
    ``chunk_size`` when none is found. The next chunk starts exactly
    ``chunk_overlap`` characters before the previous end, so consecutive
    chunks share ``chunk_overlap`` characters and together cover the whole
    trimmed input.
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        lookback: Optional[int] = None,
        separators: Optional[Sequence[str]] = None,
    ):
        if chunk_size <= 0:
            raise InvalidParameter("chunk_size must be > 0")
        if chunk_overlap < 0:
            raise InvalidParameter("chunk_overlap must be >= 0")
        if chunk_overlap >= chunk_size:
            raise InvalidParameter("chunk_overlap must be smaller than chunk_size")
        if lookback is not None and lookback < 0:
            raise InvalidParameter("lookback must be >= 0")

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.lookback = chunk_size // 2 if lookback is None else lookback
        self.separators = tuple(separators or DEFAULT_SEPARATORS)

    def iter_spans(self, text: str) -> Iterator[TextSpan]:
        """Lazily yield chunks of ``text`` in order."""
        normalized = text.strip()
        total = len(normalized)
        start = 0
        position = 0

        while start < total:
            end = min(start + self.chunk_size, total)
            if end < total:
                end = self._find_boundary(normalized, start, end)

            span_text = normalized[start:end]
            if span_text.strip():
                yield TextSpan(
                    text=span_text,
                    position=position,
                    start_char=start,
                    end_char=end,
                )
                position += 1

            if end >= total:
                break
            start = end - self.chunk_overlap

    def _find_boundary(self, text: str, start: int, end: int) -> int:
        # Never look back past start + overlap, or the next chunk would not advance.
        window_start = max(start + self.chunk_overlap + 1, end - self.lookback)
        for separator in self.separators:
            idx = text.rfind(separator, window_start, end)
            if idx != -1:
                return idx + len(separator)
        return end

    def split_text(self, text: str) -> list[str]:
        return [span.text for span in self.iter_spans(text)]

    def split_documents(self, documents: list[LlamaDocument]) -> list[PageSegment]:
        """Split loaded pages, keeping each segment's source and page number.

        Pages are numbered from 1. The number comes from the numeric
        ``page_label`` set by the PDF reader, falling back to the page's
        1-based position within its source.
        """
        segments = []
        pages_seen: dict[str, int] = {}

        for document in documents:
            metadata = dict(document.metadata) if document.metadata else {}
            source = metadata.get("file_name", "unknown")
            fallback_page = pages_seen.get(source, 0) + 1
            pages_seen[source] = fallback_page
            page = _page_number(metadata.get("page_label"), fallback_page)

            for span in self.iter_spans(document.text):
                segments.append(PageSegment(content=span.text, source=source, page=page))

        return segments


def _page_number(label: object, fallback: int) -> int:
    if isinstance(label, str):
        label = label.strip()
        label = int(label) if label.isdigit() else None
    if isinstance(label, int) and label >= 1:
        return label
    return fallback
