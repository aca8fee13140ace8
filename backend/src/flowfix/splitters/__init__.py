from .base import BaseTextSplitter, PageSegment, TextSpan
from .recursive import RecursiveTextSplitter

TextSplitter = RecursiveTextSplitter

__all__ = [
    "BaseTextSplitter",
    "PageSegment",
    "RecursiveTextSplitter",
    "TextSpan",
    "TextSplitter",
]
