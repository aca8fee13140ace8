import logging
import threading
from pathlib import Path
from typing import Any, Optional

import tiktoken
from pydantic import BaseModel, Field

from ..config import get_config_value
from ..models import SimilarityResult
from ..search import SimilaritySearchEngine

logger = logging.getLogger(__name__)

NO_MATCH_MESSAGE = "No solution found in internal knowledge base."
DEFAULT_MAX_CONTEXT_TOKENS = 4096
ENCODING_CACHE: dict[str, tiktoken.Encoding] = {}


def get_tokenizer(model: str) -> tiktoken.Encoding:
    if model not in ENCODING_CACHE:
        try:
            ENCODING_CACHE[model] = tiktoken.encoding_for_model(model)
        except KeyError:
            ENCODING_CACHE[model] = tiktoken.get_encoding("cl100k_base")
    return ENCODING_CACHE[model]


def count_tokens(text: str, model: str = "gpt-4") -> int:
    encoder = get_tokenizer(model)
    return len(encoder.encode(text))


class KnowledgeBaseAnswer(BaseModel):
    """What the error helper shows for an internal knowledge base lookup."""

    solution: str
    source: str = "internal"
    matches: list[SimilarityResult] = Field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.matches)


class RetrievalPipeline:
    """Answer error messages from the internal knowledge base."""

    def __init__(
        self,
        engine: SimilaritySearchEngine,
        max_context_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS,
        tokenizer_model: str = "gpt-4",
    ):
        self.engine = engine
        self.max_context_tokens = max_context_tokens
        self.tokenizer_model = tokenizer_model

    @classmethod
    def from_config(
        cls, config: dict[str, Any], config_path: Path
    ) -> "RetrievalPipeline":
        """Create pipeline from configuration dictionary."""
        return cls(
            engine=SimilaritySearchEngine.from_config(config, config_path),
            max_context_tokens=get_config_value(
                config, "retrieval.max_context_tokens", DEFAULT_MAX_CONTEXT_TOKENS
            ),
        )

    def lookup(
        self,
        error_message: str,
        threshold: Optional[float] = None,
        top_k: Optional[int] = None,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> KnowledgeBaseAnswer:
        """Join the best matching chunks into a solution text.

        Finding nothing is a normal answer; search failures propagate.
        """
        matches = self.engine.search(
            error_message,
            threshold,
            top_k,
            timeout=timeout,
            cancel_event=cancel_event,
        )
        if not matches:
            return KnowledgeBaseAnswer(solution=NO_MATCH_MESSAGE)

        solution = "\n\n".join(match.content for match in matches)
        return KnowledgeBaseAnswer(solution=solution, matches=matches)

    def build_context(
        self, results: list[SimilarityResult], max_tokens: Optional[int] = None
    ) -> str:
        """Pack match contents, best first, into a token budget."""
        available_tokens = max_tokens or self.max_context_tokens

        context_text = ""
        current_tokens = 0
        truncated = False

        for result in results:
            doc_tokens = count_tokens(result.content, self.tokenizer_model)

            if current_tokens + doc_tokens <= available_tokens:
                if context_text:
                    context_text += "\n\n"
                context_text += result.content
                current_tokens += doc_tokens
            else:
                truncated = True
                break

        if truncated:
            logger.warning(
                f"Context truncated to {current_tokens} tokens (limit: {available_tokens})"
            )
        return context_text
