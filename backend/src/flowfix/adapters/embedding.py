import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Optional

import requests
from openai import AzureOpenAI, OpenAI, OpenAIError

from ..config import AzureOpenAIConfig
from ..errors import EmbeddingError
from .base import BaseEmbedder
from .utils import create_session_with_pooling

logger = logging.getLogger(__name__)

EMBEDDING_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

DEFAULT_BATCH_SIZE = 500
DEFAULT_OLLAMA_DIMENSION = 768


class OpenAIEmbedder(BaseEmbedder):
    """OpenAI embedding provider."""

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(model, **kwargs)
        self._dimension: Optional[int] = kwargs.get("dimensions")
        self.client = self._create_client(api_key=api_key, base_url=base_url)

    def _create_client(
        self, api_key: Optional[str], base_url: Optional[str]
    ) -> OpenAI:
        return OpenAI(api_key=api_key, base_url=base_url)

    @classmethod
    def describe(
        cls,
        model: str = "text-embedding-3-small",
        dimensions: Optional[int] = None,
        **settings: Any,
    ) -> tuple[str, int]:
        return model, dimensions or EMBEDDING_DIMENSIONS.get(model, 1536)

    @property
    def dimension(self) -> int:
        return self._dimension or EMBEDDING_DIMENSIONS.get(self.model, 1536)

    def _create_embedding_params(self, input_data: str | list[str]) -> dict[str, Any]:
        """Build parameters for embedding API call."""
        params = {"model": self.model, "input": input_data}
        if self._dimension is not None:
            params["dimensions"] = self._dimension
        return params

    def _create(self, input_data: str | list[str]) -> list[list[float]]:
        try:
            response = self.client.embeddings.create(
                **self._create_embedding_params(input_data)
            )
        except OpenAIError as e:
            raise EmbeddingError(f"{type(self).__name__} request failed: {e}") from e
        return [item.embedding for item in response.data]

    def embed(self, text: str) -> list[float]:
        embeddings = self._create(text)
        if not embeddings:
            raise EmbeddingError("Embedding response contained no vectors")
        return embeddings[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        embeddings = self._create(texts)
        if len(embeddings) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} embeddings, got {len(embeddings)}",
                failed_indices=range(len(embeddings), len(texts)),
            )
        return embeddings


class AzureOpenAIEmbedder(OpenAIEmbedder):
    """Azure OpenAI embedding deployment.

    The deployment name is sent as the model. ``model`` names the underlying
    embedding model and is only used to look up the output dimension.
    """

    def __init__(
        self,
        config: Optional[AzureOpenAIConfig] = None,
        model: str = "text-embedding-3-small",
        **kwargs: Any,
    ):
        if config is None:
            config = AzureOpenAIConfig.from_mapping(kwargs)
        for key in ("api_key", "endpoint", "deployment_name", "api_version"):
            kwargs.pop(key, None)

        self.config = config
        self.model_name = model
        super().__init__(model=config.deployment_name, **kwargs)

    def _create_client(
        self, api_key: Optional[str], base_url: Optional[str]
    ) -> AzureOpenAI:
        return AzureOpenAI(
            api_key=self.config.api_key,
            azure_endpoint=self.config.endpoint,
            api_version=self.config.api_version,
        )

    @classmethod
    def describe(
        cls,
        model: str = "text-embedding-3-small",
        dimensions: Optional[int] = None,
        deployment_name: Optional[str] = None,
        **settings: Any,
    ) -> tuple[str, int]:
        if not deployment_name:
            raise ValueError("Missing Azure OpenAI settings: deployment_name")
        return deployment_name, dimensions or EMBEDDING_DIMENSIONS.get(model, 1536)

    @property
    def dimension(self) -> int:
        return self._dimension or EMBEDDING_DIMENSIONS.get(self.model_name, 1536)


class OllamaEmbedder(BaseEmbedder):
    """Ollama local embedding provider with batch processing and connection pooling."""

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str = "http://localhost:11434",
        max_workers: int = 8,
        batch_size: int = DEFAULT_BATCH_SIZE,
        **kwargs: Any,
    ):
        super().__init__(model, **kwargs)
        self.base_url = base_url.rstrip("/")
        self._dimension = kwargs.get("dimension", DEFAULT_OLLAMA_DIMENSION)
        self._max_workers = max_workers
        self._batch_size = batch_size
        self.session = create_session_with_pooling(pool_maxsize=max_workers)

    @classmethod
    def describe(
        cls,
        model: str = "nomic-embed-text",
        dimension: int = DEFAULT_OLLAMA_DIMENSION,
        **settings: Any,
    ) -> tuple[str, int]:
        return model, dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> list[float]:
        try:
            response = self.session.post(
                f"{self.base_url}/api/embeddings",
                json={"model": self.model, "prompt": text},
                timeout=30,
            )
            response.raise_for_status()
            return response.json()["embedding"]
        except (requests.exceptions.RequestException, KeyError, ValueError) as e:
            raise EmbeddingError(f"Ollama embedding failed: {e}") from e

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Batch embedding using /api/embed endpoint with chunking for large batches."""
        if not texts:
            return []

        if len(texts) <= self._batch_size:
            return self._embed_batch_single(texts)

        results = []
        for i in range(0, len(texts), self._batch_size):
            chunk = texts[i : i + self._batch_size]
            results.extend(self._embed_batch_single(chunk))

        return results

    def _embed_batch_single(self, texts: list[str]) -> list[list[float]]:
        """Send a single batch request to Ollama's /api/embed endpoint."""
        if not texts:
            return []

        try:
            response = self.session.post(
                f"{self.base_url}/api/embed",
                json={"model": self.model, "input": texts},
                timeout=120,
            )
            response.raise_for_status()
            embeddings = response.json().get("embeddings", [])
        except requests.exceptions.RequestException as e:
            logger.warning(f"Batch embedding failed, retrying per text: {e}")
            return self._embed_batch_parallel(texts)

        if len(embeddings) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} embeddings, got {len(embeddings)}",
                failed_indices=range(len(embeddings), len(texts)),
            )
        return embeddings

    def _embed_batch_parallel(self, texts: list[str]) -> list[list[float]]:
        """Fallback: parallel embedding using ThreadPoolExecutor."""
        results: list[Optional[list[float]]] = [None] * len(texts)
        errors: list[tuple[int, Exception]] = []

        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            futures = {executor.submit(self.embed, text): i for i, text in enumerate(texts)}

            for future in as_completed(futures):
                idx = futures[future]
                try:
                    results[idx] = future.result()
                except EmbeddingError as e:
                    errors.append((idx, e))

        if errors:
            failed_indices = sorted(idx for idx, _ in errors)
            first_error = errors[0][1]
            raise EmbeddingError(
                f"Embedding failed for {len(errors)}/{len(texts)} texts "
                f"at indices {failed_indices}. First error: {first_error}",
                failed_indices=failed_indices,
            )

        return results  # type: ignore
