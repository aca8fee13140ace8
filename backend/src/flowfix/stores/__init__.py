from pathlib import Path
from typing import Any, Optional

from ..config import get_storage_dir
from .base import BaseChunkStore
from .faiss import FAISSChunkStore
from .memory import InMemoryChunkStore


def create_chunk_store(
    backend: str,
    dimension: Optional[int] = None,
    **kwargs: Any,
) -> BaseChunkStore:
    """Create a chunk store instance based on backend.

    Args:
        backend: "memory" (fetch all, score in memory) or "faiss" (native index)
        dimension: Embedding dimension; required for "faiss"
        **kwargs: Additional backend-specific parameters

    Returns:
        BaseChunkStore instance
    """
    if backend == "memory":
        return InMemoryChunkStore(dimension=dimension, **kwargs)
    elif backend == "faiss":
        if dimension is None:
            raise ValueError("The faiss backend requires an embedding dimension")
        return FAISSChunkStore(dimension=dimension, **kwargs)
    else:
        raise ValueError(f"Unknown chunk store backend: {backend}")


def get_chunk_store_paths(
    config: dict[str, Any], config_path: Path, embedder_model: str
) -> tuple[Path, Path]:
    """Get index and records paths for the configured embedding model."""
    storage_dir = get_storage_dir(config, config_path)
    embedding_id = embedder_model.replace("/", "_").replace("-", "_")
    return (
        storage_dir / f"faiss_{embedding_id}.index",
        storage_dir / f"chunks_{embedding_id}.json",
    )


def create_chunk_store_from_config(
    config: dict[str, Any], config_path: Path, embedder_model: str, dimension: int
) -> BaseChunkStore:
    """Create the store described by the ``[storage]`` config section."""
    backend = config.get("storage", {}).get("backend", "memory")
    index_path, records_path = get_chunk_store_paths(config, config_path, embedder_model)

    if backend == "faiss":
        return create_chunk_store(
            backend, dimension, index_path=index_path, records_path=records_path
        )
    return create_chunk_store(backend, dimension, path=records_path)


__all__ = [
    "BaseChunkStore",
    "FAISSChunkStore",
    "InMemoryChunkStore",
    "create_chunk_store",
    "create_chunk_store_from_config",
    "get_chunk_store_paths",
]
