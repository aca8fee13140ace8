from abc import ABC, abstractmethod
from typing import Any


class BaseEmbedder(ABC):
    """Abstract base class for embedding providers.

    Implementations must return vectors of a fixed ``dimension`` and raise
    ``EmbeddingError`` when the provider cannot produce them.
    """

    def __init__(self, model: str, **kwargs: Any):
        self.model = model
        self.kwargs = kwargs

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        pass

    @abstractmethod
    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        pass

    @classmethod
    def describe(cls, **settings: Any) -> tuple[str, int]:
        """Model id and vector dimension for ``settings``, without a client.

        Lets storage be located from configuration alone, for commands that
        never embed.
        """
        raise NotImplementedError(f"{cls.__name__} cannot describe itself")

    @property
    @abstractmethod
    def dimension(self) -> int:
        pass
