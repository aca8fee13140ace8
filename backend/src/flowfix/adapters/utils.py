"""HTTP plumbing shared by adapters that call local model servers."""

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

# Ollama answers 503 while a model is still loading.
RETRY_STATUSES = (502, 503, 504)


def create_session_with_pooling(
    pool_maxsize: int = 8,
    max_retries: int = 3,
    backoff_factor: float = 0.5,
) -> requests.Session:
    """Create a requests Session sized for concurrent embedding calls.

    Args:
        pool_maxsize: Connections kept per host; match the embedder's worker
            count so parallel requests do not queue for a socket.
        max_retries: Transport retries for refused connections and
            gateway/unavailable responses. Provider errors that survive
            these retries surface as ``EmbeddingError`` in the caller.
        backoff_factor: Base of the exponential delay between retries.

    Returns:
        Configured requests Session.
    """
    retry = Retry(
        total=max_retries,
        connect=max_retries,
        read=0,
        status=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=frozenset({"POST"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(pool_connections=1, pool_maxsize=pool_maxsize, max_retries=retry)

    session = requests.Session()
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session
