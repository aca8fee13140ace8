import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

import toml

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200
DEFAULT_SIMILARITY_THRESHOLD = 0.7
DEFAULT_TOP_K = 3
DEFAULT_AZURE_API_VERSION = "2024-02-15-preview"


@dataclass(frozen=True)
class AzureOpenAIConfig:
    """Connection settings for an Azure OpenAI deployment.

    Passed explicitly to the embedder; nothing here is read from the
    process environment.
    """

    api_key: str
    endpoint: str
    deployment_name: str
    api_version: str = DEFAULT_AZURE_API_VERSION

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "AzureOpenAIConfig":
        missing = [
            key
            for key in ("api_key", "endpoint", "deployment_name")
            if not values.get(key)
        ]
        if missing:
            raise ValueError(
                f"Missing Azure OpenAI settings: {', '.join(missing)}"
            )
        return cls(
            api_key=values["api_key"],
            endpoint=values["endpoint"],
            deployment_name=values["deployment_name"],
            api_version=values.get("api_version") or DEFAULT_AZURE_API_VERSION,
        )


@dataclass(frozen=True)
class SearchSettings:
    """Chunking and ranking parameters recognised by the engine."""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    top_k: int = DEFAULT_TOP_K
    candidate_pool: Optional[int] = None

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "SearchSettings":
        return cls(
            chunk_size=get_config_value(
                config, "ingestion.chunk_size", DEFAULT_CHUNK_SIZE
            ),
            chunk_overlap=get_config_value(
                config, "ingestion.chunk_overlap", DEFAULT_CHUNK_OVERLAP
            ),
            similarity_threshold=float(
                get_config_value(
                    config,
                    "retrieval.similarity_threshold",
                    DEFAULT_SIMILARITY_THRESHOLD,
                )
            ),
            top_k=get_config_value(config, "retrieval.top_k", DEFAULT_TOP_K),
            candidate_pool=get_config_value(config, "retrieval.candidate_pool"),
        )


def resolve_path(path: str | Path, config_path: Path) -> Path:
    """Resolve a path relative to the config file's parent directory.

    Absolute paths are returned as-is.
    """
    path = Path(path)
    if path.is_absolute():
        return path
    return (config_path.parent / path).resolve()


def find_config_path(explicit_path: Path | None = None) -> Path:
    """Centralized config path resolution."""
    if explicit_path:
        return explicit_path
    candidates = [
        Path("config.toml"),
        Path(__file__).parent.parent.parent.parent / "config.toml",
    ]
    for path in candidates:
        if path.exists():
            return path
    raise FileNotFoundError("config.toml not found")


def load_config(config_path: Path = Path("config.toml")) -> dict[str, Any]:
    """Load configuration from TOML file with environment variable substitution.

    Supports ${ENV_VAR} and ${ENV_VAR:-default} syntax.

    Args:
        config_path: Path to the TOML configuration file.

    Returns:
        Dictionary with configuration values.
    """
    config = toml.load(config_path)
    return _substitute_env_vars(config)


def _substitute_env_vars(value: Any) -> Any:
    """Recursively substitute environment variables in config values."""
    if isinstance(value, str):
        return _substitute_string(value)
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _substitute_string(value: str) -> str:
    pattern = r"\$\{([^}:]+)(?::-([^}]*))?\}"

    def replacer(match):
        var_name = match.group(1)
        default = match.group(2) or ""
        return os.environ.get(var_name, default)

    return re.sub(pattern, replacer, value)


def get_config_value(config: dict, key_path: str, default: Any = None) -> Any:
    """Get a nested config value using dot notation.

    Args:
        config: Configuration dictionary.
        key_path: Dot-separated path (e.g., "retrieval.top_k").
        default: Default value if key not found.

    Returns:
        The config value or default.
    """
    keys = key_path.split(".")
    value = config

    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value


def get_storage_dir(config: dict, config_path: Path) -> Path:
    """Resolved storage directory holding chunk stores and the catalog."""
    storage_dir = config.get("storage", {}).get("directory", "storage")
    return resolve_path(storage_dir, config_path)


def get_ingestion_dir(config: dict, config_path: Path) -> Path:
    """Resolved directory scanned by ``flowfix ingest`` when no path is given."""
    ingestion_dir = config.get("ingestion", {}).get("directory", "data/pdfs")
    return resolve_path(ingestion_dir, config_path)
