"""Configuration management for the docs assistant.

This module provides the settings dataclass and the loader that merges
environment variables, an optional YAML config file and built-in defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from loguru import logger

from .errors import ConfigurationError

# Provider-specific defaults: (completion model, embedding model, embedding dimension)
PROVIDER_DEFAULTS = {
    "gemini": ("gemini-1.5-flash", "text-embedding-004", 768),
    "openai": ("gpt-4o-mini", "text-embedding-3-small", 1536),
}

VECTOR_BACKENDS = ("sqlite", "postgres")


@dataclass
class Settings:
    """Configuration for the ingestion and retrieval engine.

    Attributes:
        llm_provider: Embedding/completion provider ('gemini' or 'openai')
        completion_model: Model used for answer generation
        embedding_model: Model used for chunk and query embeddings
        gemini_api_key: Credential for the Gemini provider
        openai_api_key: Credential for the OpenAI provider
        embedding_dim: Vector length every stored chunk must have
        vector_backend: 'sqlite' (linear scan) or 'postgres' (pgvector)
        vector_db_path: SQLite database file
        db_host: Postgres host (or /cloudsql/... socket directory)
        db_name: Postgres database name
        db_user: Postgres user
        db_pass: Postgres password
        http_timeout: Timeout in seconds for a single outbound HTTP call
        request_timeout: Overall deadline in seconds for one engine operation
        chunk_words: Words per chunk
        snippet_chars: Characters kept as the citation snippet of a chunk
        top_k: Number of chunks retrieved per question
        docs_base_url: Default crawl seed
        docs_domain: Host the crawler is confined to
        docs_path_prefix: Path fragment a link must contain to be crawled
        crawl_max_pages: Page cap per crawl (0 disables the cap)
        min_section_chars: Sections shorter than this are treated as noise
        min_media_chars: Media payloads shorter than this are skipped
        youtube_api_key: YouTube Data API key for playlist expansion
        log_level: loguru level for the stderr sink
    """

    llm_provider: str = "gemini"
    completion_model: str = "gemini-1.5-flash"
    embedding_model: str = "text-embedding-004"
    gemini_api_key: str = ""
    openai_api_key: str = ""
    embedding_dim: int = 768
    vector_backend: str = "sqlite"
    vector_db_path: Path = Path("./data/rag.sqlite")
    db_host: str = ""
    db_name: str = ""
    db_user: str = ""
    db_pass: str = ""
    http_timeout: float = 20.0
    request_timeout: float = 300.0
    chunk_words: int = 800
    snippet_chars: int = 160
    top_k: int = 8
    docs_base_url: str = "https://kiali.io/"
    docs_domain: str = "kiali.io"
    docs_path_prefix: str = "/docs/"
    crawl_max_pages: int = 500
    min_section_chars: int = 10
    min_media_chars: int = 200
    youtube_api_key: str = ""
    log_level: str = "INFO"

    def __post_init__(self):
        """Normalise enum-like fields and paths."""
        self.llm_provider = self.llm_provider.lower()
        self.vector_backend = self.vector_backend.lower()
        if not isinstance(self.vector_db_path, Path):
            self.vector_db_path = Path(self.vector_db_path)

    @property
    def api_key(self) -> str:
        """Credential of the selected provider."""
        if self.llm_provider == "openai":
            return self.openai_api_key
        return self.gemini_api_key

    def postgres_dsn(self) -> str:
        """Build the libpq connection string for the Postgres backend.

        Raises:
            ConfigurationError: If host, database or user is missing
        """
        for name, value in (("DB_HOST", self.db_host), ("DB_NAME", self.db_name), ("DB_USER", self.db_user)):
            if not value:
                raise ConfigurationError(f"{name} not set for Postgres backend")

        dsn = f"user={self.db_user} password={self.db_pass} dbname={self.db_name} host={self.db_host}"
        if self.db_host.startswith("/cloudsql/"):
            dsn += " sslmode=disable"
        return dsn


def load_config_file(path: Optional[str] = None) -> Dict[str, str]:
    """Read the optional YAML config file into an upper-cased key map.

    A missing or unparseable file yields an empty map.
    """
    path = path or os.getenv("CONFIG_FILE") or "config.yaml"
    config_path = Path(path)
    if not config_path.exists():
        return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        logger.warning(f"Ignoring config file {config_path}: {e}")
        return {}

    if not isinstance(raw, dict):
        logger.warning(f"Ignoring config file {config_path}: top level is not a mapping")
        return {}

    return {str(key).upper(): str(value) for key, value in raw.items() if value is not None}


def load_settings(config_file: Optional[str] = None) -> Settings:
    """Load settings from the environment, the config file and defaults.

    Precedence: environment variable, then config file value, then default.
    A .env file in the working directory is loaded first.

    Args:
        config_file: Optional path overriding CONFIG_FILE / config.yaml

    Returns:
        Settings: Configuration object

    Raises:
        ConfigurationError: If provider or backend name is unknown, or a
            size or timeout setting is not positive
    """
    load_dotenv()
    file_values = load_config_file(config_file)

    def get(key: str, default: str = "") -> str:
        value = os.getenv(key)
        if value:
            return value
        value = file_values.get(key.upper())
        if value:
            return value
        return default

    def str_to_int(value: str, default: int) -> int:
        """Convert string to int, falling back to the default."""
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def str_to_float(value: str, default: float) -> float:
        """Convert string to float, falling back to the default."""
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    provider = get("LLM_PROVIDER", "gemini").lower()
    if provider not in PROVIDER_DEFAULTS:
        raise ConfigurationError(f"Unknown LLM_PROVIDER: {provider}")
    completion_default, embedding_default, dim_default = PROVIDER_DEFAULTS[provider]

    backend = get("VECTOR_BACKEND", "sqlite").lower()
    if backend not in VECTOR_BACKENDS:
        raise ConfigurationError(f"Unknown VECTOR_BACKEND: {backend}")

    settings = Settings(
        llm_provider=provider,
        completion_model=get("COMPLETION_MODEL", completion_default),
        embedding_model=get("EMBEDDING_MODEL", embedding_default),
        gemini_api_key=get("GEMINI_API_KEY"),
        openai_api_key=get("OPENAI_API_KEY"),
        embedding_dim=str_to_int(get("EMBEDDING_DIM"), dim_default),
        vector_backend=backend,
        vector_db_path=Path(get("VECTOR_DB_PATH", "./data/rag.sqlite")),
        db_host=get("DB_HOST"),
        db_name=get("DB_NAME"),
        db_user=get("DB_USER"),
        db_pass=get("DB_PASS"),
        http_timeout=str_to_float(get("HTTP_TIMEOUT"), 20.0),
        request_timeout=str_to_float(get("REQUEST_TIMEOUT"), 300.0),
        chunk_words=str_to_int(get("CHUNK_WORDS"), 800),
        snippet_chars=str_to_int(get("SNIPPET_CHARS"), 160),
        top_k=str_to_int(get("TOP_K"), 8),
        docs_base_url=get("DOCS_BASE_URL", "https://kiali.io/"),
        docs_domain=get("DOCS_DOMAIN", "kiali.io"),
        docs_path_prefix=get("DOCS_PATH_PREFIX", "/docs/"),
        crawl_max_pages=str_to_int(get("CRAWL_MAX_PAGES"), 500),
        min_section_chars=str_to_int(get("MIN_SECTION_CHARS"), 10),
        min_media_chars=str_to_int(get("MIN_MEDIA_CHARS"), 200),
        youtube_api_key=get("YOUTUBE_API_KEY") or get("GOOGLE_API_KEY"),
        log_level=get("LOG_LEVEL", "INFO").upper(),
    )

    for key, value in (
        ("EMBEDDING_DIM", settings.embedding_dim),
        ("CHUNK_WORDS", settings.chunk_words),
        ("HTTP_TIMEOUT", settings.http_timeout),
        ("REQUEST_TIMEOUT", settings.request_timeout),
    ):
        if value <= 0:
            raise ConfigurationError(f"{key} must be positive, got {value}")
    return settings


def settings_summary(settings: Settings) -> Dict[str, Any]:
    """Settings without credentials, for logging and the stats command."""
    return {
        "llm_provider": settings.llm_provider,
        "completion_model": settings.completion_model,
        "embedding_model": settings.embedding_model,
        "embedding_dim": settings.embedding_dim,
        "vector_backend": settings.vector_backend,
        "vector_db_path": str(settings.vector_db_path),
        "db_host": settings.db_host,
        "top_k": settings.top_k,
        "chunk_words": settings.chunk_words,
        "crawl_max_pages": settings.crawl_max_pages,
        "youtube_api_configured": bool(settings.youtube_api_key),
    }
