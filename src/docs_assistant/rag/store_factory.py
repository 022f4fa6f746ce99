"""Factory selecting the vector store backend from settings."""

import logging

from ..config import Settings
from ..errors import ConfigurationError
from .vector_store import Embedder, VectorStore


logger = logging.getLogger(__name__)


def create_vector_store(settings: Settings, embedder: Embedder) -> VectorStore:
    """Build the configured backend.

    This is the only place that branches on the backend name.

    Args:
        settings: Loaded settings
        embedder: Embedding client used on insert

    Returns:
        SQLiteVectorStore or PostgresVectorStore

    Raises:
        ConfigurationError: Unknown backend or incomplete Postgres settings
    """
    backend = settings.vector_backend
    common = dict(
        embedder=embedder,
        embedding_dim=settings.embedding_dim,
        chunk_words=settings.chunk_words,
        snippet_chars=settings.snippet_chars,
    )

    if backend == "sqlite":
        from .sqlite_store import SQLiteVectorStore

        return SQLiteVectorStore(db_path=settings.vector_db_path, **common)

    if backend == "postgres":
        from .postgres_store import PostgresVectorStore

        return PostgresVectorStore(dsn=settings.postgres_dsn(), **common)

    raise ConfigurationError(f"Unknown vector backend: {backend}")
