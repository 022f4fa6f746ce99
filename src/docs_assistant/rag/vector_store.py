"""Vector store contract shared by the storage backends.

A store persists documents and one embedding record per chunk, and answers
nearest-neighbour queries over those records. Chunking, per-chunk embedding
and dimension checks live here; every backend owns its own SQL dialect and
distance computation.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Protocol

import numpy as np

from ..deadline import Deadline, check_deadline
from ..errors import StorageError
from .chunker import make_snippet, split_into_chunks
from .types import ScoredChunk
from .vectors import as_vector


logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Anything that turns text into a fixed-length vector."""

    def embed(self, text: str, deadline: Optional[Deadline] = None) -> np.ndarray:
        ...


@dataclass
class ChunkRecord:
    """One chunk ready to be written: position, vector and citation snippet."""

    position: int
    vector: np.ndarray
    snippet: str


class VectorStore(ABC):
    """Base class for document/embedding storage backends.

    Attributes:
        embedder: Embedding client used for every chunk on insert
        embedding_dim: Vector length every stored chunk must have
        chunk_words: Words per chunk
        snippet_chars: Characters kept as a chunk's snippet
    """

    backend_name = "abstract"

    def __init__(
        self,
        embedder: Embedder,
        embedding_dim: int,
        chunk_words: int = 800,
        snippet_chars: int = 160,
    ):
        if embedding_dim <= 0:
            raise ValueError(f"embedding_dim must be positive, got {embedding_dim}")
        self.embedder = embedder
        self.embedding_dim = embedding_dim
        self.chunk_words = chunk_words
        self.snippet_chars = snippet_chars

    def upsert_document(
        self,
        title: str,
        url: str,
        content: str,
        deadline: Optional[Deadline] = None,
    ) -> int:
        """Insert a document and one embedding record per chunk of its content.

        Every chunk is embedded before anything is written; the document row
        and its chunk rows are then written in a single transaction, so a
        failed embedding leaves no partial document behind.

        Args:
            title: Document title (may be empty)
            url: Document URL, the ingestion identity
            content: Full extracted text, stored verbatim
            deadline: Optional request deadline

        Returns:
            Identity assigned to the new document row

        Raises:
            ProviderError: If any embedding call fails
            StorageError: If a vector has the wrong dimension or the write fails
        """
        chunks = split_into_chunks(content, self.chunk_words)
        records = []
        for position, chunk in enumerate(chunks):
            check_deadline(deadline)
            vector = as_vector(self.embedder.embed(chunk, deadline=deadline))
            self._validate_dimension(vector)
            records.append(ChunkRecord(
                position=position,
                vector=vector,
                snippet=make_snippet(chunk, self.snippet_chars),
            ))

        check_deadline(deadline)
        document_id = self._write_document(title, url, content, records, deadline)
        logger.info(f"Stored document {document_id} ({len(records)} chunks): {url}")
        return document_id

    def _validate_dimension(self, vector: np.ndarray) -> None:
        if vector.shape[0] != self.embedding_dim:
            raise StorageError(
                f"embedding dimension {vector.shape[0]} does not match "
                f"configured dimension {self.embedding_dim}"
            )

    @abstractmethod
    def _write_document(
        self,
        title: str,
        url: str,
        content: str,
        records: List[ChunkRecord],
        deadline: Optional[Deadline] = None,
    ) -> int:
        """Write the document row and its chunk rows atomically; return the id."""

    @abstractmethod
    def document_exists(self, url: str, deadline: Optional[Deadline] = None) -> bool:
        """True if at least one document row has this URL."""

    @abstractmethod
    def search(self, query_vector, k: int, deadline: Optional[Deadline] = None) -> List[ScoredChunk]:
        """Return at most k chunks ranked by descending similarity.

        k <= 0 returns an empty list; fewer than k stored chunks returns all.
        """

    @abstractmethod
    def deduplicate(self, deadline: Optional[Deadline] = None) -> int:
        """Keep the lowest-id row per URL, delete the rest with their chunks.

        Returns:
            Number of document rows removed
        """

    @abstractmethod
    def clean(self, deadline: Optional[Deadline] = None) -> int:
        """Delete every chunk row, then every document row.

        Returns:
            Number of document rows removed
        """

    @abstractmethod
    def count_documents(self) -> int:
        ...

    @abstractmethod
    def count_chunks(self) -> int:
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the underlying connection."""

    def stats(self):
        """Collection statistics for maintenance commands."""
        return {
            "backend": self.backend_name,
            "documents": self.count_documents(),
            "chunks": self.count_chunks(),
            "embedding_dim": self.embedding_dim,
        }
