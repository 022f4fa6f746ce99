"""
Common data types for the retrieval core and the engine.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional


@dataclass
class Document:
    """A stored document row.

    ``url`` is the ingestion identity: re-ingesting a URL that already has a
    row is skipped, although concurrent ingestion can leave duplicates until
    deduplicate() runs.
    """

    id: int
    title: str
    url: str
    content: str


@dataclass
class ScoredChunk:
    """A chunk returned by similarity search, joined with its document."""

    document_id: int
    title: str
    url: str
    snippet: str
    score: float
    position: Optional[int] = None

    def to_citation(self) -> "Citation":
        return Citation(title=self.title, url=self.url, snippet=self.snippet)


@dataclass
class Citation:
    """A (title, url, snippet) triple identifying a source of an answer."""

    title: str
    url: str
    snippet: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire shape used by the HTTP layer."""
        return {'title': self.title, 'url': self.url, 'span': self.snippet}


@dataclass
class ModelIdentifiers:
    """Models actually used to answer a question."""

    completion_model: str
    embedding_model: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class IngestResult:
    """Counters returned by the ingestion operations."""

    ingested: int = 0
    skipped: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {'ingested': self.ingested, 'skipped': self.skipped}
