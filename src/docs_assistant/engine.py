"""
Retrieval and answer orchestration.

RAGEngine is the surface the CLI (and any HTTP layer) calls: answer a
question from stored chunks, ingest a documentation site or a media list,
and run the two maintenance operations.
"""
import json
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger

from .config import Settings, load_settings, settings_summary
from .crawler import SiteCrawler
from .deadline import Deadline
from .errors import ValidationError
from .fetcher import ContentFetcher
from .llm_client import LLMClient, create_llm_client
from .playlist import MediaListExpander
from .rag.store_factory import create_vector_store
from .rag.types import Citation, IngestResult, ModelIdentifiers, ScoredChunk
from .rag.vector_store import VectorStore


@dataclass
class AnswerResult:
    """Generated answer with its citations and the models used."""
    answer: str
    citations: List[Citation] = field(default_factory=list)
    models: Optional[ModelIdentifiers] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "citations": [c.to_dict() for c in self.citations],
            "models": self.models.to_dict() if self.models else None,
        }


def build_prompt(query: str, context: Any, chunks: List[ScoredChunk]) -> str:
    """
    Assemble the completion prompt.

    Args:
        query: The user's question
        context: Optional caller-supplied structured data (JSON-serializable)
        chunks: Retrieved chunks, best first

    Returns:
        Prompt text
    """
    parts = [f"User question:\n{query}\n\nRelevant context (from docs and demos):\n"]
    for i, chunk in enumerate(chunks, 1):
        parts.append(f"[{i}] {chunk.title} - {chunk.url}: {chunk.snippet}\n")
    if context is not None:
        parts.append("\nStructured context (JSON):\n")
        parts.append(json.dumps(context, separators=(",", ":"), default=str))
    parts.append("\nAnswer step-by-step. Reference sources by URL when relevant.")
    return "".join(parts)


class RAGEngine:
    """
    Ingestion and retrieval engine.

    The engine holds no mutable state of its own; concurrent requests share
    only the store connection. Two ingestions racing on the same URL can both
    insert it, and deduplicate() removes the extra rows afterwards.
    """

    def __init__(
        self,
        settings: Settings,
        llm_client: LLMClient,
        store: VectorStore,
        fetcher: ContentFetcher,
    ):
        self.settings = settings
        self.llm_client = llm_client
        self.store = store
        self.fetcher = fetcher
        self.crawler = SiteCrawler(fetcher, store, settings)
        self.expander = MediaListExpander(fetcher, store, settings)

    @property
    def models(self) -> ModelIdentifiers:
        return self.llm_client.models

    def _deadline(self, deadline: Optional[Deadline]) -> Deadline:
        if deadline is not None:
            return deadline
        return Deadline(self.settings.request_timeout)

    def answer(self, query: str, context: Any = None, deadline: Optional[Deadline] = None) -> AnswerResult:
        """
        Answer a question grounded in the stored chunks.

        Args:
            query: Question text
            context: Optional structured data appended to the prompt as JSON
            deadline: Optional request deadline (defaults to REQUEST_TIMEOUT)

        Returns:
            AnswerResult with one citation per retrieved chunk

        Raises:
            ValidationError: Empty or whitespace-only query
            ProviderError: Embedding or completion failed
            StorageError: Search failed
            DeadlineExceeded: The request ran out of time
        """
        if not query or not query.strip():
            raise ValidationError("empty query")

        deadline = self._deadline(deadline)
        query_vector = self.llm_client.embed(query, deadline=deadline)
        chunks = self.store.search(query_vector, self.settings.top_k, deadline=deadline)
        logger.info(f"Retrieved {len(chunks)} chunks for question")

        prompt = build_prompt(query, context, chunks)
        text = self.llm_client.complete(prompt, deadline=deadline)

        return AnswerResult(
            answer=text,
            citations=[chunk.to_citation() for chunk in chunks],
            models=self.models,
        )

    def ingest_site(self, base_url: Optional[str] = None, deadline: Optional[Deadline] = None) -> IngestResult:
        """Crawl the documentation site (DOCS_BASE_URL by default)."""
        return self.crawler.crawl(base_url or self.settings.docs_base_url, self._deadline(deadline))

    def ingest_media_list(self, urls: str, deadline: Optional[Deadline] = None) -> IngestResult:
        """Ingest a video URL, a playlist or a comma-separated list of either."""
        return self.expander.ingest(urls, self._deadline(deadline))

    def deduplicate(self, deadline: Optional[Deadline] = None) -> int:
        return self.store.deduplicate(self._deadline(deadline))

    def clean(self, deadline: Optional[Deadline] = None) -> int:
        return self.store.clean(self._deadline(deadline))

    def stats(self) -> Dict[str, Any]:
        return {
            "settings": settings_summary(self.settings),
            "store": self.store.stats(),
        }

    def close(self) -> None:
        self.store.close()


def build_engine(settings: Optional[Settings] = None) -> RAGEngine:
    """
    Wire an engine from settings.

    Args:
        settings: Loaded settings (loaded from the environment if omitted)

    Returns:
        RAGEngine
    """
    settings = settings or load_settings()
    llm_client = create_llm_client(settings)
    store = create_vector_store(settings, llm_client)
    fetcher = ContentFetcher(timeout=settings.http_timeout)
    logger.info(
        f"Engine ready: provider={settings.llm_provider}, backend={settings.vector_backend}, "
        f"dim={settings.embedding_dim}"
    )
    return RAGEngine(settings, llm_client, store, fetcher)


# Global engine instance
_default_engine: Optional[RAGEngine] = None
_default_engine_lock = threading.Lock()


def get_default_engine() -> RAGEngine:
    """Get or build the process-wide engine."""
    global _default_engine
    if _default_engine is None:
        with _default_engine_lock:
            if _default_engine is None:
                _default_engine = build_engine()
    return _default_engine


def reset_default_engine():
    """Close and forget the process-wide engine."""
    global _default_engine
    with _default_engine_lock:
        if _default_engine is not None:
            _default_engine.close()
        _default_engine = None
