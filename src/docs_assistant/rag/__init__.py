"""Retrieval core for the docs assistant.

This package stores documents with per-chunk embeddings and answers
nearest-neighbour queries over them.

Core Components:
- chunker: Word-window document chunking
- vectors: Cosine similarity, top-K selection and float32 blob codec
- types: Documents, scored chunks, citations and ingestion counters
- vector_store: Backend contract shared by both stores
- sqlite_store: Embedded store with linear-scan search
- postgres_store: pgvector store with database-side ranking
- store_factory: Backend selection from settings
"""

from .chunker import make_snippet, split_into_chunks
from .store_factory import create_vector_store
from .types import Citation, Document, IngestResult, ModelIdentifiers, ScoredChunk
from .vector_store import ChunkRecord, Embedder, VectorStore
from .vectors import blob_to_vector, cosine_similarity, top_k, vector_to_blob

__all__ = [
    "split_into_chunks",
    "make_snippet",
    "create_vector_store",
    "Citation",
    "Document",
    "IngestResult",
    "ModelIdentifiers",
    "ScoredChunk",
    "ChunkRecord",
    "Embedder",
    "VectorStore",
    "blob_to_vector",
    "cosine_similarity",
    "top_k",
    "vector_to_blob",
]
