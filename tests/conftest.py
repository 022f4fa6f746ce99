"""
Pytest configuration and fixtures for docs assistant tests.
"""
import hashlib
import sys
from pathlib import Path
from unittest.mock import Mock

import numpy as np
import pytest

# Add src to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from docs_assistant.config import Settings  # noqa: E402
from docs_assistant.rag.types import Document, ModelIdentifiers  # noqa: E402

TEST_DIM = 8

ENV_KEYS = [
    "LLM_PROVIDER", "COMPLETION_MODEL", "EMBEDDING_MODEL", "GEMINI_API_KEY", "OPENAI_API_KEY",
    "EMBEDDING_DIM", "VECTOR_BACKEND", "VECTOR_DB_PATH", "DB_HOST", "DB_NAME", "DB_USER", "DB_PASS",
    "HTTP_TIMEOUT", "REQUEST_TIMEOUT", "CHUNK_WORDS", "SNIPPET_CHARS", "TOP_K", "DOCS_BASE_URL",
    "DOCS_DOMAIN", "DOCS_PATH_PREFIX", "CRAWL_MAX_PAGES", "MIN_SECTION_CHARS", "MIN_MEDIA_CHARS",
    "YOUTUBE_API_KEY", "GOOGLE_API_KEY", "LOG_LEVEL", "CONFIG_FILE",
]


def hash_vector(text: str, dim: int = TEST_DIM) -> np.ndarray:
    """Deterministic bag-of-words vector: identical texts map to identical vectors."""
    vector = np.zeros(dim, dtype=np.float32)
    for word in text.lower().split():
        digest = hashlib.md5(word.encode("utf-8")).digest()
        vector[digest[0] % dim] += 1.0
    return vector


class FakeLLMClient:
    """In-memory embedder/completer that records every call."""

    def __init__(self, dim: int = TEST_DIM, answer: str = "Generated answer"):
        self.dim = dim
        self.answer = answer
        self.models = ModelIdentifiers(completion_model="fake-chat", embedding_model="fake-embed")
        self.embed_calls = []
        self.complete_calls = []
        self.embed_error = None

    def embed(self, text, deadline=None):
        self.embed_calls.append(text)
        if self.embed_error is not None:
            raise self.embed_error
        return hash_vector(text, self.dim)

    def complete(self, prompt, deadline=None):
        self.complete_calls.append(prompt)
        return self.answer


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch, tmp_path):
    """Isolate tests from the developer's environment and config files."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def sample_video_urls():
    """Sample YouTube URLs for testing."""
    return {
        "standard": "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        "short": "https://youtu.be/dQw4w9WgXcQ",
        "playlist": "https://youtu.be/dQw4w9WgXcQ?list=PLSomePlaylist",
        "embed": "https://www.youtube.com/embed/dQw4w9WgXcQ",
        "invalid": "https://example.com/not-a-video"
    }


@pytest.fixture
def fake_llm():
    return FakeLLMClient()


@pytest.fixture
def test_settings(tmp_path):
    """Settings sized for tests: small vectors, SQLite under tmp_path."""
    return Settings(
        llm_provider="openai",
        completion_model="fake-chat",
        embedding_model="fake-embed",
        openai_api_key="test-key",
        embedding_dim=TEST_DIM,
        vector_backend="sqlite",
        vector_db_path=tmp_path / "data" / "rag.sqlite",
        chunk_words=800,
        crawl_max_pages=50,
    )


@pytest.fixture
def sqlite_store(test_settings, fake_llm):
    from docs_assistant.rag.sqlite_store import SQLiteVectorStore

    store = SQLiteVectorStore(
        db_path=test_settings.vector_db_path,
        embedder=fake_llm,
        embedding_dim=TEST_DIM,
    )
    yield store
    store.close()


def make_response(status_code=200, text="", json_data=None):
    """Build a mock requests.Response."""
    response = Mock()
    response.status_code = status_code
    response.text = text
    response.content = text.encode("utf-8")
    if json_data is not None:
        response.json.return_value = json_data
    else:
        response.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
    return response


def stored_document(store, document_id):
    """Read one document row straight from a SQLite store, or None."""
    row = store.connection.execute(
        "SELECT id, title, url, content FROM documents WHERE id = ?", (document_id,)
    ).fetchone()
    if row is None:
        return None
    return Document(id=row[0], title=row[1] or "", url=row[2] or "", content=row[3] or "")


def stored_chunk_positions(store, document_id):
    """Chunk positions of a document in insertion order."""
    rows = store.connection.execute(
        "SELECT position FROM embeddings WHERE document_id = ? ORDER BY rowid", (document_id,)
    ).fetchall()
    return [row[0] for row in rows]
