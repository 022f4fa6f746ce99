"""Server-based vector store using Postgres with the pgvector extension.

Ranking and limiting are delegated to the database through the cosine
distance operator (``<=>``) in ``ORDER BY ... LIMIT``; any ANN index the
database has is used transparently.
"""

import logging
import threading
from contextlib import contextmanager
from typing import List, Optional

import numpy as np
import psycopg
from pgvector.psycopg import register_vector

from ..deadline import Deadline, check_deadline
from ..errors import DeadlineExceeded, StorageError
from .types import ScoredChunk
from .vector_store import ChunkRecord, Embedder, VectorStore
from .vectors import as_vector


logger = logging.getLogger(__name__)

DUPLICATE_IDS_SQL = """
SELECT id FROM documents d
WHERE EXISTS (
    SELECT 1 FROM documents d2
    WHERE d2.url = d.url AND d2.id < d.id
)
ORDER BY id
"""

SEARCH_SQL = """
SELECT d.id, d.title, d.url, e.snippet, e.position, e.vector <=> %s AS distance
FROM embeddings e JOIN documents d ON d.id = e.document_id
ORDER BY distance
LIMIT %s
"""


def schema_ddl(dim: int) -> str:
    """DDL for the documents/embeddings tables with a VECTOR(dim) column."""
    return f"""
CREATE TABLE IF NOT EXISTS documents (
    id BIGSERIAL PRIMARY KEY,
    title TEXT,
    url TEXT,
    content TEXT
);
CREATE TABLE IF NOT EXISTS embeddings (
    document_id BIGINT REFERENCES documents(id),
    position INTEGER,
    vector VECTOR({int(dim)}),
    snippet TEXT
);
CREATE INDEX IF NOT EXISTS idx_embeddings_doc ON embeddings(document_id);
CREATE INDEX IF NOT EXISTS idx_documents_url ON documents(url);
"""


class PostgresVectorStore(VectorStore):
    """pgvector-backed store (index-assisted backend).

    Attributes:
        dsn: libpq connection string
    """

    backend_name = "postgres"

    def __init__(
        self,
        dsn: str,
        embedder: Embedder,
        embedding_dim: int,
        chunk_words: int = 800,
        snippet_chars: int = 160,
    ):
        super().__init__(embedder, embedding_dim, chunk_words, snippet_chars)
        self.dsn = dsn
        self._conn: Optional[psycopg.Connection] = None
        self._lock = threading.RLock()
        logger.info(f"PostgresVectorStore initialized: dim={embedding_dim}")

    @property
    def connection(self) -> psycopg.Connection:
        """Lazily connect, enable pgvector and create the schema.

        Raises:
            StorageError: If the connection or schema setup fails
        """
        if self._conn is None:
            try:
                conn = psycopg.connect(self.dsn, autocommit=True)
                conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
                register_vector(conn)
                conn.execute(schema_ddl(self.embedding_dim))
                self._conn = conn
                logger.info("Postgres vector store ready")
            except psycopg.Error as e:
                logger.error(f"Failed to initialize Postgres store: {e}")
                raise StorageError(f"Could not initialize Postgres: {e}") from e
        return self._conn

    @contextmanager
    def _bounded(self, conn: psycopg.Connection, deadline: Optional[Deadline]):
        """Run the block in a transaction whose statement_timeout is the time left."""
        remaining = None if deadline is None else deadline.remaining()
        if remaining is None:
            yield conn
            return
        try:
            with conn.transaction():
                conn.execute(
                    "SELECT set_config('statement_timeout', %s, true)",
                    (str(max(1, int(remaining * 1000))),),
                )
                yield conn
        except psycopg.errors.QueryCanceled as e:
            raise DeadlineExceeded(f"postgres query cancelled: {e}") from e

    def document_exists(self, url: str, deadline: Optional[Deadline] = None) -> bool:
        check_deadline(deadline)
        with self._lock:
            try:
                with self._bounded(self.connection, deadline) as conn:
                    row = conn.execute(
                        "SELECT COUNT(1) FROM documents WHERE url = %s", (url,)
                    ).fetchone()
            except psycopg.Error as e:
                raise StorageError(f"document lookup failed: {e}") from e
        return row[0] > 0

    def _write_document(
        self,
        title: str,
        url: str,
        content: str,
        records: List[ChunkRecord],
        deadline: Optional[Deadline] = None,
    ) -> int:
        with self._lock:
            conn = self.connection
            try:
                with self._bounded(conn, deadline), conn.transaction():
                    row = conn.execute(
                        "INSERT INTO documents(title, url, content) VALUES (%s, %s, %s) RETURNING id",
                        (title, url, content),
                    ).fetchone()
                    document_id = row[0]
                    with conn.cursor() as cur:
                        cur.executemany(
                            "INSERT INTO embeddings(document_id, position, vector, snippet) "
                            "VALUES (%s, %s, %s, %s)",
                            [
                                (document_id, record.position, record.vector, record.snippet)
                                for record in records
                            ],
                        )
            except psycopg.Error as e:
                raise StorageError(f"document insert failed: {e}") from e
        return document_id

    def search(self, query_vector, k: int, deadline: Optional[Deadline] = None) -> List[ScoredChunk]:
        if k <= 0:
            return []
        check_deadline(deadline)
        query = as_vector(query_vector)

        with self._lock:
            try:
                with self._bounded(self.connection, deadline) as conn:
                    rows = conn.execute(SEARCH_SQL, (query, k)).fetchall()
            except psycopg.Error as e:
                raise StorageError(f"similarity search failed: {e}") from e

        results = []
        for document_id, title, url, snippet, position, distance in rows:
            # <=> is cosine distance; report it as similarity
            score = 0.0 if distance is None or np.isnan(distance) else 1.0 - float(distance)
            results.append(ScoredChunk(
                document_id=document_id,
                title=title or "",
                url=url or "",
                snippet=snippet or "",
                score=score,
                position=position,
            ))
        return results

    def deduplicate(self, deadline: Optional[Deadline] = None) -> int:
        check_deadline(deadline)
        removed = 0
        with self._lock:
            conn = self.connection
            try:
                with self._bounded(conn, deadline):
                    duplicate_ids = [row[0] for row in conn.execute(DUPLICATE_IDS_SQL).fetchall()]
                    with conn.transaction():
                        for document_id in duplicate_ids:
                            conn.execute("DELETE FROM embeddings WHERE document_id = %s", (document_id,))
                            cursor = conn.execute("DELETE FROM documents WHERE id = %s", (document_id,))
                            removed += cursor.rowcount
            except psycopg.Error as e:
                raise StorageError(f"deduplicate failed: {e}") from e

        logger.info(f"Deduplicate removed {removed} documents")
        return removed

    def clean(self, deadline: Optional[Deadline] = None) -> int:
        check_deadline(deadline)
        with self._lock:
            conn = self.connection
            try:
                with self._bounded(conn, deadline), conn.transaction():
                    conn.execute("DELETE FROM embeddings")
                    cursor = conn.execute("DELETE FROM documents")
                    removed = cursor.rowcount
            except psycopg.Error as e:
                raise StorageError(f"clean failed: {e}") from e

        logger.warning(f"Clean removed {removed} documents")
        return removed

    def count_documents(self) -> int:
        with self._lock:
            return self.connection.execute("SELECT COUNT(1) FROM documents").fetchone()[0]

    def count_chunks(self) -> int:
        with self._lock:
            return self.connection.execute("SELECT COUNT(1) FROM embeddings").fetchone()[0]

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
