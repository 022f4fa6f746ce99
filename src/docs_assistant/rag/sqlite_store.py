"""Embedded single-file vector store with linear-scan search.

Vectors live in an opaque BLOB column as little-endian float32 arrays.
Search loads every chunk and ranks by cosine similarity in Python, which is
O(stored chunks) per query and meant for small corpora.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

from ..deadline import Deadline, check_deadline
from ..errors import DeadlineExceeded, StorageError
from .types import ScoredChunk
from .vector_store import ChunkRecord, Embedder, VectorStore
from .vectors import as_vector, blob_to_vector, cosine_similarity, top_k, vector_to_blob


logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT,
    url TEXT,
    content TEXT
);
CREATE TABLE IF NOT EXISTS embeddings (
    document_id INTEGER,
    position INTEGER,
    vector BLOB,
    snippet TEXT,
    FOREIGN KEY(document_id) REFERENCES documents(id)
);
CREATE INDEX IF NOT EXISTS idx_embeddings_doc ON embeddings(document_id);
CREATE INDEX IF NOT EXISTS idx_documents_url ON documents(url);
"""

# SQLite VM instructions between deadline checks while a statement runs
PROGRESS_INTERVAL = 1000

DUPLICATE_IDS_SQL = """
SELECT id FROM documents d
WHERE EXISTS (
    SELECT 1 FROM documents d2
    WHERE d2.url = d.url AND d2.id < d.id
)
ORDER BY id
"""


class SQLiteVectorStore(VectorStore):
    """SQLite-backed store (linear-scan backend).

    One connection is shared by all callers and serialized with a lock.

    Attributes:
        db_path: Path to the SQLite database file
    """

    backend_name = "sqlite"

    def __init__(
        self,
        db_path,
        embedder: Embedder,
        embedding_dim: int,
        chunk_words: int = 800,
        snippet_chars: int = 160,
    ):
        super().__init__(embedder, embedding_dim, chunk_words, snippet_chars)
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        logger.info(f"SQLiteVectorStore initialized: db_path={self.db_path}, dim={embedding_dim}")

    @property
    def connection(self) -> sqlite3.Connection:
        """Lazily open the database and create the schema.

        Raises:
            StorageError: If the database cannot be opened or initialized
        """
        if self._conn is None:
            try:
                if str(self.db_path) != ":memory:":
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
                conn.execute("PRAGMA journal_mode=WAL;")
                conn.execute("PRAGMA synchronous=NORMAL;")
                conn.execute("PRAGMA busy_timeout=5000;")
                conn.executescript(SCHEMA)
                conn.commit()
                self._conn = conn
                logger.info(f"SQLite database ready: {self.db_path}")
            except (sqlite3.Error, OSError) as e:
                logger.error(f"Failed to open SQLite database {self.db_path}: {e}")
                raise StorageError(f"Could not open SQLite database: {e}") from e
        return self._conn

    @contextmanager
    def _bounded(self, conn: sqlite3.Connection, deadline: Optional[Deadline]):
        """Interrupt statements that are still running when the deadline expires."""
        if deadline is None:
            yield conn
            return
        conn.set_progress_handler(lambda: 1 if deadline.expired else 0, PROGRESS_INTERVAL)
        try:
            yield conn
        except sqlite3.OperationalError as e:
            if deadline.expired:
                raise DeadlineExceeded(f"sqlite query interrupted: {e}") from e
            raise
        finally:
            conn.set_progress_handler(None, PROGRESS_INTERVAL)

    def document_exists(self, url: str, deadline: Optional[Deadline] = None) -> bool:
        check_deadline(deadline)
        with self._lock:
            try:
                with self._bounded(self.connection, deadline) as conn:
                    row = conn.execute(
                        "SELECT COUNT(1) FROM documents WHERE url = ?", (url,)
                    ).fetchone()
            except sqlite3.Error as e:
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
                with self._bounded(conn, deadline), conn:
                    cursor = conn.execute(
                        "INSERT INTO documents(title, url, content) VALUES (?, ?, ?)",
                        (title, url, content),
                    )
                    document_id = cursor.lastrowid
                    conn.executemany(
                        "INSERT INTO embeddings(document_id, position, vector, snippet) VALUES (?, ?, ?, ?)",
                        [
                            (document_id, record.position, vector_to_blob(record.vector), record.snippet)
                            for record in records
                        ],
                    )
            except sqlite3.Error as e:
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
                    rows = conn.execute(
                        "SELECT d.id, d.title, d.url, e.snippet, e.position, e.vector "
                        "FROM embeddings e JOIN documents d ON d.id = e.document_id "
                        "ORDER BY e.rowid"
                    ).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"similarity search failed: {e}") from e

        candidates = []
        scores = []
        for document_id, title, url, snippet, position, blob in rows:
            score = cosine_similarity(blob_to_vector(blob), query)
            candidates.append(ScoredChunk(
                document_id=document_id,
                title=title or "",
                url=url or "",
                snippet=snippet or "",
                score=score,
                position=position,
            ))
            scores.append(score)

        results = top_k(candidates, scores, k)
        logger.debug(f"Linear scan over {len(rows)} chunks returned {len(results)} results")
        return results

    def deduplicate(self, deadline: Optional[Deadline] = None) -> int:
        check_deadline(deadline)
        removed = 0
        with self._lock:
            conn = self.connection
            try:
                with self._bounded(conn, deadline):
                    duplicate_ids = [row[0] for row in conn.execute(DUPLICATE_IDS_SQL).fetchall()]
                    with conn:
                        for document_id in duplicate_ids:
                            conn.execute("DELETE FROM embeddings WHERE document_id = ?", (document_id,))
                            cursor = conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
                            removed += cursor.rowcount
            except sqlite3.Error as e:
                raise StorageError(f"deduplicate failed: {e}") from e

        logger.info(f"Deduplicate removed {removed} documents")
        return removed

    def clean(self, deadline: Optional[Deadline] = None) -> int:
        check_deadline(deadline)
        with self._lock:
            conn = self.connection
            try:
                with self._bounded(conn, deadline), conn:
                    conn.execute("DELETE FROM embeddings")
                    cursor = conn.execute("DELETE FROM documents")
                    removed = cursor.rowcount
            except sqlite3.Error as e:
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
