"""SQLite-backed document and fragment store.

# ─── ARCHITECTURE ROLE ───────────────────────────────────────────────
#
# Layer: Providers (concrete adapter implementing IDocumentStore).
#
# Database: ``data/documents.db`` with two tables:
#
#   documents  — one row per upload, UNIQUE(content_hash, scope_id) so an
#                identical file uploaded twice to a scope has one row.
#   fragments  — ordered text slices with their embedding as a JSON array,
#                UNIQUE(document_id, fragment_order) and
#                ON DELETE CASCADE from documents.
#
# Uses ``aiosqlite`` for async I/O, ``PRAGMA journal_mode=WAL`` for
# concurrent read safety and ``PRAGMA foreign_keys=ON`` on every
# connection so the cascade fires.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator

import aiosqlite
import structlog

from docrag.interfaces.document_store import IDocumentStore
from docrag.models.document import Document, DocumentStatus, Fragment
from docrag.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/documents.db")

# ── Schema DDL ────────────────────────────────────────────────────────

_CREATE_DOCUMENTS_TABLE = """\
CREATE TABLE IF NOT EXISTS documents (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id       TEXT    NOT NULL UNIQUE,
    scope_id          TEXT    NOT NULL,
    original_filename TEXT    NOT NULL,
    stored_filename   TEXT    NOT NULL,
    content_type      TEXT    NOT NULL,
    size_bytes        INTEGER NOT NULL,
    content_hash      TEXT    NOT NULL,
    status            TEXT    NOT NULL DEFAULT 'PENDING',
    fragment_count    INTEGER NOT NULL DEFAULT 0,
    error_message     TEXT,
    created_at        TEXT    NOT NULL,
    processed_at      TEXT,
    UNIQUE(content_hash, scope_id)
);
"""

_CREATE_FRAGMENTS_TABLE = """\
CREATE TABLE IF NOT EXISTS fragments (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    fragment_id    TEXT    NOT NULL UNIQUE,
    document_id    TEXT    NOT NULL REFERENCES documents(document_id) ON DELETE CASCADE,
    fragment_order INTEGER NOT NULL,
    content        TEXT    NOT NULL,
    token_estimate INTEGER NOT NULL DEFAULT 0,
    embedding      TEXT,
    UNIQUE(document_id, fragment_order)
);
"""

_CREATE_INDICES = [
    "CREATE INDEX IF NOT EXISTS idx_documents_scope ON documents(scope_id);",
    "CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status);",
    "CREATE INDEX IF NOT EXISTS idx_fragments_document ON fragments(document_id);",
]

# ── DML ───────────────────────────────────────────────────────────────

_DOCUMENT_COLUMNS = """\
document_id, scope_id, original_filename, stored_filename, content_type,
size_bytes, content_hash, status, fragment_count, error_message,
created_at, processed_at"""

_INSERT_DOCUMENT = f"""\
INSERT INTO documents ({_DOCUMENT_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_DOCUMENT = f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE document_id = ?;"

_SELECT_BY_HASH = (
    f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE content_hash = ? AND scope_id = ?;"
)

_SELECT_ALL_DOCUMENTS = f"SELECT {_DOCUMENT_COLUMNS} FROM documents ORDER BY created_at DESC, id DESC;"

_SELECT_SCOPE_DOCUMENTS = f"""\
SELECT {_DOCUMENT_COLUMNS} FROM documents
WHERE scope_id = ?
ORDER BY created_at DESC, id DESC;
"""

_SELECT_BY_STATUS = f"""\
SELECT {_DOCUMENT_COLUMNS} FROM documents
WHERE status = ?
ORDER BY created_at ASC, id ASC;
"""

_UPDATE_STATUS = """\
UPDATE documents
SET status = ?,
    error_message = COALESCE(?, error_message),
    fragment_count = COALESCE(?, fragment_count),
    processed_at = COALESCE(?, processed_at)
WHERE document_id = ?;
"""

_DELETE_DOCUMENT = "DELETE FROM documents WHERE document_id = ?;"

_INSERT_FRAGMENT = """\
INSERT INTO fragments (fragment_id, document_id, fragment_order, content, token_estimate, embedding)
VALUES (?, ?, ?, ?, ?, ?);
"""

_SELECT_FRAGMENTS = """\
SELECT fragment_id, document_id, fragment_order, content, token_estimate, embedding
FROM fragments
WHERE document_id = ?
ORDER BY fragment_order ASC;
"""

_DELETE_FRAGMENTS = "DELETE FROM fragments WHERE document_id = ?;"

_SELECT_EMBEDDED_FRAGMENTS = """\
SELECT f.fragment_id, f.document_id, f.fragment_order, f.content, f.token_estimate, f.embedding,
       {doc_columns}
FROM fragments f
JOIN documents d ON d.document_id = f.document_id
WHERE d.status = ? AND f.embedding IS NOT NULL {scope_clause}
ORDER BY d.created_at ASC, d.id ASC, f.fragment_order ASC;
"""

_DOC_COLUMNS_PREFIXED = ", ".join(
    f"d.{col.strip()}" for col in _DOCUMENT_COLUMNS.replace("\n", " ").split(",")
)


class SQLiteDocumentStore(IDocumentStore):
    """SQLite persistence for documents and their fragments.

    Every public method opens its own connection, mirroring the other
    aiosqlite providers; failures surface as :class:`StorageError`.
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def get_provider_name(self) -> str:
        return "sqlite"

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute("PRAGMA foreign_keys=ON;")
                yield db
        except aiosqlite.Error as exc:
            raise StorageError(
                message=f"SQLite operation failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            # WAL mode enables concurrent readers while a writer is active.
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute(_CREATE_DOCUMENTS_TABLE)
            await db.execute(_CREATE_FRAGMENTS_TABLE)
            for idx_sql in _CREATE_INDICES:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("document_db_initialized", path=str(self._db_path))

    async def close(self) -> None:
        """Nothing to release; connections are per call."""

    # ── Documents ──────────────────────────────────────────────────────

    async def add_document(self, document: Document) -> None:
        async with self._connect() as db:
            await db.execute(_INSERT_DOCUMENT, self._document_to_row(document))
            await db.commit()
        logger.debug("document_added", document_id=document.document_id, scope_id=document.scope_id)

    async def get_document(self, document_id: str) -> Document | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_DOCUMENT, (document_id,))
            row = await cursor.fetchone()
        return self._row_to_document(row) if row else None

    async def find_by_hash(self, content_hash: str, scope_id: str) -> Document | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_BY_HASH, (content_hash, scope_id))
            row = await cursor.fetchone()
        return self._row_to_document(row) if row else None

    async def list_documents(self, scope_id: str | None = None) -> list[Document]:
        async with self._connect() as db:
            if scope_id is None:
                cursor = await db.execute(_SELECT_ALL_DOCUMENTS)
            else:
                cursor = await db.execute(_SELECT_SCOPE_DOCUMENTS, (scope_id,))
            rows = await cursor.fetchall()
        return [self._row_to_document(r) for r in rows]

    async def list_by_status(self, status: DocumentStatus) -> list[Document]:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_BY_STATUS, (status.value,))
            rows = await cursor.fetchall()
        return [self._row_to_document(r) for r in rows]

    async def count_documents(
        self,
        scope_id: str | None = None,
        status: DocumentStatus | None = None,
    ) -> int:
        clauses: list[str] = []
        params: list[str] = []
        if scope_id is not None:
            clauses.append("scope_id = ?")
            params.append(scope_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        sql = "SELECT COUNT(*) FROM documents"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)

        async with self._connect() as db:
            cursor = await db.execute(sql, params)
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        error_message: str | None = None,
        fragment_count: int | None = None,
        processed_at: datetime | None = None,
    ) -> None:
        async with self._connect() as db:
            cursor = await db.execute(
                _UPDATE_STATUS,
                (
                    status.value,
                    error_message,
                    fragment_count,
                    processed_at.isoformat() if processed_at else None,
                    document_id,
                ),
            )
            await db.commit()
            updated = cursor.rowcount
        if updated == 0:
            raise StorageError(
                message=f"Document {document_id} not found",
                provider_name=self.get_provider_name(),
            )
        logger.debug("document_status_updated", document_id=document_id, status=status.value)

    async def delete_document(self, document_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(_DELETE_DOCUMENT, (document_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        logger.info("document_deleted", document_id=document_id, deleted=deleted)
        return deleted

    # ── Fragments ──────────────────────────────────────────────────────

    async def add_fragments(self, fragments: list[Fragment]) -> None:
        """Insert all fragments in a single transaction.

        Nothing is committed if any row fails (duplicate order, missing
        parent document, ...).
        """
        if not fragments:
            return
        rows = [
            (
                f.fragment_id,
                f.document_id,
                f.order,
                f.content,
                f.token_estimate,
                json.dumps(f.embedding) if f.embedding is not None else None,
            )
            for f in fragments
        ]
        async with self._connect() as db:
            await db.executemany(_INSERT_FRAGMENT, rows)
            await db.commit()
        logger.debug("fragments_added", document_id=fragments[0].document_id, count=len(rows))

    async def get_fragments(self, document_id: str) -> list[Fragment]:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_FRAGMENTS, (document_id,))
            rows = await cursor.fetchall()
        return [self._row_to_fragment(r) for r in rows]

    async def get_embedded_fragments(
        self,
        scope_id: str | None,
        status: DocumentStatus = DocumentStatus.COMPLETED,
    ) -> list[tuple[Fragment, Document]]:
        params: list[str] = [status.value]
        scope_clause = ""
        if scope_id is not None:
            scope_clause = "AND d.scope_id = ?"
            params.append(scope_id)
        sql = _SELECT_EMBEDDED_FRAGMENTS.format(
            doc_columns=_DOC_COLUMNS_PREFIXED, scope_clause=scope_clause
        )

        async with self._connect() as db:
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        return [(self._row_to_fragment(r[:6]), self._row_to_document(r[6:])) for r in rows]

    async def _delete_fragments(self, document_id: str) -> None:
        async with self._connect() as db:
            await db.execute(_DELETE_FRAGMENTS, (document_id,))
            await db.commit()

    async def _get_documents(self, document_ids: list[str]) -> dict[str, Document]:
        if not document_ids:
            return {}
        placeholders = ", ".join("?" for _ in document_ids)
        sql = f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE document_id IN ({placeholders});"
        async with self._connect() as db:
            cursor = await db.execute(sql, document_ids)
            rows = await cursor.fetchall()
        documents = [self._row_to_document(r) for r in rows]
        return {d.document_id: d for d in documents}

    # ── Row mapping ────────────────────────────────────────────────────

    @staticmethod
    def _document_to_row(document: Document) -> tuple:
        return (
            document.document_id,
            document.scope_id,
            document.original_filename,
            document.stored_filename,
            document.content_type,
            document.size_bytes,
            document.content_hash,
            document.status.value,
            document.fragment_count,
            document.error_message,
            document.created_at.isoformat(),
            document.processed_at.isoformat() if document.processed_at else None,
        )

    @staticmethod
    def _row_to_document(row: tuple | aiosqlite.Row) -> Document:
        return Document(
            document_id=row[0],
            scope_id=row[1],
            original_filename=row[2],
            stored_filename=row[3],
            content_type=row[4],
            size_bytes=row[5],
            content_hash=row[6],
            status=DocumentStatus(row[7]),
            fragment_count=row[8],
            error_message=row[9],
            created_at=datetime.fromisoformat(row[10]),
            processed_at=datetime.fromisoformat(row[11]) if row[11] else None,
        )

    @staticmethod
    def _row_to_fragment(row: tuple | aiosqlite.Row) -> Fragment:
        return Fragment(
            fragment_id=row[0],
            document_id=row[1],
            order=row[2],
            content=row[3],
            token_estimate=row[4],
            embedding=json.loads(row[5]) if row[5] else None,
        )
