"""SQLite repository for lease documents and organization membership."""
from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Iterable

from domain.entities import Document, DocumentStatus
from domain.errors import StoreUnavailable
from domain.interfaces import DocumentRepository, EntitlementSource


_ID_BATCH = 500


class SqliteDocumentRepository(DocumentRepository, EntitlementSource):
    """Keeps document metadata in SQLite and answers entitlement lookups.

    A user may read a document when they belong to the organization that owns
    it.
    """

    def __init__(self, db_path: str | Path = "lease_retrieval.db") -> None:
        self._db_path = Path(db_path)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path)

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    version INTEGER NOT NULL
                )
                """
            )
            conn.execute(
                """
                INSERT OR IGNORE INTO schema_version (id, version) VALUES (1, 1)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS leases (
                    id TEXT PRIMARY KEY,
                    organization_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    status TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS organization_members (
                    user_id TEXT NOT NULL,
                    organization_id TEXT NOT NULL,
                    PRIMARY KEY (user_id, organization_id)
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_leases_organization_id ON leases (organization_id)")

    def add(self, document: Document) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                REPLACE INTO leases (id, organization_id, title, status)
                VALUES (?, ?, ?, ?)
                """,
                (document.id, document.organization_id, document.title, DocumentStatus(document.status).value),
            )

    def add_member(self, user_id: str, organization_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO organization_members (user_id, organization_id) VALUES (?, ?)",
                (user_id, organization_id),
            )

    def list(self) -> list[Document]:
        with self._connect() as conn:
            rows = conn.execute("SELECT id, organization_id, title, status FROM leases ORDER BY id").fetchall()
        return [self._row_to_document(row) for row in rows]

    def get(self, document_id: str) -> Document | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, organization_id, title, status FROM leases WHERE id = ?",
                (document_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_document(row)

    def readable_documents(self, user_id: str, document_ids: Iterable[str]) -> list[Document]:
        ids = sorted(set(document_ids))
        if not ids:
            return []
        documents: list[Document] = []
        try:
            with self._connect() as conn:
                for start in range(0, len(ids), _ID_BATCH):
                    batch = ids[start : start + _ID_BATCH]
                    placeholders = ", ".join("?" for _ in batch)
                    rows = conn.execute(
                        f"""
                        SELECT l.id, l.organization_id, l.title, l.status
                        FROM leases AS l
                        JOIN organization_members AS m ON m.organization_id = l.organization_id
                        WHERE m.user_id = ? AND l.id IN ({placeholders})
                        """,
                        (user_id, *batch),
                    ).fetchall()
                    documents.extend(self._row_to_document(row) for row in rows)
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"entitlement source unavailable: {exc}") from exc
        return documents

    def organization_document_ids(self, organization_id: str) -> list[str]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT id FROM leases WHERE organization_id = ? ORDER BY id",
                    (organization_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"entitlement source unavailable: {exc}") from exc
        return [row[0] for row in rows]

    @staticmethod
    def _row_to_document(row: tuple) -> Document:
        return Document(id=row[0], organization_id=row[1], title=row[2], status=DocumentStatus(row[3]))


__all__ = ["SqliteDocumentRepository"]
