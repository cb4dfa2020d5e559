from __future__ import annotations

import json
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

import structlog
from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Integer,
    MetaData,
    Table,
    Text,
    insert,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from ingestion_service.domain.exceptions import StorageError
from ingestion_service.domain.interfaces import DocumentRepositoryPort
from ingestion_service.domain.models import (
    ChunkMetadata,
    ChunkRecord,
    NewDocument,
    SourceMetadata,
    StoredChunk,
    StoredDocument,
)

logger = structlog.get_logger(__name__)

# ``embedding vector NULL`` exists on both tables but is written only by the
# external embedding workflow, so it is left out of the insert tables.
_metadata = MetaData()

documents_table = Table(
    "documents",
    _metadata,
    Column("id", BigInteger, primary_key=True),
    Column("owner_id", Text, nullable=False),
    Column("content", Text, nullable=False),
    Column("metadata", JSONB, nullable=False),
    Column("created_at", DateTime(timezone=True)),
)

document_chunks_table = Table(
    "document_chunks",
    _metadata,
    Column("id", BigInteger, primary_key=True),
    Column("document_id", BigInteger, nullable=False),
    Column("owner_id", Text, nullable=False),
    Column("content", Text, nullable=False),
    Column("chunk_index", Integer, nullable=False),
    Column("start_offset", Integer, nullable=False),
    Column("end_offset", Integer, nullable=False),
    Column("metadata", JSONB, nullable=False),
    Column("created_at", DateTime(timezone=True)),
)

_CHUNK_COLUMNS = """
    id, document_id, owner_id, content, chunk_index,
    start_offset, end_offset, metadata,
    embedding::text AS embedding, created_at
"""


def _load_json(value: Any) -> Any:
    if value is None or not isinstance(value, str):
        return value
    return json.loads(value)


def _row_to_document(row: Mapping[str, Any]) -> StoredDocument:
    return StoredDocument(
        id=row["id"],
        owner_id=row["owner_id"],
        raw_content=row["content"],
        source_metadata=SourceMetadata.model_validate(_load_json(row["metadata"])),
        embedding=_load_json(row.get("embedding")),
        created_at=row.get("created_at"),
        chunk_count=row.get("chunk_count"),
    )


def _row_to_chunk(row: Mapping[str, Any]) -> StoredChunk:
    return StoredChunk(
        id=row["id"],
        document_id=row["document_id"],
        owner_id=row["owner_id"],
        content=row["content"],
        chunk_index=row["chunk_index"],
        start_offset=row["start_offset"],
        end_offset=row["end_offset"],
        metadata=ChunkMetadata.model_validate(_load_json(row["metadata"])),
        embedding=_load_json(row.get("embedding")),
        created_at=row.get("created_at"),
    )


class PostgresDocumentRepository(DocumentRepositoryPort):
    """``documents`` / ``document_chunks`` tables.

    ``document_chunks.document_id`` references ``documents.id`` with
    ``ON DELETE CASCADE``. Every statement is filtered by ``owner_id``.
    """

    def __init__(self, database_url: str, pool_size: int = 5, max_overflow: int = 10) -> None:
        self._engine: AsyncEngine = create_async_engine(
            database_url, pool_size=pool_size, max_overflow=max_overflow
        )
        self._session_factory = sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("repository.operation.failed", operation=operation, error=str(exc))
            raise StorageError(f"{operation}: {exc}") from exc

    async def insert_document(self, document: NewDocument) -> StoredDocument:
        stmt = (
            insert(documents_table)
            .values(
                owner_id=document.owner_id,
                content=document.raw_content,
                metadata=document.source_metadata.model_dump(mode="json"),
            )
            .returning(*documents_table.c)
        )

        async with self._session("insert_document") as session:
            result = await session.execute(stmt)
            row = result.mappings().one()
            await session.commit()

        logger.debug("repository.document.saved", document_id=row["id"], owner_id=document.owner_id)
        return _row_to_document(row)

    async def insert_chunks(self, chunks: list[ChunkRecord]) -> list[StoredChunk]:
        if not chunks:
            return []

        rows = [
            {
                "document_id": chunk.document_id,
                "owner_id": chunk.owner_id,
                "content": chunk.content,
                "chunk_index": chunk.chunk_index,
                "start_offset": chunk.start_offset,
                "end_offset": chunk.end_offset,
                "metadata": chunk.metadata.model_dump(mode="json"),
            }
            for chunk in chunks
        ]
        stmt = insert(document_chunks_table).values(rows).returning(*document_chunks_table.c)

        async with self._session("insert_chunks") as session:
            result = await session.execute(stmt)
            stored = [_row_to_chunk(row) for row in result.mappings().all()]
            await session.commit()

        logger.info(
            "repository.chunks.saved",
            document_id=chunks[0].document_id,
            chunk_count=len(stored),
        )
        return sorted(stored, key=lambda c: c.chunk_index)

    async def delete_document(self, document_id: int, owner_id: str) -> bool:
        sql = text("DELETE FROM documents WHERE id = :id AND owner_id = :owner_id")

        async with self._session("delete_document") as session:
            result = await session.execute(sql, {"id": document_id, "owner_id": owner_id})
            await session.commit()

        return result.rowcount > 0

    async def delete_chunks(self, document_id: int, owner_id: str) -> int:
        sql = text("""
            DELETE FROM document_chunks
            WHERE document_id = :document_id AND owner_id = :owner_id
        """)

        async with self._session("delete_chunks") as session:
            result = await session.execute(
                sql, {"document_id": document_id, "owner_id": owner_id}
            )
            await session.commit()

        return result.rowcount

    async def get_document(self, document_id: int, owner_id: str) -> StoredDocument | None:
        sql = text("""
            SELECT id, owner_id, content, metadata,
                   embedding::text AS embedding, created_at
            FROM documents
            WHERE id = :id AND owner_id = :owner_id
        """)

        async with self._session("get_document") as session:
            result = await session.execute(sql, {"id": document_id, "owner_id": owner_id})
            row = result.mappings().first()

        if not row:
            return None
        return _row_to_document(row)

    async def list_documents(self, owner_id: str) -> list[StoredDocument]:
        sql = text("""
            SELECT d.id, d.owner_id, d.content, d.metadata,
                   d.embedding::text AS embedding, d.created_at,
                   (SELECT count(*) FROM document_chunks c
                     WHERE c.document_id = d.id) AS chunk_count
            FROM documents d
            WHERE d.owner_id = :owner_id
            ORDER BY d.id DESC
        """)

        async with self._session("list_documents") as session:
            result = await session.execute(sql, {"owner_id": owner_id})
            rows = result.mappings().all()

        return [_row_to_document(row) for row in rows]

    async def list_chunks(
        self, owner_id: str, document_id: int | None = None
    ) -> list[StoredChunk]:
        params: dict[str, Any] = {"owner_id": owner_id}
        where = "owner_id = :owner_id"
        if document_id is not None:
            where += " AND document_id = :document_id"
            params["document_id"] = document_id

        sql = text(f"""
            SELECT {_CHUNK_COLUMNS}
            FROM document_chunks
            WHERE {where}
            ORDER BY document_id ASC, chunk_index ASC
        """)

        async with self._session("list_chunks") as session:
            result = await session.execute(sql, params)
            rows = result.mappings().all()

        return [_row_to_chunk(row) for row in rows]

    async def search_chunks(self, owner_id: str, query: str, limit: int) -> list[StoredChunk]:
        sql = text(f"""
            SELECT {_CHUNK_COLUMNS}
            FROM document_chunks
            WHERE owner_id = :owner_id
              AND to_tsvector('english', content) @@ plainto_tsquery('english', :query)
            ORDER BY ts_rank(to_tsvector('english', content),
                             plainto_tsquery('english', :query)) DESC,
                     document_id ASC, chunk_index ASC
            LIMIT :limit
        """)

        async with self._session("search_chunks") as session:
            result = await session.execute(
                sql, {"owner_id": owner_id, "query": query, "limit": limit}
            )
            rows = result.mappings().all()

        return [_row_to_chunk(row) for row in rows]

    async def dispose(self) -> None:
        await self._engine.dispose()
