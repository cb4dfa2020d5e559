from __future__ import annotations

from abc import ABC, abstractmethod

from ingestion_service.domain.models import (
    AuthSession,
    ChunkRecord,
    NewDocument,
    StoredChunk,
    StoredDocument,
)


class BlobStoragePort(ABC):
    @abstractmethod
    async def put(self, path: str, content: bytes) -> str:
        """Persist a file under an owner-namespaced path. Never overwrites; returns the stored path."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Remove a stored file."""


class DocumentRepositoryPort(ABC):
    @abstractmethod
    async def insert_document(self, document: NewDocument) -> StoredDocument:
        """Insert one document row and return it with its assigned id."""

    @abstractmethod
    async def insert_chunks(self, chunks: list[ChunkRecord]) -> list[StoredChunk]:
        """Insert all chunk rows in one batch and return them with ids."""

    @abstractmethod
    async def delete_document(self, document_id: int, owner_id: str) -> bool:
        """Delete a document row scoped to owner. Returns whether a row was removed."""

    @abstractmethod
    async def delete_chunks(self, document_id: int, owner_id: str) -> int:
        """Delete all chunks of a document scoped to owner. Returns the row count."""

    @abstractmethod
    async def get_document(self, document_id: int, owner_id: str) -> StoredDocument | None:
        """Retrieve a document by id scoped to owner."""

    @abstractmethod
    async def list_documents(self, owner_id: str) -> list[StoredDocument]:
        """Owner's documents, newest first, with chunk_count populated."""

    @abstractmethod
    async def list_chunks(
        self, owner_id: str, document_id: int | None = None
    ) -> list[StoredChunk]:
        """Owner's chunks ordered by document id, then chunk index."""

    @abstractmethod
    async def search_chunks(self, owner_id: str, query: str, limit: int) -> list[StoredChunk]:
        """Full-text search over the owner's chunk content."""


class SessionProviderPort(ABC):
    @abstractmethod
    async def get_session(self) -> AuthSession:
        """Return the caller's authenticated session."""
