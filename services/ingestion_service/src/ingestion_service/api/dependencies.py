from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, Request

from ingestion_service.domain.chunking import ChunkingService
from ingestion_service.domain.interfaces import (
    BlobStoragePort,
    DocumentRepositoryPort,
    SessionProviderPort,
)
from ingestion_service.domain.services import DocumentLibraryService, IngestionService
from ingestion_service.infrastructure.auth import GatewayHeaderSessionProvider
from ingestion_service.settings import Settings


@lru_cache
def get_settings() -> Settings:
    return Settings()


def get_storage(request: Request) -> BlobStoragePort:
    return request.app.state.storage


def get_repository(request: Request) -> DocumentRepositoryPort:
    return request.app.state.repository


def get_session_provider(request: Request) -> SessionProviderPort:
    return GatewayHeaderSessionProvider(request.headers)


def get_ingestion_service(
    storage: BlobStoragePort = Depends(get_storage),
    repository: DocumentRepositoryPort = Depends(get_repository),
    sessions: SessionProviderPort = Depends(get_session_provider),
    settings: Settings = Depends(get_settings),
) -> IngestionService:
    return IngestionService(
        storage=storage,
        repository=repository,
        sessions=sessions,
        chunker=ChunkingService(settings.chunking_config()),
        max_file_size_bytes=settings.max_document_size_bytes,
        allowed_content_types=frozenset(settings.allowed_content_types),
    )


def get_library_service(
    repository: DocumentRepositoryPort = Depends(get_repository),
    sessions: SessionProviderPort = Depends(get_session_provider),
) -> DocumentLibraryService:
    return DocumentLibraryService(repository=repository, sessions=sessions)
