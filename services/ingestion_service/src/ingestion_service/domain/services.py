from __future__ import annotations

import re
import time
import uuid

import structlog

from ingestion_service.domain.chunking import ChunkingService
from ingestion_service.domain.exceptions import (
    AuthorizationError,
    ChunkInvariantError,
    DocumentNotFoundError,
    DocumentTooLargeError,
    EmptyDocumentError,
    IngestionError,
    MissingFileError,
    UnsupportedContentTypeError,
)
from ingestion_service.domain.extraction import TextExtractionService
from ingestion_service.domain.interfaces import (
    BlobStoragePort,
    DocumentRepositoryPort,
    SessionProviderPort,
)
from ingestion_service.domain.models import (
    ChunkMetadata,
    ChunkRecord,
    ChunkResult,
    ChunkStats,
    DeletionResult,
    IngestionResult,
    NewDocument,
    SourceMetadata,
    StoredChunk,
    StoredDocument,
    UploadedFile,
)
from ingestion_service.domain.progress import ProgressCallback
from ingestion_service.domain.saga import CompensatingTransaction
from shared.events.ingestion_events import IngestionProgressEvent, IngestionStage

logger = structlog.get_logger(__name__)

ALLOWED_CONTENT_TYPES = frozenset({
    "text/plain",
    "text/markdown",
    "application/json",
    "text/csv",
})
MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10 MiB

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def build_storage_path(owner_id: str, filename: str, timestamp_ms: int | None = None) -> str:
    """``<owner>/<epoch ms>_<sanitized name>``."""
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    clean_name = _UNSAFE_FILENAME_CHARS.sub("_", filename)
    return f"{owner_id}/{timestamp_ms}_{clean_name}"


def _check_offsets(result: ChunkResult, previous_start: int) -> None:
    if (
        not result.content
        or result.start_offset < 0
        or result.end_offset <= result.start_offset
        or result.start_offset <= previous_start
    ):
        raise ChunkInvariantError(result.index, result.start_offset, result.end_offset)


class SessionGuard:
    """Checks the caller's session against the asserted owner before storage access."""

    def __init__(self, sessions: SessionProviderPort) -> None:
        self._sessions = sessions

    async def require_owner(self, owner_id: str) -> None:
        try:
            session = await self._sessions.get_session()
        except AuthorizationError:
            raise
        except Exception as exc:
            logger.warning("auth.session.lookup_failed", error=str(exc))
            raise AuthorizationError(f"Authentication check failed: {exc}") from exc

        if not session.authenticated or not session.owner_id:
            raise AuthorizationError("No active session")
        if session.owner_id != owner_id:
            logger.warning("auth.owner.mismatch", asserted_owner_id=owner_id)
            raise AuthorizationError("User ID mismatch")


class IngestionService:
    """Drives one upload through validate, extract, upload, chunk and persist."""

    def __init__(
        self,
        storage: BlobStoragePort,
        repository: DocumentRepositoryPort,
        sessions: SessionProviderPort,
        chunker: ChunkingService | None = None,
        extractor: TextExtractionService | None = None,
        max_file_size_bytes: int = MAX_FILE_SIZE_BYTES,
        allowed_content_types: frozenset[str] = ALLOWED_CONTENT_TYPES,
    ) -> None:
        self._storage = storage
        self._repository = repository
        self._guard = SessionGuard(sessions)
        self._chunker = chunker or ChunkingService()
        self._extractor = extractor or TextExtractionService()
        self._max_file_size_bytes = max_file_size_bytes
        self._allowed_content_types = allowed_content_types

    async def upload_and_process(
        self,
        file: UploadedFile | None,
        owner_id: str,
        on_progress: ProgressCallback | None = None,
        correlation_id: str | None = None,
    ) -> IngestionResult:
        correlation_id = correlation_id or str(uuid.uuid4())
        log = logger.bind(
            owner_id=owner_id,
            correlation_id=correlation_id,
            filename=file.filename if file else None,
        )
        progress = _ProgressReporter(on_progress, correlation_id, owner_id, log)

        try:
            document, chunks = await self._ingest(file, owner_id, progress, log)
        except IngestionError as exc:
            log.warning(
                "ingestion.failed",
                stage=progress.stage.value,
                error_code=exc.error_code,
                error=str(exc),
            )
            progress.report(IngestionStage.ERROR, progress.percentage, str(exc))
            return IngestionResult(success=False, error=str(exc), error_code=exc.error_code)
        except Exception as exc:
            log.error(
                "ingestion.failed.unexpected",
                stage=progress.stage.value,
                error=str(exc),
                exc_info=True,
            )
            message = "Upload and processing failed"
            progress.report(IngestionStage.ERROR, progress.percentage, message)
            return IngestionResult(success=False, error=message, error_code="INTERNAL_ERROR")

        progress.report(
            IngestionStage.COMPLETED,
            100,
            f"Document processed with {len(chunks)} chunks",
        )
        return IngestionResult(success=True, document=document, chunks=chunks)

    async def _ingest(
        self,
        file: UploadedFile | None,
        owner_id: str,
        progress: _ProgressReporter,
        log: structlog.stdlib.BoundLogger,
    ) -> tuple[StoredDocument, list[StoredChunk]]:
        progress.report(IngestionStage.VALIDATING, 5, "Validating file...")
        file = self._validate(file, log)

        progress.report(IngestionStage.EXTRACTING, 15, "Extracting text content...")
        text = self._extractor.extract(file.content, file.content_type)
        if not text.strip():
            log.warning("ingestion.rejected.empty_content")
            raise EmptyDocumentError()

        async with CompensatingTransaction(name="ingest_document") as tx:
            progress.report(IngestionStage.UPLOADING, 30, "Uploading file...")
            await self._guard.require_owner(owner_id)
            storage_path = await self._storage.put(
                build_storage_path(owner_id, file.filename), file.content
            )
            tx.push("delete_blob", lambda: self._storage.delete(storage_path))
            progress.report(IngestionStage.UPLOADING, 70, "Upload completed")

            progress.report(IngestionStage.CHUNKING, 80, "Chunking document...")
            results = self._chunker.chunk(text)

            progress.report(IngestionStage.PERSISTING, 85, "Creating document record...")
            document = await self._repository.insert_document(
                NewDocument(
                    owner_id=owner_id,
                    raw_content=text,
                    source_metadata=SourceMetadata(
                        original_name=file.filename,
                        file_size_bytes=file.size_bytes,
                        mime_type=file.content_type,
                        storage_path=storage_path,
                    ),
                )
            )
            tx.push(
                "delete_document",
                lambda: self._repository.delete_document(document.id, owner_id),
            )

            records = self._build_chunk_records(results, document, log)
            chunks = await self._repository.insert_chunks(records)

        log.info(
            "ingestion.document.accepted",
            document_id=document.id,
            file_size_bytes=file.size_bytes,
            storage_path=storage_path,
            chunk_count=len(chunks),
        )
        return document, chunks

    def _validate(
        self, file: UploadedFile | None, log: structlog.stdlib.BoundLogger
    ) -> UploadedFile:
        if file is None:
            log.warning("ingestion.rejected.missing_file")
            raise MissingFileError()

        if file.size_bytes > self._max_file_size_bytes:
            log.warning(
                "ingestion.rejected.file_too_large",
                size_bytes=file.size_bytes,
                limit_bytes=self._max_file_size_bytes,
            )
            raise DocumentTooLargeError(file.size_bytes, self._max_file_size_bytes)

        if file.content_type not in self._allowed_content_types:
            log.warning("ingestion.rejected.unsupported_type", content_type=file.content_type)
            raise UnsupportedContentTypeError(file.content_type)

        return file

    def _build_chunk_records(
        self,
        results: list[ChunkResult],
        document: StoredDocument,
        log: structlog.stdlib.BoundLogger,
    ) -> list[ChunkRecord]:
        config = self._chunker.config
        records: list[ChunkRecord] = []
        previous_start = -1

        for result in results:
            try:
                _check_offsets(result, previous_start)
            except ChunkInvariantError as exc:
                # One lost chunk is preferable to losing the whole document.
                log.error(
                    "ingestion.chunk.skipped",
                    error_code=exc.error_code,
                    chunk_index=exc.index,
                    error=str(exc),
                )
                continue

            previous_start = result.start_offset
            records.append(
                ChunkRecord(
                    document_id=document.id,
                    owner_id=document.owner_id,
                    content=result.content,
                    chunk_index=len(records),
                    start_offset=result.start_offset,
                    end_offset=result.end_offset,
                    metadata=ChunkMetadata(
                        chunk_size=len(result.content),
                        overlap_size=config.overlap_size,
                        chunking_method=config.method,
                        word_count=result.word_count,
                        sentence_count=result.sentence_count,
                        parent_document_name=document.source_metadata.original_name,
                    ),
                )
            )
        return records

    async def delete_document(self, document_id: int, owner_id: str) -> DeletionResult:
        """Remove a document, its chunks and its stored file."""
        log = logger.bind(owner_id=owner_id, document_id=document_id)
        try:
            await self._guard.require_owner(owner_id)

            document = await self._repository.get_document(document_id, owner_id)
            if document is None:
                raise DocumentNotFoundError(document_id)

            deleted_chunks = await self._repository.delete_chunks(document_id, owner_id)

            storage_path = document.source_metadata.storage_path
            if storage_path:
                try:
                    await self._storage.delete(storage_path)
                except IngestionError as exc:
                    log.error("deletion.blob.failed", path=storage_path, error=str(exc))

            if not await self._repository.delete_document(document_id, owner_id):
                raise DocumentNotFoundError(document_id)
        except IngestionError as exc:
            log.warning("deletion.failed", error_code=exc.error_code, error=str(exc))
            return DeletionResult(success=False, error=str(exc), error_code=exc.error_code)
        except Exception as exc:
            log.error("deletion.failed.unexpected", error=str(exc), exc_info=True)
            return DeletionResult(success=False, error="Delete failed", error_code="INTERNAL_ERROR")

        log.info("deletion.document.removed", chunk_count=deleted_chunks)
        return DeletionResult(success=True)


class DocumentLibraryService:
    """Owner-scoped read access to documents and chunks."""

    def __init__(
        self,
        repository: DocumentRepositoryPort,
        sessions: SessionProviderPort,
    ) -> None:
        self._repository = repository
        self._guard = SessionGuard(sessions)

    async def list_documents(self, owner_id: str) -> list[StoredDocument]:
        await self._guard.require_owner(owner_id)
        return await self._repository.list_documents(owner_id)

    async def list_chunks(
        self, owner_id: str, document_id: int | None = None
    ) -> list[StoredChunk]:
        await self._guard.require_owner(owner_id)
        return await self._repository.list_chunks(owner_id, document_id)

    async def search_chunks(self, owner_id: str, query: str, limit: int = 10) -> list[StoredChunk]:
        await self._guard.require_owner(owner_id)
        if not query.strip():
            return []
        chunks = await self._repository.search_chunks(owner_id, query, limit)
        logger.info(
            "library.search.completed",
            owner_id=owner_id,
            chunk_count=len(chunks),
            limit=limit,
        )
        return chunks

    async def chunk_stats(self, owner_id: str) -> ChunkStats:
        await self._guard.require_owner(owner_id)
        chunks = await self._repository.list_chunks(owner_id)
        documents = await self._repository.list_documents(owner_id)

        total_chunks = len(chunks)
        total_documents = len(documents)
        return ChunkStats(
            total_chunks=total_chunks,
            total_documents=total_documents,
            avg_chunks_per_document=(
                total_chunks / total_documents if total_documents else 0.0
            ),
            total_word_count=sum(chunk.metadata.word_count for chunk in chunks),
        )


class _ProgressReporter:
    """Wraps the caller's callback; observer failures never reach the pipeline."""

    def __init__(
        self,
        callback: ProgressCallback | None,
        correlation_id: str,
        owner_id: str,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        self._callback = callback
        self._correlation_id = correlation_id
        self._owner_id = owner_id
        self._log = log
        self.stage = IngestionStage.VALIDATING
        self.percentage = 0

    def report(self, stage: IngestionStage, percentage: int, message: str) -> None:
        self.stage = stage
        self.percentage = percentage
        self._log.debug("ingestion.progress", stage=stage.value, percentage=percentage)
        if self._callback is None:
            return
        event = IngestionProgressEvent(
            correlation_id=self._correlation_id,
            owner_id=self._owner_id,
            stage=stage,
            percentage=percentage,
            message=message,
        )
        try:
            self._callback(event)
        except Exception as exc:  # noqa: BLE001
            self._log.warning(
                "ingestion.progress.callback_failed",
                stage=stage.value,
                error=str(exc),
            )
