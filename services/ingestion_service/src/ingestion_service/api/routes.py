from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import AsyncIterator

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import StreamingResponse

from ingestion_service.api.dependencies import (
    get_ingestion_service,
    get_library_service,
    get_settings,
)
from ingestion_service.api.schemas import ErrorResponse, HealthResponse, IngestionResponse
from ingestion_service.domain.exceptions import IngestionError
from ingestion_service.domain.models import (
    ChunkStats,
    DeletionResult,
    StoredChunk,
    StoredDocument,
    UploadedFile,
)
from ingestion_service.domain.progress import ProgressStream
from ingestion_service.domain.services import DocumentLibraryService, IngestionService
from ingestion_service.settings import Settings
from shared.logging.config import bind_request_context

logger = structlog.get_logger(__name__)
router = APIRouter()

_STATUS_BY_ERROR_CODE = {
    "VALIDATION_ERROR": 400,
    "AUTHORIZATION_ERROR": 403,
    "DOCUMENT_NOT_FOUND": 404,
    "STORAGE_ERROR": 502,
}


def _correlation_id(request: Request) -> str:
    return request.headers.get("X-Correlation-ID", str(uuid.uuid4()))


def _http_error(error_code: str | None, message: str | None, correlation_id: str) -> HTTPException:
    code = error_code or "INTERNAL_ERROR"
    return HTTPException(
        status_code=_STATUS_BY_ERROR_CODE.get(code, 500),
        detail=ErrorResponse(
            error_code=code,
            message=message or "Request failed",
            correlation_id=correlation_id,
        ).model_dump(),
    )


async def _read_upload(file: UploadFile | None) -> UploadedFile | None:
    if file is None:
        return None
    return UploadedFile(
        filename=file.filename or "unknown",
        content_type=file.content_type or "application/octet-stream",
        content=await file.read(),
    )


@router.get("/health", response_model=HealthResponse, tags=["ops"])
async def health(settings: Settings = Depends(get_settings)) -> HealthResponse:
    return HealthResponse(
        status="ok",
        service=settings.service_name,
        version=settings.app_version,
    )


@router.post("/documents", response_model=IngestionResponse, status_code=201, tags=["ingestion"])
async def upload_document(
    request: Request,
    file: UploadFile | None = File(default=None),
    owner_id: str = Form(...),
    service: IngestionService = Depends(get_ingestion_service),
) -> IngestionResponse:
    correlation_id = _correlation_id(request)
    bind_request_context(correlation_id=correlation_id, owner_id=owner_id)
    logger.info("ingestion.request.received", filename=file.filename if file else None)

    progress = ProgressStream()
    result = await service.upload_and_process(
        file=await _read_upload(file),
        owner_id=owner_id,
        on_progress=progress,
        correlation_id=correlation_id,
    )
    if not result.success:
        raise _http_error(result.error_code, result.error, correlation_id)

    return IngestionResponse(
        **result.model_dump(),
        correlation_id=correlation_id,
        progress=progress.history,
    )


@router.post("/documents/stream", tags=["ingestion"])
async def upload_document_stream(
    request: Request,
    file: UploadFile | None = File(default=None),
    owner_id: str = Form(...),
    service: IngestionService = Depends(get_ingestion_service),
) -> StreamingResponse:
    """Same pipeline as ``POST /documents``; progress events are streamed as NDJSON.

    The last line is ``{"result": {...}}`` with the final ingestion result.
    """
    correlation_id = _correlation_id(request)
    bind_request_context(correlation_id=correlation_id, owner_id=owner_id)

    uploaded = await _read_upload(file)
    progress = ProgressStream()
    task = asyncio.create_task(
        service.upload_and_process(
            file=uploaded,
            owner_id=owner_id,
            on_progress=progress,
            correlation_id=correlation_id,
        )
    )

    async def body() -> AsyncIterator[str]:
        async for event in progress:
            yield event.model_dump_json() + "\n"
        result = await task
        yield json.dumps({"result": result.model_dump(mode="json")}) + "\n"

    return StreamingResponse(body(), media_type="application/x-ndjson")


@router.delete("/documents/{document_id}", response_model=DeletionResult, tags=["ingestion"])
async def delete_document(
    request: Request,
    document_id: int,
    owner_id: str = Query(...),
    service: IngestionService = Depends(get_ingestion_service),
) -> DeletionResult:
    correlation_id = _correlation_id(request)
    bind_request_context(correlation_id=correlation_id, owner_id=owner_id)

    result = await service.delete_document(document_id, owner_id)
    if not result.success:
        raise _http_error(result.error_code, result.error, correlation_id)
    return result


@router.get("/documents", response_model=list[StoredDocument], tags=["library"])
async def list_documents(
    request: Request,
    owner_id: str = Query(...),
    library: DocumentLibraryService = Depends(get_library_service),
) -> list[StoredDocument]:
    try:
        return await library.list_documents(owner_id)
    except IngestionError as exc:
        raise _http_error(exc.error_code, str(exc), _correlation_id(request)) from exc


@router.get("/chunks", response_model=list[StoredChunk], tags=["library"])
async def list_chunks(
    request: Request,
    owner_id: str = Query(...),
    document_id: int | None = Query(default=None),
    library: DocumentLibraryService = Depends(get_library_service),
) -> list[StoredChunk]:
    try:
        return await library.list_chunks(owner_id, document_id)
    except IngestionError as exc:
        raise _http_error(exc.error_code, str(exc), _correlation_id(request)) from exc


@router.get("/chunks/search", response_model=list[StoredChunk], tags=["library"])
async def search_chunks(
    request: Request,
    owner_id: str = Query(...),
    q: str = Query(..., min_length=1),
    limit: int = Query(default=10, ge=1, le=100),
    library: DocumentLibraryService = Depends(get_library_service),
) -> list[StoredChunk]:
    try:
        return await library.search_chunks(owner_id, q, limit)
    except IngestionError as exc:
        raise _http_error(exc.error_code, str(exc), _correlation_id(request)) from exc


@router.get("/stats", response_model=ChunkStats, tags=["library"])
async def chunk_stats(
    request: Request,
    owner_id: str = Query(...),
    library: DocumentLibraryService = Depends(get_library_service),
) -> ChunkStats:
    try:
        return await library.chunk_stats(owner_id)
    except IngestionError as exc:
        raise _http_error(exc.error_code, str(exc), _correlation_id(request)) from exc
