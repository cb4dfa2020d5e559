from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ingestion_service.api.dependencies import get_settings
from ingestion_service.api.routes import router
from ingestion_service.infrastructure.repository import PostgresDocumentRepository
from ingestion_service.infrastructure.storage import LocalFileStorage
from shared.logging.config import configure_logging

settings = get_settings()
configure_logging(
    settings.service_name,
    settings.log_level,
    json_output=settings.environment != "development",
)
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    chunking = settings.chunking_config()
    logger.info(
        "service.starting",
        version=settings.app_version,
        environment=settings.environment,
        chunking_method=chunking.method.value,
        chunk_size=chunking.target_chunk_size,
        chunk_overlap=chunking.overlap_size,
    )

    app.state.storage = LocalFileStorage(base_path=settings.storage_base_path)
    repository = PostgresDocumentRepository(
        database_url=settings.database_url.get_secret_value(),
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )
    app.state.repository = repository

    logger.info("service.ready", port=settings.service_port)
    yield

    await repository.dispose()
    logger.info("service.stopped")


app = FastAPI(
    title="Ingestion Service",
    description="Accepts text uploads, chunks them for retrieval, and persists documents with their chunks.",
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["POST", "GET", "DELETE"],
    allow_headers=["*"],
)

app.include_router(router)
