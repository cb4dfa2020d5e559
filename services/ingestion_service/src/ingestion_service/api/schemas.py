from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from ingestion_service.domain.models import IngestionResult
from shared.events.ingestion_events import IngestionProgressEvent


class HealthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    service: str
    version: str


class ErrorResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    error_code: str
    message: str
    correlation_id: str | None = None


class IngestionResponse(IngestionResult):
    correlation_id: str
    progress: list[IngestionProgressEvent] = []
