from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import Field

from shared.events.base import BaseEvent


class IngestionStage(StrEnum):
    VALIDATING = "validating"
    EXTRACTING = "extracting"
    UPLOADING = "uploading"
    CHUNKING = "chunking"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (IngestionStage.COMPLETED, IngestionStage.ERROR)


class IngestionProgressEvent(BaseEvent):
    """Emitted by ingestion_service on every stage transition of an upload.

    Observation only: consumers cannot pause or cancel the upload.

    Example payload:
    {
        "event_id": "550e8400-e29b-41d4-a716-446655440000",
        "event_type": "ingestion.progress",
        "correlation_id": "7c9e6679-7425-40de-944b-e07fc1f90ae7",
        "owner_id": "user_42",
        "schema_version": "1.0",
        "timestamp_utc": "2026-10-19T15:00:00.000Z",
        "stage": "chunking",
        "percentage": 80,
        "message": "Chunking document..."
    }
    """

    event_type: Literal["ingestion.progress"] = Field(
        default="ingestion.progress",
        description="Discriminator field, always 'ingestion.progress'.",
    )
    stage: IngestionStage = Field(description="Pipeline stage the upload just entered.")
    percentage: int = Field(ge=0, le=100, description="Overall progress of the upload.")
    message: str = Field(default="", description="Human-readable status line.")
