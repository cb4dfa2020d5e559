from shared.events.base import BaseEvent
from shared.events.ingestion_events import IngestionProgressEvent, IngestionStage

__all__ = [
    "BaseEvent",
    "IngestionProgressEvent",
    "IngestionStage",
]
