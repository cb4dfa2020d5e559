from __future__ import annotations

from pydantic import Field
from shared.config.base import BaseServiceSettings

from ingestion_service.domain.models import ChunkingConfig, ChunkingMethod


class Settings(BaseServiceSettings):
    service_name: str = "ingestion_service"

    storage_base_path: str = Field(default="/app/storage")
    max_document_size_mb: int = Field(default=10, ge=1, le=100)
    allowed_content_types: list[str] = Field(
        default=[
            "text/plain",
            "text/markdown",
            "application/json",
            "text/csv",
        ]
    )

    chunking_method: ChunkingMethod = Field(default=ChunkingMethod.SENTENCE)
    chunk_size_chars: int = Field(default=1000, ge=1)
    chunk_overlap_chars: int = Field(default=200, ge=0)
    min_chunk_size_chars: int = Field(default=100, ge=1)
    max_chunk_size_chars: int = Field(default=2000, ge=1)

    @property
    def max_document_size_bytes(self) -> int:
        return self.max_document_size_mb * 1024 * 1024

    def chunking_config(self) -> ChunkingConfig:
        return ChunkingConfig(
            method=self.chunking_method,
            target_chunk_size=self.chunk_size_chars,
            overlap_size=self.chunk_overlap_chars,
            min_chunk_size=self.min_chunk_size_chars,
            max_chunk_size=self.max_chunk_size_chars,
        )
