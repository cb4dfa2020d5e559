from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ChunkingMethod(StrEnum):
    SENTENCE = "sentence"
    PARAGRAPH = "paragraph"
    FIXED = "fixed"
    # Placeholder: segmented exactly like SENTENCE for now.
    SEMANTIC = "semantic"


class ChunkingConfig(BaseModel):
    """Parameters of one chunking run. All sizes are in characters."""

    model_config = ConfigDict(frozen=True)

    method: ChunkingMethod = ChunkingMethod.SENTENCE
    target_chunk_size: int = Field(default=1000, gt=0)
    overlap_size: int = Field(default=200, ge=0)
    min_chunk_size: int = Field(default=100, gt=0)
    max_chunk_size: int = Field(default=2000, gt=0)

    @model_validator(mode="after")
    def _check_sizes(self) -> ChunkingConfig:
        if not (self.min_chunk_size <= self.target_chunk_size <= self.max_chunk_size):
            raise ValueError(
                "chunk sizes must satisfy min_chunk_size <= target_chunk_size <= max_chunk_size"
            )
        if self.overlap_size >= self.target_chunk_size:
            raise ValueError("overlap_size must be smaller than target_chunk_size")
        return self


DEFAULT_CHUNKING_CONFIG = ChunkingConfig()


class ChunkResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    index: int
    start_offset: int
    end_offset: int
    word_count: int
    sentence_count: int


class ChunkMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    chunk_size: int
    overlap_size: int
    chunking_method: ChunkingMethod
    word_count: int
    sentence_count: int
    parent_document_name: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ChunkRecord(BaseModel):
    """A chunk row ready for insertion; ``id`` and ``embedding`` are assigned later."""

    model_config = ConfigDict(frozen=True)

    document_id: int
    owner_id: str
    content: str = Field(min_length=1)
    chunk_index: int = Field(ge=0)
    start_offset: int = Field(ge=0)
    end_offset: int = Field(gt=0)
    metadata: ChunkMetadata


class StoredChunk(ChunkRecord):
    id: int
    embedding: list[float] | None = None
    created_at: datetime | None = None


class SourceMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    original_name: str
    file_size_bytes: int = Field(ge=0)
    mime_type: str
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    storage_path: str


class NewDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    owner_id: str
    raw_content: str
    source_metadata: SourceMetadata


class StoredDocument(NewDocument):
    id: int
    # Filled asynchronously by the external embedding workflow.
    embedding: list[float] | None = None
    created_at: datetime | None = None
    chunk_count: int | None = None


class UploadedFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str
    content_type: str
    content: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.content)


class AuthSession(BaseModel):
    model_config = ConfigDict(frozen=True)

    authenticated: bool
    owner_id: str | None = None


class IngestionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    document: StoredDocument | None = None
    chunks: list[StoredChunk] | None = None
    error: str | None = None
    error_code: str | None = None


class DeletionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    error: str | None = None
    error_code: str | None = None


class ChunkStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_chunks: int = 0
    total_documents: int = 0
    avg_chunks_per_document: float = 0.0
    total_word_count: int = 0
