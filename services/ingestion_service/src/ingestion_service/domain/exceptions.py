from __future__ import annotations


class IngestionError(Exception):
    def __init__(self, message: str, error_code: str) -> None:
        super().__init__(message)
        self.error_code = error_code


class DocumentValidationError(IngestionError):
    def __init__(self, message: str) -> None:
        super().__init__(message=message, error_code="VALIDATION_ERROR")


class MissingFileError(DocumentValidationError):
    def __init__(self) -> None:
        super().__init__("No file provided.")


class UnsupportedContentTypeError(DocumentValidationError):
    def __init__(self, content_type: str) -> None:
        super().__init__(
            f"Content type '{content_type}' is not supported. "
            "Please upload text, markdown, JSON, or CSV files."
        )


class DocumentTooLargeError(DocumentValidationError):
    def __init__(self, size_bytes: int, limit_bytes: int) -> None:
        super().__init__(
            f"Document size {size_bytes} bytes exceeds limit {limit_bytes} bytes."
        )


class EmptyDocumentError(DocumentValidationError):
    def __init__(self) -> None:
        super().__init__("File appears to be empty.")


class AuthorizationError(IngestionError):
    def __init__(self, detail: str = "Authentication required") -> None:
        super().__init__(message=detail, error_code="AUTHORIZATION_ERROR")


class StorageError(IngestionError):
    def __init__(self, detail: str) -> None:
        super().__init__(
            message=f"Storage operation failed: {detail}",
            error_code="STORAGE_ERROR",
        )


class BlobExistsError(StorageError):
    def __init__(self, path: str) -> None:
        super().__init__(f"object already exists at '{path}'")


class DocumentNotFoundError(IngestionError):
    def __init__(self, document_id: int) -> None:
        super().__init__(
            message=f"Document {document_id} not found or access denied.",
            error_code="DOCUMENT_NOT_FOUND",
        )


class ChunkInvariantError(IngestionError):
    def __init__(self, index: int, start_offset: int, end_offset: int) -> None:
        super().__init__(
            message=(
                f"Chunk {index} has invalid offsets "
                f"(start={start_offset}, end={end_offset})."
            ),
            error_code="CHUNK_INVARIANT_VIOLATION",
        )
        self.index = index
