from __future__ import annotations

import json

import structlog

logger = structlog.get_logger(__name__)

JSON_CONTENT_TYPE = "application/json"


class TextExtractionService:
    """Extracts plain text from supported upload formats."""

    def extract_from_text(self, content: bytes) -> str:
        return content.decode("utf-8", errors="replace")

    def extract_from_json(self, content: bytes) -> str:
        """Pretty-print JSON; malformed JSON is kept as the raw text."""
        text = self.extract_from_text(content)
        try:
            parsed = json.loads(text)
        except ValueError:
            logger.info("extraction.json.malformed", fallback="raw_text", length=len(text))
            return text
        return json.dumps(parsed, indent=2, ensure_ascii=False)

    def extract(self, content: bytes, content_type: str) -> str:
        if content_type == JSON_CONTENT_TYPE:
            return self.extract_from_json(content)
        return self.extract_from_text(content)
