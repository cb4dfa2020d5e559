from __future__ import annotations

import re
from collections.abc import Callable

import structlog

from ingestion_service.domain.models import (
    DEFAULT_CHUNKING_CONFIG,
    ChunkingConfig,
    ChunkingMethod,
    ChunkResult,
)

logger = structlog.get_logger(__name__)

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
_PARAGRAPH_BOUNDARY = re.compile(r"\n\s*\n")
_TERMINATOR_RUN = re.compile(r"[.!?]+")
_WORD = re.compile(r"\S+")

_SPACE = " "
_BLANK_LINE = "\n\n"


def split_sentences(text: str) -> list[str]:
    """Split after runs of ``.``, ``!`` or ``?`` followed by whitespace."""
    return [s.strip() for s in _SENTENCE_BOUNDARY.split(text) if s.strip()]


def split_paragraphs(text: str) -> list[str]:
    return [p.strip() for p in _PARAGRAPH_BOUNDARY.split(text) if p.strip()]


def split_words(text: str) -> list[str]:
    return text.split()


def build_overlap(text: str, overlap_size: int) -> str:
    """Return the trailing context carried into the next chunk.

    The longest suffix starting on a word boundary that fits in
    *overlap_size* characters. When even the last word is longer than that,
    the raw last *overlap_size* characters are used instead.
    """
    if overlap_size <= 0 or not text:
        return ""
    if len(text) <= overlap_size:
        return text
    for match in _WORD.finditer(text):
        if len(text) - match.start() <= overlap_size:
            return text[match.start():]
    return text[-overlap_size:]


def count_words(text: str) -> int:
    return len(text.split())


def count_sentences(text: str) -> int:
    return len(_TERMINATOR_RUN.findall(text))


class _Accumulator:
    """Greedy unit packer shared by every chunking method.

    ``fresh_from`` marks where the text not yet emitted in a previous chunk
    begins inside ``buffer``; everything before it is carried-over overlap.
    """

    def __init__(self, config: ChunkingConfig, separator: str) -> None:
        self._config = config
        self._separator = separator
        self.pieces: list[str] = []
        self._buffer = ""
        self._fresh_from = 0

    @property
    def _can_finalize(self) -> bool:
        # only new text long enough to pass the minimum-size filter is emitted
        return (
            self._fresh_from < len(self._buffer)
            and len(self._buffer) >= self._config.min_chunk_size
        )

    def _join(self, unit: str) -> str:
        return f"{self._buffer}{self._separator}{unit}" if self._buffer else unit

    def _emit(self, text: str) -> None:
        self.pieces.append(text)
        self._buffer = build_overlap(text, self._config.overlap_size)
        self._fresh_from = len(self._buffer)

    def add(self, unit: str, limit: int) -> None:
        """Finalize the buffer before *unit* if the result would exceed *limit*."""
        candidate = self._join(unit)
        if len(candidate) > limit and self._can_finalize:
            self._emit(self._buffer)
            self._buffer = self._join(unit)
        else:
            self._buffer = candidate

    def add_with_target(self, unit: str) -> None:
        candidate = self._join(unit)
        if len(candidate) > self._config.max_chunk_size and self._can_finalize:
            self._emit(self._buffer)
            self._buffer = self._join(unit)
        elif len(candidate) >= self._config.target_chunk_size:
            self._emit(candidate)
        else:
            self._buffer = candidate

    def finish(self) -> list[str]:
        remainder = self._buffer[self._fresh_from:].strip()
        if remainder:
            if len(self._buffer) >= self._config.min_chunk_size:
                self.pieces.append(self._buffer)
            elif self.pieces:
                self.pieces[-1] = f"{self.pieces[-1]}{self._separator}{remainder}"
        self._buffer = ""
        self._fresh_from = 0
        return self.pieces


def _chunk_units(units: list[str], config: ChunkingConfig, separator: str) -> list[str]:
    acc = _Accumulator(config, separator)
    for unit in units:
        acc.add_with_target(unit)
    return acc.finish()


def chunk_by_sentence(text: str, config: ChunkingConfig) -> list[str]:
    return _chunk_units(split_sentences(text), config, _SPACE)


def chunk_by_paragraph(text: str, config: ChunkingConfig) -> list[str]:
    return _chunk_units(split_paragraphs(text), config, _BLANK_LINE)


def chunk_by_fixed_size(text: str, config: ChunkingConfig) -> list[str]:
    acc = _Accumulator(config, _SPACE)
    for word in split_words(text):
        acc.add(word, config.target_chunk_size)
    return acc.finish()


def chunk_by_semantic(text: str, config: ChunkingConfig) -> list[str]:
    # TODO: replace with topic-boundary segmentation driven by sentence
    # embeddings; until then this is sentence chunking under another name.
    logger.debug("chunking.semantic.placeholder", fallback=ChunkingMethod.SENTENCE.value)
    return chunk_by_sentence(text, config)


_STRATEGIES: dict[ChunkingMethod, Callable[[str, ChunkingConfig], list[str]]] = {
    ChunkingMethod.SENTENCE: chunk_by_sentence,
    ChunkingMethod.PARAGRAPH: chunk_by_paragraph,
    ChunkingMethod.FIXED: chunk_by_fixed_size,
    ChunkingMethod.SEMANTIC: chunk_by_semantic,
}


class ChunkingService:
    """Boundary-aware text chunking with configurable size and overlap.

    Pure and deterministic: identical ``(text, config)`` always yields
    identical chunks. Offsets describe a virtual running stream rather
    than positions in the source text: after each chunk the cursor moves
    forward by ``max(1, len(chunk) - overlap_size)``.
    """

    def __init__(self, config: ChunkingConfig = DEFAULT_CHUNKING_CONFIG) -> None:
        self._config = config

    @property
    def config(self) -> ChunkingConfig:
        return self._config

    def chunk(self, text: str, config: ChunkingConfig | None = None) -> list[ChunkResult]:
        config = config or self._config
        pieces = _STRATEGIES[config.method](text, config)

        results: list[ChunkResult] = []
        cursor = 0
        for content in pieces:
            if len(content) < config.min_chunk_size:
                continue
            results.append(
                ChunkResult(
                    content=content,
                    index=len(results),
                    start_offset=cursor,
                    end_offset=cursor + len(content),
                    word_count=count_words(content),
                    sentence_count=count_sentences(content),
                )
            )
            cursor += max(1, len(content) - config.overlap_size)

        logger.debug(
            "chunking.completed",
            method=config.method.value,
            text_length=len(text),
            chunk_count=len(results),
        )
        return results
