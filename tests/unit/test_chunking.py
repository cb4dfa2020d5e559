"""Unit tests for the chunking module."""

import pytest
from pydantic import ValidationError

from ingestion_service.domain import chunking
from ingestion_service.domain.chunking import (
    ChunkingService,
    build_overlap,
    split_paragraphs,
    split_sentences,
)
from ingestion_service.domain.models import ChunkingConfig, ChunkingMethod


def _sentences(count: int) -> list[str]:
    # 33 characters each
    return [f"Sentence number {i:02d} is right here." for i in range(count)]


def _varied_text(count: int) -> str:
    return " ".join(
        f"Item {i} covers topic {i * 7 % 13} in some{'what' * (i % 3)} detail." for i in range(count)
    )


@pytest.fixture
def chunker() -> ChunkingService:
    return ChunkingService()


def test_empty_text_yields_no_chunks(chunker: ChunkingService) -> None:
    assert chunker.chunk("") == []
    assert chunker.chunk("   \n\n  ") == []


def test_text_below_minimum_yields_no_chunks(chunker: ChunkingService) -> None:
    """'Hello.' is far below the default 100-char minimum."""
    assert chunker.chunk("Hello.") == []
    assert chunker.chunk("a" * 98 + ".") == []


def test_text_exactly_minimum_yields_one_chunk(chunker: ChunkingService) -> None:
    text = "a" * 99 + "."
    chunks = chunker.chunk(text)

    assert len(chunks) == 1
    assert chunks[0].content == text
    assert (chunks[0].start_offset, chunks[0].end_offset) == (0, 100)
    assert chunks[0].index == 0


def test_fifty_short_sentences_make_two_chunks(chunker: ChunkingService) -> None:
    sentences = _sentences(50)
    chunks = chunker.chunk(" ".join(sentences))

    assert len(chunks) == 2
    first, second = chunks
    assert 1000 <= len(first.content) <= 1100
    assert first.content == " ".join(sentences[:30])
    assert len(second.content) >= 100
    # second chunk opens with the ~200-char overlap tail of the first
    assert second.content[:150] in first.content[-200:]
    assert second.content.endswith(sentences[-1])
    assert (first.start_offset, first.end_offset) == (0, 1019)
    assert second.start_offset == 1019 - 200
    assert second.end_offset == second.start_offset + len(second.content)


@pytest.mark.parametrize("method", list(ChunkingMethod))
def test_indexes_contiguous_and_offsets_increasing(method: ChunkingMethod) -> None:
    text = "\n\n".join(_varied_text(12) for _ in range(15))
    config = ChunkingConfig(method=method)
    chunks = ChunkingService(config).chunk(text)

    assert len(chunks) > 1
    assert [c.index for c in chunks] == list(range(len(chunks)))
    for chunk in chunks:
        assert 0 <= chunk.start_offset < chunk.end_offset
        assert chunk.end_offset - chunk.start_offset == len(chunk.content)
        assert len(chunk.content) >= config.min_chunk_size
    starts = [c.start_offset for c in chunks]
    assert starts == sorted(set(starts))


def test_offsets_advance_by_length_minus_overlap() -> None:
    config = ChunkingConfig(target_chunk_size=300, overlap_size=50, min_chunk_size=20, max_chunk_size=600)
    chunks = ChunkingService(config).chunk(_varied_text(60))

    for previous, current in zip(chunks, chunks[1:]):
        expected = previous.start_offset + max(1, len(previous.content) - 50)
        assert current.start_offset == expected


def test_chunking_is_deterministic(chunker: ChunkingService) -> None:
    text = _varied_text(120)
    assert chunker.chunk(text) == chunker.chunk(text)


_MIXED_SENTENCES = " ".join(
    [
        "Short intro sentence here.",
        "x" * 110 + ".",
        "Another brief line.",
        "y" * 90 + ".",
        "Tiny.",
        "z" * 115 + ".",
        "Closing remark that is moderately long.",
    ]
)

_MIXED_WORDS = " ".join(
    ["alpha", "beta", "z" * 55, "gamma", "delta", "epsilon", "y" * 50]
    + "zeta eta theta iota kappa lambda mu nu xi omicron pi rho sigma tau upsilon".split()
)

_MIXED_PARAGRAPHS = "\n\n".join(
    [
        "Opening note.",
        "p" * 130 + " ends here.",
        "Middle paragraph with a handful of ordinary words in it.",
        "Short one.",
        "q" * 140 + ".",
        "Final paragraph closing out the document neatly.",
    ]
)


def _rebuild(chunks, overlap_size: int, separator: str) -> str:
    rebuilt = chunks[0].content
    for previous, current in zip(chunks, chunks[1:]):
        tail = build_overlap(previous.content, overlap_size)
        prefix = f"{tail}{separator}" if tail else ""
        assert current.content.startswith(prefix)
        rebuilt += separator + current.content[len(prefix):]
    return rebuilt


@pytest.mark.parametrize(
    ("config", "text", "separator"),
    [
        (ChunkingConfig(), _varied_text(150), " "),
        (
            ChunkingConfig(target_chunk_size=100, overlap_size=10, min_chunk_size=50, max_chunk_size=120),
            _MIXED_SENTENCES,
            " ",
        ),
        (
            ChunkingConfig(
                method=ChunkingMethod.FIXED,
                target_chunk_size=60,
                overlap_size=10,
                min_chunk_size=40,
                max_chunk_size=80,
            ),
            _MIXED_WORDS,
            " ",
        ),
        (
            ChunkingConfig(
                method=ChunkingMethod.PARAGRAPH,
                target_chunk_size=120,
                overlap_size=15,
                min_chunk_size=60,
                max_chunk_size=150,
            ),
            _MIXED_PARAGRAPHS,
            "\n\n",
        ),
    ],
    ids=["sentence-defaults", "sentence-min-above-overlap", "fixed", "paragraph"],
)
def test_chunks_reconstruct_source_without_gaps(config: ChunkingConfig, text: str, separator: str) -> None:
    chunks = ChunkingService(config).chunk(text)

    assert len(chunks) > 1
    assert all(len(c.content) >= config.min_chunk_size for c in chunks)
    assert _rebuild(chunks, config.overlap_size, separator) == text


def test_short_sentence_before_oversized_one_is_kept() -> None:
    config = ChunkingConfig(target_chunk_size=100, overlap_size=10, min_chunk_size=50, max_chunk_size=120)
    text = "Short intro sentence here. " + "x" * 110 + "."

    chunks = ChunkingService(config).chunk(text)

    assert [c.content for c in chunks] == [text]


def test_small_remainder_is_merged_into_last_chunk() -> None:
    config = ChunkingConfig(target_chunk_size=50, overlap_size=0, min_chunk_size=20, max_chunk_size=100)
    first = "x" * 49 + "."
    chunks = ChunkingService(config).chunk(f"{first} Tiny end.")

    assert len(chunks) == 1
    assert chunks[0].content == f"{first} Tiny end."


def test_max_size_finalizes_buffer_early() -> None:
    config = ChunkingConfig(target_chunk_size=50, overlap_size=0, min_chunk_size=10, max_chunk_size=60)
    short = "a" * 29 + "."
    long = "b" * 39 + "."
    chunks = ChunkingService(config).chunk(f"{short} {long}")

    assert [c.content for c in chunks] == [short, long]


def test_unit_shorter_than_minimum_joins_the_next_one() -> None:
    config = ChunkingConfig(target_chunk_size=50, overlap_size=0, min_chunk_size=35, max_chunk_size=60)
    short = "a" * 29 + "."
    long = "b" * 39 + "."
    chunks = ChunkingService(config).chunk(f"{short} {long}")

    assert [c.content for c in chunks] == [f"{short} {long}"]


def test_pieces_below_minimum_are_filtered_before_indexing(monkeypatch) -> None:
    monkeypatch.setitem(
        chunking._STRATEGIES, ChunkingMethod.SENTENCE, lambda text, config: ["tiny", "b" * 120]
    )

    chunks = ChunkingService().chunk("ignored")

    assert [(c.index, c.start_offset, c.end_offset) for c in chunks] == [(0, 0, 120)]


def test_minimum_is_measured_on_normalized_text(chunker: ChunkingService) -> None:
    # the double space collapses to one, leaving 99 characters
    assert chunker.chunk("a" * 48 + ".  " + "b" * 48 + ".") == []
    assert len(chunker.chunk("a" * 49 + ". " + "b" * 48 + ".")) == 1


def test_paragraph_chunks_join_with_blank_line() -> None:
    config = ChunkingConfig(method=ChunkingMethod.PARAGRAPH, min_chunk_size=10)
    text = "First paragraph here.\n\n\nSecond paragraph.\n  \nThird."
    chunks = ChunkingService(config).chunk(text)

    assert [c.content for c in chunks] == [
        "First paragraph here.\n\nSecond paragraph.\n\nThird."
    ]


def test_fixed_chunks_split_on_target_without_overlap() -> None:
    config = ChunkingConfig(
        method=ChunkingMethod.FIXED,
        target_chunk_size=20,
        overlap_size=0,
        min_chunk_size=1,
        max_chunk_size=20,
    )
    chunks = ChunkingService(config).chunk("one two three four five six seven eight")

    assert [c.content for c in chunks] == ["one two three four", "five six seven eight"]
    assert [(c.start_offset, c.end_offset) for c in chunks] == [(0, 18), (18, 38)]


def test_fixed_chunks_carry_word_aligned_overlap() -> None:
    config = ChunkingConfig(
        method=ChunkingMethod.FIXED,
        target_chunk_size=20,
        overlap_size=5,
        min_chunk_size=1,
        max_chunk_size=40,
    )
    chunks = ChunkingService(config).chunk("one two three four five six seven eight")

    assert [c.content for c in chunks] == [
        "one two three four",
        "four five six seven",
        "seven eight",
    ]
    assert [(c.start_offset, c.end_offset) for c in chunks] == [(0, 18), (13, 32), (27, 38)]


def test_semantic_method_currently_matches_sentence() -> None:
    text = _varied_text(80)
    semantic = ChunkingService(ChunkingConfig(method=ChunkingMethod.SEMANTIC)).chunk(text)
    sentence = ChunkingService(ChunkingConfig(method=ChunkingMethod.SENTENCE)).chunk(text)

    assert [c.content for c in semantic] == [c.content for c in sentence]


def test_word_and_sentence_counts() -> None:
    config = ChunkingConfig(min_chunk_size=1)
    chunks = ChunkingService(config).chunk("One. Two! Three?! Four")

    assert chunks[0].word_count == 4
    assert chunks[0].sentence_count == 3


def test_build_overlap_prefers_longest_word_aligned_suffix() -> None:
    assert build_overlap("alpha beta gamma", 10) == "beta gamma"
    assert build_overlap("alpha beta gamma", 7) == "gamma"


def test_build_overlap_falls_back_to_raw_suffix() -> None:
    assert build_overlap("abcdefghijklmnop", 5) == "lmnop"


def test_build_overlap_edge_cases() -> None:
    assert build_overlap("short", 200) == "short"
    assert build_overlap("alpha beta", 0) == ""
    assert build_overlap("", 10) == ""


def test_split_sentences_keeps_unterminated_tail() -> None:
    assert split_sentences("Hi there! How are you?? Fine...  trailing words") == [
        "Hi there!",
        "How are you??",
        "Fine...",
        "trailing words",
    ]


def test_split_paragraphs_ignores_blank_runs() -> None:
    assert split_paragraphs("\n\nA\n\n\n\nB\n \nC\n") == ["A", "B", "C"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"min_chunk_size": 500, "target_chunk_size": 100},
        {"target_chunk_size": 3000, "max_chunk_size": 2000},
        {"overlap_size": 1000},
        {"min_chunk_size": 0},
        {"method": "bogus"},
    ],
)
def test_invalid_config_is_rejected(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        ChunkingConfig(**overrides)
