"""Unit tests for text extraction."""

from ingestion_service.domain.extraction import TextExtractionService


def test_plain_text_is_decoded() -> None:
    assert TextExtractionService().extract("héllo".encode(), "text/markdown") == "héllo"


def test_invalid_utf8_is_replaced() -> None:
    assert TextExtractionService().extract(b"ok \xff", "text/plain") == "ok \ufffd"


def test_json_is_pretty_printed() -> None:
    text = TextExtractionService().extract(b'{"a":[1,2],"b":"caf\xc3\xa9"}', "application/json")

    assert text == '{\n  "a": [\n    1,\n    2\n  ],\n  "b": "café"\n}'


def test_malformed_json_returns_raw_text() -> None:
    assert TextExtractionService().extract(b'{"a": ', "application/json") == '{"a": '


def test_csv_is_kept_verbatim() -> None:
    assert TextExtractionService().extract(b"a,b\n1,2\n", "text/csv") == "a,b\n1,2\n"
