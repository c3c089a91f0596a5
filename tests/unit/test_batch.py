"""
Unit tests for batch extraction and document splitting.
"""

import pytest

from cardparse.extractors import (
    DegradationEngine,
    extract_batch,
    extract_document,
    split_document,
)

DOCUMENT = """\
## What is FSRS?
A scheduling algorithm.
---cd---
## What is SM-2?
An older algorithm.
---
with a horizontal rule inside
"""


class TestSplitDocument:
    """Test split_document."""

    def test_first_productive_separator_wins(self):
        parts = split_document(DOCUMENT)
        assert len(parts) == 2
        assert parts[0] == "## What is FSRS?\nA scheduling algorithm."
        assert parts[1].endswith("with a horizontal rule inside")

    def test_separator_must_be_alone_on_line(self):
        assert split_document("a --- b") == ["a --- b"]

    def test_falls_through_separators(self):
        assert split_document("one\n***\ntwo") == ["one", "two"]

    def test_no_separator(self):
        assert split_document("single card") == ["single card"]

    def test_blank(self):
        assert split_document("  \n") == []

    def test_empty_parts_dropped(self):
        assert split_document("---\none\n---\n\n---\ntwo\n---") == ["one", "two"]

    def test_custom_separators(self):
        assert split_document("a\n===\nb", separators=("===",)) == ["a", "b"]


class TestExtractBatch:
    """Test extract_batch."""

    @pytest.fixture
    def texts(self) -> list[str]:
        return [f"## Question {i}?\nAnswer number {i}." for i in range(6)] + [""]

    def test_sequential_order(self, engine, texts):
        reports = extract_batch(texts, engine)
        assert [r.result.fields["notes"] for r in reports] == texts

    def test_parallel_order(self, engine, texts):
        reports = extract_batch(texts, engine, parallel=True, max_workers=3)
        assert [r.result.fields["notes"] for r in reports] == texts
        assert reports[-1].result.degradation_level == 6

    def test_parallel_matches_sequential(self, engine, h2_template, texts):
        sequential = extract_batch(texts, engine, template=h2_template)
        parallel = extract_batch(texts, engine, template=h2_template, parallel=True)
        assert [r.result.fields for r in sequential] == [r.result.fields for r in parallel]
        assert [r.result.confidence for r in sequential] == [
            r.result.confidence for r in parallel
        ]

    def test_empty_batch(self):
        assert extract_batch([]) == []

    def test_default_engine(self):
        reports = extract_batch(["FSRS is great."])
        assert reports[0].result.method == "simple_split"

    def test_engine_failure_falls_back(self, monkeypatch, texts):
        engine = DegradationEngine()

        def explode(text, template=None, card_id=None):
            raise RuntimeError("engine down")

        monkeypatch.setattr(engine, "extract_with_report", explode)
        reports = extract_batch(texts[:2], engine, parallel=True)

        assert [r.result.method for r in reports] == ["protective_parsing"] * 2
        assert reports[0].result.fields["notes"] == texts[0]
        assert "engine down" in reports[0].processing_log[0]


class TestExtractDocument:
    """Test extract_document."""

    def test_split_and_extract(self, engine, h2_template):
        reports = extract_document(DOCUMENT, engine, template=h2_template)
        assert len(reports) == 2
        assert reports[0].result.fields["question"] == "What is FSRS?"
        assert reports[1].result.fields["question"] == "What is SM-2?"
