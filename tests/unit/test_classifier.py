"""
Unit tests for segment classification.

Covers the pattern library scoring, the heuristic fallback and
question/answer/metadata inference.
"""

import pytest

from cardparse.models import SegmentType
from cardparse.segments import (
    DEFAULT_LIBRARY,
    PatternEntry,
    PatternLibrary,
    SegmentClassifier,
    split_segments,
)

NEUTRAL_BLOCK = ("lorem ipsum dolor sit amet " * 6).strip()


class TestSplitSegments:
    """Test blank-line splitting with exact offsets."""

    def test_offsets(self):
        text = "a\n\n\nb\nc\n"
        assert split_segments(text) == [(0, 1), (4, 7)]
        assert text[4:7] == "b\nc"

    def test_empty(self):
        assert split_segments("") == []
        assert split_segments("\n  \n") == []


class TestPatternLibrary:
    """Test the read-only pattern library."""

    def test_default_version(self):
        assert DEFAULT_LIBRARY.version == "1"

    def test_type_order(self):
        """Question comes first, so it wins score ties."""
        assert DEFAULT_LIBRARY.types[:2] == (SegmentType.QUESTION, SegmentType.ANSWER)
        assert SegmentType.SEPARATOR in DEFAULT_LIBRARY.types
        assert SegmentType.METADATA in DEFAULT_LIBRARY.types

    def test_entry_score(self):
        """Keywords add 0.3 x weight, case-insensitively."""
        entry = PatternEntry(type=SegmentType.ANSWER, keywords=("foo",), weight=0.5)
        score, features = entry.score("Foo bar")
        assert score == pytest.approx(0.15)
        assert features == ["keyword:foo"]

    def test_library_is_immutable(self):
        with pytest.raises(AttributeError):
            DEFAULT_LIBRARY.version = "2"


class TestClassify:
    """Test SegmentClassifier.classify."""

    @pytest.fixture
    def text(self) -> str:
        return "What is FSRS?\n\nAnswer: FSRS is a scheduling algorithm.\n\n---"

    def test_types(self, classifier, text):
        segments = classifier.classify(text)
        assert [s.type for s in segments] == [
            SegmentType.QUESTION,
            SegmentType.ANSWER,
            SegmentType.SEPARATOR,
        ]

    def test_spans_point_into_source(self, classifier, text):
        for segment in classifier.classify(text):
            start, end = segment.span
            assert text[start:end] == segment.text

    def test_confidence_capped(self, classifier, text):
        question = classifier.classify(text)[0]
        assert question.confidence == 1.0
        assert any(f.startswith("pattern:") for f in question.features)

    def test_metadata(self, classifier):
        segments = classifier.classify("Question here?\n\nTags: srs, memory")
        assert segments[1].type is SegmentType.METADATA

    def test_code_heuristic(self, classifier):
        """Code in a later segment votes for answer."""
        segments = classifier.classify("Intro line\n\n```\nprint(1)\n```")
        assert segments[1].type is SegmentType.ANSWER
        assert segments[1].confidence == pytest.approx(0.4)
        assert "heuristic:contains_code" in segments[1].features

    def test_first_short_segment_is_question(self, classifier):
        segment = classifier.classify("FSRS is great.")[0]
        assert segment.type is SegmentType.QUESTION
        assert segment.confidence == pytest.approx(0.4)

    def test_unknown(self, classifier):
        segments = classifier.classify("Intro?\n\n" + NEUTRAL_BLOCK)
        assert segments[1].type is SegmentType.UNKNOWN
        assert segments[1].confidence == 0.0

    def test_deterministic(self, classifier, text):
        assert classifier.classify(text) == classifier.classify(text)

    def test_custom_library(self):
        """A replacement library changes the rules without touching the default."""
        library = PatternLibrary(
            version="test",
            entries=(PatternEntry(type=SegmentType.ANSWER, keywords=("zzz",)),),
        )
        segment = SegmentClassifier(library).classify("zzz")[0]
        assert segment.type is SegmentType.ANSWER
        assert segment.confidence == pytest.approx(0.3)


class TestSemanticExtraction:
    """Test SegmentClassifier.extract."""

    def test_question_and_answer(self, classifier):
        extraction = classifier.extract("What is FSRS?\n\nAnswer: FSRS is a scheduling algorithm.")
        assert extraction.question == "What is FSRS?"
        assert extraction.answer == "Answer: FSRS is a scheduling algorithm."
        assert extraction.confidence == pytest.approx(1.0)
        assert extraction.warnings == []

    def test_metadata_extracted(self, classifier):
        extraction = classifier.extract("What is FSRS?\n\nTags: srs, memory")
        assert extraction.metadata == {"tags": "srs, memory"}

    def test_unknown_segments_become_answer(self, classifier):
        extraction = classifier.extract("What is FSRS?\n\n" + NEUTRAL_BLOCK)
        assert extraction.answer == NEUTRAL_BLOCK
        assert "1 segment(s) could not be classified" in extraction.warnings

    def test_empty(self, classifier):
        extraction = classifier.extract("")
        assert extraction.question == ""
        assert extraction.answer == ""
        assert extraction.confidence == 0.0
        assert "No question segment identified" in extraction.warnings
