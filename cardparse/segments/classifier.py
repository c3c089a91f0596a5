"""
Segment classifier.

Splits note text on blank lines and assigns each block a provisional
SegmentType with a confidence score:

1. Score every PatternLibrary entry; the best type wins if >= 0.3.
2. Otherwise fall back to layout heuristics (length, code, lists,
   document position).
3. Anything still unscored is UNKNOWN.

Pure function of the text and the (immutable) pattern library.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from cardparse.models import ContentSegment, SegmentType
from cardparse.segments.patterns import DEFAULT_LIBRARY, PatternLibrary
from cardparse.text import clean_question_text, looks_like_question

SCORE_FLOOR = 0.3
SHORT_SEGMENT_CHARS = 100
LONG_SEGMENT_CHARS = 200

CODE_RE = re.compile(r"```[\s\S]*?```|`[^`]+`")
LIST_RE = re.compile(r"^\s*([-*+]|\d+\.)\s+", re.MULTILINE)
KEY_VALUE_RE = re.compile(r"^([^:：]+)[:：]\s*(.+)$")
QUESTION_PREFIX_RE = re.compile(r"^(Q[:：]?)\s*", re.IGNORECASE)


@dataclass
class SemanticExtraction:
    """Question/answer/metadata inferred from classified segments."""

    question: str
    answer: str
    metadata: dict[str, str]
    segments: list[ContentSegment]
    confidence: float
    warnings: list[str] = field(default_factory=list)


def split_segments(text: str) -> list[tuple[int, int]]:
    """Return (start, end) offsets of blank-line separated blocks.

    ``text[start:end]`` is the block without its trailing newline.
    """
    spans: list[tuple[int, int]] = []
    block_start: int | None = None
    block_end = 0
    position = 0

    for line in text.split("\n"):
        line_end = position + len(line)
        if line.strip():
            if block_start is None:
                block_start = position
            block_end = line_end
        elif block_start is not None:
            spans.append((block_start, block_end))
            block_start = None
        position = line_end + 1

    if block_start is not None:
        spans.append((block_start, block_end))
    return spans


class SegmentClassifier:
    """Classify blank-line separated blocks of a note.

    Usage:
        classifier = SegmentClassifier()
        for segment in classifier.classify(text):
            print(segment.type, segment.confidence)
    """

    def __init__(self, library: PatternLibrary = DEFAULT_LIBRARY):
        self.library = library

    def classify(self, text: str) -> list[ContentSegment]:
        """Split ``text`` into ordered segments and classify each."""
        segments = []
        for index, (start, end) in enumerate(split_segments(text)):
            segments.append(self._classify_segment(text[start:end], (start, end), index))
        return segments

    def _classify_segment(
        self, segment: str, span: tuple[int, int], index: int
    ) -> ContentSegment:
        stripped = segment.strip()
        best_type = SegmentType.UNKNOWN
        best_score = 0.0
        best_features: list[str] = []

        for segment_type in self.library.types:
            score, features = self._score_type(stripped, segment_type)
            if score > best_score:
                best_type, best_score, best_features = segment_type, score, features

        if best_score >= SCORE_FLOOR:
            return ContentSegment(best_type, segment, best_score, span, best_features)

        heuristic_type, heuristic_score, heuristic_features = self._apply_heuristics(
            stripped, index
        )
        if heuristic_score > 0:
            return ContentSegment(
                heuristic_type,
                segment,
                min(max(heuristic_score, best_score), 1.0),
                span,
                best_features + heuristic_features,
            )

        return ContentSegment(SegmentType.UNKNOWN, segment, best_score, span, best_features)

    def _score_type(self, segment: str, segment_type: SegmentType) -> tuple[float, list[str]]:
        """Best entry score for a type, capped at 1.0."""
        best = 0.0
        best_features: list[str] = []
        for entry in self.library.entries_for(segment_type):
            score, features = entry.score(segment)
            if score > best:
                best, best_features = score, features
        return min(best, 1.0), best_features

    def _apply_heuristics(
        self, segment: str, index: int
    ) -> tuple[SegmentType, float, list[str]]:
        """Layout heuristics for segments no pattern recognized."""
        question_votes = 0.0
        answer_votes = 0.0
        features = []

        if len(segment) < SHORT_SEGMENT_CHARS:
            question_votes += 0.2
            features.append("heuristic:short_segment")
        if len(segment) > LONG_SEGMENT_CHARS:
            answer_votes += 0.3
            features.append("heuristic:long_segment")
        if CODE_RE.search(segment):
            answer_votes += 0.4
            features.append("heuristic:contains_code")
        if LIST_RE.search(segment):
            answer_votes += 0.3
            features.append("heuristic:contains_list")
        if index == 0:
            question_votes += 0.2
            features.append("heuristic:first_segment")

        if question_votes == 0 and answer_votes == 0:
            return SegmentType.UNKNOWN, 0.0, features
        if question_votes >= answer_votes:
            return SegmentType.QUESTION, question_votes, features
        return SegmentType.ANSWER, answer_votes, features

    # -------------------------------------------------------------------------
    # Semantic extraction
    # -------------------------------------------------------------------------

    def extract(self, text: str) -> SemanticExtraction:
        """Infer question, answer and metadata from classified segments."""
        segments = self.classify(text)

        question = self._extract_question(segments, text)
        answer = self._extract_answer(segments, text)
        metadata = self._extract_metadata(segments)

        return SemanticExtraction(
            question=question,
            answer=answer,
            metadata=metadata,
            segments=segments,
            confidence=self._overall_confidence(segments, question, answer),
            warnings=self._warnings(segments, question, answer),
        )

    def _extract_question(self, segments: list[ContentSegment], text: str) -> str:
        questions = [s for s in segments if s.type is SegmentType.QUESTION]
        if not questions:
            first_line = text.strip().split("\n")[0] if text.strip() else ""
            return first_line.strip() if len(first_line) < LONG_SEGMENT_CHARS else ""

        best = max(questions, key=lambda s: s.confidence)
        return QUESTION_PREFIX_RE.sub("", clean_question_text(best.text)).strip()

    def _extract_answer(self, segments: list[ContentSegment], text: str) -> str:
        answers = [s for s in segments if s.type is SegmentType.ANSWER]
        if answers:
            return "\n\n".join(s.text for s in answers)

        others = [s for s in segments if s.type is SegmentType.UNKNOWN]
        if others:
            return "\n\n".join(s.text for s in others)

        lines = text.strip().split("\n")
        return "\n".join(lines[1:]).strip() if len(lines) > 1 else ""

    def _extract_metadata(self, segments: list[ContentSegment]) -> dict[str, str]:
        metadata: dict[str, str] = {}
        for segment in segments:
            if segment.type is not SegmentType.METADATA:
                continue
            for line in segment.text.split("\n"):
                match = KEY_VALUE_RE.match(line.strip())
                if match:
                    metadata[match.group(1).strip().lower()] = match.group(2).strip()
        return metadata

    def _overall_confidence(
        self, segments: list[ContentSegment], question: str, answer: str
    ) -> float:
        if not segments:
            return 0.0
        confidence = sum(s.confidence for s in segments) / len(segments) * 0.4
        if len(question) > 5:
            confidence += 0.2
            if looks_like_question(question):
                confidence += 0.2
        if len(answer) > 10:
            confidence += 0.2
        return min(confidence, 1.0)

    def _warnings(
        self, segments: list[ContentSegment], question: str, answer: str
    ) -> list[str]:
        warnings = []
        if not question:
            warnings.append("No question segment identified")
        elif len(question) < 5:
            warnings.append("Question is very short; identification may be wrong")

        if not answer:
            warnings.append("No answer segment identified")
        elif len(answer) < 10:
            warnings.append("Answer is very short; it may be incomplete")

        unknown = sum(1 for s in segments if s.type is SegmentType.UNKNOWN)
        if unknown:
            warnings.append(f"{unknown} segment(s) could not be classified")

        low = sum(1 for s in segments if s.confidence < SCORE_FLOOR)
        if segments and low > len(segments) / 2:
            warnings.append("Most segments were classified with low confidence")
        return warnings
