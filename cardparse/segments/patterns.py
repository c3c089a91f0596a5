"""
Static pattern library for segment classification.

Each entry scores a segment for one SegmentType:
- keywords: +0.3 x weight for each keyword contained (case-insensitive)
- regex_patterns: +0.7 x weight for each matching pattern
- context_keywords: +0.2 x weight for each contained context marker

The library is immutable. Changing the rules means publishing a new
PatternLibrary with a new version, never mutating one at runtime, so
classification stays deterministic and testable rule by rule.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from cardparse.models import SegmentType

KEYWORD_SCORE = 0.3
PATTERN_SCORE = 0.7
CONTEXT_SCORE = 0.2


@dataclass(frozen=True)
class PatternEntry:
    """One weighted rule set for a segment type."""

    type: SegmentType
    keywords: tuple[str, ...] = ()
    regex_patterns: tuple[re.Pattern[str], ...] = ()
    context_keywords: tuple[str, ...] = ()
    weight: float = 1.0

    def score(self, text: str) -> tuple[float, list[str]]:
        """Score a segment against this entry.

        Returns (score, features). The score is not capped here.
        """
        lowered = text.lower()
        score = 0.0
        features: list[str] = []

        for keyword in self.keywords:
            if keyword.lower() in lowered:
                score += KEYWORD_SCORE * self.weight
                features.append(f"keyword:{keyword}")

        for pattern in self.regex_patterns:
            if pattern.search(text):
                score += PATTERN_SCORE * self.weight
                features.append(f"pattern:{pattern.pattern}")

        for keyword in self.context_keywords:
            if keyword.lower() in lowered:
                score += CONTEXT_SCORE * self.weight
                features.append(f"context:{keyword}")

        return score, features


@dataclass(frozen=True)
class PatternLibrary:
    """Versioned, read-only collection of PatternEntry rules."""

    version: str
    entries: tuple[PatternEntry, ...]

    def entries_for(self, segment_type: SegmentType) -> tuple[PatternEntry, ...]:
        return tuple(e for e in self.entries if e.type is segment_type)

    @property
    def types(self) -> tuple[SegmentType, ...]:
        """Types covered, in first-seen order (also the tie-break order)."""
        seen: list[SegmentType] = []
        for entry in self.entries:
            if entry.type not in seen:
                seen.append(entry.type)
        return tuple(seen)


def _compile(*patterns: str, flags: int = re.IGNORECASE) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, flags) for p in patterns)


# =============================================================================
# DEFAULT LIBRARY (version 1)
# =============================================================================

QUESTION_ENTRIES = (
    PatternEntry(
        type=SegmentType.QUESTION,
        keywords=(
            "什么", "如何", "为什么", "怎么", "哪个", "哪些", "何时", "何地",
            "what", "how", "why", "when", "where", "who", "which",
        ),
        regex_patterns=_compile(
            r"[？?]$",
            r"^(什么|如何|为什么|怎么|哪个|哪些|何时|何地)",
            r"^(What|How|Why|When|Where|Who|Which)\b",
            r"^(请|试|解释|说明|描述|分析|比较|列举)",
            r"^Q[:：]",
        ),
        context_keywords=("问题", "question", "题目"),
        weight=1.0,
    ),
    PatternEntry(
        type=SegmentType.QUESTION,
        keywords=("定义", "概念", "原理", "特点", "优缺点", "definition", "concept", "principle"),
        regex_patterns=_compile(
            r"(定义|概念|原理|特点|优缺点)",
            r"(definition|concept|principle|feature)",
        ),
        weight=0.8,
    ),
    PatternEntry(
        type=SegmentType.QUESTION,
        regex_patterns=_compile(r"^#{1,6}\s+\S"),
        weight=0.6,
    ),
)

ANSWER_ENTRIES = (
    PatternEntry(
        type=SegmentType.ANSWER,
        keywords=("答案", "解答", "回答", "answer", "solution", "explanation"),
        regex_patterns=_compile(
            r"^(答案?[:：]|解答[:：]|回答[:：])",
            r"^(Answer[:：]?|Solution[:：]?)",
            r"^A[:：]",
        ),
        context_keywords=("解释", "说明"),
        weight=1.0,
    ),
    PatternEntry(
        type=SegmentType.ANSWER,
        keywords=("因为", "由于", "所以", "因此", "because", "since", "therefore", "thus"),
        regex_patterns=_compile(
            r"^(因为|由于|所以|因此)",
            r"^(Because|Since|Therefore|Thus)\b",
        ),
        weight=0.7,
    ),
)

SEPARATOR_ENTRIES = (
    PatternEntry(
        type=SegmentType.SEPARATOR,
        regex_patterns=_compile(
            r"^[-=]{3,}$",
            r"^[*_]{3,}$",
            r"^-{3}\s*[a-z]+\s*-{3}$",  # ---div---, ---cd---, --- meta ---
        ),
        weight=0.5,
    ),
)

METADATA_ENTRIES = (
    PatternEntry(
        type=SegmentType.METADATA,
        keywords=("标签", "分类", "难度", "来源", "tags", "category", "difficulty", "source"),
        regex_patterns=_compile(
            r"^(标签|分类|难度|来源)[:：]\s*(.+)",
            r"^(Tags?|Category|Difficulty|Source)[:：]\s*(.+)",
            r"^#[^\s#]",  # tag line, not a heading
        ),
        weight=0.6,
    ),
)

DEFAULT_LIBRARY = PatternLibrary(
    version="1",
    entries=QUESTION_ENTRIES + ANSWER_ENTRIES + SEPARATOR_ENTRIES + METADATA_ENTRIES,
)
