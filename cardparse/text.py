"""
Shared text primitives.

Used by the extraction strategies, the integrity checker and the repair
advisor so that all of them agree on what "similar", "covered" and
"looks like a question" mean:

- coverage_ratio: share of the source text reproduced by extracted fields
- similarity: token-overlap similarity between two texts
- checksum: weak 32-bit rolling hash for change detection (not security)
- question_score / looks_like_question: heuristic question detection
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable

# =============================================================================
# PATTERNS
# =============================================================================

WHITESPACE_RE = re.compile(r"\s+")
CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

HEADING_RE = re.compile(r"^#{1,6}\s+")
SHALLOW_HEADING_RE = re.compile(r"^##?\s+")

INTERROGATIVE_RE = re.compile(
    r"^(什么|如何|为什么|怎么|哪个|哪些|何时|何地|(Who|What|When|Where|Why|How|Which)\b)",
    re.IGNORECASE,
)
INSTRUCTION_RE = re.compile(
    r"^(请|试|解释|说明|描述|分析|比较|列举|(Explain|Describe|Compare|List)\b)", re.IGNORECASE
)
QUESTION_MARK_RE = re.compile(r"[？?]$")
BOLD_LABEL_RE = re.compile(r"^\*\*.*\*\*[:：]")

QUESTION_INDICATORS = (
    QUESTION_MARK_RE,
    INTERROGATIVE_RE,
    INSTRUCTION_RE,
    SHALLOW_HEADING_RE,
    BOLD_LABEL_RE,
)

SHORT_LINE_CHARS = 100


# =============================================================================
# NORMALIZATION
# =============================================================================


def strip_whitespace(text: str) -> str:
    """Remove all whitespace (used for coverage comparisons)."""
    return WHITESPACE_RE.sub("", text)


def non_blank_lines(text: str) -> list[str]:
    """Lines with visible content, in order, unmodified."""
    return [line for line in text.split("\n") if line.strip()]


def strip_control_chars(text: str) -> str:
    return CONTROL_CHARS_RE.sub("", text)


def normalize_unicode(text: str) -> str:
    return unicodedata.normalize("NFC", text)


def has_control_chars(text: str) -> bool:
    return CONTROL_CHARS_RE.search(text) is not None


def is_nfc(text: str) -> bool:
    return unicodedata.is_normalized("NFC", text)


# =============================================================================
# SCORING
# =============================================================================


def coverage_ratio(text: str, values: Iterable[str]) -> float:
    """Fraction of non-whitespace source characters reproduced by ``values``.

    Args:
        text: Source text.
        values: Extracted field values (excluding the notes mirror).

    Returns:
        Ratio in [0.0, 1.0]; 0.0 for empty source text.
    """
    original_length = len(strip_whitespace(text))
    if original_length == 0:
        return 0.0
    extracted_length = len(strip_whitespace("".join(values)))
    return min(extracted_length / original_length, 1.0)


def similarity(text1: str, text2: str) -> float:
    """Token-overlap similarity.

    common-word-count / max(word_count1, word_count2), where common words
    are the tokens of ``text1`` that also occur in ``text2``. Identical
    strings score 1.0.
    """
    if text1 == text2:
        return 1.0

    words1 = text1.lower().split()
    words2 = text2.lower().split()
    total = max(len(words1), len(words2))
    if total == 0:
        return 0.0

    vocabulary = set(words2)
    common = sum(1 for word in words1 if word in vocabulary)
    return min(common / total, 1.0)


def checksum(text: str) -> str:
    """Weak 32-bit rolling hash rendered as signed hex.

    Detection only: a mismatch means "changed", never "tampered".
    """
    value = 0
    for char in text:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return format(value, "x") if value >= 0 else "-" + format(-value, "x")


def looks_like_question(line: str) -> bool:
    """Whether a line reads like a question prompt."""
    stripped = line.strip()
    return any(pattern.search(stripped) for pattern in QUESTION_INDICATORS)


def question_score(line: str) -> float:
    """Question-likelihood of a single line, 0.0 to 1.0."""
    stripped = line.strip()
    score = 0.0
    if QUESTION_MARK_RE.search(stripped):
        score += 0.4
    if INTERROGATIVE_RE.search(stripped):
        score += 0.3
    if SHALLOW_HEADING_RE.search(stripped):
        score += 0.2
    if len(stripped) < SHORT_LINE_CHARS:
        score += 0.1
    return min(score, 1.0)


def clean_question_text(line: str) -> str:
    """Strip heading, bold-label and "Question:" prefixes."""
    text = line.strip()
    text = HEADING_RE.sub("", text)
    text = re.sub(r"^\*\*(.*)\*\*[:：]?", r"\1", text)
    text = re.sub(r"^(问题?[:：]|Question[:：]?)\s*", "", text, flags=re.IGNORECASE)
    return text.strip()
