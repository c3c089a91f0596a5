"""
Markdown tag extraction.

Recognizes ``#tag``, ``#中文标签``, nested ``#parent/child`` and
``#multi-word_tag`` forms. Headings (``# Title``) are not tags, and tags
inside fenced or inline code are ignored by default.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Literal

TAG_RE = re.compile(r"(?<![\w&])#([\w-]+(?:/[\w-]+)*)")
VALID_TAG_RE = re.compile(r"^[\w\-/]+$")
FENCED_CODE_RE = re.compile(r"```[\s\S]*?```")
INLINE_CODE_RE = re.compile(r"`[^`]+`")

MAX_TAG_LENGTH = 100


def strip_code(text: str) -> str:
    """Remove fenced and inline code spans."""
    return INLINE_CODE_RE.sub("", FENCED_CODE_RE.sub("", text))


def extract_tags(text: str, exclude_code: bool = True) -> list[str]:
    """Extract unique tags (without ``#``), sorted.

    Args:
        text: Markdown content.
        exclude_code: Ignore tags inside code spans and fences.

    Returns:
        Sorted list of distinct tags.
    """
    if not text:
        return []
    if exclude_code:
        text = strip_code(text)
    return sorted({match.group(1) for match in TAG_RE.finditer(text)})


def is_valid_tag(tag: str) -> bool:
    return bool(tag) and len(tag) <= MAX_TAG_LENGTH and VALID_TAG_RE.match(tag) is not None


def clean_tags(tags: Iterable[str]) -> list[str]:
    """Drop invalid tags, keeping order."""
    return [tag.strip() for tag in tags if is_valid_tag(tag.strip())]


def merge_tags(
    text: str,
    existing: Iterable[str] = (),
    mode: Literal["replace", "append", "smart"] = "smart",
) -> list[str]:
    """Combine tags found in ``text`` with already assigned tags.

    ``replace`` keeps only extracted tags; ``append`` and ``smart`` keep
    manually assigned tags as well.
    """
    extracted = extract_tags(text)
    if mode == "replace":
        return extracted
    return sorted(set(existing) | set(extracted))


def remove_tags(text: str) -> str:
    """Remove inline tags from text."""
    if not text:
        return ""
    return TAG_RE.sub("", text).strip()
