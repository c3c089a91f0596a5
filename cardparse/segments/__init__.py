"""
Segment classification.

Splits notes into blank-line separated segments and assigns each a
provisional type (question, answer, separator, metadata, unknown) by
scoring it against a versioned, read-only PatternLibrary, then falling
back to layout heuristics.
"""

from cardparse.segments.classifier import (
    SegmentClassifier,
    SemanticExtraction,
    split_segments,
)
from cardparse.segments.patterns import (
    DEFAULT_LIBRARY,
    PatternEntry,
    PatternLibrary,
)

__all__ = [
    "SegmentClassifier",
    "SemanticExtraction",
    "split_segments",
    "PatternLibrary",
    "PatternEntry",
    "DEFAULT_LIBRARY",
]
