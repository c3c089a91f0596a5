"""
Field extraction with graceful degradation.

Six ordered strategies, from strict template matching down to
protective parsing:
- StrictStructural (0.8) and RelaxedStructural (0.7): template regex
- FuzzySegment (0.6) and SemanticAnalysis (0.5): question heuristics
- SimpleSplit (0.3): first line / rest
- ProtectiveParsing (0.1): everything kept in notes, always succeeds

Profiles restrict which levels run:
- STRICT_PROFILE: template levels only
- LENIENT_PROFILE: heuristic levels only
- DEFAULT_PROFILE: all six levels
"""

from cardparse.extractors.batch import (
    DEFAULT_SEPARATORS,
    extract_batch,
    extract_document,
    split_document,
)
from cardparse.extractors.degradation import DegradationEngine
from cardparse.extractors.profiles import (
    DEFAULT_PROFILE,
    LENIENT_PROFILE,
    PROFILES,
    STRICT_PROFILE,
    ExtractionProfile,
    get_profile,
)
from cardparse.extractors.strategies import (
    ExtractionContext,
    ExtractionStrategy,
    FuzzySegmentStrategy,
    ProtectiveParsingStrategy,
    RelaxedStructuralStrategy,
    SemanticAnalysisStrategy,
    SimpleSplitStrategy,
    StrictStructuralStrategy,
    default_strategies,
)

__all__ = [
    # Engine
    "DegradationEngine",
    # Strategies
    "ExtractionStrategy",
    "ExtractionContext",
    "StrictStructuralStrategy",
    "RelaxedStructuralStrategy",
    "FuzzySegmentStrategy",
    "SemanticAnalysisStrategy",
    "SimpleSplitStrategy",
    "ProtectiveParsingStrategy",
    "default_strategies",
    # Profiles
    "ExtractionProfile",
    "get_profile",
    "PROFILES",
    "STRICT_PROFILE",
    "LENIENT_PROFILE",
    "DEFAULT_PROFILE",
    # Batch
    "DEFAULT_SEPARATORS",
    "split_document",
    "extract_batch",
    "extract_document",
]
