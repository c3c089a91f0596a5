"""
cardparse: Extract flashcard fields from Markdown notes without losing text.

Notes are run through a cascade of extraction strategies, from strict
template matching down to protective parsing. Whatever level succeeds,
the untouched source text is kept in ``fields["notes"]``.

Example:
    >>> from cardparse import DegradationEngine, H2_QA
    >>> engine = DegradationEngine()
    >>> result = engine.extract("## What is X?\\nX is Y.", H2_QA.template)
    >>> result.fields["question"], result.method
    ('What is X?', 'strict_structural')

    >>> # Check stored fields against the source, then repair
    >>> checker = IntegrityChecker()
    >>> check = checker.check("card-1", stored_fields, original_text)
    >>> analysis = RepairAdvisor().analyze(original_text, stored_fields, issues=check.issues)
"""

from cardparse.config import CacheConfig, ExtractionConfig, IntegrityConfig
from cardparse.exceptions import (
    CardParseError,
    ConfigurationError,
    EmptyContentError,
    StrategyExecutionError,
    TemplateCompileError,
)
from cardparse.extractors import (
    DEFAULT_PROFILE,
    LENIENT_PROFILE,
    STRICT_PROFILE,
    DegradationEngine,
    ExtractionProfile,
    ExtractionStrategy,
    extract_batch,
    extract_document,
    get_profile,
    split_document,
)
from cardparse.integrity import CardSnapshot, IntegrityChecker
from cardparse.models import (
    ANSWER_FIELD,
    NOTES_FIELD,
    QUESTION_FIELD,
    TAGS_FIELD,
    ContentSegment,
    DegradationAttempt,
    DegradationReport,
    ExtractionResult,
    IntegrityCheckResult,
    IntegrityIssue,
    IntegrityMetrics,
    IntegrityReport,
    IntegrityStatus,
    IssueKind,
    Priority,
    RepairAnalysis,
    RepairResult,
    RepairStep,
    RepairSuggestion,
    SegmentType,
    Severity,
    StepAction,
    SuggestionKind,
    Template,
)
from cardparse.repair import DocumentStore, FileDocumentStore, RepairAdvisor
from cardparse.segments import DEFAULT_LIBRARY, PatternLibrary, SegmentClassifier
from cardparse.tags import extract_tags
from cardparse.templates import (
    H2_QA,
    PRESET_TEMPLATES,
    CompilationCache,
    TemplateCompiler,
    identify_template,
    load_templates,
)

__version__ = "0.1.0"
__all__ = [
    # Extraction
    "DegradationEngine",
    "ExtractionStrategy",
    "ExtractionProfile",
    "get_profile",
    "STRICT_PROFILE",
    "LENIENT_PROFILE",
    "DEFAULT_PROFILE",
    "extract_batch",
    "extract_document",
    "split_document",
    # Templates
    "Template",
    "TemplateCompiler",
    "CompilationCache",
    "PRESET_TEMPLATES",
    "H2_QA",
    "identify_template",
    "load_templates",
    # Segments
    "SegmentClassifier",
    "PatternLibrary",
    "DEFAULT_LIBRARY",
    "extract_tags",
    # Integrity & repair
    "IntegrityChecker",
    "CardSnapshot",
    "RepairAdvisor",
    "DocumentStore",
    "FileDocumentStore",
    # Configuration
    "CacheConfig",
    "ExtractionConfig",
    "IntegrityConfig",
    # Models
    "ContentSegment",
    "ExtractionResult",
    "DegradationAttempt",
    "DegradationReport",
    "IntegrityIssue",
    "IntegrityMetrics",
    "IntegrityCheckResult",
    "IntegrityReport",
    "RepairStep",
    "RepairSuggestion",
    "RepairAnalysis",
    "RepairResult",
    # Enums
    "SegmentType",
    "IssueKind",
    "Severity",
    "IntegrityStatus",
    "Priority",
    "StepAction",
    "SuggestionKind",
    # Field names
    "NOTES_FIELD",
    "QUESTION_FIELD",
    "ANSWER_FIELD",
    "TAGS_FIELD",
    # Exceptions
    "CardParseError",
    "TemplateCompileError",
    "StrategyExecutionError",
    "EmptyContentError",
    "ConfigurationError",
]
