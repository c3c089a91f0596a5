"""
Data models for cardparse.

These models represent templates, extraction results, integrity issues
and repair suggestions. All of them serialize to JSON-ready dicts via
``to_dict()`` for logging and audit trails.

The raw note text is never stored anywhere except verbatim: every
ExtractionResult carries it in ``fields["notes"]``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

NOTES_FIELD = "notes"
QUESTION_FIELD = "question"
ANSWER_FIELD = "answer"
TAGS_FIELD = "tags"


def _plain(value: Any) -> Any:
    """Convert enums and tuples to JSON-friendly values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


def _dict_factory(items: list[tuple[str, Any]]) -> dict[str, Any]:
    return {key: _plain(value) for key, value in items}


# =============================================================================
# ENUMS
# =============================================================================


class SegmentType(Enum):
    """Provisional role of a content segment."""

    QUESTION = "question"
    ANSWER = "answer"
    SEPARATOR = "separator"
    METADATA = "metadata"
    UNKNOWN = "unknown"


class IssueKind(Enum):
    """Kinds of integrity issues."""

    DATA_LOSS = "data_loss"
    INCONSISTENCY = "inconsistency"
    FORMAT_ERROR = "format_error"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    CORRUPTION = "corruption"


class Severity(Enum):
    """Integrity issue severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IntegrityStatus(Enum):
    """Overall card health after an integrity check."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class Priority(Enum):
    """Repair suggestion priority."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank, higher first."""
        return {"high": 3, "medium": 2, "low": 1}[self.value]


class StepAction(Enum):
    """Edit performed by a repair step."""

    REPLACE = "replace"
    INSERT = "insert"
    DELETE = "delete"
    FORMAT = "format"


class SuggestionKind(Enum):
    """Category of a repair suggestion."""

    FORMAT_FIX = "format_fix"
    CONTENT_RESTRUCTURE = "content_restructure"
    TEMPLATE_ADJUST = "template_adjust"
    MANUAL_EDIT = "manual_edit"


# =============================================================================
# TEMPLATES & SEGMENTS
# =============================================================================


@dataclass(frozen=True)
class Template:
    """A regex template mapping capture groups to card fields.

    Templates are owned by the caller; cardparse only reads them.

    Attributes:
        id: Template identifier.
        name: Human-readable name (part of the cache key).
        pattern: Regular expression source.
        flags: Single-letter flags: i, m, s, x (g and u are accepted and ignored).
        field_mappings: Field name -> capture group index (0 = whole match).
        description: Optional free text, not part of the cache key.
    """

    id: str
    name: str
    pattern: str
    flags: str = ""
    field_mappings: dict[str, int] = field(default_factory=dict)
    description: str = ""

    def declares(self, field_name: str) -> bool:
        """Whether the template maps a field."""
        return field_name in self.field_mappings

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self, dict_factory=_dict_factory)


@dataclass
class ContentSegment:
    """A blank-line delimited block of text with a provisional type."""

    type: SegmentType
    text: str
    confidence: float  # 0.0 to 1.0
    span: tuple[int, int]  # Character offsets into the source text
    features: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self, dict_factory=_dict_factory)


# =============================================================================
# EXTRACTION
# =============================================================================


@dataclass(frozen=True)
class ExtractionResult:
    """Outcome of one strategy attempt (or of the whole cascade).

    ``fields["notes"]`` always holds the untouched input text.
    """

    success: bool
    confidence: float
    fields: dict[str, str]
    method: str
    degradation_level: int
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    preserved_content: bool = True
    next_level_suggested: int | None = None

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be between 0.0 and 1.0, got {self.confidence}")

    @property
    def notes(self) -> str:
        """The preserved raw text."""
        return self.fields.get(NOTES_FIELD, "")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self, dict_factory=_dict_factory)


@dataclass
class DegradationAttempt:
    """One strategy invocation recorded by the engine."""

    level: int
    strategy_name: str
    result: ExtractionResult
    timestamp_ms: float
    duration_ms: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self, dict_factory=_dict_factory)


@dataclass
class DegradationReport:
    """Final result plus the full audit trail of a cascade run."""

    result: ExtractionResult
    attempts: list[DegradationAttempt]
    degradation_path: list[str]
    total_duration_ms: float
    accepted_level: int | None  # None when no level met its threshold
    recommendations: list[str] = field(default_factory=list)
    processing_log: list[str] = field(default_factory=list)
    template_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self, dict_factory=_dict_factory)


# =============================================================================
# INTEGRITY
# =============================================================================


@dataclass
class IntegrityIssue:
    """A detected drift between stored fields and the source text."""

    id: str
    kind: IssueKind
    severity: Severity
    field: str
    description: str
    detected: str
    expected: str | None = None
    auto_fixable: bool = False
    suggestion: str | None = None
    fix_action: str | None = None  # "strip_control_chars", "normalize_unicode", "restore_notes"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self, dict_factory=_dict_factory)


@dataclass
class IntegrityMetrics:
    """Summary numbers for one card."""

    total_fields: int
    healthy_fields: int
    warning_fields: int
    critical_fields: int
    completeness: float  # Fraction of non-empty fields
    consistency: float  # Similarity of notes to the original text
    checksum_match: bool

    @property
    def completeness_pct(self) -> float:
        return round(self.completeness * 100, 1)

    @property
    def consistency_pct(self) -> float:
        return round(self.consistency * 100, 1)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self, dict_factory=_dict_factory)
        data["completeness_pct"] = self.completeness_pct
        data["consistency_pct"] = self.consistency_pct
        return data


@dataclass
class IntegrityCheckResult:
    """Result of checking one card."""

    card_id: str
    timestamp: float
    check_type: str  # "manual", "realtime", "periodic", "deep"
    status: IntegrityStatus
    issues: list[IntegrityIssue]
    metrics: IntegrityMetrics
    fields: dict[str, str]  # Fields after any auto-fix
    recommendations: list[str] = field(default_factory=list)
    auto_fix_applied: bool = False
    fixed_issue_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self, dict_factory=_dict_factory)


@dataclass
class IntegrityReport:
    """Summary of a batch integrity sweep."""

    report_id: str
    timestamp: float
    total_cards: int
    checked_cards: int
    healthy_cards: int
    warning_cards: int
    critical_cards: int
    common_issues: list[tuple[str, int]]
    results: list[IntegrityCheckResult] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)  # card_id -> error message
    recommendations: list[str] = field(default_factory=list)
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self, dict_factory=_dict_factory)


# =============================================================================
# REPAIR
# =============================================================================


@dataclass
class RepairStep:
    """A single edit.

    ``target`` is a field name ("notes", "question", ...), ``"line:<n>"``
    (0-based), ``"content"`` for the whole text, or ``"template.pattern"``
    (manual only).
    """

    id: str
    action: StepAction
    description: str
    target: str
    value: str | None = None
    position: int | None = None
    automated: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self, dict_factory=_dict_factory)


@dataclass
class RepairSuggestion:
    """A reviewable, optionally automatic fix."""

    id: str
    kind: SuggestionKind
    priority: Priority
    title: str
    description: str
    auto_fixable: bool
    confidence: float
    preview_before: str
    preview_after: str
    steps: list[RepairStep] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self, dict_factory=_dict_factory)


@dataclass
class RepairAnalysis:
    """Ranked suggestions for one card."""

    original_text: str
    current_fields: dict[str, str]
    template: Template | None
    issues: list[IntegrityIssue]
    suggestions: list[RepairSuggestion]
    quick_fixes: list[RepairSuggestion]
    complex_fixes: list[RepairSuggestion]
    analysis_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self, dict_factory=_dict_factory)


@dataclass
class RepairResult:
    """Outcome of applying suggestions."""

    success: bool
    applied_suggestions: list[str]
    modified_content: str
    modified_fields: dict[str, str]
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    needs_manual_review: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self, dict_factory=_dict_factory)
