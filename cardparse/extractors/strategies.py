"""
Extraction strategies.

Six strategies, ordered from most to least precise. The DegradationEngine
runs them in order until one clears its level's minimum confidence:

1. StrictStructural   (0.8) - template regex, confidence = coverage
2. RelaxedStructural  (0.7) - loosened regex, confidence = coverage x 0.9
3. FuzzySegment       (0.6) - first line that looks like a question
4. SemanticAnalysis   (0.5) - best question-scored line
5. SimpleSplit        (0.3) - first line / rest
6. ProtectiveParsing  (0.1) - keep everything in notes, never fails

Every result carries the untouched input in ``fields["notes"]``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from cardparse.config import ExtractionConfig
from cardparse.exceptions import EmptyContentError, TemplateCompileError
from cardparse.models import (
    ANSWER_FIELD,
    NOTES_FIELD,
    QUESTION_FIELD,
    TAGS_FIELD,
    DegradationAttempt,
    ExtractionResult,
    SegmentType,
    Template,
)
from cardparse.segments.classifier import SegmentClassifier
from cardparse.tags import extract_tags
from cardparse.templates.compiler import CompiledTemplate, TemplateCompiler
from cardparse.templates.presets import fields_from_match
from cardparse.text import (
    clean_question_text,
    coverage_ratio,
    looks_like_question,
    non_blank_lines,
    question_score,
)

logger = logging.getLogger(__name__)

TERMINAL_LEVEL = 6


@dataclass
class ExtractionContext:
    """Per-call state shared with strategies."""

    original_text: str
    config: ExtractionConfig = field(default_factory=ExtractionConfig)
    template: Template | None = None
    card_id: str | None = None
    attempts: list[DegradationAttempt] = field(default_factory=list)


def _wants(template: Template | None, field_name: str) -> bool:
    """Heuristic strategies fill a field when the template maps it, or when there is no template."""
    return template is None or template.declares(field_name)


class ExtractionStrategy(ABC):
    """Abstract base for extraction strategies."""

    name: str = "base"
    level: int = 0
    min_confidence: float = 0.0

    @abstractmethod
    def attempt(
        self,
        text: str,
        template: Template | None,
        context: ExtractionContext,
    ) -> ExtractionResult:
        """Extract fields from ``text``.

        Should return an unsuccessful result rather than raise when the
        text simply does not fit (graceful degradation).
        """
        pass

    def _result(
        self,
        text: str,
        *,
        success: bool,
        confidence: float,
        fields: dict[str, str] | None = None,
        warnings: list[str] | None = None,
        errors: list[str] | None = None,
    ) -> ExtractionResult:
        all_fields = {NOTES_FIELD: text}
        for name, value in (fields or {}).items():
            if name != NOTES_FIELD:
                all_fields[name] = value

        return ExtractionResult(
            success=success,
            confidence=confidence,
            fields=all_fields,
            method=self.name,
            degradation_level=self.level,
            warnings=warnings or [],
            errors=errors or [],
            preserved_content=True,
            next_level_suggested=None if success or self.level >= TERMINAL_LEVEL else self.level + 1,
        )

    def _add_tags(self, text: str, template: Template | None, fields: dict[str, str]) -> None:
        """Fill ``tags`` from inline #tags when the template declares it and it is empty."""
        if template is not None and template.declares(TAGS_FIELD) and not fields.get(TAGS_FIELD):
            fields[TAGS_FIELD] = " ".join(extract_tags(text))


# =============================================================================
# STRUCTURAL STRATEGIES
# =============================================================================


class _StructuralStrategy(ExtractionStrategy):
    """Shared logic for the two template-regex levels."""

    relaxed = False

    def __init__(self, compiler: TemplateCompiler | None = None):
        self.compiler = compiler if compiler is not None else TemplateCompiler()

    def _compiled(self, template: Template) -> CompiledTemplate:
        if self.relaxed:
            return self.compiler.get_relaxed(template)
        return self.compiler.get_compiled(template)

    def _discount(self, context: ExtractionContext) -> float:
        return 1.0

    def attempt(
        self,
        text: str,
        template: Template | None,
        context: ExtractionContext,
    ) -> ExtractionResult:
        if template is None:
            return self._result(
                text, success=False, confidence=0.0, warnings=["No template provided"]
            )

        try:
            compiled = self._compiled(template)
        except TemplateCompileError as e:
            return self._result(text, success=False, confidence=0.0, errors=[str(e)])

        match = compiled.matcher.search(text)
        if match is None:
            return self._result(
                text,
                success=False,
                confidence=0.0,
                warnings=[f"{self.name}: template did not match"],
                errors=["Content does not match the template"],
            )

        warnings = []
        if template.declares(NOTES_FIELD):
            warnings.append("Template maps 'notes'; the raw text is kept there instead")

        mappings = {k: v for k, v in template.field_mappings.items() if k != NOTES_FIELD}
        fields = fields_from_match(match, mappings)
        for name, group in mappings.items():
            if group > (compiled.matcher.groups or 0):
                warnings.append(f"Field '{name}' refers to missing group {group}")

        coverage = coverage_ratio(text, fields.values())
        confidence = coverage * self._discount(context)
        if coverage < context.config.coverage_warning_threshold:
            warnings.append(f"Low content coverage ({coverage:.0%})")
        if self.relaxed:
            warnings.append("Relaxed matching rules were used")

        self._add_tags(text, template, fields)
        return self._result(
            text, success=True, confidence=confidence, fields=fields, warnings=warnings
        )


class StrictStructuralStrategy(_StructuralStrategy):
    """Apply the template pattern exactly."""

    name = "strict_structural"
    level = 1
    min_confidence = 0.8


class RelaxedStructuralStrategy(_StructuralStrategy):
    """Apply the template with lookarounds removed and lazy quantifiers made greedy."""

    name = "relaxed_structural"
    level = 2
    min_confidence = 0.7
    relaxed = True

    def _discount(self, context: ExtractionContext) -> float:
        return context.config.relaxed_discount


# =============================================================================
# HEURISTIC STRATEGIES
# =============================================================================


class FuzzySegmentStrategy(ExtractionStrategy):
    """First line that looks like a question becomes the question."""

    name = "fuzzy_segment"
    level = 3
    min_confidence = 0.6

    def attempt(
        self,
        text: str,
        template: Template | None,
        context: ExtractionContext,
    ) -> ExtractionResult:
        lines = non_blank_lines(text)
        if not lines:
            raise EmptyContentError("Content is empty")

        question = lines[0].strip()
        answer_lines = lines[1:]
        found = False
        for index, line in enumerate(lines):
            if looks_like_question(line):
                question = clean_question_text(line)
                answer_lines = lines[index + 1 :]
                found = True
                break

        fields = {}
        if _wants(template, QUESTION_FIELD):
            fields[QUESTION_FIELD] = question
        if _wants(template, ANSWER_FIELD):
            fields[ANSWER_FIELD] = "\n".join(answer_lines)
        self._add_tags(text, template, fields)

        warnings = ["Fuzzy matching was used; verify the result"]
        if not found:
            warnings.append("No question-like line found; using the first line")

        return self._result(
            text,
            success=True,
            confidence=0.6 if found else 0.4,
            fields=fields,
            warnings=warnings,
        )


class SemanticAnalysisStrategy(ExtractionStrategy):
    """Pick the most question-like line; the rest is the answer."""

    name = "semantic_analysis"
    level = 4
    min_confidence = 0.5

    def __init__(self, classifier: SegmentClassifier | None = None):
        self.classifier = classifier if classifier is not None else SegmentClassifier()

    def attempt(
        self,
        text: str,
        template: Template | None,
        context: ExtractionContext,
    ) -> ExtractionResult:
        lines = non_blank_lines(text)
        if not lines:
            raise EmptyContentError("Content is empty")

        best_index = 0
        best_score = 0.0
        for index, line in enumerate(lines):
            score = question_score(line)
            if score > best_score:
                best_index, best_score = index, score

        separators = {
            segment.text.strip()
            for segment in self.classifier.classify(text)
            if segment.type is SegmentType.SEPARATOR
        }
        answer_lines = [
            line
            for index, line in enumerate(lines)
            if index != best_index and line.strip() not in separators
        ]

        fields = {}
        if _wants(template, QUESTION_FIELD):
            fields[QUESTION_FIELD] = lines[best_index].strip()
        if _wants(template, ANSWER_FIELD):
            fields[ANSWER_FIELD] = "\n".join(answer_lines)
        self._add_tags(text, template, fields)

        return self._result(
            text,
            success=True,
            confidence=0.5 if best_score > 0.3 else 0.3,
            fields=fields,
            warnings=["Semantic analysis was used; verify the result"],
        )


class SimpleSplitStrategy(ExtractionStrategy):
    """First non-blank line is the question, the rest the answer."""

    name = "simple_split"
    level = 5
    min_confidence = 0.3

    def attempt(
        self,
        text: str,
        template: Template | None,
        context: ExtractionContext,
    ) -> ExtractionResult:
        lines = non_blank_lines(text)
        if not lines:
            return self._result(
                text, success=False, confidence=0.0, errors=["Content is empty"]
            )

        fields = {}
        if _wants(template, QUESTION_FIELD):
            fields[QUESTION_FIELD] = lines[0].strip()
        if _wants(template, ANSWER_FIELD):
            fields[ANSWER_FIELD] = "\n".join(lines[1:])
        self._add_tags(text, template, fields)

        return self._result(
            text,
            success=True,
            confidence=0.3,
            fields=fields,
            warnings=["Simple split was used; check the result manually"],
        )


class ProtectiveParsingStrategy(ExtractionStrategy):
    """Terminal level: keep the whole text in notes and never fail."""

    name = "protective_parsing"
    level = 6
    min_confidence = 0.1

    def attempt(
        self,
        text: str,
        template: Template | None,
        context: ExtractionContext | None = None,
    ) -> ExtractionResult:
        text = text or ""
        fields = {}
        if template is not None:
            fields = {name: "" for name in template.field_mappings if name != NOTES_FIELD}

        first_line = text.split("\n")[0].strip()
        if first_line and _wants(template, QUESTION_FIELD):
            fields[QUESTION_FIELD] = first_line

        return self._result(
            text,
            success=True,
            confidence=0.2,
            fields=fields,
            warnings=[
                "Protective parsing was used; the full content is kept in notes",
                "Check and adjust the field assignment manually",
            ],
        )


def default_strategies(
    compiler: TemplateCompiler | None = None,
    classifier: SegmentClassifier | None = None,
) -> list[ExtractionStrategy]:
    """The six levels in design order."""
    compiler = compiler if compiler is not None else TemplateCompiler()
    return [
        StrictStructuralStrategy(compiler),
        RelaxedStructuralStrategy(compiler),
        FuzzySegmentStrategy(),
        SemanticAnalysisStrategy(classifier),
        SimpleSplitStrategy(),
        ProtectiveParsingStrategy(),
    ]
