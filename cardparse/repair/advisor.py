"""
Repair suggestions.

Turns detected problems into reviewable, optionally automatic fixes.
Four sources feed the analysis:

1. Format scans: heading without a space, full-width CJK punctuation,
   repeated spaces
2. Structure scans: no heading, no recognizable question/answer
3. Integrity issues passed in from the IntegrityChecker
4. Template diagnosis: why the template did not match, and the minimal
   edit that would make it match

Suggestions are ranked by priority, then confidence. apply() walks them
in that order and never aborts on a single failing suggestion.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

from cardparse.exceptions import TemplateCompileError
from cardparse.models import (
    ANSWER_FIELD,
    NOTES_FIELD,
    QUESTION_FIELD,
    IntegrityIssue,
    IssueKind,
    Priority,
    RepairAnalysis,
    RepairResult,
    RepairStep,
    RepairSuggestion,
    SegmentType,
    StepAction,
    SuggestionKind,
    Template,
)
from cardparse.segments.classifier import SegmentClassifier
from cardparse.tags import remove_tags
from cardparse.templates.compiler import TemplateCompiler
from cardparse.text import (
    HEADING_RE,
    non_blank_lines,
    normalize_unicode,
    strip_control_chars,
)

if TYPE_CHECKING:
    from cardparse.repair.store import DocumentStore

logger = logging.getLogger(__name__)

HEADING_NO_SPACE_RE = re.compile(r"^(#{1,6})([^\s#])")
REPEATED_SPACES_RE = re.compile(r"(?<=\S) {2,}(?=\S)")
CJK_PUNCTUATION = str.maketrans(
    {"：": ":", "；": ";", "，": ",", "。": ".", "？": "?", "！": "!", "（": "(", "）": ")"}
)
CJK_PUNCTUATION_RE = re.compile(r"[：；，。？！（）]")

QA_STRUCTURE_PATTERNS = (
    re.compile(r"^#{1,6}\s+.*[？?]", re.MULTILINE),
    re.compile(r"^#{1,6}\s+.*(什么|如何|为什么|怎么)", re.MULTILINE),
    re.compile(r"问题[:：]", re.IGNORECASE),
    re.compile(r"^Q[:：]", re.IGNORECASE | re.MULTILINE),
)

QUICK_FIX_CONFIDENCE = 0.8
PREVIEW_CHARS = 100

# Named content formatters usable as FORMAT step values
FORMAT_PUNCTUATION = "normalize_punctuation"
FORMAT_SPACES = "collapse_spaces"
FORMAT_HEADINGS = "fix_heading_spaces"
FORMAT_UNICODE = "normalize_unicode"


def normalize_punctuation(text: str) -> str:
    """Convert full-width CJK punctuation to ASCII."""
    return text.translate(CJK_PUNCTUATION)


def collapse_spaces(text: str) -> str:
    """Collapse runs of spaces between words (indentation is kept)."""
    return REPEATED_SPACES_RE.sub(" ", text)


def fix_heading_spaces(text: str) -> str:
    lines = text.split("\n")
    return "\n".join(
        HEADING_NO_SPACE_RE.sub(r"\1 \2", line) if _is_unspaced_heading(line) else line
        for line in lines
    )


def _is_unspaced_heading(line: str) -> bool:
    """``##Title`` is a heading missing its space; ``#tag`` lines are not."""
    return HEADING_NO_SPACE_RE.match(line) is not None and bool(remove_tags(line))


FORMATTERS = {
    FORMAT_PUNCTUATION: normalize_punctuation,
    FORMAT_SPACES: collapse_spaces,
    FORMAT_HEADINGS: fix_heading_spaces,
    FORMAT_UNICODE: lambda text: normalize_unicode(strip_control_chars(text)),
}


def _suggestion_id() -> str:
    return f"suggestion_{uuid.uuid4().hex[:12]}"


def _preview(text: str) -> str:
    return text if len(text) <= PREVIEW_CHARS else text[:PREVIEW_CHARS] + "..."


class RepairAdvisor:
    """Analyze cards and apply repair suggestions.

    Usage:
        advisor = RepairAdvisor()
        analysis = advisor.analyze(original_text, fields, template, issues)
        result = advisor.apply(original_text, analysis.quick_fixes, auto_fix_only=True)
    """

    def __init__(
        self,
        compiler: TemplateCompiler | None = None,
        classifier: SegmentClassifier | None = None,
    ):
        self.compiler = compiler if compiler is not None else TemplateCompiler()
        self.classifier = classifier if classifier is not None else SegmentClassifier()

    # =========================================================================
    # Analysis
    # =========================================================================

    def analyze(
        self,
        original_text: str,
        current_fields: Mapping[str, str] | None = None,
        template: Template | None = None,
        issues: Iterable[IntegrityIssue] = (),
    ) -> RepairAnalysis:
        """Build ranked repair suggestions for one card.

        Args:
            original_text: Source text of the card.
            current_fields: Stored fields.
            template: Template the card is expected to match.
            issues: Integrity issues, typically from IntegrityChecker.check().

        Returns:
            RepairAnalysis with suggestions split into quick and complex fixes.
        """
        start = time.perf_counter()
        fields = dict(current_fields or {})
        issues = list(issues)

        template_suggestions = self._template_suggestions(original_text, template)
        template_adds_heading = any(
            step.action is StepAction.INSERT and step.value and step.value.startswith("#")
            for s in template_suggestions
            for step in s.steps
        )
        # A heading would only get in the way of a template that has none
        skip_heading = template_adds_heading or (
            template is not None and "#" not in template.pattern
        )

        suggestions: list[RepairSuggestion] = []
        suggestions.extend(self._format_suggestions(original_text))
        suggestions.extend(self._structure_suggestions(original_text, skip_heading=skip_heading))
        suggestions.extend(self._integrity_suggestions(issues, fields))
        suggestions.extend(template_suggestions)

        # Stable: equal priority keeps discovery order
        suggestions.sort(key=lambda s: (-s.priority.rank, -s.confidence))

        quick = [s for s in suggestions if s.auto_fixable and s.confidence > QUICK_FIX_CONFIDENCE]
        complex_ = [s for s in suggestions if s not in quick]

        analysis_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            f"Repair analysis: {len(suggestions)} suggestions "
            f"({len(quick)} quick) in {analysis_ms:.1f}ms"
        )
        return RepairAnalysis(
            original_text=original_text,
            current_fields=fields,
            template=template,
            issues=issues,
            suggestions=suggestions,
            quick_fixes=quick,
            complex_fixes=complex_,
            analysis_ms=analysis_ms,
        )

    def quick_fixes(self, content: str, template: Template | None = None) -> list[RepairSuggestion]:
        """Shortcut for the quick fixes of ``content``."""
        return self.analyze(content, {}, template).quick_fixes

    def _format_suggestions(self, content: str) -> list[RepairSuggestion]:
        suggestions = []

        for index, line in enumerate(content.split("\n")):
            if not _is_unspaced_heading(line):
                continue
            fixed = HEADING_NO_SPACE_RE.sub(r"\1 \2", line)
            suggestions.append(
                RepairSuggestion(
                    id=_suggestion_id(),
                    kind=SuggestionKind.FORMAT_FIX,
                    priority=Priority.MEDIUM,
                    title="Fix heading format",
                    description=f"Line {index + 1}: heading marker is not followed by a space",
                    auto_fixable=True,
                    confidence=0.95,
                    preview_before=line,
                    preview_after=fixed,
                    steps=[
                        # Formatted at apply time so earlier edits to the line survive
                        RepairStep(
                            id="fix-heading-space",
                            action=StepAction.FORMAT,
                            description="Add a space after '#'",
                            target=f"line:{index}",
                            value=FORMAT_HEADINGS,
                        )
                    ],
                )
            )

        found = CJK_PUNCTUATION_RE.search(content)
        if found:
            suggestions.append(
                RepairSuggestion(
                    id=_suggestion_id(),
                    kind=SuggestionKind.FORMAT_FIX,
                    priority=Priority.LOW,
                    title="Unify punctuation",
                    description="Convert full-width punctuation to ASCII punctuation",
                    auto_fixable=True,
                    confidence=0.9,
                    preview_before=found.group(0),
                    preview_after=normalize_punctuation(found.group(0)),
                    steps=[
                        RepairStep(
                            id="normalize-punctuation",
                            action=StepAction.FORMAT,
                            description="Convert full-width punctuation",
                            target="content",
                            value=FORMAT_PUNCTUATION,
                        )
                    ],
                )
            )

        spaced = REPEATED_SPACES_RE.search(content)
        if spaced:
            line_start = content.rfind("\n", 0, spaced.start()) + 1
            line_end = content.find("\n", spaced.end())
            line = content[line_start : line_end if line_end != -1 else len(content)]
            suggestions.append(
                RepairSuggestion(
                    id=_suggestion_id(),
                    kind=SuggestionKind.FORMAT_FIX,
                    priority=Priority.LOW,
                    title="Collapse repeated spaces",
                    description="Replace runs of spaces between words with a single space",
                    auto_fixable=True,
                    confidence=0.9,
                    preview_before=_preview(line),
                    preview_after=_preview(collapse_spaces(line)),
                    steps=[
                        RepairStep(
                            id="collapse-spaces",
                            action=StepAction.FORMAT,
                            description="Collapse repeated spaces",
                            target="content",
                            value=FORMAT_SPACES,
                        )
                    ],
                )
            )

        return suggestions

    def _structure_suggestions(self, content: str, skip_heading: bool = False) -> list[RepairSuggestion]:
        suggestions = []
        lines = content.split("\n")
        has_heading = any(HEADING_RE.match(line) for line in lines)
        has_unspaced = any(_is_unspaced_heading(line) for line in lines)
        has_content = any(len(line.strip()) > 10 for line in lines)
        first_line = lines[0] if lines else ""

        if content.strip() and not has_heading and not has_unspaced and not skip_heading:
            suggestions.append(
                RepairSuggestion(
                    id=_suggestion_id(),
                    kind=SuggestionKind.CONTENT_RESTRUCTURE,
                    priority=Priority.HIGH,
                    title="Add a heading",
                    description="The content has no heading; mark the question with an H2 heading",
                    auto_fixable=True,
                    confidence=0.9,
                    preview_before=first_line,
                    preview_after=f"## {first_line}",
                    steps=[
                        RepairStep(
                            id="add-heading",
                            action=StepAction.INSERT,
                            description="Insert an H2 marker at the start of the first line",
                            target="line:0",
                            value="## ",
                            position=0,
                        )
                    ],
                )
            )

        if has_content and not self._has_qa_structure(content):
            suggestions.append(
                RepairSuggestion(
                    id=_suggestion_id(),
                    kind=SuggestionKind.CONTENT_RESTRUCTURE,
                    priority=Priority.MEDIUM,
                    title="Separate question and answer",
                    description="No clear question/answer structure was found",
                    auto_fixable=False,
                    confidence=0.7,
                    preview_before=_preview(content),
                    preview_after="## Question\n[question]\n\n[answer]",
                    steps=[
                        RepairStep(
                            id="restructure-qa",
                            action=StepAction.FORMAT,
                            description="Reorganize the content into a question and an answer",
                            target="content",
                            automated=False,
                        )
                    ],
                )
            )

        return suggestions

    def _has_qa_structure(self, content: str) -> bool:
        if any(pattern.search(content) for pattern in QA_STRUCTURE_PATTERNS):
            return True
        extraction = self.classifier.extract(content)
        types = {s.type for s in extraction.segments}
        return SegmentType.QUESTION in types and SegmentType.ANSWER in types

    def _integrity_suggestions(
        self, issues: list[IntegrityIssue], fields: dict[str, str]
    ) -> list[RepairSuggestion]:
        suggestions = []
        restored: set[str] = set()

        for issue in issues:
            if issue.kind in (IssueKind.DATA_LOSS, IssueKind.INCONSISTENCY):
                if issue.expected is None or issue.field in restored:
                    continue
                restored.add(issue.field)
                suggestions.append(
                    RepairSuggestion(
                        id=_suggestion_id(),
                        kind=SuggestionKind.FORMAT_FIX,
                        priority=Priority.HIGH,
                        title=f"Restore '{issue.field}' from the original text",
                        description=issue.description,
                        auto_fixable=True,
                        confidence=0.95,
                        preview_before=_preview(issue.detected),
                        preview_after=_preview(issue.expected),
                        steps=[
                            RepairStep(
                                id="restore-content",
                                action=StepAction.REPLACE,
                                description="Restore the original content",
                                target=issue.field,
                                value=issue.expected,
                            )
                        ],
                    )
                )

            elif issue.kind is IssueKind.FORMAT_ERROR and issue.auto_fixable:
                current = fields.get(issue.field, issue.detected)
                suggestions.append(
                    RepairSuggestion(
                        id=_suggestion_id(),
                        kind=SuggestionKind.FORMAT_FIX,
                        priority=Priority.MEDIUM,
                        title=f"Fix format of '{issue.field}'",
                        description=issue.description,
                        auto_fixable=True,
                        confidence=0.8,
                        preview_before=_preview(current),
                        preview_after=_preview(FORMATTERS[FORMAT_UNICODE](current)),
                        steps=[
                            RepairStep(
                                id="fix-format",
                                action=StepAction.FORMAT,
                                description=issue.suggestion or "Fix the format problem",
                                target=issue.field,
                                value=FORMAT_UNICODE,
                            )
                        ],
                    )
                )

            elif issue.kind in (IssueKind.CHECKSUM_MISMATCH, IssueKind.CORRUPTION):
                suggestions.append(
                    RepairSuggestion(
                        id=_suggestion_id(),
                        kind=SuggestionKind.MANUAL_EDIT,
                        priority=Priority.MEDIUM,
                        title=f"Review '{issue.field}'",
                        description=issue.description,
                        auto_fixable=False,
                        confidence=0.5,
                        preview_before=_preview(issue.detected),
                        preview_after=_preview(issue.expected or "[review manually]"),
                        steps=[
                            RepairStep(
                                id="review-field",
                                action=StepAction.REPLACE,
                                description=issue.suggestion or "Review the field manually",
                                target=issue.field,
                                automated=False,
                            )
                        ],
                    )
                )

        return suggestions

    def _template_suggestions(
        self, content: str, template: Template | None
    ) -> list[RepairSuggestion]:
        if template is None:
            return []

        try:
            compiled = self.compiler.get_compiled(template)
        except TemplateCompileError as e:
            return [
                RepairSuggestion(
                    id=_suggestion_id(),
                    kind=SuggestionKind.TEMPLATE_ADJUST,
                    priority=Priority.HIGH,
                    title="Fix the template pattern",
                    description=f"The template pattern is invalid: {e}",
                    auto_fixable=False,
                    confidence=0.6,
                    preview_before=template.pattern,
                    preview_after="[fix manually]",
                    steps=[
                        RepairStep(
                            id="fix-regex",
                            action=StepAction.REPLACE,
                            description="Fix the regular expression syntax",
                            target="template.pattern",
                            automated=False,
                        )
                    ],
                )
            ]

        if compiled.matcher.search(content):
            return []
        return self._explain_mismatch(content, template)

    def _explain_mismatch(self, content: str, template: Template) -> list[RepairSuggestion]:
        """One suggestion per unmet template expectation."""
        suggestions = []
        lines = content.split("\n")
        first_line = lines[0] if lines else ""
        pattern = template.pattern

        for marker, label in (("###", "H3"), ("##", "H2")):
            if marker in pattern:
                # An unspaced heading is already covered by the format fix
                if not any(
                    line.startswith(marker + " ") or _is_unspaced_heading(line) for line in lines
                ):
                    suggestions.append(
                        self._template_insert(
                            title=f"Add an {label} heading",
                            description=f"The template expects a '{marker}' heading but none was found",
                            line_index=0,
                            value=f"{marker} ",
                            before=first_line,
                            confidence=0.8,
                        )
                    )
                break

        non_blank = [i for i, line in enumerate(lines) if line.strip()]
        if re.search(r"Q(\\s\*)?(:|\[:)", pattern) and not re.search(r"^Q[:：]", content, re.MULTILINE):
            index = non_blank[0] if non_blank else 0
            suggestions.append(
                self._template_insert(
                    title="Add a 'Q:' marker",
                    description="The template expects a 'Q:' marker before the question",
                    line_index=index,
                    value="Q: ",
                    before=lines[index] if lines else "",
                    confidence=0.7,
                )
            )
        if re.search(r"A(\\s\*)?(:|\[:)", pattern) and not re.search(r"^A[:：]", content, re.MULTILINE):
            if len(non_blank) > 1:
                index = non_blank[1]
                suggestions.append(
                    self._template_insert(
                        title="Add an 'A:' marker",
                        description="The template expects an 'A:' marker before the answer",
                        line_index=index,
                        value="A: ",
                        before=lines[index],
                        confidence=0.7,
                    )
                )

        if not suggestions:
            suggestions.append(
                RepairSuggestion(
                    id=_suggestion_id(),
                    kind=SuggestionKind.TEMPLATE_ADJUST,
                    priority=Priority.MEDIUM,
                    title="Content does not match the template",
                    description=(
                        f"Template '{template.id}' did not match and no single missing "
                        "marker explains why; adjust the content or the template"
                    ),
                    auto_fixable=False,
                    confidence=0.5,
                    preview_before=_preview(content),
                    preview_after=template.pattern,
                    steps=[
                        RepairStep(
                            id="adjust-template",
                            action=StepAction.REPLACE,
                            description="Adjust the template pattern or the content",
                            target="template.pattern",
                            automated=False,
                        )
                    ],
                )
            )
        return suggestions

    def _template_insert(
        self,
        title: str,
        description: str,
        line_index: int,
        value: str,
        before: str,
        confidence: float,
    ) -> RepairSuggestion:
        return RepairSuggestion(
            id=_suggestion_id(),
            kind=SuggestionKind.TEMPLATE_ADJUST,
            priority=Priority.HIGH,
            title=title,
            description=description,
            auto_fixable=True,
            confidence=confidence,
            preview_before=before,
            preview_after=value + before,
            steps=[
                RepairStep(
                    id="template-insert",
                    action=StepAction.INSERT,
                    description=f"Insert '{value.strip()}' at the start of line {line_index + 1}",
                    target=f"line:{line_index}",
                    value=value,
                    position=0,
                )
            ],
        )

    # =========================================================================
    # Application
    # =========================================================================

    def apply(
        self,
        content: str,
        suggestions: Iterable[RepairSuggestion],
        auto_fix_only: bool = False,
        fields: Mapping[str, str] | None = None,
    ) -> RepairResult:
        """Apply suggestions in priority order.

        Args:
            content: Current card content.
            suggestions: Suggestions to apply.
            auto_fix_only: Skip suggestions (and steps) that need a human.
            fields: Current fields; field-targeted steps edit a copy.

        Returns:
            RepairResult with the modified content and fields.
        """
        ordered = sorted(suggestions, key=lambda s: -s.priority.rank)
        modified = content
        modified_fields = dict(fields) if fields is not None else {NOTES_FIELD: content}
        applied: list[str] = []
        warnings: list[str] = []
        errors: list[str] = []
        unapplied_manual = False
        content_edited = False

        for suggestion in ordered:
            if auto_fix_only and not suggestion.auto_fixable:
                unapplied_manual = True
                continue

            try:
                outcome = self._apply_suggestion(modified, modified_fields, suggestion, auto_fix_only)
            except (ValueError, IndexError, KeyError) as e:
                errors.append(f"Failed to apply '{suggestion.title}': {e}")
                logger.warning(f"Repair suggestion {suggestion.id} failed: {e}")
                continue

            new_content, new_fields, step_warnings, changed_content, steps_run = outcome
            warnings.extend(step_warnings)
            if not steps_run:
                if not suggestion.auto_fixable:
                    unapplied_manual = True
                continue

            modified, modified_fields = new_content, new_fields
            content_edited = content_edited or changed_content
            applied.append(suggestion.id)

        if content_edited:
            modified_fields.update(self._reparse(modified))

        logger.info(f"Applied {len(applied)} of {len(ordered)} repair suggestions")
        return RepairResult(
            success=bool(applied),
            applied_suggestions=applied,
            modified_content=modified,
            modified_fields=modified_fields,
            warnings=warnings,
            errors=errors,
            needs_manual_review=unapplied_manual or bool(errors),
        )

    def _apply_suggestion(
        self,
        content: str,
        fields: dict[str, str],
        suggestion: RepairSuggestion,
        auto_fix_only: bool,
    ) -> tuple[str, dict[str, str], list[str], bool, int]:
        """Apply one suggestion's steps. Raises on the first failing step."""
        fields = dict(fields)
        warnings = []
        content_changed = False
        steps_run = 0

        for step in suggestion.steps:
            if not step.automated and (auto_fix_only or suggestion.auto_fixable):
                continue
            if not step.automated:
                warnings.append(f"'{suggestion.title}' needs a manual edit: {step.description}")
                continue

            target = step.target
            if target.startswith("template."):
                raise ValueError(f"step {step.id} targets the template, which is read-only")
            if target == "content" or target.startswith("line:"):
                content = self._apply_content_step(content, step)
                content_changed = True
            else:
                fields[target] = self._apply_field_step(fields.get(target, ""), step)
                if target == NOTES_FIELD:
                    content = fields[NOTES_FIELD]
            steps_run += 1

        return content, fields, warnings, content_changed, steps_run

    def _apply_content_step(self, content: str, step: RepairStep) -> str:
        if step.target == "content":
            if step.action is StepAction.REPLACE:
                if step.value is None:
                    raise ValueError(f"step {step.id} has no replacement value")
                return step.value
            if step.action is StepAction.FORMAT:
                return self._format(content, step.value)
            if step.action is StepAction.DELETE:
                return ""
            raise ValueError(f"step {step.id}: cannot {step.action.value} whole content")

        index = int(step.target.split(":", 1)[1])
        lines = content.split("\n")
        if step.action is StepAction.INSERT and step.position is None:
            if not 0 <= index <= len(lines):
                raise IndexError(f"line {index} out of range")
            lines.insert(index, step.value or "")
            return "\n".join(lines)

        if not 0 <= index < len(lines):
            raise IndexError(f"line {index} out of range")
        line = lines[index]
        if step.action is StepAction.REPLACE:
            if step.value is None:
                raise ValueError(f"step {step.id} has no replacement value")
            lines[index] = step.value
        elif step.action is StepAction.INSERT:
            lines[index] = line[: step.position] + (step.value or "") + line[step.position :]
        elif step.action is StepAction.DELETE:
            del lines[index]
        else:
            lines[index] = self._format(line, step.value)
        return "\n".join(lines)

    def _apply_field_step(self, value: str, step: RepairStep) -> str:
        if step.action is StepAction.REPLACE:
            if step.value is None:
                raise ValueError(f"step {step.id} has no replacement value")
            return step.value
        if step.action is StepAction.FORMAT:
            return self._format(value, step.value or FORMAT_UNICODE)
        if step.action is StepAction.DELETE:
            return ""
        position = len(value) if step.position is None else step.position
        return value[:position] + (step.value or "") + value[position:]

    def _format(self, text: str, formatter: str | None) -> str:
        if formatter is None:
            for name in (FORMAT_PUNCTUATION, FORMAT_SPACES, FORMAT_HEADINGS):
                text = FORMATTERS[name](text)
            return text
        if formatter not in FORMATTERS:
            raise ValueError(f"unknown formatter '{formatter}'")
        return FORMATTERS[formatter](text)

    def _reparse(self, content: str) -> dict[str, str]:
        """Question/answer from edited content; notes mirror the new content."""
        lines = non_blank_lines(content)
        fields = {NOTES_FIELD: content}
        if lines:
            fields[QUESTION_FIELD] = HEADING_RE.sub("", lines[0]).strip()
            fields[ANSWER_FIELD] = "\n".join(lines[1:])
        return fields

    def apply_to_document(
        self,
        store: DocumentStore,
        path: str,
        suggestions: Iterable[RepairSuggestion],
        auto_fix_only: bool = True,
    ) -> RepairResult:
        """Read a document, apply suggestions and write it back if it changed.

        Raises:
            OSError: If the document cannot be read. Write failures are
                reported on the result instead.
        """
        content = store.read(path)
        result = self.apply(content, suggestions, auto_fix_only=auto_fix_only)
        if result.modified_content == content:
            return result

        try:
            store.write(path, result.modified_content)
            logger.info(f"Wrote repaired content to {path}")
        except OSError as e:
            result.errors.append(f"Failed to write {path}: {e}")
            result.needs_manual_review = True
            result.success = False
            logger.error(f"Failed to write repaired content to {path}: {e}")
        return result
