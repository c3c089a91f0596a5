"""
Built-in content templates and template identification.

Eight presets cover the common ways people write cards in Markdown:
heading Q&A (H2, H3), ``Q:``/``A:`` pairs, multiple choice, cloze,
term definitions, topic lists and "X vs Y" comparisons.

identify_template() tries every preset and scores each match:

    100                       (matched)
  + confidence * 100
  + priority * 10
  + completeness * 50         (share of non-empty mapped fields)
  + 30 / 15                   (match covers 60-95% / 40-60% of the text)
  + field quality             (sensible lengths, "?" in question, ...)
  + 15                        (Q&A presets with balanced question/answer)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from cardparse.exceptions import TemplateCompileError
from cardparse.models import ANSWER_FIELD, QUESTION_FIELD, Template
from cardparse.templates.compiler import TemplateCompiler, compile_pattern

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PresetTemplate:
    """A built-in template with its ranking metadata.

    Attributes:
        template: The template itself.
        kind: "basic_qa", "multiple_choice", "cloze", "definition",
            "list" or "comparison".
        confidence: Base confidence of a match.
        priority: Tie-break weight (higher wins).
        tags: Free-form labels.
    """

    template: Template
    kind: str
    confidence: float
    priority: int
    tags: tuple[str, ...] = ()

    @property
    def id(self) -> str:
        return self.template.id


@dataclass
class PresetMatch:
    """Best preset for a piece of text."""

    preset: PresetTemplate
    fields: dict[str, str]
    score: int
    candidates: list[tuple[str, int]] = field(default_factory=list)  # (preset id, score)

    @property
    def template(self) -> Template:
        return self.preset.template

    @property
    def confidence(self) -> float:
        return self.preset.confidence


def _preset(
    id: str,
    name: str,
    pattern: str,
    mappings: dict[str, int],
    kind: str,
    confidence: float,
    priority: int,
    description: str,
    tags: tuple[str, ...] = (),
) -> PresetTemplate:
    return PresetTemplate(
        template=Template(
            id=id,
            name=name,
            pattern=pattern,
            flags="m",
            field_mappings=mappings,
            description=description,
        ),
        kind=kind,
        confidence=confidence,
        priority=priority,
        tags=tags,
    )


H2_QA = _preset(
    "h2-qa",
    "Heading 2 Q&A",
    r"^## (.+)\n([\s\S]*?)(?=\n#{1,2} |\Z)",
    {QUESTION_FIELD: 1, ANSWER_FIELD: 2},
    "basic_qa",
    0.95,
    10,
    "H2 heading is the question, the following text the answer",
    ("markdown", "heading", "qa"),
)

H3_QA = _preset(
    "h3-qa",
    "Heading 3 Q&A",
    r"^### (.+)\n([\s\S]*?)(?=\n#{1,3} |\Z)",
    {QUESTION_FIELD: 1, ANSWER_FIELD: 2},
    "basic_qa",
    0.90,
    8,
    "H3 heading is the question, the following text the answer",
    ("markdown", "heading", "qa"),
)

QA_PAIR = _preset(
    "qa-pair",
    "Q/A pair",
    r"^Q[:：]\s*(.+)\n+A[:：]\s*([\s\S]*?)(?=\nQ[:：]|\Z)",
    {QUESTION_FIELD: 1, ANSWER_FIELD: 2},
    "basic_qa",
    0.92,
    9,
    "Explicit Q: and A: markers",
    ("qa", "explicit"),
)

MULTIPLE_CHOICE = _preset(
    "multiple-choice",
    "Multiple choice",
    r"^(.+?)\n+([A-D][.．][\s\S]*?)(?=\n\n|\Z)",
    {QUESTION_FIELD: 1, "options": 2},
    "multiple_choice",
    0.88,
    7,
    "A question followed by A-D options",
    ("exam", "options"),
)

CLOZE = _preset(
    "cloze",
    "Cloze",
    r"^(.*?)__(.*?)__(.*?)$",
    {"cloze": 0},
    "cloze",
    0.85,
    6,
    "Sentence with __blanks__",
    ("cloze", "fill-blank"),
)

DEFINITION = _preset(
    "definition",
    "Definition",
    r"^([^:\n]+):\s*([\s\S]*?)(?=\n[^:\n]+:|\Z)",
    {"term": 1, "definition": 2},
    "definition",
    0.80,
    5,
    "Term: definition",
    ("definition", "terminology"),
)

TOPIC_LIST = _preset(
    "list",
    "List",
    r"^(.+?)\n+([-*]\s+.+(?:\n[-*]\s+.*)*)",
    {"topic": 1, "items": 2},
    "list",
    0.75,
    4,
    "A topic line followed by bullet points",
    ("list", "enumeration"),
)

COMPARISON = _preset(
    "comparison",
    "Comparison",
    r"^(.+?)\s+vs\.?\s+(.+?)\n+([\s\S]*)",
    {"concept1": 1, "concept2": 2, "comparison": 3},
    "comparison",
    0.78,
    3,
    "\"X vs Y\" followed by the comparison",
    ("comparison", "contrast"),
)

PRESET_TEMPLATES: tuple[PresetTemplate, ...] = tuple(
    sorted(
        (H2_QA, H3_QA, QA_PAIR, MULTIPLE_CHOICE, CLOZE, DEFINITION, TOPIC_LIST, COMPARISON),
        key=lambda p: p.priority,
        reverse=True,
    )
)


def get_preset(preset_id: str) -> PresetTemplate | None:
    """Look up a preset by id."""
    for preset in PRESET_TEMPLATES:
        if preset.id == preset_id:
            return preset
    return None


def fields_from_match(match: re.Match[str], mappings: dict[str, int]) -> dict[str, str]:
    """Map capture groups to stripped field values ("" for missing groups)."""
    fields = {}
    for name, group in mappings.items():
        try:
            value = match.group(group)
        except IndexError:
            value = None
        fields[name] = value.strip() if value else ""
    return fields


def score_match(
    text: str,
    preset: PresetTemplate,
    match: re.Match[str],
    fields: dict[str, str],
) -> int:
    """Quality score for one preset match."""
    score = 100.0
    score += preset.confidence * 100
    score += preset.priority * 10

    if fields:
        filled = [v for v in fields.values() if v.strip()]
        score += len(filled) / len(fields) * 50

    coverage = len(match.group(0)) / len(text) if text else 0.0
    if 0.6 <= coverage <= 0.95:
        score += 30
    elif 0.4 <= coverage < 0.6:
        score += 15

    for name, value in fields.items():
        if not value.strip():
            continue
        if 5 <= len(value) <= 500:
            score += 10
        elif len(value) > 500:
            score += 5
        if name == QUESTION_FIELD and "?" in value:
            score += 5
        if name == ANSWER_FIELD and len(value) > 10:
            score += 5

    if preset.kind == "basic_qa":
        question = fields.get(QUESTION_FIELD, "")
        answer = fields.get(ANSWER_FIELD, "")
        if question and answer:
            balance = min(len(question), len(answer)) / max(len(question), len(answer))
            if balance > 0.1:
                score += 15

    return round(score)


def identify_template(
    text: str,
    presets: tuple[PresetTemplate, ...] = PRESET_TEMPLATES,
    compiler: TemplateCompiler | None = None,
) -> PresetMatch | None:
    """Pick the preset that best fits ``text``.

    Args:
        text: Note content.
        presets: Candidates, tried in order (ties keep the earlier one).
        compiler: Compiler whose cache should hold the preset matchers;
            presets are compiled directly when omitted.

    Returns:
        The best match, or None when no preset matches.
    """
    if not text.strip():
        return None

    best: PresetMatch | None = None
    candidates: list[tuple[str, int]] = []

    for preset in presets:
        try:
            if compiler is not None:
                matcher = compiler.get_compiled(preset.template).matcher
            else:
                matcher = compile_pattern(
                    preset.template.pattern, preset.template.flags, preset.id
                )
        except TemplateCompileError as e:
            logger.warning(f"Preset {preset.id} failed to compile: {e}")
            continue

        match = matcher.search(text)
        if match is None:
            continue

        fields = fields_from_match(match, preset.template.field_mappings)
        score = score_match(text, preset, match, fields)
        candidates.append((preset.id, score))
        logger.debug(f"Preset {preset.id} matched with score {score}")

        if best is None or score > best.score:
            best = PresetMatch(preset=preset, fields=fields, score=score)

    if best is not None:
        best.candidates = sorted(candidates, key=lambda c: c[1], reverse=True)
        logger.debug(f"Identified template {best.preset.id} (score {best.score})")
    return best
