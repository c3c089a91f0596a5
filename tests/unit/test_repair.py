"""
Unit tests for the repair advisor.
"""

import pytest

from cardparse.models import (
    IssueKind,
    Priority,
    RepairStep,
    RepairSuggestion,
    StepAction,
    SuggestionKind,
    Template,
)
from cardparse.repair import FileDocumentStore
from cardparse.templates import QA_PAIR

CLEAN = "## What is FSRS?\nFSRS is a scheduling algorithm."


def make_suggestion(*steps: RepairStep, auto_fixable=True, priority=Priority.MEDIUM, title="s"):
    return RepairSuggestion(
        id=f"suggestion_{title}",
        kind=SuggestionKind.FORMAT_FIX,
        priority=priority,
        title=title,
        description=title,
        auto_fixable=auto_fixable,
        confidence=0.9,
        preview_before="",
        preview_after="",
        steps=list(steps),
    )


def titles(suggestions) -> list[str]:
    return [s.title for s in suggestions]


class MemoryStore:
    """In-memory document store that records writes."""

    def __init__(self, documents):
        self.documents = dict(documents)
        self.writes = []

    def read(self, path):
        return self.documents[path]

    def write(self, path, content):
        self.writes.append(path)
        self.documents[path] = content


class ReadOnlyStore(MemoryStore):
    def write(self, path, content):
        raise OSError("read-only filesystem")


class TestRestoreFromIntegrity:
    """Integrity issues become restore suggestions."""

    @pytest.fixture
    def analysis(self, checker, advisor):
        check = checker.check("c1", {"notes": "wrong text"}, "correct text")
        return advisor.analyze("correct text", {"notes": "wrong text"}, issues=check.issues)

    def test_single_restore(self, analysis):
        restores = [s for s in analysis.suggestions if s.title.startswith("Restore")]
        assert len(restores) == 1
        restore = restores[0]
        assert restore.auto_fixable
        assert restore.priority is Priority.HIGH
        assert restore.steps[0].action is StepAction.REPLACE
        assert restore.steps[0].target == "notes"
        assert restore.steps[0].value == "correct text"
        assert restore in analysis.quick_fixes

    def test_checksum_needs_review(self, analysis):
        review = next(s for s in analysis.suggestions if s.kind is SuggestionKind.MANUAL_EDIT)
        assert not review.auto_fixable
        assert review in analysis.complex_fixes

    def test_ranked(self, analysis):
        ranks = [(s.priority.rank, s.confidence) for s in analysis.suggestions]
        assert ranks == sorted(ranks, reverse=True)

    def test_apply_restore(self, analysis, advisor):
        restore = next(s for s in analysis.suggestions if s.title.startswith("Restore"))
        result = advisor.apply("wrong text", [restore], fields={"notes": "wrong text"})

        assert result.success
        assert result.modified_fields["notes"] == "correct text"
        assert result.applied_suggestions == [restore.id]
        assert not result.needs_manual_review

    def test_auto_fix_only_leaves_manual_work(self, analysis, advisor):
        result = advisor.apply(
            "wrong text", analysis.suggestions, auto_fix_only=True, fields={"notes": "wrong text"}
        )
        assert result.success
        assert result.modified_content == "## correct text"
        assert result.modified_fields["notes"] == "## correct text"
        assert result.modified_fields["question"] == "correct text"
        assert result.needs_manual_review

    def test_format_error_field(self, checker, advisor):
        fields = {
            "notes": CLEAN,
            "question": "What\x00 is FSRS?",
            "answer": "FSRS is a scheduling algorithm.",
        }
        issues = checker.check("c1", fields, CLEAN).issues
        analysis = advisor.analyze(CLEAN, fields, issues=issues)

        fix = next(s for s in analysis.suggestions if s.steps[0].id == "fix-format")
        assert fix in analysis.complex_fixes
        result = advisor.apply(CLEAN, [fix], fields=fields)
        assert result.modified_fields["question"] == "What is FSRS?"
        assert result.modified_content == CLEAN

    def test_issue_without_expected_value_skipped(self, checker, advisor):
        issues = checker.check("c1", {"notes": CLEAN, "question": "", "answer": "a"}, CLEAN).issues
        assert any(i.kind is IssueKind.DATA_LOSS for i in issues)
        analysis = advisor.analyze(CLEAN, issues=issues)
        assert not any(s.title.startswith("Restore") for s in analysis.suggestions)


class TestFormatSuggestions:
    """Format scans and their fixes."""

    def test_clean_content(self, advisor):
        assert advisor.analyze(CLEAN).suggestions == []

    def test_tag_line_is_not_a_heading(self, advisor, fsrs_note):
        assert advisor.analyze(fsrs_note).suggestions == []

    def test_heading_without_space(self, advisor):
        content = "##What is FSRS?\nFSRS is a scheduling algorithm."
        quick = advisor.quick_fixes(content)

        assert titles(quick) == ["Fix heading format"]
        assert quick[0].steps[0].target == "line:0"

        result = advisor.apply(content, quick, auto_fix_only=True)
        assert result.modified_content == CLEAN
        assert result.modified_fields["question"] == "What is FSRS?"
        assert result.modified_fields["answer"] == "FSRS is a scheduling algorithm."

    def test_cjk_punctuation(self, advisor):
        content = "## 什么是FSRS？\n一种算法，用于复习。"
        quick = advisor.quick_fixes(content)
        assert titles(quick) == ["Unify punctuation"]

        result = advisor.apply(content, quick)
        assert result.modified_content == "## 什么是FSRS?\n一种算法,用于复习."

    def test_repeated_spaces(self, advisor):
        content = "## Q?\nA  lot   of spaces\n    indented"
        quick = advisor.quick_fixes(content)
        assert titles(quick) == ["Collapse repeated spaces"]
        assert quick[0].preview_after == "A lot of spaces"

        result = advisor.apply(content, quick)
        assert result.modified_content == "## Q?\nA lot of spaces\n    indented"

    def test_stacked_content_fixes(self, advisor):
        content = "## 什么是FSRS？\n一种  算法。"
        result = advisor.apply(content, advisor.quick_fixes(content))
        assert result.modified_content == "## 什么是FSRS?\n一种 算法."
        assert len(result.applied_suggestions) == 2


class TestStructureSuggestions:
    """Missing heading and missing question/answer structure."""

    def test_missing_heading(self, advisor):
        content = "What is FSRS\nIt is a scheduler."
        analysis = advisor.analyze(content)
        heading = next(s for s in analysis.suggestions if s.title == "Add a heading")

        assert heading.priority is Priority.HIGH
        assert heading.preview_after == "## What is FSRS"
        assert heading in analysis.quick_fixes

        result = advisor.apply(content, [heading])
        assert result.modified_content == "## What is FSRS\nIt is a scheduler."

    def test_empty_content(self, advisor):
        assert advisor.analyze("").suggestions == []

    def test_manual_restructure_is_skipped_by_auto_fix(self, advisor):
        suggestion = make_suggestion(
            RepairStep(
                id="restructure-qa",
                action=StepAction.FORMAT,
                description="Reorganize",
                target="content",
                automated=False,
            ),
            auto_fixable=False,
        )
        result = advisor.apply("text", [suggestion], auto_fix_only=True)
        assert not result.success
        assert result.needs_manual_review
        assert result.modified_content == "text"

    def test_manual_step_reported(self, advisor):
        suggestion = make_suggestion(
            RepairStep(
                id="restructure-qa",
                action=StepAction.FORMAT,
                description="Reorganize",
                target="content",
                automated=False,
            ),
            auto_fixable=False,
            title="Separate question and answer",
        )
        result = advisor.apply("text", [suggestion])
        assert result.applied_suggestions == []
        assert "needs a manual edit" in result.warnings[0]
        assert result.needs_manual_review


class TestTemplateSuggestions:
    """Diagnosis of template mismatches."""

    def test_match_needs_nothing(self, advisor, h2_template):
        analysis = advisor.analyze(CLEAN, template=h2_template)
        assert not any(s.kind is SuggestionKind.TEMPLATE_ADJUST for s in analysis.suggestions)

    def test_missing_h2(self, advisor, compiler, h2_template):
        content = "What is FSRS?\nA scheduler."
        analysis = advisor.analyze(content, template=h2_template)

        inserts = [s for s in analysis.suggestions if s.kind is SuggestionKind.TEMPLATE_ADJUST]
        assert titles(inserts) == ["Add an H2 heading"]
        assert inserts[0].confidence == 0.8
        assert inserts[0] in analysis.complex_fixes
        assert "Add a heading" not in titles(analysis.suggestions)

        result = advisor.apply(content, inserts)
        assert result.modified_content == "## What is FSRS?\nA scheduler."
        assert compiler.search(h2_template, result.modified_content) is not None

    def test_missing_qa_markers(self, advisor, compiler):
        content = "What is FSRS?\nA scheduler."
        analysis = advisor.analyze(content, template=QA_PAIR.template)

        inserts = [s for s in analysis.suggestions if s.kind is SuggestionKind.TEMPLATE_ADJUST]
        assert titles(inserts) == ["Add a 'Q:' marker", "Add an 'A:' marker"]
        assert "Add a heading" not in titles(analysis.suggestions)

        result = advisor.apply(content, inserts)
        assert result.modified_content == "Q: What is FSRS?\nA: A scheduler."
        assert compiler.search(QA_PAIR.template, result.modified_content) is not None

    def test_marker_insert_survives_heading_fix(self, advisor, compiler):
        """A heading fix on a line that also got a marker keeps the marker."""
        template = Template(id="qa", name="qa", pattern=r"Q: (.+)\nA: ([\s\S]+)")
        content = "##What is FSRS?\nA scheduling algorithm."
        analysis = advisor.analyze(content, template=template)
        assert "Fix heading format" in titles(analysis.suggestions)

        result = advisor.apply(content, analysis.suggestions, auto_fix_only=True)

        assert result.modified_content == "Q: ##What is FSRS?\nA: A scheduling algorithm."
        assert result.errors == []
        assert compiler.search(template, result.modified_content) is not None

    def test_invalid_pattern(self, advisor):
        bad = Template(id="bad", name="bad", pattern="(unclosed")
        analysis = advisor.analyze("What is FSRS?\nA scheduler.", template=bad)

        fix = next(s for s in analysis.suggestions if s.kind is SuggestionKind.TEMPLATE_ADJUST)
        assert fix.title == "Fix the template pattern"
        assert not fix.auto_fixable
        assert fix in analysis.complex_fixes

    def test_unexplained_mismatch(self, advisor):
        numbered = Template(id="numbered", name="numbered", pattern=r"^\d+\. (.+)")
        analysis = advisor.analyze("What is FSRS?\nA scheduler.", template=numbered)

        fix = next(s for s in analysis.suggestions if s.kind is SuggestionKind.TEMPLATE_ADJUST)
        assert fix.title == "Content does not match the template"
        assert not fix.auto_fixable

        result = advisor.apply("What is FSRS?\nA scheduler.", [fix])
        assert result.needs_manual_review
        assert result.modified_content == "What is FSRS?\nA scheduler."


class TestApply:
    """Failure handling in apply()."""

    def test_bad_step_does_not_abort(self, advisor):
        broken = make_suggestion(
            RepairStep(
                id="replace-line",
                action=StepAction.REPLACE,
                description="Replace a missing line",
                target="line:99",
                value="x",
            ),
            priority=Priority.HIGH,
            title="broken",
        )
        good = make_suggestion(
            RepairStep(
                id="collapse-spaces",
                action=StepAction.FORMAT,
                description="Collapse",
                target="content",
                value="collapse_spaces",
            ),
            title="good",
        )
        result = advisor.apply("a  b", [broken, good])

        assert result.modified_content == "a b"
        assert result.applied_suggestions == ["suggestion_good"]
        assert "Failed to apply 'broken'" in result.errors[0]
        assert result.needs_manual_review
        assert result.success

    def test_template_target_rejected(self, advisor):
        suggestion = make_suggestion(
            RepairStep(
                id="edit-template",
                action=StepAction.REPLACE,
                description="Edit",
                target="template.pattern",
                value="x",
            )
        )
        result = advisor.apply("text", [suggestion])
        assert not result.success
        assert "read-only" in result.errors[0]

    def test_unknown_formatter(self, advisor):
        suggestion = make_suggestion(
            RepairStep(
                id="format",
                action=StepAction.FORMAT,
                description="Format",
                target="content",
                value="shout",
            )
        )
        result = advisor.apply("text", [suggestion])
        assert "unknown formatter 'shout'" in result.errors[0]

    def test_default_format_chain(self, advisor):
        suggestion = make_suggestion(
            RepairStep(id="format", action=StepAction.FORMAT, description="All", target="content")
        )
        result = advisor.apply("##Title？\nsome  text", [suggestion])
        assert result.modified_content == "## Title?\nsome text"

    def test_insert_new_line(self, advisor):
        suggestion = make_suggestion(
            RepairStep(
                id="insert",
                action=StepAction.INSERT,
                description="Insert",
                target="line:1",
                value="inserted",
            )
        )
        result = advisor.apply("first\nsecond", [suggestion])
        assert result.modified_content == "first\ninserted\nsecond"

    def test_caller_fields_untouched(self, advisor):
        fields = {"notes": "old", "question": "q"}
        suggestion = make_suggestion(
            RepairStep(
                id="restore-content",
                action=StepAction.REPLACE,
                description="Restore",
                target="question",
                value="new",
            )
        )
        result = advisor.apply("old", [suggestion], fields=fields)
        assert result.modified_fields["question"] == "new"
        assert fields == {"notes": "old", "question": "q"}

    def test_nothing_to_apply(self, advisor):
        result = advisor.apply("text", [])
        assert not result.success
        assert not result.needs_manual_review
        assert result.modified_fields == {"notes": "text"}


class TestApplyToDocument:
    """Repairs written back through a document store."""

    def test_file_store(self, tmp_path, advisor):
        store = FileDocumentStore(tmp_path)
        store.write("cards/a.md", "##What is FSRS?\nFSRS is a scheduling algorithm.")

        content = store.read("cards/a.md")
        result = advisor.apply_to_document(store, "cards/a.md", advisor.quick_fixes(content))

        assert result.success
        assert (tmp_path / "cards" / "a.md").read_text(encoding="utf-8") == CLEAN

    def test_unchanged_not_written(self, advisor):
        store = MemoryStore({"a.md": CLEAN})
        result = advisor.apply_to_document(store, "a.md", advisor.quick_fixes(CLEAN))
        assert store.writes == []
        assert not result.errors

    def test_write_failure_reported(self, advisor):
        content = "##Title\nBody text here."
        store = ReadOnlyStore({"a.md": content})
        result = advisor.apply_to_document(store, "a.md", advisor.quick_fixes(content))

        assert not result.success
        assert result.needs_manual_review
        assert "read-only filesystem" in result.errors[-1]

    def test_read_failure_propagates(self, tmp_path, advisor):
        with pytest.raises(FileNotFoundError):
            advisor.apply_to_document(FileDocumentStore(tmp_path), "missing.md", [])
