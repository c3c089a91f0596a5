"""
Unit tests for the degradation engine.

The engine must always return a result, keep the raw text in notes,
and walk the levels in order until one clears its threshold.
"""

import time

import pytest

from cardparse.config import ExtractionConfig
from cardparse.extractors import (
    LENIENT_PROFILE,
    STRICT_PROFILE,
    DegradationEngine,
    ExtractionStrategy,
    ProtectiveParsingStrategy,
    SimpleSplitStrategy,
    get_profile,
)
from cardparse.exceptions import ConfigurationError

SAMPLE_INPUTS = [
    "",
    "   \n\t",
    "FSRS is great.",
    "## What is FSRS?\nFSRS is a scheduling algorithm.\n#algorithm #tuanki",
    "Q: Why?\nA: Because.",
    "line one\n\nline two\n\n---\n\nline three",
    "\x00\x01 binary-ish \x7f",
]


class ExplodingStrategy(ExtractionStrategy):
    """Raises on every call."""

    name = "exploding"
    level = 1
    min_confidence = 0.8

    def attempt(self, text, template, context):
        raise ValueError("boom")


class SlowStrategy(ExtractionStrategy):
    """Burns time, then fails."""

    name = "slow"
    level = 1
    min_confidence = 0.8

    def attempt(self, text, template, context):
        time.sleep(0.05)
        return self._result(text, success=False, confidence=0.0)


class BrokenProtective(ProtectiveParsingStrategy):
    """A terminal level that fails, to exercise the final fallbacks."""

    def attempt(self, text, template, context=None):
        raise RuntimeError("unavailable")


class TestScenarios:
    """End-to-end behaviour on the reference inputs."""

    def test_well_formed_note(self, engine, h2_template, fsrs_note):
        report = engine.extract_with_report(fsrs_note, h2_template)
        result = report.result

        assert result.method == "strict_structural"
        assert result.degradation_level == 1
        assert result.fields["question"] == "What is FSRS?"
        assert "FSRS is a scheduling algorithm." in result.fields["answer"]
        assert result.confidence >= 0.8
        assert report.accepted_level == 1
        assert report.degradation_path == ["L1:strict_structural"]

    def test_unstructured_sentence(self, engine, h2_template):
        result = engine.extract("FSRS is great.", h2_template)

        assert result.method == "simple_split"
        assert result.fields["question"] == "FSRS is great."
        assert result.fields["answer"] == ""
        assert result.confidence == pytest.approx(0.3)

    def test_empty_input(self, engine):
        report = engine.extract_with_report("")
        result = report.result

        assert result.success
        assert result.fields == {"notes": ""}
        assert 0.1 <= result.confidence <= 0.2
        assert result.degradation_level == 6


class TestCascadeProperties:
    """Properties that hold for every input."""

    @pytest.mark.parametrize("text", SAMPLE_INPUTS)
    def test_notes_preserved(self, engine, h2_template, text):
        for template in (None, h2_template):
            result = engine.extract(text, template)
            assert result.fields["notes"] == text
            assert result.preserved_content

    @pytest.mark.parametrize("text", SAMPLE_INPUTS)
    def test_confidence_bounds(self, engine, h2_template, text):
        report = engine.extract_with_report(text, h2_template)
        for attempt in report.attempts:
            assert 0.0 <= attempt.result.confidence <= 1.0
        assert 0.0 <= report.result.confidence <= 1.0

    def test_levels_in_order(self, engine, h2_template):
        """A strict failure walks the following levels in order."""
        report = engine.extract_with_report("FSRS is great.", h2_template)
        levels = [a.level for a in report.attempts]
        assert levels == sorted(levels)
        assert levels == [1, 2, 3, 4, 5]
        assert report.degradation_path == [
            "L1:strict_structural",
            "L2:relaxed_structural",
            "L3:fuzzy_segment",
            "L4:semantic_analysis",
            "L5:simple_split",
        ]
        assert report.result.degradation_level == 5

    def test_protective_always_last(self):
        engine = DegradationEngine([SimpleSplitStrategy()])
        assert isinstance(engine.strategies[-1], ProtectiveParsingStrategy)


class TestFailureHandling:
    """Strategy exceptions never escape the engine."""

    def test_exception_recorded(self):
        engine = DegradationEngine([ExplodingStrategy(), SimpleSplitStrategy()])
        report = engine.extract_with_report("a\nb")

        assert report.result.method == "simple_split"
        first = report.attempts[0].result
        assert not first.success
        assert first.confidence == 0.0
        assert "boom" in first.errors[0]
        assert any("exploding" in line for line in report.processing_log)
        assert "Some strategies reported errors; review the attempt details" in (
            report.recommendations
        )

    def test_best_partial_used_when_nothing_accepted(self):
        from cardparse.extractors import FuzzySegmentStrategy

        engine = DegradationEngine([FuzzySegmentStrategy(), BrokenProtective()])
        report = engine.extract_with_report("Plain.\nMore.")

        assert report.accepted_level is None
        assert report.result.method == "fuzzy_segment"
        assert report.result.confidence == 0.4
        assert report.result.degradation_level == 3

    def test_final_protective_when_all_fail(self):
        engine = DegradationEngine([BrokenProtective()])
        report = engine.extract_with_report("text")

        assert report.degradation_path[-1] == "FINAL:protective_parsing"
        assert report.result.method == "protective_parsing"
        assert report.result.confidence == 0.2
        assert report.result.degradation_level == 6
        assert report.result.fields["notes"] == "text"


class TestTimeBudget:
    """Exceeding the budget skips to protective parsing."""

    def test_budget_exceeded(self):
        engine = DegradationEngine(
            [SlowStrategy(), SimpleSplitStrategy()],
            config=ExtractionConfig(time_budget_ms=1),
        )
        report = engine.extract_with_report("a\nb")

        assert [a.strategy_name for a in report.attempts] == ["slow", "protective_parsing"]
        assert report.result.method == "protective_parsing"
        assert any("budget" in w for w in report.result.warnings)
        assert any("Time budget" in line for line in report.processing_log)

    def test_no_budget(self, engine):
        report = engine.extract_with_report("a\nb")
        assert not any("budget" in w for w in report.result.warnings)


class TestAutoDetect:
    """Template auto-detection when no template is passed."""

    def test_detects_preset(self):
        engine = DegradationEngine(config=ExtractionConfig(auto_detect_template=True))
        report = engine.extract_with_report("## What is FSRS?\nFSRS is a scheduling algorithm.")

        assert report.template_id == "h2-qa"
        assert report.result.method == "strict_structural"
        assert report.result.fields["answer"] == "FSRS is a scheduling algorithm."
        assert report.processing_log[0].startswith("Auto-detected template h2-qa")

    def test_explicit_template_wins(self, h2_template, fsrs_note):
        engine = DegradationEngine(config=ExtractionConfig(auto_detect_template=True))
        report = engine.extract_with_report(fsrs_note, h2_template)
        assert report.template_id == "h2-basic"

    def test_disabled_by_default(self, engine):
        report = engine.extract_with_report("## Q?\nA.")
        assert report.template_id is None


class TestProfiles:
    """Profiles restrict the cascade."""

    def test_strict_profile(self):
        engine = DegradationEngine.for_profile(STRICT_PROFILE)
        assert [s.name for s in engine.strategies] == [
            "strict_structural",
            "relaxed_structural",
            "protective_parsing",
        ]
        result = engine.extract("FSRS is great.")
        assert result.method == "protective_parsing"

    def test_lenient_profile(self):
        engine = DegradationEngine(profile=LENIENT_PROFILE)
        assert engine.strategies[0].name == "fuzzy_segment"
        assert engine.extract("What is it?\nThis.").method == "fuzzy_segment"

    def test_get_profile(self):
        assert get_profile("strict") is STRICT_PROFILE
        with pytest.raises(ConfigurationError):
            get_profile("unknown")


class TestReport:
    """Report contents."""

    def test_recommendations_for_deep_fallback(self, engine, h2_template):
        report = engine.extract_with_report("FSRS is great.", h2_template)
        assert len(report.recommendations) >= 3

    def test_to_dict(self, engine, h2_template, fsrs_note):
        data = engine.extract_with_report(fsrs_note, h2_template).to_dict()
        assert data["result"]["fields"]["notes"] == fsrs_note
        assert data["attempts"][0]["strategy_name"] == "strict_structural"
