"""
Pytest configuration and fixtures for cardparse tests.
"""

import pytest

from cardparse import (
    DegradationEngine,
    IntegrityChecker,
    RepairAdvisor,
    SegmentClassifier,
    Template,
    TemplateCompiler,
)


@pytest.fixture
def h2_template() -> Template:
    """Heading-2 question with everything after it as the answer."""
    return Template(
        id="h2-basic",
        name="H2 basic",
        pattern=r"## (.+)\n([\s\S]*)",
        field_mappings={"question": 1, "answer": 2},
    )


@pytest.fixture
def fsrs_note() -> str:
    """A well-formed note with inline tags."""
    return "## What is FSRS?\nFSRS is a scheduling algorithm.\n#algorithm #tuanki"


@pytest.fixture
def compiler() -> TemplateCompiler:
    """Compiler with its own fresh cache."""
    return TemplateCompiler()


@pytest.fixture
def classifier() -> SegmentClassifier:
    return SegmentClassifier()


@pytest.fixture
def engine(compiler, classifier) -> DegradationEngine:
    """Engine with the standard six-level cascade."""
    return DegradationEngine(compiler=compiler, classifier=classifier)


@pytest.fixture
def checker() -> IntegrityChecker:
    return IntegrityChecker()


@pytest.fixture
def advisor(compiler, classifier) -> RepairAdvisor:
    return RepairAdvisor(compiler=compiler, classifier=classifier)
