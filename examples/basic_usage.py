#!/usr/bin/env python3
"""
Basic cardparse Usage Example

This example demonstrates the core workflow:
1. Extract card fields from a Markdown note
2. Inspect the degradation report
3. Extract a whole deck in parallel
4. Check stored fields against the source text
5. Analyze and apply repairs
"""

import logging
from pathlib import Path

from cardparse import (
    H2_QA,
    DegradationEngine,
    ExtractionConfig,
    IntegrityChecker,
    RepairAdvisor,
    extract_document,
)
from cardparse.repair import FileDocumentStore

NOTE = """\
## What is FSRS?
FSRS is a scheduling algorithm for spaced repetition.
#algorithm #srs
"""

DECK = """\
## What is FSRS?
A scheduling algorithm.
---cd---
##What is SM-2?
An older scheduling algorithm.
---cd---
Spacing reviews works because memory decays.
"""


def main():
    logging.basicConfig(level=logging.INFO)

    # ─────────────────────────────────────────────────────────────────────────
    # 1. Basic Extraction
    # ─────────────────────────────────────────────────────────────────────────

    engine = DegradationEngine()
    result = engine.extract(NOTE, H2_QA.template)

    print(f"Method: {result.method} (level {result.degradation_level})")
    print(f"  Question: {result.fields['question']}")
    print(f"  Answer: {result.fields['answer']}")
    print(f"  Confidence: {result.confidence:.2f}")

    # ─────────────────────────────────────────────────────────────────────────
    # 2. Degradation Report
    # ─────────────────────────────────────────────────────────────────────────

    # No template and no recognizable structure: the cascade walks down
    config = ExtractionConfig(time_budget_ms=50, auto_detect_template=True)
    engine = DegradationEngine(config=config)
    report = engine.extract_with_report("Spacing reviews works because memory decays.")

    print(f"Path: {' -> '.join(report.degradation_path)}")
    for recommendation in report.recommendations:
        print(f"  - {recommendation}")

    # ─────────────────────────────────────────────────────────────────────────
    # 3. Whole Deck
    # ─────────────────────────────────────────────────────────────────────────

    reports = extract_document(DECK, engine, parallel=True)
    for i, card in enumerate(reports):
        print(f"Card {i}: {card.result.method} -> {card.result.fields.get('question', '')!r}")

    stats = engine.compiler.cache.statistics()
    print(f"Template cache: {stats.size} entries, hit rate {stats.hit_rate:.0%}")

    # ─────────────────────────────────────────────────────────────────────────
    # 4. Integrity Check
    # ─────────────────────────────────────────────────────────────────────────

    checker = IntegrityChecker()
    stored = dict(result.fields)
    stored["notes"] = "## What is FSRS?"  # truncated by a bad sync

    check = checker.check("card-1", stored, NOTE)
    print(f"Integrity: {check.status.value}")
    for issue in check.issues:
        print(f"  [{issue.severity.value}] {issue.description}")

    # ─────────────────────────────────────────────────────────────────────────
    # 5. Repair
    # ─────────────────────────────────────────────────────────────────────────

    advisor = RepairAdvisor()
    analysis = advisor.analyze(NOTE, stored, H2_QA.template, check.issues)
    for suggestion in analysis.suggestions:
        print(f"  {suggestion.priority.value}: {suggestion.title}")

    repaired = advisor.apply(stored["notes"], analysis.quick_fixes, auto_fix_only=True, fields=stored)
    print(f"Notes restored: {repaired.modified_fields['notes'] == NOTE}")

    # Repair a note on disk
    root = Path("notes")
    store = FileDocumentStore(root)
    store.write("sm2.md", "##What is SM-2?\nAn older scheduling algorithm.")
    fixes = advisor.quick_fixes(store.read("sm2.md"), H2_QA.template)
    advisor.apply_to_document(store, "sm2.md", fixes)
    print(f"Repaired file: {store.read('sm2.md').splitlines()[0]}")


if __name__ == "__main__":
    main()
