"""
Batch extraction.

A document holding several cards is split on separator lines and each
card goes through the DegradationEngine on its own. Cards never wait on
each other; with ``parallel=True`` they run on a thread pool sharing the
engine's compilation cache.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed

from cardparse.extractors.degradation import DegradationEngine
from cardparse.extractors.strategies import ProtectiveParsingStrategy
from cardparse.models import DegradationReport, Template

logger = logging.getLogger(__name__)

DEFAULT_SEPARATORS = ("---cd---", "---", "***", "___")


def split_document(text: str, separators: Sequence[str] = DEFAULT_SEPARATORS) -> list[str]:
    """Split a document into card texts.

    The first separator that yields more than one non-empty part wins. A
    separator only counts when it stands alone on its line. Every
    non-empty part is kept, so no content is dropped.

    Args:
        text: Document content.
        separators: Candidate separators, tried in order.

    Returns:
        Card texts (stripped); ``[]`` for blank input.
    """
    if not text.strip():
        return []

    for separator in separators:
        pattern = re.compile(rf"^[ \t]*{re.escape(separator)}[ \t]*$", re.MULTILINE)
        parts = [part.strip() for part in pattern.split(text)]
        parts = [part for part in parts if part]
        if len(parts) > 1:
            logger.debug(f"Split document into {len(parts)} cards on '{separator}'")
            return parts

    return [text.strip()]


def extract_batch(
    texts: Sequence[str],
    engine: DegradationEngine | None = None,
    template: Template | None = None,
    parallel: bool = False,
    max_workers: int = 4,
) -> list[DegradationReport]:
    """Extract many cards independently.

    Args:
        texts: Card texts.
        engine: Engine to use (default creates one).
        template: Template applied to every card.
        parallel: Run cards on a thread pool.
        max_workers: Pool size when ``parallel`` is set.

    Returns:
        One report per text, in input order.
    """
    engine = engine or DegradationEngine()
    reports: list[DegradationReport | None] = [None] * len(texts)

    def _extract_one(index: int) -> DegradationReport:
        return engine.extract_with_report(texts[index], template, card_id=f"card-{index}")

    if not parallel or len(texts) < 2:
        for index in range(len(texts)):
            reports[index] = _extract_one(index)
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {executor.submit(_extract_one, i): i for i in range(len(texts))}
            for future in as_completed(futures):
                index = futures[future]
                try:
                    reports[index] = future.result()
                except Exception as e:
                    logger.error(f"Exception extracting card-{index}: {e}")
                    reports[index] = _protective_report(texts[index], template, e)

    accepted = sum(1 for r in reports if r is not None and r.accepted_level is not None)
    logger.info(f"Extracted {len(texts)} cards ({accepted} accepted at some level)")
    return [r for r in reports if r is not None]


def extract_document(
    text: str,
    engine: DegradationEngine | None = None,
    template: Template | None = None,
    separators: Sequence[str] = DEFAULT_SEPARATORS,
    parallel: bool = False,
    max_workers: int = 4,
) -> list[DegradationReport]:
    """Split a document and extract every card in it."""
    return extract_batch(
        split_document(text, separators),
        engine,
        template=template,
        parallel=parallel,
        max_workers=max_workers,
    )


def _protective_report(
    text: str, template: Template | None, error: Exception
) -> DegradationReport:
    result = ProtectiveParsingStrategy().attempt(text, template)
    return DegradationReport(
        result=result,
        attempts=[],
        degradation_path=["FINAL:protective_parsing"],
        total_duration_ms=0.0,
        accepted_level=None,
        recommendations=["Extraction failed unexpectedly; review this card manually"],
        processing_log=[f"Extraction raised: {error}"],
        template_id=template.id if template is not None else None,
    )
