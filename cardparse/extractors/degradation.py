"""
Degradation engine.

Runs the extraction strategies in their fixed order:
1. Attempt the level.
2. Accept the first successful result whose confidence clears that
   level's minimum.
3. Otherwise keep the best partial result and move on.
4. A strategy that raises is recorded as a zero-confidence attempt and
   the cascade continues.

The protective level always succeeds, so extract() always returns a
result and never raises. Failure is expressed as low confidence.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace

from cardparse.config import ExtractionConfig
from cardparse.exceptions import EmptyContentError, StrategyExecutionError
from cardparse.extractors.profiles import ExtractionProfile
from cardparse.extractors.strategies import (
    TERMINAL_LEVEL,
    ExtractionContext,
    ExtractionStrategy,
    ProtectiveParsingStrategy,
    default_strategies,
)
from cardparse.models import (
    NOTES_FIELD,
    DegradationAttempt,
    DegradationReport,
    ExtractionResult,
    Template,
)
from cardparse.segments.classifier import SegmentClassifier
from cardparse.templates.compiler import TemplateCompiler
from cardparse.templates.presets import identify_template

logger = logging.getLogger(__name__)


class DegradationEngine:
    """Orchestrates extraction with graceful degradation.

    Usage:
        engine = DegradationEngine()
        result = engine.extract(text, template)
        print(result.fields["question"], result.confidence)

    With the audit trail:
        report = engine.extract_with_report(text, template)
        for attempt in report.attempts:
            print(attempt.level, attempt.strategy_name, attempt.result.confidence)
    """

    def __init__(
        self,
        strategies: list[ExtractionStrategy] | None = None,
        *,
        compiler: TemplateCompiler | None = None,
        classifier: SegmentClassifier | None = None,
        config: ExtractionConfig | None = None,
        profile: ExtractionProfile | None = None,
    ):
        """Initialize the engine.

        Args:
            strategies: Ordered strategies (default: the six standard levels).
            compiler: Template compiler shared by the structural levels and
                template auto-detection (default creates one with its own cache).
            classifier: Segment classifier for semantic analysis.
            config: Cascade options.
            profile: Restricts which strategies run (protective is always kept).
        """
        self.compiler = compiler if compiler is not None else TemplateCompiler()
        self.config = config or ExtractionConfig()
        self._profile = profile

        if strategies is None:
            strategies = default_strategies(self.compiler, classifier)
        if profile is not None:
            strategies = [s for s in strategies if profile.includes(s.name)]
        if not strategies or not isinstance(strategies[-1], ProtectiveParsingStrategy):
            strategies = list(strategies) + [ProtectiveParsingStrategy()]
        self.strategies = strategies

    @classmethod
    def for_profile(cls, profile: ExtractionProfile, **kwargs) -> DegradationEngine:
        """Create an engine restricted to a profile's strategies."""
        return cls(profile=profile, **kwargs)

    def extract(
        self,
        text: str,
        template: Template | None = None,
        card_id: str | None = None,
    ) -> ExtractionResult:
        """Extract fields, degrading as needed. Never raises."""
        return self.extract_with_report(text, template, card_id).result

    def extract_with_report(
        self,
        text: str,
        template: Template | None = None,
        card_id: str | None = None,
    ) -> DegradationReport:
        """Extract fields and return the full audit trail.

        Args:
            text: Raw note content.
            template: Optional template for the structural levels.
            card_id: Optional identifier, used in logs only.

        Returns:
            DegradationReport whose ``result`` always holds the raw text
            in ``fields["notes"]``.
        """
        start = time.perf_counter()
        text = text if text is not None else ""
        log: list[str] = []
        label = card_id or "<card>"

        if template is None and self.config.auto_detect_template:
            template = self._detect_template(text, log)

        context = ExtractionContext(
            original_text=text,
            config=self.config,
            template=template,
            card_id=card_id,
        )

        accepted: ExtractionResult | None = None
        accepted_level: int | None = None
        best: ExtractionResult | None = None
        best_level: int | None = None
        path: list[str] = []
        budget_exceeded = False

        for strategy in self.strategies:
            is_terminal = strategy is self.strategies[-1]
            if not is_terminal and self._over_budget(start):
                if not budget_exceeded:
                    budget_exceeded = True
                    log.append(
                        f"Time budget of {self.config.time_budget_ms}ms exceeded, "
                        "skipping to protective parsing"
                    )
                    logger.info(f"{label}: time budget exceeded, skipping to protective parsing")
                continue

            attempt_start = time.perf_counter()
            result = self._attempt_safely(strategy, text, template, context, log)
            duration_ms = (time.perf_counter() - attempt_start) * 1000

            attempt = DegradationAttempt(
                level=strategy.level,
                strategy_name=strategy.name,
                result=result,
                timestamp_ms=time.time() * 1000,
                duration_ms=duration_ms,
            )
            context.attempts.append(attempt)
            path.append(f"L{strategy.level}:{strategy.name}")
            logger.debug(
                f"{label}: L{strategy.level} {strategy.name} "
                f"success={result.success} confidence={result.confidence:.2f}"
            )

            if result.success and result.confidence >= strategy.min_confidence:
                accepted, accepted_level = result, strategy.level
                log.append(
                    f"Accepted L{strategy.level} {strategy.name} "
                    f"(confidence {result.confidence:.2f})"
                )
                logger.info(
                    f"{label}: accepted {strategy.name} at level {strategy.level} "
                    f"(confidence {result.confidence:.2f})"
                )
                break

            if result.success:
                log.append(
                    f"Partial result from {strategy.name} "
                    f"(confidence {result.confidence:.2f} < {strategy.min_confidence})"
                )
                if best is None or result.confidence > best.confidence:
                    best, best_level = result, strategy.level
            else:
                log.append(f"{strategy.name} failed")

        if accepted is not None:
            final, level = accepted, accepted_level
        elif best is not None:
            final, level = best, best_level
            log.append(f"No level met its threshold; using best partial result ({final.method})")
        else:
            final = ProtectiveParsingStrategy().attempt(text, template, context)
            level = TERMINAL_LEVEL
            path.append("FINAL:protective_parsing")
            log.append("All strategies failed; using protective parsing")

        final = self._finalize(final, level, text, budget_exceeded)

        return DegradationReport(
            result=final,
            attempts=context.attempts,
            degradation_path=path,
            total_duration_ms=(time.perf_counter() - start) * 1000,
            accepted_level=accepted_level,
            recommendations=self._recommendations(context.attempts, final),
            processing_log=log,
            template_id=template.id if template is not None else None,
        )

    def _attempt_safely(
        self,
        strategy: ExtractionStrategy,
        text: str,
        template: Template | None,
        context: ExtractionContext,
        log: list[str],
    ) -> ExtractionResult:
        """Run one strategy, converting exceptions into a failed result."""
        try:
            return strategy.attempt(text, template, context)
        except EmptyContentError as e:
            message = f"{strategy.name}: {e}"
            log.append(message)
            logger.info(message)
        except Exception as e:
            error = StrategyExecutionError(
                f"Strategy {strategy.name} failed: {e}",
                strategy=strategy.name,
                level=strategy.level,
            )
            message = str(error)
            log.append(message)
            logger.warning(message)

        return ExtractionResult(
            success=False,
            confidence=0.0,
            fields={NOTES_FIELD: text},
            method=strategy.name,
            degradation_level=strategy.level,
            errors=[message],
            next_level_suggested=strategy.level + 1 if strategy.level < TERMINAL_LEVEL else None,
        )

    def _over_budget(self, start: float) -> bool:
        if self.config.time_budget_ms is None:
            return False
        return (time.perf_counter() - start) * 1000 > self.config.time_budget_ms

    def _detect_template(self, text: str, log: list[str]) -> Template | None:
        match = identify_template(text, compiler=self.compiler)
        if match is None:
            log.append("No preset template matched")
            return None
        log.append(f"Auto-detected template {match.template.id} (score {match.score})")
        return match.template

    def _finalize(
        self,
        result: ExtractionResult,
        level: int,
        text: str,
        budget_exceeded: bool,
    ) -> ExtractionResult:
        """Stamp the level actually used and re-assert the notes mirror."""
        fields = dict(result.fields)
        fields[NOTES_FIELD] = text
        warnings = list(result.warnings)
        if budget_exceeded:
            warnings.append(
                f"Extraction exceeded the {self.config.time_budget_ms}ms budget; "
                "protective result returned"
            )
        return replace(
            result,
            fields=fields,
            degradation_level=level,
            warnings=warnings,
            preserved_content=True,
        )

    def _recommendations(
        self,
        attempts: list[DegradationAttempt],
        result: ExtractionResult,
    ) -> list[str]:
        recommendations = []
        if result.degradation_level > 3:
            recommendations.append(
                "Check the note's formatting; it did not fit the expected structure"
            )
        if result.confidence < 0.5:
            recommendations.append("Low confidence; verify the extracted fields manually")
        if len(attempts) > 3:
            recommendations.append(
                "Several fallbacks were needed; consider adjusting the note format or template"
            )
        if any(a.result.errors for a in attempts):
            recommendations.append("Some strategies reported errors; review the attempt details")
        return recommendations
