"""
Integrity checking for stored card fields.

Compares what is stored for a card against its source text and reports
drift as typed issues:

1. Notes integrity: notes missing (DataLoss) or diverging from the
   original text (Inconsistency, by token-overlap similarity)
2. Required fields: empty question/answer (DataLoss), oversized fields
3. Format: control characters, non-NFC Unicode (FormatError)
4. Checksum: notes vs original text (ChecksumMismatch, never auto-fixed)
5. Deep check (optional): notes without any structure (Corruption)

Auto-fix only touches issues marked auto-fixable and never mutates the
caller's fields; the fixed copy is returned on the result.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import Counter, deque
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass

from cardparse.config import IntegrityConfig
from cardparse.models import (
    ANSWER_FIELD,
    NOTES_FIELD,
    QUESTION_FIELD,
    IntegrityCheckResult,
    IntegrityIssue,
    IntegrityMetrics,
    IntegrityReport,
    IntegrityStatus,
    IssueKind,
    Severity,
)
from cardparse.text import (
    HEADING_RE,
    checksum,
    has_control_chars,
    is_nfc,
    normalize_unicode,
    similarity,
    strip_control_chars,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (QUESTION_FIELD, ANSWER_FIELD, NOTES_FIELD)

FIX_STRIP_CONTROL = "strip_control_chars"
FIX_NORMALIZE = "normalize_unicode"
FIX_RESTORE_NOTES = "restore_notes"

COMMON_ISSUE_LIMIT = 5


@dataclass
class CardSnapshot:
    """Stored state of one card, as handed to batch and periodic checks."""

    card_id: str
    fields: Mapping[str, str]
    original_text: str | None = None


def _issue_id() -> str:
    return f"issue_{uuid.uuid4().hex[:12]}"


class IntegrityChecker:
    """Detect drift between stored fields and source text.

    Usage:
        checker = IntegrityChecker()
        result = checker.check("card-1", fields, original_text=source)
        for issue in result.issues:
            print(issue.kind, issue.severity, issue.description)

    Periodic sweeps:
        checker.start_periodic(lambda: load_all_cards())
        ...
        checker.stop_periodic()
    """

    def __init__(self, config: IntegrityConfig | None = None):
        self.config = config or IntegrityConfig()
        self._history: dict[str, deque[IntegrityCheckResult]] = {}
        self._history_lock = threading.Lock()

        self._sweep_lock = threading.Lock()
        self._checking = False
        self._timer: threading.Timer | None = None
        self._provider: Callable[[], Iterable[CardSnapshot]] | None = None
        self._interval = self.config.check_interval
        # One stop event per timer chain; set events end their chain
        self._stopped = threading.Event()
        self._stopped.set()
        self._timer_lock = threading.Lock()
        self.last_report: IntegrityReport | None = None

    # -------------------------------------------------------------------------
    # Single card
    # -------------------------------------------------------------------------

    def check(
        self,
        card_id: str,
        current_fields: Mapping[str, str],
        original_text: str | None = None,
        check_type: str = "manual",
        auto_fix: bool | None = None,
    ) -> IntegrityCheckResult:
        """Check one card.

        Args:
            card_id: Card identifier (used for history).
            current_fields: Stored fields; never modified.
            original_text: Source text, when known.
            check_type: "manual", "realtime", "periodic" or "deep".
            auto_fix: Apply auto-fixable issues (default from config).

        Returns:
            IntegrityCheckResult; ``fields`` holds the (possibly fixed) copy.
        """
        fields = dict(current_fields)
        deep = self.config.deep_check or check_type == "deep"
        issues = self._detect(fields, original_text, deep)

        metrics = self._metrics(fields, issues, original_text)
        status = self._status(issues)
        recommendations = self._recommendations(issues, metrics)

        fix_requested = self.config.auto_fix if auto_fix is None else auto_fix
        fixed_ids: list[str] = []
        if fix_requested and any(issue.auto_fixable for issue in issues):
            fields, fixed_ids = self._apply_fixes(fields, issues)
            if fixed_ids:
                logger.info(f"Auto-fixed {len(fixed_ids)} issues on {card_id}")

        result = IntegrityCheckResult(
            card_id=card_id,
            timestamp=time.time(),
            check_type=check_type,
            status=status,
            issues=issues,
            metrics=metrics,
            fields=fields,
            recommendations=recommendations,
            auto_fix_applied=bool(fixed_ids),
            fixed_issue_ids=fixed_ids,
        )
        self._remember(card_id, result)
        logger.debug(f"Integrity check {card_id}: {status.value}, {len(issues)} issues")
        return result

    def _detect(
        self,
        fields: dict[str, str],
        original_text: str | None,
        deep: bool,
    ) -> list[IntegrityIssue]:
        issues: list[IntegrityIssue] = []
        self._check_notes(fields, original_text, issues)
        self._check_required(fields, issues)
        self._check_format(fields, original_text, issues)
        self._check_checksum(fields, original_text, issues)
        if deep:
            self._check_structure(fields, issues)
        return issues

    def _check_notes(
        self,
        fields: dict[str, str],
        original_text: str | None,
        issues: list[IntegrityIssue],
    ) -> None:
        notes = fields.get(NOTES_FIELD) or ""

        if not notes.strip():
            issues.append(
                IntegrityIssue(
                    id=_issue_id(),
                    kind=IssueKind.DATA_LOSS,
                    severity=Severity.CRITICAL,
                    field=NOTES_FIELD,
                    description="Notes field is missing or empty; the original content may be lost",
                    detected=notes,
                    expected=original_text,
                    auto_fixable=bool(original_text),
                    suggestion=(
                        "Restore notes from the original text"
                        if original_text
                        else "Re-enter the original content manually"
                    ),
                    fix_action=FIX_RESTORE_NOTES if original_text else None,
                )
            )
            return

        if original_text and notes != original_text:
            score = similarity(notes, original_text)
            if score < self.config.similarity_threshold:
                severity = (
                    Severity.HIGH
                    if score < self.config.high_severity_threshold
                    else Severity.MEDIUM
                )
                issues.append(
                    IntegrityIssue(
                        id=_issue_id(),
                        kind=IssueKind.INCONSISTENCY,
                        severity=severity,
                        field=NOTES_FIELD,
                        description=f"Notes differ from the original text (similarity {score:.1%})",
                        detected=notes,
                        expected=original_text,
                        auto_fixable=True,
                        suggestion="Sync notes with the original text",
                        fix_action=FIX_RESTORE_NOTES,
                    )
                )

    def _check_required(self, fields: dict[str, str], issues: list[IntegrityIssue]) -> None:
        for name in (QUESTION_FIELD, ANSWER_FIELD):
            value = fields.get(name) or ""
            if not value.strip():
                issues.append(
                    IntegrityIssue(
                        id=_issue_id(),
                        kind=IssueKind.DATA_LOSS,
                        severity=Severity.MEDIUM,
                        field=name,
                        description=f"Required field '{name}' is empty",
                        detected=value,
                        suggestion=f"Provide content for '{name}'",
                    )
                )

        for name, value in fields.items():
            if value and len(value) > self.config.max_field_length:
                issues.append(
                    IntegrityIssue(
                        id=_issue_id(),
                        kind=IssueKind.FORMAT_ERROR,
                        severity=Severity.LOW,
                        field=name,
                        description=f"Field '{name}' is unusually long ({len(value)} characters)",
                        detected=f"{len(value)} characters",
                        suggestion="Check whether the field swallowed other fields' content",
                    )
                )

    def _check_format(
        self,
        fields: dict[str, str],
        original_text: str | None,
        issues: list[IntegrityIssue],
    ) -> None:
        for name, value in fields.items():
            if not value:
                continue
            # The notes mirror may carry whatever the source text carries
            if name == NOTES_FIELD and original_text is not None and value == original_text:
                continue

            if has_control_chars(value):
                issues.append(
                    IntegrityIssue(
                        id=_issue_id(),
                        kind=IssueKind.FORMAT_ERROR,
                        severity=Severity.MEDIUM,
                        field=name,
                        description=f"Field '{name}' contains control characters",
                        detected=value,
                        expected=normalize_unicode(strip_control_chars(value)),
                        auto_fixable=True,
                        suggestion="Remove control characters",
                        fix_action=FIX_STRIP_CONTROL,
                    )
                )
            if not is_nfc(value):
                issues.append(
                    IntegrityIssue(
                        id=_issue_id(),
                        kind=IssueKind.FORMAT_ERROR,
                        severity=Severity.LOW,
                        field=name,
                        description=f"Field '{name}' is not NFC-normalized",
                        detected=value,
                        expected=normalize_unicode(strip_control_chars(value)),
                        auto_fixable=True,
                        suggestion="Normalize Unicode (NFC)",
                        fix_action=FIX_NORMALIZE,
                    )
                )

    def _check_checksum(
        self,
        fields: dict[str, str],
        original_text: str | None,
        issues: list[IntegrityIssue],
    ) -> None:
        if not original_text:
            return
        current = checksum(fields.get(NOTES_FIELD) or "")
        expected = checksum(original_text)
        if current != expected:
            issues.append(
                IntegrityIssue(
                    id=_issue_id(),
                    kind=IssueKind.CHECKSUM_MISMATCH,
                    severity=Severity.MEDIUM,
                    field=NOTES_FIELD,
                    description="Checksum mismatch; the notes may have been modified",
                    detected=current,
                    expected=expected,
                    auto_fixable=False,
                    suggestion="Review whether the content was changed unintentionally",
                )
            )

    def _check_structure(self, fields: dict[str, str], issues: list[IntegrityIssue]) -> None:
        notes = fields.get(NOTES_FIELD)
        if not notes:
            return
        lines = notes.split("\n")
        has_heading = any(HEADING_RE.match(line) for line in lines)
        has_content = any(len(line.strip()) > 10 for line in lines)
        if not has_heading and not has_content:
            issues.append(
                IntegrityIssue(
                    id=_issue_id(),
                    kind=IssueKind.CORRUPTION,
                    severity=Severity.HIGH,
                    field=NOTES_FIELD,
                    description="Notes have neither a heading nor substantial content",
                    detected=notes,
                    suggestion="Check whether the content is complete",
                )
            )

    def _apply_fixes(
        self,
        fields: dict[str, str],
        issues: list[IntegrityIssue],
    ) -> tuple[dict[str, str], list[str]]:
        """Apply auto-fixable issues to a copy of ``fields``."""
        fixed = dict(fields)
        fixed_ids = []
        restoring = any(
            i.fix_action == FIX_RESTORE_NOTES and i.expected is not None for i in issues
        )

        for issue in issues:
            if not issue.auto_fixable or issue.fix_action is None:
                continue
            try:
                if issue.fix_action == FIX_RESTORE_NOTES:
                    if issue.expected is None:
                        continue
                    fixed[NOTES_FIELD] = issue.expected
                elif issue.fix_action in (FIX_STRIP_CONTROL, FIX_NORMALIZE):
                    if issue.field == NOTES_FIELD and restoring:
                        # Notes are being restored from the source instead
                        continue
                    fixed[issue.field] = normalize_unicode(strip_control_chars(fixed[issue.field]))
                else:
                    continue
            except Exception as e:
                logger.warning(f"Auto-fix {issue.id} ({issue.fix_action}) failed: {e}")
                continue
            fixed_ids.append(issue.id)

        return fixed, fixed_ids

    def _metrics(
        self,
        fields: dict[str, str],
        issues: list[IntegrityIssue],
        original_text: str | None,
    ) -> IntegrityMetrics:
        total = len(fields)
        critical = {i.field for i in issues if i.severity is Severity.CRITICAL}
        warning = {i.field for i in issues if i.severity in (Severity.HIGH, Severity.MEDIUM)}
        warning -= critical
        non_empty = sum(1 for v in fields.values() if v and v.strip())

        notes = fields.get(NOTES_FIELD) or ""
        consistency = 1.0
        if original_text and notes:
            consistency = similarity(notes, original_text)

        return IntegrityMetrics(
            total_fields=total,
            healthy_fields=max(total - len(critical) - len(warning), 0),
            warning_fields=len(warning),
            critical_fields=len(critical),
            completeness=non_empty / total if total else 0.0,
            consistency=consistency,
            checksum_match=(checksum(notes) == checksum(original_text)) if original_text else True,
        )

    def _status(self, issues: list[IntegrityIssue]) -> IntegrityStatus:
        if any(i.severity is Severity.CRITICAL for i in issues):
            return IntegrityStatus.CRITICAL
        if any(i.severity in (Severity.HIGH, Severity.MEDIUM) for i in issues):
            return IntegrityStatus.WARNING
        return IntegrityStatus.HEALTHY

    def _recommendations(
        self, issues: list[IntegrityIssue], metrics: IntegrityMetrics
    ) -> list[str]:
        recommendations = []
        if metrics.completeness < 0.8:
            recommendations.append("Data completeness is low; check the empty fields")
        if metrics.consistency < self.config.similarity_threshold:
            recommendations.append("Notes diverge from the original text; verify them")
        if not metrics.checksum_match:
            recommendations.append("Checksum mismatch; check whether the content was modified")
        if any(i.severity is Severity.CRITICAL for i in issues):
            recommendations.append("Critical issues found; fix them now to avoid data loss")
        fixable = sum(1 for i in issues if i.auto_fixable)
        if fixable:
            recommendations.append(f"{fixable} issue(s) can be fixed automatically")
        return recommendations

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    def _remember(self, card_id: str, result: IntegrityCheckResult) -> None:
        with self._history_lock:
            history = self._history.get(card_id)
            if history is None:
                history = deque(maxlen=self.config.max_history)
                self._history[card_id] = history
            history.append(result)

    def history(self, card_id: str) -> list[IntegrityCheckResult]:
        """Past results for a card, oldest first."""
        with self._history_lock:
            return list(self._history.get(card_id, ()))

    def all_history(self) -> dict[str, list[IntegrityCheckResult]]:
        with self._history_lock:
            return {card_id: list(results) for card_id, results in self._history.items()}

    def clear_history(self) -> None:
        with self._history_lock:
            self._history.clear()

    # -------------------------------------------------------------------------
    # Batch & periodic
    # -------------------------------------------------------------------------

    def check_many(
        self,
        cards: Iterable[CardSnapshot],
        check_type: str = "manual",
    ) -> IntegrityReport:
        """Check many cards; one failing card never aborts the batch."""
        start = time.perf_counter()
        results: list[IntegrityCheckResult] = []
        errors: dict[str, str] = {}
        total = 0

        for card in cards:
            total += 1
            try:
                results.append(
                    self.check(card.card_id, card.fields, card.original_text, check_type)
                )
            except Exception as e:
                errors[card.card_id] = str(e)
                logger.error(f"Integrity check failed for {card.card_id}: {e}")

        counts = Counter(issue.kind.value for r in results for issue in r.issues)
        statuses = Counter(r.status for r in results)

        report = IntegrityReport(
            report_id=f"report_{uuid.uuid4().hex[:12]}",
            timestamp=time.time(),
            total_cards=total,
            checked_cards=len(results),
            healthy_cards=statuses[IntegrityStatus.HEALTHY],
            warning_cards=statuses[IntegrityStatus.WARNING],
            critical_cards=statuses[IntegrityStatus.CRITICAL],
            common_issues=counts.most_common(COMMON_ISSUE_LIMIT),
            results=results,
            errors=errors,
            recommendations=self._batch_recommendations(results, errors),
            duration_ms=(time.perf_counter() - start) * 1000,
        )
        logger.info(f"Checked {len(results)}/{total} cards")
        return report

    def _batch_recommendations(
        self, results: list[IntegrityCheckResult], errors: dict[str, str]
    ) -> list[str]:
        recommendations = []
        critical = sum(1 for r in results if r.status is IntegrityStatus.CRITICAL)
        warning = sum(1 for r in results if r.status is IntegrityStatus.WARNING)
        fixable = sum(1 for r in results for i in r.issues if i.auto_fixable)
        if critical:
            recommendations.append(f"{critical} card(s) have critical issues; fix them now")
        if warning:
            recommendations.append(f"{warning} card(s) have warnings; review them soon")
        if fixable:
            recommendations.append(f"{fixable} issue(s) in total can be fixed automatically")
        if errors:
            recommendations.append(f"{len(errors)} card(s) could not be checked")
        return recommendations

    def run_periodic_sweep(
        self, provider: Callable[[], Iterable[CardSnapshot]] | None = None
    ) -> IntegrityReport | None:
        """Run one sweep over the provider's cards.

        Returns:
            The report, or None if a sweep is already running (or there is
            no provider).
        """
        provider = provider or self._provider
        if provider is None:
            return None

        with self._sweep_lock:
            if self._checking:
                logger.debug("Periodic sweep already running; skipped")
                return None
            self._checking = True

        try:
            report = self.check_many(provider(), check_type="periodic")
            self.last_report = report
            return report
        except Exception as e:
            logger.error(f"Periodic integrity sweep failed: {e}")
            return None
        finally:
            with self._sweep_lock:
                self._checking = False

    def start_periodic(
        self,
        provider: Callable[[], Iterable[CardSnapshot]],
        interval: float | None = None,
    ) -> None:
        """Sweep the provider's cards every ``interval`` seconds on a daemon timer."""
        self.stop_periodic()
        stopped = threading.Event()
        with self._timer_lock:
            self._provider = provider
            self._interval = interval if interval is not None else self.config.check_interval
            self._stopped = stopped
        self._schedule(stopped, provider)
        logger.info(f"Started periodic integrity checks every {self._interval}s")

    def stop_periodic(self) -> None:
        with self._timer_lock:
            self._stopped.set()
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
            logger.info("Stopped periodic integrity checks")

    @property
    def periodic_running(self) -> bool:
        return self._timer is not None and not self._stopped.is_set()

    def _schedule(
        self, stopped: threading.Event, provider: Callable[[], Iterable[CardSnapshot]]
    ) -> None:
        with self._timer_lock:
            # A callback from a stopped chain must not start a new timer
            if stopped.is_set():
                return
            self._timer = threading.Timer(self._interval, self._on_timer, args=(stopped, provider))
            self._timer.daemon = True
            self._timer.start()

    def _on_timer(
        self, stopped: threading.Event, provider: Callable[[], Iterable[CardSnapshot]]
    ) -> None:
        try:
            if not stopped.is_set():
                self.run_periodic_sweep(provider)
        finally:
            self._schedule(stopped, provider)
