"""
Configuration for cardparse extraction, caching and integrity checks.

All options have sensible defaults. Create a config only
if you need to customize behavior.
"""

from __future__ import annotations

from dataclasses import dataclass

from cardparse.exceptions import ConfigurationError


@dataclass
class CacheConfig:
    """
    Configuration for the template compilation cache.

    Example:
        >>> cache = CompilationCache(CacheConfig(max_size=20, max_age=600))
    """

    max_size: int = 100  # Entries kept before LRU eviction
    max_age: float = 30 * 60.0  # Seconds since last use before an entry expires
    cleanup_interval: float = 5 * 60.0  # Seconds between background sweeps
    enable_statistics: bool = True

    def __post_init__(self):
        """Validate configuration."""
        if self.max_size < 1:
            raise ConfigurationError(f"max_size must be >= 1, got {self.max_size}")
        if self.max_age <= 0:
            raise ConfigurationError(f"max_age must be > 0, got {self.max_age}")
        if self.cleanup_interval < 0:
            raise ConfigurationError(
                f"cleanup_interval must be >= 0, got {self.cleanup_interval}"
            )


@dataclass
class ExtractionConfig:
    """
    Configuration for the degradation cascade.

    Example:
        >>> engine = DegradationEngine(config=ExtractionConfig(time_budget_ms=50))
    """

    # Wall-clock budget for one extraction; None = unbounded.
    # Exceeding it jumps straight to protective parsing.
    time_budget_ms: float | None = None

    # Pick the best preset template when the caller passes none
    auto_detect_template: bool = False

    # Reliability discount applied to relaxed structural matches
    relaxed_discount: float = 0.9

    # Coverage below this adds a warning to structural results
    coverage_warning_threshold: float = 0.9

    def __post_init__(self):
        """Validate configuration."""
        if self.time_budget_ms is not None and self.time_budget_ms <= 0:
            raise ConfigurationError(
                f"time_budget_ms must be > 0 or None, got {self.time_budget_ms}"
            )
        if not 0.0 < self.relaxed_discount <= 1.0:
            raise ConfigurationError(
                f"relaxed_discount must be in (0.0, 1.0], got {self.relaxed_discount}"
            )
        if not 0.0 <= self.coverage_warning_threshold <= 1.0:
            raise ConfigurationError(
                f"coverage_warning_threshold must be between 0.0 and 1.0, "
                f"got {self.coverage_warning_threshold}"
            )


@dataclass
class IntegrityConfig:
    """
    Configuration for integrity checks.

    Example:
        >>> checker = IntegrityChecker(IntegrityConfig(deep_check=True))
    """

    similarity_threshold: float = 0.9  # Below this, notes are inconsistent
    high_severity_threshold: float = 0.5  # Below this, inconsistency is HIGH
    max_field_length: int = 10000
    deep_check: bool = False
    auto_fix: bool = False
    max_history: int = 50  # Check results kept per card
    check_interval: float = 5 * 60.0  # Seconds between periodic sweeps

    def __post_init__(self):
        """Validate configuration."""
        for name in ("similarity_threshold", "high_severity_threshold"):
            value = getattr(self, name)
            if value < 0.0 or value > 1.0:
                raise ConfigurationError(f"{name} must be between 0.0 and 1.0, got {value}")
        if self.high_severity_threshold > self.similarity_threshold:
            raise ConfigurationError(
                "high_severity_threshold must not exceed similarity_threshold"
            )
        if self.max_field_length < 1:
            raise ConfigurationError(
                f"max_field_length must be >= 1, got {self.max_field_length}"
            )
        if self.max_history < 1:
            raise ConfigurationError(f"max_history must be >= 1, got {self.max_history}")
        if self.check_interval <= 0:
            raise ConfigurationError(
                f"check_interval must be > 0, got {self.check_interval}"
            )
