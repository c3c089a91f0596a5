"""
Exception classes for cardparse.

All cardparse exceptions inherit from CardParseError,
making it easy to catch all library errors.

Note that DegradationEngine.extract() never raises: strategy failures are
recorded on the DegradationReport and expressed as low confidence.

Example:
    >>> try:
    ...     cache.get_compiled(template)
    ... except cardparse.TemplateCompileError as e:
    ...     print(f"Bad template: {e}")
    ... except cardparse.CardParseError as e:
    ...     print(f"cardparse error: {e}")
"""

from __future__ import annotations


class CardParseError(Exception):
    """
    Base exception for all cardparse errors.

    Catch this to handle any cardparse-specific error.
    """

    pass


class TemplateCompileError(CardParseError):
    """
    Raised when a template pattern or its flags cannot be compiled.

    Fatal for that template only. The structural strategies score 0
    and the cascade continues with the heuristic levels.

    Example:
        >>> cache.get_compiled(Template(id="t", name="t", pattern="(unclosed"))
        TemplateCompileError: Template 't' failed to compile: missing ), unterminated subpattern
    """

    def __init__(self, message: str, template_id: str | None = None):
        super().__init__(message)
        self.template_id = template_id


class StrategyExecutionError(CardParseError):
    """
    Raised (and caught) when a strategy fails unexpectedly.

    The engine wraps any exception escaping a strategy in this class,
    records it on the attempt and moves on to the next level.
    """

    def __init__(self, message: str, strategy: str = "", level: int = 0):
        super().__init__(message)
        self.strategy = strategy
        self.level = level


class EmptyContentError(CardParseError):
    """
    Raised by heuristic strategies when the input is empty or whitespace-only.

    SimpleSplit and ProtectiveParsing special-case empty input instead
    of raising, so the cascade always ends with a result.
    """

    pass


class ConfigurationError(CardParseError, ValueError):
    """
    Raised for invalid configuration or malformed template files.

    Example:
        >>> CacheConfig(max_size=0)
        ConfigurationError: max_size must be >= 1, got 0
    """

    pass
