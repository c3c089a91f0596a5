"""Extraction profiles.

Profiles choose which levels of the cascade take part. The terminal
protective level is always kept so every call still ends with a result.

- STRICT_PROFILE: template levels only (plus the protective fallback)
- LENIENT_PROFILE: heuristic levels only, for notes without templates
- DEFAULT_PROFILE: all six levels
"""

from __future__ import annotations

from dataclasses import dataclass

from cardparse.exceptions import ConfigurationError

ALL_STRATEGIES = (
    "strict_structural",
    "relaxed_structural",
    "fuzzy_segment",
    "semantic_analysis",
    "simple_split",
    "protective_parsing",
)
TERMINAL_STRATEGY = "protective_parsing"


@dataclass(frozen=True)
class ExtractionProfile:
    """Which strategies the DegradationEngine runs.

    Attributes:
        name: Profile identifier (e.g., "strict", "lenient").
        description: Human-readable description.
        strategies: Strategy names, in cascade order.
    """

    name: str
    description: str
    strategies: tuple[str, ...] = ALL_STRATEGIES

    def includes(self, strategy_name: str) -> bool:
        return strategy_name == TERMINAL_STRATEGY or strategy_name in self.strategies


STRICT_PROFILE = ExtractionProfile(
    name="strict",
    description="Template matches only; anything else is kept verbatim in notes",
    strategies=("strict_structural", "relaxed_structural", TERMINAL_STRATEGY),
)

LENIENT_PROFILE = ExtractionProfile(
    name="lenient",
    description="Heuristic levels for free-form notes without templates",
    strategies=("fuzzy_segment", "semantic_analysis", "simple_split", TERMINAL_STRATEGY),
)

DEFAULT_PROFILE = ExtractionProfile(
    name="default",
    description="Full six-level cascade",
)


# Profile lookup dictionary
PROFILES: dict[str, ExtractionProfile] = {
    "strict": STRICT_PROFILE,
    "lenient": LENIENT_PROFILE,
    "default": DEFAULT_PROFILE,
}


def get_profile(name: str) -> ExtractionProfile:
    """Look up a profile by name.

    Raises:
        ConfigurationError: If no profile has that name.
    """
    try:
        return PROFILES[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown extraction profile '{name}'; expected one of {sorted(PROFILES)}"
        ) from None
