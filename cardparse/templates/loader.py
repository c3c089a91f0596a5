"""
Template file loading.

Templates can be kept in a YAML file:

    templates:
      - id: h2-card
        name: Heading card
        pattern: "## (.+)\\n([\\s\\S]*)"
        flags: m
        field_mappings:
          question: 1
          answer: 2

Patterns are not compiled here; the compilation cache does that on
first use (or via CompilationCache.precompile_all()).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from cardparse.exceptions import ConfigurationError
from cardparse.models import Template

REQUIRED_KEYS = ("id", "pattern")


def load_templates(path: str | Path) -> list[Template]:
    """Load templates from a YAML file.

    Args:
        path: YAML file with a top-level ``templates`` list.

    Returns:
        Templates in file order.

    Raises:
        ConfigurationError: If the file is malformed or an entry is invalid.
        FileNotFoundError: If the file does not exist.
    """
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    return parse_templates(data, source=str(path))


def parse_templates(data: Any, source: str = "<data>") -> list[Template]:
    """Build templates from already-parsed YAML/JSON data."""
    if data is None:
        return []
    if not isinstance(data, dict) or not isinstance(data.get("templates"), list):
        raise ConfigurationError(f"{source}: expected a mapping with a 'templates' list")

    templates = []
    seen: set[str] = set()
    for index, entry in enumerate(data["templates"]):
        template = _parse_entry(entry, f"{source}[{index}]")
        if template.id in seen:
            raise ConfigurationError(f"{source}: duplicate template id '{template.id}'")
        seen.add(template.id)
        templates.append(template)
    return templates


def _parse_entry(entry: Any, where: str) -> Template:
    if not isinstance(entry, dict):
        raise ConfigurationError(f"{where}: template entry must be a mapping")

    missing = [key for key in REQUIRED_KEYS if not entry.get(key)]
    if missing:
        raise ConfigurationError(f"{where}: missing required keys {missing}")

    mappings = entry.get("field_mappings") or {}
    if not isinstance(mappings, dict):
        raise ConfigurationError(f"{where}: field_mappings must be a mapping")
    for name, group in mappings.items():
        if isinstance(group, bool) or not isinstance(group, int) or group < 0:
            raise ConfigurationError(
                f"{where}: field '{name}' must map to a capture group index >= 0, got {group!r}"
            )

    flags = entry.get("flags") or ""
    if not isinstance(flags, str):
        raise ConfigurationError(f"{where}: flags must be a string")

    return Template(
        id=str(entry["id"]),
        name=str(entry.get("name") or entry["id"]),
        pattern=str(entry["pattern"]),
        flags=flags,
        field_mappings={str(name): group for name, group in mappings.items()},
        description=str(entry.get("description") or ""),
    )
