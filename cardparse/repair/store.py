"""Document access for repairs applied to files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class DocumentStore(Protocol):
    """Anything that can read and write documents by path."""

    def read(self, path: str) -> str:
        """Return the document's text. Raises OSError on failure."""
        ...

    def write(self, path: str, content: str) -> None:
        """Replace the document's text. Raises OSError on failure."""
        ...


class FileDocumentStore:
    """UTF-8 Markdown files under a root directory.

    Paths are resolved relative to ``root`` and may not escape it.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        root = self.root.resolve()
        resolved = (root / path).resolve()
        if resolved != root and root not in resolved.parents:
            raise PermissionError(f"Path escapes the document root: {path}")
        return resolved

    def read(self, path: str) -> str:
        return self._resolve(path).read_text(encoding="utf-8")

    def write(self, path: str, content: str) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        logger.debug(f"Wrote {len(content)} chars to {target}")
