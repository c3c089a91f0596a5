"""
Template compilation and caching.

Compiled matchers are memoized by a content hash of the template
definition ({name, pattern, flags, fieldMappings}), so structurally
identical templates always share one cache entry and a changed template
simply produces a new key. Entries are evicted least-recently-used once
the cache exceeds ``max_size``, and expire ``max_age`` seconds after
their last use (on lookup, or by the optional background sweeper).

The cache is an explicit object: whoever builds the pipeline owns it and
passes it to the TemplateCompiler. There is no module-level singleton.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from typing import Any

from cardparse.config import CacheConfig
from cardparse.exceptions import TemplateCompileError
from cardparse.models import Template

logger = logging.getLogger(__name__)

FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
}
IGNORED_FLAGS = frozenset("gu")

# JS-style named groups and backreferences
JS_NAMED_GROUP_RE = re.compile(r"(?<!\\)\(\?<(?=[A-Za-z_])")
JS_NAMED_BACKREF_RE = re.compile(r"\\k<([A-Za-z_]\w*)>")

LAZY_QUANTIFIER_RE = re.compile(r"(?<!\\)([*+}])\?")
LOOKAROUND_PREFIXES = ("(?=", "(?!", "(?<=", "(?<!")


# =============================================================================
# HASHING & COMPILATION
# =============================================================================


def template_hash(template: Template) -> str:
    """Content hash of a template definition.

    Only ``name``, ``pattern``, ``flags`` and ``field_mappings`` take part;
    ``id`` and ``description`` do not.
    """
    payload = {
        "name": template.name,
        "pattern": template.pattern,
        "flags": template.flags,
        "fieldMappings": dict(sorted(template.field_mappings.items())),
    }
    canonical = json.dumps(payload, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha1(canonical.encode("utf-8")).hexdigest()


def parse_flags(flags: str, template_id: str | None = None) -> int:
    """Translate single-letter flags into ``re`` flags."""
    result = 0
    for letter in flags:
        if letter in FLAG_MAP:
            result |= FLAG_MAP[letter]
        elif letter not in IGNORED_FLAGS:
            raise TemplateCompileError(f"Unknown template flag '{letter}'", template_id)
    return result


def compile_pattern(pattern: str, flags: str = "", template_id: str | None = None) -> re.Pattern[str]:
    """Compile a template pattern.

    Args:
        pattern: Regular expression source; JS-style ``(?<name>...)`` groups
            and ``\\k<name>`` backreferences are accepted.
        flags: Single-letter flag string.
        template_id: Used in error messages only.

    Returns:
        Compiled pattern.

    Raises:
        TemplateCompileError: If the pattern or a flag is invalid.
    """
    re_flags = parse_flags(flags, template_id)
    source = JS_NAMED_GROUP_RE.sub("(?P<", pattern)
    source = JS_NAMED_BACKREF_RE.sub(r"(?P=\1)", source)
    try:
        return re.compile(source, re_flags)
    except re.error as e:
        name = template_id or "<anonymous>"
        raise TemplateCompileError(f"Template '{name}' failed to compile: {e}", template_id) from e


def _group_end(pattern: str, start: int) -> int:
    """Index just past the group opened at ``pattern[start]``."""
    depth = 0
    in_class = False
    i = start
    while i < len(pattern):
        char = pattern[i]
        if char == "\\":
            i += 2
            continue
        if in_class:
            if char == "]":
                in_class = False
        elif char == "[":
            in_class = True
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return len(pattern)


def relax_pattern(pattern: str) -> str:
    """Loosen a pattern to tolerate minor formatting drift.

    Lookahead and lookbehind groups are removed entirely (so capture group
    numbering is unchanged) and lazy quantifiers become greedy.
    """
    parts = []
    in_class = False
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\":
            parts.append(pattern[i : i + 2])
            i += 2
            continue
        if in_class:
            in_class = char != "]"
        elif char == "[":
            in_class = True
        elif char == "(" and pattern.startswith(LOOKAROUND_PREFIXES, i):
            i = _group_end(pattern, i)
            continue
        parts.append(char)
        i += 1
    return LAZY_QUANTIFIER_RE.sub(r"\1", "".join(parts))


# =============================================================================
# CACHE
# =============================================================================


@dataclass
class CompiledTemplate:
    """A compiled matcher owned by the cache."""

    template_hash: str
    matcher: re.Pattern[str]
    template: Template
    compiled_at: float
    last_used_at: float
    use_count: int = 1
    compile_ms: float = 0.0


@dataclass
class CacheStatistics:
    """Cache counters."""

    size: int
    max_size: int
    hits: int
    misses: int
    evictions: int
    expirations: int
    total_compile_ms: float

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    @property
    def average_compile_ms(self) -> float:
        return self.total_compile_ms / self.misses if self.misses else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "size": self.size,
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "hit_rate": round(self.hit_rate, 4),
            "total_compile_ms": round(self.total_compile_ms, 3),
            "average_compile_ms": round(self.average_compile_ms, 3),
        }


class CompilationCache:
    """Thread-safe LRU + max-age cache of compiled templates.

    A global lock guards the entry table; a per-key lock makes sure
    concurrent misses on the same template compile it once.

    Usage:
        cache = CompilationCache(CacheConfig(max_size=50))
        compiled = cache.get_compiled(template)
        match = compiled.matcher.search(text)
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            config: Cache limits (default CacheConfig()).
            clock: Time source in seconds; injectable for tests.
        """
        self.config = config or CacheConfig()
        self._clock = clock
        self._entries: dict[str, CompiledTemplate] = {}
        self._key_locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        self._compile_ms = 0.0

        self._stop_event = threading.Event()
        self._sweeper: threading.Thread | None = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, template: Template) -> bool:
        key = template_hash(template)
        with self._lock:
            return key in self._entries

    def get_compiled(self, template: Template) -> CompiledTemplate:
        """Return the compiled matcher for a template, compiling on miss.

        Raises:
            TemplateCompileError: If the template is invalid. Failures
                are not cached.
        """
        key = template_hash(template)

        with self._lock:
            entry = self._lookup(key)
            if entry is not None:
                return entry
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            # Another thread may have compiled it while we waited
            with self._lock:
                entry = self._lookup(key)
                if entry is not None:
                    return entry

            start = time.perf_counter()
            try:
                matcher = compile_pattern(template.pattern, template.flags, template.id)
            except TemplateCompileError:
                with self._lock:
                    self._key_locks.pop(key, None)
                raise
            compile_ms = (time.perf_counter() - start) * 1000
            now = self._clock()
            entry = CompiledTemplate(
                template_hash=key,
                matcher=matcher,
                template=template,
                compiled_at=now,
                last_used_at=now,
                compile_ms=compile_ms,
            )

            with self._lock:
                self._entries[key] = entry
                if self.config.enable_statistics:
                    self._misses += 1
                    self._compile_ms += compile_ms
                self._evict_over_capacity()

        logger.debug(f"Compiled template {template.id} ({key[:8]}) in {compile_ms:.2f}ms")
        return entry

    def _lookup(self, key: str) -> CompiledTemplate | None:
        """Fresh entry for ``key`` or None. Caller holds ``_lock``."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        now = self._clock()
        if now - entry.last_used_at > self.config.max_age:
            del self._entries[key]
            self._expirations += 1
            return None

        entry.use_count += 1
        entry.last_used_at = now
        if self.config.enable_statistics:
            self._hits += 1
        return entry

    def _evict_over_capacity(self) -> None:
        """Drop least recently used entries. Caller holds ``_lock``."""
        while len(self._entries) > self.config.max_size:
            oldest = min(self._entries, key=lambda k: self._entries[k].last_used_at)
            del self._entries[oldest]
            self._key_locks.pop(oldest, None)
            self._evictions += 1
            logger.debug(f"Evicted template {oldest[:8]} from cache")

    def precompile(self, template: Template) -> CompiledTemplate:
        """Compile ahead of first use."""
        return self.get_compiled(template)

    def precompile_all(self, templates: Iterable[Template]) -> int:
        """Compile many templates, logging failures.

        Returns:
            Number of templates compiled (or already cached).
        """
        count = 0
        for template in templates:
            try:
                self.get_compiled(template)
                count += 1
            except TemplateCompileError as e:
                logger.warning(f"Precompile failed for template {template.id}: {e}")
        return count

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._key_locks.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0
            self._expirations = 0
            self._compile_ms = 0.0

    def clear_expired(self) -> int:
        """Remove entries idle for longer than ``max_age``.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        with self._lock:
            expired = [
                key
                for key, entry in self._entries.items()
                if now - entry.last_used_at > self.config.max_age
            ]
            for key in expired:
                del self._entries[key]
                self._key_locks.pop(key, None)
            self._expirations += len(expired)

        if expired:
            logger.debug(f"Removed {len(expired)} expired templates from cache")
        return len(expired)

    def statistics(self) -> CacheStatistics:
        with self._lock:
            return CacheStatistics(
                size=len(self._entries),
                max_size=self.config.max_size,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expirations=self._expirations,
                total_compile_ms=self._compile_ms,
            )

    def details(self) -> list[dict[str, Any]]:
        """Per-entry usage, most recently used first."""
        now = self._clock()
        with self._lock:
            entries = sorted(self._entries.values(), key=lambda e: e.last_used_at, reverse=True)
            return [
                {
                    "template_hash": e.template_hash,
                    "template_id": e.template.id,
                    "use_count": e.use_count,
                    "age_seconds": round(now - e.compiled_at, 3),
                    "idle_seconds": round(now - e.last_used_at, 3),
                    "compile_ms": round(e.compile_ms, 3),
                }
                for e in entries
            ]

    # -------------------------------------------------------------------------
    # Background sweep
    # -------------------------------------------------------------------------

    def start_sweeper(self) -> bool:
        """Start the background max-age sweep.

        Returns:
            False if the sweeper is disabled (``cleanup_interval == 0``)
            or already running.
        """
        if self.config.cleanup_interval <= 0:
            logger.info("Cache sweeper disabled (cleanup_interval=0)")
            return False
        if self._sweeper is not None and self._sweeper.is_alive():
            return False

        self._stop_event.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name="cardparse-cache-sweeper", daemon=True
        )
        self._sweeper.start()
        return True

    def stop_sweeper(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout)
            self._sweeper = None

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self.config.cleanup_interval):
            try:
                self.clear_expired()
            except Exception as e:
                logger.warning(f"Cache sweep failed: {e}")


# =============================================================================
# COMPILER FACADE
# =============================================================================


class TemplateCompiler:
    """Entry point used by the structural strategies.

    Usage:
        compiler = TemplateCompiler(CompilationCache())
        match = compiler.search(template, text)
    """

    def __init__(self, cache: CompilationCache | None = None):
        self.cache = cache if cache is not None else CompilationCache()

    def get_compiled(self, template: Template) -> CompiledTemplate:
        return self.cache.get_compiled(template)

    def get_relaxed(self, template: Template) -> CompiledTemplate:
        """Compiled matcher for the relaxed form of ``template``.

        The relaxed template has its own content hash, so it is cached
        alongside the strict one.
        """
        return self.cache.get_compiled(relaxed_template(template))

    def search(self, template: Template, text: str, relaxed: bool = False) -> re.Match[str] | None:
        compiled = self.get_relaxed(template) if relaxed else self.get_compiled(template)
        return compiled.matcher.search(text)


def relaxed_template(template: Template) -> Template:
    """Copy of ``template`` with a relaxed pattern."""
    return replace(template, pattern=relax_pattern(template.pattern))
