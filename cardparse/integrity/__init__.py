"""
Post-hoc integrity checks for stored card fields.

Detects data loss, drift from the source text, format problems and
checksum mismatches, and optionally applies the safe automatic fixes.
"""

from cardparse.integrity.checker import CardSnapshot, IntegrityChecker

__all__ = [
    "IntegrityChecker",
    "CardSnapshot",
]
