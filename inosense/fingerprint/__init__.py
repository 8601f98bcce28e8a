"""
Derivation fingerprint and cache system

Decides whether a sketch needs a new (subprocess spawning) derivation by
comparing its active include fingerprint and board identifier with the
cached entry.
"""

from inosense.fingerprint.core import DerivationCacheEntry, DerivationRegistry
from inosense.fingerprint.includes import (
    active_include_fingerprint,
    active_local_includes,
)
from inosense.fingerprint.rules import CacheAction, CacheDecision, DerivationRules


__all__ = [
    "DerivationCacheEntry",
    "DerivationRegistry",
    "active_include_fingerprint",
    "active_local_includes",
    "CacheAction",
    "CacheDecision",
    "DerivationRules",
]
