#!/usr/bin/env python3
"""
Derivation Registry

Process-wide state of the derivation engine, owned by one object instead of
module globals so every test can work on an isolated instance:

- cache entries: last successful derivation per sketch
- regenerating: sketches with a derivation in flight (the regeneration lock)
- active includes: last fingerprint seen per sketch buffer
- boards: last board identifier seen per workspace root

All methods are synchronous. The engine calls check-and-acquire in one turn
of the event loop, so no further locking is needed.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from inosense.compiler.board_properties import BoardProperties
from inosense.fingerprint.rules import CacheAction, CacheDecision, DerivationRules


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def sketch_key(path: PathLike) -> str:
    """Identity used for a sketch in every registry map."""
    return os.path.abspath(str(path))


def is_under(path: str, root: str) -> bool:
    """Whether path lies inside the root directory."""
    root = os.path.abspath(root)
    path = os.path.abspath(path)
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


@dataclass(frozen=True)
class DerivationCacheEntry:
    """Cached derivation result for one sketch."""

    active_includes: str
    board_id: str
    properties: BoardProperties


class DerivationRegistry:
    """Cache entries, locks and fingerprints keyed by sketch identity."""

    def __init__(self) -> None:
        self.entries: dict[str, DerivationCacheEntry] = {}
        self.regenerating: set[str] = set()
        self.active_includes: dict[str, str] = {}
        self.boards: dict[str, str] = {}

    # Regeneration lock

    def is_regenerating(self, sketch: PathLike) -> bool:
        return sketch_key(sketch) in self.regenerating

    def try_begin(self, sketch: PathLike) -> bool:
        """Acquire the regeneration lock. False when already held."""
        key = sketch_key(sketch)
        if key in self.regenerating:
            return False
        self.regenerating.add(key)
        return True

    def end(self, sketch: PathLike) -> None:
        self.regenerating.discard(sketch_key(sketch))

    # Fingerprints

    def remember_includes(self, sketch: PathLike, fingerprint: str) -> bool:
        """Store the fingerprint of a buffer. True when it changed."""
        key = sketch_key(sketch)
        previous = self.active_includes.get(key)
        self.active_includes[key] = fingerprint
        return previous != fingerprint

    def remembered_includes(self, sketch: PathLike) -> Optional[str]:
        return self.active_includes.get(sketch_key(sketch))

    # Cache entries

    def decide(
        self, sketch: PathLike, active_includes: str, board_id: str
    ) -> CacheDecision:
        """Evaluate the cache rules for a request on this sketch."""
        key = sketch_key(sketch)
        entry = self.entries.get(key)
        return DerivationRules.evaluate(
            in_flight=key in self.regenerating,
            cached_includes=entry.active_includes if entry else None,
            cached_board=entry.board_id if entry else None,
            active_includes=active_includes,
            board_id=board_id,
        )

    def lookup(
        self, sketch: PathLike, active_includes: str, board_id: str
    ) -> Optional[BoardProperties]:
        """Cached properties when both the fingerprint and board match."""
        entry = self.entries.get(sketch_key(sketch))
        if entry is None:
            return None
        decision = DerivationRules.evaluate(
            in_flight=False,
            cached_includes=entry.active_includes,
            cached_board=entry.board_id,
            active_includes=active_includes,
            board_id=board_id,
        )
        if decision.action is CacheAction.HIT:
            return entry.properties
        return None

    def store(
        self,
        sketch: PathLike,
        active_includes: str,
        board_id: str,
        properties: BoardProperties,
    ) -> None:
        """Store a successful derivation, replacing any previous entry."""
        self.entries[sketch_key(sketch)] = DerivationCacheEntry(
            active_includes=active_includes,
            board_id=board_id,
            properties=properties,
        )

    def invalidate_workspace(self, workspace_root: PathLike) -> int:
        """Drop every cache entry of a sketch under workspace_root.

        Returns:
            Number of dropped entries
        """
        root = str(workspace_root)
        stale = [key for key in self.entries if is_under(key, root)]
        for key in stale:
            del self.entries[key]
        if stale:
            logger.info(f"Cleared {len(stale)} cached derivations under {root}")
        return len(stale)

    # Workspace boards

    def update_board(self, workspace_root: PathLike, board_id: str) -> bool:
        """Record the board of a workspace. True when it changed.

        A change drops the cache entries of the workspace.
        """
        root = os.path.abspath(str(workspace_root))
        if self.boards.get(root) == board_id:
            return False
        self.boards[root] = board_id
        self.invalidate_workspace(root)
        return True
