#!/usr/bin/env python3
"""
Derivation Cache Rules

This module decides, for one derivation request, whether the cached board
properties can be reused, a new derivation has to run, or the request has to
be dropped because a derivation for the same sketch is already running.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CacheAction(Enum):
    """Actions that can be taken for a derivation request."""

    HIT = "hit"  # Cached properties are valid, no subprocess work
    DERIVE = "derive"  # Cache missing or stale, run the build and probes
    SKIP = "skip"  # A derivation for this sketch is in flight, drop request


class InvalidationTrigger(Enum):
    """Why a cached entry can no longer be used."""

    NO_ENTRY = "no_entry"  # First request for this sketch
    INCLUDES_CHANGED = "includes_changed"  # Active local includes differ
    BOARD_CHANGED = "board_changed"  # Board identifier differs


@dataclass
class CacheDecision:
    """
    Result of evaluating the cache rules for one request.

    Attributes:
        action: Action to take (hit, derive, skip)
        reason: Human-readable explanation for the action
        trigger: Set when a derivation is required
    """

    action: CacheAction
    reason: str
    trigger: Optional[InvalidationTrigger] = None


class DerivationRules:
    """
    Rule engine for derivation requests.

    An entry is valid only when both the include fingerprint and the board
    identifier match exactly. There is no partial reuse.
    """

    @staticmethod
    def evaluate(
        in_flight: bool,
        cached_includes: Optional[str],
        cached_board: Optional[str],
        active_includes: str,
        board_id: str,
    ) -> CacheDecision:
        """
        Decide what to do with a derivation request.

        Args:
            in_flight: Whether a derivation for this sketch is running
            cached_includes: Fingerprint stored with the cache entry, None if no entry
            cached_board: Board identifier stored with the cache entry, None if no entry
            active_includes: Current active include fingerprint
            board_id: Current board identifier

        Returns:
            CacheDecision with the action and the reason
        """
        if in_flight:
            return CacheDecision(
                action=CacheAction.SKIP,
                reason="Derivation already running for this sketch",
            )

        if cached_includes is None or cached_board is None:
            return CacheDecision(
                action=CacheAction.DERIVE,
                reason="No cached properties",
                trigger=InvalidationTrigger.NO_ENTRY,
            )

        if cached_board != board_id:
            return CacheDecision(
                action=CacheAction.DERIVE,
                reason=f"Board changed from {cached_board} to {board_id}",
                trigger=InvalidationTrigger.BOARD_CHANGED,
            )

        if cached_includes != active_includes:
            return CacheDecision(
                action=CacheAction.DERIVE,
                reason="Active includes changed",
                trigger=InvalidationTrigger.INCLUDES_CHANGED,
            )

        return CacheDecision(
            action=CacheAction.HIT,
            reason="Using cached compilation results",
        )
