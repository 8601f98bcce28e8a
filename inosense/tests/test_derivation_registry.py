"""
Tests for the derivation registry and cache rules.

Tests cover:
- Cache hits and misses on fingerprint and board
- Regeneration lock semantics
- Workspace invalidation on board change
"""

import os
from unittest import TestCase

from inosense.compiler.board_properties import BoardProperties
from inosense.fingerprint import (
    CacheAction,
    DerivationRegistry,
    DerivationRules,
)
from inosense.fingerprint.core import is_under, sketch_key
from inosense.fingerprint.rules import InvalidationTrigger


def make_properties(tag: str = "a") -> BoardProperties:
    return BoardProperties(
        include_paths=(f"/inc/{tag}",),
        defines=(f"DEF_{tag.upper()}",),
        compiler_path="/t/bin/avr-g++",
    )


class TestDerivationRules(TestCase):
    def test_in_flight_request_is_skipped(self) -> None:
        decision = DerivationRules.evaluate(True, "a.h", "uno", "a.h", "uno")
        self.assertEqual(decision.action, CacheAction.SKIP)

    def test_no_entry_requires_derivation(self) -> None:
        decision = DerivationRules.evaluate(False, None, None, "", "uno")
        self.assertEqual(decision.action, CacheAction.DERIVE)
        self.assertEqual(decision.trigger, InvalidationTrigger.NO_ENTRY)

    def test_board_mismatch(self) -> None:
        decision = DerivationRules.evaluate(False, "a.h", "uno", "a.h", "mega")
        self.assertEqual(decision.action, CacheAction.DERIVE)
        self.assertEqual(decision.trigger, InvalidationTrigger.BOARD_CHANGED)

    def test_include_mismatch(self) -> None:
        decision = DerivationRules.evaluate(False, "a.h", "uno", "a.h\nb.h", "uno")
        self.assertEqual(decision.action, CacheAction.DERIVE)
        self.assertEqual(decision.trigger, InvalidationTrigger.INCLUDES_CHANGED)

    def test_exact_match_hits(self) -> None:
        decision = DerivationRules.evaluate(False, "a.h", "uno", "a.h", "uno")
        self.assertEqual(decision.action, CacheAction.HIT)

    def test_empty_fingerprint_is_a_valid_key(self) -> None:
        decision = DerivationRules.evaluate(False, "", "uno", "", "uno")
        self.assertEqual(decision.action, CacheAction.HIT)


class TestDerivationRegistry(TestCase):
    def setUp(self) -> None:
        self.registry = DerivationRegistry()
        self.sketch = os.path.join(os.sep, "ws", "Blink", "Blink.ino")

    def test_lookup_requires_both_fields(self) -> None:
        props = make_properties()
        self.registry.store(self.sketch, "a.h", "arduino:avr:uno", props)

        self.assertIs(self.registry.lookup(self.sketch, "a.h", "arduino:avr:uno"), props)
        self.assertIsNone(self.registry.lookup(self.sketch, "b.h", "arduino:avr:uno"))
        self.assertIsNone(self.registry.lookup(self.sketch, "a.h", "arduino:avr:mega"))

    def test_store_overwrites(self) -> None:
        self.registry.store(self.sketch, "a.h", "uno", make_properties("a"))
        newer = make_properties("b")
        self.registry.store(self.sketch, "b.h", "uno", newer)

        self.assertEqual(len(self.registry.entries), 1)
        self.assertIs(self.registry.lookup(self.sketch, "b.h", "uno"), newer)
        self.assertIsNone(self.registry.lookup(self.sketch, "a.h", "uno"))

    def test_lock_is_exclusive_per_sketch(self) -> None:
        other = os.path.join(os.sep, "ws", "Fade", "Fade.ino")
        self.assertTrue(self.registry.try_begin(self.sketch))
        self.assertFalse(self.registry.try_begin(self.sketch))
        self.assertTrue(self.registry.try_begin(other))
        self.assertTrue(self.registry.is_regenerating(self.sketch))

        self.registry.end(self.sketch)
        self.assertFalse(self.registry.is_regenerating(self.sketch))
        self.assertTrue(self.registry.try_begin(self.sketch))

    def test_decide_reports_in_flight(self) -> None:
        self.registry.store(self.sketch, "", "uno", make_properties())
        self.registry.try_begin(self.sketch)
        self.assertEqual(
            self.registry.decide(self.sketch, "", "uno").action, CacheAction.SKIP
        )

    def test_remember_includes_reports_changes(self) -> None:
        self.assertTrue(self.registry.remember_includes(self.sketch, "a.h"))
        self.assertFalse(self.registry.remember_includes(self.sketch, "a.h"))
        self.assertTrue(self.registry.remember_includes(self.sketch, "a.h\nb.h"))
        self.assertEqual(self.registry.remembered_includes(self.sketch), "a.h\nb.h")

    def test_workspace_invalidation(self) -> None:
        ws = os.path.join(os.sep, "ws")
        inside = [
            os.path.join(ws, "Blink", "Blink.ino"),
            os.path.join(ws, "deep", "Fade", "Fade.ino"),
        ]
        outside = [
            os.path.join(os.sep, "other", "Serial", "Serial.ino"),
            os.path.join(os.sep, "ws2", "Tone", "Tone.ino"),
        ]
        for sketch in inside + outside:
            self.registry.store(sketch, "", "uno", make_properties())

        dropped = self.registry.invalidate_workspace(ws)

        self.assertEqual(dropped, 2)
        for sketch in inside:
            self.assertIsNone(self.registry.lookup(sketch, "", "uno"))
        for sketch in outside:
            self.assertIsNotNone(self.registry.lookup(sketch, "", "uno"))

    def test_update_board_invalidates_only_on_change(self) -> None:
        ws = os.path.join(os.sep, "ws")
        self.assertTrue(self.registry.update_board(ws, "arduino:avr:uno"))
        self.registry.store(self.sketch, "", "arduino:avr:uno", make_properties())

        self.assertFalse(self.registry.update_board(ws, "arduino:avr:uno"))
        self.assertIn(sketch_key(self.sketch), self.registry.entries)

        self.assertTrue(self.registry.update_board(ws, "arduino:avr:mega"))
        self.assertNotIn(sketch_key(self.sketch), self.registry.entries)


class TestPathHelpers(TestCase):
    def test_is_under(self) -> None:
        root = os.path.join(os.sep, "ws")
        self.assertTrue(is_under(os.path.join(root, "a", "b.ino"), root))
        self.assertTrue(is_under(root, root))
        self.assertFalse(is_under(os.path.join(os.sep, "ws2", "b.ino"), root))

    def test_board_properties_deduplicate_defines(self) -> None:
        props = BoardProperties(
            include_paths=["/a", "/a"], defines=["X", "Y", "X"], compiler_path="g++"
        )
        self.assertEqual(props.defines, ("X", "Y"))
        self.assertEqual(props.include_paths, ("/a", "/a"))
