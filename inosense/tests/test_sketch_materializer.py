"""Tests for temporary sketch creation and local header copying."""

import shutil
import tempfile
from pathlib import Path
from unittest import TestCase

from inosense.compiler.sketch_materializer import (
    copy_local_headers,
    find_header,
    materialized_sketch,
)


class TestFindHeader(TestCase):
    def setUp(self) -> None:
        self.root = Path(tempfile.mkdtemp())
        self.sketch_dir = self.root / "Blink"
        self.sketch_dir.mkdir()

    def tearDown(self) -> None:
        shutil.rmtree(self.root, ignore_errors=True)

    def touch(self, relative: str) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("#pragma once\n")
        return path

    def test_workspace_search(self) -> None:
        found = self.touch("lib/shared/pins.h")
        self.assertEqual(find_header("pins.h", self.root, self.sketch_dir), found)

    def test_excluded_directories(self) -> None:
        self.touch("node_modules/pkg/pins.h")
        self.touch(".git/pins.h")
        self.touch("Blink/.vscode/Blink/pins.h")
        self.assertIsNone(find_header("pins.h", self.root, self.sketch_dir))

    def test_first_sorted_match_wins(self) -> None:
        first = self.touch("a/config.h")
        self.touch("b/config.h")
        self.assertEqual(find_header("config.h", self.root, self.sketch_dir), first)

    def test_subpath_include(self) -> None:
        found = self.touch("Blink/display/oled.h")
        self.assertEqual(find_header("display/oled.h", self.root, self.sketch_dir), found)

    def test_parent_relative_include_uses_sketch_dir(self) -> None:
        self.touch("common.h")
        self.assertEqual(
            find_header("../common.h", self.root, self.sketch_dir),
            self.sketch_dir / "../common.h",
        )
        self.assertIsNone(find_header("../missing.h", self.root, self.sketch_dir))


class TestCopyLocalHeaders(TestCase):
    def setUp(self) -> None:
        self.root = Path(tempfile.mkdtemp())
        self.sketch_dir = self.root / "Blink"
        self.sketch_dir.mkdir()
        self.target = self.sketch_dir / ".vscode" / "Blink"
        self.target.mkdir(parents=True)

    def tearDown(self) -> None:
        shutil.rmtree(self.root, ignore_errors=True)

    def test_found_headers_are_copied(self) -> None:
        (self.root / "shared").mkdir()
        (self.root / "shared" / "config.h").write_text("#define LED 13\n")
        (self.sketch_dir / "display").mkdir()
        (self.sketch_dir / "display" / "oled.h").write_text("#define W 128\n")

        copied = copy_local_headers(
            ["config.h", "display/oled.h", "Servo.h"], self.root, self.sketch_dir, self.target
        )

        self.assertEqual(
            copied, [self.target / "config.h", self.target / "display" / "oled.h"]
        )
        self.assertEqual((self.target / "config.h").read_text(), "#define LED 13\n")
        self.assertTrue((self.target / "display" / "oled.h").is_file())

    def test_missing_headers_are_skipped(self) -> None:
        with self.assertLogs("inosense.compiler.sketch_materializer", level="INFO") as logs:
            copied = copy_local_headers(["Servo.h"], self.root, self.sketch_dir, self.target)
        self.assertEqual(copied, [])
        self.assertIn("assuming it's a library include", "\n".join(logs.output))


class TestMaterializedSketch(TestCase):
    def setUp(self) -> None:
        self.root = Path(tempfile.mkdtemp())
        self.sketch_dir = self.root / "Blink"
        self.sketch_dir.mkdir()
        self.sketch = self.sketch_dir / "Blink.ino"
        self.sketch.write_text("void setup() {}\nvoid loop() {}\n")

    def tearDown(self) -> None:
        shutil.rmtree(self.root, ignore_errors=True)

    def test_no_headers_builds_in_place(self) -> None:
        with materialized_sketch(self.sketch, "unsaved", [], self.root) as build_path:
            self.assertEqual(build_path, self.sketch)
        self.assertEqual(self.sketch.read_text(), "void setup() {}\nvoid loop() {}\n")
        self.assertFalse((self.sketch_dir / ".vscode").exists())

    def test_buffer_is_written_to_temp_sketch(self) -> None:
        (self.sketch_dir / "config.h").write_text("#define LED 13\n")
        buffer = '#include "config.h"\nvoid setup() {}\n'

        with materialized_sketch(self.sketch, buffer, ["config.h"], self.root) as build_path:
            self.assertEqual(build_path, self.sketch_dir / ".vscode" / "Blink" / "Blink.ino")
            self.assertEqual(build_path.read_text(), buffer)
            self.assertTrue((build_path.parent / "config.h").is_file())

        self.assertFalse((self.sketch_dir / ".vscode" / "Blink").exists())
        self.assertEqual(self.sketch.read_text(), "void setup() {}\nvoid loop() {}\n")

    def test_cleanup_on_error(self) -> None:
        with self.assertRaises(RuntimeError):
            with materialized_sketch(self.sketch, "x", ["config.h"], self.root):
                raise RuntimeError("build crashed")
        self.assertFalse((self.sketch_dir / ".vscode" / "Blink").exists())
