#!/usr/bin/env python3
"""Command line interface.

    inosense generate path/to/Sketch/Sketch.ino
    inosense watch path/to/workspace
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console

from inosense.config import (
    BOARD_CONFIG_FILE,
    SKETCH_EXTENSION,
    VSCODE_DIR,
    IntellisenseSettings,
    board_config_path,
    load_settings,
    read_board_id,
)
from inosense.engine import IntellisenseEngine
from inosense.errors import DerivationError, SettingsError
from inosense.util.board_watcher import BoardConfigWatcher


logger = logging.getLogger(__name__)
console = Console()


def parse_args(args: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="inosense",
        description="Generate c_cpp_properties.json for Arduino sketches",
    )
    parser.add_argument(
        "--settings", type=Path, default=None, help="Settings TOML file"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser(
        "generate", help="Derive and write the configuration of one sketch"
    )
    generate.add_argument("sketch", type=Path, help="Sketch file (.ino)")
    generate.add_argument(
        "--fqbn",
        default=None,
        help=f"Board used when the sketch has no {VSCODE_DIR}/{BOARD_CONFIG_FILE}",
    )

    watch = subparsers.add_parser(
        "watch", help="Keep the configuration of every sketch in a workspace current"
    )
    watch.add_argument("workspace", type=Path, nargs="+", help="Workspace roots")

    return parser.parse_args(args)


def find_sketches(workspace_root: Path) -> list[Path]:
    """Sketch files of a workspace, skipping generated .vscode copies."""
    return sorted(
        path
        for path in workspace_root.rglob(f"*{SKETCH_EXTENSION}")
        if VSCODE_DIR not in path.relative_to(workspace_root).parts
    )


async def run_generate(settings: IntellisenseSettings, sketch: Path) -> int:
    if sketch.suffix != SKETCH_EXTENSION or not sketch.is_file():
        console.print(f"[red]Not a sketch file: {sketch}[/red]")
        return 1

    engine = IntellisenseEngine(settings, workspace_roots=[sketch.parent])
    text = sketch.read_text(encoding="utf-8", errors="replace")
    properties = await engine.document_opened(sketch, text)
    await engine.close()
    if properties is None:
        raise DerivationError(f"Could not derive IntelliSense configuration for {sketch}")

    console.print(
        f"[green]{sketch.name}: {len(properties.include_paths)} include paths, "
        f"{len(properties.defines)} defines[/green]"
    )
    return 0


async def run_watch(settings: IntellisenseSettings, roots: list[Path]) -> int:
    roots = [root.resolve() for root in roots]
    engine = IntellisenseEngine(settings, workspace_roots=roots)

    for root in roots:
        if board_config_path(root).exists():
            engine.registry.update_board(root, read_board_id(root, settings.default_fqbn))
        for sketch in find_sketches(root):
            await engine.document_opened(
                sketch, sketch.read_text(encoding="utf-8", errors="replace")
            )

    watcher = BoardConfigWatcher(
        roots,
        on_change=engine.board_config_changed,
        on_sketch_saved=engine.sketch_written,
    )
    watcher.start()
    console.print(f"[cyan]Watching {len(roots)} workspace(s), press Ctrl+C to stop[/cyan]")
    try:
        await asyncio.Event().wait()
    finally:
        watcher.stop()
        await engine.close()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    try:
        settings = load_settings(args.settings)
    except SettingsError as e:
        console.print(f"[red]{e}[/red]")
        return 2

    if args.command == "generate":
        if args.fqbn:
            settings.default_fqbn = args.fqbn
        try:
            return asyncio.run(run_generate(settings, args.sketch))
        except DerivationError as e:
            console.print(f"[red]{e}[/red]")
            return 1

    try:
        return asyncio.run(run_watch(settings, args.workspace))
    except KeyboardInterrupt:
        console.print("Stopped watching")
        return 0


if __name__ == "__main__":
    sys.exit(main())
