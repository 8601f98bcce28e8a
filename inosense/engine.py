"""
IntelliSense engine

Ties document events to derivations. Per sketch the engine is a two state
machine:

    Idle --request--> Deriving --done/failed--> Idle

A request first compares the active include fingerprint and the board
identifier with the cached entry. A match reuses the cached properties, a
mismatch runs the full derivation. A request for a sketch that is already
Deriving is dropped, the lock check and acquisition happen before the first
await so no other request can slip in between.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Iterable, Optional

from inosense.compiler.board_properties import BoardProperties
from inosense.compiler.derivation import derive_board_properties
from inosense.compiler.process_runner import AsyncioProcessRunner, ProcessRunner
from inosense.config import IntellisenseSettings, is_sketch, read_board_id
from inosense.cpp_properties import build_cpp_properties, write_cpp_properties
from inosense.fingerprint.core import DerivationRegistry, is_under, sketch_key
from inosense.fingerprint.includes import active_include_fingerprint
from inosense.fingerprint.rules import CacheAction
from inosense.util.debounce import Debouncer


logger = logging.getLogger(__name__)


class IntellisenseEngine:
    """Derives and writes IntelliSense configuration for open sketches."""

    def __init__(
        self,
        settings: Optional[IntellisenseSettings] = None,
        runner: Optional[ProcessRunner] = None,
        registry: Optional[DerivationRegistry] = None,
        workspace_roots: Iterable[Path] = (),
    ) -> None:
        self.settings = settings or IntellisenseSettings()
        self.runner: ProcessRunner = runner or AsyncioProcessRunner()
        self.registry = registry or DerivationRegistry()
        self.workspace_roots = [Path(os.path.abspath(root)) for root in workspace_roots]
        # Buffer text of the open sketches, keyed like the registry
        self.documents: dict[str, str] = {}
        self._debouncer: Optional[Debouncer] = None

    @property
    def debouncer(self) -> Debouncer:
        if self._debouncer is None:
            self._debouncer = Debouncer(self.settings.debounce_seconds)
        return self._debouncer

    def workspace_root_for(self, sketch_path: Path) -> Path:
        """Innermost workspace root containing the sketch, else its directory."""
        key = sketch_key(sketch_path)
        roots = [root for root in self.workspace_roots if is_under(key, str(root))]
        if roots:
            return max(roots, key=lambda root: len(str(root)))
        return Path(key).parent

    def _read_text(self, sketch_path: Path) -> Optional[str]:
        key = sketch_key(sketch_path)
        if key in self.documents:
            return self.documents[key]
        try:
            return sketch_path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.error(f"Could not read sketch {sketch_path}: {e}")
            return None

    async def regenerate(self, sketch_path: Path) -> Optional[BoardProperties]:
        """Bring the configuration of one sketch up to date.

        Returns:
            The properties written, or None when the request was dropped or
            the derivation failed
        """
        sketch_path = Path(sketch_key(sketch_path))
        if self.registry.is_regenerating(sketch_path):
            logger.info(f"Skipping regeneration - already running for {sketch_path}")
            return None

        text = self._read_text(sketch_path)
        if text is None:
            return None

        sketch_dir = sketch_path.parent
        fqbn = read_board_id(sketch_dir, self.settings.default_fqbn)
        active_includes = active_include_fingerprint(text)
        self.registry.remember_includes(sketch_path, active_includes)

        # No await since the check above, deciding and locking happen in one turn
        decision = self.registry.decide(sketch_path, active_includes, fqbn)
        if decision.action is CacheAction.SKIP or not self.registry.try_begin(sketch_path):
            logger.info(f"Skipping regeneration - already running for {sketch_path}")
            return None

        try:
            if decision.action is CacheAction.HIT:
                logger.info(f"{decision.reason} - skipping compilation")
                properties = self.registry.lookup(sketch_path, active_includes, fqbn)
            else:
                logger.info(f"{decision.reason}, deriving properties for {sketch_path.name}")
                properties = await derive_board_properties(
                    self.runner,
                    fqbn,
                    sketch_path,
                    text,
                    self.settings,
                    search_root=self.workspace_root_for(sketch_path),
                )
                if properties is None:
                    logger.error(f"Failed to get board properties for {sketch_path}")
                    return None
                self.registry.store(sketch_path, active_includes, fqbn, properties)

            if properties is None:
                return None
            document = build_cpp_properties(fqbn, properties, self.settings)
            try:
                write_cpp_properties(sketch_dir, document)
            except (OSError, TimeoutError) as e:
                logger.error(f"Error writing IntelliSense configuration: {e}")
            return properties
        finally:
            self.registry.end(sketch_path)

    # Document events

    async def document_opened(self, sketch_path: Path, text: str) -> Optional[BoardProperties]:
        if not is_sketch(sketch_path):
            return None
        key = sketch_key(sketch_path)
        self.documents[key] = text
        self.registry.remember_includes(key, active_include_fingerprint(text))
        logger.info(f"Opened file, regenerating IntelliSense for {sketch_path}")
        return await self.regenerate(sketch_path)

    async def document_saved(self, sketch_path: Path, text: str) -> Optional[BoardProperties]:
        if not is_sketch(sketch_path):
            return None
        self.documents[sketch_key(sketch_path)] = text
        logger.info(f"Saved file, regenerating IntelliSense for {sketch_path}")
        return await self.regenerate(sketch_path)

    def document_changed(self, sketch_path: Path, text: str) -> bool:
        """Record an edit and schedule a debounced regeneration.

        Only edits that change the active local includes schedule work.

        Returns:
            True when a regeneration was scheduled
        """
        if not is_sketch(sketch_path):
            return False
        key = sketch_key(sketch_path)
        self.documents[key] = text
        fingerprint = active_include_fingerprint(text)
        if not self.registry.remember_includes(key, fingerprint):
            return False

        logger.info(f"Include changed in memory, regenerating IntelliSense for {sketch_path}")
        self.debouncer.schedule(key, lambda: self.regenerate(Path(key)))
        return True

    def sketch_written(self, sketch_path: Path) -> None:
        """Watcher callback for a sketch saved to disk, debounced per sketch."""
        key = sketch_key(sketch_path)
        try:
            self.documents[key] = Path(key).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning(f"Could not read saved sketch {key}: {e}")
            return
        self.debouncer.schedule(key, lambda: self.regenerate(Path(key)))

    def document_closed(self, sketch_path: Path) -> None:
        key = sketch_key(sketch_path)
        self.documents.pop(key, None)
        self.debouncer.cancel(key)

    # Board changes

    def open_sketches_under(self, workspace_root: Path) -> list[Path]:
        return sorted(
            Path(key) for key in self.documents if is_under(key, str(workspace_root))
        )

    async def board_changed(self, workspace_root: Path, board_id: str) -> list[Path]:
        """Apply a board change for a workspace.

        Drops every cache entry under the workspace and regenerates the open
        sketches there.

        Returns:
            Sketches that were regenerated
        """
        if not self.registry.update_board(workspace_root, board_id):
            return []
        logger.info(f"Board changed to {board_id}, regenerating IntelliSense")
        sketches = self.open_sketches_under(workspace_root)
        await asyncio.gather(*(self.regenerate(sketch) for sketch in sketches))
        return sketches

    def board_config_changed(self, workspace_root: Path, config_file: Path) -> None:
        """Watcher callback, debounced per workspace."""

        async def apply() -> None:
            try:
                with open(config_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Error reading {config_file}: {e}")
                return
            board = data.get("board") if isinstance(data, dict) else None
            if isinstance(board, str) and board:
                await self.board_changed(workspace_root, board)

        self.debouncer.schedule(("board", str(workspace_root)), apply)

    async def close(self) -> None:
        if self._debouncer is not None:
            self._debouncer.close()
            await self._debouncer.drain()
