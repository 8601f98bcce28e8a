"""Board configuration watcher using watchdog

Watches workspace roots for arduino.json changes. watchdog delivers events on
its observer thread, they are handed to the asyncio loop with
call_soon_threadsafe so all engine state is only touched from the loop.
"""

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from inosense.config import BOARD_CONFIG_FILE, SKETCH_EXTENSION, VSCODE_DIR


logger = logging.getLogger(__name__)


class BoardConfigEventHandler(FileSystemEventHandler):
    def __init__(
        self,
        workspace_root: Path,
        loop: asyncio.AbstractEventLoop,
        on_change: Callable[[Path, Path], None],
    ) -> None:
        super().__init__()
        self.workspace_root = workspace_root
        self.loop = loop
        self.on_change = on_change
        self.file_hashes: Dict[str, str] = {}

    def _get_file_hash(self, filepath: Path) -> str:
        try:
            with open(filepath, "rb") as f:
                return hashlib.md5(f.read()).hexdigest()
        except OSError:
            return ""

    def _handle(self, src_path: "str | bytes") -> None:
        if isinstance(src_path, bytes):
            path = Path(src_path.decode("utf-8"))
        else:
            path = Path(src_path)
        if path.name != BOARD_CONFIG_FILE:
            return

        # Editors often emit several events per save
        new_hash = self._get_file_hash(path)
        if not new_hash or new_hash == self.file_hashes.get(str(path)):
            return
        self.file_hashes[str(path)] = new_hash
        self.loop.call_soon_threadsafe(self.on_change, self.workspace_root, path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle(event.src_path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle(event.dest_path)


class SketchSaveEventHandler(FileSystemEventHandler):
    """Reports sketch files written to disk.

    Temporary sketches under .vscode are ignored, they are written by the
    derivation itself.
    """

    def __init__(
        self, loop: asyncio.AbstractEventLoop, on_saved: Callable[[Path], None]
    ) -> None:
        super().__init__()
        self.loop = loop
        self.on_saved = on_saved

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        src = event.src_path
        path = Path(src.decode("utf-8") if isinstance(src, bytes) else src)
        if path.suffix != SKETCH_EXTENSION or VSCODE_DIR in path.parts:
            return
        self.loop.call_soon_threadsafe(self.on_saved, path)


class BoardConfigWatcher:
    """Watches arduino.json files (and optionally sketches) under workspace roots."""

    def __init__(
        self,
        workspace_roots: Iterable[Path],
        on_change: Callable[[Path, Path], None],
        on_sketch_saved: Optional[Callable[[Path], None]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        """
        Args:
            workspace_roots: Directories to watch recursively
            on_change: Called on the loop thread with (workspace_root, config_file)
            on_sketch_saved: Called on the loop thread with the saved sketch path
            loop: Loop receiving the callbacks, the running loop by default
        """
        self.workspace_roots = [Path(root) for root in workspace_roots]
        self.on_change = on_change
        self.on_sketch_saved = on_sketch_saved
        self.loop = loop
        self.observer: Optional[BaseObserver] = None

    def start(self) -> None:
        loop = self.loop or asyncio.get_running_loop()
        self.observer = Observer()
        for root in self.workspace_roots:
            handler = BoardConfigEventHandler(root, loop, self.on_change)
            self.observer.schedule(handler, str(root), recursive=True)
            if self.on_sketch_saved is not None:
                self.observer.schedule(
                    SketchSaveEventHandler(loop, self.on_sketch_saved),
                    str(root),
                    recursive=True,
                )
            logger.info(f"Watching {root} for {BOARD_CONFIG_FILE} changes")
        self.observer.start()

    def stop(self) -> None:
        if self.observer:
            self.observer.stop()
            self.observer.join()
            self.observer = None
