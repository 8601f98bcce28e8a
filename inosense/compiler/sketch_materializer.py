"""Temporary sketch copies with their local headers.

When the sketch buffer includes local headers, the build has to see the
current (possibly unsaved) buffer and those headers. The buffer is written to
<sketch_dir>/.vscode/<name>/<name>.ino (arduino-cli wants the folder and
sketch name to match) and every active local header found in the workspace is
copied next to it, keeping the directory part of the include.
"""

import logging
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence

from inosense.config import SKETCH_EXTENSION, VSCODE_DIR


logger = logging.getLogger(__name__)

EXCLUDED_DIRS = frozenset({"node_modules", ".git", VSCODE_DIR})


def find_header(header: str, search_root: Path, sketch_dir: Path) -> Optional[Path]:
    """Locate a local header.

    The workspace is searched recursively first (skipping node_modules, .git
    and .vscode), the path relative to the sketch directory is the fallback.
    """
    pattern = Path(header)
    if search_root.is_dir() and not pattern.is_absolute() and ".." not in pattern.parts:
        matches = sorted(
            match
            for match in search_root.rglob(header)
            if match.is_file()
            and not EXCLUDED_DIRS.intersection(match.relative_to(search_root).parts)
        )
        if matches:
            return matches[0]

    direct = sketch_dir / header
    if direct.is_file():
        return direct
    return None


def copy_local_headers(
    headers: Sequence[str], search_root: Path, sketch_dir: Path, target_dir: Path
) -> list[Path]:
    """Copy each found header into target_dir.

    Headers that cannot be found are assumed to be library headers and are
    skipped.

    Returns:
        Paths of the copied headers
    """
    copied: list[Path] = []
    for header in headers:
        logger.debug(f"Searching for header: {header}")
        source = find_header(header, search_root, sketch_dir)
        if source is None:
            logger.info(f"{header} not found in workspace, assuming it's a library include")
            continue

        # Keep "sub/dir.h" structure, plain names land next to the sketch
        relative = Path(header)
        if relative.is_absolute() or ".." in relative.parts:
            relative = Path(relative.name)
        target = target_dir / relative
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
        except OSError as e:
            logger.warning(f"Could not copy {source} to {target}: {e}")
            continue
        logger.info(f"Copied local header {source} to {target}")
        copied.append(target)
    return copied


def remove_tree(path: Path) -> None:
    """Remove a temporary directory, logging instead of raising."""
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to clean up {path}: {e}")


@contextmanager
def materialized_sketch(
    sketch_path: Path,
    sketch_text: str,
    headers: Sequence[str],
    search_root: Optional[Path] = None,
) -> Iterator[Path]:
    """Yield the sketch path the build should use.

    Without active local headers the original sketch is built in place.
    Otherwise a temporary sketch is created and removed on exit.
    """
    if not headers:
        yield sketch_path
        return

    sketch_dir = sketch_path.parent
    name = sketch_path.stem
    temp_dir = sketch_dir / VSCODE_DIR / name
    temp_dir.mkdir(parents=True, exist_ok=True)
    try:
        temp_sketch = temp_dir / f"{name}{SKETCH_EXTENSION}"
        temp_sketch.write_text(sketch_text, encoding="utf-8")
        copy_local_headers(headers, search_root or sketch_dir, sketch_dir, temp_dir)
        logger.info(f"Created temporary sketch at {temp_sketch}")
        yield temp_sketch
    finally:
        logger.debug(f"Cleaning up temp directory: {temp_dir}")
        remove_tree(temp_dir)
