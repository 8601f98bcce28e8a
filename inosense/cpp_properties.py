"""c_cpp_properties.json generation.

Two editor windows on the same sketch can regenerate at the same time, so
the write happens under an inter-process lock and goes through a temporary
file that replaces the document in one step.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

import fasteners

from inosense.compiler.architecture import resolve_architecture
from inosense.compiler.board_properties import BoardProperties
from inosense.config import VSCODE_DIR, IntellisenseSettings


logger = logging.getLogger(__name__)

CPP_PROPERTIES_FILE = "c_cpp_properties.json"
CPP_PROPERTIES_VERSION = 4
WORKSPACE_WILDCARD = "${workspaceFolder}/**"
LOCK_TIMEOUT = 30.0


def build_cpp_properties(
    fqbn: str, properties: BoardProperties, settings: IntellisenseSettings
) -> dict[str, Any]:
    """Configuration document for one board."""
    profile = resolve_architecture(properties.compiler_path)
    return {
        "configurations": [
            {
                "name": fqbn,
                "includePath": [WORKSPACE_WILDCARD, *properties.include_paths],
                "defines": list(properties.defines),
                "compilerPath": properties.compiler_path,
                "cStandard": settings.c_standard,
                "cppStandard": settings.cpp_standard,
                "intelliSenseMode": profile.intellisense_mode,
            }
        ],
        "version": CPP_PROPERTIES_VERSION,
    }


def cpp_properties_path(sketch_dir: Path) -> Path:
    return sketch_dir / VSCODE_DIR / CPP_PROPERTIES_FILE


def write_cpp_properties(sketch_dir: Path, document: dict[str, Any]) -> Path:
    """Write the configuration document next to the sketch.

    Raises:
        TimeoutError: If the write lock cannot be acquired
        OSError: If the document cannot be written
    """
    target = cpp_properties_path(sketch_dir)
    target.parent.mkdir(parents=True, exist_ok=True)

    lock = fasteners.InterProcessLock(str(target.parent / f".{CPP_PROPERTIES_FILE}.lock"))
    if not lock.acquire(blocking=True, timeout=LOCK_TIMEOUT):
        raise TimeoutError(f"Failed to acquire write lock for {target}")
    try:
        temp = target.with_suffix(".json.tmp")
        with open(temp, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=4)
        os.replace(temp, target)
    finally:
        lock.release()

    logger.info(f"Generated IntelliSense configuration at {target}")
    return target
