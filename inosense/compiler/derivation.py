"""Board property derivation pipeline.

build trace -> compile line -> architecture profile -> define discovery

Each step must finish before the next one starts. The build and the two
macro dumps are the only points where the coroutine suspends.
"""

import logging
from pathlib import Path
from typing import Optional

from inosense.compiler.architecture import resolve_architecture, standard_include_dirs
from inosense.compiler.arduino_cli import verbose_build
from inosense.compiler.board_properties import BoardProperties
from inosense.compiler.define_discovery import discover_defines
from inosense.compiler.process_runner import ProcessRunner
from inosense.compiler.sketch_materializer import materialized_sketch
from inosense.compiler.trace_parser import parse_build_trace
from inosense.config import IntellisenseSettings
from inosense.fingerprint.includes import active_local_includes


logger = logging.getLogger(__name__)


async def derive_from_trace(
    runner: ProcessRunner,
    trace: str,
    settings: IntellisenseSettings,
) -> Optional[BoardProperties]:
    """Derive board properties from an existing verbose build trace."""
    invocation = parse_build_trace(trace)
    if invocation is None:
        return None

    profile = resolve_architecture(invocation.compiler_path)
    logger.info(f"Compiler {invocation.compiler_path} resolved to {profile.family}")

    include_paths = list(invocation.include_paths)
    include_paths.extend(
        standard_include_dirs(
            profile, invocation.compiler_path, settings.compiler_overrides
        )
    )

    defines = await discover_defines(
        runner,
        invocation.compiler_path,
        include_paths,
        profile,
        machine_flags=invocation.machine_flags,
        raw_defines=invocation.defines,
        timeout=settings.probe_timeout,
    )
    return BoardProperties(
        include_paths=tuple(include_paths),
        defines=tuple(defines),
        compiler_path=invocation.compiler_path,
    )


async def derive_board_properties(
    runner: ProcessRunner,
    fqbn: str,
    sketch_path: Path,
    sketch_text: str,
    settings: IntellisenseSettings,
    search_root: Optional[Path] = None,
) -> Optional[BoardProperties]:
    """Run a verbose build of the sketch and derive its board properties.

    Args:
        runner: Process runner for arduino-cli and the compiler
        fqbn: Board identifier
        sketch_path: Sketch file on disk
        sketch_text: Current buffer text of the sketch
        settings: Engine settings
        search_root: Directory searched for local headers, the workspace root

    Returns:
        BoardProperties, or None when no compile line could be obtained
    """
    headers = active_local_includes(sketch_text)
    if headers:
        logger.info(f"Active includes found: {', '.join(headers)}")

    try:
        with materialized_sketch(sketch_path, sketch_text, headers, search_root) as build_path:
            logger.info(f"Getting properties for board {fqbn}...")
            trace = await verbose_build(
                runner, settings.arduino_cli, fqbn, build_path, settings.build_timeout
            )
    except OSError as e:
        logger.error(f"Could not create temporary sketch for {sketch_path}: {e}")
        return None

    if trace is None:
        return None
    return await derive_from_trace(runner, trace, settings)
