"""Hardware define discovery.

The compiler is run twice in macro-dump mode (-dM -E) on a synthetic
translation unit read from stdin:

1. Baseline: generic libc headers only, no architecture flags. Every macro
   it prints is compiler or libc noise (__GNUC__, __cplusplus, ...).
2. Hardware: architecture flags, every derived include path and the
   profile's probe headers. Macros not seen in the baseline are the board
   and chip specific ones.

The baseline must be complete before the hardware output is filtered, so the
passes run strictly one after the other.
"""

import logging
import re
from typing import Iterable, Optional, Sequence

from inosense.compiler.architecture import (
    BASELINE_PROBE_HEADERS,
    ArchitectureProfile,
    hardware_probe_flags,
    probe_header_text,
)
from inosense.compiler.process_runner import ProcessRunner


logger = logging.getLogger(__name__)

MACRO_DUMP_ARGS = ("-dM", "-E", "-x", "c++")

# Object-like macros only, "#define FOO(x) ..." does not match
_DEFINE_RE = re.compile(r"^#define\s+(\w+)(?:\s+|$)")


def parse_macro_names(output: str) -> list[str]:
    """Names of the object-like macros in -dM output, in output order."""
    names: list[str] = []
    for line in output.splitlines():
        match = _DEFINE_RE.match(line)
        if match:
            names.append(match.group(1))
    return names


def hardware_only_macros(
    baseline_names: Iterable[str], hardware_names: Iterable[str]
) -> list[str]:
    """Hardware macro names absent from the baseline, without duplicates."""
    excluded = set(baseline_names)
    seen: set[str] = set()
    result: list[str] = []
    for name in hardware_names:
        if name in excluded or name in seen:
            continue
        seen.add(name)
        result.append(name)
    return result


def merge_defines(raw_defines: Iterable[str], macro_names: Iterable[str]) -> list[str]:
    """Raw -D flags followed by discovered macro names, de-duplicated."""
    return list(dict.fromkeys([*raw_defines, *macro_names]))


async def _dump_macros(
    runner: ProcessRunner,
    compiler_path: str,
    flags: Sequence[str],
    source: str,
    label: str,
    timeout: Optional[float],
) -> list[str]:
    """Run one macro-dump pass. Failures contribute no macros."""
    args = [*MACRO_DUMP_ARGS, *flags, "-"]
    try:
        result = await runner.run(compiler_path, args, stdin_text=source, timeout=timeout)
    except (OSError, TimeoutError) as e:
        logger.warning(f"{label} define pass failed to run {compiler_path}: {e}")
        return []

    if not result.ok:
        logger.debug(
            f"{label} define pass exited with {result.returncode}: {result.stderr.strip()}"
        )
    return parse_macro_names(result.stdout)


async def discover_defines(
    runner: ProcessRunner,
    compiler_path: str,
    include_paths: Sequence[str],
    profile: ArchitectureProfile,
    machine_flags: Sequence[str] = (),
    raw_defines: Sequence[str] = (),
    timeout: Optional[float] = None,
) -> list[str]:
    """Compute the define list exposed to the editor.

    Args:
        runner: Process runner used for both passes
        compiler_path: g++ from the build trace
        include_paths: Every derived include path, standard dirs included
        profile: Resolved architecture profile
        machine_flags: -m flags from the compile line
        raw_defines: -D values from the compile line
        timeout: Per pass timeout in seconds

    Returns:
        raw_defines followed by hardware-only macro names, no duplicates
    """
    baseline = await _dump_macros(
        runner,
        compiler_path,
        (),
        probe_header_text(BASELINE_PROBE_HEADERS),
        "Baseline",
        timeout,
    )
    if not baseline:
        logger.warning(
            "Baseline define pass produced no macros, the toolchain probe may be broken"
        )
    else:
        logger.info(f"Found {len(set(baseline))} standard library defines to exclude")

    hardware_flags = [
        *hardware_probe_flags(profile, machine_flags),
        *(f"-I{path}" for path in include_paths),
    ]
    hardware = await _dump_macros(
        runner,
        compiler_path,
        hardware_flags,
        probe_header_text(profile.probe_headers),
        "Hardware",
        timeout,
    )

    board_macros = hardware_only_macros(baseline, hardware)
    logger.info(f"Added {len(board_macros)} hardware-specific defines after filtering")
    return merge_defines(raw_defines, board_macros)
