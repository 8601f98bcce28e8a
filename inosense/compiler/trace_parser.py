"""Verbose build trace parsing.

`arduino-cli compile --verbose` prints every compiler invocation it runs. The
last compile line for the sketch carries the include paths and defines the
editor needs. Link lines use the same g++ binary but carry no include flags,
so a line only qualifies when it has at least one include flag.

ESP32 cores keep most of their include directories in a response file:

    xtensa-esp32-elf-g++ ... -iprefix /sdk/include/ @/sdk/flags/includes ...

The response file holds -iwithprefixbefore flags relative to the -iprefix
base, those are read and resolved here as well.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from inosense.compiler.architecture import find_marker


logger = logging.getLogger(__name__)

INCLUDE_FLAG = "-I"
DEFINE_FLAG = "-D"
PREFIX_FLAG = "-iprefix"
WITH_PREFIX_FLAGS = ("-iwithprefixbefore", "-iwithprefix")
RESPONSE_FILE_MARKER = "@"


@dataclass
class CompileInvocation:
    """Decomposed compile command from a build trace."""

    compiler_path: str
    include_paths: list[str] = field(default_factory=list)
    defines: list[str] = field(default_factory=list)
    machine_flags: list[str] = field(default_factory=list)
    include_prefix: Optional[str] = None


def _strip_quotes(token: str) -> str:
    if len(token) >= 2 and token[0] == token[-1] and token[0] in "\"'":
        return token[1:-1]
    return token


def _is_include_list(token: str) -> bool:
    """Whether token is an @file reference to an include list."""
    if not token.startswith(RESPONSE_FILE_MARKER) or len(token) == 1:
        return False
    name = os.path.basename(token[1:])
    return name.endswith(".txt") or name == "includes"


def _has_include_flag(tokens: list[str]) -> bool:
    for token in tokens:
        if token.startswith(INCLUDE_FLAG) or token.startswith(PREFIX_FLAG):
            return True
        if _is_include_list(token):
            return True
    return False


def find_compile_line(trace: str) -> Optional[str]:
    """Return the last compile line of a known toolchain in the trace.

    Args:
        trace: Full standard output of a verbose build

    Returns:
        The last qualifying line, or None when the trace has no compile line
    """
    candidates: list[str] = []
    for line in trace.splitlines():
        if find_marker(line) is None:
            continue
        tokens = [_strip_quotes(token) for token in line.split()]
        if _has_include_flag(tokens):
            candidates.append(line)

    if not candidates:
        return None
    return candidates[-1]


def resolve_prefixed(prefix: Optional[str], path: str) -> str:
    """Resolve a relative include entry against the -iprefix base.

    GCC concatenates the prefix and the entry, which is mirrored here.
    """
    if prefix is None:
        return path
    return os.path.normpath(prefix.rstrip("/\\") + "/" + path.lstrip("/\\"))


def read_include_list(list_file: Path, prefix: Optional[str]) -> list[str]:
    """Read include directories from an @includes response file.

    Unreadable files are logged and yield no directories.
    """
    try:
        content = list_file.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.warning(f"Could not read include list {list_file}: {e}")
        return []

    include_paths: list[str] = []
    # Flags may be joined with their directory or followed by it
    pending: Optional[str] = None
    for raw in content.split():
        token = _strip_quotes(raw)
        if pending is not None:
            if pending == INCLUDE_FLAG and os.path.isabs(token):
                include_paths.append(token)
            else:
                include_paths.append(resolve_prefixed(prefix, token))
            pending = None
            continue
        if token in WITH_PREFIX_FLAGS or token == INCLUDE_FLAG:
            pending = token
            continue
        if token.startswith(INCLUDE_FLAG):
            path = token[len(INCLUDE_FLAG) :]
            if not os.path.isabs(path):
                path = resolve_prefixed(prefix, path)
            include_paths.append(path)
            continue
        for flag in WITH_PREFIX_FLAGS:
            if token.startswith(flag):
                include_paths.append(resolve_prefixed(prefix, token[len(flag) :]))
                break

    logger.debug(f"Read {len(include_paths)} include paths from {list_file}")
    return include_paths


def parse_compile_line(line: str) -> CompileInvocation:
    """Decompose a single compile line into a CompileInvocation."""
    tokens = [_strip_quotes(token) for token in line.split()]

    marker = find_marker(line)
    compiler_path = next(
        (token for token in tokens if marker is not None and marker in token), ""
    )
    invocation = CompileInvocation(compiler_path=compiler_path)

    # Flag whose value is the next token, as in "-I dir" or "-iprefix base"
    pending: Optional[str] = None
    for token in tokens:
        if pending == PREFIX_FLAG:
            invocation.include_prefix = token
        elif pending == INCLUDE_FLAG:
            invocation.include_paths.append(token)
        elif pending == DEFINE_FLAG:
            invocation.defines.append(token)
        elif token in (PREFIX_FLAG, INCLUDE_FLAG, DEFINE_FLAG):
            pending = token
            continue
        elif token.startswith(PREFIX_FLAG):
            invocation.include_prefix = token[len(PREFIX_FLAG) :]
        elif token.startswith(INCLUDE_FLAG):
            invocation.include_paths.append(token[len(INCLUDE_FLAG) :])
        elif token.startswith(DEFINE_FLAG):
            invocation.defines.append(token[len(DEFINE_FLAG) :])
        elif token.startswith("-m") and len(token) > 2:
            invocation.machine_flags.append(token)
        pending = None

    # Response files can appear before -iprefix, read them after the scan
    for token in tokens:
        if _is_include_list(token):
            invocation.include_paths.extend(
                read_include_list(Path(token[1:]), invocation.include_prefix)
            )

    return invocation


def parse_build_trace(trace: str) -> Optional[CompileInvocation]:
    """Extract the compile invocation from a verbose build trace.

    Returns:
        CompileInvocation, or None when no compile line was found. None means
        the derivation failed, not that the sketch has no properties.
    """
    line = find_compile_line(trace)
    if line is None:
        logger.error("No compiler command found in build output")
        return None
    logger.debug(f"Compile line: {line}")
    return parse_compile_line(line)
