"""Active include detection for sketch sources.

The fingerprint is the ordered list of local headers (#include "...") that a
real compilation would process, joined with newlines. It only serves as a
change detection key: recomputing it on every edit is cheap, re-deriving
board properties is not.
"""

import re


_LOCAL_INCLUDE_RE = re.compile(r'^\s*#\s*include\s*"([^"]+)"')


def _literal_end(line: str, start: int) -> int:
    """Index just past the string or char literal opening at start."""
    quote = line[start]
    i = start + 1
    while i < len(line):
        if line[i] == "\\":
            i += 2
            continue
        if line[i] == quote:
            return i + 1
        i += 1
    return len(line)


def _uncommented_lines(text: str) -> list[str]:
    """Source lines with block comments removed.

    Lines commented with // keep their marker, the include regex is anchored
    at the start of the line so they never match. Comment markers inside
    string and char literals are plain text.
    """
    lines: list[str] = []
    in_block = False
    for line in text.splitlines():
        visible: list[str] = []
        i = 0
        while i < len(line):
            if in_block:
                end = line.find("*/", i)
                if end < 0:
                    break
                i = end + 2
                in_block = False
            elif line[i] in "\"'":
                end = _literal_end(line, i)
                visible.append(line[i:end])
                i = end
            elif line.startswith("//", i):
                visible.append(line[i:])
                break
            elif line.startswith("/*", i):
                in_block = True
                i += 2
            else:
                visible.append(line[i])
                i += 1
        lines.append("".join(visible))
    return lines


def active_local_includes(text: str) -> list[str]:
    """Header names of the uncommented #include "..." directives, in order."""
    headers: list[str] = []
    for line in _uncommented_lines(text):
        match = _LOCAL_INCLUDE_RE.match(line)
        if match:
            headers.append(match.group(1))
    return headers


def active_include_fingerprint(text: str) -> str:
    """Fingerprint of the active local includes of a sketch buffer."""
    return "\n".join(active_local_includes(text))
