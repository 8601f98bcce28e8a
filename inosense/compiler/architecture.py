"""Toolchain family resolution for Arduino compilers.

Every Arduino core ships a GCC cross compiler. The family of that compiler
decides where its standard headers live, which headers are probed for
hardware defines and which IntelliSense mode the editor should use.

The families are described as plain data in ARCHITECTURE_PROFILES. The
resolver and the define discovery read the profile fields instead of
branching per family.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence


logger = logging.getLogger(__name__)

AVR_DEFAULT_MCU = "atmega2560"
AVR_GCC_VERSION = "7.3.0"

# Generic headers used by the baseline define pass
BASELINE_PROBE_HEADERS = ("stdint.h", "stdlib.h", "string.h", "stdio.h")


@dataclass(frozen=True)
class ArchitectureProfile:
    """Static description of one toolchain family.

    Attributes:
        family: Short family name (avr, arm, esp32, esp8266, riscv)
        markers: Substrings identifying the family's g++ in a path or trace line
        triple: GCC target triple, also the name of lib/gcc/<triple>
        include_subdirs: Standard include directories relative to the
            toolchain root. May contain {triple} and {version} placeholders.
        probe_headers: Headers included when probing for hardware defines
        intellisense_mode: cpptools intelliSenseMode value
        fixed_gcc_version: GCC version used instead of directory discovery
        uses_mmcu: Whether the hardware probe passes -mmcu=<mcu>
    """

    family: str
    markers: tuple[str, ...]
    triple: str
    include_subdirs: tuple[str, ...]
    probe_headers: tuple[str, ...]
    intellisense_mode: str
    fixed_gcc_version: Optional[str] = None
    uses_mmcu: bool = False

    @property
    def compiler_marker(self) -> str:
        return self.markers[0]


AVR_PROFILE = ArchitectureProfile(
    family="avr",
    markers=("avr-g++",),
    triple="avr",
    include_subdirs=("avr/include", "lib/gcc/{triple}/{version}/include"),
    probe_headers=("avr/io.h",),
    intellisense_mode="gcc-x86",
    fixed_gcc_version=AVR_GCC_VERSION,
    uses_mmcu=True,
)

ARM_PROFILE = ArchitectureProfile(
    family="arm",
    markers=("arm-none-eabi-g++",),
    triple="arm-none-eabi",
    include_subdirs=(
        "{triple}/include",
        "{triple}/include/c++/{version}",
        "lib/gcc/{triple}/{version}/include",
    ),
    probe_headers=("Arduino.h",),
    intellisense_mode="gcc-arm",
)

ESP32_PROFILE = ArchitectureProfile(
    family="esp32",
    markers=("xtensa-esp32-elf-g++",),
    triple="xtensa-esp32-elf",
    include_subdirs=(
        "{triple}/include",
        "{triple}/include/c++/{version}",
        "lib/gcc/{triple}/{version}/include",
    ),
    probe_headers=("Arduino.h", "sdkconfig.h"),
    intellisense_mode="gcc-x86",
)

ESP8266_PROFILE = ArchitectureProfile(
    family="esp8266",
    markers=("xtensa-lx106-elf-g++",),
    triple="xtensa-lx106-elf",
    include_subdirs=(
        "{triple}/include",
        "{triple}/include/c++/{version}",
        "lib/gcc/{triple}/{version}/include",
    ),
    probe_headers=("Arduino.h",),
    intellisense_mode="gcc-x86",
)

RISCV_PROFILE = ArchitectureProfile(
    family="riscv",
    markers=("riscv32-esp-elf-g++",),
    triple="riscv32-esp-elf",
    include_subdirs=(
        "{triple}/include",
        "{triple}/include/c++/{version}",
        "lib/gcc/{triple}/{version}/include",
    ),
    probe_headers=("Arduino.h", "sdkconfig.h"),
    intellisense_mode="gcc-x86",
)

# Resolution order. AVR is last and also the fallback.
ARCHITECTURE_PROFILES: tuple[ArchitectureProfile, ...] = (
    ARM_PROFILE,
    ESP32_PROFILE,
    ESP8266_PROFILE,
    RISCV_PROFILE,
    AVR_PROFILE,
)

COMPILER_MARKERS: tuple[str, ...] = tuple(
    marker for profile in ARCHITECTURE_PROFILES for marker in profile.markers
)


def resolve_architecture(compiler_path: str) -> ArchitectureProfile:
    """Return the profile whose marker occurs in compiler_path.

    Never fails: paths matching no marker resolve to the AVR profile.
    """
    for profile in ARCHITECTURE_PROFILES:
        if any(marker in compiler_path for marker in profile.markers):
            return profile
    return AVR_PROFILE


def find_marker(text: str) -> Optional[str]:
    """Return the first compiler marker contained in text, if any."""
    for marker in COMPILER_MARKERS:
        if marker in text:
            return marker
    return None


def toolchain_root(compiler_path: str) -> Path:
    """Toolchain root for a compiler living in <root>/bin/<g++>."""
    return Path(os.path.dirname(compiler_path)).parent


def discover_gcc_version(
    profile: ArchitectureProfile, compiler_path: str
) -> Optional[str]:
    """Find the GCC version directory for a toolchain.

    AVR uses a fixed version. Other families list lib/gcc/<triple> and take
    the first entry, toolchains normally ship a single version.
    """
    if profile.fixed_gcc_version is not None:
        return profile.fixed_gcc_version

    gcc_dir = toolchain_root(compiler_path) / "lib" / "gcc" / profile.triple
    try:
        versions = sorted(entry.name for entry in gcc_dir.iterdir() if entry.is_dir())
    except OSError as e:
        logger.warning(f"Could not list GCC versions in {gcc_dir}: {e}")
        return None

    if not versions:
        logger.warning(f"No GCC version directory found in {gcc_dir}")
        return None
    return versions[0]


def standard_include_dirs(
    profile: ArchitectureProfile,
    compiler_path: str,
    compiler_overrides: Optional[Mapping[str, Sequence[str]]] = None,
) -> list[str]:
    """Compute the standard library include directories of a toolchain.

    Args:
        profile: Resolved architecture profile
        compiler_path: Path of the g++ executable from the build trace
        compiler_overrides: Optional {triple: [dirs]} map consulted when the
            GCC version directory cannot be discovered

    Returns:
        Include directories, in profile order
    """
    root = toolchain_root(compiler_path)
    version = discover_gcc_version(profile, compiler_path)

    dirs: list[str] = []
    for template in profile.include_subdirs:
        if "{version}" in template and version is None:
            continue
        relative = template.format(triple=profile.triple, version=version)
        dirs.append(os.path.normpath(str(root / relative)))

    if version is None and compiler_overrides:
        override_dirs = compiler_overrides.get(profile.triple)
        if override_dirs:
            logger.info(
                f"Using {len(override_dirs)} override include directories for {profile.triple}"
            )
            dirs.extend(override_dirs)

    return dirs


def probe_header_text(headers: Sequence[str]) -> str:
    """Synthetic translation unit including each header."""
    return "".join(f"#include <{header}>\n" for header in headers)


def mcu_from_flags(machine_flags: Sequence[str]) -> str:
    """Extract the MCU from an -mmcu= flag, defaulting to atmega2560."""
    for flag in machine_flags:
        if flag.startswith("-mmcu="):
            mcu = flag.split("=", 1)[1]
            if mcu:
                return mcu
    return AVR_DEFAULT_MCU


def hardware_probe_flags(
    profile: ArchitectureProfile, machine_flags: Sequence[str]
) -> list[str]:
    """Architecture flags passed to the hardware define pass."""
    if profile.uses_mmcu:
        return [f"-mmcu={mcu_from_flags(machine_flags)}"]
    return [flag for flag in machine_flags if not flag.startswith("-mmcu=")]
