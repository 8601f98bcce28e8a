"""User settings and per-sketch board configuration.

Settings come from an optional TOML file:

    arduino_cli = "arduino-cli"
    default_fqbn = "arduino:avr:uno"
    debounce_seconds = 1.0
    build_timeout = 300.0
    probe_timeout = 60.0

    [compiler_overrides]
    "arm-none-eabi" = ["/opt/gcc-arm/arm-none-eabi/include"]

The board of a sketch is read from <sketch_dir>/.vscode/arduino.json, the
file maintained by the Arduino editor extensions.
"""

import json
import logging
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

from typeguard import TypeCheckError, check_type, typechecked

from inosense.errors import SettingsError


logger = logging.getLogger(__name__)

DEFAULT_FQBN = "arduino:avr:uno"
SKETCH_EXTENSION = ".ino"
VSCODE_DIR = ".vscode"
BOARD_CONFIG_FILE = "arduino.json"
SETTINGS_FILE = "inosense.toml"


@typechecked
@dataclass
class IntellisenseSettings:
    """Settings of the IntelliSense engine."""

    arduino_cli: str = "arduino-cli"
    default_fqbn: str = DEFAULT_FQBN
    debounce_seconds: float = 1.0
    build_timeout: Optional[float] = 300.0
    probe_timeout: Optional[float] = 60.0
    c_standard: str = "c11"
    cpp_standard: str = "c++17"
    compiler_overrides: dict[str, list[str]] = field(default_factory=dict)


def load_settings(path: Optional[Path] = None) -> IntellisenseSettings:
    """Load settings from a TOML file.

    Args:
        path: Settings file. When None, ./inosense.toml is used if present.

    Returns:
        IntellisenseSettings, defaults for keys that are not set

    Raises:
        SettingsError: If the file cannot be read or holds invalid values
    """
    if path is None:
        path = Path(SETTINGS_FILE)
        if not path.exists():
            return IntellisenseSettings()

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise SettingsError(f"Could not load settings from {path}: {e}") from e

    annotations = {f.name: f.type for f in fields(IntellisenseSettings)}
    unknown = sorted(set(data) - set(annotations))
    if unknown:
        raise SettingsError(f"Unknown settings in {path}: {', '.join(unknown)}")

    values: dict[str, Any] = dict(data)
    for key in ("debounce_seconds", "build_timeout", "probe_timeout"):
        if isinstance(values.get(key), int) and not isinstance(values[key], bool):
            values[key] = float(values[key])

    for key, value in values.items():
        try:
            check_type(value, annotations[key])
        except TypeCheckError as e:
            raise SettingsError(f"Invalid value for {key} in {path}: {e}") from e

    return IntellisenseSettings(**values)


def board_config_path(sketch_dir: Path) -> Path:
    return sketch_dir / VSCODE_DIR / BOARD_CONFIG_FILE


def read_board_id(sketch_dir: Path, default: str = DEFAULT_FQBN) -> str:
    """Board identifier (FQBN) configured for a sketch directory.

    A missing or unreadable arduino.json falls back to the default board.
    """
    config_file = board_config_path(sketch_dir)
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read {BOARD_CONFIG_FILE}, using default board: {e}")
        return default

    board = data.get("board") if isinstance(data, dict) else None
    if not isinstance(board, str) or not board:
        logger.warning(f"No board set in {config_file}, using default board {default}")
        return default
    return board


def is_sketch(path: Path) -> bool:
    return path.suffix == SKETCH_EXTENSION
