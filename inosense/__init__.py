"""
inosense - Arduino IntelliSense configuration generator

Derives include paths, defines and the compiler path for an Arduino sketch
from a verbose arduino-cli build and writes them to c_cpp_properties.json.
"""

from inosense.compiler.board_properties import BoardProperties
from inosense.config import IntellisenseSettings, load_settings
from inosense.engine import IntellisenseEngine
from inosense.fingerprint.core import DerivationRegistry


__version__ = "0.3.0"

__all__ = [
    "BoardProperties",
    "DerivationRegistry",
    "IntellisenseEngine",
    "IntellisenseSettings",
    "load_settings",
]
