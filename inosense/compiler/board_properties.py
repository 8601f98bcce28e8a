"""Board properties produced by a successful derivation."""

from dataclasses import dataclass


@dataclass(frozen=True)
class BoardProperties:
    """Include paths, defines and compiler of one sketch/board pair.

    Defines have set semantics, their order only keeps the written
    configuration stable between runs.
    """

    include_paths: tuple[str, ...]
    defines: tuple[str, ...]
    compiler_path: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "include_paths", tuple(self.include_paths))
        object.__setattr__(self, "defines", tuple(dict.fromkeys(self.defines)))
