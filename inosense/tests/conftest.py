"""Pytest configuration for the inosense test suite."""

from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

import pytest
from _pytest.config import Config
from _pytest.config.argparsing import Parser
from _pytest.nodes import Item

from inosense.compiler.process_runner import ProcessResult


def pytest_addoption(parser: Parser) -> None:
    """Add custom command line options."""
    parser.addoption(
        "--runslow",
        action="store_true",
        default=False,
        help="run slow tests (e.g., tests invoking arduino-cli)",
    )


def pytest_configure(config: Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow to run")


def pytest_collection_modifyitems(config: Config, items: list[Item]) -> None:
    """Skip slow tests by default unless --runslow is given."""
    if config.getoption("--runslow"):
        return

    skip_slow = pytest.mark.skip(reason="need --runslow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


@dataclass
class RecordedCall:
    executable: str
    args: list[str]
    stdin_text: Optional[str]


Responder = Callable[[str, list[str], Optional[str]], ProcessResult]


@dataclass
class ScriptedRunner:
    """ProcessRunner returning canned output instead of spawning processes.

    The responder decides the result of each call. Calls are recorded so
    tests can assert on what would have been run.
    """

    responder: Responder
    calls: list[RecordedCall] = field(default_factory=list)
    gate: Optional[object] = None

    async def run(
        self,
        executable: str,
        args: Sequence[str],
        stdin_text: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        self.calls.append(RecordedCall(executable, list(args), stdin_text))
        if self.gate is not None:
            await self.gate.wait()  # type: ignore[attr-defined]
        return self.responder(executable, list(args), stdin_text)


AVR_GPP = "/opt/arduino15/packages/arduino/tools/avr-gcc/7.3.0-atmel3.6.1-arduino7/bin/avr-g++"

AVR_TRACE = "\n".join(
    [
        "FQBN: arduino:avr:uno",
        "Detecting libraries used...",
        f'"{AVR_GPP}" -c -g -Os -w -std=gnu++11 -fpermissive -fno-exceptions '
        "-ffunction-sections -fdata-sections -fno-threadsafe-statics -Wno-error=narrowing "
        "-flto -w -x c++ -E -CC -mmcu=atmega328p -DF_CPU=16000000L -DARDUINO=10607 "
        "-DARDUINO_AVR_UNO -DARDUINO_ARCH_AVR "
        '"-I/opt/arduino15/packages/arduino/hardware/avr/1.8.6/cores/arduino" '
        '"-I/opt/arduino15/packages/arduino/hardware/avr/1.8.6/variants/standard" '
        "/tmp/arduino/sketches/ABC/sketch/Blink.ino.cpp -o /dev/null",
        f'"{AVR_GPP}" -c -g -Os -w -std=gnu++11 -mmcu=atmega328p -DF_CPU=16000000L '
        "-DARDUINO=10607 -DARDUINO_AVR_UNO -DARDUINO_ARCH_AVR "
        '"-I/opt/arduino15/packages/arduino/hardware/avr/1.8.6/cores/arduino" '
        '"-I/opt/arduino15/packages/arduino/hardware/avr/1.8.6/variants/standard" '
        "/tmp/arduino/sketches/ABC/sketch/Blink.ino.cpp "
        "-o /tmp/arduino/sketches/ABC/sketch/Blink.ino.cpp.o",
        f'"{AVR_GPP[:-3]}gcc" -w -Os -g -flto -fuse-linker-plugin -Wl,--gc-sections '
        "-mmcu=atmega328p -o /tmp/arduino/sketches/ABC/Blink.ino.elf",
        "Sketch uses 924 bytes (2%) of program storage space.",
    ]
)

BASELINE_DUMP = "\n".join(
    [
        "#define __cplusplus 201103L",
        "#define __GNUC__ 7",
        "#define F_CPU 16000000L",
        "#define INT8_MAX 0x7f",
        "#define __STDC_HOSTED__ 1",
    ]
)

HARDWARE_DUMP = "\n".join(
    [
        "#define __cplusplus 201103L",
        "#define __GNUC__ 7",
        "#define F_CPU 16000000L",
        "#define INT8_MAX 0x7f",
        "#define __AVR_ATmega328P__ 1",
        "#define PORTB _SFR_IO8(0x05)",
        "#define _BV(bit) (1 << (bit))",
        "#define SREG _SFR_IO8(0x3F)",
    ]
)


def avr_responder(
    trace: str = AVR_TRACE,
    baseline: str = BASELINE_DUMP,
    hardware: str = HARDWARE_DUMP,
) -> Responder:
    """Responder emulating arduino-cli and avr-g++ in macro-dump mode."""

    def respond(executable: str, args: list[str], stdin_text: Optional[str]) -> ProcessResult:
        if args and args[0] == "compile":
            return ProcessResult(returncode=0, stdout=trace)
        if "-dM" in args:
            if stdin_text is not None and "stdint.h" in stdin_text:
                return ProcessResult(returncode=0, stdout=baseline)
            return ProcessResult(returncode=0, stdout=hardware)
        return ProcessResult(returncode=1, stdout="", stderr="unexpected call")

    return respond


@pytest.fixture
def scripted_runner() -> Callable[..., ScriptedRunner]:
    """Factory for ScriptedRunner instances."""

    def factory(responder: Optional[Responder] = None) -> ScriptedRunner:
        return ScriptedRunner(responder or avr_responder())

    return factory


@pytest.fixture
def avr_trace() -> str:
    return AVR_TRACE


@pytest.fixture
def make_avr_responder() -> Callable[..., Responder]:
    return avr_responder
