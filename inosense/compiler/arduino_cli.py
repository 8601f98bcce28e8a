"""arduino-cli build invocation."""

import logging
from pathlib import Path
from typing import Optional

from inosense.compiler.process_runner import ProcessRunner


logger = logging.getLogger(__name__)


def compile_args(fqbn: str, sketch_path: Path) -> list[str]:
    return ["compile", "--fqbn", fqbn, str(sketch_path), "--verbose"]


async def verbose_build(
    runner: ProcessRunner,
    arduino_cli: str,
    fqbn: str,
    sketch_path: Path,
    timeout: Optional[float] = None,
) -> Optional[str]:
    """Build a sketch verbosely and return the build trace.

    A failing build still prints the compile lines it ran, so the exit code
    is only logged. None is returned when arduino-cli could not be run.
    """
    try:
        result = await runner.run(
            arduino_cli, compile_args(fqbn, sketch_path), timeout=timeout
        )
    except OSError as e:
        logger.error(f"Could not run {arduino_cli}: {e}")
        return None
    except TimeoutError as e:
        logger.error(f"Build of {sketch_path} for {fqbn} timed out: {e}")
        return None

    if result.stderr:
        logger.info(f"arduino-cli error: {result.stderr.strip()}")
    if not result.ok:
        logger.debug(f"arduino-cli exited with code {result.returncode}")
    return result.stdout
