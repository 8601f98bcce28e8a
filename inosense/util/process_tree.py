"""Process tree termination for hung toolchain invocations."""

import logging

import psutil


logger = logging.getLogger(__name__)


def _describe(proc: psutil.Process) -> str:
    try:
        return f"{proc.name()} (pid {proc.pid})"
    except psutil.Error:
        return f"pid {proc.pid}"


def kill_process_tree(pid: int, timeout: float = 3.0) -> list[str]:
    """Kill a hung build or macro dump together with its children.

    arduino-cli runs the compiler as a child, killing only arduino-cli would
    leave the compiler running. Children get a terminate first, survivors
    are killed after timeout, then the root process.

    Returns:
        Descriptions of the processes that were signalled
    """
    try:
        root = psutil.Process(pid)
        children = root.children(recursive=True)
    except psutil.NoSuchProcess:
        logger.debug(f"Process {pid} already exited")
        return []

    signalled: list[str] = []
    for child in children:
        description = _describe(child)
        try:
            child.terminate()
            signalled.append(description)
        except psutil.NoSuchProcess:
            pass

    _, alive = psutil.wait_procs(children, timeout=timeout)
    for child in alive:
        logger.warning(f"Toolchain process {_describe(child)} ignored terminate, killing")
        try:
            child.kill()
        except psutil.NoSuchProcess:
            pass

    description = _describe(root)
    try:
        root.terminate()
        root.wait(timeout)
        signalled.append(description)
    except psutil.TimeoutExpired:
        try:
            root.kill()
            signalled.append(description)
        except psutil.NoSuchProcess:
            pass
    except psutil.NoSuchProcess:
        pass

    if signalled:
        logger.warning(f"Stopped hung toolchain processes: {', '.join(signalled)}")
    return signalled
