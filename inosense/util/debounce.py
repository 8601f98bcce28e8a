"""Per-key trailing-edge debounce on an asyncio event loop."""

import asyncio
import logging
from typing import Awaitable, Callable, Hashable, Optional


logger = logging.getLogger(__name__)


class Debouncer:
    """Runs a coroutine once per key after calls have settled.

    Every schedule() call for a key restarts its timer, only the last
    callback scheduled within the window runs.
    """

    def __init__(
        self, delay: float, loop: Optional[asyncio.AbstractEventLoop] = None
    ) -> None:
        self.delay = delay
        self._loop = loop
        self._handles: dict[Hashable, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, key: Hashable, callback: Callable[[], Awaitable[object]]) -> None:
        """(Re)start the timer for key. Must be called on the loop thread."""
        self.cancel(key)
        self._handles[key] = self.loop.call_later(self.delay, self._fire, key, callback)

    def cancel(self, key: Hashable) -> None:
        handle = self._handles.pop(key, None)
        if handle is not None:
            handle.cancel()

    def pending(self, key: Hashable) -> bool:
        return key in self._handles

    def _fire(self, key: Hashable, callback: Callable[[], Awaitable[object]]) -> None:
        self._handles.pop(key, None)
        task = self.loop.create_task(self._run(key, callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, key: Hashable, callback: Callable[[], Awaitable[object]]) -> None:
        try:
            await callback()
        except Exception:
            logger.exception(f"Debounced callback for {key} failed")

    async def drain(self) -> None:
        """Wait for callbacks that already fired."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    def close(self) -> None:
        for key in list(self._handles):
            self.cancel(key)
