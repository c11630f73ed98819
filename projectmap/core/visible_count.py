"""Debounced re-sampling of the number of rendered project features."""

import asyncio
import logging
from collections.abc import Callable
from typing import Optional

logger = logging.getLogger(__name__)


class VisibleCountEstimator:
    """
    Re-samples the rendered feature count a short while after each change.

    The renderer applies filters asynchronously, so a sample taken right after
    set_filter would still see the previous frame. Each schedule() call supersedes
    the pending ones: only the sample started by the latest call is published.
    """

    def __init__(
        self,
        sample_fn: Callable[[], int],
        publish_fn: Callable[[int], None],
        delay_seconds: float = 0.3,
    ) -> None:
        self.sample_fn = sample_fn
        self.publish_fn = publish_fn
        self.delay_seconds = delay_seconds
        self._generation = 0
        self._tasks: set[asyncio.Task] = set()
        self.last_published: Optional[int] = None

    @property
    def pending(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def schedule(self, delay_seconds: Optional[float] = None) -> None:
        self._generation += 1
        generation = self._generation
        delay = self.delay_seconds if delay_seconds is None else delay_seconds
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Without an event loop the renderer applies filters synchronously.
            self._publish(generation, self.sample_fn())
            return
        task = loop.create_task(self._sample_later(generation, delay))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(self._log_failure)

    def _log_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Visible count sample failed: {exc}", exc_info=exc)

    async def _sample_later(self, generation: int, delay: float) -> None:
        await asyncio.sleep(delay)
        if generation != self._generation:
            # A newer request is pending; its sample will be published instead.
            return
        self._publish(generation, self.sample_fn())

    def _publish(self, generation: int, count: int) -> None:
        if generation != self._generation:
            return
        logger.debug(f"Publishing visible count {count=} {generation=}")
        self.last_published = count
        self.publish_fn(count)

    async def wait_idle(self) -> None:
        """Wait until every scheduled sample has either published or been superseded."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending)
