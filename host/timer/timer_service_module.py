import logging
import asyncio
import itertools
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[Any]]


class TimerServiceModule:
    """
    Fixed-delay, fire-and-forget scheduled tasks owned by one session.

    Each scheduled callback runs once after its delay. Failures are logged and
    swallowed; nothing propagates back to the scheduler. Pending timers can be
    cancelled individually or all at once when the owning session shuts down.
    """
    MODULE_NAME = "TimerService"

    def __init__(self, owner_id: str = "session"):
        self._owner_id = owner_id
        self._active_timers: Dict[str, asyncio.Task] = {}
        self._timer_counter = itertools.count(1)
        logger.info(f"TimerServiceModule initialized for {owner_id}.")

    @property
    def active_timer_ids(self) -> List[str]:
        return [timer_id for timer_id, task in self._active_timers.items() if not task.done()]

    def schedule(self, name: str, delay_seconds: float, callback: TimerCallback) -> Optional[str]:
        """
        Run `callback` once after `delay_seconds`.

        Args:
            name: Short label used in the timer id and logs
            delay_seconds: Delay before the callback runs; must be >= 0
            callback: Zero-argument coroutine function

        Returns:
            The timer id, or None if the timer could not be scheduled
        """
        if not isinstance(delay_seconds, (int, float)) or delay_seconds < 0:
            logger.error(f"Invalid delay_seconds for timer '{name}': {delay_seconds}")
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"Cannot schedule timer '{name}' for {self._owner_id}: no running event loop.")
            return None

        timer_id = f"timer_{self._owner_id}_{name}_{next(self._timer_counter)}"
        logger.debug(f"Scheduling timer '{timer_id}' for {delay_seconds}s")

        timer_task = loop.create_task(self._timer_callback(delay_seconds, timer_id, callback))
        self._active_timers[timer_id] = timer_task
        timer_task.add_done_callback(lambda t: self._active_timers.pop(timer_id, None))
        return timer_id

    async def _timer_callback(self, delay: float, timer_id: str, callback: TimerCallback) -> None:
        try:
            await asyncio.sleep(delay)
            logger.debug(f"Timer '{timer_id}' fired.")
            await callback()
        except asyncio.CancelledError:
            logger.info(f"Timer '{timer_id}' cancelled.")
        except Exception as e:
            logger.error(f"Error in timer callback for '{timer_id}': {e}", exc_info=True)

    def cancel(self, timer_id: str) -> bool:
        task = self._active_timers.get(timer_id)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def shutdown(self) -> None:
        """Cancel any active timers and wait for them to unwind."""
        logger.info(f"Shutting down TimerServiceModule for {self._owner_id}. Cancelling {len(self._active_timers)} active timers...")
        for timer_id, task in list(self._active_timers.items()):
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._active_timers.clear()
        logger.info("TimerServiceModule shutdown complete.")
