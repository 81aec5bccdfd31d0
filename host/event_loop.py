"""
Session event loop.

Single writer for a StreamSession: token deltas, phase boundaries and
authoritative syncs may be produced by independent sources, but they all land
in one queue and are applied one at a time, in arrival order.
"""

import logging
import asyncio
from typing import Any, Optional

from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from session.stream_session import StreamSession

logger = logging.getLogger(__name__)


class _ResetRequest:
    """Queue marker: reset the session once everything queued before it is applied."""


class _AuthoritativeRequest:
    def __init__(self, messages: Any):
        self.messages = messages


_STOP = object()


class SessionEventLoop:

    def __init__(self, session: 'StreamSession', max_queue_size: int = 0):
        self.running = False
        self.session = session
        self._incoming_event_queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        logger.info(f"SessionEventLoop initialized for {session.session_id}.")

    @property
    def pending(self) -> int:
        return self._incoming_event_queue.qsize()

    # --- Enqueue Methods ---
    def enqueue_event(self, event: Any) -> bool:
        """Adds a stream event to the incoming processing queue."""
        try:
            self._incoming_event_queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            logger.error("SessionEventLoop incoming queue is full! Event dropped.")
            return False

    def enqueue_event_threadsafe(self, event: Any) -> None:
        """Enqueue from a thread other than the one running the loop."""
        if self._loop is None:
            raise RuntimeError("SessionEventLoop is not running; cannot accept events from other threads.")
        self._loop.call_soon_threadsafe(self.enqueue_event, event)

    def enqueue_authoritative(self, messages: Any) -> bool:
        return self.enqueue_event(_AuthoritativeRequest(messages))

    def request_reset(self) -> bool:
        return self.enqueue_event(_ResetRequest())

    def _apply(self, item: Any) -> None:
        if isinstance(item, _ResetRequest):
            self.session.reset()
        elif isinstance(item, _AuthoritativeRequest):
            self.session.sync_authoritative(item.messages)
        else:
            self.session.dispatch(item)

    async def process_pending(self) -> int:
        """Applies everything currently queued. Returns the number of items processed."""
        processed = 0
        while not self._incoming_event_queue.empty():
            item = self._incoming_event_queue.get_nowait()
            try:
                if item is not _STOP:
                    self._apply(item)
                    processed += 1
            except Exception:
                logger.exception(f"Exception while applying queued event to {self.session.session_id}.")
            finally:
                self._incoming_event_queue.task_done()
        return processed

    # --- Main Loop ---
    async def run(self) -> None:
        """Runs until stop() is called, applying events as they arrive."""
        logger.info("Starting Session Event Loop...")
        self._loop = asyncio.get_running_loop()
        self.running = True

        while self.running:
            item = await self._incoming_event_queue.get()
            try:
                if item is _STOP:
                    break
                self._apply(item)
            except Exception:
                logger.exception(f"Exception while applying event to {self.session.session_id}.")
            finally:
                self._incoming_event_queue.task_done()

        self.running = False
        self._loop = None
        logger.info("Session Event Loop finished.")

    async def drain(self) -> None:
        """Waits until every event queued so far has been applied."""
        await self._incoming_event_queue.join()

    def stop(self) -> None:
        """
        Signals the event loop to stop after the events already queued.

        Safe to call before run() has been scheduled: the stop marker waits in
        the queue and process_pending() skips it.
        """
        self.enqueue_event(_STOP)
        logger.info("Stopping Session Event Loop...")
