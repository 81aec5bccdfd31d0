"""
Stream Listener

Pumps a transport subscription into a session's event loop.

The listener owns the subscription side of a session: it flips the loading
signal around each stream, forwards every part unchanged to the single-writer
queue, and converts a transport failure into a stream error instead of
letting it escape. It never reads or writes conversation state itself.
"""

import logging
import uuid
from typing import Any, AsyncIterable, Dict, Optional

from opentelemetry import trace

from host.event_loop import SessionEventLoop
from host.observability import get_tracer
from session.events import END_PART, ERROR_PART, THREAD_ID_PART, StreamPart
from session.lifecycle import SessionState

tracer = get_tracer(__name__)

logger = logging.getLogger(__name__)


def build_human_input(text: str) -> Dict[str, Any]:
    """Graph input for one user turn."""
    return {"messages": [{"type": "human", "content": text, "id": str(uuid.uuid4())}]}


class StreamListener:
    """
    Connects a subscription (any async iterable of StreamPart) to a
    SessionEventLoop.
    """

    def __init__(self, event_loop: SessionEventLoop):
        if not isinstance(event_loop, SessionEventLoop):
            raise TypeError("StreamListener requires a SessionEventLoop.")
        self.event_loop = event_loop
        self.session = event_loop.session

    async def consume(self, subscription: AsyncIterable[Any]) -> bool:
        """
        Forward every part of `subscription` to the event loop.

        The stream is always closed with an end part (or an error part if the
        subscription raised), and the loading signal is cleared afterwards.

        Returns:
            True if the subscription completed without a transport failure and
            without the stream reporting an error
        """
        forwarded = 0
        ok = True
        self.session.set_loading(True)
        with tracer.start_as_current_span("consume_stream", attributes={"session.id": self.session.session_id}) as span:
            try:
                async for part in subscription:
                    self.event_loop.enqueue_event(part)
                    forwarded += 1
                    if not self.event_loop.running:
                        # No background writer; apply in-line so rendering stays live
                        await self.event_loop.process_pending()
                self.event_loop.enqueue_event(StreamPart(END_PART, None))
            except Exception as e:
                logger.error(f"Subscription for {self.session.session_id} failed after {forwarded} part(s): {e}", exc_info=True)
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, f"Subscription failed: {e}"))
                self.event_loop.enqueue_event(StreamPart(ERROR_PART, {"message": str(e)}))
                ok = False
            finally:
                # Let queued parts land before the loading signal drops
                if self.event_loop.running:
                    await self.event_loop.drain()
                else:
                    await self.event_loop.process_pending()
                self.session.set_loading(False)
                logger.debug(f"Subscription for {self.session.session_id} finished ({forwarded} parts)")

            span.set_attribute("stream.parts", forwarded)
            if ok and self.session.state == SessionState.ERROR:
                logger.warning(f"Stream for {self.session.session_id} completed but reported an error")
                span.set_status(trace.Status(trace.StatusCode.ERROR, "Stream reported an error"))
                ok = False
            return ok

    async def run_turn(self, text: str, client: Optional[Any] = None) -> bool:
        """
        Send one user message and stream the run that answers it.

        Creates a thread first if the session has none; the new thread id is
        announced through the stream like any other part.

        Returns:
            True if the run streamed to completion
        """
        client = client or self.session.client
        if client is None:
            raise RuntimeError("StreamListener.run_turn requires a client.")

        thread_id = self.session.thread_id
        if thread_id is None:
            try:
                thread = await client.create_thread()
            except Exception as e:
                logger.error(f"Could not create a thread for {self.session.session_id}: {e}", exc_info=True)
                self.event_loop.enqueue_event(StreamPart(ERROR_PART, {"message": f"Thread creation failed: {e}"}))
                await self.event_loop.process_pending()
                return False
            thread_id = thread.get("thread_id")
            self.event_loop.enqueue_event(StreamPart(THREAD_ID_PART, thread_id))

        subscription = client.stream_run(thread_id, self.session.config.assistant_id, build_human_input(text))
        return await self.consume(subscription)
