"""
Stream Session

One StreamSession per conversation. It owns the conversation store, the UI
attachment map, the lifecycle state machine and the thread-id bookkeeping, and
it is the only thing that mutates them. Every inbound stream part goes through
dispatch(), which decodes it into a typed event and routes it to the matching
merger. Feed dispatch() from a single writer (see host.event_loop).
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from host.config import SessionConfig
from host.timer.timer_service_module import TimerServiceModule
from session.events import (
    AuthoritativeSync, CustomUIEvent, PhaseBoundary, RunMetadata, StateUpdate, StreamEnd,
    StreamError, StreamEvent, ThreadIdChanged, TokenDelta, Unknown, decode,
)
from session.lifecycle import SessionLifecycle, SessionState
from session.message_store import ConversationStore, Message
from session.ui_state import UIMessage, ui_message_reducer

logger = logging.getLogger(__name__)

ThreadFetcher = Callable[[], Awaitable[List[Dict[str, Any]]]]

CONNECTION_FAILED_TITLE = "Failed to connect to LangGraph server"
CONNECTION_FAILED_DURATION = 10.0


@dataclass(frozen=True)
class Notification:
    """User-facing, non-blocking notice (e.g. a failed health probe)."""
    level: str
    title: str
    description: str = ""
    duration: Optional[float] = None
    dismissible: bool = True
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=time.time)


class StreamSession:
    """
    Reconciled view of one agent conversation.

    Consumers read `messages`, `ui_messages` and `is_loading`; everything else
    is driven by dispatch(), sync_authoritative() and reset().
    """

    def __init__(self,
                 config: SessionConfig,
                 client: Optional[Any] = None,
                 timer_service: Optional[TimerServiceModule] = None,
                 thread_fetcher: Optional[ThreadFetcher] = None,
                 on_notification: Optional[Callable[[Notification], None]] = None,
                 on_threads: Optional[Callable[[List[Dict[str, Any]]], None]] = None):
        if not isinstance(config, SessionConfig):
            raise TypeError("StreamSession requires a SessionConfig.")

        self.config = config
        self.session_id = f"session_{uuid.uuid4().hex[:8]}"
        self._client = client
        self._owns_client = False
        self._timer_service = timer_service or TimerServiceModule(owner_id=self.session_id)
        self._thread_fetcher = thread_fetcher
        self._on_notification = on_notification
        self._on_threads = on_threads

        self._store = ConversationStore()
        self._ui_messages: Dict[str, UIMessage] = {}
        self._lifecycle = SessionLifecycle()

        self._thread_id: Optional[str] = None
        self._run_id: Optional[str] = None
        self._last_update: Any = None
        self._is_loading = False
        self._threads: List[Dict[str, Any]] = []
        self._notifications: List[Notification] = []
        self._closed = False

    @classmethod
    def create(cls, config: SessionConfig, client: Optional[Any] = None, **kwargs) -> "StreamSession":
        """
        Build a session for `config` and move it to Connecting.

        Without an explicit client, a GraphServerClient for the configured
        endpoint is created and owned (closed by close()).
        """
        owns_client = client is None
        if owns_client:
            from activity.client import GraphServerClient
            client = GraphServerClient(config.api_url, config.api_key, timeout=config.health_check_timeout)

        session = cls(config, client=client, **kwargs)
        session._owns_client = owns_client
        session._lifecycle.transition(SessionState.CONNECTING, f"session created for {config.assistant_id} at {config.api_url}")
        return session

    # --- Read-only views ---

    def _require_open(self) -> None:
        if self._closed:
            raise RuntimeError(f"StreamSession {self.session_id} is closed; its state cannot be used outside an active session.")

    @property
    def messages(self) -> Tuple[Message, ...]:
        self._require_open()
        return self._store.get_messages()

    def message_dicts(self) -> List[Dict[str, Any]]:
        self._require_open()
        return self._store.to_dicts()

    @property
    def ui_messages(self) -> Mapping[str, UIMessage]:
        self._require_open()
        return MappingProxyType(self._ui_messages)

    @property
    def is_loading(self) -> bool:
        self._require_open()
        return self._is_loading

    @property
    def state(self) -> SessionState:
        return self._lifecycle.state

    @property
    def lifecycle(self) -> SessionLifecycle:
        return self._lifecycle

    @property
    def thread_id(self) -> Optional[str]:
        return self._thread_id

    @property
    def run_id(self) -> Optional[str]:
        return self._run_id

    @property
    def last_update(self) -> Any:
        return self._last_update

    @property
    def threads(self) -> List[Dict[str, Any]]:
        return list(self._threads)

    @property
    def notifications(self) -> List[Notification]:
        return list(self._notifications)

    @property
    def client(self) -> Optional[Any]:
        return self._client

    @property
    def closed(self) -> bool:
        return self._closed

    # --- Subscription-derived signals ---

    def set_loading(self, is_loading: bool) -> None:
        """Set by whoever owns the subscription; no merge ever touches it."""
        self._require_open()
        self._is_loading = bool(is_loading)

    # --- Event dispatch ---

    def dispatch(self, raw_event: Any) -> bool:
        """
        Decode and apply one stream event.

        Args:
            raw_event: A StreamPart / (event, data) pair, or an already typed event

        Returns:
            True if the event was recognized and applied, False if it was ignored
        """
        self._require_open()
        event = decode(raw_event)

        if isinstance(event, Unknown):
            logger.debug(f"[{self.session_id}] Ignoring unrecognized stream event '{event.event_name}'")
            return False

        if isinstance(event, StreamError):
            self._lifecycle.transition(SessionState.ERROR, f"stream error: {event.message}")
            logger.error(f"[{self.session_id}] Stream reported an error: {event.message}")
            return True

        # Only content-bearing events re-enter Streaming; an end part must not clear an error
        if not isinstance(event, (StreamEnd, ThreadIdChanged)):
            self._mark_stream_activity()

        if isinstance(event, TokenDelta):
            self._store.accumulate_delta(event.message_id, event.fragment, event.chunk_fields)
        elif isinstance(event, PhaseBoundary):
            if event.is_end:
                self._store.merge_snapshot(event.messages)
            # start events carry nothing to reconcile
        elif isinstance(event, CustomUIEvent):
            logger.debug(f"[{self.session_id}] UI event received: {event.ui_event}")
            self._ui_messages = ui_message_reducer(self._ui_messages, event.ui_event)
        elif isinstance(event, AuthoritativeSync):
            self._store.merge_authoritative(event.messages)
        elif isinstance(event, StateUpdate):
            logger.debug(f"[{self.session_id}] State update from server: {event.data}")
            self._last_update = event.data
        elif isinstance(event, ThreadIdChanged):
            self._handle_thread_id(event.thread_id)
        elif isinstance(event, RunMetadata):
            self._run_id = event.run_id
        elif isinstance(event, StreamEnd):
            if self._lifecycle.state == SessionState.STREAMING:
                self._lifecycle.transition(SessionState.IDLE, "stream completed")
            else:
                # An error reported earlier in the stream stays the outcome
                logger.info(f"[{self.session_id}] Stream ended in state {self._lifecycle.state.value}")
        return True

    def _mark_stream_activity(self) -> None:
        if self._lifecycle.state in (SessionState.CONNECTING, SessionState.IDLE, SessionState.ERROR):
            self._lifecycle.transition(SessionState.STREAMING, "stream event received")

    def sync_authoritative(self, messages: Iterable[Any]) -> int:
        """
        Merge the externally maintained authoritative message list.

        Returns:
            Number of messages appended
        """
        self._require_open()
        return self._store.merge_authoritative(messages)

    def reset(self) -> None:
        """Clear the conversation store and the UI attachment map together."""
        self._require_open()
        logger.info(f"[{self.session_id}] Resetting conversation ({len(self._store)} messages, {len(self._ui_messages)} UI attachments)")
        self._store.clear()
        self._ui_messages = {}
        self._run_id = None
        self._last_update = None

    def report_transport_failure(self, error: BaseException) -> None:
        """Record an unrecoverable transport failure. Merged content is kept."""
        logger.error(f"[{self.session_id}] Transport failure: {error}")
        self._lifecycle.transition(SessionState.ERROR, f"transport failure: {error}")

    # --- Thread tracking ---

    def _handle_thread_id(self, thread_id: str) -> None:
        if thread_id == self._thread_id:
            return
        previous = self._thread_id
        self._thread_id = thread_id
        logger.info(f"[{self.session_id}] Thread id changed: {previous} -> {thread_id}")
        # The thread is created server-side just before this notice; give it time to show up in search.
        self._timer_service.schedule("thread_refresh", self.config.thread_refresh_delay, self._refresh_threads)

    async def _refresh_threads(self) -> None:
        if self._closed:
            return
        if self._thread_fetcher is not None:
            threads = await self._thread_fetcher()
        elif self._client is not None:
            threads = await self._client.search_threads(self.config.assistant_id)
        else:
            logger.warning(f"[{self.session_id}] No thread fetcher or client configured; skipping thread refresh.")
            return
        self._threads = list(threads or [])
        logger.debug(f"[{self.session_id}] Thread list refreshed: {len(self._threads)} thread(s)")
        if self._on_threads is not None:
            self._on_threads(self.threads)

    # --- Connectivity ---

    async def check_connection(self) -> bool:
        """
        Probe the endpoint's health. A failure produces a dismissible
        notification and never touches conversation state.
        """
        self._require_open()
        if self._client is None:
            logger.warning(f"[{self.session_id}] No client configured; cannot probe {self.config.api_url}")
            return False

        ok = await self._client.check_graph_status()
        if ok:
            if self._lifecycle.state == SessionState.CONNECTING:
                self._lifecycle.transition(SessionState.STREAMING, "health probe succeeded")
            return True

        if self._lifecycle.state == SessionState.CONNECTING:
            self._lifecycle.transition(SessionState.ERROR, "health probe failed")
        self._notify(Notification(
            level="error",
            title=CONNECTION_FAILED_TITLE,
            description=(f"Please ensure your graph is running at {self.config.api_url} and your API key "
                         f"is correctly set (if connecting to a deployed graph)."),
            duration=CONNECTION_FAILED_DURATION,
        ))
        return False

    def _notify(self, notification: Notification) -> None:
        self._notifications.append(notification)
        logger.warning(f"[{self.session_id}] {notification.title}: {notification.description}")
        if self._on_notification is not None:
            try:
                self._on_notification(notification)
            except Exception as e:
                logger.error(f"[{self.session_id}] Notification callback failed: {e}", exc_info=True)

    def dismiss_notification(self, notification_id: str) -> bool:
        for notification in self._notifications:
            if notification.id == notification_id and notification.dismissible:
                self._notifications.remove(notification)
                return True
        return False

    # --- Teardown ---

    async def close(self) -> None:
        """Cancel pending refreshes and release an owned client. Idempotent."""
        if self._closed:
            return
        self._closed = True
        await self._timer_service.shutdown()
        if self._owns_client and self._client is not None:
            await self._client.close()
        logger.info(f"[{self.session_id}] Session closed.")
