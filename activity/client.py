"""
Agent Server Client - Thin HTTP I/O Layer

Talks to a LangGraph-compatible agent server over HTTP:
- health probe (GET /info)
- thread creation and thread search (the thread list shown beside a conversation)
- run streaming (POST .../runs/stream, server-sent events)

No reconciliation happens here. Stream frames are handed on untouched as
StreamPart tuples for the session to classify.
"""

import logging
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import aiohttp
from opentelemetry import trace

from activity.sse import SSEDecoder
from host.observability import get_tracer
from session.events import StreamPart

tracer = get_tracer(__name__)

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-Api-Key"
DEFAULT_STREAM_MODES = ("values", "updates", "custom", "events")
THREAD_SEARCH_LIMIT = 100


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
        return True
    except (ValueError, AttributeError, TypeError):
        return False


class GraphServerClient:
    """
    HTTP client for one agent server deployment.

    Owns an aiohttp.ClientSession that is created lazily and released by
    close() (or by leaving the async context manager).
    """

    def __init__(self, api_url: str, api_key: Optional[str] = None, timeout: float = 10.0,
                 http_session: Optional[aiohttp.ClientSession] = None):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key or None
        self.timeout = timeout
        self._http_session = http_session
        self._owns_session = http_session is None

    def _headers(self) -> Dict[str, str]:
        return {API_KEY_HEADER: self.api_key} if self.api_key else {}

    def _get_http_session(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession()
            self._owns_session = True
        return self._http_session

    async def close(self) -> None:
        if self._owns_session and self._http_session is not None and not self._http_session.closed:
            await self._http_session.close()
        self._http_session = None

    async def __aenter__(self) -> "GraphServerClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def check_graph_status(self) -> bool:
        """
        Probe GET <api_url>/info.

        Returns:
            True on a 2xx response, False on any other status or on a
            connection failure (which is logged, not raised)
        """
        url = f"{self.api_url}/info"
        with tracer.start_as_current_span("check_graph_status", attributes={"http.url": url}) as span:
            try:
                http_session = self._get_http_session()
                async with http_session.get(url, headers=self._headers(),
                                            timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
                    span.set_attribute("http.status_code", response.status)
                    if response.ok:
                        return True
                    logger.warning(f"Health probe against {url} returned HTTP {response.status}")
                    return False
            except Exception as e:
                logger.error(f"Health probe against {url} failed: {e}", exc_info=True)
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, "Health probe failed"))
                return False

    async def create_thread(self, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Create a new thread.

        Raises:
            aiohttp.ClientError: on transport failure or a non-2xx response
        """
        http_session = self._get_http_session()
        async with http_session.post(f"{self.api_url}/threads", json={"metadata": metadata or {}},
                                     headers=self._headers(),
                                     timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
            response.raise_for_status()
            thread = await response.json()
        logger.info(f"Created thread {thread.get('thread_id')}")
        return thread

    async def search_threads(self, assistant_id: str, limit: int = THREAD_SEARCH_LIMIT) -> List[Dict[str, Any]]:
        """
        List threads belonging to an assistant (by assistant UUID) or a graph (by graph name).

        Raises:
            aiohttp.ClientError: on transport failure or a non-2xx response
        """
        metadata_key = "assistant_id" if _is_uuid(assistant_id) else "graph_id"
        body = {"metadata": {metadata_key: assistant_id}, "limit": limit}

        http_session = self._get_http_session()
        async with http_session.post(f"{self.api_url}/threads/search", json=body,
                                     headers=self._headers(),
                                     timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
            response.raise_for_status()
            threads = await response.json()
        if not isinstance(threads, list):
            logger.warning(f"Unexpected thread search response type: {type(threads).__name__}")
            return []
        logger.debug(f"Thread search for {metadata_key}={assistant_id} returned {len(threads)} thread(s)")
        return threads

    async def stream_run(self, thread_id: Optional[str], assistant_id: str, run_input: Any,
                         stream_mode: Sequence[str] = DEFAULT_STREAM_MODES) -> AsyncIterator[StreamPart]:
        """
        Start a run and yield its stream frames as they arrive.

        Args:
            thread_id: Thread to run on; None runs statelessly
            assistant_id: Assistant or graph id
            run_input: Graph input, e.g. {"messages": [...]}
            stream_mode: Stream modes to request

        Raises:
            aiohttp.ClientError: on transport failure or a non-2xx response
        """
        path = f"/threads/{thread_id}/runs/stream" if thread_id else "/runs/stream"
        body = {"assistant_id": assistant_id, "input": run_input, "stream_mode": list(stream_mode)}
        decoder = SSEDecoder()

        http_session = self._get_http_session()
        async with http_session.post(f"{self.api_url}{path}", json=body, headers=self._headers(),
                                     timeout=aiohttp.ClientTimeout(total=None, sock_connect=self.timeout)) as response:
            response.raise_for_status()
            logger.info(f"Run stream opened on {path}")
            async for raw_line in response.content:
                frame = decoder.decode(raw_line.decode("utf-8", errors="replace"))
                if frame is not None:
                    yield StreamPart(*frame)
            trailing = decoder.flush()
            if trailing is not None:
                yield StreamPart(*trailing)
        logger.info(f"Run stream on {path} closed")
