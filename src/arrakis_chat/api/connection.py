"""
Websocket connection manager.

Owns the single logical connection to the backend: lifecycle state, the
reconnection policy, the keep-alive heartbeat and inbound frame validation.
Transport and schema failures stop here; they show up only as the connection
state and ``last_error``.
"""

import asyncio
import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

import structlog
import websockets
from prometheus_client import CollectorRegistry, Counter
from pydantic import BaseModel

from ..domain.protocol import (
    PingPayload,
    PingRequest,
    PingResponse,
    SchemaError,
    encode_request,
    validate_request,
    validate_response,
)

logger = structlog.get_logger()

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

FRAMES_RECEIVED = Counter("frames_received_total", "Inbound frames", registry=CUSTOM_REGISTRY)
FRAMES_REJECTED = Counter("frames_rejected_total", "Inbound frames failing validation", registry=CUSTOM_REGISTRY)
FRAMES_SENT = Counter("frames_sent_total", "Outbound frames", registry=CUSTOM_REGISTRY)
SENDS_DROPPED = Counter("sends_dropped_total", "Requests dropped while not connected", registry=CUSTOM_REGISTRY)
RECONNECTS = Counter("reconnect_attempts_total", "Reconnection attempts", registry=CUSTOM_REGISTRY)


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class TransportError(Exception):
    """Socket-level failure."""
    pass


Connector = Callable[[str], Awaitable[Any]]
ResponseHandler = Callable[[Any], Any]
StateListener = Callable[[ConnectionState], None]


class ConnectionManager:
    """One websocket, its lifecycle and its retry policy."""

    def __init__(
        self,
        url: str,
        retry_interval: float = 5.0,
        max_retries: int = 0,
        heartbeat_interval: float = 5.0,
        connector: Optional[Connector] = None,
    ) -> None:
        self.url = url
        self.retry_interval = retry_interval
        self.max_retries = max_retries
        self.heartbeat_interval = heartbeat_interval
        self.state = ConnectionState.DISCONNECTED
        self.retry_count = 0
        self.last_error: Optional[TransportError] = None
        self._connector = connector or websockets.connect
        self._socket: Any = None
        self._run_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._closed = False
        self._response_handlers: List[ResponseHandler] = []
        self._state_listeners: List[StateListener] = []

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def running(self) -> bool:
        return self._run_task is not None and not self._run_task.done()

    def on_response(self, handler: ResponseHandler) -> None:
        """Register a handler for every validated response; may be async."""
        self._response_handlers.append(handler)

    def on_state_change(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self.state:
            return
        previous, self.state = self.state, state
        logger.info("connection_state_changed", url=self.url, previous=previous.value, state=state.value)
        for listener in self._state_listeners:
            try:
                listener(state)
            except Exception as e:
                logger.error("state_listener_error", state=state.value, error=str(e))

    def start(self) -> None:
        """Start connecting; the state is ``connecting`` when this returns."""
        if self.running:
            return
        self._closed = False
        self._set_state(ConnectionState.CONNECTING)
        self._run_task = asyncio.create_task(self._run())
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.create_task(self._heartbeat())

    def restart(self) -> None:
        """Start again after the retry budget ran out."""
        if self.running:
            return
        self.retry_count = 0
        self.start()

    async def join(self) -> None:
        """Wait until the manager stops trying to connect."""
        if self._run_task is not None:
            await asyncio.gather(self._run_task, return_exceptions=True)

    async def close(self) -> None:
        """Cancel timers, close the socket and stay disconnected."""
        self._closed = True
        socket, self._socket = self._socket, None
        tasks = [t for t in (self._heartbeat_task, self._run_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if socket is not None:
            try:
                await socket.close()
            except Exception as e:
                logger.warning("socket_close_error", error=str(e))
        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("connection_closed", url=self.url)

    async def _run(self) -> None:
        while True:
            await self._connect_once()
            if self._closed:
                return
            if self.retry_count >= self.max_retries:
                logger.warning(
                    "connection_retries_exhausted",
                    url=self.url,
                    max_retries=self.max_retries,
                    last_error=str(self.last_error) if self.last_error else None
                )
                return
            await asyncio.sleep(self.retry_interval)
            self.retry_count += 1
            RECONNECTS.inc()
            logger.info("connection_retry", url=self.url, attempt=self.retry_count)
            self._set_state(ConnectionState.CONNECTING)

    async def _connect_once(self) -> None:
        try:
            socket = await self._connector(self.url)
        except Exception as e:
            self._fail(TransportError(f"connect failed: {e}"))
            return

        self._socket = socket
        self.retry_count = 0
        self.last_error = None
        self._set_state(ConnectionState.CONNECTED)
        try:
            async for frame in socket:
                await self._handle_frame(frame)
        except Exception as e:
            self._fail(TransportError(f"connection lost: {e}"))
        else:
            self._socket = None
            self._set_state(ConnectionState.DISCONNECTED)
        finally:
            self._socket = None

    def _fail(self, error: TransportError) -> None:
        self.last_error = error
        self._socket = None
        logger.error("transport_error", url=self.url, error=str(error))
        self._set_state(ConnectionState.DISCONNECTED)

    async def _handle_frame(self, frame: Any) -> None:
        FRAMES_RECEIVED.inc()
        response = validate_response(frame)
        if isinstance(response, SchemaError):
            FRAMES_REJECTED.inc()
            logger.warning("frame_rejected", path=response.path, error=response.message)
            return

        # A ping reply proves the link is up even if the handshake was not seen
        if isinstance(response, PingResponse) and not self.connected:
            self._set_state(ConnectionState.CONNECTED)

        for handler in self._response_handlers:
            try:
                result = handler(response)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("response_handler_error", method=response.method, error=str(e))

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            if self.connected:
                await self.send(PingRequest(payload=PingPayload(body="ping")))

    async def send(self, request: BaseModel) -> bool:
        """Send a request; dropped (returns False) unless connected."""
        method = getattr(request, "method", None)
        if not self.connected or self._socket is None:
            SENDS_DROPPED.inc()
            logger.warning("send_while_disconnected", method=method, state=self.state.value)
            return False

        frame = encode_request(request)
        checked = validate_request(frame)
        if isinstance(checked, SchemaError):
            logger.error("request_rejected", method=method, path=checked.path, error=checked.message)
            return False

        try:
            await self._socket.send(frame)
        except Exception as e:
            self.last_error = TransportError(f"send failed: {e}")
            logger.error("send_failed", method=method, error=str(e))
            return False

        FRAMES_SENT.inc()
        logger.debug("frame_sent", method=method)
        return True
