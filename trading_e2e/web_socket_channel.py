"""
WebSocket connection channel.

Owns one live duplex connection to the trading platform, decodes incoming
frames into events and pushes them to an InboundQueue, and emits periodic
heartbeats. Frames arrive in one of two envelopes:

    {"data": {"type": ..., "payload": ..., "trace": ...}}
    {"batch": [{"data": {...}}, {"data": {...}}]}

An event of type "multi" carries an array of sub-events in its payload; each
sub-event is queued independently.
"""

import asyncio
import json
import logging
import time
from enum import Enum
from typing import Any, Dict, Optional

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from .configuration import IgnoreOptions
from .errors import ChannelClosedError, ChannelConnectionError
from .inbound_queue import InboundQueue

HEARTBEAT_MESSAGE = {"type": "heartbeat"}


class ConnectionState(Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    DISCONNECTING = "DISCONNECTING"


def _redact(url: str) -> str:
    """Drop the query string (it carries the bearer token)."""
    return url.split("?", 1)[0]


class WebSocketChannel:
    """
    A single persistent WebSocket connection feeding an InboundQueue.

    Provides:
    - connect / disconnect with confirmed closure
    - frame decoding (batch and multi envelopes) and noise filtering
    - send with hard failure on a dead channel
    - periodic heartbeat emission
    """

    def __init__(
        self,
        queue: InboundQueue,
        ignore: Optional[IgnoreOptions] = None,
        name: str = "channel",
        open_timeout: float = 10.0,
    ):
        self.queue = queue
        self.ignore = ignore or IgnoreOptions()
        self.name = name
        self.open_timeout = open_timeout

        # Connection state
        self.state = ConnectionState.DISCONNECTED
        self.pending_disconnection = False
        self._socket = None
        self._reader_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._last_rx = 0

        # Logging
        self.logger = logging.getLogger(f"WebSocketChannel.{name}")

    def connected(self) -> bool:
        return self._socket is not None

    # ========================================================================
    # Connection Lifecycle
    # ========================================================================

    async def connect(self, url: str):
        """
        Open the connection, closing any live one first.

        Raises:
            ChannelConnectionError: if the handshake fails
        """
        self.logger.info(f"connect() to {_redact(url)}")
        if self._socket is not None:
            self.logger.info("Existing socket detected, closing it")
            await self.disconnect()

        self.pending_disconnection = False
        self.state = ConnectionState.CONNECTING
        try:
            socket = await ws_connect(url, open_timeout=self.open_timeout)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self.state = ConnectionState.DISCONNECTED
            self.logger.error(f"Connection to {_redact(url)} failed: {e!r}")
            raise ChannelConnectionError(f"({self.name}) cannot connect to {_redact(url)}: {e}") from e

        self._socket = socket
        self.state = ConnectionState.CONNECTED
        self._reader_task = asyncio.create_task(self._read_loop(socket), name=f"ws-reader-{self.name}")
        self.logger.info("Socket connected")

    async def disconnect(self):
        """Stop accepting events, close the socket and wait until closure is confirmed."""
        self.logger.info(
            f"disconnect() called. pending={self.pending_disconnection} "
            f"socket_is_none={self._socket is None}"
        )
        self.pending_disconnection = True
        socket = self._socket
        if socket is None:
            return

        self.state = ConnectionState.DISCONNECTING
        try:
            await socket.close()
        except Exception as e:
            self.logger.error(f"Error closing socket: {e!r}")

        reader = self._reader_task
        if reader is not None and not reader.done():
            await reader
        self._socket = None
        self._reader_task = None
        self.state = ConnectionState.DISCONNECTED
        self.logger.info("Disconnected")

    async def _read_loop(self, socket):
        """Receive frames until the connection closes."""
        try:
            async for raw in socket:
                self._on_frame(raw)
        except ConnectionClosed as e:
            self.logger.info(f"Connection closed: {e}")
        except Exception as e:
            self.logger.error(f"Error in receive loop: {e!r}")
        finally:
            if self._socket is socket:
                self._socket = None
                self.state = ConnectionState.DISCONNECTED
            if self.pending_disconnection:
                self.logger.info("Socket closed (expected)")
            else:
                self.logger.warning("Socket closed unexpectedly")

    # ========================================================================
    # Receive Path
    # ========================================================================

    def _receipt_timestamp(self) -> int:
        """Wall-clock ms for trace.rx, held back so it never runs backwards."""
        now = int(time.time() * 1000)
        if now < self._last_rx:
            now = self._last_rx
        self._last_rx = now
        return now

    def _on_frame(self, raw):
        timestamp = self._receipt_timestamp()
        try:
            frame = json.loads(raw)
        except ValueError as e:
            self.logger.error(f"Undecodable frame dropped: {e}")
            return

        if isinstance(frame, dict) and isinstance(frame.get("batch"), list):
            for item in frame["batch"]:
                if isinstance(item, dict) and item.get("data"):
                    self._process_event(item["data"], timestamp)
        elif isinstance(frame, dict) and frame.get("data"):
            self._process_event(frame["data"], timestamp)
        else:
            self.logger.warning(f"Unexpected message format: {str(raw)[:200]}")

    def _process_event(self, event: Any, timestamp: int):
        if not isinstance(event, dict):
            self.logger.warning(f"Non-object event dropped: {event!r}")
            return

        trace = event.get("trace")
        if isinstance(trace, dict):
            trace["rx"] = timestamp
        else:
            event["trace"] = {"rx": timestamp}

        self.logger.debug(f"received: {event.get('type')}")

        if event.get("type") == "multi" and isinstance(event.get("payload"), list):
            for element in event["payload"]:
                if isinstance(element, dict):
                    element.setdefault("trace", {"rx": timestamp})
                    self._filter_and_add(element)
        else:
            self._filter_and_add(event)

    def is_noise(self, event: Dict[str, Any]) -> bool:
        """Events the ignore options keep out of the queue."""
        event_type = event.get("type")
        if event_type == "heartbeat":
            return self.ignore.heartbeat
        if self.ignore.inactivation and event_type == "EXECUTION_REPORT":
            payload = event.get("payload")
            # order suspension caused by market closure
            return isinstance(payload, dict) and payload.get("orderStatus") == "SUSPENDED"
        return False

    def _filter_and_add(self, event: Dict[str, Any]):
        if self.pending_disconnection:
            self.logger.debug("Pending disconnection, event ignored")
            return
        if self.is_noise(event):
            return
        self.queue.push(event)

    # ========================================================================
    # Send Path
    # ========================================================================

    async def send(self, event: Dict[str, Any], tolerate_closed: bool = False) -> bool:
        """
        Serialize and transmit an event.

        Returns:
            True when sent, False on a transport error (or a closed channel
            with ``tolerate_closed``)

        Raises:
            ChannelClosedError: if the channel is not connected or is being torn down
        """
        self.logger.debug(f"send: {json.dumps(event, default=str)}")
        socket = self._socket
        if socket is None or self.pending_disconnection:
            if tolerate_closed:
                return False
            raise ChannelClosedError(
                f"({self.name}) send failed: connection is not ready or pending disconnection: {event}"
            )
        try:
            await socket.send(json.dumps(event))
            return True
        except (ConnectionClosed, OSError) as e:
            self.logger.error(f"Error sending: {e!r}")
            return False

    # ========================================================================
    # Heartbeat
    # ========================================================================

    def start_heartbeat(self, interval: float = 10.0):
        """Send a heartbeat every ``interval`` seconds while connected."""
        if self._heartbeat_task is not None and not self._heartbeat_task.done():
            return
        self._heartbeat_task = asyncio.create_task(
            self._heartbeat_loop(interval), name=f"ws-heartbeat-{self.name}"
        )

    async def _heartbeat_loop(self, interval: float):
        while True:
            await asyncio.sleep(interval)
            if self.connected() and not self.pending_disconnection:
                await self.send(dict(HEARTBEAT_MESSAGE), tolerate_closed=True)

    async def stop_heartbeat(self):
        task = self._heartbeat_task
        self._heartbeat_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def heartbeat_running(self) -> bool:
        return self._heartbeat_task is not None and not self._heartbeat_task.done()

    def __repr__(self):
        return f"WebSocketChannel(name='{self.name}', state={self.state.value})"
