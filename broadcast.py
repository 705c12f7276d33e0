"""
Broadcast Hub
Fans store events and telemetry out to every connected observer

Each observer connection owns a bounded outbound queue drained by its own
writer task, and that writer is the only code that sends on the socket.
Publishing is therefore a non-blocking enqueue: a slow observer fills its own
queue (oldest messages are dropped) and a dead one is removed when its writer
fails, without stalling delivery to anyone else.
"""

from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import asyncio
import json
import logging
import time
import uuid

from pydantic import BaseModel

from models import InitialData, MessageType
import config

logger = logging.getLogger(__name__)


def to_wire(data: Any) -> Any:
    """Convert models (and lists of models) to camelCase JSON-ready values"""
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    if isinstance(data, (list, tuple)):
        return [to_wire(item) for item in data]
    return data


def encode_message(message_type: MessageType, data: Any = None) -> str:
    """Build a {type, data} envelope; heartbeat messages carry no data"""
    message = {'type': message_type.value}
    if data is not None:
        message['data'] = to_wire(data)
    return json.dumps(message)


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ObserverConnection:
    """One live observer socket plus its outbound queue"""

    def __init__(self, websocket, queue_size: int = config.OBSERVER_QUEUE_SIZE):
        self.connection_id = uuid.uuid4().hex[:8]
        self.websocket = websocket
        self.state = ConnectionState.CONNECTING
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.writer: Optional[asyncio.Task] = None
        # initial_data, written by the writer task before anything queued
        self.snapshot: Optional[str] = None
        self.dropped = 0
        self.connected_at = time.time()
        self.last_pong: Optional[float] = None

    def enqueue(self, text: str) -> bool:
        """Queue a message without blocking; a full queue loses its oldest entry"""
        if self.state == ConnectionState.CLOSED:
            return False

        if self.queue.full():
            self.queue.get_nowait()
            self.queue.task_done()
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                logger.warning(f"Observer {self.connection_id} is lagging; {self.dropped} messages dropped")

        self.queue.put_nowait(text)
        return True


class BroadcastHub:
    """Registry of open observer connections; used from the event loop thread only"""

    def __init__(self, send_timeout: float = config.OBSERVER_SEND_TIMEOUT,
                 queue_size: int = config.OBSERVER_QUEUE_SIZE):
        self.send_timeout = send_timeout
        self.queue_size = queue_size
        self.connections: Dict[str, ObserverConnection] = {}

    @property
    def observer_count(self) -> int:
        return len(self.connections)

    async def connect(self, websocket, snapshot_factory: Callable[[], InitialData]) -> ObserverConnection:
        """
        Accept a socket and register it with `initial_data` as its first message

        The snapshot is taken after the accept completes and attached to the
        connection before it joins the registry, with no await in between: it
        reflects the store at join time. It is held outside the bounded queue
        and written first, so a burst of broadcasts can neither overtake nor
        evict it.
        """
        await websocket.accept()
        return self.register(websocket, snapshot_factory())

    def register(self, websocket, snapshot: InitialData) -> ObserverConnection:
        connection = ObserverConnection(websocket, self.queue_size)
        connection.snapshot = encode_message(MessageType.INITIAL_DATA, snapshot)

        self.connections[connection.connection_id] = connection
        connection.state = ConnectionState.OPEN
        connection.writer = asyncio.create_task(self._pump(connection))

        logger.info(f"Observer {connection.connection_id} connected ({self.observer_count} open)")
        return connection

    def disconnect(self, connection: ObserverConnection):
        """Remove a connection immediately; safe to call more than once"""
        if connection.state == ConnectionState.CLOSED:
            return

        connection.state = ConnectionState.CLOSED
        self.connections.pop(connection.connection_id, None)

        if connection.writer is not None and connection.writer is not asyncio.current_task():
            connection.writer.cancel()

        logger.info(f"Observer {connection.connection_id} disconnected ({self.observer_count} open)")

    def broadcast(self, message_type: MessageType, data: Any = None) -> int:
        """
        Queue one message for every open observer

        Returns:
            Number of observers the message was queued for
        """
        text = encode_message(message_type, data)
        delivered = 0
        for connection in list(self.connections.values()):
            if connection.enqueue(text):
                delivered += 1
        return delivered

    def send(self, connection: ObserverConnection, message_type: MessageType, data: Any = None) -> bool:
        """Queue a message for a single observer (e.g. a pong)"""
        return connection.enqueue(encode_message(message_type, data))

    async def _deliver(self, connection: ObserverConnection, text: str) -> bool:
        """Send one frame; a failed or timed-out send drops the connection"""
        try:
            await asyncio.wait_for(connection.websocket.send_text(text), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Observer {connection.connection_id} send timed out; dropping connection")
            self.disconnect(connection)
            return False
        except Exception as e:
            logger.warning(f"Observer {connection.connection_id} send failed: {e}; dropping connection")
            self.disconnect(connection)
            return False
        return True

    async def _pump(self, connection: ObserverConnection):
        """Writer task: send the snapshot, then drain the queue until the socket fails or is closed"""
        if connection.snapshot is not None:
            text, connection.snapshot = connection.snapshot, None
            if not await self._deliver(connection, text):
                return

        while True:
            text = await connection.queue.get()
            try:
                if not await self._deliver(connection, text):
                    return
            finally:
                connection.queue.task_done()

    async def heartbeat(self, interval: float = config.WS_HEARTBEAT_INTERVAL):
        """Broadcast an application-level ping on a fixed interval"""
        while True:
            await asyncio.sleep(interval)
            self.broadcast(MessageType.PING)

    async def close_all(self):
        """Close every observer at shutdown"""
        connections: List[ObserverConnection] = list(self.connections.values())
        for connection in connections:
            self.disconnect(connection)
            try:
                await connection.websocket.close()
            except Exception as e:
                logger.debug(f"Observer {connection.connection_id} close failed: {e}")
