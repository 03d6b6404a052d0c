"""hub 연결 상태 머신 및 재연결 백오프 (client 역할)."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Awaitable, Callable, Optional, Sequence, Tuple

from .protocol import (
    CONNECT_TIMEOUT_MS,
    READ_CHUNK_BYTES,
    RETRY_SCHEDULE_MS,
    LineDecoder,
)
from .send_queue import SendQueue

LOGGER = logging.getLogger(__name__)

Connector = Callable[[str, int], Awaitable[Tuple[asyncio.StreamReader, asyncio.StreamWriter]]]


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Backoff:
    """고정 지연 스케줄. 인덱스는 마지막 원소에서 멈추고 성공 시에만 0으로 돌아간다."""

    def __init__(self, schedule_ms: Sequence[int] = RETRY_SCHEDULE_MS) -> None:
        if not schedule_ms:
            raise ValueError("backoff schedule must not be empty")
        self.schedule_ms = tuple(schedule_ms)
        self.index = 0

    @property
    def attempt(self) -> int:
        return self.index + 1

    def next_delay(self) -> int:
        delay = self.schedule_ms[self.index]
        self.index = min(self.index + 1, len(self.schedule_ms) - 1)
        return delay

    def reset(self) -> None:
        self.index = 0


def _log_broadcast(line: str) -> None:
    LOGGER.info("Broadcast: %r", line)


class ConnectionManager:
    """한 번에 하나의 outbound 소켓을 소유하는 연결 상태 머신.

    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED(재시도 예약) -> ...
    상태와 백오프 인덱스는 아래 전이 메서드에서만 바뀐다.
    """

    def __init__(
        self,
        host: str,
        port: int,
        *,
        queue: Optional[SendQueue] = None,
        on_line: Callable[[str], None] = _log_broadcast,
        retry_schedule_ms: Sequence[int] = RETRY_SCHEDULE_MS,
        connect_timeout_ms: int = CONNECT_TIMEOUT_MS,
        connector: Connector = asyncio.open_connection,
    ) -> None:
        self.host = host
        self.port = port
        self.queue = queue if queue is not None else SendQueue()
        self.on_line = on_line
        self.connect_timeout_ms = connect_timeout_ms
        self.backoff = Backoff(retry_schedule_ms)
        self.state = ConnectionState.DISCONNECTED
        self._connector = connector
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._decoder = LineDecoder()
        self._connect_timer: Optional[asyncio.TimerHandle] = None
        self._retry_timer: Optional[asyncio.TimerHandle] = None
        self._timed_out = False
        self._stopped = False

    def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stopped = False
        self._connect()

    def stop(self) -> None:
        self._stopped = True
        self._cancel_connect_timer()
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None
        self.queue.detach()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._release_writer()
        self.state = ConnectionState.DISCONNECTED

    # ---------- 전이 ----------
    def _connect(self) -> None:
        self._retry_timer = None
        if self._stopped or self._loop is None or self.state is not ConnectionState.DISCONNECTED:
            return
        self.state = ConnectionState.CONNECTING
        self._timed_out = False
        LOGGER.info(
            "connecting to server: host=%s port=%s attempt=%s",
            self.host,
            self.port,
            self.backoff.attempt,
        )
        self._task = self._loop.create_task(self._run_link())
        self._connect_timer = self._loop.call_later(
            self.connect_timeout_ms / 1000, self._on_connect_timeout
        )

    def _on_connected(self, writer: asyncio.StreamWriter) -> None:
        self._cancel_connect_timer()
        self.state = ConnectionState.CONNECTED
        self.backoff.reset()
        self._writer = writer
        self._decoder = LineDecoder()
        LOGGER.info("socket_connected")
        self.queue.attach(writer)
        self.queue.drain()

    def _on_data(self, data: bytes) -> None:
        for line in self._decoder.feed(data):
            self.on_line(line)

    def _on_connect_timeout(self) -> None:
        self._connect_timer = None
        if self.state is not ConnectionState.CONNECTING:
            return
        LOGGER.warning("socket_connect_timeout")
        self._timed_out = True
        if self._task is None or self._task.done():
            self._on_closed(True)
            return
        self._task.cancel()

    def _on_closed(self, had_error: bool) -> None:
        if self.state is ConnectionState.DISCONNECTED:
            return
        self._cancel_connect_timer()
        self.queue.detach()
        self._release_writer()
        self._task = None
        self.state = ConnectionState.DISCONNECTED
        delay_ms = self.backoff.next_delay()
        LOGGER.warning("socket_closed: hadError=%s retrying=%sms", had_error, delay_ms)
        if self._stopped or self._loop is None:
            return
        self._retry_timer = self._loop.call_later(delay_ms / 1000, self._connect)

    # ---------- 소켓 ----------
    async def _run_link(self) -> None:
        had_error = False
        try:
            reader, writer = await self._connector(self.host, self.port)
            self._on_connected(writer)
            while True:
                data = await reader.read(READ_CHUNK_BYTES)
                if not data:
                    break
                self._on_data(data)
        except asyncio.CancelledError:
            if not self._timed_out:
                raise
            had_error = True
        except Exception as exc:
            # OSError 외에 getaddrinfo의 UnicodeError 등도 재연결 대상
            had_error = True
            LOGGER.warning("socket_error: err=%r", exc)
        self._on_closed(had_error)

    def _release_writer(self) -> None:
        if self._writer is None:
            return
        writer, self._writer = self._writer, None
        writer.close()

    def _cancel_connect_timer(self) -> None:
        if self._connect_timer is not None:
            self._connect_timer.cancel()
            self._connect_timer = None


__all__ = [
    "Backoff",
    "ConnectionManager",
    "ConnectionState",
]
