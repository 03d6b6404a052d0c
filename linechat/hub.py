"""세션 레지스트리 및 브로드캐스트 (server 역할)."""

from __future__ import annotations

import asyncio
import codecs
import itertools
import logging
from typing import Dict, Optional, Tuple

from .protocol import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    ENCODING,
    LISTEN_TIMEOUT_MS,
    LineFramer,
    ListenError,
    encode_line,
    joined_notice,
    left_notice,
)

LOGGER = logging.getLogger(__name__)


class Session:
    """TCP 세션 상태."""

    def __init__(self, sid: int, transport: asyncio.BaseTransport):
        self.id = sid
        self.transport = transport
        self.peername = transport.get_extra_info("peername")
        self.framer = LineFramer()

    def send(self, data: bytes) -> None:
        self.transport.write(data)

    def close(self) -> None:
        self.transport.close()


class HubProtocol(asyncio.Protocol):
    """asyncio 전송 콜백을 ServerHub 연산으로 연결."""

    def __init__(self, hub: "ServerHub") -> None:
        self.hub = hub
        self.session_id: Optional[int] = None
        self._text = codecs.getincrementaldecoder(ENCODING)(errors="replace")

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.session_id = self.hub.accept(transport)

    def data_received(self, data: bytes) -> None:
        if self.session_id is None:
            return
        self.hub.on_data(self.session_id, self._text.decode(data))

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if self.session_id is None:
            return
        if exc is not None:
            LOGGER.warning("connection error: conn=%s err=%s", self.session_id, exc)
        self.hub.close(self.session_id, had_error=exc is not None)


class ServerHub:
    """접속한 모든 세션에 줄 단위 메시지를 중계."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        *,
        listen_timeout_ms: int = LISTEN_TIMEOUT_MS,
    ) -> None:
        self.host = host
        self.port = port
        self.listen_timeout_ms = listen_timeout_ms
        self.sessions: Dict[int, Session] = {}
        self._session_seq = itertools.count(1)
        self._server: Optional[asyncio.AbstractServer] = None

    # ---------- 리슨 소켓 ----------
    async def start(self) -> None:
        """리슨 소켓을 연다. 제한 시간 안에 준비되지 않으면 ListenError."""
        loop = asyncio.get_running_loop()
        try:
            self._server = await asyncio.wait_for(
                loop.create_server(lambda: HubProtocol(self), self.host, self.port),
                timeout=self.listen_timeout_ms / 1000,
            )
        except asyncio.TimeoutError as exc:
            LOGGER.error("server listening timeout: %s:%s", self.host, self.port)
            raise ListenError("listening timeout") from exc
        except OSError as exc:
            LOGGER.error("server error: err=%s", exc)
            raise ListenError(str(exc)) from exc
        host, port = self.address or (self.host, self.port)
        LOGGER.info("server listening on %s:%s", host, port)

    async def serve(self) -> None:
        """리슨 소켓이 닫힐 때까지 대기. 닫히면 ListenError (hub는 재시작하지 않는다)."""
        if self._server is None:
            raise ListenError("server not started")
        try:
            await self._server.serve_forever()
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
        LOGGER.error("server closed")
        raise ListenError("listening socket closed")

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        if self._server is None or not self._server.sockets:
            return None
        sockname = self._server.sockets[0].getsockname()
        return sockname[0], sockname[1]

    def stop(self) -> None:
        if self._server is not None:
            self._server.close()
        for session in list(self.sessions.values()):
            session.close()

    # ---------- 세션 관리 ----------
    def accept(self, transport: asyncio.BaseTransport) -> int:
        sid = next(self._session_seq)
        session = Session(sid, transport)
        self.sessions[sid] = session
        LOGGER.info("session connected: conn=%s peer=%s", sid, session.peername)
        self.broadcast(joined_notice(sid))
        return sid

    def on_data(self, session_id: int, chunk: str) -> None:
        session = self.sessions.get(session_id)
        if session is None:
            return
        LOGGER.debug("recv: conn=%s %r", session_id, chunk)
        for line in session.framer.feed(chunk):
            self.broadcast(line)

    def close(self, session_id: int, had_error: bool = False) -> None:
        session = self.sessions.pop(session_id, None)
        if session is None:
            return
        self.broadcast(left_notice(session_id))
        LOGGER.info("session closed: conn=%s hadError=%s", session_id, had_error)

    # ---------- 브로드캐스트 ----------
    def broadcast(self, text: str) -> None:
        LOGGER.info("broadcasting to %d: %r (%d)", len(self.sessions), text, len(text))
        data = encode_line(text)
        for session in list(self.sessions.values()):
            session.send(data)


__all__ = [
    "HubProtocol",
    "ServerHub",
    "Session",
]
