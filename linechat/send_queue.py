"""재연결을 견디는 FIFO 송신 큐 (client 역할)."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Deque, Optional, Tuple

from .protocol import encode_line

LOGGER = logging.getLogger(__name__)


class SendQueue:
    """보낼 메시지를 순서대로 보관하고, 연결이 준비되면 head부터 하나씩 전송.

    - 동시에 진행 중인 쓰기는 최대 하나 (`sending`)
    - 메시지는 쓰기가 오류 없이 끝난 뒤에만 제거된다
    - 연결이 끊겨도 비우지 않는다 (다음 연결에서 이어서 전송)
    """

    def __init__(self) -> None:
        self._items: Deque[str] = deque()
        self._writer: Optional[asyncio.StreamWriter] = None
        self._sending = False
        self._task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._items)

    @property
    def pending(self) -> Tuple[str, ...]:
        return tuple(self._items)

    @property
    def sending(self) -> bool:
        return self._sending

    def submit(self, line: str) -> None:
        self._items.append(line)
        self.drain()

    # ---------- 연결 핸들 ----------
    def attach(self, writer: asyncio.StreamWriter) -> None:
        self._writer = writer

    def detach(self) -> None:
        self._writer = None

    # ---------- 전송 ----------
    def drain(self) -> None:
        """전송 중이 아니고, 보낼 것이 있고, 열린 연결이 있으면 head 전송을 시작."""
        if self._sending or not self._items:
            return
        writer = self._writer
        if writer is None or writer.is_closing():
            return
        self._sending = True
        self._task = asyncio.get_running_loop().create_task(self._send_head(writer))

    async def _send_head(self, writer: asyncio.StreamWriter) -> None:
        message = self._items[0]
        try:
            writer.write(encode_line(message))
            await writer.drain()
        except OSError as exc:
            # head는 남겨 두고 다음 트리거(submit/재연결)에서 다시 시도
            self._sending = False
            LOGGER.warning("send_message_failed: err=%s", exc)
            if self._writer is not None and self._writer is not writer:
                self.drain()
            return
        self._items.popleft()
        self._sending = False
        LOGGER.debug("sent: %r (%d queued)", message, len(self._items))
        self.drain()

    def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._writer = None


__all__ = [
    "SendQueue",
]
