"""줄(newline) 기반 텍스트 프로토콜 유틸리티."""

from __future__ import annotations

import codecs
from typing import List, Tuple


ENCODING = "utf-8"
LINE_TERMINATOR = "\n"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3001

LISTEN_TIMEOUT_MS = 1_000
CONNECT_TIMEOUT_MS = 5_000
RETRY_SCHEDULE_MS: Tuple[int, ...] = (500, 1_000, 2_000, 5_000, 10_000)

READ_CHUNK_BYTES = 4096

EXIT_OK = 0
EXIT_FAILURE = 1


class ChatError(Exception):
    """linechat 공용 예외 베이스."""


class ConfigError(ChatError):
    """명령행/환경변수 설정 오류 (치명적, exit 1)."""


class ListenError(ChatError):
    """hub 리슨 실패/타임아웃 또는 리슨 소켓 종료 (치명적, exit 1)."""


class LineFramer:
    """텍스트 스트림을 newline 단위 메시지로 분리하는 헬퍼.

    연결마다 하나씩 두고, 마지막 newline 이후의 나머지는 다음 청크까지 보관한다.
    """

    def __init__(self) -> None:
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: str) -> List[str]:
        """새 텍스트 청크를 넣고 완성된 줄들(개행 제외)을 반환."""
        if not chunk:
            return []
        parts = (self._pending + chunk).split(LINE_TERMINATOR)
        self._pending = parts.pop()
        return parts


class LineDecoder:
    """바이트 청크를 UTF-8로 점진 디코딩한 뒤 줄 단위로 잘라낸다.

    TCP read 경계에서 잘린 멀티바이트 문자는 다음 청크와 합쳐 디코딩된다.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder(ENCODING)(errors="replace")
        self.framer = LineFramer()

    def feed(self, data: bytes) -> List[str]:
        return self.framer.feed(self._decoder.decode(data))


def encode_line(text: str) -> bytes:
    """메시지 본문을 개행 포함 와이어 바이트로 직렬화."""
    return (text + LINE_TERMINATOR).encode(ENCODING)


def joined_notice(session_id: int) -> str:
    return f"{session_id} has joined"


def left_notice(session_id: int) -> str:
    return f"{session_id} has left"


__all__ = [
    "ChatError",
    "ConfigError",
    "ListenError",
    "LineDecoder",
    "LineFramer",
    "encode_line",
    "joined_notice",
    "left_notice",
]
