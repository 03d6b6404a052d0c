"""터미널 입력 디코더 및 프롬프트를 보존하는 로그 출력 (client 역할)."""

from __future__ import annotations

import codecs
import logging
import math
import os
import shutil
import sys
from dataclasses import dataclass
from typing import Callable, Optional, TextIO

LOGGER = logging.getLogger(__name__)

PROMPT = "> "

QUIT_KEYS = {
    "\x03": "CTRL-C",
    "\x04": "CTRL-D",
}
IGNORED_KEYS = {
    "\x1a": "CTRL-Z",
    "\x13": "CTRL-S",
    "\x11": "CTRL-Q",
    "\t": "TAB",
    "\x1b": "ESCAPE",
    "\x1b[A": "UP",
    "\x1b[B": "DOWN",
    "\x1b[C": "RIGHT",
    "\x1b[D": "LEFT",
}
BACKSPACE_KEYS = {"\x7f", "\x08"}
ENTER_KEYS = {"\r", "\n"}

CLEAR_LINE = "\x1b[2K\x1b[0G"
CLEAR_ROW_ABOVE = "\x1b[1A\x1b[K"


@dataclass(frozen=True)
class KeyEvent:
    """raw 입력 한 번을 해석한 결과."""

    name: str
    submitted: Optional[str] = None
    edited: bool = False
    quit: bool = False


class KeyDecoder:
    """raw 모드 stdin 청크를 편집 중인 줄과 완성된 입력으로 변환.

    청크는 한 글자일 수도, 붙여넣기나 이스케이프 시퀀스처럼 여러 글자일 수도 있다.
    """

    def __init__(self) -> None:
        self.line = ""

    def feed(self, raw: str) -> KeyEvent:
        if raw in QUIT_KEYS:
            return KeyEvent(QUIT_KEYS[raw], quit=True)
        if raw in IGNORED_KEYS:
            return KeyEvent(IGNORED_KEYS[raw])
        if raw in BACKSPACE_KEYS:
            self.line = self.line[:-1]
            return KeyEvent("BACKSPACE", edited=True)
        if raw in ENTER_KEYS:
            if not self.line:
                return KeyEvent("ENTER (EMPTY)")
            if not self.line.strip():
                return KeyEvent("ENTER (WHITESPACE)")
            submitted = self.line.strip()
            self.line = ""
            return KeyEvent("ENTER", submitted=submitted, edited=True)
        if raw.startswith("\x1b"):
            return KeyEvent("ESCAPE SEQUENCE")
        self.line += raw
        return KeyEvent("CHARACTER", edited=True)


class Console:
    """입력 중인 줄 위로 로그를 찍고 프롬프트를 다시 그리는 출력 싱크."""

    def __init__(
        self,
        stream: TextIO = sys.stdout,
        *,
        on_submit: Optional[Callable[[str], None]] = None,
        on_quit: Optional[Callable[[int], None]] = None,
        base_level: int = logging.INFO,
    ) -> None:
        self.stream = stream
        self.decoder = KeyDecoder()
        self.on_submit = on_submit
        self.on_quit = on_quit
        self.base_level = base_level

    @property
    def current_line(self) -> str:
        return self.decoder.line

    # ---------- 출력 ----------
    def clear(self) -> None:
        self.stream.write(CLEAR_LINE)
        columns = shutil.get_terminal_size().columns or 80
        rows = math.ceil((len(self.current_line) + len(PROMPT)) / columns)
        for _ in range(1, rows):
            self.stream.write(CLEAR_ROW_ABOVE)

    def prompt(self) -> None:
        self.stream.write(f"{PROMPT}{self.current_line}")
        self.stream.flush()

    def render(self, text: str) -> None:
        self.clear()
        self.stream.write(f"{text}\n")
        self.prompt()

    # ---------- 입력 ----------
    def handle_input(self, raw: str) -> None:
        self.clear()
        event = self.decoder.feed(raw)
        self.prompt()
        if event.name == "CHARACTER":
            LOGGER.debug("Character: %r line: %r (%d)", raw, self.current_line, len(self.current_line))
        else:
            LOGGER.debug("%s", event.name)
        if event.quit:
            self.quit(0)
        elif event.submitted is not None and not self._run_command(event.submitted):
            if self.on_submit is not None:
                self.on_submit(event.submitted)

    def _run_command(self, line: str) -> bool:
        if not line.startswith("/"):
            return False
        cmd, *args = line.split()
        if cmd == "/debug":
            root = logging.getLogger()
            arg = args[0] if args else ""
            if arg == "on":
                enabled = True
            elif arg == "off":
                enabled = False
            else:
                enabled = root.level != logging.DEBUG
            root.setLevel(logging.DEBUG if enabled else self.base_level)
            self.render(f"DEBUG: {enabled}")
            return True
        if cmd == "/exit":
            self.render("EXIT")
            self.quit(0)
            return True
        return False

    def quit(self, code: int) -> None:
        if self.on_quit is not None:
            self.on_quit(code)

    def close(self) -> None:
        self.clear()
        self.stream.write("\n")
        self.stream.flush()


class PromptLogHandler(logging.Handler):
    """로그 레코드를 Console.render로 보내 입력 중인 줄을 보존."""

    def __init__(self, console: Console, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.console = console

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.console.render(self.format(record))
        except Exception:
            self.handleError(record)


class RawInput:
    """stdin을 raw 모드로 바꾸고 이벤트 루프 reader로 Console에 넘긴다."""

    def __init__(self, console: Console, stream: TextIO = sys.stdin) -> None:
        self.console = console
        self.fd = stream.fileno()
        self.is_tty = stream.isatty()
        self._saved_mode: Optional[list] = None
        self._text = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def attach(self, loop) -> None:
        if self.is_tty:
            import termios
            import tty

            self._saved_mode = termios.tcgetattr(self.fd)
            tty.setraw(self.fd)
            # 출력 후처리(\n -> \r\n)는 유지
            mode = termios.tcgetattr(self.fd)
            mode[1] |= termios.OPOST | termios.ONLCR
            termios.tcsetattr(self.fd, termios.TCSADRAIN, mode)
        loop.add_reader(self.fd, self._on_readable)
        self.console.prompt()

    def detach(self, loop) -> None:
        loop.remove_reader(self.fd)
        if self._saved_mode is not None:
            import termios

            termios.tcsetattr(self.fd, termios.TCSADRAIN, self._saved_mode)
            self._saved_mode = None

    def _on_readable(self) -> None:
        data = os.read(self.fd, 1024)
        if not data:
            self.console.quit(0)
            return
        text = self._text.decode(data)
        if text:
            self.console.handle_input(text)


__all__ = [
    "Console",
    "KeyDecoder",
    "KeyEvent",
    "PromptLogHandler",
    "RawInput",
]
