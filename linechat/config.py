"""명령행/환경변수 설정."""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from .protocol import DEFAULT_HOST, DEFAULT_PORT, ConfigError

ROLES = ("client", "server")


@dataclass(frozen=True)
class Settings:
    use: str = "client"
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"


class _Parser(argparse.ArgumentParser):
    """파싱 오류 시 exit(2) 대신 ConfigError."""

    def error(self, message: str):  # type: ignore[override]
        raise ConfigError(message)


def build_parser(environ: Mapping[str, str]) -> argparse.ArgumentParser:
    # -h는 --host가 쓰므로 도움말은 --help만
    parser = _Parser(
        prog="linechat",
        description="Line-based TCP chat (hub/peer)",
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument(
        "-u",
        "--use",
        metavar="<client|server>",
        default=environ.get("USE") or "client",
        help="Run as either the client or server (default: client) (USE)",
    )
    parser.add_argument(
        "-h",
        "--host",
        metavar="<host>",
        default=environ.get("HOST") or DEFAULT_HOST,
        help=f"Host to connect to (default: {DEFAULT_HOST}) (HOST)",
    )
    parser.add_argument(
        "-p",
        "--port",
        metavar="<port>",
        default=environ.get("PORT") or str(DEFAULT_PORT),
        help=f"Port to connect to (default: {DEFAULT_PORT}) (PORT)",
    )
    parser.add_argument(
        "--log-level",
        default=environ.get("LOG_LEVEL") or "INFO",
        help="로그 레벨 (DEBUG/INFO/...) (LOG_LEVEL)",
    )
    parser.add_argument("--help", action="help", help="Show this message and exit")
    return parser


def parse_port(value: str) -> int:
    try:
        port = int(str(value).strip(), 10)
    except ValueError:
        raise ConfigError(f"Invalid port: {value}") from None
    if not 0 <= port <= 65535:
        raise ConfigError(f"Invalid port: {value}")
    return port


def parse_args(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """argv/환경변수를 Settings로 변환. --help는 usage 출력 후 SystemExit(0)."""
    env = os.environ if environ is None else environ
    args = build_parser(env).parse_args(argv)
    if args.use not in ROLES:
        raise ConfigError("Invalid value for --use")
    host = args.host.strip()
    if not host:
        raise ConfigError("Missing value for --host")
    return Settings(
        use=args.use,
        host=host,
        port=parse_port(args.port),
        log_level=args.log_level,
    )


__all__ = [
    "Settings",
    "build_parser",
    "parse_args",
    "parse_port",
]
