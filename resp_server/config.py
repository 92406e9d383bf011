"""Server configuration and command-line parsing."""

import argparse
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .descriptors import DEFAULT_COMMANDS_DIR

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 6379
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ServerConfig:
    """サーバの設定.

    Attributes:
        host: バインドするホスト
        port: バインドするポート
        commands_dir: コマンド記述子のディレクトリ
        log_level: ログレベル名
        idle_timeout: 無通信の接続を切断するまでの秒数（Noneの場合は無効）
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    commands_dir: Path = field(default=DEFAULT_COMMANDS_DIR)
    log_level: str = "INFO"
    idle_timeout: float | None = None

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level.upper())


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}")
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="resp-server", description="Minimal Redis-compatible key-value server")
    parser.add_argument("--host", default=DEFAULT_HOST, help="address to bind (default: %(default)s)")
    parser.add_argument("--port", type=_port, default=DEFAULT_PORT, help="port to bind (default: %(default)s)")
    parser.add_argument(
        "--commands-dir",
        type=Path,
        default=DEFAULT_COMMANDS_DIR,
        help="directory of JSON command descriptors",
    )
    parser.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS, default="INFO")
    parser.add_argument(
        "--idle-timeout",
        type=_positive_float,
        default=None,
        help="close connections idle for this many seconds",
    )
    return parser


def parse_args(argv: Sequence[str] | None = None) -> ServerConfig:
    args = build_parser().parse_args(argv)
    return ServerConfig(
        host=args.host,
        port=args.port,
        commands_dir=args.commands_dir,
        log_level=args.log_level,
        idle_timeout=args.idle_timeout,
    )
