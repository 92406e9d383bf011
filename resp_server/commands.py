"""Command handler.

このモジュールは、コマンドのルーティングと実行を担当します。
コマンド名はCommandRegistryで解決し、ハンドラ種別ごとに
execute_*メソッドへ振り分けます。
"""

import logging
import re
from collections.abc import Awaitable, Callable

from .expiry import ExpiryManager
from .protocol import BulkList, BulkString, SimpleString
from .registry import CommandRegistry, HandlerKind
from .storage import DataStore

logger = logging.getLogger(__name__)

EXPIRY_OPTION_PX = "PX"

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")

# 有効期限のミリ秒は符号付き64ビット整数の範囲に収める
MAX_EXPIRY_MS = 2**63 - 1
MIN_EXPIRY_MS = -(2**63)

Reply = SimpleString | BulkString | BulkList


class CommandHandler:
    """コマンドのハンドラ.

    責務:
    - コマンド名からハンドラへのルーティング
    - 各コマンドの引数検証と実行

    引数の数の検証は各execute_*メソッドが独自に行う。
    レジストリのmin_argsは説明用のメタデータとしてのみ扱う。
    """

    def __init__(self, registry: CommandRegistry, store: DataStore, expiry: ExpiryManager) -> None:
        """ハンドラを初期化.

        Args:
            registry: 読み取り専用のコマンド表
            store: DataStoreのインスタンス
            expiry: ExpiryManagerのインスタンス
        """
        self._registry = registry
        self._store = store
        self._expiry = expiry
        self._handlers: dict[HandlerKind, Callable[[list], Awaitable[Reply]]] = {
            HandlerKind.PING: self.execute_ping,
            HandlerKind.ECHO: self.execute_echo,
            HandlerKind.SET: self.execute_set,
            HandlerKind.GET: self.execute_get,
        }

    async def execute(self, name: str, args: list) -> Reply:
        """コマンドを実行する.

        Args:
            name: 大文字に正規化済みのコマンド名
            args: 引数のリスト

        Returns:
            コマンドの実行結果

        Raises:
            CommandError: 未知のコマンド、引数エラーなど
            UnresolvedCommandError: ハンドラが解決できないコマンドの場合
        """
        command = self._registry.get(name)
        if command is None:
            raise CommandError(f"ERR unknown command '{name}'")

        handler = self._handlers.get(command.handler)
        if handler is None:
            logger.error(f"Command {command.name} has no resolved handler")
            raise UnresolvedCommandError(command.name)

        logger.debug(f"Executing {command.name} with {len(args)} argument(s)")
        return await handler(args)

    async def execute_ping(self, args: list) -> SimpleString | BulkList:
        """PINGコマンドを実行"""
        if len(args) == 0:
            return SimpleString("PONG")
        elif len(args) == 1:
            # 引数あり: メッセージをエコーバック
            return BulkList(args)
        else:
            raise ArityError("ping")

    async def execute_echo(self, args: list) -> BulkString:
        """ECHOコマンドを実行"""
        if len(args) != 1:
            raise ArityError("echo")

        message = args[0]
        if not isinstance(message, str):
            raise CommandError("ERR invalid argument type")

        return BulkString(message)

    async def execute_set(self, args: list) -> SimpleString:
        """SETコマンドを実行.

        SET key value
        SET key value PX milliseconds

        有効期限なしのSETは既存の有効期限をクリアする。
        """
        if len(args) not in (2, 4):
            raise ArityError("set")

        key, value = args[0], args[1]
        if not isinstance(key, str):
            raise CommandError("ERR invalid key type")
        if not isinstance(value, str):
            raise CommandError("ERR invalid value type")

        expiry_at = None
        if len(args) == 4:
            option, milliseconds = args[2], args[3]
            if not isinstance(option, str) or option.upper() != EXPIRY_OPTION_PX:
                raise CommandError("ERR invalid expiry option")
            if not isinstance(milliseconds, str):
                raise CommandError("ERR invalid expiry type")
            if not _INTEGER_RE.fullmatch(milliseconds):
                raise CommandError("ERR invalid expiry value")
            try:
                expiry_ms = int(milliseconds)
            except ValueError:
                # 桁数が変換上限を超える場合
                raise CommandError("ERR invalid expiry value") from None
            if not MIN_EXPIRY_MS <= expiry_ms <= MAX_EXPIRY_MS:
                raise CommandError("ERR invalid expiry value")
            expiry_at = self._expiry.expiry_at_from_ms(expiry_ms)

        self._store.set(key, value, expiry_at=expiry_at)
        return SimpleString("OK")

    async def execute_get(self, args: list) -> BulkString:
        """GETコマンドを実行"""
        if len(args) != 1:
            raise ArityError("get")

        key = args[0]
        if not isinstance(key, str):
            raise CommandError("ERR invalid key type")

        # Passive Expiry: 期限切れなら削除してnullを返す
        return BulkString(self._expiry.get_unexpired(key))


class CommandError(Exception):
    """コマンド実行エラー.

    【使い方】
    コマンド実行時のエラー（引数不足、型エラー、未知のコマンド等）を表す。
    メッセージはそのままエラー応答としてクライアントに返される。

    例:
        raise CommandError("ERR unknown command 'FOO'")
        raise CommandError("ERR invalid expiry value")
    """

    pass


class ArityError(CommandError):
    """引数の数が不正."""

    def __init__(self, command: str) -> None:
        super().__init__(f"ERR wrong number of arguments for '{command}' command")


class UnresolvedCommandError(CommandError):
    """記述子に登録されているが、ハンドラが解決できないコマンド."""

    def __init__(self, command: str) -> None:
        super().__init__(f"ERR command '{command}' is not implemented by this server")
