"""Command registry.

起動時に一度だけ構築され、以後は読み取り専用になるコマンド表です。
複数の接続から同時に参照されますが、変更されないためロックは不要です。
"""

import enum
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType


class CommandFlag(enum.IntFlag):
    """コマンドフラグのビットフィールド"""

    NONE = 0
    FAST = 1
    SENTINEL = 2

    @classmethod
    def from_tokens(cls, tokens: Iterable[str]) -> "CommandFlag":
        """フラグ名のリストをビットフィールドに詰める. 未知のフラグは無視する"""
        flags = cls.NONE
        for token in tokens:
            member = cls.__members__.get(token.upper())
            if member is not None:
                flags |= member
        return flags


class HandlerKind(enum.Enum):
    """サポートするハンドラの種類.

    記述子の関数名トークンから固定の対応表で解決する。
    対応表にないトークンはUNRESOLVEDになる。
    """

    PING = "pingCommand"
    ECHO = "echoCommand"
    SET = "handleSetCommand"
    GET = "handleGetCommand"
    UNRESOLVED = ""

    @classmethod
    def from_function_name(cls, name: str) -> "HandlerKind":
        for kind in cls:
            if kind is not cls.UNRESOLVED and kind.value == name:
                return kind
        return cls.UNRESOLVED


@dataclass(frozen=True)
class RedisCommand:
    """コマンド表の1エントリ.

    Attributes:
        name: 大文字に正規化したコマンド名
        handler: 解決済みのハンドラ種別
        group: コマンドグループ（"string", "connection"など）
        min_args: 記述子のarity。説明用のメタデータで、引数の検証は各ハンドラが行う
        flags: コマンドフラグ
        category: ACLカテゴリをカンマで連結した表示用文字列
    """

    name: str
    handler: HandlerKind
    group: str = ""
    min_args: int = 0
    flags: CommandFlag = CommandFlag.NONE
    category: str = ""

    @property
    def resolved(self) -> bool:
        return self.handler is not HandlerKind.UNRESOLVED


class CommandRegistry(Mapping):
    """コマンド名からRedisCommandへの読み取り専用マッピング."""

    def __init__(self, commands: Iterable[RedisCommand] = ()) -> None:
        table: dict[str, RedisCommand] = {}
        for command in commands:
            # 同名のコマンドは後勝ち
            table[command.name.upper()] = command
        self._commands = MappingProxyType(table)

    def __getitem__(self, name: str) -> RedisCommand:
        return self._commands[name.upper()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._commands)

    def __len__(self) -> int:
        return len(self._commands)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.upper() in self._commands

    def get(self, name: str, default: RedisCommand | None = None) -> RedisCommand | None:
        return self._commands.get(name.upper(), default)

    def names(self) -> list[str]:
        return sorted(self._commands)

    def __repr__(self) -> str:
        return f"CommandRegistry({self.names()!r})"
