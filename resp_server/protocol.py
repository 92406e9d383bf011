"""RESP (REdis Serialization Protocol) parser and encoder.

このモジュールは、クライアントからのリクエストのパース（バイト列→コマンド）と
応答のエンコード（Pythonオブジェクト→バイト列）を担当します。

リクエストは2種類のフレーミングを受け付けます:
- インライン: ``PING\\r\\n`` のような1行のテキスト（引数なし）
- 配列: ``*<n>\\r\\n`` に続くn個のRESP値（Bulk Stringなど）
"""

from asyncio import StreamReader
from dataclasses import dataclass, field

CRLF = b"\r\n"

# RESPの型プレフィックス
SIMPLE_STRING_PREFIX = b"+"
ERROR_PREFIX = b"-"
INTEGER_PREFIX = b":"
BULK_STRING_PREFIX = b"$"
ARRAY_PREFIX = b"*"

# 任意のバイト列をstrとして往復させるためのエラーハンドラ
ENCODING = "utf-8"
ENCODING_ERRORS = "surrogateescape"


@dataclass
class SimpleString:
    """Simple String型を表すラッパー (+)"""
    value: str

@dataclass
class RedisError:
    """Error型を表すラッパー (-)"""
    value: str

@dataclass
class Integer:
    """Integer型を表すラッパー (:)"""
    value: int

@dataclass
class BulkString:
    """Bulk String型を表すラッパー ($)"""
    value: str | None

@dataclass
class BulkList:
    """Bulk Stringを連結して返す応答 (ネストしたリストは再帰的に展開)"""
    items: list

@dataclass
class Array:
    """Array型を表すラッパー (*)"""
    items: list | None  # Noneの場合はNull Array


@dataclass
class Command:
    """デコード済みのコマンド.

    Attributes:
        name: 大文字に正規化したコマンド名
        args: 引数のリスト（str / None / ネストしたlist）
    """

    name: str
    args: list = field(default_factory=list)


def decode_text(data: bytes) -> str:
    return data.decode(ENCODING, ENCODING_ERRORS)


def encode_text(value: str) -> bytes:
    return value.encode(ENCODING, ENCODING_ERRORS)


class RESPParser:
    """RESPプロトコルのパーサ・エンコーダ.

    責務:
    - リクエストのパース（StreamReaderから1コマンド分だけ読み取る）
    - 応答のエンコード（各RESP型のバイト列を生成）

    パーサは状態を持たないため、複数の接続で共有できる。
    """

    async def parse_command(self, reader: StreamReader) -> Command | None:
        """1コマンド分のバイト列を読み取ってパースする.

        Args:
            reader: asyncioのStreamReader

        Returns:
            パースしたCommand。空行、空の配列、配列以外の値の場合はNone

        Raises:
            RESPProtocolError: フレームが不正な場合
            asyncio.IncompleteReadError: コマンドの途中でストリームが終了した場合
        """
        line = await reader.readuntil(b"\n")

        # 先頭が'*'でなければインラインコマンド
        if not line.startswith(ARRAY_PREFIX):
            name = decode_text(line).strip().upper()
            if not name:
                return None
            return Command(name=name, args=[])

        value = await self._parse_array(reader, line[1:])
        if not value:
            # Null Arrayまたは空の配列
            return None

        head, *args = value
        if not isinstance(head, str):
            raise RESPProtocolError(f"Invalid command name: {head!r}")

        return Command(name=head.upper(), args=args)

    async def parse_value(self, reader: StreamReader) -> str | list | None:
        """RESP値を1つパースする（配列は再帰的にパース）"""
        line = await reader.readuntil(b"\n")
        prefix, body = line[:1], line[1:]

        if prefix in (SIMPLE_STRING_PREFIX, ERROR_PREFIX, INTEGER_PREFIX):
            return decode_text(body).strip()
        elif prefix == BULK_STRING_PREFIX:
            return await self._parse_bulk_string(reader, body)
        elif prefix == ARRAY_PREFIX:
            return await self._parse_array(reader, body)
        else:
            raise RESPProtocolError(f"Invalid RESP prefix: {prefix!r}")

    async def _parse_array(self, reader: StreamReader, header: bytes) -> list | None:
        """Arrayの要素をパースする"""
        count = self._parse_length(header, "array")
        if count == -1:
            return None

        result = []
        for _ in range(count):
            result.append(await self.parse_value(reader))
        return result

    async def _parse_bulk_string(self, reader: StreamReader, header: bytes) -> str | None:
        """Bulk Stringをパースする"""
        length = self._parse_length(header, "bulk string")
        if length == -1:
            return None

        # データを読む（データ + \r\n）
        data = await reader.readexactly(length + 2)

        # 末尾が\r\nかチェック
        if data[-2:] != CRLF:
            raise RESPProtocolError("Expected CRLF after bulk string")

        return decode_text(data[:-2])

    @staticmethod
    def _parse_length(header: bytes, kind: str) -> int:
        try:
            length = int(header.strip())
        except ValueError:
            raise RESPProtocolError(f"Invalid {kind} length: {header!r}")

        if length < -1:
            raise RESPProtocolError(f"Invalid {kind} length: {length}")
        return length

    def encode_command(self, *parts: str) -> bytes:
        """コマンドをBulk Stringの配列としてエンコードする（クライアント用）"""
        return self.encode_array([BulkString(part) for part in parts])

    def encode_simple_string(self, value: str) -> bytes:
        """Simple Stringをエンコードする"""
        return SIMPLE_STRING_PREFIX + encode_text(value) + CRLF

    def encode_error(self, message: str) -> bytes:
        """エラーメッセージをエンコードする"""
        return ERROR_PREFIX + encode_text(message) + CRLF

    def encode_integer(self, value: int) -> bytes:
        """整数をエンコードする"""
        return f":{value}\r\n".encode(ENCODING)

    def encode_bulk_string(self, value: str | None) -> bytes:
        """Bulk Stringをエンコードする"""
        if value is None:
            # Null値
            return b"$-1\r\n"

        data = encode_text(value)
        # $<length>\r\n<data>\r\n
        return f"${len(data)}\r\n".encode(ENCODING) + data + CRLF

    def encode_bulk_list(self, items: list) -> bytes:
        """各要素のBulk Stringを順に連結する.

        ネストしたリストは再帰的に展開する。未対応の型が含まれる場合は
        応答全体をエラーに置き換える。
        """
        if not items:
            # 空のリストでも応答を1つ返す
            return self.encode_simple_string("")

        result = b""
        for item in items:
            if item is None or isinstance(item, str):
                result += self.encode_bulk_string(item)
            elif isinstance(item, list):
                nested = self.encode_bulk_list(item)
                if nested.startswith(ERROR_PREFIX):
                    return nested
                result += nested
            else:
                return self.encode_unknown_type(item)
        return result

    def encode_array(self, items: list | None) -> bytes:
        """Arrayをエンコード"""
        if items is None:
            # Null Array
            return b"*-1\r\n"

        result = f"*{len(items)}\r\n".encode(ENCODING)
        for item in items:
            result += self.encode_response(item)
        return result

    def encode_unknown_type(self, value: object) -> bytes:
        return self.encode_error(f"ERR unknown argument type {type(value).__name__}")

    def encode_response(self, result) -> bytes:
        """応答を適切な形式でエンコードする"""
        if isinstance(result, SimpleString):
            return self.encode_simple_string(result.value)
        elif isinstance(result, RedisError):
            return self.encode_error(result.value)
        elif isinstance(result, Integer):
            return self.encode_integer(result.value)
        elif isinstance(result, BulkString):
            return self.encode_bulk_string(result.value)
        elif isinstance(result, BulkList):
            return self.encode_bulk_list(result.items)
        elif isinstance(result, Array):
            return self.encode_array(result.items)
        else:
            return self.encode_unknown_type(result)


class RESPProtocolError(Exception):
    """RESPプロトコルのパースエラー.

    接続の読み取りループを終了させる致命的なエラー。

    例:
        raise RESPProtocolError(f"Invalid RESP prefix: {prefix!r}")
    """

    pass
