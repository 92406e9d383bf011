"""Tests for RESP protocol parser and encoder."""

import asyncio

import pytest

from resp_server.protocol import (
    Array,
    BulkList,
    BulkString,
    Command,
    Integer,
    RedisError,
    RESPParser,
    RESPProtocolError,
    SimpleString,
)


def make_reader(data: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


class TestRESPEncoder:
    """Test RESP encoding functions."""

    def test_encode_simple_string(self) -> None:
        """Test encoding simple strings."""
        parser = RESPParser()

        assert parser.encode_simple_string("OK") == b"+OK\r\n"
        assert parser.encode_simple_string("PONG") == b"+PONG\r\n"

        # 空文字列
        assert parser.encode_simple_string("") == b"+\r\n"

    def test_encode_error(self) -> None:
        """Test encoding errors."""
        parser = RESPParser()

        assert parser.encode_error("ERR unknown command 'FOO'") == b"-ERR unknown command 'FOO'\r\n"

    def test_encode_integer(self) -> None:
        """Test encoding integers."""
        parser = RESPParser()

        assert parser.encode_integer(0) == b":0\r\n"
        assert parser.encode_integer(42) == b":42\r\n"
        assert parser.encode_integer(-1) == b":-1\r\n"

    def test_encode_bulk_string(self) -> None:
        """Test encoding bulk strings."""
        parser = RESPParser()

        assert parser.encode_bulk_string("foo") == b"$3\r\nfoo\r\n"
        assert parser.encode_bulk_string("") == b"$0\r\n\r\n"
        assert parser.encode_bulk_string(None) == b"$-1\r\n"

        # 複数行を含む文字列
        assert parser.encode_bulk_string("foo\r\nbar") == b"$8\r\nfoo\r\nbar\r\n"

    def test_encode_bulk_string_uses_byte_length(self) -> None:
        """マルチバイト文字の長さはバイト数で数える."""
        parser = RESPParser()

        assert parser.encode_bulk_string("héllo") == b"$6\r\nh\xc3\xa9llo\r\n"

    def test_encode_bulk_list_concatenates_elements(self) -> None:
        """リストは各要素のBulk Stringを連結する（配列ヘッダなし）."""
        parser = RESPParser()

        assert parser.encode_bulk_list(["a", "bc"]) == b"$1\r\na\r\n$2\r\nbc\r\n"

    def test_encode_empty_bulk_list_is_empty_simple_string(self) -> None:
        """空のリストも空のSimple Stringとして必ず応答を返す."""
        parser = RESPParser()

        assert parser.encode_bulk_list([]) == b"+\r\n"
        assert parser.encode_bulk_list([[]]) == b"+\r\n"
        assert parser.encode_bulk_list(["a", []]) == b"$1\r\na\r\n+\r\n"
        assert parser.encode_response(BulkList([])) == b"+\r\n"

    def test_encode_bulk_list_recurses_into_nested_lists(self) -> None:
        parser = RESPParser()

        assert parser.encode_bulk_list(["a", ["b", ["c"]], None]) == (
            b"$1\r\na\r\n$1\r\nb\r\n$1\r\nc\r\n$-1\r\n"
        )

    def test_encode_bulk_list_unsupported_type_is_error_reply(self) -> None:
        """未対応の型は例外ではなくエラー応答になる."""
        parser = RESPParser()

        assert parser.encode_bulk_list(["a", 3.5]) == b"-ERR unknown argument type float\r\n"
        assert parser.encode_bulk_list([["a", {"k": 1}]]) == b"-ERR unknown argument type dict\r\n"

    def test_encode_array(self) -> None:
        parser = RESPParser()

        assert parser.encode_array([BulkString("a"), Integer(1)]) == b"*2\r\n$1\r\na\r\n:1\r\n"
        assert parser.encode_array(None) == b"*-1\r\n"

    def test_encode_response_dispatches_on_type(self) -> None:
        parser = RESPParser()

        assert parser.encode_response(SimpleString("OK")) == b"+OK\r\n"
        assert parser.encode_response(RedisError("ERR x")) == b"-ERR x\r\n"
        assert parser.encode_response(Integer(7)) == b":7\r\n"
        assert parser.encode_response(BulkString(None)) == b"$-1\r\n"
        assert parser.encode_response(BulkList(["hi"])) == b"$2\r\nhi\r\n"
        assert parser.encode_response(Array([])) == b"*0\r\n"

    def test_encode_response_unknown_type(self) -> None:
        parser = RESPParser()

        assert parser.encode_response(object()) == b"-ERR unknown argument type object\r\n"

    def test_encode_command(self) -> None:
        parser = RESPParser()

        assert parser.encode_command("SET", "foo", "bar") == (
            b"*3\r\n$3\r\nSET\r\n$3\r\nfoo\r\n$3\r\nbar\r\n"
        )


class TestRESPParser:
    """Test RESP parsing functions."""

    @pytest.mark.asyncio
    async def test_parse_simple_command(self) -> None:
        """Test parsing simple commands like PING."""
        parser = RESPParser()

        result = await parser.parse_command(make_reader(b"*1\r\n$4\r\nPING\r\n"))
        assert result == Command("PING", [])

    @pytest.mark.asyncio
    async def test_parse_command_with_arguments(self) -> None:
        """Test parsing commands with arguments."""
        parser = RESPParser()

        result = await parser.parse_command(make_reader(b"*3\r\n$3\r\nSET\r\n$3\r\nkey\r\n$5\r\nvalue\r\n"))
        assert result == Command("SET", ["key", "value"])

    @pytest.mark.asyncio
    async def test_command_name_is_uppercased_but_arguments_are_not(self) -> None:
        parser = RESPParser()

        result = await parser.parse_command(make_reader(b"*2\r\n$3\r\nget\r\n$3\r\nFoo\r\n"))
        assert result == Command("GET", ["Foo"])

    @pytest.mark.asyncio
    async def test_parse_command_with_empty_string(self) -> None:
        """Test parsing commands with empty string arguments."""
        parser = RESPParser()

        result = await parser.parse_command(make_reader(b"*3\r\n$3\r\nSET\r\n$3\r\nkey\r\n$0\r\n\r\n"))
        assert result == Command("SET", ["key", ""])

    @pytest.mark.asyncio
    async def test_parse_bulk_string_with_crlf_inside(self) -> None:
        """Bulk Stringは長さで読むので、中のCRLFもそのまま保持される."""
        parser = RESPParser()

        result = await parser.parse_command(make_reader(b"*2\r\n$4\r\nECHO\r\n$8\r\nfoo\r\nbar\r\n"))
        assert result == Command("ECHO", ["foo\r\nbar"])

    @pytest.mark.asyncio
    async def test_parse_binary_payload_round_trips(self) -> None:
        """任意のバイト列はデコード→エンコードで元に戻る."""
        parser = RESPParser()
        payload = b"\x00\xff\xfe\r\n"

        result = await parser.parse_command(make_reader(b"*2\r\n$4\r\nECHO\r\n$5\r\n" + payload + b"\r\n"))
        assert result is not None
        assert parser.encode_bulk_string(result.args[0]) == b"$5\r\n" + payload + b"\r\n"

    @pytest.mark.asyncio
    async def test_parse_null_bulk_string_argument(self) -> None:
        parser = RESPParser()

        result = await parser.parse_command(make_reader(b"*2\r\n$4\r\nECHO\r\n$-1\r\n"))
        assert result == Command("ECHO", [None])

    @pytest.mark.asyncio
    async def test_parse_nested_array_and_simple_types(self) -> None:
        """配列の要素は入れ子の配列や他の型でもよい."""
        parser = RESPParser()
        data = b"*4\r\n$4\r\nECHO\r\n*2\r\n$1\r\na\r\n:5\r\n+OK\r\n-ERR x\r\n"

        result = await parser.parse_command(make_reader(data))
        assert result == Command("ECHO", [["a", "5"], "OK", "ERR x"])

    @pytest.mark.asyncio
    async def test_parse_multiple_commands_sequentially(self) -> None:
        """1つのストリームから1コマンドずつ読み取る."""
        parser = RESPParser()
        reader = make_reader(
            b"*1\r\n$4\r\nPING\r\n"
            b"*2\r\n$3\r\nGET\r\n$3\r\nfoo\r\n"
            b"PING\r\n"
        )

        assert await parser.parse_command(reader) == Command("PING", [])
        assert await parser.parse_command(reader) == Command("GET", ["foo"])
        assert await parser.parse_command(reader) == Command("PING", [])

    @pytest.mark.asyncio
    async def test_encode_then_parse_reproduces_command(self) -> None:
        parser = RESPParser()
        args = ["key", "", "with space", "x" * 100]

        result = await parser.parse_command(make_reader(parser.encode_command("set", *args)))
        assert result == Command("SET", args)


class TestInlineCommands:
    """インラインコマンドのテスト."""

    @pytest.mark.asyncio
    async def test_inline_command(self) -> None:
        parser = RESPParser()

        assert await parser.parse_command(make_reader(b"ping\r\n")) == Command("PING", [])

    @pytest.mark.asyncio
    async def test_inline_command_with_bare_newline(self) -> None:
        parser = RESPParser()

        assert await parser.parse_command(make_reader(b"PING\n")) == Command("PING", [])

    @pytest.mark.asyncio
    async def test_inline_command_trims_whitespace(self) -> None:
        parser = RESPParser()

        assert await parser.parse_command(make_reader(b"  foo \t\r\n")) == Command("FOO", [])

    @pytest.mark.asyncio
    async def test_inline_line_is_not_split_into_arguments(self) -> None:
        """インライン形式では引数をパースしない."""
        parser = RESPParser()

        result = await parser.parse_command(make_reader(b"echo hi\r\n"))
        assert result == Command("ECHO HI", [])

    @pytest.mark.asyncio
    async def test_empty_inline_line_yields_no_command(self) -> None:
        parser = RESPParser()
        reader = make_reader(b"\r\n   \r\nPING\r\n")

        assert await parser.parse_command(reader) is None
        assert await parser.parse_command(reader) is None
        assert await parser.parse_command(reader) == Command("PING", [])


class TestNoCommand:
    """コマンドにならない配列のテスト."""

    @pytest.mark.asyncio
    async def test_empty_array_yields_no_command(self) -> None:
        parser = RESPParser()

        assert await parser.parse_command(make_reader(b"*0\r\n")) is None

    @pytest.mark.asyncio
    async def test_null_array_yields_no_command(self) -> None:
        parser = RESPParser()

        assert await parser.parse_command(make_reader(b"*-1\r\n")) is None


class TestRESPProtocolErrors:
    """Test RESP protocol error handling."""

    @pytest.mark.asyncio
    async def test_invalid_array_length(self) -> None:
        parser = RESPParser()

        with pytest.raises(RESPProtocolError):
            await parser.parse_command(make_reader(b"*ABC\r\n"))

    @pytest.mark.asyncio
    async def test_negative_array_length(self) -> None:
        parser = RESPParser()

        with pytest.raises(RESPProtocolError):
            await parser.parse_command(make_reader(b"*-2\r\n"))

    @pytest.mark.asyncio
    async def test_invalid_bulk_string_length(self) -> None:
        """Test handling of invalid bulk string length."""
        parser = RESPParser()

        with pytest.raises(RESPProtocolError):
            await parser.parse_command(make_reader(b"*1\r\n$ABC\r\nPING\r\n"))

    @pytest.mark.asyncio
    async def test_unknown_type_prefix(self) -> None:
        parser = RESPParser()

        with pytest.raises(RESPProtocolError):
            await parser.parse_command(make_reader(b"*1\r\n%4\r\nPING\r\n"))

    @pytest.mark.asyncio
    async def test_non_text_command_name(self) -> None:
        """先頭要素が文字列でない場合はエラー."""
        parser = RESPParser()

        with pytest.raises(RESPProtocolError):
            await parser.parse_command(make_reader(b"*2\r\n$-1\r\n$3\r\nfoo\r\n"))

    @pytest.mark.asyncio
    async def test_incomplete_message(self) -> None:
        """Test handling of incomplete messages."""
        parser = RESPParser()

        with pytest.raises(asyncio.IncompleteReadError):
            await parser.parse_command(make_reader(b"*1\r\n$4\r\nPI"))

    @pytest.mark.asyncio
    async def test_missing_elements(self) -> None:
        parser = RESPParser()

        with pytest.raises(asyncio.IncompleteReadError):
            await parser.parse_command(make_reader(b"*3\r\n$3\r\nSET\r\n"))

    @pytest.mark.asyncio
    async def test_length_mismatch(self) -> None:
        """Test handling of length mismatch in bulk strings."""
        parser = RESPParser()

        with pytest.raises(RESPProtocolError):
            await parser.parse_command(make_reader(b"*1\r\n$4\r\nPINGEXTRA\r\n"))

    @pytest.mark.asyncio
    async def test_eof_before_any_data(self) -> None:
        parser = RESPParser()

        with pytest.raises(asyncio.IncompleteReadError):
            await parser.parse_command(make_reader(b""))
