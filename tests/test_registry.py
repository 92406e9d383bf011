"""Tests for the command registry."""

import pytest

from resp_server.registry import CommandFlag, CommandRegistry, HandlerKind, RedisCommand


class TestCommandFlag:
    """フラグのビットフィールドのテスト."""

    def test_from_tokens_packs_known_flags(self) -> None:
        assert CommandFlag.from_tokens(["FAST"]) == CommandFlag.FAST
        assert CommandFlag.from_tokens(["FAST", "SENTINEL"]) == CommandFlag.FAST | CommandFlag.SENTINEL
        assert int(CommandFlag.from_tokens(["SENTINEL", "FAST"])) == 3

    def test_from_tokens_ignores_unknown_flags(self) -> None:
        assert CommandFlag.from_tokens(["WRITE", "DENYOOM"]) == CommandFlag.NONE
        assert CommandFlag.from_tokens(["READONLY", "FAST"]) == CommandFlag.FAST

    def test_from_tokens_empty(self) -> None:
        assert CommandFlag.from_tokens([]) == CommandFlag.NONE


class TestHandlerKind:
    """関数名トークンの解決のテスト."""

    @pytest.mark.parametrize(
        ("token", "kind"),
        [
            ("pingCommand", HandlerKind.PING),
            ("echoCommand", HandlerKind.ECHO),
            ("handleSetCommand", HandlerKind.SET),
            ("handleGetCommand", HandlerKind.GET),
        ],
    )
    def test_known_tokens(self, token: str, kind: HandlerKind) -> None:
        assert HandlerKind.from_function_name(token) is kind

    @pytest.mark.parametrize("token", ["", "delCommand", "PINGCOMMAND"])
    def test_unknown_tokens_are_unresolved(self, token: str) -> None:
        assert HandlerKind.from_function_name(token) is HandlerKind.UNRESOLVED


class TestCommandRegistry:
    """CommandRegistryのテスト."""

    def test_lookup_is_case_insensitive(self) -> None:
        ping = RedisCommand(name="PING", handler=HandlerKind.PING)
        registry = CommandRegistry([ping])

        assert registry.get("ping") is ping
        assert registry["Ping"] is ping
        assert "ping" in registry
        assert registry.get("missing") is None

    def test_names_are_canonicalized_to_upper_case(self) -> None:
        registry = CommandRegistry([RedisCommand(name="get", handler=HandlerKind.GET)])

        assert registry.names() == ["GET"]
        assert list(registry) == ["GET"]

    def test_later_duplicate_wins(self) -> None:
        first = RedisCommand(name="GET", handler=HandlerKind.GET)
        second = RedisCommand(name="GET", handler=HandlerKind.UNRESOLVED)

        registry = CommandRegistry([first, second])

        assert len(registry) == 1
        assert registry["GET"] is second

    def test_registry_is_read_only(self) -> None:
        registry = CommandRegistry([RedisCommand(name="GET", handler=HandlerKind.GET)])

        with pytest.raises(TypeError):
            registry["SET"] = RedisCommand(name="SET", handler=HandlerKind.SET)

    def test_unresolved_command_is_registered(self) -> None:
        command = RedisCommand(name="DEL", handler=HandlerKind.UNRESOLVED)
        registry = CommandRegistry([command])

        assert registry["DEL"].resolved is False
        assert RedisCommand(name="GET", handler=HandlerKind.GET).resolved is True
