"""Command descriptor loading.

このモジュールは、コマンド記述子（JSONファイル）を読み込み、
CommandRegistryを構築します。

記述子ファイルの形式:
    {
        "GET": {
            "summary": "...",
            "group": "string",
            "arity": 2,
            "function": "handleGetCommand",
            "command_flags": ["READONLY", "FAST"],
            "acl_categories": ["STRING"],
            "command_tips": [],
            "arguments": [{"name": "key", "type": "key"}]
        }
    }
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from .registry import CommandFlag, CommandRegistry, HandlerKind, RedisCommand

logger = logging.getLogger(__name__)

DEFAULT_COMMANDS_DIR = Path(__file__).parent / "command_table"
DESCRIPTOR_SUFFIX = ".json"


@dataclass
class ArgumentDescriptor:
    """コマンド引数の記述. 受け付けるだけで、実行時の検証には使わない"""

    name: str
    type: str
    optional: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "ArgumentDescriptor":
        if not isinstance(data, dict):
            raise ValueError(f"argument descriptor must be an object, got {type(data).__name__}")
        return cls(
            name=_field(data, "name", str, ""),
            type=_field(data, "type", str, ""),
            optional=_field(data, "optional", bool, False),
        )


@dataclass
class CommandDescriptor:
    """1コマンド分の記述子."""

    name: str
    summary: str = ""
    complexity: str = ""
    group: str = ""
    since: str = ""
    arity: int = 0
    function: str = ""
    command_flags: list[str] = field(default_factory=list)
    acl_categories: list[str] = field(default_factory=list)
    command_tips: list[str] = field(default_factory=list)
    arguments: list[ArgumentDescriptor] = field(default_factory=list)

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "CommandDescriptor":
        """JSONオブジェクトから記述子を作成する.

        Raises:
            ValueError: フィールドの型が不正な場合
        """
        if not isinstance(data, dict):
            raise ValueError(f"descriptor for {name!r} must be an object")
        return cls(
            name=name,
            summary=_field(data, "summary", str, ""),
            complexity=_field(data, "complexity", str, ""),
            group=_field(data, "group", str, ""),
            since=_field(data, "since", str, ""),
            arity=_field(data, "arity", int, 0),
            function=_field(data, "function", str, ""),
            command_flags=_string_list(data, "command_flags"),
            acl_categories=_string_list(data, "acl_categories"),
            command_tips=_string_list(data, "command_tips"),
            arguments=[ArgumentDescriptor.from_dict(arg) for arg in _field(data, "arguments", list, [])],
        )


def _field(data: dict, key: str, expected: type, default):
    value = data.get(key, default)
    # boolはintのサブクラスなので区別する
    if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
        raise ValueError(f"field {key!r} must be {expected.__name__}, got {type(value).__name__}")
    return value


def _string_list(data: dict, key: str) -> list[str]:
    values = _field(data, key, list, [])
    if not all(isinstance(value, str) for value in values):
        raise ValueError(f"field {key!r} must be a list of strings")
    return list(values)


class DescriptorLoadError(Exception):
    """記述子ディレクトリを読み込めない場合のエラー（起動時に致命的）"""

    pass


def read_descriptor_file(path: Path) -> list[CommandDescriptor]:
    """記述子ファイルを1つ読み込む.

    Raises:
        OSError: ファイルを読めない場合
        ValueError: JSONまたは記述子の形式が不正な場合
    """
    with path.open("r", encoding="utf-8") as handle:
        raw = json.load(handle)

    if not isinstance(raw, dict):
        raise ValueError("descriptor file must contain an object")

    return [CommandDescriptor.from_dict(name, data) for name, data in raw.items()]


def load_descriptors(directory: Path | str) -> list[CommandDescriptor]:
    """ディレクトリ内の全記述子ファイルを読み込む.

    不正なファイルは警告を出してスキップし、残りのファイルの読み込みを続ける。

    Args:
        directory: 記述子ファイルのディレクトリ

    Returns:
        読み込んだ記述子のリスト（ファイル名順）

    Raises:
        DescriptorLoadError: ディレクトリを読めない場合
    """
    directory = Path(directory)
    try:
        paths = sorted(path for path in directory.iterdir() if path.suffix == DESCRIPTOR_SUFFIX)
    except OSError as e:
        raise DescriptorLoadError(f"cannot read commands directory {directory}: {e}") from e

    descriptors: list[CommandDescriptor] = []
    for path in paths:
        try:
            descriptors.extend(read_descriptor_file(path))
        except (OSError, ValueError) as e:
            # json.JSONDecodeErrorはValueErrorのサブクラス
            logger.warning(f"Skipping descriptor file {path.name}: {e}")
    return descriptors


def build_command(descriptor: CommandDescriptor) -> RedisCommand:
    """記述子からRedisCommandを作成する"""
    name = descriptor.name.upper()
    handler = HandlerKind.from_function_name(descriptor.function)
    if handler is HandlerKind.UNRESOLVED:
        logger.warning(f"Command {name} references unknown function {descriptor.function!r}")

    return RedisCommand(
        name=name,
        handler=handler,
        group=descriptor.group,
        min_args=descriptor.arity,
        flags=CommandFlag.from_tokens(descriptor.command_flags),
        category=",".join(descriptor.acl_categories),
    )


def load_registry(directory: Path | str = DEFAULT_COMMANDS_DIR) -> CommandRegistry:
    """記述子ディレクトリからCommandRegistryを構築する"""
    registry = CommandRegistry(build_command(descriptor) for descriptor in load_descriptors(directory))
    logger.info(f"Loaded {len(registry)} commands from {directory}")
    return registry
