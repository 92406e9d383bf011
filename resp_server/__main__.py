"""Server entry point.

このモジュールは、サーバのエントリポイントです。
`python -m resp_server` または `resp-server` で起動します。
"""

import asyncio
import logging
import sys
from collections.abc import Sequence

from .commands import CommandHandler
from .config import ServerConfig, parse_args
from .descriptors import DescriptorLoadError, load_registry
from .expiry import ExpiryManager
from .protocol import RESPParser
from .server import ClientHandler, TCPServer
from .storage import DataStore

logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO) -> None:
    """ログ設定を初期化."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_server(config: ServerConfig) -> TCPServer:
    """設定からサーバを組み立てる.

    Raises:
        DescriptorLoadError: コマンド記述子のディレクトリを読めない場合
    """
    # コマンド表はリスナーを開く前に一度だけ構築する
    registry = load_registry(config.commands_dir)

    store = DataStore()
    expiry_manager = ExpiryManager(store)
    command_handler = CommandHandler(registry, store, expiry_manager)
    parser = RESPParser()
    client_handler = ClientHandler(parser, command_handler, idle_timeout=config.idle_timeout)

    return TCPServer(client_handler, host=config.host, port=config.port)


async def serve(config: ServerConfig) -> None:
    server = build_server(config)

    logger.info("Starting server...")
    try:
        await server.start()
    finally:
        logger.info("Shutting down server...")
        await server.stop()


def main(argv: Sequence[str] | None = None) -> int:
    """メインエントリポイント."""
    config = parse_args(argv)
    setup_logging(config.log_level_value)

    try:
        asyncio.run(serve(config))
    except DescriptorLoadError as e:
        logger.error(f"Failed to load commands: {e}")
        return 1
    except OSError as e:
        logger.error(f"Failed to bind to {config.host}:{config.port}: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    return 0


if __name__ == "__main__":
    sys.exit(main())
