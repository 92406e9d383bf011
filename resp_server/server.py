"""TCP server, connection pipeline and per-connection executor.

このモジュールは、TCPサーバの起動と管理、
および個別クライアント接続の処理を担当します。

接続ごとに以下の2つのタスクが動きます:
- 読み取りループ（ClientHandler.handle）: コマンドを1つずつパースして実行器に渡す
- 実行器（CommandExecutor）: キューからコマンドを1つずつ取り出して実行する

1つの接続内ではコマンドは常に1つずつ、送信された順に実行・応答される。
接続同士は独立して並行に動作する。
"""

import asyncio
import contextlib
import logging
from asyncio import StreamReader, StreamWriter

from .commands import CommandError, CommandHandler
from .protocol import Command, RESPParser, RESPProtocolError

logger = logging.getLogger(__name__)


class CommandExecutor:
    """1接続分のコマンド実行器.

    責務:
    - 投入されたコマンドを投入順に1つずつ実行する
    - 実行結果をRESP形式にエンコードして投入元に返す

    ライフサイクル:
    1. start(): 実行タスクを起動
    2. submit(command) / enqueue(command): コマンドを投入
    3. close(): 実行タスクを停止
    """

    def __init__(self, handler: CommandHandler, parser: RESPParser, maxsize: int = 1) -> None:
        """実行器を初期化.

        Args:
            handler: コマンドハンドラ
            parser: 応答のエンコードに使うRESPParser
            maxsize: 実行待ちキューの最大長
        """
        self._handler = handler
        self._parser = parser
        self._queue: asyncio.Queue[tuple[Command, asyncio.Future[bytes]]] = asyncio.Queue(maxsize)
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """実行タスクを起動する.

        Raises:
            RuntimeError: 既に実行中の場合
        """
        if self._task is not None:
            raise RuntimeError("Executor is already running")
        self._task = asyncio.create_task(self._run())

    async def enqueue(self, command: Command) -> "asyncio.Future[bytes]":
        """コマンドを投入し、応答を受け取るFutureを返す.

        キューが満杯の場合は空きができるまで待つ。
        """
        if not self.running:
            raise RuntimeError("Executor is not running")

        future: asyncio.Future[bytes] = asyncio.get_running_loop().create_future()
        await self._queue.put((command, future))
        return future

    async def submit(self, command: Command) -> bytes:
        """コマンドを投入し、エンコード済みの応答を待つ"""
        return await (await self.enqueue(command))

    async def close(self) -> None:
        """実行タスクを停止し、未処理のコマンドを破棄する."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

        while not self._queue.empty():
            _, future = self._queue.get_nowait()
            future.cancel()

    async def execute(self, command: Command) -> bytes:
        """コマンドを実行して応答をエンコードする.

        CommandErrorはエラー応答に変換する。それ以外の例外は呼び出し元に伝播する。
        """
        try:
            result = await self._handler.execute(command.name, command.args)
        except CommandError as e:
            return self._parser.encode_error(str(e))
        return self._parser.encode_response(result)

    async def _run(self) -> None:
        """内部: キューからコマンドを取り出して順に実行するループ."""
        while True:
            command, future = await self._queue.get()
            try:
                if future.cancelled():
                    continue
                try:
                    reply = await self.execute(command)
                except asyncio.CancelledError:
                    future.cancel()
                    raise
                except Exception as e:
                    if not future.done():
                        future.set_exception(e)
                else:
                    # 投入元が待つのをやめていれば応答は捨てる
                    if not future.done():
                        future.set_result(reply)
            finally:
                self._queue.task_done()


class ClientHandler:
    """クライアント接続のハンドラ.

    責務:
    - 個別クライアントとの通信ループ
    - リクエスト受信→実行器へ投入→レスポンス送信
    """

    def __init__(
        self,
        parser: RESPParser,
        handler: CommandHandler,
        idle_timeout: float | None = None,
    ) -> None:
        """ハンドラを初期化.

        Args:
            parser: RESPパーサのインスタンス
            handler: コマンドハンドラのインスタンス
            idle_timeout: 無通信の接続を切断するまでの秒数（Noneの場合は切断しない）
        """
        self._parser = parser
        self._handler = handler
        self._idle_timeout = idle_timeout

    async def read_command(self, reader: StreamReader) -> Command | None:
        """次のコマンドを読み取る. idle_timeoutが設定されていれば時間制限をかける"""
        if self._idle_timeout is None:
            return await self._parser.parse_command(reader)
        return await asyncio.wait_for(self._parser.parse_command(reader), self._idle_timeout)

    async def handle(self, reader: StreamReader, writer: StreamWriter) -> None:
        """クライアント接続を処理するメインループ.

        Args:
            reader: asyncioのStreamReader
            writer: asyncioのStreamWriter

        コマンドの読み取り→実行→応答のループを実行する。
        デコードエラーや切断でループを抜け、接続をクリーンアップする。
        """
        addr = writer.get_extra_info("peername")
        logger.info(f"Client connected: {addr}")

        executor = CommandExecutor(self._handler, self._parser)
        executor.start()

        try:
            while True:
                try:
                    command = await self.read_command(reader)

                    # 空行や空の配列は読み飛ばす
                    if command is None:
                        continue

                    response = await executor.submit(command)

                    writer.write(response)
                    await writer.drain()

                except RESPProtocolError as e:
                    logger.error(f"RESP protocol error from {addr}: {e}")
                    break

                except asyncio.LimitOverrunError as e:
                    logger.error(f"Line too long from {addr}: {e}")
                    break

                except asyncio.IncompleteReadError:
                    logger.info(f"Client disconnected: {addr}")
                    break

                except asyncio.TimeoutError:
                    logger.info(f"Closing idle connection: {addr}")
                    break

                except ConnectionError as e:
                    logger.info(f"Connection lost from {addr}: {e}")
                    break

                except asyncio.CancelledError:
                    logger.info(f"Connection to {addr} cancelled due to server shutdown")
                    raise

                except Exception as e:
                    logger.error(f"Unexpected error from {addr}: {e}", exc_info=True)
                    break

        finally:
            await executor.close()
            writer.close()
            with contextlib.suppress(ConnectionError):
                await writer.wait_closed()
            logger.info(f"Connection closed: {addr}")


class TCPServer:
    """TCPサーバ.

    責務:
    - TCP接続の受け入れ
    - 接続ごとにClientHandler.handleを起動
    - サーバのライフサイクル管理
    """

    def __init__(
        self,
        client_handler: ClientHandler,
        host: str = "0.0.0.0",
        port: int = 6379,
    ) -> None:
        """サーバを初期化.

        Args:
            client_handler: 接続ごとに使うクライアントハンドラ
            host: バインドするホスト
            port: バインドするポート（0の場合は空きポート）
        """
        self.host = host
        self.port = port
        self._client_handler = client_handler
        self._server: asyncio.Server | None = None

    @property
    def bound_address(self) -> tuple[str, int] | None:
        """実際にバインドしたアドレス（起動前はNone）"""
        if self._server is None or not self._server.sockets:
            return None
        addr = self._server.sockets[0].getsockname()
        return addr[0], addr[1]

    async def listen(self) -> None:
        """ポートをバインドして接続の受け付けを開始する"""
        if self._server is not None:
            raise RuntimeError("Server is already listening")

        self._server = await asyncio.start_server(self._client_handler.handle, self.host, self.port)

        host, port = self.bound_address or (self.host, self.port)
        logger.info(f"Server started on {host}:{port}")

    async def start(self) -> None:
        """サーバを起動し、接続を待ち受ける.

        serve_forever()内で無限ループするため、
        KeyboardInterruptや例外が発生するまで戻らない。
        """
        await self.listen()
        server = self._server

        async with server:
            await server.serve_forever()

    async def stop(self) -> None:
        """サーバを停止する."""
        if self._server is None:
            return

        logger.info("Stopping server...")
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Server stopped")
