"""Expiry management for stored keys.

このモジュールは、キーの有効期限管理を担当します。
期限切れのキーはアクセスされた時点で削除されます（Passive expiry）。
バックグラウンドでの定期削除は行いません。
"""

import time
from collections.abc import Callable

from .storage import DataStore

MILLISECONDS_PER_SECOND = 1000


class ExpiryManager:
    """キーの有効期限管理.

    責務:
    - ミリ秒指定の有効期限を絶対時刻に変換
    - Passive expiry: キーアクセス時に期限をチェックして削除

    主要メソッド:
    - expiry_at_from_ms(ms): SET ... PX ms の有効期限を計算
    - get_unexpired(key): 期限切れなら削除してNoneを返す
    """

    def __init__(self, store: DataStore, clock: Callable[[], float] = time.time) -> None:
        """マネージャを初期化.

        Args:
            store: DataStoreのインスタンス
            clock: 現在時刻（Unix timestamp）を返す関数。テストで差し替える
        """
        self._store = store
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def expiry_at_from_ms(self, milliseconds: int) -> float:
        """現在時刻からmilliseconds後の絶対時刻を返す"""
        return self.now() + milliseconds / MILLISECONDS_PER_SECOND

    def get_unexpired(self, key: str) -> str | None:
        """
        キーの値を取得する. 期限切れなら削除してNoneを返す

        Args:
            key: 取得するキー

        Returns:
            有効なキーの値。期限切れまたは存在しない場合はNone
        """
        return self._store.get_unexpired(key, self.now())

