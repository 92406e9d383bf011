"""In-memory key-value store.

このモジュールは、キー・バリューペアの保存・取得・削除、
および有効期限メタデータの管理を担当します。

有効期限はエントリ自身が保持するため、値と有効期限の整合性は
1つの辞書だけで保たれます。すべての操作は1つのロックで保護されます。
"""

import threading
from dataclasses import dataclass, field


@dataclass
class StoreEntry:
    """ストレージのエントリ.

    Attributes:
        value: 保存される文字列値
        expiry_at: 有効期限のUnix timestamp（秒、小数あり。Noneの場合は期限なし）

    【使い方】
    entry = StoreEntry(value="hello", expiry_at=1234567890.5)
    entry = StoreEntry(value="world")  # expiry_atはNone
    """

    value: str
    expiry_at: float | None = field(default=None)

    def is_expired(self, now: float) -> bool:
        # 有効期限ちょうどの時刻は期限切れ
        return self.expiry_at is not None and self.expiry_at <= now


class DataStore:
    """インメモリのキー・バリューストア.

    責務:
    - キー・バリューペアの保存・取得・削除
    - 有効期限メタデータの管理
    - 期限切れチェックと削除をアトミックに行う（get_unexpired）

    全接続で共有されるため、各メソッドは内部ロックを取得してから辞書を操作する。
    現在時刻の管理は呼び出し側（ExpiryManager）の責任。
    """

    def __init__(self) -> None:
        """ストアを初期化."""
        self._data: dict[str, StoreEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._data.get(key)
            return entry.value if entry else None

    def set(self, key: str, value: str, expiry_at: float | None = None) -> None:
        """キーに値を設定する.

        新しいStoreEntryで置き換えるため、既存の有効期限はクリアされる。
        """
        with self._lock:
            self._data[key] = StoreEntry(value=value, expiry_at=expiry_at)

    def exists(self, key: str) -> bool:
        """キーが存在するかチェック.

        Args:
            key: チェックするキー

        Returns:
            キーが存在する場合はTrue、そうでない場合はFalse
        """
        with self._lock:
            return key in self._data

    def get_expiry(self, key: str) -> float | None:
        """キーの有効期限を取得する"""
        with self._lock:
            entry = self._data.get(key)
            return entry.expiry_at if entry else None

    def get_unexpired(self, key: str, now: float) -> str | None:
        """期限切れでなければ値を返し、期限切れならエントリを削除してNoneを返す.

        読み取りと条件付き削除を同じロックの中で行うため、
        同じキーへの並行したSETと競合しない。
        """
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._data[key]
                return None
            return entry.value

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
