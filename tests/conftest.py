from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from maimai_records.config import Settings
from maimai_records.errors import FatalStoreError, StoreChunkError
from maimai_records.store import SqliteStore, Store


class FlakyStore(Store):
    """
    SqliteStore を包み、条件に一致した呼び出しだけ StoreChunkError を送出するテスト用ストア。

    fail_when(op, table, payload, call_no) が True を返した呼び出しは失敗する。
    call_no は (op, table) ごとの 1 始まりの呼び出し番号。
    """

    def __init__(
        self,
        inner: SqliteStore,
        fail_when: Optional[Callable[[str, str, Any, int], bool]] = None,
        unreachable: bool = False,
    ) -> None:
        self.inner = inner
        self.fail_when = fail_when or (lambda *_: False)
        self.unreachable = unreachable
        self.calls: Dict[Tuple[str, str], int] = {}

    def _check(self, op: str, table: str, payload: Any) -> None:
        key = (op, table)
        self.calls[key] = self.calls.get(key, 0) + 1
        if self.fail_when(op, table, payload, self.calls[key]):
            raise StoreChunkError(f"injected {op} failure on {table} #{self.calls[key]}")

    def upsert(self, table: str, rows: Sequence[Dict[str, Any]], conflict_key: Sequence[str]) -> None:
        self._check("upsert", table, rows)
        self.inner.upsert(table, rows, conflict_key)

    def select_by_keys(
        self, table: str, key_columns: Sequence[str], keys: Sequence[Tuple[Any, ...]]
    ) -> List[Dict[str, Any]]:
        self._check("select", table, keys)
        return self.inner.select_by_keys(table, key_columns, keys)

    def fetch_rating_rows(self, user_id: str) -> List[Dict[str, Any]]:
        return self.inner.fetch_rating_rows(user_id)

    def ping(self) -> None:
        if self.unreachable:
            raise FatalStoreError("store is down")
        self.inner.ping()


@pytest.fixture
def store():
    s = SqliteStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def settings() -> Settings:
    return Settings(db_path=":memory:", chunk_size=200, max_workers=1)


def make_raw(
    title: str,
    achievement: float = 100.0,
    difficulty_type: str = "master",
    is_dx: bool = True,
    internal_level: float = 13.0,
    **extra: Any,
) -> Dict[str, Any]:
    """スクレイパー形式の生レコード辞書を作る。"""
    data = {
        "title": title,
        "achievement": achievement,
        "difficulty_type": difficulty_type,
        "is_dx": is_dx,
        "internal_level": internal_level,
    }
    data.update(extra)
    return data
