"""
チャンク分割と、チャンク単位の並列実行ヘルパー。

各チャンクの失敗(StoreChunkError)はそのチャンクの結果として記録し、
残りのチャンクの処理は継続する。それ以外の例外は呼び出し側へ伝播する。
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, Sequence, TypeVar

from maimai_records.errors import StoreChunkError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ChunkOutcome(Generic[T]):
    index: int
    items: Sequence[T]
    result: Any = None
    error: Optional[StoreChunkError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def chunked(items: Sequence[T], size: int) -> List[Sequence[T]]:
    """
    items を size 件ずつのチャンクに分割する。

    Args:
        items: 分割対象。
        size: 1チャンクの最大件数。1未満は1として扱う。

    Returns:
        チャンクのリスト。items が空なら空リスト。
    """
    if size <= 0:
        size = 1
    return [items[start : start + size] for start in range(0, len(items), size)]


def run_chunks(
    chunks: Sequence[Sequence[T]],
    fn: Callable[[Sequence[T]], Any],
    max_workers: int = 1,
    label: str = "chunk",
) -> List[ChunkOutcome[T]]:
    """
    各チャンクに fn を適用し、チャンク順に結果を返す。

    max_workers が2以上の場合はスレッドプールで並列実行する。
    fn が StoreChunkError を送出したチャンクは error に例外を保持し、
    WARNING ログを出力する。

    Args:
        chunks: chunked() の結果。
        fn: 1チャンクを処理する関数。
        max_workers: 並列数。
        label: ログ出力用のフェーズ名。

    Returns:
        ChunkOutcome のリスト(入力チャンク順)。
    """
    def _run(index: int, items: Sequence[T]) -> ChunkOutcome[T]:
        try:
            return ChunkOutcome(index=index, items=items, result=fn(items))
        except StoreChunkError as e:
            logger.warning(
                "%s %d/%d failed (%d items): %s",
                label, index + 1, len(chunks), len(items), e,
            )
            return ChunkOutcome(index=index, items=items, error=e)

    if max_workers <= 1 or len(chunks) <= 1:
        return [_run(i, c) for i, c in enumerate(chunks)]

    with ThreadPoolExecutor(max_workers=max_workers) as ex:
        futures = [ex.submit(_run, i, c) for i, c in enumerate(chunks)]
        return [f.result() for f in futures]
