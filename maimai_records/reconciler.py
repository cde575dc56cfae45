"""
プレー記録の照合・保存処理。

解決済みの song_id / chart_id マップを使って生レコードを user_record 行へ変換し、
チャンク単位で (user_id, chart_id) をキーに upsert する。
どちらかの解決に失敗したレコードは部分的にも書き込まず、スキップ件数として数える。
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Sequence

from maimai_records.batching import chunked, run_chunks
from maimai_records.models import (
    ChartKey,
    RawRecord,
    ReconcileResult,
    UserRecord,
    WriteResult,
)
from maimai_records.store import Store

logger = logging.getLogger(__name__)

RECORD_CONFLICT_KEY = ("user_id", "chart_id")
_SAMPLE_LIMIT = 5


def reconcile(
    raw_records: Iterable[RawRecord],
    title_to_song_id: Mapping[str, int],
    chart_key_to_chart_id: Mapping[ChartKey, int],
    user_id: str,
) -> ReconcileResult:
    """
    生レコードを user_record 行へ変換する。

    - 曲名が未解決 → skipped_titles に1加算して破棄
    - 曲名は解決済みだが譜面が未解決 → skipped_charts に1加算して破棄
    - 同じ chart_id を指すレコードは後勝ちで1行にまとめる

    Args:
        raw_records: 生レコード。
        title_to_song_id: 曲名 → song_id。
        chart_key_to_chart_id: 譜面キー → chart_id。
        user_id: 取り込み対象ユーザー。

    Returns:
        ReconcileResultオブジェクト。
    """
    by_chart: Dict[int, UserRecord] = {}
    skipped_titles = 0
    skipped_charts = 0
    failed_titles: List[str] = []
    failed_keys: List[ChartKey] = []

    for raw in raw_records:
        song_id = title_to_song_id.get(raw.title)
        if song_id is None:
            skipped_titles += 1
            if len(failed_titles) < _SAMPLE_LIMIT:
                failed_titles.append(raw.title)
            continue

        key = (song_id, raw.difficulty_type, raw.is_dx)
        chart_id = chart_key_to_chart_id.get(key)
        if chart_id is None:
            skipped_charts += 1
            if len(failed_keys) < _SAMPLE_LIMIT:
                failed_keys.append(key)
            continue

        by_chart[chart_id] = UserRecord(
            user_id=user_id,
            chart_id=chart_id,
            achievement=raw.achievement,
            fc_type=raw.fc_type,
            fs_type=raw.fs_type,
        )

    if failed_titles:
        logger.info("unresolved titles (sample): %s", failed_titles)
    if failed_keys:
        logger.info("unresolved chart keys (sample): %s", failed_keys)

    return ReconcileResult(
        records=list(by_chart.values()),
        skipped_titles=skipped_titles,
        skipped_charts=skipped_charts,
    )


def write_records(
    store: Store,
    records: Sequence[UserRecord],
    chunk_size: int = 200,
    max_workers: int = 1,
) -> WriteResult:
    """
    user_record 行をチャンク単位で upsert する。既存値は無条件に上書きする。

    Returns:
        書き込み件数と失敗チャンク数を持つ WriteResult。
    """
    def _process(chunk: Sequence[UserRecord]) -> int:
        store.upsert("user_record", [r.to_row() for r in chunk], RECORD_CONFLICT_KEY)
        return len(chunk)

    outcomes = run_chunks(
        chunked(list(records), chunk_size), _process, max_workers, label="record chunk"
    )

    result = WriteResult()
    for outcome in outcomes:
        if outcome.ok:
            result.written += outcome.result
        else:
            result.failed_chunks += 1
            result.failed_rows += len(outcome.items)

    logger.info(
        "user_record saved: %d rows (%d rows in %d failed chunks)",
        result.written, result.failed_rows, result.failed_chunks,
    )
    return result

