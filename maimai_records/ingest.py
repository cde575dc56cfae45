"""
取り込みリクエスト1件分の処理を順序実行するオーケストレータ。

処理順:
1. プロフィール更新(任意・ベストエフォート。失敗しても記録取り込みは継続)
2. 曲解決
3. 譜面解決
4. 記録照合
5. 記録保存

各フェーズの失敗は「保存される記録が減る」方向にのみ劣化し、
再試行やロールバックは行わない。致命的なのはユーザー未特定とストア到達不可のみ。
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from maimai_records.config import Settings
from maimai_records.errors import (
    AuthRequiredError,
    FatalStoreError,
    StoreChunkError,
    ValidationError,
)
from maimai_records.models import (
    ChartSpec,
    IngestSummary,
    RatingSummary,
    RawRecord,
    UserProfile,
)
from maimai_records.rating import compute_best_rating
from maimai_records.reconciler import reconcile, write_records
from maimai_records.resolver import resolve
from maimai_records.store import Store, now_iso

logger = logging.getLogger(__name__)


def _require_user(user_id: Optional[str]) -> str:
    if user_id is None or not str(user_id).strip():
        raise AuthRequiredError("ログインが必要です。")
    return str(user_id).strip()


def parse_records(items: List[Any]) -> Tuple[List[RawRecord], int]:
    """
    生レコードのリストを RawRecord へ変換する。

    変換できないレコードは破棄し、件数を返す。

    Returns:
        (RawRecord のリスト, 不正レコード数) のタプル。
    """
    records: List[RawRecord] = []
    invalid = 0
    for item in items:
        try:
            records.append(RawRecord.from_dict(item))
        except ValidationError as e:
            invalid += 1
            logger.debug("invalid record skipped: %s", e)
    return records, invalid


def update_profile(store: Store, user_id: str, profile_data: Any) -> bool:
    """
    プロフィールを user_profile へ upsert する。

    失敗はログに残すのみで、呼び出し側へ例外を伝播しない。

    Returns:
        保存できた場合 True。
    """
    try:
        profile = UserProfile.from_dict(profile_data)
        store.upsert("user_profile", [profile.to_row(user_id, now_iso())], ("user_id",))
    except (ValidationError, StoreChunkError) as e:
        logger.warning("profile update failed for %s: %s", user_id, e)
        return False
    return True


def ingest_batch(
    store: Store,
    user_id: Optional[str],
    batch: Any,
    settings: Settings,
    version_eras: Optional[Mapping[str, str]] = None,
) -> IngestSummary:
    """
    スクレイパーのバッチ {userProfile?, records} を取り込む。

    Args:
        store: 保存先ストア。
        user_id: 取り込み対象ユーザー。未特定なら None。
        batch: スクレイパーが送信した JSON オブジェクト。
        settings: チャンクサイズ・並列数を含む設定。
        version_eras: 曲名 → 版区分(任意)。

    Returns:
        IngestSummaryオブジェクト。部分的な失敗はスキップ件数として表す。

    Raises:
        AuthRequiredError: user_id が空の場合。書き込みは一切行わない。
        ValidationError: batch がオブジェクトでない、または records がリストでない場合。
        FatalStoreError: ストアへ到達できない場合。
    """
    uid = _require_user(user_id)

    if not isinstance(batch, dict):
        raise ValidationError("Request body must be an object")
    items = batch.get("records")
    if items is None:
        items = []
    if not isinstance(items, list):
        raise ValidationError("records must be a list")

    store.ping()

    summary = IngestSummary(records_received=len(items))
    logger.info("ingest started for %s: %d records", uid, len(items))

    if batch.get("userProfile"):
        summary.profile_updated = update_profile(store, uid, batch["userProfile"])

    raw_records, summary.invalid_records = parse_records(items)
    if not raw_records:
        logger.info("no valid records for %s", uid)
        return summary

    chart_specs = [
        ChartSpec(
            title=r.title,
            difficulty_type=r.difficulty_type,
            is_dx=r.is_dx,
            internal_level=r.internal_level,
            version_era=r.version_era,
        )
        for r in raw_records
    ]

    resolved = resolve(
        store,
        (r.title for r in raw_records),
        chart_specs,
        chunk_size=settings.chunk_size,
        max_workers=settings.max_workers,
        version_eras=version_eras,
    )

    reconciled = reconcile(
        raw_records,
        resolved.title_to_song_id,
        resolved.chart_key_to_chart_id,
        uid,
    )

    written = write_records(
        store,
        reconciled.records,
        chunk_size=settings.chunk_size,
        max_workers=settings.max_workers,
    )

    summary.records_written = written.written
    summary.skipped_titles = reconciled.skipped_titles
    summary.skipped_charts = reconciled.skipped_charts
    summary.failed_chunks = resolved.resolution_failures + written.failed_chunks

    logger.info(
        "ingest finished for %s: written=%d skipped_titles=%d skipped_charts=%d "
        "invalid=%d failed_chunks=%d",
        uid,
        summary.records_written,
        summary.skipped_titles,
        summary.skipped_charts,
        summary.invalid_records,
        summary.failed_chunks,
    )
    return summary


def handle_ingest_request(
    store: Store,
    user_id: Optional[str],
    payload: Any,
    settings: Settings,
    version_eras: Optional[Mapping[str, str]] = None,
) -> Tuple[int, Dict[str, Any]]:
    """
    取り込みリクエストを処理し、(HTTPステータス, レスポンス本文) を返す。

    - 401: ユーザー未特定
    - 400: リクエスト本文の形式不正
    - 500: ストア到達不可
    - 200: 上記以外(一部スキップがあっても成功)
    """
    try:
        summary = ingest_batch(store, user_id, payload, settings, version_eras)
    except AuthRequiredError as e:
        return 401, {"success": False, "error": str(e)}
    except ValidationError as e:
        return 400, {"success": False, "error": str(e)}
    except FatalStoreError as e:
        logger.error("ingest failed: %s", e)
        return 500, {"success": False, "error": str(e)}

    return 200, summary.to_dict()


def read_rating(store: Store, user_id: Optional[str], settings: Settings) -> RatingSummary:
    """
    保存済みの記録からユーザーのレーティングを集計する。

    Raises:
        AuthRequiredError: user_id が空の場合。
        FatalStoreError: ストアから読み込めない場合。
    """
    uid = _require_user(user_id)
    rows = store.fetch_rating_rows(uid)
    return compute_best_rating(
        rows,
        new_limit=settings.new_pool_size,
        old_limit=settings.old_pool_size,
    )


def handle_rating_request(
    store: Store,
    user_id: Optional[str],
    settings: Settings,
) -> Tuple[int, Dict[str, Any]]:
    """レーティング参照リクエストを処理し、(HTTPステータス, レスポンス本文) を返す。"""
    try:
        summary = read_rating(store, user_id, settings)
    except AuthRequiredError as e:
        return 401, {"error": str(e)}
    except FatalStoreError as e:
        logger.error("rating read failed: %s", e)
        return 500, {"error": str(e)}

    return 200, summary.to_dict()
