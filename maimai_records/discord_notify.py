"""
Discord Webhook通知を行うユーティリティ。

このモジュールは取り込み結果(書き込み件数/スキップ件数/レーティング)をDiscordへ送信する用途で使用する。
通知失敗は処理全体の失敗とはみなさず、WARNING ログを出して終了する。
"""

from __future__ import annotations

import logging
from typing import Optional

import requests
from requests import RequestException

from maimai_records.models import IngestSummary, RatingSummary

logger = logging.getLogger(__name__)

DISCORD_CONTENT_LIMIT = 1900


def build_ingest_message(
    user_id: str,
    summary: IngestSummary,
    rating: Optional[RatingSummary] = None,
    limit: int = DISCORD_CONTENT_LIMIT,
) -> str:
    """
    取り込み結果の通知本文を組み立てる。

    Args:
        user_id: 取り込み対象ユーザー。
        summary: 取り込み結果。
        rating: 取り込み後のレーティング(任意)。
        limit: 本文の最大文字数。

    Returns:
        通知本文。limit を超える場合は末尾を切り詰める。
    """
    mark = "✅" if summary.failed_chunks == 0 else "⚠️"
    lines = [
        f"{mark} records ingested for {user_id}",
        f"- received: {summary.records_received}",
        f"- written: {summary.records_written}",
        f"- skipped titles: {summary.skipped_titles}",
        f"- skipped charts: {summary.skipped_charts}",
        f"- invalid: {summary.invalid_records}",
        f"- failed chunks: {summary.failed_chunks}",
    ]
    if rating is not None:
        lines.append(
            f"- rating: {rating.total_rating} "
            f"(new {rating.new_rating} / old {rating.old_rating})"
        )

    content = "\n".join(lines)
    if len(content) > limit:
        content = content[: limit - 3] + "..."
    return content


def send_discord(webhook_url: Optional[str], message: str) -> None:
    """
    Discord Webhookへメッセージを送信する。

    webhook_urlが空の場合は何もせず終了する。

    Args:
        webhook_url: Discord Webhook URL。
        message: 送信する本文。
    """
    if not webhook_url:
        return

    payload = {"content": message}

    try:
        response = requests.post(webhook_url, json=payload, timeout=15)
        response.raise_for_status()
    except RequestException as e:
        logger.warning("Failed to send Discord notification: %s", e)
