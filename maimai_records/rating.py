"""
レーティング計算。

1譜面ごとの単曲レーティングを求め、新曲枠・旧曲枠それぞれの上位曲を選んで合計する。
I/O を持たない純粋関数のみで構成する。

単曲レーティング::

    floor(譜面定数 * ランク係数 * (min(達成率, 100.5) / 100) * FC係数)
"""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional

from maimai_records.models import RatingSummary

NEW_POOL_SIZE = 15
OLD_POOL_SIZE = 35

# (達成率の下限, ランク係数) 降順
RANK_MULTIPLIERS = (
    (100.5, 22.4),  # SSS+
    (100.0, 21.6),  # SSS
    (99.5, 21.1),  # SS+
    (99.0, 20.8),  # SS
    (98.0, 20.3),  # S+
    (97.0, 20.0),  # S
    (94.0, 16.8),  # AAA
    (90.0, 15.2),  # AA
    (80.0, 13.6),  # A
)

FC_MULTIPLIERS = {
    "none": 1.0,
    "fc": 1.0125,
    "fc+": 1.025,
    "ap": 1.0375,
    "ap+": 1.05,
}

_OUTPUT_FIELDS = (
    "title",
    "difficulty_type",
    "is_dx",
    "achievement",
    "internal_level",
    "fc_type",
    "fs_type",
    "version_era",
)


def get_multiplier(achievement: float) -> float:
    """達成率に対応するランク係数を返す。80% 未満は 0。"""
    for threshold, multiplier in RANK_MULTIPLIERS:
        if achievement >= threshold:
            return multiplier
    return 0.0


def get_fc_multiplier(fc_type: Optional[str]) -> float:
    """FC/AP 種別に対応する係数を返す。None や未知の値は 1.0。"""
    return FC_MULTIPLIERS.get(fc_type or "none", 1.0)


def calculate_single_rating(
    internal_level: float,
    achievement: float,
    fc_type: Optional[str] = None,
) -> int:
    """
    単曲レーティングを計算する。

    Args:
        internal_level: 譜面定数。
        achievement: 達成率(0-101)。
        fc_type: FC/AP 種別。

    Returns:
        0以上の整数レーティング。
    """
    value = (
        internal_level
        * get_multiplier(achievement)
        * (min(achievement, 100.5) / 100)
        * get_fc_multiplier(fc_type)
    )
    if value <= 0:
        return 0
    return int(math.floor(value))


def _is_new(version_era: Any) -> bool:
    return str(version_era or "").strip().lower() == "new"


def compute_best_rating(
    records: Iterable[Mapping[str, Any]],
    new_limit: int = NEW_POOL_SIZE,
    old_limit: int = OLD_POOL_SIZE,
) -> RatingSummary:
    """
    ユーザーの全記録から新曲/旧曲ベストを選び、レーティングを集計する。

    - version_era が "new" の記録は新曲枠、それ以外("old"/"unknown"/未設定)は旧曲枠
    - 各枠をレーティング降順に安定ソートし、同点は入力順を保つ
    - 新曲枠は上位 new_limit 件、旧曲枠は上位 old_limit 件を合計する

    Args:
        records: internal_level/achievement/version_era/fc_type を持つ記録。
        new_limit: 新曲枠の件数。
        old_limit: 旧曲枠の件数。

    Returns:
        RatingSummaryオブジェクト。all_count はフィルタ前の入力件数。
    """
    rated: List[Dict[str, Any]] = []
    for r in records:
        entry = {k: r[k] for k in _OUTPUT_FIELDS if k in r}
        entry["rating"] = calculate_single_rating(
            float(r["internal_level"]),
            float(r["achievement"]),
            r.get("fc_type"),
        )
        rated.append(entry)

    new_pool = [e for e in rated if _is_new(e.get("version_era"))]
    old_pool = [e for e in rated if not _is_new(e.get("version_era"))]

    new_songs = sorted(new_pool, key=lambda e: e["rating"], reverse=True)[:new_limit]
    old_songs = sorted(old_pool, key=lambda e: e["rating"], reverse=True)[:old_limit]

    new_rating = sum(e["rating"] for e in new_songs)
    old_rating = sum(e["rating"] for e in old_songs)

    return RatingSummary(
        total_rating=new_rating + old_rating,
        new_rating=new_rating,
        old_rating=old_rating,
        new_songs=new_songs,
        old_songs=old_songs,
        all_count=len(rated),
    )
