"""
データモデル定義モジュール。

スクレイパーから受け取る生レコード(RawRecord)とプロフィール(UserProfile)、
および各フェーズ(曲解決・譜面解決・記録照合・書き込み)の結果オブジェクトを定義する。

各フェーズは例外を投げる代わりに「成功したマップ + 失敗/スキップ件数」を
結果オブジェクトとして返し、オーケストレータがそれらを合成する。
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from maimai_records.errors import ValidationError
from maimai_records.normalize import (
    clean_title,
    normalize_difficulty,
    normalize_fc_type,
    normalize_fs_type,
    normalize_version_era,
    parse_achievement,
    parse_is_dx,
    parse_level_label,
)


# (song_id, difficulty_type, is_dx)
ChartKey = Tuple[int, str, bool]

# 譜面定数の上限(現行の最高値 15.0 に余裕を持たせた値)
MAX_INTERNAL_LEVEL = 20.0


def _first(data: dict, *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(str(value).replace(",", "").strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class RawRecord:
    """
    スクレイパーが出力する1譜面分のプレー記録。

    - title/difficulty_type/is_dx で譜面を特定する
    - internal_level は譜面定数(内部レベル)
    - fc_type/fs_type は未達成の場合 "none"
    - version_era は任意。指定が無い場合は版区分マップまたは既存値に従う
    """

    title: str
    achievement: float
    difficulty_type: str
    is_dx: bool
    internal_level: float
    fc_type: str = "none"
    fs_type: str = "none"
    version_era: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "RawRecord":
        """
        スクレイパーのJSON 1件を RawRecord に変換する。

        internal_level が無い(または0)場合は表示レベル("13+" 等)から推定する。

        Args:
            data: 生レコードの辞書。

        Returns:
            RawRecordオブジェクト。

        Raises:
            ValidationError: 必須項目の欠落や値の範囲外がある場合。
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Record must be an object: {type(data).__name__}")

        title = clean_title(data.get("title"))
        if not title:
            raise ValidationError("title is empty")

        achievement = parse_achievement(data.get("achievement"))
        difficulty_type = normalize_difficulty(data.get("difficulty_type"))

        internal_level: Optional[float] = None
        raw_level = data.get("internal_level")
        if raw_level not in (None, ""):
            try:
                internal_level = float(raw_level)
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Invalid internal_level: {raw_level!r}") from e
        if not internal_level:
            internal_level = parse_level_label(data.get("level"))
        if internal_level is None or internal_level <= 0:
            raise ValidationError(f"internal_level is missing: {title}")
        if not math.isfinite(internal_level) or internal_level > MAX_INTERNAL_LEVEL:
            raise ValidationError(f"internal_level out of range: {internal_level!r} ({title})")

        return cls(
            title=title,
            achievement=achievement,
            difficulty_type=difficulty_type,
            is_dx=parse_is_dx(data.get("is_dx")),
            internal_level=internal_level,
            fc_type=normalize_fc_type(data.get("fc_type")),
            fs_type=normalize_fs_type(data.get("fs_type")),
            version_era=normalize_version_era(data.get("version_era")),
        )


@dataclass(frozen=True)
class UserProfile:
    """
    プレイヤーデータページから取得したプロフィール。

    記録の照合とは無関係に、取り込みのたびに非正規化して保存する。
    """

    nickname: str
    icon_url: Optional[str] = None
    title: Optional[str] = None
    title_image_url: Optional[str] = None
    dan_grade_url: Optional[str] = None
    friend_rank_url: Optional[str] = None
    total_stars: Optional[int] = None
    play_count_total: Optional[int] = None
    play_count_version: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> "UserProfile":
        """スクレイパーの camelCase キー(iconUrl, totalStars 等)と snake_case の両方を受け付ける。"""
        if not isinstance(data, dict):
            raise ValidationError("userProfile must be an object")

        return cls(
            nickname=str(_first(data, "nickname") or "").strip(),
            icon_url=_first(data, "iconUrl", "icon_url"),
            title=_first(data, "title"),
            title_image_url=_first(data, "titleImageUrl", "title_image_url"),
            dan_grade_url=_first(data, "danGradeUrl", "dan_grade_url"),
            friend_rank_url=_first(data, "friendRankUrl", "friend_rank_url"),
            total_stars=_optional_int(_first(data, "totalStars", "total_stars")),
            play_count_total=_optional_int(_first(data, "playCountTotal", "play_count_total")),
            play_count_version=_optional_int(
                _first(data, "playCountVersion", "play_count_version")
            ),
        )

    def to_row(self, user_id: str, updated_at: str) -> Dict[str, Any]:
        return {
            "user_id": user_id,
            "nickname": self.nickname,
            "icon_url": self.icon_url,
            "title": self.title,
            "title_image_url": self.title_image_url,
            "dan_grade_url": self.dan_grade_url,
            "friend_rank_url": self.friend_rank_url,
            "total_stars": self.total_stars,
            "play_count_total": self.play_count_total,
            "play_count_version": self.play_count_version,
            "updated_at": updated_at,
        }


@dataclass(frozen=True)
class ChartSpec:
    """譜面解決の入力。title がまだ song_id に解決されていない状態の譜面。"""

    title: str
    difficulty_type: str
    is_dx: bool
    internal_level: float
    version_era: Optional[str] = None


@dataclass(frozen=True)
class UserRecord:
    """user_record テーブルの1行。(user_id, chart_id) が自然キー。"""

    user_id: str
    chart_id: int
    achievement: float
    fc_type: str = "none"
    fs_type: str = "none"

    def to_row(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "chart_id": self.chart_id,
            "achievement": self.achievement,
            "fc_type": self.fc_type,
            "fs_type": self.fs_type,
        }


@dataclass
class ResolveResult:
    """
    曲・譜面解決フェーズの結果。

    Attributes:
        title_to_song_id: 曲名 → song_id。
        chart_key_to_chart_id: (song_id, difficulty_type, is_dx) → chart_id。
        resolution_failures: upsert または読み戻しに失敗したチャンク数。
        unresolved_chart_specs: 曲名が解決できず破棄した譜面指定の件数。
    """

    title_to_song_id: Dict[str, int] = field(default_factory=dict)
    chart_key_to_chart_id: Dict[ChartKey, int] = field(default_factory=dict)
    resolution_failures: int = 0
    unresolved_chart_specs: int = 0


@dataclass
class ReconcileResult:
    records: List[UserRecord] = field(default_factory=list)
    skipped_titles: int = 0
    skipped_charts: int = 0

    @property
    def skipped(self) -> int:
        return self.skipped_titles + self.skipped_charts


@dataclass
class WriteResult:
    written: int = 0
    failed_chunks: int = 0
    failed_rows: int = 0


@dataclass
class IngestSummary:
    """
    1回の取り込みリクエストの集計結果。

    部分的な失敗があっても success は True とし、スキップ件数で明示する。
    """

    success: bool = True
    records_received: int = 0
    records_written: int = 0
    skipped_titles: int = 0
    skipped_charts: int = 0
    invalid_records: int = 0
    failed_chunks: int = 0
    profile_updated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "count": self.records_written,
            "recordsReceived": self.records_received,
            "skippedTitles": self.skipped_titles,
            "skippedCharts": self.skipped_charts,
            "invalidRecords": self.invalid_records,
            "failedChunks": self.failed_chunks,
            "profileUpdated": self.profile_updated,
        }


@dataclass
class RatingSummary:
    """ベスト枠(新曲15 / 旧曲35)の集計結果。"""

    total_rating: int = 0
    new_rating: int = 0
    old_rating: int = 0
    new_songs: List[Dict[str, Any]] = field(default_factory=list)
    old_songs: List[Dict[str, Any]] = field(default_factory=list)
    all_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalRating": self.total_rating,
            "newRating": self.new_rating,
            "oldRating": self.old_rating,
            "newSongs": self.new_songs,
            "oldSongs": self.old_songs,
            "allCount": self.all_count,
        }
