"""
設定ファイル(settings.yaml)の読み込み処理を提供するモジュール。

settings.yaml から取り込み・レーティング計算に必要な各種設定を読み込み、
アプリ内で扱いやすい dataclass に変換する。
あわせて、曲名ごとの新曲/旧曲区分を記述した版区分ファイルの読み込みも担う。
"""

from dataclasses import dataclass
from typing import Dict, Optional

import yaml

from maimai_records.normalize import clean_title, normalize_version_era


@dataclass(frozen=True)
class Settings:
    """
    アプリケーション全体設定。

    Attributes:
        db_path: SQLiteファイルパス。
        chunk_size: upsert / 読み戻し1回あたりの最大行数。
        max_workers: 1フェーズ内で並列に処理するチャンク数。1なら逐次処理。
        new_pool_size: 新曲枠の対象曲数。
        old_pool_size: 旧曲枠の対象曲数。
        version_eras_path: 版区分ファイルのパス(任意)。
    """

    db_path: str = "records.sqlite"
    chunk_size: int = 200
    max_workers: int = 1
    new_pool_size: int = 15
    old_pool_size: int = 35
    version_eras_path: Optional[str] = None


def load_settings(path: str) -> Settings:
    """
    settings.yaml を読み込み Settings に変換する。

    Args:
        path: settings.yaml のファイルパス。

    Returns:
        Settingsオブジェクト。

    Raises:
        FileNotFoundError: 設定ファイルが存在しない場合。
        yaml.YAMLError: YAMLのパースに失敗した場合。
        ValueError: 数値項目の変換に失敗した、または1未満の場合。
    """
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    ingest_data = data.get("ingest") or {}
    rating_data = data.get("rating") or {}

    settings = Settings(
        db_path=str(data.get("db_path", "records.sqlite")),
        chunk_size=int(ingest_data.get("chunk_size", 200)),
        max_workers=int(ingest_data.get("max_workers", 1)),
        new_pool_size=int(rating_data.get("new_pool_size", 15)),
        old_pool_size=int(rating_data.get("old_pool_size", 35)),
        version_eras_path=data.get("version_eras_path") or None,
    )

    if settings.chunk_size < 1:
        raise ValueError(f"ingest.chunk_size must be >= 1: {settings.chunk_size}")
    if settings.max_workers < 1:
        raise ValueError(f"ingest.max_workers must be >= 1: {settings.max_workers}")

    return settings


def load_version_eras(path: Optional[str]) -> Dict[str, str]:
    """
    版区分ファイルを読み込み、曲名 → "new"/"old" の辞書を返す。

    ファイル形式::

        new:
          - 曲名A
        old:
          - 曲名B

    同じ曲名が両方にある場合は後に読んだ old が優先される。

    Args:
        path: 版区分ファイルのパス。None の場合は空辞書を返す。

    Returns:
        曲名 → 版区分の辞書。
    """
    if not path:
        return {}

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    eras: Dict[str, str] = {}
    for key in ("new", "old"):
        era = normalize_version_era(key)
        for title in data.get(key) or []:
            t = clean_title(title)
            if t:
                eras[t] = era
    return eras
