"""
文字列・値の正規化ユーティリティ。

スクレイパーから渡される生の値(曲名、難易度名、レベル表記、FC/FSアイコン種別)の
表記揺れを吸収し、Song/Chart/UserRecord のキーとして使える形に揃える。

曲名は自然キーそのものであるため、大文字小文字や記号の統一は行わず
空白類の整理のみに留める。
"""

from __future__ import annotations

import re
from typing import Any, Optional

from maimai_records.errors import ValidationError


DIFFICULTY_TYPES = ("basic", "advanced", "expert", "master", "remaster")
FC_TYPES = ("none", "fc", "fc+", "ap", "ap+")
FS_TYPES = ("none", "sync", "fs", "fs+", "fsd", "fsd+")
VERSION_ERAS = ("new", "old", "unknown")

_DIFFICULTY_ALIASES = {
    "re:master": "remaster",
    "re:mas": "remaster",
    "re_master": "remaster",
    "bas": "basic",
    "adv": "advanced",
    "exp": "expert",
    "mas": "master",
}

_FS_ALIASES = {
    "fdx": "fsd",
    "fdx+": "fsd+",
}


def clean_title(s: Optional[str]) -> str:
    """
    曲名の前後空白・改行・タブを除去し、連続空白を単一化して返す。

    Args:
        s: 入力文字列。

    Returns:
        整形済み曲名。入力が None の場合は空文字を返す。
    """
    if s is None:
        return ""

    s = str(s)

    # 改行・タブ除去
    s = s.replace("\n", " ").replace("\r", " ").replace("\t", " ")

    # 全角スペース→半角スペース
    s = s.replace("　", " ")

    s = s.strip()
    s = re.sub(r"\s+", " ", s)

    return s


def normalize_difficulty(value: Any) -> str:
    """
    難易度名を basic/advanced/expert/master/remaster のいずれかへ正規化する。

    数値(0-4)はサイトの難易度インデックスとして解釈する。

    Args:
        value: 難易度名または難易度インデックス。

    Returns:
        正規化済み難易度名。

    Raises:
        ValidationError: 既知の難易度に変換できない場合。
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid difficulty_type: {value!r}")

    if isinstance(value, int):
        if 0 <= value < len(DIFFICULTY_TYPES):
            return DIFFICULTY_TYPES[value]
        raise ValidationError(f"Invalid difficulty index: {value}")

    s = str(value or "").strip().lower()
    s = _DIFFICULTY_ALIASES.get(s, s)

    if s not in DIFFICULTY_TYPES:
        raise ValidationError(f"Invalid difficulty_type: {value!r}")

    return s


def parse_level_label(label: Optional[str]) -> Optional[float]:
    """
    "13" / "13+" 形式の表示レベルから内部レベルの近似値を返す。

    "+" 付きは基礎レベルに 0.6 を加算する。

    Args:
        label: 表示レベル文字列。

    Returns:
        内部レベル。空または解釈できない場合は None。
    """
    s = str(label).strip() if label is not None else ""
    if not s:
        return None

    m = re.fullmatch(r"(\d+(?:\.\d+)?)(\+?)", s)
    if not m:
        return None

    base = float(m.group(1))
    if m.group(2):
        return round(base + 0.6, 1)
    return base


def parse_achievement(value: Any) -> float:
    """
    達成率を float へ変換する。"99.5%" のような末尾 % も受け付ける。

    Raises:
        ValidationError: 数値に変換できない、または 0-101 の範囲外の場合。
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Invalid achievement: {value!r}")

    s = str(value).strip().rstrip("%").strip()
    try:
        achievement = float(s)
    except ValueError as e:
        raise ValidationError(f"Invalid achievement: {value!r}") from e

    if not 0.0 <= achievement <= 101.0:
        raise ValidationError(f"Achievement out of range: {achievement}")

    return achievement


def parse_is_dx(value: Any) -> bool:
    """DX譜面フラグを bool へ変換する。"""
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "dx", "yes")
    return bool(value)


def _normalize_kind(value: Any, allowed: tuple, aliases: dict, name: str) -> str:
    if value is None:
        return "none"

    s = str(value).strip().lower()
    if s == "":
        return "none"

    s = aliases.get(s, s)
    if s not in allowed:
        raise ValidationError(f"Invalid {name}: {value!r}")
    return s


def normalize_fc_type(value: Any) -> str:
    """FC/AP 種別を none/fc/fc+/ap/ap+ へ正規化する。None は "none"。"""
    return _normalize_kind(value, FC_TYPES, {}, "fc_type")


def normalize_fs_type(value: Any) -> str:
    """Sync/FS 種別を none/sync/fs/fs+/fsd/fsd+ へ正規化する。None は "none"。"""
    return _normalize_kind(value, FS_TYPES, _FS_ALIASES, "fs_type")


def normalize_version_era(value: Any) -> Optional[str]:
    """
    バージョン区分を new/old/unknown へ正規化する。

    未指定(None/空文字)は None を返し、呼び出し側で「指定なし」として扱う。

    Raises:
        ValidationError: 既知の区分以外が指定された場合。
    """
    if value is None:
        return None

    s = str(value).strip().lower()
    if s == "":
        return None

    if s not in VERSION_ERAS:
        raise ValidationError(f"Invalid version_era: {value!r}")
    return s
