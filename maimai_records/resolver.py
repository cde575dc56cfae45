"""
曲・譜面の実体解決処理。

生レコードに含まれる曲名と譜面指定を、ストア上の song_id / chart_id へ解決する。

処理方針:
- 曲名は重複除去したうえでチャンク単位に upsert し、同じチャンクを読み戻して ID を得る
- 譜面は解決済みの song_id を使って自然キー (song_id, difficulty_type, is_dx) で upsert し、
  同様に読み戻して ID を得る
- チャンクの upsert / 読み戻しに失敗した場合、そのチャンクは結果に何も寄与せず
  失敗件数だけを加算する。後続チャンクの処理は継続する
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from maimai_records.batching import chunked, run_chunks
from maimai_records.models import ChartKey, ChartSpec, ResolveResult
from maimai_records.store import Store

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 200
CHART_CONFLICT_KEY = ("song_id", "difficulty_type", "is_dx")


def dedupe_titles(titles: Iterable[Optional[str]]) -> List[str]:
    """空文字・None を除いた曲名を、初出順を保って重複除去する。"""
    return list(dict.fromkeys(t for t in titles if t))


def resolve_songs(
    store: Store,
    titles: Iterable[Optional[str]],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_workers: int = 1,
) -> Tuple[Dict[str, int], int]:
    """
    曲名を song_id へ解決する。

    Args:
        store: 保存先ストア。
        titles: 曲名(重複・空を含んでよい)。
        chunk_size: 1チャンクの最大曲数。
        max_workers: 並列数。

    Returns:
        (曲名 → song_id, 失敗チャンク数) のタプル。
    """
    unique_titles = dedupe_titles(titles)

    def _process(chunk: Sequence[str]) -> Dict[str, int]:
        store.upsert("song", [{"title": t} for t in chunk], ("title",))
        rows = store.select_by_keys("song", ("title",), [(t,) for t in chunk])
        return {r["title"]: int(r["song_id"]) for r in rows}

    outcomes = run_chunks(
        chunked(unique_titles, chunk_size), _process, max_workers, label="song chunk"
    )

    title_to_song_id: Dict[str, int] = {}
    failures = 0
    for outcome in outcomes:
        if outcome.ok:
            title_to_song_id.update(outcome.result)
        else:
            failures += 1

    logger.info(
        "songs resolved: %d/%d titles (%d chunks failed)",
        len(title_to_song_id), len(unique_titles), failures,
    )
    return title_to_song_id, failures


def build_chart_rows(
    chart_specs: Iterable[ChartSpec],
    title_to_song_id: Mapping[str, int],
    version_eras: Optional[Mapping[str, str]] = None,
) -> Tuple[List[dict], int]:
    """
    譜面指定を chart 行へ変換する。

    曲名が未解決の指定は破棄して件数を数える。同じ自然キーの指定は後勝ちで1行にまとめるが、
    後の指定に版区分が無ければ先の指定の版区分を引き継ぐ。
    version_era は指定値、版区分マップの値の順に採用し、どちらも無ければ列自体を含めない。

    Returns:
        (chart 行のリスト, 破棄した指定数) のタプル。
    """
    eras = version_eras or {}
    rows: Dict[ChartKey, dict] = {}
    unresolved = 0

    for spec in chart_specs:
        song_id = title_to_song_id.get(spec.title)
        if song_id is None:
            unresolved += 1
            continue

        row = {
            "song_id": song_id,
            "difficulty_type": spec.difficulty_type,
            "is_dx": spec.is_dx,
            "internal_level": spec.internal_level,
        }
        key = (song_id, spec.difficulty_type, spec.is_dx)
        era = spec.version_era or eras.get(spec.title)
        if not era and key in rows:
            # 後勝ちでも、先行指定の版区分は区分なしの指定で消さない
            era = rows[key].get("version_era")
        if era:
            row["version_era"] = era

        rows[key] = row

    return list(rows.values()), unresolved


def resolve_charts(
    store: Store,
    chart_specs: Iterable[ChartSpec],
    title_to_song_id: Mapping[str, int],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_workers: int = 1,
    version_eras: Optional[Mapping[str, str]] = None,
) -> Tuple[Dict[ChartKey, int], int, int]:
    """
    譜面指定を chart_id へ解決する。

    Args:
        store: 保存先ストア。
        chart_specs: 譜面指定。
        title_to_song_id: resolve_songs() の結果。
        chunk_size: 1チャンクの最大譜面数。
        max_workers: 並列数。
        version_eras: 曲名 → 版区分(任意)。

    Returns:
        (譜面キー → chart_id, 失敗チャンク数, 曲名未解決で破棄した指定数) のタプル。
    """
    rows, unresolved = build_chart_rows(chart_specs, title_to_song_id, version_eras)

    def _process(chunk: Sequence[dict]) -> Dict[ChartKey, int]:
        store.upsert("chart", chunk, CHART_CONFLICT_KEY)
        keys = [(r["song_id"], r["difficulty_type"], r["is_dx"]) for r in chunk]
        found = store.select_by_keys("chart", CHART_CONFLICT_KEY, keys)
        return {
            (int(r["song_id"]), r["difficulty_type"], bool(r["is_dx"])): int(r["chart_id"])
            for r in found
        }

    outcomes = run_chunks(chunked(rows, chunk_size), _process, max_workers, label="chart chunk")

    chart_key_to_chart_id: Dict[ChartKey, int] = {}
    failures = 0
    for outcome in outcomes:
        if outcome.ok:
            chart_key_to_chart_id.update(outcome.result)
        else:
            failures += 1

    logger.info(
        "charts resolved: %d/%d charts (%d chunks failed, %d specs without song)",
        len(chart_key_to_chart_id), len(rows), failures, unresolved,
    )
    return chart_key_to_chart_id, failures, unresolved


def resolve(
    store: Store,
    titles: Iterable[Optional[str]],
    chart_specs: Sequence[ChartSpec],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_workers: int = 1,
    version_eras: Optional[Mapping[str, str]] = None,
) -> ResolveResult:
    """
    曲解決 → 譜面解決を順に行い、両方のマップと失敗件数をまとめて返す。

    チャンク失敗は例外として送出せず、resolution_failures に加算する。
    """
    title_to_song_id, song_failures = resolve_songs(store, titles, chunk_size, max_workers)
    chart_map, chart_failures, unresolved = resolve_charts(
        store,
        chart_specs,
        title_to_song_id,
        chunk_size=chunk_size,
        max_workers=max_workers,
        version_eras=version_eras,
    )

    return ResolveResult(
        title_to_song_id=title_to_song_id,
        chart_key_to_chart_id=chart_map,
        resolution_failures=song_failures + chart_failures,
        unresolved_chart_specs=unresolved,
    )
