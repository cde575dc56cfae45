"""
キー付きストアへの保存処理を提供するモジュール。

取り込みパイプラインは Store インターフェース(upsert / select_by_keys)のみを通じて
永続化層へアクセスする。SqliteStore はその SQLite 実装である。

処理方針:
- song は title を一意制約とし、衝突時は何もしない
- chart は (song_id, difficulty_type, is_dx) を一意制約とし、衝突時は後勝ちで上書きする
- user_record は (user_id, chart_id) を主キーとし、衝突時は無条件に上書きする
- 1回の upsert 呼び出しは1トランザクションで、失敗時は StoreChunkError を送出する
"""

from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from maimai_records.errors import FatalStoreError, StoreChunkError


TABLE_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "song": ("song_id", "title", "created_at"),
    "chart": (
        "chart_id",
        "song_id",
        "difficulty_type",
        "is_dx",
        "internal_level",
        "version_era",
        "updated_at",
    ),
    "user_record": (
        "user_id",
        "chart_id",
        "achievement",
        "fc_type",
        "fs_type",
        "updated_at",
    ),
    "user_profile": (
        "user_id",
        "nickname",
        "icon_url",
        "title",
        "title_image_url",
        "dan_grade_url",
        "friend_rank_url",
        "total_stars",
        "play_count_total",
        "play_count_version",
        "updated_at",
    ),
}

_BOOL_COLUMNS = {"is_dx"}
_UPDATED_AT_TABLES = {"chart", "user_record", "user_profile"}


def now_iso() -> str:
    """
    現在時刻(UTC)をISO 8601形式で返す。

    Returns:
        UTC時刻のISO文字列。
    """
    return datetime.now(timezone.utc).isoformat()


def _check_columns(table: str, columns: Iterable[str]) -> None:
    allowed = TABLE_COLUMNS.get(table)
    if allowed is None:
        raise ValueError(f"Unknown table: {table}")
    for c in columns:
        if c not in allowed:
            raise ValueError(f"Unknown column: {table}.{c}")


class Store:
    """
    取り込みパイプラインが依存するキー付きストアのインターフェース。

    実装は各呼び出しをチャンク単位で原子的に処理し、
    失敗時は StoreChunkError を送出すること。
    """

    def upsert(
        self,
        table: str,
        rows: Sequence[Dict[str, Any]],
        conflict_key: Sequence[str],
    ) -> None:
        """
        rows を conflict_key を自然キーとして upsert する。

        衝突時は conflict_key 以外の列を上書きする。上書き対象の列が無い場合は何もしない。
        """
        raise NotImplementedError

    def select_by_keys(
        self,
        table: str,
        key_columns: Sequence[str],
        keys: Sequence[Tuple[Any, ...]],
    ) -> List[Dict[str, Any]]:
        """key_columns の値の組が keys のいずれかに一致する行を返す。"""
        raise NotImplementedError

    def fetch_rating_rows(self, user_id: str) -> List[Dict[str, Any]]:
        """レーティング計算用に user_record と chart/song を結合した行を返す。"""
        raise NotImplementedError

    def ping(self) -> None:
        """ストアへ到達できない場合に FatalStoreError を送出する。"""
        raise NotImplementedError


def connect_db(path: str) -> sqlite3.Connection:
    """
    SQLite DBへ接続する。

    外部キー制約を有効化し、スレッド間で1接続を共有できるようにする。

    Args:
        path: SQLiteファイルパス。":memory:" も指定可能。

    Returns:
        sqlite3.Connectionオブジェクト。

    Raises:
        FatalStoreError: DBを開けない場合。
    """
    try:
        con = sqlite3.connect(path, check_same_thread=False)
        con.row_factory = sqlite3.Row
        con.execute("PRAGMA foreign_keys = ON")
    except sqlite3.Error as e:
        raise FatalStoreError(f"Cannot open database: {path} ({e})") from e
    return con


def init_schema(con: sqlite3.Connection) -> None:
    """
    DBスキーマを初期化する。

    song/chart/user_record/user_profile テーブルが存在しない場合に作成する。

    Args:
        con: SQLite接続。
    """
    cur = con.cursor()

    cur.execute("""
    CREATE TABLE IF NOT EXISTS song (
        song_id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL UNIQUE,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """)

    cur.execute("""
    CREATE TABLE IF NOT EXISTS chart (
        chart_id INTEGER PRIMARY KEY AUTOINCREMENT,
        song_id INTEGER NOT NULL,
        difficulty_type TEXT NOT NULL
            CHECK (difficulty_type IN ('basic', 'advanced', 'expert', 'master', 'remaster')),
        is_dx INTEGER NOT NULL,
        internal_level REAL NOT NULL,
        version_era TEXT NOT NULL DEFAULT 'unknown'
            CHECK (version_era IN ('new', 'old', 'unknown')),
        updated_at TEXT NOT NULL,
        UNIQUE(song_id, difficulty_type, is_dx),
        FOREIGN KEY(song_id) REFERENCES song(song_id)
    )
    """)

    cur.execute("""
    CREATE TABLE IF NOT EXISTS user_record (
        user_id TEXT NOT NULL,
        chart_id INTEGER NOT NULL,
        achievement REAL NOT NULL,
        fc_type TEXT NOT NULL DEFAULT 'none',
        fs_type TEXT NOT NULL DEFAULT 'none',
        updated_at TEXT NOT NULL,
        PRIMARY KEY(user_id, chart_id),
        FOREIGN KEY(chart_id) REFERENCES chart(chart_id)
    )
    """)

    cur.execute("""
    CREATE TABLE IF NOT EXISTS user_profile (
        user_id TEXT PRIMARY KEY,
        nickname TEXT NOT NULL,
        icon_url TEXT NULL,
        title TEXT NULL,
        title_image_url TEXT NULL,
        dan_grade_url TEXT NULL,
        friend_rank_url TEXT NULL,
        total_stars INTEGER NULL,
        play_count_total INTEGER NULL,
        play_count_version INTEGER NULL,
        updated_at TEXT NOT NULL
    )
    """)

    con.commit()


class SqliteStore(Store):
    """
    Store の SQLite 実装。

    1接続をロックで直列化して共有するため、チャンクを並列に投げても安全に動作する。
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._con = connect_db(path)
        self._lock = threading.Lock()
        try:
            init_schema(self._con)
        except sqlite3.Error as e:
            self._con.close()
            raise FatalStoreError(f"Cannot initialize schema: {path} ({e})") from e

    def close(self) -> None:
        self._con.close()

    def ping(self) -> None:
        try:
            with self._lock:
                self._con.execute("SELECT 1").fetchone()
        except sqlite3.Error as e:
            raise FatalStoreError(f"Database is unreachable: {self.path} ({e})") from e

    def upsert(
        self,
        table: str,
        rows: Sequence[Dict[str, Any]],
        conflict_key: Sequence[str],
    ) -> None:
        if not rows:
            return

        _check_columns(table, conflict_key)

        # 列構成ごとに executemany する(version_era 有無で列が変わる)
        groups: Dict[Tuple[str, ...], List[Tuple[Any, ...]]] = {}
        now = now_iso()
        for row in rows:
            row = dict(row)
            if table in _UPDATED_AT_TABLES and "updated_at" not in row:
                row["updated_at"] = now
            cols = tuple(row.keys())
            groups.setdefault(cols, []).append(tuple(row[c] for c in cols))

        statements = []
        for cols, values in groups.items():
            _check_columns(table, cols)
            updates = [c for c in cols if c not in conflict_key]
            if updates:
                action = "DO UPDATE SET " + ", ".join(f"{c}=excluded.{c}" for c in updates)
            else:
                action = "DO NOTHING"
            sql = (
                f"INSERT INTO {table} ({', '.join(cols)}) "
                f"VALUES ({', '.join('?' for _ in cols)}) "
                f"ON CONFLICT ({', '.join(conflict_key)}) {action}"
            )
            statements.append((sql, values))

        try:
            with self._lock, self._con:
                for sql, values in statements:
                    self._con.executemany(sql, values)
        # INTEGER 範囲外の int は sqlite3.Error ではなく OverflowError になる
        except (sqlite3.Error, OverflowError) as e:
            raise StoreChunkError(f"upsert into {table} failed ({len(rows)} rows): {e}") from e

    def select_by_keys(
        self,
        table: str,
        key_columns: Sequence[str],
        keys: Sequence[Tuple[Any, ...]],
    ) -> List[Dict[str, Any]]:
        if not keys:
            return []

        _check_columns(table, key_columns)

        params: List[Any] = []
        if len(key_columns) == 1:
            where = f"{key_columns[0]} IN ({', '.join('?' for _ in keys)})"
            params = [k[0] for k in keys]
        else:
            tuple_ph = "(" + ", ".join("?" for _ in key_columns) + ")"
            where = (
                f"({', '.join(key_columns)}) IN "
                f"(VALUES {', '.join(tuple_ph for _ in keys)})"
            )
            for k in keys:
                params.extend(k)

        sql = f"SELECT * FROM {table} WHERE {where}"
        try:
            with self._lock:
                fetched = self._con.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreChunkError(f"select from {table} failed ({len(keys)} keys): {e}") from e

        return [self._to_dict(r) for r in fetched]

    def fetch_rating_rows(self, user_id: str) -> List[Dict[str, Any]]:
        sql = """
        SELECT s.title, c.difficulty_type, c.is_dx, c.internal_level, c.version_era,
               r.achievement, r.fc_type, r.fs_type
        FROM user_record r
        INNER JOIN chart c ON c.chart_id = r.chart_id
        INNER JOIN song s ON s.song_id = c.song_id
        WHERE r.user_id = ?
        ORDER BY r.chart_id
        """
        try:
            with self._lock:
                fetched = self._con.execute(sql, (user_id,)).fetchall()
        except sqlite3.Error as e:
            raise FatalStoreError(f"Cannot read records for {user_id}: {e}") from e

        return [self._to_dict(r) for r in fetched]

    def count_rows(self, table: str) -> int:
        """テーブルの行数を返す。"""
        _check_columns(table, ())
        with self._lock:
            row = self._con.execute(f"SELECT COUNT(*) AS cnt FROM {table}").fetchone()
        return int(row["cnt"])

    @staticmethod
    def _to_dict(row: sqlite3.Row) -> Dict[str, Any]:
        d = dict(row)
        for c in _BOOL_COLUMNS:
            if c in d:
                d[c] = bool(d[c])
        return d
