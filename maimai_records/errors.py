"""
アプリケーション固有の例外定義モジュール。

取り込みリクエストの認証、ストア操作、入力バリデーションで発生する例外を
分類して扱うために、基底例外および派生例外を定義する。

未解決参照(曲名や譜面キーが解決できなかったレコード)は例外ではなく、
各フェーズの結果オブジェクト上の件数として扱う。
"""


class RecordsError(Exception):
    """記録取り込みシステム全体の基底例外。"""


class AuthRequiredError(RecordsError):
    """呼び出し元ユーザーを特定できない場合の例外。書き込み前に中断する。"""


class ValidationError(RecordsError):
    """入力データが仕様を満たさない場合の例外。"""


class StoreError(RecordsError):
    """ストア操作に起因する例外。"""


class StoreChunkError(StoreError):
    """1チャンク分の upsert / 読み戻しに失敗した場合の例外。呼び出し側で件数として回復する。"""


class FatalStoreError(StoreError):
    """ストアへ接続できない等、取り込み全体を継続できない場合の例外。"""
