import json
import logging
import os
import sys
import traceback

from maimai_records.config import load_settings, load_version_eras
from maimai_records.discord_notify import build_ingest_message, send_discord
from maimai_records.ingest import ingest_batch, read_rating
from maimai_records.store import SqliteStore


def main():
    """
    スクレイパーが出力したバッチJSONを取り込み、レーティングを表示するメイン処理。
    以下の処理を順序実行する:
    1. settings.yaml と版区分ファイルを読み込む
    2. SQLiteストアを開く
    3. バッチJSONを取り込む(曲解決 → 譜面解決 → 記録照合 → 保存)
    4. 保存済み記録からレーティングを集計して標準出力へ表示
    5. Discord Webhookで処理結果を通知（成功/失敗）
    環境変数の要件:
    - INGEST_USER_ID: 取り込み対象ユーザーID
    - INGEST_JSON_PATH: バッチJSONのファイルパス
    - SETTINGS_PATH: settings.yaml のパス(デフォルト: "settings.yaml")
    - DISCORD_WEBHOOK_URL: Discord通知先(オプション)
    Raises:
        Exception: 処理中に任意のエラーが発生した場合。
                   エラー内容はDiscordに通知される（設定済みの場合）
    """
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    discord_webhook = os.environ.get("DISCORD_WEBHOOK_URL")

    try:
        user_id = os.environ.get("INGEST_USER_ID")
        json_path = os.environ["INGEST_JSON_PATH"]
        settings = load_settings(os.environ.get("SETTINGS_PATH", "settings.yaml"))
        version_eras = load_version_eras(settings.version_eras_path)

        with open(json_path, "r", encoding="utf-8") as f:
            payload = json.load(f)

        store = SqliteStore(settings.db_path)
        try:
            summary = ingest_batch(store, user_id, payload, settings, version_eras)
            print(json.dumps(summary.to_dict(), ensure_ascii=False))

            rating = read_rating(store, user_id, settings)
            print(json.dumps(rating.to_dict(), ensure_ascii=False, indent=2))
        finally:
            store.close()

        if discord_webhook:
            send_discord(discord_webhook, build_ingest_message(user_id, summary, rating))

        print("SUCCESS")

    except Exception:
        err = traceback.format_exc()
        print(err, file=sys.stderr)

        if discord_webhook:
            msg = (
                f"❌ records ingest failed\n"
                f"```{err[:1800]}```"
            )
            send_discord(discord_webhook, msg)

        raise


if __name__ == "__main__":
    main()
