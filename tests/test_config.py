from __future__ import annotations

from pathlib import Path

import pytest

from maimai_records.config import Settings, load_settings, load_version_eras

PROJECT_ROOT = Path(__file__).resolve().parents[1]


@pytest.mark.light
def test_load_settings(tmp_path: Path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        "db_path: data/records.sqlite\n"
        "version_eras_path: eras.yaml\n"
        "ingest:\n"
        "  chunk_size: 50\n"
        "  max_workers: 4\n"
        "rating:\n"
        "  new_pool_size: 15\n"
        "  old_pool_size: 35\n",
        encoding="utf-8",
    )

    settings = load_settings(str(path))

    assert settings == Settings(
        db_path="data/records.sqlite",
        chunk_size=50,
        max_workers=4,
        new_pool_size=15,
        old_pool_size=35,
        version_eras_path="eras.yaml",
    )


@pytest.mark.light
def test_load_settings_defaults(tmp_path: Path):
    path = tmp_path / "settings.yaml"
    path.write_text("", encoding="utf-8")

    settings = load_settings(str(path))

    assert settings.chunk_size == 200
    assert settings.max_workers == 1
    assert settings.version_eras_path is None


@pytest.mark.light
def test_load_settings_rejects_zero_chunk(tmp_path: Path):
    path = tmp_path / "settings.yaml"
    path.write_text("ingest:\n  chunk_size: 0\n", encoding="utf-8")

    with pytest.raises(ValueError, match="chunk_size"):
        load_settings(str(path))


@pytest.mark.light
def test_repository_settings_file_loads():
    settings = load_settings(str(PROJECT_ROOT / "settings.yaml"))
    assert settings.chunk_size == 200


@pytest.mark.light
def test_load_version_eras(tmp_path: Path):
    path = tmp_path / "eras.yaml"
    path.write_text(
        "new:\n  - ' Song A '\n  - Song B\nold:\n  - Song C\n  - Song B\n",
        encoding="utf-8",
    )

    assert load_version_eras(str(path)) == {"Song A": "new", "Song B": "old", "Song C": "old"}
    assert load_version_eras(None) == {}
