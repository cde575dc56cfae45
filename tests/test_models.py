"""境界での生レコード・プロフィール変換のテスト。"""

from __future__ import annotations

import pytest

from maimai_records.errors import ValidationError
from maimai_records.models import IngestSummary, RawRecord, UserProfile


@pytest.mark.light
def test_raw_record_from_scraper_payload():
    record = RawRecord.from_dict(
        {
            "title": " Garakuta Doll Play ",
            "achievement": 100.6123,
            "internal_level": 13.6,
            "difficulty_value": 3,
            "level": "13+",
            "difficulty_type": "master",
            "is_dx": False,
            "fc_type": "ap",
            "fs_type": None,
        }
    )

    assert record.title == "Garakuta Doll Play"
    assert record.achievement == 100.6123
    assert record.difficulty_type == "master"
    assert record.is_dx is False
    assert record.internal_level == 13.6
    assert record.fc_type == "ap"
    assert record.fs_type == "none"
    assert record.version_era is None


@pytest.mark.light
def test_raw_record_derives_internal_level_from_label():
    record = RawRecord.from_dict(
        {"title": "X", "achievement": "99.0%", "difficulty_type": "expert", "is_dx": True, "level": "12+"}
    )
    assert record.internal_level == 12.6


@pytest.mark.light
def test_raw_record_optional_fields_default_to_none_kind():
    record = RawRecord.from_dict(
        {"title": "X", "achievement": 90, "difficulty_type": 3, "internal_level": "13.0"}
    )
    assert record.fc_type == "none"
    assert record.fs_type == "none"
    assert record.is_dx is False
    assert record.difficulty_type == "master"


@pytest.mark.light
@pytest.mark.parametrize(
    "data",
    [
        "not an object",
        {"title": "", "achievement": 99, "difficulty_type": "master", "internal_level": 13},
        {"title": "X", "achievement": 120, "difficulty_type": "master", "internal_level": 13},
        {"title": "X", "achievement": 99, "difficulty_type": "utage", "internal_level": 13},
        {"title": "X", "achievement": 99, "difficulty_type": "master"},
        {"title": "X", "achievement": 99, "difficulty_type": "master", "internal_level": "x"},
        {"title": "X", "achievement": 99, "difficulty_type": "master", "internal_level": 13, "fc_type": "?"},
        {"title": "X", "achievement": 99, "difficulty_type": "master", "internal_level": float("nan")},
        {"title": "X", "achievement": 99, "difficulty_type": "master", "internal_level": "inf"},
        {"title": "X", "achievement": 99, "difficulty_type": "master", "internal_level": 1e308},
        {"title": "X", "achievement": 99, "difficulty_type": "master", "internal_level": 20.1},
        {"title": "X", "achievement": 99, "difficulty_type": "master", "level": "99+"},
    ],
)
def test_raw_record_rejects_invalid(data):
    with pytest.raises(ValidationError):
        RawRecord.from_dict(data)


@pytest.mark.light
def test_user_profile_accepts_camel_case_keys():
    profile = UserProfile.from_dict(
        {
            "nickname": "ＰＬＡＹＥＲ",
            "iconUrl": "https://example.invalid/icon.png",
            "totalStars": "1,234",
            "playCountTotal": 5678,
            "playCountVersion": None,
        }
    )

    row = profile.to_row("user-1", "2026-01-01T00:00:00+00:00")
    assert row["user_id"] == "user-1"
    assert row["nickname"] == "ＰＬＡＹＥＲ"
    assert row["icon_url"] == "https://example.invalid/icon.png"
    assert row["total_stars"] == 1234
    assert row["play_count_total"] == 5678
    assert row["play_count_version"] is None


@pytest.mark.light
def test_user_profile_rejects_non_object():
    with pytest.raises(ValidationError):
        UserProfile.from_dict(["nickname"])


@pytest.mark.light
def test_ingest_summary_wire_shape():
    body = IngestSummary(records_received=3, records_written=2, skipped_titles=1).to_dict()
    assert body["success"] is True
    assert body["count"] == 2
    assert body["skippedTitles"] == 1
    assert body["skippedCharts"] == 0
