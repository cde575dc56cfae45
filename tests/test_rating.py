"""レーティング計算のテスト。"""

from __future__ import annotations

import pytest

from maimai_records.rating import (
    RANK_MULTIPLIERS,
    calculate_single_rating,
    compute_best_rating,
    get_fc_multiplier,
    get_multiplier,
)


def _rec(internal_level, achievement, version_era="old", fc_type=None, title="T"):
    return {
        "title": title,
        "internal_level": internal_level,
        "achievement": achievement,
        "version_era": version_era,
        "fc_type": fc_type,
    }


@pytest.mark.light
def test_multiplier_breakpoints():
    cases = [
        (101.0, 22.4),
        (100.5, 22.4),
        (100.4999, 21.6),
        (100.0, 21.6),
        (99.5, 21.1),
        (99.0, 20.8),
        (98.0, 20.3),
        (97.0, 20.0),
        (96.9999, 16.8),
        (94.0, 16.8),
        (90.0, 15.2),
        (80.0, 13.6),
        (79.9999, 0.0),
        (0.0, 0.0),
    ]
    for achievement, expected in cases:
        assert get_multiplier(achievement) == expected, achievement


@pytest.mark.light
def test_multiplier_is_monotonic_step_function():
    """0-101 の範囲で係数が単調非減少であり、値が10種類の段階に限られることを確認する。"""
    values = [get_multiplier(i / 100) for i in range(0, 10101)]
    assert all(a <= b for a, b in zip(values, values[1:]))
    assert set(values) == {0.0} | {m for _, m in RANK_MULTIPLIERS}


@pytest.mark.light
def test_fc_multiplier():
    assert get_fc_multiplier(None) == 1.0
    assert get_fc_multiplier("none") == 1.0
    assert get_fc_multiplier("fc") == 1.0125
    assert get_fc_multiplier("fc+") == 1.025
    assert get_fc_multiplier("ap") == 1.0375
    assert get_fc_multiplier("ap+") == 1.05


@pytest.mark.light
def test_single_rating_sss_plus_all_perfect_plus():
    """13.0 を 100.5% AP+ の場合: floor(13.0 * 22.4 * 1.005 * 1.05) = floor(307.29) = 307。"""
    assert calculate_single_rating(13.0, 100.5, "ap+") == 307


@pytest.mark.light
def test_single_rating_caps_achievement_at_100_5():
    assert calculate_single_rating(13.0, 101.0) == calculate_single_rating(13.0, 100.5)
    assert calculate_single_rating(13.0, 100.5) == 292


@pytest.mark.light
def test_single_rating_examples():
    assert calculate_single_rating(13.0, 100.0, "ap+") == 294  # 294.84
    assert calculate_single_rating(14.6, 99.5) == 306  # 306.51...
    assert calculate_single_rating(12.0, 79.0) == 0


@pytest.mark.light
def test_single_rating_is_pure_and_non_negative_int():
    for level in (1.0, 7.6, 12.0, 13.7, 15.0):
        for achievement in (0.0, 50.0, 80.0, 97.0, 100.5, 101.0):
            for fc in (None, "fc", "ap+"):
                first = calculate_single_rating(level, achievement, fc)
                second = calculate_single_rating(level, achievement, fc)
                assert first == second
                assert isinstance(first, int)
                assert first >= 0


@pytest.mark.light
def test_single_new_record_goes_to_new_pool():
    summary = compute_best_rating([_rec(13.0, 100.5, "new", "ap+", title="A")])

    assert summary.new_rating == 307
    assert summary.old_rating == 0
    assert summary.total_rating == 307
    assert [s["title"] for s in summary.new_songs] == ["A"]
    assert summary.new_songs[0]["rating"] == 307
    assert summary.old_songs == []
    assert summary.all_count == 1


@pytest.mark.light
def test_new_pool_keeps_top_15_of_20():
    # 内部レベルを下げて厳密に単調減少するレーティングを作る
    records = [_rec(15.0 - i * 0.1, 100.0, "new", title=f"N{i:02d}") for i in range(20)]
    summary = compute_best_rating(records)

    ratings = [calculate_single_rating(r["internal_level"], 100.0) for r in records]
    assert all(a > b for a, b in zip(ratings, ratings[1:]))

    assert [s["title"] for s in summary.new_songs] == [f"N{i:02d}" for i in range(15)]
    assert summary.new_rating == sum(ratings[:15])
    assert summary.all_count == 20


@pytest.mark.light
def test_pool_limits_and_descending_order():
    records = [_rec(10.0 + (i % 7) * 0.5, 99.0 + (i % 3) * 0.5, "old", title=f"O{i}") for i in range(60)]
    records += [_rec(12.0 + (i % 5) * 0.3, 98.0, "new", title=f"N{i}") for i in range(30)]
    summary = compute_best_rating(records)

    assert len(summary.new_songs) == 15
    assert len(summary.old_songs) == 35
    for pool in (summary.new_songs, summary.old_songs):
        ratings = [s["rating"] for s in pool]
        assert ratings == sorted(ratings, reverse=True)
    assert summary.total_rating == summary.new_rating + summary.old_rating
    assert summary.all_count == 90


@pytest.mark.light
def test_ties_keep_input_order():
    records = [_rec(13.0, 100.0, "old", title=f"T{i}") for i in range(5)]
    summary = compute_best_rating(records)
    assert [s["title"] for s in summary.old_songs] == ["T0", "T1", "T2", "T3", "T4"]


@pytest.mark.light
def test_unset_and_unknown_era_go_to_old_pool():
    records = [
        _rec(13.0, 100.0, None, title="none"),
        _rec(13.0, 100.0, "unknown", title="unknown"),
        _rec(13.0, 100.0, "Old", title="old"),
        _rec(13.0, 100.0, "New", title="new"),
    ]
    summary = compute_best_rating(records)

    assert [s["title"] for s in summary.old_songs] == ["none", "unknown", "old"]
    assert [s["title"] for s in summary.new_songs] == ["new"]


@pytest.mark.light
def test_custom_limits_and_wire_shape():
    records = [_rec(13.0, 100.0, "new", title=f"N{i}") for i in range(3)]
    summary = compute_best_rating(records, new_limit=2, old_limit=1)

    assert len(summary.new_songs) == 2
    body = summary.to_dict()
    assert set(body) == {"totalRating", "newRating", "oldRating", "newSongs", "oldSongs", "allCount"}
    assert body["allCount"] == 3


@pytest.mark.light
def test_empty_input():
    summary = compute_best_rating([])
    assert summary.total_rating == 0
    assert summary.new_songs == [] and summary.old_songs == []
    assert summary.all_count == 0
