"""
Tests for the TTL policy.
"""

import pytest

from fpl_mcp.cache.ttl import CacheCategory, calculate_ttl


@pytest.mark.parametrize(
    "category, expected",
    [
        (CacheCategory.LIVE, 900),
        (CacheCategory.BOOTSTRAP, 14400),
        (CacheCategory.FIXTURES, 86400),
        (CacheCategory.PLAYER_DETAIL, 43200),
        (CacheCategory.DEFAULT, 43200),
    ],
)
def test_production_ttls(category, expected):
    assert calculate_ttl(category, dev_mode=False) == expected


@pytest.mark.parametrize("category", list(CacheCategory))
def test_development_ttl_is_one_fifth(category):
    dev = calculate_ttl(category, dev_mode=True)
    assert dev > 0
    assert dev * 5 == calculate_ttl(category, dev_mode=False)


def test_raw_strings_are_classified_by_substring():
    assert calculate_ttl("fpl:gameweek:5:live", dev_mode=False) == 900
    assert calculate_ttl("bootstrap-static", dev_mode=False) == 14400
    assert calculate_ttl("fixtures", dev_mode=False) == 86400
    assert calculate_ttl("something-else", dev_mode=False) == 43200


def test_process_flag_is_used_when_not_overridden(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    assert calculate_ttl(CacheCategory.LIVE) == 900

    monkeypatch.setenv("APP_ENV", "development")
    assert calculate_ttl(CacheCategory.LIVE) == 180

    monkeypatch.delenv("APP_ENV")
    assert calculate_ttl(CacheCategory.FIXTURES) == 86400 // 5
