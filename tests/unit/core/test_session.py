"""Tests for the cached session expiry check."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from src.isoenv.core.session import (
    BAR_LENGTH,
    SessionStatus,
    check_session,
    find_cached_expiration,
    parse_expiration,
)
from src.isoenv.utils.error_handler import PreconditionError

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def write_cache(directory, name, expiration):
    path = directory / name
    path.write_text(json.dumps({"Credentials": {"AccessKeyId": "ASIA", "Expiration": expiration}}))
    return path


@pytest.fixture
def cache_dir(tmp_path):
    directory = tmp_path / "cache"
    directory.mkdir()
    return directory


def test_parse_expiration_with_zulu_suffix():
    assert parse_expiration("2024-06-01T18:00:00Z") == datetime(2024, 6, 1, 18, tzinfo=timezone.utc)


def test_parse_expiration_with_offset():
    parsed = parse_expiration("2024-06-01T20:00:00+02:00")
    assert parsed == datetime(2024, 6, 1, 18, tzinfo=timezone.utc)


def test_parse_naive_expiration_is_utc():
    assert parse_expiration("2024-06-01T18:00:00").tzinfo == timezone.utc


def test_active_session(cache_dir):
    write_cache(cache_dir, "abc.json", "2024-06-01T18:00:00Z")

    status = check_session(cache_dir, now=lambda: NOW)

    assert status.expired is False
    assert status.remaining_hours == 6
    assert status.remaining_minutes == 360
    assert status.usage_percentage == 50
    bar = status.usage_bar()
    assert len(bar) == BAR_LENGTH
    assert bar.count("█") == 20


def test_expired_session(cache_dir):
    write_cache(cache_dir, "abc.json", "2024-06-01T11:00:00Z")

    status = check_session(cache_dir, now=lambda: NOW)

    assert status.expired is True
    assert status.usage_percentage == 100
    assert status.usage_bar() == "█" * BAR_LENGTH


def test_usage_is_clamped_for_fresh_long_sessions():
    status = SessionStatus(
        cache_file=None, expires_at=NOW + timedelta(hours=24), now=NOW
    )
    assert status.usage_percentage == 0
    assert status.usage_bar() == "░" * BAR_LENGTH


def test_unreadable_and_unrelated_files_are_skipped(cache_dir):
    (cache_dir / "a.json").write_text("{broken")
    (cache_dir / "b.json").write_text(json.dumps({"other": True}))
    expected = write_cache(cache_dir, "c.json", "2024-06-01T18:00:00Z")

    assert find_cached_expiration(cache_dir) == (expected, "2024-06-01T18:00:00Z")


def test_no_cache_directory(tmp_path):
    with pytest.raises(PreconditionError, match="No active session"):
        check_session(tmp_path / "missing", now=lambda: NOW)


def test_empty_cache_directory(cache_dir):
    with pytest.raises(PreconditionError, match="aws sso login"):
        check_session(cache_dir, now=lambda: NOW)


def test_unparseable_expiration(cache_dir):
    write_cache(cache_dir, "abc.json", "tomorrow")

    with pytest.raises(PreconditionError, match="Could not parse"):
        check_session(cache_dir, now=lambda: NOW)
