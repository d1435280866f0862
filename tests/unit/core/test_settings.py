import pytest

from catalog_sync.core.config import Settings, clear_settings_cache, get_settings


def test_retry_delays_parsed_from_comma_list():
    """Test SYNC_RETRY_DELAYS is exposed as a tuple of floats"""
    settings = Settings(SYNC_RETRY_DELAYS="5, 10,30")
    assert settings.retry_delays == (5.0, 10.0, 30.0)


def test_retry_delays_empty():
    """Test an empty delay list means no waiting between attempts"""
    assert Settings(SYNC_RETRY_DELAYS="").retry_delays == ()


def test_settings_read_environment(monkeypatch):
    """Test values come from environment variables"""
    monkeypatch.setenv("SYNC_STALE_AFTER_HOURS", "12")
    monkeypatch.setenv("SYNC_SCHEDULE_ENABLED", "true")
    settings = Settings()
    assert settings.SYNC_STALE_AFTER_HOURS == 12.0
    assert settings.SYNC_SCHEDULE_ENABLED is True


def test_get_settings_is_cached(monkeypatch):
    """Test get_settings returns one instance until the cache is cleared"""
    clear_settings_cache()
    first = get_settings()
    assert get_settings() is first

    monkeypatch.setenv("SYNC_MAX_CONCURRENT", "9")
    clear_settings_cache()
    try:
        assert get_settings().SYNC_MAX_CONCURRENT == 9
    finally:
        monkeypatch.delenv("SYNC_MAX_CONCURRENT")
        clear_settings_cache()
