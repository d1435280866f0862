from datetime import datetime, timedelta, timezone

import pytest

from catalog_sync.core.utils import (
    chunked,
    ensure_utc,
    first_present,
    is_blank,
    lookup_path,
    mask_secret,
    stable_hash,
)


def test_ensure_utc_naive_and_aware():
    """Test naive values are treated as UTC and aware values converted"""
    naive = datetime(2024, 1, 1, 12, 0)
    assert ensure_utc(naive) == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    eastern = datetime(2024, 1, 1, 7, 0, tzinfo=timezone(timedelta(hours=-5)))
    assert ensure_utc(eastern) == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert ensure_utc(None) is None


def test_stable_hash_ignores_key_order():
    """Test equal mappings hash equally regardless of insertion order"""
    assert stable_hash({"a": 1, "b": [1, 2]}) == stable_hash({"b": [1, 2], "a": 1})
    assert stable_hash({"a": 1}) != stable_hash({"a": 2})


def test_chunked():
    assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
    assert list(chunked([], 3)) == []
    with pytest.raises(ValueError):
        list(chunked([1], 0))


def test_lookup_path():
    """Test dotted lookup, including flat keys that contain dots"""
    record = {"a": {"b": {"c": 1}}, "Qty. Avail": "4"}
    assert lookup_path(record, "a.b.c") == 1
    assert lookup_path(record, "Qty. Avail") == "4"
    assert lookup_path(record, "a.x") is None
    assert lookup_path(record, None) is record


def test_blank_helpers():
    assert is_blank(None)
    assert is_blank("   ")
    assert is_blank([])
    assert not is_blank(0)
    assert first_present([None, " ", "Acme", "Other"]) == "Acme"


def test_mask_secret():
    assert mask_secret("sk_test_123456") == "sk**********56"
    assert mask_secret("abc") == "***"
    assert mask_secret("") == ""
