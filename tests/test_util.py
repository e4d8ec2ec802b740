from datetime import datetime, timedelta, timezone

import pytest

from snapsync.util import (
    RecordKeyClock,
    TID_ALPHABET,
    format_timestamp,
    human_size,
    parse_timestamp,
)


def test_human_size():
    assert human_size(1) == "1 byte"
    assert human_size(10) == "10 bytes"
    assert human_size(2048) == "2.0KB"
    assert human_size(3 * 2**20) == "3.0MB"


def test_timestamp_format():
    dt = datetime(2024, 3, 5, 12, 30, 1, 123456, tzinfo=timezone.utc)
    assert format_timestamp(dt) == "2024-03-05T12:30:01.123Z"


def test_timestamp_parse():
    dt = parse_timestamp("2024-03-05T12:30:01.123Z")
    assert dt == datetime(2024, 3, 5, 12, 30, 1, 123000, tzinfo=timezone.utc)
    assert parse_timestamp(format_timestamp(dt)) == dt
    # offsets are normalised to utc
    assert parse_timestamp("2024-03-05T13:30:01.123+01:00") == dt


@pytest.mark.parametrize("bad", ["", "yesterday", None, 12])
def test_timestamp_parse_bad(bad):
    with pytest.raises(ValueError):
        parse_timestamp(bad)


def test_record_keys_increase():
    clock = RecordKeyClock()
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    keys = [clock.next(now) for _ in range(5)]
    keys.append(clock.next(now - timedelta(days=1)))
    keys.append(clock.next(now + timedelta(seconds=1)))
    assert all(len(k) == 13 for k in keys)
    assert all(c in TID_ALPHABET for k in keys for c in k)
    assert keys == sorted(keys)
    assert len(set(keys)) == len(keys)
