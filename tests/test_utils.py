import pytest

from torrent_dashboard.utils import format_bytes, format_duration, format_rate


@pytest.mark.parametrize("size, expected", [
    (None, "N/A"),
    (0, "0 B"),
    (1023, "1023 B"),
    (1024, "1.0 KB"),
    (1536, "1.5 KB"),
    (5 * 1024 ** 2, "5.0 MB"),
    (3 * 1024 ** 3, "3.0 GB"),
    (2 * 1024 ** 4, "2.0 TB"),
])
def test_format_bytes(size, expected):
    assert format_bytes(size) == expected


def test_format_rate():
    assert format_rate(2048) == "2.0 KB/s"


@pytest.mark.parametrize("seconds, expected", [
    (None, "∞"),
    (0, "0s"),
    (59, "59s"),
    (61, "1m 1s"),
    (3600, "1h 0m"),
    (86400 + 7200, "1d 2h"),
])
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected
