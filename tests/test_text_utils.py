from __future__ import annotations

import pytest

from utils.text import parse_mention_ids, parse_min_max_range, plural, truncate
from utils.time_utils import format_time_left, parse_duration_seconds, parse_relative_delay


def test_mentions_are_deduplicated_in_order():
    assert parse_mention_ids("<@3> hi <@!2> <@3>") == [3, 2]


@pytest.mark.parametrize(("token", "expected"), [("1-10", (1, 10)), ("5 – 8", (5, 8)), ("x-1", None)])
def test_min_max_range(token, expected):
    assert parse_min_max_range(token) == expected


def test_plural_and_truncate():
    assert plural(1, "vote") == "1 vote"
    assert plural(2, "vote") == "2 votes"
    assert truncate("abcdefgh", 6) == "abc..."


@pytest.mark.parametrize(
    ("token", "expected"),
    [("30", 30), ("30s", 30), ("5m", 300), ("1h", 3600), ("2d", None), ("0", None), ("abc", None)],
)
def test_parse_duration_seconds(token, expected):
    assert parse_duration_seconds(token) == expected


def test_days_only_when_allowed():
    assert parse_duration_seconds("2d", allow_days=True) == 172800


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("10m", (600, None)),
        ("1h30m", (5400, None)),
        ("2 days from now", (172800, None)),
        ("", (None, "Please provide a delay like `10m`, `2h`, or `3d`.")),
        ("10", (None, "Invalid delay. Include a unit, e.g. `10m`, `2h`, or `3d`.")),
        ("5w", (None, "Unknown time unit `w`.")),
        ("8d", (None, "Delay cannot exceed 7 days.")),
    ],
)
def test_parse_relative_delay(raw, expected):
    assert parse_relative_delay(raw, max_seconds=7 * 86400) == expected


@pytest.mark.parametrize(("seconds", "expected"), [(0, "0s"), (12.2, "13s"), (61, "2m"), (3601, "2h")])
def test_format_time_left(seconds, expected):
    assert format_time_left(seconds) == expected
