"""
Tests for small helpers.
"""

import pytest

from timemaster.utils import format_duration, get_resource_path, round_half_up, time_to_minutes


@pytest.mark.parametrize("minutes,expected", [
    (0, "0m"),
    (45, "45m"),
    (60, "1h"),
    (75, "1h 15m"),
    (600, "10h"),
])
def test_format_duration(minutes, expected):
    assert format_duration(minutes) == expected


def test_time_to_minutes():
    assert time_to_minutes("00:00") == 0
    assert time_to_minutes("09:30") == 570
    assert time_to_minutes("23:59") == 1439


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(1.42, 1) == 1.4
    assert round_half_up(1.25, 1) == 1.3


def test_templates_are_packaged():
    assert (get_resource_path("resources/templates") / "share_invitation.html").exists()
