"""
Tests for timestamp helpers.
"""

from datetime import datetime, timezone

import pytest

from roadview.utils.timestamps import (
    format_timestamp,
    parse_timestamp,
    seconds_of_day,
    split_timestamp,
    to_epoch_seconds,
)


T0 = datetime(2024, 5, 14, 10, 0, 0, tzinfo=timezone.utc).timestamp()


class TestParseTimestamp:
    """Tests for parse_timestamp / to_epoch_seconds."""

    @pytest.mark.parametrize("text", [
        "2024-05-14 10:00:00",
        "2024-05-14T10:00:00",
        "2024-05-14T10:00:00Z",
        "2024/05/14 10:00:00",
    ])
    def test_formats(self, text):
        assert to_epoch_seconds(text) == T0

    def test_fractional_seconds(self):
        assert to_epoch_seconds("2024-05-14 10:00:00.250") == T0 + 0.25

    def test_epoch_seconds_and_millis(self):
        assert to_epoch_seconds(str(int(T0))) == T0
        assert to_epoch_seconds(str(int(T0 * 1000))) == T0

    def test_offset_respected(self):
        assert to_epoch_seconds("2024-05-14T19:00:00+09:00") == T0

    @pytest.mark.parametrize("text", ["", "10:00:00", "yesterday", "12", None])
    def test_unparseable(self, text):
        assert parse_timestamp(text) is None

    @pytest.mark.parametrize("text", ["inf", "-inf", "1e15", "99999999999999999"])
    def test_out_of_range_numbers(self, text):
        assert parse_timestamp(text) is None
        assert to_epoch_seconds(text) is None


class TestFormatting:
    """Tests for format/split helpers."""

    def test_format_whole_seconds(self):
        assert format_timestamp(T0) == "2024-05-14 10:00:00"

    def test_format_millis(self):
        assert format_timestamp(T0 + 0.5) == "2024-05-14 10:00:00.500"

    def test_split(self):
        assert split_timestamp("2024-05-14 10:00:00") == ("2024-05-14", "10:00:00")
        assert split_timestamp("2024-05-14T10:00:00") == ("2024-05-14", "10:00:00")
        assert split_timestamp("2024-05-14") == ("2024-05-14", "")


class TestSecondsOfDay:
    """Tests for seconds_of_day."""

    def test_time_strings(self):
        assert seconds_of_day("10:00") == 36000
        assert seconds_of_day("10:00:30") == 36030
        assert seconds_of_day("10:00:30.5") == 36030.5

    def test_full_timestamp(self):
        assert seconds_of_day("2024-05-14 10:00:30") == 36030

    def test_garbage(self):
        assert seconds_of_day("noon") is None
