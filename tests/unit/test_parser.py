"""Test rsync output classification."""

import pytest

from lyracopy.infrastructure.sync.parser import RsyncProgressParser, is_noise, parse_size


@pytest.fixture
def parser():
    return RsyncProgressParser()


class TestParseSize:
    """Size token conversion."""

    def test_plain_and_grouped_integers(self):
        assert parse_size("512") == 512
        assert parse_size("1,234,567") == 1234567

    def test_human_readable_units_are_decimal(self):
        assert parse_size("1.23G") == 1_230_000_000
        assert parse_size("1.23GB") == 1_230_000_000
        assert parse_size("10K") == 10_000

    def test_not_a_size(self):
        assert parse_size("report.pdf") is None
        assert parse_size("") is None


class TestProgressLines:
    """Overall progress lines from --info=progress2."""

    def test_human_readable_progress_line(self, parser):
        event = parser.parse(" 1.23GB  89%  10.25MB/s  0:00:05")

        assert event is not None
        assert event.bytes_done == 1_230_000_000
        assert event.speed_bps == 10_250_000
        assert event.current_file is None

    def test_progress_line_with_transfer_counters(self, parser):
        event = parser.parse("      1,234,567  45%    2.50MB/s    0:00:12 (xfr#3, to-chk=12/20)")

        assert event.bytes_done == 1234567
        assert event.speed_bps == 2_500_000

    def test_progress_line_without_speed(self, parser):
        event = parser.parse("4,096 100%")

        assert event.bytes_done == 4096
        assert event.speed_bps is None

    def test_file_name_starting_with_number_is_not_progress(self, parser):
        event = parser.parse("2023 report.pdf")

        assert event.current_file == "2023 report.pdf"
        assert event.bytes_done is None


class TestFileLines:
    """File names and noise."""

    def test_relative_path_is_a_file(self, parser):
        event = parser.parse("documents/report.pdf")

        assert event.is_file
        assert event.current_file == "documents/report.pdf"

    def test_surrounding_whitespace_is_stripped(self, parser):
        assert parser.parse("  notes.txt  \r").current_file == "notes.txt"

    @pytest.mark.parametrize("line", [
        "",
        "   ",
        ".",
        "x",
        "50% of docs/a",
        "(xfr#3, ir-chk=1000/2000)",
        "to-chk=5/10",
        "1,234,567",
        "elapsed 0:00:05s",
        "sending incremental file list",
        "receiving incremental file list",
        "building file list ... done",
        "sent 1,234 bytes  received 56 bytes  2,580.00 bytes/sec",
        "total size is 12,345  speedup is 1.00",
        "created directory /backup/dest",
    ])
    def test_noise_is_discarded(self, parser, line):
        assert parser.parse(line) is None

    def test_is_noise_keeps_plain_names(self):
        assert not is_noise("photos/2024/IMG_0001.JPG")
        assert not is_noise("README")
