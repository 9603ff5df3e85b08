"""Tests for restic output extraction."""

import json

import pytest
from hypothesis import given
from hypothesis import strategies as st

from resticbackup.stats import (
    UNKNOWN,
    ExtractionWarning,
    format_bytes,
    parse_backup_output,
    parse_restore_output,
    parse_snapshot_ids,
)


BACKUP_OUTPUT = "\n".join([
    '{"message_type":"status","percent_done":0.5,"total_files":10,"files_done":5}',
    'error: open /home/user/documents/locked: permission denied',
    '{"message_type":"summary","files_new":3,"files_changed":2,"files_unmodified":120,'
    '"dirs_new":1,"dirs_changed":0,"dirs_unmodified":9,"data_blobs":4,"tree_blobs":2,'
    '"data_added":1536,"total_files_processed":125,"total_bytes_processed":99999,'
    '"total_duration":1.2,"snapshot_id":"4f2c8a9b1d"}',
])


class TestParseBackupOutput:
    """Tests for the backup JSON summary."""

    def test_summary_fields(self):
        stats = parse_backup_output(BACKUP_OUTPUT)

        assert stats.files_new == 3
        assert stats.files_changed == 2
        assert stats.files_unmodified == 120
        assert stats.data_added == 1536
        assert stats.total_files == 125
        assert stats.snapshot_id == "4f2c8a9b1d"
        assert stats.warnings == []

    def test_summary_without_message_type(self):
        stats = parse_backup_output('{"files_new": 1, "files_changed": 0, '
                                    '"files_unmodified": 4, "data_added": 10}')
        assert stats.total_files == 5
        assert stats.data_added == 10

    def test_missing_fields_default_to_zero(self):
        stats = parse_backup_output('{"message_type":"summary","files_new":7}')

        assert stats.files_new == 7
        assert stats.files_changed == 0
        assert stats.data_added == 0
        assert len(stats.warnings) == 3
        assert all(isinstance(w, ExtractionWarning) for w in stats.warnings)

    @pytest.mark.parametrize("text", ["", "Fatal: unable to open repository", "{not json"])
    def test_no_summary(self, text):
        stats = parse_backup_output(text)

        assert stats.total_files == 0
        assert stats.data_added == 0
        assert len(stats.warnings) == 1

    @given(
        counts=st.fixed_dictionaries({
            "files_new": st.integers(min_value=0, max_value=10**6),
            "files_changed": st.integers(min_value=0, max_value=10**6),
            "files_unmodified": st.integers(min_value=0, max_value=10**6),
            "data_added": st.integers(min_value=0, max_value=10**12),
        }),
        noise=st.lists(st.text(alphabet="abc xyz:/", max_size=20), max_size=5),
    )
    def test_summary_found_among_noise(self, counts, noise):
        summary = json.dumps({"message_type": "summary", **counts})
        stats = parse_backup_output("\n".join([*noise, summary]))

        assert stats.total_files == (
            counts["files_new"] + counts["files_changed"] + counts["files_unmodified"]
        )
        assert stats.data_added == counts["data_added"]
        assert stats.warnings == []


class TestParseRestoreOutput:
    """Tests for restore progress/summary lines."""

    def test_legacy_lines(self):
        text = (
            "restoring <Snapshot 4f2c8a9b of [/home/user/documents]> to /tmp/restore\n"
            "restoring 42 files\n"
            "restored 1.5 GB\n"
        )
        stats = parse_restore_output(text)

        assert stats.files_restored == "42"
        assert stats.size_restored == "1.5 GB"
        assert stats.warnings == []

    def test_summary_line(self):
        text = (
            "restoring snapshot 4f2c8a9b of [/home/user/documents] at 2024-05-01 to /tmp/r\n"
            "Summary: Restored 17 files/dirs (3.204 MiB) in 0:01\n"
        )
        stats = parse_restore_output(text)

        assert stats.files_restored == "17"
        assert stats.size_restored == "3.204 MiB"

    def test_last_match_wins(self):
        stats = parse_restore_output("restoring 1 files\nrestoring 5 files\n")
        assert stats.files_restored == "5"

    def test_missing_values_are_unknown(self):
        stats = parse_restore_output("nothing useful here")

        assert stats.files_restored == UNKNOWN
        assert stats.size_restored == UNKNOWN
        assert len(stats.warnings) == 2


class TestParseSnapshotIds:
    """Tests for `restic snapshots --json` parsing."""

    def test_ids_in_listed_order(self):
        payload = json.dumps([
            {"id": "aaaaaaaa1111", "short_id": "aaaaaaaa", "tags": ["documents"]},
            {"id": "bbbbbbbb2222", "short_id": "bbbbbbbb", "tags": ["documents"]},
        ])
        assert parse_snapshot_ids(payload) == ["aaaaaaaa", "bbbbbbbb"]

    def test_falls_back_to_full_id(self):
        payload = json.dumps([{"id": "cccccccc3333"}])
        assert parse_snapshot_ids(payload) == ["cccccccc"]

    @pytest.mark.parametrize("text", ["[]", "", "null", "Fatal: wrong password", "[{]"])
    def test_no_ids(self, text):
        assert parse_snapshot_ids(text) == []


class TestFormatBytes:
    """Tests for human-readable byte counts."""

    @pytest.mark.parametrize("value,expected", [
        (0, "0B"),
        (1023, "1023B"),
        (1536, "1.5KiB"),
        (10 * 1024, "10KiB"),
        (5 * 1024 ** 3 // 2, "2.5GiB"),
        ("2048", "2.0KiB"),
        (1025, "1.1KiB"),
        (10 * 1024 + 1, "11KiB"),
        (1024 ** 2 - 1, "1.0MiB"),
    ])
    def test_units(self, value, expected):
        assert format_bytes(value) == expected

    @pytest.mark.parametrize("value", ["n/a", -5, None])
    def test_fallback(self, value):
        assert format_bytes(value) == f"{value} bytes"
