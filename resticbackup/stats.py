"""Statistics extraction from restic output.

Turns raw restic output into small summary objects. Nothing here raises on
unexpected output: a field that cannot be found falls back to a
placeholder and an ExtractionWarning is recorded on the result, so a
reported success or failure is never blocked by a parse problem.

- ``restic backup --json`` ends with a JSON line of message_type "summary"
- ``restic restore`` prints plain-text progress and summary lines
- ``restic snapshots --json`` prints a JSON array of snapshots
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
import json
import re


UNKNOWN = "unknown"

BACKUP_COUNT_FIELDS = ("files_new", "files_changed", "files_unmodified", "data_added")

# Older restic: "restoring 42 files", "restored 1.5 GB"
# Newer restic: "Summary: Restored 42 files/dirs (1.234 MiB) in 0:01"
FILES_RESTORED_PATTERN = re.compile(r"restor(?:ing|ed) (\d+) files", re.IGNORECASE)
SIZE_RESTORED_PATTERN = re.compile(r"restored (\d+(?:\.\d+)? [A-Z]+)")
SUMMARY_SIZE_PATTERN = re.compile(
    r"Restored \d+ files(?:/dirs)? \((\d+(?:\.\d+)? [A-Za-z]+)\)"
)

IEC_UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB")


class ExtractionWarning(UserWarning):
    """A pattern did not match; the affected field holds a placeholder."""
    pass


@dataclass
class BackupStats:
    """Summary of one ``restic backup`` run."""
    files_new: int = 0
    files_changed: int = 0
    files_unmodified: int = 0
    data_added: int = 0
    snapshot_id: Optional[str] = None
    warnings: List[ExtractionWarning] = field(default_factory=list)

    @property
    def total_files(self) -> int:
        return self.files_new + self.files_changed + self.files_unmodified


@dataclass
class RestoreStats:
    """Summary of one ``restic restore`` run."""
    files_restored: str = UNKNOWN
    size_restored: str = UNKNOWN
    warnings: List[ExtractionWarning] = field(default_factory=list)


def _json_lines(text: str) -> List[Dict[str, Any]]:
    """Decode every line of ``text`` that holds a JSON object."""
    objects = []
    for line in text.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            value = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            objects.append(value)
    return objects


def _find_summary(text: str) -> Optional[Dict[str, Any]]:
    objects = _json_lines(text)
    for obj in reversed(objects):
        if obj.get("message_type") == "summary":
            return obj
    # Fall back to the last JSON line, as older restic omits message_type
    return objects[-1] if objects else None


def parse_backup_output(text: str) -> BackupStats:
    """
    Extract file counts and bytes added from ``restic backup --json`` output.

    Args:
        text: Captured output (status lines, errors and the summary line)

    Returns:
        BackupStats; missing counts are 0 and noted in ``warnings``
    """
    stats = BackupStats()
    summary = _find_summary(text)
    if summary is None:
        stats.warnings.append(ExtractionWarning("No backup summary found in restic output"))
        return stats

    for name in BACKUP_COUNT_FIELDS:
        value = summary.get(name)
        if isinstance(value, bool) or not isinstance(value, int):
            stats.warnings.append(
                ExtractionWarning(f"Backup summary has no integer '{name}'")
            )
            continue
        setattr(stats, name, value)

    snapshot_id = summary.get("snapshot_id")
    if isinstance(snapshot_id, str):
        stats.snapshot_id = snapshot_id

    return stats


def parse_restore_output(text: str) -> RestoreStats:
    """
    Extract restored file count and size from ``restic restore`` output.

    The last match wins for each field; absent fields read "unknown".
    """
    stats = RestoreStats()

    files = FILES_RESTORED_PATTERN.findall(text)
    if files:
        stats.files_restored = files[-1]
    else:
        stats.warnings.append(ExtractionWarning("Restored file count not found"))

    sizes = SIZE_RESTORED_PATTERN.findall(text) + SUMMARY_SIZE_PATTERN.findall(text)
    if sizes:
        # Newer restic only prints the summary form, older only the short form
        stats.size_restored = sizes[-1]
    else:
        stats.warnings.append(ExtractionWarning("Restored size not found"))

    return stats


def parse_snapshot_ids(text: str) -> List[str]:
    """
    Return snapshot short IDs from ``restic snapshots --json`` output.

    IDs keep the order restic listed them in. Output that is not a JSON
    array yields an empty list.
    """
    start = text.find("[")
    if start == -1:
        return []
    try:
        payload = json.loads(text[start:])
    except json.JSONDecodeError:
        return []
    if not isinstance(payload, list):
        return []

    ids: List[str] = []
    for snapshot in payload:
        if not isinstance(snapshot, dict):
            continue
        short_id = snapshot.get("short_id")
        if isinstance(short_id, str) and short_id:
            ids.append(short_id)
        elif isinstance(snapshot.get("id"), str) and snapshot["id"]:
            ids.append(snapshot["id"][:8])
    return ids


def format_bytes(num_bytes: Union[int, str]) -> str:
    """
    Format a byte count with IEC units, e.g. 1536 -> "1.5KiB".

    Values round away from zero like ``numfmt --to=iec-i``, so 1025 reads
    "1.1KiB". Falls back to "<n> bytes" for anything that is not a
    non-negative integer.
    """
    try:
        value = int(num_bytes)
    except (TypeError, ValueError):
        return f"{num_bytes} bytes"
    if value < 0:
        return f"{num_bytes} bytes"

    if value < 1024:
        return f"{value}B"

    for unit_index in range(1, len(IEC_UNITS)):
        divisor = 1024 ** unit_index
        tenths = -(-value * 10 // divisor)
        if tenths < 100:
            return f"{tenths // 10}.{tenths % 10}{IEC_UNITS[unit_index]}"
        whole = -(-value // divisor)
        # 1023.5KiB rounds up to 1024KiB, which reads as 1.0MiB
        if whole < 1024 or unit_index == len(IEC_UNITS) - 1:
            return f"{whole}{IEC_UNITS[unit_index]}"
    return f"{num_bytes} bytes"
