"""Models for restic's `--json` output.

`restic snapshots --json` prints a single JSON array. `restic backup --json`
prints one JSON object per line, tagged by `message_type`:

- `verbose_status`: per-item change (only with `--verbose`)
- `status`: either an intermediate progress record or, when it carries an
  `action` field, the scan-finished record
- `summary`: terminal result, emitted once on success
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import List, Union

from pydantic import BaseModel, ConfigDict, TypeAdapter, field_validator

from backend.services.restic.formatting import format_size


_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


class Snapshot(BaseModel):
    """One entry of `restic snapshots --json`."""

    model_config = ConfigDict(extra="ignore")

    time: datetime
    paths: List[str] = []
    hostname: str = ""
    username: str = ""
    id: str

    @field_validator("time", mode="before")
    @classmethod
    def _truncate_nanoseconds(cls, value):
        # restic reports nanoseconds, datetime holds microseconds
        if isinstance(value, str):
            return _FRACTION_RE.sub(r"\1", value, count=1)
        return value


SnapshotList = TypeAdapter(List[Snapshot])


class BackupVerboseStatus(BaseModel):
    model_config = ConfigDict(extra="ignore")

    action: str
    item: str
    duration: float = 0.0
    data_size: int = 0
    data_size_in_repo: int = 0
    metadata_size: int = 0
    metadata_size_in_repo: int = 0
    total_files: int = 0


class BackupStatusFinish(BaseModel):
    """Status record restic prints once scanning finished."""

    model_config = ConfigDict(extra="ignore")

    action: str
    duration: float = 0.0
    data_size: int = 0
    data_size_in_repo: int = 0
    metadata_size: int = 0
    metadata_size_in_repo: int = 0
    total_files: int = 0


class BackupStatusIntermediate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    percent_done: float
    total_files: int = 0
    files_done: int = 0
    total_bytes: int = 0
    bytes_done: int = 0


BackupStatus = Union[BackupStatusFinish, BackupStatusIntermediate]


class BackupSummary(BaseModel):
    """Returned from restic after a successful backup."""

    model_config = ConfigDict(extra="ignore")

    files_new: int = 0
    files_changed: int = 0
    files_unmodified: int = 0
    dirs_new: int = 0
    dirs_changed: int = 0
    dirs_unmodified: int = 0
    data_blobs: int = 0
    tree_blobs: int = 0
    data_added: int = 0
    total_files_processed: int = 0
    total_bytes_processed: int = 0
    total_duration: float = 0.0
    snapshot_id: str = ""

    def __str__(self) -> str:
        unit, added = format_size(self.data_added)
        return (
            f"took {self.total_duration}s, {added} {unit} added, {self.files_new} new files, "
            f"{self.files_changed} changed files, {self.files_unmodified} unchanged files"
        )


BackupMessage = Union[BackupVerboseStatus, BackupStatusFinish, BackupStatusIntermediate, BackupSummary]

MESSAGE_TYPES = {
    "verbose_status": BackupVerboseStatus,
    "summary": BackupSummary,
}


def parse_status(data: dict) -> BackupStatus:
    """Pick the status variant for a decoded `status` message.

    Args:
        data: Decoded JSON object.

    Returns:
        BackupStatus: Finish record when `action` is present, else intermediate.
    """

    if "action" in data:
        return BackupStatusFinish.model_validate(data)
    return BackupStatusIntermediate.model_validate(data)
