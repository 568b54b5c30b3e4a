from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import List

import pytest

from backend.services.restic.errors import InvalidResponse, NotInitialized, ResticError
from backend.services.restic.session import BackupSession, ProgressThrottle
from conftest import NOT_INITIALIZED_LINE, summary_line, write_executable


def _tool(tmp_path: Path, stdout: List[str], stderr: List[str] = (), exit_code: int = 0) -> Path:
    body = f"""
import sys
for line in {list(stdout)!r}:
    print(line)
sys.stdout.flush()
for line in {list(stderr)!r}:
    print(line, file=sys.stderr)
sys.exit({exit_code})
"""
    return write_executable(tmp_path / "tool", body)


def _session(**kwargs) -> BackupSession:
    options = {"job_name": "job", "backend_kind": "rest"}
    options.update(kwargs)
    return BackupSession(**options)


def _run(session: BackupSession, tool: Path):
    return session.run([str(tool)], dict(os.environ))


def test_build_args_puts_paths_last() -> None:
    argv = BackupSession.build_args(
        ["restic", "backup", "--json"],
        excludes=["*.tmp", "cache"],
        paths=[Path("/a"), Path("/b")],
        dry_run=True,
    )

    assert argv == [
        "restic", "backup", "--json",
        "--verbose", "--dry-run",
        "-e", "*.tmp", "-e", "cache",
        "/a", "/b",
    ]


def test_summary_is_returned(tmp_path: Path) -> None:
    tool = _tool(tmp_path, [
        json.dumps({"message_type": "status", "percent_done": 0.5, "files_done": 3}),
        summary_line(snapshot_id="abc123"),
    ])

    summary = _run(_session(), tool)

    assert summary.snapshot_id == "abc123"
    assert str(summary) == "took 1.5s, 5 MiB added, 2 new files, 1 changed files, 7 unchanged files"


def test_missing_summary_is_an_error(tmp_path: Path) -> None:
    tool = _tool(tmp_path, [json.dumps({"message_type": "status", "percent_done": 1.0})])

    with pytest.raises(ResticError, match="No backup summary"):
        _run(_session(), tool)


def test_not_initialized_on_stdout(tmp_path: Path) -> None:
    tool = _tool(tmp_path, [NOT_INITIALIZED_LINE], exit_code=1)

    with pytest.raises(NotInitialized):
        _run(_session(), tool)


def test_not_initialized_on_stderr(tmp_path: Path) -> None:
    tool = _tool(tmp_path, [], [NOT_INITIALIZED_LINE], exit_code=1)

    with pytest.raises(NotInitialized):
        _run(_session(), tool)


def test_other_fatal_on_stderr_is_restic_error(tmp_path: Path) -> None:
    tool = _tool(tmp_path, [], ["Fatal: wrong password or no key found"], exit_code=1)

    with pytest.raises(ResticError) as excinfo:
        _run(_session(), tool)
    assert excinfo.value.exit_code == 1
    assert "wrong password" in excinfo.value.detail


def test_non_zero_exit_without_output_is_restic_error(tmp_path: Path) -> None:
    tool = _tool(tmp_path, [summary_line()], exit_code=3)

    with pytest.raises(ResticError) as excinfo:
        _run(_session(), tool)
    assert excinfo.value.exit_code == 3


def test_malformed_json_is_invalid_response(tmp_path: Path) -> None:
    tool = _tool(tmp_path, ["{not json"])

    with pytest.raises(InvalidResponse):
        _run(_session(), tool)


def test_non_fatal_stderr_with_clean_exit_is_ignored(tmp_path: Path) -> None:
    tool = _tool(tmp_path, [summary_line()], ["warning: something odd"])

    assert _run(_session(), tool).files_new == 2


def test_large_stderr_does_not_block(tmp_path: Path) -> None:
    body = """
import sys
for i in range(20000):
    print("warning: cannot read file number %d with a fairly long explanation" % i, file=sys.stderr)
print('""" + summary_line().replace("'", "\\'") + """')
"""
    tool = write_executable(tmp_path / "noisy", body)

    assert _run(_session(), tool).snapshot_id == "deadbeef"


def test_undecodable_stderr_does_not_block(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    body = f"""
import sys
sys.stderr.buffer.write(b"warning: cannot read /data/\\xff\\xfe.bin\\n")
for i in range(20000):
    sys.stderr.write("warning: cannot read file number %d with a fairly long explanation\\n" % i)
sys.stderr.flush()
print({summary_line()!r})
"""
    tool = write_executable(tmp_path / "bad-bytes", body)

    with caplog.at_level(logging.DEBUG):
        summary = _run(_session(verbose=True), tool)

    assert summary.snapshot_id == "deadbeef"
    assert "\ufffd" in caplog.text


def test_progress_is_emitted_on_percent_change(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    tool = _tool(tmp_path, [
        json.dumps({"message_type": "status", "percent_done": 0.101, "files_done": 1}),
        json.dumps({"message_type": "status", "percent_done": 0.104, "files_done": 2}),
        json.dumps({"message_type": "status", "percent_done": 0.2, "files_done": 3}),
        json.dumps({"message_type": "status", "action": "scan_finished", "total_files": 3}),
        summary_line(),
    ])

    with caplog.at_level(logging.INFO):
        _run(_session(progress=True), tool)

    progress = [r.getMessage() for r in caplog.records if "% finished" in r.getMessage()]
    assert progress == [
        "[job]\tBackup 10% finished, 1 files finished",
        "[job]\tBackup 20% finished, 3 files finished",
    ]


def test_progress_disabled(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    tool = _tool(tmp_path, [json.dumps({"message_type": "status", "percent_done": 0.5}), summary_line()])

    with caplog.at_level(logging.INFO):
        _run(_session(progress=False), tool)

    assert not [r for r in caplog.records if "% finished" in r.getMessage()]


def test_dry_run_echoes_items(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    item = {"message_type": "verbose_status", "item": "/data/a.txt", "data_size": 4096}
    tool = _tool(tmp_path, [
        json.dumps({**item, "action": "new"}),
        json.dumps({**item, "action": "unchanged", "item": "/data/b.txt"}),
        summary_line(),
    ])

    with caplog.at_level(logging.INFO):
        _run(_session(dry_run=True), tool)

    messages = [r.getMessage() for r in caplog.records]
    assert '[job]\tNew "/data/a.txt" 4 KiB' in messages
    assert '[job]\tUnchanged "/data/b.txt"' in messages


def test_throttle_respects_min_interval() -> None:
    ticks = iter([0.0, 0.5, 1.2])
    throttle = ProgressThrottle(min_interval=1.0, clock=lambda: next(ticks))

    assert throttle.should_emit(1)
    assert not throttle.should_emit(2)
    assert throttle.should_emit(3)
    assert not throttle.should_emit(3)
