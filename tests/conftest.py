from __future__ import annotations

import json
import stat
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List

import pytest

from models.job_config import GlobalDefaults, JobRecord


NOT_INITIALIZED_LINE = "Fatal: unable to open config file: <config/> does not exist"

FAKE_RESTIC = r'''
import json
import os
import sys

here = os.path.dirname(os.path.abspath(__file__))
state_path = os.path.join(here, "state.json")
with open(state_path) as f:
    state = json.load(f)


def save():
    with open(state_path, "w") as f:
        json.dump(state, f)


op = sys.argv[1]
with open(os.path.join(here, "calls.jsonl"), "a") as f:
    f.write(json.dumps({
        "argv": sys.argv[1:],
        "repository": os.environ.get("RESTIC_REPOSITORY"),
        "password": os.environ.get("RESTIC_PASSWORD"),
    }) + "\n")

if op == "version":
    print("restic 0.16.4 compiled with go1.21.6 on linux/amd64")
    sys.exit(0)

if op == "init":
    if not state.get("init_is_noop"):
        state["initialized"] = True
        save()
    print(json.dumps({"message_type": "initialized", "id": "0123abcd"}))
    sys.exit(0)

if not state.get("initialized"):
    print("Fatal: unable to open config file: <config/> does not exist", file=sys.stderr)
    sys.exit(1)

if op == "snapshots":
    if state.get("snapshots_fail"):
        print("Fatal: unable to open repository: connection refused", file=sys.stderr)
        sys.exit(1)
    snaps = state.get("snapshots", [])
    if "--latest" in sys.argv:
        count = int(sys.argv[sys.argv.index("--latest") + 1])
        snaps = snaps[-count:]
    print(json.dumps(snaps))
    sys.exit(0)

if op == "backup":
    for line in state.get("backup_stdout", []):
        print(line)
    sys.stdout.flush()
    for line in state.get("backup_stderr", []):
        print(line, file=sys.stderr)
    if state.get("new_snapshot"):
        state.setdefault("snapshots", []).append(state["new_snapshot"])
        save()
    sys.exit(state.get("backup_exit", 0))

print("Fatal: unknown command " + op, file=sys.stderr)
sys.exit(1)
'''


def write_executable(path: Path, body: str) -> Path:
    """Write a Python script runnable as a program."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!{sys.executable}\n{body.lstrip()}", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def snapshot(time: str, snapshot_id: str = "f00dbabe") -> Dict[str, Any]:
    return {
        "time": time,
        "paths": ["/data"],
        "hostname": "host",
        "username": "root",
        "id": snapshot_id,
    }


def summary_line(**overrides: Any) -> str:
    data = {
        "message_type": "summary",
        "files_new": 2,
        "files_changed": 1,
        "files_unmodified": 7,
        "dirs_new": 0,
        "dirs_changed": 1,
        "dirs_unmodified": 3,
        "data_blobs": 3,
        "tree_blobs": 2,
        "data_added": 5 * 1024 * 1024,
        "total_files_processed": 10,
        "total_bytes_processed": 12345678,
        "total_duration": 1.5,
        "snapshot_id": "deadbeef",
    }
    data.update(overrides)
    return json.dumps(data)


class FakeRestic:
    """A scripted restic binary living in its own directory."""

    def __init__(self, root: Path):
        self.root = root
        self.binary = write_executable(root / "restic", FAKE_RESTIC)
        self.state: Dict[str, Any] = {"initialized": True, "snapshots": []}
        self.save()

    def save(self) -> None:
        (self.root / "state.json").write_text(json.dumps(self.state), encoding="utf-8")

    def configure(self, **state: Any) -> "FakeRestic":
        self.state.update(state)
        self.save()
        return self

    def load_state(self) -> Dict[str, Any]:
        return json.loads((self.root / "state.json").read_text(encoding="utf-8"))

    def calls(self) -> List[Dict[str, Any]]:
        path = self.root / "calls.jsonl"
        if not path.exists():
            return []
        return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]

    def operations(self) -> List[str]:
        return [call["argv"][0] for call in self.calls()]


@pytest.fixture
def fake_restic(tmp_path: Path) -> FakeRestic:
    return FakeRestic(tmp_path / "bin")


@pytest.fixture
def scratch_dir(tmp_path: Path) -> Path:
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def make_defaults(fake_restic: FakeRestic, scratch_dir: Path) -> Callable[..., GlobalDefaults]:
    def _make(**overrides: Any) -> GlobalDefaults:
        data: Dict[str, Any] = {
            "restic_binary": fake_restic.binary,
            "default_interval": 60,
            "scratch_dir": scratch_dir,
            "rest": {"rest_host": "backup.local:8000"},
        }
        data.update(overrides)
        return GlobalDefaults.model_validate(data)

    return _make


@pytest.fixture
def make_job(tmp_path: Path) -> Callable[..., JobRecord]:
    data_dir = tmp_path / "data"
    data_dir.mkdir()

    def _make(**overrides: Any) -> JobRecord:
        data: Dict[str, Any] = {
            "name": "job-1",
            "paths": [str(data_dir)],
            "excludes": ["*.tmp"],
            "repository": "repo",
            "repository_key": "s3cr3t-key",
            "backend": {"job_type": "rest", "rest_user": "u", "rest_password": "p"},
        }
        data.update(overrides)
        return JobRecord.model_validate(data)

    return _make
