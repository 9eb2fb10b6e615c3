"""Watch status marker and watch log.

The marker (.ctxgraph/watch_status.json) tells other processes a watcher is
running for the project. The log (.ctxgraph/watch_logs.jsonl) is an
append-only record of each watch rebuild, one entry per line.
"""

import json
import os
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ctxgraph.context.config import STATE_DIR
from ctxgraph.context.errors import PersistenceFailure

STATUS_FILE = "watch_status.json"
WATCH_LOG_FILE = "watch_logs.jsonl"


class WatchStatus(BaseModel):
    """Contents of the watch status marker."""

    active: bool = True
    project_root: str
    pid: int
    started_at: datetime
    output_dir: str

    model_config = ConfigDict(frozen=True)


class WatchLogEntry(BaseModel):
    """One watch rebuild."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    changed_files: list[str] = Field(default_factory=list)
    file_count: int = 0
    duration_ms: int = 0
    modified_contracts: list[str] = Field(default_factory=list)
    modified_bundles: list[str] = Field(default_factory=list)
    added_contracts: list[str] = Field(default_factory=list)
    removed_contracts: list[str] = Field(default_factory=list)
    summary: str | None = None
    error: str | None = None

    model_config = ConfigDict(frozen=True)


def status_path(project_root: Path) -> Path:
    return project_root / STATE_DIR / STATUS_FILE


def watch_log_path(project_root: Path) -> Path:
    return project_root / STATE_DIR / WATCH_LOG_FILE


def write_watch_status(project_root: Path, output_dir: Path) -> WatchStatus:
    """Write the status marker for the current process.

    Raises:
        PersistenceFailure: If the marker cannot be written
    """
    status = WatchStatus(
        project_root=str(project_root),
        pid=os.getpid(),
        started_at=datetime.now(UTC),
        output_dir=str(output_dir),
    )
    path = status_path(project_root)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(status.model_dump_json(indent=2))
    except OSError as e:
        raise PersistenceFailure(str(path), str(e)) from e
    return status


def read_watch_status(project_root: Path) -> WatchStatus | None:
    """Load the status marker. Returns None if missing or corrupt."""
    path = status_path(project_root)
    if not path.exists():
        return None
    try:
        return WatchStatus.model_validate(json.loads(path.read_text()))
    except (json.JSONDecodeError, ValidationError, OSError):
        return None


def remove_watch_status(project_root: Path) -> bool:
    """Delete the status marker. Returns True if one was removed.

    Raises:
        PersistenceFailure: If the marker exists but cannot be removed
    """
    path = status_path(project_root)
    if not path.exists():
        return False
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        raise PersistenceFailure(str(path), str(e)) from e
    return True


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by someone else
        return True
    return True


def is_watch_active(project_root: Path) -> bool:
    """True if a marker exists, says active, and names a live process."""
    status = read_watch_status(project_root)
    if status is None or not status.active:
        return False
    return _pid_alive(status.pid)


def append_watch_log(project_root: Path, entry: WatchLogEntry) -> Path:
    """Append one entry to the watch log.

    Raises:
        PersistenceFailure: If the log cannot be written
    """
    path = watch_log_path(project_root)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a") as f:
            f.write(entry.model_dump_json() + "\n")
    except OSError as e:
        raise PersistenceFailure(str(path), str(e)) from e
    return path


def read_watch_logs(project_root: Path) -> list[WatchLogEntry]:
    """Read every watch log entry, skipping corrupted lines."""
    path = watch_log_path(project_root)
    if not path.exists():
        return []

    entries = []
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(WatchLogEntry.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValueError):
                continue
    return entries
