"""Tests for context CLI commands."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from ctxgraph.context.cli import (
    clean_command,
    compare_command,
    context_command,
    validate_command,
    watch_command,
)
from ctxgraph.context.config import load_config
from ctxgraph.context.snapshot import INDEX_FILE

# ===== context =====


def test_context_command_human_output(component_project: Path, capsys: pytest.CaptureFixture) -> None:
    exit_code = context_command(root=component_project, format="human")

    assert exit_code == 0
    captured = capsys.readouterr()
    assert "Generated context" in captured.out
    assert (component_project / INDEX_FILE).is_file()


def test_context_command_json_output(component_project: Path, capsys: pytest.CaptureFixture) -> None:
    exit_code = context_command(root=component_project, format="json")

    assert exit_code == 0
    data = json.loads(capsys.readouterr().out)
    assert data["total_contracts"] == 4
    assert data["total_bundles"] == 1
    assert data["failures"] == []
    assert Path(data["index_file"]).is_file()


def test_context_command_jsonl_output(component_project: Path, capsys: pytest.CaptureFixture) -> None:
    exit_code = context_command(root=component_project, format="jsonl")

    assert exit_code == 0
    lines = [json.loads(line) for line in capsys.readouterr().out.strip().split("\n") if line]
    assert [line["type"] for line in lines] == ["context_file", "summary"]


def test_context_command_overrides_and_save(component_project: Path, capsys: pytest.CaptureFixture) -> None:
    exit_code = context_command(
        root=component_project,
        format="json",
        save=True,
        snapshot_format="pretty",
        depth=2,
        out="ctx",
    )

    assert exit_code == 0
    assert (component_project / "ctx" / "src" / "context.json").read_text().startswith("[\n")
    saved = load_config(component_project)
    assert saved.depth == 2
    assert saved.format == "pretty"
    assert saved.out == "ctx"


def test_context_command_missing_root(capsys: pytest.CaptureFixture) -> None:
    exit_code = context_command(root=Path("/nonexistent/path/that/does/not/exist"), format="json")

    assert exit_code == 1
    assert "error" in json.loads(capsys.readouterr().out)


def test_context_command_invalid_override(component_project: Path, capsys: pytest.CaptureFixture) -> None:
    exit_code = context_command(root=component_project, format="json", depth=-1)

    assert exit_code == 1
    assert "error" in json.loads(capsys.readouterr().out)


# ===== compare =====


@pytest.fixture
def baseline(component_project: Path, tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Snapshot of the untouched component project in a separate directory."""
    out = tmp_path_factory.mktemp("baseline")
    assert context_command(root=component_project, format="json", out=str(out)) == 0
    return out


def test_compare_command_pass(baseline: Path, capsys: pytest.CaptureFixture) -> None:
    capsys.readouterr()
    exit_code = compare_command(baseline, baseline / INDEX_FILE, format="json")

    assert exit_code == 0
    assert json.loads(capsys.readouterr().out)["status"] == "PASS"


def test_compare_command_live_tree_drift(
    baseline: Path, component_project: Path, capsys: pytest.CaptureFixture
) -> None:
    card = component_project / "src" / "components" / "Card.tsx"
    card.write_text(card.read_text().replace("title: string;", "title: string;\n  subtitle?: string;"))
    capsys.readouterr()

    exit_code = compare_command(baseline, root=component_project, format="json")

    assert exit_code == 1
    report = json.loads(capsys.readouterr().out)
    assert report["status"] == "DRIFT"
    assert report["changed"][0]["entry_id"] == "src/components/Card.tsx"
    assert report["changed"][0]["diff"]["props"]["added"] == ["subtitle"]


def test_compare_command_human_drift(
    baseline: Path, component_project: Path, capsys: pytest.CaptureFixture
) -> None:
    (component_project / "src" / "components" / "Card.tsx").unlink()
    capsys.readouterr()

    exit_code = compare_command(baseline, root=component_project, format="human")

    assert exit_code == 1
    out = capsys.readouterr().out
    assert "DRIFT" in out
    assert "src/components/Card.tsx" in out


def test_compare_command_jsonl(baseline: Path, capsys: pytest.CaptureFixture) -> None:
    capsys.readouterr()
    exit_code = compare_command(baseline, baseline, format="jsonl")

    assert exit_code == 0
    lines = [json.loads(line) for line in capsys.readouterr().out.strip().split("\n") if line]
    assert lines == [
        {"type": "summary", "status": "PASS", "added": 0, "removed": 0, "changed": 0, "bundles_changed": 0}
    ]


def test_compare_command_missing_snapshot(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    exit_code = compare_command(tmp_path / "missing.json", tmp_path / "other.json", format="json")

    assert exit_code == 1
    assert "error" in json.loads(capsys.readouterr().out)


# ===== watch =====


def test_watch_command_refuses_second_watcher(component_project: Path, capsys: pytest.CaptureFixture) -> None:
    with patch("ctxgraph.context.cli.is_watch_active", return_value=True):
        exit_code = watch_command(root=component_project, format="json")

    assert exit_code == 1
    assert "already running" in json.loads(capsys.readouterr().out)["error"]


def test_watch_command_runs_controller(component_project: Path) -> None:
    with patch("ctxgraph.context.cli.WatchController") as controller_cls:
        controller_cls.return_value.run = _noop_run
        exit_code = watch_command(root=component_project, format="json", debounce_ms=10)

    assert exit_code == 0
    config = controller_cls.call_args.args[1]
    assert config.debounce_ms == 10


async def _noop_run() -> None:
    return None


# ===== validate =====


def test_validate_command_fresh_snapshot(component_project: Path, capsys: pytest.CaptureFixture) -> None:
    context_command(root=component_project, format="json")
    capsys.readouterr()

    exit_code = validate_command(root=component_project, format="json")

    assert exit_code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["valid"] is True
    assert report["bundles"] == 1
    assert report["stale"] == []


def test_validate_command_stale_source(component_project: Path, capsys: pytest.CaptureFixture) -> None:
    context_command(root=component_project, format="json")
    card = component_project / "src" / "components" / "Card.tsx"
    card.write_text(card.read_text() + "\n")
    capsys.readouterr()

    exit_code = validate_command(component_project / INDEX_FILE, root=component_project, format="jsonl")

    assert exit_code == 1
    lines = [json.loads(line) for line in capsys.readouterr().out.strip().split("\n") if line]
    assert lines[0] == {"type": "stale", "entry_id": "src/components/Card.tsx"}
    assert lines[-1]["type"] == "summary"
    assert lines[-1]["valid"] is False


def test_validate_command_without_source_check(component_project: Path, capsys: pytest.CaptureFixture) -> None:
    context_command(root=component_project, format="json")
    (component_project / "src" / "components" / "Card.tsx").unlink()
    capsys.readouterr()

    exit_code = validate_command(root=component_project, check_sources=False, format="human")

    assert exit_code == 0
    assert "Valid snapshot" in capsys.readouterr().out


def test_validate_command_missing_snapshot(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    exit_code = validate_command(tmp_path / "missing.json", root=tmp_path, format="json")

    assert exit_code == 1
    assert "error" in json.loads(capsys.readouterr().out)


# ===== clean =====


def test_clean_command(component_project: Path, capsys: pytest.CaptureFixture) -> None:
    context_command(root=component_project, format="json")
    capsys.readouterr()

    exit_code = clean_command(root=component_project, format="json")

    assert exit_code == 0
    removed = json.loads(capsys.readouterr().out)["removed"]
    assert str(component_project / INDEX_FILE) in removed
    assert not (component_project / "src" / "context.json").exists()


def test_clean_command_nothing(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    exit_code = clean_command(root=tmp_path, format="human")

    assert exit_code == 0
    assert "No context files" in capsys.readouterr().out
