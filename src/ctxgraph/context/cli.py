"""CLI commands for context generation, comparison and watch mode."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

from rich import print as rprint
from rich.markup import escape

from ctxgraph.context.builder import build_project
from ctxgraph.context.config import ContextConfig, load_config, save_config
from ctxgraph.context.drift import ContractDiff, DriftReport, DriftStatus, compare_bundles
from ctxgraph.context.snapshot import INDEX_FILE, clean_snapshot, read_snapshot, write_snapshot
from ctxgraph.context.status import WatchLogEntry, is_watch_active
from ctxgraph.context.validation import validate_snapshot
from ctxgraph.context.watch import WatchController


def _error(message: str, format: str) -> int:
    if format == "human":
        rprint(f"[red]Error:[/red] {message}")
    else:
        print(json.dumps({"error": message}))
    return 1


def resolve_config(root: Path, snapshot_format: str | None = None, **overrides: Any) -> ContextConfig:
    """Stored config for root with CLI overrides applied.

    `snapshot_format` maps onto the config's `format` field, which would
    otherwise clash with the output format option.
    """
    return load_config(root).with_overrides(format=snapshot_format, **overrides)


def context_command(
    root: Path,
    format: str = "human",
    save: bool = False,
    snapshot_format: str | None = None,
    **overrides: Any,
) -> int:
    """Generate context files for a project.

    Runs a full build and writes one context.json per folder plus
    context_main.json.

    Args:
        root: Project root directory
        format: Output format (human, json, jsonl)
        save: Persist the effective options to .ctxgraph/config.json
        **overrides: ContextConfig fields given on the command line

    Returns:
        Exit code (0 = success, 1 = failure)
    """
    if not root.exists():
        return _error(f"Project root does not exist: {root}", format)

    try:
        config = resolve_config(root, snapshot_format, **overrides)
        result = build_project(root, config)
        output_dir = config.output_dir(root)
        index = write_snapshot(
            result.sorted_bundles(),
            result.graph,
            output_dir,
            config.format,
            total_contracts=len(result.store),
        )
        if save:
            save_config(config, root)

        if format == "json":
            output: dict[str, object] = {
                "project_root": str(root),
                "output_dir": str(output_dir),
                "total_contracts": index.summary.total_contracts,
                "total_bundles": index.summary.total_bundles,
                "total_folders": index.summary.total_folders,
                "total_token_estimate": index.summary.total_token_estimate,
                "index_file": str(output_dir / INDEX_FILE),
                "failures": [{"entry_id": f.entry_id, "reason": f.reason} for f in result.failures],
                "unresolved_roots": result.unresolved,
            }
            print(json.dumps(output, indent=2))

        elif format == "jsonl":
            for folder in index.folders:
                print(
                    json.dumps(
                        {
                            "type": "context_file",
                            "path": str(output_dir / folder.context_file),
                            "bundles": folder.bundles,
                            "token_estimate": folder.token_estimate,
                        }
                    )
                )
            for failure in result.failures:
                print(json.dumps({"type": "failure", "entry_id": failure.entry_id, "reason": failure.reason}))
            print(
                json.dumps(
                    {
                        "type": "summary",
                        "total_contracts": index.summary.total_contracts,
                        "total_bundles": index.summary.total_bundles,
                        "total_folders": index.summary.total_folders,
                    }
                )
            )

        else:  # human
            rprint(f"\n[green]✓[/green] Generated context for [cyan]{root}[/cyan]\n")
            rprint(
                f"Contracts: {index.summary.total_contracts}, "
                f"bundles: {index.summary.total_bundles}, "
                f"folders: {index.summary.total_folders}"
            )
            rprint(f"Estimated tokens: {index.summary.total_token_estimate:,}")
            for failure in result.failures:
                rprint(f"[yellow]Skipped[/yellow] {escape(failure.entry_id)}: {escape(failure.reason)}")
            for root_id in result.unresolved:
                rprint(f"[yellow]Unresolved root[/yellow] {escape(root_id)}")
            rprint(f"\nIndex written to [dim]{output_dir / INDEX_FILE}[/dim]\n")

        return 0

    except Exception as e:
        return _error(str(e), format)


def _describe_diff(diff: ContractDiff) -> list[str]:
    lines: list[str] = []
    for name in ("props", "emits", "state"):
        part = getattr(diff, name)
        for key in part.added:
            lines.append(f"{name}: +{key}")
        for key in part.removed:
            lines.append(f"{name}: -{key}")
        for key in part.changed:
            lines.append(f"{name}: ~{key}")
    for name in ("imports", "hooks", "components", "functions", "variables"):
        part = getattr(diff, name)
        for key in part.added:
            lines.append(f"{name}: +{key}")
        for key in part.removed:
            lines.append(f"{name}: -{key}")
    if diff.exports is not None:
        lines.append(f"exports: {diff.exports.old.get('kind')} -> {diff.exports.new.get('kind')}")
    return lines


def render_report(report: DriftReport) -> None:
    """Print a drift report for humans."""
    if report.status == DriftStatus.PASS:
        rprint("\n[green]✓ PASS[/green] No drift detected\n")
        return

    rprint("\n[red]✗ DRIFT[/red]\n")
    for entry_id in report.added:
        rprint(f"  [green]+[/green] {escape(entry_id)}")
    for entry_id in report.removed:
        rprint(f"  [red]-[/red] {escape(entry_id)}")
    for change in report.changed:
        rprint(f"  [yellow]~[/yellow] {escape(change.entry_id)}")
        if change.semantic_hash is None:
            rprint("      [dim]content changed, interface unchanged[/dim]")
        if change.diff is not None:
            for line in _describe_diff(change.diff):
                rprint(f"      {escape(line)}")
    if report.bundles_changed:
        rprint(f"\n  Bundles changed: {len(report.bundles_changed)}")
    rprint(f"\n{report.summary()}\n")


def compare_command(
    old: Path,
    new: Path | None = None,
    root: Path | None = None,
    format: str = "human",
) -> int:
    """Compare two context snapshots, or one snapshot against the live tree.

    Args:
        old: Baseline snapshot (context file, index file, or output directory)
        new: Snapshot to compare; if None the project is rebuilt in memory
        root: Project root used when new is None (defaults to cwd)
        format: Output format (human, json, jsonl)

    Returns:
        Exit code (0 = PASS, 1 = DRIFT or error)
    """
    try:
        old_bundles = read_snapshot(old)
        if new is not None:
            new_bundles = read_snapshot(new)
        else:
            project_root = root or Path.cwd()
            new_bundles = build_project(project_root, load_config(project_root)).sorted_bundles()
    except Exception as e:
        return _error(str(e), format)

    report = compare_bundles(old_bundles, new_bundles)

    if format == "json":
        print(json.dumps(report.model_dump(mode="json"), indent=2))
    elif format == "jsonl":
        for entry_id in report.added:
            print(json.dumps({"type": "added", "entry_id": entry_id}))
        for entry_id in report.removed:
            print(json.dumps({"type": "removed", "entry_id": entry_id}))
        for change in report.changed:
            print(json.dumps({"type": "changed", **change.model_dump(mode="json")}))
        for bundle in report.bundles_changed:
            print(json.dumps({"type": "bundle_changed", **bundle.model_dump(mode="json")}))
        print(
            json.dumps(
                {
                    "type": "summary",
                    "status": report.status.value,
                    "added": len(report.added),
                    "removed": len(report.removed),
                    "changed": len(report.changed),
                    "bundles_changed": len(report.bundles_changed),
                }
            )
        )
    else:
        render_report(report)

    return report.exit_code


def _print_rebuild(entry: WatchLogEntry, format: str) -> None:
    if format != "human":
        print(entry.model_dump_json())
        return
    if entry.error is not None:
        rprint(f"[red]Rebuild failed:[/red] {escape(entry.error)}")
        return
    rprint(f"[green]↻[/green] {entry.summary} [dim]({entry.duration_ms} ms)[/dim]")
    for entry_id in entry.modified_contracts:
        rprint(f"  [yellow]~[/yellow] {escape(entry_id)}")
    for entry_id in entry.added_contracts:
        rprint(f"  [green]+[/green] {escape(entry_id)}")
    for entry_id in entry.removed_contracts:
        rprint(f"  [red]-[/red] {escape(entry_id)}")


def watch_command(
    root: Path,
    format: str = "human",
    snapshot_format: str | None = None,
    **overrides: Any,
) -> int:
    """Watch a project and regenerate context on every change.

    Args:
        root: Project root directory
        format: Output format (human, json, jsonl)
        **overrides: ContextConfig fields given on the command line

    Returns:
        Exit code (0 = clean shutdown, 1 = could not start)
    """
    if not root.exists():
        return _error(f"Project root does not exist: {root}", format)
    if is_watch_active(root):
        return _error(f"A watcher is already running for {root}", format)

    try:
        config = resolve_config(root, snapshot_format, **overrides)
    except Exception as e:
        return _error(str(e), format)

    controller = WatchController(
        root,
        config,
        on_rebuild=lambda entry: _print_rebuild(entry, format),
    )
    if format == "human":
        rprint(f"[cyan]Watching[/cyan] {root} [dim](Ctrl+C to stop)[/dim]")

    try:
        asyncio.run(controller.run())
    except KeyboardInterrupt:
        # Signal handlers unavailable on this platform
        pass

    if format == "human":
        rprint("[dim]Watch stopped[/dim]")
    return 0


def validate_command(
    snapshot: Path | None = None,
    root: Path | None = None,
    check_sources: bool = True,
    format: str = "human",
) -> int:
    """Validate a context snapshot.

    Args:
        snapshot: Context file, index file, or output directory (defaults to
            the configured output directory of root)
        root: Project root the contracts were extracted from (defaults to cwd)
        check_sources: Also report contracts whose source file changed
        format: Output format (human, json, jsonl)

    Returns:
        Exit code (0 = valid, 1 = invalid, stale or unreadable)
    """
    project_root = root or Path.cwd()
    try:
        target = snapshot or load_config(project_root).output_dir(project_root)
        bundles = read_snapshot(target)
    except Exception as e:
        return _error(str(e), format)

    report = validate_snapshot(bundles, project_root if check_sources else None)

    if format == "json":
        output = report.model_dump(mode="json")
        output["valid"] = report.valid
        print(json.dumps(output, indent=2))
    elif format == "jsonl":
        for issue in report.issues:
            print(json.dumps({"type": issue.severity.value, **issue.model_dump(mode="json", exclude={"severity"})}))
        for entry_id in report.stale:
            print(json.dumps({"type": "stale", "entry_id": entry_id}))
        print(
            json.dumps(
                {
                    "type": "summary",
                    "valid": report.valid,
                    "bundles": report.bundles,
                    "errors": len(report.errors),
                    "warnings": len(report.warnings),
                    "stale": len(report.stale),
                }
            )
        )
    else:
        for issue in report.errors:
            rprint(f"  [red]✗[/red] {escape(issue.bundle)}: {escape(issue.message)}")
        for issue in report.warnings:
            rprint(f"  [yellow]![/yellow] {escape(issue.bundle)}: {escape(issue.message)}")
        for entry_id in report.stale:
            rprint(f"  [yellow]~[/yellow] {escape(entry_id)}: source changed since extraction")
        if report.valid:
            rprint(
                f"\n[green]✓[/green] Valid snapshot: {report.bundles} bundles, "
                f"{report.nodes} nodes, {report.edges} edges"
            )
            if report.warnings:
                rprint(f"  {len(report.warnings)} warnings")
        else:
            rprint(
                f"\n[red]✗ Invalid[/red] {len(report.errors)} errors, "
                f"{len(report.warnings)} warnings, {len(report.stale)} stale sources"
            )

    return report.exit_code


def clean_command(root: Path, out: str | None = None, format: str = "human") -> int:
    """Remove generated context files listed in the index.

    Args:
        root: Project root directory
        out: Output directory override (defaults to the configured one)
        format: Output format (human, json, jsonl)

    Returns:
        Exit code (0 = success, 1 = failure)
    """
    if not root.exists():
        return _error(f"Project root does not exist: {root}", format)

    try:
        config = resolve_config(root, out=out)
        removed = clean_snapshot(config.output_dir(root))
    except Exception as e:
        return _error(str(e), format)

    if format == "json":
        print(json.dumps({"removed": [str(p) for p in removed]}, indent=2))
    elif format == "jsonl":
        for path in removed:
            print(json.dumps({"type": "removed", "path": str(path)}))
    elif removed:
        rprint(f"[green]✓[/green] Removed {len(removed)} context files")
    else:
        rprint("[dim]No context files to remove[/dim]")
    return 0
