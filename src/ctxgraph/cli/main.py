"""ctxgraph CLI application."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Annotated

import typer
from rich import print as rprint

import ctxgraph as ctxgraph_pkg


class OutputFormat(StrEnum):
    """Output format for CLI commands."""

    human = "human"
    json = "json"
    jsonl = "jsonl"


class SnapshotFormat(StrEnum):
    """Serialization of the generated context files."""

    json = "json"
    pretty = "pretty"
    ndjson = "ndjson"


class CodeInclusion(StrEnum):
    """How much source code each contract carries."""

    none = "none"
    header = "header"
    full = "full"


app = typer.Typer(
    name="ctxgraph",
    help="Structured, incremental context for component codebases.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    if value:
        rprint(f"ctxgraph {ctxgraph_pkg.__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
    json_logs: Annotated[
        bool,
        typer.Option("--json-logs", help="Emit diagnostics as JSON on stderr."),
    ] = False,
) -> None:
    """ctxgraph — contracts, dependency bundles and drift checks for React/TS projects."""
    from dotenv import load_dotenv

    from ctxgraph.context.config import log_level_from_env
    from ctxgraph.logging_config import setup_logging

    load_dotenv()
    setup_logging(level=log_level_from_env("WARNING"), json_logs=json_logs)


def _root(project_root: str | None) -> Path:
    return Path(project_root) if project_root else Path.cwd()


ProjectRootOption = Annotated[
    str | None,
    typer.Option("--project-root", "-p", help="Project root directory"),
]
FormatOption = Annotated[
    OutputFormat,
    typer.Option("--format", "-f", help="Output format"),
]
DepthOption = Annotated[
    int | None,
    typer.Option("--depth", "-d", min=0, help="Dependency depth per bundle"),
]
MaxNodesOption = Annotated[
    int | None,
    typer.Option("--max-nodes", min=1, help="Maximum nodes per bundle"),
]
SnapshotFormatOption = Annotated[
    SnapshotFormat | None,
    typer.Option("--snapshot-format", help="Context file serialization"),
]
IncludeCodeOption = Annotated[
    CodeInclusion | None,
    typer.Option("--include-code", help="Source code carried by each contract"),
]
IncludeStyleOption = Annotated[
    bool | None,
    typer.Option("--include-style/--no-include-style", help="Extract style metadata"),
]
OutOption = Annotated[
    str | None,
    typer.Option("--out", "-o", help="Output directory"),
]


@app.command("context")
def context(
    project_root: ProjectRootOption = None,
    depth: DepthOption = None,
    max_nodes: MaxNodesOption = None,
    snapshot_format: SnapshotFormatOption = None,
    include_code: IncludeCodeOption = None,
    include_style: IncludeStyleOption = None,
    out: OutOption = None,
    save: Annotated[
        bool,
        typer.Option("--save", help="Save these options to .ctxgraph/config.json"),
    ] = False,
    format: FormatOption = OutputFormat.human,
) -> None:
    """Generate context files (one per folder) and the main index."""
    from ctxgraph.context.cli import context_command

    exit_code = context_command(
        root=_root(project_root),
        format=format.value,
        save=save,
        snapshot_format=snapshot_format.value if snapshot_format else None,
        depth=depth,
        max_nodes=max_nodes,
        include_code=include_code.value if include_code else None,
        include_style=include_style,
        out=out,
    )
    raise typer.Exit(exit_code)


@app.command("compare")
def compare(
    old: Annotated[Path, typer.Argument(help="Baseline snapshot (file or output directory)")],
    new: Annotated[
        Path | None,
        typer.Argument(help="Snapshot to compare; omit to compare against the live tree"),
    ] = None,
    project_root: ProjectRootOption = None,
    format: FormatOption = OutputFormat.human,
) -> None:
    """Compare two context snapshots. Exits 1 on drift."""
    from ctxgraph.context.cli import compare_command

    exit_code = compare_command(
        old=old,
        new=new,
        root=_root(project_root),
        format=format.value,
    )
    raise typer.Exit(exit_code)


@app.command("watch")
def watch(
    project_root: ProjectRootOption = None,
    depth: DepthOption = None,
    max_nodes: MaxNodesOption = None,
    snapshot_format: SnapshotFormatOption = None,
    include_code: IncludeCodeOption = None,
    include_style: IncludeStyleOption = None,
    out: OutOption = None,
    debounce_ms: Annotated[
        int | None,
        typer.Option("--debounce", min=0, help="Debounce window in milliseconds"),
    ] = None,
    log_file: Annotated[
        bool | None,
        typer.Option("--log-file/--no-log-file", help="Append rebuilds to .ctxgraph/watch_logs.jsonl"),
    ] = None,
    format: FormatOption = OutputFormat.human,
) -> None:
    """Watch the project and regenerate context on every change."""
    from ctxgraph.context.cli import watch_command

    exit_code = watch_command(
        root=_root(project_root),
        format=format.value,
        snapshot_format=snapshot_format.value if snapshot_format else None,
        depth=depth,
        max_nodes=max_nodes,
        include_code=include_code.value if include_code else None,
        include_style=include_style,
        out=out,
        debounce_ms=debounce_ms,
        log_file=log_file,
    )
    raise typer.Exit(exit_code)


@app.command("validate")
def validate(
    snapshot: Annotated[
        Path | None,
        typer.Argument(help="Snapshot to check (file or output directory); defaults to the configured one"),
    ] = None,
    project_root: ProjectRootOption = None,
    check_sources: Annotated[
        bool,
        typer.Option("--check-sources/--no-check-sources", help="Report contracts whose source file changed"),
    ] = True,
    format: FormatOption = OutputFormat.human,
) -> None:
    """Check a snapshot's hashes and structure. Exits 1 if invalid."""
    from ctxgraph.context.cli import validate_command

    exit_code = validate_command(
        snapshot=snapshot,
        root=_root(project_root),
        check_sources=check_sources,
        format=format.value,
    )
    raise typer.Exit(exit_code)


@app.command("clean")
def clean(
    project_root: ProjectRootOption = None,
    out: OutOption = None,
    format: FormatOption = OutputFormat.human,
) -> None:
    """Remove generated context files."""
    from ctxgraph.context.cli import clean_command

    exit_code = clean_command(root=_root(project_root), out=out, format=format.value)
    raise typer.Exit(exit_code)
