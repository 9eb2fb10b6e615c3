"""Snapshot writer/reader — per-folder context files plus the main index.

Layout under the output directory:
    <folder>/context.json   bundles whose root lives in <folder>
    context_main.json       ContextIndex over every folder file

The serialization format (json, pretty, ndjson) never affects hashes.
"""

import json
import math
import posixpath
from collections import defaultdict
from datetime import UTC, datetime
from pathlib import Path

import structlog
from pydantic import ValidationError

from ctxgraph.context.errors import PersistenceFailure
from ctxgraph.context.graph import DependencyGraph
from ctxgraph.context.models import (
    Bundle,
    ContextIndex,
    FolderInfo,
    GraphSummary,
    IndexMeta,
    IndexSummary,
    folder_of,
)
from ctxgraph.context.packer import DEFAULT_SOURCE

logger = structlog.get_logger(__name__)

CONTEXT_FILE = "context.json"
INDEX_FILE = "context_main.json"
SNAPSHOT_FORMATS = ("json", "pretty", "ndjson")


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters."""
    return math.ceil(len(text) / 4)


def detect_root_folder(folder: str, components: list[str]) -> tuple[bool, str | None]:
    """Decide whether a folder is an application entry point and label it.

    Args:
        folder: Project-relative folder ("." for the project root)
        components: File names of the bundle roots in that folder

    Returns:
        (is_root, label)
    """
    if folder == ".":
        return True, "Project Root"

    lowered = folder.lower()
    parts = folder.split("/")

    if (lowered == "app" or "/app" in lowered) and any(
        name in ("page.tsx", "layout.tsx") for name in components
    ):
        return True, "Next.js App"
    if lowered.startswith("examples/") and lowered.endswith("/src"):
        return True, f"Example: {parts[1]}"
    if "tests/fixtures/" in lowered and lowered.endswith("/src"):
        return True, "Test Fixture"
    if folder == "src":
        return True, "Main Source"
    if lowered.startswith("apps/"):
        return True, f"App: {parts[1]}"
    return False, None


def bundle_payload(bundle: Bundle) -> dict:
    """Wire form of a bundle (camelCase keys, None fields omitted)."""
    return bundle.model_dump(mode="json", by_alias=True, exclude_none=True)


def format_bundles(bundles: list[Bundle], fmt: str = "json") -> str:
    """Serialize bundles as a compact array, an indented array, or NDJSON."""
    if fmt not in SNAPSHOT_FORMATS:
        raise ValueError(f"Unknown snapshot format: {fmt}")
    payloads = [bundle_payload(b) for b in sorted(bundles, key=lambda b: b.entry_id)]
    if fmt == "ndjson":
        return "".join(json.dumps(p, ensure_ascii=False) + "\n" for p in payloads)
    if fmt == "pretty":
        return json.dumps(payloads, indent=2, ensure_ascii=False) + "\n"
    return json.dumps(payloads, ensure_ascii=False)


def context_file_for(folder: str) -> str:
    """Index-relative path of a folder's context file."""
    return CONTEXT_FILE if folder == "." else posixpath.join(folder, CONTEXT_FILE)


def group_by_folder(bundles: list[Bundle]) -> dict[str, list[Bundle]]:
    grouped: dict[str, list[Bundle]] = defaultdict(list)
    for bundle in bundles:
        grouped[folder_of(bundle.entry_id)].append(bundle)
    return dict(grouped)


def _write(path: Path, text: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise PersistenceFailure(str(path), str(e)) from e


def _remove(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        raise PersistenceFailure(str(path), str(e)) from e


def write_snapshot(
    bundles: list[Bundle],
    graph: DependencyGraph,
    output_dir: Path,
    fmt: str = "json",
    total_contracts: int | None = None,
    source: str = DEFAULT_SOURCE,
    created_at: datetime | None = None,
) -> ContextIndex:
    """Write every folder's context file and the main index.

    Folder files listed by a previous index that no longer have any bundle
    are removed.

    Args:
        bundles: Bundles to write
        graph: Graph the bundles were packed from (roots/leaves summary)
        output_dir: Directory to write into
        fmt: json, pretty or ndjson
        total_contracts: Contract count for the summary (defaults to graph size)

    Returns:
        The written ContextIndex

    Raises:
        PersistenceFailure: If a file cannot be written
    """
    previous = read_index(output_dir / INDEX_FILE)
    folders: list[FolderInfo] = []

    for folder, folder_bundles in sorted(group_by_folder(bundles).items()):
        text = format_bundles(folder_bundles, fmt)
        context_file = context_file_for(folder)
        _write(output_dir / context_file, text)

        components = sorted(posixpath.basename(b.entry_id) for b in folder_bundles)
        is_root, label = detect_root_folder(folder, components)
        folders.append(
            FolderInfo(
                path=folder,
                context_file=context_file,
                bundles=len(folder_bundles),
                components=components,
                is_root=is_root,
                root_label=label,
                token_estimate=estimate_tokens(text),
            )
        )

    if previous is not None:
        written = {f.context_file for f in folders}
        for old in previous.folders:
            if old.context_file not in written:
                _remove(output_dir / old.context_file)

    index = ContextIndex(
        created_at=created_at or datetime.now(UTC),
        summary=IndexSummary(
            total_contracts=len(graph) if total_contracts is None else total_contracts,
            total_bundles=len(bundles),
            total_folders=len(folders),
            total_token_estimate=sum(f.token_estimate for f in folders),
        ),
        folders=folders,
        graph=GraphSummary(roots=list(graph.roots), leaves=list(graph.leaves)),
        meta=IndexMeta(source=source),
    )
    _write(
        output_dir / INDEX_FILE,
        json.dumps(index.model_dump(mode="json", by_alias=True, exclude_none=True), indent=2) + "\n",
    )
    logger.debug("snapshot_written", output_dir=str(output_dir), folders=len(folders))
    return index


def read_index(path: Path) -> ContextIndex | None:
    """Load a ContextIndex. Returns None if missing, corrupt, or not an index."""
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict) or data.get("type") != "ContextIndex":
            return None
        return ContextIndex.model_validate(data)
    except (json.JSONDecodeError, ValidationError, OSError):
        return None


def parse_bundles(text: str) -> list[Bundle]:
    """Parse bundles from a JSON array, a single bundle object, or NDJSON.

    Raises:
        ValueError: If the text holds no recognizable bundles
    """
    stripped = text.strip()
    if not stripped:
        return []
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        data = [json.loads(line) for line in stripped.splitlines() if line.strip()]

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise ValueError("Snapshot is neither a bundle array nor NDJSON")
    return [Bundle.model_validate(item) for item in data]


def read_snapshot(path: Path) -> list[Bundle]:
    """Load every bundle from a context file, an index file, or an output directory.

    Args:
        path: context.json (any format), context_main.json, or a directory
            holding context_main.json

    Returns:
        Bundles sorted by entry id

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If the content is not a snapshot
    """
    if path.is_dir():
        path = path / INDEX_FILE
    if not path.exists():
        raise FileNotFoundError(f"Snapshot not found: {path}")

    index = read_index(path)
    if index is not None:
        bundles: list[Bundle] = []
        for folder in index.folders:
            folder_file = path.parent / folder.context_file
            if not folder_file.is_file():
                logger.warning("context_file_missing", path=str(folder_file))
                continue
            bundles.extend(parse_bundles(folder_file.read_text(encoding="utf-8")))
    else:
        try:
            bundles = parse_bundles(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ValueError(f"Not a context snapshot: {path}") from e

    return sorted(bundles, key=lambda b: b.entry_id)


def clean_snapshot(output_dir: Path) -> list[Path]:
    """Remove the context files listed in the index, then the index itself.

    Args:
        output_dir: Directory holding context_main.json

    Returns:
        Paths that were removed

    Raises:
        PersistenceFailure: If a file cannot be removed
    """
    index_path = output_dir / INDEX_FILE
    index = read_index(index_path)
    if index is None:
        return []

    removed: list[Path] = []
    for folder in index.folders:
        target = output_dir / folder.context_file
        if target.is_file():
            _remove(target)
            removed.append(target)
    _remove(index_path)
    removed.append(index_path)
    return removed
