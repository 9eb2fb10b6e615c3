"""Full build — discover, extract, connect and pack a whole project.

Extraction runs in a thread pool; results are sorted by entry id before the
graph is built so the outcome never depends on completion order.
"""

import concurrent.futures
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import structlog

from ctxgraph.context.config import ContextConfig
from ctxgraph.context.errors import ExtractionFailure
from ctxgraph.context.extractor import Extractor, ReactExtractor
from ctxgraph.context.graph import DependencyGraph, build_graph
from ctxgraph.context.models import Bundle, Contract, normalize_entry_id
from ctxgraph.context.packer import pack_all
from ctxgraph.context.scanner import discover_files
from ctxgraph.context.store import ContractStore

logger = structlog.get_logger(__name__)


@dataclass
class BuildResult:
    """Everything one full build produced."""

    store: ContractStore
    graph: DependencyGraph
    bundles: dict[str, Bundle]
    failures: list[ExtractionFailure] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)

    def sorted_bundles(self) -> list[Bundle]:
        return [self.bundles[root] for root in sorted(self.bundles)]


def make_extractor(config: ContextConfig) -> Extractor:
    """Default extractor configured from the code/style options."""
    return ReactExtractor(include_code=config.include_code, include_style=config.include_style)


def run_extractor(extractor: Extractor, entry_id: str, contents: bytes) -> Contract:
    """Call a (possibly third-party) extractor on one file.

    Raises:
        ExtractionFailure: For any error the extractor raises
    """
    try:
        return extractor.extract(entry_id, contents)
    except ExtractionFailure:
        raise
    except Exception as e:
        raise ExtractionFailure(entry_id, f"{type(e).__name__}: {e}") from e


def extract_file(extractor: Extractor, root: Path, entry_id: str) -> Contract:
    """Read one file and extract its contract.

    Raises:
        ExtractionFailure: If the file cannot be read or extracted
    """
    try:
        contents = (root / entry_id).read_bytes()
    except OSError as e:
        raise ExtractionFailure(entry_id, str(e)) from e
    return run_extractor(extractor, entry_id, contents)


def extract_all(
    root: Path,
    entry_ids: list[str],
    extractor: Extractor,
    workers: int | None = None,
) -> tuple[list[Contract], list[ExtractionFailure]]:
    """Extract many files in parallel.

    Args:
        root: Project root
        entry_ids: Files to extract
        extractor: Extractor to use
        workers: Thread pool size (None = executor default)

    Returns:
        (contracts sorted by entry id, failures sorted by entry id)
    """
    contracts: list[Contract] = []
    failures: list[ExtractionFailure] = []

    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {
            executor.submit(extract_file, extractor, root, entry_id): entry_id
            for entry_id in entry_ids
        }
        for future in concurrent.futures.as_completed(futures):
            try:
                contracts.append(future.result())
            except ExtractionFailure as e:
                logger.warning("extraction_failed", entry_id=e.entry_id, reason=e.reason)
                failures.append(e)

    contracts.sort(key=lambda c: c.entry_id)
    failures.sort(key=lambda f: f.entry_id)
    return contracts, failures


def select_roots(graph: DependencyGraph, config: ContextConfig) -> list[str]:
    """Configured roots (normalized) or, by default, the graph's roots."""
    if config.roots is None:
        return list(graph.roots)
    return sorted({normalize_entry_id(root) for root in config.roots})


def build_project(
    root: Path,
    config: ContextConfig | None = None,
    extractor: Extractor | None = None,
    created_at: datetime | None = None,
) -> BuildResult:
    """Run a full build of the project under root.

    Args:
        root: Project root directory
        config: Build options (defaults if None)
        extractor: Extractor override (defaults to the React extractor)
        created_at: Timestamp stamped on every bundle

    Returns:
        BuildResult with store, graph, bundles and per-file failures
    """
    config = config or ContextConfig()
    extractor = extractor or make_extractor(config)

    entry_ids = discover_files(root, config.ignore)
    contracts, failures = extract_all(root, entry_ids, extractor, config.workers)

    store = ContractStore(contracts)
    graph = build_graph(store, config.path_aliases)
    packed = pack_all(
        graph,
        store,
        select_roots(graph, config),
        max_depth=config.depth,
        max_nodes=config.max_nodes,
        created_at=created_at,
    )

    logger.info(
        "build_complete",
        files=len(entry_ids),
        contracts=len(store),
        bundles=len(packed.bundles),
        failures=len(failures),
    )
    return BuildResult(
        store=store,
        graph=graph,
        bundles=dict(packed.bundles),
        failures=failures,
        unresolved=list(packed.unresolved),
    )
