"""Bundle packer — depth- and size-bounded subgraphs per root."""

from datetime import UTC, datetime

import structlog
from pydantic import BaseModel, ConfigDict

from ctxgraph import __version__
from ctxgraph.context.errors import UnresolvedRoot
from ctxgraph.context.graph import DependencyGraph
from ctxgraph.context.hashing import bundle_hash
from ctxgraph.context.models import (
    Bundle,
    BundleGraph,
    BundleMeta,
    BundleNode,
    Edge,
    MissingDependency,
)
from ctxgraph.context.store import ContractStore

logger = structlog.get_logger(__name__)

DEFAULT_SOURCE = f"ctxgraph@{__version__}"


class PackResult(BaseModel):
    """Bundles keyed by root id, plus the roots that could not be packed."""

    bundles: dict[str, Bundle]
    unresolved: list[str]

    model_config = ConfigDict(frozen=True)


def _collect_nodes(graph: DependencyGraph, root_id: str, max_depth: int, max_nodes: int) -> list[str]:
    visited = [root_id]
    seen = {root_id}
    layer = [root_id]

    for _ in range(max_depth):
        next_layer = sorted(
            {target for node in layer for target in graph.forward.get(node, []) if target not in seen}
        )
        if not next_layer:
            break
        room = max_nodes - len(visited)
        truncated = len(next_layer) > room
        if truncated:
            next_layer = next_layer[:room]
        visited.extend(next_layer)
        seen.update(next_layer)
        if truncated:
            break
        layer = next_layer

    return visited


def pack_bundle(
    graph: DependencyGraph,
    store: ContractStore,
    root: str,
    max_depth: int = 1,
    max_nodes: int = 100,
    source: str = DEFAULT_SOURCE,
    created_at: datetime | None = None,
) -> Bundle:
    """Pack the bounded forward neighbourhood of one root.

    Layers are explored breadth-first in sorted order. A layer that would
    overflow max_nodes is cut to the ids that still fit and exploration stops.

    Args:
        graph: Dependency graph
        store: Contract store the graph was built from
        root: Entry id of the bundle root
        max_depth: Maximum forward distance from the root (0 = root only)
        max_nodes: Maximum number of nodes, root included
        source: Producer tag recorded in the bundle meta
        created_at: Timestamp to record (defaults to now, UTC)

    Returns:
        The packed Bundle

    Raises:
        ValueError: If max_depth < 0 or max_nodes < 1
        UnresolvedRoot: If root has no contract
    """
    if max_depth < 0:
        raise ValueError(f"max_depth must be >= 0, got {max_depth}")
    if max_nodes < 1:
        raise ValueError(f"max_nodes must be >= 1, got {max_nodes}")

    root_id = store.canonical_id(root)
    if root_id is None or graph.lookup(root_id) is None:
        raise UnresolvedRoot(root)

    visited = _collect_nodes(graph, root_id, max_depth, max_nodes)
    members = set(visited)

    nodes: list[BundleNode] = []
    hashed_nodes: list[tuple[str, str | None]] = []
    for entry_id in sorted(visited):
        contract = store.get(entry_id)
        if contract is None:
            hashed_nodes.append((entry_id, None))
            continue
        nodes.append(BundleNode(entry_id=entry_id, contract=contract))
        hashed_nodes.append((entry_id, contract.semantic_hash))

    edges = sorted(
        (source_id, target)
        for source_id in members
        for target in graph.forward.get(source_id, [])
        if target in members
    )

    missing: dict[str, str] = {}
    for entry_id in sorted(visited):
        for specifier in graph.missing.get(entry_id, []):
            missing.setdefault(specifier, entry_id)

    return Bundle(
        entry_id=root_id,
        depth=max_depth,
        created_at=created_at or datetime.now(UTC),
        bundle_hash=bundle_hash(hashed_nodes, edges),
        graph=BundleGraph(
            nodes=nodes,
            edges=[Edge(source=s, target=t) for s, t in edges],
        ),
        meta=BundleMeta(
            missing=[
                MissingDependency(name=name, referenced_by=referrer)
                for name, referrer in sorted(missing.items())
            ],
            source=source,
        ),
    )


def pack_all(
    graph: DependencyGraph,
    store: ContractStore,
    roots: list[str] | None = None,
    max_depth: int = 1,
    max_nodes: int = 100,
    source: str = DEFAULT_SOURCE,
    created_at: datetime | None = None,
) -> PackResult:
    """Pack one bundle per root. An unresolved root skips only its own bundle.

    Args:
        graph: Dependency graph
        store: Contract store
        roots: Roots to pack (defaults to the graph's roots)

    Returns:
        PackResult with bundles keyed by root id
    """
    stamp = created_at or datetime.now(UTC)
    bundles: dict[str, Bundle] = {}
    unresolved: list[str] = []

    for root in sorted(graph.roots if roots is None else roots):
        try:
            bundle = pack_bundle(graph, store, root, max_depth, max_nodes, source, stamp)
        except UnresolvedRoot as e:
            logger.warning("bundle_unresolved", entry_id=e.entry_id)
            unresolved.append(root)
            continue
        bundles[bundle.entry_id] = bundle

    return PackResult(bundles=bundles, unresolved=unresolved)
