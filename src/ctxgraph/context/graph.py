"""Dependency graph — L3 import resolution over the contract store.

L3 constraint: Only import from ctxgraph.context.models, store, stdlib.

Nodes are entry ids (an arena keyed by id, edges never hold object
references). The graph may contain cycles, self-edges included.
"""

import posixpath
from collections import deque
from collections.abc import Iterable, Mapping

from ctxgraph.context.models import Contract, entry_key, normalize_entry_id
from ctxgraph.context.store import ContractStore

RESOLVE_SUFFIXES = (".tsx", ".ts", ".jsx", ".js")
JS_EMIT_SUFFIXES = (".js", ".jsx", ".mjs")


def _candidates(base: str) -> list[str]:
    candidates = [base]
    for emitted in JS_EMIT_SUFFIXES:
        if base.endswith(emitted):
            stem = base[: -len(emitted)]
            candidates.extend(stem + suffix for suffix in RESOLVE_SUFFIXES)
            break
    candidates.extend(base + suffix for suffix in RESOLVE_SUFFIXES)
    candidates.extend(f"{base}/index{suffix}" for suffix in RESOLVE_SUFFIXES)
    return candidates


def resolve_specifier(
    specifier: str,
    from_id: str,
    store: ContractStore,
    aliases: Mapping[str, str] | None = None,
) -> str | None:
    """Resolve an import specifier to the entry id of a stored contract.

    Relative specifiers are joined against the importing file's directory;
    alias-prefixed ones (e.g. `@/` -> `src/`) against the project root.
    Package imports are never resolved.

    Args:
        specifier: Import specifier as written in source
        from_id: Entry id of the importing contract
        store: Contracts that can be resolved to
        aliases: Prefix -> project-relative directory mapping

    Returns:
        Stored entry id, or None if the specifier is not a local contract
    """
    if specifier in (".", "..") or specifier.startswith(("./", "../")):
        base = posixpath.join(posixpath.dirname(from_id), specifier)
    else:
        base = None
        # Longest prefix wins when aliases overlap
        for prefix in sorted(aliases or {}, key=len, reverse=True):
            if specifier.startswith(prefix):
                base = (aliases or {})[prefix] + specifier[len(prefix) :]
                break
        if base is None:
            return None

    normalized = normalize_entry_id(base)
    if not normalized or normalized == ".." or normalized.startswith("../"):
        return None

    for candidate in _candidates(normalized):
        resolved = store.canonical_id(candidate)
        if resolved is not None:
            return resolved
    return None


def _resolve_imports(
    contract: Contract,
    store: ContractStore,
    aliases: Mapping[str, str] | None,
) -> tuple[list[str], list[str]]:
    forward: set[str] = set()
    missing: set[str] = set()
    for specifier in contract.version.imports:
        target = resolve_specifier(specifier, contract.entry_id, store, aliases)
        if target is None:
            missing.add(specifier)
        else:
            forward.add(target)
    return sorted(forward), sorted(missing)


class DependencyGraph:
    """Forward/reverse adjacency plus unresolved specifiers per node."""

    def __init__(self) -> None:
        self.forward: dict[str, list[str]] = {}
        self.reverse: dict[str, set[str]] = {}
        self.missing: dict[str, list[str]] = {}
        self.roots: list[str] = []
        self.leaves: list[str] = []
        self._ids: dict[str, str] = {}

    @classmethod
    def from_edges(cls, nodes: Iterable[str], edges: Iterable[tuple[str, str]]) -> "DependencyGraph":
        """Graph over already-resolved edges, e.g. the subgraph stored in a bundle."""
        graph = cls()
        forward: dict[str, set[str]] = {}
        for node in nodes:
            forward.setdefault(node, set())
        for source, target in edges:
            forward.setdefault(source, set()).add(target)
            forward.setdefault(target, set())
        for node in forward:
            graph._add_node(node)
        for node, targets in forward.items():
            graph._set_edges(node, sorted(targets), [])
        graph.recompute_endpoints()
        return graph

    def nodes(self) -> list[str]:
        return sorted(self.forward)

    def lookup(self, entry_id: str) -> str | None:
        """Graph spelling of an entry id, compared case-insensitively."""
        return self._ids.get(entry_key(entry_id))

    def __contains__(self, entry_id: object) -> bool:
        return isinstance(entry_id, str) and entry_key(entry_id) in self._ids

    def __len__(self) -> int:
        return len(self.forward)

    def edges(self) -> list[tuple[str, str]]:
        """Every forward edge, sorted."""
        return sorted((source, target) for source, targets in self.forward.items() for target in targets)

    def reverse_snapshot(self) -> dict[str, set[str]]:
        """Copy of the reverse adjacency, for diffing across an update."""
        return {node: set(sources) for node, sources in self.reverse.items()}

    def _add_node(self, entry_id: str) -> None:
        self._ids[entry_key(entry_id)] = entry_id
        self.forward.setdefault(entry_id, [])
        self.reverse.setdefault(entry_id, set())
        self.missing.setdefault(entry_id, [])

    def _drop_node(self, entry_id: str) -> None:
        for target in self.forward.pop(entry_id, []):
            if target in self.reverse:
                self.reverse[target].discard(entry_id)
        self.reverse.pop(entry_id, None)
        self.missing.pop(entry_id, None)
        self._ids.pop(entry_key(entry_id), None)

    def _set_edges(self, entry_id: str, forward: list[str], missing: list[str]) -> bool:
        """Replace one node's outgoing edges; True if anything changed."""
        old_forward = self.forward.get(entry_id, [])
        old_missing = self.missing.get(entry_id, [])
        if old_forward == forward and old_missing == missing:
            return False
        for target in set(old_forward) - set(forward):
            if target in self.reverse:
                self.reverse[target].discard(entry_id)
        for target in set(forward) - set(old_forward):
            self.reverse.setdefault(target, set()).add(entry_id)
        self.forward[entry_id] = forward
        self.missing[entry_id] = missing
        return True

    def recompute_endpoints(self) -> None:
        """Derive roots (no incoming edge) and leaves (no outgoing edge)."""
        self.roots = sorted(node for node in self.forward if not self.reverse.get(node))
        self.leaves = sorted(node for node, targets in self.forward.items() if not targets)

    def update(
        self,
        store: ContractStore,
        changed_ids: Iterable[str],
        aliases: Mapping[str, str] | None = None,
    ) -> set[str]:
        """Bring the graph in line with the store after some ids changed.

        Removed ids are dropped and their importers re-resolved. Added ids
        trigger re-resolution of every node with unresolved specifiers, since
        one of them may now point at the new file.

        Args:
            store: Contract store, already updated
            changed_ids: Ids that were added, removed or re-extracted
            aliases: Path alias mapping used for resolution

        Returns:
            Ids whose forward or missing sets changed (removed ids included)
        """
        affected: set[str] = set()
        to_resolve: set[str] = set()
        added = False

        for changed in sorted(set(changed_ids)):
            graph_id = self.lookup(changed)
            stored_id = store.canonical_id(changed)

            if stored_id is None:
                if graph_id is None:
                    continue
                to_resolve |= self.reverse.get(graph_id, set()) - {graph_id}
                self._drop_node(graph_id)
                affected.add(graph_id)
                continue

            if graph_id is not None and graph_id != stored_id:
                # Same file, new casing
                to_resolve |= self.reverse.get(graph_id, set()) - {graph_id}
                self._drop_node(graph_id)
                affected.add(graph_id)
                graph_id = None

            if graph_id is None:
                self._add_node(stored_id)
                affected.add(stored_id)
                added = True
            to_resolve.add(stored_id)

        if added:
            to_resolve |= {node for node, specs in self.missing.items() if specs}

        for node in sorted(to_resolve):
            contract = store.get(node)
            if contract is None or node not in self.forward:
                continue
            forward, missing = _resolve_imports(contract, store, aliases)
            if self._set_edges(node, forward, missing):
                affected.add(node)

        self.recompute_endpoints()
        return affected


def build_graph(store: ContractStore, aliases: Mapping[str, str] | None = None) -> DependencyGraph:
    """Build the dependency graph with one pass over each contract's imports.

    Args:
        store: Contracts to connect
        aliases: Path alias mapping used for resolution

    Returns:
        Graph with forward/reverse edges, missing specifiers, roots and leaves
    """
    graph = DependencyGraph()
    contracts = store.contracts()
    for contract in contracts:
        graph._add_node(contract.entry_id)
    for contract in contracts:
        forward, missing = _resolve_imports(contract, store, aliases)
        graph._set_edges(contract.entry_id, forward, missing)
    graph.recompute_endpoints()
    return graph


def reachable_within(graph: DependencyGraph, start: str, depth: int) -> dict[str, int]:
    """Forward BFS distances from start, bounded by depth."""
    origin = graph.lookup(start)
    if origin is None:
        return {}
    distances = {origin: 0}
    queue = deque([origin])
    while queue:
        node = queue.popleft()
        if distances[node] >= depth:
            continue
        for target in graph.forward.get(node, []):
            if target not in distances:
                distances[target] = distances[node] + 1
                queue.append(target)
    return distances


def distances_to(
    reverse: Mapping[str, Iterable[str]],
    targets: Iterable[str],
    max_depth: int,
) -> dict[str, int]:
    """Multi-source reverse BFS: shortest forward distance from each node to any target.

    Args:
        reverse: Reverse adjacency (target -> importers)
        targets: Ids the distances are measured to
        max_depth: Nodes further away than this are not reported

    Returns:
        node -> distance for every node within max_depth of some target
    """
    distances = {target: 0 for target in targets}
    queue = deque(sorted(distances))
    while queue:
        node = queue.popleft()
        if distances[node] >= max_depth:
            continue
        for source in reverse.get(node, ()):
            if source not in distances:
                distances[source] = distances[node] + 1
                queue.append(source)
    return distances


def merge_reverse(*reverses: Mapping[str, Iterable[str]]) -> dict[str, set[str]]:
    """Union of several reverse adjacency maps."""
    merged: dict[str, set[str]] = {}
    for reverse in reverses:
        for node, sources in reverse.items():
            merged.setdefault(node, set()).update(sources)
    return merged
