"""Incremental cache — recompute only what a batch of file changes can affect.

Two layers:
    extraction layer  entry id -> Contract (with its file_hash), the ContractStore
    packed layer      root id  -> Bundle

A bundle rooted at R with depth d is repacked only when some dirty id lies
within forward distance d of R. Everything else is kept as the same object.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import structlog

from ctxgraph.context.builder import (
    BuildResult,
    build_project,
    make_extractor,
    run_extractor,
    select_roots,
)
from ctxgraph.context.config import ContextConfig
from ctxgraph.context.errors import CacheInconsistency, ExtractionFailure
from ctxgraph.context.extractor import Extractor
from ctxgraph.context.graph import DependencyGraph, distances_to, merge_reverse
from ctxgraph.context.hashing import file_hash
from ctxgraph.context.models import Bundle, entry_key
from ctxgraph.context.packer import pack_all
from ctxgraph.context.scanner import git_ignored, is_tracked_path, to_entry_id
from ctxgraph.context.store import ContractStore

logger = structlog.get_logger(__name__)


@dataclass
class RebuildResult:
    """What one incremental update did."""

    added: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    failures: list[ExtractionFailure] = field(default_factory=list)
    dirty: list[str] = field(default_factory=list)
    repacked: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)

    @property
    def changed(self) -> list[str]:
        """Ids whose contract was added, re-extracted or removed."""
        return sorted(set(self.added) | set(self.modified) | set(self.removed))


class IncrementalCache:
    """Process-lifetime cache of the last build, updated in place."""

    def __init__(
        self,
        root: Path,
        config: ContextConfig,
        store: ContractStore,
        graph: DependencyGraph,
        bundles: dict[str, Bundle],
        extractor: Extractor | None = None,
    ) -> None:
        self.root = root
        self.config = config
        self.store = store
        self.graph = graph
        self.bundles = bundles
        self.extractor = extractor or make_extractor(config)

    @classmethod
    def from_build(
        cls,
        root: Path,
        config: ContextConfig,
        result: BuildResult,
        extractor: Extractor | None = None,
    ) -> "IncrementalCache":
        return cls(root, config, result.store, result.graph, dict(result.bundles), extractor)

    @classmethod
    def build(
        cls,
        root: Path,
        config: ContextConfig,
        extractor: Extractor | None = None,
    ) -> tuple["IncrementalCache", BuildResult]:
        """Run a full build and wrap it in a new cache."""
        extractor = extractor or make_extractor(config)
        result = build_project(root, config, extractor)
        return cls.from_build(root, config, result, extractor), result

    def sorted_bundles(self) -> list[Bundle]:
        return [self.bundles[root] for root in sorted(self.bundles)]

    def _refresh_contracts(
        self,
        entry_ids: list[str],
        result: RebuildResult,
        excluded: set[str] | None = None,
    ) -> set[str]:
        """Update the extraction layer. Returns the ids whose contract changed.

        Ids in `excluded` are treated like deleted files.
        """
        excluded = excluded or set()
        changed: set[str] = set()
        for entry_id in entry_ids:
            path = self.root / entry_id
            previous_id = self.store.canonical_id(entry_id)

            if entry_id in excluded or not path.is_file():
                if self.store.remove(entry_id) is not None:
                    result.removed.append(previous_id or entry_id)
                    changed.add(previous_id or entry_id)
                continue

            try:
                contents = path.read_bytes()
            except OSError as e:
                failure = ExtractionFailure(entry_id, str(e))
            else:
                if previous_id is not None and self.store.file_hash_of(entry_id) == file_hash(contents):
                    result.unchanged.append(previous_id)
                    continue
                try:
                    contract = run_extractor(self.extractor, entry_id, contents)
                except ExtractionFailure as e:
                    failure = e
                else:
                    self.store.put(contract)
                    (result.modified if previous_id else result.added).append(contract.entry_id)
                    changed.add(contract.entry_id)
                    if previous_id and previous_id != contract.entry_id:
                        changed.add(previous_id)
                    continue

            # Unreadable or unextractable: exclude the file
            logger.warning("extraction_failed", entry_id=failure.entry_id, reason=failure.reason)
            result.failures.append(failure)
            if self.store.remove(entry_id) is not None:
                result.removed.append(previous_id or entry_id)
                changed.add(previous_id or entry_id)

        return changed

    def apply_changes(
        self,
        changed_files: Iterable[str | Path],
        created_at: datetime | None = None,
    ) -> RebuildResult:
        """Apply a batch of changed paths (absolute or root-relative).

        Args:
            changed_files: Paths reported by the watcher; kind is re-derived
                from whether the file exists now
            created_at: Timestamp for repacked bundles

        Returns:
            RebuildResult describing the update

        Raises:
            CacheInconsistency: If the cache breaks an invariant; discard it
        """
        result = RebuildResult()
        entry_ids = sorted({to_entry_id(p, self.root) for p in changed_files})
        entry_ids = [entry_id for entry_id in entry_ids if is_tracked_path(entry_id, self.config.ignore)]
        # Same .gitignore rule as discovery; ignored files leave the store
        excluded = git_ignored(self.root, entry_ids)

        changed = self._refresh_contracts(entry_ids, result, excluded)
        if not changed:
            self.check_consistency()
            return result

        old_reverse = self.graph.reverse_snapshot()
        affected = self.graph.update(self.store, changed, self.config.path_aliases)
        dirty = changed | affected
        result.dirty = sorted(dirty)

        current_roots = {entry_key(r): r for r in select_roots(self.graph, self.config)}
        bundle_keys = {entry_key(r): r for r in self.bundles}

        max_depth = max((b.depth for b in self.bundles.values()), default=self.config.depth)
        distances = distances_to(merge_reverse(old_reverse, self.graph.reverse), dirty, max_depth)

        stored_keys = {entry_key(entry_id) for entry_id in self.store.ids()}
        invalidated: set[str] = set()
        for key, root in bundle_keys.items():
            if key not in current_roots or key not in stored_keys:
                del self.bundles[root]
                result.dropped.append(root)
                continue
            distance = distances.get(root)
            if distance is not None and distance <= self.bundles[root].depth:
                invalidated.add(current_roots[key])

        new_roots = {root for key, root in current_roots.items() if key not in bundle_keys}
        to_pack = sorted(invalidated | new_roots)

        if to_pack:
            for root in invalidated:
                self.bundles.pop(bundle_keys[entry_key(root)], None)
            packed = pack_all(
                self.graph,
                self.store,
                to_pack,
                max_depth=self.config.depth,
                max_nodes=self.config.max_nodes,
                created_at=created_at,
            )
            self.bundles.update(packed.bundles)
            result.repacked = sorted(packed.bundles)
            result.unresolved = list(packed.unresolved)

        result.dropped.sort()
        self.check_consistency()
        logger.info(
            "rebuild_complete",
            changed=len(result.changed),
            dirty=len(result.dirty),
            repacked=len(result.repacked),
            dropped=len(result.dropped),
        )
        return result

    def check_consistency(self) -> None:
        """Verify the layers agree with each other.

        Raises:
            CacheInconsistency: On the first violated invariant
        """
        store_keys = {entry_key(entry_id) for entry_id in self.store.ids()}
        graph_keys = {entry_key(node) for node in self.graph.nodes()}
        if store_keys != graph_keys:
            raise CacheInconsistency(
                f"Graph and store disagree: {len(graph_keys ^ store_keys)} ids differ"
            )

        for root, bundle in self.bundles.items():
            if entry_key(root) not in store_keys:
                raise CacheInconsistency(f"Bundle root {root} has no contract")
            for node in bundle.graph.nodes:
                current = self.store.get(node.entry_id)
                if current is None:
                    raise CacheInconsistency(f"Bundle {root} holds removed contract {node.entry_id}")
                if current != node.contract:
                    raise CacheInconsistency(f"Bundle {root} holds a stale contract for {node.entry_id}")
