"""Drift comparator — structural diff between two sets of bundles.

Pure and order-independent: contracts and bundles are indexed by entry key
before comparing, so neither input order nor id casing matters.
"""

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ctxgraph.context.models import Bundle, Contract, entry_key


class DriftStatus(StrEnum):
    """Comparison verdict."""

    PASS = "PASS"
    DRIFT = "DRIFT"


class ValueChange(BaseModel):
    """Old and new value of one field."""

    old: Any
    new: Any

    model_config = ConfigDict(frozen=True)


class MapDiff(BaseModel):
    """Diff of a name -> type mapping (props, emits, state)."""

    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    changed: dict[str, ValueChange] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)


class ListDiff(BaseModel):
    """Diff of a name list (hooks, components, ...)."""

    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    def is_empty(self) -> bool:
        return not (self.added or self.removed)


class ContractDiff(BaseModel):
    """Field-level differences between two versions of one contract."""

    props: MapDiff = Field(default_factory=MapDiff)
    emits: MapDiff = Field(default_factory=MapDiff)
    state: MapDiff = Field(default_factory=MapDiff)
    hooks: ListDiff = Field(default_factory=ListDiff)
    components: ListDiff = Field(default_factory=ListDiff)
    functions: ListDiff = Field(default_factory=ListDiff)
    variables: ListDiff = Field(default_factory=ListDiff)
    imports: ListDiff = Field(default_factory=ListDiff)
    exports: ValueChange | None = None

    model_config = ConfigDict(frozen=True)

    def is_empty(self) -> bool:
        parts: list[MapDiff | ListDiff] = [
            self.props,
            self.emits,
            self.state,
            self.hooks,
            self.components,
            self.functions,
            self.variables,
            self.imports,
        ]
        return self.exports is None and all(part.is_empty() for part in parts)


class ChangedContract(BaseModel):
    """A contract present on both sides whose hashes differ."""

    entry_id: str
    file_hash: ValueChange | None = None
    semantic_hash: ValueChange | None = None
    diff: ContractDiff | None = None

    model_config = ConfigDict(frozen=True)


class BundleChange(BaseModel):
    """A bundle whose hash differs (None when the bundle exists on one side only)."""

    entry_id: str
    old_hash: str | None = None
    new_hash: str | None = None

    model_config = ConfigDict(frozen=True)


class DriftReport(BaseModel):
    """Result of comparing two snapshots."""

    status: DriftStatus
    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    changed: list[ChangedContract] = Field(default_factory=list)
    bundles_changed: list[BundleChange] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def exit_code(self) -> int:
        return 0 if self.status == DriftStatus.PASS else 1

    def summary(self) -> str:
        """One-line human summary, e.g. "1 modified, 2 added, 0 removed"."""
        return (
            f"{len(self.changed)} modified, {len(self.added)} added, "
            f"{len(self.removed)} removed, {len(self.bundles_changed)} bundles changed"
        )


def _map_diff(old: Mapping[str, BaseModel], new: Mapping[str, BaseModel]) -> MapDiff:
    changed = {
        name: ValueChange(old=old[name].model_dump(mode="json"), new=new[name].model_dump(mode="json"))
        for name in sorted(old.keys() & new.keys())
        if old[name] != new[name]
    }
    return MapDiff(
        added=sorted(new.keys() - old.keys()),
        removed=sorted(old.keys() - new.keys()),
        changed=changed,
    )


def _list_diff(old: list[str], new: list[str]) -> ListDiff:
    return ListDiff(added=sorted(set(new) - set(old)), removed=sorted(set(old) - set(new)))


def diff_contracts(old: Contract, new: Contract) -> ContractDiff:
    """Field-level diff of two versions of the same contract."""
    old_sig, new_sig = old.logic_signature, new.logic_signature
    old_ver, new_ver = old.version, new.version

    exports = None
    if old.exports != new.exports:
        exports = ValueChange(
            old=old.exports.model_dump(mode="json"),
            new=new.exports.model_dump(mode="json"),
        )

    return ContractDiff(
        props=_map_diff(old_sig.props, new_sig.props),
        emits=_map_diff(old_sig.emits, new_sig.emits),
        state=_map_diff(old_sig.state, new_sig.state),
        hooks=_list_diff(old_ver.hooks, new_ver.hooks),
        components=_list_diff(old_ver.components, new_ver.components),
        functions=_list_diff(old_ver.functions, new_ver.functions),
        variables=_list_diff(old_ver.variables, new_ver.variables),
        imports=_list_diff(old_ver.imports, new_ver.imports),
        exports=exports,
    )


def index_contracts(bundles: list[Bundle]) -> dict[str, Contract]:
    """Every contract packed in any bundle, keyed by entry key.

    When bundles disagree on a contract, the copy from the bundle with the
    smallest root id wins.
    """
    contracts: dict[str, Contract] = {}
    for bundle in sorted(bundles, key=lambda b: (entry_key(b.entry_id), b.entry_id)):
        for node in bundle.graph.nodes:
            contracts.setdefault(entry_key(node.entry_id), node.contract)
    return contracts


def compare_bundles(old: list[Bundle], new: list[Bundle]) -> DriftReport:
    """Compare two bundle sets.

    Args:
        old: Baseline bundles
        new: Bundles to check against the baseline

    Returns:
        DriftReport; status is PASS only when nothing differs
    """
    old_contracts = index_contracts(old)
    new_contracts = index_contracts(new)

    added = sorted(new_contracts[k].entry_id for k in new_contracts.keys() - old_contracts.keys())
    removed = sorted(old_contracts[k].entry_id for k in old_contracts.keys() - new_contracts.keys())

    changed: list[ChangedContract] = []
    for key in sorted(old_contracts.keys() & new_contracts.keys()):
        before, after = old_contracts[key], new_contracts[key]
        file_change = (
            ValueChange(old=before.file_hash, new=after.file_hash)
            if before.file_hash != after.file_hash
            else None
        )
        semantic_change = (
            ValueChange(old=before.semantic_hash, new=after.semantic_hash)
            if before.semantic_hash != after.semantic_hash
            else None
        )
        if file_change is None and semantic_change is None:
            continue
        changed.append(
            ChangedContract(
                entry_id=after.entry_id,
                file_hash=file_change,
                semantic_hash=semantic_change,
                diff=diff_contracts(before, after) if semantic_change else None,
            )
        )
    changed.sort(key=lambda c: c.entry_id)

    old_bundles = {entry_key(b.entry_id): b for b in old}
    new_bundles = {entry_key(b.entry_id): b for b in new}
    bundles_changed: list[BundleChange] = []
    for key in sorted(old_bundles.keys() | new_bundles.keys()):
        before_bundle = old_bundles.get(key)
        after_bundle = new_bundles.get(key)
        old_hash = before_bundle.bundle_hash if before_bundle else None
        new_hash = after_bundle.bundle_hash if after_bundle else None
        if old_hash == new_hash:
            continue
        display = (after_bundle or before_bundle).entry_id  # type: ignore[union-attr]
        bundles_changed.append(BundleChange(entry_id=display, old_hash=old_hash, new_hash=new_hash))
    bundles_changed.sort(key=lambda b: b.entry_id)

    drifted = added or removed or changed or bundles_changed
    return DriftReport(
        status=DriftStatus.DRIFT if drifted else DriftStatus.PASS,
        added=added,
        removed=removed,
        changed=changed,
        bundles_changed=bundles_changed,
    )
