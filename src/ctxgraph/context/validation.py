"""Snapshot validation — structural and hash-lock checks over stored bundles.

Errors make a snapshot unusable (bad digests, a bundle hash that no longer
matches its nodes, nodes outside the declared depth). Warnings flag content
written by another schema version. Source checks compare each contract's
file_hash with the file on disk.
"""

from enum import StrEnum
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ctxgraph.context.graph import DependencyGraph, reachable_within
from ctxgraph.context.hashing import bundle_hash, is_valid_hash
from ctxgraph.context.models import SCHEMA_VERSION, Bundle, Contract, entry_key
from ctxgraph.context.store import ContractStore, verify_file_hashes

logger = structlog.get_logger(__name__)


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


class ValidationIssue(BaseModel):
    """One problem found in a snapshot."""

    severity: Severity
    bundle: str
    message: str

    model_config = ConfigDict(frozen=True)


class ValidationReport(BaseModel):
    """Result of validating a snapshot."""

    bundles: int = 0
    nodes: int = 0
    edges: int = 0
    issues: list[ValidationIssue] = Field(default_factory=list)
    stale: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == Severity.WARNING]

    @property
    def valid(self) -> bool:
        return not self.errors and not self.stale

    @property
    def exit_code(self) -> int:
        return 0 if self.valid else 1


def _contract_issues(bundle: Bundle, contract: Contract) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for name in ("file_hash", "semantic_hash"):
        value = getattr(contract, name)
        if not is_valid_hash(value):
            issues.append(
                ValidationIssue(
                    severity=Severity.ERROR,
                    bundle=bundle.entry_id,
                    message=f"{contract.entry_id}: malformed {name} {value!r}",
                )
            )
    if contract.schema_version != SCHEMA_VERSION:
        issues.append(
            ValidationIssue(
                severity=Severity.WARNING,
                bundle=bundle.entry_id,
                message=f"{contract.entry_id}: unexpected schema version {contract.schema_version}",
            )
        )
    return issues


def validate_bundle(bundle: Bundle) -> list[ValidationIssue]:
    """Check one bundle's digests and the shape of its subgraph."""
    issues: list[ValidationIssue] = []

    def error(message: str) -> None:
        issues.append(ValidationIssue(severity=Severity.ERROR, bundle=bundle.entry_id, message=message))

    if bundle.schema_version != SCHEMA_VERSION:
        issues.append(
            ValidationIssue(
                severity=Severity.WARNING,
                bundle=bundle.entry_id,
                message=f"unexpected schema version {bundle.schema_version}",
            )
        )

    node_ids = bundle.node_ids()
    if entry_key(bundle.entry_id) not in {entry_key(node) for node in node_ids}:
        error("root is not among the bundle nodes")

    for node in bundle.graph.nodes:
        if node.entry_id != node.contract.entry_id:
            error(f"node {node.entry_id} carries the contract of {node.contract.entry_id}")
        issues.extend(_contract_issues(bundle, node.contract))

    edges = [(edge.source, edge.target) for edge in bundle.graph.edges]
    if not is_valid_hash(bundle.bundle_hash):
        error(f"malformed bundle hash {bundle.bundle_hash!r}")
    else:
        # Edge endpoints without a node were packed as skipped nodes
        digests: dict[str, str | None] = {endpoint: None for edge in edges for endpoint in edge}
        digests.update((node.entry_id, node.contract.semantic_hash) for node in bundle.graph.nodes)
        if bundle_hash(digests.items(), edges) != bundle.bundle_hash:
            error("bundle hash does not match its nodes and edges")

    subgraph = DependencyGraph.from_edges(node_ids, edges)
    reached = reachable_within(subgraph, bundle.entry_id, bundle.depth)
    for node in subgraph.nodes():
        if node not in reached:
            error(f"{node} is not reachable from the root within depth {bundle.depth}")

    return issues


def validate_snapshot(bundles: list[Bundle], root: Path | None = None) -> ValidationReport:
    """Validate every bundle, and optionally the sources they were built from.

    Args:
        bundles: Bundles read from a snapshot
        root: Project root; when given, contracts whose source file changed
            or disappeared are reported as stale

    Returns:
        ValidationReport; `valid` is False on any error or stale source
    """
    issues: list[ValidationIssue] = []
    for bundle in bundles:
        issues.extend(validate_bundle(bundle))

    stale: list[str] = []
    if root is not None:
        store = ContractStore(node.contract for bundle in bundles for node in bundle.graph.nodes)
        stale = verify_file_hashes(store, root)

    report = ValidationReport(
        bundles=len(bundles),
        nodes=sum(len(bundle.graph.nodes) for bundle in bundles),
        edges=sum(len(bundle.graph.edges) for bundle in bundles),
        issues=issues,
        stale=stale,
    )
    logger.info(
        "snapshot_validated",
        bundles=report.bundles,
        errors=len(report.errors),
        warnings=len(report.warnings),
        stale=len(report.stale),
    )
    return report
