"""ctxgraph context — contracts, dependency graph, bundles and drift."""

from ctxgraph.context.builder import BuildResult, build_project, extract_all
from ctxgraph.context.cli import (
    clean_command,
    compare_command,
    context_command,
    validate_command,
    watch_command,
)
from ctxgraph.context.config import ContextConfig, load_config, save_config
from ctxgraph.context.drift import ContractDiff, DriftReport, DriftStatus, compare_bundles
from ctxgraph.context.errors import (
    CacheInconsistency,
    ContextError,
    ExtractionFailure,
    PersistenceFailure,
    UnresolvedRoot,
)
from ctxgraph.context.extractor import Extractor, ReactExtractor, build_contract
from ctxgraph.context.graph import DependencyGraph, build_graph, resolve_specifier
from ctxgraph.context.hashing import bundle_hash, file_hash, semantic_hash
from ctxgraph.context.incremental import IncrementalCache, RebuildResult
from ctxgraph.context.models import (
    Bundle,
    ContextIndex,
    Contract,
    ContractKind,
    LogicSignature,
    VersionFingerprint,
)
from ctxgraph.context.packer import PackResult, pack_all, pack_bundle
from ctxgraph.context.snapshot import read_snapshot, write_snapshot
from ctxgraph.context.status import is_watch_active
from ctxgraph.context.store import ContractStore, verify_file_hashes
from ctxgraph.context.validation import ValidationReport, validate_snapshot
from ctxgraph.context.watch import ChangeKind, FileWatcher, WatchController, WatchState

__all__ = [
    "BuildResult",
    "Bundle",
    "CacheInconsistency",
    "ChangeKind",
    "ContextConfig",
    "ContextError",
    "ContextIndex",
    "Contract",
    "ContractDiff",
    "ContractKind",
    "ContractStore",
    "DependencyGraph",
    "DriftReport",
    "DriftStatus",
    "ExtractionFailure",
    "Extractor",
    "FileWatcher",
    "IncrementalCache",
    "LogicSignature",
    "PackResult",
    "PersistenceFailure",
    "ReactExtractor",
    "RebuildResult",
    "UnresolvedRoot",
    "ValidationReport",
    "VersionFingerprint",
    "WatchController",
    "WatchState",
    "build_contract",
    "build_graph",
    "build_project",
    "bundle_hash",
    "clean_command",
    "compare_bundles",
    "compare_command",
    "context_command",
    "extract_all",
    "file_hash",
    "is_watch_active",
    "load_config",
    "pack_all",
    "pack_bundle",
    "read_snapshot",
    "resolve_specifier",
    "save_config",
    "semantic_hash",
    "validate_command",
    "validate_snapshot",
    "verify_file_hashes",
    "watch_command",
    "write_snapshot",
]
