"""Context models — L0 types for contracts, bundles and the index.

L0 constraint: Only import from pydantic, datetime, stdlib.
NO imports from other ctxgraph.* modules.
"""

import posixpath
from datetime import datetime
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SCHEMA_VERSION = "0.1"


def normalize_entry_id(entry_id: str) -> str:
    """Normalize a path into a project-relative, forward-slash entry id.

    Backslashes become forward slashes, `.`/`..` segments are collapsed and a
    leading `./` is removed. Case is preserved; use `entry_key` to compare.
    """
    path = entry_id.replace("\\", "/").strip()
    if not path:
        return path
    normalized = posixpath.normpath(path)
    # Windows drive letters are compared lowercase
    if len(normalized) > 1 and normalized[1] == ":":
        normalized = normalized[0].lower() + normalized[1:]
    if normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def entry_key(entry_id: str) -> str:
    """Case-insensitive lookup key for an entry id."""
    return normalize_entry_id(entry_id).lower()


def folder_of(entry_id: str) -> str:
    """Directory part of an entry id, `.` for files at the project root."""
    folder = posixpath.dirname(normalize_entry_id(entry_id))
    return folder or "."


class ArtifactModel(BaseModel):
    """Base for wire artifacts: frozen, camelCase on the wire."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ===== Field type variants =====


class SimpleType(ArtifactModel):
    """A plain type name such as `string`, `number` or `User[]`."""

    kind: Literal["simple"] = "simple"
    name: str
    optional: bool = False


class LiteralUnionType(ArtifactModel):
    """A union of literals, e.g. `"primary" | "secondary"`."""

    kind: Literal["literal-union"] = "literal-union"
    literals: list[str]
    optional: bool = False


class FunctionType(ArtifactModel):
    """A callable with its normalized signature, e.g. `() => void`."""

    kind: Literal["function"] = "function"
    signature: str
    optional: bool = False


class ObjectType(ArtifactModel):
    """An inline object type; `shape` keeps the normalized literal if known."""

    kind: Literal["object"] = "object"
    shape: str | None = None
    optional: bool = False


class ArrayType(ArtifactModel):
    """An array of `element`."""

    kind: Literal["array"] = "array"
    element: str
    optional: bool = False


PropType = Annotated[
    SimpleType | LiteralUnionType | FunctionType | ObjectType | ArrayType,
    Field(discriminator="kind"),
]
EventType = FunctionType
StateType = SimpleType


# ===== Contract =====


class ContractKind(StrEnum):
    """What kind of module a contract describes."""

    COMPONENT = "react:component"
    HOOK = "react:hook"
    MODULE = "ts:module"
    API = "node:api"


class ExportKind(StrEnum):
    """How a module exposes its main symbol."""

    DEFAULT = "default"
    NAMED = "named"
    NONE = "none"


class ExportInfo(ArtifactModel):
    """Export metadata: kind plus the sorted named exports."""

    kind: ExportKind = ExportKind.NONE
    named: list[str] = Field(default_factory=list)


class VersionFingerprint(ArtifactModel):
    """Sorted lists of what a module references and declares."""

    imports: list[str] = Field(default_factory=list)
    hooks: list[str] = Field(default_factory=list)
    components: list[str] = Field(default_factory=list)
    functions: list[str] = Field(default_factory=list)
    variables: list[str] = Field(default_factory=list)


class LogicSignature(ArtifactModel):
    """Observable interface of a module: props, emitted events, internal state."""

    props: dict[str, PropType] = Field(default_factory=dict)
    emits: dict[str, EventType] = Field(default_factory=dict)
    state: dict[str, StateType] = Field(default_factory=dict)


class StyleMetadata(ArtifactModel):
    """Styling facts detected in a module."""

    tailwind: dict[str, list[str]] = Field(default_factory=dict)
    css_modules: list[str] = Field(default_factory=list)
    inline_styles: bool = False


class RouteInfo(ArtifactModel):
    """A backend route declared by a module."""

    method: str
    path: str


class BackendMetadata(ArtifactModel):
    """Backend facts detected in a module (framework and routes)."""

    framework: str
    routes: list[RouteInfo] = Field(default_factory=list)


class Contract(ArtifactModel):
    """Structured summary of one source module's observable interface."""

    type: Literal["ContextContract"] = "ContextContract"
    schema_version: str = SCHEMA_VERSION
    kind: ContractKind = ContractKind.MODULE
    entry_id: str
    description: str = ""
    file_hash: str
    semantic_hash: str
    exports: ExportInfo = Field(default_factory=ExportInfo)
    version: VersionFingerprint = Field(default_factory=VersionFingerprint)
    logic_signature: LogicSignature = Field(default_factory=LogicSignature)
    style: StyleMetadata | None = None
    backend: BackendMetadata | None = None
    snippet: str | None = None


# ===== Bundle =====


class BundleNode(ArtifactModel):
    """A contract packed into a bundle."""

    entry_id: str
    contract: Contract


class Edge(ArtifactModel):
    """A local dependency edge between two entry ids."""

    source: str = Field(alias="from")
    target: str = Field(alias="to")


class MissingDependency(ArtifactModel):
    """An import that could not be resolved to a local contract."""

    name: str
    reason: str = "No contract found (third-party or not scanned)"
    referenced_by: str | None = None


class BundleGraph(ArtifactModel):
    """Packed subgraph of a bundle."""

    nodes: list[BundleNode] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)


class BundleMeta(ArtifactModel):
    """Bundle metadata: unresolved deps and the producing tool."""

    missing: list[MissingDependency] = Field(default_factory=list)
    source: str


class Bundle(ArtifactModel):
    """A depth- and size-bounded dependency subgraph rooted at one entry."""

    type: Literal["ContextBundle"] = "ContextBundle"
    schema_version: str = SCHEMA_VERSION
    entry_id: str
    depth: int
    created_at: datetime
    bundle_hash: str
    graph: BundleGraph
    meta: BundleMeta

    def node_ids(self) -> list[str]:
        """Entry ids of every packed node."""
        return [node.entry_id for node in self.graph.nodes]


# ===== Index =====


class FolderInfo(ArtifactModel):
    """One folder's context file in the index."""

    path: str
    context_file: str
    bundles: int
    components: list[str] = Field(default_factory=list)
    is_root: bool = False
    root_label: str | None = None
    token_estimate: int = 0


class IndexSummary(ArtifactModel):
    """Aggregate totals of one full run."""

    total_contracts: int
    total_bundles: int
    total_folders: int
    total_token_estimate: int = 0


class GraphSummary(ArtifactModel):
    """Root and leaf ids of the project graph."""

    roots: list[str] = Field(default_factory=list)
    leaves: list[str] = Field(default_factory=list)


class IndexMeta(ArtifactModel):
    """Index metadata."""

    source: str


class ContextIndex(ArtifactModel):
    """Aggregate index over every folder's context file."""

    type: Literal["ContextIndex"] = "ContextIndex"
    schema_version: str = SCHEMA_VERSION
    project_root: str = "."
    created_at: datetime
    summary: IndexSummary
    folders: list[FolderInfo] = Field(default_factory=list)
    graph: GraphSummary = Field(default_factory=GraphSummary)
    meta: IndexMeta
