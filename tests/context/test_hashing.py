"""Tests for context.hashing — file, semantic and bundle digests."""

from ctxgraph.context.hashing import (
    BUNDLE_PREFIX,
    CONTRACT_PREFIX,
    SKIPPED_DIGEST,
    bundle_hash,
    canonical_json,
    canonicalize,
    file_hash,
    is_valid_hash,
    semantic_hash,
)
from ctxgraph.context.models import (
    ExportInfo,
    ExportKind,
    FunctionType,
    LiteralUnionType,
    LogicSignature,
    SimpleType,
    VersionFingerprint,
)


def _signature(**props: str) -> LogicSignature:
    return LogicSignature(props={name: SimpleType(name=type_name) for name, type_name in props.items()})


class TestFileHash:
    """Raw content digest."""

    def test_display_form(self):
        digest = file_hash(b"export const a = 1;\n")
        assert digest.startswith(CONTRACT_PREFIX)
        assert is_valid_hash(digest)

    def test_any_byte_change_changes_hash(self):
        assert file_hash(b"const a = 1;") != file_hash(b"const a = 1; ")

    def test_str_is_utf8_encoded(self):
        assert file_hash("héllo") == file_hash("héllo".encode())


class TestCanonicalize:
    """Canonical form used for semantic digests."""

    def test_mapping_keys_sorted_and_none_dropped(self):
        assert canonicalize({"b": 1, "a": None, "c": 2}) == {"b": 1, "c": 2}
        assert list(canonicalize({"b": 1, "a": 2})) == ["a", "b"]

    def test_lists_sorted(self):
        assert canonicalize(["b", "a", "c"]) == ["a", "b", "c"]

    def test_volatile_model_fields_dropped(self):
        from ctxgraph.context.extractor import build_contract

        contract = build_contract("a.ts", "x", snippet="/** header */")
        canonical = canonicalize(contract)
        assert "snippet" not in canonical
        assert "entryId" in canonical

    def test_prop_named_like_volatile_key_kept(self):
        signature = _signature(position="string")
        assert "position" in canonicalize(signature)["props"]

    def test_enum_reduced_to_value(self):
        assert canonicalize(ExportKind.DEFAULT) == "default"

    def test_canonical_json_is_compact(self):
        assert canonical_json({"b": [1, 2], "a": "x"}) == '{"a":"x","b":[1,2]}'


class TestSemanticHash:
    """Interface digest."""

    def test_idempotent(self):
        args = (_signature(a="string"), ExportInfo(), VersionFingerprint())
        assert semantic_hash(*args) == semantic_hash(*args)

    def test_insensitive_to_ordering(self):
        first = LogicSignature(
            props={"a": SimpleType(name="string"), "b": SimpleType(name="number")}
        )
        second = LogicSignature(
            props={"b": SimpleType(name="number"), "a": SimpleType(name="string")}
        )
        version_a = VersionFingerprint(imports=["./x", "./y"])
        version_b = VersionFingerprint(imports=["./y", "./x"])
        assert semantic_hash(first, ExportInfo(), version_a) == semantic_hash(
            second, ExportInfo(), version_b
        )

    def test_sensitive_to_prop_type(self):
        base = semantic_hash(_signature(a="string"), ExportInfo(), VersionFingerprint())
        changed = semantic_hash(_signature(a="number"), ExportInfo(), VersionFingerprint())
        assert base != changed

    def test_sensitive_to_optional_flag(self):
        required = LogicSignature(props={"a": SimpleType(name="string")})
        optional = LogicSignature(props={"a": SimpleType(name="string", optional=True)})
        assert semantic_hash(required, ExportInfo(), VersionFingerprint()) != semantic_hash(
            optional, ExportInfo(), VersionFingerprint()
        )

    def test_sensitive_to_events_and_literals(self):
        with_event = LogicSignature(emits={"onClick": FunctionType(signature="() => void")})
        with_literals = LogicSignature(
            props={"v": LiteralUnionType(literals=["primary", "secondary"])}
        )
        empty = LogicSignature()
        digests = {
            semantic_hash(sig, ExportInfo(), VersionFingerprint())
            for sig in (with_event, with_literals, empty)
        }
        assert len(digests) == 3

    def test_sensitive_to_exports(self):
        named = ExportInfo(kind=ExportKind.NAMED, named=["A"])
        default = ExportInfo(kind=ExportKind.DEFAULT)
        sig = LogicSignature()
        assert semantic_hash(sig, named, VersionFingerprint()) != semantic_hash(
            sig, default, VersionFingerprint()
        )


class TestBundleHash:
    """Packed subgraph digest."""

    def test_prefix(self):
        digest = bundle_hash([("a.ts", "uif:" + "0" * 24)], [])
        assert digest.startswith(BUNDLE_PREFIX)
        assert is_valid_hash(digest)

    def test_independent_of_assembly_order(self):
        nodes = [("a.ts", "uif:1"), ("b.ts", "uif:2"), ("c.ts", "uif:3")]
        edges = [("a.ts", "b.ts"), ("a.ts", "c.ts")]
        assert bundle_hash(nodes, edges) == bundle_hash(reversed(nodes), reversed(edges))

    def test_skipped_node_uses_sentinel(self):
        assert bundle_hash([("a.ts", None)], []) == bundle_hash([("a.ts", SKIPPED_DIGEST)], [])
        assert bundle_hash([("a.ts", None)], []) != bundle_hash([("a.ts", "uif:1")], [])

    def test_edge_change_changes_hash(self):
        nodes = [("a.ts", "uif:1"), ("b.ts", "uif:2")]
        assert bundle_hash(nodes, []) != bundle_hash(nodes, [("a.ts", "b.ts")])


class TestIsValidHash:
    def test_rejects_malformed(self):
        assert not is_valid_hash("uif:xyz")
        assert not is_valid_hash("sha256:" + "0" * 24)
        assert not is_valid_hash("uif:" + "0" * 23)
