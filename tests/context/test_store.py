"""Tests for context.store — the contract store and hash verification."""

from pathlib import Path

from ctxgraph.context.extractor import build_contract
from ctxgraph.context.store import ContractStore, verify_file_hashes


class TestContractStore:
    """Case-insensitive contract storage."""

    def test_put_get_remove(self, make_contract):
        store = ContractStore()
        contract = make_contract("src/App.tsx")

        assert store.put(contract) is None
        assert store.get("src/App.tsx") is contract
        assert "src/App.tsx" in store
        assert len(store) == 1

        assert store.remove("src/App.tsx") is contract
        assert store.get("src/App.tsx") is None

    def test_lookup_is_case_insensitive(self, make_contract):
        store = ContractStore([make_contract("src/App.tsx")])
        assert store.canonical_id("SRC/app.tsx") == "src/App.tsx"
        assert "./src/App.tsx" in store

    def test_put_replaces(self, make_contract):
        store = ContractStore([make_contract("a.ts", props=["x"])])
        replacement = make_contract("a.ts", props=["y"])
        previous = store.put(replacement)

        assert previous is not None
        assert "x" in previous.logic_signature.props
        assert store.get("a.ts") is replacement

    def test_ids_sorted(self, make_contract):
        store = ContractStore([make_contract(i) for i in ("c.ts", "a.ts", "b.ts")])
        assert store.ids() == ["a.ts", "b.ts", "c.ts"]
        assert [c.entry_id for c in store] == ["a.ts", "b.ts", "c.ts"]

    def test_file_hash_of(self, make_contract):
        contract = make_contract("a.ts")
        store = ContractStore([contract])
        assert store.file_hash_of("a.ts") == contract.file_hash
        assert store.file_hash_of("missing.ts") is None


class TestVerifyFileHashes:
    """Detect sources that drifted from their contracts."""

    def test_reports_changed_and_deleted(self, tmp_path: Path):
        (tmp_path / "same.ts").write_text("export const a = 1;\n")
        (tmp_path / "edited.ts").write_text("export const b = 2;\n")

        store = ContractStore(
            [
                build_contract("same.ts", "export const a = 1;\n"),
                build_contract("edited.ts", "export const b = 1;\n"),
                build_contract("gone.ts", "export const c = 1;\n"),
            ]
        )

        assert verify_file_hashes(store, tmp_path) == ["edited.ts", "gone.ts"]
