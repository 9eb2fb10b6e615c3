"""Contract store — the extraction layer of the build.

Holds the latest Contract per entry id. Lookups are case-insensitive on the
normalized entry id; the stored contract keeps the id's original casing.
"""

from collections.abc import Iterable, Iterator
from pathlib import Path

from ctxgraph.context.hashing import file_hash
from ctxgraph.context.models import Contract, entry_key


class ContractStore:
    """Mapping of entry id to its current Contract."""

    def __init__(self, contracts: Iterable[Contract] = ()) -> None:
        self._contracts: dict[str, Contract] = {}
        for contract in contracts:
            self.put(contract)

    def put(self, contract: Contract) -> Contract | None:
        """Insert or replace a contract, returning the one it replaced."""
        key = entry_key(contract.entry_id)
        previous = self._contracts.get(key)
        self._contracts[key] = contract
        return previous

    def remove(self, entry_id: str) -> Contract | None:
        """Drop a contract, returning it if it was present."""
        return self._contracts.pop(entry_key(entry_id), None)

    def get(self, entry_id: str) -> Contract | None:
        return self._contracts.get(entry_key(entry_id))

    def canonical_id(self, entry_id: str) -> str | None:
        """The stored spelling of an entry id, or None if absent."""
        contract = self.get(entry_id)
        return contract.entry_id if contract else None

    def file_hash_of(self, entry_id: str) -> str | None:
        contract = self.get(entry_id)
        return contract.file_hash if contract else None

    def ids(self) -> list[str]:
        """All entry ids, sorted."""
        return sorted(contract.entry_id for contract in self._contracts.values())

    def contracts(self) -> list[Contract]:
        """All contracts, sorted by entry id."""
        return sorted(self._contracts.values(), key=lambda c: c.entry_id)

    def __contains__(self, entry_id: object) -> bool:
        return isinstance(entry_id, str) and entry_key(entry_id) in self._contracts

    def __len__(self) -> int:
        return len(self._contracts)

    def __iter__(self) -> Iterator[Contract]:
        return iter(self.contracts())


def verify_file_hashes(store: ContractStore, root: Path) -> list[str]:
    """List contracts whose source file no longer matches their file_hash.

    Files that were deleted since extraction are reported too.

    Args:
        store: Contracts to check
        root: Project root the entry ids are relative to

    Returns:
        Sorted entry ids of mismatched or missing sources
    """
    mismatched: list[str] = []
    for contract in store.contracts():
        path = root / contract.entry_id
        if not path.is_file():
            mismatched.append(contract.entry_id)
            continue
        if file_hash(path.read_bytes()) != contract.file_hash:
            mismatched.append(contract.entry_id)
    return mismatched
