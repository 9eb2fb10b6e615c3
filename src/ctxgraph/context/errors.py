"""Context errors — failures local to one file, one bundle or the watch cache."""

from __future__ import annotations


class ContextError(Exception):
    """Base class for context build errors."""

    def __init__(self, message: str) -> None:
        """Initialize ContextError with a message."""
        self.message = message
        super().__init__(message)


class ExtractionFailure(ContextError):
    """One file's contract could not be produced. The file is skipped."""

    def __init__(self, entry_id: str, reason: str) -> None:
        self.entry_id = entry_id
        self.reason = reason
        super().__init__(f"Failed to extract {entry_id}: {reason}")


class UnresolvedRoot(ContextError):
    """A bundle root is absent from the contract store. Only that bundle is skipped."""

    def __init__(self, entry_id: str) -> None:
        self.entry_id = entry_id
        super().__init__(f"Bundle root not found: {entry_id}")


class CacheInconsistency(ContextError):
    """An invariant of the incremental cache broke; the cache must be discarded."""


class PersistenceFailure(ContextError):
    """A status or log artifact could not be written."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Could not write {path}: {reason}")
