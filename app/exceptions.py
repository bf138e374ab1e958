"""Errors raised by the catalog loading engine."""

from __future__ import annotations


class CatalogError(Exception):
    """Base class for catalog engine failures."""


class FetchFailure(CatalogError):
    """A manifest or partition could not be retrieved or decoded."""

    def __init__(self, resource: str, reason: str):
        super().__init__(f"Failed to fetch {resource}: {reason}")
        self.resource = resource
        self.reason = reason


class UnknownGroup(CatalogError, KeyError):
    """The catalog index has no group with the requested identifier."""

    def __init__(self, group_id: str):
        super().__init__(group_id)
        self.group_id = group_id

    def __str__(self) -> str:
        return f"Group {self.group_id} not found in catalog index"


class PartitionOutOfRange(CatalogError, IndexError):
    """The requested partition index does not exist within its group."""

    def __init__(self, group_id: str, index: int, available: int):
        super().__init__(
            f"Partition {index} does not exist in {group_id} ({available} available)"
        )
        self.group_id = group_id
        self.index = index
        self.available = available


class NoPlaylistInArchive(CatalogError):
    """A compressed archive held no extended-playlist file."""


class StoreSaveError(CatalogError):
    """Persisting state failed after exhausting retries."""
