"""Repository transport interface.

The transport is the engine's only door to the repository service. Wire
details (HTTP, request framing, authentication) belong to implementations;
the engine relies on this contract only.

Implementations must translate their failures into the engine taxonomy:
`NotFound`, `Deleted`, `AmbiguousMatch` (identifier already held by another
object) or `TransientTransport` (network/service error that may succeed on
retry).

Transaction model: `begin()` opens a transaction that all subsequent calls
run in until `commit()` or `rollback()`. The search index behind
`find_by_value` and `query_property` is only guaranteed to reflect
*committed* state; in-flight changes are visible through `get_metadata` only.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union

from reposchema.metadata import Metadata, Value

Content = Union[bytes, Path]


class RepositoryTransport(ABC):
    """Abstract interface for repository access."""

    @abstractmethod
    async def begin(self) -> str:
        """Open a transaction and return its id."""

    @abstractmethod
    async def commit(self, transaction_id: str) -> None:
        """Commit the transaction. Failures are reported, never retried."""

    @abstractmethod
    async def rollback(self, transaction_id: str) -> None:
        """Discard the transaction."""

    @abstractmethod
    async def keep_alive(self, transaction_id: str) -> None:
        """Extend the server-side expiry of a transaction.

        Raises `Deleted` when the transaction no longer exists.
        """

    @abstractmethod
    async def create(
        self,
        metadata: Metadata,
        content: Content | None = None,
        path: str | None = None,
    ) -> str:
        """Create an object and return its URI.

        If `path` is None or ends with "/", the repository chooses the
        location (under `path`); otherwise the object is created exactly at
        `path`. The repository may add server-managed properties and mint a
        canonical identifier.
        """

    @abstractmethod
    async def get_metadata(self, uri: str) -> Metadata:
        """Fetch current metadata. Raises `NotFound` or `Deleted`."""

    @abstractmethod
    async def patch_metadata(self, uri: str, delete: Metadata, insert: Metadata) -> None:
        """Delete then insert the given triples."""

    @abstractmethod
    async def set_content(self, uri: str, content: Content) -> None:
        """Replace the binary content of an object."""

    @abstractmethod
    async def get_content(self, uri: str) -> bytes:
        """Return the binary content of an object (empty if metadata-only)."""

    @abstractmethod
    async def delete(self, uri: str) -> None:
        """Delete an object, leaving a tombstone."""

    @abstractmethod
    async def find_by_value(self, prop: str, value: Value) -> list[str]:
        """Search-index lookup of objects holding the given triple.

        Results may be stale relative to the current transaction.
        """

    @abstractmethod
    async def query_property(self, prop: str) -> list[tuple[str, Value]]:
        """Return (object URI, value) rows for every stored `prop` triple."""
