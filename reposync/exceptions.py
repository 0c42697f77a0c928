"""Error taxonomy of the synchronization engine.

Transport implementations translate their own failures into `NotFound`,
`Deleted`, `AmbiguousMatch` or `TransientTransport`. Only
`TransientTransport` is retried, and only at the transport boundary
(see `reposync.transport.retry`).

Per-node failures during a graph import (`NodeRejected`,
`InvalidReference`) are caught, logged and the node dropped. Everything
else aborts the enclosing operation.
"""


class RepoSyncError(Exception):
    """Base class of all engine errors."""


class NotFound(RepoSyncError):
    """No object matches the given identifiers or location."""


class Deleted(NotFound):
    """The object existed but has been deleted (tombstoned)."""


class AmbiguousMatch(RepoSyncError):
    """More than one distinct object matches, after re-verification."""

    def __init__(self, message: str, candidates: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.candidates = candidates


class CacheInconsistent(RepoSyncError):
    """The identity cache holds contradictory mappings (storage inconsistency)."""


class ManyCanonicalIds(CacheInconsistent):
    """An object exposes more than one canonical identifier."""


class NoCanonicalId(RepoSyncError):
    """An object exposes no canonical identifier."""


class CycleUnresolved(RepoSyncError):
    """A graph import stalled; the remaining nodes reference each other."""

    def __init__(self, nodes: tuple[str, ...]) -> None:
        super().__init__(f"graph contains unresolvable references between {len(nodes)} node(s): {', '.join(nodes)}")
        self.nodes = nodes


class NodeRejected(RepoSyncError):
    """A single graph node can not be imported; the import goes on without it."""


class InvalidReference(NodeRejected):
    """A node references a blank node or a managed-namespace URI that is not a canonical id."""


class MetadataMissing(RepoSyncError):
    """External metadata is required for an entry but none was found."""


class MetadataLookupError(RepoSyncError):
    """External metadata lookup found more than one candidate description."""


class TransientTransport(RepoSyncError):
    """Network or service error eligible for a bounded retry."""


class TransactionError(RepoSyncError):
    """Transaction state misuse or a failed commit."""
