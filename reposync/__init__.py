"""
Repository Sync - Identity Resolution, Metadata Merge and Versioned Synchronization.

An engine synchronizing external sources (RDF metadata graphs, filesystem
trees) into a transactional graph repository where every object carries
one or more identifiers, exactly one of them canonical:

    # Import a metadata graph
    from reposync import GraphImporter, RepositorySession, load_graph

    # Synchronize a directory tree
    from reposync import IndexerSettings, VersionedIndexer

Models shared with transport implementations live in `reposchema`.
"""

from reposync.exceptions import (
    AmbiguousMatch,
    CacheInconsistent,
    CycleUnresolved,
    Deleted,
    InvalidReference,
    ManyCanonicalIds,
    MetadataLookupError,
    MetadataMissing,
    NoCanonicalId,
    NodeRejected,
    NotFound,
    RepoSyncError,
    TransactionError,
    TransientTransport,
)
from reposync.identity import UNRESOLVED, IdentityCache, canonical_id
from reposync.importer import GraphImporter, ImportMode, ImportResult, load_graph
from reposync.indexer import IndexerSettings, IndexResult, VersionedIndexer, VersioningMode
from reposync.lookup import ConstantLookup, FileLookup, GraphLookup, MetadataLookupInterface
from reposync.merge import MetadataPatch, UpdateMode, compute_patch, merge_metadata
from reposync.session import AmbiguityPolicy, RepositorySession, SessionSettings
from reposync.sources import FileSource, ObjectSource
from reposync.versioning import create_new_version

__all__ = [
    "AmbiguityPolicy",
    "AmbiguousMatch",
    "CacheInconsistent",
    "ConstantLookup",
    "CycleUnresolved",
    "Deleted",
    "FileLookup",
    "FileSource",
    "GraphImporter",
    "GraphLookup",
    "IdentityCache",
    "ImportMode",
    "ImportResult",
    "IndexResult",
    "IndexerSettings",
    "InvalidReference",
    "ManyCanonicalIds",
    "MetadataLookupError",
    "MetadataLookupInterface",
    "MetadataMissing",
    "MetadataPatch",
    "NoCanonicalId",
    "NodeRejected",
    "NotFound",
    "ObjectSource",
    "RepoSyncError",
    "RepositorySession",
    "SessionSettings",
    "TransactionError",
    "TransientTransport",
    "UNRESOLVED",
    "UpdateMode",
    "VersionedIndexer",
    "VersioningMode",
    "canonical_id",
    "compute_patch",
    "create_new_version",
    "load_graph",
    "merge_metadata",
]

__version__ = "0.1.0"
