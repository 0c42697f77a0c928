"""
Repository Schema - Base Models

This package contains only Pydantic models and plain data classes with no
network or storage code. It defines:

- Repository vocabulary configuration
- Set-valued RDF metadata
- Repository objects, graph nodes and version links
- Identifier resolution result variants

These are used by reposync (the synchronization engine) and by
transport implementations.
"""

from reposchema.config import RepositoryConfig
from reposchema.metadata import Metadata
from reposchema.objects import RepositoryObject, SourceNode, VersionLink
from reposchema.resolution import Ambiguous, Found, NotFound, Resolution

__all__ = [
    "Ambiguous",
    "Found",
    "Metadata",
    "NotFound",
    "RepositoryConfig",
    "RepositoryObject",
    "Resolution",
    "SourceNode",
    "VersionLink",
]

__version__ = "0.1.0"
