"""Repository objects, graph nodes under import and version links.

`RepositoryObject` is an immutable snapshot of a persisted object as last
read from the repository. Writes go through the session, which returns a
fresh snapshot; use `obj.model_copy(update={...})` only for local what-if
manipulation.
"""

from pydantic import BaseModel, ConfigDict, Field
from rdflib import BNode, URIRef

from reposchema.config import RepositoryConfig
from reposchema.metadata import Metadata


class RepositoryObject(BaseModel):
    """A persisted repository node.

    Attributes:
        uri: Location of the object in the repository.
        metadata: Metadata as stored (including server-managed properties).
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    uri: str = Field(description="Repository location of the object.")
    metadata: Metadata = Field(default_factory=Metadata, description="Stored metadata.")

    def identifiers(self, config: RepositoryConfig) -> list[str]:
        return self.metadata.identifiers(config.id_prop)

    def canonical_ids(self, config: RepositoryConfig) -> list[str]:
        """All identifiers lying in a canonical namespace (normally exactly one)."""
        return [i for i in self.identifiers(config) if config.is_canonical_id(i)]

    def __str__(self) -> str:
        return self.uri


class VersionLink(BaseModel):
    """Old and new object produced by a version rotation.

    The two objects reference each other through the configured
    `new_version_prop` (new → old) and `prev_version_prop` (old → new).
    """

    model_config = {"frozen": True}

    old: RepositoryObject
    new: RepositoryObject


class SourceNode:
    """A node of an RDF graph being imported.

    Nodes are mutable: the importer promotes subject URIs to identifiers and
    rewrites references into canonical ids while it works through the graph.

    Attributes:
        key: Subject of the node in the parsed graph (URIRef or BNode).
        metadata: The node's properties.
    """

    def __init__(self, key: URIRef | BNode, metadata: Metadata | None = None) -> None:
        self.key = key
        self.metadata = metadata if metadata is not None else Metadata()

    @property
    def is_blank(self) -> bool:
        return isinstance(self.key, BNode)

    @property
    def name(self) -> str:
        return self.key.n3() if self.is_blank else str(self.key)

    def __repr__(self) -> str:
        return f"SourceNode({self.name})"
