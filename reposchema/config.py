"""Repository vocabulary configuration.

Every component of the synchronization engine needs to know which property
carries identifiers, which namespace holds canonical ids, and which
properties link objects to their parents and titles. None of these are
hardcoded; they are collected in a single frozen `RepositoryConfig` that is
passed to the session and, through it, to every other component.
"""

from pydantic import BaseModel, Field, field_validator


class RepositoryConfig(BaseModel):
    """Property URIs and namespaces describing a repository deployment.

    Attributes:
        id_prop: Property holding object identifiers (references).
        id_namespace: Namespace of canonical (server-minted) identifiers.
        vocabs_namespace: Optional second namespace whose identifiers are
            also treated as canonical (controlled vocabulary entries).
        vid_namespace: Namespace used for disambiguation ids minted when an
            object is rotated into an old version.
        title_prop: Property holding the human readable title.
        parent_prop: Property linking a child to its parent collection.
        location_prop: Property holding the filesystem location literal.
        reserved_namespace: Prefix of server-managed properties which are
            never written by the client.
        agent_classes: Classes whose imported instances are marked as agents.
        agent_class: Class added to every such instance.
    """

    model_config = {"frozen": True}

    id_prop: str = Field(description="Identifier property URI.")
    id_namespace: str = Field(description="Canonical identifier namespace.")
    title_prop: str = Field(description="Title property URI.")
    parent_prop: str = Field(description="Child-of-container property URI.")
    vocabs_namespace: str | None = Field(
        default=None,
        description="Additional namespace of canonical identifiers.",
    )
    vid_namespace: str = Field(
        default="urn:reposync:vid:",
        description="Namespace of disambiguation ids given to superseded versions.",
    )
    location_prop: str = Field(
        default="http://purl.org/dc/terms/source",
        description="Filesystem location literal property.",
    )
    type_prop: str = Field(default="http://www.w3.org/1999/02/22-rdf-syntax-ns#type")
    filename_prop: str = Field(default="http://www.ebu.ch/metadata/ontologies/ebucore/ebucore#filename")
    mime_prop: str = Field(default="http://www.ebu.ch/metadata/ontologies/ebucore/ebucore#hasMimeType")
    size_prop: str = Field(default="http://www.loc.gov/premis/rdf/v1#hasSize")
    hash_prop: str = Field(
        default="http://www.loc.gov/premis/rdf/v1#hasMessageDigest",
        description="Content digest property (set by the repository on upload).",
    )
    modified_prop: str = Field(default="http://purl.org/dc/terms/modified")
    pid_prop: str = Field(
        default="http://purl.org/dc/terms/identifier",
        description="Persistent identifier (handle) property.",
    )
    new_version_prop: str = Field(
        default="http://purl.org/dc/terms/replaces",
        description="Set on a new version, points at the previous version's canonical id.",
    )
    prev_version_prop: str = Field(
        default="http://purl.org/dc/terms/isReplacedBy",
        description="Set on an old version, points at the new version's canonical id.",
    )
    reserved_namespace: str = Field(
        default="http://fedora.info/definitions/v4/repository#",
        description="Prefix of server-managed properties.",
    )
    uri_norm_rules: tuple[tuple[str, str], ...] = Field(
        default=(),
        description="Ordered (regex, replacement) identifier normalisation rules.",
    )
    agent_classes: tuple[str, ...] = (
        "http://xmlns.com/foaf/0.1/Person",
        "http://xmlns.com/foaf/0.1/Agent",
    )
    agent_class: str = "http://xmlns.com/foaf/0.1/Agent"

    @field_validator("id_namespace", "vid_namespace")
    @classmethod
    def namespace_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("namespace must not be empty")
        return value

    def is_canonical_id(self, identifier: str) -> bool:
        """True if `identifier` lies in a canonical identifier namespace."""
        if identifier.startswith(self.id_namespace):
            return True
        return self.vocabs_namespace is not None and identifier.startswith(self.vocabs_namespace)

    def is_reserved(self, prop: str) -> bool:
        return prop.startswith(self.reserved_namespace)
