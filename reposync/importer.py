"""Import of a whole RDF metadata graph into the repository.

`GraphImporter.import_graph()` turns every suitable node of an rdflib
`Graph` into a repository object, creating new objects or merging into the
ones already stored, and rewrites references between nodes into canonical
ids. The run proceeds in stages:

1. **Normalize**: literal identifier values are dropped (identifiers must
   be references) and every non-blank subject URI becomes an identifier of
   its own node.
2. **Index build**: the session's identity cache is filled from storage when
   stale, and every node identifier is verified. Identifiers co-occurring on
   one node are bound to the object any of them resolves to.
3. **Work-list**: nodes are scanned from the end of the list. A node still
   holding a blank-node reference, or a reference into the imported
   namespace that is not a canonical id yet, is passed over. Any other node
   is imported, removed from the list, and the scan restarts after the
   references of the remaining nodes have been rewritten.
4. **Termination**: when a full scan imports nothing the remaining nodes
   reference each other in a way that can not be resolved and
   `CycleUnresolved` is raised, unless `error_on_cycle=False`.

Nodes are rejected (logged and dropped, the run goes on) when they carry no
identifier, when their subject is a canonical id, when they are a bare
alias of another node, or when they hold identifiers only and lie outside
the imported namespace with `ImportMode.SKIP`. More than one existing
object matching a node aborts the run with `AmbiguousMatch`.

Example:
    ```python
    importer = GraphImporter(session, parent=collection)
    graph = load_graph("metadata.ttl")
    async with session.transaction():
        result = await importer.import_graph(graph, "https://id.example.org/")
    ```
"""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel
from rdflib import BNode, Graph, Literal, URIRef

from reposchema.metadata import Metadata
from reposchema.objects import RepositoryObject, SourceNode
from reposync.exceptions import AmbiguousMatch, CacheInconsistent, CycleUnresolved, InvalidReference, NodeRejected
from reposync.identity import UNRESOLVED, canonical_id
from reposync.logging import setup_logging
from reposync.merge import UpdateMode, merge_metadata
from reposync.session import RepositorySession


class ImportMode(str, Enum):
    """Treatment of identifier-only nodes outside the imported namespace."""

    SKIP = "skip"
    CREATE = "create"


class ImportResult(BaseModel):
    """Outcome of a graph import.

    Attributes:
        imported: URIs of all objects created or updated.
        created: URIs of newly created objects.
        updated: URIs of existing objects the graph was merged into.
        rejected: Names of nodes dropped by a per-node rule.
        unresolved: Names of nodes left over because of unresolvable
            references (only with `error_on_cycle=False`).
    """

    model_config = {"frozen": True}

    imported: tuple[str, ...] = ()
    created: tuple[str, ...] = ()
    updated: tuple[str, ...] = ()
    rejected: tuple[str, ...] = ()
    unresolved: tuple[str, ...] = ()


def load_graph(path: str | Path, format: str | None = None) -> Graph:
    """Parse an RDF file; the format is guessed from the extension when omitted."""
    graph = Graph()
    graph.parse(str(path), format=format)
    return graph


def graph_nodes(graph: Graph) -> list[SourceNode]:
    """One `SourceNode` per subject of `graph`, in a stable order."""
    subjects = {s for s in graph.subjects() if isinstance(s, (URIRef, BNode))}
    return [SourceNode(s, Metadata.from_graph(graph, s)) for s in sorted(subjects, key=lambda s: s.n3())]


class GraphImporter:
    """Imports RDF metadata graphs into the repository through one session."""

    def __init__(self, session: RepositorySession, parent: RepositoryObject | None = None) -> None:
        self.session = session
        self.config = session.config
        self.parent = parent
        self.logger = setup_logging()

    async def import_graph(
        self,
        graph: Graph,
        namespace: str,
        single_out_namespace: ImportMode | str = ImportMode.SKIP,
        error_on_cycle: bool = True,
    ) -> ImportResult:
        """Import every suitable node of `graph`.

        Args:
            graph: Parsed metadata graph.
            namespace: Nodes with an identifier in this namespace are always
                imported; references into it must resolve to canonical ids.
            single_out_namespace: Whether identifier-only nodes outside
                `namespace` are created (`CREATE`) or dropped (`SKIP`).
            error_on_cycle: Raise `CycleUnresolved` when nodes are left over.

        Raises:
            CycleUnresolved: if nodes remain unimportable and `error_on_cycle`.
            AmbiguousMatch: if a node matches more than one stored object.
            CacheInconsistent: if stored identifiers contradict each other.
        """
        single_out_namespace = ImportMode(single_out_namespace)
        nodes = graph_nodes(graph)
        self._remove_literal_ids(nodes)
        self._promote_uris_to_ids(nodes)
        await self._build_index(nodes)
        self._rewrite_references(nodes)

        created: list[str] = []
        updated: list[str] = []
        rejected: list[str] = []
        remaining = list(nodes)
        n = len(remaining)
        while remaining and n > 0:
            n -= 1
            node = remaining[n]
            if self._has_wrong_refs(node, namespace):
                self.logger.debug({"message": "node has unresolved references, postponed", "node": node.name}, pprint=True)
                continue
            try:
                obj, was_created = await self._import_node(node, remaining, namespace, single_out_namespace)
                (created if was_created else updated).append(obj.uri)
                self._rewrite_references(remaining)
            except NodeRejected as e:
                rejected.append(node.name)
                self.logger.info({"message": "node rejected", "node": node.name, "reason": str(e)}, pprint=True)
            finally:
                remaining.remove(node)
                n = len(remaining)

        unresolved = tuple(node.name for node in remaining)
        if unresolved and error_on_cycle:
            raise CycleUnresolved(unresolved)
        if unresolved:
            self.logger.warning({"message": "nodes left unimported", "nodes": unresolved}, pprint=True)

        imported = tuple(dict.fromkeys([*created, *updated]))
        self.logger.info(
            {"message": "graph imported", "created": len(created), "updated": len(updated), "rejected": len(rejected), "unresolved": len(unresolved)},
            pprint=True,
        )
        return ImportResult(
            imported=imported,
            created=tuple(created),
            updated=tuple(dict.fromkeys(updated)),
            rejected=tuple(rejected),
            unresolved=unresolved,
        )

    # normalization

    def _remove_literal_ids(self, nodes: list[SourceNode]) -> None:
        for node in nodes:
            for value in node.metadata.literals(self.config.id_prop):
                node.metadata.delete(self.config.id_prop, value)
                self.logger.debug({"message": "literal identifier removed", "node": node.name, "value": str(value)}, pprint=True)

    def _promote_uris_to_ids(self, nodes: list[SourceNode]) -> None:
        for node in nodes:
            if not node.is_blank:
                node.metadata.add(self.config.id_prop, node.key)

    # identity

    async def _build_index(self, nodes: list[SourceNode]) -> None:
        identity = self.session.identity
        if identity.stale:
            await identity.build(self.session)
        for node in nodes:
            matched: set[str] = set()
            for identifier in node.metadata.identifiers(self.config.id_prop):
                canonical = await identity.verify(self.session, identifier)
                if canonical is not UNRESOLVED:
                    matched.add(canonical)  # type: ignore[arg-type]
            if len(matched) > 1:
                raise CacheInconsistent(f"node {node.name} matches {len(matched)} objects: {', '.join(sorted(matched))}")
            if matched:
                canonical = matched.pop()
                identity.register(canonical, [node.name, *node.metadata.identifiers(self.config.id_prop)])
            else:
                identity.mark_unresolved(node.name)

    def _rewrite_references(self, nodes: list[SourceNode]) -> None:
        """Replace every resolvable reference by the target's canonical id."""
        identity = self.session.identity
        for node in nodes:
            for prop in node.metadata.properties():
                if prop == self.config.id_prop:
                    continue
                for value in node.metadata.values(prop):
                    if isinstance(value, Literal) or self.config.is_canonical_id(str(value)):
                        continue
                    key = value.n3() if isinstance(value, BNode) else str(value)
                    target = identity.resolve(key)
                    if target is UNRESOLVED:
                        continue
                    node.metadata.replace(prop, value, URIRef(target))  # type: ignore[arg-type]
                    self.logger.debug({"message": "reference rewritten", "node": node.name, "from": key, "to": target}, pprint=True)

    def _has_wrong_refs(self, node: SourceNode, namespace: str) -> bool:
        for prop in node.metadata.properties():
            if prop == self.config.id_prop:
                continue
            for value in node.metadata.values(prop):
                if isinstance(value, BNode):
                    return True
                if isinstance(value, URIRef) and value.startswith(namespace) and not self.config.is_canonical_id(value):
                    return True
        return False

    def _mark_agent(self, node: SourceNode) -> None:
        types = node.metadata.references(self.config.type_prop)
        if any(t in self.config.agent_classes for t in types):
            node.metadata.add_reference(self.config.type_prop, self.config.agent_class)

    def _is_alias(self, node: SourceNode, nodes: list[SourceNode]) -> bool:
        """True if the node's subject is an identifier of another node."""
        if node.is_blank:
            return False
        return any(other is not node and other.metadata.has(self.config.id_prop, node.key) for other in nodes)

    # single node

    async def _import_node(
        self,
        node: SourceNode,
        nodes: list[SourceNode],
        namespace: str,
        single_out_namespace: ImportMode,
    ) -> tuple[RepositoryObject, bool]:
        ids = node.metadata.identifiers(self.config.id_prop)
        if not ids:
            raise NodeRejected("no identifiers, the node could never be matched again")
        if not node.is_blank and self.config.is_canonical_id(str(node.key)):
            raise NodeRejected("canonical id used as a subject")

        matches = await self._find_matches(ids)
        in_namespace = any(i.startswith(namespace) for i in ids)
        action = ImportMode.CREATE if in_namespace else single_out_namespace

        if node.metadata.properties() == [self.config.id_prop]:
            if self._is_alias(node, nodes):
                raise NodeRejected("identifier of another node")
            if action is ImportMode.SKIP:
                raise NodeRejected("identifiers only, outside the imported namespace")
            if not matches:
                node.metadata.add_literal(self.config.title_prop, ids[0])

        if self._has_wrong_refs(node, namespace):
            raise InvalidReference("references to blank nodes or unresolved namespace URIs")
        self._mark_agent(node)
        if self.parent is not None:
            node.metadata.add_reference(self.config.parent_prop, canonical_id(self.parent, self.config))

        if len(matches) > 1:
            raise AmbiguousMatch(f"node {node.name} matches {len(matches)} objects", tuple(m.uri for m in matches))
        if matches:
            current = matches[0]
            merged = merge_metadata(current.metadata, node.metadata, preserve=[self.config.id_prop])
            obj = await self.session.update_metadata(current, merged, UpdateMode.UPDATE)
            self.logger.debug({"message": "node merged", "node": node.name, "uri": obj.uri}, pprint=True)
            created = False
        else:
            obj = await self.session.create_object(node.metadata)
            self.logger.debug({"message": "node created", "node": node.name, "uri": obj.uri}, pprint=True)
            created = True

        self.session.identity.register(
            canonical_id(obj, self.config), [node.name, *obj.identifiers(self.config)], obj.uri
        )
        return obj, created

    async def _find_matches(self, ids: list[str]) -> list[RepositoryObject]:
        uris: dict[str, None] = {}
        for identifier in ids:
            uri = self.session.identity.locate(identifier)
            if uri is not None:
                uris[uri] = None
        return [await self.session.get_object(uri) for uri in uris]
