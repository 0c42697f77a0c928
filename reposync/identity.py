"""Session-scoped identity cache.

The cache maps external identifiers onto canonical repository identities
for the objects a session works with. It is populated in bulk from the
repository's search index (`build`) and then augmented one identifier at a
time with verified lookups (`verify`) and with every object the session
creates or updates (`register_object`).

Entries are either a canonical id or the `UNRESOLVED` marker, meaning the
identifier has been looked up and no object holds it (yet). Graph node keys
(subject URIs and blank node labels) can be registered like identifiers so
that references between nodes of the same graph resolve.

Contradictory mappings (an identifier bound to two canonical ids, one object
exposing two canonical ids) never get silently resolved; they signal an
inconsistent repository and raise `CacheInconsistent`.

The cache belongs to exactly one `RepositorySession` and is invalidated on
every commit and rollback. Within a transaction `build` only adds the
stored (committed) bindings: objects written or verified in the open
transaction keep the bindings the session registered for them, and objects
deleted in it stay forgotten.
"""

from collections import defaultdict
from typing import TYPE_CHECKING, Iterable

from reposchema.config import RepositoryConfig
from reposchema.objects import RepositoryObject
from reposync.exceptions import CacheInconsistent, ManyCanonicalIds, NoCanonicalId
from reposync.logging import setup_logging

if TYPE_CHECKING:
    from reposync.session import RepositorySession


class _Unresolved:
    def __repr__(self) -> str:
        return "UNRESOLVED"

    def __bool__(self) -> bool:
        return False


UNRESOLVED = _Unresolved()


def canonical_id(obj: RepositoryObject, config: RepositoryConfig) -> str:
    """Return the single canonical identifier of `obj`.

    Raises:
        NoCanonicalId: if the object has none.
        ManyCanonicalIds: if the object has more than one.
    """
    ids = obj.canonical_ids(config)
    if not ids:
        raise NoCanonicalId(f"object {obj.uri} has no canonical identifier")
    if len(ids) > 1:
        raise ManyCanonicalIds(f"object {obj.uri} has {len(ids)} canonical identifiers: {', '.join(ids)}")
    return ids[0]


class IdentityCache:
    """Identifier → canonical id → object URI bindings for one session.

    Note: not safe for use by more than one import or index operation at a
    time.
    """

    def __init__(self, config: RepositoryConfig) -> None:
        self.config = config
        self.logger = setup_logging()
        self._canonical: dict[str, str | _Unresolved] = {}
        self._uris: dict[str, str] = {}
        self._by_uri: dict[str, str] = {}
        self._pinned: set[str] = set()
        self.stale = True
        self._hits = 0
        self._misses = 0

    # lookups

    def resolve(self, identifier: str) -> str | _Unresolved:
        """Canonical id bound to `identifier`, or `UNRESOLVED`."""
        found = self._canonical.get(identifier, UNRESOLVED)
        if found is UNRESOLVED:
            self._misses += 1
        else:
            self._hits += 1
        return found

    def locate(self, identifier: str) -> str | None:
        """URI of the object holding `identifier`, if known."""
        found = self.resolve(identifier)
        if found is UNRESOLVED:
            return None
        return self._uris.get(found)  # type: ignore[arg-type]

    def is_known(self, identifier: str) -> bool:
        """True if `identifier` has been resolved or looked up without a match."""
        return identifier in self._canonical

    # registration

    def register(self, canonical: str, identifiers: Iterable[str], uri: str | None = None) -> None:
        """Bind every identifier (and the canonical id itself) to `canonical`.

        Raises:
            CacheInconsistent: if an identifier is already bound to another
                canonical id, or `uri` already exposes another canonical id.
        """
        if uri is not None:
            known_uri = self._uris.get(canonical)
            if known_uri is not None and known_uri != uri:
                raise CacheInconsistent(f"canonical id {canonical} held by both {known_uri} and {uri}")
            known_canonical = self._by_uri.get(uri)
            if known_canonical is not None and known_canonical != canonical:
                raise ManyCanonicalIds(f"object {uri} exposes both {known_canonical} and {canonical}")
        for identifier in [canonical, *identifiers]:
            bound = self._canonical.get(identifier, UNRESOLVED)
            if bound is not UNRESOLVED and bound != canonical:
                raise CacheInconsistent(f"identifier {identifier} bound to both {bound} and {canonical}")
            self._canonical[identifier] = canonical
        if uri is not None:
            self._uris[canonical] = uri
            self._by_uri[uri] = canonical

    def register_object(self, obj: RepositoryObject) -> str:
        """Replace the bindings of `obj` with its current identifiers."""
        canonical = canonical_id(obj, self.config)
        self.forget(obj.uri)
        self.register(canonical, obj.identifiers(self.config), obj.uri)
        return canonical

    def forget(self, uri: str) -> None:
        """Drop every binding leading to the object at `uri`."""
        self._pinned.add(uri)
        canonical = self._by_uri.pop(uri, None)
        if canonical is None:
            return
        self._uris.pop(canonical, None)
        for identifier in [i for i, c in self._canonical.items() if c == canonical]:
            del self._canonical[identifier]

    def mark_unresolved(self, identifier: str) -> None:
        if identifier not in self._canonical:
            self._canonical[identifier] = UNRESOLVED

    # bulk population

    async def build(self, session: "RepositorySession") -> None:
        """Populate the cache from every stored identifier triple.

        Stored rows reflect committed state only. Bindings of objects the
        session wrote or verified since the last invalidation are kept and
        take precedence over the rows for the same objects and identifiers.

        Raises:
            CacheInconsistent: if the stored identifiers contradict each
                other.
        """
        kept = {
            uri: (canonical, [i for i, c in self._canonical.items() if c == canonical])
            for uri, canonical in self._by_uri.items()
            if uri in self._pinned
        }
        pinned = self._pinned
        self.invalidate()
        self._pinned = pinned
        for uri, (canonical, ids) in kept.items():
            self.register(canonical, ids, uri)
        claimed = set(self._canonical)
        rows = await session.transport.query_property(self.config.id_prop)
        ids_by_uri: dict[str, list[str]] = defaultdict(list)
        for uri, value in rows:
            if uri not in pinned:
                ids_by_uri[uri].append(str(value))
        for uri, ids in ids_by_uri.items():
            canonical = [i for i in ids if self.config.is_canonical_id(i)]
            if len(canonical) > 1:
                raise ManyCanonicalIds(f"object {uri} exposes {len(canonical)} canonical identifiers")
            if not canonical:
                self.logger.warning({"message": "object without canonical identifier ignored", "uri": uri}, pprint=True)
                continue
            self.register(canonical[0], [i for i in ids if i not in claimed], uri)
        self.stale = False
        self.logger.debug({"message": "identity cache built", "objects": len(self._uris)}, pprint=True)

    async def reload(self, session: "RepositorySession") -> None:
        """Discard every binding and build from storage alone."""
        self.invalidate()
        await self.build(session)

    async def verify(self, session: "RepositorySession", identifier: str) -> str | _Unresolved:
        """Verified lookup of a single identifier against live storage.

        Raises:
            CacheInconsistent: if more than one object holds the identifier.
        """
        matches = await session.lookup_identifier(identifier)
        if len(matches) > 1:
            raise CacheInconsistent(
                f"identifier {identifier} held by {len(matches)} objects: {', '.join(m.uri for m in matches)}"
            )
        if not matches:
            self.mark_unresolved(identifier)
            return UNRESOLVED
        return self.register_object(matches[0])

    # lifecycle

    def invalidate(self) -> None:
        self._canonical.clear()
        self._uris.clear()
        self._by_uri.clear()
        self._pinned = set()
        self.stale = True

    def get_metrics(self) -> dict[str, int]:
        return {
            "hits": self._hits,
            "misses": self._misses,
            "unresolved": sum(1 for c in self._canonical.values() if c is UNRESOLVED),
            "objects": len(self._uris),
            "total_entries": len(self._canonical),
        }

    def __len__(self) -> int:
        return len(self._canonical)
