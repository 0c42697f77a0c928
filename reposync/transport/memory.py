"""In-memory repository backend for testing and development.

`InMemoryRepository` implements `RepositoryTransport` with plain
dictionaries while reproducing the repository behaviours the engine has to
cope with:

- **Transactions**: `begin()` takes a snapshot of committed state; every
  write goes to the snapshot until `commit()` publishes it or `rollback()`
  discards it. Only one transaction may be open at a time.
- **Tombstones**: deleted objects answer `Deleted` rather than `NotFound`.
- **Server-side identity**: an object created without a canonical
  identifier gets one minted in `RepositoryConfig.id_namespace`; two live
  objects may never share an identifier (`AmbiguousMatch`), unless the
  check is disabled to model an inconsistent store.
- **Server-managed properties**: `created`/`lastModified` in the reserved
  namespace are maintained by the backend and may not be written.
- **Content digests**: uploading content sets `hash_prop` to `urn:sha1:...`.
- **Eventually consistent search index**: `find_by_value` and
  `query_property` only see committed state. An object created in the
  same transaction in which an object with an overlapping identifier was
  deleted is left out of the index at commit time, as happens when the
  index processes the delete event after the create event. Any later
  metadata write gets it indexed.

**Not recommended for production**: no persistence, no concurrency
control, O(n) uniqueness checks.
"""

import hashlib
import uuid
from datetime import datetime, timezone
from pathlib import Path

from rdflib import Literal, URIRef

from reposchema.config import RepositoryConfig
from reposchema.metadata import Metadata, Value
from reposync.exceptions import AmbiguousMatch, Deleted, NotFound, TransactionError
from reposync.transport.interfaces import Content, RepositoryTransport


class _Record:
    __slots__ = ("metadata", "content", "tombstone")

    def __init__(self, metadata: Metadata, content: bytes = b"", tombstone: bool = False) -> None:
        self.metadata = metadata
        self.content = content
        self.tombstone = tombstone

    def copy(self) -> "_Record":
        return _Record(self.metadata.copy(), self.content, self.tombstone)


def content_digest(content: bytes) -> str:
    """Digest in the `urn:sha1:<hex>` form stored under `hash_prop`."""
    return "urn:sha1:" + hashlib.sha1(content).hexdigest()


class InMemoryRepository(RepositoryTransport):
    """Dictionary-backed repository keyed by object URI.

    Example:
        ```python
        repo = InMemoryRepository(config)
        tx = await repo.begin()
        uri = await repo.create(meta, b"content")
        await repo.commit(tx)
        ```

    Attributes:
        keep_alive_calls: Number of successful `keep_alive` calls.
        commits: Number of successful commits.
    """

    def __init__(
        self,
        config: RepositoryConfig,
        base_url: str = "http://127.0.0.1/rest",
        unique_identifiers: bool = True,
    ) -> None:
        self.config = config
        self.base_url = base_url.rstrip("/")
        self.unique_identifiers = unique_identifiers
        self._committed: dict[str, _Record] = {}
        self._staged: dict[str, _Record] | None = None
        self._transaction: str | None = None
        self._index: dict[str, dict[Value, set[str]]] = {}
        self._indexed: dict[str, Metadata] = {}
        self._dirty: set[str] = set()
        self._created: set[str] = set()
        self._deleted_ids: set[str] = set()
        self.keep_alive_calls = 0
        self.commits = 0

    # transactions

    @property
    def transaction_id(self) -> str | None:
        return self._transaction

    async def begin(self) -> str:
        if self._transaction is not None:
            raise TransactionError(f"transaction {self._transaction} already open")
        self._transaction = f"{self.base_url}/tx:{uuid.uuid4()}"
        self._staged = {uri: record.copy() for uri, record in self._committed.items()}
        return self._transaction

    async def commit(self, transaction_id: str) -> None:
        self._check_transaction(transaction_id)
        assert self._staged is not None
        self._committed = self._staged
        self._reindex(self._dirty)
        self._reset_transaction()
        self.commits += 1

    async def rollback(self, transaction_id: str) -> None:
        self._check_transaction(transaction_id)
        self._reset_transaction()

    async def keep_alive(self, transaction_id: str) -> None:
        if transaction_id != self._transaction:
            raise Deleted(f"transaction {transaction_id} does not exist")
        self.keep_alive_calls += 1

    def _check_transaction(self, transaction_id: str) -> None:
        if self._transaction is None or transaction_id != self._transaction:
            raise TransactionError(f"transaction {transaction_id} is not open")

    def _reset_transaction(self) -> None:
        self._transaction = None
        self._staged = None
        self._dirty = set()
        self._created = set()
        self._deleted_ids = set()

    # object access

    @property
    def _store(self) -> dict[str, _Record]:
        return self._staged if self._staged is not None else self._committed

    def _live(self, uri: str) -> _Record:
        record = self._store.get(uri)
        if record is None:
            raise NotFound(f"no object at {uri}")
        if record.tombstone:
            raise Deleted(f"object at {uri} has been deleted")
        return record

    def _touch(self, uri: str) -> None:
        self._dirty.add(uri)
        if self._transaction is None:
            self._reindex({uri})
            self._dirty.clear()

    def _stamp(self, metadata: Metadata, created: bool) -> None:
        now = Literal(datetime.now(timezone.utc))
        reserved = self.config.reserved_namespace
        if created:
            metadata.add(reserved + "created", now)
        metadata.delete(reserved + "lastModified")
        metadata.add(reserved + "lastModified", now)

    def _reject_reserved(self, metadata: Metadata) -> None:
        for prop in metadata.properties():
            if self.config.is_reserved(prop):
                raise ValueError(f"server-managed property {prop} can not be written")

    def _check_unique(self, uri: str, metadata: Metadata) -> None:
        if not self.unique_identifiers:
            return
        identifiers = set(metadata.identifiers(self.config.id_prop))
        for other_uri, record in self._store.items():
            if other_uri == uri or record.tombstone:
                continue
            shared = identifiers.intersection(record.metadata.identifiers(self.config.id_prop))
            if shared:
                raise AmbiguousMatch(f"identifier {sorted(shared)[0]} already held by {other_uri}", (other_uri, uri))

    def _new_uri(self, path: str | None) -> str:
        if path is None or path == "" or path.endswith("/"):
            prefix = self.base_url if not path else f"{self.base_url}/{path.strip('/')}"
            return f"{prefix}/{uuid.uuid4().hex}"
        uri = path if path.startswith(self.base_url) else f"{self.base_url}/{path.strip('/')}"
        record = self._store.get(uri)
        if record is not None and record.tombstone:
            raise Deleted(f"tombstone resource at {uri}")
        if record is not None:
            raise AmbiguousMatch(f"object already exists at {uri}", (uri,))
        return uri

    @staticmethod
    def _read(content: Content) -> bytes:
        if isinstance(content, Path):
            return content.read_bytes()
        return bytes(content)

    def _set_content(self, record: _Record, content: Content) -> None:
        record.content = self._read(content)
        record.metadata.delete(self.config.hash_prop)
        record.metadata.add(self.config.hash_prop, URIRef(content_digest(record.content)))

    async def create(
        self,
        metadata: Metadata,
        content: Content | None = None,
        path: str | None = None,
    ) -> str:
        self._reject_reserved(metadata)
        uri = self._new_uri(path)
        stored = metadata.copy()
        if not any(self.config.is_canonical_id(i) for i in stored.identifiers(self.config.id_prop)):
            stored.add_reference(self.config.id_prop, f"{self.config.id_namespace}{uuid.uuid4()}")
        self._check_unique(uri, stored)
        self._stamp(stored, created=True)
        record = _Record(stored)
        if content is not None:
            self._set_content(record, content)
        self._store[uri] = record
        self._created.add(uri)
        self._touch(uri)
        return uri

    async def get_metadata(self, uri: str) -> Metadata:
        return self._live(uri).metadata.copy()

    async def patch_metadata(self, uri: str, delete: Metadata, insert: Metadata) -> None:
        self._reject_reserved(insert)
        record = self._live(uri)
        updated = record.metadata.copy()
        for prop, value in delete.triples():
            updated.delete(prop, value)
        updated.update(insert)
        self._check_unique(uri, updated)
        self._stamp(updated, created=False)
        record.metadata = updated
        self._touch(uri)

    async def set_content(self, uri: str, content: Content) -> None:
        record = self._live(uri)
        self._set_content(record, content)
        self._stamp(record.metadata, created=False)
        self._touch(uri)

    async def get_content(self, uri: str) -> bytes:
        return self._live(uri).content

    async def delete(self, uri: str) -> None:
        record = self._live(uri)
        record.tombstone = True
        self._deleted_ids.update(record.metadata.identifiers(self.config.id_prop))
        self._touch(uri)

    # search index

    def _reindex(self, uris: set[str]) -> None:
        for uri in uris:
            for prop, value in self._indexed.pop(uri, Metadata()).triples():
                holders = self._index.get(prop, {}).get(value)
                if holders is not None:
                    holders.discard(uri)
            record = self._committed.get(uri)
            if record is None or record.tombstone or self._recreated(uri, record):
                continue
            for prop, value in record.metadata.triples():
                self._index.setdefault(prop, {}).setdefault(value, set()).add(uri)
            self._indexed[uri] = record.metadata.copy()

    def _recreated(self, uri: str, record: _Record) -> bool:
        if uri not in self._created:
            return False
        return bool(self._deleted_ids.intersection(record.metadata.identifiers(self.config.id_prop)))

    async def find_by_value(self, prop: str, value: Value) -> list[str]:
        return sorted(self._index.get(prop, {}).get(value, ()))

    async def query_property(self, prop: str) -> list[tuple[str, Value]]:
        rows = [(uri, value) for value, holders in self._index.get(prop, {}).items() for uri in holders]
        return sorted(rows, key=lambda row: (row[0], str(row[1])))

    # introspection helpers for tests and debugging

    def live_uris(self) -> list[str]:
        """URIs of committed, non-deleted objects."""
        return sorted(uri for uri, record in self._committed.items() if not record.tombstone)

    def is_indexed(self, uri: str) -> bool:
        return uri in self._indexed
