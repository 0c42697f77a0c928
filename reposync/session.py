"""Repository session: transactions, object access and identifier resolution.

A `RepositorySession` owns at most one open transaction, the identity cache
used by importers and indexers, and the keep-alive task renewing the
transaction while work is in progress.

Typical use:

    ```python
    async with RepositorySession(transport, config) as session:
        async with session.transaction():
            obj = await session.create_object(meta)
            ...
    ```

Besides plain begin/commit/rollback the session handles two repository
quirks:

- **Delete-then-recreate**: when an object is deleted and another one with
  an overlapping identifier is created in the same transaction, the search
  index misses the new object. The session remembers such objects and,
  right after commit, rewrites their metadata unchanged in a separate
  transaction so that they get indexed.
- **Stale search index**: `find_by_value` reflects committed state only.
  Identifier lookups therefore re-verify every candidate against live
  storage; persistent ambiguity is handled according to
  `SessionSettings.ambiguity_policy`.

Autocommit: with `SessionSettings.autocommit = N`, callers invoke
`maybe_autocommit()` between logical operations and the session commits and
reopens the transaction once N distinct objects have been touched. Inside
`atomic()` autocommit is suspended so that a multi-object operation never
spans two transactions.
"""

import asyncio
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator, Iterable

from pydantic import BaseModel, Field
from rdflib import BNode, URIRef

from reposchema import resolution
from reposchema.config import RepositoryConfig
from reposchema.metadata import Metadata
from reposchema.objects import RepositoryObject
from reposchema.resolution import Resolution
from reposync.exceptions import (
    AmbiguousMatch,
    InvalidReference,
    NotFound,
    RepoSyncError,
    TransactionError,
)
from reposync.identity import IdentityCache
from reposync.keepalive import TransactionKeepAlive
from reposync.logging import setup_logging
from reposync.merge import UpdateMode, compute_patch
from reposync.transport.interfaces import Content, RepositoryTransport
from reposync.uri_norm import UriNormalizer


class AmbiguityPolicy(str, Enum):
    """What to do when several verified objects match a set of identifiers."""

    FAIL = "fail"
    RETRY = "retry"


class SessionSettings(BaseModel):
    """Session behaviour settings.

    Attributes:
        keep_alive_interval: Seconds between transaction renewals.
        autocommit: Commit and reopen the transaction every this many
            touched objects (0 disables autocommit).
        ambiguity_policy: `FAIL` reports an ambiguous match at once;
            `RETRY` re-queries the search index, giving it time to catch up.
        ambiguity_retries: Re-queries made under the `RETRY` policy.
        ambiguity_retry_delay: Seconds to wait before each re-query.
    """

    model_config = {"frozen": True}

    keep_alive_interval: float = Field(default=90.0, gt=0)
    autocommit: int = Field(default=0, ge=0)
    ambiguity_policy: AmbiguityPolicy = AmbiguityPolicy.FAIL
    ambiguity_retries: int = Field(default=3, ge=0)
    ambiguity_retry_delay: float = Field(default=1.0, ge=0)


class RepositorySession:
    """Transactional access to the repository with identity resolution."""

    def __init__(
        self,
        transport: RepositoryTransport,
        config: RepositoryConfig,
        settings: SessionSettings | None = None,
    ) -> None:
        self.transport = transport
        self.config = config
        self.settings = settings or SessionSettings()
        self.identity = IdentityCache(config)
        self.normalizer = UriNormalizer(config.uri_norm_rules)
        self.logger = setup_logging()
        self._transaction: str | None = None
        self._keep_alive: TransactionKeepAlive | None = None
        self._deleted_ids: set[str] = set()
        self._recreated: set[str] = set()
        self._touched: set[str] = set()
        self._atomic_depth = 0

    # transactions

    @property
    def transaction_id(self) -> str | None:
        return self._transaction

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None

    def _require_transaction(self) -> str:
        if self._transaction is None:
            raise TransactionError("no transaction is open")
        return self._transaction

    async def begin(self) -> str:
        if self._transaction is not None:
            raise TransactionError(f"transaction {self._transaction} already open")
        self._transaction = await self.transport.begin()
        self._keep_alive = TransactionKeepAlive(self.transport, self._transaction, self.settings.keep_alive_interval)
        self._keep_alive.start()
        self.logger.debug({"message": "transaction started", "transaction": self._transaction}, pprint=True)
        return self._transaction

    async def _stop_keep_alive(self) -> None:
        keep_alive, self._keep_alive = self._keep_alive, None
        if keep_alive is not None:
            await keep_alive.stop()

    def _end_transaction(self) -> set[str]:
        recreated = self._recreated
        self._transaction = None
        self._deleted_ids = set()
        self._recreated = set()
        self._touched = set()
        self.identity.invalidate()
        return recreated

    async def commit(self) -> None:
        """Commit the open transaction.

        A failed commit is reported as `TransactionError` and never retried;
        the backend transaction is rolled back as far as possible and the
        session is left without a transaction and with an empty identity cache.
        """
        transaction = self._require_transaction()
        await self._stop_keep_alive()
        try:
            await self.transport.commit(transaction)
        except RepoSyncError as e:
            self._end_transaction()
            await self._release(transaction)
            raise TransactionError(f"commit of {transaction} failed: {e}") from e
        recreated = self._end_transaction()
        self.logger.info({"message": "transaction committed", "transaction": transaction}, pprint=True)
        if recreated:
            await self._reindex(recreated)

    async def _release(self, transaction: str) -> None:
        try:
            await self.transport.rollback(transaction)
        except RepoSyncError as e:
            self.logger.warning(
                {"message": "rollback after failed commit failed", "transaction": transaction, "error": str(e)},
                pprint=True,
            )

    async def rollback(self) -> None:
        transaction = self._require_transaction()
        await self._stop_keep_alive()
        try:
            await self.transport.rollback(transaction)
        finally:
            self._end_transaction()
        self.logger.info({"message": "transaction rolled back", "transaction": transaction}, pprint=True)

    async def close(self) -> None:
        """Roll back any open transaction and stop background work."""
        if self._transaction is not None:
            await self.rollback()
        await self._stop_keep_alive()

    async def _reindex(self, uris: Iterable[str]) -> None:
        transaction = await self.transport.begin()
        try:
            for uri in sorted(uris):
                meta = (await self.transport.get_metadata(uri)).filter(lambda p, v: not self.config.is_reserved(p))
                await self.transport.patch_metadata(uri, meta, meta)
                self.logger.debug({"message": "forced reindex of recreated object", "uri": uri}, pprint=True)
        except BaseException:
            await self.transport.rollback(transaction)
            raise
        await self.transport.commit(transaction)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["RepositorySession"]:
        """Run the block in a transaction, committing on success.

        Any exception rolls the transaction back and propagates.
        """
        await self.begin()
        try:
            yield self
        except BaseException:
            if self.in_transaction:
                await self.rollback()
            raise
        if self.in_transaction:
            await self.commit()

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator["RepositorySession"]:
        """Suspend autocommit for the duration of the block."""
        self._atomic_depth += 1
        try:
            yield self
        finally:
            self._atomic_depth -= 1

    async def maybe_autocommit(self) -> bool:
        """Commit and reopen the transaction if the autocommit batch is full."""
        limit = self.settings.autocommit
        if limit <= 0 or self._atomic_depth > 0 or self._transaction is None:
            return False
        if len(self._touched) < limit:
            return False
        self.logger.info({"message": "autocommit", "objects": len(self._touched)}, pprint=True)
        await self.commit()
        await self.begin()
        return True

    async def __aenter__(self) -> "RepositorySession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # object access

    def _prepare(self, metadata: Metadata) -> Metadata:
        meta = metadata.filter(lambda p, v: not self.config.is_reserved(p))
        self.normalizer.standardize_metadata(meta, self.config.id_prop)
        for prop, value in meta.triples():
            if isinstance(value, BNode):
                raise InvalidReference(f"property {prop} references blank node {value.n3()}")
        return meta

    async def get_object(self, uri: str) -> RepositoryObject:
        return RepositoryObject(uri=uri, metadata=await self.transport.get_metadata(uri))

    async def create_object(
        self,
        metadata: Metadata,
        content: Content | None = None,
        path: str | None = None,
    ) -> RepositoryObject:
        """Create an object and register it in the identity cache.

        Server-managed properties are dropped and identifiers normalised.
        The repository mints the canonical id when `metadata` has none.
        """
        meta = self._prepare(metadata)
        uri = await self.transport.create(meta, content, path)
        obj = await self.get_object(uri)
        if self._deleted_ids.intersection(meta.identifiers(self.config.id_prop)):
            self._recreated.add(uri)
        self.identity.register_object(obj)
        self._touched.add(uri)
        self.logger.debug({"message": "object created", "uri": uri, "upload": content is not None}, pprint=True)
        return obj

    async def update_metadata(
        self,
        obj: RepositoryObject,
        metadata: Metadata,
        mode: UpdateMode | str = UpdateMode.UPDATE,
        protected: Iterable[str] | None = None,
    ) -> RepositoryObject:
        """Write `metadata` over the `obj` snapshot according to `mode`.

        `protected` defaults to the identifier property.
        """
        protected = (self.config.id_prop,) if protected is None else tuple(protected)
        patch = compute_patch(obj.metadata, self._prepare(metadata), mode, protected, self.config.is_reserved)
        if patch.is_empty:
            self.logger.debug({"message": "metadata unchanged", "uri": obj.uri}, pprint=True)
            return obj
        await self.transport.patch_metadata(obj.uri, patch.delete, patch.insert)
        updated = await self.get_object(obj.uri)
        self.identity.register_object(updated)
        self._touched.add(obj.uri)
        self.logger.debug(
            {"message": "metadata updated", "uri": obj.uri, "mode": UpdateMode(mode).value, "deleted": len(patch.delete), "inserted": len(patch.insert)},
            pprint=True,
        )
        return updated

    async def update_content(self, obj: RepositoryObject, content: Content) -> RepositoryObject:
        await self.transport.set_content(obj.uri, content)
        self._touched.add(obj.uri)
        return await self.get_object(obj.uri)

    async def delete_object(self, obj: RepositoryObject) -> None:
        await self.transport.delete(obj.uri)
        self._deleted_ids.update(obj.identifiers(self.config))
        self.identity.forget(obj.uri)
        self._touched.add(obj.uri)
        self.logger.debug({"message": "object deleted", "uri": obj.uri}, pprint=True)

    # identifier resolution

    async def lookup_identifier(self, identifier: str) -> list[RepositoryObject]:
        """Objects currently holding `identifier`, verified against storage.

        Candidates come from the search index and from the identity cache;
        deleted objects and objects that no longer hold the identifier are
        dropped.
        """
        identifier = self.normalizer.standardize(identifier)
        value = URIRef(identifier)
        candidates = set(await self.transport.find_by_value(self.config.id_prop, value))
        cached = self.identity.locate(identifier)
        if cached is not None:
            candidates.add(cached)
        verified = []
        for uri in sorted(candidates):
            try:
                meta = await self.transport.get_metadata(uri)
            except NotFound:
                continue
            if meta.has(self.config.id_prop, value):
                verified.append(RepositoryObject(uri=uri, metadata=meta))
        return verified

    async def _match(self, identifiers: Iterable[str]) -> dict[str, RepositoryObject]:
        matches: dict[str, RepositoryObject] = {}
        for identifier in identifiers:
            for obj in await self.lookup_identifier(identifier):
                matches.setdefault(obj.uri, obj)
        return matches

    async def resolve_identifiers(self, identifiers: Iterable[str]) -> Resolution:
        """Find the object holding any of `identifiers`.

        Returns `Found`, `NotFound` or `Ambiguous`; never raises for a
        missing or ambiguous match.
        """
        ids = tuple(dict.fromkeys(identifiers))
        attempts = 1
        if self.settings.ambiguity_policy is AmbiguityPolicy.RETRY:
            attempts += self.settings.ambiguity_retries
        for attempt in range(attempts):
            matches = await self._match(ids)
            if not matches:
                return resolution.NotFound(identifiers=ids)
            if len(matches) == 1:
                return resolution.Found(obj=next(iter(matches.values())))
            if attempt + 1 < attempts:
                self.logger.warning(
                    {"message": "ambiguous match, retrying", "identifiers": ids, "candidates": sorted(matches), "attempt": attempt + 1},
                    pprint=True,
                )
                await asyncio.sleep(self.settings.ambiguity_retry_delay)
        return resolution.Ambiguous(identifiers=ids, candidates=tuple(matches[uri] for uri in sorted(matches)))

    async def find_by_identifiers(self, identifiers: Iterable[str]) -> RepositoryObject:
        """Like `resolve_identifiers` but raising `NotFound` / `AmbiguousMatch`."""
        match await self.resolve_identifiers(identifiers):
            case resolution.Found(obj=obj):
                return obj
            case resolution.Ambiguous(identifiers=ids, candidates=candidates):
                raise AmbiguousMatch(
                    f"{len(candidates)} objects match {', '.join(ids)}",
                    tuple(c.uri for c in candidates),
                )
            case resolution.NotFound(identifiers=ids):
                raise NotFound(f"no object matches {', '.join(ids)}")
        raise AssertionError("unreachable")
