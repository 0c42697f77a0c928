"""Tests for the in-memory repository backend and the retrying transport."""

import pytest
from rdflib import Literal, URIRef

from reposchema.metadata import Metadata
from reposync.exceptions import AmbiguousMatch, Deleted, NotFound, TransactionError, TransientTransport
from reposync.transport.memory import InMemoryRepository, content_digest
from reposync.transport.retry import RetryConfig, RetryingTransport

RESERVED = "http://fedora.info/definitions/v4/repository#"


class TestInMemoryRepository:
    """Repository behaviours the engine relies on."""

    async def test_create_mints_canonical_id(self, repo, config, make_metadata):
        uri = await repo.create(make_metadata(["https://example.org/a"], "A"))

        meta = await repo.get_metadata(uri)
        canonical = [i for i in meta.identifiers(config.id_prop) if config.is_canonical_id(i)]

        assert len(canonical) == 1
        assert meta.has(RESERVED + "created")

    async def test_create_keeps_given_canonical_id(self, repo, config, make_metadata):
        uri = await repo.create(make_metadata(["https://id.example.org/fixed"]))

        meta = await repo.get_metadata(uri)

        assert meta.identifiers(config.id_prop) == ["https://id.example.org/fixed"]

    async def test_reserved_properties_can_not_be_written(self, repo):
        meta = Metadata([(RESERVED + "created", Literal("2020"))])

        with pytest.raises(ValueError):
            await repo.create(meta)

    async def test_identifiers_are_unique(self, repo, make_metadata):
        await repo.create(make_metadata(["https://example.org/a"]))

        with pytest.raises(AmbiguousMatch):
            await repo.create(make_metadata(["https://example.org/a"]))

    async def test_uniqueness_check_can_be_disabled(self, config, make_metadata):
        repo = InMemoryRepository(config, unique_identifiers=False)

        await repo.create(make_metadata(["https://example.org/a"]))
        await repo.create(make_metadata(["https://example.org/a"]))

        assert len(await repo.find_by_value(config.id_prop, URIRef("https://example.org/a"))) == 2

    async def test_deleted_object_is_tombstoned(self, repo, make_metadata):
        uri = await repo.create(make_metadata(["https://example.org/a"]))

        await repo.delete(uri)

        with pytest.raises(Deleted):
            await repo.get_metadata(uri)
        with pytest.raises(NotFound):
            await repo.get_metadata(uri + "-missing")

    async def test_create_at_tombstone_path_fails(self, repo, make_metadata):
        uri = await repo.create(make_metadata(["https://example.org/a"]), path="objects/a")
        await repo.delete(uri)

        with pytest.raises(Deleted):
            await repo.create(make_metadata(["https://example.org/b"]), path="objects/a")

    async def test_content_digest(self, repo, config, make_metadata, tmp_path):
        data = tmp_path / "data.bin"
        data.write_bytes(b"payload")

        uri = await repo.create(make_metadata(["https://example.org/a"]), data)

        meta = await repo.get_metadata(uri)
        assert meta.references(config.hash_prop) == [content_digest(b"payload")]
        assert await repo.get_content(uri) == b"payload"

    async def test_index_reflects_committed_state_only(self, repo, config, make_metadata):
        """Objects created in a transaction are invisible to search until commit."""
        tx = await repo.begin()
        uri = await repo.create(make_metadata(["https://example.org/a"]))

        assert await repo.find_by_value(config.id_prop, URIRef("https://example.org/a")) == []
        assert await repo.get_metadata(uri)

        await repo.commit(tx)
        assert await repo.find_by_value(config.id_prop, URIRef("https://example.org/a")) == [uri]

    async def test_rollback_discards_changes(self, repo, make_metadata):
        tx = await repo.begin()
        uri = await repo.create(make_metadata(["https://example.org/a"]))
        await repo.rollback(tx)

        with pytest.raises(NotFound):
            await repo.get_metadata(uri)
        assert repo.live_uris() == []

    async def test_recreated_object_is_not_indexed(self, repo, config, make_metadata):
        """Delete and recreate in one transaction leaves the index blind to the new object."""
        old = await repo.create(make_metadata(["https://example.org/a"]))

        tx = await repo.begin()
        await repo.delete(old)
        new = await repo.create(make_metadata(["https://example.org/a"]))
        await repo.commit(tx)

        assert await repo.find_by_value(config.id_prop, URIRef("https://example.org/a")) == []
        assert not repo.is_indexed(new)

        meta = await repo.get_metadata(new)
        await repo.patch_metadata(new, meta.copy(skip=[RESERVED + "created", RESERVED + "lastModified"]), Metadata())
        assert repo.is_indexed(new)

    async def test_single_transaction(self, repo):
        await repo.begin()

        with pytest.raises(TransactionError):
            await repo.begin()

    async def test_keep_alive(self, repo):
        tx = await repo.begin()

        await repo.keep_alive(tx)
        assert repo.keep_alive_calls == 1

        await repo.commit(tx)
        with pytest.raises(Deleted):
            await repo.keep_alive(tx)

    async def test_query_property(self, repo, config, make_metadata):
        uri = await repo.create(make_metadata(["https://example.org/a"]))

        rows = await repo.query_property(config.id_prop)

        assert (uri, URIRef("https://example.org/a")) in rows
        assert len(rows) == 2


class TestRetryingTransport:
    """Bounded retry at the transport boundary."""

    async def test_transient_failures_are_retried(self, flaky, make_metadata):
        inner = flaky("get_metadata", failures=2)
        uri = await inner.create(make_metadata(["https://example.org/a"]))
        transport = RetryingTransport(inner, RetryConfig(max_attempts=3, backoff=0))

        meta = await transport.get_metadata(uri)

        assert meta
        assert inner.calls == 3

    async def test_exhausted_retries_surface_the_error(self, flaky, make_metadata):
        inner = flaky("get_metadata", failures=5)
        uri = await inner.create(make_metadata(["https://example.org/a"]))
        transport = RetryingTransport(inner, RetryConfig(max_attempts=2, backoff=0))

        with pytest.raises(TransientTransport):
            await transport.get_metadata(uri)
        assert inner.calls == 2

    async def test_commit_is_never_retried(self, flaky):
        inner = flaky("commit", failures=1)
        transport = RetryingTransport(inner, RetryConfig(max_attempts=5, backoff=0))
        tx = await transport.begin()

        with pytest.raises(TransientTransport):
            await transport.commit(tx)
        assert inner.calls == 1

    async def test_other_errors_are_not_retried(self, flaky):
        inner = flaky("get_metadata", failures=0)
        transport = RetryingTransport(inner, RetryConfig(max_attempts=3, backoff=0))

        with pytest.raises(NotFound):
            await transport.get_metadata("http://127.0.0.1/rest/missing")
        assert inner.calls == 1
