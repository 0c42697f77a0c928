"""Test fixtures and helpers.

This module provides:
- A `RepositoryConfig` with example.org vocabulary used by every test
- An `InMemoryRepository` backend and a `RepositorySession` on top of it
- Factory fixtures for metadata and for objects committed to the repository
- A `FlakyTransport` wrapper failing a configurable number of calls, for
  retry tests

Identifiers in the external namespace look like `https://example.org/...`;
canonical identifiers minted by the repository live in
`https://id.example.org/`.
"""

from typing import Iterable

import pytest

from reposchema.config import RepositoryConfig
from reposchema.metadata import Metadata
from reposchema.objects import RepositoryObject
from reposync.exceptions import TransientTransport
from reposync.session import RepositorySession
from reposync.transport.memory import InMemoryRepository

EX = "https://example.org/"
VOCAB = "https://vocabs.example.org/"
ID_NAMESPACE = "https://id.example.org/"

ID_PROP = VOCAB + "hasIdentifier"
TITLE_PROP = VOCAB + "hasTitle"
PARENT_PROP = VOCAB + "isPartOf"
REF_PROP = VOCAB + "relation"


def build_metadata(
    identifiers: Iterable[str] = (),
    title: str | None = None,
    **literals: str,
) -> Metadata:
    """Metadata with the given identifiers, optional title and extra literals.

    Extra literal keyword names are appended to the vocabulary namespace.
    """
    meta = Metadata()
    for identifier in identifiers:
        meta.add_reference(ID_PROP, identifier)
    if title is not None:
        meta.add_literal(TITLE_PROP, title)
    for name, value in literals.items():
        meta.add_literal(VOCAB + name, value)
    return meta


class FlakyTransport(InMemoryRepository):
    """In-memory repository failing the first `failures` calls of one method."""

    def __init__(self, config: RepositoryConfig, method: str, failures: int) -> None:
        super().__init__(config)
        self.method = method
        self.failures = failures
        self.calls = 0

    def _maybe_fail(self, method: str) -> None:
        if method != self.method:
            return
        self.calls += 1
        if self.calls <= self.failures:
            raise TransientTransport(f"{method} failed (call {self.calls})")

    async def get_metadata(self, uri: str) -> Metadata:
        self._maybe_fail("get_metadata")
        return await super().get_metadata(uri)

    async def commit(self, transaction_id: str) -> None:
        self._maybe_fail("commit")
        await super().commit(transaction_id)

    async def keep_alive(self, transaction_id: str) -> None:
        self._maybe_fail("keep_alive")
        await super().keep_alive(transaction_id)


@pytest.fixture
def config() -> RepositoryConfig:
    """Provide the repository vocabulary used throughout the tests."""
    return RepositoryConfig(
        id_prop=ID_PROP,
        id_namespace=ID_NAMESPACE,
        title_prop=TITLE_PROP,
        parent_prop=PARENT_PROP,
    )


@pytest.fixture
def repo(config: RepositoryConfig) -> InMemoryRepository:
    """Provide a fresh, empty in-memory repository."""
    return InMemoryRepository(config)


@pytest.fixture
async def session(repo: InMemoryRepository, config: RepositoryConfig):
    """Provide a session on the in-memory repository, closed after the test."""
    session = RepositorySession(repo, config)
    yield session
    await session.close()


@pytest.fixture
def make_metadata():
    """Provide the `build_metadata` factory."""
    return build_metadata


@pytest.fixture
def seed(session: RepositorySession):
    """Provide a factory creating and committing an object.

    Returns the object as stored after the commit.
    """

    async def _seed(*identifiers: str, title: str | None = "seeded", **literals: str) -> RepositoryObject:
        async with session.transaction():
            obj = await session.create_object(build_metadata(identifiers, title, **literals))
        return await session.get_object(obj.uri)

    return _seed


@pytest.fixture
def flaky(config: RepositoryConfig):
    """Provide a factory for `FlakyTransport` instances."""

    def _flaky(method: str, failures: int) -> FlakyTransport:
        return FlakyTransport(config, method, failures)

    return _flaky
