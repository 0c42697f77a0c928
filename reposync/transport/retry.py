"""Bounded retry of transient transport failures.

`RetryingTransport` wraps any `RepositoryTransport` and re-issues calls that
fail with `TransientTransport`, sleeping `backoff * attempt` seconds between
attempts. Once `max_attempts` is exhausted the last error surfaces to the
caller. `commit()` is never retried: after a failed commit the caller has to
re-resolve identity state before replaying the batch.
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

from pydantic import BaseModel, Field

from reposchema.metadata import Metadata, Value
from reposync.exceptions import TransientTransport
from reposync.logging import setup_logging
from reposync.transport.interfaces import Content, RepositoryTransport

T = TypeVar("T")


class RetryConfig(BaseModel):
    """Retry policy applied at the transport boundary."""

    model_config = {"frozen": True}

    max_attempts: int = Field(default=3, ge=1, description="Total attempts per call, including the first.")
    backoff: float = Field(default=0.5, ge=0.0, description="Base delay in seconds, multiplied by the attempt number.")


class RetryingTransport(RepositoryTransport):
    """Transport wrapper retrying calls that fail with `TransientTransport`."""

    def __init__(self, inner: RepositoryTransport, config: RetryConfig | None = None) -> None:
        self.inner = inner
        self.config = config or RetryConfig()
        self.logger = setup_logging()

    async def _call(self, name: str, func: Callable[[], Awaitable[T]]) -> T:
        for attempt in range(self.config.max_attempts):
            try:
                return await func()
            except TransientTransport as e:
                if attempt + 1 >= self.config.max_attempts:
                    raise
                delay = self.config.backoff * (attempt + 1)
                self.logger.warning(
                    {"message": "transient transport failure, retrying", "call": name, "attempt": attempt + 1, "delay": delay, "error": str(e)},
                    pprint=True,
                )
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    async def begin(self) -> str:
        return await self._call("begin", self.inner.begin)

    async def commit(self, transaction_id: str) -> None:
        await self.inner.commit(transaction_id)

    async def rollback(self, transaction_id: str) -> None:
        await self._call("rollback", lambda: self.inner.rollback(transaction_id))

    async def keep_alive(self, transaction_id: str) -> None:
        await self._call("keep_alive", lambda: self.inner.keep_alive(transaction_id))

    async def create(self, metadata: Metadata, content: Content | None = None, path: str | None = None) -> str:
        return await self._call("create", lambda: self.inner.create(metadata, content, path))

    async def get_metadata(self, uri: str) -> Metadata:
        return await self._call("get_metadata", lambda: self.inner.get_metadata(uri))

    async def patch_metadata(self, uri: str, delete: Metadata, insert: Metadata) -> None:
        await self._call("patch_metadata", lambda: self.inner.patch_metadata(uri, delete, insert))

    async def set_content(self, uri: str, content: Content) -> None:
        await self._call("set_content", lambda: self.inner.set_content(uri, content))

    async def get_content(self, uri: str) -> bytes:
        return await self._call("get_content", lambda: self.inner.get_content(uri))

    async def delete(self, uri: str) -> None:
        await self._call("delete", lambda: self.inner.delete(uri))

    async def find_by_value(self, prop: str, value: Value) -> list[str]:
        return await self._call("find_by_value", lambda: self.inner.find_by_value(prop, value))

    async def query_property(self, prop: str) -> list[tuple[str, Value]]:
        return await self._call("query_property", lambda: self.inner.query_property(prop))
