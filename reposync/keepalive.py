"""Background renewal of a repository transaction.

Repository transactions expire server-side after a period of inactivity.
`TransactionKeepAlive` pings the transaction every `interval` seconds from
an `asyncio.Task` while the session does its work. The task holds only the
transport and the transaction id; it never reads or writes session state.

`stop()` signals the task through an `asyncio.Event` and awaits it, so no
renewal is left running once the session ends its transaction. Any other
repository error ends the renewal; it is logged and never reaches `stop()`.
"""

import asyncio

from reposync.exceptions import Deleted, RepoSyncError, TransientTransport
from reposync.logging import setup_logging
from reposync.transport.interfaces import RepositoryTransport


class TransactionKeepAlive:
    """Periodic `keep_alive` calls for one open transaction."""

    def __init__(self, transport: RepositoryTransport, transaction_id: str, interval: float) -> None:
        if interval <= 0:
            raise ValueError("keep-alive interval must be positive")
        self.transport = transport
        self.transaction_id = transaction_id
        self.interval = interval
        self.pings = 0
        self.logger = setup_logging()
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("keep-alive already started")
        self._task = asyncio.create_task(self._run(), name=f"keep-alive {self.transaction_id}")

    async def stop(self) -> None:
        self._stop.set()
        task, self._task = self._task, None
        if task is None:
            return
        try:
            await task
        except Exception:
            self.logger.exception({"message": "keep-alive task failed", "transaction": self.transaction_id}, pprint=True)

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            if self._stop.is_set():
                return
            try:
                await self.transport.keep_alive(self.transaction_id)
                self.pings += 1
            except Deleted:
                self.logger.info({"message": "transaction gone, keep-alive ends", "transaction": self.transaction_id}, pprint=True)
                return
            except TransientTransport as e:
                self.logger.warning(
                    {"message": "keep-alive ping failed", "transaction": self.transaction_id, "error": str(e)},
                    pprint=True,
                )
            except RepoSyncError as e:
                self.logger.error(
                    {"message": "keep-alive ends after repository error", "transaction": self.transaction_id, "error": str(e)},
                    pprint=True,
                )
                return
