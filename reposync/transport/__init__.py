"""Repository transport interface and implementations."""

from reposync.transport.interfaces import Content, RepositoryTransport
from reposync.transport.memory import InMemoryRepository
from reposync.transport.retry import RetryConfig, RetryingTransport

__all__ = [
    "Content",
    "RepositoryTransport",
    "InMemoryRepository",
    "RetryConfig",
    "RetryingTransport",
]
