"""Storage gateway implementations and the factory selecting one."""

from ..config import settings
from .base import StorageGateway

__all__ = ["StorageGateway", "create_storage"]


def create_storage() -> StorageGateway:
    """Build the storage backend named by ``STORAGE_BACKEND``."""
    backend = settings.storage_backend.lower()
    if backend == "sql":
        from .sql import SqlStorage

        return SqlStorage()
    if backend == "graphql":
        from .graphql import GraphQLStorage

        return GraphQLStorage(
            settings.graphql_endpoint,
            admin_secret=settings.graphql_admin_secret,
            timeout=settings.graphql_timeout,
        )
    raise ValueError(f"unknown storage backend: {settings.storage_backend}")
