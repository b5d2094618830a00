# highlevel_auth/storage/__init__.py

"""Credential store implementations and the backend-selecting factory."""

import logging
from typing import Optional

from ..settings import settings
from ..utils.security import build_encryptor
from .memory_store import MemoryCredentialStore
from .redis_store import RedisCredentialStore
from .sqlite_store import SQLiteCredentialStore
from .storage_interfaces import AbstractCredentialStore, application_id_from_client_id

logger = logging.getLogger(__name__)


def create_credential_store(backend: Optional[str] = None) -> AbstractCredentialStore:
    """Build an uninitialized store for the given backend (defaults to settings.storage_backend)."""
    backend = (backend or settings.storage_backend).lower()
    if backend == "memory":
        return MemoryCredentialStore()
    if backend == "sqlite":
        logger.info("Using SQLiteCredentialStore for sessions.")
        return SQLiteCredentialStore(encryptor=build_encryptor(settings.encryption_key))
    if backend == "redis":
        logger.info("Using RedisCredentialStore for sessions.")
        return RedisCredentialStore(encryptor=build_encryptor(settings.encryption_key))
    raise ValueError(f"Unsupported storage_backend for sessions: {backend}")


# Global singleton instance
_credential_store_instance: Optional[AbstractCredentialStore] = None


async def get_credential_store() -> AbstractCredentialStore:
    """
    Return the process-wide store for the configured backend, initialized
    and scoped to settings.client_id.
    """
    global _credential_store_instance
    if _credential_store_instance is None:
        store = create_credential_store()
        store.set_client_id(settings.client_id)
        await store.initialize()
        _credential_store_instance = store
    return _credential_store_instance


async def close_credential_store() -> None:
    global _credential_store_instance
    if _credential_store_instance is not None:
        await _credential_store_instance.teardown()
        _credential_store_instance = None


__all__ = [
    "AbstractCredentialStore",
    "MemoryCredentialStore",
    "SQLiteCredentialStore",
    "RedisCredentialStore",
    "application_id_from_client_id",
    "create_credential_store",
    "get_credential_store",
    "close_credential_store",
]
