# highlevel_auth/storage/memory_store.py
from typing import Dict, List, Optional

from ..auth.models import SessionRecord
from .storage_interfaces import AbstractCredentialStore


class MemoryCredentialStore(AbstractCredentialStore):
    """In-process session store. Records are lost when the process exits."""

    kind = "memory"

    def __init__(self):
        super().__init__(encryptor=None)
        self._sessions: Dict[str, SessionRecord] = {}

    async def initialize(self) -> None:
        self.logger.debug("MemoryCredentialStore initialized.")

    async def teardown(self) -> None:
        self._sessions.clear()
        self.logger.debug("MemoryCredentialStore cleared.")

    async def get_session(self, resource_id: str) -> Optional[SessionRecord]:
        return self._sessions.get(self.storage_key(resource_id))

    async def set_session(self, resource_id: str, record: SessionRecord) -> None:
        self._sessions[self.storage_key(resource_id)] = record
        self.logger.debug(f"Stored {record.principal_kind.value} session for '{resource_id}'.")

    async def delete_session(self, resource_id: str) -> None:
        self._sessions.pop(self.storage_key(resource_id), None)
        self.logger.debug(f"Deleted session for '{resource_id}'.")

    async def list_sessions(self) -> List[SessionRecord]:
        prefix = f"{self.application_id}:"
        return [record for key, record in self._sessions.items() if key.startswith(prefix)]
