# highlevel_auth/storage/storage_interfaces.py
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from ..auth.models import SessionRecord
from ..utils.security import FernetEncryptor

DEFAULT_APPLICATION_ID = "default"


def application_id_from_client_id(client_id: Optional[str]) -> str:
    """Marketplace client ids look like '<appId>-<suffix>'; the app id scopes stored sessions."""
    if not client_id:
        return DEFAULT_APPLICATION_ID
    return client_id.split("-")[0]


class AbstractCredentialStore(ABC):
    """
    Abstract base class for persisting session records, one per resource id.

    Keys are scoped by application id so several marketplace apps can share
    one backend. `kind` is "memory" for in-process stores and "external"
    for anything that survives the process.
    """

    kind: str = "external"

    def __init__(self, encryptor: Optional[FernetEncryptor] = None):
        self.application_id = DEFAULT_APPLICATION_ID
        self.encryptor = encryptor
        self.logger = logging.getLogger(f"highlevel_auth.storage.{self.kind}")

    def set_client_id(self, client_id: Optional[str]) -> None:
        """Scope subsequent reads and writes to the application owning this client id."""
        self.application_id = application_id_from_client_id(client_id)
        self.logger.debug(f"Credential store scoped to application '{self.application_id}'.")

    def storage_key(self, resource_id: str) -> str:
        return f"{self.application_id}:{resource_id}"

    def _serialize(self, record: SessionRecord) -> str:
        payload = record.model_dump_json()
        if self.encryptor is None:
            return payload
        encrypted = self.encryptor.encrypt(payload)
        if encrypted is None:
            raise RuntimeError(f"Failed to encrypt session for resource '{record.resource_id}'.")
        return encrypted

    def _deserialize(self, raw: Optional[str], resource_id: str) -> Optional[SessionRecord]:
        """Decode a stored payload. Undecodable payloads are logged and read as 'no session'."""
        if not raw:
            return None
        payload: Optional[str] = raw
        if self.encryptor is not None:
            payload = self.encryptor.decrypt(raw)
            if payload is None:
                self.logger.error(f"Could not decrypt stored session for resource '{resource_id}'.")
                return None
        try:
            return SessionRecord.model_validate_json(payload)
        except ValueError as e:
            self.logger.error(f"Error deserializing session for resource '{resource_id}': {e}")
            return None

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the storage backend. Safe to call more than once."""
        pass

    @abstractmethod
    async def teardown(self) -> None:
        """Release storage resources."""
        pass

    @abstractmethod
    async def get_session(self, resource_id: str) -> Optional[SessionRecord]:
        """Retrieve the session stored for a company or location id."""
        pass

    @abstractmethod
    async def set_session(self, resource_id: str, record: SessionRecord) -> None:
        """Store a session, fully replacing any previous record."""
        pass

    @abstractmethod
    async def delete_session(self, resource_id: str) -> None:
        pass

    @abstractmethod
    async def list_sessions(self) -> List[SessionRecord]:
        """All sessions belonging to the current application."""
        pass

    async def get_access_token(self, resource_id: str) -> Optional[str]:
        record = await self.get_session(resource_id)
        return record.access_token if record else None

    async def get_refresh_token(self, resource_id: str) -> Optional[str]:
        record = await self.get_session(resource_id)
        return record.refresh_token if record else None

    async def disconnect(self) -> None:
        await self.teardown()
