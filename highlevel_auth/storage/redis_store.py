# highlevel_auth/storage/redis_store.py
from typing import List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..auth.models import SessionRecord
from ..settings import settings
from ..utils.security import FernetEncryptor
from .storage_interfaces import AbstractCredentialStore


class RedisCredentialStore(AbstractCredentialStore):
    """Redis implementation of the credential store, optionally encrypting records at rest."""

    kind = "external"
    KEY_PREFIX = "highlevel:session"

    def __init__(
        self,
        client: Optional[aioredis.Redis] = None,
        session_ttl_seconds: Optional[int] = None,
        encryptor: Optional[FernetEncryptor] = None
    ):
        super().__init__(encryptor=encryptor)
        self._redis_client: Optional[aioredis.Redis] = client
        self._owns_client = client is None
        self.session_ttl_seconds = (
            session_ttl_seconds if session_ttl_seconds is not None else settings.session_ttl_seconds
        )
        self.logger.info(f"RedisCredentialStore created. TTL: {self.session_ttl_seconds}s.")

    async def initialize(self) -> None:
        """Establish the Redis connection using global settings."""
        if self._redis_client is not None:
            return

        connection_params = {
            "host": settings.redis_host,
            "port": settings.redis_port,
            "db": settings.redis_db,
            "ssl": settings.redis_ssl,
            "decode_responses": False,
        }
        if settings.redis_password:
            connection_params["password"] = settings.redis_password

        try:
            self._redis_client = aioredis.Redis(**connection_params)
            await self._redis_client.ping()
            self.logger.info("RedisCredentialStore: Connected.")
        except RedisError as e:
            self.logger.error(f"RedisCredentialStore: Connect failed: {e}", exc_info=True)
            self._redis_client = None
            raise

    async def teardown(self) -> None:
        if self._owns_client and self._redis_client is not None:
            await self._redis_client.aclose()
            self._redis_client = None
            self.logger.info("RedisCredentialStore: Closed.")

    async def _get_client(self) -> aioredis.Redis:
        if self._redis_client is None:
            await self.initialize()
            if self._redis_client is None:
                raise RuntimeError("RedisCredentialStore not initialized or connection failed.")
        return self._redis_client

    def _get_key(self, resource_id: str) -> str:
        return f"{self.KEY_PREFIX}:{self.storage_key(resource_id)}"

    async def get_session(self, resource_id: str) -> Optional[SessionRecord]:
        client = await self._get_client()
        data_bytes = await client.get(self._get_key(resource_id))
        if not data_bytes:
            return None
        return self._deserialize(data_bytes.decode("utf-8"), resource_id)

    async def set_session(self, resource_id: str, record: SessionRecord) -> None:
        client = await self._get_client()
        await client.set(
            self._get_key(resource_id),
            self._serialize(record).encode("utf-8"),
            ex=self.session_ttl_seconds
        )
        self.logger.info(f"Saved Redis {record.principal_kind.value} session for '{resource_id}'.")

    async def delete_session(self, resource_id: str) -> None:
        client = await self._get_client()
        await client.delete(self._get_key(resource_id))
        self.logger.info(f"Deleted Redis session for '{resource_id}'.")

    async def list_sessions(self) -> List[SessionRecord]:
        client = await self._get_client()
        prefix = f"{self.KEY_PREFIX}:{self.application_id}:"
        records = []
        async for key in client.scan_iter(match=f"{prefix}*"):
            key_str = key.decode("utf-8") if isinstance(key, bytes) else key
            data_bytes = await client.get(key_str)
            if not data_bytes:
                continue
            record = self._deserialize(data_bytes.decode("utf-8"), key_str[len(prefix):])
            if record is not None:
                records.append(record)
        return sorted(records, key=lambda r: r.resource_id)
