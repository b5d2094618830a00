# highlevel_auth/auth/refresh.py
import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Dict, Optional

from ..errors import FallbackExhaustedError, HighLevelError, RefreshFailedError
from ..settings import settings
from .models import PrincipalKind, SessionRecord, TokenGrant, bearer, now_ms
from .oauth_client import AbstractOAuthEndpoint

if TYPE_CHECKING:
    from ..storage.storage_interfaces import AbstractCredentialStore

logger = logging.getLogger(__name__)


class TokenRefreshEngine:
    """
    Keeps stored sessions usable.

    Proactively refreshes records that expire within the buffer, refreshes
    unconditionally after a 401, and re-issues a Location token from its
    parent Company token when the Location's own refresh fails. Concurrent
    refreshes of the same resource share one in-flight task.
    """

    def __init__(
        self,
        store: "AbstractCredentialStore",
        oauth_endpoint: AbstractOAuthEndpoint,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        refresh_buffer_seconds: Optional[int] = None,
        evict_on_fallback_failure: Optional[bool] = None,
        clock: Callable[[], int] = now_ms
    ):
        self.store = store
        self.oauth_endpoint = oauth_endpoint
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_buffer_seconds = (
            refresh_buffer_seconds if refresh_buffer_seconds is not None
            else settings.token_refresh_buffer_seconds
        )
        self.evict_on_fallback_failure = (
            evict_on_fallback_failure if evict_on_fallback_failure is not None
            else settings.evict_on_fallback_failure
        )
        self._clock = clock
        self._in_flight: Dict[str, asyncio.Task] = {}

    async def get_access_token(self, resource_id: str) -> Optional[str]:
        """Stored access token for the resource, refreshed first when it is about to expire."""
        record = await self.store.get_session(resource_id)
        if record is None:
            return None
        if not record.is_expiring(self.refresh_buffer_seconds, self._clock()):
            return record.access_token

        logger.info(f"REFRESH: {record.principal_kind.value} token for '{resource_id}' expires soon; refreshing.")
        refreshed = await self._refresh_deduplicated(resource_id)
        return refreshed.access_token

    async def refresh_for_retry(self, resource_id: str) -> Optional[str]:
        """
        Refresh regardless of expiry after the API rejected the token.

        Returns the new Authorization value, or None when nothing is stored
        for the resource.
        """
        if await self.store.get_session(resource_id) is None:
            logger.debug(f"REFRESH: No session stored for '{resource_id}'; nothing to retry with.")
            return None
        refreshed = await self._refresh_deduplicated(resource_id)
        return bearer(refreshed.access_token)

    async def persist_grant(
        self,
        resource_id: str,
        grant: TokenGrant,
        principal_kind: Optional[PrincipalKind] = None,
        parent_id: Optional[str] = None
    ) -> SessionRecord:
        """Establish or replace a session from a token grant (install flow, code exchange)."""
        record = SessionRecord.from_grant(
            resource_id,
            grant,
            principal_kind=PrincipalKind.parse(principal_kind),
            parent_id=parent_id,
            issued_at_ms=self._clock()
        )
        await self.store.set_session(resource_id, record)
        logger.info(f"REFRESH: Stored new {record.principal_kind.value} session for '{resource_id}'.")
        return record

    async def _refresh_deduplicated(self, resource_id: str) -> SessionRecord:
        task = self._in_flight.get(resource_id)
        if task is None or task.done():
            task = asyncio.ensure_future(self._refresh(resource_id))
            self._in_flight[resource_id] = task
            task.add_done_callback(lambda t, rid=resource_id: self._forget(rid, t))
        else:
            logger.debug(f"REFRESH: Joining in-flight refresh for '{resource_id}'.")
        # A cancelled caller must not cancel the refresh other callers are waiting on
        return await asyncio.shield(task)

    def _forget(self, resource_id: str, task: asyncio.Task) -> None:
        if self._in_flight.get(resource_id) is task:
            del self._in_flight[resource_id]
        if not task.cancelled():
            # Mark the outcome retrieved even when every waiter was cancelled
            task.exception()

    async def _refresh(self, resource_id: str) -> SessionRecord:
        record = await self.store.get_session(resource_id)
        if record is None:
            raise RefreshFailedError(resource_id, reason="no stored session")

        try:
            grant = await self._request_refresh(record)
        except RefreshFailedError as error:
            if record.principal_kind is PrincipalKind.LOCATION and record.parent_id:
                return await self._fallback(record, error)
            logger.error(f"REFRESH: {error.message}")
            raise

        updated = record.merge_grant(grant, self._clock())
        await self.store.set_session(resource_id, updated)
        logger.info(f"REFRESH: Refreshed {record.principal_kind.value} token for '{resource_id}'.")
        return updated

    async def _request_refresh(self, record: SessionRecord) -> TokenGrant:
        if not (self.client_id and self.client_secret):
            raise RefreshFailedError(record.resource_id, reason="client credentials are not configured")
        if not record.refresh_token:
            raise RefreshFailedError(record.resource_id, reason="no refresh token stored")
        try:
            return await self.oauth_endpoint.refresh(
                record.refresh_token,
                self.client_id,
                self.client_secret,
                record.principal_kind
            )
        except HighLevelError as e:
            raise RefreshFailedError(record.resource_id, cause=e) from e

    async def _fallback(self, record: SessionRecord, error: RefreshFailedError) -> SessionRecord:
        """Re-issue a Location token from the parent Company session. Single level, terminal on failure."""
        resource_id = record.resource_id
        parent_id = record.parent_id
        logger.warning(
            f"REFRESH: Location refresh failed for '{resource_id}' ({error.message}); "
            f"falling back to company '{parent_id}'."
        )

        try:
            parent = await self.store.get_session(parent_id)
            if parent is None:
                raise RefreshFailedError(parent_id, reason="no stored session for parent company")
            if parent.principal_kind is not PrincipalKind.COMPANY:
                raise RefreshFailedError(parent_id, reason="parent session is not a company session")
            if parent.is_expiring(self.refresh_buffer_seconds, self._clock()):
                parent = await self._refresh_deduplicated(parent_id)
            grant = await self.oauth_endpoint.issue_subordinate_credential(
                parent.access_token, parent_id, resource_id
            )
        except HighLevelError as e:
            logger.error(f"REFRESH: Fallback failed for location '{resource_id}': {e.message}")
            if self.evict_on_fallback_failure:
                await self.store.delete_session(resource_id)
                logger.warning(f"REFRESH: Evicted stale session for location '{resource_id}'.")
            raise FallbackExhaustedError(resource_id, reason=e.message) from e

        updated = SessionRecord.from_grant(
            resource_id,
            grant,
            principal_kind=PrincipalKind.LOCATION,
            parent_id=parent_id,
            issued_at_ms=self._clock()
        )
        await self.store.set_session(resource_id, updated)
        logger.info(f"REFRESH: Re-issued location token for '{resource_id}' from company '{parent_id}'.")
        return updated
