# highlevel_auth/auth/resolver.py
import logging
from typing import Any, Mapping, Optional, Union

from ..errors import NoCredentialAvailableError
from .extractor import ResourceIdExtractor
from .models import (
    PrincipalKind,
    ResolvedCredential,
    SecurityRequirement,
    StaticCredentials,
    bearer,
)
from .refresh import TokenRefreshEngine

logger = logging.getLogger(__name__)


class TokenResolver:
    """
    Picks the Authorization value for one outgoing call.

    Priority: standing integration token, then the caller's static token for
    the required scope, then the stored session of the extracted resource.
    Static tokens never touch the network or the store.
    """

    def __init__(
        self,
        credentials: StaticCredentials,
        refresh_engine: TokenRefreshEngine,
        extractor: Optional[ResourceIdExtractor] = None
    ):
        self.credentials = credentials
        self.refresh_engine = refresh_engine
        self.extractor = extractor or ResourceIdExtractor()

    async def resolve(
        self,
        requirement: Optional[SecurityRequirement],
        headers: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        preferred: Union[PrincipalKind, str, None] = None
    ) -> str:
        resolved = await self.resolve_credential(requirement, headers, query, body, preferred)
        return resolved.authorization

    async def resolve_credential(
        self,
        requirement: Optional[SecurityRequirement],
        headers: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        preferred: Union[PrincipalKind, str, None] = None
    ) -> ResolvedCredential:
        creds = self.credentials
        if creds.private_integration_token:
            return ResolvedCredential(authorization=bearer(creds.private_integration_token))

        if requirement is None:
            static = creds.static_authorization()
            if static:
                return ResolvedCredential(authorization=static)
            return await self._from_session(None, "any", headers, query, body, preferred)

        if requirement is SecurityRequirement.COMPANY_ONLY:
            if creds.agency_access_token:
                return ResolvedCredential(authorization=bearer(creds.agency_access_token))
            return await self._from_session(requirement, "Company", headers, query, body, preferred)

        if requirement is SecurityRequirement.LOCATION_ONLY:
            if creds.location_access_token:
                return ResolvedCredential(authorization=bearer(creds.location_access_token))
            return await self._from_session(requirement, "Location", headers, query, body, preferred)

        # GENERIC and COMPANY_OR_LOCATION accept either scope
        if creds.agency_access_token:
            return ResolvedCredential(authorization=bearer(creds.agency_access_token))
        if creds.location_access_token:
            return ResolvedCredential(authorization=bearer(creds.location_access_token))
        return await self._from_session(requirement, "any", headers, query, body, preferred)

    async def _from_session(
        self,
        requirement: Optional[SecurityRequirement],
        scope: str,
        headers: Optional[Mapping[str, Any]],
        query: Optional[Mapping[str, Any]],
        body: Any,
        preferred: Union[PrincipalKind, str, None]
    ) -> ResolvedCredential:
        resource_id = self.extractor.extract(requirement, headers, query, body, preferred)
        if resource_id:
            token = await self.refresh_engine.get_access_token(resource_id)
            if token:
                return ResolvedCredential(authorization=bearer(token), resource_id=resource_id)
            logger.debug(f"RESOLVER: No stored session for '{resource_id}'.")
        logger.warning(f"RESOLVER: No credential available (scope: {scope}, resource: {resource_id}).")
        raise NoCredentialAvailableError(scope)
