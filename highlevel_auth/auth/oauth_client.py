# highlevel_auth/auth/oauth_client.py
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from ..errors import HighLevelError, TransportError, UpstreamError
from ..settings import settings
from .models import PrincipalKind, TokenGrant, bearer

logger = logging.getLogger(__name__)


class AbstractOAuthEndpoint(ABC):
    """Collaborator that talks to the HighLevel OAuth endpoints on behalf of the refresh engine."""

    @abstractmethod
    async def refresh(
        self,
        refresh_token: str,
        client_id: str,
        client_secret: str,
        principal_kind: PrincipalKind
    ) -> TokenGrant:
        """Exchange a refresh token for a new token grant."""
        pass

    @abstractmethod
    async def issue_subordinate_credential(
        self,
        parent_access_token: str,
        parent_resource_id: str,
        child_resource_id: str
    ) -> TokenGrant:
        """Mint a Location token from its owning Company's access token."""
        pass

    @abstractmethod
    async def exchange_authorization_code(
        self,
        code: str,
        client_id: str,
        client_secret: str,
        principal_kind: PrincipalKind,
        redirect_uri: Optional[str] = None
    ) -> TokenGrant:
        """Exchange an authorization code from the install flow for a token grant."""
        pass


class HighLevelOAuthClient(AbstractOAuthEndpoint):
    """httpx implementation against /oauth/token and /oauth/locationToken."""

    TOKEN_PATH = "/oauth/token"
    LOCATION_TOKEN_PATH = "/oauth/locationToken"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.api_version = api_version or settings.api_version
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self._http_client = http_client

    async def _post_form(
        self,
        path: str,
        form: Dict[str, Any],
        authorization: Optional[str] = None
    ) -> TokenGrant:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/x-www-form-urlencoded",
            "Version": self.api_version,
        }
        if authorization:
            headers["Authorization"] = authorization
        url = f"{self.base_url}{path}"
        form = {key: value for key, value in form.items() if value is not None}

        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, data=form, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as http_client:
                    response = await http_client.post(url, data=form, headers=headers)
        except httpx.TransportError as e:
            logger.error(f"OAUTH: No response from {path}: {e}")
            raise TransportError(f"Network error calling {path}: {e}") from e

        logger.info(f"OAUTH: {path} responded with status: {response.status_code}")
        if response.is_error:
            try:
                body: Any = response.json()
            except ValueError:
                body = response.text
            raise UpstreamError(response.status_code, body)

        try:
            return TokenGrant.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"OAUTH: Unreadable token response from {path}: {e}")
            raise HighLevelError(
                f"Invalid token response from {path}",
                status_code=response.status_code,
                response=response.text
            ) from e

    async def refresh(
        self,
        refresh_token: str,
        client_id: str,
        client_secret: str,
        principal_kind: PrincipalKind
    ) -> TokenGrant:
        logger.debug(f"OAUTH: Refreshing {principal_kind.value} token.")
        return await self._post_form(self.TOKEN_PATH, {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
            "client_secret": client_secret,
            "user_type": principal_kind.value,
        })

    async def issue_subordinate_credential(
        self,
        parent_access_token: str,
        parent_resource_id: str,
        child_resource_id: str
    ) -> TokenGrant:
        logger.debug(f"OAUTH: Issuing location token for {child_resource_id} from company {parent_resource_id}.")
        return await self._post_form(
            self.LOCATION_TOKEN_PATH,
            {"companyId": parent_resource_id, "locationId": child_resource_id},
            authorization=bearer(parent_access_token)
        )

    async def exchange_authorization_code(
        self,
        code: str,
        client_id: str,
        client_secret: str,
        principal_kind: PrincipalKind,
        redirect_uri: Optional[str] = None
    ) -> TokenGrant:
        return await self._post_form(self.TOKEN_PATH, {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
            "user_type": principal_kind.value,
            "redirect_uri": redirect_uri,
        })
