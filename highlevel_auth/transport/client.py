# highlevel_auth/transport/client.py
import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Union
from urllib.parse import quote

import httpx

from ..auth.extractor import ResourceIdExtractor
from ..auth.models import PrincipalKind, SecurityRequirement, StaticCredentials
from ..auth.oauth_client import AbstractOAuthEndpoint, HighLevelOAuthClient
from ..auth.refresh import TokenRefreshEngine
from ..auth.resolver import TokenResolver
from ..errors import TransportError
from ..settings import settings
from ..storage.memory_store import MemoryCredentialStore
from ..storage.storage_interfaces import AbstractCredentialStore
from .interceptors import AttemptContext, RequestInterceptor, ResponseInterceptor, response_body

logger = logging.getLogger(__name__)

SecurityDeclaration = Union[SecurityRequirement, str, Iterable[str], None]


class HighLevelClient:
    """
    Entry point for calling the HighLevel API with managed credentials.

    Wires the credential store, refresh engine, resolver and interceptor
    pair around one httpx.AsyncClient. Service code calls `request()` with
    the security tags the endpoint declares.
    """

    def __init__(
        self,
        credentials: Optional[StaticCredentials] = None,
        *,
        private_integration_token: Optional[str] = None,
        agency_access_token: Optional[str] = None,
        location_access_token: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        api_version: Optional[str] = None,
        store: Optional[AbstractCredentialStore] = None,
        oauth_endpoint: Optional[AbstractOAuthEndpoint] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        default_preference: Union[PrincipalKind, str, None] = None,
        refresh_buffer_seconds: Optional[int] = None,
        evict_on_fallback_failure: Optional[bool] = None,
        log_level: Optional[str] = None
    ):
        if log_level:
            logging.getLogger("highlevel_auth").setLevel(log_level.upper())

        if credentials is None:
            credentials = StaticCredentials(
                private_integration_token=private_integration_token,
                agency_access_token=agency_access_token,
                location_access_token=location_access_token,
                client_id=client_id or settings.client_id,
                client_secret=client_secret or settings.client_secret,
                api_version=api_version or settings.api_version,
            )
        self.credentials = credentials

        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.request_timeout_seconds,
            headers={"Accept": "application/json"},
        )

        if store is None:
            logger.warning(
                "No credential store supplied; sessions will be kept in memory and lost on exit."
            )
            store = MemoryCredentialStore()
        self.store = store
        self.store.set_client_id(credentials.client_id)

        self.oauth_endpoint = oauth_endpoint or HighLevelOAuthClient(
            base_url=self.base_url,
            api_version=credentials.api_version,
            http_client=self._http,
        )
        self.refresh_engine = TokenRefreshEngine(
            self.store,
            self.oauth_endpoint,
            client_id=credentials.client_id,
            client_secret=credentials.client_secret,
            refresh_buffer_seconds=refresh_buffer_seconds,
            evict_on_fallback_failure=evict_on_fallback_failure,
        )
        self.extractor = ResourceIdExtractor(default_preference)
        self.resolver = TokenResolver(credentials, self.refresh_engine, self.extractor)
        self.request_interceptor = RequestInterceptor(credentials)
        self.response_interceptor = ResponseInterceptor(self.refresh_engine, self._send)
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize the credential store. Called lazily before the first request."""
        if self._initialized:
            return
        await self.store.initialize()
        self._initialized = True
        logger.debug(f"HighLevelClient ready with {self.store.kind} credential store.")

    async def disconnect(self) -> None:
        await self.store.disconnect()
        if self._owns_http_client:
            await self._http.aclose()
        self._initialized = False

    async def __aenter__(self) -> "HighLevelClient":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    def get_store(self) -> AbstractCredentialStore:
        return self.store

    def get_headers(self) -> Dict[str, str]:
        """Default headers attached to every call, including a static Authorization if configured."""
        headers = {"Accept": "application/json", "Version": self.credentials.api_version}
        static = self.credentials.static_authorization()
        if static:
            headers["Authorization"] = static
        return headers

    async def _send(self, request: httpx.Request) -> httpx.Response:
        try:
            return await self._http.send(request)
        except httpx.TransportError as e:
            logger.error(f"No response for {request.method} {request.url}: {e}")
            raise TransportError(request=request) from e

    @staticmethod
    def _requirement(security: SecurityDeclaration) -> Optional[SecurityRequirement]:
        if security is None or isinstance(security, SecurityRequirement):
            return security
        if isinstance(security, str):
            return SecurityRequirement.from_tags([security])
        return SecurityRequirement.from_tags(security)

    @staticmethod
    def _expand_path(path: str, path_params: Optional[Mapping[str, Any]]) -> str:
        if not path_params:
            return path
        return path.format(**{key: quote(str(value), safe="") for key, value in path_params.items()})

    async def request(
        self,
        method: str,
        path: str,
        *,
        security: SecurityDeclaration = None,
        preferred: Union[PrincipalKind, str, None] = None,
        path_params: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        json: Any = None,
        data: Any = None
    ) -> Any:
        """
        Send one API call and return its decoded body.

        Raises:
            NoCredentialAvailableError: Nothing can satisfy the declared security; nothing is sent
            UpstreamError: Non-2xx response that was not recovered by the single 401 retry
            TransportError: No response was received
            RefreshFailedError, FallbackExhaustedError: The refresh before dispatch failed
        """
        await self.initialize()

        requirement = self._requirement(security)
        call_headers: Dict[str, str] = dict(headers or {})
        query = {key: value for key, value in (params or {}).items() if value is not None}
        body = json if json is not None else data
        # Path params identify the resource as well; they win over query values of the same name
        lookup = {**query, **{key: str(value) for key, value in (path_params or {}).items() if value is not None}}

        resource_id = None
        if requirement is not None:
            resolved = await self.resolver.resolve_credential(
                requirement, call_headers, lookup, body, preferred
            )
            call_headers["Authorization"] = resolved.authorization
            resource_id = resolved.resource_id
        if resource_id is None:
            resource_id = self.extractor.extract(requirement, call_headers, lookup, body, preferred)

        content = data if isinstance(data, (str, bytes)) else None
        request = self._http.build_request(
            method.upper(),
            self._expand_path(path, path_params),
            params=query or None,
            headers=call_headers,
            json=json,
            data=None if content is not None else data,
            content=content,
        )
        request = self.request_interceptor(request)

        response = await self._send(request)
        response = await self.response_interceptor.handle(
            response, request, AttemptContext(resource_id=resource_id)
        )
        return response_body(response)

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)
