# highlevel_auth/transport/interceptors.py
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx
from pydantic import BaseModel, ConfigDict

from ..auth.models import StaticCredentials
from ..auth.refresh import TokenRefreshEngine
from ..errors import HighLevelError, UpstreamError

logger = logging.getLogger(__name__)

Sender = Callable[[httpx.Request], Awaitable[httpx.Response]]


class AttemptContext(BaseModel):
    """Per-call dispatch state. Each retry works on a new context instead of flagging the request."""
    model_config = ConfigDict(frozen=True)

    attempt: int = 1
    max_attempts: int = 2
    resource_id: Optional[str] = None

    @property
    def can_retry(self) -> bool:
        return self.attempt < self.max_attempts

    def next_attempt(self) -> "AttemptContext":
        return self.model_copy(update={"attempt": self.attempt + 1})


def clone_request(request: httpx.Request, authorization: str) -> httpx.Request:
    """Copy of the request with a replaced Authorization header and the same body."""
    headers = request.headers.copy()
    headers["Authorization"] = authorization
    return httpx.Request(
        method=request.method,
        url=request.url,
        headers=headers,
        content=request.content,
        extensions=request.extensions,
    )


def response_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class RequestInterceptor:
    """Fills in static Authorization and Version headers before dispatch. Never performs I/O."""

    def __init__(self, credentials: StaticCredentials):
        self.credentials = credentials

    def __call__(self, request: httpx.Request) -> httpx.Request:
        if "Authorization" not in request.headers:
            static = self.credentials.static_authorization()
            if static:
                request.headers["Authorization"] = static
        if "Version" not in request.headers:
            request.headers["Version"] = self.credentials.api_version
        logger.debug(f"{request.method} {request.url}")
        return request


class ResponseInterceptor:
    """
    Passes successes through, recovers from one 401 by refreshing the
    resource's session, and normalizes every other failure into UpstreamError.
    """

    def __init__(self, refresh_engine: TokenRefreshEngine, send: Sender):
        self.refresh_engine = refresh_engine
        self.send = send

    async def handle(
        self,
        response: httpx.Response,
        request: httpx.Request,
        context: AttemptContext
    ) -> httpx.Response:
        if response.is_success:
            logger.debug(f"Response {response.status_code} from {request.url}")
            return response

        status_code = response.status_code
        refresh_error: Optional[HighLevelError] = None
        if status_code == 401 and context.can_retry and context.resource_id:
            logger.info(f"Received 401 for '{context.resource_id}'; refreshing and retrying once.")
            try:
                authorization = await self.refresh_engine.refresh_for_retry(context.resource_id)
            except HighLevelError as e:
                # The caller sees the original 401; the refresh failure is its cause
                logger.error(f"Token refresh after 401 failed for '{context.resource_id}': {e.message}")
                refresh_error = e
            else:
                if authorization:
                    retry_request = clone_request(request, authorization)
                    retry_response = await self.send(retry_request)
                    return await self.handle(retry_response, retry_request, context.next_attempt())

        if status_code == 429:
            logger.warning(f"Rate limited. Retry after: {response.headers.get('retry-after')}")
        elif status_code == 401:
            logger.error("Authentication failed. Check your credentials.")

        error = UpstreamError(status_code, response_body(response), request=request)
        logger.error(f"Error: {error.message} ({status_code})")
        if refresh_error is not None:
            raise error from refresh_error
        raise error
