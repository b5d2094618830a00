# highlevel_auth/errors.py
import json
from typing import Any, Dict, Optional


# Fallback messages used when the response body carries nothing readable
STATUS_MESSAGES: Dict[int, str] = {
    400: "Bad Request - Invalid request parameters",
    401: "Unauthorized - Invalid or missing access token",
    403: "Forbidden - Insufficient permissions",
    404: "Not Found - Resource does not exist",
    422: "Unprocessable Entity - Validation error",
    429: "Too Many Requests - Rate limit exceeded",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}


def extract_error_message(body: Any, status_code: int) -> str:
    """
    Derive a human-readable message from an upstream error body.

    Looks at raw string bodies first, then the common `message`, `error`
    and `detail` fields, and finally falls back to the static status table.
    """
    if isinstance(body, str) and body:
        return body

    if isinstance(body, dict):
        message = body.get("message")
        if message:
            if isinstance(message, list):
                return ", ".join(str(m) for m in message)
            return str(message)
        error = body.get("error")
        if error:
            return error if isinstance(error, str) else json.dumps(error)
        detail = body.get("detail")
        if detail:
            return str(detail)

    return STATUS_MESSAGES.get(status_code, f"HTTP Error {status_code}")


class HighLevelError(Exception):
    """
    Single structured error surfaced to callers.

    Carries the upstream status code and body when there is one so retry
    and backoff decisions can be made uniformly, whichever layer failed.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Any = None,
        request: Any = None
    ):
        self.message = message
        self.status_code = status_code
        self.response = response
        self.request = request
        super().__init__(message)


class NoCredentialAvailableError(HighLevelError):
    """
    Resolution exhausted every priority tier for the declared requirement.
    Raised before any network I/O; never retried.
    """

    def __init__(self, scope: str):
        self.scope = scope
        if scope == "any":
            message = "Authentication token required but not available"
        else:
            message = f"{scope} access token required but not available"
        super().__init__(message)


class RefreshFailedError(HighLevelError):
    """The OAuth refresh call failed (network, invalid refresh token, revoked grant)."""

    def __init__(self, resource_id: str, cause: Optional[BaseException] = None, reason: Optional[str] = None):
        self.resource_id = resource_id
        self.cause = cause
        detail = reason or (str(cause) if cause else "unknown error")
        status_code = getattr(cause, "status_code", None)
        response = getattr(cause, "response", None)
        super().__init__(
            f"Failed to refresh token for {resource_id}: {detail}",
            status_code=status_code,
            response=response
        )


class FallbackExhaustedError(HighLevelError):
    """The Location -> Company fallback chain failed. Terminal."""

    def __init__(self, resource_id: str, reason: Optional[str] = None):
        self.resource_id = resource_id
        message = f"Token fallback exhausted for location {resource_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UpstreamError(HighLevelError):
    """Any non-2xx upstream response other than a recovered 401."""

    def __init__(self, status_code: int, body: Any = None, request: Any = None):
        super().__init__(
            extract_error_message(body, status_code),
            status_code=status_code,
            response=body,
            request=request
        )


class TransportError(HighLevelError):
    """The request never reached the server or no response was received."""

    def __init__(self, message: str = "Network error: No response received from server", request: Any = None):
        super().__init__(message, request=request)
