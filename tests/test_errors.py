import pytest

from highlevel_auth.errors import (
    FallbackExhaustedError,
    HighLevelError,
    NoCredentialAvailableError,
    RefreshFailedError,
    TransportError,
    UpstreamError,
    extract_error_message,
)


@pytest.mark.parametrize(
    "body, status_code, expected",
    [
        ("plain failure", 500, "plain failure"),
        ({"message": "Location not found"}, 404, "Location not found"),
        ({"message": ["a", "b"]}, 422, "a, b"),
        ({"error": "invalid_grant"}, 400, "invalid_grant"),
        ({"error": {"code": 7}}, 400, '{"code": 7}'),
        ({"detail": "nope"}, 403, "nope"),
        ({}, 429, "Too Many Requests - Rate limit exceeded"),
        (None, 418, "HTTP Error 418"),
        ("", 401, "Unauthorized - Invalid or missing access token"),
    ],
)
def test_extract_error_message(body, status_code, expected):
    assert extract_error_message(body, status_code) == expected


def test_every_error_is_a_highlevel_error():
    for error in (
        NoCredentialAvailableError("Location"),
        RefreshFailedError("comp_1", reason="x"),
        FallbackExhaustedError("loc_1"),
        UpstreamError(500),
        TransportError(),
    ):
        assert isinstance(error, HighLevelError)


def test_upstream_error_keeps_status_and_body():
    error = UpstreamError(429, {"message": "slow down"})
    assert error.status_code == 429
    assert error.response == {"message": "slow down"}
    assert str(error) == "slow down"


def test_refresh_failure_carries_cause_status():
    cause = UpstreamError(401, {"error": "invalid_grant"})
    error = RefreshFailedError("loc_1", cause=cause)
    assert error.status_code == 401
    assert error.cause is cause
    assert error.message == "Failed to refresh token for loc_1: invalid_grant"


def test_fallback_exhausted_message_names_location():
    assert FallbackExhaustedError("loc_1", reason="no parent").message == (
        "Token fallback exhausted for location loc_1: no parent"
    )
