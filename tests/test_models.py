import pytest
from pydantic import ValidationError

from highlevel_auth.auth.models import (
    DEFAULT_EXPIRES_IN_SECONDS,
    PrincipalKind,
    SecurityRequirement,
    SessionRecord,
    StaticCredentials,
    TokenGrant,
)

from conftest import NOW_MS, make_record


@pytest.mark.parametrize(
    "tags, expected",
    [
        (["Agency-Access"], SecurityRequirement.COMPANY_ONLY),
        (["Location-Access"], SecurityRequirement.LOCATION_ONLY),
        (["Agency-Access", "Location-Access"], SecurityRequirement.COMPANY_OR_LOCATION),
        (["Agency-Access-Only"], SecurityRequirement.COMPANY_ONLY),
        (["Location-Access-Only"], SecurityRequirement.LOCATION_ONLY),
        (["Location-Access-Only", "Agency-Access"], SecurityRequirement.LOCATION_ONLY),
        (["bearer", "Location-Access"], SecurityRequirement.GENERIC),
        (["bearer"], SecurityRequirement.GENERIC),
        ([], None),
        (None, None),
    ],
)
def test_requirement_from_tags(tags, expected):
    assert SecurityRequirement.from_tags(tags) is expected


def test_bearer_with_both_scopes_accepts_either():
    requirement = SecurityRequirement.from_tags(["bearer", "Agency-Access", "Location-Access"])
    assert requirement is SecurityRequirement.COMPANY_OR_LOCATION
    assert requirement.accepts_either


def test_unknown_tags_are_rejected():
    with pytest.raises(ValueError):
        SecurityRequirement.from_tags(["Mystery-Access"])


def test_principal_kind_parse_accepts_loose_spellings():
    assert PrincipalKind.parse("company") is PrincipalKind.COMPANY
    assert PrincipalKind.parse("Agency") is PrincipalKind.COMPANY
    assert PrincipalKind.parse("LOCATION") is PrincipalKind.LOCATION
    assert PrincipalKind.parse(None) is None
    with pytest.raises(ValueError):
        PrincipalKind.parse("tenant")


def test_static_credentials_require_standing_token_or_client_pair():
    with pytest.raises(ValidationError):
        StaticCredentials(client_id="only-id")
    with pytest.raises(ValidationError):
        StaticCredentials(agency_access_token="agency")

    assert StaticCredentials(private_integration_token="pit").private_integration_token == "pit"
    assert StaticCredentials(client_id="id", client_secret="secret").can_refresh


def test_static_authorization_order():
    creds = StaticCredentials(
        client_id="id", client_secret="secret",
        agency_access_token="agency", location_access_token="location",
    )
    assert creds.static_authorization() == "Bearer agency"
    assert StaticCredentials(client_id="id", client_secret="s").static_authorization() is None


def test_token_grant_reads_api_field_names():
    grant = TokenGrant.model_validate({
        "access_token": "a",
        "userType": "Location",
        "companyId": "comp_1",
        "locationId": "loc_1",
        "userId": "user_1",
        "unexpected": "ignored",
    })
    assert grant.principal_kind is PrincipalKind.LOCATION
    assert grant.company_id == "comp_1"
    assert grant.expire_at(NOW_MS) == NOW_MS + DEFAULT_EXPIRES_IN_SECONDS * 1000


def test_is_expiring_uses_buffer():
    record = make_record("loc_1", expires_in_ms=30_000)
    assert record.is_expiring(30, NOW_MS)
    assert not record.is_expiring(29, NOW_MS)
    assert not make_record("loc_1", expires_in_ms=None).is_expiring(30, NOW_MS)


def test_merge_grant_keeps_parent_and_replaces_tokens():
    record = make_record("loc_1", parent_id="comp_1", refresh_token="old-refresh")
    merged = record.merge_grant(TokenGrant(access_token="new", refresh_token="new-refresh", expires_in=60), NOW_MS)

    assert merged.access_token == "new"
    assert merged.refresh_token == "new-refresh"
    assert merged.expire_at == NOW_MS + 60_000
    assert merged.parent_id == "comp_1"
    assert record.access_token == "stored-access"


def test_from_grant_takes_parent_from_grant_for_locations():
    grant = TokenGrant(access_token="a", userType="Location", companyId="comp_1")
    record = SessionRecord.from_grant("loc_1", grant, issued_at_ms=NOW_MS)
    assert record.principal_kind is PrincipalKind.LOCATION
    assert record.parent_id == "comp_1"

    company = SessionRecord.from_grant(
        "comp_1", TokenGrant(access_token="b", companyId="comp_1"), PrincipalKind.COMPANY, issued_at_ms=NOW_MS
    )
    assert company.parent_id is None
