# highlevel_auth/auth/models.py
from __future__ import annotations

import time
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Sessions without an expires_in are assumed to live for a day
DEFAULT_EXPIRES_IN_SECONDS = 24 * 60 * 60
DEFAULT_API_VERSION = "2021-07-28"


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def bearer(token: str) -> str:
    return f"Bearer {token}"


class PrincipalKind(str, Enum):
    """The two tenant-scoping levels. A Location is subordinate to a Company."""
    COMPANY = "Company"
    LOCATION = "Location"

    @classmethod
    def parse(cls, value: Union[str, "PrincipalKind", None]) -> Optional["PrincipalKind"]:
        """Accept enum members and the loose spellings callers use ('company', 'agency', 'location')."""
        if value is None or isinstance(value, PrincipalKind):
            return value
        normalized = str(value).strip().lower()
        if normalized in ("company", "agency"):
            return cls.COMPANY
        if normalized == "location":
            return cls.LOCATION
        raise ValueError(f"Unknown principal kind: {value!r}")


class SecurityRequirement(str, Enum):
    """Effective credential scope a call accepts, derived from its declared security tags."""
    GENERIC = "generic"
    COMPANY_ONLY = "company_only"
    LOCATION_ONLY = "location_only"
    COMPANY_OR_LOCATION = "company_or_location"

    @property
    def accepted_kinds(self) -> FrozenSet[PrincipalKind]:
        if self is SecurityRequirement.COMPANY_ONLY:
            return frozenset({PrincipalKind.COMPANY})
        if self is SecurityRequirement.LOCATION_ONLY:
            return frozenset({PrincipalKind.LOCATION})
        return frozenset({PrincipalKind.COMPANY, PrincipalKind.LOCATION})

    @property
    def accepts_either(self) -> bool:
        return len(self.accepted_kinds) == 2

    @classmethod
    def from_tags(cls, tags: Optional[Iterable[str]]) -> Optional["SecurityRequirement"]:
        """
        Map the API's security tags onto a single resolution strategy.

        "-Only" tags win over everything else, Company before Location.
        Returns None when the call declares no requirement at all.
        """
        tag_set = set(tags or ())
        if not tag_set:
            return None
        if "Agency-Access-Only" in tag_set:
            return cls.COMPANY_ONLY
        if "Location-Access-Only" in tag_set:
            return cls.LOCATION_ONLY
        has_agency = "Agency-Access" in tag_set
        has_location = "Location-Access" in tag_set
        if has_agency and has_location:
            return cls.COMPANY_OR_LOCATION
        if "bearer" in tag_set:
            return cls.GENERIC
        if has_agency:
            return cls.COMPANY_ONLY
        if has_location:
            return cls.LOCATION_ONLY
        raise ValueError(f"Unrecognized security tags: {sorted(tag_set)}")


class StaticCredentials(BaseModel):
    """Immutable, caller-supplied credential configuration."""
    model_config = ConfigDict(frozen=True)

    private_integration_token: Optional[str] = Field(
        default=None,
        description="Standing integration credential. Highest priority, never refreshed."
    )
    agency_access_token: Optional[str] = Field(
        default=None,
        description="Temporary Company-scoped token managed by the caller."
    )
    location_access_token: Optional[str] = Field(
        default=None,
        description="Temporary Location-scoped token managed by the caller."
    )
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    api_version: str = DEFAULT_API_VERSION

    @model_validator(mode="after")
    def _require_identity(self) -> "StaticCredentials":
        if not self.private_integration_token and not (self.client_id and self.client_secret):
            raise ValueError(
                "Invalid configuration: Either provide private_integration_token "
                "OR both client_id and client_secret are required."
            )
        return self

    @property
    def can_refresh(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def static_authorization(self) -> Optional[str]:
        """Authorization value for calls that declare no requirement: standing, then agency, then location."""
        for token in (self.private_integration_token, self.agency_access_token, self.location_access_token):
            if token:
                return bearer(token)
        return None


class TokenGrant(BaseModel):
    """Token payload returned by the OAuth endpoints."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    user_type: Optional[str] = Field(default=None, alias="userType")
    company_id: Optional[str] = Field(default=None, alias="companyId")
    location_id: Optional[str] = Field(default=None, alias="locationId")
    user_id: Optional[str] = Field(default=None, alias="userId")

    def expire_at(self, issued_at_ms: int) -> int:
        expires_in = self.expires_in if self.expires_in is not None else DEFAULT_EXPIRES_IN_SECONDS
        return issued_at_ms + expires_in * 1000

    @property
    def principal_kind(self) -> Optional[PrincipalKind]:
        try:
            return PrincipalKind.parse(self.user_type)
        except ValueError:
            return None


class SessionRecord(BaseModel):
    """
    Persisted credential state for one company or location.

    Records are immutable; every refresh produces a new record that fully
    replaces the previous one in the store.
    """
    model_config = ConfigDict(frozen=True)

    resource_id: str
    access_token: str
    refresh_token: Optional[str] = None
    expire_at: Optional[int] = Field(
        default=None,
        description="Absolute expiry as epoch milliseconds. None disables proactive refresh."
    )
    principal_kind: PrincipalKind = PrincipalKind.LOCATION
    parent_id: Optional[str] = Field(
        default=None,
        description="Owning company's resource id; only set on Location records."
    )
    scope: Optional[str] = None
    token_type: Optional[str] = None
    user_id: Optional[str] = None

    def is_expiring(self, buffer_seconds: int, at_ms: Optional[int] = None) -> bool:
        if self.expire_at is None:
            return False
        current = at_ms if at_ms is not None else now_ms()
        return current + buffer_seconds * 1000 >= self.expire_at

    @classmethod
    def from_grant(
        cls,
        resource_id: str,
        grant: TokenGrant,
        principal_kind: Optional[PrincipalKind] = None,
        parent_id: Optional[str] = None,
        issued_at_ms: Optional[int] = None,
    ) -> "SessionRecord":
        kind = principal_kind or grant.principal_kind or PrincipalKind.LOCATION
        if kind is PrincipalKind.LOCATION and parent_id is None:
            parent_id = grant.company_id
        return cls(
            resource_id=resource_id,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expire_at=grant.expire_at(issued_at_ms if issued_at_ms is not None else now_ms()),
            principal_kind=kind,
            parent_id=parent_id if kind is PrincipalKind.LOCATION else None,
            scope=grant.scope,
            token_type=grant.token_type,
            user_id=grant.user_id,
        )

    def merge_grant(self, grant: TokenGrant, issued_at_ms: Optional[int] = None) -> "SessionRecord":
        """Returned fields replace stored ones; fields the grant omits (parent_id, scope, ...) are kept."""
        update = {
            "access_token": grant.access_token,
            "expire_at": grant.expire_at(issued_at_ms if issued_at_ms is not None else now_ms()),
        }
        if grant.refresh_token:
            update["refresh_token"] = grant.refresh_token
        for field_name in ("scope", "token_type", "user_id"):
            value = getattr(grant, field_name)
            if value:
                update[field_name] = value
        return self.model_copy(update=update)


class ResolvedCredential(BaseModel):
    model_config = ConfigDict(frozen=True)

    authorization: str
    resource_id: Optional[str] = None
