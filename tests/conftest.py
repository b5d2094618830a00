"""Shared fakes and fixtures for the credential lifecycle tests."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Union

import pytest

from highlevel_auth.auth.models import PrincipalKind, SessionRecord, TokenGrant
from highlevel_auth.auth.oauth_client import AbstractOAuthEndpoint
from highlevel_auth.auth.refresh import TokenRefreshEngine
from highlevel_auth.storage.memory_store import MemoryCredentialStore

NOW_MS = 1_700_000_000_000

Outcome = Union[TokenGrant, Exception]


class FakeClock:
    def __init__(self, now_ms: int = NOW_MS) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


class FakeOAuthEndpoint(AbstractOAuthEndpoint):
    """Records every call; returns queued outcomes or freshly numbered grants."""

    def __init__(self, *, delay: float = 0.0) -> None:
        self.delay = delay
        self.refresh_calls: List[tuple] = []
        self.subordinate_calls: List[tuple] = []
        self.exchange_calls: List[tuple] = []
        self.refresh_outcomes: Dict[str, Outcome] = {}
        self.subordinate_outcome: Optional[Outcome] = None
        self.exchange_outcome: Optional[Outcome] = None

    async def refresh(self, refresh_token, client_id, client_secret, principal_kind) -> TokenGrant:
        self.refresh_calls.append((refresh_token, client_id, client_secret, principal_kind))
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.refresh_outcomes.get(refresh_token)
        if outcome is None:
            n = len(self.refresh_calls)
            outcome = TokenGrant(access_token=f"access-{n}", refresh_token=f"refresh-{n}", expires_in=3600)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def issue_subordinate_credential(self, parent_access_token, parent_resource_id, child_resource_id) -> TokenGrant:
        self.subordinate_calls.append((parent_access_token, parent_resource_id, child_resource_id))
        outcome = self.subordinate_outcome or TokenGrant(
            access_token=f"location-from-{parent_resource_id}",
            expires_in=86399,
            userType="Location",
            companyId=parent_resource_id,
            locationId=child_resource_id,
        )
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def exchange_authorization_code(self, code, client_id, client_secret, principal_kind, redirect_uri=None) -> TokenGrant:
        self.exchange_calls.append((code, client_id, client_secret, principal_kind, redirect_uri))
        outcome = self.exchange_outcome
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class ExplodingStore(MemoryCredentialStore):
    """Fails the test on any store access."""

    async def get_session(self, resource_id):
        raise AssertionError(f"store read for {resource_id} during static resolution")

    async def set_session(self, resource_id, record):
        raise AssertionError(f"store write for {resource_id} during static resolution")


def make_record(
    resource_id: str,
    *,
    access_token: str = "stored-access",
    refresh_token: Optional[str] = "stored-refresh",
    expires_in_ms: Optional[int] = 3_600_000,
    kind: PrincipalKind = PrincipalKind.LOCATION,
    parent_id: Optional[str] = None,
    now_ms: int = NOW_MS,
) -> SessionRecord:
    return SessionRecord(
        resource_id=resource_id,
        access_token=access_token,
        refresh_token=refresh_token,
        expire_at=None if expires_in_ms is None else now_ms + expires_in_ms,
        principal_kind=kind,
        parent_id=parent_id,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def oauth() -> FakeOAuthEndpoint:
    return FakeOAuthEndpoint()


@pytest.fixture
def engine(store, oauth, clock) -> TokenRefreshEngine:
    return TokenRefreshEngine(
        store,
        oauth,
        client_id="app123-client",
        client_secret="shh",
        refresh_buffer_seconds=30,
        evict_on_fallback_failure=False,
        clock=clock,
    )
