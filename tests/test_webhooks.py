import base64
import json

import httpx
import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from fastapi import FastAPI

from highlevel_auth.auth.models import PrincipalKind
from highlevel_auth.errors import UpstreamError
from highlevel_auth.storage.memory_store import MemoryCredentialStore
from highlevel_auth.transport.client import HighLevelClient
from highlevel_auth.webhooks.app import create_app
from highlevel_auth.webhooks.endpoints import build_webhook_router, verify_signature

from conftest import NOW_MS, FakeOAuthEndpoint, make_record

URL = "/webhooks/highlevel"


@pytest.fixture(scope="module")
def private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="module")
def public_key_pem(private_key):
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")


def sign(private_key, payload: bytes) -> str:
    return base64.b64encode(private_key.sign(payload, padding.PKCS1v15(), hashes.SHA256())).decode("ascii")


def install_event(**overrides):
    event = {"type": "INSTALL", "appId": "app123", "companyId": "comp_1", "locationId": "loc_1"}
    event.update(overrides)
    return event


@pytest.fixture()
async def http(engine, public_key_pem):
    app = FastAPI()
    app.include_router(build_webhook_router(engine, client_id="app123-client", webhook_public_key=public_key_pem))
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
    ) as test_client:
        yield test_client


async def test_install_mints_location_session_from_company(http, store, oauth):
    await store.set_session("comp_1", make_record("comp_1", access_token="company-token", kind=PrincipalKind.COMPANY))

    response = await http.post(URL, json=install_event())

    assert response.status_code == 200
    assert response.json()["status"] == "processed"
    assert response.json()["resource_id"] == "loc_1"
    assert oauth.subordinate_calls == [("company-token", "comp_1", "loc_1")]
    stored = await store.get_session("loc_1")
    assert stored.principal_kind is PrincipalKind.LOCATION
    assert stored.parent_id == "comp_1"
    assert stored.access_token == "location-from-comp_1"
    assert stored.expire_at == NOW_MS + 86399 * 1000


async def test_install_without_company_session_is_skipped(http, store, oauth):
    response = await http.post(URL, json=install_event())

    assert response.status_code == 200
    assert response.json()["status"] == "skipped"
    assert oauth.subordinate_calls == []
    assert await store.get_session("loc_1") is None


async def test_install_issuance_failure_is_bad_gateway(http, store, oauth):
    await store.set_session("comp_1", make_record("comp_1", kind=PrincipalKind.COMPANY))
    oauth.subordinate_outcome = UpstreamError(403, {"message": "Forbidden"})

    response = await http.post(URL, json=install_event())

    assert response.status_code == 502
    assert await store.get_session("loc_1") is None


async def test_uninstall_removes_location_session(http, store):
    await store.set_session("loc_1", make_record("loc_1"))

    response = await http.post(URL, json={"type": "UNINSTALL", "appId": "app123", "locationId": "loc_1"})

    assert response.json() == {
        "status": "processed", "event_type": "UNINSTALL", "resource_id": "loc_1", "detail": None,
    }
    assert await store.get_session("loc_1") is None


async def test_events_for_other_apps_are_ignored(http, store):
    await store.set_session("loc_1", make_record("loc_1"))

    response = await http.post(URL, json={"type": "UNINSTALL", "appId": "someoneelse", "locationId": "loc_1"})

    assert response.json()["status"] == "ignored"
    assert await store.get_session("loc_1") is not None


async def test_unknown_event_type_is_ignored(http):
    response = await http.post(URL, json={"type": "ContactCreate", "appId": "app123"})
    assert response.status_code == 200
    assert response.json()["status"] == "ignored"


async def test_valid_signature_is_accepted(http, store, private_key):
    await store.set_session("loc_1", make_record("loc_1"))
    payload = json.dumps({"type": "UNINSTALL", "appId": "app123", "locationId": "loc_1"}).encode("utf-8")

    response = await http.post(
        URL, content=payload,
        headers={"content-type": "application/json", "x-wh-signature": sign(private_key, payload)},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "processed"


async def test_invalid_signature_is_rejected(http, store, private_key):
    await store.set_session("loc_1", make_record("loc_1"))
    signed = json.dumps({"type": "INSTALL", "appId": "app123"}).encode("utf-8")
    payload = json.dumps({"type": "UNINSTALL", "appId": "app123", "locationId": "loc_1"}).encode("utf-8")

    response = await http.post(
        URL, content=payload,
        headers={"content-type": "application/json", "x-wh-signature": sign(private_key, signed)},
    )

    assert response.status_code == 401
    assert await store.get_session("loc_1") is not None


async def test_malformed_payload_is_bad_request(http):
    response = await http.post(URL, content=b'{"appId": "app123"}', headers={"content-type": "application/json"})
    assert response.status_code == 400


def test_verify_signature_rejects_garbage_key(private_key):
    payload = b"{}"
    assert verify_signature(payload, sign(private_key, payload), "not a pem") is False


async def test_health_reports_store_kind():
    client = HighLevelClient(
        store=MemoryCredentialStore(), oauth_endpoint=FakeOAuthEndpoint(),
        client_id="app123-client", client_secret="shh",
    )
    app = create_app(client)

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as http:
        response = await http.get("/health")

    assert response.json() == {"status": "ok", "store": "memory"}
    assert app.state.highlevel_client is client
    await client.disconnect()
