import fnmatch

import pytest

from highlevel_auth.auth.models import PrincipalKind
from highlevel_auth.storage import create_credential_store
from highlevel_auth.storage.memory_store import MemoryCredentialStore
from highlevel_auth.storage.redis_store import RedisCredentialStore
from highlevel_auth.storage.sqlite_store import SQLiteCredentialStore
from highlevel_auth.storage.storage_interfaces import application_id_from_client_id
from highlevel_auth.utils.security import FernetEncryptor, generate_fernet_key

from conftest import make_record


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the credential store."""

    def __init__(self) -> None:
        self.data = {}
        self.expiries = {}
        self.closed = False

    async def ping(self):
        return True

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiries[key] = ex

    async def delete(self, key):
        self.data.pop(key, None)

    async def scan_iter(self, match=None):
        for key in list(self.data):
            if match is None or fnmatch.fnmatch(key, match):
                yield key.encode("utf-8")

    async def aclose(self):
        self.closed = True


@pytest.fixture(params=["memory", "sqlite", "redis"])
async def any_store(request, tmp_path):
    if request.param == "memory":
        store = MemoryCredentialStore()
    elif request.param == "sqlite":
        store = SQLiteCredentialStore(db_path=str(tmp_path / "sessions.sqlite3"))
    else:
        store = RedisCredentialStore(client=FakeRedis())
    store.set_client_id("app123-suffix")
    await store.initialize()
    yield store
    await store.teardown()


def test_application_id_is_client_id_prefix():
    assert application_id_from_client_id("64f0c1-lmn0p") == "64f0c1"
    assert application_id_from_client_id(None) == "default"


def test_store_kinds():
    assert MemoryCredentialStore().kind == "memory"
    assert RedisCredentialStore(client=FakeRedis()).kind == "external"
    assert SQLiteCredentialStore(db_path=":memory:").kind == "external"


async def test_round_trip_and_token_accessors(any_store):
    record = make_record("loc_1", access_token="a", refresh_token="r", parent_id="comp_1")
    await any_store.set_session("loc_1", record)

    assert await any_store.get_session("loc_1") == record
    assert await any_store.get_access_token("loc_1") == "a"
    assert await any_store.get_refresh_token("loc_1") == "r"
    assert await any_store.get_session("missing") is None
    assert await any_store.get_access_token("missing") is None


async def test_set_session_fully_replaces(any_store):
    await any_store.set_session("loc_1", make_record("loc_1", refresh_token="old", parent_id="comp_1"))
    await any_store.set_session("loc_1", make_record("loc_1", refresh_token=None))

    stored = await any_store.get_session("loc_1")
    assert stored.refresh_token is None
    assert stored.parent_id is None


async def test_delete_and_list(any_store):
    await any_store.set_session("comp_1", make_record("comp_1", kind=PrincipalKind.COMPANY))
    await any_store.set_session("loc_1", make_record("loc_1"))

    assert [r.resource_id for r in await any_store.list_sessions()] == ["comp_1", "loc_1"]

    await any_store.delete_session("loc_1")
    assert await any_store.get_session("loc_1") is None
    assert [r.resource_id for r in await any_store.list_sessions()] == ["comp_1"]


async def test_sessions_are_scoped_per_application(any_store):
    await any_store.set_session("loc_1", make_record("loc_1"))
    any_store.set_client_id("otherapp-suffix")

    assert await any_store.get_session("loc_1") is None
    assert await any_store.list_sessions() == []


async def test_sqlite_encrypts_at_rest(tmp_path):
    encryptor = FernetEncryptor(generate_fernet_key())
    store = SQLiteCredentialStore(db_path=str(tmp_path / "enc.sqlite3"), encryptor=encryptor)
    await store.initialize()
    await store.set_session("loc_1", make_record("loc_1", access_token="very-secret-token"))

    row = await store._fetchone("SELECT session_data FROM highlevel_sessions WHERE resource_id = ?", ("loc_1",))
    assert "very-secret-token" not in row["session_data"]
    assert (await store.get_session("loc_1")).access_token == "very-secret-token"
    await store.teardown()


async def test_redis_applies_ttl_and_prefix():
    fake = FakeRedis()
    store = RedisCredentialStore(client=fake, session_ttl_seconds=120)
    store.set_client_id("app9-x")
    await store.set_session("comp_1", make_record("comp_1", kind=PrincipalKind.COMPANY))

    assert fake.expiries == {"highlevel:session:app9:comp_1": 120}
    await store.teardown()
    assert not fake.closed


async def test_undecryptable_redis_record_is_treated_as_missing():
    fake = FakeRedis()
    store = RedisCredentialStore(client=fake, encryptor=FernetEncryptor(generate_fernet_key()))
    fake.data["highlevel:session:default:loc_1"] = b"not-a-fernet-token"

    assert await store.get_session("loc_1") is None


def test_encryptor_rejects_bad_key():
    with pytest.raises(ValueError):
        FernetEncryptor("too-short")
    with pytest.raises(ValueError):
        FernetEncryptor("")


def test_factory_selects_backend(monkeypatch, tmp_path):
    from highlevel_auth import storage

    monkeypatch.setattr(storage.settings, "sqlite_db_path", str(tmp_path / "f.sqlite3"))
    monkeypatch.setattr(storage.settings, "encryption_key", None)
    assert isinstance(create_credential_store("memory"), MemoryCredentialStore)
    assert isinstance(create_credential_store("sqlite"), SQLiteCredentialStore)
    with pytest.raises(ValueError):
        create_credential_store("cassandra")
