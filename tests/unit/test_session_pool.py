import pytest

from automation.platform.errors import AuthError
from automation.platform.sessions import SessionPool
from tests.helpers import DummyLogger, FakeSessionClient, make_config


class Ticker:
    def __init__(self):
        self.value = 100.0

    def __call__(self):
        return self.value


@pytest.fixture
def alice():
    return make_config().user("alice")


@pytest.mark.asyncio
async def test_acquire_reuses_usable_session(alice):
    client = FakeSessionClient()
    pool = SessionPool(client, logger=DummyLogger())

    first = await pool.acquire(alice)
    second = await pool.acquire(alice)

    assert first is second
    assert client.open_calls == ["alice"]
    assert pool.opened == 1


@pytest.mark.asyncio
async def test_unauthenticated_session_is_replaced(alice):
    client = FakeSessionClient()
    pool = SessionPool(client, logger=DummyLogger())
    first = await pool.acquire(alice)
    first.record_auth_failure("bounced")

    second = await pool.acquire(alice)

    assert second is not first
    assert first.discarded
    assert first.http.closed
    assert pool.opened == 2


@pytest.mark.asyncio
async def test_failed_login_cools_down(alice):
    client = FakeSessionClient()
    client.open_errors = [AuthError("bad password")]
    ticker = Ticker()
    pool = SessionPool(client, login_cooldown_seconds=30, clock=ticker, logger=DummyLogger())

    with pytest.raises(AuthError):
        await pool.acquire(alice)
    with pytest.raises(AuthError, match="cooling down"):
        await pool.acquire(alice)
    assert client.open_calls == ["alice"]
    assert pool.health()["alice"].login_blocked

    ticker.value += 31
    session = await pool.acquire(alice)

    assert session.authenticated
    assert client.open_calls == ["alice", "alice"]
    assert not pool.health()["alice"].login_blocked


@pytest.mark.asyncio
async def test_invalidate_and_close_all(alice):
    client = FakeSessionClient()
    pool = SessionPool(client, logger=DummyLogger())
    bob = make_config(users=(("bob", ("monday",)),)).user("bob")
    alice_session = await pool.acquire(alice)
    bob_session = await pool.acquire(bob)

    await pool.invalidate("alice")
    assert pool.peek("alice") is None
    assert alice_session.discarded

    await pool.close_all()
    assert bob_session.discarded
    assert pool.health() == {}


@pytest.mark.asyncio
async def test_health_reports_session_state(alice):
    client = FakeSessionClient()
    pool = SessionPool(client, logger=DummyLogger())
    session = await pool.acquire(alice)
    session.record_auth_failure("expired")

    health = pool.health()["alice"]

    assert not health.authenticated
    assert health.consecutive_auth_failures == 1
    assert health.as_dict()['last_error'] == "expired"
