"""Unit tests for the session store."""

from datetime import datetime, timedelta, timezone

import pytest

from healthtrack.cache.session_store import SessionStore


@pytest.fixture
def sessions(backend) -> SessionStore:
    return SessionStore(backend)


@pytest.mark.unit
class TestSessionStore:
    async def test_put_then_get(self, sessions):
        assert await sessions.put("u1", "token-a")

        assert await sessions.get("u1") == "token-a"

    async def test_default_ttl_is_seven_days(self, sessions, backend):
        await sessions.put("u1", "token-a")

        assert await backend.ttl("session:u1") == 604800

    async def test_new_login_replaces_old_token(self, sessions):
        await sessions.put("u1", "token-a")
        await sessions.put("u1", "token-b")

        assert await sessions.get("u1") == "token-b"
        assert not await sessions.matches("u1", "token-a")
        assert await sessions.matches("u1", "token-b")

    async def test_expires_after_ttl(self, sessions, clock):
        await sessions.put("u1", "token-a", ttl=60)

        clock.advance(60)
        assert await sessions.get("u1") is None

    async def test_entry_has_expiry(self, sessions):
        await sessions.put("u1", "token-a", ttl=3600)

        entry = await sessions.entry("u1")

        assert entry.identity == "u1"
        assert entry.token == "token-a"
        expected = datetime.now(timezone.utc) + timedelta(seconds=3600)
        assert abs(entry.expires_at - expected) < timedelta(seconds=5)

    async def test_entry_missing(self, sessions):
        assert await sessions.entry("nobody") is None

    async def test_refresh_rearms_ttl(self, sessions, backend, clock):
        await sessions.put("u1", "token-a", ttl=100)
        clock.advance(90)

        assert await sessions.refresh("u1", ttl=100)
        clock.advance(50)
        assert await sessions.get("u1") == "token-a"
        assert await backend.ttl("session:u1") == 50

    async def test_refresh_missing_session(self, sessions):
        assert await sessions.refresh("nobody") is False

    async def test_remove(self, sessions):
        await sessions.put("u1", "token-a")

        assert await sessions.remove("u1")
        assert await sessions.get("u1") is None

    async def test_matches_on_miss_is_false(self, sessions):
        assert await sessions.matches("nobody", "token") is False

    async def test_identities_are_isolated(self, sessions):
        await sessions.put("u1", "token-a")
        await sessions.put("u2", "token-b")
        await sessions.remove("u1")

        assert await sessions.get("u2") == "token-b"


@pytest.mark.unit
class TestSessionStoreFailOpen:
    async def test_degrades_to_always_miss(self, disconnected_backend):
        sessions = SessionStore(disconnected_backend)

        assert await sessions.put("u1", "token-a") is False
        assert await sessions.get("u1") is None
        assert await sessions.entry("u1") is None
        assert await sessions.matches("u1", "token-a") is False
        assert await sessions.refresh("u1") is False
        assert await sessions.remove("u1") is False
