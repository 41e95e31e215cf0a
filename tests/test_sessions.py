"""Tests for src.core.sessions — per-user pending state with idle expiry."""

from datetime import datetime, timedelta

from src.core.sessions import SessionStore

T0 = datetime(2024, 5, 1, 12, 0)


class _Clock:
    def __init__(self):
        self.now = T0

    def __call__(self):
        return self.now


class TestSessionStore:
    def test_create_and_get(self):
        store = SessionStore(ttl_seconds=600, now_provider=_Clock())
        store.create(1, "confirm_items", payload=["a"])
        session = store.get(1)
        assert session.kind == "confirm_items"
        assert session.payload == ["a"]
        assert session.created_at == T0

    def test_get_filters_by_kind(self):
        store = SessionStore(now_provider=_Clock())
        store.create(1, "confirm_items")
        assert store.get(1, kind="other") is None
        assert store.get(1, kind="confirm_items") is not None

    def test_create_replaces_existing(self):
        store = SessionStore(now_provider=_Clock())
        store.create(1, "a")
        store.create(1, "b")
        assert store.get(1).kind == "b"
        assert len(store) == 1

    def test_expires_after_ttl(self):
        clock = _Clock()
        store = SessionStore(ttl_seconds=600, now_provider=clock)
        store.create(1, "a")

        clock.now = T0 + timedelta(seconds=600)
        assert store.get(1) is not None

        clock.now = T0 + timedelta(seconds=601)
        assert store.get(1) is None
        assert len(store) == 0

    def test_refresh_extends(self):
        clock = _Clock()
        store = SessionStore(ttl_seconds=600, now_provider=clock)
        store.create(1, "a")

        clock.now = T0 + timedelta(seconds=500)
        assert store.refresh(1)
        clock.now = T0 + timedelta(seconds=1000)
        assert store.get(1) is not None

    def test_refresh_missing(self):
        assert not SessionStore(now_provider=_Clock()).refresh(1)

    def test_clear(self):
        store = SessionStore(now_provider=_Clock())
        store.create(1, "a")
        assert store.clear(1).kind == "a"
        assert store.clear(1) is None

    def test_evict_expired(self):
        clock = _Clock()
        store = SessionStore(ttl_seconds=60, now_provider=clock)
        store.create(1, "a")
        clock.now = T0 + timedelta(seconds=30)
        store.create(2, "b")

        clock.now = T0 + timedelta(seconds=61)
        assert store.evict_expired() == 1
        assert store.get(2) is not None

    def test_users_are_independent(self):
        store = SessionStore(now_provider=_Clock())
        store.create(1, "a")
        store.create(2, "b")
        store.clear(1)
        assert store.get(2).kind == "b"
