"""Tests for CredentialStore."""

from datetime import timedelta

import pytest

from core.oauth2.store import DEFAULT_REFRESH_THRESHOLD_SECONDS, CredentialStore


@pytest.fixture
def store(clock):
    return CredentialStore(clock=clock)


class TestCredentialStore:
    def test_default_threshold_is_55_minutes(self):
        assert DEFAULT_REFRESH_THRESHOLD_SECONDS == 3300
        assert CredentialStore().refresh_threshold == timedelta(minutes=55)

    def test_missing_principal_is_near_expiry(self, store):
        assert store.get("acct-1") is None
        assert store.is_near_expiry("acct-1")

    def test_set_and_get(self, store, clock):
        store.set("acct-1", "reporting", "access-1", "refresh-1")

        creds = store.get("acct-1")
        assert creds.access_token("reporting") == "access-1"
        assert creds.slots["reporting"].refresh_token == "refresh-1"
        assert creds.slots["reporting"].issued_at == clock.current

    def test_set_updates_in_place(self, store):
        store.set("acct-1", "reporting", "access-1", "refresh-1")
        entry = store.get("acct-1")

        store.set("acct-1", "reporting", "access-2", "refresh-2")

        assert store.get("acct-1") is entry
        assert entry.access_token("reporting") == "access-2"

    def test_fresh_token_is_not_near_expiry(self, store, clock):
        store.set("acct-1", "reporting", "access-1", "refresh-1")
        clock.advance(minutes=55)
        assert not store.is_near_expiry("acct-1")

    def test_token_older_than_threshold_is_near_expiry(self, store, clock):
        store.set("acct-1", "reporting", "access-1", "refresh-1")
        clock.advance(minutes=56)
        assert store.is_near_expiry("acct-1")

    def test_explicit_threshold(self, store, clock):
        store.set("acct-1", "reporting", "access-1", "refresh-1")
        clock.advance(minutes=10)
        assert store.is_near_expiry("acct-1", threshold=timedelta(minutes=5))

    def test_missing_requested_slot_is_near_expiry(self, store):
        store.set("acct-1", "reporting", "access-1", "refresh-1")
        assert not store.is_near_expiry("acct-1", slots=["reporting"])
        assert store.is_near_expiry("acct-1", slots=["reporting", "seller_data"])

    def test_only_requested_slots_are_checked(self, store, clock):
        store.set("acct-1", "seller_data", "sp-1", "sp-refresh")
        clock.advance(minutes=30)
        store.set("acct-1", "reporting", "access-1", "refresh-1")
        clock.advance(minutes=30)

        assert not store.is_near_expiry("acct-1", slots=["reporting"])
        assert store.is_near_expiry("acct-1")

    def test_clear_one_principal(self, store):
        store.set("acct-1", "reporting", "a", "r")
        store.set("acct-2", "reporting", "b", "r")

        store.clear("acct-1")

        assert store.principals() == ["acct-2"]

    def test_clear_all(self, store):
        store.set("acct-1", "reporting", "a", "r")
        store.set("acct-2", "reporting", "b", "r")

        store.clear()

        assert store.principals() == []
