from unittest.mock import patch

import pytest

from vfbridge.services.callback_store import (
    CALLBACK_DATA_MAX_BYTES,
    TOKEN_PREFIX,
    CallbackIndirectionStore,
    utf8_len,
)

LONG_PAYLOAD = '{"label":"Хочу бросить курить прямо сейчас","type":"path-6f1c2a9e8b7d"}'


class TestPutResolve:
    def test_put_returns_short_token(self, clock):
        store = CallbackIndirectionStore(clock=clock)
        token = store.put(LONG_PAYLOAD)

        assert token != LONG_PAYLOAD
        assert token.startswith(TOKEN_PREFIX)
        assert utf8_len(token) <= store.safe_bytes < CALLBACK_DATA_MAX_BYTES

    def test_resolve_returns_payload(self, clock):
        store = CallbackIndirectionStore(clock=clock)
        token = store.put(LONG_PAYLOAD)
        assert store.resolve(token) == LONG_PAYLOAD

    def test_resolve_is_multi_use(self, clock):
        store = CallbackIndirectionStore(clock=clock)
        token = store.put(LONG_PAYLOAD)
        clock.advance(60)
        assert store.resolve(token) == LONG_PAYLOAD
        assert store.resolve(token) == LONG_PAYLOAD

    def test_expired_token_resolves_to_itself(self, clock):
        store = CallbackIndirectionStore(clock=clock)
        token = store.put(LONG_PAYLOAD)
        clock.advance(601)
        assert store.resolve(token) == token

    def test_unknown_literal_passes_through(self, clock):
        store = CallbackIndirectionStore(clock=clock)
        assert store.resolve("yes_1") == "yes_1"
        assert store.resolve("~notatoken.abc") == "~notatoken.abc"

    def test_tokens_are_unique(self, clock):
        store = CallbackIndirectionStore(clock=clock)
        tokens = {store.put(f"payload-{i}") for i in range(200)}
        assert len(tokens) == 200

    def test_collision_with_live_token_is_regenerated(self, clock):
        store = CallbackIndirectionStore(clock=clock)
        with patch.object(store, "_new_token", side_effect=["~dup", "~dup", "~fresh"]):
            first = store.put("first")
            second = store.put("second")

        assert first == "~dup"
        assert second == "~fresh"
        assert store.resolve("~dup") == "first"
        assert store.resolve("~fresh") == "second"


class TestEncode:
    def test_short_payload_is_sent_literally(self, clock):
        store = CallbackIndirectionStore(clock=clock)
        assert store.encode("yes_1") == "yes_1"
        assert store.encode("a" * 60) == "a" * 60
        assert len(store) == 0

    def test_payload_over_threshold_is_tokenized(self, clock):
        store = CallbackIndirectionStore(clock=clock)
        data = store.encode("a" * 61)
        assert data != "a" * 61
        assert store.resolve(data) == "a" * 61

    def test_byte_length_not_character_count(self, clock):
        store = CallbackIndirectionStore(clock=clock)
        payload = "ж" * 31  # 31 characters, 62 bytes
        assert len(payload) < store.safe_bytes < utf8_len(payload)

        data = store.encode(payload)
        assert data != payload
        assert store.resolve(data) == payload


class TestLimits:
    def test_threshold_must_stay_below_transport_limit(self):
        with pytest.raises(ValueError):
            CallbackIndirectionStore(safe_bytes=CALLBACK_DATA_MAX_BYTES)

    def test_sweep_drops_expired_tokens(self, clock):
        store = CallbackIndirectionStore(high_water_mark=2, clock=clock)
        for i in range(3):
            store.put(f"payload-{i}")
        clock.advance(601)

        store.put("fresh")
        assert len(store) == 1

    def test_expired_tokens_linger_until_sweep(self, clock):
        store = CallbackIndirectionStore(clock=clock)
        token = store.put(LONG_PAYLOAD)
        clock.advance(601)
        assert store.resolve(token) == token
        assert len(store) == 1
