"""
test_token_manager.py - sequential token id allocator

Checks:
- no duplicate ids under concurrent allocation
- hydration from the highest persisted id (and the empty-store default)
- idempotent / single-flight hydration
- burned ids after a failed reservation
- hydration failure policies
"""

import asyncio

import pytest

from app.core.token_manager import (
    HydrationFailurePolicy,
    TokenHydrationError,
    TokenManager,
    TokenReservationError,
    parse_token_id,
)

# =============================================================================
# Allocation
# =============================================================================


class TestGetNextTokenId:
    @pytest.mark.asyncio
    async def test_concurrent_calls_yield_unique_contiguous_ids(self, make_store):
        store = make_store(highest=None, delay=0.01)
        manager = TokenManager(store)

        results = await asyncio.gather(*(manager.get_next_token_id() for _ in range(200)))

        assert sorted(results) == list(range(1, 201))
        assert len(set(results)) == 200

    @pytest.mark.asyncio
    async def test_concurrent_first_callers_share_one_hydration(self, make_store):
        store = make_store(highest=10, delay=0.02)
        manager = TokenManager(store)

        results = await asyncio.gather(*(manager.get_next_token_id() for _ in range(25)))

        assert store.find_calls == 1
        assert sorted(results) == list(range(11, 36))

    @pytest.mark.asyncio
    async def test_first_id_follows_hydrated_maximum(self, make_store):
        manager = TokenManager(make_store(highest=41))

        await manager.initialize()

        assert await manager.get_next_token_id() == 42

    @pytest.mark.asyncio
    async def test_empty_store_starts_at_one(self, make_store):
        manager = TokenManager(make_store(highest=None))

        await manager.initialize()

        assert await manager.get_next_token_id() == 1

    @pytest.mark.asyncio
    async def test_lazy_initialization_on_first_allocation(self, make_store):
        store = make_store(highest=7)
        manager = TokenManager(store)
        assert manager.initialized is False

        token_id = await manager.get_next_token_id()

        assert token_id == 8
        assert manager.initialized is True
        assert store.find_calls == 1

    @pytest.mark.asyncio
    async def test_ids_strictly_increase(self, make_store):
        manager = TokenManager(make_store(highest=3))

        first = await manager.get_next_token_id()
        second = await manager.get_next_token_id()
        third = await manager.get_next_token_id()

        assert first < second < third


# =============================================================================
# initialize()
# =============================================================================


class TestInitialize:
    @pytest.mark.asyncio
    async def test_second_initialize_is_noop(self, make_store):
        store = make_store(highest=5)
        manager = TokenManager(store)

        await manager.initialize()
        store.highest = 100  # data changes after hydration
        await manager.initialize()

        assert store.find_calls == 1
        assert manager.get_current_token_id() == 5
        assert await manager.get_next_token_id() == 6

    @pytest.mark.asyncio
    async def test_get_current_token_id_has_no_side_effects(self, make_store):
        store = make_store(highest=12)
        manager = TokenManager(store)

        assert manager.get_current_token_id() == 0
        assert manager.initialized is False
        assert store.find_calls == 0

        await manager.get_next_token_id()
        assert manager.get_current_token_id() == 13
        assert manager.get_current_token_id() == 13


# =============================================================================
# reserve_token_id()
# =============================================================================


class TestReserveTokenId:
    @pytest.mark.asyncio
    async def test_reservation_persists_allocated_id(self, make_store):
        store = make_store(highest=2)
        manager = TokenManager(store)

        token_id = await manager.reserve_token_id("nft-a")

        assert token_id == 3
        assert store.reserved == {"nft-a": 3}

    @pytest.mark.asyncio
    async def test_failed_reservation_burns_the_id(self, make_store):
        store = make_store(highest=5, fail_reservation=True)
        manager = TokenManager(store)

        with pytest.raises(TokenReservationError):
            await manager.reserve_token_id("nft-a")

        store.fail_reservation = False
        assert await manager.get_next_token_id() == 7
        assert store.reserved == {}

    @pytest.mark.asyncio
    async def test_unexpected_store_error_is_wrapped(self, make_store):
        store = make_store(highest=0)

        async def broken_write(entity_id, token_id):
            raise RuntimeError("socket closed")

        store.set_reserved_token_id = broken_write
        manager = TokenManager(store)

        with pytest.raises(TokenReservationError) as exc_info:
            await manager.reserve_token_id("nft-b")

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert manager.get_current_token_id() == 1


# =============================================================================
# Hydration failure policies
# =============================================================================


class TestHydrationFailurePolicy:
    @pytest.mark.asyncio
    async def test_degrade_to_zero_is_default(self, make_store):
        store = make_store(highest=50, hydration_failures=1)
        manager = TokenManager(store)

        await manager.initialize()

        assert manager.policy == HydrationFailurePolicy.DEGRADE_TO_ZERO
        assert manager.initialized is True
        assert await manager.get_next_token_id() == 1
        # tidak ada retry storm
        assert store.find_calls == 1

    @pytest.mark.asyncio
    async def test_fail_closed_raises_and_retries_on_next_call(self, make_store):
        store = make_store(highest=50, hydration_failures=1)
        manager = TokenManager(store, policy="fail-closed")

        with pytest.raises(TokenHydrationError):
            await manager.get_next_token_id()
        assert manager.initialized is False
        assert manager.get_current_token_id() == 0

        assert await manager.get_next_token_id() == 51
        assert store.find_calls == 2

    @pytest.mark.asyncio
    async def test_retry_recovers_after_transient_failures(self, make_store):
        store = make_store(highest=9, hydration_failures=2)
        manager = TokenManager(store, policy=HydrationFailurePolicy.RETRY, retry_attempts=3, retry_delay=0)

        assert await manager.get_next_token_id() == 10
        assert store.find_calls == 3

    @pytest.mark.asyncio
    async def test_retry_gives_up_and_fails_closed(self, make_store):
        store = make_store(highest=9, hydration_failures=10)
        manager = TokenManager(store, policy=HydrationFailurePolicy.RETRY, retry_attempts=2, retry_delay=0)

        with pytest.raises(TokenHydrationError):
            await manager.initialize()

        assert store.find_calls == 3
        assert manager.initialized is False

    def test_unknown_policy_rejected(self, make_store):
        with pytest.raises(ValueError):
            TokenManager(make_store(), policy="panic")


# =============================================================================
# parse_token_id
# =============================================================================


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("42", 42),
        (" 7 ", 7),
        (15, 15),
        ("0", 0),
        ("abc", None),
        ("1e3", None),
        ("-4", None),
        ("", None),
        (None, None),
        (True, None),
        (3.5, None),
    ],
)
def test_parse_token_id(raw, expected):
    assert parse_token_id(raw) == expected
