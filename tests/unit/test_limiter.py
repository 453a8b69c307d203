"""
Unit tests for the RateLimiter facade.

Test categories:
- Check behaviour across concurrent callers and windows
- Runtime limit changes (set, remove, add)
- Read-only inspection
- Validation before any store call

Run tests:
    pytest tests/unit/test_limiter.py -v
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from ratewarden.core.backends.memory import InMemoryBackend
from ratewarden.core.errors import (
    FormatError,
    InvalidStrategyError,
    NoRecordError,
    ProtocolError,
    UnknownPeriodError,
)
from ratewarden.core.limiter import RateLimiter
from ratewarden.core.strategies.base import EvaluationOutcome, Strategy, Usage
from ratewarden.core.strategies.strategy_set import StrategySet


# =============================================================================
# Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def limiter(backend: InMemoryBackend) -> RateLimiter:
    return await RateLimiter.create(backend, {"5-S": None})


@pytest_asyncio.fixture
async def multi_limiter(backend: InMemoryBackend) -> RateLimiter:
    return await RateLimiter.create(backend, {"Second": 5, "Minute": 10, "Hour": 1000})


# =============================================================================
# Check
# =============================================================================


class TestCheck:
    @pytest.mark.asyncio
    async def test_five_per_second_scenario(self, limiter: RateLimiter, clock) -> None:
        used = [(await limiter.check("u1")).used for _ in range(5)]
        assert used == [1, 2, 3, 4, 5]

        outcome = await limiter.check("u1")
        assert outcome == EvaluationOutcome(True, "5-S", 5, 5)

        clock.advance(1.1)

        outcome = await limiter.check("u1")
        assert outcome.is_allowed
        assert outcome.used == 1

    @pytest.mark.asyncio
    async def test_concurrent_checks_admit_at_most_limit(self, limiter: RateLimiter) -> None:
        outcomes = await asyncio.gather(*(limiter.check("u1") for _ in range(25)))

        admitted = [o for o in outcomes if o.is_allowed]
        rejected = [o for o in outcomes if o.reached]
        assert len(admitted) == 5
        assert len(rejected) == 20
        assert all(o.strategy_id == "5-S" for o in rejected)

    @pytest.mark.asyncio
    async def test_first_exhausted_window_is_reported(self, multi_limiter: RateLimiter) -> None:
        for _ in range(5):
            await multi_limiter.check("u1")

        outcome = await multi_limiter.check("u1")

        assert outcome == EvaluationOutcome(True, "Second", 5, 5)
        assert await multi_limiter.inspect("u1", "Minute") == Usage(5, 10)

    @pytest.mark.asyncio
    async def test_longer_window_outlives_shorter_one(self, multi_limiter: RateLimiter, clock) -> None:
        for _ in range(2):
            for _ in range(5):
                assert (await multi_limiter.check("u1")).is_allowed
            clock.advance(1.0)

        outcome = await multi_limiter.check("u1")

        assert outcome == EvaluationOutcome(True, "Minute", 10, 10)

    @pytest.mark.asyncio
    async def test_empty_identity_is_rejected(self, limiter: RateLimiter) -> None:
        with pytest.raises(FormatError):
            await limiter.check("")


# =============================================================================
# Set Limit
# =============================================================================


class TestSetLimit:
    @pytest.mark.asyncio
    async def test_new_limit_applies_to_live_window(self, limiter: RateLimiter) -> None:
        for _ in range(5):
            await limiter.check("u1")

        await limiter.set_limit("u1", "5-S", "10")
        outcome = await limiter.check("u1")

        assert outcome == EvaluationOutcome(False, "", 6, 10)
        assert limiter.strategies == (Strategy("5-S", 10, 1000),)

    @pytest.mark.asyncio
    async def test_without_record_only_local_limit_changes(
        self,
        limiter: RateLimiter,
        backend: InMemoryBackend,
    ) -> None:
        await limiter.set_limit("u1", "5-S", 2)

        assert backend.keys() == []
        assert (await limiter.check("u1")).total == 2

    @pytest.mark.asyncio
    async def test_other_identities_keep_their_limit(self, limiter: RateLimiter) -> None:
        await limiter.check("u1")
        await limiter.check("u2")

        await limiter.set_limit("u1", "5-S", 20)

        assert await limiter.inspect("u1", "5-S") == Usage(1, 20)
        assert await limiter.inspect("u2", "5-S") == Usage(1, 5)

    @pytest.mark.asyncio
    async def test_unconfigured_strategy_is_invalid(self, limiter: RateLimiter) -> None:
        with pytest.raises(InvalidStrategyError):
            await limiter.set_limit("u1", "10-M", 3)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "strategy_id, new_max, error",
        [
            ("Week", 3, UnknownPeriodError),
            ("5-X", 3, UnknownPeriodError),
            ("five-S", 3, FormatError),
            ("5-S", "ten", FormatError),
            ("5-S", 0, FormatError),
        ],
    )
    async def test_validation_happens_before_store_calls(
        self,
        strategy_id: str,
        new_max,
        error: type,
    ) -> None:
        backend = AsyncMock()
        limiter = RateLimiter(backend, StrategySet.from_config({"5-S": None}), AsyncMock())

        with pytest.raises(error):
            await limiter.set_limit("u1", strategy_id, new_max)

        backend.hset_if_exists.assert_not_awaited()


# =============================================================================
# Remove Limit
# =============================================================================


class TestRemoveLimit:
    @pytest.mark.asyncio
    async def test_removes_only_that_identity_record(self, backend: InMemoryBackend) -> None:
        limiter = await RateLimiter.create(backend, {"10-M": None, "Second": 5})
        await limiter.check("id")
        await limiter.check("other-id")

        await limiter.remove_limit("id", "10-M")

        assert sorted(backend.keys()) == ["id:Second", "other-id:10-M", "other-id:Second"]
        assert await limiter.inspect("other-id", "10-M") == Usage(1, 10)
        assert [s.strategy_id for s in limiter.strategies] == ["Second"]

    @pytest.mark.asyncio
    async def test_removed_window_is_no_longer_evaluated(self, backend: InMemoryBackend) -> None:
        limiter = await RateLimiter.create(backend, {"1-M": None, "Second": 5})
        await limiter.check("u1")
        assert (await limiter.check("u1")).reached

        await limiter.remove_limit("u1", "1-M")

        assert (await limiter.check("u1")).is_allowed

    @pytest.mark.asyncio
    async def test_unconfigured_but_valid_strategy_still_deletes(
        self,
        limiter: RateLimiter,
        backend: InMemoryBackend,
    ) -> None:
        await limiter.remove_limit("u1", "Hour")

        assert len(limiter.strategies) == 1

    @pytest.mark.asyncio
    async def test_unknown_period_fails(self, limiter: RateLimiter) -> None:
        with pytest.raises(UnknownPeriodError):
            await limiter.remove_limit("u1", "Fortnight")


# =============================================================================
# Add Limit
# =============================================================================


class TestAddLimit:
    @pytest.mark.asyncio
    async def test_added_window_is_evaluated_after_existing(self, limiter: RateLimiter) -> None:
        await limiter.add_limit("Minute", 1)

        assert (await limiter.check("u1")).is_allowed
        outcome = await limiter.check("u1")

        assert outcome == EvaluationOutcome(True, "Minute", 1, 1)

    @pytest.mark.asyncio
    async def test_removed_window_can_be_added_back(self, limiter: RateLimiter) -> None:
        await limiter.remove_limit("u1", "5-S")

        strategy = await limiter.add_limit("5-S")

        assert strategy == Strategy("5-S", 5, 1000)
        assert limiter.strategies == (strategy,)


# =============================================================================
# Inspect
# =============================================================================


class TestInspect:
    @pytest.mark.asyncio
    async def test_inspect_does_not_count(self, limiter: RateLimiter) -> None:
        await limiter.check("u1")

        assert await limiter.inspect("u1", "5-S") == Usage(1, 5)
        assert await limiter.inspect("u1", "5-S") == Usage(1, 5)

    @pytest.mark.asyncio
    async def test_missing_record_raises(self, limiter: RateLimiter) -> None:
        with pytest.raises(NoRecordError):
            await limiter.inspect("u1", "5-S")

    @pytest.mark.asyncio
    async def test_expired_record_raises(self, limiter: RateLimiter, clock) -> None:
        await limiter.check("u1")
        clock.advance(2)

        with pytest.raises(NoRecordError):
            await limiter.inspect("u1", "5-S")

    @pytest.mark.asyncio
    async def test_non_numeric_fields_raise_protocol_error(self) -> None:
        backend = AsyncMock()
        backend.hmget.return_value = ["x", "5"]
        limiter = RateLimiter(backend, StrategySet.from_config({"5-S": None}), AsyncMock())

        with pytest.raises(ProtocolError):
            await limiter.inspect("u1", "5-S")

    @pytest.mark.asyncio
    async def test_malformed_strategy_fails_before_read(self) -> None:
        backend = AsyncMock()
        limiter = RateLimiter(backend, StrategySet(), AsyncMock())

        with pytest.raises(FormatError):
            await limiter.inspect("u1", "5--S")

        backend.hmget.assert_not_awaited()
