"""Tests for synthetic candle generation and storage."""

import pytest

from arena.errors import ValidationError
from arena.services.candles import (
    CandleData,
    SeededRandom,
    check_candle,
    count_candles,
    generate_and_save_candles,
    generate_candles,
    load_candles,
    save_candles,
)
from tests.helpers import make_competition


class TestSeededRandom:
    def test_same_seed_same_sequence(self):
        a, b = SeededRandom(42), SeededRandom(42)
        assert [a() for _ in range(20)] == [b() for _ in range(20)]

    def test_values_in_unit_interval(self):
        rnd = SeededRandom(7)
        for _ in range(1000):
            v = rnd()
            assert 0 <= v < 1

    def test_zero_seed_is_deterministic(self):
        a, b = SeededRandom(0), SeededRandom(0)
        assert [a() for _ in range(5)] == [b() for _ in range(5)]


class TestGenerateCandles:
    @pytest.mark.parametrize("seed", [None, 0, 1, 1000, 123456])
    @pytest.mark.parametrize("volatility", [0.0, 0.02, 0.1, 0.5, 1.0])
    def test_low_high_bound_the_body(self, seed, volatility):
        candles = generate_candles(1, 200, start_time=0, volatility=volatility, seed=seed)
        for c in candles:
            assert c.low <= min(c.open, c.close)
            assert c.high >= max(c.open, c.close)
            assert c.low >= 0
            assert 1000 <= c.volume < 100000

    def test_seeded_series_is_reproducible(self):
        a = generate_candles(1, 50, start_time=0, seed=1000)
        b = generate_candles(1, 50, start_time=0, seed=1000)
        assert a == b

    def test_different_seeds_differ(self):
        a = generate_candles(1, 10, start_time=0, seed=1)
        b = generate_candles(1, 10, start_time=0, seed=2)
        assert [c.close for c in a] != [c.close for c in b]

    def test_random_walk_opens_at_previous_close(self):
        candles = generate_candles(1, 30, start_time=0, seed=5)
        assert candles[0].open == 100.0
        for prev, cur in zip(candles, candles[1:]):
            assert cur.open == prev.close

    def test_spacing_and_start(self):
        candles = generate_candles(1, 5, start_time=1_000, interval=60, seed=1)
        assert [c.time for c in candles] == [1_000, 1_060, 1_120, 1_180, 1_240]

    def test_close_moves_at_most_volatility(self):
        candles = generate_candles(1, 100, start_time=0, volatility=0.05, seed=9)
        for c in candles:
            assert abs(c.close / c.open - 1) <= 0.05 + 1e-12

    def test_zero_volatility_is_flat(self):
        candles = generate_candles(1, 10, start_time=0, base_price=50, volatility=0.0, seed=3)
        assert all(c.open == c.close == c.high == c.low == 50 for c in candles)

    def test_zero_count(self):
        assert generate_candles(1, 0, start_time=0) == []

    def test_negative_inputs_rejected(self):
        with pytest.raises(ValueError):
            generate_candles(1, -1)
        with pytest.raises(ValueError):
            generate_candles(1, 5, volatility=-0.1)


class TestCheckCandle:
    def test_valid(self):
        assert check_candle(10, 12, 9, 11, 100) == []

    def test_high_below_close(self):
        assert check_candle(10, 10.5, 9, 11, 100)

    def test_low_above_open(self):
        assert check_candle(10, 12, 10.5, 11, 100)

    def test_negative_volume(self):
        assert check_candle(10, 12, 9, 11, -1)


@pytest.mark.asyncio
class TestCandleStorage:
    async def test_generate_and_save(self, session):
        comp = await make_competition(session)
        written = await generate_and_save_candles(session, comp.id, count=30, start_time=0, seed=1)
        assert written == 30
        assert await count_candles(session, comp.id) == 30

    async def test_second_generation_is_noop(self, session):
        comp = await make_competition(session)
        await generate_and_save_candles(session, comp.id, count=30, start_time=0, seed=1)
        written = await generate_and_save_candles(session, comp.id, count=30, start_time=0, seed=2)
        assert written == 0
        assert await count_candles(session, comp.id) == 30

    async def test_duplicate_times_are_skipped(self, session):
        comp = await make_competition(session)
        candles = generate_candles(comp.id, 10, start_time=0, seed=1)
        await save_candles(session, candles)
        await save_candles(session, candles[5:] + generate_candles(comp.id, 3, start_time=10 * 86400, seed=2))
        assert await count_candles(session, comp.id) == 13

    async def test_invalid_candle_rejects_batch(self, session):
        comp = await make_competition(session)
        good = CandleData(comp.id, 0, 10, 12, 9, 11, 100)
        bad = CandleData(comp.id, 60, 10, 10.5, 9, 11, 100)
        with pytest.raises(ValidationError):
            await save_candles(session, [good, bad])
        assert await count_candles(session, comp.id) == 0

    async def test_large_batch_is_chunked(self, session):
        comp = await make_competition(session)
        written = await generate_and_save_candles(session, comp.id, count=1200, start_time=0, seed=4)
        assert written == 1200
        assert await count_candles(session, comp.id) == 1200

    async def test_load_range_is_inclusive_and_sorted(self, session):
        comp = await make_competition(session)
        await generate_and_save_candles(session, comp.id, count=10, start_time=0, interval=100, seed=1)
        rows = await load_candles(session, comp.id, from_ts=200, to_ts=500)
        assert [c.time for c in rows] == [200, 300, 400, 500]
