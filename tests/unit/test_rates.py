"""Tests for RateCalculator."""

from __future__ import annotations

import logging

import pytest

from jobmetrics.keys import EntityKind
from jobmetrics.rates import Rate, RateCalculator, round_half_up


@pytest.fixture
def rates(redis_client, clock) -> RateCalculator:
    return RateCalculator(redis_client, clock=clock)


def _bucket(clock, kind: str, offset: int) -> str:
    return f"metrics:{kind}:{clock.current_minute() + offset}"


class TestRatePerMinute:
    def test_previous_minute_read_at_second_zero(self, rates, redis_client, clock) -> None:
        redis_client.hset(
            _bucket(clock, "q", -1), mapping={"t:default": 60, "r:default": 60_000_000}
        )
        assert rates.rate_per_minute(EntityKind.QUEUE) == Rate(60, 1000)

    def test_blends_partial_current_minute(self, rates, redis_client, clock) -> None:
        redis_client.hset(_bucket(clock, "j", -1), mapping={"t:A": 60, "r:A": 60_000})
        redis_client.hset(_bucket(clock, "j", 0), mapping={"t:A": 30, "r:A": 30_000})
        clock.advance(30)

        result = rates.rate_per_minute(EntityKind.JOB, "A")
        assert result.throughput_per_minute == 60  # 90 completions over 90 seconds
        assert result.avg_runtime_ms == 1

    def test_aggregates_all_entities(self, rates, redis_client, clock) -> None:
        redis_client.hset(
            _bucket(clock, "q", -1),
            mapping={"t:a": 20, "r:a": 20_000_000, "t:b": 40, "r:b": 120_000_000},
        )
        assert rates.rate_per_minute(EntityKind.QUEUE) == Rate(60, 2333)

    def test_single_entity_ignores_others(self, rates, redis_client, clock) -> None:
        redis_client.hset(
            _bucket(clock, "q", -1),
            mapping={"t:a": 6, "r:a": 6_000, "t:b": 600, "r:b": 6_000_000},
        )
        assert rates.rate_per_minute(EntityKind.QUEUE, "a") == Rate(6, 1)

    def test_older_buckets_ignored(self, rates, redis_client, clock) -> None:
        redis_client.hset(_bucket(clock, "q", -2), mapping={"t:a": 100, "r:a": 100})
        assert rates.rate_per_minute(EntityKind.QUEUE) == Rate(0, 0)

    def test_zero_count_average_is_zero(self, rates, redis_client, clock) -> None:
        redis_client.hset(_bucket(clock, "q", -1), mapping={"t:a": 0, "r:a": 0})
        assert rates.rate_per_minute(EntityKind.QUEUE, "a") == Rate(0, 0)

    def test_unknown_entity(self, rates) -> None:
        assert rates.rate_per_minute(EntityKind.JOB, "Missing") == Rate(0, 0)

    def test_malformed_fields_skipped(self, rates, redis_client, clock, caplog) -> None:
        redis_client.hset(
            _bucket(clock, "q", -1),
            mapping={"t:a": 60, "r:a": 60_000_000, "t:b": "lots", "junk": 5},
        )
        with caplog.at_level(logging.WARNING, logger="jobmetrics.rates"):
            assert rates.rate_per_minute(EntityKind.QUEUE) == Rate(60, 1000)
        assert "malformed" in caplog.text


class TestEntityWithMaximum:
    def test_maximum_throughput(self, rates, redis_client, clock) -> None:
        redis_client.hset(
            _bucket(clock, "q", -1),
            mapping={"t:low": 1, "r:low": 900_000, "t:high": 9, "r:high": 90},
        )
        assert rates.entity_with_maximum(EntityKind.QUEUE, "throughput") == "high"
        assert rates.entity_with_maximum(EntityKind.QUEUE, "runtime") == "low"

    def test_reads_last_completed_minute_only(self, rates, redis_client, clock) -> None:
        redis_client.hset(_bucket(clock, "j", 0), mapping={"t:Current": 99})
        redis_client.hset(_bucket(clock, "j", -1), mapping={"t:Previous": 1})
        assert rates.entity_with_maximum(EntityKind.JOB, "t") == "Previous"

    def test_empty_bucket(self, rates) -> None:
        assert rates.entity_with_maximum(EntityKind.QUEUE, "runtime") is None

    def test_tie_returns_one_of_the_tied(self, rates, redis_client, clock) -> None:
        redis_client.hset(_bucket(clock, "q", -1), mapping={"t:a": 5, "t:b": 5, "t:c": 1})
        assert rates.entity_with_maximum(EntityKind.QUEUE, "throughput") in {"a", "b"}

    def test_unknown_metric(self, rates) -> None:
        with pytest.raises(ValueError, match="Unknown metric"):
            rates.entity_with_maximum(EntityKind.QUEUE, "latency")


class TestHalfUpRounding:
    def test_half_values_round_up(self, rates, redis_client, clock) -> None:
        redis_client.hset(_bucket(clock, "q", -1), mapping={"t:a": 6, "r:a": 15_000})
        clock.advance(20)

        # 6 completions over 80 seconds = 4.5/min, 15000us / 6 = 2.5ms
        assert rates.rate_per_minute(EntityKind.QUEUE, "a") == Rate(5, 3)

    @pytest.mark.parametrize(
        ("value", "expected"), [(0.0, 0), (0.5, 1), (1.49, 1), (2.5, 3), (3.5, 4)]
    )
    def test_round_half_up(self, value, expected) -> None:
        assert round_half_up(value) == expected
