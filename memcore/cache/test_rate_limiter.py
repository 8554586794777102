import math
from concurrent.futures import ThreadPoolExecutor

import pytest

from memcore.cache.rate_limiter import RateLimiter
from memcore.errors import ConfigurationError
from memcore.fakes import FakeClock


def _drain(limiter, ident, attempts=1000):
    return sum(1 for _ in range(attempts) if limiter.is_allowed(ident))


def test_refill_is_capped_at_capacity():
    clock = FakeClock()
    limiter = RateLimiter(capacity=10, refill_rate=1, window=60, clock=clock)
    assert _drain(limiter, "u") == 10
    assert not limiter.is_allowed("u")

    clock.advance(5)
    assert _drain(limiter, "u") == 5

    clock.advance(100)
    assert _drain(limiter, "u") == 10


def test_identifiers_are_independent():
    limiter = RateLimiter(capacity=3, refill_rate=0, window=60, clock=FakeClock())
    assert _drain(limiter, "a") == 3
    assert limiter.get_remaining("b") == 3
    assert limiter.is_allowed("b")


def test_denial_leaves_tokens_unchanged():
    limiter = RateLimiter(capacity=5, refill_rate=0, window=60, clock=FakeClock())
    assert limiter.is_allowed("u", cost=4)
    assert not limiter.is_allowed("u", cost=2)
    assert limiter.get_remaining("u") == 1


def test_cost_above_capacity_never_admitted():
    clock = FakeClock()
    limiter = RateLimiter(capacity=5, refill_rate=1, window=60, clock=clock)
    assert not limiter.is_allowed("u", cost=6)
    clock.advance(1000)
    assert not limiter.is_allowed("u", cost=6)
    assert limiter.retry_after("u", cost=6) == math.inf


def test_get_remaining_has_no_side_effects():
    clock = FakeClock()
    limiter = RateLimiter(capacity=10, refill_rate=1, window=60, clock=clock)
    _drain(limiter, "u")
    clock.advance(3)
    assert limiter.get_remaining("u") == pytest.approx(3)
    assert limiter.get_remaining("u") == pytest.approx(3)
    assert _drain(limiter, "u") == 3


def test_retry_after():
    clock = FakeClock()
    limiter = RateLimiter(capacity=10, refill_rate=2, window=60, clock=clock)
    assert limiter.retry_after("u") == 0.0
    _drain(limiter, "u")
    assert limiter.retry_after("u", cost=4) == pytest.approx(2.0)


def test_reset_restores_full_bucket():
    limiter = RateLimiter(capacity=2, refill_rate=0, window=60, clock=FakeClock())
    _drain(limiter, "u")
    limiter.reset("u")
    assert limiter.get_remaining("u") == 2


def test_cleanup_drops_stale_buckets():
    clock = FakeClock()
    limiter = RateLimiter(capacity=5, refill_rate=1, window=10, clock=clock)
    limiter.is_allowed("old")
    clock.advance(15)
    limiter.is_allowed("fresh")
    clock.advance(6)
    assert limiter.cleanup() == 1
    assert len(limiter) == 1
    assert limiter.get_remaining("old") == 5


@pytest.mark.parametrize("kwargs", [
    {"capacity": 0},
    {"refill_rate": -1},
    {"window": 0},
])
def test_invalid_configuration(kwargs):
    with pytest.raises(ConfigurationError):
        RateLimiter(**kwargs)


def test_concurrent_callers_share_one_bucket_exactly():
    limiter = RateLimiter(capacity=100, refill_rate=0, window=60, clock=FakeClock())
    with ThreadPoolExecutor(max_workers=8) as pool:
        admitted = list(pool.map(lambda _: _drain(limiter, "shared", attempts=50), range(8)))
    assert sum(admitted) == 100
    assert limiter.get_remaining("shared") == 0
