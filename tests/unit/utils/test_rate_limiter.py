"""
PushRateLimiter tests.

Redis is mocked; a fake clock and sleep let the tests observe waiting
without slowing the suite down.
"""
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from passkit.utils.rate_limiter import PushRateLimiter


class FakeClock:

    def __init__(self, start=1000.25):
        self.now = start
        self.sleeps = []

    def time(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def _redis_with_counts(*counts):
    redis_client = MagicMock()
    pipe = MagicMock()
    redis_client.pipeline.return_value = pipe
    pipe.execute.side_effect = [[count, True] for count in counts]
    return redis_client, pipe


@pytest.mark.unit
class TestPushRateLimiter:

    def test_under_limit_does_not_wait(self, clock):
        redis_client, pipe = _redis_with_counts(1)
        limiter = PushRateLimiter(redis_client, 50, sleep=clock.sleep, clock=clock.time)

        limiter.acquire(7)

        assert clock.sleeps == []
        pipe.incr.assert_called_once_with('passkit:push_rate:7:1000')
        pipe.expire.assert_called_once_with('passkit:push_rate:7:1000', 2)

    def test_over_limit_waits_for_next_window(self, clock):
        redis_client, pipe = _redis_with_counts(3, 1)
        limiter = PushRateLimiter(redis_client, 2, sleep=clock.sleep, clock=clock.time)

        limiter.acquire(7)

        assert clock.sleeps == [pytest.approx(0.75)]
        assert pipe.incr.call_args_list[-1][0][0] == 'passkit:push_rate:7:1001'

    def test_tenants_have_separate_budgets(self, clock):
        redis_client, pipe = _redis_with_counts(1, 1)
        limiter = PushRateLimiter(redis_client, 1, sleep=clock.sleep, clock=clock.time)

        limiter.acquire(1)
        limiter.acquire(2)

        keys = [c[0][0] for c in pipe.incr.call_args_list]
        assert keys == ['passkit:push_rate:1:1000', 'passkit:push_rate:2:1000']
        assert clock.sleeps == []

    def test_zero_limit_disables_throttling(self, clock):
        redis_client = MagicMock()
        PushRateLimiter(redis_client, 0, sleep=clock.sleep, clock=clock.time).acquire(1)

        redis_client.pipeline.assert_not_called()

    def test_redis_outage_continues_unthrottled(self, clock):
        redis_client = MagicMock()
        redis_client.pipeline.return_value.execute.side_effect = RedisConnectionError('refused')

        PushRateLimiter(redis_client, 5, sleep=clock.sleep, clock=clock.time).acquire(1)

        assert clock.sleeps == []
