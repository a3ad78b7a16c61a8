# tests/unit/test_backoff.py
from datetime import timedelta

import pytest

from notifier.delivery.backoff import RetryPolicy
from tests.factories.records import T0


def test_delays_follow_table_then_reuse_last():
    policy = RetryPolicy()
    assert [policy.delay_for(n) for n in range(1, 6)] == [60, 300, 1800, 1800, 1800]


def test_next_retry_at_adds_delay():
    assert RetryPolicy().next_retry_at(2, T0) == T0 + timedelta(seconds=300)


def test_on_failure_schedules_until_max_retries():
    policy = RetryPolicy()

    first = policy.on_failure(retry_count=0, max_retries=3, now=T0)
    assert first.retry_count == 1
    assert first.give_up is False
    assert first.next_retry_at == T0 + timedelta(seconds=60)

    second = policy.on_failure(retry_count=1, max_retries=3, now=T0)
    assert second.next_retry_at == T0 + timedelta(seconds=300)

    last = policy.on_failure(retry_count=2, max_retries=3, now=T0)
    assert last.retry_count == 3
    assert last.give_up is True
    assert last.next_retry_at is None


def test_custom_table():
    policy = RetryPolicy(delays=(5, 10))
    assert policy.delay_for(1) == 5
    assert policy.delay_for(7) == 10


def test_empty_table_is_rejected():
    with pytest.raises(ValueError):
        RetryPolicy(delays=())
