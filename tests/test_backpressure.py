import pytest

from psyne.backpressure import (
    AdaptivePolicy,
    BlockPolicy,
    CallbackPolicy,
    DropPolicy,
    RetryPolicy,
)


def make_retry(succeed_on=None, value=42):
    calls = []

    def retry():
        calls.append(1)
        if succeed_on is not None and len(calls) >= succeed_on:
            return value
        return None

    return retry, calls


def test_policy_names():
    assert DropPolicy.name == "Drop"
    assert BlockPolicy().name == "Block"
    assert RetryPolicy().name == "Retry"
    assert CallbackPolicy(lambda: True).name == "Callback"
    assert AdaptivePolicy().name == "Adaptive"


def test_drop_policy_drops_without_retry():
    policy = DropPolicy()
    retry, calls = make_retry(succeed_on=1)
    assert policy.handle_full(retry) is None
    assert calls == []
    assert policy.dropped_messages == 1
    assert policy.pressure_events == 1


def test_block_policy_returns_once_space_appears():
    policy = BlockPolicy(max_wait=1.0)
    retry, calls = make_retry(succeed_on=3, value="slot")
    assert policy.handle_full(retry) == "slot"
    assert len(calls) == 3
    assert policy.timeout_count == 0
    assert policy.pressure_events == 1


def test_block_policy_times_out():
    policy = BlockPolicy(max_wait=0.01)
    retry, calls = make_retry()
    assert policy.handle_full(retry) is None
    assert policy.timeout_count == 1
    assert len(calls) >= 1


def test_block_policy_accepts_zero_offset():
    policy = BlockPolicy(max_wait=0.5)
    retry, _ = make_retry(succeed_on=1, value=0)
    assert policy.handle_full(retry) == 0


def test_retry_policy_exhausts_retries():
    policy = RetryPolicy(max_retries=3, initial_delay=1e-6)
    retry, calls = make_retry()
    assert policy.handle_full(retry) is None
    assert len(calls) == 3
    assert policy.retry_count == 3
    assert policy.failed_retries == 1


def test_retry_policy_succeeds_later():
    policy = RetryPolicy(max_retries=5, initial_delay=1e-6)
    retry, calls = make_retry(succeed_on=2, value=128)
    assert policy.handle_full(retry) == 128
    assert len(calls) == 2
    assert policy.retry_count == 1
    assert policy.failed_retries == 0


def test_callback_policy_rejects():
    policy = CallbackPolicy(lambda: False)
    retry, calls = make_retry(succeed_on=1)
    assert policy.handle_full(retry) is None
    assert calls == []
    assert policy.rejected_count == 1
    assert policy.timeout_count == 0


def test_callback_policy_retries_when_allowed():
    policy = CallbackPolicy(lambda: True, timeout=1.0)
    retry, _ = make_retry(succeed_on=2, value="ok")
    assert policy.handle_full(retry) == "ok"
    assert policy.rejected_count == 0


def test_callback_policy_times_out():
    policy = CallbackPolicy(lambda: True, timeout=0.01)
    retry, _ = make_retry()
    assert policy.handle_full(retry) is None
    assert policy.timeout_count == 1


def test_adaptive_policy_escalates_to_drop():
    policy = AdaptivePolicy()
    retry, _ = make_retry(succeed_on=1, value=7)
    for _ in range(999):
        assert policy.handle_full(retry) == 7
    assert policy.retry_policy.pressure_events == 99
    assert policy.block_policy.pressure_events == 900
    assert policy.handle_full(retry) is None
    assert policy.drop_policy.dropped_messages == 1
    assert policy.pressure_events == 1000


@pytest.mark.parametrize("count", [1, 5, 20])
def test_pressure_events_accumulate(count):
    policy = DropPolicy()
    for _ in range(count):
        policy.handle_full(lambda: None)
    assert policy.pressure_events == count
    assert policy.dropped_messages == count