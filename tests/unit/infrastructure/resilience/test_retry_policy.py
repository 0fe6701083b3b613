import asyncio

import pytest
from unittest.mock import MagicMock

from taskgate.domain.errors import (
    ApiError, NetworkError, NotFoundError, RetryExhaustedError, ServerError,
    ValidationError, error_from_status,
)
from taskgate.domain.events.api_events import RetryScheduled
from taskgate.infrastructure.resilience.retry_policy import (
    RetryPolicy, RetryPolicyEngine, is_retryable,
)


def failing_then(result, *errors):
    """Async operation raising ``errors`` in order, then returning ``result``."""
    remaining = list(errors)
    calls = []

    async def operation():
        calls.append(1)
        if remaining:
            raise remaining.pop(0)
        return result

    operation.calls = calls
    return operation


def always_failing(error_factory):
    calls = []

    async def operation():
        calls.append(1)
        raise error_factory()

    operation.calls = calls
    return operation


async def test_success_on_first_attempt(engine, fake_time):
    outcome = await engine.execute(failing_then("ok"))

    assert outcome.success
    assert outcome.result == "ok"
    assert outcome.attempts == 1
    assert outcome.error is None
    assert fake_time.sleeps == []


async def test_transient_errors_are_retried_with_exponential_backoff(engine, fake_time):
    operation = failing_then("done", NetworkError("Network error: Failed to list tasks"), ServerError("boom", 503))

    outcome = await engine.execute(operation)

    assert outcome.success
    assert outcome.result == "done"
    assert outcome.attempts == 3
    assert fake_time.sleeps == [1.0, 2.0]


async def test_delay_is_capped_at_max_delay(fake_time):
    policy = RetryPolicy(max_attempts=6, base_delay=1.0, max_delay=5.0, backoff_multiplier=2.0)
    engine = RetryPolicyEngine(policy, sleep=fake_time.sleep, clock=fake_time.monotonic)

    outcome = await engine.execute(always_failing(lambda: NetworkError("down")))

    assert not outcome.success
    assert fake_time.sleeps == [1.0, 2.0, 4.0, 5.0, 5.0]


async def test_exhaustion_wraps_last_error_attempts_and_elapsed(engine, fake_time):
    operation = always_failing(lambda: NetworkError("Network error occurred"))

    outcome = await engine.execute(operation)

    assert not outcome.success
    assert outcome.attempts == 3
    assert len(operation.calls) == 3
    assert isinstance(outcome.error, RetryExhaustedError)
    assert isinstance(outcome.last_error, NetworkError)
    assert outcome.error.attempts == 3
    assert outcome.elapsed == pytest.approx(3.0)
    assert outcome.error.elapsed == pytest.approx(3.0)
    # No sleep after the final attempt
    assert fake_time.sleeps == [1.0, 2.0]


async def test_validation_error_short_circuits(engine, fake_time):
    operation = always_failing(lambda: ValidationError("Task title is required", field="title"))

    outcome = await engine.execute(operation)

    assert not outcome.success
    assert outcome.attempts == 1
    assert len(operation.calls) == 1
    assert isinstance(outcome.last_error, ValidationError)
    assert outcome.last_error.field == "title"
    assert fake_time.sleeps == []


async def test_not_found_is_not_retried(engine):
    outcome = await engine.execute(always_failing(lambda: NotFoundError("Task x not found")))

    assert outcome.attempts == 1
    assert isinstance(outcome.last_error, NotFoundError)


@pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 504])
def test_retryable_status_codes(status):
    assert is_retryable(error_from_status(status, "failure"), RetryPolicy())


@pytest.mark.parametrize("status", [400, 401, 403, 404, 409, 422])
def test_other_client_errors_are_not_retryable(status):
    assert not is_retryable(error_from_status(status, "failure"), RetryPolicy())


def test_message_substring_classification():
    policy = RetryPolicy()
    assert is_retryable(RuntimeError("Connection refused by peer"), policy)
    assert is_retryable(RuntimeError("read ETIMEDOUT"), policy)
    assert not is_retryable(RuntimeError("division by zero"), policy)


def test_transport_failures_are_retryable():
    policy = RetryPolicy()
    assert is_retryable(asyncio.TimeoutError(), policy)
    assert is_retryable(ConnectionResetError(), policy)


def test_custom_predicate_can_opt_in():
    policy = RetryPolicy(should_retry=lambda error, attempt: isinstance(error, KeyError) and attempt < 2)
    assert is_retryable(KeyError("x"), policy, attempt=1)
    assert not is_retryable(KeyError("x"), policy, attempt=2)


def test_custom_predicate_cannot_override_validation():
    policy = RetryPolicy(should_retry=lambda error, attempt: True)
    assert not is_retryable(ValidationError("bad"), policy)


async def test_callbacks_observe_retries_and_exhaustion(fake_time):
    on_retry = MagicMock()
    on_max = MagicMock()
    policy = RetryPolicy(max_attempts=3, on_retry=on_retry, on_max_attempts_reached=on_max)
    engine = RetryPolicyEngine(policy, sleep=fake_time.sleep, clock=fake_time.monotonic)
    error = NetworkError("down")

    await engine.execute(always_failing(lambda: error))

    assert [c.args for c in on_retry.call_args_list] == [(error, 1, 1.0), (error, 2, 2.0)]
    on_max.assert_called_once_with(error, 3)


async def test_raising_callback_does_not_alter_control_flow(fake_time):
    policy = RetryPolicy(on_retry=MagicMock(side_effect=RuntimeError("observer broke")))
    engine = RetryPolicyEngine(policy, sleep=fake_time.sleep, clock=fake_time.monotonic)

    outcome = await engine.execute(failing_then(42, NetworkError("blip")))

    assert outcome.success
    assert outcome.result == 42
    assert outcome.attempts == 2


async def test_retry_scheduled_events_are_dispatched(fake_time):
    events = []
    engine = RetryPolicyEngine(sleep=fake_time.sleep, clock=fake_time.monotonic, event_listener=events.append)

    await engine.execute(failing_then("ok", NetworkError("blip")), operation_name="list_tasks")

    assert len(events) == 1
    assert isinstance(events[0], RetryScheduled)
    assert events[0].operation == "list_tasks"
    assert events[0].attempt_number == 1
    assert events[0].delay_seconds == 1.0
    assert events[0].error_kind == "network"


async def test_linear_variant_uses_constant_delay(engine, fake_time):
    await engine.execute_linear(always_failing(lambda: NetworkError("down")), max_attempts=3)
    assert fake_time.sleeps == [1.0, 1.0]


async def test_immediate_variant_does_not_wait_but_is_bounded(engine, fake_time):
    operation = always_failing(lambda: NetworkError("down"))

    outcome = await engine.execute_immediate(operation, max_attempts=4)

    assert outcome.attempts == 4
    assert len(operation.calls) == 4
    assert fake_time.sleeps == [0.0, 0.0, 0.0]


async def test_execute_with_strategy_dispatches_by_name(engine, fake_time):
    await engine.execute_with_strategy(always_failing(lambda: NetworkError("down")), "exponential", max_attempts=3)
    assert fake_time.sleeps == [1.0, 2.0]

    with pytest.raises(ValueError):
        await engine.execute_with_strategy(failing_then("x"), "fibonacci")


async def test_run_raises_terminal_error(engine):
    with pytest.raises(RetryExhaustedError) as exc_info:
        await engine.run(always_failing(lambda: NetworkError("down")))
    assert isinstance(exc_info.value.last_error, NetworkError)


async def test_each_invocation_gets_a_fresh_outcome(engine):
    first = await engine.execute(failing_then(1, NetworkError("blip")))
    second = await engine.execute(failing_then(2))

    assert first is not second
    assert (first.attempts, second.attempts) == (2, 1)


def test_policy_validates_its_fields():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(base_delay=-1)
    with pytest.raises(ValueError):
        RetryPolicy(backoff_multiplier=0.5)


def test_policy_from_api_settings():
    settings = MagicMock(retry_attempts=1, retry_delay=0.5, max_delay=10.0)
    policy = RetryPolicy.from_api_settings(settings)
    assert (policy.max_attempts, policy.base_delay, policy.max_delay) == (1, 0.5, 10.0)


def test_unknown_status_keeps_generic_error():
    error = error_from_status(418, "teapot")
    assert type(error) is ApiError
    assert error.status_code == 418
