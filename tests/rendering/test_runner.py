"""Retry controller: decision table and attempt loop with a scripted transport."""
import asyncio

import pytest

from archrender.services.rendering.base import (
    TransportError,
    TransportErrorCode,
    TransportResult,
    TransportTimeoutError,
)
from archrender.services.rendering.runner import (
    Action,
    RetryPolicy,
    RetryState,
    advance,
    decide,
    is_retryable,
    send_with_retry,
)

OK = TransportResult(status_code=200, headers={}, body="{}")


class ScriptedTransport:
    """Returns/raises the scripted outcomes in order and counts calls."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def send(self, url, method, headers, body, timeout):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def _run(transport, sleep, policy=None):
    return asyncio.run(
        send_with_retry(transport, "https://example.test", {}, b"{}", timeout=5, policy=policy, sleep=sleep)
    )


def _reset():
    return TransportError("read ECONNRESET", TransportErrorCode.CONNECTION_RESET)


class TestDecisionTable:
    @pytest.mark.parametrize(
        "code",
        [TransportErrorCode.CONNECTION_RESET, TransportErrorCode.CONNECTION_CLOSED, TransportErrorCode.TIMEOUT],
    )
    def test_retryable_codes(self, code):
        assert is_retryable(TransportError("x", code))

    @pytest.mark.parametrize(
        "code",
        [
            TransportErrorCode.DNS_FAILURE,
            TransportErrorCode.CONNECTION_REFUSED,
            TransportErrorCode.TLS_FAILURE,
            TransportErrorCode.UNKNOWN,
        ],
    )
    def test_terminal_codes_stop_without_wait(self, code):
        state = RetryState(policy=RetryPolicy())
        decision = decide(state, TransportError("x", code))
        assert decision.action is Action.STOP
        assert decision.delay_seconds == 0

    def test_linear_backoff(self):
        state = RetryState(policy=RetryPolicy(max_retries=2, backoff_base_seconds=1.5))
        first = advance(state, _reset())
        second = advance(state, _reset())
        third = advance(state, _reset())
        assert (first.action, first.delay_seconds) == (Action.RETRY, 1.5)
        assert (second.action, second.delay_seconds) == (Action.RETRY, 3.0)
        assert third.action is Action.STOP
        assert third.reason == "retry_budget_exhausted"
        assert state.attempt == 2
        assert state.delays == [1.5, 3.0]

    def test_timeout_error_is_retryable(self):
        state = RetryState(policy=RetryPolicy())
        assert decide(state, TransportTimeoutError("slow")).action is Action.RETRY

    def test_zero_retries_never_retries(self):
        state = RetryState(policy=RetryPolicy(max_retries=0))
        assert decide(state, _reset()).action is Action.STOP


class TestSendWithRetry:
    def test_two_retryable_failures_then_success(self):
        transport = ScriptedTransport([_reset(), TransportTimeoutError("timeout"), OK])
        sleep = SleepRecorder()

        result = _run(transport, sleep)

        assert result is OK
        assert transport.calls == 3
        assert len(sleep.delays) == 2
        assert sleep.delays[0] < sleep.delays[1]

    def test_non_retryable_failure_single_attempt(self):
        transport = ScriptedTransport([
            TransportError("getaddrinfo ENOTFOUND", TransportErrorCode.DNS_FAILURE),
            OK,
        ])
        sleep = SleepRecorder()

        with pytest.raises(TransportError) as exc_info:
            _run(transport, sleep)

        assert exc_info.value.code is TransportErrorCode.DNS_FAILURE
        assert transport.calls == 1
        assert sleep.delays == []

    def test_budget_exhausted_raises_last_error(self):
        last = TransportError("socket hang up", TransportErrorCode.CONNECTION_CLOSED)
        transport = ScriptedTransport([_reset(), _reset(), last, OK])
        sleep = SleepRecorder()

        with pytest.raises(TransportError) as exc_info:
            _run(transport, sleep)

        assert exc_info.value is last
        assert transport.calls == 3
        assert sleep.delays == [1.0, 2.0]

    def test_first_success_stops(self):
        transport = ScriptedTransport([OK, OK])
        sleep = SleepRecorder()

        assert _run(transport, sleep) is OK
        assert transport.calls == 1
        assert sleep.delays == []

    def test_non_200_result_is_not_retried(self):
        unavailable = TransportResult(status_code=503, headers={}, body="busy")
        transport = ScriptedTransport([unavailable, OK])

        assert _run(transport, SleepRecorder()) is unavailable
        assert transport.calls == 1
